from typing import Optional
from datetime import datetime
from sqlmodel import SQLModel, Field

from app.models.columns import utc_column, utcnow


class LoginSession(SQLModel, table=True):
    __tablename__ = "login_session"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    login_date: datetime = Field(default_factory=utcnow, sa_column=utc_column(index=True))
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    login_method: str = Field(default="email")  # email, email_2fa
    is_active: bool = Field(default=True, index=True)
    logout_date: Optional[datetime] = Field(default=None, sa_column=utc_column(nullable=True))
