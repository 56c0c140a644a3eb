from typing import Optional
from sqlmodel import SQLModel, Field
from datetime import datetime

from app.models.columns import utc_column, utcnow


class OperationLog(SQLModel, table=True):
    __tablename__ = "operation_log"

    id: Optional[int] = Field(default=None, primary_key=True)
    action: str = Field(index=True)  # e.g. "login", "verify_2fa", "set_config"
    username: str  # acting user's email
    details: Optional[str] = None
    ip_address: Optional[str] = None
    status: str = Field(default="success")  # success, failed, pending
    created_at: datetime = Field(default_factory=utcnow, sa_column=utc_column(index=True))
