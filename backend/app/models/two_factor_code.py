from typing import Optional
from datetime import datetime, timedelta
from enum import Enum
from sqlalchemy import Index
from sqlmodel import SQLModel, Field

from app.core.config import settings
from app.models.columns import as_utc, utc_column, utcnow


class TwoFactorPurpose(str, Enum):
    LOGIN = "login"
    REGISTER = "register"
    PASSWORD_RESET = "password_reset"


def default_expiry() -> datetime:
    return utcnow() + timedelta(minutes=settings.TWO_FACTOR_CODE_TTL_MINUTES)


class TwoFactorCode(SQLModel, table=True):
    __tablename__ = "two_factor_code"
    __table_args__ = (
        Index("ix_two_factor_code_email_expires_at", "email", "expires_at"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True)  # stored normalized: stripped, lowercased
    code: str = Field(max_length=6)
    purpose: str = Field(default=TwoFactorPurpose.LOGIN.value)
    expires_at: datetime = Field(default_factory=default_expiry, sa_column=utc_column(index=True))
    attempts: int = Field(default=0)
    is_used: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utcnow, sa_column=utc_column())
    updated_at: datetime = Field(default_factory=utcnow, sa_column=utc_column())

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return as_utc(now or utcnow()) > as_utc(self.expires_at)
