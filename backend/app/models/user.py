from typing import Optional
from datetime import datetime
from enum import Enum
from sqlmodel import SQLModel, Field

from app.models.columns import utc_column, utcnow


class UserRole(str, Enum):
    ADMIN = "admin"
    PUBLISHER = "publisher"
    ADVERTISER = "advertiser"
    SYSTEM = "system"  # service account, never logs in


class UserBase(SQLModel):
    email: str = Field(unique=True, index=True)
    first_name: str = ""
    last_name: str = ""
    role: str = Field(default=UserRole.ADVERTISER.value, index=True)
    is_active: bool = True
    is_superuser: bool = False


class User(UserBase, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    hashed_password: str
    created_at: datetime = Field(default_factory=utcnow, sa_column=utc_column())

    @property
    def is_admin(self) -> bool:
        return self.is_superuser or self.role == UserRole.ADMIN.value


class UserRead(UserBase):
    id: int
