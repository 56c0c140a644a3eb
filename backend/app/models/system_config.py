from typing import Any, Dict, List, Optional, Union
from datetime import datetime
from pydantic import StrictBool, StrictFloat, StrictInt, StrictStr
from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field

from app.models.columns import utc_column, utcnow

# Shape of a config value at the API boundary. Strict members keep
# true/1/"1" apart instead of coercing between them.
ConfigValue = Union[StrictBool, StrictInt, StrictFloat, StrictStr, Dict[str, Any], List[Any]]


class SystemConfig(SQLModel, table=True):
    __tablename__ = "system_config"

    id: Optional[int] = Field(default=None, primary_key=True)
    key: str = Field(unique=True, index=True)
    value: Any = Field(sa_column=Column(JSON, nullable=False))
    description: str = Field(default="")
    category: str = Field(default="general", index=True)
    is_active: bool = Field(default=True)
    updated_by: int = Field(foreign_key="user.id")
    created_at: datetime = Field(default_factory=utcnow, sa_column=utc_column())
    updated_at: datetime = Field(default_factory=utcnow, sa_column=utc_column())


class SystemConfigRead(SQLModel):
    id: int
    key: str
    value: ConfigValue
    description: str
    category: str
    is_active: bool
    updated_by: int
    created_at: datetime
    updated_at: datetime


class SystemConfigUpdate(SQLModel):
    value: ConfigValue
    description: Optional[str] = None
    category: Optional[str] = None
