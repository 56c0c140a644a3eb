from typing import List, Optional
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlmodel import Session

from app.api.deps import get_current_admin
from app.core import security
from app.core.db import get_session
from app.core.exceptions import ConfigNotFoundException
from app.models.system_config import SystemConfigRead, SystemConfigUpdate
from app.models.user import User
from app.services import system_config_service

router = APIRouter()


class TwoFactorToggle(BaseModel):
    enabled: bool


class TwoFactorStatus(BaseModel):
    enabled: bool


# --- System Config ---

@router.get("/config", response_model=List[SystemConfigRead])
def list_system_config(
    category: Optional[str] = None,
    include_inactive: bool = False,
    session: Session = Depends(get_session),
    admin: User = Depends(get_current_admin),
):
    return system_config_service.list_configs(session, category=category, include_inactive=include_inactive)


@router.get("/config/{key}", response_model=SystemConfigRead)
def get_config_by_key(
    key: str,
    session: Session = Depends(get_session),
    admin: User = Depends(get_current_admin),
):
    config = system_config_service.get_config_entry(session, key)
    if not config:
        raise ConfigNotFoundException(key)
    return config


@router.put("/config/{key}", response_model=SystemConfigRead)
def set_system_config(
    key: str,
    data: SystemConfigUpdate,
    request: Request,
    session: Session = Depends(get_session),
    admin: User = Depends(get_current_admin),
):
    """Create or update a setting; the entry is re-activated"""
    config = system_config_service.set_config(
        session,
        key,
        data.value,
        description=data.description,
        updated_by=admin.id,
        category=data.category,
    )
    security.create_log(session, "set_config", admin.email, f"{key}={data.value!r}", request.client.host if request.client else None)
    return config


@router.delete("/config/{key}", response_model=SystemConfigRead)
def deactivate_system_config(
    key: str,
    request: Request,
    session: Session = Depends(get_session),
    admin: User = Depends(get_current_admin),
):
    """Soft-disable a setting; its row and history are kept"""
    config = system_config_service.deactivate_config(session, key, updated_by=admin.id)
    security.create_log(session, "deactivate_config", admin.email, key, request.client.host if request.client else None)
    return config


# --- Two-factor toggle ---

@router.get("/2fa", response_model=TwoFactorStatus)
def get_two_factor_setting(
    session: Session = Depends(get_session),
    admin: User = Depends(get_current_admin),
):
    return {"enabled": system_config_service.is_two_factor_enabled_for_login(session)}


@router.put("/2fa", response_model=TwoFactorStatus)
def set_two_factor_setting(
    data: TwoFactorToggle,
    request: Request,
    session: Session = Depends(get_session),
    admin: User = Depends(get_current_admin),
):
    system_config_service.set_two_factor_enabled_for_login(session, data.enabled, updated_by=admin.id)
    security.create_log(
        session, "set_config", admin.email,
        f"2FA for login {'enabled' if data.enabled else 'disabled'}",
        request.client.host if request.client else None,
    )
    return {"enabled": system_config_service.is_two_factor_enabled_for_login(session)}
