"""
System configuration store.

Key/value settings with audit metadata. Reads never raise and fall back to
the caller's default; writes upsert by key and raise PersistenceException
so a configuration change is never silently lost.
"""
import logging
import secrets
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from app.core.config import settings
from app.core.exceptions import (
    ConfigNotFoundException,
    InvalidConfigValueException,
    InvalidInputException,
    PersistenceException,
)
from app.core.security import get_password_hash
from app.models.columns import utcnow
from app.models.system_config import SystemConfig
from app.models.user import User, UserRole

logger = logging.getLogger(__name__)

TWO_FACTOR_LOGIN_KEY = "2fa_enabled_for_login"

# Declared shapes for the keys the platform reads. Unknown keys are schema-free.
KNOWN_CONFIG_TYPES: Dict[str, tuple] = {
    TWO_FACTOR_LOGIN_KEY: (bool,),
    "site_name": (str,),
    "site_description": (str,),
    "max_websites_per_publisher": (int,),
    "website_approval_required": (bool,),
    "default_website_status": (str,),
    "email_notifications_enabled": (bool,),
    "registration_enabled": (bool,),
    "maintenance_mode": (bool,),
}

DEFAULT_CONFIGS: List[Dict[str, Any]] = [
    {
        "key": "site_name",
        "value": "AlpusLinks",
        "description": "The name of the website",
        "category": "general",
    },
    {
        "key": "site_description",
        "value": "Professional link building and guest posting platform",
        "description": "The description of the website",
        "category": "general",
    },
    {
        "key": "max_websites_per_publisher",
        "value": 50,
        "description": "Maximum number of websites a publisher can register",
        "category": "limits",
    },
    {
        "key": "website_approval_required",
        "value": True,
        "description": "Whether websites need admin approval before becoming active",
        "category": "moderation",
    },
    {
        "key": "default_website_status",
        "value": "pending",
        "description": "Default status for new websites",
        "category": "moderation",
    },
    {
        "key": "email_notifications_enabled",
        "value": True,
        "description": "Whether to send email notifications",
        "category": "notifications",
    },
    {
        "key": "registration_enabled",
        "value": True,
        "description": "Whether new user registration is enabled",
        "category": "access",
    },
    {
        "key": "maintenance_mode",
        "value": False,
        "description": "Whether the site is in maintenance mode",
        "category": "access",
    },
    {
        "key": TWO_FACTOR_LOGIN_KEY,
        "value": False,
        "description": "Require an emailed verification code at login",
        "category": "security",
    },
]


def validate_config_value(key: str, value: Any) -> None:
    if value is None:
        raise InvalidConfigValueException(key, "a non-null value", "NoneType")

    expected = KNOWN_CONFIG_TYPES.get(key)
    if expected is None:
        return

    # bool is an int subclass; never let True stand in for a number
    if isinstance(value, bool) and bool not in expected:
        raise InvalidConfigValueException(key, _type_names(expected), "bool")
    if not isinstance(value, expected):
        raise InvalidConfigValueException(key, _type_names(expected), type(value).__name__)


def _type_names(types: tuple) -> str:
    return " | ".join(t.__name__ for t in types)


def get_config(session: Session, key: str, default: Any = None) -> Any:
    """Value of the active entry for ``key``, otherwise ``default``"""
    try:
        config = session.exec(
            select(SystemConfig).where(SystemConfig.key == key, SystemConfig.is_active == True)  # noqa: E712
        ).first()
    except SQLAlchemyError:
        # A failed statement leaves the transaction aborted until rolled back
        session.rollback()
        logger.exception(f"Error reading config '{key}', using default")
        return default
    return config.value if config else default


def get_config_entry(session: Session, key: str) -> Optional[SystemConfig]:
    return session.exec(select(SystemConfig).where(SystemConfig.key == key)).first()


def list_configs(
    session: Session,
    category: Optional[str] = None,
    include_inactive: bool = False,
) -> List[SystemConfig]:
    query = select(SystemConfig)
    if category:
        query = query.where(SystemConfig.category == category)
    if not include_inactive:
        query = query.where(SystemConfig.is_active == True)  # noqa: E712
    return list(session.exec(query.order_by(SystemConfig.category, SystemConfig.key)).all())


def set_config(
    session: Session,
    key: str,
    value: Any,
    description: Optional[str] = None,
    updated_by: Optional[int] = None,
    category: Optional[str] = None,
) -> SystemConfig:
    """
    Upsert the entry for ``key`` and force it active.

    ``description`` and ``category`` are only overwritten when given.
    Raises PersistenceException when the store rejects the write.
    """
    if updated_by is None:
        raise InvalidInputException("updated_by is required to set a config value")
    validate_config_value(key, value)

    try:
        config = _upsert(session, key, value, description, updated_by, category)
    except IntegrityError:
        # Lost a race with a concurrent insert of the same key; apply as an update
        session.rollback()
        try:
            config = _upsert(session, key, value, description, updated_by, category)
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Failed to set config '{key}': {e}")
            raise PersistenceException(f"Failed to set config '{key}'", operation="set_config") from e
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Failed to set config '{key}': {e}")
        raise PersistenceException(f"Failed to set config '{key}'", operation="set_config") from e

    logger.info(f"Config '{key}' updated by user {updated_by}")
    return config


def _upsert(
    session: Session,
    key: str,
    value: Any,
    description: Optional[str],
    updated_by: int,
    category: Optional[str],
) -> SystemConfig:
    config = get_config_entry(session, key)
    if config:
        config.value = value
        if description is not None:
            config.description = description
        if category is not None:
            config.category = category
        config.updated_by = updated_by
        config.is_active = True
        config.updated_at = utcnow()
    else:
        config = SystemConfig(
            key=key,
            value=value,
            description=description or "",
            category=category or "general",
            updated_by=updated_by,
        )
    session.add(config)
    session.commit()
    session.refresh(config)
    return config


def deactivate_config(session: Session, key: str, updated_by: int) -> SystemConfig:
    """Hide an entry from get_config without deleting its history"""
    config = get_config_entry(session, key)
    if not config:
        raise ConfigNotFoundException(key)

    config.is_active = False
    config.updated_by = updated_by
    config.updated_at = utcnow()
    try:
        session.add(config)
        session.commit()
        session.refresh(config)
    except SQLAlchemyError as e:
        session.rollback()
        raise PersistenceException(f"Failed to deactivate config '{key}'", operation="deactivate_config") from e

    logger.info(f"Config '{key}' deactivated by user {updated_by}")
    return config


def is_two_factor_enabled_for_login(session: Session) -> bool:
    return get_config(session, TWO_FACTOR_LOGIN_KEY, False) is True


def set_two_factor_enabled_for_login(session: Session, enabled: bool, updated_by: int) -> SystemConfig:
    return set_config(
        session,
        TWO_FACTOR_LOGIN_KEY,
        enabled,
        description="Require an emailed verification code at login",
        updated_by=updated_by,
        category="security",
    )


def get_system_user(session: Session) -> User:
    """
    The service account recorded as ``updated_by`` for automated changes.

    Created on first use. It is inactive and has no usable password, so it
    can never authenticate.
    """
    user = session.exec(select(User).where(User.email == settings.SYSTEM_USER_EMAIL)).first()
    if user:
        return user

    user = User(
        email=settings.SYSTEM_USER_EMAIL,
        first_name="System",
        hashed_password=get_password_hash(secrets.token_urlsafe(32)),
        role=UserRole.SYSTEM.value,
        is_active=False,
    )
    try:
        session.add(user)
        session.commit()
        session.refresh(user)
    except SQLAlchemyError as e:
        session.rollback()
        raise PersistenceException("Failed to create system user", operation="get_system_user") from e
    logger.info(f"Created system service account {user.email}")
    return user


def get_system_user_id(session: Session) -> int:
    return get_system_user(session).id


def seed_default_configs(session: Session, updated_by: int) -> int:
    """Insert missing defaults; existing keys are left untouched"""
    created = 0
    for item in DEFAULT_CONFIGS:
        if get_config_entry(session, item["key"]):
            logger.debug(f"Config '{item['key']}' already exists, skipping")
            continue
        set_config(
            session,
            item["key"],
            item["value"],
            description=item["description"],
            updated_by=updated_by,
            category=item["category"],
        )
        created += 1
    if created:
        logger.info(f"Seeded {created} default config entries")
    return created
