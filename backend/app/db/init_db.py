import logging
from sqlmodel import Session, select
from app.core.config import settings
from app.core.security import get_password_hash
from app.models.user import User, UserRole
from app.services.system_config_service import get_system_user_id, seed_default_configs

logger = logging.getLogger(__name__)


def init_db(session: Session) -> None:
    admin = session.exec(
        select(User).where(User.email == settings.ADMIN_EMAIL.lower())
    ).first()

    if not admin:
        admin = User(
            email=settings.ADMIN_EMAIL.lower(),
            first_name="Admin",
            hashed_password=get_password_hash(settings.ADMIN_PASSWORD),
            role=UserRole.ADMIN.value,
            is_superuser=True,
        )
        session.add(admin)
        session.commit()
        session.refresh(admin)
        logger.info(f"Created admin account {admin.email}")

    # Defaults are attributed to the service account, not the admin
    seed_default_configs(session, updated_by=get_system_user_id(session))
