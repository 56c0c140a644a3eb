"""
Authentication tasks
- verification code delivery
- expired code purge (beat)
"""
from sqlmodel import Session

from app.core.celery_app import celery_app
from app.core.db import engine
from app.core.exceptions import EmailDeliveryException
from app.core.logging import get_task_logger
from app.services.email_service import send_two_factor_code
from app.services.two_factor_service import purge_expired_codes


@celery_app.task(bind=True, max_retries=3, default_retry_delay=30)
def send_two_factor_code_email(self, email: str, code: str):
    """Send a verification code, retrying while the mail server refuses it"""
    log = get_task_logger("send_two_factor_code_email", self.request.id)
    try:
        send_two_factor_code(email, code)
    except EmailDeliveryException as exc:
        log.warning(f"Verification email to {email} failed, retry {self.request.retries + 1}/{self.max_retries}")
        raise self.retry(exc=exc)
    log.info(f"Verification email delivered to {email}")
    return {"email": email, "delivered": True}


@celery_app.task(bind=True)
def purge_expired_two_factor_codes(self):
    log = get_task_logger("purge_expired_two_factor_codes", self.request.id)
    with Session(engine) as session:
        purged = purge_expired_codes(session)
    log.info(f"Purged {purged} expired verification codes")
    return {"purged": purged}
