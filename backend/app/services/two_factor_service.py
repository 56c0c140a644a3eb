"""
Email verification codes for two-factor authentication.

A code moves from issued through up to ``TWO_FACTOR_MAX_ATTEMPTS``
verification attempts to one of three terminal states: consumed (verified),
expired, or invalidated by a newer code for the same email. Attempt
increments and the consume flip are conditional UPDATEs so two concurrent
requests can never both spend the last attempt or both consume the code.

Expired rows are removed by ``purge_expired_codes`` (run from Celery beat).
The purge is only garbage collection: whether a code is expired is always
decided by the timestamp check in ``verify_code``.
"""
import hmac
import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import delete, update
from sqlalchemy.exc import InvalidRequestError, SQLAlchemyError
from sqlmodel import Session, select

from app.core.config import settings
from app.core.exceptions import (
    AttemptsExceededException,
    CodeAlreadyUsedException,
    CodeExpiredException,
    CodeNotFoundException,
    InvalidCodeException,
    InvalidInputException,
    PersistenceException,
)
from app.models.columns import as_utc, utcnow
from app.models.two_factor_code import TwoFactorCode, TwoFactorPurpose

logger = logging.getLogger(__name__)

CODE_MIN = 100000
CODE_MAX = 999999


def generate_code() -> str:
    """Uniformly random six digit code, never starting with zero"""
    return str(CODE_MIN + secrets.randbelow(CODE_MAX - CODE_MIN + 1))


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _validate_purpose(purpose: str) -> str:
    try:
        return TwoFactorPurpose(purpose).value
    except ValueError:
        allowed = ", ".join(p.value for p in TwoFactorPurpose)
        raise InvalidInputException(
            message=f"Invalid verification purpose '{purpose}'",
            details={"allowed": allowed},
        )


def create_code(
    session: Session,
    email: str,
    purpose: str = TwoFactorPurpose.LOGIN.value,
    now: Optional[datetime] = None,
) -> TwoFactorCode:
    """
    Issue a new code for ``email``.

    Every unused code for the email is invalidated first, whatever its
    purpose, so exactly one code is outstanding per email afterwards.
    """
    email = normalize_email(email)
    purpose = _validate_purpose(purpose)
    now = as_utc(now or utcnow())

    try:
        session.exec(
            update(TwoFactorCode)
            .where(TwoFactorCode.email == email, TwoFactorCode.is_used == False)  # noqa: E712
            .values(is_used=True, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        record = TwoFactorCode(
            email=email,
            code=generate_code(),
            purpose=purpose,
            expires_at=now + timedelta(minutes=settings.TWO_FACTOR_CODE_TTL_MINUTES),
            created_at=now,
            updated_at=now,
        )
        session.add(record)
        session.commit()
        session.refresh(record)
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Failed to create verification code for {email}: {e}")
        raise PersistenceException("Failed to create verification code", operation="create_code") from e

    logger.info(f"Issued {purpose} verification code for {email}, expires at {record.expires_at.isoformat()}")
    return record


def verify_code(
    session: Session,
    record: TwoFactorCode,
    input_code: str,
    now: Optional[datetime] = None,
) -> bool:
    """
    Check ``input_code`` against ``record``.

    Raises CodeExpiredException, CodeAlreadyUsedException,
    AttemptsExceededException or InvalidCodeException. An attempt is spent
    before the comparison, so a wrong code still counts toward the limit.
    """
    now = as_utc(now or utcnow())
    max_attempts = settings.TWO_FACTOR_MAX_ATTEMPTS

    _check_usable(record, now, max_attempts)
    # Commits below expire the instance; keep what is needed if the row vanishes
    expires_at = record.expires_at

    try:
        result = session.exec(
            update(TwoFactorCode)
            .where(
                TwoFactorCode.id == record.id,
                TwoFactorCode.is_used == False,  # noqa: E712
                TwoFactorCode.attempts < max_attempts,
            )
            .values(attempts=TwoFactorCode.attempts + 1, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        raise PersistenceException("Failed to record verification attempt", operation="verify_code") from e

    _reload(session, record, expires_at, now)
    if result.rowcount == 0:
        # Another request consumed the code or spent the last attempt first
        _check_usable(record, now, max_attempts)
        raise AttemptsExceededException()

    if not _codes_match(record.code, input_code):
        remaining = max(max_attempts - record.attempts, 0)
        logger.warning(
            f"Invalid verification code for {record.email} "
            f"(attempt {record.attempts}/{max_attempts})"
        )
        raise InvalidCodeException(attempts_remaining=remaining)

    try:
        result = session.exec(
            update(TwoFactorCode)
            .where(TwoFactorCode.id == record.id, TwoFactorCode.is_used == False)  # noqa: E712
            .values(is_used=True, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        raise PersistenceException("Failed to consume verification code", operation="verify_code") from e

    _reload(session, record, expires_at, now)
    if result.rowcount == 0:
        raise CodeAlreadyUsedException()

    logger.info(f"Verification code for {record.email} accepted ({record.purpose})")
    return True


def _check_usable(record: TwoFactorCode, now: datetime, max_attempts: int) -> None:
    if record.is_expired(now):
        raise CodeExpiredException()
    if record.is_used:
        raise CodeAlreadyUsedException()
    if record.attempts >= max_attempts:
        raise AttemptsExceededException()


def _reload(session: Session, record: TwoFactorCode, expires_at: datetime, now: datetime) -> None:
    """
    Refresh ``record`` from the database.

    The expiry sweep may delete the row mid-verification. The outcome is then
    decided by the stored expiry: past the purge cutoff it is expired,
    otherwise the code was removed from under us and counts as used.
    """
    try:
        session.refresh(record)
    except InvalidRequestError:
        session.expunge(record)
        cutoff = now - timedelta(seconds=settings.TWO_FACTOR_PURGE_GRACE_SECONDS)
        logger.warning(f"Verification code expiring {expires_at.isoformat()} was purged during verification")
        if expires_at <= cutoff:
            raise CodeExpiredException()
        raise CodeAlreadyUsedException()


def _codes_match(expected: str, given) -> bool:
    if not isinstance(given, str):
        return False
    return hmac.compare_digest(expected.encode("utf-8"), given.encode("utf-8"))


def get_latest_code(
    session: Session,
    email: str,
    purpose: Optional[str] = None,
) -> Optional[TwoFactorCode]:
    query = select(TwoFactorCode).where(TwoFactorCode.email == normalize_email(email))
    if purpose:
        query = query.where(TwoFactorCode.purpose == _validate_purpose(purpose))
    return session.exec(
        query.order_by(TwoFactorCode.created_at.desc(), TwoFactorCode.id.desc())
    ).first()


def verify_code_for_email(
    session: Session,
    email: str,
    input_code: str,
    purpose: str = TwoFactorPurpose.LOGIN.value,
    now: Optional[datetime] = None,
) -> bool:
    """Verify against the most recent code issued to ``email`` for ``purpose``"""
    record = get_latest_code(session, email, purpose)
    if not record:
        raise CodeNotFoundException()
    return verify_code(session, record, input_code, now=now)


def purge_expired_codes(
    session: Session,
    now: Optional[datetime] = None,
    grace_seconds: Optional[int] = None,
) -> int:
    """Delete codes that expired more than ``grace_seconds`` ago, used or not"""
    now = as_utc(now or utcnow())
    if grace_seconds is None:
        grace_seconds = settings.TWO_FACTOR_PURGE_GRACE_SECONDS
    cutoff = now - timedelta(seconds=grace_seconds)

    try:
        result = session.exec(
            delete(TwoFactorCode)
            .where(TwoFactorCode.expires_at < cutoff)
            .execution_options(synchronize_session=False)
        )
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        raise PersistenceException("Failed to purge expired verification codes", operation="purge_expired_codes") from e

    purged = result.rowcount or 0
    if purged:
        logger.info(f"Purged {purged} expired verification codes")
    return purged
