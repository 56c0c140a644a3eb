import logging
import time
import uuid
from datetime import timedelta, datetime, timezone
from typing import Any, Optional, Union

from jose import jwt, JWTError
from passlib.context import CryptContext
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from app.core.config import settings
from app.core.exceptions import TwoFactorTokenInvalidException
from app.models.operation_log import OperationLog

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ALGORITHM = settings.ALGORITHM

# Marks a token that only proves the password step of a 2FA login
TWO_FACTOR_PENDING_PURPOSE = "2fa_pending"

# Redis client for the token blocklist and login throttling (lazy init)
_redis_client = None


def _get_redis():
    global _redis_client
    if _redis_client is None:
        import redis
        _redis_client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    return _redis_client


_REVOKED_TOKEN_PREFIX = "revoked_token:"
_LOGIN_ATTEMPTS_PREFIX = "login_attempts:"
_TWO_FACTOR_RESENDS_PREFIX = "2fa_resends:"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def _encode(claims: dict, expires_delta: timedelta) -> str:
    to_encode = {
        **claims,
        "exp": datetime.now(timezone.utc) + expires_delta,
        "jti": str(uuid.uuid4()),
        "iat": int(time.time()),
    }
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def create_access_token(subject: Union[str, Any], expires_delta: timedelta = None) -> str:
    if not expires_delta:
        expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    return _encode({"sub": str(subject)}, expires_delta)


def create_two_factor_token(email: str) -> str:
    """Short-lived token handed out after the password check of a 2FA login"""
    return _encode(
        {"sub": email, "purpose": TWO_FACTOR_PENDING_PURPOSE},
        timedelta(minutes=settings.TWO_FACTOR_PENDING_TOKEN_MINUTES),
    )


def decode_two_factor_token(token: Optional[str]) -> dict:
    """
    Validate a pending 2FA token and return its claims.

    Access tokens, expired, revoked or tampered tokens all raise
    TwoFactorTokenInvalidException.
    """
    if not token:
        raise TwoFactorTokenInvalidException()
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise TwoFactorTokenInvalidException()

    if payload.get("purpose") != TWO_FACTOR_PENDING_PURPOSE or not payload.get("sub"):
        raise TwoFactorTokenInvalidException()
    jti = payload.get("jti")
    if not jti or is_token_revoked(jti):
        raise TwoFactorTokenInvalidException()
    return payload


def revoke_token(jti: str, ttl: int) -> None:
    """Add a token's jti to the Redis blocklist.

    The TTL should match the remaining lifetime of the token so the
    blocklist entry disappears once the token would have expired anyway.
    """
    _get_redis().setex(f"{_REVOKED_TOKEN_PREFIX}{jti}", ttl, "1")


def revoke_token_payload(payload: dict) -> None:
    """Revoke a decoded token until its own expiry"""
    jti = payload.get("jti")
    if not jti:
        return
    now_ts = int(time.time())
    exp_ts = int(payload.get("exp") or now_ts)
    revoke_token(jti, max(exp_ts - now_ts, 1))


def is_token_revoked(jti: str) -> bool:
    return _get_redis().exists(f"{_REVOKED_TOKEN_PREFIX}{jti}") > 0


def is_login_blocked(client_ip: str) -> bool:
    attempts = _get_redis().get(f"{_LOGIN_ATTEMPTS_PREFIX}{client_ip}")
    return bool(attempts) and int(attempts) > settings.LOGIN_MAX_FAILED_ATTEMPTS


def register_failed_login(client_ip: str) -> None:
    key = f"{_LOGIN_ATTEMPTS_PREFIX}{client_ip}"
    redis_client = _get_redis()
    redis_client.incr(key)
    redis_client.expire(key, settings.LOGIN_BLOCK_SECONDS)


def reset_failed_logins(client_ip: str) -> None:
    _get_redis().delete(f"{_LOGIN_ATTEMPTS_PREFIX}{client_ip}")


def register_two_factor_resend(email: str) -> bool:
    """
    Count a code resend for ``email``; False once the window's limit is spent.

    The window starts at the first resend and is not extended by later ones.
    """
    key = f"{_TWO_FACTOR_RESENDS_PREFIX}{email}"
    redis_client = _get_redis()
    count = int(redis_client.incr(key))
    if count == 1:
        redis_client.expire(key, settings.TWO_FACTOR_RESEND_WINDOW_SECONDS)
    return count <= settings.TWO_FACTOR_MAX_RESENDS


def create_log(
    session: Session,
    action: str,
    username: str,
    details: Optional[str] = None,
    ip_address: Optional[str] = None,
    status: str = "success",
) -> None:
    """Write an audit row; a failing audit write never breaks the request"""
    try:
        session.add(OperationLog(
            action=action,
            username=username,
            details=details,
            ip_address=ip_address,
            status=status,
        ))
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Failed to create operation log for {action}: {e}")
