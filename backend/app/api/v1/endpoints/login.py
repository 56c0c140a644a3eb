from datetime import timedelta
from typing import Any, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import BaseModel, Field
from sqlmodel import Session, select

from app.api.deps import get_current_user, get_token_payload
from app.core import security
from app.core.config import settings
from app.core.db import get_session
from app.core.exceptions import (
    CodeNotFoundException,
    InactiveUserException,
    InvalidCredentialsException,
    TooManyAttemptsException,
    TwoFactorException,
    ValidationException,
)
from app.models.columns import utcnow
from app.models.login_session import LoginSession
from app.models.token import TokenPayload
from app.models.two_factor_code import TwoFactorPurpose
from app.models.user import User
from app.services import two_factor_service
from app.services.system_config_service import is_two_factor_enabled_for_login
from app.tasks.auth_tasks import send_two_factor_code_email

router = APIRouter()

INVALID_2FA_MESSAGE = "Invalid email or verification code"


# ---------------------------------------------------------------------------
# Request / Response schemas
# ---------------------------------------------------------------------------

class LoginResponse(BaseModel):
    access_token: Optional[str] = None
    token_type: str = "bearer"
    requires_2fa: bool = False
    two_factor_token: Optional[str] = None
    email: Optional[str] = None
    message: Optional[str] = None


class Verify2FARequest(BaseModel):
    two_factor_token: Optional[str] = None
    code: str = Field(..., min_length=1, max_length=16)


class Resend2FARequest(BaseModel):
    two_factor_token: Optional[str] = None


class TwoFactorStatusResponse(BaseModel):
    enabled: bool


class MessageResponse(BaseModel):
    message: str


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _client_ip(request: Request) -> str:
    return request.headers.get("X-Real-IP", request.client.host if request.client else "unknown")


def _find_user(session: Session, email: str) -> Optional[User]:
    return session.exec(
        select(User).where(User.email == two_factor_service.normalize_email(email))
    ).first()


def _issue_token(session: Session, user: User, request: Request, login_method: str) -> LoginResponse:
    session.add(LoginSession(
        user_id=user.id,
        ip_address=_client_ip(request),
        user_agent=request.headers.get("User-Agent"),
        login_method=login_method,
    ))
    session.commit()

    access_token_expires = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    return LoginResponse(
        access_token=security.create_access_token(subject=user.id, expires_delta=access_token_expires),
        token_type="bearer",
    )


def _send_login_code(session: Session, email: str) -> None:
    record = two_factor_service.create_code(session, email, TwoFactorPurpose.LOGIN.value)
    send_two_factor_code_email.delay(record.email, record.code)


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------

@router.post("/login/access-token", response_model=LoginResponse)
def login_access_token(
    request: Request,
    form_data: OAuth2PasswordRequestForm = Depends(),
    session: Session = Depends(get_session),
) -> Any:
    """
    OAuth2 compatible token login, ``username`` is the account email.

    When ``2fa_enabled_for_login`` is on, no access token is returned: a code
    is emailed along with a short-lived ``two_factor_token``, and the client
    finishes with ``/login/verify-2fa`` presenting both.
    """
    ip = _client_ip(request)
    if security.is_login_blocked(ip):
        security.create_log(session, "login", form_data.username, "Too many attempts", ip, "failed")
        raise TooManyAttemptsException()

    user = _find_user(session, form_data.username)
    if not user or not security.verify_password(form_data.password, user.hashed_password):
        security.register_failed_login(ip)
        security.create_log(session, "login", form_data.username, "Incorrect credentials", ip, "failed")
        raise InvalidCredentialsException()
    if not user.is_active:
        raise InactiveUserException()

    security.reset_failed_logins(ip)

    if is_two_factor_enabled_for_login(session):
        _send_login_code(session, user.email)
        security.create_log(session, "login", user.email, "2FA code sent", ip, "pending")
        return LoginResponse(
            requires_2fa=True,
            two_factor_token=security.create_two_factor_token(user.email),
            email=user.email,
            message="Verification code sent to your email",
        )

    security.create_log(session, "login", user.email, "Login successful", ip, "success")
    return _issue_token(session, user, request, login_method="email")


@router.post("/login/verify-2fa", response_model=LoginResponse)
def verify_2fa(
    request: Request,
    data: Verify2FARequest,
    session: Session = Depends(get_session),
) -> Any:
    """Complete a 2FA login with the pending token and the emailed code"""
    ip = _client_ip(request)
    pending = security.decode_two_factor_token(data.two_factor_token)
    user = _find_user(session, pending["sub"])
    if not user:
        raise InvalidCredentialsException(INVALID_2FA_MESSAGE)
    if not user.is_active:
        raise InactiveUserException()

    try:
        two_factor_service.verify_code_for_email(
            session, user.email, data.code, purpose=TwoFactorPurpose.LOGIN.value,
        )
    except CodeNotFoundException as exc:
        security.create_log(session, "verify_2fa", user.email, exc.error_code, ip, "failed")
        raise InvalidCredentialsException(INVALID_2FA_MESSAGE)
    except TwoFactorException as exc:
        security.create_log(session, "verify_2fa", user.email, exc.error_code, ip, "failed")
        raise

    security.revoke_token_payload(pending)
    security.create_log(session, "verify_2fa", user.email, "Login successful (2FA)", ip, "success")
    return _issue_token(session, user, request, login_method="email_2fa")


@router.post("/login/resend-2fa", response_model=MessageResponse)
def resend_2fa(
    request: Request,
    data: Resend2FARequest,
    session: Session = Depends(get_session),
) -> Any:
    """
    Issue a fresh login code for the account named by the pending token.

    Resends are limited per email to ``TWO_FACTOR_MAX_RESENDS`` within
    ``TWO_FACTOR_RESEND_WINDOW_SECONDS``.
    """
    pending = security.decode_two_factor_token(data.two_factor_token)
    if not is_two_factor_enabled_for_login(session):
        raise ValidationException("Two-factor authentication is not enabled")

    email = two_factor_service.normalize_email(pending["sub"])
    ip = _client_ip(request)
    if not security.register_two_factor_resend(email):
        security.create_log(session, "resend_2fa", email, "Too many resends", ip, "failed")
        raise TooManyAttemptsException("Too many verification code requests. Try again later.")

    user = _find_user(session, email)
    if user and user.is_active:
        _send_login_code(session, user.email)
        security.create_log(session, "resend_2fa", user.email, "2FA code re-sent", ip)

    return {"message": "A new verification code has been sent"}


@router.get("/login/2fa-status", response_model=TwoFactorStatusResponse)
def two_factor_status(session: Session = Depends(get_session)) -> Any:
    return {"enabled": is_two_factor_enabled_for_login(session)}


# ---------------------------------------------------------------------------
# Logout (token revocation)
# ---------------------------------------------------------------------------

@router.post("/logout", response_model=MessageResponse)
def logout(
    token_data: TokenPayload = Depends(get_token_payload),
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
) -> Any:
    """Revoke the current JWT and close the user's active login sessions"""
    security.revoke_token_payload(token_data.model_dump())

    now = utcnow()
    active_sessions = session.exec(
        select(LoginSession).where(
            LoginSession.user_id == current_user.id,
            LoginSession.is_active == True,  # noqa: E712
        )
    ).all()
    for login_session in active_sessions:
        login_session.is_active = False
        login_session.logout_date = now
        session.add(login_session)
    session.commit()

    security.create_log(session, "logout", current_user.email, f"Closed {len(active_sessions)} sessions")
    return {"message": "Successfully logged out"}
