from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import jwt, JWTError
from pydantic import ValidationError
from sqlmodel import Session

from app.core.config import settings
from app.core.db import get_session
from app.core.exceptions import (
    InactiveUserException,
    InsufficientPermissionsException,
    TokenInvalidException,
)
from app.core.security import ALGORITHM, is_token_revoked
from app.models.token import TokenPayload
from app.models.user import User

reusable_oauth2 = OAuth2PasswordBearer(
    tokenUrl=f"{settings.API_V1_STR}/login/access-token"
)


def get_token_payload(token: str = Depends(reusable_oauth2)) -> TokenPayload:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
        token_data = TokenPayload(**payload)
    except (JWTError, ValidationError):
        raise TokenInvalidException()

    if not token_data.sub or (token_data.jti and is_token_revoked(token_data.jti)):
        raise TokenInvalidException()
    # Pending 2FA tokens only unlock the verify and resend endpoints
    if token_data.purpose:
        raise TokenInvalidException()
    return token_data


def get_current_user(
    token_data: TokenPayload = Depends(get_token_payload),
    session: Session = Depends(get_session),
) -> User:
    try:
        user_id = int(token_data.sub)
    except ValueError:
        raise TokenInvalidException()

    user = session.get(User, user_id)
    if not user:
        raise TokenInvalidException("User not found")
    if not user.is_active:
        raise InactiveUserException()
    return user


def get_current_admin(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_admin:
        raise InsufficientPermissionsException("Admin privileges required")
    return current_user
