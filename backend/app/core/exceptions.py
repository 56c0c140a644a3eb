"""
Platform exceptions and their HTTP rendering.

Every business error carries an ``error_code`` and an HTTP ``status_code``
so the API layer can render it without knowing the concrete type.
"""
import logging
from typing import Optional, Any, Dict
from fastapi import Request
from starlette.exceptions import HTTPException as StarletteHTTPException
from fastapi.responses import JSONResponse
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_401_UNAUTHORIZED,
    HTTP_403_FORBIDDEN,
    HTTP_404_NOT_FOUND,
    HTTP_429_TOO_MANY_REQUESTS,
    HTTP_500_INTERNAL_SERVER_ERROR,
    HTTP_503_SERVICE_UNAVAILABLE,
)

logger = logging.getLogger(__name__)


# ==================== Base ====================

class PlatformException(Exception):
    """Base class for all platform errors"""

    error_code: str = "PLATFORM_ERROR"
    status_code: int = HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str = "An error occurred",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details
        }


# ==================== Persistence ====================

class PersistenceException(PlatformException):
    """Store unavailable or a write failed. Never retried automatically."""
    error_code = "PERSISTENCE_ERROR"
    status_code = HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str = "Failed to persist changes", operation: Optional[str] = None):
        super().__init__(message=message, details={"operation": operation} if operation else None)


# ==================== System config ====================

class ConfigException(PlatformException):
    error_code = "CONFIG_ERROR"
    status_code = HTTP_400_BAD_REQUEST


class ConfigNotFoundException(ConfigException):
    error_code = "CONFIG_NOT_FOUND"
    status_code = HTTP_404_NOT_FOUND

    def __init__(self, key: str):
        super().__init__(message=f"Config '{key}' not found", details={"key": key})


class InvalidConfigValueException(ConfigException):
    error_code = "INVALID_CONFIG_VALUE"

    def __init__(self, key: str, expected: str, actual: str):
        super().__init__(
            message=f"Config '{key}' expects a value of type {expected}, got {actual}",
            details={"key": key, "expected": expected, "actual": actual}
        )


# ==================== Two-factor verification ====================

class TwoFactorException(PlatformException):
    """Base class for verification code failures"""
    error_code = "TWO_FACTOR_ERROR"
    status_code = HTTP_400_BAD_REQUEST


class CodeExpiredException(TwoFactorException):
    error_code = "CODE_EXPIRED"

    def __init__(self, message: str = "Verification code has expired"):
        super().__init__(message=message)


class CodeAlreadyUsedException(TwoFactorException):
    error_code = "CODE_ALREADY_USED"

    def __init__(self, message: str = "Verification code has already been used"):
        super().__init__(message=message)


class AttemptsExceededException(TwoFactorException):
    error_code = "ATTEMPTS_EXCEEDED"
    status_code = HTTP_429_TOO_MANY_REQUESTS

    def __init__(self, message: str = "Maximum verification attempts exceeded"):
        super().__init__(message=message)


class InvalidCodeException(TwoFactorException):
    error_code = "INVALID_CODE"

    def __init__(self, attempts_remaining: Optional[int] = None, message: str = "Invalid verification code"):
        details = {"attempts_remaining": attempts_remaining} if attempts_remaining is not None else None
        super().__init__(message=message, details=details)


class CodeNotFoundException(TwoFactorException):
    error_code = "CODE_NOT_FOUND"

    def __init__(self, message: str = "No verification code found, please request a new one"):
        super().__init__(message=message)


# ==================== Auth ====================

class AuthException(PlatformException):
    error_code = "AUTH_ERROR"
    status_code = HTTP_401_UNAUTHORIZED


class InvalidCredentialsException(AuthException):
    error_code = "INVALID_CREDENTIALS"
    status_code = HTTP_400_BAD_REQUEST

    def __init__(self, message: str = "Incorrect email or password"):
        super().__init__(message=message)


class InactiveUserException(AuthException):
    error_code = "INACTIVE_USER"
    status_code = HTTP_400_BAD_REQUEST

    def __init__(self, message: str = "Inactive user"):
        super().__init__(message=message)


class TooManyAttemptsException(AuthException):
    error_code = "TOO_MANY_ATTEMPTS"
    status_code = HTTP_429_TOO_MANY_REQUESTS

    def __init__(self, message: str = "Too many login attempts. Try again later."):
        super().__init__(message=message)


class TokenInvalidException(AuthException):
    error_code = "TOKEN_INVALID"
    status_code = HTTP_403_FORBIDDEN

    def __init__(self, message: str = "Could not validate credentials"):
        super().__init__(message=message)


class TwoFactorTokenInvalidException(AuthException):
    error_code = "TWO_FACTOR_TOKEN_INVALID"
    status_code = HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "Sign in again to receive a verification code"):
        super().__init__(message=message)


class InsufficientPermissionsException(AuthException):
    error_code = "INSUFFICIENT_PERMISSIONS"
    status_code = HTTP_403_FORBIDDEN

    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(message=message)


# ==================== External services ====================

class ExternalServiceException(PlatformException):
    error_code = "EXTERNAL_SERVICE_ERROR"
    status_code = HTTP_503_SERVICE_UNAVAILABLE


class EmailDeliveryException(ExternalServiceException):
    error_code = "EMAIL_DELIVERY_ERROR"


# ==================== Validation ====================

class ValidationException(PlatformException):
    error_code = "VALIDATION_ERROR"
    status_code = HTTP_400_BAD_REQUEST


class InvalidInputException(ValidationException):
    error_code = "INVALID_INPUT"


# ==================== Handlers ====================

def register_exception_handlers(app):
    """Register the global exception handlers on a FastAPI app"""

    @app.exception_handler(PlatformException)
    async def platform_exception_handler(request: Request, exc: PlatformException):
        logger.warning(
            f"PlatformException: {exc.error_code} - {exc.message} | "
            f"Path: {request.url.path} | Details: {exc.details}"
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "success": False,
                **exc.to_dict()
            }
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "success": False,
                "error_code": f"HTTP_{exc.status_code}",
                "message": exc.detail,
                "details": {}
            },
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.exception(
            f"Unhandled exception: {type(exc).__name__} - {str(exc)} | "
            f"Path: {request.url.path}"
        )
        return JSONResponse(
            status_code=HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "success": False,
                "error_code": "INTERNAL_ERROR",
                "message": "Internal server error",
                "details": {"type": type(exc).__name__}
            }
        )
