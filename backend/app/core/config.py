import os
import secrets
from typing import List, Union
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator


def generate_secret_key() -> str:
    """Generate a SECRET_KEY, preferring the environment value"""
    env_key = os.environ.get("SECRET_KEY")
    if env_key and len(env_key) >= 32:
        return env_key
    new_key = secrets.token_hex(32)
    print("⚠️ WARNING: SECRET_KEY not set in environment! Using generated key.")
    print(f"⚠️ For production, set SECRET_KEY={new_key} in .env file")
    return new_key


class Settings(BaseSettings):
    PROJECT_NAME: str = "AlpusLinks"
    API_V1_STR: str = "/api/v1"

    # Security - SECRET_KEY must come from the environment in production
    SECRET_KEY: str = Field(default_factory=generate_secret_key)
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7  # 7 days

    # Bootstrap admin - must be changed in production
    ADMIN_EMAIL: str = "admin@alpuslinks.com"
    ADMIN_PASSWORD: str = Field(default="")

    # Service account recorded as updated_by for scripts and seeding
    SYSTEM_USER_EMAIL: str = "system@alpuslinks.local"

    # Database
    DATABASE_URL: str = "sqlite:///./alpuslinks.db"

    # CORS - comma separated string or list
    BACKEND_CORS_ORIGINS: Union[List[str], str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    # Redis
    REDIS_URL: str = "redis://localhost:6379/0"

    # Celery
    CELERY_BROKER_URL: str = ""
    CELERY_RESULT_BACKEND: str = ""

    # Outgoing email (2FA codes). Without EMAIL_USER/EMAIL_PASS delivery is simulated.
    EMAIL_HOST: str = ""
    EMAIL_PORT: int = 465
    EMAIL_SECURE: bool = True
    EMAIL_USER: str = ""
    EMAIL_PASS: str = ""
    EMAIL_FROM: str = ""
    EMAIL_TIMEOUT_SECONDS: int = 15

    # Two-factor authentication
    TWO_FACTOR_CODE_TTL_MINUTES: int = 10
    TWO_FACTOR_MAX_ATTEMPTS: int = 3
    TWO_FACTOR_PURGE_GRACE_SECONDS: int = 0
    TWO_FACTOR_PURGE_INTERVAL_SECONDS: int = 60
    TWO_FACTOR_PENDING_TOKEN_MINUTES: int = 10
    TWO_FACTOR_MAX_RESENDS: int = 3
    TWO_FACTOR_RESEND_WINDOW_SECONDS: int = 900

    # Login rate limiting
    LOGIN_MAX_FAILED_ATTEMPTS: int = 5
    LOGIN_BLOCK_SECONDS: int = 900

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False
    LOG_TO_FILE: bool = True
    LOG_DIR: str = "logs"

    @field_validator("ADMIN_PASSWORD", mode="before")
    @classmethod
    def validate_admin_password(cls, v: str) -> str:
        """Replace a missing or weak admin password with a generated one"""
        if not v or v in ["", "admin123", "password", "123456"]:
            new_password = secrets.token_urlsafe(16)
            print("⚠️ WARNING: ADMIN_PASSWORD not set or too weak!")
            print(f"⚠️ Generated secure password: {new_password}")
            print(f"⚠️ Set ADMIN_PASSWORD={new_password} in .env file")
            return new_password
        if len(v) < 12:
            print("⚠️ WARNING: ADMIN_PASSWORD should be at least 12 characters!")
        return v

    @property
    def celery_broker_url(self) -> str:
        return self.CELERY_BROKER_URL or self.REDIS_URL

    @property
    def celery_result_backend(self) -> str:
        return self.CELERY_RESULT_BACKEND or self.REDIS_URL

    model_config = SettingsConfigDict(env_file=".env", env_ignore_empty=True, extra="ignore")


settings = Settings()
