"""
Celery tasks
"""
from app.tasks.auth_tasks import (
    send_two_factor_code_email,
    purge_expired_two_factor_codes,
)

__all__ = [
    "send_two_factor_code_email",
    "purge_expired_two_factor_codes",
]
