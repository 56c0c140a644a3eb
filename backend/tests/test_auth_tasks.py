"""
Tests for app.tasks.auth_tasks. Tasks are called directly, no broker involved.
"""
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from sqlmodel import select

from app.core.celery_app import celery_app
from app.core.exceptions import EmailDeliveryException
from app.models.two_factor_code import TwoFactorCode
from app.services.two_factor_service import create_code
from app.tasks.auth_tasks import (
    purge_expired_two_factor_codes,
    send_two_factor_code_email,
)


class TestSendTwoFactorCodeEmail:

    def test_delivers(self):
        with patch("app.tasks.auth_tasks.send_two_factor_code", return_value=True) as send:
            result = send_two_factor_code_email("user@example.com", "482913")

        send.assert_called_once_with("user@example.com", "482913")
        assert result == {"email": "user@example.com", "delivered": True}

    def test_delivery_failure_propagates_when_called_directly(self):
        # Outside a worker, retry() re-raises the original error
        error = EmailDeliveryException("Failed to send verification email")
        with patch("app.tasks.auth_tasks.send_two_factor_code", side_effect=error):
            with pytest.raises(EmailDeliveryException) as exc_info:
                send_two_factor_code_email("user@example.com", "482913")

        assert exc_info.value is error

    def test_routed_to_high_priority_queue(self):
        routes = celery_app.conf.task_routes
        assert routes[send_two_factor_code_email.name] == {"queue": "high_priority"}


class TestPurgeExpiredTwoFactorCodes:

    def test_purges_with_task_session(self, engine, session):
        now = datetime.now(timezone.utc)
        create_code(session, "old@example.com", now=now - timedelta(hours=1))
        create_code(session, "new@example.com", now=now)

        with patch("app.tasks.auth_tasks.engine", engine):
            result = purge_expired_two_factor_codes()

        assert result == {"purged": 1}
        session.expire_all()
        emails = [c.email for c in session.exec(select(TwoFactorCode)).all()]
        assert emails == ["new@example.com"]

    def test_scheduled_on_beat(self):
        entry = celery_app.conf.beat_schedule["purge-expired-two-factor-codes"]
        assert entry["task"] == purge_expired_two_factor_codes.name
