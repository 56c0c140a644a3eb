"""
Outgoing mail for verification codes.

Without EMAIL_USER/EMAIL_PASS the message is written to the log instead of
being sent, so local development works without an SMTP account.
"""
import logging
import smtplib
import ssl
from email.message import EmailMessage

from app.core.config import settings
from app.core.exceptions import EmailDeliveryException

logger = logging.getLogger(__name__)

GMAIL_SMTP_HOST = "smtp.gmail.com"

_TEXT_TEMPLATE = """Hello,

Your verification code is: {code}

This code will expire in {ttl} minutes.

If you did not request this verification, please ignore this email.

Best regards,
The {project} Team
"""

_HTML_TEMPLATE = """<!DOCTYPE html>
<html>
<body style="font-family: Arial, sans-serif; color: #333; max-width: 600px; margin: 0 auto;">
  <div style="background-color: #007bff; color: white; padding: 20px; text-align: center;">
    <h2>Your Verification Code</h2>
  </div>
  <div style="background-color: #f8f9fa; padding: 30px;">
    <p>Hello,</p>
    <p>Use the following code to complete your sign in:</p>
    <div style="border: 2px solid #007bff; border-radius: 8px; padding: 20px; text-align: center;
                font-size: 32px; font-weight: bold; letter-spacing: 4px; color: #007bff;">{code}</div>
    <p>This code will expire in <strong>{ttl} minutes</strong>.</p>
    <p>If you did not request this verification, please ignore this email.</p>
    <p>Best regards,<br>The {project} Team</p>
  </div>
</body>
</html>
"""


def is_email_configured() -> bool:
    return bool(settings.EMAIL_USER and settings.EMAIL_PASS)


def build_two_factor_message(email: str, code: str) -> EmailMessage:
    context = {
        "code": code,
        "ttl": settings.TWO_FACTOR_CODE_TTL_MINUTES,
        "project": settings.PROJECT_NAME,
    }
    message = EmailMessage()
    message["Subject"] = "Your Verification Code"
    message["From"] = settings.EMAIL_FROM or settings.EMAIL_USER or f"no-reply@{settings.PROJECT_NAME.lower()}.com"
    message["To"] = email
    message.set_content(_TEXT_TEMPLATE.format(**context))
    message.add_alternative(_HTML_TEMPLATE.format(**context), subtype="html")
    return message


def _open_smtp() -> smtplib.SMTP:
    host = settings.EMAIL_HOST or GMAIL_SMTP_HOST
    port = settings.EMAIL_PORT
    timeout = settings.EMAIL_TIMEOUT_SECONDS

    if settings.EMAIL_SECURE or port == 465:
        return smtplib.SMTP_SSL(host, port, timeout=timeout, context=ssl.create_default_context())

    smtp = smtplib.SMTP(host, port, timeout=timeout)
    smtp.starttls(context=ssl.create_default_context())
    return smtp


def send_two_factor_code(email: str, code: str) -> bool:
    """
    Deliver a verification code to ``email``.

    Raises EmailDeliveryException when the SMTP server rejects the message
    or cannot be reached.
    """
    message = build_two_factor_message(email, code)

    if not is_email_configured():
        logger.warning("Email configuration missing (EMAIL_USER/EMAIL_PASS), simulating 2FA delivery")
        logger.info(f"2FA verification email (simulated) to {email}: code {code}")
        return True

    try:
        with _open_smtp() as smtp:
            smtp.login(settings.EMAIL_USER, settings.EMAIL_PASS)
            smtp.send_message(message)
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"Failed to send 2FA verification email to {email}: {e}")
        raise EmailDeliveryException(
            message="Failed to send verification email",
            details={"email": email},
        ) from e

    logger.info(f"2FA verification email sent to {email}")
    return True
