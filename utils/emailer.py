import logging
import smtplib
from email.message import EmailMessage

from flask import current_app

logger = logging.getLogger(__name__)


def email_configured() -> bool:
    host = current_app.config.get("SMTP_HOST")
    from_email = current_app.config.get("SMTP_FROM_EMAIL") or current_app.config.get("SMTP_USERNAME")
    return bool(host and from_email)


def send_email(to_email: str, subject: str, body: str):
    host = current_app.config.get("SMTP_HOST")
    port = current_app.config.get("SMTP_PORT", 587)
    username = current_app.config.get("SMTP_USERNAME")
    password = current_app.config.get("SMTP_PASSWORD")
    from_email = current_app.config.get("SMTP_FROM_EMAIL") or username
    use_tls = current_app.config.get("SMTP_USE_TLS", True)

    if not host or not from_email:
        return False, "Email not configured"

    msg = EmailMessage()
    msg["From"] = from_email
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(body)

    try:
        with smtplib.SMTP(host, port, timeout=10) as server:
            if use_tls:
                server.starttls()
            if username and password:
                server.login(username, password)
            server.send_message(msg)
        return True, None
    except (smtplib.SMTPException, OSError) as exc:
        logger.warning("Sending email to %s failed: %s", to_email, exc)
        return False, str(exc)


def send_password_reset_email(to_email: str, raw_token: str, name: str):
    base_url = (current_app.config.get("FRONTEND_URL") or "").rstrip("/")
    ttl_minutes = current_app.config.get("RESET_TOKEN_TTL_SECONDS", 3600) // 60
    link = f"{base_url}/reset-password?token={raw_token}"

    body = (
        f"Hi {name or 'there'},\n\n"
        "We received a request to reset your TIFPoint password.\n"
        f"Open the link below to choose a new one (valid for {ttl_minutes} minutes):\n\n"
        f"{link}\n\n"
        "If you did not ask for this, you can ignore this email.\n"
    )
    return send_email(to_email, "Reset your TIFPoint password", body)
