"""
Outbound email for verification and password-reset codes.

``send_email`` picks a transport from EMAIL_PROVIDER:
- resend (default): Resend API
- ses: AWS SES via boto3
- smtp: any SMTP relay

With EMAIL_ENABLED=false nothing leaves the process; the subject is logged
so local sign-ups still work.
"""
from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, formatdate
from html import escape as html_escape
from typing import Callable, Optional

import boto3
import resend
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError

from eventflow.core.config import settings

logger = logging.getLogger(__name__)


class EmailNotConfiguredError(RuntimeError):
    pass


class EmailDeliveryError(RuntimeError):
    """The provider is configured but refused or failed the send."""


@dataclass(frozen=True)
class OutgoingEmail:
    to: str
    subject: str
    html: str
    text: str


def _sender(address: str, setting: str) -> str:
    if not address:
        raise EmailNotConfiguredError(f"{setting} is not set")
    return formataddr((settings.EMAIL_FROM_NAME, address))


# -----------------------------
# Transports
# -----------------------------
def _via_resend(mail: OutgoingEmail) -> Optional[str]:
    if not settings.RESEND_API_KEY:
        raise EmailNotConfiguredError("RESEND_API_KEY is not set")
    sender = _sender(settings.FROM_EMAIL, "FROM_EMAIL")

    resend.api_key = settings.RESEND_API_KEY
    try:
        res = resend.Emails.send(
            {"from": sender, "to": [mail.to], "subject": mail.subject, "text": mail.text, "html": mail.html}
        )
    except Exception as e:  # noqa: BLE001 - the SDK raises its own hierarchy plus transport errors
        raise EmailDeliveryError(f"Resend send failed: {e}") from e

    if isinstance(res, dict) and res.get("error"):
        raise EmailDeliveryError(f"Resend API error: {res['error']}")
    msg_id = res.get("id") if isinstance(res, dict) else None
    return msg_id or None


def _via_ses(mail: OutgoingEmail) -> Optional[str]:
    if not settings.AWS_REGION:
        raise EmailNotConfiguredError("AWS_REGION is not set (required for SES)")
    sender = _sender(settings.FROM_EMAIL, "FROM_EMAIL")

    timeout = settings.SMTP_TIMEOUT_SECONDS
    client = boto3.client(
        "ses",
        region_name=settings.AWS_REGION,
        config=BotoConfig(connect_timeout=timeout, read_timeout=timeout, retries={"max_attempts": 2}),
    )
    body = {
        "Text": {"Data": mail.text, "Charset": "UTF-8"},
        "Html": {"Data": mail.html, "Charset": "UTF-8"},
    }
    try:
        res = client.send_email(
            Source=sender,
            Destination={"ToAddresses": [mail.to]},
            Message={"Subject": {"Data": mail.subject, "Charset": "UTF-8"}, "Body": body},
        )
    except NoCredentialsError as e:
        raise EmailDeliveryError("SES email failed: AWS credentials not available") from e
    except ClientError as e:
        code = (e.response or {}).get("Error", {}).get("Code", "ClientError")
        raise EmailDeliveryError(f"SES email failed: {code}") from e
    except BotoCoreError as e:
        raise EmailDeliveryError(f"SES email failed: {e}") from e
    return res.get("MessageId")


def _via_smtp(mail: OutgoingEmail) -> Optional[str]:
    if not settings.SMTP_HOST:
        raise EmailNotConfiguredError("SMTP_HOST is not set")
    sender = _sender(settings.SMTP_FROM_EMAIL, "SMTP_FROM_EMAIL")

    msg = MIMEMultipart("alternative")
    msg["From"] = sender
    msg["To"] = mail.to
    msg["Subject"] = mail.subject
    msg["Date"] = formatdate(localtime=True)
    msg.attach(MIMEText(mail.text, "plain", "utf-8"))
    msg.attach(MIMEText(mail.html, "html", "utf-8"))

    smtp_cls = smtplib.SMTP_SSL if settings.SMTP_USE_SSL else smtplib.SMTP
    try:
        with smtp_cls(settings.SMTP_HOST, settings.SMTP_PORT, timeout=settings.SMTP_TIMEOUT_SECONDS) as server:
            if settings.SMTP_USE_TLS and not settings.SMTP_USE_SSL:
                server.starttls()
            if settings.SMTP_USERNAME:
                server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
            server.sendmail(settings.SMTP_FROM_EMAIL, [mail.to], msg.as_string())
    except (OSError, smtplib.SMTPException) as e:
        raise EmailDeliveryError(f"SMTP send failed: {e}") from e
    return None


_TRANSPORTS: dict[str, Callable[[OutgoingEmail], Optional[str]]] = {
    "resend": _via_resend,
    "ses": _via_ses,
    "smtp": _via_smtp,
}


def send_email(to_email: str, subject: str, html: str, text: str) -> Optional[str]:
    """Deliver one message; returns the provider message id when there is one."""
    if not settings.EMAIL_ENABLED:
        logger.info("EMAIL_ENABLED=false; skipping delivery of %r", subject)
        return None

    provider = (settings.EMAIL_PROVIDER or "resend").strip().lower()
    transport = _TRANSPORTS.get(provider)
    if transport is None:
        raise EmailNotConfiguredError(
            f"Unsupported EMAIL_PROVIDER={provider!r}. Supported: {', '.join(_TRANSPORTS)}."
        )

    try:
        msg_id = transport(OutgoingEmail(to=to_email, subject=subject, html=html, text=text))
    except EmailDeliveryError:
        logger.exception("Email delivery via %s failed", provider)
        raise
    logger.info("Email sent via %s: msg_id=%s", provider, msg_id)
    return msg_id


# -----------------------------
# Templates
# -----------------------------
def send_verification_code(
    *,
    to_email: str,
    code: str,
    purpose: str,
    first_name: str = "",
    last_name: str = "",
    expires_minutes: int = 5,
) -> Optional[str]:
    app = settings.EMAIL_FROM_NAME
    if purpose == "FORGOT_PASSWORD":
        subject = f"Reset Password - {app}"
        heading = "Password Reset Request"
        intro = "Your password reset code is:"
        footer = ""
    else:
        name = " ".join(p for p in (first_name.strip(), last_name.strip()) if p)
        subject = f"Verify your Email - {app}"
        heading = f"Welcome to {app}, {name}!" if name else f"Welcome to {app}!"
        intro = "Your verification code is:"
        footer = "If you didn't request this, please ignore this email."
    expiry = f"This code will expire in {expires_minutes} minutes."

    html = (
        '<div style="font-family: Arial, sans-serif; padding: 20px;">'
        f"<h2>{html_escape(heading)}</h2>"
        f"<p>{intro}</p>"
        f'<h1 style="font-size: 36px; color: #4f46e5; letter-spacing: 5px;">{html_escape(code)}</h1>'
        f"<p>{expiry}</p>"
        + (f"<p>{footer}</p>" if footer else "")
        + "</div>"
    )
    text = "\n".join(filter(None, [heading, intro, code, expiry, footer]))

    return send_email(to_email=to_email, subject=subject, html=html, text=text)
