"""Outbound email transport: console, SMTP (aiosmtplib) or SendGrid."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from typing import Protocol

import aiosmtplib
from python_http_client.exceptions import HTTPError

from ..config import FormRelaySettings, settings
from ..errors import EmailDeliveryError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmailOutcome:
    provider: str
    message_id: str | None = None


class EmailSender(Protocol):
    name: str

    async def send(
        self,
        to: str,
        subject: str,
        html: str,
        *,
        text: str | None = None,
        reply_to: str | None = None,
    ) -> EmailOutcome: ...


def _from_header(cfg: FormRelaySettings) -> str:
    return formataddr((cfg.email_from_name or "", cfg.email_from))


class ConsoleEmailSender:
    """Writes messages to the log instead of sending them."""

    name = "console"

    def __init__(self, cfg: FormRelaySettings = settings) -> None:
        self.cfg = cfg

    async def send(self, to, subject, html, *, text=None, reply_to=None) -> EmailOutcome:
        message_id = make_msgid(domain="formrelay.local")
        logger.info(
            "Email (console) to=%s subject=%r reply_to=%s\n%s",
            to, subject, reply_to, text or html,
        )
        return EmailOutcome(provider=self.name, message_id=message_id)


class SmtpEmailSender:
    name = "smtp"

    def __init__(self, cfg: FormRelaySettings = settings) -> None:
        self.cfg = cfg

    def build_message(self, to, subject, html, text=None, reply_to=None) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = _from_header(self.cfg)
        msg["To"] = to
        msg["Subject"] = subject
        msg["Message-ID"] = make_msgid()
        if reply_to:
            msg["Reply-To"] = reply_to
        msg.set_content(text or "")
        msg.add_alternative(html, subtype="html")
        return msg

    async def send(self, to, subject, html, *, text=None, reply_to=None) -> EmailOutcome:
        msg = self.build_message(to, subject, html, text=text, reply_to=reply_to)
        try:
            await aiosmtplib.send(
                msg,
                hostname=self.cfg.smtp_host,
                port=self.cfg.smtp_port,
                username=self.cfg.smtp_username or None,
                password=self.cfg.smtp_password or None,
                use_tls=self.cfg.smtp_use_tls,
                start_tls=self.cfg.smtp_start_tls and not self.cfg.smtp_use_tls,
                timeout=self.cfg.email_timeout_seconds,
            )
        except (aiosmtplib.SMTPException, OSError) as exc:
            raise EmailDeliveryError(f"SMTP delivery to {to} failed: {exc}") from exc
        return EmailOutcome(provider=self.name, message_id=msg["Message-ID"])


class SendGridEmailSender:
    name = "sendgrid"

    def __init__(self, cfg: FormRelaySettings = settings) -> None:
        self.cfg = cfg

    def _post(self, to, subject, html, text, reply_to):
        import sendgrid
        from sendgrid.helpers.mail import Email, Mail, ReplyTo, To

        sg = sendgrid.SendGridAPIClient(api_key=self.cfg.sendgrid_api_key)
        mail = Mail(
            from_email=Email(self.cfg.email_from, self.cfg.email_from_name),
            to_emails=To(to),
            subject=subject,
            html_content=html,
            plain_text_content=text,
        )
        if reply_to:
            mail.reply_to = ReplyTo(reply_to)
        return sg.client.mail.send.post(request_body=mail.get())

    async def send(self, to, subject, html, *, text=None, reply_to=None) -> EmailOutcome:
        try:
            response = await asyncio.wait_for(
                asyncio.to_thread(self._post, to, subject, html, text, reply_to),
                timeout=self.cfg.email_timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise EmailDeliveryError(f"SendGrid timed out sending to {to}") from exc
        except HTTPError as exc:
            raise EmailDeliveryError(f"SendGrid answered {exc.status_code} for {to}") from exc

        status = getattr(response, "status_code", 0)
        if not 200 <= status < 300:
            raise EmailDeliveryError(f"SendGrid answered {status} for {to}")
        message_id = None
        if hasattr(response, "headers"):
            message_id = response.headers.get("X-Message-Id")
        return EmailOutcome(provider=self.name, message_id=message_id)


def create_email_sender(cfg: FormRelaySettings = settings) -> EmailSender:
    """Pick the configured provider; incomplete config falls back to console."""
    provider = (cfg.email_provider or "console").strip().lower()
    if provider == "smtp":
        if cfg.smtp_configured:
            return SmtpEmailSender(cfg)
        logger.warning("FR_EMAIL_PROVIDER=smtp but SMTP is not configured; using console")
    elif provider == "sendgrid":
        if cfg.sendgrid_configured:
            return SendGridEmailSender(cfg)
        logger.warning("FR_EMAIL_PROVIDER=sendgrid but no API key is set; using console")
    elif provider != "console":
        logger.warning("Unknown email provider %r; using console", provider)
    return ConsoleEmailSender(cfg)
