"""
Email channel for timeline alerts.

Renders the alert templates and sends through SMTP. smtplib is blocking,
so the send runs on a worker thread to keep the event loop free.
"""

import asyncio
import smtplib
import ssl
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Protocol

from recon_timeline.infrastructure.observability.logging import get_logger
from recon_timeline.models.domain.settings_domain import EmailPreferences
from recon_timeline.models.domain.timeline_domain import TimelineAlert
from recon_timeline.services.notifications.errors import NotificationDeliveryError
from recon_timeline.services.notifications.templates import (
    email_subject,
    render_email_html,
    render_email_text,
)

logger = get_logger(__name__)

SMTP_TIMEOUT_SECONDS = 30


@dataclass(slots=True)
class EmailMessage:
    recipient: str
    subject: str
    text_body: str
    html_body: str


class EmailSender(Protocol):
    async def send(self, message: EmailMessage, prefs: EmailPreferences) -> None: ...


class SmtpEmailSender:
    """Sends email through the SMTP server named in the preferences."""

    async def send(self, message: EmailMessage, prefs: EmailPreferences) -> None:
        await asyncio.to_thread(self._send_sync, message, prefs)

    def _send_sync(self, message: EmailMessage, prefs: EmailPreferences) -> None:
        if not prefs.smtp_host:
            raise NotificationDeliveryError("SMTP host not configured", channel="email")

        msg = MIMEMultipart("alternative")
        msg["Subject"] = message.subject
        msg["From"] = prefs.from_address
        msg["To"] = message.recipient
        msg.attach(MIMEText(message.text_body, "plain"))
        msg.attach(MIMEText(message.html_body, "html"))

        try:
            if prefs.smtp_port == 465:
                context = ssl.create_default_context()
                server = smtplib.SMTP_SSL(
                    prefs.smtp_host, prefs.smtp_port, context=context, timeout=SMTP_TIMEOUT_SECONDS
                )
            else:
                server = smtplib.SMTP(prefs.smtp_host, prefs.smtp_port, timeout=SMTP_TIMEOUT_SECONDS)
                if prefs.smtp_use_tls:
                    server.starttls(context=ssl.create_default_context())

            try:
                if prefs.smtp_username and prefs.smtp_password:
                    server.login(prefs.smtp_username, prefs.smtp_password)
                server.sendmail(prefs.from_address, [message.recipient], msg.as_string())
            finally:
                server.quit()
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationDeliveryError(
                f"SMTP send failed: {e}", channel="email", target=message.recipient
            ) from e

        logger.info("Alert email sent", smtp_host=prefs.smtp_host, recipient=message.recipient)


def build_email(alert: TimelineAlert, recipient: str, escalation: bool = False) -> EmailMessage:
    return EmailMessage(
        recipient=recipient,
        subject=email_subject(alert, escalation),
        text_body=render_email_text(alert, escalation),
        html_body=render_email_html(alert, escalation),
    )


class EmailChannel:
    name = "email"

    def __init__(self, sender: EmailSender | None = None):
        self.sender = sender or SmtpEmailSender()

    async def send(
        self,
        alert: TimelineAlert,
        prefs: EmailPreferences,
        recipient: str | None = None,
        escalation: bool = False,
    ) -> EmailMessage:
        to = recipient or prefs.recipient
        if not to:
            raise NotificationDeliveryError("No email recipient configured", channel="email")
        message = build_email(alert, to, escalation)
        await self.sender.send(message, prefs)
        return message
