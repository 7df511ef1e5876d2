"""Formatting and delivery of incident notification e-mails."""

from __future__ import annotations

import getpass
import html
import logging
import smtplib
import socket
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional, Protocol

import requests
from bs4 import BeautifulSoup

from . import config, feed, normalize

LOGGER = logging.getLogger(__name__)


class NotificationError(RuntimeError):
    """Raised when a notification cannot be delivered."""


@dataclass(frozen=True, slots=True)
class NotificationPayload:
    """A rendered message ready to hand to a :class:`MailSender`."""

    recipient: str
    subject: str
    html_body: str


class MailSender(Protocol):
    def send(self, payload: NotificationPayload) -> None:
        ...


def resolve_recipient(settings: config.Settings) -> str:
    """Return the configured recipient, or the identity the process runs as."""

    if settings.recipient:
        return settings.recipient
    return f"{getpass.getuser()}@{socket.getfqdn()}"


def build_notification(
    entry: feed.FeedEntry,
    summary_html: str,
    recipient: str,
    settings: config.Settings,
) -> NotificationPayload:
    """Render the subject and HTML body for one incident."""

    title = normalize.strip_title_timezone(entry.title)
    reported_at = normalize.format_reported_at(
        entry.updated, settings.display_timezone, settings.display_locale
    )
    body_lines = [
        f"<h2>{html.escape(title)}</h2>",
        f"<p><em>Reported at {html.escape(reported_at)} ({html.escape(settings.display_timezone)})</em></p>",
        f"<div>{summary_html}</div>",
        f'<p><a href="{html.escape(entry.link, quote=True)}">View incident details</a></p>',
    ]
    return NotificationPayload(
        recipient=recipient,
        subject=f"{settings.subject_prefix}{title}",
        html_body="\n".join(body_lines),
    )


def html_to_text(html_body: str) -> str:
    """Plain-text rendering of an HTML body for the multipart alternative."""

    soup = BeautifulSoup(html_body, "html.parser")
    lines = [line.strip() for line in soup.get_text("\n").splitlines()]
    return "\n".join(line for line in lines if line)


class SmtpMailSender:
    """Deliver payloads through an SMTP relay."""

    def __init__(
        self,
        host: str,
        port: int = config.DEFAULT_SMTP_PORT,
        username: Optional[str] = None,
        password: Optional[str] = None,
        sender: Optional[str] = None,
        use_ssl: bool = False,
        timeout: int = 30,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender
        self.use_ssl = use_ssl
        self.timeout = timeout

    def build_message(self, payload: NotificationPayload) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["From"] = self.sender or self.username or payload.recipient
        msg["To"] = payload.recipient
        msg["Subject"] = payload.subject
        msg.attach(MIMEText(html_to_text(payload.html_body), "plain", "utf-8"))
        msg.attach(MIMEText(payload.html_body, "html", "utf-8"))
        return msg

    def send(self, payload: NotificationPayload) -> None:
        msg = self.build_message(payload)
        use_ssl = self.use_ssl or self.port == 465
        try:
            if use_ssl:
                connection = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout)
            else:
                connection = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
            # QUIT and close on every exit path, including a failed STARTTLS
            with connection as server:
                if not use_ssl:
                    server.starttls()
                if self.username and self.password:
                    server.login(self.username, self.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            raise NotificationError(
                f"Failed to send e-mail to {payload.recipient}: {exc}"
            ) from exc
        LOGGER.info("E-mail sent to %s: %s", payload.recipient, payload.subject)


class WebhookMailSender:
    """Hand payloads to an HTTP mail relay as JSON."""

    def __init__(self, webhook_url: str, timeout: int = 10) -> None:
        self.webhook_url = webhook_url
        self.timeout = timeout

    def send(self, payload: NotificationPayload) -> None:
        body = {
            "recipient": payload.recipient,
            "subject": payload.subject,
            "htmlBody": payload.html_body,
        }
        try:
            response = requests.post(self.webhook_url, json=body, timeout=self.timeout)
        except requests.RequestException as exc:
            raise NotificationError(f"Failed to send notification: {exc}") from exc
        if not 200 <= response.status_code < 300:
            raise NotificationError(
                f"Failed to send notification: {response.status_code} {response.text}"
            )
        LOGGER.info("Notification relayed for %s: %s", payload.recipient, payload.subject)


def create_sender(settings: config.Settings) -> MailSender:
    """Pick the delivery mechanism from the configuration."""

    if settings.mail_webhook_url:
        return WebhookMailSender(settings.mail_webhook_url, timeout=settings.request_timeout)
    if settings.smtp_host:
        return SmtpMailSender(
            settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            sender=settings.smtp_sender,
            use_ssl=settings.smtp_use_ssl,
            timeout=settings.request_timeout,
        )
    raise NotificationError("Neither MAIL_WEBHOOK_URL nor SMTP_HOST is configured")
