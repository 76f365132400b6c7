"""Notification transports: SMTP email, a logging stand-in, and a per-channel router."""

from __future__ import annotations

import asyncio
import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, formatdate
from typing import Any

from ..config import Settings
from ..errors import NotificationFailure
from .interface import NotificationSender
from .models import AlertOwner, Channel

logger = logging.getLogger(__name__)

PRIORITY_COLORS = {"high": "#FF1744", "medium": "#FFC107", "low": "#4CAF50"}


class EmailNotificationSender(NotificationSender):
    """Sends alert emails over SMTP with STARTTLS.

    smtplib is blocking, so each send runs in a worker thread.
    """

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        from_address: str,
        from_name: str = "Stockwatch",
        use_tls: bool = True,
        timeout: float = 30.0,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_address = from_address
        self.from_name = from_name
        self.use_tls = use_tls
        self.timeout = timeout

    def is_configured(self) -> bool:
        return all([self.host, self.from_address, self.username, self.password])

    async def send(
        self,
        channel: Channel,
        recipient: AlertOwner,
        message: str,
        context: dict[str, Any],
    ) -> None:
        if not self.is_configured():
            raise NotificationFailure(channel.value, "SMTP is not configured")
        if not recipient.email:
            raise NotificationFailure(channel.value, f"owner {recipient.id} has no email address")
        msg = self.build_message(recipient, message, context)
        await asyncio.to_thread(self._send, msg)
        logger.info("Alert email sent to %s: %s", recipient.email, msg["Subject"])

    def build_message(self, recipient: AlertOwner, message: str, context: dict[str, Any]) -> MIMEMultipart:
        symbol = context.get("symbol", "")
        priority = str(context.get("priority", "medium"))
        color = PRIORITY_COLORS.get(priority, PRIORITY_COLORS["medium"])
        greeting = f"Hi {recipient.first_name}," if recipient.first_name else "Hi,"

        html = f"""
        <div style="font-family: system-ui, sans-serif; max-width: 500px; margin: 0 auto;
                    padding: 20px; background: #FFFFFF; color: #1E272E; border-radius: 12px;">
            <h2 style="margin-top: 0;">Stock Alert: {symbol}</h2>
            <p>{greeting}</p>
            <div style="background: #F0F1F6; padding: 16px; border-radius: 8px;
                        border-left: 4px solid {color};">
                <p>{message}</p>
            </div>
            <p style="color: #636E72; font-size: 12px; margin-top: 16px;">
                Triggered at {context.get("triggered_at", "")}
            </p>
        </div>
        """

        msg = MIMEMultipart("alternative")
        msg["From"] = formataddr((self.from_name, self.from_address))
        msg["To"] = recipient.email
        msg["Subject"] = f"Stock Alert: {symbol}"
        msg["Date"] = formatdate(localtime=True)
        msg.attach(MIMEText(f"{greeting}\n\n{message}", "plain", "utf-8"))
        msg.attach(MIMEText(html, "html", "utf-8"))
        return msg

    def _send(self, msg: MIMEMultipart) -> None:
        try:
            context = ssl.create_default_context()
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                server.ehlo()
                if self.use_tls:
                    server.starttls(context=context)
                    server.ehlo()
                server.login(self.username, self.password)
                server.send_message(msg)
        except smtplib.SMTPAuthenticationError as e:
            raise NotificationFailure("email", "SMTP authentication failed") from e
        except smtplib.SMTPRecipientsRefused as e:
            raise NotificationFailure("email", f"recipient refused: {msg['To']}") from e
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationFailure("email", str(e)) from e


class LogNotificationSender(NotificationSender):
    """Records notifications in the log instead of delivering them.

    Used for channels without a real transport (push, sms) and in development.
    """

    def __init__(self) -> None:
        self.sent: list[tuple[Channel, str, str]] = []

    async def send(
        self,
        channel: Channel,
        recipient: AlertOwner,
        message: str,
        context: dict[str, Any],
    ) -> None:
        self.sent.append((channel, recipient.id, message))
        logger.info("[%s] to %s: %s", channel.value, recipient.id, message)


class ChannelRouter(NotificationSender):
    """Routes each channel to its own sender; unknown channels fall back to a default."""

    def __init__(
        self,
        senders: dict[Channel, NotificationSender] | None = None,
        default: NotificationSender | None = None,
    ) -> None:
        self._senders = dict(senders or {})
        self._default = default

    def sender_for(self, channel: Channel) -> NotificationSender | None:
        return self._senders.get(channel, self._default)

    async def send(
        self,
        channel: Channel,
        recipient: AlertOwner,
        message: str,
        context: dict[str, Any],
    ) -> None:
        sender = self.sender_for(channel)
        if sender is None:
            raise NotificationFailure(channel.value, "no sender registered")
        await sender.send(channel, recipient, message, context)


def create_notification_sender(settings: Settings) -> ChannelRouter:
    """Email over SMTP when configured; everything else goes to the log."""
    fallback = LogNotificationSender()
    senders: dict[Channel, NotificationSender] = {}
    if settings.smtp_configured:
        senders[Channel.EMAIL] = EmailNotificationSender(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_user,
            password=settings.smtp_password,
            from_address=settings.smtp_from,
        )
        logger.info("Email notifications via %s:%d", settings.smtp_host, settings.smtp_port)
    else:
        logger.info("SMTP not configured, email notifications will be logged only")
    return ChannelRouter(senders, default=fallback)
