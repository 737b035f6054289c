from __future__ import annotations

import asyncio
import smtplib
import ssl
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr

from app.config import Settings
from app.logging_config import get_logger
from app.schemas import EmailResult


log = get_logger(__name__)

NOT_CONFIGURED_MESSAGE = (
    "Email service is not configured on the server. Administrator must set EMAIL_HOST, EMAIL_PORT, "
    "EMAIL_USER and EMAIL_PASSWORD."
)
SENDER_NAME = "Weatherwise"


@dataclass
class EmailDispatcher:
    settings: Settings
    timeout_seconds: float = 20.0

    @property
    def is_configured(self) -> bool:
        return bool(
            self.settings.email_host
            and self.settings.email_port
            and self.settings.email_user
            and self.settings.email_password
        )

    async def send(self, *, to: str, subject: str, html: str) -> EmailResult:
        if not self.is_configured:
            log.error("email_not_configured")
            return EmailResult(success=False, error=NOT_CONFIGURED_MESSAGE)

        message = self._build_message(to=to, subject=subject, html=html)
        try:
            await asyncio.to_thread(self._deliver, to, message)
        except smtplib.SMTPAuthenticationError as exc:
            log.error("email_auth_failed", to=to, error=str(exc))
            return EmailResult(success=False, error="Authentication failed. Please check the email user and password.")
        except (smtplib.SMTPConnectError, smtplib.SMTPServerDisconnected, ConnectionError, TimeoutError) as exc:
            log.error("email_connection_failed", to=to, error=str(exc))
            return EmailResult(
                success=False,
                error="Could not connect to the email server. Please check the host and port settings.",
            )
        except (smtplib.SMTPException, OSError) as exc:
            log.error("email_send_failed", to=to, error=str(exc))
            return EmailResult(success=False, error=f"An unexpected error occurred: {exc}")

        log.info("email_sent", to=to, subject=subject)
        return EmailResult(success=True)

    def _build_message(self, *, to: str, subject: str, html: str) -> MIMEMultipart:
        sender = self.settings.email_from or self.settings.email_user
        message = MIMEMultipart("alternative")
        message["Subject"] = subject
        message["From"] = formataddr((SENDER_NAME, sender))
        message["To"] = to
        message.attach(MIMEText(html, "html", "utf-8"))
        return message

    def _deliver(self, to: str, message: MIMEMultipart) -> None:
        host = self.settings.email_host
        port = self.settings.email_port
        context = ssl.create_default_context()
        sender = self.settings.email_from or self.settings.email_user

        if port == 465:
            with smtplib.SMTP_SSL(host, port, timeout=self.timeout_seconds, context=context) as server:
                server.login(self.settings.email_user, self.settings.email_password)
                server.sendmail(sender, [to], message.as_string())
            return

        with smtplib.SMTP(host, port, timeout=self.timeout_seconds) as server:
            server.starttls(context=context)
            server.login(self.settings.email_user, self.settings.email_password)
            server.sendmail(sender, [to], message.as_string())
