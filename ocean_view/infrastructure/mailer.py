"""
Email transports for reservation notifications
"""
import asyncio
import logging
import smtplib
from email.message import EmailMessage
from typing import Optional

from ocean_view.config import Settings
from ocean_view.domain.notifications import EmailSender

logger = logging.getLogger(__name__)


class LoggingEmailSender(EmailSender):
    """Simulated delivery: writes the message to the log and reports it sent"""

    async def send(self, address: str, subject: str, content: str) -> bool:
        logger.info(f"Simulated email to {address}: {subject}")
        logger.debug(content)
        return True


class SmtpEmailSender(EmailSender):
    """SMTP email transport"""

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        from_email: Optional[str] = None,
        use_tls: bool = True,
        timeout: float = 10,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_email = from_email or username
        self.use_tls = use_tls
        self.timeout = timeout

    def _send_blocking(self, address: str, subject: str, content: str) -> None:
        msg = EmailMessage()
        msg["From"] = self.from_email
        msg["To"] = address
        msg["Subject"] = subject
        msg.set_content(content)

        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            if self.use_tls:
                server.starttls()
            if self.username and self.password:
                server.login(self.username, self.password)
            server.send_message(msg)

    async def send(self, address: str, subject: str, content: str) -> bool:
        try:
            await asyncio.to_thread(self._send_blocking, address, subject, content)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email to {address}: {e}")
            return False
        logger.info(f"Email sent to {address}: {subject}")
        return True


def build_email_sender(config: Settings) -> EmailSender:
    """Pick the transport named by NOTIFICATION_TRANSPORT"""
    transport = config.NOTIFICATION_TRANSPORT.lower()
    if transport == "smtp":
        if not config.SMTP_HOST:
            raise ValueError("NOTIFICATION_TRANSPORT=smtp requires SMTP_HOST")
        return SmtpEmailSender(
            host=config.SMTP_HOST,
            port=config.SMTP_PORT,
            username=config.SMTP_USERNAME,
            password=config.SMTP_PASSWORD,
            from_email=config.SMTP_FROM_EMAIL,
            use_tls=config.SMTP_USE_TLS,
        )
    if transport == "log":
        return LoggingEmailSender()
    raise ValueError(f"Unknown notification transport: {config.NOTIFICATION_TRANSPORT}")
