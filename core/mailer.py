"""
core/mailer.py -- Outbound mail collaborator.

Verification and password-reset mails are sent through Mailer.send(). When
SMTP_HOST is not configured the message is written to the log instead, which
keeps local development and tests free of network calls.

Delivery is synchronous. Routes queue it with FastAPI BackgroundTasks so a
slow SMTP server never delays the response; failures are logged and
swallowed there, never surfaced to the client.
"""

from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage

from core.config import Settings

logger = logging.getLogger("matcha.mail")


@dataclass(frozen=True)
class Mailer:
    host: str
    port: int
    sender: str
    user: str = ""
    password: str = ""

    @classmethod
    def from_settings(cls, settings: Settings) -> "Mailer":
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            sender=settings.smtp_from,
            user=settings.smtp_user,
            password=settings.smtp_password,
        )

    def send(self, to: str, subject: str, text: str) -> None:
        if not self.host:
            logger.info("mail (log-only) to=%s subject=%r\n%s", to, subject, text)
            return
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content(text)
        with smtplib.SMTP(self.host, self.port, timeout=10) as smtp:
            if self.user and self.password:
                smtp.starttls()
                smtp.login(self.user, self.password)
            smtp.send_message(msg)
        logger.info("mail sent to=%s subject=%r", to, subject)

    def send_quietly(self, to: str, subject: str, text: str) -> None:
        """Background-task entry point: delivery failures are logged, not raised."""
        try:
            self.send(to, subject, text)
        except (smtplib.SMTPException, OSError):
            logger.warning("mail delivery failed to=%s subject=%r", to, subject, exc_info=True)
