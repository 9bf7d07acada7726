"""SMTP delivery for organiser emails."""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Protocol

import aiosmtplib

from engagement.domain.errors import GatewayError
from engagement.settings import Settings

logger = logging.getLogger(__name__)


def mask_email(email: str) -> str:
    return hashlib.sha256(email.lower().encode("utf-8")).hexdigest()[:12]


class Mailer(Protocol):
    async def send(self, to_email: str, subject: str, body_html: str) -> bool:
        ...


@dataclass
class SmtpMailer:
    config: Settings

    async def send(self, to_email: str, subject: str, body_html: str) -> bool:
        """Send one HTML email; returns False when SMTP is not configured."""
        if not self.config.smtp_host:
            logger.warning("mailer.not_configured", extra={"email_hash": mask_email(to_email)})
            return False

        msg = EmailMessage()
        msg["From"] = self.config.smtp_from_email
        msg["To"] = to_email
        msg["Subject"] = subject
        msg.set_content(body_html, subtype="html")

        # STARTTLS on 587, implicit TLS on 465.
        start_tls = bool(self.config.smtp_tls) and int(self.config.smtp_port) == 587
        use_tls = bool(self.config.smtp_tls) and int(self.config.smtp_port) == 465
        try:
            await aiosmtplib.send(
                msg,
                hostname=self.config.smtp_host,
                port=self.config.smtp_port,
                username=self.config.smtp_user or None,
                password=self.config.smtp_password or None,
                start_tls=start_tls,
                use_tls=use_tls,
            )
        except aiosmtplib.SMTPException as exc:
            raise GatewayError("smtp_failed") from exc
        logger.info("mailer.sent", extra={"email_hash": mask_email(to_email)})
        return True
