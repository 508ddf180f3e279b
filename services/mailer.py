# services/mailer.py
"""
SMTP mail transport
Builds RFC-compliant multipart messages from rendered OutboundEmail documents
and submits them with aiosmtplib. Configured once at startup and shared
read-only across requests.
"""

import asyncio
import uuid
import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, formatdate
from typing import Any, Dict

import aiosmtplib

from config.settings import Settings
from core.exceptions import MailTransportError
from core.models import OutboundEmail
from core.template_engine import header_text, html_to_text

logger = logging.getLogger(__name__)

IMPLICIT_TLS_PORT = 465


class MailTransport:
    """Interface for anything that can deliver an OutboundEmail"""

    async def send(self, email: OutboundEmail) -> Dict[str, Any]:
        raise NotImplementedError

    async def verify(self) -> bool:
        raise NotImplementedError


class SMTPMailTransport(MailTransport):
    """
    aiosmtplib-backed transport: implicit TLS on port 465, STARTTLS
    (negotiated by aiosmtplib) on other ports, login when credentials are set
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.host = settings.smtp_host
        self.port = settings.smtp_port
        self.timeout = settings.smtp_timeout
        self.username = settings.mail_user
        self.password = settings.mail_password
        self.from_name = settings.brand.name

    def _client(self) -> aiosmtplib.SMTP:
        return aiosmtplib.SMTP(
            hostname=self.host,
            port=self.port,
            timeout=self.timeout,
            use_tls=self.port == IMPLICIT_TLS_PORT,
            validate_certs=self.settings.smtp_validate_certs,
        )

    def build_message(self, email: OutboundEmail) -> MIMEMultipart:
        """
        Create a multipart/alternative message with text and HTML parts
        """
        msg = MIMEMultipart('alternative')

        msg['Subject'] = header_text(email.subject)
        msg['From'] = formataddr((self.from_name, email.sender))
        msg['To'] = email.to
        msg['Date'] = formatdate(localtime=True)

        domain = email.sender.rsplit('@', 1)[-1] if '@' in email.sender else 'localhost'
        msg['Message-ID'] = f"<{uuid.uuid4()}@{domain}>"

        if email.reply_to:
            msg['Reply-To'] = email.reply_to

        msg['X-Mailer'] = f"{self.settings.brand.name} Contact API"

        text = html_to_text(email.html)
        if text:
            msg.attach(MIMEText(text, 'plain', 'utf-8'))
        msg.attach(MIMEText(email.html, 'html', 'utf-8'))

        return msg

    async def send(self, email: OutboundEmail) -> Dict[str, Any]:
        """
        Submit one email

        Returns:
            Dict with the server response and Message-ID

        Raises:
            MailTransportError: on any connection, authentication or SMTP failure
        """
        msg = self.build_message(email)
        smtp = self._client()

        try:
            await smtp.connect()

            if self.username and self.password:
                await smtp.login(self.username, self.password)

            errors, response = await smtp.send_message(msg)

            await smtp.quit()
        except (aiosmtplib.SMTPException, OSError, asyncio.TimeoutError) as e:
            logger.error(f"SMTP submission to {email.to} failed: {e}")
            if smtp.is_connected:
                smtp.close()
            raise MailTransportError('Failed to send email', internal_detail=str(e)) from e

        if errors:
            detail = '; '.join(f"{addr}: {resp}" for addr, resp in errors.items())
            raise MailTransportError('Failed to send email', internal_detail=detail)

        logger.debug(f"Email {msg['Message-ID']} accepted for {email.to}")
        return {
            'response': response,
            'message_id': msg['Message-ID'],
        }

    async def verify(self) -> bool:
        """
        Readiness check: connect, EHLO and (when configured) authenticate
        """
        smtp = self._client()
        try:
            await smtp.connect()
            await smtp.ehlo()
            if self.username and self.password:
                await smtp.login(self.username, self.password)
            await smtp.quit()
        except (aiosmtplib.SMTPException, OSError, asyncio.TimeoutError) as e:
            logger.error(f"SMTP connection check against {self.host}:{self.port} failed: {e}")
            return False

        logger.info(f"SMTP server {self.host}:{self.port} is ready to send emails")
        return True
