"""SMTP transport."""

import contextlib
import logging
import mimetypes
import smtplib
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from pathlib import Path

from ..models import DeliveryResult, OutboundMessage, TransportConfig
from .base import BaseTransport

logger = logging.getLogger(__name__)

IMPLICIT_TLS_PORT = 465


class SmtpTransport(BaseTransport):
    """Delivers each message over a fresh SMTP connection."""

    def deliver(self, message: OutboundMessage, config: TransportConfig) -> DeliveryResult:
        """Send a message via SMTP.

        Args:
            message: Message to deliver
            config: SMTP connection settings

        Returns:
            DeliveryResult; connection, protocol and file errors become failures
        """
        try:
            mime_message = self.build_mime_message(message)
            server = self._connect(config)
            try:
                refused = server.send_message(
                    mime_message,
                    from_addr=message.sender_email,
                    to_addrs=message.all_recipients,
                )
            finally:
                with contextlib.suppress(smtplib.SMTPException, OSError):
                    server.quit()
        except (smtplib.SMTPException, OSError) as e:
            return DeliveryResult.failure(f"{type(e).__name__}: {e}")

        if refused:
            logger.warning("SMTP server refused some recipients: %s", sorted(refused))
        return DeliveryResult.success()

    def validate_connection(self, config: TransportConfig) -> bool:
        """Open and close a connection, logging in when credentials are set."""
        try:
            server = self._connect(config)
            with contextlib.suppress(smtplib.SMTPException, OSError):
                server.quit()
            return True
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"SMTP connection validation failed: {e}")
            return False

    def send_test_message(self, config: TransportConfig) -> DeliveryResult:
        """Send a short test message to the configured sender address."""
        address = config.from_email or config.username
        if not address:
            return DeliveryResult.failure("No sender address configured")
        message = OutboundMessage(
            sender_email=address,
            sender_name=config.from_name,
            subject="Bulk Mail Dispatch - Test Connection",
            body=(
                "This is a test email from Bulk Mail Dispatch.\n\n"
                "If you receive this, your SMTP settings are correct."
            ),
            to=[address],
        )
        return self.deliver(message, config)

    def build_mime_message(self, message: OutboundMessage) -> EmailMessage:
        """Create the MIME message; Bcc addresses are left out of the headers."""
        mime_message = EmailMessage()
        mime_message["From"] = formataddr((message.sender_name or "", message.sender_email))
        if message.to:
            mime_message["To"] = ", ".join(message.to)
        if message.cc:
            mime_message["Cc"] = ", ".join(message.cc)
        mime_message["Subject"] = message.subject
        mime_message["Message-ID"] = make_msgid()
        mime_message.set_content(message.body, subtype="plain", charset="utf-8")

        for attachment in message.attachments:
            path = Path(attachment)
            if not path.is_file():
                logger.warning("Attachment %s not found; sending without it", path)
                continue
            mime_type, _ = mimetypes.guess_type(path.name)
            if mime_type is None:
                maintype, subtype = "application", "octet-stream"
            else:
                maintype, subtype = mime_type.split("/", 1)
            with path.open("rb") as handle:
                mime_message.add_attachment(
                    handle.read(),
                    maintype=maintype,
                    subtype=subtype,
                    filename=path.name,
                )

        return mime_message

    def _connect(self, config: TransportConfig) -> smtplib.SMTP:
        implicit_tls = config.use_ssl and config.port == IMPLICIT_TLS_PORT
        if implicit_tls:
            server = smtplib.SMTP_SSL(config.host, config.port, timeout=config.timeout_seconds)
        else:
            server = smtplib.SMTP(config.host, config.port, timeout=config.timeout_seconds)

        try:
            if config.use_ssl and not implicit_tls:
                server.starttls()
            if config.username and config.password:
                server.login(config.username, config.password)
        except (smtplib.SMTPException, OSError):
            with contextlib.suppress(smtplib.SMTPException, OSError):
                server.quit()
            raise
        return server
