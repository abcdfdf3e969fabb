"""
Certificate delivery by email.

EmailSender sends one rendered certificate to one participant, retrying a
bounded number of times with a fixed delay between attempts. It supports the
three batch modes: production, test (all mail redirected to the operator
address) and dry-run (nothing is sent).
"""

import html
import logging
import os
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .config import DeliveryMode, EmailSettings
from .errors import ConfigurationError, DeliveryError, TransportError
from .identifiers import certificate_filename
from .records import CertificateAssignment
from .transports import MailMessage

logger = logging.getLogger(__name__)

DEFAULT_EMAIL_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <style>
    body { font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px; }
    .header { background: #203a43; color: white; padding: 30px; text-align: center; border-radius: 10px 10px 0 0; }
    .content { background: #f9f9f9; padding: 30px; border-radius: 0 0 10px 10px; }
    .certificate-id { background: #fff; padding: 15px; border-left: 4px solid #2c5364; margin: 20px 0; font-family: monospace; }
    .footer { text-align: center; margin-top: 30px; color: #666; font-size: 12px; }
  </style>
</head>
<body>
  <div class="header">
    <h1>Certificate of Participation</h1>
  </div>
  <div class="content">
    <p>Dear <strong>{{name}}</strong>,</p>
    <p>Thank you for participating in <strong>{{event}}</strong>.
       Your certificate of participation is attached to this email.</p>
    <div class="certificate-id">
      <strong>Certificate ID:</strong> {{certificateId}}
    </div>
    <p>Please retain this Certificate ID for future reference or verification.</p>
    <p>Best regards,<br><strong>{{fromName}}</strong></p>
  </div>
  <div class="footer">
    <p>This is an automated email. Please do not reply.</p>
  </div>
</body>
</html>
"""


class DeliveryState(str, Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"


@dataclass(frozen=True)
class DeliveryResult:
    state: DeliveryState
    attempts: int
    recipient: str
    error: Optional[str] = None
    message_id: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.state is DeliveryState.SENT


class EmailSender:
    """
    Delivery agent for rendered certificates.

    Args:
        transport: Object with send(MailMessage) -> str and verify_connection()
        settings: Email settings from the batch configuration
        sleep: Called with seconds between retry attempts
    """

    def __init__(self, transport, settings: EmailSettings, sleep: Callable[[float], None] = time.sleep):
        self.transport = transport
        self.settings = settings
        self.sleep = sleep
        self.email_template = self._load_email_template(settings.template_path)

    @staticmethod
    def _load_email_template(template_path: str) -> str:
        if template_path and os.path.exists(template_path):
            with open(template_path, "r", encoding="utf-8") as f:
                logger.info(f"Email template loaded from {template_path}")
                return f.read()
        if template_path:
            logger.warning(f"Email template not found at {template_path}; using default template")
        return DEFAULT_EMAIL_TEMPLATE

    def prepare_email_content(self, assignment: CertificateAssignment) -> str:
        replacements = {
            "{{name}}": assignment.name,
            "{{event}}": assignment.event,
            "{{certificateId}}": assignment.certificate_id,
            "{{fromName}}": self.settings.from_name,
        }
        content = self.email_template
        for placeholder, value in replacements.items():
            content = content.replace(placeholder, html.escape(value or ""))
        return content

    def resolve_recipient(self, assignment: CertificateAssignment, mode: DeliveryMode) -> str:
        if mode is DeliveryMode.TEST:
            return self.settings.operator_address
        return assignment.email

    def check_mode(self, mode: DeliveryMode) -> None:
        """Reject a test-mode batch that has nowhere to redirect mail to."""
        if mode is DeliveryMode.TEST and not self.settings.operator_address:
            raise ConfigurationError("Test mode needs ADMIN_EMAIL or EMAIL_USER to redirect certificates to")

    def verify_connection(self) -> None:
        self.transport.verify_connection()

    def build_message(self, assignment: CertificateAssignment, document: bytes, recipient: str) -> MailMessage:
        return MailMessage(
            sender=self.settings.user,
            from_name=self.settings.from_name,
            to=recipient,
            subject=self.settings.subject,
            html_body=self.prepare_email_content(assignment),
            attachment_name=certificate_filename(assignment),
            attachment=document,
        )

    def send_certificate(self, message: MailMessage, attempt: int) -> str:
        """
        Make a single send attempt.

        Raises:
            DeliveryError: If the transport rejects the message
        """
        try:
            message_id = self.transport.send(message)
        except TransportError as e:
            raise DeliveryError(str(e), attempt=attempt) from e
        logger.info(f"Email sent to {message.to} (ID: {message_id})")
        return message_id

    def deliver(
        self,
        assignment: CertificateAssignment,
        document: bytes,
        mode: DeliveryMode = DeliveryMode.PRODUCTION,
    ) -> DeliveryResult:
        """
        Send a certificate, retrying on failure.

        Attempts are strictly sequential, separated by the configured fixed
        delay, up to max_retries attempts in total.

        Returns:
            DeliveryResult reflecting the last attempt and the attempt count
        """
        recipient = self.resolve_recipient(assignment, mode)

        if mode is DeliveryMode.DRY_RUN:
            logger.info(f"[DRY RUN] Would send certificate to {recipient}")
            return DeliveryResult(state=DeliveryState.SENT, attempts=0, recipient=recipient)

        if mode is DeliveryMode.TEST:
            logger.info(f"[TEST MODE] Sending {assignment.email}'s certificate to operator {recipient}")

        message = self.build_message(assignment, document, recipient)
        max_retries = max(1, self.settings.max_retries)
        retry_delay = self.settings.retry_delay_ms / 1000
        last_error = None

        for attempt in range(1, max_retries + 1):
            logger.info(f"Attempt {attempt}/{max_retries} for {recipient}")
            try:
                message_id = self.send_certificate(message, attempt)
            except DeliveryError as e:
                last_error = str(e)
                logger.error(f"Attempt {attempt}/{max_retries} failed for {recipient}: {e}")
                if attempt < max_retries:
                    logger.warning(f"Retrying in {retry_delay:g} seconds...")
                    self.sleep(retry_delay)
                continue
            return DeliveryResult(
                state=DeliveryState.SENT,
                attempts=attempt,
                recipient=recipient,
                message_id=message_id,
            )

        return DeliveryResult(
            state=DeliveryState.FAILED,
            attempts=max_retries,
            recipient=recipient,
            error=last_error,
        )
