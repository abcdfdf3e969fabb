"""
Mail transports.

A transport hands one message to the outside world and returns a message id,
or raises TransportError. verify_connection() is the once-per-batch
connectivity precheck and raises TransportVerificationError.
"""

import base64
import logging
import os
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formataddr, make_msgid

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build

from .config import EmailSettings
from .errors import ConfigurationError, TransportError, TransportVerificationError

logger = logging.getLogger(__name__)

GMAIL_SCOPES = ["https://www.googleapis.com/auth/gmail.send", "https://www.googleapis.com/auth/gmail.readonly"]


@dataclass(frozen=True)
class MailMessage:
    sender: str
    to: str
    subject: str
    html_body: str
    attachment_name: str
    attachment: bytes
    from_name: str = ""

    def to_email_message(self) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = formataddr((self.from_name, self.sender)) if self.from_name else self.sender
        msg["To"] = self.to
        msg["Subject"] = self.subject
        msg["Message-ID"] = make_msgid()
        msg.set_content("Your certificate is attached to this email.")
        msg.add_alternative(self.html_body, subtype="html")
        msg.add_attachment(
            self.attachment,
            maintype="application",
            subtype="pdf",
            filename=self.attachment_name,
        )
        return msg


class SmtpTransport:
    """Sends mail through an SMTP server (implicit TLS on 465 or when secure, STARTTLS otherwise)."""

    def __init__(self, settings: EmailSettings):
        self.host = settings.host
        self.port = settings.port
        self.secure = settings.secure or settings.port == 465
        self.user = settings.user
        self.password = settings.password
        self.timeout = settings.timeout

    def _connect(self) -> smtplib.SMTP:
        if self.secure:
            server = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout)
        else:
            server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
            server.ehlo()
            if server.has_extn("starttls"):
                server.starttls()
                server.ehlo()
        if self.user and self.password:
            server.login(self.user, self.password)
        return server

    def verify_connection(self) -> None:
        try:
            server = self._connect()
            server.quit()
        except (smtplib.SMTPException, OSError) as e:
            raise TransportVerificationError(
                f"Could not connect to SMTP server {self.host}:{self.port}: {e}"
            ) from e
        logger.info(f"Email configuration verified ({self.host}:{self.port})")

    def send(self, message: MailMessage) -> str:
        email_message = message.to_email_message()
        try:
            server = self._connect()
            try:
                server.send_message(email_message)
            finally:
                server.quit()
        except (smtplib.SMTPException, OSError) as e:
            raise TransportError(f"Failed to send email to {message.to}: {e}") from e
        return str(email_message["Message-ID"])


class GmailTransport:
    """Sends mail through the Gmail API with OAuth user credentials."""

    def __init__(self, settings: EmailSettings):
        self.token_path = settings.token_path
        self.credentials_path = settings.credentials_path
        self._service = None

    def _get_credentials(self) -> Credentials:
        creds = None
        logger.info(f"Using token path: {self.token_path}")

        if os.path.exists(self.token_path):
            creds = Credentials.from_authorized_user_file(self.token_path, GMAIL_SCOPES)
            logger.info(f"Loaded credentials from {self.token_path}")

        if not creds or not creds.valid:
            if creds and creds.expired and creds.refresh_token:
                logger.info("Refreshing expired credentials")
                creds.refresh(Request())
            else:
                logger.info("No valid credentials found, initiating OAuth flow")
                if not os.path.exists(self.credentials_path):
                    raise ConfigurationError(f"Credentials file not found at: {self.credentials_path}")
                flow = InstalledAppFlow.from_client_secrets_file(self.credentials_path, GMAIL_SCOPES)
                creds = flow.run_local_server(port=0)

            with open(self.token_path, "w") as token:
                token.write(creds.to_json())
                logger.info(f"Saved credentials to {self.token_path}")

        return creds

    def _get_service(self):
        if self._service is None:
            self._service = build("gmail", "v1", credentials=self._get_credentials(), cache_discovery=False)
        return self._service

    def verify_connection(self) -> None:
        try:
            profile = self._get_service().users().getProfile(userId="me").execute()
        except Exception as e:
            raise TransportVerificationError(f"Failed to authenticate with Gmail: {e}") from e
        logger.info(f"Email configuration verified (Gmail account {profile.get('emailAddress', 'unknown')})")

    def send(self, message: MailMessage) -> str:
        raw = base64.urlsafe_b64encode(message.to_email_message().as_bytes()).decode()
        try:
            result = self._get_service().users().messages().send(userId="me", body={"raw": raw}).execute()
        except Exception as e:
            raise TransportError(f"Failed to send email to {message.to}: {e}") from e
        return str(result.get("id", ""))


def build_transport(settings: EmailSettings):
    """Create the transport named by EMAIL_TRANSPORT."""
    if settings.transport == "smtp":
        return SmtpTransport(settings)
    if settings.transport == "gmail":
        return GmailTransport(settings)
    raise ConfigurationError(f"Unknown email transport '{settings.transport}' (expected smtp or gmail)")
