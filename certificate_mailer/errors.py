"""
Exception hierarchy for the certificate mailer.

Batch-fatal errors (SourceReadError, NoValidRecordsError, TemplateNotFoundError,
TransportVerificationError, BatchAlreadyRunningError) unwind to the caller of
the pipeline. Participant-scoped errors (RenderError, DeliveryError) are caught
per record and turned into a failed delivery outcome.
"""

from typing import List, Optional


class CertificateMailerError(Exception):
    """Base exception for certificate mailer errors."""
    pass


class ConfigurationError(CertificateMailerError):
    """Raised when there are configuration issues."""
    pass


class SourceReadError(CertificateMailerError):
    """Raised when the participant file is missing, unreadable or empty."""
    pass


class ValidationError(CertificateMailerError):
    """A single input row that failed validation.

    Collected by the validator rather than raised.
    """

    def __init__(self, row: int, name: str, email: str, rules: List[str]):
        self.row = row
        self.name = name
        self.email = email
        self.rules = list(rules)
        super().__init__(f"Row {row} ({name or 'N/A'}): {', '.join(self.rules)}")


class DuplicateSkipped(CertificateMailerError):
    """Informational: a later record repeated an email already in the batch."""

    def __init__(self, name: str, email: str):
        self.name = name
        self.email = email
        super().__init__(f"Duplicate: {name} ({email})")


class NoValidRecordsError(CertificateMailerError):
    """Raised when validation leaves nobody to issue a certificate to."""
    pass


class TemplateNotFoundError(CertificateMailerError):
    """Raised when the certificate template is missing or cannot be decoded."""
    pass


class RenderError(CertificateMailerError):
    """Raised when a certificate document cannot be produced for one participant."""
    pass


class LedgerError(CertificateMailerError):
    """Raised when the verification store cannot be read or parsed."""
    pass


class TransportError(CertificateMailerError):
    """Raised by a mail transport when a message cannot be handed over."""
    pass


class TransportVerificationError(TransportError):
    """Raised when the connectivity precheck of the mail transport fails."""
    pass


class DeliveryError(CertificateMailerError):
    """Raised when a single send attempt fails."""

    def __init__(self, message: str, attempt: Optional[int] = None):
        self.attempt = attempt
        super().__init__(message)


class BatchAlreadyRunningError(CertificateMailerError):
    """Raised when a batch is started while another one is still running."""
    pass
