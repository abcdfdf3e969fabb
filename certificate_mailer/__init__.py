"""
Certificate mailer: issue personalized participation certificates and deliver them by email.
"""

from .config import BatchConfig, DeliveryMode, LayoutConfig, load_config
from .errors import (
    BatchAlreadyRunningError,
    CertificateMailerError,
    ConfigurationError,
    DeliveryError,
    DuplicateSkipped,
    LedgerError,
    NoValidRecordsError,
    RenderError,
    SourceReadError,
    TemplateNotFoundError,
    TransportError,
    TransportVerificationError,
    ValidationError,
)
from .ledger import Ledger
from .pipeline import CertificatePipeline
from .records import BatchResult, BatchStatus, VerificationRecord

__version__ = "1.0.0"

__all__ = [
    "BatchAlreadyRunningError",
    "BatchConfig",
    "BatchResult",
    "BatchStatus",
    "CertificateMailerError",
    "CertificatePipeline",
    "ConfigurationError",
    "DeliveryError",
    "DeliveryMode",
    "DuplicateSkipped",
    "LayoutConfig",
    "Ledger",
    "LedgerError",
    "NoValidRecordsError",
    "RenderError",
    "SourceReadError",
    "TemplateNotFoundError",
    "TransportError",
    "TransportVerificationError",
    "ValidationError",
    "VerificationRecord",
    "load_config",
]
