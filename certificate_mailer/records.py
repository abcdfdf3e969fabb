"""
Data records shared by the pipeline components.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class ParticipantRecord:
    """Canonical participant. Absent fields are empty strings, never None."""

    name: str
    email: str
    event: str = ""
    phone: str = ""
    organization: str = ""


@dataclass(frozen=True)
class CertificateAssignment:
    certificate_id: str
    participant: ParticipantRecord

    @property
    def name(self) -> str:
        return self.participant.name

    @property
    def email(self) -> str:
        return self.participant.email

    @property
    def event(self) -> str:
        return self.participant.event


@dataclass(frozen=True)
class DeliveryOutcome:
    participant: CertificateAssignment
    attempts: int
    success: bool
    error: Optional[str] = None


@dataclass
class BatchResult:
    total: int = 0
    success: int = 0
    failed: int = 0
    errors: List[Dict[str, str]] = field(default_factory=list)
    outcomes: List[DeliveryOutcome] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "success": self.success,
            "failed": self.failed,
            "errors": list(self.errors),
        }


@dataclass(frozen=True)
class VerificationRecord:
    name: str
    event: str
    certificate_id: str
    issued_at: str
    status: str = "VALID"

    def to_dict(self) -> Dict[str, str]:
        return {
            "name": self.name,
            "event": self.event,
            "certificateId": self.certificate_id,
            "issuedAt": self.issued_at,
            "status": self.status,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VerificationRecord":
        return cls(
            name=str(data.get("name", "")),
            event=str(data.get("event", "")),
            certificate_id=str(data.get("certificateId", "")),
            issued_at=str(data.get("issuedAt", "")),
            status=str(data.get("status", "VALID")),
        )


class PipelineState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class BatchStatus:
    """
    Mutable progress of the current batch, owned by one pipeline instance.

    Observers only ever receive copies made by snapshot().
    """

    state: PipelineState = PipelineState.IDLE
    processed: int = 0
    total: int = 0
    current_name: str = ""
    success: int = 0
    failed: int = 0
    error: Optional[str] = None

    def reset(self) -> None:
        self.state = PipelineState.IDLE
        self.processed = 0
        self.total = 0
        self.current_name = ""
        self.success = 0
        self.failed = 0
        self.error = None

    def snapshot(self) -> "BatchStatus":
        return BatchStatus(**asdict(self))

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["state"] = self.state.value
        return data
