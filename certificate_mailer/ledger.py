"""
Delivery ledger and verification store.

DeliveryLog is an append-only CSV file, one line per delivery outcome.
VerificationStore is a JSON document keyed by certificate ID that the
verification lookup reads back.
"""

import csv
import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional

from .errors import LedgerError
from .events import EventBus, PipelineEvent
from .records import CertificateAssignment, VerificationRecord

logger = logging.getLogger(__name__)

DELIVERY_LOG_HEADER = ["Timestamp", "Name", "Email", "CertificateID", "Status", "Error"]
STATUS_SUCCESS = "SUCCESS"
STATUS_FAILED = "FAILED"


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def sanitize_error(error: Optional[object]) -> str:
    """Flatten an error message so it cannot break the CSV line."""
    if error is None:
        return ""
    message = str(error)
    return message.replace(",", ";").replace("\r", " ").replace("\n", " ").strip()


class DeliveryLog:
    """Append-only CSV audit log. The header is written with the first line."""

    def __init__(self, path: str, clock: Callable[[], str] = utc_timestamp):
        self.path = Path(path)
        self.clock = clock

    def append(self, assignment: CertificateAssignment, status: str, error: Optional[object] = None) -> Dict[str, str]:
        entry = {
            "Timestamp": self.clock(),
            "Name": assignment.name,
            "Email": assignment.email,
            "CertificateID": assignment.certificate_id,
            "Status": status,
            "Error": sanitize_error(error),
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        write_header = not self.path.exists() or self.path.stat().st_size == 0
        with open(self.path, "a", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=DELIVERY_LOG_HEADER, lineterminator="\n")
            if write_header:
                writer.writeheader()
            writer.writerow(entry)
        return entry

    def read_entries(self) -> List[Dict[str, str]]:
        if not self.path.exists():
            return []
        with open(self.path, newline="", encoding="utf-8") as f:
            return list(csv.DictReader(f))


class VerificationStore:
    """Certificate records keyed by ID, persisted as one JSON object."""

    def __init__(self, path: str):
        self.path = Path(path)

    def _read_data(self) -> Dict[str, Dict[str, str]]:
        if not self.path.exists():
            return {}
        try:
            content = self.path.read_text(encoding="utf-8")
        except OSError as e:
            logger.error(f"Failed to read verification store {self.path}: {e}")
            raise LedgerError(f"Failed to read verification store {self.path}: {e}") from e
        if not content.strip():
            return {}
        try:
            data = json.loads(content)
        except ValueError as e:
            logger.error(f"Verification store {self.path} is not valid JSON: {e}")
            raise LedgerError(f"Verification store {self.path} is corrupt: {e}") from e
        if not isinstance(data, dict):
            raise LedgerError(f"Verification store {self.path} must contain a JSON object")
        return data

    def check(self) -> None:
        """Raise LedgerError if the store exists but cannot be used."""
        self._read_data()

    def _write_data(self, data: Dict[str, Dict[str, str]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), prefix=".certificates-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def upsert(self, record: VerificationRecord) -> None:
        data = self._read_data()
        data[record.certificate_id] = record.to_dict()
        self._write_data(data)

    def get(self, certificate_id: str) -> Optional[VerificationRecord]:
        entry = self._read_data().get(certificate_id)
        return VerificationRecord.from_dict(entry) if entry else None


class Ledger:
    """
    Delivery log plus verification store.

    Args:
        delivery_log: Audit log for delivery outcomes
        verification_store: Store read by the verification lookup
        events: Optional bus that receives a structured event per write
        clock: Timestamp source for issuedAt
    """

    def __init__(
        self,
        delivery_log: DeliveryLog,
        verification_store: VerificationStore,
        events: Optional[EventBus] = None,
        clock: Callable[[], str] = utc_timestamp,
    ):
        self.delivery_log = delivery_log
        self.verification_store = verification_store
        self.events = events or EventBus()
        self.clock = clock

    @classmethod
    def for_directories(cls, log_dir: str, store_path: str, events: Optional[EventBus] = None) -> "Ledger":
        """Ledger writing to <log_dir>/delivery-YYYY-MM-DD.csv and store_path."""
        log_path = os.path.join(log_dir, f"delivery-{datetime.now().strftime('%Y-%m-%d')}.csv")
        return cls(DeliveryLog(log_path), VerificationStore(store_path), events=events)

    @staticmethod
    def latest_delivery_log(log_dir: str) -> Optional[DeliveryLog]:
        directory = Path(log_dir)
        if not directory.is_dir():
            return None
        logs = sorted(directory.glob("delivery-*.csv"))
        return DeliveryLog(str(logs[-1])) if logs else None

    def record_delivery(self, assignment: CertificateAssignment, status: str, error: Optional[object] = None) -> None:
        entry = self.delivery_log.append(assignment, status, error)
        level = logging.INFO if status == STATUS_SUCCESS else logging.ERROR
        self.events.publish(PipelineEvent(
            kind="delivery",
            message=f"{status}: {assignment.name} <{assignment.email}> {assignment.certificate_id}",
            level=level,
            data=entry,
        ))

    def save_verification(self, assignment: CertificateAssignment) -> VerificationRecord:
        record = VerificationRecord(
            name=assignment.name,
            event=assignment.event,
            certificate_id=assignment.certificate_id,
            issued_at=self.clock(),
            status="VALID",
        )
        self.verification_store.upsert(record)
        logger.info(f"Saved verification data for {assignment.certificate_id}")
        self.events.publish(PipelineEvent(
            kind="verification",
            message=f"Saved verification data for {assignment.certificate_id}",
            data=record.to_dict(),
        ))
        return record

    def check_verification_store(self) -> None:
        self.verification_store.check()

    def get_verification(self, certificate_id: str) -> Optional[VerificationRecord]:
        return self.verification_store.get(certificate_id)
