"""
Certificate identifier assignment.

Identifiers look like ``CERT-20260201-0001``. They depend only on the prefix,
the issue date and the record's 1-based position in the final batch order, so
re-running the same input on the same date reproduces the same identifiers.
"""

import re
from datetime import date
from typing import List, Sequence

from .records import CertificateAssignment, ParticipantRecord


def assign(prefix: str, index: int, issued_on: date) -> str:
    """
    Build the identifier for the record at ``index``.

    Args:
        prefix: Identifier prefix (e.g. "CERT")
        index: 1-based position in the deduplicated, validated batch
        issued_on: Issue date

    Returns:
        "{prefix}-{YYYYMMDD}-{index:04d}"
    """
    if index < 1:
        raise ValueError(f"Certificate index must be 1-based, got {index}")
    return f"{prefix}-{issued_on.strftime('%Y%m%d')}-{index:04d}"


def assign_all(
    prefix: str, records: Sequence[ParticipantRecord], issued_on: date
) -> List[CertificateAssignment]:
    return [
        CertificateAssignment(certificate_id=assign(prefix, position, issued_on), participant=record)
        for position, record in enumerate(records, start=1)
    ]


def sanitize_filename(filename: str) -> str:
    cleaned = re.sub(r"[^a-z0-9_\-.]", "_", filename, flags=re.IGNORECASE)
    return re.sub(r"_+", "_", cleaned).lower()


def certificate_filename(assignment: CertificateAssignment) -> str:
    return f"certificate_{assignment.certificate_id}_{sanitize_filename(assignment.name)}.pdf"
