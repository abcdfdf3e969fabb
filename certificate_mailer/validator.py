"""
Validation and de-duplication of participant records.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import List, Sequence, Tuple

from .errors import DuplicateSkipped, ValidationError
from .records import ParticipantRecord

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# Row numbers are reported as spreadsheet rows: 1-based, after the header row.
HEADER_ROW_OFFSET = 2


@dataclass
class ValidationReport:
    valid: bool
    valid_records: List[ParticipantRecord] = field(default_factory=list)
    errors: List[ValidationError] = field(default_factory=list)


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.match(email))


def validate_record(record: ParticipantRecord) -> List[str]:
    """Return the list of violated rules for one record (empty when valid)."""
    rules = []
    if not record.name or not record.name.strip():
        rules.append("Name is required")

    if not record.email or not record.email.strip():
        rules.append("Email is required")
    elif not is_valid_email(record.email.strip()):
        rules.append("Invalid email format")
    return rules


def validate_batch(records: Sequence[ParticipantRecord]) -> ValidationReport:
    """
    Partition records into valid ones and row-level validation errors.

    Args:
        records: Normalized records in file order

    Returns:
        ValidationReport; ``valid`` is True iff at least one record passed
    """
    valid_records = []
    errors = []

    for index, record in enumerate(records):
        rules = validate_record(record)
        if rules:
            errors.append(ValidationError(index + HEADER_ROW_OFFSET, record.name, record.email, rules))
        else:
            valid_records.append(record)

    if errors:
        logger.warning(f"Found {len(errors)} invalid entries in participant file")
        for error in errors:
            logger.warning(str(error))

    return ValidationReport(valid=len(valid_records) > 0, valid_records=valid_records, errors=errors)


def find_duplicates(
    records: Sequence[ParticipantRecord],
) -> Tuple[List[ParticipantRecord], List[DuplicateSkipped]]:
    """
    Split records into first occurrences and skipped duplicates.

    Emails are compared trimmed and case-insensitively; the first occurrence
    wins and the order of first appearance is kept.
    """
    seen = set()
    unique = []
    skipped = []

    for record in records:
        key = record.email.strip().lower()
        if key in seen:
            skipped.append(DuplicateSkipped(record.name, record.email))
        else:
            seen.add(key)
            unique.append(record)

    if skipped:
        logger.warning(f"Removed {len(skipped)} duplicate email(s)")
        for duplicate in skipped:
            logger.warning(str(duplicate))

    return unique, skipped


def deduplicate(records: Sequence[ParticipantRecord]) -> List[ParticipantRecord]:
    unique, _ = find_duplicates(records)
    return unique
