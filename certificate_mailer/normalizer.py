"""
Turns raw spreadsheet rows into canonical ParticipantRecord values.

Each logical field accepts several column spellings. The alias lists are
ordered and the first present, non-null column wins.
"""

from typing import Any, Iterable, List, Mapping, Optional, Sequence

from .records import ParticipantRecord

NAME_ALIASES = ("name", "Name", "NAME", "Participant Name", "Full Name")
EMAIL_ALIASES = ("email", "Email", "EMAIL", "Email Address")
EVENT_ALIASES = ("event", "Event", "EVENT", "Event Name")
PHONE_ALIASES = ("phone", "Phone", "PHONE", "Mobile", "Contact")
ORGANIZATION_ALIASES = ("organization", "Organization", "ORGANIZATION", "Company", "Institution")


def get_column_value(row: Mapping[str, Any], aliases: Sequence[str]) -> Optional[str]:
    """Return the first non-null value among ``aliases`` as a string, or None."""
    for alias in aliases:
        value = row.get(alias)
        if value is not None:
            return str(value)
    return None


def format_name(name: str) -> str:
    """Title-case a name: each whitespace-separated token capitalized, rest lowercased."""
    if not name:
        return ""
    return " ".join(token[:1].upper() + token[1:].lower() for token in name.split())


def normalize_row(row: Mapping[str, Any], default_event: str = "") -> ParticipantRecord:
    name = get_column_value(row, NAME_ALIASES)
    email = get_column_value(row, EMAIL_ALIASES)
    event = get_column_value(row, EVENT_ALIASES)
    phone = get_column_value(row, PHONE_ALIASES)
    organization = get_column_value(row, ORGANIZATION_ALIASES)

    return ParticipantRecord(
        name=format_name(name) if name else "",
        email=email.strip().lower() if email else "",
        event=(event.strip() if event and event.strip() else default_event),
        phone=phone.strip() if phone else "",
        organization=organization.strip() if organization else "",
    )


def normalize_rows(rows: Iterable[Mapping[str, Any]], default_event: str = "") -> List[ParticipantRecord]:
    return [normalize_row(row, default_event) for row in rows]
