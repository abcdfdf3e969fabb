import json
from datetime import date

import pytest

from certificate_mailer.errors import LedgerError
from certificate_mailer.events import EventBus, LogBuffer
from certificate_mailer.identifiers import assign_all
from certificate_mailer.ledger import (
    DELIVERY_LOG_HEADER,
    DeliveryLog,
    Ledger,
    VerificationStore,
    sanitize_error,
)
from certificate_mailer.records import ParticipantRecord


@pytest.fixture
def assignments():
    records = [
        ParticipantRecord(name="Jane Doe", email="jane@x.com", event="Spring Hackathon"),
        ParticipantRecord(name="John Smith", email="john@example.org", event="Spring Hackathon"),
    ]
    return assign_all("CERT", records, date(2026, 2, 1))


def test_delivery_log_writes_header_once_and_appends(ledger, assignments):
    ledger.record_delivery(assignments[0], "SUCCESS")
    ledger.record_delivery(assignments[1], "FAILED", RuntimeError("550 mailbox unavailable, try later"))

    lines = ledger.delivery_log.path.read_text(encoding="utf-8").splitlines()
    assert lines[0] == ",".join(DELIVERY_LOG_HEADER)
    assert len(lines) == 3

    entries = ledger.delivery_log.read_entries()
    assert entries[0]["CertificateID"] == "CERT-20260201-0001"
    assert entries[0]["Status"] == "SUCCESS"
    assert entries[0]["Error"] == ""
    assert entries[1]["Status"] == "FAILED"
    assert entries[1]["Error"] == "550 mailbox unavailable; try later"


def test_delivery_log_never_rewrites_previous_lines(tmp_path, assignments):
    path = tmp_path / "delivery.csv"
    first = DeliveryLog(str(path), clock=lambda: "t1")
    first.append(assignments[0], "SUCCESS")
    before = path.read_text(encoding="utf-8")

    DeliveryLog(str(path), clock=lambda: "t2").append(assignments[1], "SUCCESS")
    after = path.read_text(encoding="utf-8")

    assert after.startswith(before)
    assert after.count("Timestamp,Name") == 1


def test_no_file_until_first_line(tmp_path):
    log = DeliveryLog(str(tmp_path / "logs" / "delivery.csv"))
    assert not log.path.exists()
    assert log.read_entries() == []


def test_sanitize_error():
    assert sanitize_error(None) == ""
    assert sanitize_error("a,b\nc") == "a;b c"


def test_save_verification_is_immediately_visible(ledger, assignments):
    ledger.save_verification(assignments[0])
    record = ledger.get_verification("CERT-20260201-0001")

    assert record.name == "Jane Doe"
    assert record.event == "Spring Hackathon"
    assert record.status == "VALID"
    assert record.issued_at == "2026-02-01T10:00:00.000Z"
    assert ledger.get_verification("CERT-20260201-9999") is None


def test_save_verification_twice_keeps_one_latest_record(tmp_path, assignments):
    store = VerificationStore(str(tmp_path / "certificates.json"))
    timestamps = iter(["2026-02-01T10:00:00.000Z", "2026-02-01T11:00:00.000Z"])
    ledger = Ledger(DeliveryLog(str(tmp_path / "d.csv")), store, clock=lambda: next(timestamps))

    ledger.save_verification(assignments[0])
    renamed = assign_all(
        "CERT", [ParticipantRecord(name="Jane Q. Doe", email="jane@x.com", event="Spring Hackathon")], date(2026, 2, 1)
    )[0]
    ledger.save_verification(renamed)

    data = json.loads(store.path.read_text(encoding="utf-8"))
    assert list(data) == ["CERT-20260201-0001"]
    assert data["CERT-20260201-0001"]["name"] == "Jane Q. Doe"
    assert data["CERT-20260201-0001"]["issuedAt"] == "2026-02-01T11:00:00.000Z"


def test_different_keys_do_not_conflict(ledger, assignments):
    for assignment in assignments:
        ledger.save_verification(assignment)

    assert ledger.get_verification("CERT-20260201-0001").name == "Jane Doe"
    assert ledger.get_verification("CERT-20260201-0002").name == "John Smith"


def test_ledger_publishes_events(tmp_path, assignments):
    bus = EventBus()
    buffer = LogBuffer()
    bus.subscribe(buffer)
    ledger = Ledger(DeliveryLog(str(tmp_path / "d.csv")), VerificationStore(str(tmp_path / "v.json")), events=bus)

    ledger.save_verification(assignments[0])
    ledger.record_delivery(assignments[0], "FAILED", "boom")

    assert [entry["type"] for entry in buffer.entries] == ["info", "error"]
    assert "CERT-20260201-0001" in buffer.lines()[1]


def test_latest_delivery_log(tmp_path, assignments):
    (tmp_path / "delivery-2026-01-31.csv").write_text("Timestamp,Name,Email,CertificateID,Status,Error\n")
    DeliveryLog(str(tmp_path / "delivery-2026-02-01.csv")).append(assignments[0], "SUCCESS")

    latest = Ledger.latest_delivery_log(str(tmp_path))
    assert latest.path.name == "delivery-2026-02-01.csv"
    assert latest.read_entries()[0]["Email"] == "jane@x.com"
    assert Ledger.latest_delivery_log(str(tmp_path / "missing")) is None


@pytest.mark.parametrize("content", ["{not json", "[1, 2, 3]"])
def test_unusable_verification_store_raises_ledger_error(tmp_path, assignments, content):
    path = tmp_path / "certificates.json"
    path.write_text(content, encoding="utf-8")
    store = VerificationStore(str(path))
    ledger = Ledger(DeliveryLog(str(tmp_path / "d.csv")), store)

    with pytest.raises(LedgerError):
        ledger.check_verification_store()
    with pytest.raises(LedgerError):
        ledger.save_verification(assignments[0])
    with pytest.raises(LedgerError):
        ledger.get_verification("CERT-20260201-0001")
    assert path.read_text(encoding="utf-8") == content
