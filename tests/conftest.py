from datetime import date

import pytest
from PIL import Image

from certificate_mailer.config import BatchConfig, DeliveryMode, EmailSettings, FieldLayout, LayoutConfig, QrLayout
from certificate_mailer.errors import TransportError, TransportVerificationError
from certificate_mailer.ledger import DeliveryLog, Ledger, VerificationStore

TEMPLATE_SIZE = (800, 600)


class FakeTransport:
    """Records every message; fails the first ``failures`` sends."""

    def __init__(self, failures=0, verify_error=None):
        self.failures = failures
        self.verify_error = verify_error
        self.sent = []
        self.attempts = 0
        self.verify_calls = 0

    def verify_connection(self):
        self.verify_calls += 1
        if self.verify_error:
            raise TransportVerificationError(self.verify_error)

    def send(self, message):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise TransportError(f"421 try again later (attempt {self.attempts})")
        self.sent.append(message)
        return f"<msg-{self.attempts}@example.com>"


class RecordingSleep:
    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)


@pytest.fixture
def template_path(tmp_path):
    path = tmp_path / "template.png"
    Image.new("RGB", TEMPLATE_SIZE, "white").save(path)
    return str(path)


@pytest.fixture
def layout():
    return LayoutConfig(
        name=FieldLayout(400, 250, 40, "#1a1a1a", "Arial", True),
        event=FieldLayout(400, 330, 24, "#4a4a4a", "Arial", True),
        certificate_id=FieldLayout(150, 550, 14, "#888888", "Arial", True),
        qr=QrLayout(650, 450, 100, False),
    )


@pytest.fixture
def make_config(tmp_path, template_path, layout):
    def _make(**overrides):
        values = dict(
            mode=DeliveryMode.PRODUCTION,
            input_path=str(tmp_path / "participants.csv"),
            template_path=template_path,
            font_path=str(tmp_path / "missing-font.ttf"),
            output_dir=str(tmp_path / "output" / "generated-certificates"),
            log_dir=str(tmp_path / "logs"),
            verification_store_path=str(tmp_path / "data" / "certificates.json"),
            event_name="Spring Hackathon",
            certificate_id_prefix="CERT",
            issue_date=date(2026, 2, 1),
            layout=layout,
            email=EmailSettings(user="certs@example.com", admin_email="operator@example.com"),
        )
        values.update(overrides)
        return BatchConfig(**values)

    return _make


@pytest.fixture
def ledger(tmp_path):
    return Ledger(
        DeliveryLog(str(tmp_path / "logs" / "delivery-test.csv"), clock=lambda: "2026-02-01T10:00:00.000Z"),
        VerificationStore(str(tmp_path / "data" / "certificates.json")),
        clock=lambda: "2026-02-01T10:00:00.000Z",
    )


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def rows():
    return [
        {"Name": "jane doe", "Email": "JANE@X.com"},
        {"Full Name": "JOHN SMITH", "Email Address": " john@example.org "},
        {"name": "ada lovelace", "email": "ada@example.net", "Event": "Winter Workshop"},
    ]
