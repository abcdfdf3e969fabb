import logging
import os

import pytest

from certificate_mailer import cli


@pytest.fixture
def env(monkeypatch, tmp_path, template_path):
    participants = tmp_path / "participants.csv"
    participants.write_text("Name,Email\njane doe,JANE@X.com\njohn smith,john@example.org\n", encoding="utf-8")
    env_file = tmp_path / ".env"
    env_file.write_text("", encoding="utf-8")

    values = {
        "EXCEL_FILE_PATH": str(participants),
        "CERTIFICATE_TEMPLATE_PATH": template_path,
        "FONT_PATH": str(tmp_path / "missing-font.ttf"),
        "OUTPUT_DIR": str(tmp_path / "output" / "generated-certificates"),
        "LOG_DIR": str(tmp_path / "logs"),
        "VERIFICATION_STORE_PATH": str(tmp_path / "data" / "certificates.json"),
        "EVENT_NAME": "Spring Hackathon",
        "ISSUE_DATE": "2026-02-01",
        "EMAIL_USER": "certs@example.com",
    }
    for key in ("MODE", "LAYOUT_CONFIG_PATH", "ADMIN_EMAIL"):
        monkeypatch.delenv(key, raising=False)
    for key, value in values.items():
        monkeypatch.setenv(key, value)
    monkeypatch.setattr(cli, "configure_logging", lambda log_dir: None)
    return ["--env-file", str(env_file)]


def test_dry_run_then_verify(env, capsys, tmp_path):
    assert cli.main(env + ["run", "--dry-run"]) == 0
    out = capsys.readouterr().out
    assert "CERTIFICATE DELIVERY SUMMARY" in out
    assert "Total participants: 2" in out
    assert "Successful: 2" in out

    assert cli.main(env + ["verify", "CERT-20260201-0002"]) == 0
    out = capsys.readouterr().out
    assert "John Smith" in out
    assert "Spring Hackathon" in out
    assert "VALID" in out

    assert cli.main(env + ["logs"]) == 0
    out = capsys.readouterr().out
    assert "CERT-20260201-0001" in out
    assert "jane@x.com" in out


def test_verify_unknown_certificate(env, capsys):
    assert cli.main(env + ["verify", "CERT-20260201-9999"]) == 1
    assert "was not found" in capsys.readouterr().out


def test_logs_without_any_run(env, capsys):
    assert cli.main(env + ["logs"]) == 0
    assert "No delivery logs found" in capsys.readouterr().out


def test_check_file(env, capsys, tmp_path):
    assert cli.main(env + ["check-file", os.environ["EXCEL_FILE_PATH"]]) == 0
    assert "File structure is valid" in capsys.readouterr().out
    assert cli.main(env + ["check-file", str(tmp_path / "missing.xlsx")]) == 1


def test_preview(env, capsys, tmp_path):
    assert cli.main(env + ["preview", "--name", "Grace Hopper"]) == 0
    assert os.path.exists(tmp_path / "output" / "previews" / "certificate_PREVIEW-001_grace_hopper.pdf")


def test_batch_fatal_error_returns_failure(env, monkeypatch, tmp_path):
    monkeypatch.setenv("EXCEL_FILE_PATH", str(tmp_path / "nobody.xlsx"))
    assert cli.main(env + ["run", "--dry-run"]) == 1


def test_test_mode_without_operator_address_fails_before_sending(env, monkeypatch):
    monkeypatch.setenv("EMAIL_USER", "")
    assert cli.main(env + ["run", "--test"]) == 1


def test_mode_flags_are_exclusive(env):
    with pytest.raises(SystemExit):
        cli.main(env + ["run", "--dry-run", "--test"])


def test_configure_logging_writes_daily_file(tmp_path):
    root = logging.getLogger()
    previous = list(root.handlers)
    try:
        cli.configure_logging(str(tmp_path / "logs"))
        logging.getLogger("certificate_mailer").info("hello")
        [log_file] = os.listdir(tmp_path / "logs")
        assert log_file.startswith("app-") and log_file.endswith(".log")
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
        for handler in previous:
            root.addHandler(handler)


def test_corrupt_verification_store_is_reported_not_raised(env, capsys):
    store = os.environ["VERIFICATION_STORE_PATH"]
    os.makedirs(os.path.dirname(store), exist_ok=True)
    with open(store, "w", encoding="utf-8") as f:
        f.write("{not json")

    assert cli.main(env + ["verify", "CERT-20260201-0001"]) == 1
    assert cli.main(env + ["run", "--dry-run"]) == 1
    assert "CERTIFICATE DELIVERY SUMMARY" not in capsys.readouterr().out
