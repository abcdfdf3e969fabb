import pandas as pd
import pytest

from certificate_mailer.errors import SourceReadError
from certificate_mailer.excel_reader import read_rows, validate_file_structure


def test_reads_csv_rows_in_order(tmp_path):
    path = tmp_path / "participants.csv"
    path.write_text("Name,Email,Phone\njane doe,jane@x.com,\nJohn Smith,john@example.org,555-0100\n", encoding="utf-8")

    rows = read_rows(str(path))

    assert rows == [
        {"Name": "jane doe", "Email": "jane@x.com", "Phone": None},
        {"Name": "John Smith", "Email": "john@example.org", "Phone": "555-0100"},
    ]


def test_reads_first_excel_sheet_as_text(tmp_path):
    path = tmp_path / "participants.xlsx"
    with pd.ExcelWriter(path) as writer:
        pd.DataFrame({"Full Name": ["Ada Lovelace"], "Email Address": ["ada@example.net"], "Phone": [5550100]}).to_excel(
            writer, sheet_name="Registrations", index=False
        )
        pd.DataFrame({"Name": ["Ignored"]}).to_excel(writer, sheet_name="Other", index=False)

    rows = read_rows(str(path))

    assert rows == [{"Full Name": "Ada Lovelace", "Email Address": "ada@example.net", "Phone": "5550100"}]


def test_fully_empty_rows_are_dropped(tmp_path):
    path = tmp_path / "participants.csv"
    path.write_text("Name,Email\njane,jane@x.com\n,\nada,ada@example.net\n", encoding="utf-8")
    assert [row["Name"] for row in read_rows(str(path))] == ["jane", "ada"]


def test_missing_file(tmp_path):
    with pytest.raises(SourceReadError, match="not found"):
        read_rows(str(tmp_path / "nope.xlsx"))


def test_empty_file(tmp_path):
    path = tmp_path / "participants.csv"
    path.write_text("", encoding="utf-8")
    with pytest.raises(SourceReadError, match="empty"):
        read_rows(str(path))


def test_header_only_file_is_empty(tmp_path):
    path = tmp_path / "participants.csv"
    path.write_text("Name,Email\n", encoding="utf-8")
    with pytest.raises(SourceReadError, match="empty"):
        read_rows(str(path))


def test_unsupported_extension(tmp_path):
    path = tmp_path / "participants.txt"
    path.write_text("Name,Email\n", encoding="utf-8")
    with pytest.raises(SourceReadError, match="Unsupported"):
        read_rows(str(path))


def test_validate_file_structure(tmp_path):
    good = tmp_path / "good.csv"
    good.write_text("Participant Name,Email Address\njane,jane@x.com\n", encoding="utf-8")
    bad = tmp_path / "bad.csv"
    bad.write_text("First,Last\njane,doe\n", encoding="utf-8")

    assert validate_file_structure(str(good)) == (True, "File structure is valid")
    ok, message = validate_file_structure(str(bad))
    assert not ok
    assert "Email" in message
    assert validate_file_structure(str(tmp_path / "missing.csv"))[0] is False
