from certificate_mailer.normalizer import format_name, get_column_value, normalize_row, normalize_rows


def test_format_name_title_cases_each_token():
    assert format_name("  jANE   o'NEIL doe ") == "Jane O'neil Doe"
    assert format_name("") == ""


def test_first_alias_wins_in_fixed_order():
    row = {"Full Name": "second choice", "name": "first choice"}
    assert get_column_value(row, ("name", "Name", "Full Name")) == "first choice"


def test_null_values_are_skipped_for_later_aliases():
    row = {"name": None, "Full Name": "fallback"}
    record = normalize_row(row)
    assert record.name == "Fallback"


def test_normalize_row_canonicalizes_fields():
    row = {
        "Name": "jane doe",
        "Email": "  JANE@X.com ",
        "Mobile": " 555-0100 ",
        "Company": " Acme ",
    }
    record = normalize_row(row, default_event="Spring Hackathon")

    assert record.name == "Jane Doe"
    assert record.email == "jane@x.com"
    assert record.event == "Spring Hackathon"
    assert record.phone == "555-0100"
    assert record.organization == "Acme"


def test_absent_fields_become_empty_strings():
    record = normalize_row({})
    assert record.name == ""
    assert record.email == ""
    assert record.event == ""
    assert record.phone == ""
    assert record.organization == ""


def test_explicit_event_is_trimmed_not_defaulted():
    record = normalize_row({"Event Name": "  Winter Workshop "}, default_event="Spring Hackathon")
    assert record.event == "Winter Workshop"


def test_numeric_cells_are_stringified():
    record = normalize_row({"name": "bob", "email": "bob@example.com", "phone": 5550100})
    assert record.phone == "5550100"


def test_normalize_rows_keeps_order(rows):
    records = normalize_rows(rows, default_event="Spring Hackathon")
    assert [r.email for r in records] == ["jane@x.com", "john@example.org", "ada@example.net"]
