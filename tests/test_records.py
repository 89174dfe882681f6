import pandas as pd

from practice_analytics.records import (
    BILLING_RECORD, PROCEDURE_RECORD, SCHEMAS, coerce_records, empty_records,
    parse_amounts, parse_dates,
)


def test_parse_dates_handles_blank_and_garbage():
    parsed = parse_dates(pd.Series(["2024-01-15", "", "not a date", "2024-01-15T13:45:00Z"]))
    assert parsed.iloc[0] == pd.Timestamp("2024-01-15")
    assert pd.isna(parsed.iloc[1])
    assert pd.isna(parsed.iloc[2])
    # Time of day is dropped, only the calendar date matters
    assert parsed.iloc[3] == pd.Timestamp("2024-01-15")


def test_parse_amounts_treats_unparseable_as_zero():
    amounts = parse_amounts(pd.Series(["1500.50", "", "R100", None]))
    assert amounts.tolist() == [1500.5, 0.0, 0.0, 0.0]


def test_parse_amounts_treats_non_finite_as_zero():
    amounts = parse_amounts(pd.Series(["inf", "-Infinity", "1e400", "250"]))
    assert amounts.tolist() == [0.0, 0.0, 0.0, 250.0]


def test_missing_columns_are_added_blank():
    raw = pd.DataFrame([{"Procedure Record ID": "PR1"}], dtype=object)
    result = coerce_records(raw, BILLING_RECORD)
    for column in BILLING_RECORD.columns:
        assert column in result.records.columns
    assert result.records.loc[0, "Billed Amount"] == 0.0
    assert pd.isna(result.records.loc[0, "Date Paid - Patient"])


def test_negative_amounts_are_clamped_and_counted():
    raw = pd.DataFrame([
        {"Procedure Record ID": "PR1", "Billed Amount": "-50", "Outstanding Amount": "10"},
        {"Procedure Record ID": "PR2", "Billed Amount": "200", "Outstanding Amount": "-1"},
    ], dtype=object)
    result = coerce_records(raw, BILLING_RECORD)
    assert result.records["Billed Amount"].tolist() == [0.0, 200.0]
    assert result.records["Outstanding Amount"].tolist() == [10.0, 0.0]
    assert result.clamped == {"Billed Amount": 1, "Outstanding Amount": 1}


def test_rows_missing_required_fields_are_quarantined():
    raw = pd.DataFrame([
        {"Procedure Record ID": "PR1", "Provider ID": "DR1"},
        {"Procedure Record ID": "  ", "Provider ID": "DR2"},
    ], dtype=object)
    result = coerce_records(raw, PROCEDURE_RECORD)
    assert result.records["Procedure Record ID"].tolist() == ["PR1"]
    assert len(result.quarantined) == 1
    assert result.quarantined.loc[0, "dq_flag"] == "MISSING_FIELD:Procedure Record ID"


def test_duplicate_identities_keep_first_row():
    raw = pd.DataFrame([
        {"Provider ID": "DR1", "Provider Name": "First"},
        {"Provider ID": "DR1", "Provider Name": "Second"},
        {"Provider ID": "DR2", "Provider Name": "Other"},
    ], dtype=object)
    result = coerce_records(raw, SCHEMAS["doctors"])
    assert result.records["Provider Name"].tolist() == ["First", "Other"]
    assert result.duplicates == 1


def test_billing_rows_without_procedure_reference_are_kept():
    raw = pd.DataFrame([
        {"Procedure Record ID": "", "Billed Amount": "100"},
        {"Procedure Record ID": "", "Billed Amount": "200"},
    ], dtype=object)
    result = coerce_records(raw, BILLING_RECORD)
    assert len(result.records) == 2
    assert result.duplicates == 0


def test_text_is_trimmed():
    raw = pd.DataFrame([{"Patient ID": " P1 ", "Patient First Name": " Ann"}], dtype=object)
    records = coerce_records(raw, SCHEMAS["patients"]).records
    assert records.loc[0, "Patient ID"] == "P1"
    assert records.loc[0, "Patient First Name"] == "Ann"
    assert records.loc[0, "Patient Last Name"] == ""


def test_empty_records_has_typed_columns():
    frame = empty_records(BILLING_RECORD)
    assert frame.empty
    assert pd.api.types.is_float_dtype(frame["Billed Amount"])
    assert pd.api.types.is_datetime64_any_dtype(frame["Date Paid - Patient"])
