import pandas as pd
import pytest

from practice_analytics.filters import (
    InvalidFilterError, attach_location_names, attach_patient_names, attach_procedures,
    attach_provider_names, filter_by_category, filter_by_date_range, filter_by_values,
    join, resolve_window,
)
from tests.conftest import TODAY, typed


def test_resolve_window_trailing_days():
    start, end = resolve_window(30, today=TODAY)
    assert start == pd.Timestamp("2024-05-31")
    assert end == pd.Timestamp("2024-06-30")
    assert resolve_window("30", today=TODAY) == (start, end)
    assert resolve_window("last30days", today=TODAY) == (start, end)


def test_resolve_window_year_to_date():
    assert resolve_window("ytd", today=TODAY) == (pd.Timestamp("2024-01-01"), pd.Timestamp(TODAY))


def test_resolve_window_explicit_bounds():
    assert resolve_window(("2024-01-01", None)) == (pd.Timestamp("2024-01-01"), None)


@pytest.mark.parametrize("window", ["fortnight", -5, True, ("2024-13-45", None), 1.5])
def test_resolve_window_rejects_nonsense(window):
    with pytest.raises(InvalidFilterError):
        resolve_window(window, today=TODAY)


def test_date_range_bounds_are_inclusive(procedures):
    rows = filter_by_date_range(procedures, "Date of Service", ("2024-06-02", "2024-06-04"))
    assert rows["Procedure Record ID"].tolist() == ["PR3", "PR4", "PR5"]


def test_missing_dates_never_pass():
    records = typed("procedures", [
        {"Procedure Record ID": "PR1", "Date of Service": "2024-06-01"},
        {"Procedure Record ID": "PR2", "Date of Service": ""},
    ])
    assert filter_by_date_range(records, "Date of Service", (None, None))["Procedure Record ID"].tolist() == ["PR1"]


def test_filter_order_does_not_matter(procedures):
    by_date_then_location = filter_by_category(
        filter_by_date_range(procedures, "Date of Service", 27, today=TODAY), "Location ID", "L2")
    by_location_then_date = filter_by_date_range(
        filter_by_category(procedures, "Location ID", "L2"), "Date of Service", 27, today=TODAY)
    pd.testing.assert_frame_equal(by_date_then_location, by_location_then_date)
    assert by_date_then_location["Procedure Record ID"].tolist() == ["PR2", "PR5", "PR6"]


@pytest.mark.parametrize("selected", ["all", "ALL", "", None])
def test_all_selection_passes_everything(procedures, selected):
    assert len(filter_by_category(procedures, "Location ID", selected)) == len(procedures)


def test_filter_by_values(procedures):
    rows = filter_by_values(procedures, "Provider ID", ["DR2", "DR3"])
    assert rows["Procedure Record ID"].tolist() == ["PR3", "PR4", "PR5", "PR6"]


def test_join_miss_gets_placeholder_and_keeps_row(doctors):
    procedures = typed("procedures", [
        {"Procedure Record ID": "PR1", "Provider ID": "DR1"},
        {"Procedure Record ID": "PR2", "Provider ID": "DR404"},
    ])
    joined = attach_provider_names(procedures, doctors)
    assert joined["Provider Name"].tolist() == ["Dr. Subject", "Not Assigned"]
    assert len(joined) == len(procedures)


def test_join_never_multiplies_left_rows():
    left = pd.DataFrame({"key": ["a", "b"], "value": [1, 2]})
    right = pd.DataFrame({"key": ["a", "a"], "label": ["first", "second"]})
    joined = join(left, right, "key", "key", defaults={"label": "none"})
    assert joined["label"].tolist() == ["first", "none"]
    assert joined.index.tolist() == left.index.tolist()


def test_patient_and_location_names(procedures, patients, hospitals):
    joined = attach_location_names(attach_patient_names(procedures, patients), hospitals)
    assert joined.loc[0, "Patient Name"] == "First1 Last1"
    assert joined.loc[0, "Location Name"] == "North Clinic"


def test_attach_procedures_fills_unknown_procedure(billing, procedures):
    orphan = typed("billing", [{"Procedure Record ID": "PR404", "Billed Amount": "10"}])
    joined = attach_procedures(pd.concat([billing, orphan], ignore_index=True), procedures)
    assert joined.loc[0, "Provider ID"] == "DR1"
    assert joined.iloc[-1]["Procedure Description"] == "Unknown Procedure"
    assert joined.iloc[-1]["Provider ID"] == ""
