import pandas as pd
import pytest

from practice_analytics.records import SCHEMAS, coerce_records
from practice_analytics.views import PracticeData

TODAY = "2024-06-30"


def typed(name, rows):
    """Raw string rows → typed records, the way the loader builds them."""
    raw = pd.DataFrame(rows, dtype=object)
    return coerce_records(raw, SCHEMAS[name]).records


@pytest.fixture
def doctors():
    return typed("doctors", [
        {"Provider ID": "DR1", "Provider Name": "Dr. Subject"},
        {"Provider ID": "DR2", "Provider Name": "Dr. Peer Two"},
        {"Provider ID": "DR3", "Provider Name": "Dr. Peer Three"},
    ])


@pytest.fixture
def patients():
    return typed("patients", [
        {"Patient ID": f"P{i}", "Patient First Name": f"First{i}", "Patient Last Name": f"Last{i}"}
        for i in range(1, 7)
    ])


@pytest.fixture
def hospitals():
    return typed("hospitals", [
        {"Location ID": "L1", "Location Name": "North Clinic"},
        {"Location ID": "L2", "Location Name": "South Clinic"},
    ])


@pytest.fixture
def procedures():
    # DR1: 2 procedures, 2 patients.  DR2 + DR3: 4 procedures, 3 distinct patients.
    return typed("procedures", [
        {"Procedure Record ID": "PR1", "Patient ID": "P1", "Provider ID": "DR1", "Location ID": "L1",
         "Procedure Code": "A101", "Procedure Description": "Consultation", "Date of Service": "2024-06-01"},
        {"Procedure Record ID": "PR2", "Patient ID": "P2", "Provider ID": "DR1", "Location ID": "L2",
         "Procedure Code": "B201", "Procedure Description": "Arthroscopy", "Date of Service": "2024-06-10"},
        {"Procedure Record ID": "PR3", "Patient ID": "P3", "Provider ID": "DR2", "Location ID": "L1",
         "Procedure Code": "A101", "Procedure Description": "Consultation", "Date of Service": "2024-06-02"},
        {"Procedure Record ID": "PR4", "Patient ID": "P3", "Provider ID": "DR2", "Location ID": "L1",
         "Procedure Code": "A101", "Procedure Description": "Consultation", "Date of Service": "2024-06-03"},
        {"Procedure Record ID": "PR5", "Patient ID": "P4", "Provider ID": "DR2", "Location ID": "L2",
         "Procedure Code": "B201", "Procedure Description": "Arthroscopy", "Date of Service": "2024-06-04"},
        {"Procedure Record ID": "PR6", "Patient ID": "P5", "Provider ID": "DR3", "Location ID": "L2",
         "Procedure Code": "C301", "Procedure Description": "Cataract Surgery", "Date of Service": "2024-06-05"},
    ])


@pytest.fixture
def billing():
    return typed("billing", [
        {"Procedure Record ID": "PR1", "Billed Amount": "1000", "Outstanding Amount": "100",
         "Amount Paid - Medical Aid": "900", "Amount Paid - Patient": "0", "MBT Percentage": "100",
         "Date Billed / Claim Submit Date": "2024-06-01", "Date Paid - Medical Aid": "2024-06-10",
         "Date Paid - Patient": ""},
        {"Procedure Record ID": "PR2", "Billed Amount": "2000", "Outstanding Amount": "0",
         "Amount Paid - Medical Aid": "1500", "Amount Paid - Patient": "500", "MBT Percentage": "200",
         "Date Billed / Claim Submit Date": "2024-06-10", "Date Paid - Medical Aid": "2024-06-20",
         "Date Paid - Patient": "2024-06-11"},
        {"Procedure Record ID": "PR3", "Billed Amount": "500", "Outstanding Amount": "500",
         "Amount Paid - Medical Aid": "0", "Amount Paid - Patient": "0", "MBT Percentage": "100",
         "Date Billed / Claim Submit Date": "2024-06-02", "Date Paid - Medical Aid": "",
         "Date Paid - Patient": ""},
        {"Procedure Record ID": "PR4", "Billed Amount": "500", "Outstanding Amount": "0",
         "Amount Paid - Medical Aid": "500", "Amount Paid - Patient": "0", "MBT Percentage": "100",
         "Date Billed / Claim Submit Date": "2024-06-03", "Date Paid - Medical Aid": "2024-07-20",
         "Date Paid - Patient": ""},
        {"Procedure Record ID": "PR5", "Billed Amount": "1000", "Outstanding Amount": "0",
         "Amount Paid - Medical Aid": "1000", "Amount Paid - Patient": "0", "MBT Percentage": "200",
         "Date Billed / Claim Submit Date": "2024-06-04", "Date Paid - Medical Aid": "2024-06-08",
         "Date Paid - Patient": ""},
        {"Procedure Record ID": "PR6", "Billed Amount": "1000", "Outstanding Amount": "200",
         "Amount Paid - Medical Aid": "800", "Amount Paid - Patient": "0", "MBT Percentage": "150",
         "Date Billed / Claim Submit Date": "2024-06-05", "Date Paid - Medical Aid": "2024-06-30",
         "Date Paid - Patient": ""},
    ])


@pytest.fixture
def practice(patients, procedures, billing, doctors, hospitals):
    return PracticeData(patients=patients, procedures=procedures, billing=billing,
                        doctors=doctors, hospitals=hospitals)


@pytest.fixture
def data_dir(tmp_path, practice):
    """The fixture practice written out as the five CSV resources."""
    for name in ("patients", "procedures", "billing", "doctors", "hospitals"):
        frame = getattr(practice, name).copy()
        for column in frame.columns:
            if pd.api.types.is_datetime64_any_dtype(frame[column]):
                frame[column] = frame[column].dt.strftime("%Y-%m-%d").fillna("")
        frame.to_csv(tmp_path / f"{name}.csv", index=False)
    return tmp_path
