"""
practice_analytics/filters.py
=============================
Date-window and categorical filters, and foreign-key joins.

Each filter is an independent, order-preserving predicate on one field, so
any chain of them returns the same rows whatever order it is applied in.
Joins are left joins: a row whose key has no match is kept with a
placeholder rather than dropped.
"""

import numbers
from typing import Dict, Iterable, Optional, Sequence, Tuple, Union

import pandas as pd

from practice_analytics.config.dashboard_config import PLACEHOLDERS, TIME_PERIODS
from practice_analytics.records import parse_dates

ALL = "all"

Window = Union[int, str, Tuple[object, object]]


class InvalidFilterError(ValueError):
    """A filter argument (window, period name, date) could not be understood."""


def today_date(today=None) -> pd.Timestamp:
    return pd.Timestamp(today).normalize() if today is not None else pd.Timestamp.today().normalize()


def _to_bound(value) -> Optional[pd.Timestamp]:
    if value is None or value == "":
        return None
    try:
        bound = pd.Timestamp(value)
    except (TypeError, ValueError) as e:
        raise InvalidFilterError(f"Invalid date: {value!r}") from e
    if pd.isna(bound):
        raise InvalidFilterError(f"Invalid date: {value!r}")
    if bound.tzinfo is not None:
        bound = bound.tz_localize(None)
    return bound.normalize()


def resolve_window(window: Window, today=None) -> Tuple[Optional[pd.Timestamp], Optional[pd.Timestamp]]:
    """
    Turn a window descriptor into an inclusive (start, end) date pair.

    Accepted descriptors:
      30                         → the 30 days up to and including today
      "30"                       → same, as sent by a filter bar
      "last90days", "ytd", ...   → a named period from TIME_PERIODS
      ("2024-01-01", "2024-03-31") → explicit bounds; either may be None
    """
    end_of_window = today_date(today)

    if isinstance(window, str):
        text = window.strip()
        if text in TIME_PERIODS:
            period = TIME_PERIODS[text]
            if period == "ytd":
                return pd.Timestamp(year=end_of_window.year, month=1, day=1), end_of_window
            window = period
        elif text.isdigit():
            window = int(text)
        else:
            raise InvalidFilterError(f"Unknown time period: {window!r}")

    if isinstance(window, bool):
        raise InvalidFilterError(f"Invalid window: {window!r}")
    if isinstance(window, numbers.Integral):
        if window < 0:
            raise InvalidFilterError(f"Window must not be negative: {window}")
        return end_of_window - pd.Timedelta(days=int(window)), end_of_window

    if isinstance(window, (tuple, list)) and len(window) == 2:
        return _to_bound(window[0]), _to_bound(window[1])

    raise InvalidFilterError(f"Invalid window: {window!r}")


def filter_by_date_range(records: pd.DataFrame, date_field: str, window: Window,
                         today=None) -> pd.DataFrame:
    """Rows whose date lies inside the window, bounds included. Missing dates never pass."""
    start, end = resolve_window(window, today)
    dates = records[date_field]
    if not pd.api.types.is_datetime64_any_dtype(dates):
        dates = parse_dates(dates)

    mask = dates.notna()
    if start is not None:
        mask &= dates >= start
    if end is not None:
        mask &= dates <= end
    return records[mask]


def is_all(selected) -> bool:
    return selected is None or str(selected).strip().lower() in ("", ALL)


def filter_by_category(records: pd.DataFrame, field: str, selected) -> pd.DataFrame:
    """Exact-match filter; "all" or an empty selection lets every row through."""
    if is_all(selected):
        return records
    return records[records[field].astype(str) == str(selected)]


def filter_by_values(records: pd.DataFrame, field: str, values: Iterable) -> pd.DataFrame:
    return records[records[field].isin(list(values))]


def join(left: pd.DataFrame, right: pd.DataFrame, left_key: str, right_key: str,
         defaults: Optional[Dict[str, object]] = None,
         columns: Optional[Sequence[str]] = None) -> pd.DataFrame:
    """
    Left equi-join that never drops or duplicates a left row.

    The right side is reduced to one row per key, so the result has exactly
    the left rows, in the left order and with the left index. Right columns
    that also exist on the left are not brought across. Where no right row
    matches, the columns named in `defaults` get the default value.
    """
    if columns is None:
        columns = [c for c in right.columns if c != right_key]
    columns = [c for c in columns if c not in left.columns]

    lookup = (
        right[[right_key] + list(columns)]
        .drop_duplicates(subset=[right_key], keep="first")
        .rename(columns={right_key: "_join_key"})
    )
    merged = left.merge(lookup, how="left", left_on=left_key, right_on="_join_key")
    merged = merged.drop(columns=["_join_key"])
    merged.index = left.index

    if defaults:
        fill = {column: value for column, value in defaults.items() if column in merged.columns}
        merged = merged.fillna(value=fill)
    return merged


def patient_names(patients: pd.DataFrame) -> pd.DataFrame:
    """Patient ID → "First Last"."""
    full_name = (patients["Patient First Name"] + " " + patients["Patient Last Name"]).str.strip()
    return pd.DataFrame({"Patient ID": patients["Patient ID"], "Patient Name": full_name})


def attach_provider_names(records: pd.DataFrame, doctors: pd.DataFrame) -> pd.DataFrame:
    return join(records, doctors, "Provider ID", "Provider ID",
                defaults={"Provider Name": PLACEHOLDERS["provider"]},
                columns=["Provider Name"])


def attach_patient_names(records: pd.DataFrame, patients: pd.DataFrame) -> pd.DataFrame:
    return join(records, patient_names(patients), "Patient ID", "Patient ID",
                defaults={"Patient Name": PLACEHOLDERS["patient"]},
                columns=["Patient Name"])


def attach_location_names(records: pd.DataFrame, hospitals: pd.DataFrame) -> pd.DataFrame:
    return join(records, hospitals, "Location ID", "Location ID",
                defaults={"Location Name": PLACEHOLDERS["location"]},
                columns=["Location Name"])


def attach_procedures(billing: pd.DataFrame, procedures: pd.DataFrame) -> pd.DataFrame:
    """Bring each billing row's procedure details across (patient, provider, description)."""
    return join(billing, procedures, "Procedure Record ID", "Procedure Record ID",
                defaults={
                    "Patient ID": "",
                    "Provider ID": "",
                    "Procedure Description": PLACEHOLDERS["procedure"],
                },
                columns=["Patient ID", "Provider ID", "Procedure Code",
                         "Procedure Description", "Date of Service"])
