"""
practice_analytics/aggregation.py
=================================
Bucketing and reduction of record sets.

A key function takes a frame and returns one bucket key per row (a Series
aligned to the frame's index). Every key function returns a key for every
row, falling back to "Unknown" or "Other", so group_by_key always partitions
its input: each row lands in exactly one group.
"""

from typing import Callable, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from practice_analytics.config.dashboard_config import AMOUNT_BUCKETS, DELAY_BUCKETS
from practice_analytics.records import parse_amounts

UNKNOWN = "Unknown"
OTHER = "Other"

BILLED_DATE = "Date Billed / Claim Submit Date"

KeyFn = Callable[[pd.DataFrame], pd.Series]
Reducer = Callable[[pd.DataFrame], float]


# ── Key functions ─────────────────────────────────────────────────────────────

def month_key(field: str) -> KeyFn:
    """Calendar month as YYYY-MM."""
    def key(records):
        return records[field].dt.strftime("%Y-%m").fillna(UNKNOWN)
    return key


def iso_week_key(field: str) -> KeyFn:
    """ISO week as YYYY-Www, using the ISO year (2024-12-30 is 2025-W01)."""
    def key(records):
        dates = records[field]
        keys = pd.Series(UNKNOWN, index=records.index, dtype=object)
        valid = dates.notna()
        if valid.any():
            iso = dates[valid].dt.isocalendar()
            keys[valid] = (iso["year"].astype(int).astype(str) + "-W"
                           + iso["week"].astype(int).astype(str).str.zfill(2))
        return keys
    return key


def column_key(field: str) -> KeyFn:
    """The field's own value, e.g. Provider ID."""
    def key(records):
        return records[field].astype(str).replace("", UNKNOWN)
    return key


def code_prefix_key(field: str = "Procedure Code") -> KeyFn:
    """First character of a code; blank codes go to Other."""
    def key(records):
        return records[field].astype(str).str.strip().str[:1].replace("", OTHER)
    return key


def amount_bucket_key(field: str = "Billed Amount", buckets=AMOUNT_BUCKETS) -> KeyFn:
    """
    Amount range label. Buckets are [min, max), so 2500 belongs to
    "2500-5000"; the last bucket has no upper bound.
    """
    labels = [name for name, _, _ in buckets]
    edges = [low for _, low, _ in buckets] + [buckets[-1][2]]

    def key(records):
        values = records[field]
        if not pd.api.types.is_numeric_dtype(values):
            values = parse_amounts(values)
        cut = pd.cut(values, bins=edges, labels=labels, right=False)
        return cut.astype(object).fillna(OTHER)
    return key


def delay_days(records: pd.DataFrame, paid_field: str, billed_field: str = BILLED_DATE) -> pd.Series:
    """Whole days from billing to payment, floored; NaN when either date is missing."""
    delta = records[paid_field] - records[billed_field]
    return np.floor(delta.dt.total_seconds() / 86400)


def delay_bucket_key(paid_field: str, billed_field: str = BILLED_DATE,
                     buckets=DELAY_BUCKETS) -> KeyFn:
    """
    Payment delay label with inclusive upper thresholds (0-7, 8-14, ...).
    Payments recorded before the billing date count as 0-7.
    """
    labels = [name for name, _ in buckets]
    edges = [-np.inf] + [upper if upper is not None else np.inf for _, upper in buckets]

    def key(records):
        days = delay_days(records, paid_field, billed_field)
        cut = pd.cut(days, bins=edges, labels=labels, right=True)
        return cut.astype(object).fillna(UNKNOWN)
    return key


def row_key(fn: Callable[[pd.Series], object]) -> KeyFn:
    """Wrap a per-row function as a key function."""
    def key(records):
        if records.empty:
            return pd.Series([], index=records.index, dtype=object)
        return records.apply(fn, axis=1).astype(object).fillna(UNKNOWN)
    return key


# ── Grouping ──────────────────────────────────────────────────────────────────

def bucket_keys(records: pd.DataFrame, key_fn) -> pd.Series:
    if isinstance(key_fn, str):
        key_fn = column_key(key_fn)
    keys = pd.Series(key_fn(records), index=records.index)
    return keys.astype(object).fillna(UNKNOWN).astype(str)


def group_by_key(records: pd.DataFrame, key_fn) -> Dict[str, pd.DataFrame]:
    """
    Partition records by key, groups in sorted key order.

    The group sizes always add up to len(records). key_fn is a key function
    or a column name.
    """
    keys = bucket_keys(records, key_fn)
    return {key: group for key, group in records.groupby(keys, sort=True)}


# ── Reducers ──────────────────────────────────────────────────────────────────

def _numeric(group: pd.DataFrame, field: str) -> pd.Series:
    values = group[field]
    if pd.api.types.is_numeric_dtype(values):
        return values.fillna(0.0)
    return parse_amounts(values)


def total(field: str) -> Reducer:
    def reducer(group):
        return float(_numeric(group, field).sum())
    reducer.__name__ = f"total_{field}"
    return reducer


def count() -> Reducer:
    def reducer(group):
        return float(len(group))
    reducer.__name__ = "count"
    return reducer


def average(field: str) -> Reducer:
    """Mean over every row in the group; unparseable values count as 0, empty groups give 0."""
    def reducer(group):
        if len(group) == 0:
            return 0.0
        return float(_numeric(group, field).sum()) / len(group)
    reducer.__name__ = f"average_{field}"
    return reducer


def unique_count(field: str) -> Reducer:
    """Distinct non-blank values."""
    def reducer(group):
        values = group[field].astype(str)
        return float(values[values != ""].nunique())
    reducer.__name__ = f"unique_{field}"
    return reducer


def reduce_group(group: pd.DataFrame, reducer: Reducer) -> float:
    return reducer(group)


def reduce_groups(groups: Dict[str, pd.DataFrame], reducer: Reducer) -> Dict[str, float]:
    return {key: reducer(group) for key, group in groups.items()}


def series_by_key(records: pd.DataFrame, key_fn, reducer: Reducer) -> pd.Series:
    """One reduced value per bucket, indexed by bucket key in sorted order."""
    reduced = reduce_groups(group_by_key(records, key_fn), reducer)
    return pd.Series(reduced, dtype=float).sort_index()


def bucket_counts(records: pd.DataFrame, key_fn, labels: Sequence[str]) -> Dict[str, int]:
    """Row count per label in label order, including empty buckets."""
    counts = bucket_keys(records, key_fn).value_counts()
    result = {label: int(counts.get(label, 0)) for label in labels}
    for key in sorted(set(counts.index) - set(labels)):
        result[key] = int(counts[key])
    return result


# ── Distributions used by the financial view ─────────────────────────────────

def amount_distribution(billing: pd.DataFrame, field: str = "Billed Amount",
                        buckets=AMOUNT_BUCKETS) -> List[Dict[str, object]]:
    labels = [name for name, _, _ in buckets]
    counts = bucket_counts(billing, amount_bucket_key(field, buckets), labels)
    return [{"name": name, "value": value} for name, value in counts.items()]


def payment_delay_distribution(billing: pd.DataFrame, paid_field: str,
                               billed_field: str = BILLED_DATE,
                               buckets=DELAY_BUCKETS) -> List[Dict[str, object]]:
    """
    Count of payments per delay bucket. Rows without a paid date (or without
    a billing date) are left out entirely rather than counted as unpaid.
    """
    paid = billing[billing[paid_field].notna() & billing[billed_field].notna()]
    labels = [name for name, _ in buckets]
    counts = bucket_counts(paid, delay_bucket_key(paid_field, billed_field, buckets), labels)
    return [{"name": f"{name} days", "value": counts[name]} for name in labels]


def average_delay_days(billing: pd.DataFrame, paid_field: str,
                       billed_field: str = BILLED_DATE) -> Optional[float]:
    days = delay_days(billing, paid_field, billed_field).dropna()
    if days.empty:
        return None
    return round(float(days.mean()), 1)
