"""
practice_analytics/comparison.py
================================
Per-provider metrics, peer averages, percentage deltas and trend labels.

A subject provider is compared against a typical peer, not against the peer
group as a whole: peer totals are divided by the number of peers. Any ratio
whose denominator is zero is reported as undefined (None) so no NaN or
infinity ever reaches a template or a chart.
"""

import math
from dataclasses import asdict, dataclass
from typing import Dict, Iterable, List, Optional, Sequence

import pandas as pd

from practice_analytics.config.dashboard_config import TREND_THRESHOLDS
from practice_analytics.aggregation import BILLED_DATE, UNKNOWN, count, group_by_key, month_key, \
    series_by_key, total, unique_count
from practice_analytics.filters import filter_by_values

UP = "up"
DOWN = "down"
UNDEFINED = "undefined"

INCREASING = "increasing"
DECREASING = "decreasing"
STABLE = "stable"


@dataclass(frozen=True)
class EntityMetrics:
    total_billed: float = 0.0
    total_outstanding: float = 0.0
    procedure_count: float = 0.0
    unique_patients: float = 0.0

    @property
    def outstanding_ratio(self) -> Optional[float]:
        return safe_ratio(self.total_outstanding, self.total_billed)

    def to_dict(self) -> Dict[str, object]:
        data = asdict(self)
        data["outstanding_ratio"] = self.outstanding_ratio
        return data


@dataclass(frozen=True)
class PercentDelta:
    """Percentage difference of a subject value against a reference value."""
    value: Optional[float]
    direction: str

    @property
    def defined(self) -> bool:
        return self.value is not None

    def format(self) -> str:
        if self.value is None:
            return "N/A"
        return f"{self.value:+.1f}%"

    def to_dict(self) -> Dict[str, object]:
        return {"value": None if self.value is None else round(self.value, 1),
                "direction": self.direction,
                "label": self.format()}


def _finite(value) -> bool:
    return value is not None and math.isfinite(value)


def safe_ratio(numerator: float, denominator: float) -> Optional[float]:
    if not _finite(numerator) or not _finite(denominator) or denominator == 0:
        return None
    return numerator / denominator


def percentage_delta(subject: float, peer: float) -> PercentDelta:
    """(subject / peer - 1) * 100; undefined when the peer value is 0."""
    ratio = safe_ratio(subject, peer)
    if ratio is None:
        return PercentDelta(None, UNDEFINED)
    return PercentDelta((ratio - 1) * 100, UP if subject >= peer else DOWN)


# ── Metrics ───────────────────────────────────────────────────────────────────

def billing_for(procedures: pd.DataFrame, billing: pd.DataFrame) -> pd.DataFrame:
    """Billing rows that belong to the given procedures."""
    return filter_by_values(billing, "Procedure Record ID", procedures["Procedure Record ID"])


def entity_metrics(procedures: pd.DataFrame, billing: pd.DataFrame) -> EntityMetrics:
    bills = billing_for(procedures, billing)
    return EntityMetrics(
        total_billed=total("Billed Amount")(bills),
        total_outstanding=total("Outstanding Amount")(bills),
        procedure_count=count()(procedures),
        unique_patients=unique_count("Patient ID")(procedures),
    )


def peer_average_metrics(procedures: pd.DataFrame, billing: pd.DataFrame,
                         peer_ids: Iterable[str]) -> EntityMetrics:
    """
    Metrics of a typical peer: totals over all peer records divided by the
    number of peers. Unique patients are counted per peer, then averaged the
    same way. Peers with no procedures still count towards the divisor.
    """
    peer_ids = list(dict.fromkeys(peer_ids))
    peers = len(peer_ids)
    if peers == 0:
        return EntityMetrics()

    peer_procs = filter_by_values(procedures, "Provider ID", peer_ids)
    bills = billing_for(peer_procs, billing)
    patients_per_peer = sum(
        unique_count("Patient ID")(group)
        for group in group_by_key(peer_procs, "Provider ID").values()
    )
    return EntityMetrics(
        total_billed=total("Billed Amount")(bills) / peers,
        total_outstanding=total("Outstanding Amount")(bills) / peers,
        procedure_count=count()(peer_procs) / peers,
        unique_patients=patients_per_peer / peers,
    )


def metric_deltas(subject: EntityMetrics, peer: EntityMetrics) -> Dict[str, PercentDelta]:
    return {
        "total_billed":      percentage_delta(subject.total_billed, peer.total_billed),
        "total_outstanding": percentage_delta(subject.total_outstanding, peer.total_outstanding),
        "procedure_count":   percentage_delta(subject.procedure_count, peer.procedure_count),
        "unique_patients":   percentage_delta(subject.unique_patients, peer.unique_patients),
    }


def period_over_period(current: Dict[str, float], previous: Dict[str, float]) -> Dict[str, PercentDelta]:
    """Delta of each metric in the current window against the window before it."""
    return {name: percentage_delta(value, previous.get(name, 0.0)) for name, value in current.items()}


# ── Trends ────────────────────────────────────────────────────────────────────

def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def classify_trend(series: Sequence[float],
                   increase_factor: float = TREND_THRESHOLDS["increase_factor"],
                   decrease_factor: float = TREND_THRESHOLDS["decrease_factor"]) -> str:
    """
    Compare the mean of the second half of a series with the first half.

    The split is by position; with an odd length the first half is the
    shorter one. Fewer than two points is always stable.
    """
    values = [float(v) for v in series]
    if len(values) < 2:
        return STABLE
    half = len(values) // 2
    first, second = _mean(values[:half]), _mean(values[half:])
    if second > first * increase_factor:
        return INCREASING
    if second < first * decrease_factor:
        return DECREASING
    return STABLE


@dataclass
class ComparisonSeries:
    """Month-by-month subject values against the per-peer average."""
    procedures: List[Dict[str, object]]
    billings: List[Dict[str, object]]

    def subject_values(self, kind: str = "procedures") -> List[float]:
        return [point["selected"] for point in getattr(self, kind)]


def monthly_comparison_series(subject_procs: pd.DataFrame, peer_procs: pd.DataFrame,
                              subject_bills: pd.DataFrame, peer_bills: pd.DataFrame,
                              peer_count: int) -> ComparisonSeries:
    """
    Procedures are bucketed by date of service, billings by billing date.
    Every month that appears in any of the four inputs is present in both
    series; records without a date are left out.
    """
    divisor = peer_count or 1
    by_service = month_key("Date of Service")
    by_billing = month_key(BILLED_DATE)

    subject_counts = series_by_key(subject_procs, by_service, count())
    peer_counts = series_by_key(peer_procs, by_service, count())
    subject_billed = series_by_key(subject_bills, by_billing, total("Billed Amount"))
    peer_billed = series_by_key(peer_bills, by_billing, total("Billed Amount"))

    months = sorted(
        (set(subject_counts.index) | set(peer_counts.index)
         | set(subject_billed.index) | set(peer_billed.index)) - {UNKNOWN}
    )
    procedures = [
        {"month": month,
         "selected": float(subject_counts.get(month, 0.0)),
         "comparison": float(peer_counts.get(month, 0.0)) / divisor}
        for month in months
    ]
    billings = [
        {"month": month,
         "selected": float(subject_billed.get(month, 0.0)),
         "comparison": float(peer_billed.get(month, 0.0)) / divisor}
        for month in months
    ]
    return ComparisonSeries(procedures=procedures, billings=billings)
