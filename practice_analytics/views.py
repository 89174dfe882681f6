"""
practice_analytics/views.py
===========================
One function per dashboard view. Each takes the loaded records plus the
current filter selections and returns a plain dict of metrics, series and
insight text, ready for whatever draws the page.

Nothing here modifies the loaded frames; every derived value is recomputed
from them on each call.
"""

import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import pandas as pd

from practice_analytics.config.dashboard_config import (
    DATE_RANGE_OPTIONS, DEFAULT_DOCTOR_WINDOW_DAYS, DEFAULT_FINANCIAL_WINDOW_DAYS,
    PLACEHOLDERS, RECENT_PATIENTS_LIMIT, RESOURCE_FILES, TIME_PERIODS,
)
from practice_analytics import aggregation as agg
from practice_analytics.aggregation import BILLED_DATE
from practice_analytics.comparison import (
    billing_for, classify_trend, entity_metrics, metric_deltas,
    monthly_comparison_series, peer_average_metrics, percentage_delta, period_over_period,
)
from practice_analytics.filters import (
    attach_patient_names, attach_procedures, attach_provider_names, filter_by_category,
    filter_by_date_range, filter_by_values, is_all, resolve_window,
)
from practice_analytics.insights import (
    INSUFFICIENT_DATA, financial_insight, provider_insight, scenario_insight,
)
from practice_analytics.loader import ResourceCache, default_cache
from practice_analytics.records import SCHEMAS, empty_records


MEDICAL_AID_PAID = "Date Paid - Medical Aid"
PATIENT_PAID = "Date Paid - Patient"


class InvalidScenarioError(ValueError):
    """A scenario request is missing a name or refers to nothing."""


@dataclass
class PracticeData:
    patients: pd.DataFrame = field(default_factory=lambda: empty_records(SCHEMAS["patients"]))
    procedures: pd.DataFrame = field(default_factory=lambda: empty_records(SCHEMAS["procedures"]))
    billing: pd.DataFrame = field(default_factory=lambda: empty_records(SCHEMAS["billing"]))
    doctors: pd.DataFrame = field(default_factory=lambda: empty_records(SCHEMAS["doctors"]))
    hospitals: pd.DataFrame = field(default_factory=lambda: empty_records(SCHEMAS["hospitals"]))


def load_practice_data(cache: Optional[ResourceCache] = None) -> PracticeData:
    """All five resources, read in parallel on first use and cached after that."""
    frames = (cache or default_cache()).get_many(RESOURCE_FILES.keys())
    return PracticeData(**frames)


def _iso(value) -> Optional[str]:
    if value is None or pd.isna(value):
        return None
    return pd.Timestamp(value).strftime("%Y-%m-%d")


def _rounded(value: Optional[float], digits: int = 2) -> Optional[float]:
    return None if value is None else round(value, digits)


def doctor_name(doctors: pd.DataFrame, provider_id: str) -> str:
    match = doctors.loc[doctors["Provider ID"] == provider_id, "Provider Name"]
    if match.empty or not match.iloc[0]:
        return PLACEHOLDERS["provider"]
    return match.iloc[0]


# ── Doctor analysis ───────────────────────────────────────────────────────────

def doctor_analysis(data: PracticeData, selected_doctor: Optional[str] = None,
                    comparison_doctor: Optional[str] = None,
                    window=DEFAULT_DOCTOR_WINDOW_DAYS, location: Optional[str] = None,
                    today=None) -> Dict[str, object]:
    """
    Compare one provider with a typical peer.

    Peers are the explicit comparison doctor when one is chosen, otherwise
    every other provider on the doctor list. Both sides are limited to the
    same date window (by date of service) and location.
    """
    start, end = resolve_window(window, today)
    doctor_ids = [pid for pid in data.doctors["Provider ID"] if pid]
    if not selected_doctor:
        selected_doctor = doctor_ids[0] if doctor_ids else ""

    if is_all(comparison_doctor):
        peer_ids = [pid for pid in doctor_ids if pid != selected_doctor]
        mode = "all_others"
    else:
        peer_ids = [comparison_doctor]
        mode = "doctor"

    in_window = filter_by_date_range(data.procedures, "Date of Service", (start, end))
    scoped = filter_by_category(in_window, "Location ID", location)
    subject_procs = filter_by_values(scoped, "Provider ID", [selected_doctor])
    peer_procs = filter_by_values(scoped, "Provider ID", peer_ids)
    subject_bills = billing_for(subject_procs, data.billing)
    peer_bills = billing_for(peer_procs, data.billing)

    metrics = entity_metrics(subject_procs, data.billing)
    peer_metrics = peer_average_metrics(scoped, data.billing, peer_ids)
    series = monthly_comparison_series(subject_procs, peer_procs, subject_bills,
                                       peer_bills, len(peer_ids))
    trend = classify_trend(series.subject_values("procedures"))
    name = doctor_name(data.doctors, selected_doctor) if selected_doctor else PLACEHOLDERS["provider"]

    weekly = agg.series_by_key(subject_procs, agg.iso_week_key("Date of Service"), agg.count())
    procedure_mix = agg.series_by_key(subject_procs, agg.code_prefix_key("Procedure Code"), agg.count())

    return {
        "selected_doctor":  {"id": selected_doctor, "name": name},
        "comparison":       {"mode": mode, "provider_ids": peer_ids,
                             "names": [doctor_name(data.doctors, pid) for pid in peer_ids]},
        "window":           {"start": _iso(start), "end": _iso(end)},
        "location":         location if not is_all(location) else "all",
        "metrics":          metrics.to_dict(),
        "peer_metrics":     peer_metrics.to_dict(),
        "deltas":           {k: d.to_dict() for k, d in metric_deltas(metrics, peer_metrics).items()},
        "trends":           {"procedures": series.procedures, "billings": series.billings},
        "procedure_trend":  trend,
        "weekly_procedures": [{"week": k, "count": int(v)} for k, v in weekly.items()],
        "procedure_mix":    [{"prefix": k, "count": int(v)} for k, v in procedure_mix.items()],
        "insight":          provider_insight(metrics, peer_metrics, trend, name),
    }


# ── Financial analysis ───────────────────────────────────────────────────────

def financial_totals(billing: pd.DataFrame) -> Dict[str, Optional[float]]:
    billed = agg.total("Billed Amount")(billing)
    medical_aid = agg.total("Amount Paid - Medical Aid")(billing)
    patient = agg.total("Amount Paid - Patient")(billing)
    return {
        "revenue":     billed,
        "received":    medical_aid + patient,
        "outstanding": agg.total("Outstanding Amount")(billing),
        "medical_aid": medical_aid / billed * 100 if billed > 0 else None,
    }


def outstanding_claims(billing: pd.DataFrame, procedures: pd.DataFrame,
                       patients: pd.DataFrame, limit: Optional[int] = None) -> List[Dict[str, object]]:
    """
    Claims with money still owed, oldest first. The medical aid is the
    responsible party until it has paid; after that the patient is.
    """
    owed = billing[billing["Outstanding Amount"] > 0]
    owed = attach_patient_names(attach_procedures(owed, procedures), patients)
    owed = owed.sort_values(BILLED_DATE, kind="mergesort", na_position="last")
    if limit is not None:
        owed = owed.head(limit)
    return [
        {
            "id":          row["Procedure Record ID"] or None,
            "date":        _iso(row[BILLED_DATE]),
            "amount":      round(float(row["Outstanding Amount"]), 2),
            "responsible": "Medical Aid" if pd.isna(row[MEDICAL_AID_PAID]) else "Patient",
            "patient":     row["Patient Name"],
        }
        for _, row in owed.iterrows()
    ]


def financial_analysis(data: PracticeData, days: int = DEFAULT_FINANCIAL_WINDOW_DAYS,
                       today=None, claims_limit: Optional[int] = 50) -> Dict[str, object]:
    """
    Billing totals for the trailing window, with each card compared against
    the equally long window immediately before it.
    """
    start, end = resolve_window(days, today)
    span = end - start
    previous_window = (start - span - pd.Timedelta(days=1), start - pd.Timedelta(days=1))

    current = filter_by_date_range(data.billing, BILLED_DATE, (start, end))
    previous = filter_by_date_range(data.billing, BILLED_DATE, previous_window)
    totals = financial_totals(current)
    trends = period_over_period(totals, financial_totals(previous))

    medical_aid_paid = agg.total("Amount Paid - Medical Aid")(current)
    patient_paid = agg.total("Amount Paid - Patient")(current)

    return {
        "window":   {"start": _iso(start), "end": _iso(end), "days": int(span.days)},
        "cards": {
            "revenue":     round(totals["revenue"]),
            "received":    round(totals["received"]),
            "outstanding": round(totals["outstanding"]),
            "medical_aid_percentage": _rounded(totals["medical_aid"], 1),
        },
        "trends":          {name: delta.to_dict() for name, delta in trends.items()},
        "claim_sizes":     agg.amount_distribution(current),
        "payment_sources": [
            {"name": "Medical Aid", "value": round(medical_aid_paid, 2)},
            {"name": "Patient",     "value": round(patient_paid, 2)},
        ],
        "payment_delays": {
            "medical_aid": agg.payment_delay_distribution(current, MEDICAL_AID_PAID),
            "patient":     agg.payment_delay_distribution(current, PATIENT_PAID),
        },
        "average_delay_days": {
            "medical_aid": agg.average_delay_days(current, MEDICAL_AID_PAID),
            "patient":     agg.average_delay_days(current, PATIENT_PAID),
        },
        "outstanding_claims": outstanding_claims(current, data.procedures, data.patients,
                                                 limit=claims_limit),
        "insight": financial_insight(trends) if len(current) else INSUFFICIENT_DATA,
    }


# ── Recent patients ──────────────────────────────────────────────────────────

def recent_patients(data: PracticeData, limit: int = RECENT_PATIENTS_LIMIT) -> List[Dict[str, object]]:
    """The latest visit of each of the most recently seen patients."""
    visits = data.procedures[data.procedures["Date of Service"].notna()
                             & (data.procedures["Patient ID"] != "")]
    visits = visits.sort_values("Date of Service", ascending=False, kind="mergesort")
    latest = visits.drop_duplicates(subset=["Patient ID"], keep="first").head(limit)

    latest = attach_provider_names(attach_patient_names(latest, data.patients), data.doctors)
    return [
        {
            "id":         row["Patient ID"],
            "name":       row["Patient Name"],
            "last_visit": _iso(row["Date of Service"]),
            "doctor":     row["Provider Name"],
            "status":     "Completed",
        }
        for _, row in latest.iterrows()
    ]


# ── MBT scenario modelling ───────────────────────────────────────────────────

def procedure_baseline(data: PracticeData, period: str = "last30days", today=None) -> pd.DataFrame:
    """
    Current average MBT percentage, average billed amount and procedure
    count per procedure description, from the given period onwards.
    Only procedures with at least one billing row in the period appear.
    """
    if not isinstance(period, str) or period not in TIME_PERIODS:
        raise InvalidScenarioError(f"Unknown time period: {period!r}")
    start, _ = resolve_window(period, today)

    procs = filter_by_date_range(data.procedures, "Date of Service", (start, None))
    bills = filter_by_date_range(data.billing, BILLED_DATE, (start, None))
    described = data.procedures[data.procedures["Procedure Description"] != ""]
    bills = attach_procedures(filter_by_values(bills, "Procedure Record ID",
                                               described["Procedure Record ID"]),
                              described)

    if bills.empty:
        return pd.DataFrame(columns=["description", "current_mbt", "avg_cost", "procedure_count"])

    baseline = bills.groupby("Procedure Description", as_index=False).agg(
        current_mbt=("MBT Percentage", "mean"),
        avg_cost=("Billed Amount", "mean"),
    ).rename(columns={"Procedure Description": "description"})
    counts = procs["Procedure Description"].value_counts()
    baseline["procedure_count"] = baseline["description"].map(counts).fillna(0).astype(int)
    return baseline.sort_values("description").reset_index(drop=True)


@dataclass
class Scenario:
    """A what-if: new MBT percentages and/or procedure counts per description."""
    name: str
    period: str = "last30days"
    new_mbt: Dict[str, float] = field(default_factory=dict)
    counts: Dict[str, int] = field(default_factory=dict)


def _scenario_rows(baseline: pd.DataFrame, scenario: Scenario) -> List[Dict[str, object]]:
    rows = []
    for _, proc in baseline.iterrows():
        description = proc["description"]
        current_mbt = float(proc["current_mbt"])
        new_mbt = max(float(scenario.new_mbt.get(description, current_mbt)), 0.0)
        procedure_count = max(int(scenario.counts.get(description, proc["procedure_count"])), 0)
        base = procedure_count * float(proc["avg_cost"])
        # With no current MBT there is nothing to scale from; revenue is unchanged
        factor = new_mbt / current_mbt if current_mbt else 1.0
        rows.append({
            "name":     description,
            "current_mbt": round(current_mbt, 2),
            "new_mbt":  round(new_mbt, 2),
            "procedure_count": procedure_count,
            "base":     round(base, 2),
            "scenario": round(base * factor, 2),
        })
    return rows


def compare_scenario(baseline: pd.DataFrame, scenario: Scenario) -> Dict[str, object]:
    """Revenue of the scenario against the actual baseline, per procedure and in total."""
    if not scenario.name or not scenario.name.strip():
        raise InvalidScenarioError("Please provide a scenario name")
    not_finite = sorted(name for name, value in scenario.new_mbt.items() if not math.isfinite(value))
    if not_finite:
        raise InvalidScenarioError(f"MBT percentage must be a finite number for: {', '.join(not_finite)}")

    rows = _scenario_rows(baseline, scenario)
    base_total = sum(row["base"] for row in rows)
    scenario_total = sum(row["scenario"] for row in rows)
    difference = scenario_total - base_total
    change = percentage_delta(scenario_total, base_total)
    most_impacted = None
    if rows:
        most_impacted = max(rows, key=lambda r: abs(r["scenario"] - r["base"]))["name"]

    return {
        "scenario":          scenario.name.strip(),
        "period":            scenario.period,
        "by_procedure":      rows,
        "base_total":        round(base_total, 2),
        "scenario_total":    round(scenario_total, 2),
        "difference":        round(difference, 2),
        "percentage_change": change.to_dict(),
        "most_impacted":     most_impacted,
        "insight":           scenario_insight(difference, change, most_impacted),
    }


# ── Overview and filter bar ──────────────────────────────────────────────────

def practice_summary(data: PracticeData, today=None) -> Dict[str, object]:
    ytd = filter_by_date_range(data.billing, BILLED_DATE, "ytd", today)
    return {
        "doctors":         int(len(data.doctors)),
        "patients":        int(len(data.patients)),
        "procedures":      int(len(data.procedures)),
        "locations":       int(len(data.hospitals)),
        "revenue_ytd":     round(agg.total("Billed Amount")(ytd), 2),
        "outstanding":     round(agg.total("Outstanding Amount")(data.billing), 2),
        "unbilled_procedures": int((~data.procedures["Procedure Record ID"]
                                    .isin(data.billing["Procedure Record ID"])).sum()),
    }


def filter_options(data: PracticeData) -> Dict[str, List[Dict[str, str]]]:
    doctors = [{"value": row["Provider ID"], "label": row["Provider Name"] or row["Provider ID"]}
               for _, row in data.doctors.iterrows()]
    locations = [{"value": "all", "label": "All locations"}] + [
        {"value": row["Location ID"], "label": row["Location Name"] or row["Location ID"]}
        for _, row in data.hospitals.iterrows()
    ]
    codes = (data.procedures[data.procedures["Procedure Code"] != ""]
             .drop_duplicates(subset=["Procedure Code"])
             .sort_values("Procedure Code"))
    procedures = [{"value": "all", "label": "All procedures"}] + [
        {"value": row["Procedure Code"],
         "label": f'{row["Procedure Code"]} - {row["Procedure Description"]}'.rstrip(" -")}
        for _, row in codes.iterrows()
    ]
    date_ranges = [{"value": str(days), "label": f"Last {days} days"} for days in DATE_RANGE_OPTIONS]
    return {"doctors": doctors, "locations": locations,
            "procedures": procedures, "date_ranges": date_ranges}
