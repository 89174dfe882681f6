"""
practice_analytics/insights.py
==============================
Narrative text built from metric comparisons.

Each rule table is an ordered list of (section, predicate, template) rules.
Sections are rendered in a fixed order and, within a section, the first rule
whose predicate holds supplies the clause. A section with no matching rule
contributes nothing. Templates only read fields their predicate has checked,
so an undefined delta never ends up formatted into a sentence.
"""

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

from practice_analytics.config.dashboard_config import INSIGHT_THRESHOLDS
from practice_analytics.comparison import EntityMetrics, PercentDelta, percentage_delta

INSUFFICIENT_DATA = "Insufficient data to generate insights."

Context = Dict[str, object]


@dataclass(frozen=True)
class InsightRule:
    section: str
    predicate: Callable[[Context], bool]
    template: str

    def render(self, context: Context) -> str:
        return self.template.format(**context)


def evaluate(rules: Sequence[InsightRule], sections: Sequence[str], context: Context) -> List[str]:
    """The first matching clause of each section, in section order."""
    clauses = []
    for section in sections:
        for rule in rules:
            if rule.section == section and rule.predicate(context):
                clauses.append(rule.render(context))
                break
    return clauses


def _defined(*names):
    return lambda c: all(c[name] is not None for name in names)


def _within(name, band):
    return lambda c: c[name] is not None and abs(c[name]) < band


def _above(name, band=0.0):
    return lambda c: c[name] is not None and c[name] > band


def _below(name, band=0.0):
    return lambda c: c[name] is not None and c[name] < -band


def _all(*predicates):
    return lambda c: all(p(c) for p in predicates)


def _always(c):
    return True


def _delta_fields(prefix: str, delta: PercentDelta) -> Context:
    return {
        f"{prefix}_pct": delta.value,
        f"{prefix}_abs": None if delta.value is None else abs(delta.value),
        f"{prefix}_direction": "positive" if delta.value is not None and delta.value > 0 else "negative",
    }


def format_rand(value: float) -> str:
    """Whole-rand currency, e.g. R12,500."""
    sign = "-" if value < 0 else ""
    return f"{sign}R{abs(value):,.0f}"


# ── Provider performance ─────────────────────────────────────────────────────

PROVIDER_SECTIONS = ("overall", "outstanding", "trend", "patients")

_ON_PAR = INSIGHT_THRESHOLDS["on_par_pct"]
_PATIENTS = INSIGHT_THRESHOLDS["patients_pct"]
_HIGH = INSIGHT_THRESHOLDS["outstanding_high_ratio"]
_LOW = INSIGHT_THRESHOLDS["outstanding_low_ratio"]

PROVIDER_RULES = [
    InsightRule(
        "overall",
        _all(_within("billing_pct", _ON_PAR), _within("procedures_pct", _ON_PAR)),
        "Performance is generally on par with peers.",
    ),
    InsightRule(
        "overall",
        _all(_above("billing_pct", _ON_PAR), _above("procedures_pct", _ON_PAR)),
        "Performance is significantly above average, with {billing_pct:.1f}% higher billing "
        "and {procedures_pct:.1f}% more procedures than peers.",
    ),
    InsightRule(
        "overall",
        _all(_below("billing_pct", _ON_PAR), _below("procedures_pct", _ON_PAR)),
        "Performance is below average, with {billing_abs:.1f}% lower billing "
        "and {procedures_abs:.1f}% fewer procedures than peers.",
    ),
    InsightRule("overall", _always, "Mixed performance metrics compared to peers."),

    InsightRule(
        "outstanding",
        _all(_defined("outstanding_ratio", "peer_outstanding_ratio"),
             lambda c: c["outstanding_ratio"] > c["peer_outstanding_ratio"] * _HIGH),
        "Outstanding billing ratio ({outstanding_pct:.1f}%) is higher than peers "
        "({peer_outstanding_pct:.1f}%), suggesting potential collection issues.",
    ),
    InsightRule(
        "outstanding",
        _all(_defined("outstanding_ratio", "peer_outstanding_ratio"),
             lambda c: c["outstanding_ratio"] < c["peer_outstanding_ratio"] * _LOW),
        "Outstanding billing ratio ({outstanding_pct:.1f}%) is lower than peers "
        "({peer_outstanding_pct:.1f}%), indicating effective collection practices.",
    ),

    InsightRule("trend", _always, "Procedure volume has been {trend} over the selected period."),

    InsightRule(
        "patients",
        _above("patients_pct", _PATIENTS),
        "The doctor sees {patients_pct:.1f}% more unique patients than peers, "
        "suggesting higher patient retention or referral rates.",
    ),
    InsightRule(
        "patients",
        _below("patients_pct", _PATIENTS),
        "The doctor sees {patients_abs:.1f}% fewer unique patients than peers, "
        "which may indicate opportunities for improved patient retention.",
    ),
    InsightRule(
        "patients",
        lambda c: c["patients_pct"] is None,
        "Patient volume could not be compared with peers.",
    ),
    InsightRule("patients", _always, "Patient volume is comparable to peers."),
]


def provider_context(metrics: EntityMetrics, peer_metrics: EntityMetrics, trend: str) -> Context:
    ratio, peer_ratio = metrics.outstanding_ratio, peer_metrics.outstanding_ratio
    context = {
        "trend": trend,
        "outstanding_ratio": ratio,
        "peer_outstanding_ratio": peer_ratio,
        "outstanding_pct": None if ratio is None else ratio * 100,
        "peer_outstanding_pct": None if peer_ratio is None else peer_ratio * 100,
    }
    context.update(_delta_fields("billing", percentage_delta(metrics.total_billed, peer_metrics.total_billed)))
    context.update(_delta_fields("procedures", percentage_delta(metrics.procedure_count, peer_metrics.procedure_count)))
    context.update(_delta_fields("patients", percentage_delta(metrics.unique_patients, peer_metrics.unique_patients)))
    return context


def provider_insight(metrics: EntityMetrics, peer_metrics: EntityMetrics, trend: str,
                     subject_name: Optional[str] = None) -> str:
    """One paragraph comparing a provider with the peer average."""
    if not metrics.procedure_count or not peer_metrics.procedure_count:
        return INSUFFICIENT_DATA
    clauses = evaluate(PROVIDER_RULES, PROVIDER_SECTIONS,
                       provider_context(metrics, peer_metrics, trend))
    return f"{subject_name or 'Selected doctor'}'s performance analysis: " + " ".join(clauses)


# ── Financial trend ──────────────────────────────────────────────────────────

FINANCIAL_SECTIONS = ("headline", "outstanding", "medical_aid", "closing")


def _growth(c):
    return _above("revenue_pct")(c) and _above("received_pct")(c)


def _not_growth(c):
    return not _growth(c)


FINANCIAL_RULES = [
    InsightRule(
        "headline", _growth,
        "Positive financial trend detected. Revenue has increased by {revenue_pct:.1f}% compared "
        "to the previous period, with billings received also showing growth at {received_pct:.1f}%.",
    ),
    InsightRule(
        "headline", lambda c: c["revenue_pct"] is None,
        "There is not enough billing history in the previous period to compare revenue.",
    ),
    InsightRule(
        "headline", _always,
        "Mixed financial signals detected. Revenue trend is {revenue_direction} at "
        "{revenue_abs:.1f}% compared to the previous period.",
    ),

    InsightRule(
        "outstanding", _all(_growth, _below("outstanding_pct")),
        "Outstanding billings have decreased, indicating improved collection efficiency.",
    ),
    InsightRule(
        "outstanding", _all(_growth, _defined("outstanding_pct")),
        "There is a slight increase in outstanding billings which may require attention "
        "to collection processes.",
    ),
    InsightRule(
        "outstanding", _above("outstanding_pct"),
        "Outstanding billings have increased by {outstanding_pct:.1f}%, suggesting potential "
        "collection issues that should be addressed.",
    ),
    InsightRule(
        "outstanding", _defined("outstanding_pct"),
        "Collection efficiency has improved with outstanding billings reduced by {outstanding_abs:.1f}%.",
    ),

    InsightRule(
        "medical_aid", _all(_growth, _above("medical_aid_pct")),
        "The proportion of medical aid payments has increased, which typically indicates "
        "more stable and reliable payment sources.",
    ),
    InsightRule(
        "medical_aid", _all(_growth, _defined("medical_aid_pct")),
        "There has been a small reduction in the proportion of medical aid payments, which "
        "may warrant a review of medical aid billing procedures.",
    ),

    InsightRule(
        "closing", _not_growth,
        "Consider reviewing billing processes and payment follow-up procedures to optimize cash flow.",
    ),
]


def financial_insight(trends: Dict[str, PercentDelta]) -> str:
    """Narrative for the period-over-period financial trend cards."""
    context = {}
    for name in ("revenue", "received", "outstanding", "medical_aid"):
        context.update(_delta_fields(name, trends.get(name, PercentDelta(None, "undefined"))))
    return " ".join(evaluate(FINANCIAL_RULES, FINANCIAL_SECTIONS, context))


# ── MBT scenario ─────────────────────────────────────────────────────────────

SCENARIO_SECTIONS = ("impact", "most_impacted")

SCENARIO_RULES = [
    InsightRule("impact", lambda c: c["difference"] >= 0,
                "Positive impact of {difference_label} ({change_label})."),
    InsightRule("impact", _always,
                "Decrease of {difference_label} ({change_label})."),
    InsightRule("most_impacted", lambda c: c["most_impacted"] is not None,
                "Most impacted procedure: {most_impacted}."),
]


def scenario_insight(difference: float, change: PercentDelta,
                     most_impacted: Optional[str]) -> str:
    context = {
        "difference": difference,
        "difference_label": format_rand(abs(difference)),
        "change_label": change.format(),
        "most_impacted": most_impacted,
    }
    return " ".join(evaluate(SCENARIO_RULES, SCENARIO_SECTIONS, context))
