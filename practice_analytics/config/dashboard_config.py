"""
practice_analytics/config/dashboard_config.py
=============================================
Central configuration for the practice analytics dashboard.

Every view reads the same five flat files and applies the same bucket
boundaries and thresholds. Keeping them here means a change to, say, the
claim-size buckets is made once instead of in every view that draws them.

Values that differ between machines (data directory, port, log level) can be
overridden with environment variables.
"""

import os
from pathlib import Path

import numpy as np

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent

# ─────────────────────────────────────────────────────────────────────────────
# INPUT RESOURCES
# One CSV per entity, comma separated, UTF-8, header row first.
# ─────────────────────────────────────────────────────────────────────────────
DATA_DIR = Path(os.environ.get("PRACTICE_DATA_DIR", PROJECT_ROOT / "data"))

RESOURCE_FILES = {
    "patients":   "patients.csv",
    "procedures": "procedures.csv",
    "billing":    "billing.csv",
    "doctors":    "doctors.csv",
    "hospitals":  "hospitals.csv",
}

CSV_OPTIONS = {
    "sep":      ",",
    "encoding": "utf-8",
}

# ─────────────────────────────────────────────────────────────────────────────
# DASHBOARD SERVER
# ─────────────────────────────────────────────────────────────────────────────
DASHBOARD = {
    "host": os.environ.get("DASHBOARD_HOST", ""),
    "port": int(os.environ.get("DASHBOARD_PORT", "5050")),
}

LOG_LEVEL = os.environ.get("PRACTICE_LOG_LEVEL", "INFO")

# Audit log written by scripts/run_pipeline_local.py
OUTPUT_BASE = Path(os.environ.get("PRACTICE_OUTPUT_DIR", DATA_DIR / "output"))
AUDIT_PATH = OUTPUT_BASE / "pipeline_audit_log.json"

# ─────────────────────────────────────────────────────────────────────────────
# BUCKETS
# Claim sizes are half-open [min, max); the last bucket has no upper bound.
# Payment delays use inclusive upper day thresholds; None means open-ended.
# ─────────────────────────────────────────────────────────────────────────────
AMOUNT_BUCKETS = [
    ("0-2500",     0,     2500),
    ("2500-5000",  2500,  5000),
    ("5000-7500",  5000,  7500),
    ("7500-10000", 7500,  10000),
    ("10000+",     10000, np.inf),
]

DELAY_BUCKETS = [
    ("0-7",   7),
    ("8-14",  14),
    ("15-30", 30),
    ("31-60", 60),
    ("60+",   None),
]

# ─────────────────────────────────────────────────────────────────────────────
# THRESHOLDS
# ─────────────────────────────────────────────────────────────────────────────
TREND_THRESHOLDS = {
    "increase_factor": 1.1,   # second-half mean above 110% of first half
    "decrease_factor": 0.9,   # second-half mean below 90% of first half
}

INSIGHT_THRESHOLDS = {
    "on_par_pct":             10.0,
    "outstanding_high_ratio": 1.2,
    "outstanding_low_ratio":  0.8,
    "patients_pct":           10.0,
}

# ─────────────────────────────────────────────────────────────────────────────
# JOIN PLACEHOLDERS
# Substituted when a foreign key has no match, so rows are never dropped.
# ─────────────────────────────────────────────────────────────────────────────
PLACEHOLDERS = {
    "provider":  "Not Assigned",
    "patient":   "Unknown Patient",
    "location":  "Unknown Location",
    "procedure": "Unknown Procedure",
}

# ─────────────────────────────────────────────────────────────────────────────
# TIME WINDOWS
# Named periods map to trailing days; "ytd" starts on 1 January.
# ─────────────────────────────────────────────────────────────────────────────
TIME_PERIODS = {
    "last30days": 30,
    "last90days": 90,
    "lastyear":   365,
    "ytd":        "ytd",
}

DATE_RANGE_OPTIONS = [7, 30, 45, 60, 90, 180, 365]

DEFAULT_DOCTOR_WINDOW_DAYS = 182   # about six months
DEFAULT_FINANCIAL_WINDOW_DAYS = 30
RECENT_PATIENTS_LIMIT = 5
