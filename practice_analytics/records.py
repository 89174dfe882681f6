"""
practice_analytics/records.py
=============================
Typed record schemas for the five practice resources.

Raw CSV rows arrive as strings. Before any view touches them they are cast
to their semantic types here, the same way the Silver layer of a pipeline
turns a raw landing table into something safe to aggregate:

  1. Missing columns     — added as blanks so every schema column exists
  2. Text columns        — trimmed, blanks instead of NaN
  3. Numeric columns     — float, unparseable/absent → 0.0, negatives → 0.0
  4. Date columns        — calendar dates, unparseable/absent → NaT
  5. Quality flags       — rows missing a required field are quarantined
  6. Deduplication       — one row per identity
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Tuple

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

VALID = "VALID"


@dataclass(frozen=True)
class ResourceSchema:
    """Column layout of one resource and the rules used to type it."""
    name: str
    id_column: str
    required: Tuple[str, ...] = ()
    text_columns: Tuple[str, ...] = ()
    numeric_columns: Tuple[str, ...] = ()
    date_columns: Tuple[str, ...] = ()
    unique_key: str = ""

    @property
    def columns(self) -> Tuple[str, ...]:
        return self.text_columns + self.numeric_columns + self.date_columns


@dataclass
class CoercionResult:
    records: pd.DataFrame
    quarantined: pd.DataFrame
    duplicates: int = 0
    clamped: Dict[str, int] = field(default_factory=dict)


PATIENT_RECORD = ResourceSchema(
    name="patients",
    id_column="Patient ID",
    required=("Patient ID",),
    text_columns=("Patient ID", "Patient First Name", "Patient Last Name"),
    unique_key="Patient ID",
)

PROCEDURE_RECORD = ResourceSchema(
    name="procedures",
    id_column="Procedure Record ID",
    required=("Procedure Record ID",),
    text_columns=(
        "Procedure Record ID", "Patient ID", "Provider ID", "Location ID",
        "Procedure Code", "Procedure Description",
    ),
    date_columns=("Date of Service",),
    unique_key="Procedure Record ID",
)

# A billing row has no identity of its own; the procedure reference is
# optional, but at most one billing row may point at a given procedure.
BILLING_RECORD = ResourceSchema(
    name="billing",
    id_column="Procedure Record ID",
    text_columns=("Procedure Record ID",),
    numeric_columns=(
        "Billed Amount", "Outstanding Amount",
        "Amount Paid - Medical Aid", "Amount Paid - Patient",
        "MBT Percentage",
    ),
    date_columns=(
        "Date Billed / Claim Submit Date",
        "Date Paid - Medical Aid", "Date Paid - Patient",
    ),
    unique_key="Procedure Record ID",
)

DOCTOR_RECORD = ResourceSchema(
    name="doctors",
    id_column="Provider ID",
    required=("Provider ID",),
    text_columns=("Provider ID", "Provider Name"),
    unique_key="Provider ID",
)

HOSPITAL_RECORD = ResourceSchema(
    name="hospitals",
    id_column="Location ID",
    required=("Location ID",),
    text_columns=("Location ID", "Location Name"),
    unique_key="Location ID",
)

SCHEMAS = {
    schema.name: schema
    for schema in (PATIENT_RECORD, PROCEDURE_RECORD, BILLING_RECORD,
                   DOCTOR_RECORD, HOSPITAL_RECORD)
}


def empty_records(schema: ResourceSchema) -> pd.DataFrame:
    """A typed frame with every schema column and no rows."""
    data = {}
    for column in schema.text_columns:
        data[column] = pd.Series([], dtype=object)
    for column in schema.numeric_columns:
        data[column] = pd.Series([], dtype=float)
    for column in schema.date_columns:
        data[column] = pd.Series([], dtype="datetime64[ns]")
    return pd.DataFrame(data)


def parse_dates(values: pd.Series) -> pd.Series:
    """Calendar dates at midnight; anything unparseable becomes NaT."""
    if pd.api.types.is_datetime64_any_dtype(values):
        parsed = values
    else:
        text = values.astype(object).where(values.notna(), "").astype(str).str.strip()
        parsed = pd.to_datetime(text, errors="coerce", format="mixed", utc=True)
    if parsed.dt.tz is not None:
        parsed = parsed.dt.tz_localize(None)
    return parsed.dt.normalize().astype("datetime64[ns]")


def parse_amounts(values: pd.Series) -> pd.Series:
    """Floats, with anything unparseable or non-finite ("inf", "1e400") counted as 0.0."""
    text = values.astype(object).where(values.notna(), "").astype(str).str.strip()
    amounts = pd.to_numeric(text, errors="coerce").astype(float)
    return amounts.replace([np.inf, -np.inf], np.nan).fillna(0.0)


def _quality_flags(df: pd.DataFrame, schema: ResourceSchema) -> pd.Series:
    flags = pd.Series(VALID, index=df.index, dtype=object)
    # Reversed so the first missing required column names the flag
    for column in reversed(schema.required):
        flags = flags.where(df[column] != "", f"MISSING_FIELD:{column}")
    return flags


def coerce_records(raw: pd.DataFrame, schema: ResourceSchema) -> CoercionResult:
    """Cast raw string rows to the schema's types and split off bad rows."""
    df = raw.copy()
    for column in schema.columns:
        if column not in df.columns:
            df[column] = ""

    for column in schema.text_columns:
        df[column] = df[column].astype(object).where(df[column].notna(), "").astype(str).str.strip()

    clamped = {}
    for column in schema.numeric_columns:
        amounts = parse_amounts(df[column])
        negatives = int((amounts < 0).sum())
        if negatives:
            clamped[column] = negatives
            logger.warning("%s: %d negative value(s) in %r set to 0",
                           schema.name, negatives, column)
        df[column] = amounts.clip(lower=0.0)

    for column in schema.date_columns:
        df[column] = parse_dates(df[column])

    df["dq_flag"] = _quality_flags(df, schema)
    valid = df[df["dq_flag"] == VALID].drop(columns=["dq_flag"])
    quarantined = df[df["dq_flag"] != VALID].copy()
    if len(quarantined) > 0:
        logger.warning("%s: quarantined %d row(s): %s", schema.name, len(quarantined),
                       quarantined["dq_flag"].value_counts().to_dict())

    duplicates = 0
    if schema.unique_key:
        keyed = valid[schema.unique_key] != ""
        before = int(keyed.sum())
        deduped = valid[keyed].drop_duplicates(subset=[schema.unique_key], keep="first")
        duplicates = before - len(deduped)
        if duplicates:
            logger.warning("%s: removed %d duplicate %r row(s)",
                           schema.name, duplicates, schema.unique_key)
            valid = valid.loc[valid.index.isin(deduped.index) | ~keyed]

    return CoercionResult(
        records=valid.reset_index(drop=True),
        quarantined=quarantined.reset_index(drop=True),
        duplicates=duplicates,
        clamped=clamped,
    )
