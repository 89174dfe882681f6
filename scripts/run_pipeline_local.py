#!/usr/bin/env python3
"""
scripts/run_pipeline_local.py
==============================
Build every dashboard view from the practice CSVs and print what they say.

This is the quickest way to check a fresh data drop: it loads the five
resources (in parallel, through the shared cache), reports how many rows were
quarantined, then builds each view exactly as the dashboard server would and
prints a short summary of each.

Every step is recorded in an audit log written as JSON next to the data.

Run with:
  python3 scripts/run_pipeline_local.py
  python3 scripts/run_pipeline_local.py --today 2024-06-30 --days 90
"""

import argparse
import json
import logging
import os
import sys
from datetime import datetime

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from practice_analytics.config.dashboard_config import AUDIT_PATH, DATA_DIR, LOG_LEVEL

from practice_analytics.loader import ResourceCache
from practice_analytics.views import (
    Scenario, compare_scenario, doctor_analysis, financial_analysis,
    load_practice_data, practice_summary, procedure_baseline, recent_patients,
)
from practice_analytics.insights import format_rand

pipeline_log = []
run_start = datetime.now()


def log_step(step, layer, status, records_in=0, records_out=0, notes=""):
    duration = (datetime.now() - run_start).seconds
    entry = dict(step=step, layer=layer, status=status,
                 records_in=records_in, records_out=records_out,
                 elapsed_sec=duration, notes=notes,
                 timestamp=datetime.now().strftime("%H:%M:%S"))
    pipeline_log.append(entry)
    icon = "✓" if status == "success" else "✗"
    print(f"  {icon} [{layer.upper():6}] {step:<35} "
          f"in={records_in:>6,}  out={records_out:>6,}  ({duration}s)")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Build all practice dashboard views locally.")
    parser.add_argument("--data-dir", default=str(DATA_DIR), help="Directory holding the CSV resources")
    parser.add_argument("--today", default=None, help="Treat this date as today (YYYY-MM-DD)")
    parser.add_argument("--days", type=int, default=30, help="Financial window in trailing days")
    parser.add_argument("--audit-log", default=str(AUDIT_PATH), help="Where to write the audit log")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(level=LOG_LEVEL, format="    %(levelname)s %(name)s: %(message)s")

    print(f"\n{'='*65}")
    print(f"  PRACTICE ANALYTICS — LOCAL RUN")
    print(f"  Started: {run_start.strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"  Data:    {args.data_dir}")
    print(f"{'='*65}\n")

    # ── Load ─────────────────────────────────────────────────────────────────
    print("STEP 1: LOAD RESOURCES")
    print("─" * 45)
    cache = ResourceCache(data_dir=args.data_dir)
    data = load_practice_data(cache)
    for name, counts in cache.quality().items():
        total_rows = counts["records"] + counts["quarantined"] + counts["duplicates"]
        status = "success" if counts["records"] > 0 else "empty"
        log_step(f"load_{name}", "load", status,
                 records_in=total_rows, records_out=counts["records"],
                 notes=f"quarantined={counts['quarantined']} duplicates={counts['duplicates']}")

    # ── Views ────────────────────────────────────────────────────────────────
    print("\nSTEP 2: BUILD VIEWS")
    print("─" * 45)

    summary = practice_summary(data, today=args.today)
    log_step("practice_summary", "view", "success",
             records_in=len(data.billing), records_out=1)

    financial = financial_analysis(data, days=args.days, today=args.today)
    log_step("financial_analysis", "view", "success",
             records_in=len(data.billing), records_out=len(financial["outstanding_claims"]))

    doctor_views = []
    for provider_id in data.doctors["Provider ID"]:
        view = doctor_analysis(data, selected_doctor=provider_id, today=args.today)
        doctor_views.append(view)
    log_step("doctor_analysis", "view", "success",
             records_in=len(data.procedures), records_out=len(doctor_views))

    recent = recent_patients(data)
    log_step("recent_patients", "view", "success",
             records_in=len(data.procedures), records_out=len(recent))

    baseline = procedure_baseline(data, period="lastyear", today=args.today)
    scenario = compare_scenario(baseline, Scenario(
        name="MBT +10%", period="lastyear",
        new_mbt={row["description"]: row["current_mbt"] * 1.1 for _, row in baseline.iterrows()},
    ))
    log_step("mbt_scenario", "view", "success",
             records_in=len(data.billing), records_out=len(baseline))

    # ── Report ───────────────────────────────────────────────────────────────
    total_duration = (datetime.now() - run_start).seconds
    print(f"\n{'='*65}")
    print(f"  RUN COMPLETE in {total_duration}s")
    print(f"{'='*65}")

    print(f"\n  📊 PRACTICE SUMMARY")
    print("─" * 65)
    print(f"  Doctors: {summary['doctors']}   Patients: {summary['patients']}   "
          f"Procedures: {summary['procedures']}")
    print(f"  Revenue (YTD): {format_rand(summary['revenue_ytd'])}   "
          f"Outstanding: {format_rand(summary['outstanding'])}")

    print(f"\n  💰 FINANCIAL — last {financial['window']['days']} days")
    print("─" * 65)
    cards = financial["cards"]
    print(f"  Revenue {format_rand(cards['revenue'])}  ({financial['trends']['revenue']['label']})   "
          f"Received {format_rand(cards['received'])}  ({financial['trends']['received']['label']})")
    print(f"  {financial['insight']}")

    print(f"\n  🩺 DOCTORS")
    print("─" * 65)
    for view in doctor_views:
        doctor = view["selected_doctor"]
        print(f"  {doctor['name']:<28} procedures={view['metrics']['procedure_count']:>5.0f}  "
              f"billing Δ={view['deltas']['total_billed']['label']:>8}  trend={view['procedure_trend']}")

    print(f"\n  🧾 MBT SCENARIO ({scenario['scenario']})")
    print("─" * 65)
    print(f"  {scenario['insight']}")

    # Save the audit log as JSON
    os.makedirs(os.path.dirname(args.audit_log), exist_ok=True)
    with open(args.audit_log, "w") as f:
        json.dump(pipeline_log, f, indent=2)
    print(f"\n  Audit log: {args.audit_log}")
    print(f"\n  Next step: run  practice-dashboard  to serve the views as JSON")
    return 0


if __name__ == "__main__":
    sys.exit(main())
