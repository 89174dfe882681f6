#!/usr/bin/env python3
"""
data/generate_practice_data.py
===============================
Generates realistic sample CSVs for the five practice resources:
patients, procedures, billing, doctors and hospitals.
Run this to regenerate the flat files the dashboard reads.

Usage:
    python3 data/generate_practice_data.py
    python3 data/generate_practice_data.py --procedures 5000 --end 2024-12-31
"""

import argparse
import os
import random
from datetime import datetime, timedelta

import numpy as np
import pandas as pd

# Seed for reproducibility
random.seed(42)
np.random.seed(42)

FIRST_NAMES = ['Thabo', 'Lerato', 'Sipho', 'Naledi', 'Johan', 'Anika', 'Pieter', 'Zanele',
               'Ayesha', 'Kagiso', 'Megan', 'Riaan', 'Nomsa', 'Ethan', 'Priya', 'Lwazi']
LAST_NAMES  = ['Nkosi', 'Dlamini', 'van der Merwe', 'Botha', 'Naidoo', 'Mokoena',
               'Pretorius', 'Khumalo', 'Smith', 'Govender', 'Mahlangu', 'Steyn']

DOCTORS = [
    ('DR001', 'Dr. Sarah van Wyk'),
    ('DR002', 'Dr. Themba Zulu'),
    ('DR003', 'Dr. Ravi Pillay'),
    ('DR004', 'Dr. Elise Fourie'),
    ('DR005', 'Dr. Musa Ndlovu'),
]
HOSPITALS = [
    ('LOC01', 'Netcare Milpark'),
    ('LOC02', 'Life Fourways'),
    ('LOC03', 'Mediclinic Sandton'),
]

# (code, description, typical billed amount)
PROCEDURES = [
    ('A101', 'General Consultation',        650),
    ('A102', 'Follow-up Consultation',      450),
    ('B201', 'Knee Arthroscopy',           9800),
    ('B202', 'Shoulder Arthroscopy',      11200),
    ('C301', 'Cataract Surgery',           7400),
    ('D401', 'Colonoscopy',                4200),
    ('D402', 'Gastroscopy',                3100),
    ('E501', 'Hip Replacement',           14500),
]

MBT_RATES = [100, 100, 100, 150, 200, 250, 300]


def generate_doctors():
    return pd.DataFrame(DOCTORS, columns=['Provider ID', 'Provider Name'])


def generate_hospitals():
    return pd.DataFrame(HOSPITALS, columns=['Location ID', 'Location Name'])


def generate_patients(n=600):
    records = []
    for i in range(n):
        records.append({
            'Patient ID':         f'P{i + 1:05d}',
            'Patient First Name': random.choice(FIRST_NAMES),
            'Patient Last Name':  random.choice(LAST_NAMES),
        })
    # Inject a row with no identity (quarantined on load)
    records.append({'Patient ID': '', 'Patient First Name': 'Orphan', 'Patient Last Name': 'Row'})
    return pd.DataFrame(records)


def generate_procedures(patients_df, n=3000, end=None):
    end = end or datetime.now()
    start = end - timedelta(days=540)
    patient_ids = [pid for pid in patients_df['Patient ID'] if pid]
    doctor_ids = [pid for pid, _ in DOCTORS]
    # Some doctors are busier than others
    doctor_weights = np.random.dirichlet(np.ones(len(doctor_ids)) * 2)

    records = []
    for i in range(n):
        code, description, _ = random.choice(PROCEDURES)
        service_date = start + timedelta(days=random.randint(0, (end - start).days))
        provider = np.random.choice(doctor_ids, p=doctor_weights)

        # Inject realistic data quality issues (~3%)
        date_text = service_date.strftime('%Y-%m-%d')
        if random.random() < 0.010:
            date_text = random.choice(['', 'not recorded', '31/02/2024'])   # unusable date
        if random.random() < 0.010:
            provider = 'DR999'                                             # locum, not on the doctor list

        records.append({
            'Procedure Record ID':   f'PR{i + 1:06d}',
            'Patient ID':            random.choice(patient_ids),
            'Provider ID':           provider,
            'Location ID':           random.choice(HOSPITALS)[0],
            'Procedure Code':        code,
            'Procedure Description': description,
            'Date of Service':       date_text,
        })
    return pd.DataFrame(records)


def generate_billing(procedures_df, billed_share=0.92):
    """One billing row for most procedures, with partial and late payments."""
    typical = {code: amount for code, _, amount in PROCEDURES}
    records = []

    for _, proc in procedures_df.iterrows():
        if random.random() > billed_share:
            continue                                    # not billed yet
        try:
            service_date = datetime.strptime(proc['Date of Service'], '%Y-%m-%d')
        except ValueError:
            service_date = None

        mbt = random.choice(MBT_RATES)
        billed = round(typical[proc['Procedure Code']] * mbt / 100 * random.uniform(0.85, 1.15), 2)
        billed_date = service_date + timedelta(days=random.randint(0, 10)) if service_date else None

        medical_aid_share = random.choice([0.0, 0.6, 0.8, 1.0])
        aid_paid = round(billed * medical_aid_share, 2) if random.random() < 0.8 else 0.0
        patient_paid = round((billed - aid_paid) * random.choice([0.0, 0.5, 1.0]), 2)
        outstanding = round(billed - aid_paid - patient_paid, 2)

        aid_date = (billed_date + timedelta(days=int(np.random.gamma(2.0, 12.0)))
                    if billed_date and aid_paid > 0 else None)
        patient_date = (billed_date + timedelta(days=int(np.random.gamma(1.5, 20.0)))
                        if billed_date and patient_paid > 0 else None)

        billed_text = f'{billed:.2f}'
        if random.random() < 0.005:
            billed_text = 'R' + billed_text                 # unparseable amount → 0

        records.append({
            'Procedure Record ID':             proc['Procedure Record ID'],
            'Billed Amount':                   billed_text,
            'Outstanding Amount':              f'{outstanding:.2f}',
            'Amount Paid - Medical Aid':       f'{aid_paid:.2f}',
            'Amount Paid - Patient':           f'{patient_paid:.2f}',
            'MBT Percentage':                  mbt,
            'Date Billed / Claim Submit Date': billed_date.strftime('%Y-%m-%d') if billed_date else '',
            'Date Paid - Medical Aid':         aid_date.strftime('%Y-%m-%d') if aid_date else '',
            'Date Paid - Patient':             patient_date.strftime('%Y-%m-%d') if patient_date else '',
        })

    billing = pd.DataFrame(records)
    # Inject a handful of duplicate billing rows (deduplicated on load)
    return pd.concat([billing, billing.sample(5, random_state=42)], ignore_index=True)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Generate sample practice CSVs.")
    parser.add_argument('--patients', type=int, default=600)
    parser.add_argument('--procedures', type=int, default=3000)
    parser.add_argument('--end', default=None, help="Last possible date of service (YYYY-MM-DD)")
    parser.add_argument('--out-dir', default=os.path.dirname(os.path.abspath(__file__)))
    return parser.parse_args(argv)


if __name__ == '__main__':
    args = parse_args()
    end = datetime.strptime(args.end, '%Y-%m-%d') if args.end else None
    out_dir = args.out_dir

    frames = {}
    print("Generating doctors and hospitals...")
    frames['doctors'] = generate_doctors()
    frames['hospitals'] = generate_hospitals()

    print("Generating patients...")
    frames['patients'] = generate_patients(args.patients)

    print("Generating procedures...")
    frames['procedures'] = generate_procedures(frames['patients'], args.procedures, end)

    print("Generating billing...")
    frames['billing'] = generate_billing(frames['procedures'])

    for name, df in frames.items():
        df.to_csv(os.path.join(out_dir, f'{name}.csv'), index=False)
        print(f"  ✓ {len(df):,} {name} records → data/{name}.csv")

    print("\nDone. Run the pipeline next:")
    print("  python3 scripts/run_pipeline_local.py")
