"""
OTP weekly bundle billing.

Medicare pays opioid treatment programs a weekly bundle per patient. Full
bundles cover in-clinic dosing; take-home bundles cover weeks where the
patient doses at home. This module derives the week's bundle counts and
revenue from active medication orders, and summarizes the services,
vitals and diagnoses that support the claims.
"""

from datetime import datetime, timedelta

from clinic_ops.clinic_records.database import BillingRepository

METHADONE_MIN_DAILY_DOSE_MG = 30

METHADONE_FULL_BUNDLE_RATE = 247.50
BUPRENORPHINE_FULL_BUNDLE_RATE = 235.75
METHADONE_TAKEHOME_RATE = 89.25
BUPRENORPHINE_TAKEHOME_RATE = 85.50

RATE_CODES = [
    {"code": "7969", "description": "Methadone Full Bundle", "hcpcs": "G2067", "facility_type": "Freestanding", "rate": 247.50},
    {"code": "7970", "description": "Methadone Take-Home Bundle", "hcpcs": "G2078", "facility_type": "Freestanding", "rate": 89.25},
    {"code": "7971", "description": "Buprenorphine Full Bundle", "hcpcs": "G2068", "facility_type": "Freestanding", "rate": 235.75},
    {"code": "7972", "description": "Buprenorphine Take-Home Bundle", "hcpcs": "G2079", "facility_type": "Freestanding", "rate": 85.50},
    {"code": "7973", "description": "Methadone Full Bundle", "hcpcs": "G2067", "facility_type": "Hospital-Based", "rate": 267.25},
    {"code": "7974", "description": "Methadone Take-Home Bundle", "hcpcs": "G2078", "facility_type": "Hospital-Based", "rate": 96.75},
    {"code": "7975", "description": "Buprenorphine Full Bundle", "hcpcs": "G2068", "facility_type": "Hospital-Based", "rate": 254.50},
    {"code": "7976", "description": "Buprenorphine Take-Home Bundle", "hcpcs": "G2079", "facility_type": "Hospital-Based", "rate": 92.25},
]

ICD10_DESCRIPTIONS = {
    "F11.20": "Opioid dependence, uncomplicated",
    "F11.21": "Opioid dependence, in remission",
    "F11.23": "Opioid dependence with withdrawal",
    "F11.10": "Opioid abuse, uncomplicated",
    "F10.20": "Alcohol dependence, uncomplicated",
    "F14.20": "Cocaine dependence, uncomplicated",
    "F15.20": "Other stimulant dependence",
    "F41.1": "Generalized anxiety disorder",
    "F32.9": "Major depressive disorder, single episode",
    "F33.1": "Major depressive disorder, recurrent, moderate",
    "Z79.891": "Long term (current) use of opiate analgesic",
}

VITAL_FIELDS = ["systolic_bp", "diastolic_bp", "heart_rate", "temperature", "weight"]

# Readings closer than this are reported as stable
TREND_TOLERANCE = 2


def calculate_bundle_stats(orders: list) -> dict:
    """Bundle counts and revenue for the week from active medication orders."""
    methadone = [o for o in orders if (o.daily_dose_mg or 0) >= METHADONE_MIN_DAILY_DOSE_MG]
    buprenorphine = [o for o in orders if 0 < (o.daily_dose_mg or 0) < METHADONE_MIN_DAILY_DOSE_MG]
    takehome_count = sum(1 for o in orders if (o.max_takehome or 0) > 0)

    methadone_full = sum(1 for o in methadone if not o.max_takehome)
    buprenorphine_full = sum(1 for o in buprenorphine if not o.max_takehome)

    methadone_revenue = methadone_full * METHADONE_FULL_BUNDLE_RATE
    buprenorphine_revenue = buprenorphine_full * BUPRENORPHINE_FULL_BUNDLE_RATE
    takehome_revenue = takehome_count * ((METHADONE_TAKEHOME_RATE + BUPRENORPHINE_TAKEHOME_RATE) / 2)

    return {
        "weekly_bundle_revenue": methadone_revenue + buprenorphine_revenue + takehome_revenue,
        "bundle_stats": {
            "methadone_full_bundles": {
                "count": methadone_full,
                "revenue": methadone_revenue,
                "rate_code": "7969",
                "hcpcs": "G2067",
            },
            "buprenorphine_full_bundles": {
                "count": buprenorphine_full,
                "revenue": buprenorphine_revenue,
                "rate_code": "7971",
                "hcpcs": "G2068",
            },
            "takehome_bundles": {
                "count": takehome_count,
                "revenue": takehome_revenue,
                "rate_codes": "7970/7972",
            },
        },
    }


def count_qualifying_services(
    dose_events: list[dict],
    appointment_types: list[str | None],
    lab_test_names: list[list[str]],
) -> dict:
    individual = 0
    group = 0
    for appointment_type in appointment_types:
        lowered = (appointment_type or "").lower()
        if "individual" in lowered or "counseling" in lowered:
            individual += 1
        if "group" in lowered:
            group += 1

    toxicology = 0
    for test_names in lab_test_names:
        joined = " ".join(test_names).lower()
        if "tox" in joined or "drug" in joined:
            toxicology += 1

    return {
        "medication_administration": sum(1 for e in dose_events if e["outcome"] == "administered"),
        "individual_counseling": individual,
        "group_counseling": group,
        "toxicology_testing": toxicology,
    }


def calculate_trend(current: float | None, previous: float | None) -> str:
    if not current or not previous:
        return "stable"
    diff = current - previous
    if abs(diff) < TREND_TOLERANCE:
        return "stable"
    return "up" if diff > 0 else "down"


def _reading(vital: dict) -> dict:
    reading = {"date": vital["measurement_date"]}
    reading.update({field: vital[field] for field in VITAL_FIELDS})
    return reading


def calculate_vitals_trending(vitals: list[dict]) -> list[dict]:
    """Latest reading per patient against the one before it."""
    by_patient: dict[str, list[dict]] = {}
    for vital in vitals:
        by_patient.setdefault(vital["patient_id"], []).append(vital)

    trending = []
    for patient_id, readings in by_patient.items():
        readings.sort(key=lambda v: v["measurement_date"], reverse=True)
        current = readings[0]
        previous = readings[1] if len(readings) > 1 else None
        trending.append({
            "patient_id": patient_id,
            "patient_name": f"{current['first_name']} {current['last_name']}",
            "current": _reading(current),
            "previous": _reading(previous) if previous else None,
            "trends": {
                "bp_trend": calculate_trend(current["systolic_bp"], previous and previous["systolic_bp"]),
                "hr_trend": calculate_trend(current["heart_rate"], previous and previous["heart_rate"]),
                "weight_trend": calculate_trend(current["weight"], previous and previous["weight"]),
            },
        })
    return trending


def summarize_icd10_codes(diagnoses: list[dict]) -> list[dict]:
    """Diagnosis code frequency, most frequent first."""
    frequency: dict[str, dict] = {}
    for diagnosis in diagnoses:
        for code in diagnosis["diagnosis_codes"]:
            entry = frequency.setdefault(code, {"count": 0, "patients": set()})
            entry["count"] += 1
            entry["patients"].add(diagnosis["patient_id"])

    summary = [
        {
            "code": code,
            "description": ICD10_DESCRIPTIONS.get(code, "Unknown diagnosis"),
            "count": entry["count"],
            "patient_count": len(entry["patients"]),
        }
        for code, entry in frequency.items()
    ]
    summary.sort(key=lambda item: item["count"], reverse=True)
    return summary


def get_billing_data(now: datetime | None = None, repo: BillingRepository | None = None) -> dict:
    repo = repo or BillingRepository()
    week_start = ((now or datetime.now()) - timedelta(days=7)).isoformat()

    data = calculate_bundle_stats(repo.get_active_orders())
    data["qualifying_services"] = count_qualifying_services(
        repo.get_dose_events_since(week_start),
        repo.get_appointment_types_since(week_start),
        repo.get_lab_test_names_since(week_start),
    )
    data["rate_codes"] = RATE_CODES
    data["pending_claims_count"] = len(
        repo.get_claims(statuses=["pending"], service_since=week_start)
    )
    data["vitals_trending"] = calculate_vitals_trending(repo.get_recent_vitals(limit=100))
    data["icd10_summary"] = summarize_icd10_codes(repo.get_recent_diagnoses(limit=50))
    return data
