"""
Prescription monitoring program (PMP) checks.

Lookups go to the state PMP configured in pdmp_config. The state interface is
simulated here: each lookup draws a handful of controlled-substance fills,
which are then screened for the usual diversion red flags and stored with an
audit entry.
"""

import os
import random
import sqlite3
from datetime import date, datetime, timedelta

from dotenv import load_dotenv
from rich.console import Console

from clinic_ops.clinic_records.database import PatientRepository, PmpRepository

load_dotenv(override=True)

PMP_STATE_CODE = os.getenv("PMP_STATE_CODE", "MI")

console = Console()

MEDICATIONS = [
    {"name": "Hydrocodone/APAP 10/325mg", "schedule": "C-II", "mme": 15},
    {"name": "Oxycodone 30mg", "schedule": "C-II", "mme": 45},
    {"name": "Alprazolam 2mg", "schedule": "C-IV", "mme": 0},
    {"name": "Clonazepam 1mg", "schedule": "C-IV", "mme": 0},
    {"name": "Methadone 10mg", "schedule": "C-II", "mme": 40},
    {"name": "Buprenorphine/Naloxone 8/2mg", "schedule": "C-III", "mme": 0},
    {"name": "Gabapentin 300mg", "schedule": "C-V", "mme": 0},
    {"name": "Tramadol 50mg", "schedule": "C-IV", "mme": 5},
]

PRESCRIBERS = [
    {"name": "Dr. John Smith", "npi": "1234567890"},
    {"name": "Dr. Sarah Johnson", "npi": "2345678901"},
    {"name": "Dr. Michael Brown", "npi": "3456789012"},
    {"name": "Dr. Emily Davis", "npi": "4567890123"},
]

PHARMACIES = [
    {"name": "CVS Pharmacy #1234", "npi": "5678901234"},
    {"name": "Walgreens #5678", "npi": "6789012345"},
    {"name": "Rite Aid #9012", "npi": "7890123456"},
    {"name": "Meijer Pharmacy", "npi": "8901234567"},
]

BENZODIAZEPINES = ["alprazolam", "clonazepam", "diazepam"]

MME_THRESHOLD = 90
MIN_PRESCRIBERS = 3
MIN_PHARMACIES = 3
MAX_RECENT_FILLS = 3
RECENT_FILL_DAYS = 30

NOT_CONFIGURED_MESSAGE = "PMP is not configured. Please configure your PMP credentials first."


class PmpNotConfiguredError(Exception):
    """No active PMP configuration exists."""
    pass


def simulate_prescriptions(rng: random.Random | None = None, today: date | None = None) -> list[dict]:
    """Zero to five controlled-substance fills from the past year."""
    rng = rng or random.Random()
    today = today or date.today()

    prescriptions = []
    for _ in range(rng.randint(0, 5)):
        medication = rng.choice(MEDICATIONS)
        prescriber = rng.choice(PRESCRIBERS)
        pharmacy = rng.choice(PHARMACIES)
        fill_date = today - timedelta(days=rng.randint(0, 364))
        prescriptions.append({
            "medication_name": medication["name"],
            "dea_schedule": medication["schedule"],
            "fill_date": fill_date.isoformat(),
            "quantity": rng.randint(30, 119),
            "days_supply": rng.randint(7, 36),
            "prescriber_name": prescriber["name"],
            "prescriber_npi": prescriber["npi"],
            "pharmacy_name": pharmacy["name"],
            "pharmacy_npi": pharmacy["npi"],
            "morphine_equivalent_dose": medication["mme"] * rng.randint(1, 3),
        })
    return prescriptions


def analyze_red_flags(prescriptions: list[dict], today: date | None = None) -> dict[str, str]:
    today = today or date.today()
    red_flags: dict[str, str] = {}
    if not prescriptions:
        return red_flags

    prescribers = {p["prescriber_npi"] for p in prescriptions}
    if len(prescribers) >= MIN_PRESCRIBERS:
        red_flags["multiple_prescribers"] = f"{len(prescribers)} different prescribers in 12 months"

    pharmacies = {p["pharmacy_npi"] for p in prescriptions}
    if len(pharmacies) >= MIN_PHARMACIES:
        red_flags["multiple_pharmacies"] = f"{len(pharmacies)} different pharmacies in 12 months"

    total_mme = sum(p.get("morphine_equivalent_dose") or 0 for p in prescriptions)
    if total_mme > MME_THRESHOLD:
        red_flags["high_mme"] = f"Total MME: {total_mme} mg/day"

    has_opioid = any(p["dea_schedule"] == "C-II" for p in prescriptions)
    has_benzo = any(
        any(benzo in p["medication_name"].lower() for benzo in BENZODIAZEPINES)
        for p in prescriptions
    )
    if has_opioid and has_benzo:
        red_flags["concurrent_opioid_benzo"] = "Concurrent opioid and benzodiazepine prescriptions"

    recent = [
        p for p in prescriptions
        if (today - date.fromisoformat(p["fill_date"])).days < RECENT_FILL_DAYS
    ]
    if len(recent) > MAX_RECENT_FILLS:
        red_flags["frequent_fills"] = f"{len(recent)} prescriptions filled in last 30 days"

    return red_flags


def determine_alert_level(red_flags: dict) -> str:
    if "concurrent_opioid_benzo" in red_flags or "high_mme" in red_flags:
        return "critical"
    if len(red_flags) >= 2:
        return "high"
    if len(red_flags) == 1:
        return "medium"
    return "low"


# ============================================================================
# Dashboard
# ============================================================================

OFFLINE_DASHBOARD = {
    "system_status": "offline",
    "today_checks": 0,
    "yesterday_checks": 0,
    "high_risk_alerts": 0,
    "recent_alerts": [],
    "controlled_substance_patients": 0,
}


def _alert_from_request(request: dict) -> dict:
    has_patient = request.get("first_name") is not None
    return {
        "id": request["id"],
        "patient_name": f"{request['first_name']} {request['last_name']}" if has_patient else "Unknown Patient",
        "dob": request.get("date_of_birth") or "",
        "alert_type": "pmp_high_risk",
        "severity": request.get("alert_level") or "medium",
        "message": (
            f"Red flags: {', '.join(request['red_flags'])}"
            if request["red_flags"]
            else "High-risk prescription pattern detected"
        ),
        "created_at": request["request_date"],
    }


def get_dashboard(today: date | None = None, repo: PmpRepository | None = None) -> dict:
    """Today's activity. Returns the zeroed offline payload if the store fails."""
    today = today or date.today()
    try:
        repo = repo or PmpRepository()
        tomorrow = today + timedelta(days=1)
        yesterday = today - timedelta(days=1)
        high_risk = repo.get_unreviewed_high_risk(limit=10)
        return {
            "system_status": "online",
            "today_checks": repo.count_requests_between(today.isoformat(), tomorrow.isoformat()),
            "yesterday_checks": repo.count_requests_between(yesterday.isoformat(), today.isoformat()),
            "high_risk_alerts": len(high_risk),
            "recent_alerts": [_alert_from_request(r) for r in high_risk],
            "controlled_substance_patients": repo.count_controlled_substance_patients(),
        }
    except sqlite3.Error as e:
        console.print(f"[bold red]Error loading PMP dashboard:[/bold red] {e}")
        return dict(OFFLINE_DASHBOARD, recent_alerts=[])


# ============================================================================
# Lookup
# ============================================================================

def lookup(
    patient_id: str | None = None,
    first_name: str | None = None,
    last_name: str | None = None,
    dob: str | None = None,
    rng: random.Random | None = None,
    repo: PmpRepository | None = None,
    patient_repo: PatientRepository | None = None,
) -> dict:
    """
    Run a PMP check for a patient.

    When patient_id matches a stored patient, their demographics replace the
    supplied name and date of birth.

    Raises:
        PmpNotConfiguredError: No active PMP configuration.
    """
    repo = repo or PmpRepository()
    config = repo.get_config()
    if not config or not config["is_active"]:
        raise PmpNotConfiguredError(NOT_CONFIGURED_MESSAGE)

    if patient_id:
        patient_repo = patient_repo or PatientRepository()
        patient = patient_repo.get_by_id(patient_id)
        if patient:
            first_name = patient.first_name
            last_name = patient.last_name
            dob = patient.date_of_birth

    search = {"first_name": first_name, "last_name": last_name, "dob": dob}
    prescriptions = simulate_prescriptions(rng)
    red_flags = analyze_red_flags(prescriptions)
    alert_level = determine_alert_level(red_flags)

    request_id = repo.record_lookup(
        patient_id=patient_id,
        state_code=config["state_code"] or PMP_STATE_CODE,
        prescriptions=prescriptions,
        red_flags=red_flags,
        alert_level=alert_level,
        search=search,
        request_date=datetime.now().isoformat(),
    )

    return {
        "success": True,
        "request_id": request_id,
        "search_params": search,
        "prescription_count": len(prescriptions),
        "prescriptions": prescriptions,
        "alert_level": alert_level,
        "red_flags": [f"{k}: {v}" for k, v in red_flags.items()],
    }
