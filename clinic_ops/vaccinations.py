"""Vaccination tracking and state immunization registry reporting."""

from dataclasses import asdict
from datetime import date

from clinic_ops.clinic_records.database import (
    InventoryLot,
    PatientRepository,
    RecordNotFoundError,
    Vaccination,
    VaccinationRepository,
)
from clinic_ops.health_equity import round_half_up

LOW_STOCK_THRESHOLD = 10

COMMON_VACCINES = [
    {"name": "COVID-19 (Moderna)", "code": "213", "manufacturer": "Moderna", "route": "IM", "site": "Left Deltoid"},
    {"name": "COVID-19 (Pfizer)", "code": "208", "manufacturer": "Pfizer-BioNTech", "route": "IM", "site": "Left Deltoid"},
    {"name": "Influenza (Quadrivalent)", "code": "150", "manufacturer": "Sanofi Pasteur", "route": "IM", "site": "Left Deltoid"},
    {"name": "Tdap (Boostrix)", "code": "115", "manufacturer": "GSK", "route": "IM", "site": "Left Deltoid"},
    {"name": "HPV (Gardasil 9)", "code": "165", "manufacturer": "Merck", "route": "IM", "site": "Left Deltoid"},
    {"name": "Hepatitis B", "code": "08", "manufacturer": "Merck", "route": "IM", "site": "Left Deltoid"},
    {"name": "MMR", "code": "03", "manufacturer": "Merck", "route": "SC", "site": "Left Upper Arm"},
    {"name": "Pneumococcal (PPSV23)", "code": "33", "manufacturer": "Merck", "route": "IM", "site": "Left Deltoid"},
    {"name": "Shingrix", "code": "187", "manufacturer": "GSK", "route": "IM", "site": "Left Deltoid"},
    {"name": "Meningococcal (MenACWY)", "code": "114", "manufacturer": "Sanofi Pasteur", "route": "IM", "site": "Left Deltoid"},
]


def filter_vaccinations(vaccinations: list[Vaccination], search: str | None) -> list[Vaccination]:
    """Case-insensitive match on patient name or vaccine name."""
    if not search:
        return vaccinations
    term = search.lower()
    return [
        v for v in vaccinations
        if term in (v.patient_name or "").lower() or term in v.vaccine_name.lower()
    ]


def calculate_stats(
    vaccinations: list[Vaccination],
    inventory: list[InventoryLot],
    today: date | None = None,
) -> dict:
    today_str = (today or date.today()).isoformat()
    synced = sum(1 for v in vaccinations if v.reported_to_registry)
    return {
        "today_count": sum(1 for v in vaccinations if v.administration_date == today_str),
        "registry_sync_rate": (
            int(round_half_up(synced / len(vaccinations) * 100, 0)) if vaccinations else 100
        ),
        "low_stock_count": sum(1 for lot in inventory if lot.quantity_remaining < LOW_STOCK_THRESHOLD),
    }


def get_vaccination_data(
    search: str | None = None,
    repo: VaccinationRepository | None = None,
    patient_repo: PatientRepository | None = None,
) -> dict:
    repo = repo or VaccinationRepository()
    patient_repo = patient_repo or PatientRepository()

    vaccinations = repo.list_vaccinations(limit=100)
    inventory = repo.list_inventory()

    return {
        "vaccinations": [asdict(v) for v in filter_vaccinations(vaccinations, search)],
        "inventory": [asdict(lot) for lot in inventory],
        "schedules": repo.list_active_schedules(),
        "patients": [{"id": p.id, "name": p.full_name} for p in patient_repo.list_patients(limit=1000)],
        "common_vaccines": COMMON_VACCINES,
        "stats": calculate_stats(vaccinations, inventory),
    }


def sync_to_registry(vaccination_id: str, repo: VaccinationRepository | None = None) -> dict:
    repo = repo or VaccinationRepository()
    if not repo.submit_to_registry(vaccination_id):
        raise RecordNotFoundError(f"Vaccination {vaccination_id} not found")
    return asdict(repo.get_vaccination(vaccination_id))


def report_adverse_event(
    vaccination_id: str,
    event_description: str,
    onset_date: str | None = None,
    severity: str = "mild",
    treatment_provided: str | None = None,
    report_to_vaers: bool = False,
    repo: VaccinationRepository | None = None,
) -> dict:
    repo = repo or VaccinationRepository()
    vaccination = repo.get_vaccination(vaccination_id)
    if not vaccination:
        raise RecordNotFoundError(f"Vaccination {vaccination_id} not found")

    event_id = repo.report_adverse_event(
        vaccination_id, vaccination.patient_id, event_description,
        onset_date, severity, treatment_provided, report_to_vaers,
    )
    if report_to_vaers:
        message = "Event recorded and flagged for VAERS submission"
    else:
        message = "Event recorded successfully"
    return {"id": event_id, "message": message}


def record_vaccination(vaccination: Vaccination, repo: VaccinationRepository | None = None) -> Vaccination:
    """Record a dose and draw it from the matching inventory lot, if any."""
    repo = repo or VaccinationRepository()
    return repo.record_vaccination(vaccination)


def add_inventory(lot: InventoryLot, repo: VaccinationRepository | None = None) -> InventoryLot:
    repo = repo or VaccinationRepository()
    if lot.quantity_received < 0:
        raise ValueError("quantity_received cannot be negative")
    return repo.add_inventory(lot)
