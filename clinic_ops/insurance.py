"""Insurance payers, patient coverage and eligibility checks."""

from dataclasses import asdict

from clinic_ops.clinic_records.database import (
    InsuranceRepository,
    PatientInsurance,
    PatientRepository,
    Payer,
    RecordNotFoundError,
)

RECORD_TYPES = ["payer", "patient-insurance"]


def get_insurance_data(
    view: str = "overview",
    repo: InsuranceRepository | None = None,
    patient_repo: PatientRepository | None = None,
) -> dict:
    """Data for one insurance view: payers, patient-insurance, patients, eligibility or overview."""
    repo = repo or InsuranceRepository()

    if view == "payers":
        return {"payers": [asdict(p) for p in repo.list_payers()]}
    if view == "patient-insurance":
        return {"patient_insurance": repo.list_coverage()}
    if view == "patients":
        patient_repo = patient_repo or PatientRepository()
        patients = sorted(patient_repo.list_patients(limit=1000), key=lambda p: (p.last_name, p.first_name))
        return {
            "patients": [
                {"id": p.id, "first_name": p.first_name, "last_name": p.last_name}
                for p in patients
            ]
        }
    if view == "eligibility":
        return {"eligibility_requests": repo.list_eligibility_checks(limit=20)}
    return {"metrics": repo.get_overview_metrics()}


def create_payer(data: dict, repo: InsuranceRepository | None = None) -> Payer:
    repo = repo or InsuranceRepository()
    return repo.create_payer(Payer(id="", **data))


def create_coverage(data: dict, repo: InsuranceRepository | None = None) -> PatientInsurance:
    repo = repo or InsuranceRepository()
    return repo.create_coverage(PatientInsurance(id="", **data))


def check_eligibility(data: dict, repo: InsuranceRepository | None = None) -> dict:
    repo = repo or InsuranceRepository()
    return repo.record_eligibility_check(**data)


def update_record(record_type: str, record_id: str, updates: dict, repo: InsuranceRepository | None = None) -> dict:
    repo = repo or InsuranceRepository()
    if record_type == "payer":
        record = repo.update_payer(record_id, updates)
        key = "payer"
    elif record_type == "patient-insurance":
        record = repo.update_coverage(record_id, updates)
        key = "insurance"
    else:
        raise ValueError("Invalid type")

    if record is None:
        raise RecordNotFoundError(f"{record_type} {record_id} not found")
    return {key: asdict(record)}


def delete_record(record_type: str | None, record_id: str | None, repo: InsuranceRepository | None = None) -> dict:
    repo = repo or InsuranceRepository()
    if not record_type or not record_id:
        raise ValueError("Missing type or id")
    if record_type == "payer":
        deleted = repo.delete_payer(record_id)
    elif record_type == "patient-insurance":
        deleted = repo.delete_coverage(record_id)
    else:
        raise ValueError("Invalid type")
    if not deleted:
        raise RecordNotFoundError(f"{record_type} {record_id} not found")
    return {"success": True}
