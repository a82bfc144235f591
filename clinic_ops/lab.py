"""Lab orders and results."""

from dataclasses import asdict

from clinic_ops.clinic_records.database import LabOrder, LabRepository, PatientRepository, RecordNotFoundError


def get_lab_data(
    status: str | None = None,
    repo: LabRepository | None = None,
    patient_repo: PatientRepository | None = None,
) -> dict:
    repo = repo or LabRepository()
    patient_repo = patient_repo or PatientRepository()
    patients = sorted(patient_repo.list_patients(limit=1000), key=lambda p: p.last_name)

    return {
        "orders": [asdict(o) for o in repo.list_orders(status)],
        "results": [asdict(r) for r in repo.list_results()],
        "patients": [
            {"id": p.id, "first_name": p.first_name, "last_name": p.last_name}
            for p in patients
        ],
        "status_counts": repo.count_orders_by_status(),
    }


def create_order(order: LabOrder, repo: LabRepository | None = None) -> LabOrder:
    repo = repo or LabRepository()
    if not order.test_names:
        raise ValueError("At least one test is required")
    return repo.create_order(order)


def update_record(
    record_type: str,
    record_id: str,
    status: str,
    collection_date: str | None = None,
    repo: LabRepository | None = None,
) -> dict:
    repo = repo or LabRepository()
    if record_type == "order":
        updated = repo.update_order(record_id, status, collection_date)
    elif record_type == "result":
        updated = repo.update_result(record_id, status)
    else:
        raise ValueError("Invalid type")

    if not updated:
        raise RecordNotFoundError(f"Lab {record_type} {record_id} not found")
    return {"success": True}
