"""Patients covered by both Medicare and Medicaid, and their crossover claims."""

from datetime import datetime

from clinic_ops.clinic_records.database import BillingRepository, InsuranceRepository, RecordNotFoundError

PENDING_CLAIM_STATUSES = ["pending", "submitted", "processing"]


def _covers(insurance: dict, program: str) -> bool:
    return (
        program in (insurance["payer_name"] or "").lower()
        or program in (insurance["network_type"] or "").lower()
    )


def find_dual_eligible(coverage: list[dict]) -> list[dict]:
    """
    Group active coverage rows by patient and keep patients with both a
    Medicare and a Medicaid payer. Patients keep first-seen order.
    """
    patients: dict[str, dict] = {}
    for row in coverage:
        patient = patients.setdefault(row["patient_id"], {
            "id": row["patient_id"],
            "name": row["patient_name"],
            "dob": row["date_of_birth"],
            "insurances": [],
        })
        patient["insurances"].append({
            "payer_name": row["payer_name"],
            "network_type": row["network_type"],
            "policy_number": row["policy_number"],
            "priority": row["priority_order"],
        })

    return [
        patient for patient in patients.values()
        if any(_covers(i, "medicare") for i in patient["insurances"])
        and any(_covers(i, "medicaid") for i in patient["insurances"])
    ]


def get_dual_eligible_data(
    insurance_repo: InsuranceRepository | None = None,
    billing_repo: BillingRepository | None = None,
) -> dict:
    insurance_repo = insurance_repo or InsuranceRepository()
    billing_repo = billing_repo or BillingRepository()

    dual_eligible = find_dual_eligible(insurance_repo.list_active_coverage())
    patient_ids = {patient["id"] for patient in dual_eligible}
    claims = billing_repo.get_claims(statuses=PENDING_CLAIM_STATUSES, limit=20)

    return {
        "dual_eligible_count": len(dual_eligible),
        "dual_eligible_patients": dual_eligible,
        "pending_claims": [
            {
                "id": claim.id,
                "claim_number": claim.claim_number,
                "patient_name": claim.patient_name or "Unknown",
                "payer_name": claim.payer_name or "Unknown",
                "status": claim.claim_status,
                "total_charges": claim.total_charges,
                "submission_date": claim.submission_date,
            }
            for claim in claims
            if claim.patient_id in patient_ids
        ],
    }


def process_crossover(claim_id: str, repo: BillingRepository | None = None) -> dict:
    """Hand a claim over to Medicaid after Medicare adjudication."""
    repo = repo or BillingRepository()
    note = f"Medicare crossover initiated at {datetime.now().isoformat()}"
    if not repo.update_claim_status(claim_id, "crossover_pending", note):
        raise RecordNotFoundError(f"Claim {claim_id} not found")
    return {"success": True, "message": "Crossover processing initiated"}


ACTIONS = {
    "process_crossover": process_crossover,
}


def handle_action(action: str, claim_id: str | None) -> dict:
    handler = ACTIONS.get(action)
    if handler is None:
        raise ValueError("Unknown action")
    if not claim_id:
        raise ValueError("claim_id is required")
    return handler(claim_id)
