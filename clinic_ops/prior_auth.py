"""Prior authorization requests and payer decisions."""

from dataclasses import asdict

from clinic_ops.clinic_records.database import InsuranceRepository, PriorAuth, RecordNotFoundError
from clinic_ops.health_equity import round_half_up

PRIOR_AUTH_STATUSES = ["pending", "approved", "denied", "expired"]


def summarize(requests: list[PriorAuth]) -> dict:
    total = len(requests)
    approved = sum(1 for r in requests if r.status == "approved")
    return {
        "total": total,
        "approved": approved,
        "pending": sum(1 for r in requests if r.status == "pending"),
        "denied": sum(1 for r in requests if r.status == "denied"),
        "approval_rate": int(round_half_up(approved / total * 100, 0)) if total else 0,
    }


def get_prior_auth_data(status: str | None = None, repo: InsuranceRepository | None = None) -> dict:
    """Requests filtered by status, with summary counts over every request."""
    repo = repo or InsuranceRepository()
    if status and status not in PRIOR_AUTH_STATUSES:
        raise ValueError(f"Invalid status: {status}")

    repo.expire_prior_auths()
    everything = repo.list_prior_auths()
    requests = [r for r in everything if r.status == status] if status else everything
    return {
        "requests": [asdict(r) for r in requests],
        "summary": summarize(everything),
    }


def create_request(request: PriorAuth, repo: InsuranceRepository | None = None) -> PriorAuth:
    repo = repo or InsuranceRepository()
    request.urgency = request.urgency or "routine"
    return repo.create_prior_auth(request)


def decide(
    auth_id: str,
    decision: str,
    auth_number: str | None = None,
    approved_units: int | None = None,
    valid_from: str | None = None,
    valid_to: str | None = None,
    denial_reason: str | None = None,
    repo: InsuranceRepository | None = None,
) -> PriorAuth:
    """Record an approval or denial. Denials open a 30 day appeal window."""
    repo = repo or InsuranceRepository()
    if not repo.get_prior_auth(auth_id):
        raise RecordNotFoundError(f"Prior authorization {auth_id} not found")

    if decision == "approve":
        if not auth_number:
            raise ValueError("auth_number is required to approve")
        return repo.approve_prior_auth(auth_id, auth_number, approved_units, valid_from, valid_to)
    if decision == "deny":
        if not denial_reason:
            raise ValueError("denial_reason is required to deny")
        return repo.deny_prior_auth(auth_id, denial_reason)
    raise ValueError(f"Unknown decision: {decision}")
