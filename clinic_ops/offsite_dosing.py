"""Off-site dosing at nursing homes and inpatient facilities."""

from datetime import date

from clinic_ops.clinic_records.database import OffsiteRepository, RecordNotFoundError

ADMINISTRATION_OUTCOMES = ["administered", "missed", "refused"]

# Each kit status may only move to the next one
KIT_STATUS_FLOW = ["preparing", "in_transit", "in_use", "returned"]


def next_kit_status(current: str) -> str | None:
    if current not in KIT_STATUS_FLOW:
        return None
    index = KIT_STATUS_FLOW.index(current)
    return KIT_STATUS_FLOW[index + 1] if index + 1 < len(KIT_STATUS_FLOW) else None


def calculate_stats(
    locations: list[dict],
    kits: list[dict],
    administrations: list[dict],
    today: date | None = None,
) -> dict:
    today_str = (today or date.today()).isoformat()
    todays = [a for a in administrations if (a["scheduled_time"] or "")[:10] == today_str]
    return {
        "active_locations": sum(1 for loc in locations if loc["status"] == "active"),
        "active_kits": sum(1 for kit in kits if kit["kit_status"] == "in_use"),
        "today_doses": len(todays),
        "administered_today": sum(1 for a in todays if a["status"] == "administered"),
        "missed_today": sum(1 for a in todays if a["status"] == "missed"),
        "in_transit": sum(1 for kit in kits if kit["kit_status"] == "in_transit"),
    }


def get_offsite_data(repo: OffsiteRepository | None = None, today: date | None = None) -> dict:
    repo = repo or OffsiteRepository()
    locations = repo.list_locations()
    kits = repo.list_active_kits()
    administrations = repo.list_administrations()

    return {
        "locations": locations,
        "active_kits": kits,
        "pending_administrations": [a for a in administrations if a["status"] == "pending"],
        "dispensing_log": [a for a in administrations if a["status"] != "pending"],
        "stats": calculate_stats(locations, kits, administrations, today),
    }


def record_administration(
    administration_id: str,
    status: str,
    administered_by: str | None = None,
    notes: str | None = None,
    repo: OffsiteRepository | None = None,
) -> dict:
    repo = repo or OffsiteRepository()
    if status not in ADMINISTRATION_OUTCOMES:
        raise ValueError(f"Invalid administration status: {status}")
    if not repo.get_administration(administration_id):
        raise RecordNotFoundError(f"Administration {administration_id} not found")
    if not repo.record_administration(administration_id, status, administered_by, notes):
        raise ValueError(f"Administration {administration_id} has already been recorded")
    return repo.get_administration(administration_id)


def update_kit_status(
    kit_id: str,
    kit_status: str,
    transported_by: str | None = None,
    repo: OffsiteRepository | None = None,
) -> dict:
    repo = repo or OffsiteRepository()
    kit = repo.get_kit(kit_id)
    if not kit:
        raise RecordNotFoundError(f"Kit {kit_id} not found")

    allowed = next_kit_status(kit.kit_status)
    if kit_status != allowed:
        raise ValueError(f"Kit cannot move from {kit.kit_status} to {kit_status}")

    repo.update_kit_status(kit_id, kit_status, transported_by)
    return vars(repo.get_kit(kit_id))
