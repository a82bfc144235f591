"""
Facility safety compliance: hazard vulnerability, equipment checks and staff
training.
"""

from datetime import date, datetime, timedelta

from clinic_ops.clinic_records.database import FacilityAlert, FacilityRepository, StaffMember
from clinic_ops.health_equity import round_half_up

# Keyword groups checked in order against the alert type
HAZARD_CATEGORIES = [
    ("Natural", ["fire", "weather", "flood"]),
    ("Technological", ["power", "cyber", "system"]),
    ("Human", ["shooter", "violence", "threat"]),
]

# priority: (probability, impact, total score, risk level)
PRIORITY_SCORES = {
    "critical": (3, 3, 15, "High"),
    "high": (3, 3, 13, "High"),
    "medium": (2, 2, 10, "Moderate"),
    "low": (1, 2, 7, "Low"),
}
DEFAULT_PRIORITY = "medium"

EQUIPMENT_CHECK_INTERVAL_DAYS = 7

TRAINING_CATALOG = [
    {"title": "HIPAA Compliance", "category": "Compliance", "completion_rate": 85},
    {"title": "Emergency Response Protocols", "category": "Safety", "completion_rate": 90},
    {"title": "Equipment Safety Procedures", "category": "Safety", "completion_rate": 88},
    {"title": "Clinical Documentation Standards", "category": "Clinical", "completion_rate": 82},
    {"title": "DEA Regulations Training", "category": "Compliance", "completion_rate": 78},
    {"title": "Patient Safety Protocols", "category": "Clinical", "completion_rate": 92},
]


def hazard_category(alert_type: str | None) -> str:
    if not alert_type:
        return "Other"
    lowered = alert_type.lower()
    for category, keywords in HAZARD_CATEGORIES:
        if any(keyword in lowered for keyword in keywords):
            return category
    return "Other"


def _priority_scores(priority: str | None) -> tuple[int, int, int, str]:
    return PRIORITY_SCORES.get((priority or "").lower(), PRIORITY_SCORES[DEFAULT_PRIORITY])


def build_hazard(index: int, alert: FacilityAlert) -> dict:
    probability, impact, total_score, risk_level = _priority_scores(alert.priority)
    return {
        "id": index + 1,
        "name": alert.alert_type or "Unknown Hazard",
        "category": hazard_category(alert.alert_type),
        "probability": probability,
        "human_impact": impact,
        "property_impact": impact,
        "business_impact": impact,
        "preparedness": 3 if alert.acknowledged_by else 1,
        "total_score": total_score,
        "risk_level": risk_level,
        "message": alert.message,
        "affected_areas": alert.affected_areas,
        "is_active": alert.is_active,
    }


def build_equipment(index: int, entry: dict) -> dict:
    values = entry["new_values"]
    last_check = datetime.fromisoformat(entry["timestamp"]).date()
    return {
        "id": index + 1,
        "name": values.get("equipment_name") or f"Equipment #{index + 1}",
        "type": values.get("equipment_type") or "General",
        "location": values.get("location") or "Main Facility",
        "last_check": last_check.isoformat(),
        "next_check": (last_check + timedelta(days=EQUIPMENT_CHECK_INTERVAL_DAYS)).isoformat(),
        "status": values.get("status") or "Good",
        "inspector": values.get("inspector") or "System",
    }


def training_status(completion_rate: float) -> str:
    if completion_rate >= 95:
        return "Complete"
    if completion_rate >= 80:
        return "On Track"
    if completion_rate >= 70:
        return "In Progress"
    return "Behind"


def get_training_modules(today: date | None = None) -> list[dict]:
    """The training catalog with due dates staggered from today."""
    today = today or date.today()
    modules = []
    for index, module in enumerate(TRAINING_CATALOG):
        modules.append({
            "id": index + 1,
            "title": module["title"],
            "category": module["category"],
            "completion_rate": module["completion_rate"],
            "due_date": (today + timedelta(days=index * 5 + 10)).isoformat(),
            "status": training_status(module["completion_rate"]),
        })
    return modules


def _has_current_license(staff: StaffMember, today: date) -> bool:
    return bool(staff.license_expiry) and date.fromisoformat(staff.license_expiry[:10]) > today


def calculate_stats(
    hazards: list[dict],
    equipment: list[dict],
    training_modules: list[dict],
    staff: list[StaffMember],
    today: date | None = None,
) -> dict:
    today = today or date.today()
    week_from_now = today + timedelta(days=7)

    next_checks = [date.fromisoformat(item["next_check"]) for item in equipment]
    good_equipment = sum(1 for item in equipment if item["status"] == "Good")
    licensed = sum(1 for member in staff if _has_current_license(member, today))

    return {
        "high_risk_hazards": sum(1 for h in hazards if h["risk_level"] == "High"),
        "moderate_risk_hazards": sum(1 for h in hazards if h["risk_level"] == "Moderate"),
        "low_risk_hazards": sum(1 for h in hazards if h["risk_level"] == "Low"),
        "total_equipment": len(equipment),
        "equipment_due_this_week": sum(1 for d in next_checks if today <= d <= week_from_now),
        "overdue_equipment": sum(1 for d in next_checks if d < today),
        "equipment_compliance_rate": (
            int(round_half_up(good_equipment / len(equipment) * 100, 0)) if equipment else 100
        ),
        "active_training_modules": len(training_modules),
        "avg_training_completion": (
            int(round_half_up(sum(m["completion_rate"] for m in training_modules) / len(training_modules), 0))
            if training_modules else 0
        ),
        "training_due_this_month": sum(
            1 for m in training_modules if m["status"] in ("Behind", "In Progress")
        ),
        "training_compliance_rate": int(round_half_up(licensed / len(staff) * 100, 0)) if staff else 100,
        "last_updated": today.strftime("%b %Y"),
    }


def get_facility_data(repo: FacilityRepository | None = None, today: date | None = None) -> dict:
    repo = repo or FacilityRepository()
    today = today or date.today()

    hazards = [build_hazard(i, alert) for i, alert in enumerate(repo.list_alerts())]
    checks = [
        entry for entry in repo.list_equipment_checks()
        if entry["action"] in ("equipment_check", "safety_inspection")
    ]
    equipment = [build_equipment(i, entry) for i, entry in enumerate(checks)]
    training_modules = get_training_modules(today)
    staff = repo.list_active_staff()

    return {
        "hazards": hazards,
        "equipment": equipment,
        "training_modules": training_modules,
        "compliance_reports": repo.list_compliance_reports(),
        "stats": calculate_stats(hazards, equipment, training_modules, staff, today),
    }


def create_facility_record(record_type: str, data: dict, repo: FacilityRepository | None = None) -> dict:
    """Create a hazard alert or record an equipment check."""
    repo = repo or FacilityRepository()

    if record_type == "hazard":
        alert = repo.create_alert(FacilityAlert(
            id="",
            alert_type=data.get("name"),
            priority=(data.get("risk_level") or DEFAULT_PRIORITY).lower(),
            message=data.get("description") or f"Hazard: {data.get('name')}",
            affected_areas=data.get("affected_areas") or [],
        ))
        return {"success": True, "alert": vars(alert)}

    if record_type == "equipment_check":
        audit = repo.record_equipment_check({
            "equipment_name": data.get("name"),
            "equipment_type": data.get("equipment_type"),
            "location": data.get("location"),
            "status": data.get("status"),
            "inspector": data.get("inspector"),
        })
        return {"success": True, "audit": audit}

    raise ValueError("Invalid type")
