"""Facility hazard alerts, equipment checks, staff and compliance reports."""

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime

from .connection import get_connection

EQUIPMENT_ACTIONS = ("equipment_check", "safety_inspection", "maintenance")


@dataclass
class FacilityAlert:
    id: str
    alert_type: str | None
    priority: str | None = "medium"
    message: str | None = None
    affected_areas: list[str] = field(default_factory=list)
    acknowledged_by: list[str] = field(default_factory=list)
    is_active: bool = True
    created_by: str | None = "system"
    created_at: str | None = None


@dataclass
class StaffMember:
    id: str
    first_name: str
    last_name: str
    role: str | None = None
    department: str | None = None
    license_expiry: str | None = None
    is_active: bool = True


class FacilityRepository:
    """Repository for facility safety records."""

    def list_alerts(self) -> list[FacilityAlert]:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM facility_alerts ORDER BY created_at DESC")
        rows = cursor.fetchall()
        conn.close()
        return [self._row_to_alert(row) for row in rows]

    def create_alert(self, alert: FacilityAlert) -> FacilityAlert:
        conn = get_connection()
        cursor = conn.cursor()
        alert.id = alert.id or str(uuid.uuid4())
        alert.created_at = datetime.now().isoformat()
        cursor.execute("""
            INSERT INTO facility_alerts (
                id, alert_type, priority, message, affected_areas, acknowledged_by,
                is_active, created_by, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            alert.id, alert.alert_type, alert.priority, alert.message,
            json.dumps(alert.affected_areas), json.dumps(alert.acknowledged_by),
            int(alert.is_active), alert.created_by, alert.created_at
        ))
        conn.commit()
        conn.close()
        return alert

    def list_equipment_checks(self, limit: int = 50) -> list[dict]:
        """Equipment related audit entries, newest first, with parsed values."""
        conn = get_connection()
        cursor = conn.cursor()
        placeholders = ", ".join("?" for _ in EQUIPMENT_ACTIONS)
        cursor.execute(f"""
            SELECT * FROM audit_trail
            WHERE action IN ({placeholders})
            ORDER BY timestamp DESC
            LIMIT ?
        """, (*EQUIPMENT_ACTIONS, limit))
        rows = cursor.fetchall()
        conn.close()

        entries = []
        for row in rows:
            data = dict(row)
            data["new_values"] = json.loads(row["new_values"]) if row["new_values"] else {}
            entries.append(data)
        return entries

    def record_equipment_check(self, values: dict, action: str = "equipment_check", timestamp: str | None = None) -> dict:
        conn = get_connection()
        cursor = conn.cursor()
        entry = {
            "id": str(uuid.uuid4()),
            "table_name": "equipment",
            "action": action,
            "new_values": values,
            "timestamp": timestamp or datetime.now().isoformat(),
        }
        cursor.execute("""
            INSERT INTO audit_trail (id, table_name, action, new_values, timestamp)
            VALUES (?, ?, ?, ?, ?)
        """, (entry["id"], entry["table_name"], action, json.dumps(values), entry["timestamp"]))
        conn.commit()
        conn.close()
        return entry

    def add_staff(self, staff: StaffMember) -> StaffMember:
        conn = get_connection()
        cursor = conn.cursor()
        staff.id = staff.id or str(uuid.uuid4())
        cursor.execute("""
            INSERT INTO staff (id, first_name, last_name, role, department, license_expiry, is_active)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (
            staff.id, staff.first_name, staff.last_name, staff.role, staff.department,
            staff.license_expiry, int(staff.is_active)
        ))
        conn.commit()
        conn.close()
        return staff

    def list_active_staff(self) -> list[StaffMember]:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM staff WHERE is_active = 1 ORDER BY last_name, first_name")
        rows = cursor.fetchall()
        conn.close()
        return [
            StaffMember(
                id=row["id"],
                first_name=row["first_name"],
                last_name=row["last_name"],
                role=row["role"],
                department=row["department"],
                license_expiry=row["license_expiry"],
                is_active=bool(row["is_active"]),
            )
            for row in rows
        ]

    def add_compliance_report(self, report_type: str, title: str, status: str = "draft") -> str:
        conn = get_connection()
        cursor = conn.cursor()
        report_id = str(uuid.uuid4())
        cursor.execute("""
            INSERT INTO compliance_reports (id, report_type, title, status, created_at)
            VALUES (?, ?, ?, ?, ?)
        """, (report_id, report_type, title, status, datetime.now().isoformat()))
        conn.commit()
        conn.close()
        return report_id

    def list_compliance_reports(self, limit: int = 10) -> list[dict]:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM compliance_reports ORDER BY created_at DESC LIMIT ?", (limit,))
        rows = cursor.fetchall()
        conn.close()
        return [dict(row) for row in rows]

    # Private helpers

    def _row_to_alert(self, row) -> FacilityAlert:
        return FacilityAlert(
            id=row["id"],
            alert_type=row["alert_type"],
            priority=row["priority"],
            message=row["message"],
            affected_areas=json.loads(row["affected_areas"]) if row["affected_areas"] else [],
            acknowledged_by=json.loads(row["acknowledged_by"]) if row["acknowledged_by"] else [],
            is_active=bool(row["is_active"]),
            created_by=row["created_by"],
            created_at=row["created_at"],
        )
