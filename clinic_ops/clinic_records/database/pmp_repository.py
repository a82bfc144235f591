"""Prescription monitoring program requests, prescriptions and related alerts."""

import json
import uuid
from datetime import datetime

from .connection import get_connection


class PmpRepository:
    """Repository for PMP configuration, lookups and their follow-up records."""

    def get_config(self) -> dict | None:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM pdmp_config LIMIT 1")
        row = cursor.fetchone()
        conn.close()
        return dict(row) if row else None

    def save_config(self, state_code: str, is_active: bool = True) -> dict:
        """Replace the single PMP configuration row."""
        conn = get_connection()
        cursor = conn.cursor()
        config_id = str(uuid.uuid4())
        cursor.execute("DELETE FROM pdmp_config")
        cursor.execute(
            "INSERT INTO pdmp_config (id, state_code, is_active) VALUES (?, ?, ?)",
            (config_id, state_code, int(is_active))
        )
        conn.commit()
        conn.close()
        return {"id": config_id, "state_code": state_code, "is_active": is_active}

    def count_requests_between(self, start: str, end: str) -> int:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute(
            "SELECT COUNT(*) FROM pdmp_requests WHERE request_date >= ? AND request_date < ?",
            (start, end)
        )
        count = cursor.fetchone()[0]
        conn.close()
        return count

    def get_unreviewed_high_risk(self, limit: int = 10) -> list[dict]:
        """High and critical lookups nobody has reviewed yet, newest first."""
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("""
            SELECT r.*, p.first_name, p.last_name, p.date_of_birth
            FROM pdmp_requests r
            LEFT JOIN patients p ON p.id = r.patient_id
            WHERE r.alert_level IN ('critical', 'high') AND r.reviewed_at IS NULL
            ORDER BY r.request_date DESC
            LIMIT ?
        """, (limit,))
        rows = cursor.fetchall()
        conn.close()

        requests = []
        for row in rows:
            data = dict(row)
            data["red_flags"] = json.loads(row["red_flags"]) if row["red_flags"] else {}
            requests.append(data)
        return requests

    def mark_reviewed(self, request_id: str) -> bool:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute(
            "UPDATE pdmp_requests SET reviewed_at = ? WHERE id = ?",
            (datetime.now().isoformat(), request_id)
        )
        updated = cursor.rowcount > 0
        conn.commit()
        conn.close()
        return updated

    def count_controlled_substance_patients(self) -> int:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("""
            SELECT COUNT(DISTINCT patient_id) FROM patient_medications
            WHERE medication_type IN ('controlled', 'opioid', 'benzodiazepine')
              AND status = 'active'
        """)
        count = cursor.fetchone()[0]
        conn.close()
        return count

    def add_patient_medication(self, patient_id: str, medication_name: str, medication_type: str, status: str = "active") -> str:
        conn = get_connection()
        cursor = conn.cursor()
        medication_id = str(uuid.uuid4())
        cursor.execute("""
            INSERT INTO patient_medications (id, patient_id, medication_name, medication_type, status)
            VALUES (?, ?, ?, ?, ?)
        """, (medication_id, patient_id, medication_name, medication_type, status))
        conn.commit()
        conn.close()
        return medication_id

    def record_lookup(
        self,
        patient_id: str | None,
        state_code: str,
        prescriptions: list[dict],
        red_flags: dict,
        alert_level: str,
        search: dict,
        request_date: str | None = None,
    ) -> str:
        """
        Store a completed lookup with its prescriptions and an audit entry,
        plus a clinical alert when the result is high or critical.
        """
        conn = get_connection()
        cursor = conn.cursor()
        request_id = str(uuid.uuid4())
        now = request_date or datetime.now().isoformat()

        cursor.execute("""
            INSERT INTO pdmp_requests (
                id, patient_id, request_type, request_status, state_requested,
                request_date, response_date, pdmp_report, alert_level, red_flags, notes
            ) VALUES (?, ?, 'patient_lookup', 'completed', ?, ?, ?, ?, ?, ?, ?)
        """, (
            request_id, patient_id, state_code, now, now,
            json.dumps({"prescriptions": prescriptions}), alert_level, json.dumps(red_flags),
            f"Query for {search.get('first_name')} {search.get('last_name')}"
        ))

        for rx in prescriptions:
            cursor.execute("""
                INSERT INTO pdmp_prescriptions (
                    id, pdmp_request_id, medication_name, fill_date, quantity, days_supply,
                    prescriber_name, prescriber_npi, pharmacy_name, pharmacy_npi,
                    dea_schedule, morphine_equivalent_dose
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                str(uuid.uuid4()), request_id, rx["medication_name"], rx["fill_date"],
                rx["quantity"], rx["days_supply"], rx["prescriber_name"], rx["prescriber_npi"],
                rx["pharmacy_name"], rx["pharmacy_npi"], rx["dea_schedule"],
                rx["morphine_equivalent_dose"]
            ))

        cursor.execute("""
            INSERT INTO audit_trail (id, table_name, action, record_id, new_values, timestamp)
            VALUES (?, 'pdmp_requests', 'pmp_lookup', ?, ?, ?)
        """, (
            str(uuid.uuid4()), request_id,
            json.dumps({**search, "state": state_code, "searched_at": now, "alert_level": alert_level}),
            now
        ))

        if alert_level in ("critical", "high"):
            cursor.execute("""
                INSERT INTO clinical_alerts (
                    id, patient_id, alert_type, severity, alert_message, status, triggered_by, created_at
                ) VALUES (?, ?, 'pmp_high_risk', ?, ?, 'open', 'pmp_system', ?)
            """, (
                str(uuid.uuid4()), patient_id, alert_level,
                f"PMP check returned {alert_level} risk level. Red flags: {', '.join(red_flags)}",
                now
            ))

        conn.commit()
        conn.close()
        return request_id

    def get_prescriptions(self, request_id: str) -> list[dict]:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM pdmp_prescriptions WHERE pdmp_request_id = ?", (request_id,))
        rows = cursor.fetchall()
        conn.close()
        return [dict(row) for row in rows]

    def get_clinical_alerts(self, alert_type: str | None = None) -> list[dict]:
        conn = get_connection()
        cursor = conn.cursor()
        if alert_type:
            cursor.execute(
                "SELECT * FROM clinical_alerts WHERE alert_type = ? ORDER BY created_at DESC",
                (alert_type,)
            )
        else:
            cursor.execute("SELECT * FROM clinical_alerts ORDER BY created_at DESC")
        rows = cursor.fetchall()
        conn.close()
        return [dict(row) for row in rows]
