"""Billing source data: medication orders, dose events, services, vitals, diagnoses, claims."""

import json
import uuid
from dataclasses import dataclass
from datetime import datetime

from .connection import get_connection


@dataclass
class MedicationOrder:
    id: str
    patient_id: str
    daily_dose_mg: float | None = None
    max_takehome: int = 0
    status: str = "active"
    created_at: str | None = None


@dataclass
class Claim:
    id: str
    patient_id: str
    claim_number: str | None = None
    payer_id: str | None = None
    claim_status: str = "pending"
    total_charges: float = 0
    service_date: str | None = None
    submission_date: str | None = None
    notes: str | None = None
    updated_at: str | None = None
    patient_name: str | None = None
    payer_name: str | None = None


class BillingRepository:
    """Repository for the records that feed OTP bundle billing."""

    # Medication orders and doses

    def create_order(self, patient_id: str, daily_dose_mg: float, max_takehome: int = 0, status: str = "active") -> MedicationOrder:
        conn = get_connection()
        cursor = conn.cursor()
        order = MedicationOrder(
            id=str(uuid.uuid4()),
            patient_id=patient_id,
            daily_dose_mg=daily_dose_mg,
            max_takehome=max_takehome,
            status=status,
            created_at=datetime.now().isoformat(),
        )
        cursor.execute("""
            INSERT INTO medication_orders (id, patient_id, daily_dose_mg, max_takehome, status, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (order.id, order.patient_id, order.daily_dose_mg, order.max_takehome, order.status, order.created_at))
        conn.commit()
        conn.close()
        return order

    def get_active_orders(self) -> list[MedicationOrder]:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM medication_orders WHERE status = 'active'")
        rows = cursor.fetchall()
        conn.close()
        return [
            MedicationOrder(
                id=row["id"],
                patient_id=row["patient_id"],
                daily_dose_mg=row["daily_dose_mg"],
                max_takehome=row["max_takehome"] or 0,
                status=row["status"],
                created_at=row["created_at"],
            )
            for row in rows
        ]

    def record_dose_event(self, patient_id: str, outcome: str, time: str | None = None) -> str:
        conn = get_connection()
        cursor = conn.cursor()
        event_id = str(uuid.uuid4())
        cursor.execute(
            "INSERT INTO dose_events (id, patient_id, time, outcome) VALUES (?, ?, ?, ?)",
            (event_id, patient_id, time or datetime.now().isoformat(), outcome)
        )
        conn.commit()
        conn.close()
        return event_id

    def get_dose_events_since(self, since: str) -> list[dict]:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM dose_events WHERE time >= ?", (since,))
        rows = cursor.fetchall()
        conn.close()
        return [dict(row) for row in rows]

    # Qualifying services

    def get_appointment_types_since(self, since: str) -> list[str | None]:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("SELECT appointment_type FROM appointments WHERE appointment_date >= ?", (since,))
        rows = cursor.fetchall()
        conn.close()
        return [row["appointment_type"] for row in rows]

    def get_lab_test_names_since(self, since: str) -> list[list[str]]:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("SELECT test_names FROM lab_orders WHERE order_date >= ?", (since,))
        rows = cursor.fetchall()
        conn.close()
        return [json.loads(row["test_names"]) if row["test_names"] else [] for row in rows]

    # Vitals and diagnoses

    def record_vitals(self, patient_id: str, measurement_date: str, **vitals) -> str:
        conn = get_connection()
        cursor = conn.cursor()
        vital_id = str(uuid.uuid4())
        cursor.execute("""
            INSERT INTO vital_signs (
                id, patient_id, measurement_date, systolic_bp, diastolic_bp,
                heart_rate, temperature, weight
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            vital_id, patient_id, measurement_date, vitals.get("systolic_bp"),
            vitals.get("diastolic_bp"), vitals.get("heart_rate"),
            vitals.get("temperature"), vitals.get("weight")
        ))
        conn.commit()
        conn.close()
        return vital_id

    def get_recent_vitals(self, limit: int = 100) -> list[dict]:
        """Latest vital sign readings with the patient's name."""
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("""
            SELECT v.*, p.first_name, p.last_name
            FROM vital_signs v
            JOIN patients p ON p.id = v.patient_id
            ORDER BY v.measurement_date DESC
            LIMIT ?
        """, (limit,))
        rows = cursor.fetchall()
        conn.close()
        return [dict(row) for row in rows]

    def record_assessment(self, patient_id: str, diagnosis_codes: list[str]) -> str:
        conn = get_connection()
        cursor = conn.cursor()
        assessment_id = str(uuid.uuid4())
        cursor.execute(
            "INSERT INTO assessments (id, patient_id, diagnosis_codes, created_at) VALUES (?, ?, ?, ?)",
            (assessment_id, patient_id, json.dumps(diagnosis_codes), datetime.now().isoformat())
        )
        conn.commit()
        conn.close()
        return assessment_id

    def get_recent_diagnoses(self, limit: int = 50) -> list[dict]:
        """Assessments that carry diagnosis codes, newest first."""
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("""
            SELECT a.id, a.patient_id, a.diagnosis_codes, a.created_at, p.first_name, p.last_name
            FROM assessments a
            JOIN patients p ON p.id = a.patient_id
            WHERE a.diagnosis_codes IS NOT NULL
            ORDER BY a.created_at DESC
            LIMIT ?
        """, (limit,))
        rows = cursor.fetchall()
        conn.close()

        diagnoses = []
        for row in rows:
            data = dict(row)
            data["diagnosis_codes"] = json.loads(row["diagnosis_codes"]) or []
            diagnoses.append(data)
        return diagnoses

    # Claims

    def create_claim(self, claim: Claim) -> Claim:
        conn = get_connection()
        cursor = conn.cursor()
        claim.id = claim.id or str(uuid.uuid4())
        claim.updated_at = datetime.now().isoformat()
        cursor.execute("""
            INSERT INTO insurance_claims (
                id, claim_number, patient_id, payer_id, claim_status, total_charges,
                service_date, submission_date, notes, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            claim.id, claim.claim_number, claim.patient_id, claim.payer_id,
            claim.claim_status, claim.total_charges, claim.service_date,
            claim.submission_date, claim.notes, claim.updated_at
        ))
        conn.commit()
        conn.close()
        return claim

    def get_claims(
        self,
        statuses: list[str] | None = None,
        service_since: str | None = None,
        limit: int | None = None,
    ) -> list[Claim]:
        """Claims with patient and payer names, latest submissions first."""
        conn = get_connection()
        cursor = conn.cursor()

        query = """
            SELECT c.*, p.first_name || ' ' || p.last_name AS patient_name, ip.payer_name
            FROM insurance_claims c
            LEFT JOIN patients p ON p.id = c.patient_id
            LEFT JOIN insurance_payers ip ON ip.id = c.payer_id
            WHERE 1 = 1
        """
        params: list = []
        if statuses:
            query += f" AND c.claim_status IN ({', '.join('?' for _ in statuses)})"
            params.extend(statuses)
        if service_since:
            query += " AND c.service_date >= ?"
            params.append(service_since)
        query += " ORDER BY c.submission_date DESC"
        if limit:
            query += " LIMIT ?"
            params.append(limit)

        cursor.execute(query, params)
        rows = cursor.fetchall()
        conn.close()
        return [self._row_to_claim(row) for row in rows]

    def get_claim(self, claim_id: str) -> Claim | None:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("SELECT *, NULL AS patient_name, NULL AS payer_name FROM insurance_claims WHERE id = ?", (claim_id,))
        row = cursor.fetchone()
        conn.close()
        return self._row_to_claim(row) if row else None

    def update_claim_status(self, claim_id: str, claim_status: str, notes: str | None = None) -> bool:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("""
            UPDATE insurance_claims SET claim_status = ?, notes = ?, updated_at = ? WHERE id = ?
        """, (claim_status, notes, datetime.now().isoformat(), claim_id))
        updated = cursor.rowcount > 0
        conn.commit()
        conn.close()
        return updated

    # Private helpers

    def _row_to_claim(self, row) -> Claim:
        return Claim(
            id=row["id"],
            patient_id=row["patient_id"],
            claim_number=row["claim_number"],
            payer_id=row["payer_id"],
            claim_status=row["claim_status"],
            total_charges=row["total_charges"],
            service_date=row["service_date"],
            submission_date=row["submission_date"],
            notes=row["notes"],
            updated_at=row["updated_at"],
            patient_name=row["patient_name"],
            payer_name=row["payer_name"],
        )
