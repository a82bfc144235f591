"""Patient repository with CRUD operations and audit logging."""

import uuid
from dataclasses import dataclass
from datetime import datetime

from .connection import get_connection


@dataclass
class Patient:
    id: str
    first_name: str
    last_name: str
    date_of_birth: str
    phone: str | None = None
    email: str | None = None
    gender: str | None = None
    race: str | None = None
    ethnicity: str | None = None
    insurance_type: str | None = None
    rural_urban_code: str | None = None
    preferred_language: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class PatientRepository:
    """Repository for patient CRUD operations with audit logging."""

    # Fields that can be updated
    PATIENT_FIELDS = [
        "first_name", "last_name", "date_of_birth", "phone", "email",
        "gender", "race", "ethnicity", "insurance_type",
        "rural_urban_code", "preferred_language",
    ]

    def list_patients(self, search: str | None = None, limit: int = 100) -> list[Patient]:
        """List patients by name, optionally filtered by a name search."""
        conn = get_connection()
        cursor = conn.cursor()

        query = "SELECT * FROM patients"
        params: list = []
        if search:
            query += " WHERE first_name LIKE ? OR last_name LIKE ? OR (first_name || ' ' || last_name) LIKE ?"
            params.extend([f"%{search}%"] * 3)
        query += " ORDER BY last_name, first_name LIMIT ?"
        params.append(limit)

        cursor.execute(query, params)
        rows = cursor.fetchall()
        conn.close()
        return [self._row_to_patient(row) for row in rows]

    def create(self, patient: Patient, changed_by: str = "system") -> Patient:
        """Create a new patient with audit logging."""
        conn = get_connection()
        cursor = conn.cursor()

        patient.id = patient.id or str(uuid.uuid4())
        now = datetime.now().isoformat()

        cursor.execute("""
            INSERT INTO patients (
                id, first_name, last_name, date_of_birth, phone, email,
                gender, race, ethnicity, insurance_type, rural_urban_code,
                preferred_language, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            patient.id, patient.first_name, patient.last_name, patient.date_of_birth,
            patient.phone, patient.email, patient.gender, patient.race,
            patient.ethnicity, patient.insurance_type, patient.rural_urban_code,
            patient.preferred_language, now, now
        ))

        # Log creation for each non-null field
        for field in self.PATIENT_FIELDS:
            value = getattr(patient, field)
            if value is not None:
                self._log_change(cursor, patient.id, field, None, str(value), "CREATE", changed_by)

        conn.commit()
        conn.close()

        patient.created_at = now
        patient.updated_at = now
        return patient

    def get_by_id(self, patient_id: str) -> Patient | None:
        """Get a patient by ID."""
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM patients WHERE id = ?", (patient_id,))
        row = cursor.fetchone()
        conn.close()
        return self._row_to_patient(row) if row else None

    def get_many(self, patient_ids: list[str]) -> dict[str, Patient]:
        """Get patients keyed by ID."""
        if not patient_ids:
            return {}
        conn = get_connection()
        cursor = conn.cursor()
        placeholders = ", ".join("?" for _ in patient_ids)
        cursor.execute(f"SELECT * FROM patients WHERE id IN ({placeholders})", list(patient_ids))
        rows = cursor.fetchall()
        conn.close()
        return {row["id"]: self._row_to_patient(row) for row in rows}

    def update(self, patient_id: str, updates: dict, changed_by: str = "system") -> Patient | None:
        """Update patient fields with audit logging."""
        conn = get_connection()
        cursor = conn.cursor()

        cursor.execute("SELECT * FROM patients WHERE id = ?", (patient_id,))
        row = cursor.fetchone()
        if not row:
            conn.close()
            return None

        current = dict(row)
        now = datetime.now().isoformat()

        # Filter valid fields and detect changes
        valid_updates = {}
        for field, new_value in updates.items():
            if field not in self.PATIENT_FIELDS:
                continue
            old_value = current.get(field)
            if old_value != new_value:
                valid_updates[field] = new_value
                self._log_change(
                    cursor, patient_id, field,
                    str(old_value) if old_value is not None else None,
                    str(new_value) if new_value is not None else None,
                    "UPDATE", changed_by
                )

        if valid_updates:
            set_clause = ", ".join(f"{field} = ?" for field in valid_updates)
            set_clause += ", updated_at = ?"
            values = list(valid_updates.values()) + [now, patient_id]

            cursor.execute(
                f"UPDATE patients SET {set_clause} WHERE id = ?",
                values
            )

        conn.commit()
        conn.close()
        return self.get_by_id(patient_id)

    def get_change_history(self, patient_id: str, limit: int = 50) -> list[dict]:
        """Get audit trail for a patient."""
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("""
            SELECT * FROM patient_change_log
            WHERE patient_id = ?
            ORDER BY changed_at DESC
            LIMIT ?
        """, (patient_id, limit))
        rows = cursor.fetchall()
        conn.close()
        return [dict(row) for row in rows]

    # Private helpers

    def _log_change(
        self,
        cursor,
        patient_id: str,
        field_name: str,
        old_value: str | None,
        new_value: str | None,
        change_type: str,
        changed_by: str
    ) -> None:
        """Log a change to the audit table."""
        cursor.execute("""
            INSERT INTO patient_change_log (id, patient_id, field_name, old_value, new_value, change_type, changed_by)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (str(uuid.uuid4()), patient_id, field_name, old_value, new_value, change_type, changed_by))

    def _row_to_patient(self, row) -> Patient:
        """Convert a database row to a Patient object."""
        return Patient(
            id=row["id"],
            first_name=row["first_name"],
            last_name=row["last_name"],
            date_of_birth=row["date_of_birth"],
            phone=row["phone"],
            email=row["email"],
            gender=row["gender"],
            race=row["race"],
            ethnicity=row["ethnicity"],
            insurance_type=row["insurance_type"],
            rural_urban_code=row["rural_urban_code"],
            preferred_language=row["preferred_language"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
