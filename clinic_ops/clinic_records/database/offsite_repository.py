"""Off-site dosing: partner facilities, medication kits and administrations."""

import uuid
from dataclasses import dataclass
from datetime import datetime

from .connection import get_connection


@dataclass
class OffsiteLocation:
    id: str
    facility_name: str
    facility_type: str | None = None
    city: str | None = None
    state: str | None = None
    contact_person_name: str | None = None
    phone: str | None = None
    status: str = "active"


@dataclass
class OffsiteKit:
    id: str
    kit_number: str
    patient_id: str
    location_id: str
    medication: str | None = None
    number_of_bottles: int = 7
    start_date: str | None = None
    end_date: str | None = None
    kit_status: str = "preparing"
    doses_administered: int = 0
    doses_remaining: int = 0
    transported_by: str | None = None
    departed_at: str | None = None


class OffsiteRepository:
    """Repository for off-site dosing records."""

    def create_location(self, location: OffsiteLocation) -> OffsiteLocation:
        conn = get_connection()
        cursor = conn.cursor()
        location.id = location.id or str(uuid.uuid4())
        cursor.execute("""
            INSERT INTO offsite_locations (
                id, facility_name, facility_type, city, state, contact_person_name, phone, status
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            location.id, location.facility_name, location.facility_type, location.city,
            location.state, location.contact_person_name, location.phone, location.status
        ))
        conn.commit()
        conn.close()
        return location

    def list_locations(self) -> list[dict]:
        """Locations with the number of patients holding a kit there."""
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("""
            SELECT l.*, COUNT(DISTINCT k.patient_id) AS active_patients
            FROM offsite_locations l
            LEFT JOIN offsite_kits k
                ON k.location_id = l.id AND k.kit_status IN ('in_transit', 'in_use')
            GROUP BY l.id
            ORDER BY l.facility_name
        """)
        rows = cursor.fetchall()
        conn.close()
        return [dict(row) for row in rows]

    def create_kit(self, kit: OffsiteKit) -> OffsiteKit:
        conn = get_connection()
        cursor = conn.cursor()
        kit.id = kit.id or str(uuid.uuid4())
        cursor.execute("""
            INSERT INTO offsite_kits (
                id, kit_number, patient_id, location_id, medication, number_of_bottles,
                start_date, end_date, kit_status, doses_administered, doses_remaining
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            kit.id, kit.kit_number, kit.patient_id, kit.location_id, kit.medication,
            kit.number_of_bottles, kit.start_date, kit.end_date, kit.kit_status,
            kit.doses_administered, kit.doses_remaining
        ))
        conn.commit()
        conn.close()
        return kit

    def get_kit(self, kit_id: str) -> OffsiteKit | None:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM offsite_kits WHERE id = ?", (kit_id,))
        row = cursor.fetchone()
        conn.close()
        return self._row_to_kit(row) if row else None

    def list_active_kits(self) -> list[dict]:
        """Kits that have left the clinic and not come back, with names."""
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("""
            SELECT k.*, p.last_name || ', ' || p.first_name AS patient_name,
                   l.facility_name AS location_name
            FROM offsite_kits k
            LEFT JOIN patients p ON p.id = k.patient_id
            LEFT JOIN offsite_locations l ON l.id = k.location_id
            WHERE k.kit_status IN ('in_transit', 'in_use')
            ORDER BY k.start_date DESC
        """)
        rows = cursor.fetchall()
        conn.close()
        return [dict(row) for row in rows]

    def update_kit_status(self, kit_id: str, kit_status: str, transported_by: str | None = None) -> bool:
        conn = get_connection()
        cursor = conn.cursor()
        if kit_status == "in_transit":
            cursor.execute("""
                UPDATE offsite_kits SET kit_status = ?, transported_by = ?, departed_at = ?
                WHERE id = ?
            """, (kit_status, transported_by, datetime.now().isoformat(), kit_id))
        else:
            cursor.execute("UPDATE offsite_kits SET kit_status = ? WHERE id = ?", (kit_status, kit_id))
        updated = cursor.rowcount > 0
        conn.commit()
        conn.close()
        return updated

    def schedule_administration(
        self,
        kit_id: str,
        patient_id: str,
        location_id: str,
        medication: str,
        scheduled_time: str,
    ) -> str:
        conn = get_connection()
        cursor = conn.cursor()
        administration_id = str(uuid.uuid4())
        cursor.execute("""
            INSERT INTO offsite_administrations (
                id, kit_id, patient_id, location_id, medication, scheduled_time, status
            ) VALUES (?, ?, ?, ?, ?, ?, 'pending')
        """, (administration_id, kit_id, patient_id, location_id, medication, scheduled_time))
        conn.commit()
        conn.close()
        return administration_id

    def get_administration(self, administration_id: str) -> dict | None:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM offsite_administrations WHERE id = ?", (administration_id,))
        row = cursor.fetchone()
        conn.close()
        return dict(row) if row else None

    def list_administrations(self, status: str | None = None, exclude_status: str | None = None) -> list[dict]:
        conn = get_connection()
        cursor = conn.cursor()
        query = """
            SELECT a.*, p.last_name || ', ' || p.first_name AS patient_name,
                   l.facility_name AS location_name, l.contact_person_name AS facility_contact
            FROM offsite_administrations a
            LEFT JOIN patients p ON p.id = a.patient_id
            LEFT JOIN offsite_locations l ON l.id = a.location_id
        """
        params: list = []
        if status:
            query += " WHERE a.status = ?"
            params.append(status)
        elif exclude_status:
            query += " WHERE a.status != ?"
            params.append(exclude_status)
        query += " ORDER BY COALESCE(a.administered_at, a.scheduled_time) DESC"
        cursor.execute(query, params)
        rows = cursor.fetchall()
        conn.close()
        return [dict(row) for row in rows]

    def record_administration(
        self,
        administration_id: str,
        status: str,
        administered_by: str | None = None,
        notes: str | None = None,
    ) -> bool:
        """
        Record the outcome of a scheduled dose.

        An administered dose moves one dose from remaining to administered on
        the kit, in the same transaction. Remaining doses never go below zero.
        Only a pending administration is updated; returns False otherwise.
        """
        conn = get_connection()
        cursor = conn.cursor()
        now = datetime.now().isoformat()
        try:
            cursor.execute("""
                UPDATE offsite_administrations
                SET status = ?, administered_at = ?, administered_by = ?, notes = ?
                WHERE id = ? AND status = 'pending'
            """, (status, now, administered_by, notes, administration_id))
            updated = cursor.rowcount > 0

            if updated and status == "administered":
                cursor.execute("""
                    UPDATE offsite_kits
                    SET doses_administered = doses_administered + 1,
                        doses_remaining = MAX(doses_remaining - 1, 0)
                    WHERE id = (SELECT kit_id FROM offsite_administrations WHERE id = ?)
                """, (administration_id,))
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()
        return updated

    # Private helpers

    def _row_to_kit(self, row) -> OffsiteKit:
        return OffsiteKit(
            id=row["id"],
            kit_number=row["kit_number"],
            patient_id=row["patient_id"],
            location_id=row["location_id"],
            medication=row["medication"],
            number_of_bottles=row["number_of_bottles"],
            start_date=row["start_date"],
            end_date=row["end_date"],
            kit_status=row["kit_status"],
            doses_administered=row["doses_administered"] or 0,
            doses_remaining=row["doses_remaining"] or 0,
            transported_by=row["transported_by"],
            departed_at=row["departed_at"],
        )
