"""Vaccination records, vaccine inventory, schedules and registry reporting."""

import uuid
from dataclasses import dataclass
from datetime import date, datetime

from .connection import get_connection


@dataclass
class Vaccination:
    id: str
    patient_id: str
    vaccine_name: str
    administration_date: str
    vaccine_code: str | None = None
    manufacturer: str | None = None
    lot_number: str | None = None
    expiration_date: str | None = None
    dose_number: int = 1
    total_doses_in_series: int = 1
    administration_site: str | None = None
    route: str | None = None
    administered_by: str | None = None
    vis_given: bool = True
    funding_source: str | None = "private"
    reported_to_registry: bool = False
    registry_report_date: str | None = None
    adverse_event: bool = False
    adverse_event_details: str | None = None
    notes: str | None = None
    patient_name: str | None = None


@dataclass
class InventoryLot:
    id: str
    vaccine_name: str
    lot_number: str
    quantity_received: int
    vaccine_code: str | None = None
    manufacturer: str | None = None
    ndc_number: str | None = None
    expiration_date: str | None = None
    quantity_remaining: int = 0
    quantity_administered: int = 0
    quantity_wasted: int = 0
    storage_location: str | None = None
    vfc_eligible: bool = False
    status: str = "active"


class VaccinationRepository:
    """Repository for immunization records and vaccine stock."""

    VACCINATION_FIELDS = [
        "patient_id", "vaccine_name", "vaccine_code", "manufacturer", "lot_number",
        "expiration_date", "dose_number", "total_doses_in_series", "administration_date",
        "administration_site", "route", "administered_by", "vis_given", "funding_source",
        "reported_to_registry", "registry_report_date", "adverse_event",
        "adverse_event_details", "notes",
    ]

    def list_vaccinations(self, limit: int = 100) -> list[Vaccination]:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("""
            SELECT v.*, p.first_name, p.last_name
            FROM vaccinations v
            LEFT JOIN patients p ON p.id = v.patient_id
            ORDER BY v.administration_date DESC
            LIMIT ?
        """, (limit,))
        rows = cursor.fetchall()
        conn.close()
        return [self._row_to_vaccination(row) for row in rows]

    def get_vaccination(self, vaccination_id: str) -> Vaccination | None:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("""
            SELECT v.*, p.first_name, p.last_name
            FROM vaccinations v
            LEFT JOIN patients p ON p.id = v.patient_id
            WHERE v.id = ?
        """, (vaccination_id,))
        row = cursor.fetchone()
        conn.close()
        return self._row_to_vaccination(row) if row else None

    def record_vaccination(self, vaccination: Vaccination) -> Vaccination:
        """
        Insert a vaccination and draw one dose from its inventory lot.

        Both writes commit together. A lot with nothing remaining is left
        untouched, so quantity_remaining never goes negative.
        """
        conn = get_connection()
        cursor = conn.cursor()
        vaccination.id = vaccination.id or str(uuid.uuid4())
        vaccination.reported_to_registry = False
        vaccination.adverse_event = False

        values = [getattr(vaccination, f) for f in self.VACCINATION_FIELDS]
        values = [int(v) if isinstance(v, bool) else v for v in values]
        try:
            cursor.execute(f"""
                INSERT INTO vaccinations (id, {', '.join(self.VACCINATION_FIELDS)})
                VALUES (?, {', '.join('?' for _ in self.VACCINATION_FIELDS)})
            """, [vaccination.id, *values])

            if vaccination.lot_number:
                cursor.execute("""
                    UPDATE vaccine_inventory
                    SET quantity_remaining = quantity_remaining - 1,
                        quantity_administered = quantity_administered + 1
                    WHERE lot_number = ? AND quantity_remaining > 0
                """, (vaccination.lot_number,))
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()
        return vaccination

    def add_inventory(self, lot: InventoryLot) -> InventoryLot:
        conn = get_connection()
        cursor = conn.cursor()
        lot.id = lot.id or str(uuid.uuid4())
        lot.quantity_remaining = lot.quantity_received
        lot.quantity_administered = 0
        lot.quantity_wasted = 0
        lot.status = "active"
        cursor.execute("""
            INSERT INTO vaccine_inventory (
                id, vaccine_name, vaccine_code, manufacturer, lot_number, ndc_number,
                expiration_date, quantity_received, quantity_remaining, quantity_administered,
                quantity_wasted, storage_location, vfc_eligible, status
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            lot.id, lot.vaccine_name, lot.vaccine_code, lot.manufacturer, lot.lot_number,
            lot.ndc_number, lot.expiration_date, lot.quantity_received, lot.quantity_remaining,
            lot.quantity_administered, lot.quantity_wasted, lot.storage_location,
            int(lot.vfc_eligible), lot.status
        ))
        conn.commit()
        conn.close()
        return lot

    def list_inventory(self) -> list[InventoryLot]:
        """Inventory lots, soonest expiry first."""
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM vaccine_inventory ORDER BY expiration_date")
        rows = cursor.fetchall()
        conn.close()
        return [self._row_to_lot(row) for row in rows]

    def get_lot(self, lot_number: str) -> InventoryLot | None:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM vaccine_inventory WHERE lot_number = ?", (lot_number,))
        row = cursor.fetchone()
        conn.close()
        return self._row_to_lot(row) if row else None

    def add_schedule(self, vaccine_name: str, **fields) -> str:
        conn = get_connection()
        cursor = conn.cursor()
        schedule_id = str(uuid.uuid4())
        cursor.execute("""
            INSERT INTO vaccination_schedules (
                id, vaccine_name, vaccine_code, age_group, dose_number, total_doses,
                recommended_age_months, interval_from_previous_dose_days,
                acip_recommendation, is_required, is_active
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            schedule_id, vaccine_name, fields.get("vaccine_code"), fields.get("age_group"),
            fields.get("dose_number"), fields.get("total_doses"),
            fields.get("recommended_age_months"), fields.get("interval_from_previous_dose_days"),
            fields.get("acip_recommendation"), int(fields.get("is_required", False)),
            int(fields.get("is_active", True))
        ))
        conn.commit()
        conn.close()
        return schedule_id

    def list_active_schedules(self) -> list[dict]:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM vaccination_schedules WHERE is_active = 1 ORDER BY vaccine_name")
        rows = cursor.fetchall()
        conn.close()
        return [dict(row) for row in rows]

    def submit_to_registry(self, vaccination_id: str, registry_name: str = "State Immunization Registry") -> bool:
        """Create a registry submission and mark the vaccination reported."""
        conn = get_connection()
        cursor = conn.cursor()
        try:
            cursor.execute(
                "UPDATE vaccinations SET reported_to_registry = 1, registry_report_date = ? WHERE id = ?",
                (date.today().isoformat(), vaccination_id)
            )
            updated = cursor.rowcount > 0
            if updated:
                cursor.execute("""
                    INSERT INTO immunization_registry_submissions (
                        id, vaccination_id, registry_name, submission_type, submission_status,
                        submission_date
                    ) VALUES (?, ?, ?, 'new', 'pending', ?)
                """, (str(uuid.uuid4()), vaccination_id, registry_name, datetime.now().isoformat()))
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()
        return updated

    def list_registry_submissions(self, vaccination_id: str) -> list[dict]:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute(
            "SELECT * FROM immunization_registry_submissions WHERE vaccination_id = ?",
            (vaccination_id,)
        )
        rows = cursor.fetchall()
        conn.close()
        return [dict(row) for row in rows]

    def report_adverse_event(
        self,
        vaccination_id: str,
        patient_id: str,
        event_description: str,
        onset_date: str | None = None,
        severity: str = "mild",
        treatment_provided: str | None = None,
        reported_to_vaers: bool = False,
    ) -> str:
        conn = get_connection()
        cursor = conn.cursor()
        event_id = str(uuid.uuid4())
        try:
            cursor.execute("""
                INSERT INTO vaccine_adverse_events (
                    id, vaccination_id, patient_id, event_description, onset_date, severity,
                    treatment_provided, reported_to_vaers, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                event_id, vaccination_id, patient_id, event_description, onset_date, severity,
                treatment_provided, int(reported_to_vaers), datetime.now().isoformat()
            ))
            cursor.execute(
                "UPDATE vaccinations SET adverse_event = 1, adverse_event_details = ? WHERE id = ?",
                (event_description, vaccination_id)
            )
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()
        return event_id

    # Private helpers

    def _row_to_vaccination(self, row) -> Vaccination:
        patient_name = None
        if row["first_name"] is not None:
            patient_name = f"{row['first_name']} {row['last_name']}"
        return Vaccination(
            id=row["id"],
            patient_id=row["patient_id"],
            vaccine_name=row["vaccine_name"],
            administration_date=row["administration_date"],
            vaccine_code=row["vaccine_code"],
            manufacturer=row["manufacturer"],
            lot_number=row["lot_number"],
            expiration_date=row["expiration_date"],
            dose_number=row["dose_number"],
            total_doses_in_series=row["total_doses_in_series"],
            administration_site=row["administration_site"],
            route=row["route"],
            administered_by=row["administered_by"],
            vis_given=bool(row["vis_given"]),
            funding_source=row["funding_source"],
            reported_to_registry=bool(row["reported_to_registry"]),
            registry_report_date=row["registry_report_date"],
            adverse_event=bool(row["adverse_event"]),
            adverse_event_details=row["adverse_event_details"],
            notes=row["notes"],
            patient_name=patient_name,
        )

    def _row_to_lot(self, row) -> InventoryLot:
        return InventoryLot(
            id=row["id"],
            vaccine_name=row["vaccine_name"],
            lot_number=row["lot_number"],
            quantity_received=row["quantity_received"],
            vaccine_code=row["vaccine_code"],
            manufacturer=row["manufacturer"],
            ndc_number=row["ndc_number"],
            expiration_date=row["expiration_date"],
            quantity_remaining=row["quantity_remaining"],
            quantity_administered=row["quantity_administered"],
            quantity_wasted=row["quantity_wasted"],
            storage_location=row["storage_location"],
            vfc_eligible=bool(row["vfc_eligible"]),
            status=row["status"],
        )
