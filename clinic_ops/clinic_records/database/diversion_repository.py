"""Take-home bottle tracking, geofences, biometrics and compliance alerts."""

import json
import uuid
from dataclasses import dataclass
from datetime import datetime

from .connection import get_connection


@dataclass
class Bottle:
    id: str
    bottle_number: str
    patient_id: str
    qr_code_hash: str
    medication_name: str | None = None
    dose_amount: str | None = None
    quantity: float | None = None
    dispensed_date: str | None = None
    dosing_window_start: str = "06:00:00"
    dosing_window_end: str = "11:00:00"
    status: str = "dispensed"
    consumed_at: str | None = None
    consumption_verified: bool | None = None
    facial_biometric_verified: bool | None = None
    facial_biometric_confidence: float | None = None
    seal_photo_url: str | None = None
    seal_intact_confirmed: bool | None = None
    compliance_status: str | None = None
    non_compliance_reason: str | None = None


@dataclass
class HomeAddress:
    id: str
    patient_id: str
    address_line1: str
    city: str
    state: str
    zip_code: str
    address_line2: str | None = None
    address_type: str = "home"
    latitude: float | None = None
    longitude: float | None = None
    geofence_radius_meters: float = 150
    verification_method: str | None = None
    is_primary: bool = True
    is_active: bool = True
    is_verified: bool = False
    verified_at: str | None = None
    created_at: str | None = None


@dataclass
class LocationException:
    id: str
    patient_id: str
    start_date: str
    end_date: str
    exception_type: str = "travel"
    reason: str | None = None
    temporary_address: str | None = None
    temporary_latitude: float | None = None
    temporary_longitude: float | None = None
    temporary_geofence_radius_meters: float = 500
    requested_by: str | None = None
    status: str = "pending"
    reviewed_at: str | None = None
    reviewed_by: str | None = None
    created_at: str | None = None


@dataclass
class BiometricEnrollment:
    id: str
    patient_id: str
    consent_signed: bool
    facial_enrolled_at: str | None = None
    enrollment_location: str | None = None
    match_threshold_percentage: float = 85
    consent_signed_at: str | None = None
    is_active: bool = True


class DiversionRepository:
    """Repository for take-home diversion control records."""

    # Bottles

    def create_bottle(self, bottle: Bottle) -> Bottle:
        conn = get_connection()
        cursor = conn.cursor()
        bottle.id = bottle.id or str(uuid.uuid4())
        bottle.dispensed_date = bottle.dispensed_date or datetime.now().isoformat()
        cursor.execute("""
            INSERT INTO takehome_bottles (
                id, bottle_number, patient_id, qr_code_hash, medication_name, dose_amount,
                quantity, dispensed_date, dosing_window_start, dosing_window_end, status
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            bottle.id, bottle.bottle_number, bottle.patient_id, bottle.qr_code_hash,
            bottle.medication_name, bottle.dose_amount, bottle.quantity,
            bottle.dispensed_date, bottle.dosing_window_start, bottle.dosing_window_end,
            bottle.status
        ))
        conn.commit()
        conn.close()
        return bottle

    def get_bottle_by_hash(self, qr_code_hash: str) -> Bottle | None:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM takehome_bottles WHERE qr_code_hash = ?", (qr_code_hash,))
        row = cursor.fetchone()
        conn.close()
        return self._row_to_bottle(row) if row else None

    def get_bottle(self, bottle_id: str) -> Bottle | None:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM takehome_bottles WHERE id = ?", (bottle_id,))
        row = cursor.fetchone()
        conn.close()
        return self._row_to_bottle(row) if row else None

    def list_bottles(self, limit: int = 100) -> list[Bottle]:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute(
            "SELECT * FROM takehome_bottles ORDER BY dispensed_date DESC LIMIT ?",
            (limit,)
        )
        rows = cursor.fetchall()
        conn.close()
        return [self._row_to_bottle(row) for row in rows]

    def mark_bottle_consumed(self, bottle_id: str, consumption: dict) -> bool:
        """
        Set a bottle to consumed with the verification outcome of its scan.

        Returns False when the bottle is missing or was already consumed.
        """
        fields = [
            "consumed_at", "consumption_location_lat", "consumption_location_lng",
            "consumption_gps_accuracy", "consumption_verified", "facial_biometric_verified",
            "facial_biometric_confidence", "seal_photo_url", "seal_intact_confirmed",
            "compliance_status", "non_compliance_reason",
        ]
        values = {key: consumption.get(key) for key in fields}
        values["status"] = "consumed"

        conn = get_connection()
        cursor = conn.cursor()
        assignments = ", ".join(f"{key} = ?" for key in values)
        cursor.execute(
            f"UPDATE takehome_bottles SET {assignments} WHERE id = ? AND status != 'consumed'",
            [*values.values(), bottle_id]
        )
        updated = cursor.rowcount > 0
        conn.commit()
        conn.close()
        return updated

    # Home addresses

    def register_home_address(self, address: HomeAddress) -> HomeAddress:
        """
        Register a new primary home address.

        Clearing the patient's previous primary flag and inserting the new
        row share one transaction, so a patient never ends up with two
        primaries or none after a failed insert.
        """
        conn = get_connection()
        cursor = conn.cursor()
        address.id = address.id or str(uuid.uuid4())
        address.is_primary = True
        address.created_at = datetime.now().isoformat()
        try:
            cursor.execute(
                "UPDATE patient_home_addresses SET is_primary = 0 WHERE patient_id = ?",
                (address.patient_id,)
            )
            cursor.execute("""
                INSERT INTO patient_home_addresses (
                    id, patient_id, address_line1, address_line2, city, state, zip_code,
                    address_type, latitude, longitude, geofence_radius_meters,
                    verification_method, is_primary, is_active, is_verified, verified_at,
                    created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 1, ?, ?, ?, ?)
            """, (
                address.id, address.patient_id, address.address_line1, address.address_line2,
                address.city, address.state, address.zip_code, address.address_type,
                address.latitude, address.longitude, address.geofence_radius_meters,
                address.verification_method, int(address.is_active), int(address.is_verified),
                address.verified_at, address.created_at
            ))
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()
        return address

    def get_active_addresses(self, patient_id: str) -> list[HomeAddress]:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("""
            SELECT * FROM patient_home_addresses
            WHERE patient_id = ? AND is_active = 1
            ORDER BY address_type
        """, (patient_id,))
        rows = cursor.fetchall()
        conn.close()
        return [self._row_to_address(row) for row in rows]

    def list_primary_addresses(self) -> list[HomeAddress]:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM patient_home_addresses WHERE is_primary = 1 ORDER BY created_at DESC")
        rows = cursor.fetchall()
        conn.close()
        return [self._row_to_address(row) for row in rows]

    def count_primary_addresses(self, patient_id: str) -> int:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute(
            "SELECT COUNT(*) FROM patient_home_addresses WHERE patient_id = ? AND is_primary = 1",
            (patient_id,)
        )
        count = cursor.fetchone()[0]
        conn.close()
        return count

    # Location exceptions

    def create_exception(self, exception: LocationException) -> LocationException:
        conn = get_connection()
        cursor = conn.cursor()
        exception.id = exception.id or str(uuid.uuid4())
        exception.status = "pending"
        exception.created_at = datetime.now().isoformat()
        cursor.execute("""
            INSERT INTO takehome_location_exceptions (
                id, patient_id, exception_type, reason, start_date, end_date,
                temporary_address, temporary_latitude, temporary_longitude,
                temporary_geofence_radius_meters, requested_by, status, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            exception.id, exception.patient_id, exception.exception_type, exception.reason,
            exception.start_date, exception.end_date, exception.temporary_address,
            exception.temporary_latitude, exception.temporary_longitude,
            exception.temporary_geofence_radius_meters, exception.requested_by,
            exception.status, exception.created_at
        ))
        conn.commit()
        conn.close()
        return exception

    def review_exception(self, exception_id: str, status: str, reviewed_by: str | None = None) -> bool:
        """Approve or deny a location exception."""
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("""
            UPDATE takehome_location_exceptions
            SET status = ?, reviewed_at = ?, reviewed_by = ?
            WHERE id = ?
        """, (status, datetime.now().isoformat(), reviewed_by, exception_id))
        updated = cursor.rowcount > 0
        conn.commit()
        conn.close()
        return updated

    def find_approved_exception(self, patient_id: str, on_date: str) -> LocationException | None:
        """An approved exception whose date range covers the given day."""
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("""
            SELECT * FROM takehome_location_exceptions
            WHERE patient_id = ? AND status = 'approved'
              AND start_date <= ? AND end_date >= ?
            ORDER BY created_at DESC
            LIMIT 1
        """, (patient_id, on_date, on_date))
        row = cursor.fetchone()
        conn.close()
        return self._row_to_exception(row) if row else None

    def list_exceptions(self) -> list[LocationException]:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM takehome_location_exceptions ORDER BY created_at DESC")
        rows = cursor.fetchall()
        conn.close()
        return [self._row_to_exception(row) for row in rows]

    # Biometrics

    def enroll_biometric(self, enrollment: BiometricEnrollment) -> BiometricEnrollment:
        conn = get_connection()
        cursor = conn.cursor()
        now = datetime.now().isoformat()
        enrollment.id = enrollment.id or str(uuid.uuid4())
        enrollment.facial_enrolled_at = enrollment.facial_enrolled_at or now
        enrollment.consent_signed_at = enrollment.consent_signed_at or now
        cursor.execute("""
            INSERT INTO patient_biometric_enrollment (
                id, patient_id, facial_enrolled_at, enrollment_location,
                match_threshold_percentage, consent_signed, consent_signed_at, is_active
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            enrollment.id, enrollment.patient_id, enrollment.facial_enrolled_at,
            enrollment.enrollment_location, enrollment.match_threshold_percentage,
            int(enrollment.consent_signed), enrollment.consent_signed_at,
            int(enrollment.is_active)
        ))
        conn.commit()
        conn.close()
        return enrollment

    def get_active_enrollment(self, patient_id: str) -> BiometricEnrollment | None:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("""
            SELECT * FROM patient_biometric_enrollment
            WHERE patient_id = ? AND is_active = 1
            ORDER BY facial_enrolled_at DESC
            LIMIT 1
        """, (patient_id,))
        row = cursor.fetchone()
        conn.close()
        return self._row_to_enrollment(row) if row else None

    def list_enrollments(self) -> list[BiometricEnrollment]:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM patient_biometric_enrollment ORDER BY facial_enrolled_at DESC")
        rows = cursor.fetchall()
        conn.close()
        return [self._row_to_enrollment(row) for row in rows]

    # Scan log

    def log_scan(self, scan: dict) -> str:
        """Insert a scan log row; `verification_failures` is stored as JSON."""
        values = dict(scan)
        values["id"] = values.get("id") or str(uuid.uuid4())
        values["scan_timestamp"] = values.get("scan_timestamp") or datetime.now().isoformat()
        if values.get("verification_failures") is not None:
            values["verification_failures"] = json.dumps(values["verification_failures"])
        self._insert("takehome_scan_log", values)
        return values["id"]

    def list_scan_logs(self, limit: int = 100) -> list[dict]:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute(
            "SELECT * FROM takehome_scan_log ORDER BY scan_timestamp DESC LIMIT ?",
            (limit,)
        )
        rows = cursor.fetchall()
        conn.close()

        logs = []
        for row in rows:
            data = dict(row)
            data["verification_failures"] = (
                json.loads(row["verification_failures"]) if row["verification_failures"] else []
            )
            logs.append(data)
        return logs

    # Compliance alerts

    def create_alert(self, alert: dict) -> str:
        values = dict(alert)
        values["id"] = values.get("id") or str(uuid.uuid4())
        values["created_at"] = values.get("created_at") or datetime.now().isoformat()
        values.setdefault("status", "open")
        self._insert("takehome_compliance_alerts", values)
        return values["id"]

    def list_alerts(self, status: str | None = None, limit: int = 100) -> list[dict]:
        conn = get_connection()
        cursor = conn.cursor()
        query = "SELECT * FROM takehome_compliance_alerts"
        params: list = []
        if status:
            query += " WHERE status = ?"
            params.append(status)
        query += " ORDER BY created_at DESC LIMIT ?"
        params.append(limit)
        cursor.execute(query, params)
        rows = cursor.fetchall()
        conn.close()
        return [dict(row) for row in rows]

    def resolve_alert(self, alert_id: str, resolution_notes: str | None = None) -> bool:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("""
            UPDATE takehome_compliance_alerts
            SET status = 'resolved', resolution_notes = ?, resolved_at = ?
            WHERE id = ?
        """, (resolution_notes, datetime.now().isoformat(), alert_id))
        updated = cursor.rowcount > 0
        conn.commit()
        conn.close()
        return updated

    # Risk scores and DEA reporting

    def add_risk_score(self, patient_id: str, risk_score: float, risk_level: str, risk_factors: list[str]) -> str:
        conn = get_connection()
        cursor = conn.cursor()
        score_id = str(uuid.uuid4())
        cursor.execute("""
            INSERT INTO patient_diversion_risk_scores (
                id, patient_id, risk_score, risk_level, risk_factors, assessment_date
            ) VALUES (?, ?, ?, ?, ?, ?)
        """, (
            score_id, patient_id, risk_score, risk_level, json.dumps(risk_factors),
            datetime.now().isoformat()
        ))
        conn.commit()
        conn.close()
        return score_id

    def list_risk_scores(self) -> list[dict]:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM patient_diversion_risk_scores ORDER BY risk_score DESC")
        rows = cursor.fetchall()
        conn.close()

        scores = []
        for row in rows:
            data = dict(row)
            data["risk_factors"] = json.loads(row["risk_factors"]) if row["risk_factors"] else []
            scores.append(data)
        return scores

    def record_dea_event(self, event_type: str, event_data: dict) -> str:
        conn = get_connection()
        cursor = conn.cursor()
        report_id = str(uuid.uuid4())
        cursor.execute("""
            INSERT INTO dea_diversion_reports (id, event_type, event_data, reported_at, sync_status)
            VALUES (?, ?, ?, ?, 'synced')
        """, (report_id, event_type, json.dumps(event_data), datetime.now().isoformat()))
        conn.commit()
        conn.close()
        return report_id

    def list_dea_events(self, event_type: str | None = None) -> list[dict]:
        conn = get_connection()
        cursor = conn.cursor()
        if event_type:
            cursor.execute(
                "SELECT * FROM dea_diversion_reports WHERE event_type = ? ORDER BY reported_at DESC",
                (event_type,)
            )
        else:
            cursor.execute("SELECT * FROM dea_diversion_reports ORDER BY reported_at DESC")
        rows = cursor.fetchall()
        conn.close()

        events = []
        for row in rows:
            data = dict(row)
            data["event_data"] = json.loads(row["event_data"]) if row["event_data"] else {}
            events.append(data)
        return events

    # Private helpers

    def _insert(self, table: str, values: dict) -> None:
        conn = get_connection()
        cursor = conn.cursor()
        columns = ", ".join(values)
        placeholders = ", ".join("?" for _ in values)
        cursor.execute(
            f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",
            [int(v) if isinstance(v, bool) else v for v in values.values()]
        )
        conn.commit()
        conn.close()

    def _flag(self, value) -> bool | None:
        return None if value is None else bool(value)

    def _row_to_bottle(self, row) -> Bottle:
        return Bottle(
            id=row["id"],
            bottle_number=row["bottle_number"],
            patient_id=row["patient_id"],
            qr_code_hash=row["qr_code_hash"],
            medication_name=row["medication_name"],
            dose_amount=row["dose_amount"],
            quantity=row["quantity"],
            dispensed_date=row["dispensed_date"],
            dosing_window_start=row["dosing_window_start"] or "06:00:00",
            dosing_window_end=row["dosing_window_end"] or "11:00:00",
            status=row["status"],
            consumed_at=row["consumed_at"],
            consumption_verified=self._flag(row["consumption_verified"]),
            facial_biometric_verified=self._flag(row["facial_biometric_verified"]),
            facial_biometric_confidence=row["facial_biometric_confidence"],
            seal_photo_url=row["seal_photo_url"],
            seal_intact_confirmed=self._flag(row["seal_intact_confirmed"]),
            compliance_status=row["compliance_status"],
            non_compliance_reason=row["non_compliance_reason"],
        )

    def _row_to_address(self, row) -> HomeAddress:
        return HomeAddress(
            id=row["id"],
            patient_id=row["patient_id"],
            address_line1=row["address_line1"],
            address_line2=row["address_line2"],
            city=row["city"],
            state=row["state"],
            zip_code=row["zip_code"],
            address_type=row["address_type"] or "home",
            latitude=row["latitude"],
            longitude=row["longitude"],
            geofence_radius_meters=row["geofence_radius_meters"] or 150,
            verification_method=row["verification_method"],
            is_primary=bool(row["is_primary"]),
            is_active=bool(row["is_active"]),
            is_verified=bool(row["is_verified"]),
            verified_at=row["verified_at"],
            created_at=row["created_at"],
        )

    def _row_to_exception(self, row) -> LocationException:
        return LocationException(
            id=row["id"],
            patient_id=row["patient_id"],
            start_date=row["start_date"],
            end_date=row["end_date"],
            exception_type=row["exception_type"] or "travel",
            reason=row["reason"],
            temporary_address=row["temporary_address"],
            temporary_latitude=row["temporary_latitude"],
            temporary_longitude=row["temporary_longitude"],
            temporary_geofence_radius_meters=row["temporary_geofence_radius_meters"] or 500,
            requested_by=row["requested_by"],
            status=row["status"],
            reviewed_at=row["reviewed_at"],
            reviewed_by=row["reviewed_by"],
            created_at=row["created_at"],
        )

    def _row_to_enrollment(self, row) -> BiometricEnrollment:
        return BiometricEnrollment(
            id=row["id"],
            patient_id=row["patient_id"],
            consent_signed=bool(row["consent_signed"]),
            facial_enrolled_at=row["facial_enrolled_at"],
            enrollment_location=row["enrollment_location"],
            match_threshold_percentage=row["match_threshold_percentage"] or 85,
            consent_signed_at=row["consent_signed_at"],
            is_active=bool(row["is_active"]),
        )
