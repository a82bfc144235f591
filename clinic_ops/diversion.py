"""
Take-home diversion control.

A patient scans the QR code on a take-home bottle when consuming the dose.
The scan is checked against the bottle's dosing window, the patient's
registered home geofence (or an approved travel exception), and an optional
facial biometric match. Every failed check raises a compliance alert for
clinic follow-up.
"""

import hashlib
import math
from datetime import date, datetime

from rich.console import Console

from clinic_ops.address_validator import AddressValidationError, geocode_address
from clinic_ops.clinic_records.database import (
    BiometricEnrollment,
    Bottle,
    DiversionRepository,
    HomeAddress,
    LocationException,
    PatientRepository,
    RecordNotFoundError,
)
from clinic_ops.health_equity import round_half_up

EARTH_RADIUS_METERS = 6371000
DEFAULT_GEOFENCE_RADIUS = 150
DEFAULT_EXCEPTION_RADIUS = 500
DEFAULT_MATCH_THRESHOLD = 85

console = Console()

# Time violations further out than this need a callback
CALLBACK_MINUTES = 120

# Lower bounds for each diversion risk level
RISK_LEVELS = [(75, "critical"), (50, "high"), (25, "medium"), (0, "low")]


class ScanVerificationError(Exception):
    """Raised when a scan is rejected before any verification is attempted."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


# =============================================================================
# Checks
# =============================================================================

def hash_qr_code(qr_code_data: str) -> str:
    return hashlib.sha256(qr_code_data.encode("utf-8")).hexdigest()


def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in meters (haversine)."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_METERS * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def _minutes_of_day(clock: str) -> int:
    hours, minutes = clock.split(":")[:2]
    return int(hours) * 60 + int(minutes)


def check_dosing_window(
    current_time: datetime,
    window_start: str = "06:00:00",
    window_end: str = "11:00:00",
) -> tuple[bool, int]:
    """
    Whether a scan falls inside the dosing window, compared by minute.

    Returns (is_within, minutes_outside). Both window edges are inclusive.
    """
    current = current_time.hour * 60 + current_time.minute
    start = _minutes_of_day(window_start)
    end = _minutes_of_day(window_end)

    if start <= current <= end:
        return True, 0
    if current < start:
        return False, start - current
    return False, current - end


def check_location(
    patient_id: str,
    latitude: float,
    longitude: float,
    today: date,
    repo: DiversionRepository,
) -> tuple[bool, float, HomeAddress | None]:
    """
    Check a GPS fix against the patient's active addresses.

    Stops at the first address whose geofence contains the fix; otherwise
    keeps the nearest one. An approved location exception covering today
    can still verify a fix outside every home geofence.
    """
    verified = False
    distance_from_home = 0.0
    home_address = None

    for address in repo.get_active_addresses(patient_id):
        if address.latitude is None or address.longitude is None:
            continue
        distance = calculate_distance(latitude, longitude, address.latitude, address.longitude)
        if distance <= (address.geofence_radius_meters or DEFAULT_GEOFENCE_RADIUS):
            verified = True
            home_address = address
            distance_from_home = distance
            break
        if home_address is None or distance < distance_from_home:
            distance_from_home = distance
            home_address = address

    if not verified:
        exception = repo.find_approved_exception(patient_id, today.isoformat())
        if (
            exception
            and exception.temporary_latitude is not None
            and exception.temporary_longitude is not None
        ):
            distance = calculate_distance(
                latitude, longitude, exception.temporary_latitude, exception.temporary_longitude
            )
            if distance <= (exception.temporary_geofence_radius_meters or DEFAULT_EXCEPTION_RADIUS):
                verified = True
                distance_from_home = distance

    return verified, distance_from_home, home_address


def check_biometric(
    patient_id: str,
    biometric_data: dict,
    repo: DiversionRepository,
) -> tuple[bool, float, float]:
    """Returns (verified, confidence, threshold) for a facial match attempt."""
    enrollment = repo.get_active_enrollment(patient_id)
    if not enrollment:
        return False, 0, DEFAULT_MATCH_THRESHOLD

    confidence = biometric_data.get("confidence") or 0
    threshold = enrollment.match_threshold_percentage or DEFAULT_MATCH_THRESHOLD
    verified = confidence >= threshold
    if biometric_data.get("liveness_check") is not None:
        verified = verified and bool(biometric_data["liveness_check"])
    return verified, confidence, threshold


# =============================================================================
# Scan verification
# =============================================================================

def verify_scan(
    qr_code_data: str,
    patient_id: str,
    gps_location: dict | None = None,
    facial_biometric_data: dict | None = None,
    seal_photo_url: str | None = None,
    device_info: dict | None = None,
    ip_address: str | None = None,
    now: datetime | None = None,
    repo: DiversionRepository | None = None,
) -> dict:
    """
    Verify a take-home dose consumption scan.

    Raises ScanVerificationError for an unknown QR code, a scan by the
    wrong patient (403) or an already consumed bottle. Otherwise the scan is
    logged, the bottle is marked consumed and alerts are raised for every
    failed check.
    """
    repo = repo or DiversionRepository()
    now = now or datetime.now()
    gps_location = gps_location or {}
    device_info = device_info or {}

    bottle = repo.get_bottle_by_hash(hash_qr_code(qr_code_data))
    if not bottle:
        raise ScanVerificationError("Invalid QR code")

    if bottle.patient_id != patient_id:
        repo.create_alert({
            "patient_id": patient_id,
            "bottle_id": bottle.id,
            "alert_type": "wrong_patient_scan",
            "severity": "critical",
            "alert_title": "Wrong Patient Scanned Medication",
            "alert_description": f"Patient {patient_id} attempted to scan medication belonging to another patient",
            "callback_required": True,
            "dea_reportable": True,
        })
        raise ScanVerificationError("This medication is not assigned to you", status_code=403)

    if bottle.status == "consumed":
        raise ScanVerificationError("This dose has already been consumed")

    failures = []
    within_window, minutes_outside = check_dosing_window(
        now, bottle.dosing_window_start, bottle.dosing_window_end
    )

    location_verified = False
    distance_from_home = 0.0
    home_address = None
    latitude = gps_location.get("latitude")
    longitude = gps_location.get("longitude")
    if latitude is not None and longitude is not None:
        location_verified, distance_from_home, home_address = check_location(
            patient_id, latitude, longitude, now.date(), repo
        )

    if not location_verified:
        failures.append("location_violation")
    if not within_window:
        failures.append("time_violation")

    biometric_verified = False
    biometric_confidence = 0
    match_threshold = DEFAULT_MATCH_THRESHOLD
    if facial_biometric_data:
        biometric_verified, biometric_confidence, match_threshold = check_biometric(
            patient_id, facial_biometric_data, repo
        )
        if not biometric_verified:
            failures.append("biometric_failure")

    seal_verified = bool(seal_photo_url)
    passed = location_verified and within_window and biometric_verified
    liveness = (facial_biometric_data or {}).get("liveness_check")

    scan_log_id = repo.log_scan({
        "bottle_id": bottle.id,
        "patient_id": patient_id,
        "scan_type": "consumption",
        "scan_timestamp": now.isoformat(),
        "gps_latitude": latitude,
        "gps_longitude": longitude,
        "gps_accuracy_meters": gps_location.get("accuracy"),
        "address_resolved": gps_location.get("address"),
        "is_within_home_geofence": location_verified,
        "distance_from_home_meters": distance_from_home,
        "registered_home_id": home_address.id if home_address else None,
        "is_within_dosing_window": within_window,
        "minutes_outside_window": minutes_outside,
        "facial_scan_attempted": bool(facial_biometric_data),
        "facial_scan_successful": biometric_verified,
        "facial_match_percentage": biometric_confidence,
        "liveness_check_passed": liveness,
        "device_id": device_info.get("device_id"),
        "device_type": device_info.get("device_type"),
        "device_model": device_info.get("device_model"),
        "app_version": device_info.get("app_version"),
        "ip_address": ip_address,
        "verification_passed": passed,
        "verification_failures": failures or None,
        "seal_photo_url": seal_photo_url,
        "seal_verified": seal_verified,
    })

    consumed = repo.mark_bottle_consumed(bottle.id, {
        "consumed_at": now.isoformat(),
        "consumption_location_lat": latitude,
        "consumption_location_lng": longitude,
        "consumption_gps_accuracy": gps_location.get("accuracy"),
        "consumption_verified": passed,
        "facial_biometric_verified": biometric_verified,
        "facial_biometric_confidence": biometric_confidence,
        "seal_photo_url": seal_photo_url,
        "seal_intact_confirmed": seal_verified,
        "compliance_status": "compliant" if passed else "non_compliant",
        "non_compliance_reason": ", ".join(failures) if failures else None,
    })
    if not consumed:
        raise ScanVerificationError("This dose has already been consumed")

    dosing_window = f"{bottle.dosing_window_start} - {bottle.dosing_window_end}"
    base_alert = {"patient_id": patient_id, "bottle_id": bottle.id, "scan_log_id": scan_log_id}

    if not location_verified:
        repo.create_alert({
            **base_alert,
            "alert_type": "location_violation",
            "severity": "high",
            "alert_title": "Location Violation - Dose Consumed Outside Home",
            "alert_description": f"Patient consumed dose {distance_from_home:.0f} meters from registered home address",
            "expected_location": home_address.address_line1 if home_address else "Registered home address",
            "actual_location": gps_location.get("address") or f"{latitude}, {longitude}",
            "distance_violation_meters": distance_from_home,
            "callback_required": True,
            "callback_within_hours": 24,
            "clinical_review_required": True,
        })

    if not within_window:
        repo.create_alert({
            **base_alert,
            "alert_type": "time_violation",
            "severity": "medium",
            "alert_title": "Dosing Time Violation",
            "alert_description": f"Patient consumed dose {minutes_outside} minutes outside the dosing window",
            "expected_time_window": dosing_window,
            "actual_time": now.isoformat(),
            "minutes_outside_window": minutes_outside,
            "callback_required": minutes_outside > CALLBACK_MINUTES,
            "clinical_review_required": True,
        })

    if facial_biometric_data and not biometric_verified:
        repo.create_alert({
            **base_alert,
            "alert_type": "biometric_failure",
            "severity": "critical",
            "alert_title": "Biometric Verification Failed",
            "alert_description": (
                f"Facial recognition failed with {biometric_confidence:.1f}% confidence "
                f"(required: {match_threshold:g}%)"
            ),
            "callback_required": True,
            "callback_within_hours": 4,
            "clinical_review_required": True,
            "dea_reportable": biometric_confidence < 50,
        })

    if passed:
        message = "Dose consumption verified successfully"
    else:
        message = f"Verification failed: {', '.join(failures)}. Please return to clinic immediately."

    return {
        "verified": passed,
        "bottle_number": bottle.bottle_number,
        "medication": bottle.medication_name,
        "dose": bottle.dose_amount,
        "verification_details": {
            "location": {
                "verified": location_verified,
                "distance_from_home_meters": int(round_half_up(distance_from_home, 0)),
                "within_geofence": location_verified,
            },
            "time": {
                "verified": within_window,
                "minutes_outside_window": minutes_outside,
                "dosing_window": dosing_window,
            },
            "biometric": {
                "verified": biometric_verified,
                "confidence": biometric_confidence,
                "liveness_passed": liveness,
            },
            "seal": {"photo_captured": seal_verified},
        },
        "failures": failures,
        "message": message,
    }


# =============================================================================
# Dashboard
# =============================================================================

def bottle_compliance_score(bottle: Bottle) -> int | None:
    """
    Score a bottle out of 100: a quarter for being accounted for, and a
    quarter each for biometric, GPS and seal verification.

    Missing bottles score 0; bottles not yet consumed have no score.
    """
    if bottle.status == "missing":
        return 0
    if bottle.status != "consumed":
        return None
    checks = [bottle.facial_biometric_verified, bottle.consumption_verified, bottle.seal_intact_confirmed]
    return 25 + 25 * sum(1 for check in checks if check)


def get_bottle_overview(limit: int = 100, repo: DiversionRepository | None = None) -> list[dict]:
    repo = repo or DiversionRepository()
    overview = []
    for bottle in repo.list_bottles(limit):
        overview.append({
            "id": bottle.id,
            "bottle_number": bottle.bottle_number,
            "patient_id": bottle.patient_id,
            "medication": bottle.medication_name,
            "dose": bottle.dose_amount,
            "status": bottle.status,
            "dispensed_date": bottle.dispensed_date,
            "consumed_at": bottle.consumed_at,
            "biometric_verified": bool(bottle.facial_biometric_verified),
            "gps_verified": bool(bottle.consumption_verified),
            "seal_intact": bool(bottle.seal_intact_confirmed),
            "compliance_score": bottle_compliance_score(bottle),
        })
    return overview


def calculate_stats(
    total_patients: int,
    alerts: list[dict],
    exceptions: list[LocationException],
    scan_logs: list[dict],
    enrollments: list[BiometricEnrollment],
    today: date | None = None,
) -> dict:
    today = today or date.today()
    total_scans = len(scan_logs)
    successful = sum(1 for log in scan_logs if log.get("verification_passed"))
    compliance_rate = int(round_half_up(successful / total_scans * 100, 0)) if total_scans else 100

    return {
        "total_patients": total_patients,
        "enrolled_biometrics": sum(1 for e in enrollments if e.is_active),
        "active_alerts": sum(1 for a in alerts if a.get("status") == "open"),
        "compliance_rate": compliance_rate,
        "pending_exceptions": sum(1 for e in exceptions if e.status == "pending"),
        "scans_today": sum(
            1 for log in scan_logs
            if (log.get("scan_timestamp") or "")[:10] == today.isoformat()
        ),
    }


def get_dashboard_data(
    repo: DiversionRepository | None = None,
    patient_repo: PatientRepository | None = None,
) -> dict:
    repo = repo or DiversionRepository()
    patient_repo = patient_repo or PatientRepository()

    patients = patient_repo.list_patients(limit=1000)
    alerts = repo.list_alerts()
    exceptions = repo.list_exceptions()
    scan_logs = repo.list_scan_logs()
    enrollments = repo.list_enrollments()

    return {
        "patients": [{"id": p.id, "name": p.full_name} for p in patients],
        "alerts": alerts,
        "exceptions": [vars(e) for e in exceptions],
        "scan_logs": scan_logs,
        "risk_scores": repo.list_risk_scores(),
        "biometric_enrollments": [vars(e) for e in enrollments],
        "home_addresses": [vars(a) for a in repo.list_primary_addresses()],
        "bottles": get_bottle_overview(repo=repo),
        "stats": calculate_stats(len(patients), alerts, exceptions, scan_logs, enrollments),
    }


# =============================================================================
# Mutations
# =============================================================================

def create_exception(exception: LocationException, repo: DiversionRepository | None = None) -> LocationException:
    repo = repo or DiversionRepository()
    created = repo.create_exception(exception)
    repo.record_dea_event("exception_created", {
        "patient_id": created.patient_id,
        "exception_type": created.exception_type,
        "start_date": created.start_date,
        "end_date": created.end_date,
    })
    return created


def review_exception(
    exception_id: str,
    approved: bool,
    reviewed_by: str | None = None,
    repo: DiversionRepository | None = None,
) -> str:
    repo = repo or DiversionRepository()
    status = "approved" if approved else "denied"
    if not repo.review_exception(exception_id, status, reviewed_by):
        raise RecordNotFoundError(f"Location exception {exception_id} not found")
    return status


def enroll_biometric(enrollment: BiometricEnrollment, repo: DiversionRepository | None = None) -> BiometricEnrollment:
    repo = repo or DiversionRepository()
    if not enrollment.consent_signed:
        raise ValueError("Patient must be selected and consent must be signed")
    created = repo.enroll_biometric(enrollment)
    repo.record_dea_event("biometric_enrolled", {"patient_id": created.patient_id})
    return created


def register_home_address(address: HomeAddress, repo: DiversionRepository | None = None) -> HomeAddress:
    """
    Register a patient's primary home address.

    Coordinates are looked up through address validation when none are
    supplied. An address that cannot be geocoded is still registered, without
    a geofence center.
    """
    repo = repo or DiversionRepository()

    if address.latitude is None or address.longitude is None:
        try:
            geocoded = geocode_address(
                address.address_line1, address.city, address.state,
                address.zip_code, address.address_line2,
            )
        except AddressValidationError as e:
            console.print(f"[yellow]Could not geocode address for {address.patient_id}:[/yellow] {e}")
            geocoded = None
        if geocoded:
            address.latitude = geocoded.latitude
            address.longitude = geocoded.longitude
            address.verification_method = "address_validation"
            address.is_verified = geocoded.is_valid
            address.verified_at = datetime.now().isoformat() if geocoded.is_valid else None

    created = repo.register_home_address(address)
    repo.record_dea_event("address_registered", {"patient_id": created.patient_id})
    return created


def resolve_alert(alert_id: str, resolution_notes: str | None = None, repo: DiversionRepository | None = None) -> None:
    repo = repo or DiversionRepository()
    if not repo.resolve_alert(alert_id, resolution_notes):
        raise RecordNotFoundError(f"Compliance alert {alert_id} not found")
    repo.record_dea_event("alert_resolved", {"alert_id": alert_id})


def risk_level_for_score(score: float) -> str:
    for lower_bound, level in RISK_LEVELS:
        if score >= lower_bound:
            return level
    return "low"


def record_risk_score(
    patient_id: str,
    risk_score: float,
    risk_factors: list[str] | None = None,
    repo: DiversionRepository | None = None,
) -> dict:
    repo = repo or DiversionRepository()
    if not 0 <= risk_score <= 100:
        raise ValueError("Risk score must be between 0 and 100")
    risk_level = risk_level_for_score(risk_score)
    score_id = repo.add_risk_score(patient_id, risk_score, risk_level, risk_factors or [])
    return {"id": score_id, "patient_id": patient_id, "risk_score": risk_score, "risk_level": risk_level}
