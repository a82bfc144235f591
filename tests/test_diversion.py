"""Tests for take-home diversion control: scan verification, geofences and biometrics."""

from datetime import datetime
from unittest.mock import patch

import pytest

from clinic_ops.address_validator import GeocodedAddress
from clinic_ops.clinic_records.database import (
    BiometricEnrollment,
    Bottle,
    DiversionRepository,
    HomeAddress,
    LocationException,
    RecordNotFoundError,
)
from clinic_ops import diversion
from clinic_ops.diversion import (
    ScanVerificationError,
    bottle_compliance_score,
    calculate_distance,
    check_dosing_window,
    hash_qr_code,
    verify_scan,
)

HOME = (42.3314, -83.0458)
AWAY = (42.3400, -83.0458)
MORNING = datetime(2026, 5, 4, 8, 30)


@pytest.fixture
def repo():
    return DiversionRepository()


@pytest.fixture
def bottle(repo, patient):
    return repo.create_bottle(Bottle(
        id="",
        bottle_number="BTL-TEST-01",
        patient_id=patient.id,
        qr_code_hash=hash_qr_code("QR-TEST-01"),
        medication_name="Methadone",
        dose_amount="80mg",
    ))


@pytest.fixture
def home(repo, patient):
    return repo.register_home_address(HomeAddress(
        id="",
        patient_id=patient.id,
        address_line1="123 Main St",
        city="Detroit",
        state="MI",
        zip_code="48201",
        latitude=HOME[0],
        longitude=HOME[1],
    ))


@pytest.fixture
def enrollment(repo, patient):
    return repo.enroll_biometric(BiometricEnrollment(
        id="",
        patient_id=patient.id,
        consent_signed=True,
        match_threshold_percentage=85,
    ))


def _scan(patient_id, location=HOME, now=MORNING, biometric=None, repo=None):
    return verify_scan(
        qr_code_data="QR-TEST-01",
        patient_id=patient_id,
        gps_location={"latitude": location[0], "longitude": location[1], "accuracy": 10},
        facial_biometric_data=biometric,
        seal_photo_url="https://photos.example.org/seal.jpg",
        now=now,
        repo=repo,
    )


class TestDosingWindow:
    """Tests for the dosing window check."""

    def test_inside_window(self):
        assert check_dosing_window(datetime(2026, 5, 4, 8, 0)) == (True, 0)

    def test_edges_are_inclusive(self):
        """Scans exactly at the start or end minute are on time."""
        assert check_dosing_window(datetime(2026, 5, 4, 6, 0))[0] is True
        assert check_dosing_window(datetime(2026, 5, 4, 11, 0))[0] is True

    def test_before_window(self):
        assert check_dosing_window(datetime(2026, 5, 4, 5, 15)) == (False, 45)

    def test_after_window(self):
        assert check_dosing_window(datetime(2026, 5, 4, 13, 0)) == (False, 120)

    def test_custom_window(self):
        within, minutes = check_dosing_window(datetime(2026, 5, 4, 19, 30), "18:00:00", "19:00:00")
        assert within is False
        assert minutes == 30


class TestDistance:
    """Tests for the haversine distance."""

    def test_same_point_is_zero(self):
        assert calculate_distance(*HOME, *HOME) == 0

    def test_known_distance(self):
        """0.0086 degrees of latitude is roughly 956 meters."""
        distance = calculate_distance(*HOME, *AWAY)
        assert 950 < distance < 962

    def test_symmetric(self):
        assert calculate_distance(*HOME, *AWAY) == pytest.approx(calculate_distance(*AWAY, *HOME))


class TestVerifyScan:
    """Tests for take-home dose scan verification."""

    def test_full_verification_passes(self, repo, patient, bottle, home, enrollment):
        result = _scan(patient.id, biometric={"confidence": 92, "liveness_check": True}, repo=repo)

        assert result["verified"] is True
        assert result["failures"] == []
        assert result["message"] == "Dose consumption verified successfully"
        assert result["verification_details"]["location"]["within_geofence"] is True
        assert result["verification_details"]["seal"]["photo_captured"] is True
        assert repo.list_alerts() == []

    def test_bottle_marked_consumed(self, repo, patient, bottle, home, enrollment):
        _scan(patient.id, biometric={"confidence": 92, "liveness_check": True}, repo=repo)

        stored = repo.get_bottle(bottle.id)
        assert stored.status == "consumed"
        assert stored.compliance_status == "compliant"
        assert bottle_compliance_score(stored) == 100

    def test_scan_is_logged(self, repo, patient, bottle, home):
        _scan(patient.id, repo=repo)

        logs = repo.list_scan_logs()
        assert len(logs) == 1
        assert logs[0]["bottle_id"] == bottle.id
        assert logs[0]["is_within_home_geofence"]

    def test_outside_geofence_raises_location_alert(self, repo, patient, bottle, home):
        result = _scan(patient.id, location=AWAY, repo=repo)

        assert result["verified"] is False
        assert "location_violation" in result["failures"]
        assert 950 <= result["verification_details"]["location"]["distance_from_home_meters"] <= 962

        alerts = repo.list_alerts()
        assert [a["alert_type"] for a in alerts] == ["location_violation"]
        assert alerts[0]["severity"] == "high"
        assert alerts[0]["expected_location"] == "123 Main St"

    def test_no_registered_address_is_location_violation(self, repo, patient, bottle):
        result = _scan(patient.id, repo=repo)
        assert "location_violation" in result["failures"]

    def test_late_scan_raises_time_alert(self, repo, patient, bottle, home):
        result = _scan(patient.id, now=datetime(2026, 5, 4, 13, 0), repo=repo)

        assert result["failures"] == ["time_violation"]
        assert result["verification_details"]["time"]["minutes_outside_window"] == 120
        assert result["verification_details"]["time"]["dosing_window"] == "06:00:00 - 11:00:00"

        alert = repo.list_alerts()[0]
        assert alert["alert_type"] == "time_violation"
        assert alert["severity"] == "medium"
        assert not alert["callback_required"]

    def test_very_late_scan_requires_callback(self, repo, patient, bottle, home):
        _scan(patient.id, now=datetime(2026, 5, 4, 15, 0), repo=repo)
        assert repo.list_alerts()[0]["callback_required"]

    def test_biometric_below_threshold(self, repo, patient, bottle, home, enrollment):
        result = _scan(patient.id, biometric={"confidence": 60, "liveness_check": True}, repo=repo)

        assert result["failures"] == ["biometric_failure"]
        alert = repo.list_alerts()[0]
        assert alert["alert_type"] == "biometric_failure"
        assert alert["severity"] == "critical"
        assert alert["alert_description"] == "Facial recognition failed with 60.0% confidence (required: 85%)"

    def test_failed_liveness_check(self, repo, patient, bottle, home, enrollment):
        result = _scan(patient.id, biometric={"confidence": 99, "liveness_check": False}, repo=repo)
        assert "biometric_failure" in result["failures"]

    def test_biometric_without_enrollment_fails(self, repo, patient, bottle, home):
        result = _scan(patient.id, biometric={"confidence": 99, "liveness_check": True}, repo=repo)
        assert "biometric_failure" in result["failures"]

    def test_unknown_qr_code(self, repo, patient):
        with pytest.raises(ScanVerificationError) as exc_info:
            _scan(patient.id, repo=repo)
        assert exc_info.value.status_code == 400
        assert exc_info.value.message == "Invalid QR code"

    def test_wrong_patient_is_forbidden(self, repo, patient, bottle):
        with pytest.raises(ScanVerificationError) as exc_info:
            _scan("p-someone-else", repo=repo)

        assert exc_info.value.status_code == 403
        alert = repo.list_alerts()[0]
        assert alert["alert_type"] == "wrong_patient_scan"
        assert alert["patient_id"] == "p-someone-else"
        assert repo.get_bottle(bottle.id).status == "dispensed"

    def test_consumed_bottle_rejected(self, repo, patient, bottle, home):
        _scan(patient.id, repo=repo)

        with pytest.raises(ScanVerificationError) as exc_info:
            _scan(patient.id, repo=repo)
        assert exc_info.value.status_code == 400
        assert len(repo.list_scan_logs()) == 1

    def test_concurrent_scan_consumes_once(self, repo, patient, bottle, home):
        _scan(patient.id, repo=repo)
        consumed_at = repo.get_bottle(bottle.id).consumed_at
        alert_count = len(repo.list_alerts())

        # Second scan read the bottle before the first one committed
        with patch.object(repo, "get_bottle_by_hash", return_value=bottle):
            with pytest.raises(ScanVerificationError, match="already been consumed"):
                _scan(patient.id, now=MORNING.replace(hour=9), repo=repo)

        assert repo.get_bottle(bottle.id).consumed_at == consumed_at
        assert len(repo.list_alerts()) == alert_count

    def test_consume_only_once(self, repo, bottle):
        assert repo.mark_bottle_consumed(bottle.id, {"consumed_at": "2026-05-04T08:30:00"}) is True
        assert repo.mark_bottle_consumed(bottle.id, {"consumed_at": "2026-05-04T09:30:00"}) is False
        assert repo.get_bottle(bottle.id).consumed_at == "2026-05-04T08:30:00"


class TestLocationExceptions:
    """Tests for approved travel exceptions."""

    def _exception(self, repo, patient):
        return diversion.create_exception(LocationException(
            id="",
            patient_id=patient.id,
            start_date="2026-05-01",
            end_date="2026-05-10",
            reason="Family visit",
            temporary_latitude=AWAY[0],
            temporary_longitude=AWAY[1],
        ), repo=repo)

    def test_approved_exception_verifies_location(self, repo, patient, bottle, home):
        exception = self._exception(repo, patient)
        diversion.review_exception(exception.id, approved=True, reviewed_by="Dr. Lee", repo=repo)

        result = _scan(patient.id, location=AWAY, repo=repo)
        assert result["verification_details"]["location"]["verified"] is True
        assert "location_violation" not in result["failures"]

    def test_pending_exception_does_not_apply(self, repo, patient, bottle, home):
        self._exception(repo, patient)

        result = _scan(patient.id, location=AWAY, repo=repo)
        assert "location_violation" in result["failures"]

    def test_exception_outside_date_range(self, repo, patient, bottle, home):
        exception = self._exception(repo, patient)
        diversion.review_exception(exception.id, approved=True, repo=repo)

        result = _scan(patient.id, location=AWAY, now=datetime(2026, 5, 20, 8, 30), repo=repo)
        assert "location_violation" in result["failures"]

    def test_review_records_status(self, repo, patient):
        exception = self._exception(repo, patient)
        assert diversion.review_exception(exception.id, approved=False, repo=repo) == "denied"
        assert repo.list_exceptions()[0].status == "denied"

    def test_review_missing_exception(self, repo):
        with pytest.raises(RecordNotFoundError):
            diversion.review_exception("missing", approved=True, repo=repo)

    def test_creation_is_audited(self, repo, patient):
        self._exception(repo, patient)
        events = repo.list_dea_events("exception_created")
        assert len(events) == 1


class TestHomeAddresses:
    """Tests for home address registration."""

    def _address(self, patient, **overrides):
        fields = dict(
            id="",
            patient_id=patient.id,
            address_line1="500 Woodward Ave",
            city="Detroit",
            state="MI",
            zip_code="48226",
        )
        fields.update(overrides)
        return HomeAddress(**fields)

    def test_single_primary_address(self, repo, patient):
        diversion.register_home_address(self._address(patient, latitude=1.0, longitude=1.0), repo=repo)
        second = diversion.register_home_address(self._address(patient, latitude=2.0, longitude=2.0), repo=repo)

        assert repo.count_primary_addresses(patient.id) == 1
        assert repo.list_primary_addresses()[0].id == second.id

    def test_geocodes_missing_coordinates(self, repo, patient):
        geocoded = GeocodedAddress(
            formatted_address="500 Woodward Ave, Detroit, MI 48226, USA",
            latitude=42.33,
            longitude=-83.04,
            verdict="ACCEPT",
            is_valid=True,
        )
        with patch("clinic_ops.diversion.geocode_address", return_value=geocoded) as mock_geocode:
            address = diversion.register_home_address(self._address(patient), repo=repo)

        mock_geocode.assert_called_once_with("500 Woodward Ave", "Detroit", "MI", "48226", None)
        assert address.latitude == 42.33
        assert address.verification_method == "address_validation"
        assert address.is_verified is True

    def test_geocoding_failure_still_registers(self, repo, patient):
        """Without an API key the address is kept with no geofence center."""
        address = diversion.register_home_address(self._address(patient), repo=repo)

        assert address.latitude is None
        assert repo.count_primary_addresses(patient.id) == 1

    def test_supplied_coordinates_skip_geocoding(self, repo, patient):
        with patch("clinic_ops.diversion.geocode_address") as mock_geocode:
            diversion.register_home_address(self._address(patient, latitude=1.0, longitude=2.0), repo=repo)
        mock_geocode.assert_not_called()


class TestBiometricEnrollment:
    """Tests for biometric enrollment."""

    def test_requires_consent(self, repo, patient):
        with pytest.raises(ValueError):
            diversion.enroll_biometric(
                BiometricEnrollment(id="", patient_id=patient.id, consent_signed=False), repo=repo
            )

    def test_enrolls_active(self, repo, patient):
        diversion.enroll_biometric(BiometricEnrollment(id="", patient_id=patient.id, consent_signed=True), repo=repo)

        enrollment = repo.get_active_enrollment(patient.id)
        assert enrollment is not None
        assert enrollment.match_threshold_percentage == 85


class TestRiskScores:
    """Tests for diversion risk scoring."""

    @pytest.mark.parametrize("score,level", [
        (0, "low"), (24.9, "low"), (25, "medium"), (50, "high"), (74, "high"), (75, "critical"), (100, "critical"),
    ])
    def test_risk_levels(self, score, level):
        assert diversion.risk_level_for_score(score) == level

    @pytest.mark.parametrize("score", [-1, 100.5])
    def test_out_of_range_rejected(self, repo, patient, score):
        with pytest.raises(ValueError):
            diversion.record_risk_score(patient.id, score, repo=repo)

    def test_records_score(self, repo, patient):
        result = diversion.record_risk_score(patient.id, 62, ["early refills"], repo=repo)
        assert result["risk_level"] == "high"
        assert len(repo.list_risk_scores()) == 1


class TestComplianceScore:
    """Tests for bottle compliance scoring."""

    def _bottle(self, **fields):
        return Bottle(id="b", bottle_number="BTL", patient_id="p", qr_code_hash="h", **fields)

    def test_missing_bottle_scores_zero(self):
        assert bottle_compliance_score(self._bottle(status="missing")) == 0

    def test_unconsumed_bottle_has_no_score(self):
        assert bottle_compliance_score(self._bottle(status="dispensed")) is None

    def test_partial_verification(self):
        bottle = self._bottle(status="consumed", consumption_verified=True, seal_intact_confirmed=True)
        assert bottle_compliance_score(bottle) == 75

    def test_unverified_consumption(self):
        assert bottle_compliance_score(self._bottle(status="consumed")) == 25


class TestDashboard:
    """Tests for the diversion control dashboard."""

    def test_empty_dashboard(self, repo, patient):
        data = diversion.get_dashboard_data(repo=repo)

        assert data["stats"]["total_patients"] == 1
        assert data["stats"]["compliance_rate"] == 100
        assert data["bottles"] == []

    def test_compliance_rate_from_scans(self, repo, patient, bottle, home):
        _scan(patient.id, location=AWAY, repo=repo)

        stats = diversion.get_dashboard_data(repo=repo)["stats"]
        assert stats["compliance_rate"] == 0
        assert stats["active_alerts"] == 1

    def test_resolve_alert(self, repo, patient, bottle, home):
        _scan(patient.id, location=AWAY, repo=repo)
        alert_id = repo.list_alerts()[0]["id"]

        diversion.resolve_alert(alert_id, "Patient called back", repo=repo)
        assert repo.list_alerts(status="open") == []

    def test_resolve_missing_alert(self, repo):
        with pytest.raises(RecordNotFoundError):
            diversion.resolve_alert("missing", repo=repo)
