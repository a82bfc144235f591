"""Tests for the HTTP API routes."""

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from clinic_ops.clinic_records.database import Bottle, DiversionRepository
from clinic_ops.diversion import hash_qr_code


class TestPatientsApi:
    """Tests for the patient routes."""

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_create_and_get(self, client):
        response = client.post("/api/patients", json={
            "first_name": "James",
            "last_name": "Wilson",
            "date_of_birth": "1970-08-02",
        })
        assert response.status_code == 201
        patient_id = response.json()["patient"]["id"]

        fetched = client.get(f"/api/patients/{patient_id}").json()
        assert fetched["patient"]["last_name"] == "Wilson"
        assert len(fetched["history"]) == 3

    def test_missing_field(self, client):
        response = client.post("/api/patients", json={"first_name": "James", "date_of_birth": "1970-08-02"})
        assert response.status_code == 422

    def test_blank_name(self, client):
        response = client.post("/api/patients", json={
            "first_name": "  ", "last_name": "Wilson", "date_of_birth": "1970-08-02",
        })
        assert response.status_code == 422

    def test_bad_date(self, client):
        response = client.post("/api/patients", json={
            "first_name": "James", "last_name": "Wilson", "date_of_birth": "08/02/1970",
        })
        assert response.status_code == 422

    def test_missing_patient(self, client):
        response = client.get("/api/patients/nope")
        assert response.status_code == 404
        assert response.json() == {"error": "Patient nope not found"}

    def test_update(self, client, patient):
        response = client.put(f"/api/patients/{patient.id}", json={"phone": "555-0199", "changed_by": "api"})
        assert response.json()["patient"]["phone"] == "555-0199"

    def test_search(self, client, patient):
        patients = client.get("/api/patients", params={"search": "Garcia"}).json()["patients"]
        assert [p["id"] for p in patients] == [patient.id]


class TestHealthEquityApi:
    """Tests for the health equity routes."""

    def test_dashboard(self, client, patient):
        response = client.get("/api/research/health-equity", params={"stratification_types": "race,insurance_type"})
        assert response.status_code == 200

    def test_unknown_stratification(self, client):
        response = client.post("/api/research/health-equity", json={"stratification_types": ["shoe_size"]})
        assert response.status_code == 422

    def test_report_json(self, client):
        response = client.get("/api/research/health-equity/reports", params={"report_type": "quarterly"})
        assert response.status_code == 200
        assert "period" in response.json()

    def test_report_csv(self, client):
        response = client.get("/api/research/health-equity/reports", params={"format": "csv"})
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "attachment" in response.headers["content-disposition"]

    def test_unknown_report_type(self, client):
        response = client.get("/api/research/health-equity/reports", params={"report_type": "weekly"})
        assert response.status_code == 422


class TestBillingApi:
    """Tests for the billing, insurance, prior auth and lab routes."""

    def test_billing(self, client):
        data = client.get("/api/otp-billing").json()
        assert len(data["rate_codes"]) == 8

    def test_dual_eligible_unknown_action(self, client):
        response = client.post("/api/dual-eligible", json={"action": "refund", "claim_id": "x"})
        assert response.status_code == 400
        assert "Unknown action" in response.json()["error"]

    def test_create_payer(self, client):
        response = client.post("/api/insurance", json={"type": "payer", "payer_name": "Aetna"})
        assert response.status_code == 200
        assert response.json()["payer"]["payer_name"] == "Aetna"

    def test_unknown_insurance_type(self, client):
        response = client.post("/api/insurance", json={"type": "claim", "payer_name": "Aetna"})
        assert response.status_code == 422

    def test_update_missing_payer(self, client):
        response = client.put("/api/insurance", json={"type": "payer", "id": "nope", "payer_name": "X"})
        assert response.status_code == 404

    def test_delete_missing_payer(self, client):
        response = client.delete("/api/insurance", params={"type": "payer", "id": "nope"})
        assert response.status_code == 404

    def test_delete_without_id(self, client):
        response = client.delete("/api/insurance", params={"type": "payer"})
        assert response.status_code == 400

    def test_prior_auth_flow(self, client):
        created = client.post("/api/prior-auth", json={"patient_name": "Maria Garcia", "service": "Methadone"})
        assert created.status_code == 201
        auth_id = created.json()["request"]["id"]

        decided = client.put(f"/api/prior-auth/{auth_id}", json={"decision": "deny", "denial_reason": "Duplicate"})
        assert decided.json()["request"]["status"] == "denied"

    def test_prior_auth_missing(self, client):
        response = client.put("/api/prior-auth/nope", json={"decision": "approve", "auth_number": "A-1"})
        assert response.status_code == 404

    def test_prior_auth_approve_without_number(self, client):
        auth_id = client.post("/api/prior-auth", json={"patient_name": "P", "service": "S"}).json()["request"]["id"]
        response = client.put(f"/api/prior-auth/{auth_id}", json={"decision": "approve"})
        assert response.status_code == 400

    def test_lab_order(self, client, patient):
        response = client.post("/api/lab", json={"patient_id": patient.id, "test_names": ["CBC"]})
        assert response.status_code == 201
        order_id = response.json()["order"]["id"]

        updated = client.put("/api/lab", json={"type": "order", "id": order_id, "status": "sent"})
        assert updated.json() == {"success": True}

    def test_lab_order_without_tests(self, client, patient):
        response = client.post("/api/lab", json={"patient_id": patient.id, "test_names": []})
        assert response.status_code == 422

    def test_unknown_lab_type(self, client):
        response = client.put("/api/lab", json={"type": "panel", "id": "x", "status": "sent"})
        assert response.status_code == 422

    def test_result_status_checked(self, client):
        response = client.put("/api/lab", json={"type": "result", "id": "x", "status": "sent"})
        assert response.status_code == 422

    def test_pmp_not_configured(self, client):
        response = client.post("/api/pmp", json={"first_name": "Maria"})
        assert response.status_code == 400
        assert response.json()["success"] is False


class TestDiversionApi:
    """Tests for the diversion control routes."""

    @pytest.fixture
    def bottle(self, patient):
        return DiversionRepository().create_bottle(Bottle(
            id="",
            bottle_number="BTL-API-01",
            patient_id=patient.id,
            qr_code_hash=hash_qr_code("QR-API-01"),
        ))

    def test_scan(self, client, patient, bottle):
        response = client.post("/api/takehome-diversion/verify-scan", json={
            "qr_code_data": "QR-API-01",
            "patient_id": patient.id,
            "gps_location": {"latitude": 42.33, "longitude": -83.04},
        })
        assert response.status_code == 200
        assert response.json()["bottle_number"] == "BTL-API-01"

    def test_scan_wrong_patient(self, client, bottle):
        response = client.post("/api/takehome-diversion/verify-scan", json={
            "qr_code_data": "QR-API-01", "patient_id": "someone-else",
        })
        assert response.status_code == 403
        assert response.json()["verified"] is False

    def test_scan_unknown_code(self, client, patient):
        response = client.post("/api/takehome-diversion/verify-scan", json={
            "qr_code_data": "QR-NOPE", "patient_id": patient.id,
        })
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid QR code"

    def test_scan_consumed_bottle(self, client, patient, bottle):
        DiversionRepository().mark_bottle_consumed(bottle.id, {"consumed_at": "2026-05-04T08:30:00"})
        response = client.post("/api/takehome-diversion/verify-scan", json={
            "qr_code_data": "QR-API-01", "patient_id": patient.id,
        })
        assert response.status_code == 400
        assert response.json()["error"] == "This dose has already been consumed"

    def test_bad_coordinates(self, client, patient):
        response = client.post("/api/takehome-diversion/verify-scan", json={
            "qr_code_data": "QR-API-01",
            "patient_id": patient.id,
            "gps_location": {"latitude": 120, "longitude": 0},
        })
        assert response.status_code == 422

    def test_enrollment_requires_consent(self, client, patient):
        response = client.post("/api/diversion-control/biometrics", json={
            "patient_id": patient.id, "consent_signed": False,
        })
        assert response.status_code == 422

    def test_enrollment(self, client, patient):
        response = client.post("/api/diversion-control/biometrics", json={
            "patient_id": patient.id, "consent_signed": True,
        })
        assert response.status_code == 201

    def test_risk_score_range(self, client, patient):
        response = client.post("/api/diversion-control/risk-scores", json={
            "patient_id": patient.id, "risk_score": 101,
        })
        assert response.status_code == 422

    def test_risk_score(self, client, patient):
        response = client.post("/api/diversion-control/risk-scores", json={
            "patient_id": patient.id, "risk_score": 75, "risk_factors": ["missed scans"],
        })
        assert response.status_code == 201
        assert response.json()["risk_level"] == "critical"

    def test_risk_score_unknown_patient(self, client):
        response = client.post("/api/diversion-control/risk-scores", json={
            "patient_id": "nope", "risk_score": 10,
        })
        assert response.status_code == 400
        assert "FOREIGN KEY" in response.json()["error"]

    def test_exception_dates(self, client, patient):
        response = client.post("/api/diversion-control/exceptions", json={
            "patient_id": patient.id, "start_date": "2026-05-10", "end_date": "2026-05-01",
        })
        assert response.status_code == 422

    def test_exception_review(self, client, patient):
        created = client.post("/api/diversion-control/exceptions", json={
            "patient_id": patient.id, "start_date": "2026-05-01", "end_date": "2026-05-10",
        })
        assert created.status_code == 201
        exception_id = created.json()["exception"]["id"]

        response = client.post(f"/api/diversion-control/exceptions/{exception_id}/approve", json={"reviewed_by": "Dr. Lee"})
        assert response.json() == {"status": "approved"}

    def test_review_missing_exception(self, client):
        assert client.post("/api/diversion-control/exceptions/nope/deny").status_code == 404

    def test_resolve_missing_alert(self, client):
        assert client.post("/api/diversion-control/alerts/nope/resolve").status_code == 404

    def test_dashboard(self, client, patient):
        data = client.get("/api/diversion-control").json()
        assert data["patients"] == [{"id": patient.id, "name": "Maria Garcia"}]


class TestOperationsApi:
    """Tests for facility, off-site dosing, vaccination and support routes."""

    def test_create_hazard(self, client):
        response = client.post("/api/facility", json={"type": "hazard", "name": "Flood", "risk_level": "High"})
        assert response.status_code == 201
        assert response.json()["alert"]["priority"] == "high"

    def test_unknown_facility_type(self, client):
        response = client.post("/api/facility", json={"type": "drill", "name": "Fire drill"})
        assert response.status_code == 422

    def test_equipment_check_defaults_to_good(self, client):
        response = client.post("/api/facility", json={"type": "equipment_check", "name": "AED"})
        assert response.status_code == 201

        data = client.get("/api/facility").json()
        assert [e["status"] for e in data["equipment"]] == ["Good"]
        assert data["stats"]["equipment_compliance_rate"] == 100

    def test_offsite_dosing(self, client):
        assert client.get("/api/offsite-dosing").json()["stats"]["active_locations"] == 0

    def test_missing_kit(self, client):
        response = client.put("/api/offsite-dosing/kits/nope", json={"kit_status": "in_transit"})
        assert response.status_code == 404

    def test_invalid_administration_status(self, client):
        response = client.post("/api/offsite-dosing/administrations", json={
            "administration_id": "a", "status": "pending",
        })
        assert response.status_code == 422

    def test_vaccination(self, client, patient):
        response = client.post("/api/vaccinations", json={
            "patient_id": patient.id, "vaccine_name": "MMR", "administration_date": "2026-05-04",
        })
        assert response.status_code == 201
        vaccination_id = response.json()["vaccination"]["id"]

        synced = client.post(f"/api/vaccinations/{vaccination_id}/registry")
        assert synced.json()["vaccination"]["reported_to_registry"] is True

    def test_vaccination_unknown_patient(self, client):
        response = client.post("/api/vaccinations", json={
            "patient_id": "nope", "vaccine_name": "MMR", "administration_date": "2026-05-04",
        })
        assert response.status_code == 400

    def test_negative_inventory(self, client):
        response = client.post("/api/vaccinations/inventory", json={
            "vaccine_name": "MMR", "lot_number": "MMR-1", "quantity_received": -1,
        })
        assert response.status_code == 422

    def test_adverse_event_missing_vaccination(self, client):
        response = client.post("/api/vaccinations/nope/adverse-events", json={"event_description": "Fever"})
        assert response.status_code == 404

    def test_ticket_flow(self, client):
        created = client.post("/api/it-support/tickets", json={"subject": "Printer offline"})
        assert created.status_code == 201
        ticket_id = created.json()["ticket"]["id"]

        updated = client.put(f"/api/it-support/tickets/{ticket_id}", json={"status": "in_progress"})
        assert updated.json()["ticket"]["status"] == "in_progress"

        triaged = client.post(f"/api/it-support/tickets/{ticket_id}/triage")
        assert triaged.json()["applied"] == []

        tickets = client.get("/api/it-support/tickets", params={"status": "in_progress"}).json()["tickets"]
        assert [t["id"] for t in tickets] == [ticket_id]

    def test_invalid_ticket_status(self, client):
        ticket_id = client.post("/api/it-support/tickets", json={"subject": "Printer"}).json()["ticket"]["id"]
        response = client.put(f"/api/it-support/tickets/{ticket_id}", json={"status": "lost"})
        assert response.status_code == 400

    def test_session_flow(self, client):
        session_id = client.post("/api/it-support/sessions", json={}).json()["session"]["id"]

        message = client.post(f"/api/it-support/sessions/{session_id}/messages", json={"message": "Hello"})
        assert message.status_code == 201

        ended = client.post(f"/api/it-support/sessions/{session_id}/end")
        assert ended.json()["session"]["status"] == "ended"


class TestServerErrors:
    """Tests for unexpected failures."""

    def test_unhandled_error(self):
        from clinic_ops.main import app

        client = TestClient(app, raise_server_exceptions=False)
        with patch("clinic_ops.main.otp_billing.get_billing_data", side_effect=RuntimeError("disk gone")):
            response = client.get("/api/otp-billing")

        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error"}
