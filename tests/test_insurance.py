"""Tests for insurance records, prior authorizations and lab orders."""

from datetime import date, timedelta

import pytest

from clinic_ops import insurance, lab, prior_auth
from clinic_ops.clinic_records.database import (
    InsuranceRepository,
    LabOrder,
    LabRepository,
    LabResult,
    PriorAuth,
    RecordNotFoundError,
)


@pytest.fixture
def repo():
    return InsuranceRepository()


@pytest.fixture
def payer(repo):
    return insurance.create_payer({"payer_name": "Blue Cross Blue Shield", "network_type": "commercial"}, repo=repo)


@pytest.fixture
def pending_auth(repo):
    return prior_auth.create_request(PriorAuth(
        id="",
        patient_name="Maria Garcia",
        service="Methadone maintenance",
        payer_name="Michigan Medicaid",
        requested_units=30,
    ), repo=repo)


class TestInsuranceViews:
    """Tests for the insurance data views."""

    def test_overview_metrics(self, repo, payer, patient):
        insurance.create_coverage({"patient_id": patient.id, "payer_id": payer.id}, repo=repo)

        metrics = insurance.get_insurance_data(repo=repo)["metrics"]
        assert metrics["active_payers"] == 1
        assert metrics["patients_with_coverage"] == 1
        assert metrics["coverage_rate"] == "100.0"
        assert metrics["pending_prior_auths"] == 0

    def test_coverage_rate_without_patients(self, repo):
        assert insurance.get_insurance_data(repo=repo)["metrics"]["coverage_rate"] == "0"

    def test_payers_view(self, repo, payer):
        payers = insurance.get_insurance_data("payers", repo=repo)["payers"]
        assert [p["payer_name"] for p in payers] == ["Blue Cross Blue Shield"]

    def test_patient_insurance_view(self, repo, payer, patient):
        insurance.create_coverage({"patient_id": patient.id, "payer_id": payer.id, "policy_number": "XYZ"}, repo=repo)

        rows = insurance.get_insurance_data("patient-insurance", repo=repo)["patient_insurance"]
        assert rows[0]["patient_name"] == "Maria Garcia"
        assert rows[0]["payer_name"] == "Blue Cross Blue Shield"

    def test_patients_view(self, repo, patient):
        patients = insurance.get_insurance_data("patients", repo=repo)["patients"]
        assert patients == [{"id": patient.id, "first_name": "Maria", "last_name": "Garcia"}]

    def test_eligibility_check(self, repo, payer, patient):
        result = insurance.check_eligibility({
            "patient_id": patient.id,
            "payer_id": payer.id,
            "coverage_details": {"plan": "PPO"},
            "copay_amount": 25,
        }, repo=repo)

        assert result["request_status"] == "completed"
        assert result["eligibility_status"] == "active"
        assert result["coverage_details"] == {"plan": "PPO"}

        checks = insurance.get_insurance_data("eligibility", repo=repo)["eligibility_requests"]
        assert len(checks) == 1
        assert checks[0]["payer_name"] == "Blue Cross Blue Shield"


class TestInsuranceUpdates:
    """Tests for updating and deleting payers and coverage."""

    def test_update_payer(self, repo, payer):
        result = insurance.update_record("payer", payer.id, {"contact_phone": "800-555-0100", "bogus": "x"}, repo=repo)
        assert result["payer"]["contact_phone"] == "800-555-0100"

    def test_update_coverage(self, repo, payer, patient):
        coverage = insurance.create_coverage({"patient_id": patient.id, "payer_id": payer.id}, repo=repo)
        result = insurance.update_record("patient-insurance", coverage.id, {"is_active": False}, repo=repo)
        assert result["insurance"]["is_active"] is False

    def test_update_missing_record(self, repo):
        with pytest.raises(RecordNotFoundError):
            insurance.update_record("payer", "missing", {"payer_name": "X"}, repo=repo)

    def test_update_invalid_type(self, repo):
        with pytest.raises(ValueError, match="Invalid type"):
            insurance.update_record("claim", "id", {}, repo=repo)

    def test_delete_payer(self, repo, payer):
        assert insurance.delete_record("payer", payer.id, repo=repo) == {"success": True}
        assert repo.get_payer(payer.id) is None

    def test_delete_missing_record(self, repo):
        with pytest.raises(RecordNotFoundError):
            insurance.delete_record("patient-insurance", "missing", repo=repo)

    @pytest.mark.parametrize("record_type,record_id", [(None, "id"), ("payer", None)])
    def test_delete_requires_type_and_id(self, repo, record_type, record_id):
        with pytest.raises(ValueError, match="Missing type or id"):
            insurance.delete_record(record_type, record_id, repo=repo)

    def test_delete_invalid_type(self, repo):
        with pytest.raises(ValueError, match="Invalid type"):
            insurance.delete_record("claim", "id", repo=repo)


class TestPriorAuth:
    """Tests for prior authorization requests."""

    def test_created_pending(self, pending_auth):
        assert pending_auth.status == "pending"
        assert pending_auth.urgency == "routine"
        assert pending_auth.submitted_date is not None

    def test_approve(self, repo, pending_auth):
        decided = prior_auth.decide(
            pending_auth.id, "approve", auth_number="AUTH-1", approved_units=30,
            valid_from="2026-05-01", valid_to="2099-12-31", repo=repo,
        )
        assert decided.status == "approved"
        assert decided.auth_number == "AUTH-1"
        assert decided.response_date is not None

    def test_approve_requires_auth_number(self, repo, pending_auth):
        with pytest.raises(ValueError):
            prior_auth.decide(pending_auth.id, "approve", repo=repo)

    def test_deny_sets_appeal_deadline(self, repo, pending_auth):
        decided = prior_auth.decide(pending_auth.id, "deny", denial_reason="Not medically necessary", repo=repo)

        assert decided.status == "denied"
        assert decided.appeal_deadline == (date.today() + timedelta(days=30)).isoformat()

    def test_deny_requires_reason(self, repo, pending_auth):
        with pytest.raises(ValueError):
            prior_auth.decide(pending_auth.id, "deny", repo=repo)

    def test_unknown_decision(self, repo, pending_auth):
        with pytest.raises(ValueError):
            prior_auth.decide(pending_auth.id, "escalate", repo=repo)

    def test_missing_request(self, repo):
        with pytest.raises(RecordNotFoundError):
            prior_auth.decide("missing", "approve", auth_number="A", repo=repo)

    def test_expired_on_read(self, repo, pending_auth):
        prior_auth.decide(
            pending_auth.id, "approve", auth_number="AUTH-1",
            valid_from="2025-01-01", valid_to="2025-06-30", repo=repo,
        )

        data = prior_auth.get_prior_auth_data(repo=repo)
        assert data["requests"][0]["status"] == "expired"

    def test_summary_over_all_requests(self, repo, pending_auth):
        second = prior_auth.create_request(PriorAuth(id="", patient_name="James Wilson", service="Counseling"), repo=repo)
        prior_auth.decide(second.id, "approve", auth_number="AUTH-2", valid_to="2099-01-01", repo=repo)

        data = prior_auth.get_prior_auth_data("pending", repo=repo)
        assert [r["id"] for r in data["requests"]] == [pending_auth.id]
        assert data["summary"] == {"total": 2, "approved": 1, "pending": 1, "denied": 0, "approval_rate": 50}

    def test_approval_rate_rounds(self):
        requests = [PriorAuth(id=str(i), patient_name="P", service="S", status=s)
                    for i, s in enumerate(["approved", "approved", "denied"])]
        assert prior_auth.summarize(requests)["approval_rate"] == 67

    def test_empty_summary(self):
        assert prior_auth.summarize([])["approval_rate"] == 0

    def test_invalid_status_filter(self, repo):
        with pytest.raises(ValueError):
            prior_auth.get_prior_auth_data("lost", repo=repo)


class TestLab:
    """Tests for lab orders and results."""

    @pytest.fixture
    def lab_repo(self):
        return LabRepository()

    def test_create_order(self, lab_repo, patient):
        order = lab.create_order(LabOrder(
            id="", patient_id=patient.id, test_names=["Urine Drug Screen"], priority="stat",
        ), repo=lab_repo)

        assert order.status == "pending"
        stored = lab_repo.list_orders()[0]
        assert stored.test_names == ["Urine Drug Screen"]
        assert stored.patient_name == "Maria Garcia"

    def test_order_requires_tests(self, lab_repo, patient):
        with pytest.raises(ValueError):
            lab.create_order(LabOrder(id="", patient_id=patient.id), repo=lab_repo)

    def test_status_counts(self, lab_repo, patient):
        first = lab.create_order(LabOrder(id="", patient_id=patient.id, test_names=["CBC"]), repo=lab_repo)
        lab.create_order(LabOrder(id="", patient_id=patient.id, test_names=["CMP"]), repo=lab_repo)
        lab.update_record("order", first.id, "collected", "2026-05-04", repo=lab_repo)

        data = lab.get_lab_data(repo=lab_repo)
        assert data["status_counts"] == {"pending": 1, "sent": 0, "collected": 1, "resulted": 0}
        assert data["patients"][0]["id"] == patient.id

    def test_status_filter(self, lab_repo, patient):
        order = lab.create_order(LabOrder(id="", patient_id=patient.id, test_names=["CBC"]), repo=lab_repo)
        lab.update_record("order", order.id, "sent", repo=lab_repo)

        assert lab.get_lab_data("pending", repo=lab_repo)["orders"] == []
        assert len(lab.get_lab_data("sent", repo=lab_repo)["orders"]) == 1

    def test_update_result(self, lab_repo, patient):
        result = lab_repo.create_result(LabResult(
            id="", patient_id=patient.id, test_name="Urine Drug Screen", status="preliminary",
        ))

        assert lab.update_record("result", result.id, "final", repo=lab_repo) == {"success": True}
        assert lab_repo.list_results()[0].status == "final"

    def test_update_missing_order(self, lab_repo):
        with pytest.raises(RecordNotFoundError):
            lab.update_record("order", "missing", "sent", repo=lab_repo)

    def test_update_invalid_type(self, lab_repo):
        with pytest.raises(ValueError):
            lab.update_record("panel", "id", "sent", repo=lab_repo)
