"""Tests for OTP bundle billing and dual eligible crossover claims."""

from datetime import datetime, timedelta

import pytest

from clinic_ops import dual_eligible, otp_billing
from clinic_ops.clinic_records.database import (
    BillingRepository,
    Claim,
    InsuranceRepository,
    MedicationOrder,
    PatientInsurance,
    Payer,
    RecordNotFoundError,
)


def _order(dose, takehome=0):
    return MedicationOrder(id="o", patient_id="p", daily_dose_mg=dose, max_takehome=takehome)


@pytest.fixture
def billing_repo():
    return BillingRepository()


@pytest.fixture
def insurance_repo():
    return InsuranceRepository()


@pytest.fixture
def dual_coverage(insurance_repo, patient):
    """The test patient covered by Medicare first and Medicaid second."""
    medicare = insurance_repo.create_payer(Payer(id="payer-medicare", payer_name="Medicare Part B", network_type="medicare"))
    medicaid = insurance_repo.create_payer(Payer(id="payer-medicaid", payer_name="Michigan Medicaid", network_type="medicaid"))
    for priority, payer in enumerate((medicare, medicaid), start=1):
        insurance_repo.create_coverage(PatientInsurance(
            id="",
            patient_id=patient.id,
            payer_id=payer.id,
            policy_number=f"POL-{priority}",
            priority_order=priority,
        ))
    return medicare, medicaid


class TestBundleStats:
    """Tests for weekly bundle counts and revenue."""

    def test_split_by_dose(self):
        orders = [_order(80), _order(60, takehome=6), _order(16), _order(0)]
        data = otp_billing.calculate_bundle_stats(orders)
        stats = data["bundle_stats"]

        assert stats["methadone_full_bundles"]["count"] == 1
        assert stats["buprenorphine_full_bundles"]["count"] == 1
        assert stats["takehome_bundles"]["count"] == 1
        assert data["weekly_bundle_revenue"] == pytest.approx(247.50 + 235.75 + 87.375)

    def test_threshold_dose_is_methadone(self):
        stats = otp_billing.calculate_bundle_stats([_order(30)])["bundle_stats"]
        assert stats["methadone_full_bundles"]["count"] == 1
        assert stats["buprenorphine_full_bundles"]["count"] == 0

    def test_no_orders(self):
        data = otp_billing.calculate_bundle_stats([])
        assert data["weekly_bundle_revenue"] == 0


class TestQualifyingServices:
    """Tests for counting services that support a bundle claim."""

    def test_counts_by_keyword(self):
        services = otp_billing.count_qualifying_services(
            [{"outcome": "administered"}, {"outcome": "administered"}, {"outcome": "missed"}],
            ["Individual Therapy", "Counseling follow-up", "Group session", None, "Intake"],
            [["Urine Drug Screen"], ["Tox panel", "CBC"], ["Lipid panel"]],
        )
        assert services == {
            "medication_administration": 2,
            "individual_counseling": 2,
            "group_counseling": 1,
            "toxicology_testing": 2,
        }


class TestTrends:
    """Tests for vital sign trend direction."""

    @pytest.mark.parametrize("current,previous,expected", [
        (130, 120, "up"),
        (110, 120, "down"),
        (121, 120, "stable"),
        (120, None, "stable"),
        (None, 120, "stable"),
    ])
    def test_calculate_trend(self, current, previous, expected):
        assert otp_billing.calculate_trend(current, previous) == expected

    def test_vitals_trending_uses_latest_two(self, billing_repo, patient):
        billing_repo.record_vitals(patient.id, "2026-05-01", systolic_bp=120, heart_rate=70, weight=180)
        billing_repo.record_vitals(patient.id, "2026-04-01", systolic_bp=150, heart_rate=90, weight=180)
        billing_repo.record_vitals(patient.id, "2026-05-03", systolic_bp=135, heart_rate=70, weight=175)

        trending = otp_billing.calculate_vitals_trending(billing_repo.get_recent_vitals())
        assert len(trending) == 1
        entry = trending[0]
        assert entry["patient_name"] == "Maria Garcia"
        assert entry["current"]["date"] == "2026-05-03"
        assert entry["previous"]["date"] == "2026-05-01"
        assert entry["trends"] == {"bp_trend": "up", "hr_trend": "stable", "weight_trend": "down"}

    def test_single_reading_has_no_previous(self, billing_repo, patient):
        billing_repo.record_vitals(patient.id, "2026-05-01", systolic_bp=120)
        entry = otp_billing.calculate_vitals_trending(billing_repo.get_recent_vitals())[0]
        assert entry["previous"] is None


class TestIcd10Summary:
    """Tests for diagnosis code frequency."""

    def test_most_frequent_first(self):
        summary = otp_billing.summarize_icd10_codes([
            {"patient_id": "p1", "diagnosis_codes": ["F11.20", "F41.1"]},
            {"patient_id": "p2", "diagnosis_codes": ["F11.20"]},
            {"patient_id": "p1", "diagnosis_codes": ["F11.20", "X99.9"]},
        ])

        assert summary[0] == {
            "code": "F11.20",
            "description": "Opioid dependence, uncomplicated",
            "count": 3,
            "patient_count": 2,
        }
        unknown = next(s for s in summary if s["code"] == "X99.9")
        assert unknown["description"] == "Unknown diagnosis"


class TestBillingData:
    """Tests for the assembled billing payload."""

    def test_week_window(self, billing_repo, patient):
        now = datetime.now()
        billing_repo.create_order(patient.id, 80)
        billing_repo.record_dose_event(patient.id, "administered")
        billing_repo.record_dose_event(patient.id, "administered", (now - timedelta(days=10)).isoformat())
        billing_repo.record_assessment(patient.id, ["F11.20"])
        billing_repo.create_claim(Claim(
            id="", patient_id=patient.id, claim_status="pending", service_date=now.isoformat(),
        ))

        data = otp_billing.get_billing_data(now=now, repo=billing_repo)

        assert data["qualifying_services"]["medication_administration"] == 1
        assert data["pending_claims_count"] == 1
        assert data["bundle_stats"]["methadone_full_bundles"]["count"] == 1
        assert len(data["rate_codes"]) == 8
        assert data["icd10_summary"][0]["code"] == "F11.20"


class TestDualEligible:
    """Tests for Medicare and Medicaid dual eligibility."""

    def test_requires_both_programs(self):
        rows = [
            {"patient_id": "p1", "patient_name": "A", "date_of_birth": None, "payer_name": "Medicare",
             "network_type": None, "policy_number": "1", "priority_order": 1},
            {"patient_id": "p1", "patient_name": "A", "date_of_birth": None, "payer_name": "State Plan",
             "network_type": "Medicaid", "policy_number": "2", "priority_order": 2},
            {"patient_id": "p2", "patient_name": "B", "date_of_birth": None, "payer_name": "Medicare",
             "network_type": None, "policy_number": "3", "priority_order": 1},
        ]
        patients = dual_eligible.find_dual_eligible(rows)

        assert [p["id"] for p in patients] == ["p1"]
        assert len(patients[0]["insurances"]) == 2

    def test_dual_eligible_data(self, dual_coverage, billing_repo, patient):
        billing_repo.create_claim(Claim(
            id="claim-1", patient_id=patient.id, claim_number="CLM-1",
            payer_id="payer-medicare", claim_status="submitted", total_charges=247.5,
        ))

        data = dual_eligible.get_dual_eligible_data()

        assert data["dual_eligible_count"] == 1
        assert data["dual_eligible_patients"][0]["name"] == "Maria Garcia"
        assert data["pending_claims"][0]["payer_name"] == "Medicare Part B"

    def test_inactive_coverage_ignored(self, dual_coverage, insurance_repo, patient):
        medicaid_row = next(c for c in insurance_repo.list_coverage() if c["payer_id"] == "payer-medicaid")
        insurance_repo.update_coverage(medicaid_row["id"], {"is_active": False})

        assert dual_eligible.get_dual_eligible_data()["dual_eligible_count"] == 0

    def test_process_crossover(self, billing_repo, patient):
        billing_repo.create_claim(Claim(id="claim-1", patient_id=patient.id, claim_status="submitted"))

        result = dual_eligible.handle_action("process_crossover", "claim-1")

        assert result["success"] is True
        claim = billing_repo.get_claim("claim-1")
        assert claim.claim_status == "crossover_pending"
        assert claim.notes.startswith("Medicare crossover initiated at")

    def test_crossover_missing_claim(self):
        with pytest.raises(RecordNotFoundError):
            dual_eligible.handle_action("process_crossover", "missing")

    def test_unknown_action(self):
        with pytest.raises(ValueError, match="Unknown action"):
            dual_eligible.handle_action("refund", "claim-1")

    def test_claim_required(self):
        with pytest.raises(ValueError, match="claim_id is required"):
            dual_eligible.handle_action("process_crossover", None)
