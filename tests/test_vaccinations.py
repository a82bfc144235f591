"""Tests for vaccination records, inventory and registry reporting."""

from datetime import date

import pytest

from clinic_ops import vaccinations
from clinic_ops.clinic_records.database import (
    InventoryLot,
    RecordNotFoundError,
    Vaccination,
    VaccinationRepository,
)

TODAY = date(2026, 5, 4)


@pytest.fixture
def repo():
    return VaccinationRepository()


@pytest.fixture
def lot(repo):
    return vaccinations.add_inventory(InventoryLot(
        id="",
        vaccine_name="Influenza (Quadrivalent)",
        lot_number="FLU-2026-A",
        quantity_received=2,
        expiration_date="2027-03-31",
    ), repo=repo)


def _flu_shot(patient_id, lot_number="FLU-2026-A", administered="2026-05-04"):
    return Vaccination(
        id="",
        patient_id=patient_id,
        vaccine_name="Influenza (Quadrivalent)",
        administration_date=administered,
        vaccine_code="150",
        lot_number=lot_number,
    )


class TestInventory:
    """Tests for vaccine stock."""

    def test_new_lot_is_full(self, lot):
        assert lot.quantity_remaining == 2
        assert lot.quantity_administered == 0
        assert lot.status == "active"

    def test_negative_quantity_rejected(self, repo):
        with pytest.raises(ValueError, match="cannot be negative"):
            vaccinations.add_inventory(InventoryLot(
                id="", vaccine_name="MMR", lot_number="MMR-1", quantity_received=-5,
            ), repo=repo)

    def test_dose_drawn_from_lot(self, repo, lot, patient):
        vaccinations.record_vaccination(_flu_shot(patient.id), repo=repo)

        stored = repo.get_lot("FLU-2026-A")
        assert stored.quantity_remaining == 1
        assert stored.quantity_administered == 1

    def test_empty_lot_never_goes_negative(self, repo, lot, patient):
        for _ in range(3):
            vaccinations.record_vaccination(_flu_shot(patient.id), repo=repo)

        stored = repo.get_lot("FLU-2026-A")
        assert stored.quantity_remaining == 0
        assert stored.quantity_administered == 2
        assert len(repo.list_vaccinations()) == 3

    def test_unknown_lot_still_records(self, repo, patient):
        recorded = vaccinations.record_vaccination(_flu_shot(patient.id, lot_number="NOPE"), repo=repo)
        assert repo.get_vaccination(recorded.id).lot_number == "NOPE"


class TestSearch:
    """Tests for searching vaccinations."""

    def _records(self):
        return [
            Vaccination(id="1", patient_id="p1", vaccine_name="MMR", administration_date="2026-05-01",
                        patient_name="Maria Garcia"),
            Vaccination(id="2", patient_id="p2", vaccine_name="Shingrix", administration_date="2026-05-01",
                        patient_name="James Wilson"),
        ]

    def test_matches_patient_name(self):
        assert [v.id for v in vaccinations.filter_vaccinations(self._records(), "garcia")] == ["1"]

    def test_matches_vaccine_name(self):
        assert [v.id for v in vaccinations.filter_vaccinations(self._records(), "SHING")] == ["2"]

    def test_no_search_returns_all(self):
        assert len(vaccinations.filter_vaccinations(self._records(), None)) == 2


class TestStats:
    """Tests for vaccination statistics."""

    def test_empty(self):
        assert vaccinations.calculate_stats([], [], TODAY) == {
            "today_count": 0,
            "registry_sync_rate": 100,
            "low_stock_count": 0,
        }

    def test_counts(self):
        records = [
            Vaccination(id="1", patient_id="p", vaccine_name="MMR", administration_date="2026-05-04",
                        reported_to_registry=True),
            Vaccination(id="2", patient_id="p", vaccine_name="MMR", administration_date="2026-05-04"),
            Vaccination(id="3", patient_id="p", vaccine_name="MMR", administration_date="2026-05-01"),
        ]
        inventory = [
            InventoryLot(id="a", vaccine_name="MMR", lot_number="1", quantity_received=50, quantity_remaining=9),
            InventoryLot(id="b", vaccine_name="MMR", lot_number="2", quantity_received=50, quantity_remaining=10),
        ]

        stats = vaccinations.calculate_stats(records, inventory, TODAY)
        assert stats == {"today_count": 2, "registry_sync_rate": 33, "low_stock_count": 1}

    def test_vaccination_data(self, repo, lot, patient):
        vaccinations.record_vaccination(_flu_shot(patient.id), repo=repo)
        repo.add_schedule("Influenza", age_group="adult", is_required=True)

        data = vaccinations.get_vaccination_data(search="maria", repo=repo)

        assert data["vaccinations"][0]["patient_name"] == "Maria Garcia"
        assert data["inventory"][0]["lot_number"] == "FLU-2026-A"
        assert data["schedules"][0]["vaccine_name"] == "Influenza"
        assert data["patients"] == [{"id": patient.id, "name": "Maria Garcia"}]
        assert len(data["common_vaccines"]) == 10
        assert data["stats"]["low_stock_count"] == 1


class TestRegistry:
    """Tests for state immunization registry submission."""

    def test_sync(self, repo, patient):
        recorded = vaccinations.record_vaccination(_flu_shot(patient.id, lot_number=None), repo=repo)

        synced = vaccinations.sync_to_registry(recorded.id, repo=repo)

        assert synced["reported_to_registry"] is True
        assert synced["registry_report_date"] == date.today().isoformat()
        submissions = repo.list_registry_submissions(recorded.id)
        assert len(submissions) == 1
        assert submissions[0]["submission_status"] == "pending"

    def test_sync_missing(self, repo):
        with pytest.raises(RecordNotFoundError):
            vaccinations.sync_to_registry("missing", repo=repo)


class TestAdverseEvents:
    """Tests for adverse event reporting."""

    def test_report(self, repo, patient):
        recorded = vaccinations.record_vaccination(_flu_shot(patient.id, lot_number=None), repo=repo)

        result = vaccinations.report_adverse_event(recorded.id, "Injection site swelling", repo=repo)

        assert result["message"] == "Event recorded successfully"
        stored = repo.get_vaccination(recorded.id)
        assert stored.adverse_event is True
        assert stored.adverse_event_details == "Injection site swelling"

    def test_vaers_flag(self, repo, patient):
        recorded = vaccinations.record_vaccination(_flu_shot(patient.id, lot_number=None), repo=repo)

        result = vaccinations.report_adverse_event(
            recorded.id, "Anaphylaxis", severity="severe", report_to_vaers=True, repo=repo,
        )
        assert result["message"] == "Event recorded and flagged for VAERS submission"

    def test_missing_vaccination(self, repo):
        with pytest.raises(RecordNotFoundError):
            vaccinations.report_adverse_event("missing", "Fever", repo=repo)
