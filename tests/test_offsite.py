"""Tests for off-site dosing kits and administrations."""

from datetime import date

import pytest

from clinic_ops import offsite_dosing
from clinic_ops.clinic_records.database import (
    OffsiteKit,
    OffsiteLocation,
    OffsiteRepository,
    RecordNotFoundError,
)

TODAY = date(2026, 5, 4)


@pytest.fixture
def repo():
    return OffsiteRepository()


@pytest.fixture
def location(repo):
    return repo.create_location(OffsiteLocation(
        id="loc-1",
        facility_name="Riverside Nursing Home",
        facility_type="nursing_home",
        city="Detroit",
        state="MI",
        contact_person_name="Linda Park",
        phone="313-555-0101",
    ))


@pytest.fixture
def kit(repo, location, patient):
    return repo.create_kit(OffsiteKit(
        id="kit-1",
        kit_number="KIT-0001",
        patient_id=patient.id,
        location_id=location.id,
        medication="Methadone 80mg",
        start_date="2026-05-01",
        end_date="2026-05-07",
        doses_remaining=2,
    ))


@pytest.fixture
def administration_id(repo, kit):
    return repo.schedule_administration(
        kit.id, kit.patient_id, kit.location_id, kit.medication, "2026-05-04T08:00:00"
    )


class TestKitStatus:
    """Tests for moving a kit through its lifecycle."""

    @pytest.mark.parametrize("current,expected", [
        ("preparing", "in_transit"),
        ("in_transit", "in_use"),
        ("in_use", "returned"),
        ("returned", None),
        ("lost", None),
    ])
    def test_next_status(self, current, expected):
        assert offsite_dosing.next_kit_status(current) == expected

    def test_departure_is_recorded(self, repo, kit):
        updated = offsite_dosing.update_kit_status(kit.id, "in_transit", "Driver Dan", repo=repo)

        assert updated["kit_status"] == "in_transit"
        assert updated["transported_by"] == "Driver Dan"
        assert updated["departed_at"] is not None

    def test_cannot_skip_a_step(self, repo, kit):
        with pytest.raises(ValueError, match="cannot move from preparing to in_use"):
            offsite_dosing.update_kit_status(kit.id, "in_use", repo=repo)
        assert repo.get_kit(kit.id).kit_status == "preparing"

    def test_cannot_move_backwards(self, repo, kit):
        offsite_dosing.update_kit_status(kit.id, "in_transit", repo=repo)
        with pytest.raises(ValueError):
            offsite_dosing.update_kit_status(kit.id, "preparing", repo=repo)

    def test_missing_kit(self, repo):
        with pytest.raises(RecordNotFoundError):
            offsite_dosing.update_kit_status("missing", "in_transit", repo=repo)


class TestAdministration:
    """Tests for recording off-site dose outcomes."""

    def test_administered_dose_moves_count(self, repo, kit, administration_id):
        result = offsite_dosing.record_administration(administration_id, "administered", "Nurse Kay", repo=repo)

        assert result["status"] == "administered"
        assert result["administered_by"] == "Nurse Kay"
        assert result["administered_at"] is not None

        stored = repo.get_kit(kit.id)
        assert stored.doses_administered == 1
        assert stored.doses_remaining == 1

    def test_recorded_dose_not_counted_twice(self, repo, kit, administration_id):
        offsite_dosing.record_administration(administration_id, "administered", repo=repo)

        with pytest.raises(ValueError, match="already been recorded"):
            offsite_dosing.record_administration(administration_id, "administered", repo=repo)

        stored = repo.get_kit(kit.id)
        assert stored.doses_administered == 1
        assert stored.doses_remaining == 1

    def test_remaining_never_negative(self, repo, location, patient):
        empty = repo.create_kit(OffsiteKit(
            id="kit-empty",
            kit_number="KIT-0002",
            patient_id=patient.id,
            location_id=location.id,
            medication="Methadone 80mg",
            doses_remaining=0,
        ))
        admin_id = repo.schedule_administration(empty.id, patient.id, location.id, "Methadone 80mg", "2026-05-04T08:00:00")

        offsite_dosing.record_administration(admin_id, "administered", repo=repo)

        stored = repo.get_kit(empty.id)
        assert stored.doses_remaining == 0
        assert stored.doses_administered == 1

    def test_missed_dose_leaves_kit(self, repo, kit, administration_id):
        offsite_dosing.record_administration(administration_id, "missed", notes="Patient asleep", repo=repo)

        stored = repo.get_kit(kit.id)
        assert stored.doses_remaining == 2
        assert stored.doses_administered == 0

    def test_invalid_outcome(self, repo, administration_id):
        with pytest.raises(ValueError, match="Invalid administration status"):
            offsite_dosing.record_administration(administration_id, "pending", repo=repo)

    def test_missing_administration(self, repo):
        with pytest.raises(RecordNotFoundError):
            offsite_dosing.record_administration("missing", "administered", repo=repo)


class TestOffsiteData:
    """Tests for the off-site dosing overview."""

    def test_overview(self, repo, kit, administration_id):
        offsite_dosing.update_kit_status(kit.id, "in_transit", repo=repo)
        second = repo.schedule_administration(kit.id, kit.patient_id, kit.location_id, kit.medication, "2026-05-04T18:00:00")
        offsite_dosing.record_administration(second, "missed", repo=repo)

        data = offsite_dosing.get_offsite_data(repo=repo, today=TODAY)

        assert data["locations"][0]["active_patients"] == 1
        assert data["active_kits"][0]["patient_name"] == "Garcia, Maria"
        assert [a["id"] for a in data["pending_administrations"]] == [administration_id]
        assert [a["id"] for a in data["dispensing_log"]] == [second]
        assert data["stats"] == {
            "active_locations": 1,
            "active_kits": 0,
            "today_doses": 2,
            "administered_today": 0,
            "missed_today": 1,
            "in_transit": 1,
        }

    def test_preparing_kits_not_listed(self, repo, kit):
        data = offsite_dosing.get_offsite_data(repo=repo, today=TODAY)

        assert data["active_kits"] == []
        assert data["locations"][0]["active_patients"] == 0
