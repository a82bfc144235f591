"""Tests for patient repository functionality."""

from clinic_ops.clinic_records.database import Patient


class TestPatientCRUD:
    """Tests for patient CRUD operations."""

    def test_create_patient(self, patient_repo):
        created = patient_repo.create(Patient(
            id="",
            first_name="James",
            last_name="Wilson",
            date_of_birth="1970-08-02",
        ), changed_by="test")

        assert created.id
        assert created.created_at is not None
        assert patient_repo.get_by_id(created.id).full_name == "James Wilson"

    def test_get_missing(self, patient_repo):
        assert patient_repo.get_by_id("nonexistent-id") is None

    def test_search(self, patient_repo, patient):
        assert [p.id for p in patient_repo.list_patients(search="Garc")] == [patient.id]
        assert [p.id for p in patient_repo.list_patients(search="Maria Garcia")] == [patient.id]
        assert patient_repo.list_patients(search="Nobody") == []

    def test_get_many(self, patient_repo, patient):
        found = patient_repo.get_many([patient.id, "missing"])
        assert list(found) == [patient.id]
        assert patient_repo.get_many([]) == {}

    def test_update_patient(self, patient_repo, patient):
        updated = patient_repo.update(patient.id, {"phone": "555-0199"}, changed_by="test")
        assert updated.phone == "555-0199"

    def test_update_missing(self, patient_repo):
        assert patient_repo.update("nonexistent-id", {"phone": "555"}) is None


class TestAuditLog:
    """Tests for the patient change log."""

    def test_creation_logged(self, patient_repo, patient):
        history = patient_repo.get_change_history(patient.id)
        logged_fields = {entry["field_name"] for entry in history}

        assert {"first_name", "last_name", "date_of_birth", "race"} <= logged_fields
        assert "email" not in logged_fields
        assert all(entry["change_type"] == "CREATE" for entry in history)

    def test_update_logged(self, patient_repo, patient):
        patient_repo.update(patient.id, {"insurance_type": "Medicare"}, changed_by="front_desk")

        updates = [e for e in patient_repo.get_change_history(patient.id) if e["change_type"] == "UPDATE"]
        assert len(updates) == 1
        assert updates[0]["field_name"] == "insurance_type"
        assert updates[0]["old_value"] == "Medicaid"
        assert updates[0]["new_value"] == "Medicare"
        assert updates[0]["changed_by"] == "front_desk"

    def test_unchanged_fields_not_logged(self, patient_repo, patient):
        patient_repo.update(patient.id, {"phone": patient.phone, "not_a_field": "x"})

        history = patient_repo.get_change_history(patient.id)
        assert all(entry["change_type"] == "CREATE" for entry in history)
