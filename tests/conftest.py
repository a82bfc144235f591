"""Shared pytest fixtures."""

import pytest
from fastapi.testclient import TestClient

import clinic_ops.address_validator
import clinic_ops.llm
from clinic_ops.clinic_records.database import connection, init_database, Patient, PatientRepository


@pytest.fixture(autouse=True)
def clinic_db(tmp_path, monkeypatch):
    """Point every repository at a fresh database for each test."""
    monkeypatch.setattr(connection, "DB_PATH", tmp_path / "clinic_ops.db")
    init_database()
    yield connection.DB_PATH


@pytest.fixture(autouse=True)
def no_external_apis(monkeypatch):
    """Disable the OpenAI and address validation keys so nothing leaves the test run."""
    monkeypatch.setattr(clinic_ops.llm, "OPENAI_API_KEY", None)
    monkeypatch.setattr(clinic_ops.address_validator, "API_KEY", None)


@pytest.fixture
def patient_repo():
    return PatientRepository()


@pytest.fixture
def patient(patient_repo):
    """A stored patient for tests that need a foreign key target."""
    return patient_repo.create(Patient(
        id="p-test-001",
        first_name="Maria",
        last_name="Garcia",
        date_of_birth="1985-03-15",
        phone="555-0101",
        gender="female",
        race="Hispanic or Latino",
        ethnicity="Hispanic",
        insurance_type="Medicaid",
        rural_urban_code="urban",
    ), changed_by="test")


@pytest.fixture
def client():
    """HTTP client for the API app."""
    from clinic_ops.main import app
    return TestClient(app)
