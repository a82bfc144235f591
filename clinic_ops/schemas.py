"""Pydantic request bodies for the HTTP API."""

from datetime import date
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from clinic_ops.health_equity import StratificationType

STRATIFICATION_TYPES = [t.value for t in StratificationType]


def _not_blank(value: str) -> str:
    if not value or not value.strip():
        raise ValueError("Field is required")
    return value.strip()


# =============================================================================
# Patients
# =============================================================================

class PatientCreate(BaseModel):
    first_name: str
    last_name: str
    date_of_birth: str
    phone: str | None = None
    email: str | None = None
    gender: str | None = None
    race: str | None = None
    ethnicity: str | None = None
    insurance_type: str | None = None
    rural_urban_code: str | None = None
    preferred_language: str | None = None
    changed_by: str = "system"

    @field_validator("first_name", "last_name")
    @classmethod
    def required_name(cls, v: str) -> str:
        return _not_blank(v)

    @field_validator("date_of_birth")
    @classmethod
    def validate_dob(cls, v: str) -> str:
        date.fromisoformat(v)
        return v


class PatientUpdate(BaseModel):
    first_name: str | None = None
    last_name: str | None = None
    date_of_birth: str | None = None
    phone: str | None = None
    email: str | None = None
    gender: str | None = None
    race: str | None = None
    ethnicity: str | None = None
    insurance_type: str | None = None
    rural_urban_code: str | None = None
    preferred_language: str | None = None
    changed_by: str = "system"


# =============================================================================
# Health equity
# =============================================================================

class EquityCalculateRequest(BaseModel):
    action: Literal["calculate_snapshots"] = "calculate_snapshots"
    metric_ids: list[str] | None = None
    stratification_types: list[str] | None = None

    @field_validator("stratification_types")
    @classmethod
    def known_types(cls, v: list[str] | None) -> list[str] | None:
        if v:
            unknown = [t for t in v if t not in STRATIFICATION_TYPES]
            if unknown:
                raise ValueError(f"Unknown stratification types: {', '.join(unknown)}")
        return v


# =============================================================================
# Billing and insurance
# =============================================================================

class DualEligibleAction(BaseModel):
    action: str
    claim_id: str | None = None


class PayerCreate(BaseModel):
    type: Literal["payer"]
    payer_name: str
    payer_id: str | None = None
    contact_name: str | None = None
    contact_phone: str | None = None
    contact_email: str | None = None
    billing_address: str | None = None
    electronic_payer_id: str | None = None
    claim_submission_method: str | None = None
    prior_auth_required: bool = False
    network_type: str | None = None
    is_active: bool = True


class CoverageCreate(BaseModel):
    type: Literal["patient-insurance"]
    patient_id: str
    payer_id: str
    policy_number: str | None = None
    group_number: str | None = None
    subscriber_name: str | None = None
    relationship_to_subscriber: str | None = None
    effective_date: str | None = None
    termination_date: str | None = None
    copay_amount: float | None = None
    deductible_amount: float | None = None
    priority_order: int = 1
    is_active: bool = True


class EligibilityCheckCreate(BaseModel):
    type: Literal["eligibility-check"]
    patient_id: str
    payer_id: str | None = None
    patient_insurance_id: str | None = None
    coverage_details: dict | None = None
    copay_amount: float | None = None
    deductible_amount: float | None = None
    deductible_remaining: float | None = None


InsuranceCreate = Annotated[
    PayerCreate | CoverageCreate | EligibilityCheckCreate,
    Field(discriminator="type"),
]


class InsuranceUpdate(BaseModel):
    """Update for a payer or a coverage row; every other field is passed through as a change."""

    model_config = ConfigDict(extra="allow")

    type: Literal["payer", "patient-insurance"]
    id: str

    def changes(self) -> dict:
        return dict(self.model_extra or {})


class PriorAuthCreate(BaseModel):
    patient_name: str
    service: str
    diagnosis: str | None = None
    justification: str | None = None
    urgency: Literal["routine", "urgent", "emergent"] = "routine"
    payer_name: str | None = None
    requested_units: int | None = Field(None, ge=1)

    @field_validator("patient_name", "service")
    @classmethod
    def required_text(cls, v: str) -> str:
        return _not_blank(v)


class PriorAuthDecision(BaseModel):
    decision: Literal["approve", "deny"]
    auth_number: str | None = None
    approved_units: int | None = Field(None, ge=0)
    valid_from: str | None = None
    valid_to: str | None = None
    denial_reason: str | None = None


# =============================================================================
# Lab
# =============================================================================

class LabOrderCreate(BaseModel):
    patient_id: str
    test_names: list[str] = Field(min_length=1)
    test_codes: list[str] = Field(default_factory=list)
    provider_id: str | None = None
    lab_name: str | None = None
    lab_npi: str | None = None
    priority: Literal["routine", "urgent", "stat"] = "routine"
    specimen_type: str | None = None
    collection_method: str | None = None
    notes: str | None = None


class LabOrderUpdate(BaseModel):
    type: Literal["order"]
    id: str
    status: Literal["pending", "sent", "collected", "resulted", "cancelled"]
    collection_date: str | None = None


class LabResultUpdate(BaseModel):
    type: Literal["result"]
    id: str
    status: Literal["preliminary", "final", "corrected"]


LabUpdate = Annotated[LabOrderUpdate | LabResultUpdate, Field(discriminator="type")]


# =============================================================================
# PMP
# =============================================================================

class PmpLookupRequest(BaseModel):
    patient_id: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    dob: str | None = None


# =============================================================================
# Diversion control
# =============================================================================

class GpsLocation(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    accuracy: float | None = None
    address: str | None = None


class FacialBiometric(BaseModel):
    confidence: float = Field(0, ge=0, le=100)
    liveness_check: bool | None = None


class DeviceInfo(BaseModel):
    device_id: str | None = None
    device_type: str | None = None


class ScanVerificationRequest(BaseModel):
    qr_code_data: str
    patient_id: str
    gps_location: GpsLocation | None = None
    facial_biometric_data: FacialBiometric | None = None
    seal_photo_url: str | None = None
    device_info: DeviceInfo | None = None


class LocationExceptionCreate(BaseModel):
    patient_id: str
    start_date: str
    end_date: str
    exception_type: str = "travel"
    reason: str | None = None
    temporary_address: str | None = None
    temporary_latitude: float | None = None
    temporary_longitude: float | None = None
    temporary_geofence_radius_meters: float = Field(500, gt=0)
    requested_by: str | None = None

    @field_validator("end_date")
    @classmethod
    def end_after_start(cls, v: str, info: ValidationInfo) -> str:
        start = info.data.get("start_date")
        if start and date.fromisoformat(v) < date.fromisoformat(start):
            raise ValueError("end_date must not be before start_date")
        return v


class ExceptionReview(BaseModel):
    reviewed_by: str | None = None


class BiometricEnrollmentCreate(BaseModel):
    patient_id: str
    consent_signed: bool
    enrollment_location: str | None = None
    match_threshold_percentage: float = Field(85, ge=0, le=100)

    @field_validator("consent_signed")
    @classmethod
    def consent_required(cls, v: bool) -> bool:
        if not v:
            raise ValueError("Patient consent must be signed before enrollment")
        return v


class HomeAddressCreate(BaseModel):
    patient_id: str
    address_line1: str
    city: str
    state: str
    zip_code: str
    address_line2: str | None = None
    address_type: str = "home"
    latitude: float | None = None
    longitude: float | None = None
    geofence_radius_meters: float = Field(150, gt=0)
    verification_method: str | None = None

    @field_validator("address_line1", "city", "state", "zip_code")
    @classmethod
    def required_part(cls, v: str) -> str:
        return _not_blank(v)


class AlertResolution(BaseModel):
    resolution_notes: str | None = None


class RiskScoreCreate(BaseModel):
    patient_id: str
    risk_score: float = Field(ge=0, le=100)
    risk_factors: list[str] = Field(default_factory=list)


# =============================================================================
# Facility safety
# =============================================================================

class HazardCreate(BaseModel):
    type: Literal["hazard"]
    name: str
    risk_level: Literal["low", "medium", "high", "critical"] = "medium"
    description: str | None = None
    affected_areas: list[str] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def required_name(cls, v: str) -> str:
        return _not_blank(v)

    @field_validator("risk_level", mode="before")
    @classmethod
    def lowercase_level(cls, v):
        return v.lower() if isinstance(v, str) else v


class EquipmentCheckCreate(BaseModel):
    type: Literal["equipment_check"]
    name: str
    equipment_type: str | None = None
    location: str | None = None
    status: str = "Good"
    inspector: str | None = None


FacilityRecordCreate = Annotated[HazardCreate | EquipmentCheckCreate, Field(discriminator="type")]


# =============================================================================
# Off-site dosing
# =============================================================================

class AdministrationRecord(BaseModel):
    administration_id: str
    status: Literal["administered", "missed", "refused"]
    administered_by: str | None = None
    notes: str | None = None


class KitStatusUpdate(BaseModel):
    kit_status: Literal["preparing", "in_transit", "in_use", "returned"]
    transported_by: str | None = None


# =============================================================================
# Vaccinations
# =============================================================================

class VaccinationCreate(BaseModel):
    patient_id: str
    vaccine_name: str
    administration_date: str
    vaccine_code: str | None = None
    manufacturer: str | None = None
    lot_number: str | None = None
    expiration_date: str | None = None
    dose_number: int = Field(1, ge=1)
    total_doses_in_series: int = Field(1, ge=1)
    administration_site: str | None = None
    route: str | None = None
    administered_by: str | None = None
    vis_given: bool = True
    funding_source: str | None = "private"
    notes: str | None = None


class InventoryLotCreate(BaseModel):
    vaccine_name: str
    lot_number: str
    quantity_received: int = Field(ge=0)
    vaccine_code: str | None = None
    manufacturer: str | None = None
    ndc_number: str | None = None
    expiration_date: str | None = None
    storage_location: str | None = None
    vfc_eligible: bool = False


class AdverseEventCreate(BaseModel):
    event_description: str
    onset_date: str | None = None
    severity: Literal["mild", "moderate", "severe"] = "mild"
    treatment_provided: str | None = None
    report_to_vaers: bool = False

    @field_validator("event_description")
    @classmethod
    def required_description(cls, v: str) -> str:
        return _not_blank(v)


# =============================================================================
# IT support
# =============================================================================

class TicketCreate(BaseModel):
    subject: str
    organization_id: str | None = None
    organization_name: str | None = None
    contact_name: str | None = None
    contact_email: str | None = None
    contact_phone: str | None = None
    description: str | None = None
    category: str = "technical"
    priority: Literal["low", "medium", "high", "critical"] = "medium"

    @field_validator("subject")
    @classmethod
    def required_subject(cls, v: str) -> str:
        return _not_blank(v)


class TicketUpdate(BaseModel):
    status: str | None = None
    assigned_to: str | None = None
    priority: Literal["low", "medium", "high", "critical"] | None = None
    category: str | None = None


class SessionCreate(BaseModel):
    ticket_id: str | None = None
    organization_id: str | None = None
    client_user_name: str | None = None
    support_agent_name: str | None = None
    session_type: Literal["view_only", "full_control", "assist"] = "view_only"
    recording: bool = False


class SessionMessageCreate(BaseModel):
    message: str
    sender_name: str = "You"
    sender_role: str = "support"

    @field_validator("message")
    @classmethod
    def required_message(cls, v: str) -> str:
        return _not_blank(v)
