from .connection import RecordNotFoundError, get_connection, init_database
from .patient_repository import Patient, PatientRepository
from .equity_repository import EquityMetric, EquityRepository
from .billing_repository import BillingRepository, Claim, MedicationOrder
from .insurance_repository import InsuranceRepository, PatientInsurance, Payer, PriorAuth
from .lab_repository import LabOrder, LabRepository, LabResult
from .pmp_repository import PmpRepository
from .diversion_repository import (
    BiometricEnrollment,
    Bottle,
    DiversionRepository,
    HomeAddress,
    LocationException,
)
from .facility_repository import FacilityAlert, FacilityRepository, StaffMember
from .offsite_repository import OffsiteKit, OffsiteLocation, OffsiteRepository
from .vaccination_repository import InventoryLot, Vaccination, VaccinationRepository
from .support_repository import RemoteSession, SupportRepository, Ticket

__all__ = [
    "get_connection",
    "init_database",
    "RecordNotFoundError",
    "Patient",
    "PatientRepository",
    "EquityMetric",
    "EquityRepository",
    "BillingRepository",
    "Claim",
    "MedicationOrder",
    "InsuranceRepository",
    "PatientInsurance",
    "Payer",
    "PriorAuth",
    "LabOrder",
    "LabRepository",
    "LabResult",
    "PmpRepository",
    "BiometricEnrollment",
    "Bottle",
    "DiversionRepository",
    "HomeAddress",
    "LocationException",
    "FacilityAlert",
    "FacilityRepository",
    "StaffMember",
    "OffsiteKit",
    "OffsiteLocation",
    "OffsiteRepository",
    "InventoryLot",
    "Vaccination",
    "VaccinationRepository",
    "RemoteSession",
    "SupportRepository",
    "Ticket",
]
