"""HTTP API for the clinic operations back end."""

import os
import sqlite3
from contextlib import asynccontextmanager
from dataclasses import asdict

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from rich.console import Console
from rich.panel import Panel

from clinic_ops import (
    diversion,
    dual_eligible,
    facility_safety,
    health_equity,
    insurance,
    it_support,
    lab,
    offsite_dosing,
    otp_billing,
    pmp,
    prior_auth,
    vaccinations,
)
from clinic_ops.clinic_records.database import (
    BiometricEnrollment,
    HomeAddress,
    InventoryLot,
    LabOrder,
    LocationException,
    Patient,
    PatientRepository,
    PriorAuth,
    RecordNotFoundError,
    RemoteSession,
    Ticket,
    Vaccination,
    init_database,
)
from clinic_ops.schemas import (
    AdministrationRecord,
    AdverseEventCreate,
    AlertResolution,
    BiometricEnrollmentCreate,
    DualEligibleAction,
    EligibilityCheckCreate,
    EquityCalculateRequest,
    ExceptionReview,
    FacilityRecordCreate,
    HomeAddressCreate,
    InsuranceCreate,
    InsuranceUpdate,
    InventoryLotCreate,
    KitStatusUpdate,
    LabOrderCreate,
    LabOrderUpdate,
    LabUpdate,
    LocationExceptionCreate,
    PatientCreate,
    PatientUpdate,
    PayerCreate,
    PmpLookupRequest,
    PriorAuthCreate,
    PriorAuthDecision,
    RiskScoreCreate,
    ScanVerificationRequest,
    SessionCreate,
    SessionMessageCreate,
    TicketCreate,
    TicketUpdate,
    VaccinationCreate,
)

load_dotenv(override=True)

API_HOST = os.getenv("API_HOST", "127.0.0.1")
API_PORT = int(os.getenv("API_PORT", "8000"))

console = Console()


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_database()
    yield


app = FastAPI(title="Clinic Operations", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Error handling
# =============================================================================

def _log_error(request: Request, exc: Exception) -> None:
    console.print(f"[bold red]Error in {request.method} {request.url.path}:[/bold red] {exc}")


@app.exception_handler(diversion.ScanVerificationError)
async def scan_verification_error(request: Request, exc: diversion.ScanVerificationError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message, "verified": False},
    )


@app.exception_handler(pmp.PmpNotConfiguredError)
async def pmp_not_configured(request: Request, exc: pmp.PmpNotConfiguredError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "error": str(exc)},
    )


@app.exception_handler(RecordNotFoundError)
async def record_not_found(request: Request, exc: RecordNotFoundError):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"error": str(exc)})


@app.exception_handler(ValueError)
async def invalid_request(request: Request, exc: ValueError):
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": str(exc)})


@app.exception_handler(sqlite3.IntegrityError)
async def constraint_violation(request: Request, exc: sqlite3.IntegrityError):
    # Unknown patient or other referenced id
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": f"Invalid reference: {exc}"})


@app.exception_handler(Exception)
async def server_error(request: Request, exc: Exception):
    _log_error(request, exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"},
    )


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


# =============================================================================
# Patients
# =============================================================================

@app.get("/api/patients")
def list_patients(search: str | None = None, limit: int = Query(100, ge=1, le=1000)) -> dict:
    patients = PatientRepository().list_patients(search, limit)
    return {"patients": [asdict(p) for p in patients]}


@app.post("/api/patients", status_code=status.HTTP_201_CREATED)
def create_patient(payload: PatientCreate) -> dict:
    data = payload.model_dump(exclude={"changed_by"})
    patient = PatientRepository().create(Patient(id="", **data), changed_by=payload.changed_by)
    return {"patient": asdict(patient)}


@app.get("/api/patients/{patient_id}")
def get_patient(patient_id: str) -> dict:
    repo = PatientRepository()
    patient = repo.get_by_id(patient_id)
    if not patient:
        raise RecordNotFoundError(f"Patient {patient_id} not found")
    return {"patient": asdict(patient), "history": repo.get_change_history(patient_id)}


@app.put("/api/patients/{patient_id}")
def update_patient(patient_id: str, payload: PatientUpdate) -> dict:
    updates = payload.model_dump(exclude_none=True, exclude={"changed_by"})
    patient = PatientRepository().update(patient_id, updates, changed_by=payload.changed_by)
    if not patient:
        raise RecordNotFoundError(f"Patient {patient_id} not found")
    return {"patient": asdict(patient)}


# =============================================================================
# Health equity
# =============================================================================

def _split_types(value: str | None) -> list[str] | None:
    if not value:
        return None
    return [t.strip() for t in value.split(",") if t.strip()]


@app.get("/api/research/health-equity")
def health_equity_dashboard(
    stratification_types: str | None = None,
    include_snapshots: bool = True,
    include_sdoh: bool = True,
    include_initiatives: bool = True,
) -> dict:
    return health_equity.get_dashboard_data(
        _split_types(stratification_types),
        include_snapshots=include_snapshots,
        include_sdoh=include_sdoh,
        include_initiatives=include_initiatives,
    )


@app.post("/api/research/health-equity")
def calculate_health_equity(payload: EquityCalculateRequest) -> dict:
    return health_equity.calculate_snapshots(payload.metric_ids, payload.stratification_types)


@app.get("/api/research/health-equity/reports")
def health_equity_report(
    report_type: str = Query("monthly", pattern="^(monthly|quarterly|annual)$"),
    start_date: str | None = None,
    end_date: str | None = None,
    stratification_types: str | None = None,
    include_sdoh: bool = True,
    include_initiatives: bool = True,
    include_narrative: bool = False,
    format: str = Query("json", pattern="^(json|csv)$"),
):
    report = health_equity.build_equity_report(
        report_type,
        start_date,
        end_date,
        _split_types(stratification_types),
        include_sdoh=include_sdoh,
        include_initiatives=include_initiatives,
        include_narrative=include_narrative,
    )
    if format == "csv":
        filename = f"health-equity-{report_type}-{report['period']['end']}.csv"
        return Response(
            content=health_equity.report_to_csv(report),
            media_type="text/csv",
            headers={"Content-Disposition": f"attachment; filename={filename}"},
        )
    return report


# =============================================================================
# Billing, insurance and lab
# =============================================================================

@app.get("/api/otp-billing")
def otp_billing_data() -> dict:
    return otp_billing.get_billing_data()


@app.get("/api/dual-eligible")
def dual_eligible_data() -> dict:
    return dual_eligible.get_dual_eligible_data()


@app.post("/api/dual-eligible")
def dual_eligible_action(payload: DualEligibleAction) -> dict:
    return dual_eligible.handle_action(payload.action, payload.claim_id)


@app.get("/api/insurance")
def insurance_data(type: str = "overview") -> dict:
    return insurance.get_insurance_data(type)


@app.post("/api/insurance")
def create_insurance_record(payload: InsuranceCreate) -> dict:
    data = payload.model_dump(exclude={"type"})
    if isinstance(payload, PayerCreate):
        return {"payer": asdict(insurance.create_payer(data))}
    if isinstance(payload, EligibilityCheckCreate):
        return {"eligibility_request": insurance.check_eligibility(data)}
    return {"insurance": asdict(insurance.create_coverage(data))}


@app.put("/api/insurance")
def update_insurance_record(payload: InsuranceUpdate) -> dict:
    return insurance.update_record(payload.type, payload.id, payload.changes())


@app.delete("/api/insurance")
def delete_insurance_record(type: str | None = None, id: str | None = None) -> dict:
    return insurance.delete_record(type, id)


@app.get("/api/prior-auth")
def prior_auth_data(status: str | None = None) -> dict:
    return prior_auth.get_prior_auth_data(status)


@app.post("/api/prior-auth", status_code=status.HTTP_201_CREATED)
def create_prior_auth(payload: PriorAuthCreate) -> dict:
    request = prior_auth.create_request(PriorAuth(id="", **payload.model_dump()))
    return {"request": asdict(request)}


@app.put("/api/prior-auth/{auth_id}")
def decide_prior_auth(auth_id: str, payload: PriorAuthDecision) -> dict:
    request = prior_auth.decide(auth_id, **payload.model_dump())
    return {"request": asdict(request)}


@app.get("/api/lab")
def lab_data(status: str | None = None) -> dict:
    return lab.get_lab_data(status)


@app.post("/api/lab", status_code=status.HTTP_201_CREATED)
def create_lab_order(payload: LabOrderCreate) -> dict:
    order = lab.create_order(LabOrder(id="", **payload.model_dump()))
    return {"order": asdict(order)}


@app.put("/api/lab")
def update_lab_record(payload: LabUpdate) -> dict:
    collection_date = payload.collection_date if isinstance(payload, LabOrderUpdate) else None
    return lab.update_record(payload.type, payload.id, payload.status, collection_date)


@app.get("/api/pmp")
def pmp_dashboard() -> dict:
    return pmp.get_dashboard()


@app.post("/api/pmp")
def pmp_lookup(payload: PmpLookupRequest) -> dict:
    return pmp.lookup(**payload.model_dump())


# =============================================================================
# Diversion control
# =============================================================================

@app.post("/api/takehome-diversion/verify-scan")
def verify_scan(payload: ScanVerificationRequest, request: Request) -> dict:
    return diversion.verify_scan(
        payload.qr_code_data,
        payload.patient_id,
        gps_location=payload.gps_location.model_dump() if payload.gps_location else None,
        facial_biometric_data=(
            payload.facial_biometric_data.model_dump() if payload.facial_biometric_data else None
        ),
        seal_photo_url=payload.seal_photo_url,
        device_info=payload.device_info.model_dump() if payload.device_info else None,
        ip_address=request.client.host if request.client else None,
    )


@app.get("/api/diversion-control")
def diversion_dashboard() -> dict:
    return diversion.get_dashboard_data()


@app.post("/api/diversion-control/exceptions", status_code=status.HTTP_201_CREATED)
def create_location_exception(payload: LocationExceptionCreate) -> dict:
    exception = diversion.create_exception(LocationException(id="", **payload.model_dump()))
    return {"exception": asdict(exception)}


@app.post("/api/diversion-control/exceptions/{exception_id}/approve")
def approve_location_exception(exception_id: str, payload: ExceptionReview | None = None) -> dict:
    reviewed_by = payload.reviewed_by if payload else None
    return {"status": diversion.review_exception(exception_id, True, reviewed_by)}


@app.post("/api/diversion-control/exceptions/{exception_id}/deny")
def deny_location_exception(exception_id: str, payload: ExceptionReview | None = None) -> dict:
    reviewed_by = payload.reviewed_by if payload else None
    return {"status": diversion.review_exception(exception_id, False, reviewed_by)}


@app.post("/api/diversion-control/biometrics", status_code=status.HTTP_201_CREATED)
def enroll_biometric(payload: BiometricEnrollmentCreate) -> dict:
    enrollment = diversion.enroll_biometric(BiometricEnrollment(id="", **payload.model_dump()))
    return {"enrollment": asdict(enrollment)}


@app.post("/api/diversion-control/addresses", status_code=status.HTTP_201_CREATED)
def register_home_address(payload: HomeAddressCreate) -> dict:
    address = diversion.register_home_address(HomeAddress(id="", **payload.model_dump()))
    return {"address": asdict(address)}


@app.post("/api/diversion-control/alerts/{alert_id}/resolve")
def resolve_diversion_alert(alert_id: str, payload: AlertResolution | None = None) -> dict:
    diversion.resolve_alert(alert_id, payload.resolution_notes if payload else None)
    return {"success": True}


@app.post("/api/diversion-control/risk-scores", status_code=status.HTTP_201_CREATED)
def record_risk_score(payload: RiskScoreCreate) -> dict:
    return diversion.record_risk_score(payload.patient_id, payload.risk_score, payload.risk_factors)


# =============================================================================
# Facility and off-site dosing
# =============================================================================

@app.get("/api/facility")
def facility_data() -> dict:
    return facility_safety.get_facility_data()


@app.post("/api/facility", status_code=status.HTTP_201_CREATED)
def create_facility_record(payload: FacilityRecordCreate) -> dict:
    return facility_safety.create_facility_record(payload.type, payload.model_dump(exclude={"type"}))


@app.get("/api/offsite-dosing")
def offsite_dosing_data() -> dict:
    return offsite_dosing.get_offsite_data()


@app.post("/api/offsite-dosing/administrations")
def record_offsite_administration(payload: AdministrationRecord) -> dict:
    return offsite_dosing.record_administration(
        payload.administration_id, payload.status, payload.administered_by, payload.notes
    )


@app.put("/api/offsite-dosing/kits/{kit_id}")
def update_offsite_kit(kit_id: str, payload: KitStatusUpdate) -> dict:
    return offsite_dosing.update_kit_status(kit_id, payload.kit_status, payload.transported_by)


# =============================================================================
# Vaccinations
# =============================================================================

@app.get("/api/vaccinations")
def vaccination_data(search: str | None = None) -> dict:
    return vaccinations.get_vaccination_data(search)


@app.post("/api/vaccinations", status_code=status.HTTP_201_CREATED)
def record_vaccination(payload: VaccinationCreate) -> dict:
    vaccination = vaccinations.record_vaccination(Vaccination(id="", **payload.model_dump()))
    return {"vaccination": asdict(vaccination)}


@app.post("/api/vaccinations/inventory", status_code=status.HTTP_201_CREATED)
def add_vaccine_inventory(payload: InventoryLotCreate) -> dict:
    lot = vaccinations.add_inventory(InventoryLot(id="", **payload.model_dump()))
    return {"lot": asdict(lot)}


@app.post("/api/vaccinations/{vaccination_id}/registry")
def sync_vaccination_to_registry(vaccination_id: str) -> dict:
    return {"vaccination": vaccinations.sync_to_registry(vaccination_id)}


@app.post("/api/vaccinations/{vaccination_id}/adverse-events", status_code=status.HTTP_201_CREATED)
def report_vaccine_adverse_event(vaccination_id: str, payload: AdverseEventCreate) -> dict:
    return vaccinations.report_adverse_event(vaccination_id, **payload.model_dump())


# =============================================================================
# IT support
# =============================================================================

@app.get("/api/it-support")
def support_data(status: str = "all", search: str | None = None) -> dict:
    return it_support.get_support_data(status, search)


@app.get("/api/it-support/tickets")
def list_tickets(status: str = "all", search: str | None = None) -> dict:
    data = it_support.get_support_data(status, search)
    return {"tickets": data["tickets"], "stats": data["stats"]}


@app.post("/api/it-support/tickets", status_code=status.HTTP_201_CREATED)
def create_ticket(payload: TicketCreate) -> dict:
    ticket = it_support.create_ticket(Ticket(id="", **payload.model_dump()))
    return {"ticket": asdict(ticket)}


@app.put("/api/it-support/tickets/{ticket_id}")
def update_ticket(ticket_id: str, payload: TicketUpdate) -> dict:
    ticket = it_support.update_ticket(ticket_id, payload.model_dump(exclude_none=True))
    return {"ticket": asdict(ticket)}


@app.post("/api/it-support/tickets/{ticket_id}/triage")
def triage_ticket(ticket_id: str) -> dict:
    return it_support.triage_ticket(ticket_id)


@app.post("/api/it-support/sessions", status_code=status.HTTP_201_CREATED)
def start_remote_session(payload: SessionCreate) -> dict:
    session = it_support.start_session(RemoteSession(id="", **payload.model_dump()))
    return {"session": asdict(session)}


@app.post("/api/it-support/sessions/{session_id}/end")
def end_remote_session(session_id: str) -> dict:
    return {"session": asdict(it_support.end_session(session_id))}


@app.post("/api/it-support/sessions/{session_id}/messages", status_code=status.HTTP_201_CREATED)
def send_session_message(session_id: str, payload: SessionMessageCreate) -> dict:
    return {"message": it_support.send_message(session_id, **payload.model_dump())}


def main():
    """Initialize the database and serve the API."""
    init_database()
    console.print(Panel.fit(
        "[bold blue]Clinic Operations API[/bold blue]\n"
        f"Serving on http://{API_HOST}:{API_PORT}",
        border_style="blue",
    ))
    uvicorn.run(app, host=API_HOST, port=API_PORT)


if __name__ == "__main__":
    main()
