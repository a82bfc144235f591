"""Seed the database with demo records for every clinic operations area."""

import random
import uuid
from datetime import date, datetime, timedelta

from rich.console import Console

from clinic_ops.diversion import hash_qr_code
from clinic_ops.clinic_records.database import (
    BillingRepository,
    BiometricEnrollment,
    Bottle,
    Claim,
    DiversionRepository,
    EquityMetric,
    EquityRepository,
    FacilityAlert,
    FacilityRepository,
    HomeAddress,
    InsuranceRepository,
    InventoryLot,
    LabOrder,
    LabRepository,
    OffsiteKit,
    OffsiteLocation,
    OffsiteRepository,
    Patient,
    PatientInsurance,
    PatientRepository,
    Payer,
    PmpRepository,
    PriorAuth,
    StaffMember,
    SupportRepository,
    Ticket,
    Vaccination,
    VaccinationRepository,
    get_connection,
    init_database,
)

console = Console()

MOCK_PATIENTS = [
    Patient(id="p-001", first_name="John", last_name="Smith", date_of_birth="1985-03-15",
            phone="555-0101", gender="Male", race="White", ethnicity="Non-Hispanic",
            insurance_type="Medicaid", rural_urban_code="Urban", preferred_language="English"),
    Patient(id="p-002", first_name="Sarah", last_name="Johnson", date_of_birth="1992-07-22",
            phone="555-0102", gender="Female", race="Black or African American", ethnicity="Non-Hispanic",
            insurance_type="Medicaid", rural_urban_code="Urban", preferred_language="English"),
    Patient(id="p-003", first_name="Miguel", last_name="Garcia", date_of_birth="1978-11-02",
            phone="555-0103", gender="Male", race="White", ethnicity="Hispanic/Latino",
            insurance_type="Medicare", rural_urban_code="Rural", preferred_language="Spanish"),
    Patient(id="p-004", first_name="Emily", last_name="Chen", date_of_birth="1999-01-30",
            phone="555-0104", gender="Female", race="Asian", ethnicity="Non-Hispanic",
            insurance_type="Commercial", rural_urban_code="Suburban", preferred_language="English"),
    Patient(id="p-005", first_name="Robert", last_name="Williams", date_of_birth="1960-06-18",
            phone="555-0105", gender="Male", race="Black or African American", ethnicity="Non-Hispanic",
            insurance_type="Medicare", rural_urban_code="Rural", preferred_language="English"),
    Patient(id="p-006", first_name="Ana", last_name="Lopez", date_of_birth="1988-09-09",
            phone="555-0106", gender="Female", race="White", ethnicity="Hispanic/Latino",
            insurance_type="Uninsured", rural_urban_code="Urban", preferred_language="Spanish"),
]

EQUITY_METRICS = [
    EquityMetric(id="m-ret90", name="90-Day Retention", code="HE_RET90", benchmark_value=75,
                 equity_target=5, warning_threshold=10, critical_threshold=20),
    EquityMetric(id="m-mat", name="MAT Initiation", code="HE_MAT_INIT", benchmark_value=85,
                 equity_target=5, warning_threshold=10, critical_threshold=15),
    EquityMetric(id="m-noshow", name="Appointment No-Show Rate", code="HE_NOSHOW", benchmark_value=10,
                 equity_target=5, warning_threshold=5, critical_threshold=15, higher_is_better=False),
]

PAYERS = [
    Payer(id="payer-medicare", payer_name="Medicare Part B", payer_id="MCR01", network_type="Medicare",
          electronic_payer_id="00431", claim_submission_method="electronic"),
    Payer(id="payer-medicaid", payer_name="Michigan Medicaid", payer_id="MCD01", network_type="Medicaid",
          electronic_payer_id="D00111", claim_submission_method="electronic", prior_auth_required=True),
    Payer(id="payer-bcbs", payer_name="Blue Cross Blue Shield", payer_id="BCBS1", network_type="Commercial PPO",
          electronic_payer_id="00710", claim_submission_method="electronic"),
]

CLINIC_LOCATION = (42.3314, -83.0458)


def seed_patients() -> list[Patient]:
    repo = PatientRepository()
    created = []
    for patient in MOCK_PATIENTS:
        if repo.get_by_id(patient.id):
            console.print(f"  [dim]Skipping {patient.full_name} (already exists)[/dim]")
            continue
        created.append(repo.create(patient, changed_by="seed"))
        console.print(f"  Created {patient.full_name}")
    return created


def seed_equity(rng: random.Random) -> None:
    repo = EquityRepository()
    for metric in EQUITY_METRICS:
        repo.create_metric(metric)

    today = date.today()
    conn = get_connection()
    cursor = conn.cursor()
    for patient in MOCK_PATIENTS:
        for _ in range(3):
            admitted = today - timedelta(days=rng.randint(20, 170))
            discharged = admitted + timedelta(days=rng.randint(30, 150))
            active = discharged >= today
            cursor.execute("""
                INSERT INTO otp_admissions (id, patient_id, status, medication, admission_date, discharge_date)
                VALUES (?, ?, ?, ?, ?, ?)
            """, (
                str(uuid.uuid4()), patient.id, "active" if active else "discharged",
                rng.choice(["Methadone", "Buprenorphine", "Naltrexone", None]),
                admitted.isoformat(), None if active else discharged.isoformat()
            ))
        for _ in range(12):
            cursor.execute("""
                INSERT INTO appointments (id, patient_id, appointment_date, appointment_type, status)
                VALUES (?, ?, ?, ?, ?)
            """, (
                str(uuid.uuid4()), patient.id,
                (today - timedelta(days=rng.randint(0, 80))).isoformat(),
                rng.choice(["Individual Counseling", "Group Therapy", "Medical Review"]),
                rng.choices(["completed", "no-show", "cancelled"], weights=[7, 2, 1])[0]
            ))
    conn.commit()
    conn.close()

    for patient in MOCK_PATIENTS:
        repo.add_sdoh_score(
            patient.id,
            rng.choice(["low", "moderate", "high"]),
            has_housing_instability=rng.random() < 0.3,
            has_food_insecurity=rng.random() < 0.25,
            has_transportation_barrier=rng.random() < 0.4,
            has_employment_barrier=rng.random() < 0.35,
        )
    repo.create_initiative(
        "Spanish-language intake navigation",
        status="active",
        initiative_type="language_access",
        target_demographic_type="language",
        target_demographic_value="Spanish",
        start_date=today.isoformat(),
    )
    console.print(f"  Created {len(EQUITY_METRICS)} metrics, admissions, appointments and SDOH screens")


def seed_billing(rng: random.Random) -> None:
    billing = BillingRepository()
    insurance = InsuranceRepository()
    lab = LabRepository()
    now = datetime.now()

    for payer in PAYERS:
        insurance.create_payer(payer)

    coverage = {
        "p-001": ["payer-medicaid"],
        "p-002": ["payer-medicaid"],
        "p-003": ["payer-medicare", "payer-medicaid"],
        "p-004": ["payer-bcbs"],
        "p-005": ["payer-medicare", "payer-medicaid"],
    }
    for patient_id, payer_ids in coverage.items():
        for priority, payer_id in enumerate(payer_ids, start=1):
            insurance.create_coverage(PatientInsurance(
                id="", patient_id=patient_id, payer_id=payer_id,
                policy_number=f"POL-{rng.randint(100000, 999999)}",
                effective_date=(now - timedelta(days=365)).date().isoformat(),
                copay_amount=0 if payer_id != "payer-bcbs" else 25, priority_order=priority,
            ))
            billing.create_claim(Claim(
                id="", patient_id=patient_id, payer_id=payer_id,
                claim_number=f"CLM-{rng.randint(10000, 99999)}",
                claim_status=rng.choice(["pending", "submitted", "processing"]),
                total_charges=247.50, service_date=(now - timedelta(days=rng.randint(0, 6))).isoformat(),
                submission_date=now.date().isoformat(),
            ))

    for patient in MOCK_PATIENTS:
        dose = rng.choice([8, 16, 60, 80, 110])
        billing.create_order(patient.id, dose, max_takehome=rng.choice([0, 0, 6]))
        for day in range(7):
            billing.record_dose_event(
                patient.id,
                rng.choices(["administered", "missed"], weights=[9, 1])[0],
                (now - timedelta(days=day)).isoformat(),
            )
        for weeks_ago in (0, 1):
            billing.record_vitals(
                patient.id,
                (now - timedelta(weeks=weeks_ago)).isoformat(),
                systolic_bp=rng.randint(110, 150), diastolic_bp=rng.randint(70, 95),
                heart_rate=rng.randint(60, 100), temperature=round(rng.uniform(97.5, 99.1), 1),
                weight=rng.randint(130, 230),
            )
        billing.record_assessment(patient.id, rng.sample(["F11.20", "F11.21", "F41.1", "F32.9"], 2))
        lab.create_order(LabOrder(
            id="", patient_id=patient.id, test_names=["Urine Drug Screen", "Toxicology Panel"],
            test_codes=["80305"], lab_name="Quest Diagnostics",
        ))

    insurance.create_prior_auth(PriorAuth(
        id="", patient_name="Miguel Garcia", service="Sublocade monthly injection",
        diagnosis="F11.20", justification="Adherence barriers with daily dosing",
        payer_name="Michigan Medicaid", requested_units=6,
    ))
    insurance.create_prior_auth(PriorAuth(
        id="", patient_name="Emily Chen", service="Intensive outpatient program",
        diagnosis="F11.23", urgency="urgent", payer_name="Blue Cross Blue Shield", requested_units=12,
    ))
    console.print(f"  Created {len(PAYERS)} payers, coverage, claims, orders, vitals and lab orders")


def seed_pmp() -> None:
    repo = PmpRepository()
    repo.save_config("MI", is_active=True)
    repo.add_patient_medication("p-001", "Methadone 80mg", "opioid")
    repo.add_patient_medication("p-004", "Buprenorphine/Naloxone 8/2mg", "controlled")
    repo.add_patient_medication("p-006", "Clonazepam 1mg", "benzodiazepine")
    console.print("  Configured PMP (MI) and controlled medications")


def seed_diversion(rng: random.Random) -> None:
    repo = DiversionRepository()
    lat, lng = CLINIC_LOCATION
    for index, patient in enumerate(MOCK_PATIENTS[:4], start=1):
        repo.register_home_address(HomeAddress(
            id="", patient_id=patient.id, address_line1=f"{100 + index} Woodward Ave",
            city="Detroit", state="MI", zip_code="48226",
            latitude=lat + rng.uniform(-0.05, 0.05), longitude=lng + rng.uniform(-0.05, 0.05),
            verification_method="manual", is_verified=True,
        ))
        repo.enroll_biometric(BiometricEnrollment(
            id="", patient_id=patient.id, consent_signed=True,
            consent_signed_at=datetime.now().isoformat(), enrollment_location="Main Clinic",
        ))
        for day in range(1, 4):
            number = f"BTL-{patient.id.upper()}-{day:02d}"
            repo.create_bottle(Bottle(
                id="", bottle_number=number, patient_id=patient.id,
                qr_code_hash=hash_qr_code(number), medication_name="Methadone",
                dose_amount="80mg", quantity=1,
            ))
        repo.add_risk_score(patient.id, rng.randint(5, 80), rng.choice(["low", "medium", "high"]),
                            ["missed_doses"] if index % 2 else [])
    console.print("  Created home addresses, biometric enrollments and take-home bottles")


def seed_facility() -> None:
    repo = FacilityRepository()
    repo.create_alert(FacilityAlert(id="", alert_type="Fire", priority="high",
                                    message="Annual fire drill overdue", affected_areas=["Dosing Room"]))
    repo.create_alert(FacilityAlert(id="", alert_type="Power outage", priority="medium",
                                    message="Generator test required"))
    repo.create_alert(FacilityAlert(id="", alert_type="Workplace violence", priority="critical",
                                    message="De-escalation protocol review"))
    for name, kind in [("Fire Extinguisher A", "Fire Safety"), ("AED Lobby", "Medical"), ("Dosing Safe", "Security")]:
        repo.record_equipment_check(
            {"equipment_name": name, "equipment_type": kind, "location": "Main Clinic",
             "status": "Operational", "inspector": "Facilities"},
            timestamp=(datetime.now() - timedelta(days=5)).isoformat(),
        )
    repo.add_staff(StaffMember(id="", first_name="Grace", last_name="Park", role="Nurse",
                               license_expiry=(date.today() + timedelta(days=200)).isoformat()))
    repo.add_staff(StaffMember(id="", first_name="David", last_name="Miller", role="Counselor",
                               license_expiry=(date.today() - timedelta(days=10)).isoformat()))
    repo.add_compliance_report("joint_commission", "Environment of Care Review", "submitted")
    console.print("  Created facility alerts, equipment checks, staff and compliance reports")


def seed_offsite() -> None:
    repo = OffsiteRepository()
    hospital = repo.create_location(OffsiteLocation(
        id="", facility_name="Detroit Receiving Hospital", facility_type="hospital",
        city="Detroit", state="MI", contact_person_name="Charge Nurse",
    ))
    jail = repo.create_location(OffsiteLocation(
        id="", facility_name="Wayne County Jail", facility_type="correctional",
        city="Detroit", state="MI",
    ))
    today = date.today()
    for patient, location in [(MOCK_PATIENTS[4], hospital), (MOCK_PATIENTS[5], jail)]:
        kit = repo.create_kit(OffsiteKit(
            id="", kit_number=f"KIT-{patient.id.upper()}", patient_id=patient.id,
            location_id=location.id, medication="Methadone 60mg", number_of_bottles=7,
            start_date=today.isoformat(), end_date=(today + timedelta(days=6)).isoformat(),
            kit_status="in_use", doses_remaining=7,
        ))
        repo.schedule_administration(
            kit.id, patient.id, location.id, "Methadone 60mg",
            datetime.combine(today, datetime.min.time()).replace(hour=8).isoformat(),
        )
    console.print("  Created off-site locations, kits and scheduled administrations")


def seed_vaccinations() -> None:
    repo = VaccinationRepository()
    repo.add_inventory(InventoryLot(id="", vaccine_name="Hepatitis B", vaccine_code="08",
                                    manufacturer="Merck", lot_number="HEPB-2291", quantity_received=40,
                                    expiration_date=(date.today() + timedelta(days=300)).isoformat()))
    repo.add_inventory(InventoryLot(id="", vaccine_name="Influenza (Quadrivalent)", vaccine_code="150",
                                    manufacturer="Sanofi Pasteur", lot_number="FLU-7730", quantity_received=8,
                                    expiration_date=(date.today() + timedelta(days=120)).isoformat()))
    repo.add_schedule("Hepatitis B", vaccine_code="08", age_group="adult", dose_number=1,
                      total_doses=3, acip_recommendation="Recommended for people who inject drugs")
    repo.record_vaccination(Vaccination(
        id="", patient_id="p-002", vaccine_name="Hepatitis B", vaccine_code="08",
        administration_date=date.today().isoformat(), manufacturer="Merck", lot_number="HEPB-2291",
        dose_number=1, total_doses_in_series=3, administration_site="Left Deltoid", route="IM",
    ))
    console.print("  Created vaccine inventory, schedules and a vaccination")


def seed_support() -> None:
    repo = SupportRepository()
    clinic = repo.create_organization("Eastside Recovery Center", "enterprise", 42, "online")
    rural = repo.create_organization("Thumb Area Treatment", "standard", 9, "issues")
    for organization_id, subject, priority in [
        (clinic, "Dosing pump not syncing with dispensing log", "critical"),
        (rural, "Need training on take-home bottle scanning", "low"),
        (rural, "Claims export fails for Medicaid batch", "high"),
    ]:
        organization = repo.get_organization(organization_id)
        repo.create_ticket(Ticket(
            id="", subject=subject, organization_id=organization_id,
            organization_name=organization["name"], priority=priority,
        ))
    console.print("  Created organizations and support tickets")


def seed_database():
    """Seed every area with demo data."""
    console.print("[bold blue]Initializing database...[/bold blue]")
    init_database()
    rng = random.Random(42)

    console.print("[bold]Creating patients...[/bold]")
    if not seed_patients():
        console.print("[yellow]Patients already seeded, skipping demo data.[/yellow]")
        return

    steps = [
        ("health equity", lambda: seed_equity(rng)),
        ("billing and insurance", lambda: seed_billing(rng)),
        ("PMP", seed_pmp),
        ("diversion control", lambda: seed_diversion(rng)),
        ("facility safety", seed_facility),
        ("off-site dosing", seed_offsite),
        ("vaccinations", seed_vaccinations),
        ("IT support", seed_support),
    ]
    for label, step in steps:
        console.print(f"[bold]Seeding {label}...[/bold]")
        step()

    console.print("\n[bold green]Database seeded successfully![/bold green]")


def main():
    seed_database()


if __name__ == "__main__":
    main()
