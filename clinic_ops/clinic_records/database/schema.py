"""
Clinic Operations Database Schema
Supports patient demographics, OTP billing, diversion control, health equity
snapshots, facility safety, off-site dosing, vaccinations and IT support.
"""

SCHEMA = """
-- =============================================================================
-- 1. PATIENTS - Core patient demographics
-- =============================================================================
CREATE TABLE IF NOT EXISTS patients (
    id TEXT PRIMARY KEY,

    first_name TEXT NOT NULL,
    last_name TEXT NOT NULL,
    date_of_birth TEXT NOT NULL,
    phone TEXT,
    email TEXT,

    -- Demographics used for equity stratification
    gender TEXT,
    race TEXT,
    ethnicity TEXT,
    insurance_type TEXT,
    rural_urban_code TEXT,
    preferred_language TEXT,

    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_patients_name ON patients(last_name, first_name);

CREATE TABLE IF NOT EXISTS patient_change_log (
    id TEXT PRIMARY KEY,
    patient_id TEXT NOT NULL,
    field_name TEXT NOT NULL,
    old_value TEXT,
    new_value TEXT,
    change_type TEXT NOT NULL,
    changed_at TEXT DEFAULT CURRENT_TIMESTAMP,
    changed_by TEXT,
    FOREIGN KEY (patient_id) REFERENCES patients(id)
);

CREATE INDEX IF NOT EXISTS idx_change_log_patient ON patient_change_log(patient_id);


-- =============================================================================
-- 2. TREATMENT - Admissions, appointments, SDOH screening
-- =============================================================================
CREATE TABLE IF NOT EXISTS otp_admissions (
    id TEXT PRIMARY KEY,
    patient_id TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'active',
    medication TEXT,
    admission_date TEXT NOT NULL,
    discharge_date TEXT,
    FOREIGN KEY (patient_id) REFERENCES patients(id)
);

CREATE INDEX IF NOT EXISTS idx_admissions_date ON otp_admissions(admission_date);

CREATE TABLE IF NOT EXISTS appointments (
    id TEXT PRIMARY KEY,
    patient_id TEXT NOT NULL,
    appointment_date TEXT NOT NULL,
    appointment_type TEXT,
    status TEXT NOT NULL DEFAULT 'scheduled',
    FOREIGN KEY (patient_id) REFERENCES patients(id)
);

CREATE INDEX IF NOT EXISTS idx_appointments_date ON appointments(appointment_date);

CREATE TABLE IF NOT EXISTS patient_sdoh_scores (
    id TEXT PRIMARY KEY,
    patient_id TEXT NOT NULL,
    risk_level TEXT,
    has_housing_instability INTEGER DEFAULT 0,
    has_food_insecurity INTEGER DEFAULT 0,
    has_transportation_barrier INTEGER DEFAULT 0,
    has_employment_barrier INTEGER DEFAULT 0,
    has_social_isolation INTEGER DEFAULT 0,
    has_healthcare_access_barrier INTEGER DEFAULT 0,
    screened_at TEXT DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (patient_id) REFERENCES patients(id)
);


-- =============================================================================
-- 3. HEALTH EQUITY - Metrics, snapshots, initiatives, alerts
-- =============================================================================
CREATE TABLE IF NOT EXISTS health_equity_metrics (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    code TEXT,
    metric_type TEXT DEFAULT 'outcome',
    benchmark_value REAL,
    equity_target REAL,
    warning_threshold REAL,
    critical_threshold REAL,
    higher_is_better INTEGER DEFAULT 1,
    unit TEXT DEFAULT 'percent',
    is_active INTEGER DEFAULT 1,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS health_equity_snapshots (
    id TEXT PRIMARY KEY,
    metric_id TEXT NOT NULL,
    stratification_type TEXT NOT NULL,
    stratification_value TEXT NOT NULL,
    current_value REAL,
    population_count INTEGER,
    reference_value REAL,
    disparity_difference REAL,
    disparity_ratio REAL,
    disparity_index REAL,
    alert_level TEXT DEFAULT 'none',
    trend TEXT DEFAULT 'stable',
    meets_equity_target INTEGER,
    snapshot_date TEXT NOT NULL,
    period_start TEXT,
    period_end TEXT,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    UNIQUE (metric_id, stratification_type, stratification_value, snapshot_date),
    FOREIGN KEY (metric_id) REFERENCES health_equity_metrics(id)
);

CREATE INDEX IF NOT EXISTS idx_snapshots_date ON health_equity_snapshots(snapshot_date);

CREATE TABLE IF NOT EXISTS health_equity_initiatives (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    description TEXT,
    initiative_type TEXT,
    target_demographic_type TEXT,
    target_demographic_value TEXT,
    status TEXT NOT NULL DEFAULT 'planning',
    start_date TEXT,
    end_date TEXT,
    participants_enrolled INTEGER DEFAULT 0,
    participants_completed INTEGER DEFAULT 0,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS health_equity_alerts (
    id TEXT PRIMARY KEY,
    metric_id TEXT,
    title TEXT NOT NULL,
    message TEXT,
    severity TEXT DEFAULT 'warning',
    status TEXT NOT NULL DEFAULT 'active',
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);


-- =============================================================================
-- 4. BILLING - Orders, doses, payers, coverage, claims, prior auth
-- =============================================================================
CREATE TABLE IF NOT EXISTS medication_orders (
    id TEXT PRIMARY KEY,
    patient_id TEXT NOT NULL,
    daily_dose_mg REAL,
    max_takehome INTEGER DEFAULT 0,
    status TEXT NOT NULL DEFAULT 'active',
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (patient_id) REFERENCES patients(id)
);

CREATE TABLE IF NOT EXISTS dose_events (
    id TEXT PRIMARY KEY,
    patient_id TEXT NOT NULL,
    time TEXT NOT NULL,
    outcome TEXT NOT NULL,
    FOREIGN KEY (patient_id) REFERENCES patients(id)
);

CREATE TABLE IF NOT EXISTS insurance_payers (
    id TEXT PRIMARY KEY,
    payer_name TEXT NOT NULL,
    payer_id TEXT,
    contact_name TEXT,
    contact_phone TEXT,
    contact_email TEXT,
    billing_address TEXT,
    electronic_payer_id TEXT,
    claim_submission_method TEXT,
    prior_auth_required INTEGER DEFAULT 0,
    network_type TEXT,
    is_active INTEGER DEFAULT 1,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS patient_insurance (
    id TEXT PRIMARY KEY,
    patient_id TEXT NOT NULL,
    payer_id TEXT NOT NULL,
    policy_number TEXT,
    group_number TEXT,
    subscriber_name TEXT,
    relationship_to_subscriber TEXT,
    effective_date TEXT,
    termination_date TEXT,
    copay_amount REAL,
    deductible_amount REAL,
    priority_order INTEGER DEFAULT 1,
    is_active INTEGER DEFAULT 1,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (patient_id) REFERENCES patients(id),
    FOREIGN KEY (payer_id) REFERENCES insurance_payers(id)
);

CREATE TABLE IF NOT EXISTS insurance_claims (
    id TEXT PRIMARY KEY,
    claim_number TEXT,
    patient_id TEXT NOT NULL,
    payer_id TEXT,
    claim_status TEXT NOT NULL DEFAULT 'pending',
    total_charges REAL DEFAULT 0,
    service_date TEXT,
    submission_date TEXT,
    notes TEXT,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (patient_id) REFERENCES patients(id)
);

CREATE TABLE IF NOT EXISTS eligibility_requests (
    id TEXT PRIMARY KEY,
    patient_id TEXT NOT NULL,
    payer_id TEXT,
    patient_insurance_id TEXT,
    request_type TEXT DEFAULT 'eligibility',
    request_status TEXT,
    eligibility_status TEXT,
    requested_at TEXT,
    responded_at TEXT,
    coverage_details TEXT,
    copay_amount REAL,
    deductible_amount REAL,
    deductible_remaining REAL,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS prior_auth_requests (
    id TEXT PRIMARY KEY,
    patient_name TEXT NOT NULL,
    payer_name TEXT,
    service TEXT NOT NULL,
    diagnosis TEXT,
    justification TEXT,
    urgency TEXT DEFAULT 'routine',
    requested_units INTEGER,
    approved_units INTEGER,
    status TEXT NOT NULL DEFAULT 'pending',
    auth_number TEXT,
    valid_from TEXT,
    valid_to TEXT,
    denial_reason TEXT,
    appeal_deadline TEXT,
    submitted_date TEXT,
    response_date TEXT
);


-- =============================================================================
-- 5. LAB & CLINICAL - Orders, results, vitals, diagnoses
-- =============================================================================
CREATE TABLE IF NOT EXISTS lab_orders (
    id TEXT PRIMARY KEY,
    patient_id TEXT NOT NULL,
    provider_id TEXT,
    lab_name TEXT,
    lab_npi TEXT,
    test_names TEXT,
    test_codes TEXT,
    priority TEXT DEFAULT 'routine',
    specimen_type TEXT,
    collection_method TEXT,
    collection_date TEXT,
    notes TEXT,
    status TEXT NOT NULL DEFAULT 'pending',
    order_date TEXT,
    updated_at TEXT,
    FOREIGN KEY (patient_id) REFERENCES patients(id)
);

CREATE TABLE IF NOT EXISTS lab_results (
    id TEXT PRIMARY KEY,
    patient_id TEXT NOT NULL,
    lab_order_id TEXT,
    test_name TEXT,
    test_code TEXT,
    result_value TEXT,
    reference_range TEXT,
    units TEXT,
    abnormal_flag TEXT,
    result_date TEXT,
    status TEXT DEFAULT 'final',
    notes TEXT,
    updated_at TEXT,
    FOREIGN KEY (patient_id) REFERENCES patients(id)
);

CREATE TABLE IF NOT EXISTS vital_signs (
    id TEXT PRIMARY KEY,
    patient_id TEXT NOT NULL,
    measurement_date TEXT NOT NULL,
    systolic_bp REAL,
    diastolic_bp REAL,
    heart_rate REAL,
    temperature REAL,
    weight REAL,
    FOREIGN KEY (patient_id) REFERENCES patients(id)
);

CREATE TABLE IF NOT EXISTS assessments (
    id TEXT PRIMARY KEY,
    patient_id TEXT NOT NULL,
    diagnosis_codes TEXT,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (patient_id) REFERENCES patients(id)
);


-- =============================================================================
-- 6. PMP - Prescription monitoring lookups
-- =============================================================================
CREATE TABLE IF NOT EXISTS pdmp_config (
    id TEXT PRIMARY KEY,
    state_code TEXT,
    is_active INTEGER DEFAULT 0
);

CREATE TABLE IF NOT EXISTS pdmp_requests (
    id TEXT PRIMARY KEY,
    patient_id TEXT,
    request_type TEXT,
    request_status TEXT,
    state_requested TEXT,
    request_date TEXT NOT NULL,
    response_date TEXT,
    pdmp_report TEXT,
    alert_level TEXT,
    red_flags TEXT,
    reviewed_at TEXT,
    notes TEXT
);

CREATE TABLE IF NOT EXISTS pdmp_prescriptions (
    id TEXT PRIMARY KEY,
    pdmp_request_id TEXT NOT NULL,
    medication_name TEXT,
    fill_date TEXT,
    quantity INTEGER,
    days_supply INTEGER,
    prescriber_name TEXT,
    prescriber_npi TEXT,
    pharmacy_name TEXT,
    pharmacy_npi TEXT,
    dea_schedule TEXT,
    morphine_equivalent_dose REAL,
    FOREIGN KEY (pdmp_request_id) REFERENCES pdmp_requests(id)
);

CREATE TABLE IF NOT EXISTS patient_medications (
    id TEXT PRIMARY KEY,
    patient_id TEXT NOT NULL,
    medication_name TEXT,
    medication_type TEXT,
    status TEXT DEFAULT 'active'
);

CREATE TABLE IF NOT EXISTS clinical_alerts (
    id TEXT PRIMARY KEY,
    patient_id TEXT,
    alert_type TEXT,
    severity TEXT,
    alert_message TEXT,
    status TEXT DEFAULT 'open',
    triggered_by TEXT,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS audit_trail (
    id TEXT PRIMARY KEY,
    table_name TEXT,
    action TEXT NOT NULL,
    record_id TEXT,
    new_values TEXT,
    timestamp TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_audit_action ON audit_trail(action);


-- =============================================================================
-- 7. DIVERSION CONTROL - Take-home bottles, geofences, biometrics
-- =============================================================================
CREATE TABLE IF NOT EXISTS takehome_bottles (
    id TEXT PRIMARY KEY,
    bottle_number TEXT NOT NULL,
    patient_id TEXT NOT NULL,
    qr_code_hash TEXT NOT NULL UNIQUE,
    medication_name TEXT,
    dose_amount TEXT,
    quantity REAL,
    dispensed_date TEXT,
    dosing_window_start TEXT DEFAULT '06:00:00',
    dosing_window_end TEXT DEFAULT '11:00:00',
    status TEXT NOT NULL DEFAULT 'dispensed',
    consumed_at TEXT,
    consumption_location_lat REAL,
    consumption_location_lng REAL,
    consumption_gps_accuracy REAL,
    consumption_verified INTEGER,
    facial_biometric_verified INTEGER,
    facial_biometric_confidence REAL,
    seal_photo_url TEXT,
    seal_intact_confirmed INTEGER,
    compliance_status TEXT,
    non_compliance_reason TEXT,
    FOREIGN KEY (patient_id) REFERENCES patients(id)
);

CREATE TABLE IF NOT EXISTS patient_home_addresses (
    id TEXT PRIMARY KEY,
    patient_id TEXT NOT NULL,
    address_line1 TEXT NOT NULL,
    address_line2 TEXT,
    city TEXT NOT NULL,
    state TEXT NOT NULL,
    zip_code TEXT NOT NULL,
    address_type TEXT DEFAULT 'home',
    latitude REAL,
    longitude REAL,
    geofence_radius_meters REAL DEFAULT 150,
    verification_method TEXT,
    is_primary INTEGER DEFAULT 0,
    is_active INTEGER DEFAULT 1,
    is_verified INTEGER DEFAULT 0,
    verified_at TEXT,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (patient_id) REFERENCES patients(id)
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_home_address_primary
    ON patient_home_addresses(patient_id) WHERE is_primary = 1;

CREATE TABLE IF NOT EXISTS takehome_location_exceptions (
    id TEXT PRIMARY KEY,
    patient_id TEXT NOT NULL,
    exception_type TEXT DEFAULT 'travel',
    reason TEXT,
    start_date TEXT NOT NULL,
    end_date TEXT NOT NULL,
    temporary_address TEXT,
    temporary_latitude REAL,
    temporary_longitude REAL,
    temporary_geofence_radius_meters REAL DEFAULT 500,
    requested_by TEXT,
    status TEXT NOT NULL DEFAULT 'pending',
    reviewed_at TEXT,
    reviewed_by TEXT,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (patient_id) REFERENCES patients(id)
);

CREATE TABLE IF NOT EXISTS patient_biometric_enrollment (
    id TEXT PRIMARY KEY,
    patient_id TEXT NOT NULL,
    facial_enrolled_at TEXT,
    enrollment_location TEXT,
    match_threshold_percentage REAL DEFAULT 85,
    consent_signed INTEGER NOT NULL DEFAULT 0,
    consent_signed_at TEXT,
    is_active INTEGER DEFAULT 1,
    FOREIGN KEY (patient_id) REFERENCES patients(id)
);

CREATE TABLE IF NOT EXISTS takehome_scan_log (
    id TEXT PRIMARY KEY,
    bottle_id TEXT NOT NULL,
    patient_id TEXT NOT NULL,
    scan_type TEXT DEFAULT 'consumption',
    scan_timestamp TEXT NOT NULL,
    gps_latitude REAL,
    gps_longitude REAL,
    gps_accuracy_meters REAL,
    address_resolved TEXT,
    is_within_home_geofence INTEGER,
    distance_from_home_meters REAL,
    registered_home_id TEXT,
    is_within_dosing_window INTEGER,
    minutes_outside_window INTEGER,
    facial_scan_attempted INTEGER,
    facial_scan_successful INTEGER,
    facial_match_percentage REAL,
    liveness_check_passed INTEGER,
    device_id TEXT,
    device_type TEXT,
    device_model TEXT,
    app_version TEXT,
    ip_address TEXT,
    verification_passed INTEGER,
    verification_failures TEXT,
    seal_photo_url TEXT,
    seal_verified INTEGER,
    FOREIGN KEY (bottle_id) REFERENCES takehome_bottles(id)
);

CREATE TABLE IF NOT EXISTS takehome_compliance_alerts (
    id TEXT PRIMARY KEY,
    patient_id TEXT,
    bottle_id TEXT,
    scan_log_id TEXT,
    alert_type TEXT NOT NULL,
    severity TEXT NOT NULL,
    alert_title TEXT,
    alert_description TEXT,
    expected_location TEXT,
    actual_location TEXT,
    distance_violation_meters REAL,
    expected_time_window TEXT,
    actual_time TEXT,
    minutes_outside_window INTEGER,
    callback_required INTEGER DEFAULT 0,
    callback_within_hours INTEGER,
    clinical_review_required INTEGER DEFAULT 0,
    dea_reportable INTEGER DEFAULT 0,
    status TEXT NOT NULL DEFAULT 'open',
    resolution_notes TEXT,
    resolved_at TEXT,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS patient_diversion_risk_scores (
    id TEXT PRIMARY KEY,
    patient_id TEXT NOT NULL,
    risk_score REAL NOT NULL CHECK (risk_score >= 0 AND risk_score <= 100),
    risk_level TEXT,
    risk_factors TEXT,
    assessment_date TEXT NOT NULL,
    FOREIGN KEY (patient_id) REFERENCES patients(id)
);

CREATE TABLE IF NOT EXISTS dea_diversion_reports (
    id TEXT PRIMARY KEY,
    event_type TEXT NOT NULL,
    event_data TEXT,
    reported_at TEXT NOT NULL,
    sync_status TEXT DEFAULT 'synced'
);


-- =============================================================================
-- 8. FACILITY SAFETY - Hazard alerts, staff, compliance reports
-- =============================================================================
CREATE TABLE IF NOT EXISTS facility_alerts (
    id TEXT PRIMARY KEY,
    alert_type TEXT,
    priority TEXT,
    message TEXT,
    affected_areas TEXT,
    acknowledged_by TEXT,
    is_active INTEGER DEFAULT 1,
    created_by TEXT,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS staff (
    id TEXT PRIMARY KEY,
    first_name TEXT,
    last_name TEXT,
    role TEXT,
    department TEXT,
    license_expiry TEXT,
    is_active INTEGER DEFAULT 1
);

CREATE TABLE IF NOT EXISTS compliance_reports (
    id TEXT PRIMARY KEY,
    report_type TEXT,
    title TEXT,
    status TEXT,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);


-- =============================================================================
-- 9. OFF-SITE DOSING - Partner facilities, medication kits, administrations
-- =============================================================================
CREATE TABLE IF NOT EXISTS offsite_locations (
    id TEXT PRIMARY KEY,
    facility_name TEXT NOT NULL,
    facility_type TEXT,
    city TEXT,
    state TEXT,
    contact_person_name TEXT,
    phone TEXT,
    status TEXT DEFAULT 'active'
);

CREATE TABLE IF NOT EXISTS offsite_kits (
    id TEXT PRIMARY KEY,
    kit_number TEXT NOT NULL,
    patient_id TEXT NOT NULL,
    location_id TEXT NOT NULL,
    medication TEXT,
    number_of_bottles INTEGER DEFAULT 7,
    start_date TEXT,
    end_date TEXT,
    kit_status TEXT NOT NULL DEFAULT 'preparing',
    doses_administered INTEGER DEFAULT 0,
    doses_remaining INTEGER DEFAULT 0,
    transported_by TEXT,
    departed_at TEXT,
    FOREIGN KEY (patient_id) REFERENCES patients(id),
    FOREIGN KEY (location_id) REFERENCES offsite_locations(id)
);

CREATE TABLE IF NOT EXISTS offsite_administrations (
    id TEXT PRIMARY KEY,
    kit_id TEXT NOT NULL,
    patient_id TEXT NOT NULL,
    location_id TEXT NOT NULL,
    medication TEXT,
    scheduled_time TEXT NOT NULL,
    administered_at TEXT,
    administered_by TEXT,
    status TEXT NOT NULL DEFAULT 'pending',
    notes TEXT,
    FOREIGN KEY (kit_id) REFERENCES offsite_kits(id)
);


-- =============================================================================
-- 10. VACCINATIONS - Records, inventory, schedules, registry, adverse events
-- =============================================================================
CREATE TABLE IF NOT EXISTS vaccinations (
    id TEXT PRIMARY KEY,
    patient_id TEXT NOT NULL,
    vaccine_name TEXT NOT NULL,
    vaccine_code TEXT,
    manufacturer TEXT,
    lot_number TEXT,
    expiration_date TEXT,
    dose_number INTEGER DEFAULT 1,
    total_doses_in_series INTEGER DEFAULT 1,
    administration_date TEXT NOT NULL,
    administration_site TEXT,
    route TEXT,
    administered_by TEXT,
    vis_given INTEGER DEFAULT 1,
    funding_source TEXT,
    reported_to_registry INTEGER DEFAULT 0,
    registry_report_date TEXT,
    adverse_event INTEGER DEFAULT 0,
    adverse_event_details TEXT,
    notes TEXT,
    FOREIGN KEY (patient_id) REFERENCES patients(id)
);

CREATE TABLE IF NOT EXISTS vaccine_inventory (
    id TEXT PRIMARY KEY,
    vaccine_name TEXT NOT NULL,
    vaccine_code TEXT,
    manufacturer TEXT,
    lot_number TEXT NOT NULL,
    ndc_number TEXT,
    expiration_date TEXT,
    quantity_received INTEGER NOT NULL DEFAULT 0,
    quantity_remaining INTEGER NOT NULL DEFAULT 0 CHECK (quantity_remaining >= 0),
    quantity_administered INTEGER NOT NULL DEFAULT 0,
    quantity_wasted INTEGER NOT NULL DEFAULT 0,
    storage_location TEXT,
    vfc_eligible INTEGER DEFAULT 0,
    status TEXT DEFAULT 'active'
);

CREATE TABLE IF NOT EXISTS vaccination_schedules (
    id TEXT PRIMARY KEY,
    vaccine_name TEXT NOT NULL,
    vaccine_code TEXT,
    age_group TEXT,
    dose_number INTEGER,
    total_doses INTEGER,
    recommended_age_months INTEGER,
    interval_from_previous_dose_days INTEGER,
    acip_recommendation TEXT,
    is_required INTEGER DEFAULT 0,
    is_active INTEGER DEFAULT 1
);

CREATE TABLE IF NOT EXISTS immunization_registry_submissions (
    id TEXT PRIMARY KEY,
    vaccination_id TEXT NOT NULL,
    registry_name TEXT,
    submission_type TEXT,
    submission_status TEXT,
    submission_date TEXT,
    FOREIGN KEY (vaccination_id) REFERENCES vaccinations(id)
);

CREATE TABLE IF NOT EXISTS vaccine_adverse_events (
    id TEXT PRIMARY KEY,
    vaccination_id TEXT NOT NULL,
    patient_id TEXT NOT NULL,
    event_description TEXT NOT NULL,
    onset_date TEXT,
    severity TEXT,
    treatment_provided TEXT,
    reported_to_vaers INTEGER DEFAULT 0,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (vaccination_id) REFERENCES vaccinations(id)
);


-- =============================================================================
-- 11. IT SUPPORT - Client organizations, tickets, remote sessions
-- =============================================================================
CREATE TABLE IF NOT EXISTS organizations (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    subscription_tier TEXT,
    active_users INTEGER DEFAULT 0,
    last_activity TEXT,
    status TEXT DEFAULT 'online'
);

CREATE TABLE IF NOT EXISTS support_tickets (
    id TEXT PRIMARY KEY,
    ticket_number TEXT NOT NULL UNIQUE,
    organization_id TEXT,
    organization_name TEXT,
    contact_name TEXT,
    contact_email TEXT,
    contact_phone TEXT,
    subject TEXT NOT NULL,
    description TEXT,
    category TEXT DEFAULT 'technical',
    priority TEXT DEFAULT 'medium',
    status TEXT NOT NULL DEFAULT 'open',
    assigned_to TEXT,
    remote_session_id TEXT,
    created_at TEXT,
    updated_at TEXT,
    resolved_at TEXT,
    response_time INTEGER,
    resolution_time INTEGER
);

CREATE TABLE IF NOT EXISTS remote_sessions (
    id TEXT PRIMARY KEY,
    ticket_id TEXT,
    organization_id TEXT,
    client_user_name TEXT,
    support_agent_name TEXT,
    session_type TEXT DEFAULT 'view_only',
    status TEXT NOT NULL DEFAULT 'requesting',
    started_at TEXT,
    ended_at TEXT,
    duration INTEGER DEFAULT 0,
    recording INTEGER DEFAULT 0,
    FOREIGN KEY (ticket_id) REFERENCES support_tickets(id)
);

CREATE TABLE IF NOT EXISTS session_messages (
    id TEXT PRIMARY KEY,
    session_id TEXT NOT NULL,
    sender_name TEXT,
    sender_role TEXT,
    message TEXT NOT NULL,
    message_type TEXT DEFAULT 'text',
    timestamp TEXT NOT NULL,
    FOREIGN KEY (session_id) REFERENCES remote_sessions(id)
);
"""
