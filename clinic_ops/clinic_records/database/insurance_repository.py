"""Insurance repository: payers, patient coverage, eligibility checks and prior authorizations."""

import json
import uuid
from dataclasses import dataclass, asdict
from datetime import datetime, date, timedelta

from .connection import get_connection


@dataclass
class Payer:
    id: str
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
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class PatientInsurance:
    id: str
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
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class PriorAuth:
    id: str
    patient_name: str
    service: str
    diagnosis: str | None = None
    justification: str | None = None
    urgency: str = "routine"
    payer_name: str | None = None
    requested_units: int | None = None
    approved_units: int | None = None
    status: str = "pending"
    auth_number: str | None = None
    valid_from: str | None = None
    valid_to: str | None = None
    denial_reason: str | None = None
    appeal_deadline: str | None = None
    submitted_date: str | None = None
    response_date: str | None = None


APPEAL_WINDOW_DAYS = 30


class InsuranceRepository:
    """Repository for payers, coverage, eligibility and prior authorization."""

    PAYER_FIELDS = [
        "payer_name", "payer_id", "contact_name", "contact_phone", "contact_email",
        "billing_address", "electronic_payer_id", "claim_submission_method",
        "prior_auth_required", "network_type", "is_active",
    ]

    COVERAGE_FIELDS = [
        "payer_id", "policy_number", "group_number", "subscriber_name",
        "relationship_to_subscriber", "effective_date", "termination_date",
        "copay_amount", "deductible_amount", "priority_order", "is_active",
    ]

    # Payers

    def list_payers(self) -> list[Payer]:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM insurance_payers ORDER BY payer_name")
        rows = cursor.fetchall()
        conn.close()
        return [self._row_to_payer(row) for row in rows]

    def get_payer(self, payer_id: str) -> Payer | None:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM insurance_payers WHERE id = ?", (payer_id,))
        row = cursor.fetchone()
        conn.close()
        return self._row_to_payer(row) if row else None

    def create_payer(self, payer: Payer) -> Payer:
        conn = get_connection()
        cursor = conn.cursor()
        payer.id = payer.id or str(uuid.uuid4())
        now = datetime.now().isoformat()
        cursor.execute("""
            INSERT INTO insurance_payers (
                id, payer_name, payer_id, contact_name, contact_phone, contact_email,
                billing_address, electronic_payer_id, claim_submission_method,
                prior_auth_required, network_type, is_active, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            payer.id, payer.payer_name, payer.payer_id, payer.contact_name,
            payer.contact_phone, payer.contact_email, payer.billing_address,
            payer.electronic_payer_id, payer.claim_submission_method,
            int(payer.prior_auth_required), payer.network_type, int(payer.is_active), now, now
        ))
        conn.commit()
        conn.close()
        payer.created_at = now
        payer.updated_at = now
        return payer

    def update_payer(self, payer_id: str, updates: dict) -> Payer | None:
        self._update("insurance_payers", payer_id, updates, self.PAYER_FIELDS)
        return self.get_payer(payer_id)

    def delete_payer(self, payer_id: str) -> bool:
        return self._delete("insurance_payers", payer_id)

    # Patient coverage

    def list_coverage(self) -> list[dict]:
        """All patient insurance rows with patient and payer names, newest first."""
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("""
            SELECT pi.*, p.first_name, p.last_name, p.date_of_birth,
                   ip.payer_name, ip.network_type
            FROM patient_insurance pi
            LEFT JOIN patients p ON p.id = pi.patient_id
            LEFT JOIN insurance_payers ip ON ip.id = pi.payer_id
            ORDER BY pi.created_at DESC
        """)
        rows = cursor.fetchall()
        conn.close()
        return [self._coverage_row(row) for row in rows]

    def list_active_coverage(self) -> list[dict]:
        return [c for c in self.list_coverage() if c["is_active"]]

    def get_coverage(self, coverage_id: str) -> PatientInsurance | None:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM patient_insurance WHERE id = ?", (coverage_id,))
        row = cursor.fetchone()
        conn.close()
        return self._row_to_coverage(row) if row else None

    def create_coverage(self, coverage: PatientInsurance) -> PatientInsurance:
        conn = get_connection()
        cursor = conn.cursor()
        coverage.id = coverage.id or str(uuid.uuid4())
        now = datetime.now().isoformat()
        cursor.execute("""
            INSERT INTO patient_insurance (
                id, patient_id, payer_id, policy_number, group_number, subscriber_name,
                relationship_to_subscriber, effective_date, termination_date,
                copay_amount, deductible_amount, priority_order, is_active,
                created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            coverage.id, coverage.patient_id, coverage.payer_id, coverage.policy_number,
            coverage.group_number, coverage.subscriber_name,
            coverage.relationship_to_subscriber, coverage.effective_date,
            coverage.termination_date, coverage.copay_amount, coverage.deductible_amount,
            coverage.priority_order, int(coverage.is_active), now, now
        ))
        conn.commit()
        conn.close()
        coverage.created_at = now
        coverage.updated_at = now
        return coverage

    def update_coverage(self, coverage_id: str, updates: dict) -> PatientInsurance | None:
        self._update("patient_insurance", coverage_id, updates, self.COVERAGE_FIELDS)
        return self.get_coverage(coverage_id)

    def delete_coverage(self, coverage_id: str) -> bool:
        return self._delete("patient_insurance", coverage_id)

    # Eligibility

    def record_eligibility_check(
        self,
        patient_id: str,
        payer_id: str | None = None,
        patient_insurance_id: str | None = None,
        coverage_details: dict | None = None,
        copay_amount: float | None = None,
        deductible_amount: float | None = None,
        deductible_remaining: float | None = None,
    ) -> dict:
        """Store a completed eligibility check with an active result."""
        conn = get_connection()
        cursor = conn.cursor()
        request_id = str(uuid.uuid4())
        now = datetime.now().isoformat()
        cursor.execute("""
            INSERT INTO eligibility_requests (
                id, patient_id, payer_id, patient_insurance_id, request_type,
                request_status, eligibility_status, requested_at, responded_at,
                coverage_details, copay_amount, deductible_amount, deductible_remaining,
                created_at
            ) VALUES (?, ?, ?, ?, 'eligibility', 'completed', 'active', ?, ?, ?, ?, ?, ?, ?)
        """, (
            request_id, patient_id, payer_id, patient_insurance_id, now, now,
            json.dumps(coverage_details or {}), copay_amount, deductible_amount,
            deductible_remaining, now
        ))
        conn.commit()
        cursor.execute("SELECT * FROM eligibility_requests WHERE id = ?", (request_id,))
        row = cursor.fetchone()
        conn.close()
        return self._eligibility_row(row)

    def list_eligibility_checks(self, limit: int = 20) -> list[dict]:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("""
            SELECT e.*, p.first_name, p.last_name, ip.payer_name
            FROM eligibility_requests e
            LEFT JOIN patients p ON p.id = e.patient_id
            LEFT JOIN insurance_payers ip ON ip.id = e.payer_id
            ORDER BY e.created_at DESC
            LIMIT ?
        """, (limit,))
        rows = cursor.fetchall()
        conn.close()
        return [self._eligibility_row(row) for row in rows]

    # Overview

    def get_overview_metrics(self) -> dict:
        conn = get_connection()
        cursor = conn.cursor()

        cursor.execute("SELECT COUNT(*) FROM insurance_payers WHERE is_active = 1")
        active_payers = cursor.fetchone()[0]

        cursor.execute("SELECT COUNT(DISTINCT patient_id) FROM patient_insurance WHERE is_active = 1")
        patients_with_coverage = cursor.fetchone()[0]

        cursor.execute("SELECT COUNT(*) FROM patients")
        total_patients = cursor.fetchone()[0]

        cursor.execute(
            "SELECT COUNT(*) FROM eligibility_requests WHERE created_at >= ?",
            (date.today().isoformat(),)
        )
        today_checks = cursor.fetchone()[0]

        cursor.execute("SELECT COUNT(*) FROM prior_auth_requests WHERE status = 'pending'")
        pending_auths = cursor.fetchone()[0]
        conn.close()

        coverage_rate = f"{patients_with_coverage / total_patients * 100:.1f}" if total_patients else "0"

        return {
            "active_payers": active_payers,
            "patients_with_coverage": patients_with_coverage,
            "coverage_rate": coverage_rate,
            "today_eligibility_checks": today_checks,
            "pending_prior_auths": pending_auths,
        }

    # Prior authorizations

    def list_prior_auths(self, status: str | None = None) -> list[PriorAuth]:
        conn = get_connection()
        cursor = conn.cursor()
        if status:
            cursor.execute(
                "SELECT * FROM prior_auth_requests WHERE status = ? ORDER BY submitted_date DESC",
                (status,)
            )
        else:
            cursor.execute("SELECT * FROM prior_auth_requests ORDER BY submitted_date DESC")
        rows = cursor.fetchall()
        conn.close()
        return [self._row_to_prior_auth(row) for row in rows]

    def get_prior_auth(self, auth_id: str) -> PriorAuth | None:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM prior_auth_requests WHERE id = ?", (auth_id,))
        row = cursor.fetchone()
        conn.close()
        return self._row_to_prior_auth(row) if row else None

    def create_prior_auth(self, auth: PriorAuth) -> PriorAuth:
        conn = get_connection()
        cursor = conn.cursor()
        auth.id = auth.id or str(uuid.uuid4())
        auth.status = "pending"
        auth.submitted_date = auth.submitted_date or datetime.now().isoformat()
        cursor.execute("""
            INSERT INTO prior_auth_requests (
                id, patient_name, payer_name, service, diagnosis, justification,
                urgency, requested_units, status, submitted_date
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            auth.id, auth.patient_name, auth.payer_name, auth.service, auth.diagnosis,
            auth.justification, auth.urgency, auth.requested_units, auth.status,
            auth.submitted_date
        ))
        conn.commit()
        conn.close()
        return auth

    def approve_prior_auth(
        self,
        auth_id: str,
        auth_number: str,
        approved_units: int | None = None,
        valid_from: str | None = None,
        valid_to: str | None = None,
    ) -> PriorAuth | None:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("""
            UPDATE prior_auth_requests
            SET status = 'approved', auth_number = ?, approved_units = ?,
                valid_from = ?, valid_to = ?, response_date = ?
            WHERE id = ?
        """, (auth_number, approved_units, valid_from, valid_to, datetime.now().isoformat(), auth_id))
        conn.commit()
        conn.close()
        return self.get_prior_auth(auth_id)

    def deny_prior_auth(self, auth_id: str, denial_reason: str) -> PriorAuth | None:
        conn = get_connection()
        cursor = conn.cursor()
        now = datetime.now()
        appeal_deadline = (now.date() + timedelta(days=APPEAL_WINDOW_DAYS)).isoformat()
        cursor.execute("""
            UPDATE prior_auth_requests
            SET status = 'denied', denial_reason = ?, appeal_deadline = ?, response_date = ?
            WHERE id = ?
        """, (denial_reason, appeal_deadline, now.isoformat(), auth_id))
        conn.commit()
        conn.close()
        return self.get_prior_auth(auth_id)

    def expire_prior_auths(self, as_of: str | None = None) -> int:
        """Mark approved authorizations whose validity window has ended as expired."""
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("""
            UPDATE prior_auth_requests SET status = 'expired'
            WHERE status = 'approved' AND valid_to IS NOT NULL AND valid_to < ?
        """, (as_of or date.today().isoformat(),))
        expired = cursor.rowcount
        conn.commit()
        conn.close()
        return expired

    # Private helpers

    def _update(self, table: str, record_id: str, updates: dict, allowed: list[str]) -> None:
        valid_updates = {k: v for k, v in updates.items() if k in allowed}
        if not valid_updates:
            return
        for key in ("is_active", "prior_auth_required"):
            if key in valid_updates and valid_updates[key] is not None:
                valid_updates[key] = int(valid_updates[key])

        conn = get_connection()
        cursor = conn.cursor()
        set_clause = ", ".join(f"{field} = ?" for field in valid_updates)
        set_clause += ", updated_at = ?"
        values = list(valid_updates.values()) + [datetime.now().isoformat(), record_id]
        cursor.execute(f"UPDATE {table} SET {set_clause} WHERE id = ?", values)
        conn.commit()
        conn.close()

    def _delete(self, table: str, record_id: str) -> bool:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute(f"DELETE FROM {table} WHERE id = ?", (record_id,))
        deleted = cursor.rowcount > 0
        conn.commit()
        conn.close()
        return deleted

    def _row_to_payer(self, row) -> Payer:
        return Payer(
            id=row["id"],
            payer_name=row["payer_name"],
            payer_id=row["payer_id"],
            contact_name=row["contact_name"],
            contact_phone=row["contact_phone"],
            contact_email=row["contact_email"],
            billing_address=row["billing_address"],
            electronic_payer_id=row["electronic_payer_id"],
            claim_submission_method=row["claim_submission_method"],
            prior_auth_required=bool(row["prior_auth_required"]),
            network_type=row["network_type"],
            is_active=bool(row["is_active"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def _row_to_coverage(self, row) -> PatientInsurance:
        return PatientInsurance(
            id=row["id"],
            patient_id=row["patient_id"],
            payer_id=row["payer_id"],
            policy_number=row["policy_number"],
            group_number=row["group_number"],
            subscriber_name=row["subscriber_name"],
            relationship_to_subscriber=row["relationship_to_subscriber"],
            effective_date=row["effective_date"],
            termination_date=row["termination_date"],
            copay_amount=row["copay_amount"],
            deductible_amount=row["deductible_amount"],
            priority_order=row["priority_order"],
            is_active=bool(row["is_active"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def _coverage_row(self, row) -> dict:
        data = asdict(self._row_to_coverage(row))
        data["patient_name"] = f"{row['first_name']} {row['last_name']}" if row["first_name"] else "Unknown"
        data["date_of_birth"] = row["date_of_birth"]
        data["payer_name"] = row["payer_name"]
        data["network_type"] = row["network_type"]
        return data

    def _eligibility_row(self, row) -> dict:
        data = dict(row)
        data["coverage_details"] = json.loads(data["coverage_details"]) if data.get("coverage_details") else {}
        return data

    def _row_to_prior_auth(self, row) -> PriorAuth:
        return PriorAuth(
            id=row["id"],
            patient_name=row["patient_name"],
            service=row["service"],
            diagnosis=row["diagnosis"],
            justification=row["justification"],
            urgency=row["urgency"],
            payer_name=row["payer_name"],
            requested_units=row["requested_units"],
            approved_units=row["approved_units"],
            status=row["status"],
            auth_number=row["auth_number"],
            valid_from=row["valid_from"],
            valid_to=row["valid_to"],
            denial_reason=row["denial_reason"],
            appeal_deadline=row["appeal_deadline"],
            submitted_date=row["submitted_date"],
            response_date=row["response_date"],
        )
