"""Health equity repository: admissions, appointments, metrics, snapshots."""

import uuid
from dataclasses import dataclass
from datetime import datetime

from .connection import get_connection

# Demographic columns joined onto admissions and appointments
DEMOGRAPHIC_COLUMNS = """
    p.date_of_birth, p.gender, p.race, p.ethnicity, p.insurance_type,
    p.rural_urban_code, p.preferred_language,
    (
        SELECT s.risk_level FROM patient_sdoh_scores s
        WHERE s.patient_id = p.id
        ORDER BY s.screened_at DESC
        LIMIT 1
    ) AS sdoh_risk_level
"""


@dataclass
class EquityMetric:
    id: str
    name: str
    code: str | None = None
    metric_type: str = "outcome"
    benchmark_value: float | None = None
    equity_target: float | None = None
    warning_threshold: float | None = None
    critical_threshold: float | None = None
    higher_is_better: bool = True
    unit: str = "percent"
    is_active: bool = True


class EquityRepository:
    """Repository for health equity source data and persisted snapshots."""

    def get_admissions(self, start_date: str, end_date: str) -> list[dict]:
        """Get OTP admissions in a window with the patient's demographics."""
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute(f"""
            SELECT a.id, a.patient_id, a.status, a.medication,
                   a.admission_date, a.discharge_date, {DEMOGRAPHIC_COLUMNS}
            FROM otp_admissions a
            JOIN patients p ON p.id = a.patient_id
            WHERE substr(a.admission_date, 1, 10) BETWEEN ? AND ?
            ORDER BY a.admission_date
        """, (start_date, end_date))
        rows = cursor.fetchall()
        conn.close()
        return [dict(row) for row in rows]

    def get_all_admissions(self) -> list[dict]:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM otp_admissions")
        rows = cursor.fetchall()
        conn.close()
        return [dict(row) for row in rows]

    def get_appointments(self, start_date: str, end_date: str, statuses: list[str]) -> list[dict]:
        """Get appointments in a window with one of the given statuses."""
        conn = get_connection()
        cursor = conn.cursor()
        placeholders = ", ".join("?" for _ in statuses)
        cursor.execute(f"""
            SELECT a.id, a.patient_id, a.status, a.appointment_date, {DEMOGRAPHIC_COLUMNS}
            FROM appointments a
            JOIN patients p ON p.id = a.patient_id
            WHERE substr(a.appointment_date, 1, 10) BETWEEN ? AND ?
              AND a.status IN ({placeholders})
            ORDER BY a.appointment_date
        """, (start_date, end_date, *statuses))
        rows = cursor.fetchall()
        conn.close()
        return [dict(row) for row in rows]

    # Metrics

    def create_metric(self, metric: EquityMetric) -> EquityMetric:
        conn = get_connection()
        cursor = conn.cursor()
        metric.id = metric.id or str(uuid.uuid4())
        cursor.execute("""
            INSERT INTO health_equity_metrics (
                id, name, code, metric_type, benchmark_value, equity_target,
                warning_threshold, critical_threshold, higher_is_better, unit, is_active
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            metric.id, metric.name, metric.code, metric.metric_type,
            metric.benchmark_value, metric.equity_target, metric.warning_threshold,
            metric.critical_threshold, int(metric.higher_is_better), metric.unit,
            int(metric.is_active)
        ))
        conn.commit()
        conn.close()
        return metric

    def get_active_metrics(self, metric_ids: list[str] | None = None) -> list[EquityMetric]:
        """Get active metrics, optionally restricted to the given IDs or codes."""
        conn = get_connection()
        cursor = conn.cursor()

        query = "SELECT * FROM health_equity_metrics WHERE is_active = 1"
        params: list = []
        if metric_ids:
            placeholders = ", ".join("?" for _ in metric_ids)
            query += f" AND (id IN ({placeholders}) OR code IN ({placeholders}))"
            params.extend(metric_ids)
            params.extend(metric_ids)

        cursor.execute(query, params)
        rows = cursor.fetchall()
        conn.close()
        return [self._row_to_metric(row) for row in rows]

    # Snapshots

    def list_snapshots(
        self,
        snapshot_date: str | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> list[dict]:
        """
        List snapshots newest first. Each row carries a ``metric`` dict with
        the metric's name, code, benchmark and equity target, or None when
        the metric no longer exists.
        """
        conn = get_connection()
        cursor = conn.cursor()

        query = """
            SELECT s.*, m.id AS m_id, m.name AS m_name, m.code AS m_code,
                   m.benchmark_value AS m_benchmark_value,
                   m.equity_target AS m_equity_target
            FROM health_equity_snapshots s
            LEFT JOIN health_equity_metrics m ON m.id = s.metric_id
            WHERE 1 = 1
        """
        params: list = []
        if snapshot_date:
            query += " AND s.snapshot_date = ?"
            params.append(snapshot_date)
        if start_date:
            query += " AND s.snapshot_date >= ?"
            params.append(start_date)
        if end_date:
            query += " AND s.snapshot_date <= ?"
            params.append(end_date)
        query += " ORDER BY s.snapshot_date DESC, s.created_at"

        cursor.execute(query, params)
        rows = cursor.fetchall()
        conn.close()
        return [self._row_to_snapshot(row) for row in rows]

    def upsert_snapshots(self, snapshots: list[dict]) -> int:
        """Insert or replace snapshots keyed by metric, stratification, group and date."""
        conn = get_connection()
        cursor = conn.cursor()
        now = datetime.now().isoformat()

        for snap in snapshots:
            cursor.execute("""
                INSERT INTO health_equity_snapshots (
                    id, metric_id, stratification_type, stratification_value,
                    current_value, population_count, reference_value,
                    disparity_difference, disparity_ratio, disparity_index,
                    alert_level, trend, meets_equity_target, snapshot_date,
                    period_start, period_end, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (metric_id, stratification_type, stratification_value, snapshot_date)
                DO UPDATE SET
                    current_value = excluded.current_value,
                    population_count = excluded.population_count,
                    reference_value = excluded.reference_value,
                    disparity_difference = excluded.disparity_difference,
                    disparity_ratio = excluded.disparity_ratio,
                    disparity_index = excluded.disparity_index,
                    alert_level = excluded.alert_level,
                    trend = excluded.trend,
                    meets_equity_target = excluded.meets_equity_target,
                    period_start = excluded.period_start,
                    period_end = excluded.period_end
            """, (
                str(uuid.uuid4()), snap["metric_id"], snap["stratification_type"],
                snap["stratification_value"], snap.get("current_value"),
                snap.get("population_count"), snap.get("reference_value"),
                snap.get("disparity_difference"), snap.get("disparity_ratio"),
                snap.get("disparity_index"), snap.get("alert_level", "none"),
                snap.get("trend", "stable"),
                None if snap.get("meets_equity_target") is None else int(snap["meets_equity_target"]),
                snap["snapshot_date"], snap.get("period_start"), snap.get("period_end"), now
            ))

        conn.commit()
        conn.close()
        return len(snapshots)

    # Initiatives and alerts

    def create_initiative(self, title: str, status: str = "planning", **fields) -> dict:
        conn = get_connection()
        cursor = conn.cursor()
        initiative_id = str(uuid.uuid4())
        now = datetime.now().isoformat()
        cursor.execute("""
            INSERT INTO health_equity_initiatives (
                id, title, description, initiative_type, target_demographic_type,
                target_demographic_value, status, start_date, end_date, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            initiative_id, title, fields.get("description"), fields.get("initiative_type"),
            fields.get("target_demographic_type"), fields.get("target_demographic_value"),
            status, fields.get("start_date"), fields.get("end_date"), now
        ))
        conn.commit()
        conn.close()
        return {"id": initiative_id, "title": title, "status": status, "created_at": now, **fields}

    def list_initiatives(self, status: str | None = None) -> list[dict]:
        conn = get_connection()
        cursor = conn.cursor()
        if status:
            cursor.execute(
                "SELECT * FROM health_equity_initiatives WHERE status = ? ORDER BY created_at DESC",
                (status,)
            )
        else:
            cursor.execute("SELECT * FROM health_equity_initiatives ORDER BY created_at DESC")
        rows = cursor.fetchall()
        conn.close()
        return [dict(row) for row in rows]

    def create_alert(self, title: str, severity: str = "warning", **fields) -> dict:
        conn = get_connection()
        cursor = conn.cursor()
        alert_id = str(uuid.uuid4())
        now = datetime.now().isoformat()
        cursor.execute("""
            INSERT INTO health_equity_alerts (id, metric_id, title, message, severity, status, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (
            alert_id, fields.get("metric_id"), title, fields.get("message"),
            severity, fields.get("status", "active"), now
        ))
        conn.commit()
        conn.close()
        return {"id": alert_id, "title": title, "severity": severity, "created_at": now, **fields}

    def list_active_alerts(self, limit: int = 10) -> list[dict]:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("""
            SELECT * FROM health_equity_alerts
            WHERE status = 'active'
            ORDER BY created_at DESC
            LIMIT ?
        """, (limit,))
        rows = cursor.fetchall()
        conn.close()
        return [dict(row) for row in rows]

    # SDOH

    def add_sdoh_score(self, patient_id: str, risk_level: str, **domains) -> str:
        conn = get_connection()
        cursor = conn.cursor()
        score_id = str(uuid.uuid4())
        cursor.execute("""
            INSERT INTO patient_sdoh_scores (
                id, patient_id, risk_level, has_housing_instability, has_food_insecurity,
                has_transportation_barrier, has_employment_barrier, has_social_isolation,
                has_healthcare_access_barrier, screened_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            score_id, patient_id, risk_level,
            int(domains.get("has_housing_instability", False)),
            int(domains.get("has_food_insecurity", False)),
            int(domains.get("has_transportation_barrier", False)),
            int(domains.get("has_employment_barrier", False)),
            int(domains.get("has_social_isolation", False)),
            int(domains.get("has_healthcare_access_barrier", False)),
            datetime.now().isoformat()
        ))
        conn.commit()
        conn.close()
        return score_id

    def get_sdoh_scores(self) -> list[dict]:
        """Get the latest SDOH screening per patient."""
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("""
            SELECT s.* FROM patient_sdoh_scores s
            WHERE s.screened_at = (
                SELECT MAX(s2.screened_at) FROM patient_sdoh_scores s2
                WHERE s2.patient_id = s.patient_id
            )
        """)
        rows = cursor.fetchall()
        conn.close()
        return [dict(row) for row in rows]

    def count_patients(self) -> int:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("SELECT COUNT(*) FROM patients")
        count = cursor.fetchone()[0]
        conn.close()
        return count

    # Private helpers

    def _row_to_metric(self, row) -> EquityMetric:
        return EquityMetric(
            id=row["id"],
            name=row["name"],
            code=row["code"],
            metric_type=row["metric_type"],
            benchmark_value=row["benchmark_value"],
            equity_target=row["equity_target"],
            warning_threshold=row["warning_threshold"],
            critical_threshold=row["critical_threshold"],
            higher_is_better=bool(row["higher_is_better"]),
            unit=row["unit"],
            is_active=bool(row["is_active"]),
        )

    def _row_to_snapshot(self, row) -> dict:
        """Convert a joined snapshot row to a dict with a nested metric."""
        data = {key: row[key] for key in row.keys() if not key.startswith("m_")}
        if data.get("meets_equity_target") is not None:
            data["meets_equity_target"] = bool(data["meets_equity_target"])
        data["metric"] = None
        if row["m_id"] is not None:
            data["metric"] = {
                "name": row["m_name"],
                "code": row["m_code"],
                "benchmark_value": row["m_benchmark_value"],
                "equity_target": row["m_equity_target"],
            }
        return data
