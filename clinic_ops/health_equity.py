"""
Health equity calculations.

Stratifies treatment outcomes (90-day retention, MAT initiation, appointment
no-shows) by patient demographics, measures each group's disparity from a
reference group, and groups persisted snapshot rows back into per-metric
outcomes for the dashboard.
"""

import csv
import io
import math
from dataclasses import dataclass, field, asdict
from datetime import date, timedelta
from enum import Enum

from clinic_ops import llm
from clinic_ops.clinic_records.database import EquityRepository


class StratificationType(Enum):
    RACE = "race"
    ETHNICITY = "ethnicity"
    GENDER = "gender"
    AGE_GROUP = "age_group"
    INSURANCE_TYPE = "insurance_type"
    GEOGRAPHY = "geography"
    LANGUAGE = "language"
    SDOH_RISK_LEVEL = "sdoh_risk_level"


class AlertLevel(Enum):
    NONE = "none"
    WARNING = "warning"
    CRITICAL = "critical"


class TrendDirection(Enum):
    IMPROVING = "improving"
    WORSENING = "worsening"
    STABLE = "stable"
    INSUFFICIENT_DATA = "insufficient_data"


DEFAULT_STRATIFICATIONS = ["race", "ethnicity", "insurance_type", "geography"]

# Column on the joined patient row for each stratification
DEMOGRAPHIC_FIELDS = {
    "race": "race",
    "ethnicity": "ethnicity",
    "gender": "gender",
    "age_group": "date_of_birth",
    "insurance_type": "insurance_type",
    "geography": "rural_urban_code",
    "language": "preferred_language",
    "sdoh_risk_level": "sdoh_risk_level",
}

# Preferred reference groups, matched case-insensitively
REFERENCE_GROUPS = {
    "race": ["White"],
    "ethnicity": ["Non-Hispanic/Latino", "Non-Hispanic", "non_hispanic"],
    "insurance_type": ["Commercial", "Commercial HMO", "Commercial PPO"],
    "geography": ["Urban", "Suburban"],
    "language": ["English"],
}

MAT_MEDICATIONS = [
    "methadone", "buprenorphine", "suboxone", "subutex",
    "sublocade", "naltrexone", "vivitrol", "zubsolv",
]

SDOH_DOMAINS = [
    ("has_housing_instability", "housing_instability", "Housing Instability"),
    ("has_food_insecurity", "food_insecurity", "Food Insecurity"),
    ("has_transportation_barrier", "transportation_barrier", "Transportation Barrier"),
    ("has_employment_barrier", "employment_barrier", "Employment Barrier"),
    ("has_social_isolation", "social_isolation", "Social Isolation"),
    ("has_healthcare_access_barrier", "healthcare_access_barrier", "Healthcare Access Barrier"),
]

SDOH_RISK_LEVELS = ["low", "moderate", "high", "very_high"]

REPORT_WINDOWS = {"monthly": 1, "quarterly": 3, "annual": 12}


@dataclass
class DisparityResult:
    group_name: str
    value: float
    population_count: int
    disparity_from_reference: float
    disparity_ratio: float
    disparity_index: float
    alert_level: str
    is_statistically_significant: bool


@dataclass
class StratifiedOutcome:
    metric_id: str
    metric_name: str
    metric_code: str | None
    stratification_type: str
    groups: list[dict] = field(default_factory=list)
    reference_group: str = "Unknown"
    reference_value: float = 0
    benchmark_value: float | None = None
    equity_target: float | None = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class OutcomeMetric:
    """How one outcome is computed from its source records."""
    code: str
    name: str
    default_reference: float
    min_group_size: int
    warning_threshold: float
    critical_threshold: float
    significance_threshold: float
    higher_is_better: bool = True


RETENTION = OutcomeMetric("HE_RET90", "Treatment Retention (90-day)", 75.0, 5, 10, 20, 5)
MAT_INITIATION = OutcomeMetric("HE_MAT_INIT", "MAT Initiation Rate", 85.0, 5, 10, 15, 5)
NO_SHOW = OutcomeMetric("HE_NOSHOW", "Appointment No-Show Rate", 10.0, 10, 5, 15, 3, higher_is_better=False)

EQUITY_TARGET = 5


# =============================================================================
# Helpers
# =============================================================================

def round_half_up(value: float, places: int = 1) -> float:
    """Round with halves going up, the way the dashboard has always displayed rates."""
    factor = 10 ** places
    return math.floor(value * factor + 0.5) / factor


def months_before(day: date, months: int) -> date:
    """Same day of month, ``months`` earlier, clamped to the end of shorter months."""
    month_index = day.year * 12 + (day.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    next_month = date(year + month // 12, month % 12 + 1, 1)
    last_day = (next_month - timedelta(days=1)).day
    return date(year, month, min(day.day, last_day))


def age_group(date_of_birth: str | None, today: date | None = None) -> str:
    if not date_of_birth:
        return "Unknown"
    try:
        born = date.fromisoformat(date_of_birth[:10])
    except ValueError:
        return "Unknown"
    today = today or date.today()
    age = today.year - born.year - ((today.month, today.day) < (born.month, born.day))
    if age < 18:
        return "Under 18"
    if age <= 25:
        return "18-25"
    if age <= 35:
        return "26-35"
    if age <= 45:
        return "36-45"
    if age <= 55:
        return "46-55"
    if age <= 65:
        return "56-65"
    return "65+"


def demographic_value(record: dict, stratification_type: str) -> str:
    """Group name for a record carrying patient demographic columns."""
    column = DEMOGRAPHIC_FIELDS[stratification_type]
    if stratification_type == "age_group":
        return age_group(record.get(column))
    return record.get(column) or "Unknown"


def find_reference_group(groups: list[str], stratification_type: str) -> str:
    """Pick the conventional reference group, else the first group, else Unknown."""
    for preferred in REFERENCE_GROUPS.get(stratification_type, []):
        for group in groups:
            if group.lower() == preferred.lower():
                return group
    return groups[0] if groups else "Unknown"


def calculate_disparity_index(value: float, reference: float, higher_is_better: bool) -> float:
    """Percent difference from the reference, signed so that negative means worse."""
    if reference == 0:
        return 0
    index = (value - reference) / reference * 100
    return round_half_up(index if higher_is_better else -index, 2)


def get_alert_level(disparity: float, warning_threshold: float, critical_threshold: float) -> str:
    if disparity >= critical_threshold:
        return AlertLevel.CRITICAL.value
    if disparity >= warning_threshold:
        return AlertLevel.WARNING.value
    return AlertLevel.NONE.value


def is_mat(medication: str | None) -> bool:
    if not medication:
        return False
    medication = medication.lower()
    return any(name in medication for name in MAT_MEDICATIONS)


def is_retained(admission: dict) -> bool:
    """Active, or discharged at least 90 days after admission."""
    if admission.get("status") == "active":
        return True
    if admission.get("discharge_date"):
        admitted = date.fromisoformat(admission["admission_date"][:10])
        discharged = date.fromisoformat(admission["discharge_date"][:10])
        return (discharged - admitted).days >= 90
    return False


def _default_window(start_date: str | None, end_date: str | None, months: int) -> tuple[str, str]:
    end = end_date or date.today().isoformat()
    start = start_date or months_before(date.fromisoformat(end[:10]), months).isoformat()
    return start, end


def stratify(
    records: list[dict],
    stratification_type: str,
    is_success,
    metric: OutcomeMetric,
) -> list[DisparityResult]:
    """
    Rate of ``is_success`` per demographic group with disparity from the reference group.

    Groups smaller than the metric's minimum size are dropped. Results are
    sorted worst first.
    """
    groups: dict[str, dict] = {}
    for record in records:
        name = demographic_value(record, stratification_type)
        counts = groups.setdefault(name, {"total": 0, "hits": 0})
        counts["total"] += 1
        if is_success(record):
            counts["hits"] += 1

    reference_group = find_reference_group(list(groups), stratification_type)
    reference = groups.get(reference_group)
    if reference and reference["total"] > 0:
        reference_rate = reference["hits"] / reference["total"] * 100
    else:
        reference_rate = metric.default_reference

    results = []
    for name, counts in groups.items():
        if counts["total"] < metric.min_group_size:
            continue

        rate = counts["hits"] / counts["total"] * 100
        disparity = rate - reference_rate
        ratio = rate / reference_rate if reference_rate > 0 else 1

        results.append(DisparityResult(
            group_name=name,
            value=round_half_up(rate, 1),
            population_count=counts["total"],
            disparity_from_reference=round_half_up(disparity, 1),
            disparity_ratio=round_half_up(ratio, 2),
            disparity_index=calculate_disparity_index(rate, reference_rate, metric.higher_is_better),
            alert_level=get_alert_level(abs(disparity), metric.warning_threshold, metric.critical_threshold),
            is_statistically_significant=counts["total"] >= 30 and abs(disparity) > metric.significance_threshold,
        ))

    # Lowest retention/initiation first; highest no-show first
    results.sort(key=lambda r: r.disparity_from_reference, reverse=not metric.higher_is_better)
    return results


# =============================================================================
# Outcome calculators
# =============================================================================

def calculate_retention_by_demographic(
    stratification_type: str,
    start_date: str | None = None,
    end_date: str | None = None,
    repo: EquityRepository | None = None,
) -> list[DisparityResult]:
    """90-day treatment retention per group over admissions (default last 6 months)."""
    if stratification_type not in DEMOGRAPHIC_FIELDS:
        return []
    repo = repo or EquityRepository()
    start, end = _default_window(start_date, end_date, 6)
    admissions = repo.get_admissions(start, end)
    return stratify(admissions, stratification_type, is_retained, RETENTION)


def calculate_mat_initiation_by_demographic(
    stratification_type: str,
    start_date: str | None = None,
    end_date: str | None = None,
    repo: EquityRepository | None = None,
) -> list[DisparityResult]:
    """Share of admissions started on a MAT medication per group."""
    if stratification_type not in DEMOGRAPHIC_FIELDS:
        return []
    repo = repo or EquityRepository()
    start, end = _default_window(start_date, end_date, 6)
    admissions = repo.get_admissions(start, end)
    return stratify(admissions, stratification_type, lambda a: is_mat(a.get("medication")), MAT_INITIATION)


def calculate_no_show_by_demographic(
    stratification_type: str,
    start_date: str | None = None,
    end_date: str | None = None,
    repo: EquityRepository | None = None,
) -> list[DisparityResult]:
    """No-show rate per group over closed-out appointments (default last 3 months)."""
    if stratification_type not in DEMOGRAPHIC_FIELDS:
        return []
    repo = repo or EquityRepository()
    start, end = _default_window(start_date, end_date, 3)
    appointments = repo.get_appointments(start, end, ["completed", "no-show", "cancelled"])
    return stratify(appointments, stratification_type, lambda a: a["status"] == "no-show", NO_SHOW)


OUTCOME_CALCULATORS = [
    (RETENTION, calculate_retention_by_demographic),
    (MAT_INITIATION, calculate_mat_initiation_by_demographic),
    (NO_SHOW, calculate_no_show_by_demographic),
]


def get_all_stratified_outcomes(
    stratification_types: list[str] | None = None,
    repo: EquityRepository | None = None,
) -> list[StratifiedOutcome]:
    """Compute every outcome metric for every requested stratification."""
    repo = repo or EquityRepository()
    outcomes = []

    for stratification_type in stratification_types or DEFAULT_STRATIFICATIONS:
        for metric, calculate in OUTCOME_CALCULATORS:
            results = calculate(stratification_type, repo=repo)
            if not results:
                continue

            reference_group = find_reference_group([r.group_name for r in results], stratification_type)
            # A zero reference falls back to the benchmark
            reference_value = next(
                (r.value for r in results if r.group_name == reference_group),
                None,
            ) or metric.default_reference

            outcomes.append(StratifiedOutcome(
                metric_id=metric.code,
                metric_name=metric.name,
                metric_code=metric.code,
                stratification_type=stratification_type,
                groups=[
                    {
                        "group_name": r.group_name,
                        "value": r.value,
                        "population_count": r.population_count,
                        "disparity_from_reference": r.disparity_from_reference,
                        "disparity_ratio": r.disparity_ratio,
                        "alert_level": r.alert_level,
                        "trend": TrendDirection.STABLE.value,
                    }
                    for r in results
                ],
                reference_group=reference_group,
                reference_value=reference_value,
                benchmark_value=metric.default_reference,
                equity_target=EQUITY_TARGET,
            ))

    return outcomes


def group_snapshot_outcomes(rows: list[dict]) -> list[StratifiedOutcome]:
    """
    Group flat snapshot rows into one outcome per (metric_id, stratification_type).

    Each row carries its metric under ``metric`` (name, code, benchmark_value,
    equity_target); buckets whose first row has no metric are skipped. The
    reference row is the first with zero disparity, else the first row.
    Buckets are emitted in order of first appearance.
    """
    buckets: dict[tuple, list[dict]] = {}
    for row in rows:
        key = (row.get("metric_id"), row.get("stratification_type"))
        buckets.setdefault(key, []).append(row)

    outcomes = []
    for (metric_id, stratification_type), bucket in buckets.items():
        metric = bucket[0].get("metric")
        if not metric:
            continue

        reference = next((r for r in bucket if r.get("disparity_difference") == 0), bucket[0])

        outcomes.append(StratifiedOutcome(
            metric_id=metric_id,
            metric_name=metric.get("name"),
            metric_code=metric.get("code"),
            stratification_type=stratification_type,
            groups=[
                {
                    "group_name": r.get("stratification_value"),
                    "value": r.get("current_value"),
                    "population_count": r.get("population_count") or 0,
                    "disparity_from_reference": r.get("disparity_difference") or 0,
                    "disparity_ratio": r.get("disparity_ratio") or 1,
                    "alert_level": r.get("alert_level") or AlertLevel.NONE.value,
                    "trend": r.get("trend") or TrendDirection.STABLE.value,
                }
                for r in bucket
            ],
            reference_group=reference.get("stratification_value") or "Unknown",
            reference_value=reference.get("current_value") or 0,
            benchmark_value=metric.get("benchmark_value"),
            equity_target=metric.get("equity_target"),
        ))

    return outcomes


# =============================================================================
# Dashboard
# =============================================================================

def empty_sdoh_summary() -> dict:
    return {
        "total_patients_screened": 0,
        "screening_rate": 0,
        "risk_distribution": {level: 0 for level in SDOH_RISK_LEVELS},
        "domain_prevalence": {key: 0 for _, key, _ in SDOH_DOMAINS},
        "sdoh_outcome_correlation": [],
    }


def _group_retention(patient_ids: set[str], admissions: list[dict]) -> float:
    patient_admissions = [a for a in admissions if a["patient_id"] in patient_ids]
    if not patient_admissions:
        return 0
    retained = sum(1 for a in patient_admissions if is_retained(a))
    return retained / len(patient_admissions) * 100


def calculate_sdoh_impact(scores: list[dict], admissions: list[dict]) -> list[dict]:
    """Retention gap between patients with and without each SDOH barrier."""
    if not scores:
        return []

    correlations = []
    for flag, key, label in SDOH_DOMAINS:
        with_barrier = {s["patient_id"] for s in scores if s.get(flag)}
        without_barrier = {s["patient_id"] for s in scores if not s.get(flag)}

        prevalence = len(with_barrier) / len(scores) * 100
        impact = _group_retention(with_barrier, admissions) - _group_retention(without_barrier, admissions)

        correlations.append({
            "domain": flag,
            "domain_label": label,
            "prevalence": round_half_up(prevalence, 1),
            "retention_impact": round_half_up(impact, 1),
            "outcome_correlation": round_half_up(impact / 10, 0) / 10,
        })

    return sorted(correlations, key=lambda c: c["retention_impact"])


def get_sdoh_summary(repo: EquityRepository | None = None) -> dict:
    """Screening coverage, risk distribution and barrier prevalence."""
    repo = repo or EquityRepository()
    scores = repo.get_sdoh_scores()
    total_patients = repo.count_patients()
    screened = len(scores)

    summary = empty_sdoh_summary()
    summary["total_patients_screened"] = screened
    summary["screening_rate"] = round_half_up(screened / total_patients * 100, 1) if total_patients else 0

    for score in scores:
        if score.get("risk_level") in summary["risk_distribution"]:
            summary["risk_distribution"][score["risk_level"]] += 1

    if screened:
        for flag, key, _ in SDOH_DOMAINS:
            count = sum(1 for s in scores if s.get(flag))
            summary["domain_prevalence"][key] = round_half_up(count / screened * 100, 1)

    summary["sdoh_outcome_correlation"] = calculate_sdoh_impact(scores, repo.get_all_admissions())
    return summary


def get_dashboard_summary(repo: EquityRepository | None = None) -> dict:
    """Headline counts from today's snapshots plus active alerts and initiatives."""
    repo = repo or EquityRepository()
    snapshots = repo.list_snapshots(snapshot_date=date.today().isoformat())
    initiatives = repo.list_initiatives(status="active")
    alerts = repo.list_active_alerts(limit=10)

    flagged = [s for s in snapshots if s.get("alert_level") in ("critical", "warning")]
    average_index = (
        sum(abs(s.get("disparity_index") or 0) for s in snapshots) / len(snapshots)
        if snapshots else 0
    )

    return {
        "summary": {
            "total_metrics": len({s["metric_id"] for s in snapshots}),
            "metrics_with_disparities": len(flagged),
            "critical_disparities": sum(1 for s in snapshots if s.get("alert_level") == "critical"),
            "warning_disparities": sum(1 for s in snapshots if s.get("alert_level") == "warning"),
            "active_initiatives": len(initiatives),
            "populations_at_risk": len({f"{s['stratification_type']}:{s['stratification_value']}" for s in flagged}),
            "average_disparity_index": round_half_up(average_index, 2),
        },
        "alerts": alerts,
        "initiatives": initiatives,
    }


def get_dashboard_data(
    stratification_types: list[str] | None = None,
    include_snapshots: bool = True,
    include_sdoh: bool = True,
    include_initiatives: bool = True,
    repo: EquityRepository | None = None,
) -> dict:
    """Full dashboard payload, falling back to persisted snapshots when nothing computes."""
    repo = repo or EquityRepository()
    dashboard = get_dashboard_summary(repo)

    disparities: list[StratifiedOutcome] = []
    if include_snapshots:
        disparities = get_all_stratified_outcomes(stratification_types, repo)
        if not disparities:
            disparities = group_snapshot_outcomes(repo.list_snapshots())

    return {
        "success": True,
        "summary": dashboard["summary"],
        "disparities": [d.to_dict() for d in disparities],
        "sdoh_summary": get_sdoh_summary(repo) if include_sdoh else empty_sdoh_summary(),
        "alerts": dashboard["alerts"],
        "initiatives": dashboard["initiatives"] if include_initiatives else [],
    }


def calculate_snapshots(
    metric_ids: list[str] | None = None,
    stratification_types: list[str] | None = None,
    repo: EquityRepository | None = None,
) -> dict:
    """Recompute outcomes and store today's snapshot for every group of a known metric."""
    repo = repo or EquityRepository()
    metrics = repo.get_active_metrics(metric_ids)
    outcomes = get_all_stratified_outcomes(stratification_types, repo)

    today = date.today()
    snapshot_date = today.isoformat()
    period_start = months_before(today, 1).isoformat()

    snapshots = []
    for outcome in outcomes:
        metric = next(
            (m for m in metrics if m.code == outcome.metric_code or m.id == outcome.metric_id),
            None,
        )
        if not metric:
            continue

        equity_target = outcome.equity_target or EQUITY_TARGET
        for group in outcome.groups:
            snapshots.append({
                "metric_id": metric.id,
                "stratification_type": outcome.stratification_type,
                "stratification_value": group["group_name"],
                "current_value": group["value"],
                "population_count": group["population_count"],
                "reference_value": outcome.reference_value,
                "disparity_difference": group["disparity_from_reference"],
                "disparity_ratio": group["disparity_ratio"],
                "disparity_index": calculate_disparity_index(
                    group["value"], outcome.reference_value, metric.higher_is_better
                ),
                "alert_level": group["alert_level"],
                "trend": group["trend"],
                "meets_equity_target": abs(group["disparity_from_reference"]) <= equity_target,
                "snapshot_date": snapshot_date,
                "period_start": period_start,
                "period_end": snapshot_date,
            })

    created = repo.upsert_snapshots(snapshots) if snapshots else 0
    return {
        "success": True,
        "message": "Health equity snapshots calculated successfully",
        "snapshots_created": created,
        "outcomes_processed": len(outcomes),
    }


# =============================================================================
# Reports
# =============================================================================

def report_period(
    report_type: str,
    start_date: str | None = None,
    end_date: str | None = None,
) -> tuple[str, str]:
    end = date.fromisoformat(end_date[:10]) if end_date else date.today()
    if start_date:
        return start_date[:10], end.isoformat()
    months = REPORT_WINDOWS.get(report_type, 1)
    return months_before(end, months).isoformat(), end.isoformat()


def _disparity_entry(snapshot: dict) -> dict:
    metric = snapshot.get("metric") or {}
    return {
        "metric": metric.get("name"),
        "group": snapshot.get("stratification_value"),
        "disparity": snapshot.get("disparity_difference"),
        "value": snapshot.get("current_value"),
    }


def _key_findings(report: dict) -> list[str]:
    findings = []
    summary = report["disparity_summary"]

    for d in summary["critical_disparities"][:3]:
        disparity = d["disparity"] or 0
        direction = "lower" if disparity < 0 else "higher"
        metric = (d["metric"] or "outcome").lower()
        findings.append(
            f"{d['group']} patients show {abs(disparity)}% {direction} {metric} compared to reference group"
        )

    sdoh = report.get("sdoh_analysis")
    if sdoh:
        if sdoh["screened"]:
            pct = round_half_up(sdoh["high_risk_count"] / sdoh["screened"] * 100, 0)
            findings.append(f"{int(pct)}% of screened patients have high or very high SDOH risk scores")
        prevalence = sdoh["summary"]["domain_prevalence"]
        if prevalence:
            domain, value = max(prevalence.items(), key=lambda item: item[1])
            findings.append(f"{domain.replace('_', ' ')} is the most prevalent SDOH barrier at {value}%")

    initiatives = report.get("initiatives")
    if initiatives and initiatives["active"] > 0:
        findings.append(f"{initiatives['active']} active equity initiatives are addressing identified disparities")

    return findings


def _recommendations(report: dict) -> list[str]:
    recommendations = []
    summary = report["disparity_summary"]

    groups = list(dict.fromkeys(d["group"] for d in summary["critical_disparities"]))
    for group in groups[:2]:
        recommendations.append(f"Implement targeted interventions for {group} patients to reduce identified disparities")

    sdoh = report.get("sdoh_analysis")
    if sdoh:
        screening_rate = sdoh["summary"]["screening_rate"]
        if screening_rate < 80:
            recommendations.append(
                f"Increase SDOH screening rate from current {screening_rate}% to meet 80% CCBHC target"
            )
        prevalence = sdoh["summary"]["domain_prevalence"]
        if prevalence.get("transportation_barrier", 0) > 20:
            recommendations.append(
                "Expand telehealth services to address transportation barriers affecting "
                f"{prevalence['transportation_barrier']}% of patients"
            )
        if prevalence.get("housing_instability", 0) > 15:
            recommendations.append(
                "Partner with housing assistance programs to address housing instability affecting "
                f"{prevalence['housing_instability']}% of patients"
            )

    recommendations.append("Continue monitoring disparity trends monthly and adjust interventions as needed")
    recommendations.append("Engage community health workers to address SDOH barriers in high-risk populations")
    return recommendations[:5]


def _executive_summary(report: dict) -> str:
    summary = report["disparity_summary"]
    parts = [
        f"This report analyzes health equity across {summary['total_metrics_tracked']} key metrics "
        f"and {summary['total_groups_tracked']} demographic groups."
    ]
    if summary["critical_count"]:
        parts.append(f"CRITICAL: {summary['critical_count']} significant disparities require immediate attention.")
    if summary["warning_count"]:
        parts.append(f"{summary['warning_count']} metrics show warning-level disparities that need monitoring.")
    parts.append(f"The average disparity across all groups is {summary['average_disparity']}%.")
    parts.append(f"{summary['at_target_count']} groups currently meet equity targets.")
    if report.get("initiatives"):
        parts.append(f"{report['initiatives']['active']} equity improvement initiatives are currently active.")
    return " ".join(parts)


def build_equity_report(
    report_type: str = "monthly",
    start_date: str | None = None,
    end_date: str | None = None,
    stratification_types: list[str] | None = None,
    include_sdoh: bool = True,
    include_initiatives: bool = True,
    include_narrative: bool = False,
    repo: EquityRepository | None = None,
) -> dict:
    """Assemble a health equity report for a monthly, quarterly, annual or custom period."""
    repo = repo or EquityRepository()
    start, end = report_period(report_type, start_date, end_date)

    outcomes = get_all_stratified_outcomes(stratification_types, repo)
    snapshots = repo.list_snapshots(start_date=start, end_date=end)

    critical = [s for s in snapshots if s.get("alert_level") == "critical"]
    warning = [s for s in snapshots if s.get("alert_level") == "warning"]
    average_disparity = (
        sum(abs(s.get("disparity_difference") or 0) for s in snapshots) / len(snapshots)
        if snapshots else 0
    )

    report = {
        "success": True,
        "report_type": report_type,
        "period": {"start": start, "end": end},
        "disparity_summary": {
            "total_metrics_tracked": len({s["metric_id"] for s in snapshots}),
            "total_groups_tracked": len(snapshots),
            "critical_count": len(critical),
            "warning_count": len(warning),
            "at_target_count": sum(1 for s in snapshots if s.get("meets_equity_target")),
            "average_disparity": round_half_up(average_disparity, 1),
            "critical_disparities": [_disparity_entry(s) for s in critical],
            "warning_disparities": [_disparity_entry(s) for s in warning[:10]],
        },
        "stratified_outcomes": [o.to_dict() for o in outcomes],
        "snapshots": snapshots,
    }

    if include_sdoh:
        scores = repo.get_sdoh_scores()
        report["sdoh_analysis"] = {
            "summary": get_sdoh_summary(repo),
            "screened": len(scores),
            "high_risk_count": sum(1 for s in scores if s.get("risk_level") in ("high", "very_high")),
        }

    if include_initiatives:
        initiatives = repo.list_initiatives()
        report["initiatives"] = {
            "total": len(initiatives),
            "active": sum(1 for i in initiatives if i["status"] == "active"),
            "completed": sum(1 for i in initiatives if i["status"] == "completed"),
            "details": initiatives,
        }

    report["executive_summary"] = _executive_summary(report)
    report["key_findings"] = _key_findings(report)
    report["recommendations"] = _recommendations(report)

    if include_narrative:
        report["narrative"] = llm.generate_report_narrative({
            "period": report["period"],
            "disparity_summary": report["disparity_summary"],
            "key_findings": report["key_findings"],
            "recommendations": report["recommendations"],
        })

    return report


def report_to_csv(report: dict) -> str:
    """Render the report's summary, critical disparities, outcomes and SDOH tables as CSV."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    summary = report["disparity_summary"]

    writer.writerow(["Health Equity Report"])
    writer.writerow([])

    writer.writerow(["Disparity Summary"])
    writer.writerow(["Metric", "Total Metrics", "Critical", "Warning", "At Target", "Average Disparity"])
    writer.writerow([
        "Summary", summary["total_metrics_tracked"], summary["critical_count"],
        summary["warning_count"], summary["at_target_count"], f"{summary['average_disparity']}%",
    ])
    writer.writerow([])

    writer.writerow(["Critical Disparities"])
    writer.writerow(["Metric", "Group", "Value", "Disparity"])
    for d in summary["critical_disparities"]:
        writer.writerow([d["metric"], d["group"], f"{d['value']}%", f"{d['disparity']}%"])
    writer.writerow([])

    writer.writerow(["Stratified Outcomes"])
    writer.writerow(["Metric", "Stratification", "Group", "Value", "Reference", "Disparity", "Alert Level"])
    for outcome in report["stratified_outcomes"]:
        for group in outcome["groups"]:
            writer.writerow([
                outcome["metric_name"], outcome["stratification_type"], group["group_name"],
                f"{group['value']}%", f"{outcome['reference_value']}%",
                f"{group['disparity_from_reference']}%", group["alert_level"],
            ])

    sdoh = report.get("sdoh_analysis")
    if sdoh:
        writer.writerow([])
        writer.writerow(["SDOH Analysis"])
        writer.writerow(["Domain", "Prevalence (%)"])
        for domain, value in sdoh["summary"]["domain_prevalence"].items():
            writer.writerow([domain.replace("_", " "), f"{value}%"])
        writer.writerow([])
        writer.writerow(["SDOH Risk Distribution"])
        writer.writerow(["Risk Level", "Count"])
        for level, count in sdoh["summary"]["risk_distribution"].items():
            writer.writerow([level, count])

    return buffer.getvalue()
