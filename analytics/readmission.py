# flowsight/analytics/readmission.py
#
# Readmission Risk Engine
# Rule-based, weighted scoring of each discharged patient's readmission risk.
# Factors, weights and level cut-offs come from `ReadmissionThresholds`; the
# recommended actions are a fixed catalogue keyed by factor.

import logging
from datetime import timedelta
from typing import Dict, Iterable, List, Optional

try:
    from config.settings import settings, ReadmissionThresholds
    from data_processing.helpers import days_between, dedupe_preserving_order
    from .journeys import stage_waits
    from .models import AdmissionRecord, Journey, ReadmissionTrend, RiskFactor, RiskLevel, RiskScore
except ImportError as e:
    logging.basicConfig(level="CRITICAL")
    logging.critical(f"FATAL ERROR in readmission.py: A core dependency is missing. {e}", exc_info=True)
    raise

logger = logging.getLogger(__name__)

SHORT_STAY = "Short Length of Stay"
EXTENDED_STAY = "Extended Length of Stay"
OPERATIONAL_DELAYS = "Operational Delays"
MULTIPLE_TRANSFERS = "Multiple Unit Transfers"
RECENT_VISITS = "Recent Hospital Visits"
WEEKEND_DISCHARGE = "Weekend Discharge"

HIGH_RISK_ACTIONS = [
    "Schedule follow-up appointment within 48-72 hours of discharge",
    "Arrange home health care visit within first week",
]

ACTION_CATALOGUE: Dict[str, List[str]] = {
    SHORT_STAY: [
        "Ensure comprehensive discharge planning and patient education",
        "Verify patient understanding of medications and care instructions",
    ],
    EXTENDED_STAY: [
        "Coordinate with specialist for complex care management",
        "Establish clear post-discharge care plan with primary care provider",
    ],
    OPERATIONAL_DELAYS: [
        "Review care coordination to reduce treatment gaps",
        "Ensure all pending test results are reviewed before discharge",
    ],
    MULTIPLE_TRANSFERS: [
        "Assign care coordinator for transition management",
        "Conduct comprehensive medication reconciliation",
    ],
    RECENT_VISITS: [
        "Evaluate for chronic disease management program enrollment",
        "Consider palliative care consultation if appropriate",
    ],
    WEEKEND_DISCHARGE: [
        "Ensure 24/7 contact information provided to patient",
        "Schedule next-day follow-up call to assess patient status",
    ],
}


def classify_risk_level(score: float, cfg: ReadmissionThresholds) -> RiskLevel:
    if score >= cfg.critical_score:
        return RiskLevel.CRITICAL
    if score >= cfg.high_score:
        return RiskLevel.HIGH
    if score >= cfg.medium_score:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def _operational_delay_weight(avg_wait: float, cfg: ReadmissionThresholds) -> int:
    for threshold, weight in cfg.wait_tiers:
        if avg_wait > threshold:
            return int(weight)
    return 0


def recommend_actions(factors: List[RiskFactor], level: RiskLevel, cfg: ReadmissionThresholds) -> List[str]:
    """Catalogue lookup by triggered factor, deduplicated and capped."""
    actions: List[str] = []
    if level in (RiskLevel.HIGH, RiskLevel.CRITICAL):
        actions.extend(HIGH_RISK_ACTIONS)
    for factor in factors:
        actions.extend(ACTION_CATALOGUE.get(factor.name, []))
    return dedupe_preserving_order(actions)[:cfg.max_actions]


def score_readmission_risk(
    admission: AdmissionRecord,
    journey: Optional[Journey] = None,
    history: Iterable[AdmissionRecord] = (),
    thresholds: Optional[ReadmissionThresholds] = None
) -> RiskScore:
    """
    Scores one admission's readmission risk.

    Args:
        admission: The admission being scored.
        journey: The patient's reconstructed journey, used for waits and transfers.
        history: Other admissions; those of the same patient starting within the
            history window before this admission add to the score.
        thresholds: Scoring weights; defaults to settings.

    Returns:
        A RiskScore with factors sorted by weight, heaviest first.
    """
    cfg = thresholds or settings.thresholds.readmission
    factors: List[RiskFactor] = []

    # --- Length of stay ---
    los = days_between(admission.admission_date, admission.discharge_date) if admission.discharge_date else 0.0
    if los > 0:
        if los < cfg.short_los_days:
            factors.append(RiskFactor(
                name=SHORT_STAY, weight=cfg.short_los_weight,
                description=f"LOS of {los:.1f} days indicates potential premature discharge",
            ))
        elif los > cfg.long_los_days:
            factors.append(RiskFactor(
                name=EXTENDED_STAY, weight=cfg.long_los_weight,
                description=f"LOS of {los:.1f} days suggests complex medical needs",
            ))

    # --- Operational delays & transfers ---
    delay_weight = 0
    high_risk_units: List[str] = []
    if journey is not None and journey.stages:
        waits = stage_waits(journey)
        delay_weight = _operational_delay_weight(sum(waits) / len(waits), cfg)
        if delay_weight:
            factors.append(RiskFactor(
                name=OPERATIONAL_DELAYS, weight=delay_weight,
                description="Significant wait times may indicate rushed care or incomplete treatment",
            ))
        if len(journey.stages) > cfg.max_transfers:
            factors.append(RiskFactor(
                name=MULTIPLE_TRANSFERS, weight=cfg.transfers_weight,
                description=f"{len(journey.stages)} transfers increase coordination complexity",
            ))
        high_risk_units = dedupe_preserving_order(
            stage.unit for stage, wait in zip(journey.stages, waits)
            if wait > cfg.high_risk_unit_wait_minutes
        )

    # --- Prior admissions ---
    recent = [
        prior for prior in history
        if prior.patient_id == admission.patient_id
        and prior.record_id != admission.record_id
        and 0 < days_between(prior.admission_date, admission.admission_date) < cfg.history_window_days
    ]
    if recent:
        factors.append(RiskFactor(
            name=RECENT_VISITS,
            weight=min(cfg.history_weight_cap, len(recent) * cfg.history_weight_per_visit),
            description=f"{len(recent)} visits in last {cfg.history_window_days} days indicates ongoing health issues",
        ))

    # --- Weekend discharge ---
    if admission.discharge_date and admission.discharge_date.weekday() in cfg.weekend_weekdays:
        factors.append(RiskFactor(
            name=WEEKEND_DISCHARGE, weight=cfg.weekend_weight,
            description="Limited follow-up care availability increases readmission risk",
        ))

    score = sum(f.weight for f in factors)
    level = classify_risk_level(score, cfg)
    factors.sort(key=lambda f: f.weight, reverse=True)
    anchor = admission.discharge_date or admission.admission_date

    return RiskScore(
        patient_id=admission.patient_id,
        record_id=admission.record_id,
        score=score,
        risk_level=level,
        factors=factors,
        estimated_readmission_date=(anchor + timedelta(days=cfg.recurrence_days[level.value])).date(),
        recommended_actions=recommend_actions(factors, level, cfg),
        delay_influence=delay_weight,
        high_risk_units=high_risk_units,
    )


def score_discharged_patients(
    admissions: List[AdmissionRecord],
    journeys: Dict[str, Journey],
    history: Optional[List[AdmissionRecord]] = None,
    thresholds: Optional[ReadmissionThresholds] = None
) -> List[RiskScore]:
    """Scores every discharged admission; `history` defaults to the admissions themselves."""
    history = admissions if history is None else history
    scores = [
        score_readmission_risk(a, journeys.get(a.patient_id), history, thresholds)
        for a in admissions if a.discharge_date is not None
    ]
    logger.info(f"Scored readmission risk for {len(scores)} discharged admissions.")
    return scores


def identify_high_risk_patients(
    admissions: List[AdmissionRecord],
    journeys: Dict[str, Journey],
    history: Optional[List[AdmissionRecord]] = None,
    thresholds: Optional[ReadmissionThresholds] = None
) -> List[RiskScore]:
    """High and critical risk scores only, highest score first."""
    scores = score_discharged_patients(admissions, journeys, history, thresholds)
    flagged = [s for s in scores if s.risk_level in (RiskLevel.HIGH, RiskLevel.CRITICAL)]
    flagged.sort(key=lambda s: s.score, reverse=True)
    return flagged


def analyze_readmission_trends(
    admissions: List[AdmissionRecord],
    journeys: Dict[str, Journey],
    history: Optional[List[AdmissionRecord]] = None,
    thresholds: Optional[ReadmissionThresholds] = None
) -> List[ReadmissionTrend]:
    """Risk-level distribution per discharge month, with the delay-driven (preventable) share."""
    cfg = thresholds or settings.thresholds.readmission
    discharged = [a for a in admissions if a.discharge_date is not None]
    scores = score_discharged_patients(discharged, journeys, history if history is not None else admissions, cfg)

    monthly: Dict[str, List[RiskScore]] = {}
    for admission, score in zip(discharged, scores):
        monthly.setdefault(admission.discharge_date.strftime("%Y-%m"), []).append(score)

    trends = []
    for period in sorted(monthly):
        period_scores = monthly[period]
        distribution = {level.value: 0 for level in RiskLevel}
        for score in period_scores:
            distribution[score.risk_level.value] += 1
        trends.append(ReadmissionTrend(
            period=period,
            total=len(period_scores),
            risk_distribution=distribution,
            preventable=sum(1 for s in period_scores if s.delay_influence > cfg.preventable_delay_influence),
        ))
    return trends
