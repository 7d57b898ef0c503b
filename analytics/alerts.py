# flowsight/analytics/alerts.py
#
# Operational Alerts
# Rule-based alert detection over bottleneck records and unit utilisation.
# Three detectors (bottleneck, capacity, readmission risk) each return plain
# Alert values; `collect_alerts` merges them most severe first.

import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional

try:
    from config.settings import settings, AlertThresholds
    from data_processing.helpers import round_half_up, to_naive_utc
    from .models import (
        Alert, AlertCategory, AlertMetric, AlertSeverity, BottleneckRecord, BottleneckType, UnitUtilization
    )
except ImportError as e:
    logging.basicConfig(level="CRITICAL")
    logging.critical(f"FATAL ERROR in alerts.py: A core dependency is missing. {e}", exc_info=True)
    raise

logger = logging.getLogger(__name__)

BOTTLENECK_ACTIONS = {
    BottleneckType.INVISIBLE: [
        "Conduct root cause analysis of downstream delays",
        "Review patient handoff protocols",
    ],
    BottleneckType.OBVIOUS: [
        "Immediate capacity assessment required",
        "Consider temporary staff augmentation",
        "Activate surge protocols if available",
    ],
    BottleneckType.EMERGING: [
        "Monitor trend closely for escalation",
        "Prepare contingency plans",
        "Review recent operational changes",
    ],
}
DELAY_ACTIONS = [
    "Identify specific delay causes",
    "Expedite discharge planning for ready patients",
    "Review staffing levels and skill mix",
    "Implement fast-track protocols if applicable",
]
BED_CRITICAL_ACTIONS = [
    "Activate bed management protocols",
    "Accelerate discharge process for clinically ready patients",
    "Consider transfer to alternate facilities",
    "Implement admission diversion if necessary",
    "Deploy additional resources immediately",
]
BED_WARNING_ACTIONS = [
    "Review expected discharges for next 24 hours",
    "Prepare surge capacity plans",
    "Coordinate with bed management team",
    "Monitor admission rates closely",
]
STAFF_ACTIONS = [
    "Deploy float pool staff immediately",
    "Implement mandatory breaks to prevent burnout",
    "Consider overtime authorization",
    "Review patient acuity and adjust assignments",
]
READMISSION_ACTIONS = [
    "Enhance discharge planning and patient education",
    "Implement post-discharge follow-up calls within 48 hours",
    "Coordinate care transitions with primary care",
    "Review medication reconciliation processes",
    "Consider transitional care programs",
]


def _alert_id(category: AlertCategory, unit: str, sequence: int) -> str:
    return f"{category.value}-{unit.lower().replace(' ', '-')}-{sequence}"


def _timestamp(as_of: Optional[datetime]) -> datetime:
    return to_naive_utc(as_of or datetime.now(timezone.utc))


# --- Detectors ---

def detect_bottleneck_alerts(
    bottlenecks: Iterable[BottleneckRecord],
    thresholds: Optional[AlertThresholds] = None,
    as_of: Optional[datetime] = None
) -> List[Alert]:
    """
    Raises a bottleneck alert for each high-scoring bottleneck and a
    discharge-delay alert wherever processing runs well above its median.
    """
    cfg = thresholds or settings.thresholds.alerts
    stamp = _timestamp(as_of)
    alerts: List[Alert] = []

    for bottleneck in bottlenecks:
        if bottleneck.overall_score >= cfg.bottleneck_score:
            if bottleneck.overall_score >= cfg.bottleneck_critical_score:
                severity = AlertSeverity.CRITICAL
            elif bottleneck.overall_score >= cfg.bottleneck_warning_score:
                severity = AlertSeverity.WARNING
            else:
                severity = AlertSeverity.INFO
            actions = list(BOTTLENECK_ACTIONS[bottleneck.bottleneck_type])
            if bottleneck.bottleneck_type == BottleneckType.INVISIBLE:
                actions.append(f"Coordinate with {len(bottleneck.downstream_units)} affected departments")
            alerts.append(Alert(
                alert_id=_alert_id(AlertCategory.BOTTLENECK, bottleneck.unit, len(alerts) + 1),
                severity=severity,
                category=AlertCategory.BOTTLENECK,
                unit=bottleneck.unit,
                title=f"{bottleneck.bottleneck_type.value.capitalize()} Bottleneck Detected",
                message=(
                    f"{bottleneck.unit} has an impact score of {bottleneck.overall_score:.1f} affecting "
                    f"{bottleneck.patients_affected} patients. {bottleneck.why_bottleneck}"
                ),
                timestamp=stamp,
                metric=AlertMetric(
                    current=bottleneck.overall_score, threshold=cfg.bottleneck_score, unit="impact score"
                ),
                recommended_actions=actions,
            ))

        if bottleneck.time_deviation >= cfg.time_deviation:
            alerts.append(Alert(
                alert_id=_alert_id(AlertCategory.DISCHARGE_DELAY, bottleneck.unit, len(alerts) + 1),
                severity=(
                    AlertSeverity.CRITICAL if bottleneck.time_deviation >= cfg.severe_time_deviation
                    else AlertSeverity.WARNING
                ),
                category=AlertCategory.DISCHARGE_DELAY,
                unit=bottleneck.unit,
                title="Processing Time Significantly Elevated",
                message=(
                    f"{bottleneck.unit} processing time is {bottleneck.time_deviation:.1f}% above expected, "
                    f"likely causing discharge delays for {bottleneck.patients_affected} patients."
                ),
                timestamp=stamp,
                metric=AlertMetric(
                    current=bottleneck.actual_time, threshold=bottleneck.expected_time, unit="minutes"
                ),
                recommended_actions=list(DELAY_ACTIONS),
            ))

    return alerts


def detect_capacity_alerts(
    utilization: Iterable[UnitUtilization],
    thresholds: Optional[AlertThresholds] = None,
    as_of: Optional[datetime] = None
) -> List[Alert]:
    """Bed occupancy (critical or warning) and staff overload alerts per unit."""
    cfg = thresholds or settings.thresholds.alerts
    stamp = _timestamp(as_of)
    alerts: List[Alert] = []

    for load in utilization:
        if load.bed_utilization >= cfg.bed_utilization_critical:
            alerts.append(Alert(
                alert_id=_alert_id(AlertCategory.CAPACITY, load.unit, len(alerts) + 1),
                severity=AlertSeverity.CRITICAL,
                category=AlertCategory.CAPACITY,
                unit=load.unit,
                title="Critical Bed Capacity Reached",
                message=(
                    f"{load.unit} is at {load.bed_utilization:.1f}% bed utilization. "
                    f"Immediate action required to prevent patient flow gridlock."
                ),
                timestamp=stamp,
                metric=AlertMetric(current=load.bed_utilization, threshold=cfg.bed_utilization_critical, unit="%"),
                recommended_actions=list(BED_CRITICAL_ACTIONS),
            ))
        elif load.bed_utilization >= cfg.bed_utilization_warning:
            alerts.append(Alert(
                alert_id=_alert_id(AlertCategory.CAPACITY, load.unit, len(alerts) + 1),
                severity=AlertSeverity.WARNING,
                category=AlertCategory.CAPACITY,
                unit=load.unit,
                title="High Bed Utilization",
                message=(
                    f"{load.unit} is approaching capacity at {load.bed_utilization:.1f}% bed utilization. "
                    f"Prepare for potential constraints."
                ),
                timestamp=stamp,
                metric=AlertMetric(current=load.bed_utilization, threshold=cfg.bed_utilization_warning, unit="%"),
                recommended_actions=list(BED_WARNING_ACTIONS),
            ))

        if load.staff_utilization > cfg.staff_overload_patients:
            alerts.append(Alert(
                alert_id=_alert_id(AlertCategory.CAPACITY, load.unit, len(alerts) + 1),
                severity=AlertSeverity.CRITICAL,
                category=AlertCategory.CAPACITY,
                unit=load.unit,
                title="Staff Overutilization",
                message=(
                    f"{load.unit} staff handling {load.staff_utilization:.1f} patients per staff member. "
                    f"Risk of burnout and quality issues."
                ),
                timestamp=stamp,
                metric=AlertMetric(
                    current=load.staff_utilization, threshold=cfg.staff_reference_patients, unit="patients per staff"
                ),
                recommended_actions=list(STAFF_ACTIONS),
            ))

    return alerts


def estimate_bottleneck_readmission_risk(bottleneck: BottleneckRecord, cfg: AlertThresholds) -> float:
    return (
        cfg.base_readmission_risk
        + bottleneck.actual_time / 60 * cfg.risk_per_processing_hour
        + len(bottleneck.downstream_units) * cfg.risk_per_downstream_unit
    )


def detect_readmission_risk_alerts(
    bottlenecks: Iterable[BottleneckRecord],
    thresholds: Optional[AlertThresholds] = None,
    as_of: Optional[datetime] = None
) -> List[Alert]:
    """Flags bottlenecks whose processing time and downstream reach push estimated readmission risk up."""
    cfg = thresholds or settings.thresholds.alerts
    stamp = _timestamp(as_of)
    alerts: List[Alert] = []

    for bottleneck in bottlenecks:
        risk = estimate_bottleneck_readmission_risk(bottleneck, cfg)
        if risk < cfg.readmission_risk_high:
            continue
        alerts.append(Alert(
            alert_id=_alert_id(AlertCategory.READMISSION_RISK, bottleneck.unit, len(alerts) + 1),
            severity=AlertSeverity.CRITICAL if risk >= cfg.readmission_risk_critical else AlertSeverity.WARNING,
            category=AlertCategory.READMISSION_RISK,
            unit=bottleneck.unit,
            title="Elevated Readmission Risk",
            message=(
                f"Bottleneck conditions in {bottleneck.unit} creating {risk:.1f}% estimated readmission risk "
                f"due to prolonged processing times and care coordination issues."
            ),
            timestamp=stamp,
            metric=AlertMetric(current=round_half_up(risk, 1), threshold=cfg.readmission_risk_high, unit="% risk"),
            recommended_actions=list(READMISSION_ACTIONS),
        ))

    return alerts


def collect_alerts(
    bottlenecks: Iterable[BottleneckRecord],
    utilization: Iterable[UnitUtilization],
    thresholds: Optional[AlertThresholds] = None,
    as_of: Optional[datetime] = None
) -> List[Alert]:
    """
    Runs every detector and returns their alerts, critical first. Alerts of
    equal severity keep detector order (bottleneck, capacity, readmission).
    """
    bottlenecks = list(bottlenecks)
    stamp = _timestamp(as_of)
    alerts = (
        detect_bottleneck_alerts(bottlenecks, thresholds, stamp)
        + detect_capacity_alerts(utilization, thresholds, stamp)
        + detect_readmission_risk_alerts(bottlenecks, thresholds, stamp)
    )
    alerts.sort(key=lambda a: a.severity.order, reverse=True)
    critical = sum(1 for a in alerts if a.severity == AlertSeverity.CRITICAL)
    logger.info(f"Collected {len(alerts)} alerts ({critical} critical).")
    return alerts
