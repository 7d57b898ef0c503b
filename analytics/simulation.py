# flowsight/analytics/simulation.py
#
# Intervention Simulator
# Closed-form what-if projections for a single unit. A baseline snapshot is
# measured from the journeys that visited the unit, then one of three
# projections (staff, beds, processing_time) is applied and priced.

import logging
import math
from typing import Callable, Dict, Iterable, List, Optional, Union

try:
    from config.settings import settings, SimulationConfig
    from data_processing.helpers import days_between, round_half_up, safe_divide
    from .journeys import stage_waits
    from .models import (
        AdmissionRecord, CostBenefit, Improvements, Intervention, InterventionComparison,
        InterventionType, Journey, MetricsSnapshot, SimulationResult, UnitResources
    )
except ImportError as e:
    logging.basicConfig(level="CRITICAL")
    logging.critical(f"FATAL ERROR in simulation.py: A core dependency is missing. {e}", exc_info=True)
    raise

logger = logging.getLogger(__name__)


class InvalidInterventionError(ValueError):
    """Raised when an intervention cannot be simulated."""


def _snapshot(los: float, utilization: float, processing: float, risk: float, throughput: int) -> MetricsSnapshot:
    return MetricsSnapshot(
        average_los=round_half_up(los, 1),
        bed_utilization=round_half_up(utilization, 1),
        avg_processing_time=round_half_up(processing),
        readmission_risk=round_half_up(risk, 1),
        throughput=throughput,
    )


def _patient_los(journey: Journey, admissions_by_patient: Dict[str, List[AdmissionRecord]]) -> float:
    stays = [
        days_between(a.admission_date, a.discharge_date)
        for a in admissions_by_patient.get(journey.patient_id, [])
        if a.discharge_date is not None
    ]
    if stays:
        return sum(stays) / len(stays)
    return days_between(journey.first_entry, journey.last_exit)


def estimate_readmission_risk(processing_minutes: float, wait_count: int, cfg: SimulationConfig) -> float:
    risk = cfg.base_readmission_risk + processing_minutes / 60 * cfg.risk_per_processing_hour + wait_count * cfg.risk_per_wait
    return min(100.0, risk)


def calculate_baseline_metrics(
    unit: str,
    journeys: Iterable[Journey],
    admissions: Iterable[AdmissionRecord] = (),
    bed_capacity: Optional[int] = None,
    config: Optional[SimulationConfig] = None,
    min_wait_minutes: Optional[float] = None
) -> MetricsSnapshot:
    """
    Measures a unit's current state from the journeys that passed through it.

    Args:
        unit: Unit name.
        journeys: All reconstructed journeys; only those visiting `unit` are used.
        admissions: Admission records used for length of stay. Patients without
            a discharged admission fall back to their journey span.
        bed_capacity: Beds in the unit; defaults to `default_bed_capacity`.
        config: Simulation coefficients; defaults to settings.
        min_wait_minutes: Waits leaving the unit longer than this raise the
            readmission risk estimate.

    Returns:
        A MetricsSnapshot rounded for reporting (LOS, utilisation and risk to
        0.1, processing time to the minute).
    """
    cfg = config or settings.thresholds.simulation
    beds = bed_capacity or cfg.default_bed_capacity
    min_wait = settings.thresholds.propagation.min_wait_minutes if min_wait_minutes is None else min_wait_minutes

    unit_journeys = [j for j in journeys if j.visits(unit)]
    if not unit_journeys:
        logger.warning(f"calculate_baseline_metrics found no journeys through '{unit}'.")
        return _snapshot(0.0, 0.0, 0.0, cfg.base_readmission_risk, 0)

    admissions_by_patient: Dict[str, List[AdmissionRecord]] = {}
    for admission in admissions:
        admissions_by_patient.setdefault(admission.patient_id, []).append(admission)

    durations = [s.duration_minutes for j in unit_journeys for s in j.stages if s.unit == unit]
    avg_processing = sum(durations) / len(durations)
    average_los = sum(_patient_los(j, admissions_by_patient) for j in unit_journeys) / len(unit_journeys)
    utilization = min(cfg.max_utilization, len(durations) / beds * 100)

    wait_count = 0
    for journey in unit_journeys:
        waits = stage_waits(journey)
        for stage, wait in zip(journey.stages, waits[1:]):
            if stage.unit == unit and wait > min_wait:
                wait_count += 1

    return _snapshot(
        average_los, utilization, avg_processing,
        estimate_readmission_risk(avg_processing, wait_count, cfg), len(durations),
    )


# --- Projections ---

def project_staff_intervention(
    baseline: MetricsSnapshot,
    staff_increase: float,
    current_staff: int,
    config: Optional[SimulationConfig] = None
) -> MetricsSnapshot:
    cfg = config or settings.thresholds.simulation
    multiplier = current_staff / (current_staff + staff_increase)
    new_processing = max(cfg.min_processing_minutes, baseline.avg_processing_time * multiplier)
    saved = max(0.0, baseline.avg_processing_time - new_processing)

    los_reduction = saved / 60 * cfg.staff_los_factor
    utilization_drop = los_reduction * cfg.staff_utilization_factor
    risk_reduction = safe_divide(saved, baseline.avg_processing_time) * baseline.readmission_risk * cfg.staff_readmission_factor

    return _snapshot(
        max(cfg.min_los_days, baseline.average_los - los_reduction),
        min(cfg.max_utilization, max(0.0, baseline.bed_utilization - utilization_drop)),
        new_processing,
        max(0.0, baseline.readmission_risk - risk_reduction),
        math.floor(baseline.throughput * (1 + staff_increase / current_staff * cfg.staff_throughput_factor)),
    )


def project_beds_intervention(
    baseline: MetricsSnapshot,
    bed_increase: float,
    current_beds: int,
    config: Optional[SimulationConfig] = None
) -> MetricsSnapshot:
    cfg = config or settings.thresholds.simulation
    capacity_increase = bed_increase / current_beds
    new_utilization = baseline.bed_utilization * current_beds / (current_beds + bed_increase)
    wait_reduction = min(capacity_increase * cfg.beds_wait_factor, cfg.beds_wait_cap)

    los_reduction = baseline.average_los * wait_reduction * cfg.beds_los_factor
    risk_reduction = wait_reduction * baseline.readmission_risk * cfg.beds_readmission_factor
    new_processing = baseline.avg_processing_time * (1 - wait_reduction * cfg.beds_processing_factor)

    return _snapshot(
        max(cfg.min_los_days, baseline.average_los - los_reduction),
        min(cfg.max_utilization, max(0.0, new_utilization)),
        max(cfg.min_processing_minutes, new_processing),
        max(0.0, baseline.readmission_risk - risk_reduction),
        math.floor(baseline.throughput * (1 + capacity_increase * cfg.beds_throughput_factor)),
    )


def project_processing_time_intervention(
    baseline: MetricsSnapshot,
    minutes_saved: float,
    config: Optional[SimulationConfig] = None
) -> MetricsSnapshot:
    cfg = config or settings.thresholds.simulation
    ratio = safe_divide(minutes_saved, baseline.avg_processing_time)

    los_reduction = baseline.average_los * ratio * cfg.process_los_factor
    utilization_drop = ratio * baseline.bed_utilization * cfg.process_utilization_factor
    risk_reduction = ratio * baseline.readmission_risk * cfg.process_readmission_factor

    return _snapshot(
        max(cfg.min_los_days, baseline.average_los - los_reduction),
        min(cfg.max_utilization, max(0.0, baseline.bed_utilization - utilization_drop)),
        max(cfg.min_processing_minutes, baseline.avg_processing_time - minutes_saved),
        max(0.0, baseline.readmission_risk - risk_reduction),
        math.floor(baseline.throughput * (1 + ratio * cfg.process_throughput_factor)),
    )


# --- Pricing ---

def estimate_cost(intervention: Intervention, config: Optional[SimulationConfig] = None) -> float:
    cfg = config or settings.thresholds.simulation
    unit_prices = {
        InterventionType.STAFF: cfg.cost_per_staff,
        InterventionType.BEDS: cfg.cost_per_bed,
        InterventionType.PROCESSING_TIME: cfg.cost_per_processing_unit / cfg.processing_unit_minutes,
    }
    return unit_prices[intervention.type] * intervention.magnitude


def calculate_improvements(baseline: MetricsSnapshot, projected: MetricsSnapshot) -> Improvements:
    los_reduction = baseline.average_los - projected.average_los
    return Improvements(
        los_reduction=round_half_up(los_reduction, 1),
        los_reduction_percent=round_half_up(safe_divide(los_reduction, baseline.average_los) * 100, 1),
        bed_utilization_change=round_half_up(baseline.bed_utilization - projected.bed_utilization, 1),
        readmission_risk_reduction=round_half_up(baseline.readmission_risk - projected.readmission_risk, 1),
        patients_impacted=projected.throughput,
    )


def calculate_cost_benefit(
    intervention: Intervention,
    improvements: Improvements,
    config: Optional[SimulationConfig] = None
) -> CostBenefit:
    """
    Cost from the unit price table, a weighted impact score, and ROI as
    impact × patients impacted × `roi_scale` per dollar (0 when free).
    """
    cfg = config or settings.thresholds.simulation
    cost = estimate_cost(intervention, cfg)
    impact = (
        improvements.los_reduction_percent * cfg.impact_los_weight
        + abs(improvements.bed_utilization_change) * cfg.impact_utilization_weight
        + improvements.readmission_risk_reduction * cfg.impact_readmission_weight
    )
    roi = impact * improvements.patients_impacted * cfg.roi_scale / cost if cost > 0 else 0.0
    return CostBenefit(
        estimated_cost=cost,
        impact_score=round_half_up(impact, 1),
        roi=round_half_up(roi, 2),
    )


def _coerce_intervention(intervention: Union[Intervention, dict]) -> Intervention:
    if isinstance(intervention, Intervention):
        return intervention
    if isinstance(intervention, dict):
        return Intervention.model_validate(intervention)
    raise InvalidInterventionError(f"Cannot simulate intervention of type {type(intervention).__name__}")


def simulate_intervention(
    intervention: Union[Intervention, dict],
    journeys: Iterable[Journey],
    admissions: Iterable[AdmissionRecord] = (),
    resources: Iterable[UnitResources] = (),
    config: Optional[SimulationConfig] = None,
    min_wait_minutes: Optional[float] = None
) -> SimulationResult:
    """
    Projects one intervention against the unit's measured baseline.

    `min_wait_minutes` is forwarded to the baseline wait count; None falls back
    to the global propagation threshold.

    Raises:
        ValueError: pydantic's ValidationError for an unknown type or negative
            magnitude in a dict descriptor, InvalidInterventionError for
            anything else that is not an intervention.
    """
    cfg = config or settings.thresholds.simulation
    intervention = _coerce_intervention(intervention)
    unit_resources = {r.unit: r for r in resources}.get(intervention.unit)
    current_staff = unit_resources.staff_count if unit_resources else cfg.default_staff_count
    current_beds = unit_resources.bed_capacity if unit_resources else cfg.default_bed_capacity

    baseline = calculate_baseline_metrics(
        intervention.unit, list(journeys), admissions, current_beds, cfg, min_wait_minutes
    )

    projections: Dict[InterventionType, Callable[[], MetricsSnapshot]] = {
        InterventionType.STAFF: lambda: project_staff_intervention(baseline, intervention.magnitude, current_staff, cfg),
        InterventionType.BEDS: lambda: project_beds_intervention(baseline, intervention.magnitude, current_beds, cfg),
        InterventionType.PROCESSING_TIME: lambda: project_processing_time_intervention(baseline, intervention.magnitude, cfg),
    }
    projected = projections[intervention.type]()
    improvements = calculate_improvements(baseline, projected)

    logger.info(
        f"Simulated {intervention.type.value} +{intervention.magnitude} in {intervention.unit}: "
        f"LOS {baseline.average_los} -> {projected.average_los} days."
    )
    return SimulationResult(
        intervention=intervention,
        baseline=baseline,
        projected=projected,
        improvements=improvements,
        cost_benefit=calculate_cost_benefit(intervention, improvements, cfg),
    )


def compare_interventions(
    interventions: Iterable[Union[Intervention, dict]],
    journeys: Iterable[Journey],
    admissions: Iterable[AdmissionRecord] = (),
    resources: Iterable[UnitResources] = (),
    config: Optional[SimulationConfig] = None,
    min_wait_minutes: Optional[float] = None
) -> InterventionComparison:
    """Simulates each intervention, ranks by ROI (highest first) and summarises the best option."""
    cfg = config or settings.thresholds.simulation
    journeys, admissions, resources = list(journeys), list(admissions), list(resources)

    simulations = [
        simulate_intervention(i, journeys, admissions, resources, cfg, min_wait_minutes) for i in interventions
    ]
    simulations.sort(key=lambda s: s.cost_benefit.roi, reverse=True)
    optimal = simulations[0] if simulations else None

    recommendations: List[str] = []
    if optimal is not None:
        improvements, cost_benefit = optimal.improvements, optimal.cost_benefit
        recommendations.append(
            f"Best ROI: {optimal.intervention.type.value} intervention in {optimal.intervention.unit}"
        )
        if improvements.los_reduction_percent > cfg.high_los_reduction_pct:
            recommendations.append(
                f"High impact: {improvements.los_reduction_percent:.1f}% reduction in length of stay"
            )
        if cost_benefit.roi > cfg.excellent_roi:
            recommendations.append(f"Excellent return: {cost_benefit.roi:.2f}x return on investment")
        if improvements.readmission_risk_reduction > cfg.notable_readmission_reduction:
            recommendations.append(
                f"Reduces readmission risk by {improvements.readmission_risk_reduction:.1f}%"
            )

    low_cost_high_impact = [
        s for s in simulations
        if s.cost_benefit.estimated_cost < cfg.low_cost_ceiling and s.cost_benefit.impact_score > cfg.high_impact_score
    ]
    if low_cost_high_impact:
        recommendations.append(f"{len(low_cost_high_impact)} low-cost high-impact options available")

    return InterventionComparison(simulations=simulations, recommendations=recommendations, optimal=optimal)
