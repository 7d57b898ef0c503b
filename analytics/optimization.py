# flowsight/analytics/optimization.py
#
# Optimisation Advisor
# Turns detected bottlenecks and per-unit resource load into ranked
# recommendations: process, staffing and bed actions per bottleneck, staff
# moves from idle units to strained ones, and a cost-to-impact table built
# from standard what-if scenarios.

import logging
import math
from typing import Dict, Iterable, List, Optional

try:
    from config.settings import settings, OptimizationConfig, SimulationConfig
    from data_processing.helpers import round_half_up, safe_divide
    from .models import (
        AdmissionRecord, BottleneckRecord, BottleneckType, CostToImpactEntry, ExpectedImpact, Intervention,
        InterventionType, Journey, OptimizationRecommendation, RecommendationType, RiskLevel, StaffReallocation,
        UnitResources, UnitUtilization
    )
    from .simulation import compare_interventions
except ImportError as e:
    logging.basicConfig(level="CRITICAL")
    logging.critical(f"FATAL ERROR in optimization.py: A core dependency is missing. {e}", exc_info=True)
    raise

logger = logging.getLogger(__name__)

PROCESS_ACTIONS = [
    "Conduct time-motion study to identify process inefficiencies",
    "Implement lean principles to reduce non-value-added activities",
    "Optimize patient handoff protocols",
]
STAFF_ACTIONS = [
    "Add 2-3 additional staff members to handle peak loads",
    "Consider flexible staffing during high-demand periods",
    "Cross-train staff from underutilized departments",
    "Implement overtime protocols for surge capacity",
]
BED_ACTIONS = [
    "Expand bed capacity by 10-15%",
    "Optimize discharge planning to increase turnover",
    "Implement virtual bed management system",
    "Consider ambulatory alternatives for appropriate patients",
]


# --- Utilisation ---

def unit_utilization(
    journeys: Iterable[Journey],
    resources: Iterable[UnitResources] = (),
    config: Optional[SimulationConfig] = None
) -> List[UnitUtilization]:
    """
    Patients per staff member and bed occupancy for every unit.

    Units without a resources entry use the simulation defaults for staff and
    beds. Units listed in `resources` that no journey visits are reported with
    zero volume. Order follows first appearance in the journeys.
    """
    cfg = config or settings.thresholds.simulation
    by_unit = {r.unit: r for r in resources}

    patients: Dict[str, set] = {}
    durations: Dict[str, List[float]] = {}
    for journey in journeys:
        for stage in journey.stages:
            patients.setdefault(stage.unit, set()).add(journey.patient_id)
            durations.setdefault(stage.unit, []).append(stage.duration_minutes)
    for unit in by_unit:
        patients.setdefault(unit, set())
        durations.setdefault(unit, [])

    report = []
    for unit, visitors in patients.items():
        staff = by_unit[unit].staff_count if unit in by_unit else cfg.default_staff_count
        beds = by_unit[unit].bed_capacity if unit in by_unit else cfg.default_bed_capacity
        times = durations[unit]
        report.append(UnitUtilization(
            unit=unit,
            staff_count=staff,
            bed_capacity=beds,
            patient_volume=len(visitors),
            stage_count=len(times),
            avg_processing_time=safe_divide(sum(times), len(times)),
            bed_utilization=min(100.0, len(visitors) / beds * 100),
            staff_utilization=len(visitors) / staff,
        ))
    return report


# --- Prioritised recommendations ---

def classify_urgency(overall_score: float, cfg: OptimizationConfig) -> RiskLevel:
    if overall_score > cfg.urgency_critical:
        return RiskLevel.CRITICAL
    if overall_score > cfg.urgency_high:
        return RiskLevel.HIGH
    if overall_score > cfg.urgency_medium:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def _impact(los_days: float, cost: float, throughput: int) -> ExpectedImpact:
    return ExpectedImpact(
        los_reduction=round_half_up(los_days, 1),
        cost_savings=round_half_up(cost),
        throughput_increase=throughput,
    )


def prioritized_optimizations(
    bottlenecks: Iterable[BottleneckRecord],
    utilization: Iterable[UnitUtilization],
    config: Optional[OptimizationConfig] = None
) -> List[OptimizationRecommendation]:
    """
    Builds process, staffing and bed recommendations for each bottleneck.

    A bottleneck yields a process recommendation when it is invisible or
    propagates strongly downstream, a staffing one when its unit is overloaded
    per staff member, and a bed one when its beds are under pressure; any
    combination may apply. Bottlenecks whose unit has no utilisation entry
    are skipped.

    Returns:
        Recommendations ordered by urgency (critical first), then by the
        underlying bottleneck rank.
    """
    cfg = config or settings.thresholds.optimization
    load = {u.unit: u for u in utilization}
    recommendations: List[OptimizationRecommendation] = []

    for bottleneck in bottlenecks:
        unit_load = load.get(bottleneck.unit)
        if unit_load is None:
            continue

        urgency = classify_urgency(bottleneck.overall_score, cfg)
        los_reduction = abs(bottleneck.time_deviation / 100) * (unit_load.avg_processing_time / 60 / 24)
        cost_savings = los_reduction * bottleneck.patients_affected * cfg.cost_per_los_day
        throughput = math.floor(bottleneck.patients_affected * cfg.throughput_share)

        if (bottleneck.bottleneck_type == BottleneckType.INVISIBLE
                or bottleneck.delay_propagation_score > cfg.process_min_propagation):
            recommendations.append(OptimizationRecommendation(
                priority=bottleneck.rank,
                unit=bottleneck.unit,
                recommendation_type=RecommendationType.PROCESS_IMPROVEMENT,
                rationale=(
                    f"{bottleneck.unit} creates significant downstream delays despite moderate load. "
                    f"Process optimization will have cascading benefits."
                ),
                expected_impact=_impact(los_reduction, cost_savings, throughput),
                action_items=PROCESS_ACTIONS + [
                    f"Target {len(bottleneck.downstream_units)} downstream departments for coordination"
                ],
                urgency=urgency,
            ))

        if unit_load.staff_utilization > cfg.overloaded_patients_per_staff:
            recommendations.append(OptimizationRecommendation(
                priority=bottleneck.rank,
                unit=bottleneck.unit,
                recommendation_type=RecommendationType.STAFF,
                rationale=(
                    f"High staff utilization ({unit_load.staff_utilization:.1f} patients per staff) "
                    f"indicates understaffing contributing to delays."
                ),
                expected_impact=_impact(
                    los_reduction * cfg.staff_multiplier,
                    cost_savings * cfg.staff_multiplier,
                    math.floor(throughput * cfg.staff_throughput_multiplier),
                ),
                action_items=list(STAFF_ACTIONS),
                urgency=urgency,
            ))

        if unit_load.bed_utilization > cfg.bed_utilization_pressure:
            recommendations.append(OptimizationRecommendation(
                priority=bottleneck.rank,
                unit=bottleneck.unit,
                recommendation_type=RecommendationType.BEDS,
                rationale=(
                    f"Bed utilization at {unit_load.bed_utilization:.1f}% creates capacity constraints "
                    f"and patient flow bottlenecks."
                ),
                expected_impact=_impact(
                    los_reduction * cfg.beds_multiplier,
                    cost_savings * cfg.beds_multiplier,
                    math.floor(throughput * cfg.beds_throughput_multiplier),
                ),
                action_items=list(BED_ACTIONS),
                urgency=urgency,
            ))

    recommendations.sort(key=lambda r: (-r.urgency.order, r.priority))
    logger.info(f"Generated {len(recommendations)} optimisation recommendations.")
    return recommendations


# --- Staff reallocation ---

def staff_reallocation_opportunities(
    utilization: Iterable[UnitUtilization],
    bottlenecks: Iterable[BottleneckRecord],
    config: Optional[OptimizationConfig] = None
) -> List[StaffReallocation]:
    """
    Pairs idle units with strained ones and proposes moving a few staff.

    A source is lightly loaded, has enough staff to spare and is not a
    bottleneck. A target is overloaded per staff member or is a bottleneck
    scoring above `strained_min_score`. A move is kept only when both sides
    stay within their post-move limits.
    """
    cfg = config or settings.thresholds.optimization
    units = list(utilization)
    by_unit = {b.unit: b for b in bottlenecks}

    sources = [
        u for u in units
        if u.staff_utilization < cfg.underused_patients_per_staff
        and u.staff_count > cfg.min_source_staff
        and u.unit not in by_unit
    ]
    targets = [
        u for u in units
        if u.staff_utilization > cfg.overloaded_patients_per_staff
        or (u.unit in by_unit and by_unit[u.unit].overall_score > cfg.strained_min_score)
    ]

    opportunities: List[StaffReallocation] = []
    for source in sources:
        moved = min(cfg.max_staff_moved, math.floor(source.staff_count * cfg.staff_moved_share))
        for target in targets:
            source_after = source.patient_volume / (source.staff_count - moved)
            target_after = target.patient_volume / (target.staff_count + moved)
            feasibility = min(100, (50 if source_after < cfg.source_after_move_below else 0)
                              + (50 if target_after > cfg.target_after_move_above else 0))
            if feasibility <= cfg.min_feasibility:
                continue

            bottleneck = by_unit.get(target.unit)
            if bottleneck is not None:
                impact = (
                    f"Reduce processing time by ~{round(moved * cfg.processing_gain_pct_per_staff)}%, "
                    f"improve {bottleneck.patients_affected} patient flows"
                )
            else:
                impact = (
                    f"Improve staff utilization from {target.staff_utilization:.1f} "
                    f"to {target_after:.1f} patients per staff"
                )
            opportunities.append(StaffReallocation(
                from_unit=source.unit,
                to_unit=target.unit,
                staff_count=moved,
                rationale=(
                    f"{source.unit} has low utilization ({source.staff_utilization:.1f} patients/staff) "
                    f"while {target.unit} is strained ({target.staff_utilization:.1f} patients/staff)"
                ),
                expected_impact=impact,
                feasibility_score=feasibility,
            ))

    opportunities.sort(key=lambda o: o.feasibility_score, reverse=True)
    return opportunities


# --- Cost to impact ---

def describe_intervention(intervention: Intervention) -> str:
    magnitude = f"{intervention.magnitude:g}"
    if intervention.type == InterventionType.STAFF:
        return f"Add {magnitude} staff members"
    if intervention.type == InterventionType.BEDS:
        return f"Add {magnitude} beds"
    return f"Reduce processing time by {magnitude} minutes"


def cost_to_impact_analysis(
    bottlenecks: Iterable[BottleneckRecord],
    journeys: Iterable[Journey],
    admissions: Iterable[AdmissionRecord] = (),
    resources: Iterable[UnitResources] = (),
    config: Optional[OptimizationConfig] = None,
    simulation_config: Optional[SimulationConfig] = None,
    min_wait_minutes: Optional[float] = None
) -> List[CostToImpactEntry]:
    """
    Prices the standard staff, bed and processing-time scenarios for each of
    the top bottlenecks and flags quick wins. Entries are ordered by ROI,
    highest first.
    """
    cfg = config or settings.thresholds.optimization
    journeys, admissions, resources = list(journeys), list(admissions), list(resources)

    entries: List[CostToImpactEntry] = []
    for bottleneck in list(bottlenecks)[:cfg.top_bottlenecks]:
        scenarios = [
            Intervention(type=InterventionType.STAFF, unit=bottleneck.unit, magnitude=cfg.scenario_staff),
            Intervention(type=InterventionType.BEDS, unit=bottleneck.unit, magnitude=cfg.scenario_beds),
            Intervention(type=InterventionType.PROCESSING_TIME, unit=bottleneck.unit, magnitude=cfg.scenario_minutes),
        ]
        comparison = compare_interventions(
            scenarios, journeys, admissions, resources, simulation_config, min_wait_minutes
        )
        for simulation in comparison.simulations:
            benefit = simulation.cost_benefit
            entries.append(CostToImpactEntry(
                unit=simulation.intervention.unit,
                intervention_type=simulation.intervention.type,
                magnitude=simulation.intervention.magnitude,
                estimated_cost=benefit.estimated_cost,
                impact_score=benefit.impact_score,
                roi=benefit.roi,
                description=describe_intervention(simulation.intervention),
                quick_win=benefit.estimated_cost < cfg.quick_win_max_cost and benefit.impact_score > cfg.quick_win_min_impact,
            ))

    entries.sort(key=lambda e: e.roi, reverse=True)
    logger.info(f"Priced {len(entries)} scenarios for cost-to-impact analysis.")
    return entries
