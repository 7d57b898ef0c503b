# flowsight/tests/test_optimization.py

import pytest

from analytics.bottlenecks import detect_bottlenecks
from analytics.models import (
    BottleneckType, Intervention, InterventionType, RecommendationType, RiskLevel, UnitResources, UnitUtilization
)
from analytics.optimization import (
    classify_urgency, cost_to_impact_analysis, describe_intervention, prioritized_optimizations,
    staff_reallocation_opportunities, unit_utilization
)
from config.settings import OptimizationConfig
from tests.conftest import make_bottleneck


def _load(unit, staff, beds, volume, avg_processing=60.0):
    return UnitUtilization(
        unit=unit, staff_count=staff, bed_capacity=beds, patient_volume=volume, stage_count=volume,
        avg_processing_time=avg_processing, bed_utilization=min(100.0, volume / beds * 100),
        staff_utilization=volume / staff,
    )


# --- Utilisation ---

def test_unit_utilization_uses_resources_and_defaults(ward_journeys):
    report = unit_utilization(
        ward_journeys,
        [UnitResources(unit="Radiology", staff_count=1, bed_capacity=3),
         UnitResources(unit="ICU", staff_count=4, bed_capacity=8)],
    )
    by_unit = {u.unit: u for u in report}
    assert [u.unit for u in report] == ["Triage", "Radiology", "Laboratory", "Pharmacy", "ICU"]

    radiology = by_unit["Radiology"]
    assert radiology.patient_volume == 3
    assert radiology.bed_utilization == 100.0
    assert radiology.staff_utilization == pytest.approx(3.0)
    assert radiology.avg_processing_time == pytest.approx(220 / 3)

    assert by_unit["Triage"].staff_count == 10
    assert by_unit["Triage"].bed_utilization == pytest.approx(15.0)
    assert by_unit["Pharmacy"].patient_volume == 2
    assert by_unit["ICU"].patient_volume == 0
    assert by_unit["ICU"].avg_processing_time == 0.0


# --- Prioritised recommendations ---

def test_urgency_tiers_are_strictly_greater():
    cfg = OptimizationConfig()
    assert classify_urgency(75.1, cfg) == RiskLevel.CRITICAL
    assert classify_urgency(75, cfg) == RiskLevel.HIGH
    assert classify_urgency(50.5, cfg) == RiskLevel.HIGH
    assert classify_urgency(31, cfg) == RiskLevel.MEDIUM
    assert classify_urgency(30, cfg) == RiskLevel.LOW


def test_strained_invisible_bottleneck_gets_all_three_recommendations():
    bottleneck = make_bottleneck(
        "Radiology", bottleneck_type=BottleneckType.INVISIBLE, overall_score=80, time_deviation=100,
        patients_affected=10, downstream_units=["Laboratory", "Pharmacy"],
    )
    recommendations = prioritized_optimizations(
        [bottleneck], [_load("Radiology", staff=1, beds=10, volume=9, avg_processing=144)]
    )

    assert [r.recommendation_type for r in recommendations] == [
        RecommendationType.PROCESS_IMPROVEMENT, RecommendationType.STAFF, RecommendationType.BEDS
    ]
    assert all(r.urgency == RiskLevel.CRITICAL and r.priority == 1 for r in recommendations)

    process, staff, beds = recommendations
    assert process.expected_impact.los_reduction == pytest.approx(0.1)
    assert process.expected_impact.cost_savings == 2000
    assert process.expected_impact.throughput_increase == 1
    assert process.action_items[-1] == "Target 2 downstream departments for coordination"
    assert staff.expected_impact.cost_savings == 2400
    assert beds.expected_impact.cost_savings == 1600
    assert "9.0 patients per staff" in staff.rationale


def test_recommendations_ordered_by_urgency_then_rank():
    bottlenecks = [
        make_bottleneck("Laboratory", rank=1, overall_score=60, delay_propagation_score=50),
        make_bottleneck("Pharmacy", rank=2, overall_score=90, delay_propagation_score=45),
        make_bottleneck("Triage", rank=3, overall_score=35, delay_propagation_score=10),
        make_bottleneck("Morgue", rank=4, overall_score=99, delay_propagation_score=99),
    ]
    utilization = [_load(u, staff=10, beds=20, volume=5) for u in ("Laboratory", "Pharmacy", "Triage")]

    recommendations = prioritized_optimizations(bottlenecks, utilization)
    assert [(r.unit, r.urgency) for r in recommendations] == [
        ("Pharmacy", RiskLevel.CRITICAL), ("Laboratory", RiskLevel.HIGH)
    ]


# --- Staff reallocation ---

def test_idle_unit_lends_staff_to_overloaded_unit():
    utilization = [
        _load("Clinic", staff=10, beds=40, volume=20),
        _load("ER", staff=5, beds=40, volume=50),
        _load("Radiology", staff=10, beds=40, volume=30),
        _load("Laboratory", staff=4, beds=40, volume=32),
        _load("Pharmacy", staff=5, beds=40, volume=5),
    ]
    bottlenecks = [
        make_bottleneck("Radiology", overall_score=45, patients_affected=30),
        make_bottleneck("Laboratory", overall_score=55, patients_affected=32),
    ]

    opportunities = staff_reallocation_opportunities(utilization, bottlenecks)
    assert [(o.from_unit, o.to_unit) for o in opportunities] == [("Clinic", "ER"), ("Clinic", "Laboratory")]
    assert all(o.staff_count == 2 and o.feasibility_score == 100 for o in opportunities)

    to_er, to_lab = opportunities
    assert to_er.expected_impact == "Improve staff utilization from 10.0 to 7.1 patients per staff"
    assert to_lab.expected_impact == "Reduce processing time by ~16%, improve 32 patient flows"
    assert to_er.rationale.startswith("Clinic has low utilization (2.0 patients/staff)")


def test_bottleneck_units_never_lend_staff():
    utilization = [_load("Clinic", staff=10, beds=40, volume=20), _load("ER", staff=5, beds=40, volume=50)]
    assert staff_reallocation_opportunities(utilization, [make_bottleneck("Clinic", overall_score=10)]) == []


# --- Cost to impact ---

def test_describe_intervention():
    assert describe_intervention(Intervention(type="staff", unit="ER", magnitude=2)) == "Add 2 staff members"
    assert describe_intervention(Intervention(type="beds", unit="ER", magnitude=5)) == "Add 5 beds"
    assert describe_intervention(Intervention(type="processing_time", unit="ER", magnitude=30)) == (
        "Reduce processing time by 30 minutes"
    )


def test_cost_to_impact_prices_three_scenarios_per_bottleneck(ward_journeys, ward_admissions):
    bottlenecks = detect_bottlenecks(ward_journeys)
    entries = cost_to_impact_analysis(bottlenecks, ward_journeys, ward_admissions)

    assert len(entries) == 3 * len(bottlenecks)
    assert [e.roi for e in entries] == sorted((e.roi for e in entries), reverse=True)
    for entry in entries:
        if entry.intervention_type == InterventionType.STAFF:
            assert entry.estimated_cost == 150_000
            assert not entry.quick_win
        if entry.intervention_type == InterventionType.PROCESSING_TIME:
            assert entry.quick_win == (entry.impact_score > 25)


def test_cost_to_impact_limits_to_top_bottlenecks(ward_journeys):
    bottlenecks = detect_bottlenecks(ward_journeys)
    entries = cost_to_impact_analysis(bottlenecks, ward_journeys, config=OptimizationConfig(top_bottlenecks=1))
    assert {e.unit for e in entries} == {bottlenecks[0].unit}
    assert len(entries) == 3
