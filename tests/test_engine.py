# flowsight/tests/test_engine.py

import json
from datetime import date, datetime

from analytics import AlertSeverity, FlowAnalyticsEngine, Intervention, UnitResources
from analytics.models import UnitCategory
from config.settings import PropagationThresholds, Settings, ThresholdConfig


def test_engine_runs_every_analysis(ward_records, ward_admissions):
    engine = FlowAnalyticsEngine(
        ward_records, ward_admissions,
        resources=[UnitResources(unit="Radiology", staff_count=6, bed_capacity=12)],
    )
    assert len(engine.journeys) == 3
    assert engine.journey("P3").stages[-1].unit == "Pharmacy"
    assert engine.journey("nobody") is None

    assert set(engine.unit_profiles()) == {"Triage", "Radiology", "Laboratory", "Pharmacy"}
    assert engine.global_profile().sample_count == 11
    assert engine.bottlenecks()[0].rank == 1
    assert engine.bottleneck_timeline()
    assert engine.delay_propagation()
    assert engine.department_delays()
    assert engine.flow_paths("Radiology")
    assert engine.time_contributions()
    assert sum(engine.category_breakdown().values()) > 0
    assert engine.flow_insights()
    assert len(engine.admission_forecast(days=5)) == 5
    assert engine.predict_unit_bottlenecks(as_of=date(2024, 3, 10))
    assert engine.capacity_risks(days=7, as_of=date(2024, 3, 10))
    assert len(engine.readmission_risks()) == 3
    assert engine.high_risk_patients() == []
    assert engine.readmission_trends()[0].period == "2024-03"
    assert isinstance(engine.resource_shortages(as_of=date(2024, 3, 10)), list)

    result = engine.simulate(Intervention(type="beds", unit="Radiology", magnitude=3))
    assert result.baseline.bed_utilization == 25.0
    comparison = engine.compare([
        {"type": "staff", "unit": "Radiology", "magnitude": 2},
        {"type": "processing_time", "unit": "Laboratory", "magnitude": 10},
    ])
    assert comparison.optimal is not None

    utilization = {u.unit: u for u in engine.unit_utilization()}
    assert utilization["Radiology"].staff_count == 6
    assert utilization["Triage"].staff_count == 10
    assert isinstance(engine.optimizations(), list)
    assert isinstance(engine.staff_reallocations(), list)
    assert len(engine.cost_to_impact()) == 3 * min(5, len(engine.bottlenecks()))
    alerts = engine.alerts(as_of=datetime(2024, 3, 10, 12))
    assert all(a.timestamp == datetime(2024, 3, 10, 12) for a in alerts)


def test_results_serialise_to_json(ward_records):
    engine = FlowAnalyticsEngine(ward_records)
    payload = [r.model_dump(mode="json") for r in engine.bottlenecks() + engine.delay_propagation()]
    assert json.loads(json.dumps(payload)) == payload


def test_engine_uses_its_own_settings(ward_records):
    strict = Settings(thresholds=ThresholdConfig(propagation=PropagationThresholds(min_wait_minutes=60)))
    engine = FlowAnalyticsEngine(ward_records, settings=strict)
    edges = engine.delay_propagation()
    assert [(e.source_unit, e.target_unit) for e in edges] == [("Triage", "Radiology")]
    assert edges[0].patient_count == 1


def test_empty_engine(ward_admissions):
    engine = FlowAnalyticsEngine([], ward_admissions)
    assert engine.journeys == []
    assert engine.bottlenecks() == []
    assert engine.delay_propagation() == []
    assert engine.flow_insights() == []


def test_engine_wait_threshold_reaches_simulation_baseline(ward_records, ward_admissions):
    descriptor = {"type": "staff", "unit": "Radiology", "magnitude": 2}
    strict = Settings(thresholds=ThresholdConfig(propagation=PropagationThresholds(min_wait_minutes=60)))

    default_engine = FlowAnalyticsEngine(ward_records, ward_admissions)
    strict_engine = FlowAnalyticsEngine(ward_records, ward_admissions, settings=strict)

    assert default_engine.simulate(descriptor).baseline.readmission_risk == 16.5
    assert strict_engine.simulate(descriptor).baseline.readmission_risk == 15.6
    assert strict_engine.compare([descriptor]).optimal.baseline.readmission_risk == 15.6


def test_engine_uses_its_own_unit_categories(ward_records):
    site = Settings(unit_categories={"Triage": "Emergency"}, default_unit_category="Recovery")
    engine = FlowAnalyticsEngine(ward_records, settings=site)
    categories = {s.unit: s.category for s in engine.journey("P2").stages}
    assert categories["Triage"] == UnitCategory.EMERGENCY
    assert categories["Radiology"] == UnitCategory.RECOVERY
    assert engine.category_breakdown()["Emergency"] == 90


def test_engine_alerts_are_sorted_by_severity(ward_records):
    engine = FlowAnalyticsEngine(ward_records, resources=[UnitResources(unit="Triage", staff_count=1, bed_capacity=3)])
    alerts = engine.alerts(as_of=datetime(2024, 3, 10))
    assert [a.severity.order for a in alerts] == sorted((a.severity.order for a in alerts), reverse=True)
    triage = [a for a in alerts if a.unit == "Triage"]
    assert [a.title for a in triage] == ["Critical Bed Capacity Reached"]
    assert triage[0].severity == AlertSeverity.CRITICAL
