# flowsight/tests/test_forecasting.py

from datetime import date, datetime, timedelta

import pandas as pd
import pytest

from analytics.forecasting import (
    daily_admission_counts, exponential_smoothing, forecast_admissions, linear_trend,
    predict_capacity_risks, predict_resource_shortages, predict_unit_bottlenecks
)
from analytics.journeys import reconstruct_journeys
from analytics.models import AdmissionRecord, RiskLevel, TrendLabel
from tests.conftest import BASE_TIME, build_records


def _admissions(per_day, days, start=datetime(2024, 1, 1, 9)):
    return [
        AdmissionRecord(record_id=f"A{d}-{n}", patient_id=f"P{d}-{n}", admission_date=start + timedelta(days=d))
        for d in range(days) for n in range(per_day)
    ]


def test_exponential_smoothing_recurrence():
    smoothed = exponential_smoothing(pd.Series([10.0, 20.0, 30.0]), alpha=0.3)
    assert smoothed.tolist() == pytest.approx([10.0, 13.0, 18.1])


def test_linear_trend():
    assert linear_trend(pd.Series([1.0, 3.0, 5.0, 7.0])) == pytest.approx(2.0)
    assert linear_trend(pd.Series([4.0])) == 0.0


def test_daily_counts_skip_empty_days():
    counts = daily_admission_counts(_admissions(2, 1) + _admissions(1, 1, start=datetime(2024, 1, 5, 9)))
    assert counts.tolist() == [2.0, 1.0]


def test_flat_history_forecast():
    forecast = forecast_admissions(_admissions(2, 14), days=7)
    assert len(forecast) == 7
    assert [p.forecast_date for p in forecast] == [date(2024, 1, 15) + timedelta(days=i) for i in range(7)]
    assert all(p.trend == TrendLabel.STABLE for p in forecast)
    assert all(p.lower <= p.predicted <= p.upper for p in forecast)
    assert forecast[-1].predicted == 2


def test_growing_history_is_increasing():
    admissions = []
    for day in range(10):
        admissions += _admissions(day + 1, 1, start=datetime(2024, 1, 1, 9) + timedelta(days=day))
    assert forecast_admissions(admissions, days=3)[0].trend == TrendLabel.INCREASING


def test_forecast_without_history():
    assert forecast_admissions([]) == []


def test_confidence_band_uses_population_spread():
    # counts [1, 3]: population std 1.0, so the band is 1.96 wide each side
    history = _admissions(1, 1) + _admissions(3, 1, start=datetime(2024, 1, 2, 9))
    for point in forecast_admissions(history, days=3):
        assert point.upper - point.predicted == 2


def test_unit_prediction_tiers():
    records = []
    for i in range(3):
        records += build_records(f"P{i}", [("Triage", 30, 0), ("Radiology", 20, 150)],
                                 start=BASE_TIME + timedelta(hours=i))
    predictions = predict_unit_bottlenecks(list(reconstruct_journeys(records).values()), as_of=date(2024, 3, 10))
    by_unit = {p.unit: p for p in predictions}

    radiology = by_unit["Radiology"]
    assert radiology.risk_level == RiskLevel.CRITICAL
    assert radiology.probability == 0.85
    assert radiology.predicted_date == date(2024, 3, 13)
    assert radiology.delay_frequency == 1.0
    assert radiology.avg_delay_minutes == pytest.approx(150)

    triage = by_unit["Triage"]
    assert triage.risk_level == RiskLevel.LOW
    assert triage.predicted_date == date(2024, 4, 9)
    assert predictions[0].unit == "Radiology"


def test_capacity_risks_sorted_by_severity(ward_journeys):
    risks = predict_capacity_risks(ward_journeys, days=14, as_of=date(2024, 3, 10))
    assert risks
    orders = [r.risk_level.order for r in risks]
    assert orders == sorted(orders, reverse=True)
    assert all(date(2024, 3, 11) <= r.risk_date <= date(2024, 3, 24) for r in risks)


def test_staff_shortage_for_twenty_patients():
    records = []
    for i in range(20):
        records += build_records(f"P{i}", [("Cardiology", 60, 0)], start=BASE_TIME + timedelta(hours=i))
    warnings = predict_resource_shortages(list(reconstruct_journeys(records).values()), as_of=date(2024, 3, 10))

    assert [w.resource_type for w in warnings] == ["staff"]
    assert warnings[0].estimated_gap == 1
    assert warnings[0].severity == RiskLevel.MEDIUM
    assert warnings[0].shortage_date == date(2024, 3, 31)
