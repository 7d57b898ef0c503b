# flowsight/tests/test_bottlenecks.py

from datetime import timedelta

import numpy as np
import pytest

from analytics.aggregation import profile_global, profile_units
from analytics.bottlenecks import (
    bottleneck_timeline, calculate_iqr_position, calculate_z_score, classify_bottleneck, detect_bottlenecks
)
from analytics.journeys import reconstruct_journeys
from analytics.models import BottleneckType, LoadLevel
from config.settings import BottleneckThresholds
from tests.conftest import BASE_TIME, build_records


def test_z_score_sign_follows_mean_position(ward_journeys):
    global_stats = profile_global(ward_journeys)
    for name, profile in profile_units(ward_journeys).items():
        z = calculate_z_score(profile.mean, global_stats.mean, global_stats.std_dev)
        assert np.sign(z) == np.sign(profile.mean - global_stats.mean), name


def test_z_score_guards_zero_std():
    assert calculate_z_score(10, 5, 0) == 0.0


def test_iqr_position():
    assert calculate_iqr_position(5, 10, 20, 10) == pytest.approx(0.5)
    assert calculate_iqr_position(15, 10, 20, 10) == 0.0
    assert calculate_iqr_position(40, 10, 20, 10) == pytest.approx(2.0)
    assert calculate_iqr_position(40, 10, 20, 0) == 0.0


def test_classification_rule_order():
    cfg = BottleneckThresholds()
    assert classify_bottleneck(LoadLevel.MODERATE, 31, 80, 2.0, 1.0, cfg) == BottleneckType.INVISIBLE
    assert classify_bottleneck(LoadLevel.HIGH, 31, 51, 2.0, 1.0, cfg) == BottleneckType.OBVIOUS
    assert classify_bottleneck(LoadLevel.LOW, 0, 0, 1.31, 0.81, cfg) == BottleneckType.EMERGING
    assert classify_bottleneck(LoadLevel.HIGH, 0, 50, 1.3, 0.8, cfg) is None


def test_ranks_are_dense_and_follow_score(ward_journeys):
    records = detect_bottlenecks(ward_journeys)
    assert [r.rank for r in records] == list(range(1, len(records) + 1))
    scores = [r.overall_score for r in records]
    assert scores == sorted(scores, reverse=True)


def test_detection_is_idempotent(ward_journeys):
    first = [r.model_dump() for r in detect_bottlenecks(ward_journeys)]
    second = [r.model_dump() for r in detect_bottlenecks(ward_journeys)]
    assert first == second


def test_sample_count_eligibility(ward_journeys):
    units = {r.unit for r in detect_bottlenecks(ward_journeys)}
    assert {"Radiology", "Laboratory"} <= units
    assert "Pharmacy" not in units  # two samples only
    assert "Triage" not in units  # uniform durations match no rule


def test_obvious_bottleneck_details(ward_journeys):
    radiology = next(r for r in detect_bottlenecks(ward_journeys) if r.unit == "Radiology")
    assert radiology.bottleneck_type == BottleneckType.OBVIOUS
    assert radiology.load_level == LoadLevel.HIGH
    assert radiology.expected_time == 10
    assert radiology.actual_time == pytest.approx(220 / 3)
    assert radiology.patients_affected == 3
    assert radiology.why_bottleneck.endswith(".")
    assert 1 <= len(radiology.affected_patient_types) <= 3
    assert radiology.downstream_effects


def test_moderate_unit_feeding_long_waits_is_invisible():
    records = []
    for i in range(3):
        records += build_records(
            f"P{i}", [("Admit", 30, 0), ("Transport", 20, 0), ("Ward", 30, 30)], start=BASE_TIME + timedelta(hours=i)
        )
    records += build_records("P3", [("Admit", 30, 0), ("Ward", 30, 0)], start=BASE_TIME + timedelta(hours=3))

    bottlenecks = detect_bottlenecks(list(reconstruct_journeys(records).values()))
    assert [b.unit for b in bottlenecks] == ["Transport"]
    transport = bottlenecks[0]
    assert transport.bottleneck_type == BottleneckType.INVISIBLE
    assert transport.load_level == LoadLevel.MODERATE
    assert transport.delay_propagation_score == pytest.approx(100.0)
    assert transport.downstream_units == ["Ward"]


def test_erratic_low_volume_unit_is_emerging():
    records = []
    for i in range(8):
        records += build_records(f"S{i}", [("Intake", 30, 0), ("Clinic", 30, 0)], start=BASE_TIME + timedelta(hours=i))
    for i, minutes in enumerate([5, 5, 200]):
        records += build_records(f"E{i}", [("Endoscopy", minutes, 0)], start=BASE_TIME + timedelta(days=1, hours=i))

    bottlenecks = detect_bottlenecks(list(reconstruct_journeys(records).values()))
    assert [b.unit for b in bottlenecks] == ["Endoscopy"]
    endoscopy = bottlenecks[0]
    assert endoscopy.bottleneck_type == BottleneckType.EMERGING
    assert endoscopy.load_level == LoadLevel.LOW
    assert endoscopy.variance_ratio > 1.3
    assert endoscopy.congestion_indicator > 0.8


def test_empty_journeys_yield_no_bottlenecks():
    assert detect_bottlenecks([]) == []


def test_timeline_windows_are_four_hours(ward_journeys):
    timeline = bottleneck_timeline(ward_journeys)
    assert timeline
    assert all(p.window_start.hour % 4 == 0 and p.window_start.minute == 0 for p in timeline)
    assert [p.window_start for p in timeline] == sorted(p.window_start for p in timeline)
