# flowsight/tests/test_aggregation.py

import pytest

from analytics.aggregation import calculate_duration_statistics, profile_global, profile_units
from analytics.journeys import reconstruct_journeys


def test_radiology_order_statistics(radiology_records):
    journeys = reconstruct_journeys(radiology_records).values()
    profile = profile_units(journeys)["Radiology"]

    assert profile.sample_count == 3
    assert profile.median == 90
    assert profile.mean == pytest.approx(90)
    assert profile.q1 == 30
    assert profile.q3 == 150
    assert profile.iqr == 120
    assert profile.std_dev == pytest.approx(48.99, abs=0.01)


def test_variance_uses_population_formula():
    profile = calculate_duration_statistics([2, 4, 4, 4, 5, 5, 7, 9])
    assert profile.variance == pytest.approx(4.0)
    assert profile.std_dev == pytest.approx(2.0)


def test_empty_samples_give_zero_profile():
    profile = calculate_duration_statistics([])
    assert profile.sample_count == 0
    assert profile.mean == profile.std_dev == profile.iqr == 0.0


def test_targeted_unit_query(ward_journeys):
    profiles = profile_units(ward_journeys, unit="Laboratory")
    assert list(profiles) == ["Laboratory"]
    assert profiles["Laboratory"].samples == [20.0, 20.0, 100.0]


def test_global_profile_pools_every_stage(ward_journeys):
    assert profile_global(ward_journeys).sample_count == sum(len(j.stages) for j in ward_journeys)
