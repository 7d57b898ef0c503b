# flowsight/tests/test_journeys.py

from datetime import datetime, timedelta, timezone

import pandas as pd
import pytest

from analytics.journeys import categorize_unit, reconstruct_journeys, stage_waits
from analytics.models import TransitRecord, UnitCategory
from data_processing.pipeline import TransitPipeline
from tests.conftest import BASE_TIME, build_records


def test_total_duration_equals_sum_of_stages(ward_journeys):
    for journey in ward_journeys:
        assert journey.total_duration == pytest.approx(sum(s.duration_minutes for s in journey.stages))


def test_stages_are_sorted_by_entry_time():
    records = build_records("P1", [("Triage", 30, 0), ("Radiology", 20, 10), ("Pharmacy", 5, 0)])
    journeys = reconstruct_journeys(list(reversed(records)))
    assert [s.unit for s in journeys["P1"].stages] == ["Triage", "Radiology", "Pharmacy"]


def test_equal_entry_times_keep_input_order():
    records = [
        TransitRecord(patient_id="P1", unit="B", entry_time=BASE_TIME, exit_time=BASE_TIME + timedelta(minutes=5)),
        TransitRecord(patient_id="P1", unit="A", entry_time=BASE_TIME, exit_time=BASE_TIME + timedelta(minutes=9)),
    ]
    assert [s.unit for s in reconstruct_journeys(records)["P1"].stages] == ["B", "A"]


def test_open_and_negative_stays_are_dropped():
    records = [
        TransitRecord(patient_id="P1", unit="Triage", entry_time=BASE_TIME, exit_time=BASE_TIME + timedelta(minutes=30)),
        TransitRecord(patient_id="P1", unit="ICU", entry_time=BASE_TIME + timedelta(hours=1), exit_time=None),
        TransitRecord(patient_id="P1", unit="Radiology", entry_time=BASE_TIME + timedelta(hours=2),
                      exit_time=BASE_TIME + timedelta(hours=1)),
    ]
    journey = reconstruct_journeys(records)["P1"]
    assert [s.unit for s in journey.stages] == ["Triage"]
    assert journey.total_duration == pytest.approx(30)


def test_empty_input_returns_empty_mapping():
    assert reconstruct_journeys([]) == {}


def test_timezone_aware_times_are_normalised_to_utc():
    record = TransitRecord(
        patient_id="P1", unit="ER",
        entry_time=datetime(2024, 3, 4, 10, 0, tzinfo=timezone(timedelta(hours=2))),
        exit_time="2024-03-04T09:30:00+00:00",
    )
    assert record.entry_time == datetime(2024, 3, 4, 8, 0)
    assert record.entry_time.tzinfo is None
    journey = reconstruct_journeys([record])["P1"]
    assert journey.stages[0].duration_minutes == pytest.approx(90)


def test_stage_waits_first_stage_is_zero_and_overlaps_clamp():
    records = build_records("P1", [("Triage", 30, 0), ("Radiology", 20, 15)])
    records.append(TransitRecord(
        patient_id="P1", unit="Laboratory",
        entry_time=records[-1].exit_time - timedelta(minutes=5),
        exit_time=records[-1].exit_time + timedelta(minutes=20),
    ))
    journey = reconstruct_journeys(records)["P1"]
    assert stage_waits(journey) == [0.0, pytest.approx(15), 0.0]


def test_categorize_unit_falls_back_to_treatment():
    assert categorize_unit("Radiology") == UnitCategory.DIAGNOSTICS
    assert categorize_unit("ER") == UnitCategory.EMERGENCY
    assert categorize_unit("Basement Annex") == UnitCategory.TREATMENT


def test_categorize_unit_uses_supplied_map():
    site_map = {"Triage": "Emergency"}
    assert categorize_unit("Triage", site_map) == UnitCategory.EMERGENCY
    assert categorize_unit("Radiology", site_map) == UnitCategory.TREATMENT
    assert categorize_unit("Radiology", site_map, default_category="Recovery") == UnitCategory.RECOVERY


def test_reconstruct_journeys_uses_supplied_map():
    records = build_records("P1", [("Triage", 30, 0), ("Radiology", 20, 10)])
    stages = reconstruct_journeys(records, {"Triage": "Emergency"}, "Discharge")["P1"].stages
    assert [s.category for s in stages] == [UnitCategory.EMERGENCY, UnitCategory.DISCHARGE]


# --- Pipeline ---

def test_pipeline_rejects_non_dataframe():
    with pytest.raises(TypeError):
        TransitPipeline([{"patient_id": "P1"}])


def test_pipeline_rejects_unknown_record_types():
    with pytest.raises(TypeError):
        TransitPipeline.from_records([("P1", "ER")])


def test_pipeline_accepts_mappings_and_derives_durations():
    df = (
        TransitPipeline.from_records([
            {"patient_id": "P1", "unit": "ER", "entry_time": "2024-03-04 08:00", "exit_time": "2024-03-04 08:45"},
        ])
        .convert_date_columns()
        .add_durations()
        .get_df()
    )
    assert pd.api.types.is_datetime64_any_dtype(df["entry_time"])
    assert df.loc[0, "duration_minutes"] == pytest.approx(45)
