# flowsight/tests/conftest.py
#
# Shared fixtures: small synthetic transit and admission snapshots built from
# (unit, minutes in unit, minutes waited before entering) tuples, plus a
# factory for hand-built bottleneck records.

from datetime import datetime, timedelta
from typing import List, Sequence, Tuple

import pytest

from analytics.models import AdmissionRecord, BottleneckRecord, BottleneckType, LoadLevel, TransitRecord
from analytics.journeys import reconstruct_journeys

BASE_TIME = datetime(2024, 3, 4, 8, 0)  # a Monday


def build_records(
    patient_id: str,
    steps: Sequence[Tuple[str, float, float]],
    start: datetime = BASE_TIME
) -> List[TransitRecord]:
    """One TransitRecord per (unit, duration, wait-before) step, back to back."""
    records = []
    cursor = start
    for unit, duration, wait in steps:
        entry = cursor + timedelta(minutes=wait)
        exit_ = entry + timedelta(minutes=duration)
        records.append(TransitRecord(patient_id=patient_id, unit=unit, entry_time=entry, exit_time=exit_))
        cursor = exit_
    return records


def make_bottleneck(unit: str, **overrides) -> BottleneckRecord:
    """A BottleneckRecord with neutral scores; pass only the fields a test cares about."""
    fields = dict(
        unit=unit, rank=1, bottleneck_type=BottleneckType.OBVIOUS, expected_time=60.0, actual_time=60.0,
        time_deviation=0.0, z_score=0.0, iqr_position=0.0, variance_ratio=1.0, patient_impact_score=0.0,
        delay_propagation_score=0.0, resource_strain_score=0.0, overall_score=0.0, patients_affected=10,
        downstream_units=[], why_bottleneck="", affected_patient_types=[], downstream_effects=[],
        load_level=LoadLevel.HIGH, congestion_indicator=0.0,
    )
    fields.update(overrides)
    return BottleneckRecord(**fields)


@pytest.fixture
def radiology_records() -> List[TransitRecord]:
    """Three single-stage Radiology journeys lasting 30, 90 and 150 minutes."""
    records = []
    for i, minutes in enumerate([30, 90, 150]):
        records += build_records(f"R{i}", [("Radiology", minutes, 0)], start=BASE_TIME + timedelta(days=i))
    return records


@pytest.fixture
def ward_records() -> List[TransitRecord]:
    """
    Triage is uniform, Radiology and Laboratory are skewed by one slow
    patient, Pharmacy only has two samples.
    """
    return (
        build_records("P1", [("Triage", 30, 0), ("Radiology", 10, 20), ("Laboratory", 20, 15)])
        + build_records("P2", [("Triage", 30, 0), ("Radiology", 10, 45), ("Laboratory", 20, 10),
                               ("Pharmacy", 5, 5)], start=BASE_TIME + timedelta(hours=1))
        + build_records("P3", [("Triage", 30, 0), ("Radiology", 200, 90), ("Laboratory", 100, 30),
                               ("Pharmacy", 500, 8)], start=BASE_TIME + timedelta(hours=2))
    )


@pytest.fixture
def ward_journeys(ward_records):
    return list(reconstruct_journeys(ward_records).values())


@pytest.fixture
def ward_admissions() -> List[AdmissionRecord]:
    return [
        AdmissionRecord(record_id="A1", patient_id="P1", admission_date=datetime(2024, 3, 4, 7),
                        discharge_date=datetime(2024, 3, 6, 7)),
        AdmissionRecord(record_id="A2", patient_id="P2", admission_date=datetime(2024, 3, 4, 8),
                        discharge_date=datetime(2024, 3, 5, 8)),
        AdmissionRecord(record_id="A3", patient_id="P3", admission_date=datetime(2024, 3, 4, 9),
                        discharge_date=datetime(2024, 3, 8, 9)),
    ]
