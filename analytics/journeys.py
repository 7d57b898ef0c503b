# flowsight/analytics/journeys.py
#
# Journey Reconstructor
# Groups transit records by patient, orders each patient's stays by entry time
# and derives stage durations. Every call builds fresh Journey objects; nothing
# is shared between analysis runs.

import logging
from typing import Dict, Iterable, List, Optional

import pandas as pd

try:
    from config.settings import settings
    from data_processing.helpers import minutes_between
    from data_processing.pipeline import TransitPipeline
    from .models import Journey, Stage, TransitRecord, UnitCategory
except ImportError as e:
    logging.basicConfig(level="CRITICAL")
    logging.critical(f"FATAL ERROR in journeys.py: A core dependency is missing. {e}", exc_info=True)
    raise

logger = logging.getLogger(__name__)


def categorize_unit(
    unit_name: str,
    category_map: Optional[Dict[str, str]] = None,
    default_category: Optional[str] = None
) -> UnitCategory:
    """Maps a unit name onto the fixed category taxonomy (Treatment if unknown)."""
    categories = settings.unit_categories if category_map is None else category_map
    fallback = default_category or settings.default_unit_category
    category = categories.get(unit_name, fallback)
    return UnitCategory(category)


def prepare_transit_frame(records: Iterable[TransitRecord]) -> pd.DataFrame:
    """Runs the standard cleaning pipeline and returns chronologically sorted stays."""
    return (
        TransitPipeline.from_records(records)
        .convert_date_columns()
        .add_durations()
        .drop_incomplete()
        .drop_negative_durations()
        .sort_chronologically()
        .get_df()
    )


def reconstruct_journeys(
    records: Iterable[TransitRecord],
    category_map: Optional[Dict[str, str]] = None,
    default_category: Optional[str] = None
) -> Dict[str, Journey]:
    """
    Rebuilds each patient's journey from an unordered collection of records.

    Records without an exit time are skipped and negative durations are
    dropped. Stages are sorted by entry time; stays with identical entry times
    keep their input order.

    Args:
        records: TransitRecord values, already filtered by the caller.
        category_map: Unit name to category name; defaults to the configured map.
        default_category: Category for units missing from the map.

    Returns:
        A mapping of patient id to Journey, in order of each patient's
        earliest stage.
    """
    df = prepare_transit_frame(records)
    if df.empty:
        logger.warning("reconstruct_journeys received no usable transit records.")
        return {}

    journeys: Dict[str, Journey] = {}
    for patient_id, group in df.groupby("patient_id", sort=False):
        stages = [
            Stage(
                unit=row.unit,
                category=categorize_unit(row.unit, category_map, default_category),
                entry_time=row.entry_time.to_pydatetime(),
                exit_time=row.exit_time.to_pydatetime(),
                duration_minutes=float(row.duration_minutes),
            )
            for row in group.itertuples(index=False)
        ]
        journeys[str(patient_id)] = Journey(
            patient_id=str(patient_id),
            stages=stages,
            total_duration=sum(stage.duration_minutes for stage in stages),
        )

    logger.info(f"Reconstructed {len(journeys)} journeys from {len(df)} stages.")
    return journeys


def journeys_as_list(records: Iterable[TransitRecord]) -> List[Journey]:
    """Flattened variant of `reconstruct_journeys` for per-journey consumers."""
    return list(reconstruct_journeys(records).values())


def stage_waits(journey: Journey) -> List[float]:
    """
    Minutes each stage waited after the previous stage's exit. The first stage
    has no predecessor and overlapping stays count as no wait.
    """
    waits = [0.0] if journey.stages else []
    for previous, current in zip(journey.stages, journey.stages[1:]):
        waits.append(max(0.0, minutes_between(previous.exit_time, current.entry_time)))
    return waits
