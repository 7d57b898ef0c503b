# flowsight/analytics/aggregation.py
#
# Department Statistics Profiler
# Descriptive statistics over stage durations, computed once globally (pooling
# every stage) and once per unit. Quartiles use the simple order-statistic
# method: the sample at index floor(p * n) of the sorted values. This is the
# chosen method, not an approximation of an interpolated quantile, and it is
# what the bottleneck thresholds are calibrated against.

import logging
from typing import Dict, Iterable, List, Optional

import numpy as np

try:
    from .models import Journey, UnitProfile
except ImportError as e:
    logging.basicConfig(level="CRITICAL")
    logging.critical(f"FATAL ERROR in aggregation.py: A core dependency is missing. {e}", exc_info=True)
    raise

logger = logging.getLogger(__name__)

GLOBAL_PROFILE_NAME = "__all__"


def _order_statistic(sorted_values: np.ndarray, fraction: float) -> float:
    return float(sorted_values[int(np.floor(len(sorted_values) * fraction))])


def calculate_duration_statistics(samples: Iterable[float], unit: str = GLOBAL_PROFILE_NAME) -> UnitProfile:
    """
    Computes mean, median, quartiles, IQR, population variance and standard
    deviation for a set of duration samples.

    Args:
        samples: Durations in minutes.
        unit: Name recorded on the resulting profile.

    Returns:
        A UnitProfile. Empty input yields an all-zero profile rather than an error.
    """
    values = np.asarray(list(samples), dtype=float)
    if values.size == 0:
        return UnitProfile(
            unit=unit, sample_count=0, samples=[], mean=0.0, median=0.0,
            q1=0.0, q3=0.0, iqr=0.0, variance=0.0, std_dev=0.0
        )

    sorted_values = np.sort(values)
    q1 = _order_statistic(sorted_values, 0.25)
    q3 = _order_statistic(sorted_values, 0.75)
    variance = float(np.var(values))  # population variance, divides by n

    return UnitProfile(
        unit=unit,
        sample_count=int(values.size),
        samples=values.tolist(),
        mean=float(np.mean(values)),
        median=_order_statistic(sorted_values, 0.5),
        q1=q1,
        q3=q3,
        iqr=q3 - q1,
        variance=variance,
        std_dev=float(np.sqrt(variance)),
    )


def collect_unit_samples(journeys: Iterable[Journey], unit: Optional[str] = None) -> Dict[str, List[float]]:
    """Gathers stage durations per unit, in order of first appearance."""
    samples: Dict[str, List[float]] = {}
    for journey in journeys:
        for stage in journey.stages:
            if unit is not None and stage.unit != unit:
                continue
            samples.setdefault(stage.unit, []).append(stage.duration_minutes)
    return samples


def profile_units(journeys: Iterable[Journey], unit: Optional[str] = None) -> Dict[str, UnitProfile]:
    """
    Builds a UnitProfile for every unit seen in the journeys, or only for
    `unit` when a targeted query is made.
    """
    samples = collect_unit_samples(journeys, unit=unit)
    profiles = {name: calculate_duration_statistics(values, unit=name) for name, values in samples.items()}
    logger.debug(f"Profiled {len(profiles)} units.")
    return profiles


def profile_global(journeys: Iterable[Journey]) -> UnitProfile:
    """Pools every stage of every journey into one baseline profile."""
    pooled = [stage.duration_minutes for journey in journeys for stage in journey.stages]
    if not pooled:
        logger.warning("profile_global received no stages; returning an all-zero profile.")
    return calculate_duration_statistics(pooled, unit=GLOBAL_PROFILE_NAME)
