# flowsight/data_processing/helpers.py
#
# Core Numeric Utilities
# Small, dependency-light helpers shared by the pipeline and the analytics
# modules: half-up rounding, guarded division and timestamp deltas.

import logging
import math
from datetime import datetime
from typing import Any, Iterable, List, Optional

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

_SECONDS_PER_MINUTE = 60.0
_SECONDS_PER_DAY = 24 * 3600.0


def round_half_up(value: float, digits: int = 0) -> float:
    """
    Rounds halves upward (2.5 -> 3, -2.5 -> -2), which is how reported
    figures are rounded. The built-in `round` uses banker's rounding.
    """
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    """Divides, returning `default` when the denominator is zero or not finite."""
    if denominator == 0 or not np.isfinite(denominator):
        return default
    return numerator / denominator


def minutes_between(start: Any, end: Any) -> float:
    """Signed number of minutes from `start` to `end`."""
    return (pd.Timestamp(end) - pd.Timestamp(start)).total_seconds() / _SECONDS_PER_MINUTE


def days_between(start: Any, end: Any) -> float:
    """Signed number of days (fractional) from `start` to `end`."""
    return (pd.Timestamp(end) - pd.Timestamp(start)).total_seconds() / _SECONDS_PER_DAY


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalizes tz-aware datetimes to naive UTC; naive values pass through."""
    if value is None or value.tzinfo is None:
        return value
    return pd.Timestamp(value).tz_convert("UTC").tz_localize(None).to_pydatetime()


def population_std(values: Iterable[float]) -> float:
    """Population standard deviation (divide by n); 0.0 for empty input."""
    arr = np.asarray(list(values), dtype=float)
    if arr.size == 0:
        return 0.0
    return float(np.std(arr))


def dedupe_preserving_order(items: Iterable[str]) -> List[str]:
    """Drops repeated strings, keeping first occurrences in place."""
    return list(dict.fromkeys(items))
