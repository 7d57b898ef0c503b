# flowsight/data_processing/__init__.py
#
# Data Processing Package API
# This file initializes the data_processing package and defines its public API:
# the fluent transit-record pipeline and the numeric helpers shared by the
# analytics modules.

"""
Initializes the data_processing package, making key functions and classes
available at the top level for easier, cleaner imports in other modules.
"""

# --- Data Preparation ---
# The TransitPipeline provides a fluent (chainable) interface for turning
# transit records into a typed, duration-enriched DataFrame.
from .pipeline import TransitPipeline, TRANSIT_COLUMNS

# --- Numeric Helpers ---
from .helpers import (
    round_half_up,
    safe_divide,
    minutes_between,
    days_between,
    to_naive_utc,
    population_std,
    dedupe_preserving_order
)


__all__ = [
    # --- Preparation ---
    "TransitPipeline",
    "TRANSIT_COLUMNS",

    # --- Helpers ---
    "round_half_up",
    "safe_divide",
    "minutes_between",
    "days_between",
    "to_naive_utc",
    "population_std",
    "dedupe_preserving_order",
]
