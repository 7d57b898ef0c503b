# flowsight/data_processing/pipeline.py
#
# Fluent Transit-Record Pipeline
# A chainable class that turns a collection of TransitRecord values into a
# typed pandas DataFrame with derived stage durations, ready for journey
# reconstruction.

import logging
from typing import Any, Iterable, List

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

TRANSIT_COLUMNS: List[str] = ["patient_id", "unit", "entry_time", "exit_time", "process_type"]


class TransitPipeline:
    """
    A fluent interface for preparing transit records for analysis.
    Each step returns the pipeline itself so steps can be chained:

        df = (TransitPipeline.from_records(records)
              .convert_date_columns()
              .add_durations()
              .drop_incomplete()
              .drop_negative_durations()
              .sort_chronologically()
              .get_df())
    """
    def __init__(self, df: pd.DataFrame):
        if not isinstance(df, pd.DataFrame):
            raise TypeError("TransitPipeline must be initialized with a pandas DataFrame.")
        self._df = df.copy()

    @classmethod
    def from_records(cls, records: Iterable[Any]) -> 'TransitPipeline':
        """
        Builds a pipeline from transit records, preserving input order.
        Records may be pydantic models (anything with `model_dump`) or mappings
        keyed by the transit column names.
        """
        rows = []
        for record in records:
            if hasattr(record, "model_dump"):
                rows.append(record.model_dump())
            elif isinstance(record, dict):
                rows.append(record)
            else:
                raise TypeError(f"Expected a transit record, got {type(record).__name__}.")
        df = pd.DataFrame(rows, columns=TRANSIT_COLUMNS)
        # Keeps the input position so ties in entry time can retain input order.
        df["input_order"] = np.arange(len(df))
        return cls(df)

    def get_df(self) -> pd.DataFrame:
        """Returns the processed DataFrame."""
        return self._df

    def convert_date_columns(self, date_columns: List[str] = None, errors: str = 'coerce') -> 'TransitPipeline':
        """Converts entry/exit (or the given) columns to datetime64."""
        for col in date_columns or ["entry_time", "exit_time"]:
            if col in self._df.columns:
                self._df[col] = pd.to_datetime(self._df[col], errors=errors)
            else:
                logger.warning(f"Date conversion skipped: Column '{col}' not found.")
        return self

    def add_durations(self) -> 'TransitPipeline':
        """Adds `duration_minutes` = exit - entry; NaN where the stay is still open."""
        if self._df.empty:
            self._df["duration_minutes"] = pd.Series(dtype=float)
            return self
        delta = self._df["exit_time"] - self._df["entry_time"]
        self._df["duration_minutes"] = delta.dt.total_seconds() / 60.0
        return self

    def drop_incomplete(self) -> 'TransitPipeline':
        """Removes rows without a patient, an entry time or an exit time."""
        before = len(self._df)
        self._df = self._df.dropna(subset=["patient_id", "entry_time", "exit_time"])
        dropped = before - len(self._df)
        if dropped:
            logger.debug(f"Dropped {dropped} open or incomplete transit records.")
        return self

    def drop_negative_durations(self) -> 'TransitPipeline':
        """Removes stays whose exit precedes their entry."""
        before = len(self._df)
        self._df = self._df[self._df["duration_minutes"] >= 0]
        dropped = before - len(self._df)
        if dropped:
            logger.warning(f"Dropped {dropped} transit records with negative duration.")
        return self

    def sort_chronologically(self) -> 'TransitPipeline':
        """Stable sort by entry time; equal entry times keep input order."""
        self._df = self._df.sort_values(["entry_time", "input_order"], kind="mergesort")
        return self
