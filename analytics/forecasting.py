# flowsight/analytics/forecasting.py
#
# Demand & Capacity Forecasting Engine
# Projects daily admission volume (exponential smoothing + least-squares trend
# + weekly seasonality), predicts which units are heading for a bottleneck, and
# extrapolates bed and staff demand to surface capacity gaps.

import logging
import math
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional

import numpy as np
import pandas as pd
from scipy import stats

try:
    from config.settings import settings, CapacityConfig, ForecastConfig, UnitPredictionThresholds
    from data_processing.helpers import days_between, population_std, round_half_up
    from .journeys import stage_waits
    from .models import (
        AdmissionRecord, BottleneckPrediction, CapacityRisk, ForecastPoint, Journey,
        ResourceShortageWarning, RiskLevel, TrendLabel
    )
except ImportError as e:
    logging.basicConfig(level="CRITICAL")
    logging.critical(f"FATAL ERROR in forecasting.py: A core dependency is missing. {e}", exc_info=True)
    raise

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Time-series primitives
# -----------------------------------------------------------------------------

def daily_admission_counts(admissions: Iterable[AdmissionRecord]) -> pd.Series:
    """Admissions per calendar day, for days with at least one admission, in date order."""
    dates = pd.Series([a.admission_date for a in admissions], dtype="datetime64[ns]")
    if dates.empty:
        return pd.Series(dtype=float)
    return dates.dt.normalize().value_counts().sort_index().astype(float)


def exponential_smoothing(values: pd.Series, alpha: float) -> pd.Series:
    """smoothed[0] = raw[0]; smoothed[i] = alpha * raw[i] + (1 - alpha) * smoothed[i-1]."""
    return values.ewm(alpha=alpha, adjust=False).mean()


def linear_trend(values: pd.Series) -> float:
    """Least-squares slope of the series against its index position (0 for fewer than 2 points)."""
    if len(values) < 2:
        return 0.0
    slope = stats.linregress(np.arange(len(values)), values.to_numpy()).slope
    return 0.0 if np.isnan(slope) else float(slope)


def _trend_label(slope: float, threshold: float) -> TrendLabel:
    if slope > threshold:
        return TrendLabel.INCREASING
    if slope < -threshold:
        return TrendLabel.DECREASING
    return TrendLabel.STABLE


def _weekly_factor(day: int, amplitude: float, season_length: int) -> float:
    return 1 + amplitude * math.sin(2 * math.pi * day / season_length)


# -----------------------------------------------------------------------------
# Admission forecast
# -----------------------------------------------------------------------------

def forecast_admissions(
    admissions: Iterable[AdmissionRecord],
    days: Optional[int] = None,
    config: Optional[ForecastConfig] = None
) -> List[ForecastPoint]:
    """
    Forecasts daily admissions for the `days` following the last observed day.

    Args:
        admissions: Admission records; only `admission_date` is used.
        days: Forecast horizon; defaults to `config.default_horizon_days`.
        config: Forecast parameters; defaults to settings.

    Returns:
        One ForecastPoint per future day, or an empty list without history.
    """
    cfg = config or settings.thresholds.forecast
    horizon = cfg.default_horizon_days if days is None else days
    logger.info(f"Generating {horizon}-day admission forecast...")

    daily = daily_admission_counts(admissions)
    if daily.empty:
        logger.warning("Forecasting input series is empty.")
        return []

    smoothed = exponential_smoothing(daily, cfg.smoothing_alpha)
    slope = linear_trend(smoothed)
    last_smoothed = float(smoothed.iloc[-1])
    spread = cfg.confidence_z * population_std(daily)
    trend = _trend_label(slope, cfg.trend_threshold)
    last_date = daily.index[-1].date()

    forecasts = []
    for i in range(1, horizon + 1):
        seasonal = _weekly_factor(i, cfg.seasonal_amplitude, cfg.season_length_days)
        predicted = int(round_half_up(max(0.0, (last_smoothed + slope * i) * seasonal)))
        forecasts.append(ForecastPoint(
            forecast_date=last_date + timedelta(days=i),
            predicted=predicted,
            lower=int(max(0.0, round_half_up(predicted - spread))),
            upper=int(round_half_up(predicted + spread)),
            trend=trend,
        ))
    return forecasts


# -----------------------------------------------------------------------------
# Per-unit bottleneck prediction
# -----------------------------------------------------------------------------

def _prediction_tier(frequency: float, avg_delay: float, cfg: UnitPredictionThresholds) -> RiskLevel:
    if frequency >= cfg.critical_frequency and avg_delay > cfg.critical_avg_delay:
        return RiskLevel.CRITICAL
    if frequency >= cfg.high_frequency or avg_delay > cfg.high_avg_delay:
        return RiskLevel.HIGH
    if frequency >= cfg.medium_frequency or avg_delay > cfg.medium_avg_delay:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def predict_unit_bottlenecks(
    journeys: List[Journey],
    as_of: Optional[date] = None,
    thresholds: Optional[UnitPredictionThresholds] = None
) -> List[BottleneckPrediction]:
    """
    Forward-looking bottleneck risk per unit, from how often patients waited
    more than an hour before entering it and how peaked its hourly arrivals are.
    """
    cfg = thresholds or settings.thresholds.unit_prediction
    as_of = as_of or date.today()

    totals: Dict[str, int] = {}
    delays: Dict[str, List[float]] = {}
    hourly: Dict[str, Dict[int, int]] = {}
    for journey in journeys:
        for stage, wait in zip(journey.stages, stage_waits(journey)):
            totals[stage.unit] = totals.get(stage.unit, 0) + 1
            if wait > cfg.delay_minutes:
                delays.setdefault(stage.unit, []).append(wait)
            unit_hours = hourly.setdefault(stage.unit, {})
            unit_hours[stage.entry_time.hour] = unit_hours.get(stage.entry_time.hour, 0) + 1

    predictions = []
    for unit, total in totals.items():
        unit_delays = delays.get(unit, [])
        avg_delay = float(np.mean(unit_delays)) if unit_delays else 0.0
        frequency = len(unit_delays) / total
        max_peak = max(hourly[unit].values())
        peak_ratio = max_peak / (total / max(1, len(hourly[unit])))

        level = _prediction_tier(frequency, avg_delay, cfg)
        if peak_ratio > cfg.peak_ratio_pattern:
            pattern = "Peak hour congestion pattern"
        elif frequency > cfg.high_frequency:
            pattern = "Consistent delay pattern"
        else:
            pattern = "Capacity constraint pattern"

        if level == RiskLevel.CRITICAL:
            recommendation = f"Immediate action required: Add {math.ceil(max_peak * cfg.critical_staff_share)} staff during peak hours"
        elif level == RiskLevel.HIGH:
            recommendation = f"Schedule additional resources: Consider {math.ceil(max_peak * cfg.high_staff_share)} extra staff"
        elif level == RiskLevel.MEDIUM:
            recommendation = "Monitor closely and prepare contingency staffing"
        else:
            recommendation = "Continue normal operations with routine monitoring"

        predictions.append(BottleneckPrediction(
            unit=unit,
            unit_id="_".join(unit.lower().split()),
            risk_level=level,
            predicted_date=as_of + timedelta(days=cfg.lead_days[level.value]),
            probability=cfg.probabilities[level.value],
            expected_impact=round_half_up(avg_delay * frequency),
            delay_frequency=frequency,
            avg_delay_minutes=avg_delay,
            peak_hour_ratio=peak_ratio,
            historical_pattern=pattern,
            recommendation=recommendation,
        ))

    predictions.sort(key=lambda p: p.probability, reverse=True)
    logger.info(f"Generated bottleneck predictions for {len(predictions)} units.")
    return predictions


# -----------------------------------------------------------------------------
# Capacity & resource shortage projection
# -----------------------------------------------------------------------------

def _utilization_tier(utilization: float, cfg: CapacityConfig) -> RiskLevel:
    if utilization >= cfg.utilization_critical:
        return RiskLevel.CRITICAL
    if utilization >= cfg.utilization_high:
        return RiskLevel.HIGH
    if utilization >= cfg.utilization_medium:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def predict_capacity_risks(
    journeys: List[Journey],
    days: int = 30,
    as_of: Optional[date] = None,
    config: Optional[CapacityConfig] = None
) -> List[CapacityRisk]:
    """
    Projects each unit's daily arrivals against an assumed capacity of
    `peak_capacity_factor` x its busiest historical day. Weekly checkpoints and
    every high or critical day are reported, most severe first.
    """
    cfg = config or settings.thresholds.capacity
    as_of = as_of or date.today()

    daily: Dict[str, Dict[date, int]] = {}
    for journey in journeys:
        for stage in journey.stages:
            unit_days = daily.setdefault(stage.unit, {})
            day = stage.entry_time.date()
            unit_days[day] = unit_days.get(day, 0) + 1

    risks = []
    for unit, counts in daily.items():
        avg_load = float(np.mean(list(counts.values())))
        capacity = max(1, int(round_half_up(max(counts.values()) * cfg.peak_capacity_factor)))

        for day in range(1, days + 1):
            seasonal = _weekly_factor(day, cfg.seasonal_amplitude, 7)
            trend = 1 + cfg.monthly_trend * (day / 30)
            demand = int(round_half_up(avg_load * seasonal * trend))
            utilization = demand / capacity * 100
            level = _utilization_tier(utilization, cfg)

            if day % 7 == 0 or level in (RiskLevel.HIGH, RiskLevel.CRITICAL):
                risks.append(CapacityRisk(
                    risk_date=as_of + timedelta(days=day),
                    unit=unit,
                    current_capacity=capacity,
                    predicted_demand=demand,
                    utilization_rate=utilization,
                    risk_level=level,
                ))

    risks.sort(key=lambda r: r.risk_level.order, reverse=True)
    return risks


def _shortage_severity(shortage: int, current: int) -> RiskLevel:
    if shortage > current * 0.3:
        return RiskLevel.CRITICAL
    if shortage > current * 0.2:
        return RiskLevel.HIGH
    if shortage > current * 0.1:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def predict_resource_shortages(
    journeys: List[Journey],
    admissions: Iterable[AdmissionRecord] = (),
    as_of: Optional[date] = None,
    config: Optional[CapacityConfig] = None
) -> List[ResourceShortageWarning]:
    """
    Extrapolates each unit's patient count with a fixed growth rate and
    compares the beds and staff it would need with what its current volume
    implies. Average LOS, when admissions are supplied, sizes the alternative
    "reduce LOS" recommendation.
    """
    cfg = config or settings.thresholds.capacity
    as_of = as_of or date.today()

    los_by_patient: Dict[str, List[float]] = {}
    for admission in admissions:
        if admission.discharge_date is not None:
            los = days_between(admission.admission_date, admission.discharge_date)
            los_by_patient.setdefault(admission.patient_id, []).append(los)

    patients_by_unit: Dict[str, set] = {}
    for journey in journeys:
        for stage in journey.stages:
            patients_by_unit.setdefault(stage.unit, set()).add(journey.patient_id)

    warnings = []
    for unit, patients in patients_by_unit.items():
        count = len(patients)
        unit_los = [los for pid in patients for los in los_by_patient.get(pid, [])]
        avg_los = float(np.mean(unit_los)) if unit_los else 0.0
        projected = int(round_half_up(count * (1 + cfg.growth_rate)))

        current_beds = math.ceil(count * cfg.current_beds_per_patient)
        required_beds = math.ceil(projected * cfg.beds_per_projected_patient)
        if required_beds > current_beds:
            gap = required_beds - current_beds
            warnings.append(ResourceShortageWarning(
                resource_type="beds",
                unit=unit,
                shortage_date=as_of + timedelta(days=cfg.bed_shortage_lead_days),
                severity=_shortage_severity(gap, current_beds),
                estimated_gap=gap,
                recommendation=(
                    f"Add {gap} beds or reduce average LOS by "
                    f"{round_half_up(avg_los * cfg.los_reduction_share, 1)} days"
                ),
            ))

        current_staff = math.ceil(count / cfg.patients_per_current_staff)
        required_staff = math.ceil(projected / cfg.patients_per_required_staff)
        if required_staff > current_staff:
            gap = required_staff - current_staff
            warnings.append(ResourceShortageWarning(
                resource_type="staff",
                unit=unit,
                shortage_date=as_of + timedelta(days=cfg.staff_shortage_lead_days),
                severity=RiskLevel.HIGH if gap > cfg.staff_high_gap else RiskLevel.MEDIUM,
                estimated_gap=gap,
                recommendation=f"Recruit {gap} additional staff members or implement flexible scheduling",
            ))

    warnings.sort(key=lambda w: w.severity.order, reverse=True)
    logger.info(f"Projected {len(warnings)} resource shortage warnings.")
    return warnings
