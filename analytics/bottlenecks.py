# flowsight/analytics/bottlenecks.py
#
# Bottleneck Classifier
# Scores every unit against the global duration profile (z-score, IQR
# position, variance ratio, volume-relative load, downstream delay) and
# classifies it as an invisible, obvious or emerging bottleneck. Units that
# match none of the three rules are not reported at all.

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional

import numpy as np

try:
    from config.settings import settings, BottleneckThresholds, ExplanationThresholds
    from data_processing.helpers import minutes_between, safe_divide
    from .aggregation import calculate_duration_statistics, profile_global
    from .models import (
        BottleneckRecord, BottleneckType, Journey, LoadLevel, TimelinePoint, UnitProfile
    )
except ImportError as e:
    logging.basicConfig(level="CRITICAL")
    logging.critical(f"FATAL ERROR in bottlenecks.py: A core dependency is missing. {e}", exc_info=True)
    raise

logger = logging.getLogger(__name__)


@dataclass
class _UnitFlow:
    """Working accumulator for one unit; never leaves this module."""
    name: str
    times: List[float] = field(default_factory=list)
    volume: int = 0
    downstream_delays: Dict[str, float] = field(default_factory=dict)


# -----------------------------------------------------------------------------
# Statistical measures
# -----------------------------------------------------------------------------

def calculate_z_score(value: float, mean: float, std_dev: float) -> float:
    """Standard deviations between `value` and `mean`; 0 when std-dev is 0."""
    if std_dev == 0:
        return 0.0
    return (value - mean) / std_dev


def calculate_iqr_position(value: float, q1: float, q3: float, iqr: float) -> float:
    """Distance outside [q1, q3] normalized by the IQR; 0 inside the range or when IQR is 0."""
    if iqr == 0:
        return 0.0
    if value < q1:
        return (q1 - value) / iqr
    if value > q3:
        return (value - q3) / iqr
    return 0.0


def classify_load(volume_percentile: float, cfg: BottleneckThresholds) -> LoadLevel:
    if volume_percentile < cfg.low_load_below:
        return LoadLevel.LOW
    if volume_percentile < cfg.moderate_load_below:
        return LoadLevel.MODERATE
    return LoadLevel.HIGH


def classify_bottleneck(
    load_level: LoadLevel,
    delay_propagation_score: float,
    time_deviation: float,
    variance_ratio: float,
    congestion_indicator: float,
    cfg: BottleneckThresholds
) -> Optional[BottleneckType]:
    """
    Ordered, mutually exclusive decision rule; the first match wins.
    Returns None when the unit is not a bottleneck.
    """
    if load_level == LoadLevel.MODERATE and delay_propagation_score > cfg.invisible_min_propagation:
        return BottleneckType.INVISIBLE
    if load_level == LoadLevel.HIGH and time_deviation > cfg.obvious_min_deviation:
        return BottleneckType.OBVIOUS
    if variance_ratio > cfg.emerging_min_variance_ratio and congestion_indicator > cfg.emerging_min_congestion:
        return BottleneckType.EMERGING
    return None


# -----------------------------------------------------------------------------
# Flow accumulation
# -----------------------------------------------------------------------------

def _collect_unit_flows(journeys: List[Journey]) -> Dict[str, _UnitFlow]:
    """Per-unit durations, volume and the waits each unit hands to the next one."""
    flows: Dict[str, _UnitFlow] = {}
    for journey in journeys:
        for i, stage in enumerate(journey.stages):
            flow = flows.setdefault(stage.unit, _UnitFlow(name=stage.unit))
            flow.times.append(stage.duration_minutes)
            flow.volume += 1

            if i < len(journey.stages) - 1:
                nxt = journey.stages[i + 1]
                wait = minutes_between(stage.exit_time, nxt.entry_time)
                if wait > 0:
                    flow.downstream_delays[nxt.unit] = flow.downstream_delays.get(nxt.unit, 0.0) + wait
    return flows


# -----------------------------------------------------------------------------
# Narrative text
# -----------------------------------------------------------------------------

def generate_explanations(
    flow: _UnitFlow,
    metrics: Dict[str, float],
    load_level: LoadLevel,
    bottleneck_cfg: BottleneckThresholds,
    cfg: ExplanationThresholds
) -> Dict[str, object]:
    """Builds the why / who / downstream text from the same threshold crossings used for scoring."""
    reasons: List[str] = []
    patient_types: List[str] = []
    effects: List[str] = []

    if load_level == LoadLevel.MODERATE and metrics["delay_propagation_score"] > bottleneck_cfg.invisible_min_propagation:
        reasons.append(
            f"Despite moderate patient volume ({flow.volume} patients), this unit creates significant downstream delays"
        )
    if metrics["time_deviation"] > cfg.time_deviation:
        reasons.append(f"Processing time is {round(metrics['time_deviation'])}% longer than expected")
    if metrics["variance_ratio"] > cfg.variance_ratio:
        reasons.append(
            f"Processing time is highly inconsistent ({round(metrics['variance_ratio'] * 100)}% of the average variability)"
        )
    if metrics["z_score"] > cfg.z_score:
        reasons.append(
            f"Processing time is statistically abnormal ({abs(round(metrics['z_score'], 1))} standard deviations above average)"
        )
    if metrics["congestion_indicator"] > cfg.congestion:
        reasons.append("High congestion detected with unpredictable wait times")

    why = (". ".join(reasons) + ".") if reasons else \
        "This unit shows signs of operational inefficiency that impact patient flow."

    if flow.volume > cfg.high_volume_patients:
        patient_types.append("High-volume patients experiencing delays")
    elif flow.volume > cfg.moderate_volume_patients:
        patient_types.append("Moderate number of patients with extended wait times")
    else:
        patient_types.append("Critical pathway patients facing bottlenecks")

    if metrics["time_deviation"] > cfg.severe_time_deviation:
        patient_types.append("All patients experience significantly extended stays")
    elif metrics["time_deviation"] > cfg.time_deviation:
        patient_types.append("Most patients face longer-than-expected processing")
    if metrics["variance_ratio"] > cfg.variance_ratio:
        patient_types.append("Unpredictable wait times affect patient satisfaction")

    top_downstream = sorted(flow.downstream_delays.items(), key=lambda kv: kv[1], reverse=True)
    for unit, delay in top_downstream[:cfg.max_downstream_effects]:
        effects.append(f"{unit} experiences average {round(delay / flow.volume)} min delays per patient")
    if metrics["delay_propagation_score"] > cfg.cascading_propagation:
        effects.append("Delays cascade through multiple downstream units")
    if metrics["congestion_indicator"] > cfg.queuing_congestion:
        effects.append("Creates queuing effects that block bed availability")

    return {
        "why_bottleneck": why,
        "affected_patient_types": patient_types[:cfg.max_patient_types],
        "downstream_effects": effects or ["Limited downstream impact detected"],
    }


# -----------------------------------------------------------------------------
# Public API
# -----------------------------------------------------------------------------

def detect_bottlenecks(
    journeys: List[Journey],
    thresholds: Optional[BottleneckThresholds] = None,
    explanation_thresholds: Optional[ExplanationThresholds] = None,
    global_profile: Optional[UnitProfile] = None
) -> List[BottleneckRecord]:
    """
    Scores, classifies and ranks bottleneck units.

    Args:
        journeys: Reconstructed patient journeys.
        thresholds: Scoring and classification thresholds; defaults to settings.
        explanation_thresholds: Narrative thresholds; defaults to settings.
        global_profile: Pre-computed pooled profile, computed here if omitted.

    Returns:
        Bottlenecks sorted by overall score with dense ranks 1..N. Units with
        fewer than `min_samples` samples, or matching no classification rule,
        are excluded.
    """
    cfg = thresholds or settings.thresholds.bottleneck
    text_cfg = explanation_thresholds or settings.thresholds.explanation
    journeys = list(journeys)

    flows = _collect_unit_flows(journeys)
    if not flows:
        logger.warning("detect_bottlenecks received no journeys.")
        return []

    global_stats = global_profile or profile_global(journeys)
    mean_volume = float(np.mean([flow.volume for flow in flows.values()]))

    candidates = []
    for name, flow in flows.items():
        if len(flow.times) < cfg.min_samples:
            continue

        unit_stats = calculate_duration_statistics(flow.times, unit=name)
        expected_time = unit_stats.median
        actual_time = unit_stats.mean

        z_score = calculate_z_score(actual_time, global_stats.mean, global_stats.std_dev)
        iqr_position = calculate_iqr_position(actual_time, global_stats.q1, global_stats.q3, global_stats.iqr)
        variance_ratio = unit_stats.std_dev / global_stats.std_dev if global_stats.std_dev > 0 else 1.0
        time_deviation = safe_divide(actual_time - expected_time, expected_time) * 100

        # --- Delay propagation ---
        total_downstream = sum(flow.downstream_delays.values())
        downstream_units = [
            unit for unit, delay in flow.downstream_delays.items()
            if delay > unit_stats.mean * cfg.downstream_unit_ratio
        ]
        avg_downstream = safe_divide(total_downstream, len(flow.downstream_delays))
        delay_propagation_score = min(cfg.score_cap, safe_divide(avg_downstream, actual_time) * 100)

        # --- Patient impact ---
        volume_percentile = safe_divide(flow.volume, mean_volume) * 100
        patient_impact_score = (volume_percentile * cfg.volume_weight) + (abs(time_deviation) * cfg.deviation_weight)

        # --- Resource strain ---
        congestion_indicator = (
            safe_divide(unit_stats.std_dev, unit_stats.mean)
            if unit_stats.std_dev > unit_stats.mean * cfg.congestion_std_ratio else 0.0
        )
        resource_strain_score = min(
            cfg.score_cap,
            (congestion_indicator * cfg.congestion_weight)
            + (variance_ratio * cfg.variance_weight)
            + (abs(z_score) * cfg.z_score_weight)
        )

        overall_score = (
            (patient_impact_score * cfg.patient_impact_weight)
            + (delay_propagation_score * cfg.delay_propagation_weight)
            + (resource_strain_score * cfg.resource_strain_weight)
        )

        load_level = classify_load(volume_percentile, cfg)
        bottleneck_type = classify_bottleneck(
            load_level, delay_propagation_score, time_deviation, variance_ratio, congestion_indicator, cfg
        )
        if bottleneck_type is None:
            continue

        metrics = {
            "z_score": z_score,
            "variance_ratio": variance_ratio,
            "time_deviation": time_deviation,
            "delay_propagation_score": delay_propagation_score,
            "congestion_indicator": congestion_indicator,
        }
        candidates.append(dict(
            unit=name,
            bottleneck_type=bottleneck_type,
            expected_time=expected_time,
            actual_time=actual_time,
            time_deviation=time_deviation,
            z_score=z_score,
            iqr_position=iqr_position,
            variance_ratio=variance_ratio,
            patient_impact_score=patient_impact_score,
            delay_propagation_score=delay_propagation_score,
            resource_strain_score=resource_strain_score,
            overall_score=overall_score,
            patients_affected=flow.volume,
            downstream_units=downstream_units,
            load_level=load_level,
            congestion_indicator=congestion_indicator,
            **generate_explanations(flow, metrics, load_level, cfg, text_cfg),
        ))

    candidates.sort(key=lambda c: c["overall_score"], reverse=True)
    bottlenecks = [BottleneckRecord(rank=idx, **c) for idx, c in enumerate(candidates, start=1)]
    logger.info(f"Detected {len(bottlenecks)} bottlenecks across {len(flows)} units.")
    return bottlenecks


def bottleneck_timeline(
    journeys: List[Journey],
    thresholds: Optional[BottleneckThresholds] = None
) -> List[TimelinePoint]:
    """
    Congestion per unit per time window (4 hours by default), keyed on stage
    entry time. The score grows with volume, variability and mean duration.
    """
    cfg = thresholds or settings.thresholds.bottleneck
    windows: Dict[datetime, Dict[str, List[float]]] = {}

    for journey in journeys:
        for stage in journey.stages:
            entry = stage.entry_time
            slot_hour = (entry.hour // cfg.timeline_window_hours) * cfg.timeline_window_hours
            window_start = datetime(entry.year, entry.month, entry.day) + timedelta(hours=slot_hour)
            windows.setdefault(window_start, {}).setdefault(stage.unit, []).append(stage.duration_minutes)

    timeline = []
    for window_start, units in windows.items():
        for unit, times in units.items():
            stats = calculate_duration_statistics(times, unit=unit)
            congestion = stats.std_dev / (stats.mean or 1)
            timeline.append(TimelinePoint(
                window_start=window_start,
                unit=unit,
                congestion_level=congestion,
                bottleneck_score=len(times) * congestion * (stats.mean / 60),
            ))

    timeline.sort(key=lambda p: p.window_start)
    return timeline
