# flowsight/analytics/propagation.py
#
# Delay Propagation Analyzer
# Measures how much waiting accumulates between consecutive stages of a
# journey, aggregated per (source unit, target unit) transition.

import logging
from typing import Dict, Iterable, List, Optional, Tuple

try:
    from config.settings import settings, PropagationThresholds
    from data_processing.helpers import minutes_between
    from .models import DelayEdge, Journey
except ImportError as e:
    logging.basicConfig(level="CRITICAL")
    logging.critical(f"FATAL ERROR in propagation.py: A core dependency is missing. {e}", exc_info=True)
    raise

logger = logging.getLogger(__name__)


def iter_transition_waits(journeys: Iterable[Journey]) -> Iterable[Tuple[str, str, float]]:
    """Yields (source unit, target unit, wait minutes) for every consecutive stage pair."""
    for journey in journeys:
        for current, nxt in zip(journey.stages, journey.stages[1:]):
            yield current.unit, nxt.unit, minutes_between(current.exit_time, nxt.entry_time)


def analyze_delay_propagation(
    journeys: Iterable[Journey],
    thresholds: Optional[PropagationThresholds] = None
) -> List[DelayEdge]:
    """
    Aggregates significant inter-stage waits into delay edges.

    Only waits strictly longer than `min_wait_minutes` (5 by default) count.
    Strength is the average delay relative to `saturation_minutes`, so a
    60-minute average saturates at 100.

    Returns:
        DelayEdge values sorted by propagation strength, strongest first.
    """
    cfg = thresholds or settings.thresholds.propagation
    totals: Dict[Tuple[str, str], List[float]] = {}

    for source, target, wait in iter_transition_waits(journeys):
        if wait > cfg.min_wait_minutes:
            entry = totals.setdefault((source, target), [0.0, 0])
            entry[0] += wait
            entry[1] += 1

    edges = []
    for (source, target), (total_wait, count) in totals.items():
        avg_delay = total_wait / count
        strength = min(100.0, (avg_delay / cfg.saturation_minutes) * 100)
        edges.append(DelayEdge(
            source_unit=source,
            target_unit=target,
            avg_delay_minutes=avg_delay,
            patient_count=int(count),
            propagation_strength=strength,
        ))

    edges.sort(key=lambda e: e.propagation_strength, reverse=True)
    logger.info(f"Identified {len(edges)} delay propagation edges.")
    return edges
