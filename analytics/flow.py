# flowsight/analytics/flow.py
#
# Patient-flow summaries: per-unit processing delays, the most common
# unit-to-unit paths, each unit's share of total journey time, and a short list
# of plain-language insights derived from them.

import logging
from typing import Dict, List, Optional

try:
    from config.settings import settings, FlowInsightThresholds
    from data_processing.helpers import safe_divide
    from .aggregation import calculate_duration_statistics, collect_unit_samples
    from .models import (
        DepartmentDelay, FlowInsight, FlowPath, Journey, TimeContribution, UnitCategory
    )
except ImportError as e:
    logging.basicConfig(level="CRITICAL")
    logging.critical(f"FATAL ERROR in flow.py: A core dependency is missing. {e}", exc_info=True)
    raise

logger = logging.getLogger(__name__)

_SEVERITY_ORDER = {"high": 3, "medium": 2, "low": 1}


def department_delays(
    journeys: List[Journey],
    thresholds: Optional[FlowInsightThresholds] = None
) -> List[DepartmentDelay]:
    """
    Per-unit delay ratio (mean / median), variance, queue build-up and share of
    total flow time, most delayed units first.
    """
    cfg = thresholds or settings.thresholds.flow
    samples = collect_unit_samples(journeys)
    categories = {stage.unit: stage.category for journey in journeys for stage in journey.stages}
    total_flow_time = sum(j.total_duration for j in journeys)

    delays = []
    for unit, times in samples.items():
        stats = calculate_duration_statistics(times, unit=unit)
        delay_ratio = stats.mean / stats.median if stats.median > 0 else 1.0
        queue_buildup = safe_divide(stats.variance, stats.mean) if stats.variance > stats.mean * cfg.queue_variance_ratio else 0.0
        delays.append(DepartmentDelay(
            unit=unit,
            category=categories[unit],
            median_time=stats.median,
            actual_avg_time=stats.mean,
            delay_ratio=delay_ratio,
            variance=stats.variance,
            queue_buildup=queue_buildup,
            impact_on_los=safe_divide(sum(times), total_flow_time) * 100,
            patient_count=stats.sample_count,
        ))

    delays.sort(key=lambda d: d.delay_ratio, reverse=True)
    return delays


def flow_paths(journeys: List[Journey], unit: Optional[str] = None) -> List[FlowPath]:
    """
    Counts consecutive unit transitions. With `unit`, only transitions touching
    that unit are kept. Average duration is that of the target stage.
    """
    paths: Dict[tuple, List[float]] = {}
    for journey in journeys:
        for current, nxt in zip(journey.stages, journey.stages[1:]):
            if unit and unit not in (current.unit, nxt.unit):
                continue
            entry = paths.setdefault((current.unit, nxt.unit), [0, 0.0])
            entry[0] += 1
            entry[1] += nxt.duration_minutes

    result = [
        FlowPath(source_unit=src, target_unit=tgt, count=count, avg_duration=total / count)
        for (src, tgt), (count, total) in paths.items()
    ]
    result.sort(key=lambda p: p.count, reverse=True)
    return result


def time_contributions(journeys: List[Journey]) -> List[TimeContribution]:
    """Share of all stage time spent in each unit, largest share first."""
    samples = collect_unit_samples(journeys)
    grand_total = sum(sum(times) for times in samples.values())

    contributions = [
        TimeContribution(
            unit=unit,
            avg_time=sum(times) / len(times),
            percentage=safe_divide(sum(times), grand_total) * 100,
            patient_count=len(times),
        )
        for unit, times in samples.items()
    ]
    contributions.sort(key=lambda c: c.percentage, reverse=True)
    return contributions


def category_time_breakdown(journeys: List[Journey]) -> Dict[str, float]:
    """Total stage minutes per unit category."""
    breakdown = {category.value: 0.0 for category in UnitCategory}
    for journey in journeys:
        for stage in journey.stages:
            breakdown[stage.category.value] += stage.duration_minutes
    return breakdown


def generate_flow_insights(
    journeys: List[Journey],
    thresholds: Optional[FlowInsightThresholds] = None
) -> List[FlowInsight]:
    """Plain-language findings on delays, variance, queues and long journeys, high severity first."""
    cfg = thresholds or settings.thresholds.flow
    if not journeys:
        logger.warning("generate_flow_insights received no journeys.")
        return []

    delays = department_delays(journeys, cfg)
    contributions = {c.unit: c for c in time_contributions(journeys)}
    insights: List[FlowInsight] = []

    for delay in delays:
        if delay.patient_count < cfg.min_patients:
            continue

        if delay.delay_ratio > cfg.delay_ratio:
            insights.append(FlowInsight(
                insight_type="delay",
                severity="high" if delay.delay_ratio > cfg.severe_delay_ratio else "medium",
                title=f"{delay.unit} Processing Delays",
                description=(
                    f"{delay.unit} takes {round((delay.delay_ratio - 1) * 100)}% longer than median "
                    f"({round(delay.median_time)} min). Average processing time: {round(delay.actual_avg_time)} min."
                ),
                unit=delay.unit,
                metric=delay.delay_ratio,
            ))
            contrib = contributions.get(delay.unit)
            if (contrib and contrib.percentage < cfg.disproportionate_max_share
                    and delay.impact_on_los > cfg.disproportionate_min_los_impact):
                insights.append(FlowInsight(
                    insight_type="impact",
                    severity="high",
                    title=f"Disproportionate {delay.unit} Impact",
                    description=(
                        f"{delay.unit} delays account for {delay.impact_on_los:.1f}% of total LOS "
                        f"despite handling only {contrib.percentage:.1f}% of patient flow."
                    ),
                    unit=delay.unit,
                    metric=delay.impact_on_los,
                ))

        if delay.variance > delay.actual_avg_time * cfg.variance_to_mean:
            insights.append(FlowInsight(
                insight_type="variance",
                severity="high" if delay.variance > delay.actual_avg_time * cfg.severe_variance_to_mean else "medium",
                title=f"High Variance in {delay.unit}",
                description=(
                    f"Processing time variance in {delay.unit} is abnormally high "
                    f"({round(delay.variance)} min²), indicating inconsistent patient handling."
                ),
                unit=delay.unit,
                metric=delay.variance,
            ))

        if delay.queue_buildup > cfg.queue_buildup:
            insights.append(FlowInsight(
                insight_type="bottleneck",
                severity="high" if delay.queue_buildup > cfg.severe_queue_buildup else "medium",
                title=f"Queue Buildup in {delay.unit}",
                description=(
                    f"{delay.unit} shows signs of queue buildup with high processing variance "
                    f"(queue indicator: {delay.queue_buildup:.2f})."
                ),
                unit=delay.unit,
                metric=delay.queue_buildup,
            ))

    avg_duration = sum(j.total_duration for j in journeys) / len(journeys)
    long_journeys = [j for j in journeys if j.total_duration > avg_duration * cfg.long_journey_factor]
    if len(long_journeys) > len(journeys) * cfg.long_journey_share:
        share = len(long_journeys) / len(journeys)
        insights.append(FlowInsight(
            insight_type="impact",
            severity="high",
            title="Extended Patient Journeys",
            description=(
                f"{round(share * 100)}% of patients experience journeys "
                f"{round((cfg.long_journey_factor - 1) * 100)}% longer than average ({round(avg_duration)} min)."
            ),
            unit="System-wide",
            metric=share,
        ))

    insights.sort(key=lambda i: _SEVERITY_ORDER[i.severity], reverse=True)
    logger.info(f"Generated {len(insights)} flow insights.")
    return insights
