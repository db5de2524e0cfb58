"""Combine endpoint summaries into a system-wide capacity report."""

import math
from typing import List, Optional, Sequence

from stressladder.models import DetectionThresholds, EndpointSummary, SystemReport

# path marker -> advisory, in report order
SCALING_ADVICE = [
    ("cpu-intensive", "Consider vertical scaling (more CPU cores) for CPU-bound operations"),
    ("memory-intensive", "Consider increasing available memory for memory-intensive operations"),
    ("db-intensive", "Consider database optimizations, indexing, or scaling database resources"),
    ("weather", "Consider optimizing external API calls or implementing more aggressive caching"),
]
HORIZONTAL_SCALING_ADVICE = (
    "Implement horizontal scaling with a load balancer for overall throughput improvement"
)
NO_DEGRADATION_ADVICE = (
    "Current system is handling test load well, scale when approaching tested limits"
)


def aggregate(
    summaries: Sequence[EndpointSummary],
    thresholds: Optional[DetectionThresholds] = None,
    top_n: int = 3,
) -> SystemReport:
    """Find the bottleneck endpoint and derive scaling recommendations.

    Args:
        summaries: One summary per attempted endpoint, in any order.
        thresholds: Supplies the safe margin applied to the bottleneck.
        top_n: How many endpoints to list as top performers.

    Returns:
        A SystemReport. Without any degraded endpoint there is no bottleneck
        and no ceiling; ``max_tested_connections`` then tells how far the
        sweep got.
    """
    thresholds = thresholds or DetectionThresholds()
    degraded = [s for s in summaries if s.degradation_point is not None]

    bottleneck = None
    for summary in degraded:
        if bottleneck is None or summary.degradation_point < bottleneck.degradation_point:
            bottleneck = summary

    ceiling = None
    if bottleneck is not None:
        ceiling = math.floor(bottleneck.degradation_point * thresholds.safe_margin)

    tested = [s for s in summaries if s.samples]
    top_performers = sorted(tested, key=lambda s: s.max_throughput, reverse=True)[:top_n]

    return SystemReport(
        bottleneck=bottleneck,
        recommended_concurrency_ceiling=ceiling,
        max_tested_connections=max((s.max_tested_connections for s in summaries), default=0),
        top_performers=top_performers,
        recommendations=_recommendations(degraded),
    )


def _recommendations(degraded: List[EndpointSummary]) -> List[str]:
    if not degraded:
        return [NO_DEGRADATION_ADVICE]
    advice = [
        text for marker, text in SCALING_ADVICE
        if any(marker in s.path for s in degraded)
    ]
    advice.append(HORIZONTAL_SCALING_ADVICE)
    return advice
