"""Decide when an endpoint's performance has degraded during an escalation walk."""

import dataclasses
from typing import Optional, Tuple

from stressladder.models import (
    DetectionThresholds,
    EndpointSpec,
    EndpointSummary,
    EscalationState,
    MetricsSample,
    Verdict,
)


def detect(
    state: EscalationState,
    sample: MetricsSample,
    thresholds: DetectionThresholds,
) -> Tuple[EscalationState, Verdict]:
    """Fold one sample into the escalation state.

    The three degradation rules are independent; any of them firing marks
    the degradation point, but only the first time. The hard-stop flags
    are sticky and never cleared.

    Args:
        state: State accumulated so far for this endpoint.
        sample: Metrics for the level that just ran.
        thresholds: Detection thresholds.

    Returns:
        A tuple of (new state, verdict for this sample). The input state is
        left untouched.
    """
    throughput_degraded = (
        state.previous_throughput > 0
        and sample.throughput < state.previous_throughput * thresholds.throughput_drop_ratio
    )
    high_error_rate = sample.error_rate > thresholds.degradation_error_rate
    high_latency = sample.latency_avg > thresholds.degradation_latency_ms

    degradation_point = state.degradation_point
    degradation_started = False
    if (throughput_degraded or high_error_rate or high_latency) and degradation_point is None:
        degradation_point = sample.connections
        degradation_started = True

    error_rate_exceeded = sample.error_rate > thresholds.stop_error_rate
    latency_exceeded = sample.latency_avg > thresholds.stop_latency_ms

    new_state = dataclasses.replace(
        state,
        previous_throughput=sample.throughput,
        degradation_point=degradation_point,
        error_rate_threshold=state.error_rate_threshold or error_rate_exceeded,
        latency_threshold=state.latency_threshold or latency_exceeded,
        samples=state.samples + [sample],
    )
    verdict = Verdict(
        throughput_degraded=throughput_degraded,
        high_error_rate=high_error_rate,
        high_latency=high_latency,
        error_rate_exceeded=error_rate_exceeded,
        latency_exceeded=latency_exceeded,
        degradation_started=degradation_started,
        stop_endpoint=new_state.stopped,
    )
    return new_state, verdict


def skip_reason(
    level: int,
    state: EscalationState,
    thresholds: DetectionThresholds,
) -> Optional[str]:
    """Return why a ladder level should not run, or None to run it."""
    if (
        state.degradation_point is not None
        and level > state.degradation_point * thresholds.skip_ahead_multiplier
    ):
        return "significant degradation already detected"
    if state.stopped:
        return "error rate or latency exceeded thresholds"
    return None


def summarize(
    endpoint: EndpointSpec,
    state: EscalationState,
    thresholds: DetectionThresholds,
    error: Optional[str] = None,
    skip_reason: Optional[str] = None,
) -> EndpointSummary:
    """Derive the endpoint summary from the state left after a walk."""
    best: Optional[MetricsSample] = None
    for sample in state.samples:
        # strict comparison keeps the lowest level on ties
        if best is None or sample.throughput > best.throughput:
            best = sample

    return EndpointSummary(
        name=endpoint.name,
        path=endpoint.path,
        method=endpoint.method,
        description=endpoint.description,
        degradation_point=state.degradation_point,
        optimal_connections=best.connections if best else None,
        max_throughput=best.throughput if best else 0.0,
        samples=list(state.samples),
        safe_margin=thresholds.safe_margin,
        skip_reason=skip_reason,
        error=error,
    )
