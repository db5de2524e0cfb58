"""Walk one endpoint's concurrency ladder until it degrades or the ladder ends."""

import logging
from typing import Optional, Tuple

from stressladder.detector import detect, skip_reason, summarize
from stressladder.engine import LoadEngine, TransportError
from stressladder.models import (
    AuthContext,
    DetectionThresholds,
    EndpointSpec,
    EndpointSummary,
    EscalationState,
    LoadResult,
    LoadTarget,
    MetricsSample,
)
from stressladder.observer import EscalationObserver

logger = logging.getLogger(__name__)


def build_target(
    endpoint: EndpointSpec,
    base_url: str,
    auth: Optional[AuthContext] = None,
) -> LoadTarget:
    """Resolve an endpoint against the base URL, attaching auth headers."""
    headers = auth.headers_for(endpoint) if auth else dict(endpoint.headers)
    return LoadTarget(
        url=base_url.rstrip("/") + endpoint.path,
        method=endpoint.method,
        headers=headers,
        body=endpoint.body,
    )


async def load_level(
    engine: LoadEngine,
    endpoint: EndpointSpec,
    target: LoadTarget,
    connections: int,
    duration_seconds: float,
    timeout_seconds: float,
) -> Tuple[Optional[LoadResult], Optional[str]]:
    """Run one load burst; an engine failure comes back as an error message."""
    try:
        result = await engine(target, connections, duration_seconds, timeout_seconds)
    except TransportError as exc:
        logger.warning(
            "load run against %s failed at %d connections: %s",
            endpoint.name, connections, exc,
        )
        return None, str(exc)
    except Exception as exc:
        logger.exception(
            "load engine crashed on %s at %d connections", endpoint.name, connections
        )
        return None, f"{type(exc).__name__}: {exc}"
    return result, None


async def run_escalation(
    endpoint: EndpointSpec,
    engine: LoadEngine,
    *,
    base_url: str,
    duration_seconds: float = 10,
    timeout_seconds: float = 10,
    thresholds: Optional[DetectionThresholds] = None,
    auth: Optional[AuthContext] = None,
    observer: Optional[EscalationObserver] = None,
) -> EndpointSummary:
    """Escalate concurrency against one endpoint and summarize the findings.

    Levels run strictly in ascending order, one engine call at a time.
    Levels beyond the skip-ahead bound, and every level after a hard stop,
    are skipped without touching the engine.

    Args:
        endpoint: The endpoint and its ladder.
        engine: Load engine called once per executed level.
        base_url: Base URL of the service under test.
        duration_seconds: Duration of each load burst.
        timeout_seconds: Per-request timeout passed to the engine.
        thresholds: Detection thresholds; defaults apply when omitted.
        auth: Auth context for endpoints that require a bearer token.
        observer: Receives progress events.

    Returns:
        The endpoint summary. When the engine raises, the walk stops and the
        summary holds the samples collected so far with ``error`` set; the
        exception never leaves this function.
    """
    thresholds = thresholds or DetectionThresholds()
    observer = observer or EscalationObserver()
    target = build_target(endpoint, base_url, auth)
    state = EscalationState()
    error: Optional[str] = None

    observer.endpoint_started(endpoint)
    for connections in endpoint.ladder:
        reason = skip_reason(connections, state, thresholds)
        if reason:
            logger.debug("skipping %s at %d connections: %s", endpoint.name, connections, reason)
            observer.level_skipped(endpoint, connections, reason)
            continue

        observer.level_started(endpoint, connections)
        result, error = await load_level(
            engine, endpoint, target, connections, duration_seconds, timeout_seconds
        )
        if error is not None:
            observer.endpoint_aborted(endpoint, connections, error)
            break

        sample = MetricsSample.from_result(connections, result)
        state, verdict = detect(state, sample, thresholds)
        observer.level_completed(endpoint, sample)

        if verdict.degradation_started:
            logger.info("%s degraded at %d connections", endpoint.name, connections)
            observer.degradation_detected(endpoint, sample, verdict)
        if verdict.error_rate_exceeded or verdict.latency_exceeded:
            observer.threshold_breached(endpoint, sample, verdict)

    summary = summarize(endpoint, state, thresholds, error=error)
    observer.endpoint_finished(summary)
    return summary
