"""Fixed-level load suites and smoke checks over a plan's endpoints."""

import logging
from typing import List, Optional

import httpx

from stressladder.engine import LoadEngine
from stressladder.models import CheckResult, LoadOutcome, MetricsSample, StressPlan
from stressladder.observer import EscalationObserver
from stressladder.orchestrator import AUTH_UNAVAILABLE, acquire_token, bootstrap, gate_endpoint
from stressladder.runner import build_target, load_level
from stressladder.validation import validate_endpoint

logger = logging.getLogger(__name__)


async def check_endpoints(
    plan: StressPlan,
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> List[CheckResult]:
    """Send one validated request to every endpoint of the plan.

    Checks run in plan order. Once the server cannot be reached at all the
    remaining endpoints are not tried.

    Args:
        plan: The plan whose endpoints are checked.
        client: httpx client to use; one is created and closed when omitted.

    Returns:
        One CheckResult per endpoint tried.
    """
    own_client = client is None
    if own_client:
        client = httpx.AsyncClient()
    results: List[CheckResult] = []
    try:
        auth = None
        if plan.auth is not None:
            auth = await acquire_token(client, plan.base_url, plan.auth)

        for endpoint in plan.endpoints:
            if endpoint.requires_auth and auth is None:
                results.append(CheckResult(
                    name=endpoint.name,
                    path=endpoint.path,
                    method=endpoint.method,
                    success=False,
                    error=AUTH_UNAVAILABLE,
                ))
                continue

            outcome = await validate_endpoint(
                client, plan.base_url, endpoint, auth=auth, retries=0
            )
            results.append(CheckResult(
                name=endpoint.name,
                path=endpoint.path,
                method=endpoint.method,
                success=outcome.success,
                status=outcome.status,
                error=outcome.error,
            ))
            if outcome.connection_error:
                logger.warning("server connection failed, stopping further checks")
                break
    finally:
        if own_client:
            await client.aclose()
    return results


async def run_load_suite(
    plan: StressPlan,
    engine: LoadEngine,
    *,
    connections: Optional[int] = None,
    observer: Optional[EscalationObserver] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> List[LoadOutcome]:
    """Hold every endpoint at one concurrency level for the plan's duration.

    Each endpoint is loaded at ``connections`` or, when that is omitted, at
    its own ``max_connections``. Auth and validation gate endpoints exactly
    as in a stress run, and an engine failure is recorded on that
    endpoint's outcome without stopping the suite.

    Returns:
        One LoadOutcome per endpoint, in plan order.
    """
    observer = observer or EscalationObserver()
    own_client = client is None
    if own_client:
        client = httpx.AsyncClient()
    outcomes: List[LoadOutcome] = []
    try:
        auth = await bootstrap(plan, client)
        for endpoint in plan.endpoints:
            level = connections or endpoint.max_connections
            reason = await gate_endpoint(plan, client, endpoint, auth)
            if reason:
                observer.endpoint_skipped(endpoint, reason)
                outcomes.append(LoadOutcome(
                    name=endpoint.name,
                    path=endpoint.path,
                    method=endpoint.method,
                    connections=level,
                    skip_reason=reason,
                ))
                continue

            observer.endpoint_started(endpoint)
            observer.level_started(endpoint, level)
            target = build_target(endpoint, plan.base_url, auth)
            result, error = await load_level(
                engine, endpoint, target, level, plan.duration_seconds, plan.timeout_seconds
            )
            sample = None
            if error is not None:
                observer.endpoint_aborted(endpoint, level, error)
            else:
                sample = MetricsSample.from_result(level, result)
                observer.level_completed(endpoint, sample)
            outcomes.append(LoadOutcome(
                name=endpoint.name,
                path=endpoint.path,
                method=endpoint.method,
                connections=level,
                sample=sample,
                error=error,
            ))
    finally:
        if own_client:
            await client.aclose()
    return outcomes
