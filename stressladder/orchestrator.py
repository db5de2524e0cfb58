"""Sequence the escalation walks for every endpoint in a stress plan."""

import logging
from datetime import datetime, timezone
from typing import Optional

import httpx

from stressladder.aggregator import aggregate
from stressladder.detector import summarize
from stressladder.engine import LoadEngine
from stressladder.models import (
    AuthContext,
    AuthSettings,
    EndpointSpec,
    EndpointSummary,
    EscalationState,
    StressPlan,
    StressRun,
)
from stressladder.observer import EscalationObserver
from stressladder.runner import run_escalation
from stressladder.validation import (
    ValidationFailure,
    ensure_valid,
    server_alive,
    validate_endpoint,
)

logger = logging.getLogger(__name__)

AUTH_UNAVAILABLE = "authentication unavailable"


async def acquire_token(
    client: httpx.AsyncClient,
    base_url: str,
    settings: AuthSettings,
) -> Optional[AuthContext]:
    """Log in once and return the bearer token, or None if login fails."""
    try:
        response = await client.post(
            f"{base_url}{settings.login_path}",
            json={"username": settings.username, "password": settings.password},
        )
    except httpx.HTTPError as exc:
        logger.warning("authentication request failed: %s", exc)
        return None

    if response.status_code != 200:
        logger.warning("authentication failed with status %d", response.status_code)
        return None
    try:
        token = response.json().get(settings.token_field)
    except (ValueError, AttributeError):
        token = None
    if not token or not isinstance(token, str):
        logger.warning("login response carried no '%s' field", settings.token_field)
        return None
    return AuthContext(token=token)


def _skipped_summary(plan: StressPlan, endpoint: EndpointSpec, reason: str) -> EndpointSummary:
    return summarize(endpoint, EscalationState(), plan.thresholds, skip_reason=reason)


async def bootstrap(plan: StressPlan, client: httpx.AsyncClient) -> Optional[AuthContext]:
    """Check the server once and log in when the plan carries credentials."""
    if plan.validation.enabled and not await server_alive(
        client, plan.base_url, retry_delay=plan.validation.retry_delay_seconds
    ):
        logger.warning("server health check failed, continuing; some endpoints may fail")

    if plan.auth is None:
        return None
    return await acquire_token(client, plan.base_url, plan.auth)


async def gate_endpoint(
    plan: StressPlan,
    client: httpx.AsyncClient,
    endpoint: EndpointSpec,
    auth: Optional[AuthContext],
) -> Optional[str]:
    """Return why an endpoint must not be loaded, or None when it may be."""
    if endpoint.requires_auth and auth is None:
        return AUTH_UNAVAILABLE
    if not plan.validation.enabled:
        return None

    result = await validate_endpoint(
        client,
        plan.base_url,
        endpoint,
        auth=auth,
        retries=plan.validation.retries,
        retry_delay=plan.validation.retry_delay_seconds,
    )
    try:
        ensure_valid(result)
    except ValidationFailure as exc:
        if plan.validation.skip_on_failure:
            return f"validation failed: {exc}"
        logger.warning("validation failed for %s (%s), continuing", endpoint.name, exc)
    return None


async def run_stress_test(
    plan: StressPlan,
    engine: LoadEngine,
    *,
    observer: Optional[EscalationObserver] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> StressRun:
    """Run every endpoint of the plan and aggregate the results.

    Endpoints run one after another. The auth token is obtained once up
    front; endpoints that need it are skipped when login fails. With
    validation enabled each endpoint is validated once before its walk and
    skipped if that fails, unless ``skip_on_failure`` is turned off.

    Args:
        plan: The stress plan.
        engine: Load engine handed to each escalation walk.
        observer: Receives progress events.
        client: httpx client for health, auth and validation requests.
            A client is created and closed here when omitted.

    Returns:
        A StressRun with one summary per endpoint and the system report.
    """
    observer = observer or EscalationObserver()
    run = StressRun(plan=plan, started_at=_now())

    own_client = client is None
    if own_client:
        client = httpx.AsyncClient()
    try:
        auth = await bootstrap(plan, client)
        for endpoint in plan.endpoints:
            reason = await gate_endpoint(plan, client, endpoint, auth)
            if reason:
                observer.endpoint_skipped(endpoint, reason)
                run.summaries.append(_skipped_summary(plan, endpoint, reason))
                continue

            summary = await run_escalation(
                endpoint,
                engine,
                base_url=plan.base_url,
                duration_seconds=plan.duration_seconds,
                timeout_seconds=plan.timeout_seconds,
                thresholds=plan.thresholds,
                auth=auth,
                observer=observer,
            )
            run.summaries.append(summary)
    finally:
        if own_client:
            await client.aclose()

    run.report = aggregate(run.summaries, plan.thresholds)
    run.finished_at = _now()
    return run


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
