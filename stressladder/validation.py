"""Check that an endpoint answers with the expected shape before loading it."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import httpx

from stressladder.models import AuthContext, EndpointSpec

logger = logging.getLogger(__name__)

VALIDATION_TIMEOUT_SECONDS = 8.0


class ValidationFailure(Exception):
    """Raised when an endpoint's response does not look as expected."""

    def __init__(self, result: "ValidationResult"):
        super().__init__(result.error or "validation failed")
        self.result = result


@dataclass(frozen=True)
class ValidationResult:
    success: bool
    error: Optional[str] = None
    connection_error: bool = False
    warning: Optional[str] = None
    status: Optional[int] = None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _health(data) -> bool:
    return isinstance(data, dict) and data.get("status") == "ok" and _is_number(data.get("uptime"))


def _login(data) -> bool:
    return isinstance(data, dict) and isinstance(data.get("token"), str) and bool(data["token"])


def _products(data) -> bool:
    return (
        isinstance(data, list)
        and len(data) > 0
        and isinstance(data[0], dict)
        and bool(data[0].get("id"))
        and bool(data[0].get("name"))
    )


def _single_product(data) -> bool:
    return (
        isinstance(data, dict)
        and data.get("id") == 1
        and bool(data.get("name"))
        and bool(data.get("price"))
    )


def _weather(data) -> bool:
    return (
        isinstance(data, dict)
        and data.get("city") == "London"
        and _is_number(data.get("temperature"))
        and _is_number(data.get("humidity"))
    )


def _db_intensive(data) -> bool:
    return isinstance(data, dict) and isinstance(data.get("results"), list)


def _cpu_intensive(data) -> bool:
    return (
        isinstance(data, dict)
        and bool(data.get("message"))
        and bool(data.get("duration"))
        and bool(data.get("requestedWorkload"))
    )


def _memory_intensive(data) -> bool:
    return (
        isinstance(data, dict)
        and bool(data.get("message"))
        and bool(data.get("size"))
        and bool(data.get("actualBytes"))
    )


def _profile(data) -> bool:
    # the password must never be echoed back
    return (
        isinstance(data, dict)
        and bool(data.get("id"))
        and bool(data.get("username"))
        and not data.get("password")
    )


def _checkout(data) -> bool:
    return (
        isinstance(data, dict)
        and data.get("success") is True
        and bool(data.get("orderId"))
        and bool(data.get("totalPrice"))
    )


VALIDATORS: Dict[str, Callable[[Any], bool]] = {
    "/health": _health,
    "/api/login": _login,
    "/api/products": _products,
    "/api/products/1": _single_product,
    "/api/weather/London": _weather,
    "/api/db-intensive": _db_intensive,
    "/api/cpu-intensive": _cpu_intensive,
    "/api/memory-intensive": _memory_intensive,
    "/api/profile": _profile,
    "/api/checkout": _checkout,
}


def validator_for(path: str) -> Optional[Callable[[Any], bool]]:
    """Look up the response predicate for a path, ignoring its query string."""
    return VALIDATORS.get(path.split("?", 1)[0])


async def server_alive(client: httpx.AsyncClient, base_url: str, attempts: int = 3,
                       retry_delay: float = 1.0) -> bool:
    """Poll ``/health`` a few times; True as soon as one attempt answers 200."""
    for attempt in range(1, attempts + 1):
        try:
            response = await client.get(
                f"{base_url}/health",
                headers={"x-test-check": "server-alive-check"},
                timeout=5.0,
            )
            if response.status_code == 200:
                return True
        except httpx.HTTPError as exc:
            logger.info("health check %d/%d failed: %s", attempt, attempts, exc)
        if attempt < attempts:
            await asyncio.sleep(retry_delay)
    return False


async def validate_endpoint(
    client: httpx.AsyncClient,
    base_url: str,
    endpoint: EndpointSpec,
    auth: Optional[AuthContext] = None,
    retries: int = 3,
    retry_delay: float = 1.0,
) -> ValidationResult:
    """Send one request to the endpoint and check the response shape.

    Transport failures are retried up to ``retries`` times. HTTP error
    statuses and malformed bodies are not retried.

    Returns:
        A ValidationResult; ``connection_error`` is set when the endpoint
        could not be reached at all.
    """
    headers = auth.headers_for(endpoint) if auth else dict(endpoint.headers)
    url = f"{base_url}{endpoint.path}"

    response = None
    for attempt in range(retries + 1):
        try:
            response = await client.request(
                endpoint.method,
                url,
                headers=headers,
                content=endpoint.body,
                timeout=VALIDATION_TIMEOUT_SECONDS,
            )
            break
        except httpx.TransportError as exc:
            if attempt >= retries:
                logger.warning("could not reach %s: %s", url, exc)
                return ValidationResult(
                    success=False,
                    connection_error=True,
                    error=f"Connection error: {exc}",
                )
            logger.info("validation request to %s failed, %d retries left", url, retries - attempt)
            await asyncio.sleep(retry_delay)
        except httpx.HTTPError as exc:
            logger.warning("invalid response from %s: %s", url, exc)
            return ValidationResult(success=False, error=f"Invalid response: {exc}")

    if response.status_code >= 400:
        return ValidationResult(
            success=False,
            status=response.status_code,
            error=f"Received {response.status_code} {response.reason_phrase}",
        )

    validator = validator_for(endpoint.path)
    if validator is None:
        logger.info("no validator defined for %s, skipping validation", endpoint.path)
        return ValidationResult(success=True, warning="No validator defined",
                                status=response.status_code)

    try:
        data = response.json()
    except ValueError:
        data = None
    if data is not None and validator(data):
        return ValidationResult(success=True, status=response.status_code)

    logger.warning("unexpected response from %s: %s", url, response.text[:200])
    return ValidationResult(
        success=False,
        status=response.status_code,
        error="Response format does not match expected pattern",
    )


def ensure_valid(result: ValidationResult) -> None:
    """Raise ValidationFailure for a failed result."""
    if not result.success:
        raise ValidationFailure(result)
