"""httpx-based load engine: run N connections for T seconds against one target."""

import asyncio
import logging
import time
from collections import Counter
from typing import Awaitable, Callable, List, Optional

import httpx

from stressladder.models import LoadResult, LoadTarget

logger = logging.getLogger(__name__)

LoadEngine = Callable[[LoadTarget, int, float, float], Awaitable[LoadResult]]


class TransportError(Exception):
    """Raised when a load run could not reach the target at all."""


class _RunStats:
    def __init__(self):
        self.latencies: List[float] = []
        self.status_codes: Counter = Counter()
        self.errors = 0
        self.timeouts = 0
        self.connect_errors = 0
        self.last_error: Optional[str] = None


class HttpLoadEngine:
    """Drive concurrent request loops with a shared ``httpx.AsyncClient``.

    Each of the ``connections`` workers issues requests back-to-back until
    the duration elapses, so the number of in-flight requests equals the
    requested concurrency.

    Args:
        transport: Optional httpx transport, e.g. ``httpx.MockTransport`` or
            ``httpx.ASGITransport`` to run against an in-process app.
    """

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._transport = transport

    async def __call__(
        self,
        target: LoadTarget,
        connections: int,
        duration_seconds: float,
        timeout_seconds: float,
    ) -> LoadResult:
        limits = httpx.Limits(
            max_connections=connections,
            max_keepalive_connections=connections,
        )
        stats = _RunStats()
        started = time.perf_counter()
        deadline = started + duration_seconds

        async with httpx.AsyncClient(
            timeout=timeout_seconds,
            limits=limits,
            transport=self._transport,
        ) as client:
            workers = [
                asyncio.ensure_future(self._worker(client, target, deadline, stats))
                for _ in range(connections)
            ]
            try:
                await asyncio.gather(*workers)
            except BaseException:
                # one failed worker must not leave the rest running on a closed client
                for worker in workers:
                    worker.cancel()
                await asyncio.gather(*workers, return_exceptions=True)
                raise
        elapsed = max(time.perf_counter() - started, 1e-9)

        responses = len(stats.latencies)
        if responses == 0 and stats.connect_errors > 0:
            raise TransportError(
                f"no connection to {target.url} succeeded: {stats.last_error}"
            )

        non_2xx = sum(
            count for code, count in stats.status_codes.items() if not 200 <= code < 300
        )
        result = LoadResult(
            requests_total=responses + stats.errors,
            throughput_avg=responses / elapsed,
            latency_avg=sum(stats.latencies) / responses if responses else 0.0,
            latency_p95=_percentile(stats.latencies, 95),
            errors=stats.errors,
            timeouts=stats.timeouts,
            non_2xx=non_2xx,
            status_code_counts={str(code): count for code, count in sorted(stats.status_codes.items())},
        )
        logger.debug(
            "load run %s x%d: %d responses, %d errors in %.2fs",
            target.url, connections, responses, stats.errors, elapsed,
        )
        return result

    async def _worker(
        self,
        client: httpx.AsyncClient,
        target: LoadTarget,
        deadline: float,
        stats: _RunStats,
    ) -> None:
        while time.perf_counter() < deadline:
            t0 = time.perf_counter()
            try:
                response = await client.request(
                    target.method,
                    target.url,
                    headers=target.headers,
                    content=target.body,
                )
            except httpx.TimeoutException as exc:
                stats.errors += 1
                stats.timeouts += 1
                stats.last_error = repr(exc)
                continue
            except httpx.TransportError as exc:
                stats.errors += 1
                stats.last_error = repr(exc)
                if isinstance(exc, httpx.ConnectError):
                    stats.connect_errors += 1
                    # refused connections fail instantly; yield instead of spinning
                    await asyncio.sleep(0.01)
                continue
            except httpx.HTTPError as exc:
                # undecodable bodies, redirect loops and the like
                stats.errors += 1
                stats.last_error = repr(exc)
                continue
            stats.latencies.append((time.perf_counter() - t0) * 1000)
            stats.status_codes[response.status_code] += 1


def _percentile(values: List[float], pct: float) -> float:
    if not values:
        return 0.0
    ordered = sorted(values)
    index = min(int(len(ordered) * pct / 100), len(ordered) - 1)
    return ordered[index]
