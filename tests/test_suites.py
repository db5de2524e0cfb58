"""Tests for smoke checks and fixed-level load suites."""

import asyncio

import httpx

from mock_service.app import app
from stressladder.engine import TransportError
from stressladder.loader import build_plan
from stressladder.models import LoadOutcome, LoadResult, MetricsSample
from stressladder.orchestrator import AUTH_UNAVAILABLE
from stressladder.reporting import format_load_summary
from stressladder.suites import check_endpoints, run_load_suite


def _plan(endpoints, validation=None, auth=None):
    raw = {
        "base_url": "http://testserver",
        "duration_seconds": 1,
        "validation": validation or {"enabled": False},
        "endpoints": endpoints,
    }
    if auth:
        raw["auth"] = auth
    return build_plan(raw)


def _with_client(coro_factory, transport=None):
    async def go():
        async with httpx.AsyncClient(transport=transport or httpx.ASGITransport(app=app)) as client:
            return await coro_factory(client)
    return asyncio.run(go())


class LevelEngine:
    def __init__(self, failures=None):
        self.failures = failures or {}
        self.calls = []

    async def __call__(self, target, connections, duration_seconds, timeout_seconds):
        self.calls.append((target.url, connections))
        if target.url in self.failures:
            raise self.failures[target.url]
        return LoadResult(
            requests_total=100,
            throughput_avg=connections * 2.0,
            latency_avg=connections / 10,
            latency_p95=connections / 5,
            errors=5,
            non_2xx=15,
            status_code_counts={"200": 80, "500": 15},
        )


class TestCheckEndpoints:
    def test_checks_every_endpoint_against_demo_service(self):
        plan = _plan(
            [
                {"name": "Health", "path": "/health", "max_connections": 10},
                {"name": "Profile", "path": "/api/profile", "max_connections": 10,
                 "requires_auth": True},
                {"name": "Missing", "path": "/api/products/99", "max_connections": 10},
            ],
            auth={"username": "user1", "password": "password123"},
        )
        results = _with_client(lambda client: check_endpoints(plan, client=client))
        assert [(r.name, r.success, r.status) for r in results] == [
            ("Health", True, 200),
            ("Profile", True, 200),
            ("Missing", False, 404),
        ]

    def test_authenticated_endpoint_fails_without_token(self):
        plan = _plan(
            [{"name": "Profile", "path": "/api/profile", "max_connections": 10,
              "requires_auth": True}],
            auth={"username": "nobody", "password": "wrong"},
        )
        results = _with_client(lambda client: check_endpoints(plan, client=client))
        assert not results[0].success
        assert results[0].error == AUTH_UNAVAILABLE

    def test_stops_after_connection_failure(self):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        plan = _plan([
            {"name": "Health", "path": "/health", "max_connections": 10},
            {"name": "Products", "path": "/api/products", "max_connections": 10},
        ])
        results = _with_client(
            lambda client: check_endpoints(plan, client=client),
            transport=httpx.MockTransport(handler),
        )
        assert len(results) == 1
        assert results[0].error.startswith("Connection error")


class TestRunLoadSuite:
    def test_one_level_per_endpoint(self):
        plan = _plan([
            {"name": "Health", "path": "/health", "max_connections": 40},
            {"name": "Products", "path": "/api/products", "max_connections": 20},
        ])
        engine = LevelEngine()
        outcomes = _with_client(lambda client: run_load_suite(plan, engine, client=client))
        assert engine.calls == [
            ("http://testserver/health", 40),
            ("http://testserver/api/products", 20),
        ]
        assert [o.sample.connections for o in outcomes] == [40, 20]
        assert outcomes[0].success_rate == 80.0

    def test_engine_failure_recorded_and_suite_continues(self):
        plan = _plan([
            {"name": "Health", "path": "/health", "max_connections": 10},
            {"name": "Products", "path": "/api/products", "max_connections": 10},
        ])
        engine = LevelEngine({
            "http://testserver/health": TransportError("connection reset"),
            "http://testserver/api/products": RuntimeError("engine crashed"),
        })
        outcomes = _with_client(
            lambda client: run_load_suite(plan, engine, connections=3, client=client)
        )
        assert [o.error for o in outcomes] == ["connection reset", "RuntimeError: engine crashed"]
        assert all(o.sample is None for o in outcomes)
        assert [call[1] for call in engine.calls] == [3, 3]

    def test_validation_failure_skips_endpoint(self):
        plan = _plan(
            [
                {"name": "Missing", "path": "/api/products/99", "max_connections": 10},
                {"name": "Health", "path": "/health", "max_connections": 10},
            ],
            validation={"enabled": True, "retry_delay_seconds": 0},
        )
        engine = LevelEngine()
        outcomes = _with_client(lambda client: run_load_suite(plan, engine, client=client))
        assert outcomes[0].skip_reason.startswith("validation failed")
        assert outcomes[0].sample is None
        assert engine.calls == [("http://testserver/health", 10)]


class TestLoadSummary:
    def _outcome(self, name, throughput, latency, errors=0):
        sample = MetricsSample(
            connections=10, throughput=throughput, latency_avg=latency,
            latency_p95=latency * 2, error_rate=errors / 100, errors=errors,
            requests_total=100,
        )
        return LoadOutcome(name=name, path=f"/{name.lower()}", method="GET",
                           connections=10, sample=sample)

    def test_ranked_by_throughput(self):
        outcomes = [
            self._outcome("Slow", 50.0, 400.0, errors=3),
            self._outcome("Fast", 900.0, 5.0),
            LoadOutcome(name="Skipped", path="/skipped", method="GET", connections=10,
                        skip_reason=AUTH_UNAVAILABLE),
        ]
        text = format_load_summary(outcomes, 12.5)
        assert "Total duration: 12.50 seconds" in text
        assert text.index("Fast (GET /fast)") < text.index("Slow (GET /slow)")
        assert "Skipped (GET /skipped): authentication unavailable" in text
        assert "Slow (GET /slow): 3 errors" in text
        assert "Success rate: 97.00%" in text

    def test_success_rate_without_sample(self):
        outcome = LoadOutcome(name="x", path="/x", method="GET", connections=1)
        assert outcome.success_rate == 0.0
