"""Tests for the httpx load engine."""

import asyncio

import httpx
import pytest

from mock_service.app import app
from stressladder.engine import HttpLoadEngine, TransportError, _percentile
from stressladder.models import LoadTarget


def _run(engine, target, connections=4, duration=0.2, timeout=2):
    return asyncio.run(engine(target, connections, duration, timeout))


class TestHttpLoadEngine:
    def test_counts_responses_and_status_codes(self):
        def handler(request):
            return httpx.Response(200, json={"ok": True})

        engine = HttpLoadEngine(transport=httpx.MockTransport(handler))
        result = _run(engine, LoadTarget(url="http://svc/ok"))
        assert result.requests_total > 0
        assert result.errors == 0
        assert result.non_2xx == 0
        assert result.status_code_counts == {"200": result.requests_total}
        assert result.throughput_avg > 0
        assert result.latency_p95 >= 0

    def test_non_2xx_is_not_a_transport_error(self):
        engine = HttpLoadEngine(transport=httpx.MockTransport(lambda r: httpx.Response(503)))
        result = _run(engine, LoadTarget(url="http://svc/fail"))
        assert result.errors == 0
        assert result.non_2xx == result.requests_total
        assert list(result.status_code_counts) == ["503"]

    def test_sends_method_headers_and_body(self):
        seen = []

        def handler(request):
            seen.append((request.method, request.headers.get("authorization"), request.content))
            return httpx.Response(200)

        engine = HttpLoadEngine(transport=httpx.MockTransport(handler))
        target = LoadTarget(
            url="http://svc/api/checkout",
            method="POST",
            headers={"Authorization": "Bearer abc"},
            body='{"a": 1}',
        )
        _run(engine, target, connections=1, duration=0.05)
        assert seen[0] == ("POST", "Bearer abc", b'{"a": 1}')

    def test_total_connection_failure_raises(self):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        engine = HttpLoadEngine(transport=httpx.MockTransport(handler))
        with pytest.raises(TransportError, match="no connection"):
            _run(engine, LoadTarget(url="http://svc/health"), connections=2, duration=0.05)

    def test_timeouts_counted_as_errors(self):
        def handler(request):
            raise httpx.ReadTimeout("slow")

        engine = HttpLoadEngine(transport=httpx.MockTransport(handler))
        result = _run(engine, LoadTarget(url="http://svc/health"), connections=2, duration=0.05)
        assert result.errors > 0
        assert result.timeouts == result.errors
        assert result.requests_total == result.errors
        assert result.throughput_avg == 0.0

    def test_undecodable_body_counted_as_error(self):
        def handler(request):
            return httpx.Response(
                200,
                headers={"content-encoding": "gzip"},
                stream=httpx.ByteStream(b"not gzip at all"),
            )

        engine = HttpLoadEngine(transport=httpx.MockTransport(handler))
        result = _run(engine, LoadTarget(url="http://svc/health"), connections=2, duration=0.05)
        assert result.errors > 0
        assert result.requests_total == result.errors
        assert result.timeouts == 0

    def test_redirect_loop_counted_as_error(self):
        def handler(request):
            raise httpx.TooManyRedirects("redirect loop", request=request)

        engine = HttpLoadEngine(transport=httpx.MockTransport(handler))
        result = _run(engine, LoadTarget(url="http://svc/health"), connections=2, duration=0.05)
        assert result.errors == result.requests_total > 0

    def test_against_demo_service(self):
        engine = HttpLoadEngine(transport=httpx.ASGITransport(app=app))
        result = _run(engine, LoadTarget(url="http://testserver/health"), connections=3)
        assert result.requests_total > 0
        assert result.status_code_counts.get("200") == result.requests_total


class TestPercentile:
    def test_empty(self):
        assert _percentile([], 95) == 0.0

    def test_nearest_rank(self):
        values = [float(v) for v in range(1, 101)]
        assert _percentile(values, 95) == 96.0
        assert _percentile([5.0], 95) == 5.0
