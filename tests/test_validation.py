"""Tests for pre-flight response validation."""

import asyncio

import httpx
import pytest

from mock_service.app import app
from stressladder.models import AuthContext, EndpointSpec
from stressladder.validation import (
    ValidationFailure,
    ValidationResult,
    ensure_valid,
    server_alive,
    validate_endpoint,
    validator_for,
)

BASE_URL = "http://testserver"


def _validate(endpoint, auth=None, transport=None, retries=0):
    async def go():
        async with httpx.AsyncClient(transport=transport or httpx.ASGITransport(app=app)) as client:
            return await validate_endpoint(
                client, BASE_URL, endpoint, auth=auth, retries=retries, retry_delay=0
            )
    return asyncio.run(go())


def _login():
    async def go():
        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app)) as client:
            response = await client.post(
                f"{BASE_URL}/api/login", json={"username": "user1", "password": "password123"}
            )
            return AuthContext(token=response.json()["token"])
    return asyncio.run(go())


class TestValidateAgainstDemoService:
    def test_health(self):
        result = _validate(EndpointSpec(name="Health", path="/health"))
        assert result.success
        assert result.warning is None

    def test_single_product(self):
        assert _validate(EndpointSpec(name="Product", path="/api/products/1")).success

    def test_query_string_ignored_for_lookup(self):
        endpoint = EndpointSpec(name="DB", path="/api/db-intensive?queries=2")
        assert _validate(endpoint).success

    def test_missing_product_fails_with_status(self):
        result = _validate(EndpointSpec(name="Product", path="/api/products/99"))
        assert not result.success
        assert result.status == 404
        assert "404" in result.error

    def test_product_2_does_not_match_product_1_validator(self):
        # no validator for /api/products/2
        result = _validate(EndpointSpec(name="Product", path="/api/products/2"))
        assert result.success
        assert result.warning == "No validator defined"

    def test_profile_requires_token(self):
        endpoint = EndpointSpec(name="Profile", path="/api/profile", requires_auth=True)
        assert _validate(endpoint).status == 401
        assert _validate(endpoint, auth=_login()).success

    def test_login_post_body(self):
        endpoint = EndpointSpec(
            name="Login",
            path="/api/login",
            method="POST",
            headers={"content-type": "application/json"},
            body='{"username": "user1", "password": "password123"}',
        )
        assert _validate(endpoint).success


class TestValidateWithMockTransport:
    def test_unexpected_shape(self):
        transport = httpx.MockTransport(lambda r: httpx.Response(200, json={"status": "down"}))
        result = _validate(EndpointSpec(name="Health", path="/health"), transport=transport)
        assert not result.success
        assert result.error == "Response format does not match expected pattern"

    def test_non_json_body(self):
        transport = httpx.MockTransport(lambda r: httpx.Response(200, text="not json"))
        result = _validate(EndpointSpec(name="Health", path="/health"), transport=transport)
        assert not result.success

    def test_connection_error_after_retries(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("connection refused")

        result = _validate(
            EndpointSpec(name="Health", path="/health"),
            transport=httpx.MockTransport(handler),
            retries=2,
        )
        assert not result.success
        assert result.connection_error
        assert len(calls) == 3

    def test_retry_then_success(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                raise httpx.ConnectError("connection refused")
            return httpx.Response(200, json={"status": "ok", "uptime": 1.5})

        result = _validate(
            EndpointSpec(name="Health", path="/health"),
            transport=httpx.MockTransport(handler),
            retries=1,
        )
        assert result.success

    def test_undecodable_response_fails_without_retry(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(
                200,
                headers={"content-encoding": "gzip"},
                stream=httpx.ByteStream(b"not gzip at all"),
            )

        result = _validate(
            EndpointSpec(name="Health", path="/health"),
            transport=httpx.MockTransport(handler),
            retries=2,
        )
        assert not result.success
        assert not result.connection_error
        assert result.error.startswith("Invalid response")
        assert len(calls) == 1


class TestServerAlive:
    def test_alive(self):
        async def go():
            async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app)) as client:
                return await server_alive(client, BASE_URL, retry_delay=0)
        assert asyncio.run(go()) is True

    def test_down(self):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        async def go():
            async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
                return await server_alive(client, BASE_URL, attempts=2, retry_delay=0)
        assert asyncio.run(go()) is False


class TestHelpers:
    def test_validator_lookup(self):
        assert validator_for("/api/cpu-intensive?workload=50") is not None
        assert validator_for("/unknown") is None

    def test_profile_validator_rejects_password(self):
        validator = validator_for("/api/profile")
        assert validator({"id": 1, "username": "u"})
        assert not validator({"id": 1, "username": "u", "password": "x"})

    def test_ensure_valid(self):
        ensure_valid(ValidationResult(success=True))
        with pytest.raises(ValidationFailure, match="bad shape"):
            ensure_valid(ValidationResult(success=False, error="bad shape"))
