"""Load and validate stress plan files (YAML or JSON)."""

import json
import os
from typing import List, Optional, Tuple

import yaml

from stressladder.models import (
    AuthSettings,
    DetectionThresholds,
    EndpointSpec,
    StressPlan,
    ValidationSettings,
)

DEFAULT_LADDER = (10, 25, 50, 100, 250, 500, 1000, 2000, 5000, 7500, 10000, 15000, 20000)

_THRESHOLD_FIELDS = [
    "throughput_drop_ratio",
    "degradation_error_rate",
    "degradation_latency_ms",
    "stop_error_rate",
    "stop_latency_ms",
    "skip_ahead_multiplier",
    "safe_margin",
]


class PlanValidationError(Exception):
    """Raised when a stress plan fails validation."""


def load_plan(path: str) -> StressPlan:
    """Load a stress plan from a YAML or JSON file.

    Args:
        path: Path to the plan file.

    Returns:
        A validated StressPlan instance.

    Raises:
        PlanValidationError: If the file is missing, unreadable, or invalid.
    """
    if not os.path.isfile(path):
        raise PlanValidationError(f"plan file not found: {path}")

    ext = os.path.splitext(path)[1].lower()
    try:
        with open(path, "r") as f:
            if ext in (".yaml", ".yml"):
                raw = yaml.safe_load(f)
            elif ext == ".json":
                raw = json.load(f)
            else:
                raise PlanValidationError(
                    f"unsupported file extension: {ext} (expected .yaml, .yml, or .json)"
                )
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise PlanValidationError(f"failed to parse {path}: {exc}") from exc

    if not isinstance(raw, dict):
        raise PlanValidationError("plan must be a mapping/object at the top level")

    return build_plan(raw)


def build_plan(raw: dict) -> StressPlan:
    """Construct and validate a StressPlan from a raw dict."""
    errors: List[str] = []

    base_url = raw.get("base_url")
    if not base_url or not isinstance(base_url, str):
        errors.append("'base_url' is required and must be a non-empty string")
        base_url = ""

    duration = _positive_number(raw, "duration_seconds", 10, errors)
    timeout = _positive_number(raw, "timeout_seconds", 10, errors)
    ladder = _parse_ladder(raw.get("ladder", list(DEFAULT_LADDER)), errors)
    thresholds = _parse_thresholds(raw.get("thresholds", {}), errors)
    validation = _parse_validation(raw.get("validation", {}), errors)
    auth = _parse_auth(raw.get("auth"), errors)
    endpoints = _parse_endpoints(raw.get("endpoints"), ladder, errors)

    if any(ep.requires_auth for ep in endpoints) and auth is None:
        errors.append("'auth' is required when an endpoint sets requires_auth")

    if errors:
        raise PlanValidationError(
            "plan validation failed:\n  - " + "\n  - ".join(errors)
        )

    return StressPlan(
        base_url=base_url.rstrip("/"),
        endpoints=endpoints,
        ladder=ladder,
        duration_seconds=duration,
        timeout_seconds=timeout,
        thresholds=thresholds,
        validation=validation,
        auth=auth,
    )


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_count(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _positive_number(raw: dict, key: str, default: float, errors: List[str]) -> float:
    value = raw.get(key, default)
    if not _is_number(value) or value <= 0:
        errors.append(f"'{key}' must be a positive number")
        return default
    return value


def _parse_ladder(raw, errors: List[str]) -> Tuple[int, ...]:
    if not isinstance(raw, list):
        errors.append("'ladder' must be a list of connection counts")
        return DEFAULT_LADDER
    levels = set()
    for i, level in enumerate(raw):
        if not _is_count(level) or level <= 0:
            errors.append(f"ladder[{i}] must be a positive integer")
            continue
        levels.add(level)
    return tuple(sorted(levels))


def _parse_thresholds(raw, errors: List[str]) -> DetectionThresholds:
    if not isinstance(raw, dict):
        errors.append("'thresholds' must be a mapping")
        return DetectionThresholds()
    kwargs = {}
    for key in raw:
        if key not in _THRESHOLD_FIELDS:
            errors.append(f"unknown threshold: thresholds.{key}")
    for field_name in _THRESHOLD_FIELDS:
        if field_name not in raw:
            continue
        value = raw[field_name]
        if not _is_number(value) or value < 0:
            errors.append(f"'thresholds.{field_name}' must be a non-negative number")
            continue
        kwargs[field_name] = float(value)
    return DetectionThresholds(**kwargs)


def _parse_validation(raw, errors: List[str]) -> ValidationSettings:
    if not isinstance(raw, dict):
        errors.append("'validation' must be a mapping")
        return ValidationSettings()
    retries = raw.get("retries", 3)
    if not _is_count(retries) or retries < 0:
        errors.append("'validation.retries' must be a non-negative integer")
        retries = 3
    delay = raw.get("retry_delay_seconds", 1.0)
    if not _is_number(delay) or delay < 0:
        errors.append("'validation.retry_delay_seconds' must be a non-negative number")
        delay = 1.0
    return ValidationSettings(
        enabled=bool(raw.get("enabled", True)),
        skip_on_failure=bool(raw.get("skip_on_failure", True)),
        retries=retries,
        retry_delay_seconds=float(delay),
    )


def _parse_auth(raw, errors: List[str]) -> Optional[AuthSettings]:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        errors.append("'auth' must be a mapping")
        return None
    username = raw.get("username")
    password = raw.get("password")
    if not username or not password:
        errors.append("'auth.username' and 'auth.password' are required")
        return None
    return AuthSettings(
        username=str(username),
        password=str(password),
        login_path=str(raw.get("login_path", "/api/login")),
        token_field=str(raw.get("token_field", "token")),
    )


def _parse_endpoints(raw, ladder: Tuple[int, ...], errors: List[str]) -> List[EndpointSpec]:
    if not isinstance(raw, list) or not raw:
        errors.append("'endpoints' is required and must be a non-empty list")
        return []
    endpoints = []
    for i, ep in enumerate(raw):
        if not isinstance(ep, dict):
            errors.append(f"endpoints[{i}] must be a mapping")
            continue
        path = ep.get("path", "")
        if not path or not str(path).startswith("/"):
            errors.append(f"endpoints[{i}].path is required and must start with '/'")
        max_connections = ep.get("max_connections")
        if not _is_count(max_connections) or max_connections <= 0:
            errors.append(f"endpoints[{i}].max_connections must be a positive integer")
            max_connections = 0
        headers = ep.get("headers") or {}
        if not isinstance(headers, dict):
            errors.append(f"endpoints[{i}].headers must be a mapping")
            headers = {}
        headers = {str(k): str(v) for k, v in headers.items()}

        body = ep.get("body")
        if isinstance(body, (dict, list)):
            body = json.dumps(body)
            if not any(k.lower() == "content-type" for k in headers):
                headers["content-type"] = "application/json"
        elif body is not None:
            body = str(body)

        endpoints.append(EndpointSpec(
            name=str(ep.get("name") or path),
            path=str(path),
            method=str(ep.get("method", "GET")).upper(),
            description=str(ep.get("description", "")),
            max_connections=max_connections,
            ladder=tuple(level for level in ladder if level <= max_connections),
            headers=headers,
            body=body,
            requires_auth=bool(ep.get("requires_auth", False)),
        ))
    return endpoints
