"""Persist stress run results as JSON and read saved summaries back."""

import json
import os
from dataclasses import asdict
from datetime import datetime, timezone
from typing import List, Tuple

from stressladder.models import EndpointSummary, LoadOutcome, MetricsSample, StressRun


class ResultsParseError(Exception):
    """Raised when a saved summary file cannot be parsed."""


def summary_to_dict(summary: EndpointSummary) -> dict:
    data = asdict(summary)
    data["recommended_max_connections"] = summary.recommended_max_connections
    data["results_count"] = len(summary.samples)
    return data


def flatten_results(run: StressRun) -> List[dict]:
    """One record per executed level, tagged with its endpoint."""
    rows = []
    for summary in run.summaries:
        for sample in summary.samples:
            row = asdict(sample)
            row.update(endpoint=summary.name, path=summary.path, method=summary.method)
            rows.append(row)
    return rows


def save_results(run: StressRun, results_dir: str) -> Tuple[str, str]:
    """Write the per-level results and the endpoint summaries.

    Creates ``results_dir`` if needed. File names carry a UTC timestamp so
    earlier runs are never overwritten.

    Args:
        run: A finished stress run.
        results_dir: Directory for the output files.

    Returns:
        A tuple of (results path, summary path).
    """
    os.makedirs(results_dir, exist_ok=True)
    stamp = _timestamp()
    results_path = os.path.join(results_dir, f"stress-test-results-{stamp}.json")
    summary_path = os.path.join(results_dir, f"stress-test-summary-{stamp}.json")

    with open(results_path, "w") as f:
        json.dump(flatten_results(run), f, indent=2)
        f.write("\n")
    with open(summary_path, "w") as f:
        json.dump([summary_to_dict(s) for s in run.summaries], f, indent=2)
        f.write("\n")
    return results_path, summary_path


def save_load_results(outcomes: List[LoadOutcome], results_dir: str) -> str:
    """Write one record per endpoint of a load suite; returns the file path."""
    os.makedirs(results_dir, exist_ok=True)
    path = os.path.join(results_dir, f"load-test-results-{_timestamp()}.json")
    rows = []
    for outcome in outcomes:
        row = asdict(outcome)
        row["success_rate"] = outcome.success_rate
        rows.append(row)
    with open(path, "w") as f:
        json.dump(rows, f, indent=2)
        f.write("\n")
    return path


def _timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")


def load_summaries(path: str) -> List[EndpointSummary]:
    """Read endpoint summaries written by ``save_results``.

    Raises:
        ResultsParseError: If the file is missing or not a summary list.
    """
    if not os.path.isfile(path):
        raise ResultsParseError(f"summary file not found: {path}")
    try:
        with open(path, "r") as f:
            raw = json.load(f)
    except json.JSONDecodeError as exc:
        raise ResultsParseError(f"failed to parse JSON: {exc}") from exc

    if not isinstance(raw, list):
        raise ResultsParseError("summary JSON must be a list of endpoint summaries")

    summaries = []
    for i, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ResultsParseError(f"summary[{i}] must be an object")
        try:
            summaries.append(_summary_from_dict(item))
        except (KeyError, TypeError, ValueError) as exc:
            raise ResultsParseError(f"summary[{i}] is malformed: {exc}") from exc
    return summaries


def _summary_from_dict(raw: dict) -> EndpointSummary:
    samples = [
        MetricsSample(
            connections=int(s["connections"]),
            throughput=float(s["throughput"]),
            latency_avg=float(s["latency_avg"]),
            latency_p95=float(s["latency_p95"]),
            error_rate=float(s["error_rate"]),
            status_code_counts=dict(s.get("status_code_counts", {})),
            errors=int(s.get("errors", 0)),
            timeouts=int(s.get("timeouts", 0)),
            non_2xx=int(s.get("non_2xx", 0)),
            requests_total=int(s.get("requests_total", 0)),
        )
        for s in raw.get("samples", [])
    ]
    degradation_point = raw.get("degradation_point")
    optimal = raw.get("optimal_connections")
    return EndpointSummary(
        name=raw["name"],
        path=raw["path"],
        method=raw.get("method", "GET"),
        description=raw.get("description", ""),
        degradation_point=int(degradation_point) if degradation_point is not None else None,
        optimal_connections=int(optimal) if optimal is not None else None,
        max_throughput=float(raw.get("max_throughput", 0.0)),
        samples=samples,
        safe_margin=float(raw.get("safe_margin", 0.7)),
        skip_reason=raw.get("skip_reason"),
        error=raw.get("error"),
    )
