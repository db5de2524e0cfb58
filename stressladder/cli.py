"""CLI entry point for the stress tester."""

import asyncio
import dataclasses
import json
import logging
import sys
import time

import click
import httpx

from stressladder.aggregator import aggregate
from stressladder.engine import HttpLoadEngine
from stressladder.loader import PlanValidationError, load_plan
from stressladder.models import DetectionThresholds
from stressladder.orchestrator import run_stress_test
from stressladder.reporting import (
    ConsoleObserver,
    format_check_report,
    format_load_summary,
    format_system_report,
)
from stressladder.results import (
    ResultsParseError,
    load_summaries,
    save_load_results,
    save_results,
)
from stressladder.suites import check_endpoints, run_load_suite


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def _http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient()


def _load_plan_or_exit(plan_path):
    try:
        return load_plan(plan_path)
    except PlanValidationError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)


def _apply_overrides(plan, base_url=None, duration=None, validate=None, skip_on_failure=None):
    overrides = {}
    if base_url:
        overrides["base_url"] = base_url.rstrip("/")
    if duration is not None:
        overrides["duration_seconds"] = duration
    validation_overrides = {}
    if validate is not None:
        validation_overrides["enabled"] = validate
    if skip_on_failure is not None:
        validation_overrides["skip_on_failure"] = skip_on_failure
    if validation_overrides:
        overrides["validation"] = dataclasses.replace(plan.validation, **validation_overrides)
    if overrides:
        plan = dataclasses.replace(plan, **overrides)
    return plan


@click.group()
def main():
    """Stress tester -- escalate concurrency per endpoint and find where it degrades."""


@main.command()
@click.option(
    "--plan",
    "plan_path",
    required=True,
    type=click.Path(exists=True),
    help="Path to a stress plan file (YAML or JSON).",
)
@click.option(
    "--base-url",
    default=None,
    help="Override the plan's base URL.",
)
@click.option(
    "--duration",
    default=None,
    type=click.FloatRange(min=0, min_open=True),
    help="Override the seconds of load applied at each concurrency level.",
)
@click.option(
    "--out",
    default="results",
    show_default=True,
    type=click.Path(file_okay=False),
    help="Directory for the JSON results and summary files.",
)
@click.option(
    "--validate/--no-validate",
    default=None,
    envvar="VALIDATE_RESPONSES",
    help="Validate one response per endpoint before loading it.",
)
@click.option(
    "--skip-on-validation-failure/--no-skip-on-validation-failure",
    default=None,
    envvar="SKIP_ON_VALIDATION_FAILURE",
    help="Skip endpoints whose validation fails (the default) instead of testing them anyway.",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def run(plan_path, base_url, duration, out, validate, skip_on_validation_failure, verbose):
    """Run the stress test described by a plan."""
    _configure_logging(verbose)
    plan = _apply_overrides(
        _load_plan_or_exit(plan_path), base_url, duration, validate, skip_on_validation_failure
    )

    click.echo("=== SERVER STRESS TESTING ===")
    click.echo(f"Target: {plan.base_url}")
    click.echo(
        f"{len(plan.endpoints)} endpoint(s), {plan.duration_seconds:g}s per concurrency level"
    )

    async def go():
        async with _http_client() as client:
            return await run_stress_test(
                plan,
                HttpLoadEngine(),
                observer=ConsoleObserver(plan.thresholds),
                client=client,
            )

    stress_run = asyncio.run(go())

    results_path, summary_path = save_results(stress_run, out)
    click.echo(f"\nResults saved to {results_path}")
    click.echo(f"Summary saved to {summary_path}")
    click.echo("\n" + format_system_report(stress_run.report))


@main.command()
@click.option(
    "--summary",
    "summary_path",
    required=True,
    type=click.Path(exists=True),
    help="Path to a summary file written by 'run'.",
)
@click.option(
    "--safe-margin",
    default=DetectionThresholds().safe_margin,
    show_default=True,
    type=click.FloatRange(min=0, max=1),
    help="Fraction of the bottleneck's degradation point to recommend as a ceiling.",
)
def analyze(summary_path, safe_margin):
    """Re-aggregate saved endpoint summaries into a system report."""
    try:
        summaries = load_summaries(summary_path)
    except ResultsParseError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    report = aggregate(summaries, DetectionThresholds(safe_margin=safe_margin))
    click.echo(format_system_report(report))

    output = {
        "bottleneck": report.bottleneck.name if report.bottleneck else None,
        "recommended_concurrency_ceiling": report.recommended_concurrency_ceiling,
        "max_tested_connections": report.max_tested_connections,
        "top_performers": [s.name for s in report.top_performers],
        "recommendations": report.recommendations,
    }
    click.echo("\n" + json.dumps(output, indent=2))


@main.command()
@click.option(
    "--plan",
    "plan_path",
    required=True,
    type=click.Path(exists=True),
    help="Path to a stress plan file (YAML or JSON).",
)
@click.option("--base-url", default=None, help="Override the plan's base URL.")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def check(plan_path, base_url, verbose):
    """Send one validated request to every endpoint and report pass/fail."""
    _configure_logging(verbose)
    plan = _apply_overrides(_load_plan_or_exit(plan_path), base_url)

    click.echo("=== SERVER HEALTH CHECK ===")
    click.echo(f"Testing server at: {plan.base_url}")

    async def go():
        async with _http_client() as client:
            return await check_endpoints(plan, client=client)

    results = asyncio.run(go())
    click.echo("\n" + format_check_report(results))
    if len(results) < len(plan.endpoints):
        click.echo("Server connection failed, remaining endpoints were not checked.")
    if not results or not all(r.success for r in results):
        sys.exit(1)


@main.command()
@click.option(
    "--plan",
    "plan_path",
    required=True,
    type=click.Path(exists=True),
    help="Path to a stress plan file (YAML or JSON).",
)
@click.option("--base-url", default=None, help="Override the plan's base URL.")
@click.option(
    "--connections",
    default=None,
    type=click.IntRange(min=1),
    help="Concurrency for every endpoint; defaults to each endpoint's max_connections.",
)
@click.option(
    "--duration",
    default=None,
    type=click.FloatRange(min=0, min_open=True),
    help="Override the seconds of load applied to each endpoint.",
)
@click.option(
    "--out",
    default="results",
    show_default=True,
    type=click.Path(file_okay=False),
    help="Directory for the JSON results file.",
)
@click.option(
    "--validate/--no-validate",
    default=None,
    envvar="VALIDATE_RESPONSES",
    help="Validate one response per endpoint before loading it.",
)
@click.option(
    "--skip-on-validation-failure/--no-skip-on-validation-failure",
    default=None,
    envvar="SKIP_ON_VALIDATION_FAILURE",
    help="Skip endpoints whose validation fails (the default) instead of testing them anyway.",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def load(plan_path, base_url, connections, duration, out, validate,
         skip_on_validation_failure, verbose):
    """Hold every endpoint at one concurrency level and summarize the results."""
    _configure_logging(verbose)
    plan = _apply_overrides(
        _load_plan_or_exit(plan_path), base_url, duration, validate, skip_on_validation_failure
    )

    click.echo("=== LOAD TESTING ===")
    click.echo(f"Target: {plan.base_url}")
    click.echo(f"{len(plan.endpoints)} endpoint(s), {plan.duration_seconds:g}s each")

    async def go():
        async with _http_client() as client:
            return await run_load_suite(
                plan,
                HttpLoadEngine(),
                connections=connections,
                observer=ConsoleObserver(plan.thresholds),
                client=client,
            )

    started = time.perf_counter()
    outcomes = asyncio.run(go())
    total_duration = time.perf_counter() - started

    results_path = save_load_results(outcomes, out)
    click.echo(f"\nResults saved to {results_path}")
    click.echo("\n" + format_load_summary(outcomes, total_duration))


if __name__ == "__main__":
    main()
