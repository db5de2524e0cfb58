"""Console rendering of escalation progress and reports."""

from typing import List, Optional

import click

from stressladder.models import (
    CheckResult,
    DetectionThresholds,
    EndpointSpec,
    EndpointSummary,
    LoadOutcome,
    MetricsSample,
    SystemReport,
    Verdict,
)
from stressladder.observer import EscalationObserver

RULE = "=" * 53


def format_sample(sample: MetricsSample) -> str:
    lines = [
        "===== RESULTS =====",
        f"Connections: {sample.connections}",
        f"Throughput: {sample.throughput:.2f} req/sec",
        f"Latency (avg): {sample.latency_avg:.2f} ms",
        f"Latency (p95): {sample.latency_p95:.2f} ms",
        f"Error rate: {sample.error_rate * 100:.2f}%",
    ]
    if sample.status_code_counts:
        lines.append("Status Code Distribution:")
        for code, count in sample.status_code_counts.items():
            lines.append(f"  {code}: {count}")
    lines.append("===================")
    return "\n".join(lines)


def format_endpoint_summary(summary: EndpointSummary) -> str:
    lines = [
        "===== ENDPOINT SUMMARY =====",
        f"Endpoint: {summary.name} ({summary.method} {summary.path})",
    ]
    if summary.skip_reason:
        lines.append(f"Skipped: {summary.skip_reason}")
        return "\n".join(lines)
    if summary.error:
        lines.append(f"Aborted after {len(summary.samples)} level(s): {summary.error}")

    if summary.degradation_point is not None:
        lines.append(
            f"Recommended maximum load: {summary.recommended_max_connections} "
            "concurrent connections"
        )
        lines.append(
            f"Performance degradation began at: {summary.degradation_point} "
            "concurrent connections"
        )
    elif summary.samples:
        lines.append(
            "No significant degradation detected up to "
            f"{summary.max_tested_connections} concurrent connections"
        )

    best = summary.optimal_sample
    if best is not None:
        lines.append(f"Optimal performance at {best.connections} connections:")
        lines.append(f"  - Throughput: {summary.max_throughput:.2f} req/sec")
        lines.append(f"  - Latency: {best.latency_avg:.2f} ms")
        lines.append(f"  - Error rate: {best.error_rate * 100:.2f}%")
    return "\n".join(lines)


def format_system_report(report: SystemReport) -> str:
    lines: List[str] = ["===== OVERALL SYSTEM CAPACITY ANALYSIS ====="]
    bottleneck = report.bottleneck
    if bottleneck is not None:
        lines.extend([
            f"System Bottleneck: {bottleneck.name}",
            f"  Path: {bottleneck.method} {bottleneck.path}",
            f"  Degradation Point: {bottleneck.degradation_point} connections",
            f"  Description: {bottleneck.description}",
            "Recommended overall system connection limit: "
            f"{report.recommended_concurrency_ceiling} concurrent users",
        ])
    else:
        lines.extend([
            "No clear bottlenecks detected in tested endpoints",
            f"  All endpoints handled up to {report.max_tested_connections} "
            "concurrent connections successfully",
        ])

    if report.top_performers:
        lines.append("Endpoints with highest throughput:")
        for i, summary in enumerate(report.top_performers, start=1):
            lines.append(
                f"  {i}. {summary.name}: {summary.max_throughput:.2f} req/sec "
                f"at {summary.optimal_connections} connections"
            )

    lines.append("Scaling Recommendations:")
    for advice in report.recommendations:
        lines.append(f"  - {advice}")
    return "\n".join(lines)


def format_check_report(results: List[CheckResult]) -> str:
    lines = ["=== TEST SUMMARY ==="]
    for result in results:
        mark = "PASS" if result.success else "FAIL"
        status = f" ({result.status})" if result.status is not None else ""
        line = f"  [{mark}] {result.name}: {result.method} {result.path}{status}"
        if result.error:
            line += f" - {result.error}"
        lines.append(line)

    passed = sum(1 for r in results if r.success)
    lines.append(f"Successful: {passed}/{len(results)} endpoints")
    if passed == 0:
        lines.append("SERVER IS NOT RUNNING OR HAS CRITICAL FAILURES")
    elif passed < len(results):
        lines.append("SERVER IS RUNNING BUT HAS SOME ISSUES")
    else:
        lines.append("SERVER IS RUNNING CORRECTLY")
    return "\n".join(lines)


def format_load_summary(outcomes: List[LoadOutcome], total_duration: float) -> str:
    """Rank loaded endpoints by throughput and call out the slow and failing ones."""
    loaded = [o for o in outcomes if o.sample is not None]
    skipped = [o for o in outcomes if o.skip_reason]
    failed = [o for o in outcomes if o.error]

    lines = [
        "===== TEST SUMMARY =====",
        f"Total tests: {len(outcomes)}",
        f"Total duration: {total_duration:.2f} seconds",
    ]
    if skipped:
        lines.append(f"Skipped tests: {len(skipped)}")

    lines.append("Endpoint Performance (by throughput):")
    for outcome in sorted(loaded, key=lambda o: o.sample.throughput, reverse=True):
        sample = outcome.sample
        lines.extend([
            f"{outcome.name} ({outcome.method} {outcome.path}) "
            f"at {outcome.connections} connections:",
            f"  Throughput: {sample.throughput:.2f} req/sec",
            f"  Latency: {sample.latency_avg:.2f} ms (p95 {sample.latency_p95:.2f} ms)",
            f"  Success rate: {outcome.success_rate:.2f}%",
            f"  Errors: {sample.errors}",
        ])

    if skipped:
        lines.append("Skipped Tests:")
        for outcome in skipped:
            lines.append(f"  {outcome.name} ({outcome.method} {outcome.path}): {outcome.skip_reason}")

    if loaded:
        lines.append("Slowest Endpoints (by latency):")
        slowest = sorted(loaded, key=lambda o: o.sample.latency_avg, reverse=True)[:3]
        for outcome in slowest:
            lines.append(
                f"  {outcome.name} ({outcome.method} {outcome.path}): "
                f"{outcome.sample.latency_avg:.2f} ms"
            )

    with_errors = [o for o in loaded if o.sample.errors > 0]
    if with_errors or failed:
        lines.append("Endpoints with Errors:")
        for outcome in with_errors:
            lines.append(
                f"  {outcome.name} ({outcome.method} {outcome.path}): "
                f"{outcome.sample.errors} errors"
            )
        for outcome in failed:
            lines.append(f"  {outcome.name} ({outcome.method} {outcome.path}): {outcome.error}")
    return "\n".join(lines)


class ConsoleObserver(EscalationObserver):
    """Echo escalation progress to the terminal."""

    def __init__(self, thresholds: Optional[DetectionThresholds] = None):
        self.thresholds = thresholds or DetectionThresholds()

    def endpoint_started(self, endpoint: EndpointSpec) -> None:
        click.echo(f"\n{RULE}")
        click.echo(f"TESTING ENDPOINT: {endpoint.name}")
        if endpoint.description:
            click.echo(f"Description: {endpoint.description}")
        click.echo(f"{endpoint.method} {endpoint.path}")
        click.echo(RULE)

    def endpoint_skipped(self, endpoint: EndpointSpec, reason: str) -> None:
        click.echo(f"\nSkipping {endpoint.name} ({endpoint.method} {endpoint.path}): {reason}")

    def level_started(self, endpoint: EndpointSpec, connections: int) -> None:
        click.echo(f"\nRunning test with {connections} concurrent connections...")

    def level_skipped(self, endpoint: EndpointSpec, connections: int, reason: str) -> None:
        click.echo(f"Skipping {connections} connections: {reason}")

    def level_completed(self, endpoint: EndpointSpec, sample: MetricsSample) -> None:
        click.echo(format_sample(sample))

    def degradation_detected(
        self, endpoint: EndpointSpec, sample: MetricsSample, verdict: Verdict
    ) -> None:
        click.echo(f"\nPerformance degradation detected at {sample.connections} connections!")
        if verdict.throughput_degraded:
            drop = (1 - self.thresholds.throughput_drop_ratio) * 100
            click.echo(f"  - Throughput dropped by more than {drop:g}% from previous level")
        if verdict.high_error_rate:
            click.echo(f"  - Error rate exceeded {self.thresholds.degradation_error_rate * 100:g}%")
        if verdict.high_latency:
            click.echo(f"  - Average latency exceeded {self.thresholds.degradation_latency_ms:g}ms")

    def threshold_breached(
        self, endpoint: EndpointSpec, sample: MetricsSample, verdict: Verdict
    ) -> None:
        if verdict.error_rate_exceeded:
            click.echo(
                f"Error rate exceeded {self.thresholds.stop_error_rate * 100:g}%. "
                "Stopping further tests for this endpoint."
            )
        if verdict.latency_exceeded:
            click.echo(
                f"Average latency exceeded {self.thresholds.stop_latency_ms:g}ms. "
                "Stopping further tests for this endpoint."
            )

    def endpoint_aborted(self, endpoint: EndpointSpec, connections: int, error: str) -> None:
        click.echo(f"Load run failed at {connections} connections: {error}", err=True)

    def endpoint_finished(self, summary: EndpointSummary) -> None:
        click.echo("\n" + format_endpoint_summary(summary))
