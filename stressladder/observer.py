"""Progress hooks emitted while endpoints are escalated."""

from stressladder.models import EndpointSpec, EndpointSummary, MetricsSample, Verdict


class EscalationObserver:
    """Receives progress events from the runner and orchestrator.

    Every hook is a no-op; subclasses override the ones they care about.
    """

    def endpoint_started(self, endpoint: EndpointSpec) -> None:
        pass

    def endpoint_skipped(self, endpoint: EndpointSpec, reason: str) -> None:
        pass

    def level_started(self, endpoint: EndpointSpec, connections: int) -> None:
        pass

    def level_skipped(self, endpoint: EndpointSpec, connections: int, reason: str) -> None:
        pass

    def level_completed(self, endpoint: EndpointSpec, sample: MetricsSample) -> None:
        pass

    def degradation_detected(
        self, endpoint: EndpointSpec, sample: MetricsSample, verdict: Verdict
    ) -> None:
        pass

    def threshold_breached(
        self, endpoint: EndpointSpec, sample: MetricsSample, verdict: Verdict
    ) -> None:
        pass

    def endpoint_aborted(self, endpoint: EndpointSpec, connections: int, error: str) -> None:
        pass

    def endpoint_finished(self, summary: EndpointSummary) -> None:
        pass
