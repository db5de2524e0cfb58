"""Data models for stress plans, load samples, escalation state and reports."""

import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple


@dataclass(frozen=True)
class EndpointSpec:
    name: str
    path: str
    method: str = "GET"
    description: str = ""
    max_connections: int = 0
    ladder: Tuple[int, ...] = ()  # ascending, already capped at max_connections
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[str] = None
    requires_auth: bool = False


@dataclass(frozen=True)
class DetectionThresholds:
    throughput_drop_ratio: float = 0.8
    degradation_error_rate: float = 0.05
    degradation_latency_ms: float = 1000.0
    stop_error_rate: float = 0.10
    stop_latency_ms: float = 3000.0
    skip_ahead_multiplier: float = 2.0
    safe_margin: float = 0.7


@dataclass(frozen=True)
class ValidationSettings:
    enabled: bool = True
    skip_on_failure: bool = True
    retries: int = 3
    retry_delay_seconds: float = 1.0


@dataclass(frozen=True)
class AuthSettings:
    username: str
    password: str
    login_path: str = "/api/login"
    token_field: str = "token"


@dataclass(frozen=True)
class StressPlan:
    base_url: str
    endpoints: List[EndpointSpec] = field(default_factory=list)
    ladder: Tuple[int, ...] = ()
    duration_seconds: float = 10
    timeout_seconds: float = 10
    thresholds: DetectionThresholds = field(default_factory=DetectionThresholds)
    validation: ValidationSettings = field(default_factory=ValidationSettings)
    auth: Optional[AuthSettings] = None


@dataclass(frozen=True)
class AuthContext:
    token: str

    def headers_for(self, endpoint: EndpointSpec) -> Dict[str, str]:
        headers = dict(endpoint.headers)
        if endpoint.requires_auth:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers


@dataclass(frozen=True)
class LoadTarget:
    url: str
    method: str = "GET"
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[str] = None


@dataclass(frozen=True)
class LoadResult:
    requests_total: int
    throughput_avg: float  # requests per second
    latency_avg: float  # ms
    latency_p95: float  # ms
    errors: int = 0
    timeouts: int = 0
    non_2xx: int = 0
    status_code_counts: Dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class MetricsSample:
    connections: int
    throughput: float
    latency_avg: float
    latency_p95: float
    error_rate: float
    status_code_counts: Dict[str, int] = field(default_factory=dict)
    errors: int = 0
    timeouts: int = 0
    non_2xx: int = 0
    requests_total: int = 0

    @classmethod
    def from_result(cls, connections: int, result: LoadResult) -> "MetricsSample":
        return cls(
            connections=connections,
            throughput=result.throughput_avg,
            latency_avg=result.latency_avg,
            latency_p95=result.latency_p95,
            error_rate=result.errors / max(result.requests_total, 1),
            status_code_counts=dict(result.status_code_counts),
            errors=result.errors,
            timeouts=result.timeouts,
            non_2xx=result.non_2xx,
            requests_total=result.requests_total,
        )


@dataclass
class EscalationState:
    previous_throughput: float = 0.0
    degradation_point: Optional[int] = None
    error_rate_threshold: bool = False
    latency_threshold: bool = False
    samples: List[MetricsSample] = field(default_factory=list)

    @property
    def stopped(self) -> bool:
        return self.error_rate_threshold or self.latency_threshold


@dataclass(frozen=True)
class Verdict:
    throughput_degraded: bool = False
    high_error_rate: bool = False
    high_latency: bool = False
    error_rate_exceeded: bool = False
    latency_exceeded: bool = False
    degradation_started: bool = False  # this sample set the degradation point
    stop_endpoint: bool = False

    @property
    def degraded(self) -> bool:
        return self.throughput_degraded or self.high_error_rate or self.high_latency


@dataclass(frozen=True)
class EndpointSummary:
    name: str
    path: str
    method: str
    description: str = ""
    degradation_point: Optional[int] = None
    optimal_connections: Optional[int] = None
    max_throughput: float = 0.0
    samples: List[MetricsSample] = field(default_factory=list)
    safe_margin: float = 0.7
    skip_reason: Optional[str] = None
    error: Optional[str] = None

    @property
    def recommended_max_connections(self) -> Optional[int]:
        if self.degradation_point is None:
            return None
        return math.floor(self.degradation_point * self.safe_margin)

    @property
    def max_tested_connections(self) -> int:
        return self.samples[-1].connections if self.samples else 0

    @property
    def optimal_sample(self) -> Optional[MetricsSample]:
        for sample in self.samples:
            if sample.connections == self.optimal_connections:
                return sample
        return None


@dataclass(frozen=True)
class SystemReport:
    bottleneck: Optional[EndpointSummary] = None
    recommended_concurrency_ceiling: Optional[int] = None
    max_tested_connections: int = 0
    top_performers: List[EndpointSummary] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)


@dataclass
class StressRun:
    plan: StressPlan
    summaries: List[EndpointSummary] = field(default_factory=list)
    report: Optional[SystemReport] = None
    started_at: str = ""
    finished_at: str = ""


@dataclass(frozen=True)
class CheckResult:
    name: str
    path: str
    method: str
    success: bool
    status: Optional[int] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class LoadOutcome:
    """One endpoint held at a single concurrency level."""

    name: str
    path: str
    method: str
    connections: int
    sample: Optional[MetricsSample] = None
    skip_reason: Optional[str] = None
    error: Optional[str] = None

    @property
    def success_rate(self) -> float:
        """Percentage of attempts answered with a 2xx status."""
        if self.sample is None or self.sample.requests_total == 0:
            return 0.0
        ok = self.sample.requests_total - self.sample.errors - self.sample.non_2xx
        return ok * 100 / self.sample.requests_total
