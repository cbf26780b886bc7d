"""
Prometheus metrics collection for oidc-gate.
"""

from typing import Optional
from prometheus_client import Counter, Gauge, CollectorRegistry, generate_latest, REGISTRY


class MetricsCollector:
    """Centralized metrics collection."""

    def __init__(self, registry: CollectorRegistry = REGISTRY):
        self.registry = registry

        # Authentication metrics
        self.authenticate_total = Counter(
            'oidc_gate_authenticate_total',
            'Underlying authentication checks by outcome',
            ['scheme', 'outcome'],
            registry=registry
        )

        self.challenges_total = Counter(
            'oidc_gate_challenges_total',
            'Challenges issued',
            ['scheme'],
            registry=registry
        )

        self.sign_outs_total = Counter(
            'oidc_gate_sign_outs_total',
            'Remote sign-outs issued',
            ['scheme'],
            registry=registry
        )

        # Configured schemes
        self.schemes_count = Gauge(
            'oidc_gate_schemes_total',
            'Number of configured authentication schemes',
            registry=registry
        )

    def record_authenticate(self, scheme: Optional[str], outcome: str):
        """Record one underlying authentication check."""
        self.authenticate_total.labels(
            scheme=scheme or "",
            outcome=outcome
        ).inc()

    def record_challenge(self, scheme: Optional[str]):
        """Record a challenge."""
        self.challenges_total.labels(scheme=scheme or "").inc()

    def record_sign_out(self, scheme: Optional[str]):
        """Record a remote sign-out."""
        self.sign_outs_total.labels(scheme=scheme or "").inc()

    def set_schemes_count(self, count: int):
        """Set the number of configured schemes."""
        self.schemes_count.set(count)

    def get_metrics(self) -> str:
        """Get metrics in Prometheus format."""
        return generate_latest(self.registry).decode('utf-8')


# Global metrics collector instance
_metrics_collector: Optional[MetricsCollector] = None


def get_metrics_collector() -> MetricsCollector:
    """Get the global metrics collector."""
    global _metrics_collector
    if _metrics_collector is None:
        _metrics_collector = MetricsCollector()
    return _metrics_collector
