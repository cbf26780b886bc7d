"""
Observability features for oidc-gate.
"""

from .metrics import MetricsCollector, get_metrics_collector
from .logging import setup_logging, get_logger, AuthLogger
from .tracing import setup_tracing, TracingContext

__all__ = [
    "MetricsCollector",
    "get_metrics_collector",
    "setup_logging",
    "get_logger",
    "AuthLogger",
    "setup_tracing",
    "TracingContext",
]
