"""Prometheus metrics for skillrouter.

- Routes by result type
- Decisions by action and source
- Resolver fallbacks and completion latency
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram, Info, generate_latest
from prometheus_client.core import CollectorRegistry

# =============================================================================
# Custom Registry (avoids conflicts in tests)
# =============================================================================

REGISTRY = CollectorRegistry(auto_describe=True)

skillrouter_info = Info(
    "skillrouter",
    "skillrouter version and environment info",
    registry=REGISTRY,
)

# =============================================================================
# Routing Metrics
# =============================================================================

routes_total = Counter(
    "skillrouter_routes_total",
    "Routed utterances by result type",
    ["result_type", "success"],
    registry=REGISTRY,
)

route_duration_seconds = Histogram(
    "skillrouter_route_duration_seconds",
    "Time to route one utterance",
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
    registry=REGISTRY,
)

decisions_total = Counter(
    "skillrouter_decisions_total",
    "Resolved decisions",
    ["action", "source"],  # source: deterministic/probabilistic/confirmation
    registry=REGISTRY,
)

resolver_fallbacks_total = Counter(
    "skillrouter_resolver_fallbacks_total",
    "Decision resolver fallbacks to low-confidence chat",
    ["reason"],  # parse/timeout/service
    registry=REGISTRY,
)

# =============================================================================
# Completion Service Metrics
# =============================================================================

completion_duration_seconds = Histogram(
    "skillrouter_completion_duration_seconds",
    "Completion service request latency",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0],
    registry=REGISTRY,
)


# =============================================================================
# Helper Functions
# =============================================================================


def record_route(result_type: str, success: bool, latency_seconds: float) -> None:
    """Record metrics for one routed utterance."""
    routes_total.labels(result_type=result_type, success=str(success).lower()).inc()
    route_duration_seconds.observe(latency_seconds)


def record_decision(action: str, source: str) -> None:
    decisions_total.labels(action=action, source=source).inc()


def record_fallback(reason: str) -> None:
    resolver_fallbacks_total.labels(reason=reason).inc()


def get_metrics_text() -> str:
    """Generate Prometheus exposition text."""
    return generate_latest(REGISTRY).decode("utf-8")


def init_metrics(version: str, env: str) -> None:
    """Initialize static metrics."""
    skillrouter_info.info({"version": version, "environment": env})
