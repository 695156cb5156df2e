"""Prometheus metrics for Warden observability.

This module provides Prometheus metrics for monitoring:
- Authorization decisions (outcome, deny reason, latency)
- Data integrity problems found while resolving grants
- Role store cache effectiveness
- Audit emission health
"""

from __future__ import annotations

import os
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    Info,
    generate_latest,
)

if TYPE_CHECKING:
    from collections.abc import Generator

__all__ = [
    "MetricsConfig",
    "MetricsManager",
    "AUTHZ_DECISIONS",
    "AUTHZ_DECISION_DURATION",
    "MALFORMED_GRANTS",
    "ROLE_CACHE_HITS",
    "ROLE_CACHE_MISSES",
    "AUDIT_EVENTS_DROPPED",
    "observe_decision_duration",
    "record_decision",
    "record_malformed_grant",
    "record_role_cache_lookup",
    "record_audit_dropped",
    "get_metrics",
    "get_metrics_manager",
    "create_metrics_manager",
]


@dataclass
class MetricsConfig:
    """Configuration for Prometheus metrics.

    Attributes:
        enabled: Whether metrics collection is enabled.
        prefix: Prefix for all metric names.
    """

    enabled: bool = True
    prefix: str = "warden"

    @classmethod
    def from_env(cls) -> MetricsConfig:
        """Create configuration from environment variables."""
        return cls(
            enabled=os.getenv("METRICS_ENABLED", "true").lower() == "true",
            prefix=os.getenv("METRICS_PREFIX", "warden"),
        )


# Default configuration
_config = MetricsConfig()

# ============================================================================
# Authorization Metrics
# ============================================================================

AUTHZ_DECISIONS = Counter(
    f"{_config.prefix}_authz_decisions_total",
    "Total number of authorization decisions",
    ["decision", "reason"],
)

AUTHZ_DECISION_DURATION = Histogram(
    f"{_config.prefix}_authz_decision_duration_seconds",
    "Time spent producing an authorization decision",
    ["decision"],
    buckets=(0.0005, 0.001, 0.0025, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

MALFORMED_GRANTS = Counter(
    f"{_config.prefix}_malformed_grants_total",
    "Grants or roles ignored because they violate a data invariant",
    ["kind"],
)

# ============================================================================
# Role Store Cache Metrics
# ============================================================================

ROLE_CACHE_HITS = Counter(
    f"{_config.prefix}_role_cache_hits_total",
    "Role store cache hits",
    ["kind"],
)

ROLE_CACHE_MISSES = Counter(
    f"{_config.prefix}_role_cache_misses_total",
    "Role store cache misses",
    ["kind"],
)

# ============================================================================
# Audit Metrics
# ============================================================================

AUDIT_EVENTS_DROPPED = Counter(
    f"{_config.prefix}_audit_events_dropped_total",
    "Audit events that could not be delivered",
    ["cause"],
)

SERVICE_INFO = Info(
    f"{_config.prefix}_service",
    "Service information",
)


class MetricsManager:
    """Manages Prometheus metrics configuration and export."""

    def __init__(
        self,
        config: MetricsConfig | None = None,
        registry: CollectorRegistry | None = None,
    ) -> None:
        """Initialize the metrics manager.

        Args:
            config: Metrics configuration.
            registry: Optional custom registry for testing.
        """
        self.config = config or MetricsConfig()
        self.registry = registry or REGISTRY
        self._initialized = False

    def initialize(
        self,
        service_name: str = "warden",
        service_version: str = "0.1.0",
        environment: str = "development",
    ) -> None:
        """Initialize metrics with service information."""
        if self._initialized or not self.config.enabled:
            return

        SERVICE_INFO.info(
            {
                "name": service_name,
                "version": service_version,
                "environment": environment,
            }
        )

        self._initialized = True

    def get_metrics(self) -> bytes:
        """Generate metrics output in Prometheus format."""
        return generate_latest(self.registry)


# Global metrics manager
_metrics_manager: MetricsManager | None = None


def get_metrics_manager() -> MetricsManager:
    """Get the global metrics manager instance."""
    global _metrics_manager
    if _metrics_manager is None:
        _metrics_manager = MetricsManager(MetricsConfig.from_env())
    return _metrics_manager


def create_metrics_manager(
    config: MetricsConfig | None = None,
    registry: CollectorRegistry | None = None,
) -> MetricsManager:
    """Create and register a new metrics manager."""
    global _metrics_manager
    _metrics_manager = MetricsManager(config, registry)
    return _metrics_manager


def get_metrics() -> bytes:
    """Get current metrics in Prometheus format."""
    return get_metrics_manager().get_metrics()


# ============================================================================
# Convenience Functions for Recording Metrics
# ============================================================================


@contextmanager
def observe_decision_duration() -> Generator[dict[str, Any], None, None]:
    """Context manager for observing how long a decision takes.

    Yields:
        Context dict; set ``decision`` to "allow" or "deny" before exiting.
    """
    context: dict[str, Any] = {"decision": "deny"}
    start_time = time.perf_counter()
    try:
        yield context
    finally:
        duration = time.perf_counter() - start_time
        AUTHZ_DECISION_DURATION.labels(decision=context.get("decision", "deny")).observe(duration)


def record_decision(decision: str, reason: str | None = None) -> None:
    """Record an authorization decision.

    Args:
        decision: "allow" or "deny".
        reason: Deny reason code, or the granted scope for allows.
    """
    AUTHZ_DECISIONS.labels(decision=decision, reason=reason or "none").inc()


def record_malformed_grant(kind: str) -> None:
    """Record a grant or role ignored because of corrupt data.

    Args:
        kind: Type of problem (unknown_operation, role_tenant_mismatch, ...).
    """
    MALFORMED_GRANTS.labels(kind=kind).inc()


def record_role_cache_lookup(kind: str, hit: bool) -> None:
    """Record a role store cache lookup.

    Args:
        kind: Cached collection (user_roles).
        hit: Whether the value was served from cache.
    """
    if hit:
        ROLE_CACHE_HITS.labels(kind=kind).inc()
    else:
        ROLE_CACHE_MISSES.labels(kind=kind).inc()


def record_audit_dropped(cause: str) -> None:
    """Record an audit event that was dropped.

    Args:
        cause: Why the event was dropped (queue_full, sink_error, stopped).
    """
    AUDIT_EVENTS_DROPPED.labels(cause=cause).inc()
