"""Observability module for Warden.

Usage:
    from warden.observability import record_decision, get_metrics

    record_decision("deny", "no_grant")
    payload = get_metrics()
"""

from warden.observability.metrics import (
    AUDIT_EVENTS_DROPPED,
    AUTHZ_DECISION_DURATION,
    AUTHZ_DECISIONS,
    MALFORMED_GRANTS,
    ROLE_CACHE_HITS,
    ROLE_CACHE_MISSES,
    MetricsConfig,
    MetricsManager,
    create_metrics_manager,
    get_metrics,
    get_metrics_manager,
    observe_decision_duration,
    record_audit_dropped,
    record_decision,
    record_malformed_grant,
    record_role_cache_lookup,
)

__all__ = [
    "AUDIT_EVENTS_DROPPED",
    "AUTHZ_DECISIONS",
    "AUTHZ_DECISION_DURATION",
    "MALFORMED_GRANTS",
    "ROLE_CACHE_HITS",
    "ROLE_CACHE_MISSES",
    "MetricsConfig",
    "MetricsManager",
    "create_metrics_manager",
    "get_metrics",
    "get_metrics_manager",
    "observe_decision_duration",
    "record_audit_dropped",
    "record_decision",
    "record_malformed_grant",
    "record_role_cache_lookup",
]
