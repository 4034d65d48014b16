"""
Prometheus metrics for the relay policy layer.

Metrics are defined at module level so every hook and handler in the process
updates the same collectors. Exposition is left to the host relay: it
already serves ``/metrics`` and picks these up from the default registry.

Usage:
    from relayguard.core.metrics import POLICY_DECISIONS_TOTAL

    POLICY_DECISIONS_TOTAL.labels(hook="reject_event", outcome="accepted").inc()
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram, Info


# =============================================================================
# Relay Identity
# =============================================================================

RELAY_INFO = Info(
    "relayguard_relay",
    "Relay name, version and software set at startup",
)


# =============================================================================
# Policy Hooks
# =============================================================================

POLICY_DECISIONS_TOTAL = Counter(
    "relayguard_policy_decisions_total",
    "Policy hook decisions",
    ["hook", "outcome"],  # outcome: accepted, rejected, error
)


# =============================================================================
# Management API
# =============================================================================

MANAGEMENT_CALLS_TOTAL = Counter(
    "relayguard_management_calls_total",
    "NIP-86 management calls handled",
    ["method", "outcome"],  # outcome: ok, unauthorized, invalid, not_found, error
)

MANAGEMENT_CALL_DURATION_SECONDS = Histogram(
    "relayguard_management_call_duration_seconds",
    "Duration of NIP-86 management calls in seconds",
    ["method"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5),
)


def record_policy_decision(hook: str, outcome: str) -> None:
    POLICY_DECISIONS_TOTAL.labels(hook=hook, outcome=outcome).inc()


def record_management_call(method: str, outcome: str, duration: float) -> None:
    MANAGEMENT_CALLS_TOTAL.labels(method=method, outcome=outcome).inc()
    MANAGEMENT_CALL_DURATION_SECONDS.labels(method=method).observe(duration)
