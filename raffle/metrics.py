"""
Prometheus metrics for the raffle.

Counters and histograms for the round lifecycle:
  • entries      - entry attempts per outcome
  • upkeeps      - perform_upkeep attempts per outcome
  • fulfillments - randomness callbacks per outcome
  • calculation_seconds - time a round spent in CALCULATING (request → payout)
  • round_participants  - entries per finalized round

The only label is `outcome`, drawn from a small,
finite vocabulary. Unknown outcomes are folded into "invalid".

Usage
-----
    from raffle.metrics import METRICS

    METRICS.record_entry("accepted")
    METRICS.record_fulfillment("transfer_failed")
    METRICS.observe_round(calculation_s=12.0, participants=4)

Tests that want isolated counters construct their own `Metrics` with a fresh
`CollectorRegistry`.
"""

from __future__ import annotations

from typing import Iterable

from prometheus_client import REGISTRY, Counter, Histogram

# --------- Vocabularies (kept small for bounded cardinality) ---------

_ENTRY_OUTCOMES = (
    "accepted",
    "insufficient_fee",
    "insufficient_funds",
    "not_open",
    "invalid",
)

_UPKEEP_OUTCOMES = (
    "performed",
    "not_needed",
    "already_pending",
    "provider_error",
    "invalid",
)

_FULFILL_OUTCOMES = (
    "winner_picked",
    "unauthorized",
    "unknown_request",
    "malformed",
    "no_participants",
    "transfer_failed",
    "history_conflict",
    "invalid",
)

# Seconds between request and payout: from "same block" up to a day stuck.
_CALC_BUCKETS = (1.0, 5.0, 15.0, 30.0, 60.0, 120.0, 300.0, 900.0, 3600.0, 86400.0)

_PARTICIPANT_BUCKETS = (1.0, 2.0, 4.0, 8.0, 16.0, 32.0, 64.0, 128.0, 256.0, 1024.0)


class Metrics:
    """
    Container for all raffle Prometheus instruments.

    Args:
        namespace: Prometheus metric namespace (prefix).
        subsystem: Prometheus metric subsystem.
        registry:  Prometheus registry to register the metrics with.
    """

    def __init__(
        self,
        *,
        namespace: str = "animica",
        subsystem: str = "raffle",
        registry=REGISTRY,
        calc_buckets: Iterable[float] = _CALC_BUCKETS,
        participant_buckets: Iterable[float] = _PARTICIPANT_BUCKETS,
    ) -> None:
        self.entries_total = Counter(
            "entries_total",
            "Entry attempts, labeled by outcome.",
            labelnames=("outcome",),
            namespace=namespace,
            subsystem=subsystem,
            registry=registry,
        )
        self.upkeeps_total = Counter(
            "upkeeps_total",
            "perform_upkeep attempts, labeled by outcome.",
            labelnames=("outcome",),
            namespace=namespace,
            subsystem=subsystem,
            registry=registry,
        )
        self.fulfillments_total = Counter(
            "fulfillments_total",
            "Randomness callbacks processed, labeled by outcome.",
            labelnames=("outcome",),
            namespace=namespace,
            subsystem=subsystem,
            registry=registry,
        )
        self.calculation_seconds = Histogram(
            "calculation_seconds",
            "Seconds a round spent waiting for randomness before payout.",
            buckets=tuple(calc_buckets),
            namespace=namespace,
            subsystem=subsystem,
            registry=registry,
        )
        self.round_participants = Histogram(
            "round_participants",
            "Number of entries in each finalized round.",
            buckets=tuple(participant_buckets),
            namespace=namespace,
            subsystem=subsystem,
            registry=registry,
        )

    # ----- Recording helpers -------------------------------------------------

    def record_entry(self, outcome: str) -> None:
        if outcome not in _ENTRY_OUTCOMES:
            outcome = "invalid"
        self.entries_total.labels(outcome=outcome).inc()

    def record_upkeep(self, outcome: str) -> None:
        if outcome not in _UPKEEP_OUTCOMES:
            outcome = "invalid"
        self.upkeeps_total.labels(outcome=outcome).inc()

    def record_fulfillment(self, outcome: str) -> None:
        if outcome not in _FULFILL_OUTCOMES:
            outcome = "invalid"
        self.fulfillments_total.labels(outcome=outcome).inc()

    def observe_round(self, *, calculation_s: float, participants: int) -> None:
        """Record a finalized round."""
        self.calculation_seconds.observe(max(0.0, float(calculation_s)))
        self.round_participants.observe(float(participants))


# Singleton used by most components
METRICS = Metrics()

__all__ = [
    "Metrics",
    "METRICS",
    "_ENTRY_OUTCOMES",
    "_UPKEEP_OUTCOMES",
    "_FULFILL_OUTCOMES",
]
