"""
Upkeep evaluation.

A round is eligible to close when ALL of the following hold:

    state == OPEN
    elapsed_since_last_close >= interval      (inclusive: exactly `interval` is enough)
    participant_count > 0
    pool_balance > 0

Both helpers are pure: they take the snapshot as arguments and never touch
raffle state, so they are safe to call from read-only/simulated contexts.
"""

from __future__ import annotations

from .types.core import RoundState, UpkeepStatus


def is_upkeep_needed(
    state: RoundState,
    participant_count: int,
    pool_balance: int,
    elapsed: int,
    interval: int,
) -> bool:
    is_open = state is RoundState.OPEN
    time_passed = elapsed >= interval
    has_players = participant_count > 0
    has_balance = pool_balance > 0
    return is_open and time_passed and has_players and has_balance


def evaluate(
    state: RoundState,
    participant_count: int,
    pool_balance: int,
    elapsed: int,
    interval: int,
    *,
    checked_at: int = 0,
) -> UpkeepStatus:
    """Same verdict as `is_upkeep_needed`, with the snapshot attached."""
    return UpkeepStatus(
        needed=is_upkeep_needed(state, participant_count, pool_balance, elapsed, interval),
        state=state,
        participant_count=participant_count,
        pool_balance=pool_balance,
        elapsed=elapsed,
        interval=interval,
        checked_at=checked_at,
    )


__all__ = ["is_upkeep_needed", "evaluate"]
