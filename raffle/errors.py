"""
Raffle errors.

A small, typed hierarchy of exceptions raised by the raffle state machine,
its ledger and treasury, and the randomness providers it talks to. Callers can
catch the base `RaffleError` to handle every raffle failure, or catch the
concrete subclasses for more granular control.

Every error carries enough context (state, counts, balances, ids) for the
caller to decide whether a retry makes sense:

- recoverable by the caller: InsufficientEntryFee, NotOpen, UpkeepNotNeeded,
  InsufficientFunds
- rejected callbacks, no state change: UnknownRequest, UnauthorizedFulfillment,
  MalformedRandomness
- faults that leave the round stuck in CALCULATING: NoParticipants,
  TransferFailed, HistoryConflict
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from .types.core import RoundState


class RaffleError(Exception):
    """Base class for all raffle errors."""
    pass


# ---------------------------------------------------------------------------
# Entry / ledger
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InsufficientEntryFee(RaffleError):
    """
    Raised when an entry pays less than the configured minimum.

    Attributes:
        paid: Amount sent with the entry (smallest currency unit).
        minimum: Configured entrance fee.
    """
    paid: int
    minimum: int

    def __str__(self) -> str:  # pragma: no cover - trivial formatting
        return f"InsufficientEntryFee: paid={self.paid} < minimum={self.minimum}"


@dataclass(frozen=True)
class IndexOutOfRange(RaffleError):
    """Raised when reading a participant slot that does not exist."""
    index: int
    count: int

    def __str__(self) -> str:  # pragma: no cover - trivial formatting
        return f"IndexOutOfRange: index={self.index} count={self.count}"


@dataclass(frozen=True)
class NotOpen(RaffleError):
    """Raised when entering while the round is being calculated."""
    state: RoundState

    def __str__(self) -> str:  # pragma: no cover - trivial formatting
        return f"NotOpen: raffle state is {self.state.name}"


# ---------------------------------------------------------------------------
# Upkeep
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class UpkeepNotNeeded(RaffleError):
    """
    Raised by perform_upkeep when the round is not eligible to close.

    Attributes:
        balance: Pool balance at the time of the check.
        participant_count: Number of entries in the round.
        state: Round state at the time of the check.
    """
    balance: int
    participant_count: int
    state: RoundState

    def __str__(self) -> str:  # pragma: no cover - trivial formatting
        return (
            f"UpkeepNotNeeded: balance={self.balance} "
            f"participants={self.participant_count} state={self.state.code}"
        )


@dataclass(frozen=True)
class RequestAlreadyPending(RaffleError):
    """Raised if a close is attempted while a randomness request is outstanding."""
    request_id: int

    def __str__(self) -> str:  # pragma: no cover - trivial formatting
        return f"RequestAlreadyPending: request_id={self.request_id}"


# ---------------------------------------------------------------------------
# Randomness callback
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class UnknownRequest(RaffleError):
    """
    Raised when a fulfilment does not match the pending request.

    Covers replays of an already fulfilled id, ids issued to other consumers,
    and callbacks arriving while nothing is pending (`pending` is None).
    """
    request_id: int
    pending: Optional[int] = None

    def __str__(self) -> str:  # pragma: no cover - trivial formatting
        return f"UnknownRequest: request_id={self.request_id} pending={self.pending}"


@dataclass(frozen=True)
class UnauthorizedFulfillment(UnknownRequest):
    """Raised when someone other than the configured provider delivers randomness."""
    caller: str = ""
    provider: str = ""

    def __str__(self) -> str:  # pragma: no cover - trivial formatting
        return (
            f"UnauthorizedFulfillment: caller={self.caller} is not provider={self.provider} "
            f"(request_id={self.request_id})"
        )


@dataclass(frozen=True)
class MalformedRandomness(RaffleError):
    """Raised when a fulfilment carries no usable random value."""
    request_id: int
    reason: str

    def __str__(self) -> str:  # pragma: no cover - trivial formatting
        return f"MalformedRandomness: request_id={self.request_id} reason={self.reason}"


@dataclass(frozen=True)
class NoParticipants(RaffleError):
    """Raised if a round is finalized with nobody in it."""
    request_id: int

    def __str__(self) -> str:  # pragma: no cover - trivial formatting
        return f"NoParticipants: request_id={self.request_id}"


@dataclass(frozen=True)
class TransferFailed(RaffleError):
    """
    Raised when the winner's payout is rejected.

    The round is NOT reset: state stays CALCULATING, the pending request is
    kept and the pool stays escrowed.
    """
    winner: str
    amount: int
    reason: Optional[str] = None

    def __str__(self) -> str:  # pragma: no cover - trivial formatting
        base = f"TransferFailed: winner={self.winner} amount={self.amount}"
        return f"{base} reason={self.reason}" if self.reason else base


@dataclass(frozen=True)
class HistoryConflict(RaffleError):
    """Raised when a round's record differs from the one already stored."""
    raffle: str
    round_number: int

    def __str__(self) -> str:  # pragma: no cover - trivial formatting
        return f"HistoryConflict: round {self.round_number} of {self.raffle} already recorded with a different outcome"


# ---------------------------------------------------------------------------
# Treasury
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InsufficientFunds(RaffleError):
    """Raised when an account cannot cover a pay-in or transfer."""
    account: str
    balance: int
    amount: int

    def __str__(self) -> str:  # pragma: no cover - trivial formatting
        return f"InsufficientFunds: account={self.account} balance={self.balance} < amount={self.amount}"


@dataclass(frozen=True)
class TransferRejected(RaffleError):
    """Raised by the treasury when a recipient refuses incoming value."""
    recipient: str
    amount: int

    def __str__(self) -> str:  # pragma: no cover - trivial formatting
        return f"TransferRejected: recipient={self.recipient} amount={self.amount}"


# ---------------------------------------------------------------------------
# Randomness providers
# ---------------------------------------------------------------------------


class ProviderError(RaffleError):
    """Base class for errors raised by randomness providers."""
    pass


@dataclass(frozen=True)
class NonexistentRequest(ProviderError):
    """Raised when asked to fulfil a request id the provider never issued (or already served)."""
    request_id: int

    def __str__(self) -> str:  # pragma: no cover - trivial formatting
        return f"nonexistent request: {self.request_id}"


@dataclass(frozen=True)
class InvalidSubscription(ProviderError):
    subscription_id: int

    def __str__(self) -> str:  # pragma: no cover - trivial formatting
        return f"InvalidSubscription: {self.subscription_id}"


@dataclass(frozen=True)
class InvalidConsumer(ProviderError):
    subscription_id: int
    consumer: str

    def __str__(self) -> str:  # pragma: no cover - trivial formatting
        return f"InvalidConsumer: {self.consumer} not on subscription {self.subscription_id}"


@dataclass(frozen=True)
class InsufficientSubscriptionBalance(ProviderError):
    subscription_id: int
    balance: int
    payment: int

    def __str__(self) -> str:  # pragma: no cover - trivial formatting
        return (
            f"InsufficientSubscriptionBalance: subscription={self.subscription_id} "
            f"balance={self.balance} < payment={self.payment}"
        )


def error_context(err: RaffleError) -> dict[str, Any]:
    """
    JSON-friendly field dump of an error, for RPC `data` and log lines.
    RoundState fields are reported by their integer code.
    """
    out: dict[str, Any] = {}
    for name, value in vars(err).items():
        if name.startswith("_"):
            continue
        out[name] = value.code if isinstance(value, RoundState) else value
    return out


__all__ = [
    "RaffleError",
    "InsufficientEntryFee",
    "IndexOutOfRange",
    "NotOpen",
    "UpkeepNotNeeded",
    "RequestAlreadyPending",
    "UnknownRequest",
    "UnauthorizedFulfillment",
    "MalformedRandomness",
    "NoParticipants",
    "TransferFailed",
    "HistoryConflict",
    "InsufficientFunds",
    "TransferRejected",
    "ProviderError",
    "NonexistentRequest",
    "InvalidSubscription",
    "InvalidConsumer",
    "InsufficientSubscriptionBalance",
    "error_context",
]
