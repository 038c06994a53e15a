from typing import List

import pytest

from raffle.adapters.treasury import Treasury
from raffle.adapters.vrf_mock import VRFCoordinatorMock
from raffle.errors import (
    HistoryConflict,
    InsufficientEntryFee,
    InsufficientFunds,
    InvalidConsumer,
    MalformedRandomness,
    NonexistentRequest,
    NotOpen,
    TransferFailed,
    UnauthorizedFulfillment,
    UnknownRequest,
    UpkeepNotNeeded,
)
from raffle.events import EV_ENTRY_RECORDED, EV_REQUESTED_WINNER, EV_WINNER_PICKED, EventLog
from raffle.machine import RaffleStateMachine
from raffle.store.history import RoundHistory, RoundRecord
from raffle.types import RoundConfig, RoundState
from raffle.utils.time import ManualClock

from .conftest import BASE_FEE, ENTRANCE_FEE, INTERVAL, START_TS, SUB_FUNDING, _det_address


def _sample(registry, name: str, outcome: str) -> float:
    return registry.get_sample_value(f"animica_raffle_{name}", {"outcome": outcome}) or 0.0


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


def test_initial_state(raffle: RaffleStateMachine, coordinator: VRFCoordinatorMock):
    assert raffle.state is RoundState.OPEN
    assert raffle.state.code == 0
    assert raffle.entrance_fee == ENTRANCE_FEE
    assert raffle.interval == INTERVAL
    assert raffle.num_participants == 0
    assert raffle.pool_balance == 0
    assert raffle.recent_winner is None
    assert raffle.pending_request is None
    assert raffle.last_timestamp == START_TS
    assert raffle.round_number == 0
    assert raffle.provider_address == coordinator.address


def test_provider_must_match_config(round_config: RoundConfig, treasury: Treasury, clock: ManualClock):
    other = VRFCoordinatorMock(0, address=_det_address("someone-else"))
    with pytest.raises(ValueError):
        RaffleStateMachine(round_config, other, address=_det_address("r2"), treasury=treasury, clock=clock)


# ---------------------------------------------------------------------------
# Entry
# ---------------------------------------------------------------------------


def test_enter_below_fee_is_rejected(raffle: RaffleStateMachine, players: List[str], treasury: Treasury):
    with pytest.raises(InsufficientEntryFee):
        raffle.enter(players[0], ENTRANCE_FEE - 1)
    assert raffle.num_participants == 0
    assert treasury.balance_of(players[0]) == 10_000
    assert treasury.balance_of(raffle.address) == 0


def test_enter_records_player_and_escrows_fee(
    raffle: RaffleStateMachine, players: List[str], treasury: Treasury, events: EventLog
):
    raffle.enter(players[0], ENTRANCE_FEE)
    raffle.enter(players[1], ENTRANCE_FEE + 50)

    assert raffle.num_participants == 2
    assert raffle.participant(0) == players[0]
    assert raffle.participant(1) == players[1]
    assert raffle.pool_balance == 2 * ENTRANCE_FEE + 50
    assert treasury.balance_of(raffle.address) == raffle.pool_balance
    assert treasury.balance_of(players[1]) == 10_000 - ENTRANCE_FEE - 50
    assert events.names() == [EV_ENTRY_RECORDED, EV_ENTRY_RECORDED]


def test_enter_without_funds_changes_nothing(raffle: RaffleStateMachine, treasury: Treasury):
    broke = _det_address("broke")
    with pytest.raises(InsufficientFunds):
        raffle.enter(broke, ENTRANCE_FEE)
    assert raffle.num_participants == 0
    assert treasury.balance_of(raffle.address) == 0


def test_raffle_cannot_enter_itself(
    raffle: RaffleStateMachine,
    coordinator: VRFCoordinatorMock,
    players: List[str],
    treasury: Treasury,
    clock: ManualClock,
    metrics_registry,
):
    raffle.enter(players[0], ENTRANCE_FEE)
    with pytest.raises(ValueError):
        raffle.enter(raffle.address, ENTRANCE_FEE)
    assert raffle.num_participants == 1
    assert raffle.pool_balance == treasury.balance_of(raffle.address) == ENTRANCE_FEE
    assert _sample(metrics_registry, "entries_total", "invalid") == 1.0

    clock.advance(INTERVAL)
    request_id = raffle.perform_upkeep()
    result = coordinator.fulfill_random_words_with_override(request_id, raffle.address, [0])
    assert result.success is True
    assert raffle.state is RoundState.OPEN
    assert treasury.balance_of(raffle.address) == 0


def test_enter_while_calculating_is_rejected(ready_raffle: RaffleStateMachine, players: List[str]):
    ready_raffle.perform_upkeep()
    with pytest.raises(NotOpen) as ei:
        ready_raffle.enter(players[1], ENTRANCE_FEE)
    assert ei.value.state is RoundState.CALCULATING
    assert ready_raffle.num_participants == 1


# ---------------------------------------------------------------------------
# Upkeep
# ---------------------------------------------------------------------------


def test_check_upkeep_false_without_players(raffle: RaffleStateMachine, clock: ManualClock):
    clock.advance(INTERVAL + 1)
    needed, status = raffle.check_upkeep(b"")
    assert needed is False
    assert status.participant_count == 0


def test_check_upkeep_false_before_interval(raffle: RaffleStateMachine, players: List[str], clock: ManualClock):
    raffle.enter(players[0], ENTRANCE_FEE)
    clock.advance(INTERVAL - 1)
    needed, _ = raffle.check_upkeep()
    assert needed is False


def test_check_upkeep_true_at_exact_interval(raffle: RaffleStateMachine, players: List[str], clock: ManualClock):
    raffle.enter(players[0], ENTRANCE_FEE)
    clock.advance(INTERVAL)
    needed, status = raffle.check_upkeep()
    assert needed is True
    assert status.elapsed == INTERVAL
    # read-only
    assert raffle.state is RoundState.OPEN
    assert raffle.pending_request is None


def test_repeated_check_upkeep_is_stable(
    raffle: RaffleStateMachine, players: List[str], clock: ManualClock, treasury: Treasury
):
    def checks(n: int = 3):
        return [raffle.check_upkeep() for _ in range(n)]

    before = checks()
    assert all(needed is False for needed, _ in before)
    assert len({status for _, status in before}) == 1
    assert raffle.num_participants == 0
    assert raffle.pool_balance == 0

    raffle.enter(players[0], ENTRANCE_FEE)
    raffle.enter(players[1], ENTRANCE_FEE)
    between = checks()
    assert len({status for _, status in between}) == 1
    assert between[0][1].participant_count == 2
    assert raffle.num_participants == 2
    assert raffle.pool_balance == 2 * ENTRANCE_FEE

    clock.advance(INTERVAL)
    after = checks()
    assert all(needed is True for needed, _ in after)
    assert len({status for _, status in after}) == 1
    assert raffle.num_participants == 2
    assert raffle.pool_balance == treasury.balance_of(raffle.address) == 2 * ENTRANCE_FEE
    assert raffle.state is RoundState.OPEN
    assert raffle.pending_request is None


def test_perform_upkeep_when_not_needed(raffle: RaffleStateMachine, players: List[str], coordinator, metrics_registry):
    raffle.enter(players[0], ENTRANCE_FEE)
    with pytest.raises(UpkeepNotNeeded) as ei:
        raffle.perform_upkeep()
    assert ei.value.balance == ENTRANCE_FEE
    assert ei.value.participant_count == 1
    assert ei.value.state is RoundState.OPEN
    assert coordinator.requested == []
    assert _sample(metrics_registry, "upkeeps_total", "not_needed") == 1.0


def test_perform_upkeep_requests_randomness(
    ready_raffle: RaffleStateMachine,
    coordinator: VRFCoordinatorMock,
    subscription_id: int,
    events: EventLog,
    clock: ManualClock,
):
    request_id = ready_raffle.perform_upkeep()

    assert request_id == 1
    assert ready_raffle.state is RoundState.CALCULATING
    pending = ready_raffle.pending_request
    assert pending is not None
    assert pending.request_id == request_id
    assert pending.round_number == 0
    assert pending.requested_at == clock.now()

    assert len(coordinator.requested) == 1
    req = coordinator.requested[0]
    assert req.subscription_id == subscription_id
    assert req.num_words == 1
    assert req.consumer == ready_raffle.address

    ev = events.last(EV_REQUESTED_WINNER)
    assert ev is not None and ev.request_id == request_id

    needed, status = ready_raffle.check_upkeep()
    assert needed is False
    assert status.state is RoundState.CALCULATING
    with pytest.raises(UpkeepNotNeeded):
        ready_raffle.perform_upkeep()
    assert len(coordinator.requested) == 1


def test_provider_failure_leaves_round_open(
    ready_raffle: RaffleStateMachine, coordinator: VRFCoordinatorMock, subscription_id: int
):
    coordinator.remove_consumer(subscription_id, ready_raffle.address)
    with pytest.raises(InvalidConsumer):
        ready_raffle.perform_upkeep()
    assert ready_raffle.state is RoundState.OPEN
    assert ready_raffle.pending_request is None
    assert ready_raffle.num_participants == 1


# ---------------------------------------------------------------------------
# Fulfilment
# ---------------------------------------------------------------------------


def test_four_player_round_pays_indexed_winner(
    raffle: RaffleStateMachine,
    coordinator: VRFCoordinatorMock,
    subscription_id: int,
    players: List[str],
    treasury: Treasury,
    clock: ManualClock,
    events: EventLog,
    history: RoundHistory,
    metrics_registry,
):
    for p in players[:4]:
        raffle.enter(p, ENTRANCE_FEE)
    assert raffle.pool_balance == 400

    clock.advance(INTERVAL + 1)
    request_id = raffle.perform_upkeep()
    clock.advance(12)

    picked: List[str] = []
    events.once(EV_WINNER_PICKED, lambda ev: picked.append(ev.winner))

    # 7 % 4 == 3
    result = coordinator.fulfill_random_words_with_override(request_id, raffle.address, [7])

    assert result.success is True
    assert result.payment == BASE_FEE
    assert coordinator.get_subscription(subscription_id).balance == SUB_FUNDING - BASE_FEE

    winner = players[3]
    assert picked == [winner]
    assert raffle.recent_winner == winner
    assert treasury.balance_of(winner) == 10_000 - ENTRANCE_FEE + 400
    assert treasury.balance_of(raffle.address) == 0

    assert raffle.state is RoundState.OPEN
    assert raffle.num_participants == 0
    assert raffle.pool_balance == 0
    assert raffle.pending_request is None
    assert raffle.last_timestamp == clock.now()
    assert raffle.round_number == 1

    rec = history.get(0, raffle.address)
    assert rec is not None
    assert rec.winner == winner
    assert rec.payout == 400
    assert rec.participants == 4
    assert rec.random_word == 7
    assert rec.closed_at - rec.requested_at == 12
    assert _sample(metrics_registry, "fulfillments_total", "winner_picked") == 1.0


def test_fulfil_with_derived_words(
    ready_raffle: RaffleStateMachine, coordinator: VRFCoordinatorMock, players: List[str]
):
    request_id = ready_raffle.perform_upkeep()
    result = coordinator.fulfill_random_words(request_id, ready_raffle.address)
    assert result.success is True
    # single player always wins
    assert ready_raffle.recent_winner == players[0]


def test_unauthorized_caller_is_rejected(ready_raffle: RaffleStateMachine, metrics_registry):
    request_id = ready_raffle.perform_upkeep()
    with pytest.raises(UnauthorizedFulfillment) as ei:
        ready_raffle.fulfill_randomness(request_id, [1], caller=_det_address("mallory"))
    assert isinstance(ei.value, UnknownRequest)
    assert ready_raffle.state is RoundState.CALCULATING
    assert ready_raffle.pending_request is not None
    assert ready_raffle.recent_winner is None
    assert _sample(metrics_registry, "fulfillments_total", "unauthorized") == 1.0


def test_unknown_request_id_is_rejected(ready_raffle: RaffleStateMachine, coordinator: VRFCoordinatorMock):
    request_id = ready_raffle.perform_upkeep()
    with pytest.raises(UnknownRequest) as ei:
        ready_raffle.fulfill_randomness(request_id + 1, [1], caller=coordinator.address)
    assert ei.value.pending == request_id
    assert ready_raffle.state is RoundState.CALCULATING


def test_callback_without_pending_request(raffle: RaffleStateMachine, coordinator: VRFCoordinatorMock):
    with pytest.raises(UnknownRequest) as ei:
        raffle.fulfill_randomness(1, [1], caller=coordinator.address)
    assert ei.value.pending is None


@pytest.mark.parametrize("values", [[], [-1], ["7"], [True]])
def test_malformed_randomness_is_rejected(
    ready_raffle: RaffleStateMachine, coordinator: VRFCoordinatorMock, values
):
    request_id = ready_raffle.perform_upkeep()
    with pytest.raises(MalformedRandomness):
        ready_raffle.fulfill_randomness(request_id, values, caller=coordinator.address)
    assert ready_raffle.state is RoundState.CALCULATING
    assert ready_raffle.pending_request is not None


def test_replayed_fulfilment_is_rejected(ready_raffle: RaffleStateMachine, coordinator: VRFCoordinatorMock):
    request_id = ready_raffle.perform_upkeep()
    ready_raffle.fulfill_randomness(request_id, [0], caller=coordinator.address)
    with pytest.raises(UnknownRequest):
        ready_raffle.fulfill_randomness(request_id, [0], caller=coordinator.address)
    assert ready_raffle.round_number == 1


def test_rejected_payout_keeps_round_pending(
    ready_raffle: RaffleStateMachine,
    coordinator: VRFCoordinatorMock,
    players: List[str],
    treasury: Treasury,
):
    request_id = ready_raffle.perform_upkeep()
    treasury.reject_incoming(players[0])

    result = coordinator.fulfill_random_words_with_override(request_id, ready_raffle.address, [0])

    assert result.success is False
    assert isinstance(result.error, TransferFailed)
    assert result.error.winner == players[0]
    assert result.error.amount == ENTRANCE_FEE
    assert ready_raffle.state is RoundState.CALCULATING
    assert ready_raffle.pending_request is not None
    assert ready_raffle.num_participants == 1
    assert treasury.balance_of(ready_raffle.address) == ENTRANCE_FEE
    assert ready_raffle.recent_winner is None

    # the coordinator consumed the request; only a direct callback from its address can retry
    with pytest.raises(NonexistentRequest):
        coordinator.fulfill_random_words(request_id, ready_raffle.address)
    treasury.reject_incoming(players[0], reject=False)
    winner = ready_raffle.fulfill_randomness(request_id, [0], caller=coordinator.address)
    assert winner == players[0]
    assert ready_raffle.state is RoundState.OPEN


def test_history_conflict_is_refused_before_payout(
    ready_raffle: RaffleStateMachine,
    coordinator: VRFCoordinatorMock,
    players: List[str],
    treasury: Treasury,
    events: EventLog,
    history: RoundHistory,
    metrics_registry,
):
    history.record(
        RoundRecord(
            raffle=ready_raffle.address,
            round_number=0,
            winner=players[5],
            payout=1,
            participants=1,
            request_id=99,
            random_word=0,
            requested_at=0,
            closed_at=0,
        )
    )
    request_id = ready_raffle.perform_upkeep()

    result = coordinator.fulfill_random_words_with_override(request_id, ready_raffle.address, [0])

    assert result.success is False
    assert isinstance(result.error, HistoryConflict)
    assert ready_raffle.state is RoundState.CALCULATING
    assert ready_raffle.pending_request is not None
    assert treasury.balance_of(ready_raffle.address) == ready_raffle.pool_balance == ENTRANCE_FEE
    assert treasury.balance_of(players[0]) == 10_000 - ENTRANCE_FEE
    assert EV_WINNER_PICKED not in events.names()
    assert _sample(metrics_registry, "fulfillments_total", "history_conflict") == 1.0


def test_consecutive_rounds(
    raffle: RaffleStateMachine,
    coordinator: VRFCoordinatorMock,
    players: List[str],
    clock: ManualClock,
    history: RoundHistory,
):
    for rnd, word in enumerate((1, 2)):
        raffle.enter(players[0], ENTRANCE_FEE)
        raffle.enter(players[1], ENTRANCE_FEE)
        raffle.enter(players[2], ENTRANCE_FEE)
        clock.advance(INTERVAL)
        request_id = raffle.perform_upkeep()
        assert request_id == rnd + 1
        coordinator.fulfill_random_words_with_override(request_id, raffle.address, [word])
        assert raffle.recent_winner == players[word]
        assert raffle.round_number == rnd + 1

    assert [r.round_number for r in history.all()] == [0, 1]
    assert [r.winner for r in history.wins_of(players[2])] == [players[2]]


def test_snapshot_reports_state_code(ready_raffle: RaffleStateMachine, players: List[str]):
    snap = ready_raffle.snapshot()
    assert snap["state"] == 0
    assert snap["players"] == [players[0]]
    assert snap["pendingRequest"] is None

    ready_raffle.perform_upkeep()
    snap = ready_raffle.snapshot()
    assert snap["state"] == 1
    assert snap["pendingRequest"]["requestId"] == 1
