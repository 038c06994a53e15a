import hashlib
from typing import Dict, List, Sequence

import pytest

from raffle.adapters.beacon import BeaconRandomnessProvider, derive_beacon_words
from raffle.adapters.treasury import Treasury
from raffle.errors import NonexistentRequest
from raffle.machine import RaffleStateMachine
from raffle.types import RandomnessParams, RoundConfig, RoundState
from raffle.utils.time import ManualClock

from .conftest import GAS_LANE, _det_address


class DictBeacon:
    def __init__(self) -> None:
        self.digests: Dict[int, bytes] = {}

    def seal(self, height: int) -> None:
        self.digests[height] = hashlib.sha3_256(b"beacon:%d" % height).digest()

    def beacon_digest_at_height(self, height: int) -> bytes:
        if height not in self.digests:
            raise LookupError(f"no beacon at height {height}")
        return self.digests[height]


class Sink:
    def __init__(self) -> None:
        self.address = _det_address("sink")
        self.calls: List[tuple] = []

    def fulfill_randomness(self, request_id: int, random_values: Sequence[int], *, caller: str) -> None:
        self.calls.append((request_id, list(random_values), caller))


def test_request_targets_future_height():
    src = DictBeacon()
    p = BeaconRandomnessProvider(src, address=_det_address("beacon"), height=100)
    sink = Sink()
    rid = p.request_random_words(GAS_LANE, 0, 3, 0, 1, consumer=sink)
    assert rid == 1
    assert p.pending()[0].target_height == 103

    src.seal(102)
    assert p.fulfill_ready(102) == []
    assert sink.calls == []

    src.seal(103)
    assert p.fulfill_ready(103) == [rid]
    words = derive_beacon_words(src.digests[103], rid, 1)
    assert sink.calls == [(rid, words, p.address)]
    assert p.pending() == []


def test_missing_digest_keeps_request_pending():
    src = DictBeacon()
    p = BeaconRandomnessProvider(src, address=_det_address("beacon"))
    sink = Sink()
    p.request_random_words(GAS_LANE, 0, 0, 0, 1, consumer=sink)
    assert p.fulfill_ready(5) == []
    assert len(p.pending()) == 1


def test_labels_separate_requests_in_same_block():
    digest = hashlib.sha3_256(b"x").digest()
    assert derive_beacon_words(digest, 1, 1) != derive_beacon_words(digest, 2, 1)
    assert derive_beacon_words(digest, 1, 2)[0] == derive_beacon_words(digest, 1, 1)[0]


def test_unknown_request():
    p = BeaconRandomnessProvider(DictBeacon(), address=_det_address("beacon"))
    with pytest.raises(NonexistentRequest):
        p.fulfill(9)


def test_height_cannot_go_backwards():
    p = BeaconRandomnessProvider(DictBeacon(), address=_det_address("beacon"), height=10)
    with pytest.raises(ValueError):
        p.observe_height(9)


def test_raffle_round_over_beacon(metrics):
    src = DictBeacon()
    provider = BeaconRandomnessProvider(src, address=_det_address("beacon"), height=50)
    clock = ManualClock(1_000)
    treasury = Treasury()
    alice, bob = _det_address("alice"), _det_address("bob")
    treasury.mint(alice, 10)
    treasury.mint(bob, 10)
    cfg = RoundConfig(
        entrance_fee=5,
        interval=10,
        randomness=RandomnessParams(gas_lane=GAS_LANE, subscription_id=0, callback_gas_limit=100_000, confirmations=2),
        provider=provider.address,
    )
    raffle = RaffleStateMachine(cfg, provider, address=_det_address("raffle"), treasury=treasury, clock=clock, metrics=metrics)

    raffle.enter(alice, 5)
    raffle.enter(bob, 5)
    clock.advance(10)
    rid = raffle.perform_upkeep()

    src.seal(52)
    assert provider.fulfill_ready(52) == [rid]
    word = derive_beacon_words(src.digests[52], rid, 1)[0]
    winner = (alice, bob)[word % 2]
    assert raffle.recent_winner == winner
    assert raffle.state is RoundState.OPEN
    assert treasury.balance_of(winner) == 15
