import hashlib
from typing import Callable, List

import pytest
from prometheus_client import CollectorRegistry

from raffle.adapters.treasury import Treasury
from raffle.adapters.vrf_mock import VRFCoordinatorMock
from raffle.events import EventLog
from raffle.machine import RaffleStateMachine
from raffle.metrics import Metrics
from raffle.store import MemoryKV
from raffle.store.history import RoundHistory
from raffle.types import RandomnessParams, RoundConfig
from raffle.utils.time import ManualClock

GAS_LANE = "0x" + "ab" * 32
ENTRANCE_FEE = 100
INTERVAL = 30
START_TS = 1_700_000_000
BASE_FEE = 25 * 10**16
SUB_FUNDING = 2 * 10**18


def _det_address(tag: str) -> str:
    return "0x" + hashlib.sha3_256(tag.encode("utf-8")).hexdigest()[:40]


@pytest.fixture
def det_address() -> Callable[[str], str]:
    return _det_address


@pytest.fixture
def raffle_address() -> str:
    return _det_address("raffle")


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(START_TS)


@pytest.fixture
def metrics_registry() -> CollectorRegistry:
    return CollectorRegistry()


@pytest.fixture
def metrics(metrics_registry: CollectorRegistry) -> Metrics:
    return Metrics(registry=metrics_registry)


@pytest.fixture
def events() -> EventLog:
    return EventLog()


@pytest.fixture
def history() -> RoundHistory:
    return RoundHistory(MemoryKV())


@pytest.fixture
def players() -> List[str]:
    return [_det_address(f"player-{i}") for i in range(6)]


@pytest.fixture
def treasury(players: List[str]) -> Treasury:
    t = Treasury()
    for p in players:
        t.mint(p, 10_000)
    return t


@pytest.fixture
def coordinator() -> VRFCoordinatorMock:
    return VRFCoordinatorMock(BASE_FEE, address=_det_address("coordinator"))


@pytest.fixture
def subscription_id(coordinator: VRFCoordinatorMock) -> int:
    sub_id = coordinator.create_subscription()
    coordinator.fund_subscription(sub_id, SUB_FUNDING)
    return sub_id


@pytest.fixture
def round_config(coordinator: VRFCoordinatorMock, subscription_id: int) -> RoundConfig:
    return RoundConfig(
        entrance_fee=ENTRANCE_FEE,
        interval=INTERVAL,
        randomness=RandomnessParams(
            gas_lane=GAS_LANE,
            subscription_id=subscription_id,
            callback_gas_limit=500_000,
        ),
        provider=coordinator.address,
    )


@pytest.fixture
def raffle(
    round_config: RoundConfig,
    coordinator: VRFCoordinatorMock,
    subscription_id: int,
    raffle_address: str,
    treasury: Treasury,
    clock: ManualClock,
    events: EventLog,
    history: RoundHistory,
    metrics: Metrics,
) -> RaffleStateMachine:
    r = RaffleStateMachine(
        round_config,
        coordinator,
        address=raffle_address,
        treasury=treasury,
        clock=clock,
        events=events,
        history=history,
        metrics=metrics,
    )
    coordinator.add_consumer(subscription_id, r)
    return r


@pytest.fixture
def ready_raffle(raffle: RaffleStateMachine, players: List[str], clock: ManualClock) -> RaffleStateMachine:
    """One entry in, interval elapsed: upkeep is due."""
    raffle.enter(players[0], ENTRANCE_FEE)
    clock.advance(INTERVAL + 1)
    return raffle
