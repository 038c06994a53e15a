import pytest

from raffle.adapters.beacon import BeaconRandomnessProvider
from raffle.config import RaffleConfig
from raffle.constants import MOCK_BASE_FEE, VRF_SUB_FUND_AMOUNT
from raffle.deploy import contract_address, deploy_mocks, deploy_raffle
from raffle.events import EV_WINNER_PICKED
from raffle.store import MemoryKV
from raffle.store.history import RoundHistory
from raffle.types import RoundState
from raffle.utils.time import ManualClock


class _NoBeacon:
    def beacon_digest_at_height(self, height: int) -> bytes:
        raise LookupError(height)


def test_deploy_mocks_defaults():
    mock = deploy_mocks()
    assert mock.base_fee == MOCK_BASE_FEE
    assert mock.address == contract_address("VRFCoordinatorV2Mock")


def test_local_deploy_wires_subscription(metrics):
    d = deploy_raffle(RaffleConfig.for_network("hardhat"), clock=ManualClock(), metrics=metrics)

    mock = d.coordinator
    assert mock is not None
    assert d.subscription_id == 1
    sub = mock.get_subscription(d.subscription_id)
    assert sub.balance == VRF_SUB_FUND_AMOUNT
    assert mock.consumer_is_added(d.subscription_id, d.raffle.address)
    assert d.raffle.provider_address == mock.address
    assert d.raffle.config.randomness.subscription_id == d.subscription_id
    assert d.raffle.state is RoundState.OPEN


def test_local_deploy_end_to_end(metrics):
    clock = ManualClock()
    d = deploy_raffle(RaffleConfig.for_network("localhost"), clock=clock, metrics=metrics)
    player = contract_address("player")
    d.treasury.mint(player, d.raffle.entrance_fee)

    d.raffle.enter(player, d.raffle.entrance_fee)
    clock.advance(d.raffle.interval + 1)
    rid = d.raffle.perform_upkeep()
    result = d.coordinator.fulfill_random_words(rid, d.raffle.address)

    assert result.success is True
    assert d.raffle.recent_winner == player
    assert d.history.latest().winner == player


def test_configured_subscription_is_reused(metrics):
    mock = deploy_mocks()
    sub_id = mock.create_subscription()
    mock.fund_subscription(sub_id, 1)
    cfg = RaffleConfig(subscription_id=sub_id)
    d = deploy_raffle(cfg, provider=mock, clock=ManualClock(), metrics=metrics)
    assert d.subscription_id == sub_id
    assert mock.get_subscription(sub_id).balance == 1
    assert mock.consumer_is_added(sub_id, d.raffle.address)


def test_live_network_needs_provider():
    with pytest.raises(ValueError):
        deploy_raffle(RaffleConfig.for_network("sepolia"))


def test_live_network_provider_must_match(metrics):
    cfg = RaffleConfig.for_network("sepolia")
    wrong = BeaconRandomnessProvider(_NoBeacon(), address=contract_address("elsewhere"))
    with pytest.raises(ValueError):
        deploy_raffle(cfg, provider=wrong, metrics=metrics)

    right = BeaconRandomnessProvider(_NoBeacon(), address=cfg.vrf_coordinator)
    d = deploy_raffle(cfg, provider=right, clock=ManualClock(), metrics=metrics)
    assert d.coordinator is None
    assert d.subscription_id == cfg.subscription_id
    assert d.raffle.provider_address == right.address


def test_raffles_sharing_history_settle_independently(metrics):
    shared = RoundHistory(MemoryKV())
    clock = ManualClock()
    deployments = [
        deploy_raffle(RaffleConfig.for_network("localhost"), clock=clock, history=shared, metrics=metrics)
        for _ in range(2)
    ]
    assert deployments[0].raffle.address != deployments[1].raffle.address

    for n, d in enumerate(deployments):
        player = contract_address(f"player-{n}")
        d.treasury.mint(player, d.raffle.entrance_fee)
        d.raffle.enter(player, d.raffle.entrance_fee)
    clock.advance(deployments[0].raffle.interval)

    for d, word in zip(deployments, (3, 5)):
        picked = []
        d.raffle.events.once(EV_WINNER_PICKED, lambda ev: picked.append(ev.winner))
        rid = d.raffle.perform_upkeep()
        result = d.coordinator.fulfill_random_words_with_override(rid, d.raffle.address, [word])
        assert result.success is True
        assert d.raffle.state is RoundState.OPEN
        assert picked == [d.raffle.recent_winner]
        assert d.history.get(0).random_word == word

    assert len(shared.all()) == 2
