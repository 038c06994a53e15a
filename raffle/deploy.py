# Copyright (c) Animica.
# SPDX-License-Identifier: MIT
"""
Deployment wiring.

Builds a ready-to-use raffle from a `RaffleConfig`, the way the deploy
scripts of a contracts project do:

1. On a development chain (31337) deploy a `VRFCoordinatorMock` charging
   `MOCK_BASE_FEE` per fulfilment.
2. If no subscription is configured, create one on the coordinator and fund it
   with `VRF_SUB_FUND_AMOUNT`.
3. Construct the `RaffleStateMachine` bound to the coordinator's address.
4. Register the raffle as a consumer of the subscription.

On other networks the caller injects the provider (its address must equal
the configured `vrf_coordinator`) and the configured subscription is used as-is.

Example
-------
    d = deploy_raffle(RaffleConfig.for_network("localhost"), clock=ManualClock())
    d.raffle.enter(alice, d.raffle.entrance_fee)
"""

from __future__ import annotations

import hashlib
import itertools
import logging
from dataclasses import dataclass
from typing import Optional

from .adapters.provider import RandomnessProvider
from .adapters.treasury import Treasury
from .adapters.vrf_mock import VRFCoordinatorMock
from .config import RaffleConfig
from .constants import MOCK_BASE_FEE, VRF_SUB_FUND_AMOUNT
from .events import EventLog
from .machine import RaffleStateMachine
from .metrics import Metrics
from .store import MemoryKV
from .store.history import RoundHistory
from .types.core import Address, to_address
from .utils.time import Clock, SystemClock

logger = logging.getLogger(__name__)

# deployer nonce: each raffle deployed without an explicit address gets a fresh one
_DEPLOY_NONCE = itertools.count()


def contract_address(tag: str) -> Address:
    """Deterministic address for a named deployment: sha3_256(tag)[:20]."""
    return to_address("0x" + hashlib.sha3_256(tag.encode("utf-8")).hexdigest()[:40])


@dataclass
class Deployment:
    config: RaffleConfig
    raffle: RaffleStateMachine
    provider: RandomnessProvider
    treasury: Treasury
    clock: Clock
    history: RoundHistory
    subscription_id: int

    @property
    def coordinator(self) -> Optional[VRFCoordinatorMock]:
        return self.provider if isinstance(self.provider, VRFCoordinatorMock) else None


def deploy_mocks(base_fee: int = MOCK_BASE_FEE, *, address: Optional[str] = None) -> VRFCoordinatorMock:
    """Deploy a VRF coordinator mock (development chains only)."""
    coordinator = VRFCoordinatorMock(base_fee, address=address or contract_address("VRFCoordinatorV2Mock"))
    logger.info("Mocks deployed: VRFCoordinatorMock at %s (base_fee=%s)", coordinator.address, base_fee)
    return coordinator


def deploy_raffle(
    cfg: RaffleConfig,
    *,
    provider: Optional[RandomnessProvider] = None,
    treasury: Optional[Treasury] = None,
    clock: Optional[Clock] = None,
    events: Optional[EventLog] = None,
    history: Optional[RoundHistory] = None,
    metrics: Optional[Metrics] = None,
    address: Optional[str] = None,
    fund_amount: int = VRF_SUB_FUND_AMOUNT,
) -> Deployment:
    """
    Deploy a raffle per `cfg`. See the module docstring for the flow.

    Raises:
        ValueError: non-development network without a provider, or a provider
            whose address does not match the configured coordinator.
    """
    cfg.validate()
    if provider is None:
        if not cfg.is_development:
            raise ValueError(f"network {cfg.network!r} needs an explicit randomness provider")
        logger.info("Local network detected (chain %s); deploying mocks", cfg.chain_id)
        provider = deploy_mocks()
    elif cfg.vrf_coordinator is not None and to_address(provider.address) != to_address(cfg.vrf_coordinator):
        raise ValueError(
            f"provider {provider.address} does not match configured vrf_coordinator {cfg.vrf_coordinator}"
        )

    sub_id = cfg.subscription_id
    mock = provider if isinstance(provider, VRFCoordinatorMock) else None
    if mock is not None and sub_id == 0:
        sub_id = mock.create_subscription()
        mock.fund_subscription(sub_id, fund_amount)

    treasury = treasury or Treasury()
    clock = clock or SystemClock()
    history = history or RoundHistory(MemoryKV())
    address = to_address(address or contract_address(f"Raffle:{cfg.network}:{next(_DEPLOY_NONCE)}"))
    raffle = RaffleStateMachine(
        cfg.to_round_config(provider.address, subscription_id=sub_id),
        provider,
        address=address,
        treasury=treasury,
        clock=clock,
        events=events,
        history=history,
        metrics=metrics,
    )
    if mock is not None:
        mock.add_consumer(sub_id, raffle)

    logger.info(
        "Raffle deployed at %s on %s (subscription=%s, provider=%s)",
        raffle.address,
        cfg.network,
        sub_id,
        provider.address,
    )
    return Deployment(
        config=cfg,
        raffle=raffle,
        provider=provider,
        treasury=treasury,
        clock=clock,
        history=history.for_raffle(raffle.address),
        subscription_id=sub_id,
    )


__all__ = ["contract_address", "Deployment", "deploy_mocks", "deploy_raffle"]
