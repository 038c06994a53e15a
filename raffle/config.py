"""
Raffle configuration.

Typed configuration for one raffle deployment:
- Round economics and timing (entrance fee, interval)
- Randomness request parameters (gas lane, subscription, callback gas,
  confirmations, words per request)
- The target network, resolved against built-in presets

Provides:
- Dataclass-based configs with validation
- Loading from environment variables (prefix configurable, default `RAFFLE_`)
- Loading from a JSON or YAML file
- `to_round_config(provider)` to build the immutable `RoundConfig` the state
  machine is constructed with
"""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional, Union

import yaml

from .constants import (
    DEFAULT_CALLBACK_GAS_LIMIT,
    DEFAULT_ENTRANCE_FEE,
    DEFAULT_GAS_LANE,
    DEFAULT_INTERVAL_S,
    DEFAULT_REQUEST_CONFIRMATIONS,
    DEVELOPMENT_CHAIN_IDS,
    MAX_CALLBACK_GAS_LIMIT,
    MAX_REQUEST_CONFIRMATIONS,
    NUM_WORDS,
)
from .types.core import Address, RandomnessParams, RoundConfig, optional_address, to_address

# -------------------------
# Network presets
# -------------------------


@dataclass(frozen=True)
class NetworkConfig:
    """
    Per-network defaults. `vrf_coordinator` is None on development chains,
    where a coordinator mock is deployed instead.
    """

    name: str
    chain_id: int
    entrance_fee: int = DEFAULT_ENTRANCE_FEE
    interval: int = DEFAULT_INTERVAL_S
    gas_lane: str = DEFAULT_GAS_LANE
    callback_gas_limit: int = DEFAULT_CALLBACK_GAS_LIMIT
    subscription_id: int = 0
    vrf_coordinator: Optional[str] = None

    @property
    def is_development(self) -> bool:
        return self.chain_id in DEVELOPMENT_CHAIN_IDS


NETWORKS: Dict[str, NetworkConfig] = {
    "localhost": NetworkConfig(name="localhost", chain_id=31337),
    "hardhat": NetworkConfig(name="hardhat", chain_id=31337),
    "sepolia": NetworkConfig(
        name="sepolia",
        chain_id=11155111,
        gas_lane="0x787d74caea10b2b357790d5b5247c2f63d1d91572a9846f780606e4d953677ae",
        callback_gas_limit=DEFAULT_CALLBACK_GAS_LIMIT,
        subscription_id=588,
        vrf_coordinator="0x8103b0a8a00be2ddc778e6e7eaa21791cd364625",
    ),
}


def get_network(name_or_chain_id: Union[str, int]) -> NetworkConfig:
    """Resolve a preset by name (case-insensitive) or chain id."""
    if isinstance(name_or_chain_id, int):
        for net in NETWORKS.values():
            if net.chain_id == name_or_chain_id:
                return net
        raise ValueError(f"Unknown chain id: {name_or_chain_id}")
    net = NETWORKS.get(str(name_or_chain_id).lower())
    if net is None:
        raise ValueError(f"Unknown network: {name_or_chain_id!r} (known: {sorted(NETWORKS)})")
    return net


def is_development_chain(name_or_chain_id: Union[str, int]) -> bool:
    return get_network(name_or_chain_id).is_development


# -------------------------
# Top-level config
# -------------------------


@dataclass
class RaffleConfig:
    """
    Economics:
      - entrance_fee: minimum amount paid to enter (smallest currency unit)
      - interval: minimum seconds between round closes

    Randomness:
      - gas_lane: 0x-hex 32-byte key hash
      - subscription_id: provider subscription (0 = create one on deploy)
      - callback_gas_limit: gas budget for the fulfilment callback
      - request_confirmations: blocks the provider waits before answering
      - num_words: words per request (always 1)

    Network:
      - network: preset name (localhost, hardhat, sepolia)
      - vrf_coordinator: coordinator address override (optional)
    """

    entrance_fee: int = DEFAULT_ENTRANCE_FEE
    interval: int = DEFAULT_INTERVAL_S
    gas_lane: str = DEFAULT_GAS_LANE
    subscription_id: int = 0
    callback_gas_limit: int = DEFAULT_CALLBACK_GAS_LIMIT
    request_confirmations: int = DEFAULT_REQUEST_CONFIRMATIONS
    num_words: int = NUM_WORDS
    network: str = "localhost"
    vrf_coordinator: Optional[str] = field(default=None)

    @classmethod
    def for_network(cls, name_or_chain_id: Union[str, int]) -> "RaffleConfig":
        """Start from a network preset's defaults."""
        net = get_network(name_or_chain_id)
        cfg = cls(
            entrance_fee=net.entrance_fee,
            interval=net.interval,
            gas_lane=net.gas_lane,
            subscription_id=net.subscription_id,
            callback_gas_limit=net.callback_gas_limit,
            network=net.name,
            vrf_coordinator=net.vrf_coordinator,
        )
        cfg.validate()
        return cfg

    @property
    def network_config(self) -> NetworkConfig:
        return get_network(self.network)

    @property
    def chain_id(self) -> int:
        return self.network_config.chain_id

    @property
    def is_development(self) -> bool:
        return self.network_config.is_development

    def validate(self) -> None:
        if self.entrance_fee < 0:
            raise ValueError("entrance_fee must be >= 0")
        if self.interval < 0:
            raise ValueError("interval must be >= 0")
        if self.subscription_id < 0:
            raise ValueError("subscription_id must be >= 0")
        if not 0 < self.callback_gas_limit <= MAX_CALLBACK_GAS_LIMIT:
            raise ValueError(f"callback_gas_limit must be in 1..{MAX_CALLBACK_GAS_LIMIT}")
        if not 0 <= self.request_confirmations <= MAX_REQUEST_CONFIRMATIONS:
            raise ValueError(f"request_confirmations must be in 0..{MAX_REQUEST_CONFIRMATIONS}")
        if self.num_words != NUM_WORDS:
            raise ValueError("num_words must be 1")
        net = get_network(self.network)
        if self.vrf_coordinator is not None:
            optional_address(self.vrf_coordinator)
        elif not net.is_development:
            raise ValueError(f"vrf_coordinator is required on non-development network {net.name!r}")
        # gas lane format is checked by RandomnessParams
        self.randomness_params()

    def randomness_params(self, subscription_id: Optional[int] = None) -> RandomnessParams:
        return RandomnessParams(
            gas_lane=self.gas_lane,
            subscription_id=self.subscription_id if subscription_id is None else subscription_id,
            callback_gas_limit=self.callback_gas_limit,
            confirmations=self.request_confirmations,
            num_words=self.num_words,
        )

    def to_round_config(self, provider_address: str, *, subscription_id: Optional[int] = None) -> RoundConfig:
        """Build the immutable RoundConfig bound to `provider_address`."""
        return RoundConfig(
            entrance_fee=self.entrance_fee,
            interval=self.interval,
            randomness=self.randomness_params(subscription_id),
            provider=to_address(provider_address),
        )

    # -------------------------
    # Serialization helpers
    # -------------------------

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["chain_id"] = self.chain_id
        return data

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, sort_keys=True)

    # -------------------------
    # Loaders
    # -------------------------

    @staticmethod
    def from_env(prefix: str = "RAFFLE_") -> "RaffleConfig":
        """
        Load configuration from environment variables. All variables are optional;
        unset ones fall back to the selected network's preset.

          - RAFFLE_NETWORK=localhost
          - RAFFLE_ENTRANCE_FEE=10000000000000000
          - RAFFLE_INTERVAL=30
          - RAFFLE_GAS_LANE=0x474e…c56c
          - RAFFLE_SUBSCRIPTION_ID=0
          - RAFFLE_CALLBACK_GAS_LIMIT=500000
          - RAFFLE_REQUEST_CONFIRMATIONS=3
          - RAFFLE_NUM_WORDS=1
          - RAFFLE_VRF_COORDINATOR=0x…
        """

        def _get(name: str, cast: Any, default: Any) -> Any:
            key = prefix + name
            raw = os.getenv(key)
            if raw is None or raw == "":
                return default
            try:
                return cast(raw)
            except ValueError as e:
                raise ValueError(f"Invalid value for {key}: {raw!r}") from e

        base = RaffleConfig.for_network(_get("NETWORK", str, "localhost"))
        cfg = RaffleConfig(
            entrance_fee=_get("ENTRANCE_FEE", int, base.entrance_fee),
            interval=_get("INTERVAL", int, base.interval),
            gas_lane=_get("GAS_LANE", str, base.gas_lane),
            subscription_id=_get("SUBSCRIPTION_ID", int, base.subscription_id),
            callback_gas_limit=_get("CALLBACK_GAS_LIMIT", int, base.callback_gas_limit),
            request_confirmations=_get("REQUEST_CONFIRMATIONS", int, base.request_confirmations),
            num_words=_get("NUM_WORDS", int, base.num_words),
            network=base.network,
            vrf_coordinator=_get("VRF_COORDINATOR", str, base.vrf_coordinator),
        )
        cfg.validate()
        return cfg

    @staticmethod
    def from_file(path: str) -> "RaffleConfig":
        """
        Load configuration from a JSON or YAML file. Keys mirror the dataclass
        fields; missing keys fall back to the network preset. Example (YAML):

            network: sepolia
            entrance_fee: 10000000000000000
            interval: 30
            subscription_id: 588
        """
        with open(path, "r", encoding="utf-8") as f:
            text = f.read()
        data = _parse_json_or_yaml(text, path)
        if not isinstance(data, dict):
            raise ValueError(f"{path!r} must contain a mapping at the top level")

        base = RaffleConfig.for_network(data.pop("network", "localhost"))
        cfg = RaffleConfig(
            entrance_fee=int(data.pop("entrance_fee", base.entrance_fee)),
            interval=int(data.pop("interval", base.interval)),
            gas_lane=str(data.pop("gas_lane", base.gas_lane)),
            subscription_id=int(data.pop("subscription_id", base.subscription_id)),
            callback_gas_limit=int(data.pop("callback_gas_limit", base.callback_gas_limit)),
            request_confirmations=int(data.pop("request_confirmations", base.request_confirmations)),
            num_words=int(data.pop("num_words", base.num_words)),
            network=base.network,
            vrf_coordinator=data.pop("vrf_coordinator", base.vrf_coordinator),
        )
        data.pop("chain_id", None)
        if data:
            raise ValueError(f"Unknown config keys in {path!r}: {sorted(data)}")
        cfg.validate()
        return cfg


# -------------------------
# Utilities
# -------------------------


def _parse_json_or_yaml(text: str, path_hint: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass
    try:
        return yaml.safe_load(text) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Failed to parse {path_hint!r} as JSON or YAML: {e}") from e


def coordinator_address(cfg: RaffleConfig) -> Optional[Address]:
    return optional_address(cfg.vrf_coordinator)


DEFAULT: RaffleConfig = RaffleConfig()

__all__ = [
    "NetworkConfig",
    "NETWORKS",
    "get_network",
    "is_development_chain",
    "RaffleConfig",
    "coordinator_address",
    "DEFAULT",
]
