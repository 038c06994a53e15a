"""
Randomness provider ⇄ consumer protocols.

The raffle talks to its randomness source through two small structural
interfaces:

- `RandomnessProvider` - accepts a request and returns a request id. It
  answers later, out of band, by calling back into the consumer.
- `RandomnessConsumer` - what the provider calls back. The state machine
  implements it; `caller` is the provider's address and is authenticated by
  the consumer.

Implementations shipped with the package:
- `raffle.adapters.vrf_mock.VRFCoordinatorMock` (subscription-based, local)
- `raffle.adapters.beacon.BeaconRandomnessProvider` (chain beacon backed)
"""

from __future__ import annotations

from typing import Protocol, Sequence

from ..types.core import Address, RequestId


class RandomnessConsumer(Protocol):
    @property
    def address(self) -> Address: ...

    def fulfill_randomness(self, request_id: int, random_values: Sequence[int], *, caller: str) -> object: ...


class RandomnessProvider(Protocol):
    @property
    def address(self) -> Address: ...

    def request_random_words(
        self,
        gas_lane: str,
        subscription_id: int,
        confirmations: int,
        callback_gas_limit: int,
        num_words: int,
        *,
        consumer: RandomnessConsumer,
    ) -> RequestId: ...


__all__ = ["RandomnessConsumer", "RandomnessProvider"]
