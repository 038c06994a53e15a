"""
VRF coordinator mock (subscription model) for development networks.

Behaves like the coordinator a raffle is wired to on a live network, minus
the cryptography:

- subscriptions are created, funded, and list the consumers allowed to request;
- `request_random_words` validates subscription/consumer/bounds, stores the
  request and returns an incrementing id (first id is 1);
- nothing happens until someone calls `fulfill_random_words(request_id,
  consumer_address)`, which derives the words, charges the subscription a flat
  `base_fee`, forgets the request, and calls the consumer back.

Derived words (deterministic, one per index i):

    words[i] = int.from_bytes(sha3_256(u256(request_id) || u256(i)), "big")

A consumer that raises while handling the callback does not make the
fulfilment fail: the request is consumed either way and the outcome is
reported in the returned `FulfillmentResult` (success=False, error=...).
"""

from __future__ import annotations

import hashlib
import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from ..constants import MAX_CALLBACK_GAS_LIMIT, MAX_NUM_WORDS, MAX_REQUEST_CONFIRMATIONS, WORD_BYTES
from ..errors import (
    InsufficientSubscriptionBalance,
    InvalidConsumer,
    InvalidSubscription,
    NonexistentRequest,
    ProviderError,
    RaffleError,
)
from ..types.core import Address, RequestId, to_address
from .provider import RandomnessConsumer

logger = logging.getLogger(__name__)


def derive_words(request_id: int, num_words: int) -> List[int]:
    out: List[int] = []
    for i in range(num_words):
        m = hashlib.sha3_256()
        m.update(int(request_id).to_bytes(WORD_BYTES, "big"))
        m.update(i.to_bytes(WORD_BYTES, "big"))
        out.append(int.from_bytes(m.digest(), "big"))
    return out


@dataclass
class Subscription:
    subscription_id: int
    owner: Optional[Address]
    balance: int = 0
    request_count: int = 0
    consumers: Dict[Address, RandomnessConsumer] = field(default_factory=dict)


@dataclass(frozen=True)
class RandomWordsRequest:
    request_id: RequestId
    subscription_id: int
    gas_lane: str
    confirmations: int
    callback_gas_limit: int
    num_words: int
    consumer: Address


@dataclass(frozen=True)
class FulfillmentResult:
    request_id: RequestId
    payment: int
    success: bool
    error: Optional[RaffleError] = None


class VRFCoordinatorMock:
    """Local stand-in for a VRF coordinator. Implements RandomnessProvider."""

    def __init__(self, base_fee: int, *, address: str) -> None:
        if base_fee < 0:
            raise ValueError("base_fee must be non-negative")
        self.base_fee = int(base_fee)
        self._address = to_address(address)
        self._subs: Dict[int, Subscription] = {}
        self._requests: Dict[int, RandomWordsRequest] = {}
        self._next_sub = 1
        self._next_request = 1
        self._lock = threading.RLock()
        self.requested: List[RandomWordsRequest] = []
        self.fulfilled: List[FulfillmentResult] = []

    @property
    def address(self) -> Address:
        return self._address

    # ---- subscriptions -------------------------------------------------------

    def create_subscription(self, owner: Optional[str] = None) -> int:
        with self._lock:
            sub_id = self._next_sub
            self._next_sub += 1
            self._subs[sub_id] = Subscription(sub_id, None if owner is None else to_address(owner))
        logger.info("vrf mock: subscription %s created", sub_id)
        return sub_id

    def _sub(self, sub_id: int) -> Subscription:
        sub = self._subs.get(sub_id)
        if sub is None:
            raise InvalidSubscription(subscription_id=sub_id)
        return sub

    def get_subscription(self, sub_id: int) -> Subscription:
        with self._lock:
            return self._sub(sub_id)

    def fund_subscription(self, sub_id: int, amount: int) -> int:
        if amount < 0:
            raise ValueError("amount must be non-negative")
        with self._lock:
            sub = self._sub(sub_id)
            sub.balance += amount
            logger.info("vrf mock: subscription %s funded +%s (balance=%s)", sub_id, amount, sub.balance)
            return sub.balance

    def add_consumer(self, sub_id: int, consumer: RandomnessConsumer) -> None:
        with self._lock:
            self._sub(sub_id).consumers[to_address(consumer.address)] = consumer
        logger.info("vrf mock: consumer %s added to subscription %s", consumer.address, sub_id)

    def remove_consumer(self, sub_id: int, consumer_address: str) -> None:
        addr = to_address(consumer_address)
        with self._lock:
            sub = self._sub(sub_id)
            if addr not in sub.consumers:
                raise InvalidConsumer(subscription_id=sub_id, consumer=addr)
            del sub.consumers[addr]

    def consumer_is_added(self, sub_id: int, consumer_address: str) -> bool:
        with self._lock:
            return to_address(consumer_address) in self._sub(sub_id).consumers

    # ---- requests ------------------------------------------------------------

    def request_random_words(
        self,
        gas_lane: str,
        subscription_id: int,
        confirmations: int,
        callback_gas_limit: int,
        num_words: int,
        *,
        consumer: RandomnessConsumer,
    ) -> RequestId:
        who = to_address(consumer.address)
        with self._lock:
            sub = self._sub(subscription_id)
            if who not in sub.consumers:
                raise InvalidConsumer(subscription_id=subscription_id, consumer=who)
            if not 0 < num_words <= MAX_NUM_WORDS:
                raise ProviderError(f"num_words {num_words} outside 1..{MAX_NUM_WORDS}")
            if callback_gas_limit > MAX_CALLBACK_GAS_LIMIT:
                raise ProviderError(f"callback_gas_limit {callback_gas_limit} > {MAX_CALLBACK_GAS_LIMIT}")
            if confirmations > MAX_REQUEST_CONFIRMATIONS:
                raise ProviderError(f"confirmations {confirmations} > {MAX_REQUEST_CONFIRMATIONS}")

            request_id = RequestId(self._next_request)
            self._next_request += 1
            req = RandomWordsRequest(
                request_id=request_id,
                subscription_id=subscription_id,
                gas_lane=gas_lane,
                confirmations=confirmations,
                callback_gas_limit=callback_gas_limit,
                num_words=num_words,
                consumer=who,
            )
            self._requests[request_id] = req
            sub.request_count += 1
            self.requested.append(req)
        logger.info("vrf mock: RandomWordsRequested id=%s sub=%s consumer=%s", request_id, subscription_id, who)
        return request_id

    def pending_requests(self) -> List[RandomWordsRequest]:
        with self._lock:
            return list(self._requests.values())

    def last_request_id(self) -> Optional[RequestId]:
        with self._lock:
            return self.requested[-1].request_id if self.requested else None

    # ---- fulfilment ----------------------------------------------------------

    def fulfill_random_words(self, request_id: int, consumer_address: str) -> FulfillmentResult:
        with self._lock:
            req = self._requests.get(int(request_id))
            if req is None:
                raise NonexistentRequest(request_id=int(request_id))
            words = derive_words(req.request_id, req.num_words)
        return self.fulfill_random_words_with_override(request_id, consumer_address, words)

    def fulfill_random_words_with_override(
        self,
        request_id: int,
        consumer_address: str,
        words: Sequence[int],
    ) -> FulfillmentResult:
        """Deliver caller-chosen `words` for a pending request (tests pick the winner this way)."""
        target = to_address(consumer_address)
        with self._lock:
            req = self._requests.get(int(request_id))
            if req is None:
                raise NonexistentRequest(request_id=int(request_id))
            if len(words) != req.num_words:
                raise ProviderError(f"expected {req.num_words} words, got {len(words)}")
            sub = self._sub(req.subscription_id)
            if sub.balance < self.base_fee:
                raise InsufficientSubscriptionBalance(
                    subscription_id=sub.subscription_id,
                    balance=sub.balance,
                    payment=self.base_fee,
                )
            consumer = sub.consumers.get(target)
            if consumer is None:
                raise InvalidConsumer(subscription_id=sub.subscription_id, consumer=target)
            sub.balance -= self.base_fee
            del self._requests[req.request_id]

        try:
            consumer.fulfill_randomness(req.request_id, list(words), caller=self._address)
        except RaffleError as e:
            logger.warning("vrf mock: consumer %s rejected request %s: %s", target, req.request_id, e)
            result = FulfillmentResult(req.request_id, self.base_fee, False, e)
        else:
            result = FulfillmentResult(req.request_id, self.base_fee, True)
        with self._lock:
            self.fulfilled.append(result)
        logger.info(
            "vrf mock: RandomWordsFulfilled id=%s success=%s payment=%s",
            req.request_id,
            result.success,
            result.payment,
        )
        return result


__all__ = [
    "derive_words",
    "Subscription",
    "RandomWordsRequest",
    "FulfillmentResult",
    "VRFCoordinatorMock",
]
