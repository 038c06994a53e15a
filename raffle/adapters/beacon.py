"""
Beacon-backed randomness provider.

Serves raffle requests from the chain's randomness beacon instead of a VRF
oracle. A request made at height H with `confirmations` C is answered once the
beacon digest at height H + C exists; the words are derived from that digest
with SHAKE-256 and a label that binds the request id:

    label  = b"raffle.request:" || u64(request_id)
    stream = SHAKE256( DOMAIN || u32(len(label)) || label || digest32 )
    words[i] = int.from_bytes(stream[32*i : 32*(i+1)], "big")

so two requests served by the same block still get independent words.

Data source
-----------
Anything with `beacon_digest_at_height(height) -> bytes` (32 bytes). A missing
digest is signalled by raising `LookupError` (or a subclass); the request then
simply stays pending until a later `fulfill_ready` call.

Typical usage
-------------
    provider = BeaconRandomnessProvider(source, address=beacon_addr, height=tip)
    request_id = raffle.perform_upkeep()          # target = tip + confirmations
    ...
    provider.fulfill_ready(new_tip)               # delivers when target <= new_tip
"""

from __future__ import annotations

import hashlib
import logging
import threading
from dataclasses import dataclass
from typing import Dict, List, Protocol, Tuple

from ..constants import DOMAIN_BEACON_WORDS, LABEL_REQUEST, MAX_NUM_WORDS, WORD_BYTES
from ..errors import NonexistentRequest, ProviderError, RaffleError
from ..types.core import Address, RequestId, to_address
from .provider import RandomnessConsumer

logger = logging.getLogger(__name__)


class DigestSource(Protocol):
    def beacon_digest_at_height(self, height: int) -> bytes: ...


def derive_beacon_words(digest: bytes, request_id: int, num_words: int) -> List[int]:
    if len(digest) != 32:
        raise ValueError("beacon digest must be 32 bytes")
    if num_words <= 0:
        raise ValueError("num_words must be positive")
    label = LABEL_REQUEST + int(request_id).to_bytes(8, "big")
    shake = hashlib.shake_256()
    shake.update(DOMAIN_BEACON_WORDS)
    shake.update(len(label).to_bytes(4, "big"))
    shake.update(label)
    shake.update(digest)
    stream = shake.digest(WORD_BYTES * num_words)
    return [
        int.from_bytes(stream[i * WORD_BYTES : (i + 1) * WORD_BYTES], "big")
        for i in range(num_words)
    ]


@dataclass(frozen=True)
class BeaconRequest:
    request_id: RequestId
    target_height: int
    num_words: int
    consumer: Address


class BeaconRandomnessProvider:
    """RandomnessProvider answering from beacon digests at a future height."""

    def __init__(self, source: DigestSource, *, address: str, height: int = 0) -> None:
        if height < 0:
            raise ValueError("height must be non-negative")
        self._src = source
        self._address = to_address(address)
        self._height = int(height)
        self._next_request = 1
        self._pending: Dict[int, Tuple[BeaconRequest, RandomnessConsumer]] = {}
        self._lock = threading.RLock()

    @property
    def address(self) -> Address:
        return self._address

    @property
    def height(self) -> int:
        return self._height

    def observe_height(self, height: int) -> None:
        with self._lock:
            if height < self._height:
                raise ValueError(f"height cannot move backwards ({height} < {self._height})")
            self._height = int(height)

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
        # gas lane, subscription and gas budget have no meaning for the beacon
        if confirmations < 0:
            raise ProviderError(f"confirmations must be non-negative (got {confirmations})")
        if not 0 < num_words <= MAX_NUM_WORDS:
            raise ProviderError(f"num_words {num_words} outside 1..{MAX_NUM_WORDS}")
        who = to_address(consumer.address)
        with self._lock:
            request_id = RequestId(self._next_request)
            self._next_request += 1
            req = BeaconRequest(request_id, self._height + confirmations, num_words, who)
            self._pending[request_id] = (req, consumer)
        logger.info("beacon provider: request %s for %s at target height %s", request_id, who, req.target_height)
        return request_id

    def pending(self) -> List[BeaconRequest]:
        with self._lock:
            return [req for req, _ in self._pending.values()]

    def fulfill(self, request_id: int) -> List[int]:
        """
        Deliver one request now, regardless of the observed height.

        Raises:
            NonexistentRequest: unknown or already delivered id.
            LookupError: no digest at the target height yet (request stays pending).
        """
        with self._lock:
            entry = self._pending.get(int(request_id))
            if entry is None:
                raise NonexistentRequest(request_id=int(request_id))
            req, consumer = entry
            digest = self._src.beacon_digest_at_height(req.target_height)
            words = derive_beacon_words(digest, req.request_id, req.num_words)
            del self._pending[req.request_id]
        consumer.fulfill_randomness(req.request_id, words, caller=self._address)
        return words

    def fulfill_ready(self, height: int) -> List[RequestId]:
        """
        Advance to `height` and deliver every request whose target height has
        been reached. Returns the ids that were delivered; a consumer that
        rejects the callback is logged and counted as delivered.
        """
        self.observe_height(height)
        with self._lock:
            due = sorted(rid for rid, (req, _) in self._pending.items() if req.target_height <= height)
        done: List[RequestId] = []
        for rid in due:
            try:
                self.fulfill(rid)
            except LookupError as e:
                logger.debug("beacon provider: request %s not ready: %s", rid, e)
                continue
            except RaffleError as e:
                logger.warning("beacon provider: consumer rejected request %s: %s", rid, e)
            done.append(RequestId(rid))
        return done


__all__ = ["DigestSource", "derive_beacon_words", "BeaconRequest", "BeaconRandomnessProvider"]
