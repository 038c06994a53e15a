"""
In-memory treasury: account balances, escrow pay-ins and payouts.

The raffle does not implement ledger mechanics; it asks a treasury to move
value. This adapter is the local stand-in for the host ledger, mirroring the
`stdlib.treasury` surface contracts see (balance / transfer) plus:

- `pay_in(frm, to, amount)`   - value sent along with a call (an entry)
- `reject_incoming(addr)`     - mark an account as refusing transfers, the
                                way a contract without a payable fallback does

Transfers are all-or-nothing: a failed transfer leaves every balance untouched.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, Set

from ..errors import InsufficientFunds, TransferRejected
from ..types.core import Address, to_address

logger = logging.getLogger(__name__)


class Treasury:
    """Balances keyed by canonical address."""

    def __init__(self) -> None:
        self._balances: Dict[Address, int] = {}
        self._rejecting: Set[Address] = set()
        self._lock = threading.Lock()

    # ---- reads ---------------------------------------------------------------

    def balance_of(self, addr: str) -> int:
        a = to_address(addr)
        with self._lock:
            return self._balances.get(a, 0)

    def total_supply(self) -> int:
        with self._lock:
            return sum(self._balances.values())

    # ---- funding (test/devnet helpers) --------------------------------------

    def mint(self, addr: str, amount: int) -> int:
        """Credit `amount` out of thin air (faucet). Returns the new balance."""
        if amount < 0:
            raise ValueError("amount must be non-negative")
        a = to_address(addr)
        with self._lock:
            self._balances[a] = self._balances.get(a, 0) + amount
            return self._balances[a]

    def reject_incoming(self, addr: str, reject: bool = True) -> None:
        a = to_address(addr)
        with self._lock:
            if reject:
                self._rejecting.add(a)
            else:
                self._rejecting.discard(a)

    # ---- value movement ------------------------------------------------------

    def transfer(self, frm: str, to: str, amount: int) -> None:
        """
        Move `amount` from `frm` to `to`.

        Raises:
            InsufficientFunds: `frm` cannot cover `amount`.
            TransferRejected:  `to` refuses incoming value.
        """
        if amount < 0:
            raise ValueError("negative transfer")
        src, dst = to_address(frm), to_address(to)
        with self._lock:
            if dst in self._rejecting:
                raise TransferRejected(recipient=dst, amount=amount)
            have = self._balances.get(src, 0)
            if have < amount:
                raise InsufficientFunds(account=src, balance=have, amount=amount)
            self._balances[src] = have - amount
            self._balances[dst] = self._balances.get(dst, 0) + amount
        logger.debug("transfer %s -> %s amount=%s", src, dst, amount)

    def pay_in(self, frm: str, to: str, amount: int) -> None:
        """Value attached to a call. Escrow accounts never reject deposits."""
        if amount < 0:
            raise ValueError("negative pay-in")
        src, dst = to_address(frm), to_address(to)
        if src == dst:
            raise ValueError(f"pay-in from {src} to itself")
        with self._lock:
            have = self._balances.get(src, 0)
            if have < amount:
                raise InsufficientFunds(account=src, balance=have, amount=amount)
            self._balances[src] = have - amount
            self._balances[dst] = self._balances.get(dst, 0) + amount


__all__ = ["Treasury"]
