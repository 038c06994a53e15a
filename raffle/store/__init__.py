"""
raffle.store
============

Storage abstractions for raffle artifacts (finalized round records).

Backends are pluggable; higher layers code against the tiny `KeyValue`
protocol below. `MemoryKV` is the in-process implementation used by tests
and local deployments.
"""

from __future__ import annotations

from typing import Dict, Iterable, Optional, Protocol, Tuple


class KeyValue(Protocol):
    """Minimal byte-oriented KV interface. Namespacing is the caller's job."""

    def get(self, key: bytes) -> Optional[bytes]: ...

    def put(self, key: bytes, value: bytes) -> None: ...

    def iter_prefix(self, prefix: bytes) -> Iterable[Tuple[bytes, bytes]]:
        """Yield (key, value) pairs whose keys start with prefix, in key order."""
        ...


class MemoryKV:
    """Simple in-memory KV useful for unit tests or tooling."""

    def __init__(self) -> None:
        self._d: Dict[bytes, bytes] = {}

    def get(self, key: bytes) -> Optional[bytes]:
        return self._d.get(key)

    def put(self, key: bytes, value: bytes) -> None:
        self._d[bytes(key)] = bytes(value)

    def iter_prefix(self, prefix: bytes) -> Iterable[Tuple[bytes, bytes]]:
        for k in sorted(self._d):
            if k.startswith(prefix):
                yield k, self._d[k]

    def __len__(self) -> int:
        return len(self._d)


__all__ = ["KeyValue", "MemoryKV"]
