"""
Raffle module constants.

This module centralizes:
- Domain separation tags for derived randomness and stable encodings
- Randomness request bounds (mirroring what VRF coordinators enforce)
- Development-network defaults used by the deploy wiring and mocks

Networks override operational knobs via `raffle.config.RaffleConfig`; code
that needs stable compile-time defaults can import from here.
"""

from __future__ import annotations

# -----------------------------
# Domain separation (bytes tags)
# -----------------------------
# Keep these stable; changing them changes every derived word.
DOMAIN_PREFIX: bytes = b"animica.raffle."

# Words derived from the chain beacon for a raffle request
DOMAIN_BEACON_WORDS: bytes = DOMAIN_PREFIX + b"beacon.words.v1"

# Label prefix binding a request id into the beacon derivation
LABEL_REQUEST: bytes = b"raffle.request:"

# -----------------------------
# Randomness request bounds
# -----------------------------
# A raffle round consumes exactly one word.
NUM_WORDS: int = 1
# Coordinator-side caps on a single request.
MAX_NUM_WORDS: int = 500
MAX_CALLBACK_GAS_LIMIT: int = 2_500_000
DEFAULT_REQUEST_CONFIRMATIONS: int = 3
MAX_REQUEST_CONFIRMATIONS: int = 200

# Width of one random word (uint256)
WORD_BYTES: int = 32

# -----------------------------
# Development network defaults
# -----------------------------
DEVELOPMENT_CHAIN_IDS: frozenset = frozenset({31337})

# Premium charged per fulfilment by the coordinator mock (0.25 LINK)
MOCK_BASE_FEE: int = 25 * 10**16
# Amount a freshly created mock subscription is funded with (2 LINK)
VRF_SUB_FUND_AMOUNT: int = 2 * 10**18

# 0.01 ether
DEFAULT_ENTRANCE_FEE: int = 10**16
DEFAULT_INTERVAL_S: int = 30
DEFAULT_CALLBACK_GAS_LIMIT: int = 500_000
# Any 32-byte key hash is accepted by the mock.
DEFAULT_GAS_LANE: str = "0x474e34a077df58807dbe9c96d3c009b23b3c6d0cce433e59bbf5b34f823bc56c"

__all__ = [
    "DOMAIN_PREFIX",
    "DOMAIN_BEACON_WORDS",
    "LABEL_REQUEST",
    "NUM_WORDS",
    "MAX_NUM_WORDS",
    "MAX_CALLBACK_GAS_LIMIT",
    "DEFAULT_REQUEST_CONFIRMATIONS",
    "MAX_REQUEST_CONFIRMATIONS",
    "WORD_BYTES",
    "DEVELOPMENT_CHAIN_IDS",
    "MOCK_BASE_FEE",
    "VRF_SUB_FUND_AMOUNT",
    "DEFAULT_ENTRANCE_FEE",
    "DEFAULT_INTERVAL_S",
    "DEFAULT_CALLBACK_GAS_LIMIT",
    "DEFAULT_GAS_LANE",
]
