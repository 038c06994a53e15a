"""
JSON-RPC errors for the raffle methods.

- Canonical JSON-RPC 2.0 codes for protocol-level failures.
- Raffle server codes in the reserved -32060..-32069 block.
- `RpcError(code, message, data)` carrying the envelope fields.
- `to_rpc_error(exc)` mapping RaffleError subclasses (and common Python
  errors) to RpcError; the raffle error's fields become `data`.

Keep the codes stable; append new ones at the end of the block.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, Mapping, Optional, Union

from ..errors import (
    HistoryConflict,
    IndexOutOfRange,
    InsufficientEntryFee,
    InsufficientFunds,
    MalformedRandomness,
    NoParticipants,
    NotOpen,
    ProviderError,
    RaffleError,
    RequestAlreadyPending,
    TransferFailed,
    TransferRejected,
    UnauthorizedFulfillment,
    UnknownRequest,
    UpkeepNotNeeded,
    error_context,
)


class JsonRpcCode(IntEnum):
    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603


class RaffleRpcCode(IntEnum):
    NOT_OPEN = -32060
    INSUFFICIENT_ENTRY_FEE = -32061
    INSUFFICIENT_FUNDS = -32062
    INDEX_OUT_OF_RANGE = -32063
    UPKEEP_NOT_NEEDED = -32064
    REQUEST_ALREADY_PENDING = -32065
    UNKNOWN_REQUEST = -32066
    UNAUTHORIZED_FULFILLMENT = -32067
    PAYOUT_FAILED = -32068
    PROVIDER_ERROR = -32069


@dataclass(frozen=True)
class RpcError(Exception):
    code: int
    message: str
    data: Optional[Mapping[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        err: Dict[str, Any] = {"code": int(self.code), "message": str(self.message)}
        if self.data:
            err["data"] = _jsonable(self.data)
        return err

    def __str__(self) -> str:  # pragma: no cover
        return f"[{self.code}] {self.message} ({self.data})"


def invalid_params(detail: str = "Invalid params", **data: Any) -> RpcError:
    return RpcError(JsonRpcCode.INVALID_PARAMS, detail, data or None)


def method_not_found(method: str) -> RpcError:
    return RpcError(JsonRpcCode.METHOD_NOT_FOUND, "Method not found", {"method": method})


# Order matters: subclasses before their bases.
_RAFFLE_CODES = (
    (NotOpen, RaffleRpcCode.NOT_OPEN, "Raffle not open"),
    (InsufficientEntryFee, RaffleRpcCode.INSUFFICIENT_ENTRY_FEE, "Not enough value entered"),
    (InsufficientFunds, RaffleRpcCode.INSUFFICIENT_FUNDS, "Insufficient funds"),
    (IndexOutOfRange, RaffleRpcCode.INDEX_OUT_OF_RANGE, "Player index out of range"),
    (UpkeepNotNeeded, RaffleRpcCode.UPKEEP_NOT_NEEDED, "Upkeep not needed"),
    (RequestAlreadyPending, RaffleRpcCode.REQUEST_ALREADY_PENDING, "Randomness request already pending"),
    (UnauthorizedFulfillment, RaffleRpcCode.UNAUTHORIZED_FULFILLMENT, "Caller is not the randomness provider"),
    (UnknownRequest, RaffleRpcCode.UNKNOWN_REQUEST, "Unknown randomness request"),
    (MalformedRandomness, RaffleRpcCode.UNKNOWN_REQUEST, "Malformed randomness"),
    (TransferFailed, RaffleRpcCode.PAYOUT_FAILED, "Transfer failed"),
    (TransferRejected, RaffleRpcCode.PAYOUT_FAILED, "Transfer rejected"),
    (NoParticipants, RaffleRpcCode.PAYOUT_FAILED, "No participants"),
    (HistoryConflict, RaffleRpcCode.PAYOUT_FAILED, "Round already recorded"),
    (ProviderError, RaffleRpcCode.PROVIDER_ERROR, "Randomness provider error"),
)


def to_rpc_error(exc: Exception) -> RpcError:
    """
    Convert an exception into an RpcError.
    - RpcError passes through.
    - RaffleError subclasses map to the -32060..-32069 block with their fields as data.
    - ValueError/TypeError become INVALID_PARAMS.
    - Anything else becomes INTERNAL_ERROR with only the exception class name.
    """
    if isinstance(exc, RpcError):
        return exc
    if isinstance(exc, RaffleError):
        for typ, code, message in _RAFFLE_CODES:
            if isinstance(exc, typ):
                data = error_context(exc) or {"reason": str(exc)}
                return RpcError(code, message, {"error": type(exc).__name__, **data})
        return RpcError(RaffleRpcCode.PROVIDER_ERROR, str(exc), {"error": type(exc).__name__})
    if isinstance(exc, (ValueError, TypeError)):
        return invalid_params(str(exc))
    return RpcError(JsonRpcCode.INTERNAL_ERROR, "Internal error", {"reason": exc.__class__.__name__})


def error_response(req_id: Optional[Union[str, int]], err: RpcError) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": req_id, "error": err.to_dict()}


def _jsonable(obj: Any) -> Any:
    if obj is None or isinstance(obj, (bool, int, float, str)):
        return obj
    if isinstance(obj, (bytes, bytearray)):
        return "0x" + bytes(obj).hex()
    if isinstance(obj, Mapping):
        return {str(k): _jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_jsonable(x) for x in obj]
    return str(obj)


__all__ = [
    "JsonRpcCode",
    "RaffleRpcCode",
    "RpcError",
    "invalid_params",
    "method_not_found",
    "to_rpc_error",
    "error_response",
]
