"""
raffle.rpc.methods
------------------

JSON-RPC method shims for a raffle instance.

These are intentionally thin: they validate/normalize inputs with pydantic
models, then delegate to a `RaffleStateMachine`.

Exposed methods:

- raffle.getState()                 -> int (0 = OPEN, 1 = CALCULATING)
- raffle.getEntranceFee()           -> int
- raffle.getInterval()              -> int
- raffle.getNumberOfPlayers()       -> int
- raffle.getPlayer(index)           -> address
- raffle.getRecentWinner()          -> address | null
- raffle.getLastTimeStamp()         -> int
- raffle.getVrfCoordinator()        -> address
- raffle.getPendingRequest()        -> {requestId, roundNumber, requestedAt} | null
- raffle.checkUpkeep(data?)         -> {upkeepNeeded, performData, ...}
- raffle.enter(caller, amount)      -> {participant, players}
- raffle.performUpkeep(data?)       -> {requestId}

Amounts are accepted as JSON ints or decimal strings (uint256 values overflow
some clients' number types). Addresses are 0x-prefixed hex.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..machine import RaffleStateMachine
from ..types.core import Address, to_address
from .errors import JsonRpcCode, RpcError, error_response, invalid_params, method_not_found, to_rpc_error

logger = logging.getLogger(__name__)


# ---------- helpers ----------

def _strip_0x(s: str) -> str:
    return s[2:] if s.startswith("0x") or s.startswith("0X") else s


def _hex_to_bytes(s: str) -> bytes:
    return bytes.fromhex(_strip_0x(s))


def _bytes_to_hex(b: bytes) -> str:
    return "0x" + b.hex()


# ---------- request models ----------

class _UpkeepArg(BaseModel):
    model_config = ConfigDict(frozen=True)
    data: str = Field(default="0x", description="0x-hex checkData/performData (ignored by the raffle).")

    @field_validator("data")
    @classmethod
    def _data_hex(cls, v: str) -> str:
        _hex_to_bytes(v)
        return v


class CheckUpkeepParams(_UpkeepArg):
    pass


class PerformUpkeepParams(_UpkeepArg):
    pass


class EnterParams(BaseModel):
    model_config = ConfigDict(frozen=True)
    caller: str = Field(..., description="Entering account (0x address).")
    amount: Union[int, str] = Field(..., description="Value sent with the entry.")

    @field_validator("caller")
    @classmethod
    def _addr_ok(cls, v: str) -> Address:
        return to_address(v)

    @field_validator("amount")
    @classmethod
    def _amount_ok(cls, v: Union[int, str]) -> int:
        n = int(v, 10) if isinstance(v, str) else int(v)
        if n < 0:
            raise ValueError("amount must be non-negative")
        return n


class PlayerQuery(BaseModel):
    model_config = ConfigDict(frozen=True)
    index: int = Field(..., ge=0, description="Zero-based entry index in the open round.")


# ---------- method handlers ----------

def raffle_get_state(raffle: RaffleStateMachine, _args: Optional[Mapping[str, Any]] = None) -> int:
    return raffle.state.code


def raffle_get_entrance_fee(raffle: RaffleStateMachine, _args: Optional[Mapping[str, Any]] = None) -> int:
    return raffle.entrance_fee


def raffle_get_interval(raffle: RaffleStateMachine, _args: Optional[Mapping[str, Any]] = None) -> int:
    return raffle.interval


def raffle_get_number_of_players(raffle: RaffleStateMachine, _args: Optional[Mapping[str, Any]] = None) -> int:
    return raffle.num_participants


def raffle_get_player(raffle: RaffleStateMachine, args: Mapping[str, Any]) -> Address:
    q = PlayerQuery(**args)
    return raffle.participant(q.index)


def raffle_get_recent_winner(raffle: RaffleStateMachine, _args: Optional[Mapping[str, Any]] = None) -> Optional[Address]:
    return raffle.recent_winner


def raffle_get_last_timestamp(raffle: RaffleStateMachine, _args: Optional[Mapping[str, Any]] = None) -> int:
    return raffle.last_timestamp


def raffle_get_vrf_coordinator(raffle: RaffleStateMachine, _args: Optional[Mapping[str, Any]] = None) -> Address:
    return raffle.provider_address


def raffle_get_pending_request(
    raffle: RaffleStateMachine, _args: Optional[Mapping[str, Any]] = None
) -> Optional[Dict[str, int]]:
    pending = raffle.pending_request
    return None if pending is None else pending.to_dict()


def raffle_check_upkeep(raffle: RaffleStateMachine, args: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    """
    Read-only eligibility check. `performData` is the status encoding a keeper
    passes back to performUpkeep.
    """
    p = CheckUpkeepParams(**(args or {}))
    _, status = raffle.check_upkeep(_hex_to_bytes(p.data))
    out = status.to_dict()
    out["performData"] = _bytes_to_hex(status.encode())
    return out


def raffle_enter(raffle: RaffleStateMachine, args: Mapping[str, Any]) -> Dict[str, Any]:
    p = EnterParams(**args)
    who = raffle.enter(p.caller, p.amount)
    return {"participant": who, "players": raffle.num_participants}


def raffle_perform_upkeep(raffle: RaffleStateMachine, args: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    p = PerformUpkeepParams(**(args or {}))
    request_id = raffle.perform_upkeep(_hex_to_bytes(p.data))
    return {"requestId": int(request_id)}


# Public registry mapping JSON-RPC method names to callables.
# Each callable has signature: (raffle, args_dict) -> result
RPC_METHODS: Dict[str, Callable[..., Any]] = {
    "raffle.getState": raffle_get_state,
    "raffle.getEntranceFee": raffle_get_entrance_fee,
    "raffle.getInterval": raffle_get_interval,
    "raffle.getNumberOfPlayers": raffle_get_number_of_players,
    "raffle.getPlayer": raffle_get_player,
    "raffle.getRecentWinner": raffle_get_recent_winner,
    "raffle.getLastTimeStamp": raffle_get_last_timestamp,
    "raffle.getVrfCoordinator": raffle_get_vrf_coordinator,
    "raffle.getPendingRequest": raffle_get_pending_request,
    "raffle.checkUpkeep": raffle_check_upkeep,
    "raffle.enter": raffle_enter,
    "raffle.performUpkeep": raffle_perform_upkeep,
}

# Positional-params order for clients that send arrays.
_POSITIONAL: Dict[str, Sequence[str]] = {
    "raffle.getPlayer": ("index",),
    "raffle.checkUpkeep": ("data",),
    "raffle.enter": ("caller", "amount"),
    "raffle.performUpkeep": ("data",),
}


def _normalize_params(method: str, params: Any) -> Dict[str, Any]:
    if params is None:
        return {}
    if isinstance(params, Mapping):
        return dict(params)
    if isinstance(params, (list, tuple)):
        names = _POSITIONAL.get(method, ())
        if len(params) > len(names):
            raise invalid_params("too many positional params", method=method, max=len(names))
        return dict(zip(names, params))
    raise invalid_params("params must be an object or an array", method=method)


def dispatch(raffle: RaffleStateMachine, method: str, params: Any = None) -> Any:
    """
    Invoke `method` against `raffle`. Raises RpcError on any failure.
    """
    fn = RPC_METHODS.get(method)
    if fn is None:
        raise method_not_found(method)
    args = _normalize_params(method, params)
    try:
        return fn(raffle, args)
    except ValidationError as e:
        errors = [{"loc": [str(x) for x in err["loc"]], "msg": err["msg"]} for err in e.errors()]
        raise invalid_params("Invalid params", method=method, errors=errors) from e
    except RpcError:
        raise
    except Exception as e:
        err = to_rpc_error(e)
        logger.debug("rpc %s failed: %s -> %s", method, e, err.code)
        raise err from e


def handle_request(raffle: RaffleStateMachine, request: Mapping[str, Any]) -> Dict[str, Any]:
    """Full JSON-RPC 2.0 envelope in, envelope out."""
    req_id = request.get("id")
    method = request.get("method")
    if request.get("jsonrpc") != "2.0" or not isinstance(method, str):
        return error_response(req_id, RpcError(JsonRpcCode.INVALID_REQUEST, "Invalid request"))
    try:
        result = dispatch(raffle, method, request.get("params"))
    except RpcError as err:
        return error_response(req_id, err)
    return {"jsonrpc": "2.0", "id": req_id, "result": result}


__all__ = [
    "CheckUpkeepParams",
    "PerformUpkeepParams",
    "EnterParams",
    "PlayerQuery",
    "RPC_METHODS",
    "dispatch",
    "handle_request",
]
