"""
raffle.rpc
==========

JSON-RPC surface for a raffle instance: pydantic-validated method shims
(`methods`) and the RaffleError → JSON-RPC error mapping (`errors`).

    from raffle.rpc import dispatch
    dispatch(raffle, "raffle.getState")           # -> 0
"""

from .errors import JsonRpcCode, RaffleRpcCode, RpcError, to_rpc_error
from .methods import RPC_METHODS, dispatch, handle_request

__all__ = [
    "JsonRpcCode",
    "RaffleRpcCode",
    "RpcError",
    "to_rpc_error",
    "RPC_METHODS",
    "dispatch",
    "handle_request",
]
