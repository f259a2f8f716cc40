"""
Network module for the JSON-RPC websocket and REST clients.
"""

from .rpc_socket import RpcSocket, RpcError, RpcResponseError
from .http_client import GammaClient, GammaRequestError

__all__ = [
    "RpcSocket",
    "RpcError",
    "RpcResponseError",
    "GammaClient",
    "GammaRequestError",
]
