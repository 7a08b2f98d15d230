"""
Providers package - Upstream connection implementations.
"""

from chain_rpc.providers.jsonrpc import JsonRpcConnection
from chain_rpc.providers.mock import MockConfig, MockConnection


__all__ = [
    "JsonRpcConnection",
    "MockConfig",
    "MockConnection",
]
