"""
Chain RPC - Upstream connections to the external chain.

Provides:
- BaseConnection: abstract connection (clock, reads, writes, settlement)
- JsonRpcConnection: Ethereum JSON-RPC over aiohttp
- MockConnection: scriptable in-memory connection
- UpstreamSelector: primary/secondary pair with manual failover

Usage:
    from chain_rpc import JsonRpcConnection, UpstreamSelector

    selector = UpstreamSelector(
        JsonRpcConnection("primary", primary_url),
        JsonRpcConnection("secondary", secondary_url),
    )
    async with selector:
        ts = await selector.current_connection().get_current_timestamp()
"""

from chain_rpc.base import BaseConnection
from chain_rpc.logging_utils import mask_url, mask_value, short_address
from chain_rpc.models import (
    BlockInfo,
    ConnectionHealth,
    ConnectionStatus,
    GasFees,
    OperationHandle,
    ReadQuery,
    RecordedCall,
    Settlement,
    WriteRequest,
)
from chain_rpc.providers import JsonRpcConnection, MockConfig, MockConnection
from chain_rpc.selector import UpstreamSelector


__all__ = [
    # Base
    "BaseConnection",

    # Models
    "BlockInfo",
    "ConnectionHealth",
    "ConnectionStatus",
    "GasFees",
    "OperationHandle",
    "ReadQuery",
    "RecordedCall",
    "Settlement",
    "WriteRequest",

    # Providers
    "JsonRpcConnection",
    "MockConfig",
    "MockConnection",

    # Selector
    "UpstreamSelector",

    # Logging
    "mask_url",
    "mask_value",
    "short_address",
]
