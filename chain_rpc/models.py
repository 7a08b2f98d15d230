"""
Chain RPC Models - Values exchanged with an upstream connection.

Blocks, read queries, write requests, operation handles and settlements.
Amounts are integers in base units; hex encoding happens at the wire.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class ConnectionStatus(Enum):
    """Health status of an upstream connection."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


@dataclass
class ConnectionHealth:
    """Health tracking for one upstream connection."""
    status: ConnectionStatus = ConnectionStatus.UNKNOWN
    latency_ms: Optional[float] = None
    request_count: int = 0
    error_count: int = 0
    consecutive_failures: int = 0
    last_error: Optional[str] = None
    last_error_time: Optional[datetime] = None
    last_success_time: Optional[datetime] = None

    def is_healthy(self) -> bool:
        """Check if connection is operational."""
        return self.status == ConnectionStatus.HEALTHY

    def is_usable(self) -> bool:
        """Check if connection can still be used."""
        return self.status in (ConnectionStatus.HEALTHY, ConnectionStatus.DEGRADED)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "status": self.status.value,
            "latency_ms": self.latency_ms,
            "request_count": self.request_count,
            "error_count": self.error_count,
            "consecutive_failures": self.consecutive_failures,
            "last_error": self.last_error,
            "last_error_time": self.last_error_time.isoformat() if self.last_error_time else None,
            "last_success_time": self.last_success_time.isoformat() if self.last_success_time else None,
        }


@dataclass(frozen=True)
class BlockInfo:
    """Header fields of a block that the engine cares about."""
    number: int
    timestamp: int
    hash: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {"number": self.number, "timestamp": self.timestamp, "hash": self.hash}


@dataclass(frozen=True)
class ReadQuery:
    """A side-effect free contract call."""
    to: str
    data: str
    description: str = ""


@dataclass(frozen=True)
class WriteRequest:
    """A state-changing contract call submitted on behalf of an actor."""
    to: str
    data: str
    gas_limit: int
    value: int = 0
    description: str = ""


@dataclass(frozen=True)
class OperationHandle:
    """Reference to a submitted write, used to await its settlement."""
    tx_hash: str
    connection_name: str
    submitted_at: Optional[datetime] = None

    def __str__(self) -> str:
        return self.tx_hash


@dataclass(frozen=True)
class Settlement:
    """Final outcome of a submitted write."""
    success: bool
    tx_hash: str
    block_number: Optional[int] = None
    gas_used: Optional[int] = None
    detail: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "tx_hash": self.tx_hash,
            "block_number": self.block_number,
            "gas_used": self.gas_used,
            "detail": self.detail,
        }


@dataclass(frozen=True)
class GasFees:
    """
    Fee fields attached to every write.

    Either a legacy gas price or the EIP-1559 pair; all values in wei.
    With nothing set the upstream node estimates fees itself.
    """
    gas_price_wei: Optional[int] = None
    max_fee_per_gas_wei: Optional[int] = None
    max_priority_fee_per_gas_wei: Optional[int] = None

    @property
    def is_eip1559(self) -> bool:
        return self.max_fee_per_gas_wei is not None

    def to_tx_fields(self) -> dict[str, str]:
        """Render as hex-quantity transaction fields."""
        if self.is_eip1559:
            fields = {"maxFeePerGas": hex(self.max_fee_per_gas_wei)}
            if self.max_priority_fee_per_gas_wei is not None:
                fields["maxPriorityFeePerGas"] = hex(self.max_priority_fee_per_gas_wei)
            return fields
        if self.gas_price_wei is not None:
            return {"gasPrice": hex(self.gas_price_wei)}
        return {}


@dataclass
class RecordedCall:
    """A call observed by the mock connection, for assertions in tests."""
    method: str
    actor: Optional[str] = None
    payload: dict[str, Any] = field(default_factory=dict)
