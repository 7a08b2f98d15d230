"""
Mock Upstream Connection.

============================================================
PURPOSE
============================================================
Scriptable connection for testing and dry runs.

- Scripted block timestamps (the last value repeats)
- Simulated chain that advances with the local clock
- Injectable failures for timestamp queries and writes
- In-memory token balances, allowances and vault state
- Records every call for assertions

============================================================
SCRIPTING
============================================================
A timestamp script is a list whose entries are either integers
(returned in order) or exception instances (raised when reached).
Once the script is exhausted the last integer repeats.

============================================================
"""

import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set, Union

from chain_rpc.base import BaseConnection
from chain_rpc.models import (
    BlockInfo,
    OperationHandle,
    ReadQuery,
    RecordedCall,
    Settlement,
    WriteRequest,
)
from core.clock import ClockProtocol, SystemClock
from core.constants import (
    SELECTOR_ALLOWANCE,
    SELECTOR_APPROVE,
    SELECTOR_BALANCE_OF,
    SELECTOR_DECIMALS,
    SELECTOR_DEPOSIT,
    SELECTOR_DEPOSIT_END,
    SELECTOR_DEPOSIT_START,
    SELECTOR_MAX_DEPOSIT,
    SELECTOR_MAX_TOTAL_ASSETS,
    SELECTOR_OPERATIONAL_MODE,
    SELECTOR_TOTAL_ASSETS,
    VAULT_MODE_DEPOSIT,
)
from core.exceptions import RejectedOperationError, TransientUpstreamError


logger = logging.getLogger(__name__)

ScriptEntry = Union[int, BaseException]

MAX_UINT256 = 2 ** 256 - 1

# Selector -> MockConfig field for the vault status getters
_VAULT_STATUS_FIELDS = {
    SELECTOR_OPERATIONAL_MODE: "operational_mode",
    SELECTOR_DEPOSIT_START: "deposit_start",
    SELECTOR_DEPOSIT_END: "deposit_end",
    SELECTOR_MAX_TOTAL_ASSETS: "max_total_assets",
}


# ============================================================
# MOCK CONFIGURATION
# ============================================================

@dataclass
class MockConfig:
    """Configuration for mock connection behavior."""

    timestamps: List[ScriptEntry] = field(default_factory=list)
    """Scripted timestamp sequence. Ignored when simulate_from is set."""

    simulate_from: Optional[int] = None
    """Starting timestamp of a simulated chain advancing with the clock."""

    block_time_seconds: int = 1
    """Simulated chain: timestamps advance in steps of this size."""

    fail_all: bool = False
    """Every request raises TransientUpstreamError (upstream down)."""

    balances: Dict[str, int] = field(default_factory=dict)
    allowances: Dict[str, int] = field(default_factory=dict)
    default_balance: int = 0
    default_allowance: int = 0

    decimals: int = 6
    total_assets: int = 0
    max_deposit: int = MAX_UINT256

    operational_mode: Optional[int] = VAULT_MODE_DEPOSIT
    deposit_start: Optional[int] = 0
    deposit_end: Optional[int] = 0
    max_total_assets: Optional[int] = MAX_UINT256
    """Vault status getters. None makes the read revert, as on a vault without it."""

    failing_reads: Set[str] = field(default_factory=set)
    """Actors whose reads always fail."""

    write_failures: Dict[str, int] = field(default_factory=dict)
    """Per actor: number of leading writes rejected before one succeeds."""

    failing_actors: Set[str] = field(default_factory=set)
    """Actors whose writes are always rejected."""

    revert_actors: Set[str] = field(default_factory=set)
    """Actors whose writes are accepted but settle as reverted."""

    write_latency_seconds: float = 0.0
    """Delay applied inside call_write."""


# ============================================================
# MOCK CONNECTION
# ============================================================

class MockConnection(BaseConnection):
    """
    In-memory connection with scripted behavior.

    Actor keys in the config are compared case-insensitively.
    """

    def __init__(
        self,
        name: str = "mock",
        config: Optional[MockConfig] = None,
        clock: Optional[ClockProtocol] = None,
    ) -> None:
        super().__init__(name)
        self.config = config or MockConfig()
        self._clock = clock or SystemClock()
        self._sim_started = self._clock.monotonic()

        self._script_index = 0
        self._last_timestamp: Optional[int] = None
        self._block_number = 1

        self._balances = {k.lower(): v for k, v in self.config.balances.items()}
        self._allowances = {k.lower(): v for k, v in self.config.allowances.items()}
        self._write_failures = {k.lower(): v for k, v in self.config.write_failures.items()}
        self._failing_actors = {a.lower() for a in self.config.failing_actors}
        self._failing_reads = {a.lower() for a in self.config.failing_reads}
        self._revert_actors = {a.lower() for a in self.config.revert_actors}
        self._total_assets = self.config.total_assets

        self._tx_counter = itertools.count(1)
        self._pending: Dict[str, str] = {}

        self.calls: List[RecordedCall] = []
        self.closed = False

    # ─────────────────────────────────────────────────────────────
    # Clock
    # ─────────────────────────────────────────────────────────────

    async def get_latest_block(self) -> BlockInfo:
        self._record("get_latest_block")
        self._check_available("get_latest_block")
        timestamp = self._next_timestamp()
        self._block_number += 1
        self._on_success()
        return BlockInfo(number=self._block_number, timestamp=timestamp)

    def _next_timestamp(self) -> int:
        if self.config.simulate_from is not None:
            elapsed = self._clock.monotonic() - self._sim_started
            step = max(1, self.config.block_time_seconds)
            return self.config.simulate_from + int(elapsed // step) * step

        script = self.config.timestamps
        while self._script_index < len(script):
            entry = script[self._script_index]
            self._script_index += 1
            if isinstance(entry, BaseException):
                if isinstance(entry, TransientUpstreamError):
                    self._on_error(entry)
                raise entry
            self._last_timestamp = entry
            return entry

        if self._last_timestamp is None:
            raise TransientUpstreamError(
                "No timestamp scripted",
                connection_name=self.name,
                method="get_latest_block",
            )
        return self._last_timestamp

    @property
    def timestamp_queries(self) -> int:
        """Number of timestamp queries served or failed so far."""
        return sum(1 for c in self.calls if c.method == "get_latest_block")

    # ─────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────

    async def call_read(self, actor: Optional[str], query: ReadQuery) -> str:
        self._record("call_read", actor, {"to": query.to, "data": query.data})
        self._check_available("call_read")

        selector = query.data[:10].lower()
        argument = _address_arg(query.data, 0)

        if argument and argument in self._failing_reads:
            error = TransientUpstreamError(
                f"Read failed for {argument}",
                connection_name=self.name,
                method="call_read",
            )
            self._on_error(error)
            raise error

        if selector == SELECTOR_BALANCE_OF:
            value = self._balances.get(argument, self.config.default_balance)
        elif selector == SELECTOR_ALLOWANCE:
            value = self._allowances.get(argument, self.config.default_allowance)
        elif selector == SELECTOR_DECIMALS:
            value = self.config.decimals
        elif selector == SELECTOR_TOTAL_ASSETS:
            value = self._total_assets
        elif selector == SELECTOR_MAX_DEPOSIT:
            value = self.config.max_deposit
        else:
            value = None
            if selector in _VAULT_STATUS_FIELDS:
                value = getattr(self.config, _VAULT_STATUS_FIELDS[selector])
        if value is None:
            raise RejectedOperationError(
                f"Read reverted: unsupported selector {selector}",
                connection_name=self.name,
                method="call_read",
            )

        self._on_success()
        return "0x" + format(value, "064x")

    # ─────────────────────────────────────────────────────────────
    # Writes
    # ─────────────────────────────────────────────────────────────

    async def call_write(self, actor: str, request: WriteRequest) -> OperationHandle:
        key = actor.lower()
        self._record("call_write", actor, {
            "to": request.to,
            "data": request.data,
            "gas_limit": request.gas_limit,
            "description": request.description,
        })
        self._check_available("call_write")

        if self.config.write_latency_seconds > 0:
            await asyncio.sleep(self.config.write_latency_seconds)

        if key in self._failing_actors or self._write_failures.get(key, 0) > 0:
            if self._write_failures.get(key, 0) > 0:
                self._write_failures[key] -= 1
            logger.debug(f"[{self.name}] Rejecting scripted write for {actor}")
            error = RejectedOperationError(
                "execution reverted",
                code=3,
                connection_name=self.name,
                method="call_write",
            )
            self._on_error(error)
            raise error

        tx_hash = "0x" + format(next(self._tx_counter), "064x")
        self._pending[tx_hash] = key
        if key not in self._revert_actors:
            self._apply_write(key, request)

        self._on_success()
        return OperationHandle(
            tx_hash=tx_hash,
            connection_name=self.name,
            submitted_at=datetime.now(timezone.utc),
        )

    async def await_settlement(self, handle: OperationHandle) -> Settlement:
        self._record("await_settlement", payload={"tx_hash": handle.tx_hash})
        self._check_available("await_settlement")

        actor = self._pending.pop(handle.tx_hash, None)
        if actor is None:
            raise RejectedOperationError(
                f"Unknown operation {handle.tx_hash}",
                connection_name=self.name,
                method="await_settlement",
            )

        success = actor not in self._revert_actors
        return Settlement(
            success=success,
            tx_hash=handle.tx_hash,
            block_number=self._block_number,
            gas_used=21_000,
            detail="confirmed" if success else "reverted (status=0x0)",
        )

    def _apply_write(self, actor: str, request: WriteRequest) -> None:
        """Reflect an accepted write in the in-memory state."""
        selector = request.data[:10].lower()
        if selector == SELECTOR_APPROVE:
            self._allowances[actor] = _uint_arg(request.data, 1)
        elif selector == SELECTOR_DEPOSIT:
            amount = _uint_arg(request.data, 0)
            balance = self._balances.get(actor, self.config.default_balance)
            self._balances[actor] = max(0, balance - amount)
            self._total_assets += amount

    # ─────────────────────────────────────────────────────────────
    # Introspection
    # ─────────────────────────────────────────────────────────────

    def writes_for(self, actor: str) -> List[RecordedCall]:
        """All write attempts recorded for an actor."""
        return [
            c for c in self.calls
            if c.method == "call_write" and c.actor and c.actor.lower() == actor.lower()
        ]

    def _record(self, method: str, actor: Optional[str] = None, payload: Optional[Dict[str, Any]] = None) -> None:
        self._on_request()
        self.calls.append(RecordedCall(method=method, actor=actor, payload=payload or {}))

    def _check_available(self, method: str) -> None:
        if self.config.fail_all:
            error = TransientUpstreamError(
                "Upstream unavailable",
                connection_name=self.name,
                method=method,
            )
            self._on_error(error)
            raise error

    async def close(self) -> None:
        self.closed = True


# ============================================================
# CALLDATA HELPERS
# ============================================================

def _word(data: str, index: int) -> str:
    start = 10 + index * 64
    return data[start:start + 64]


def _address_arg(data: str, index: int) -> str:
    word = _word(data, index)
    if len(word) < 64:
        return ""
    return ("0x" + word[24:]).lower()


def _uint_arg(data: str, index: int) -> int:
    word = _word(data, index)
    return int(word, 16) if word else 0
