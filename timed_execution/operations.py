"""
Timed Execution - Per-Actor Operations.

============================================================
PURPOSE
============================================================
The operations the engine runs for each actor, behind one interface.

ActorOperations is what the engine consumes. VaultDepositOperations
implements it for an ERC-20 token deposited into an ERC-4626 vault:

    read_balance       token.balanceOf(actor)
    read_allowance     token.allowance(actor, vault)
    authorize          token.approve(vault, amount)
    execute            vault.deposit(amount, actor)
    read_target_state  vault.totalAssets(), vault.maxDeposit(actor), and the
                       vault status getters (operationalMode, depositStart,
                       depositEnd, maxTotalAssets) where the vault has them

WRITES:
    Submit, then await settlement. A failed settlement raises
    RejectedOperationError so the Retry Executor resubmits.

============================================================
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

from chain_rpc.base import BaseConnection
from chain_rpc.models import ReadQuery, Settlement, WriteRequest
from core.constants import (
    DEFAULT_AUTHORIZE_GAS_LIMIT,
    DEFAULT_EXECUTE_GAS_LIMIT,
    SELECTOR_ALLOWANCE,
    SELECTOR_APPROVE,
    SELECTOR_BALANCE_OF,
    SELECTOR_DEPOSIT,
    SELECTOR_DEPOSIT_END,
    SELECTOR_DEPOSIT_START,
    SELECTOR_MAX_DEPOSIT,
    SELECTOR_MAX_TOTAL_ASSETS,
    SELECTOR_OPERATIONAL_MODE,
    SELECTOR_TOTAL_ASSETS,
)
from core.exceptions import RejectedOperationError, TransientUpstreamError

from .types import Actor


logger = logging.getLogger(__name__)

# Vault status getters read alongside totalAssets, as (state key, selector)
VAULT_STATUS_READS = (
    ("operational_mode", SELECTOR_OPERATIONAL_MODE),
    ("deposit_start", SELECTOR_DEPOSIT_START),
    ("deposit_end", SELECTOR_DEPOSIT_END),
    ("max_total_assets", SELECTOR_MAX_TOTAL_ASSETS),
)


# ============================================================
# RESULT TYPE
# ============================================================

@dataclass(frozen=True)
class OperationResult:
    """A settled, successful write."""

    tx_hash: str
    """Transaction hash of the settled write."""

    settlement: Optional[Settlement] = None
    """Settlement details, if the connection reported them."""

    connection_name: str = ""
    """Connection that carried the write."""

    @property
    def result_handle(self) -> str:
        return self.tx_hash


# ============================================================
# ABI WORD ENCODING
# ============================================================

def encode_uint(value: int) -> str:
    """Encode an unsigned integer as one 32-byte ABI word (hex, no prefix)."""
    if value < 0 or value >= 2 ** 256:
        raise ValueError(f"uint256 out of range: {value}")
    return format(value, "064x")


def encode_address(address: str) -> str:
    """Encode a 0x address as one left-padded 32-byte ABI word."""
    raw = address[2:] if address.startswith("0x") else address
    if len(raw) != 40:
        raise ValueError(f"Invalid address: {address}")
    return raw.lower().rjust(64, "0")


def decode_uint(data: str) -> int:
    """Decode the first ABI word of return data."""
    raw = data[2:] if data.startswith("0x") else data
    if not raw:
        raise TransientUpstreamError("Empty return data (no contract at address?)")
    try:
        return int(raw[:64], 16)
    except ValueError as e:
        raise TransientUpstreamError(f"Malformed return data {data[:20]}...", cause=e)


# ============================================================
# INTERFACE
# ============================================================

class ActorOperations(ABC):
    """
    Per-actor reads and writes the engine runs.

    Every method receives the connection to use. Callers look it up
    through the Upstream Selector for each attempt.
    """

    @abstractmethod
    async def read_balance(self, connection: BaseConnection, actor: Actor) -> int:
        pass

    @abstractmethod
    async def read_allowance(self, connection: BaseConnection, actor: Actor) -> int:
        pass

    @abstractmethod
    async def authorize(self, connection: BaseConnection, actor: Actor) -> OperationResult:
        pass

    @abstractmethod
    async def execute(self, connection: BaseConnection, actor: Actor) -> OperationResult:
        pass

    @abstractmethod
    async def read_target_state(
        self,
        connection: BaseConnection,
        actor: Optional[Actor] = None,
    ) -> Dict[str, Any]:
        pass


# ============================================================
# VAULT DEPOSIT
# ============================================================

class VaultDepositOperations(ActorOperations):
    """ERC-20 approve + ERC-4626 deposit of a fixed amount per actor."""

    def __init__(
        self,
        token_address: str,
        vault_address: str,
        amount: int,
        authorize_gas_limit: int = DEFAULT_AUTHORIZE_GAS_LIMIT,
        execute_gas_limit: int = DEFAULT_EXECUTE_GAS_LIMIT,
    ) -> None:
        self.token_address = token_address
        self.vault_address = vault_address
        self.amount = amount
        self.authorize_gas_limit = authorize_gas_limit
        self.execute_gas_limit = execute_gas_limit

    # ------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------

    async def read_balance(self, connection: BaseConnection, actor: Actor) -> int:
        query = ReadQuery(
            to=self.token_address,
            data=SELECTOR_BALANCE_OF + encode_address(actor.identifier),
            description="balanceOf",
        )
        return decode_uint(await connection.call_read(actor.identifier, query))

    async def read_allowance(self, connection: BaseConnection, actor: Actor) -> int:
        query = ReadQuery(
            to=self.token_address,
            data=(
                SELECTOR_ALLOWANCE
                + encode_address(actor.identifier)
                + encode_address(self.vault_address)
            ),
            description="allowance",
        )
        return decode_uint(await connection.call_read(actor.identifier, query))

    async def read_target_state(
        self,
        connection: BaseConnection,
        actor: Optional[Actor] = None,
    ) -> Dict[str, Any]:
        total_assets = decode_uint(await connection.call_read(None, ReadQuery(
            to=self.vault_address,
            data=SELECTOR_TOTAL_ASSETS,
            description="totalAssets",
        )))

        max_deposit = None
        if actor is not None:
            max_deposit = decode_uint(await connection.call_read(actor.identifier, ReadQuery(
                to=self.vault_address,
                data=SELECTOR_MAX_DEPOSIT + encode_address(actor.identifier),
                description="maxDeposit",
            )))

        state: Dict[str, Any] = {"total_assets": total_assets, "max_deposit": max_deposit}
        for key, selector in VAULT_STATUS_READS:
            state[key] = await self._read_vault_status(connection, selector, key)
        return state

    async def _read_vault_status(
        self,
        connection: BaseConnection,
        selector: str,
        key: str,
    ) -> Optional[int]:
        """Status getter outside ERC-4626; None when the vault does not have it."""
        try:
            return decode_uint(await connection.call_read(None, ReadQuery(
                to=self.vault_address,
                data=selector,
                description=key,
            )))
        except RejectedOperationError as e:
            logger.debug(f"Vault has no {key}: {e}")
            return None

    # ------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------

    async def authorize(self, connection: BaseConnection, actor: Actor) -> OperationResult:
        request = WriteRequest(
            to=self.token_address,
            data=SELECTOR_APPROVE + encode_address(self.vault_address) + encode_uint(self.amount),
            gas_limit=self.authorize_gas_limit,
            description="approve",
        )
        return await self._submit(connection, actor, request)

    async def execute(self, connection: BaseConnection, actor: Actor) -> OperationResult:
        request = WriteRequest(
            to=self.vault_address,
            data=SELECTOR_DEPOSIT + encode_uint(self.amount) + encode_address(actor.identifier),
            gas_limit=self.execute_gas_limit,
            description="deposit",
        )
        return await self._submit(connection, actor, request)

    async def _submit(
        self,
        connection: BaseConnection,
        actor: Actor,
        request: WriteRequest,
    ) -> OperationResult:
        handle = await connection.call_write(actor.identifier, request)
        logger.info(f"[{actor.display_name}] {request.description} submitted: {handle.tx_hash}")

        settlement = await connection.await_settlement(handle)
        if not settlement.success:
            raise RejectedOperationError(
                f"{request.description} {handle.tx_hash} failed: {settlement.detail}",
                connection_name=connection.name,
                method=request.description,
            )

        logger.info(
            f"[{actor.display_name}] {request.description} confirmed"
            + (f" in block {settlement.block_number}" if settlement.block_number else "")
        )
        return OperationResult(
            tx_hash=handle.tx_hash,
            settlement=settlement,
            connection_name=connection.name,
        )
