"""
JSON-RPC Upstream Connection - Ethereum-compatible node over HTTP.

Talks the standard node API:
- eth_getBlockByNumber("latest") for the external clock
- eth_call for reads
- writes signed locally by a LocalSigner and sent with
  eth_sendRawTransaction (nonce from eth_getTransactionCount "pending",
  chain id from eth_chainId, gas price from eth_gasPrice when not set)
- eth_sendTransaction for writes when no signer is given (node-signer
  mode: the node holds the actor keys)
- eth_getTransactionReceipt polling for settlement

Error mapping:
- HTTP 5xx / 429, connection errors, timeouts, malformed replies
  -> TransientUpstreamError
- JSON-RPC error object, other HTTP 4xx -> RejectedOperationError
"""

import asyncio
import itertools
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

import aiohttp
from eth_utils import to_checksum_address

from chain_rpc.base import BaseConnection
from chain_rpc.logging_utils import mask_url, short_address
from chain_rpc.models import (
    BlockInfo,
    GasFees,
    OperationHandle,
    ReadQuery,
    Settlement,
    WriteRequest,
)
from chain_rpc.signer import LocalSigner
from core.constants import (
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    DEFAULT_SETTLEMENT_POLL_SECONDS,
    DEFAULT_SETTLEMENT_TIMEOUT_SECONDS,
)
from core.exceptions import (
    RejectedOperationError,
    TransientUpstreamError,
    UpstreamError,
)


logger = logging.getLogger(__name__)


class JsonRpcConnection(BaseConnection):
    """
    Upstream connection to an Ethereum JSON-RPC endpoint.

    The aiohttp session is created lazily on first use and closed by
    close() / the async context manager.
    """

    RECEIPT_SUCCESS = "0x1"

    def __init__(
        self,
        name: str,
        url: str,
        gas_fees: Optional[GasFees] = None,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
        settlement_timeout: float = DEFAULT_SETTLEMENT_TIMEOUT_SECONDS,
        settlement_poll: float = DEFAULT_SETTLEMENT_POLL_SECONDS,
        signer: Optional[LocalSigner] = None,
        session: Optional[aiohttp.ClientSession] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        super().__init__(name)
        self._url = url
        self._gas_fees = gas_fees or GasFees()
        self._signer = signer
        self._chain_id: Optional[int] = None
        self._timeout = request_timeout
        self._settlement_timeout = settlement_timeout
        self._settlement_poll = settlement_poll
        self._session = session
        self._owns_session = session is None
        self._sleep = sleep
        self._ids = itertools.count(1)

    @property
    def url(self) -> str:
        return self._url

    @property
    def signs_locally(self) -> bool:
        return self._signer is not None

    # ─────────────────────────────────────────────────────────────
    # Connection API
    # ─────────────────────────────────────────────────────────────

    async def get_latest_block(self) -> BlockInfo:
        result = await self._rpc("eth_getBlockByNumber", ["latest", False])
        if not isinstance(result, dict):
            raise self._fail(TransientUpstreamError(
                "Latest block unavailable",
                connection_name=self.name,
                method="eth_getBlockByNumber",
            ))
        try:
            return BlockInfo(
                number=int(result["number"], 16),
                timestamp=int(result["timestamp"], 16),
                hash=result.get("hash"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise self._fail(TransientUpstreamError(
                f"Malformed block header: {e}",
                connection_name=self.name,
                method="eth_getBlockByNumber",
                cause=e,
            ))

    async def call_read(self, actor: Optional[str], query: ReadQuery) -> str:
        tx: dict[str, str] = {"to": query.to, "data": query.data}
        if actor:
            tx["from"] = actor
        result = await self._rpc("eth_call", [tx, "latest"])
        if not isinstance(result, str):
            raise self._fail(TransientUpstreamError(
                f"Unexpected eth_call result type {type(result).__name__}",
                connection_name=self.name,
                method="eth_call",
            ))
        return result

    async def call_write(self, actor: str, request: WriteRequest) -> OperationHandle:
        """
        Submit a write for an actor.

        With a signer the transaction is signed locally and sent with
        eth_sendRawTransaction. Without one the node signs it
        (eth_sendTransaction), which only works against a node that
        holds the actor's key.
        """
        if self._signer is not None:
            method = "eth_sendRawTransaction"
            params: list[Any] = [await self._sign(actor, request)]
        else:
            method = "eth_sendTransaction"
            tx: dict[str, str] = {
                "from": actor,
                "to": request.to,
                "data": request.data,
                "gas": hex(request.gas_limit),
                "value": hex(request.value),
            }
            tx.update(self._gas_fees.to_tx_fields())
            params = [tx]

        tx_hash = await self._rpc(method, params)
        if not isinstance(tx_hash, str):
            raise self._fail(TransientUpstreamError(
                f"{method} returned no hash",
                connection_name=self.name,
                method=method,
            ))

        logger.debug(
            f"[{self.name}] Submitted {request.description or 'write'} "
            f"for {short_address(actor)}: {tx_hash}"
        )
        return OperationHandle(
            tx_hash=tx_hash,
            connection_name=self.name,
            submitted_at=datetime.now(timezone.utc),
        )

    async def _sign(self, actor: str, request: WriteRequest) -> str:
        """Build and sign the transaction; nonce and chain id come from this upstream."""
        tx: dict[str, Any] = {
            "to": to_checksum_address(request.to),
            "data": request.data,
            "gas": request.gas_limit,
            "value": request.value,
            "nonce": await self._quantity("eth_getTransactionCount", [actor, "pending"]),
            "chainId": await self._get_chain_id(),
        }
        fees = self._gas_fees
        if fees.is_eip1559:
            tx["maxFeePerGas"] = fees.max_fee_per_gas_wei
            tx["maxPriorityFeePerGas"] = (
                fees.max_priority_fee_per_gas_wei
                if fees.max_priority_fee_per_gas_wei is not None
                else fees.max_fee_per_gas_wei
            )
        elif fees.gas_price_wei is not None:
            tx["gasPrice"] = fees.gas_price_wei
        else:
            tx["gasPrice"] = await self._quantity("eth_gasPrice", [])
        return self._signer.sign(actor, tx)

    async def _get_chain_id(self) -> int:
        if self._chain_id is None:
            self._chain_id = await self._quantity("eth_chainId", [])
        return self._chain_id

    async def _quantity(self, method: str, params: list[Any]) -> int:
        """Call a method whose result is a hex quantity."""
        result = await self._rpc(method, params)
        try:
            return int(result, 16)
        except (TypeError, ValueError) as e:
            raise self._fail(TransientUpstreamError(
                f"{method}: malformed quantity {result!r}",
                connection_name=self.name,
                method=method,
                cause=e,
            ))

    async def await_settlement(self, handle: OperationHandle) -> Settlement:
        """
        Poll for the receipt until it appears or the settlement timeout passes.

        Transient failures while polling are tolerated; the operation is
        already submitted and resubmitting it would not help.
        """
        waited = 0.0
        while waited < self._settlement_timeout:
            try:
                receipt = await self._rpc("eth_getTransactionReceipt", [handle.tx_hash])
            except TransientUpstreamError as e:
                logger.warning(f"[{self.name}] Receipt poll failed for {handle.tx_hash}: {e}")
                receipt = None

            if isinstance(receipt, dict) and receipt:
                return self._settlement_from_receipt(handle, receipt)

            await self._sleep(self._settlement_poll)
            waited += self._settlement_poll

        raise self._fail(TransientUpstreamError(
            f"Operation {handle.tx_hash} not settled within {self._settlement_timeout:.0f}s",
            connection_name=self.name,
            method="eth_getTransactionReceipt",
        ))

    def _settlement_from_receipt(
        self,
        handle: OperationHandle,
        receipt: dict[str, Any],
    ) -> Settlement:
        """Status decides the outcome; unreadable block or gas fields become None."""
        status = receipt.get("status")
        success = status == self.RECEIPT_SUCCESS
        return Settlement(
            success=success,
            tx_hash=handle.tx_hash,
            block_number=_hex_or_none(receipt.get("blockNumber")),
            gas_used=_hex_or_none(receipt.get("gasUsed")),
            detail="confirmed" if success else f"reverted (status={status})",
        )

    # ─────────────────────────────────────────────────────────────
    # HTTP / JSON-RPC Helpers
    # ─────────────────────────────────────────────────────────────

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout),
                headers={"Content-Type": "application/json", "Accept": "application/json"},
            )
            self._owns_session = True
        return self._session

    async def _rpc(self, method: str, params: list[Any]) -> Any:
        """Make one JSON-RPC call and return its result."""
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }
        started = self._on_request()
        body = await self._post(method, payload)

        error = body.get("error")
        if error:
            if isinstance(error, dict):
                message = error.get("message") or "JSON-RPC error"
                code = error.get("code")
            else:
                message, code = str(error), None
            raise self._fail(RejectedOperationError(
                f"{method} rejected: {message}",
                code=code,
                connection_name=self.name,
                method=method,
            ))

        if "result" not in body:
            raise self._fail(TransientUpstreamError(
                f"{method}: reply carries neither result nor error",
                connection_name=self.name,
                method=method,
            ))

        self._on_success(started)
        return body["result"]

    async def _post(self, method: str, payload: dict[str, Any]) -> dict[str, Any]:
        """POST a payload and decode the JSON reply, mapping transport errors."""
        session = await self._get_session()
        try:
            async with session.post(self._url, json=payload) as response:
                if response.status == 429 or response.status >= 500:
                    raise self._fail(TransientUpstreamError(
                        f"{method}: HTTP {response.status} from {mask_url(self._url)}",
                        connection_name=self.name,
                        method=method,
                        context={"status": response.status},
                    ))
                if response.status >= 400:
                    raise self._fail(RejectedOperationError(
                        f"{method}: HTTP {response.status} from {mask_url(self._url)}",
                        code=response.status,
                        connection_name=self.name,
                        method=method,
                    ))
                body = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise self._fail(TransientUpstreamError(
                f"{method}: connection error: {e or type(e).__name__}",
                connection_name=self.name,
                method=method,
                cause=e,
            ))
        except ValueError as e:
            raise self._fail(TransientUpstreamError(
                f"{method}: malformed reply: {e}",
                connection_name=self.name,
                method=method,
                cause=e,
            ))

        if not isinstance(body, dict):
            raise self._fail(TransientUpstreamError(
                f"{method}: malformed reply",
                connection_name=self.name,
                method=method,
            ))
        return body

    def _fail(self, error: UpstreamError) -> UpstreamError:
        """Record an error against health and hand it back for raising."""
        self._on_error(error)
        return error

    # ─────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────

    async def close(self) -> None:
        """Close the HTTP session if this connection created it."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    def describe(self) -> dict[str, Any]:
        info = super().describe()
        info["url"] = mask_url(self._url)
        info["signer"] = "local" if self._signer is not None else "node"
        return info


def _hex_or_none(value: Any) -> Optional[int]:
    if not value:
        return None
    try:
        return int(value, 16)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring malformed receipt quantity {value!r}")
        return None
