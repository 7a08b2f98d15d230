"""
JSON-RPC Connection Tests.

============================================================
PURPOSE
============================================================
Tests for JsonRpcConnection with the HTTP session stubbed.

TEST CATEGORIES:
- Request shape: methods, params, fee fields
- Local signing: nonce, chain id, raw submission
- Error mapping: HTTP status, transport errors, JSON-RPC errors
- Settlement polling
- Masking: endpoint URLs never appear raw

============================================================
"""

import pytest
import aiohttp
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock

from eth_account import Account

from chain_rpc.logging_utils import mask_url, mask_value, short_address
from chain_rpc.models import GasFees, OperationHandle, ReadQuery, WriteRequest
from chain_rpc.providers.jsonrpc import JsonRpcConnection
from chain_rpc.signer import LocalSigner
from core.exceptions import RejectedOperationError, TransientUpstreamError


URL = "https://rpc.example.org/v2/secret-api-key"
ALICE = "0x" + "1" * 40
VAULT = "0x" + "b" * 40
KEY = "0x" + "4c" * 32


# ============================================================
# FAKE HTTP SESSION
# ============================================================

class FakeResponse:
    """Minimal aiohttp response stand-in."""

    def __init__(self, status: int = 200, body: Any = None, error: Optional[Exception] = None):
        self.status = status
        self._body = body
        self._error = error

    async def json(self, content_type=None):
        if self._error is not None:
            raise self._error
        return self._body

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False


class FakeSession:
    """Replays queued replies and records every posted payload."""

    def __init__(self, replies: List[Any]):
        self._replies = list(replies)
        self.requests: List[Dict[str, Any]] = []
        self.closed = False

    def post(self, url: str, json: Dict[str, Any]):
        self.requests.append(json)
        reply = self._replies.pop(0) if len(self._replies) > 1 else self._replies[0]
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def close(self):
        self.closed = True


def ok(result: Any, status: int = 200) -> FakeResponse:
    return FakeResponse(status, {"jsonrpc": "2.0", "id": 1, "result": result})


def make_connection(replies: List[Any], **kwargs) -> JsonRpcConnection:
    session = FakeSession(replies)
    conn = JsonRpcConnection("primary", URL, session=session, sleep=AsyncMock(), **kwargs)
    return conn


# ============================================================
# REQUEST TESTS
# ============================================================

class TestRequests:
    """Tests for request construction and result parsing."""

    @pytest.mark.asyncio
    async def test_latest_block(self):
        """Test the block header is parsed from hex."""
        conn = make_connection([ok({"number": "0x10", "timestamp": "0x3e8", "hash": "0xabc"})])

        block = await conn.get_latest_block()

        assert block.number == 16
        assert block.timestamp == 1000
        assert block.hash == "0xabc"
        request = conn._session.requests[0]
        assert request["method"] == "eth_getBlockByNumber"
        assert request["params"] == ["latest", False]

    @pytest.mark.asyncio
    async def test_current_timestamp_uses_latest_block(self):
        """Test the default timestamp query."""
        conn = make_connection([ok({"number": "0x1", "timestamp": "0x64"})])

        assert await conn.get_current_timestamp() == 100

    @pytest.mark.asyncio
    async def test_call_read_includes_from(self):
        """Test eth_call carries the actor as sender."""
        conn = make_connection([ok("0x" + "0" * 63 + "5")])

        result = await conn.call_read(ALICE, ReadQuery(to=VAULT, data="0x01e1d114"))

        assert result.endswith("5")
        request = conn._session.requests[0]
        assert request["method"] == "eth_call"
        assert request["params"][0] == {"to": VAULT, "data": "0x01e1d114", "from": ALICE}
        assert request["params"][1] == "latest"

    @pytest.mark.asyncio
    async def test_call_write_sends_fee_fields(self):
        """Test without a signer eth_sendTransaction carries gas limit and fees."""
        conn = make_connection(
            [ok("0xfeed")],
            gas_fees=GasFees(max_fee_per_gas_wei=100, max_priority_fee_per_gas_wei=2),
        )

        handle = await conn.call_write(ALICE, WriteRequest(to=VAULT, data="0x6e553f65", gas_limit=300_000))

        assert handle.tx_hash == "0xfeed"
        assert handle.connection_name == "primary"
        tx = conn._session.requests[0]["params"][0]
        assert tx["from"] == ALICE
        assert tx["gas"] == hex(300_000)
        assert tx["maxFeePerGas"] == "0x64"
        assert tx["maxPriorityFeePerGas"] == "0x2"
        assert "gasPrice" not in tx

    @pytest.mark.asyncio
    async def test_request_ids_increase(self):
        """Test every request has its own id."""
        conn = make_connection([ok("0x1")])

        await conn.call_read(None, ReadQuery(to=VAULT, data="0x"))
        await conn.call_read(None, ReadQuery(to=VAULT, data="0x"))

        ids = [r["id"] for r in conn._session.requests]
        assert ids[0] != ids[1]
        assert "from" not in conn._session.requests[0]["params"][0]


# ============================================================
# LOCAL SIGNING TESTS
# ============================================================

class TestLocalSigning:
    """Tests for writes signed in-process and sent raw."""

    def _signed_connection(self, replies: List[Any], **kwargs) -> JsonRpcConnection:
        return make_connection(replies, signer=LocalSigner([KEY]), **kwargs)

    @pytest.mark.asyncio
    async def test_raw_transaction_signed_by_actor_key(self):
        """Test the raw transaction recovers to the actor's address."""
        sender = Account.from_key(KEY).address
        conn = self._signed_connection(
            [ok("0x7"), ok("0x1"), ok("0xfeed")],
            gas_fees=GasFees(gas_price_wei=5_000_000_000),
        )

        handle = await conn.call_write(sender, WriteRequest(to=VAULT, data="0x6e553f65", gas_limit=300_000))

        assert handle.tx_hash == "0xfeed"
        requests = conn._session.requests
        assert [r["method"] for r in requests] == [
            "eth_getTransactionCount",
            "eth_chainId",
            "eth_sendRawTransaction",
        ]
        assert requests[0]["params"] == [sender, "pending"]
        raw = requests[2]["params"][0]
        assert raw.startswith("0x")
        assert Account.recover_transaction(raw) == sender

    @pytest.mark.asyncio
    async def test_eip1559_fees_signed(self):
        """Test EIP-1559 fees produce a typed transaction from the same sender."""
        sender = Account.from_key(KEY).address
        conn = self._signed_connection(
            [ok("0x0"), ok("0x1"), ok("0xfeed")],
            gas_fees=GasFees(max_fee_per_gas_wei=100, max_priority_fee_per_gas_wei=2),
        )

        await conn.call_write(sender, WriteRequest(to=VAULT, data="0x6e553f65", gas_limit=300_000))

        raw = conn._session.requests[2]["params"][0]
        assert raw.startswith("0x02")
        assert Account.recover_transaction(raw) == sender

    @pytest.mark.asyncio
    async def test_gas_price_fetched_and_chain_id_cached(self):
        """Test node gas price is used when unset and the chain id is read once."""
        sender = Account.from_key(KEY).address
        conn = self._signed_connection([
            ok("0x0"), ok("0x1"), ok("0x3b9aca00"), ok("0xaa"),
            ok("0x1"), ok("0x3b9aca00"), ok("0xbb"),
        ])
        request = WriteRequest(to=VAULT, data="0x6e553f65", gas_limit=300_000)

        first = await conn.call_write(sender, request)
        second = await conn.call_write(sender, request)

        assert (first.tx_hash, second.tx_hash) == ("0xaa", "0xbb")
        methods = [r["method"] for r in conn._session.requests]
        assert methods.count("eth_chainId") == 1
        assert methods.count("eth_gasPrice") == 2
        assert "eth_sendTransaction" not in methods

    @pytest.mark.asyncio
    async def test_actor_without_key_rejected(self):
        """Test writing for an address with no loaded key is a rejection."""
        conn = self._signed_connection([ok("0x1")])

        with pytest.raises(RejectedOperationError, match="No signing key"):
            await conn.call_write(ALICE, WriteRequest(to=VAULT, data="0x6e553f65", gas_limit=300_000))
        assert "eth_sendRawTransaction" not in [r["method"] for r in conn._session.requests]

    @pytest.mark.asyncio
    async def test_malformed_nonce_is_transient(self):
        """Test an unreadable nonce reply is a transient failure."""
        sender = Account.from_key(KEY).address
        conn = self._signed_connection([ok("pending")])

        with pytest.raises(TransientUpstreamError, match="malformed quantity"):
            await conn.call_write(sender, WriteRequest(to=VAULT, data="0x6e553f65", gas_limit=300_000))

    def test_describe_reports_signer_mode(self):
        """Test describe names the signing mode without key material."""
        local = self._signed_connection([ok("0x1")])
        node = make_connection([ok("0x1")])

        assert local.describe()["signer"] == "local"
        assert node.describe()["signer"] == "node"
        assert KEY[2:] not in str(local.describe())


# ============================================================
# ERROR MAPPING TESTS
# ============================================================

class TestErrorMapping:
    """Tests for mapping failures to the upstream error kinds."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [429, 500, 502, 503])
    async def test_overloaded_is_transient(self, status):
        """Test 429 and 5xx are transient."""
        conn = make_connection([FakeResponse(status, {})])

        with pytest.raises(TransientUpstreamError):
            await conn.get_latest_block()

    @pytest.mark.asyncio
    async def test_client_error_status_is_rejected(self):
        """Test other 4xx statuses are rejections."""
        conn = make_connection([FakeResponse(403, {})])

        with pytest.raises(RejectedOperationError) as exc_info:
            await conn.get_latest_block()
        assert exc_info.value.code == 403

    @pytest.mark.asyncio
    async def test_connection_error_is_transient(self):
        """Test transport errors are transient."""
        conn = make_connection([aiohttp.ClientConnectionError("refused")])

        with pytest.raises(TransientUpstreamError, match="connection error"):
            await conn.get_latest_block()

    @pytest.mark.asyncio
    async def test_malformed_json_is_transient(self):
        """Test undecodable bodies are transient."""
        conn = make_connection([FakeResponse(200, error=ValueError("bad json"))])

        with pytest.raises(TransientUpstreamError, match="malformed reply"):
            await conn.get_latest_block()

    @pytest.mark.asyncio
    async def test_rpc_error_object_is_rejected(self):
        """Test a JSON-RPC error object is a rejection with its code."""
        conn = make_connection([FakeResponse(200, {
            "jsonrpc": "2.0", "id": 1,
            "error": {"code": 3, "message": "execution reverted"},
        })])

        with pytest.raises(RejectedOperationError, match="execution reverted") as exc_info:
            await conn.call_write(ALICE, WriteRequest(to=VAULT, data="0x", gas_limit=1))
        assert exc_info.value.code == 3

    @pytest.mark.asyncio
    async def test_missing_result_is_transient(self):
        """Test replies with neither result nor error are transient."""
        conn = make_connection([FakeResponse(200, {"jsonrpc": "2.0", "id": 1})])

        with pytest.raises(TransientUpstreamError):
            await conn.call_read(None, ReadQuery(to=VAULT, data="0x"))

    @pytest.mark.asyncio
    async def test_null_block_is_transient(self):
        """Test a null latest block is transient."""
        conn = make_connection([ok(None)])

        with pytest.raises(TransientUpstreamError, match="Latest block unavailable"):
            await conn.get_latest_block()

    @pytest.mark.asyncio
    async def test_errors_never_contain_raw_url(self):
        """Test the API key in the URL is not leaked into messages."""
        conn = make_connection([FakeResponse(503, {})])

        with pytest.raises(TransientUpstreamError) as exc_info:
            await conn.get_latest_block()
        assert "secret-api-key" not in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_failures_recorded_in_health(self):
        """Test errors are counted against the connection."""
        conn = make_connection([FakeResponse(503, {})])

        for _ in range(3):
            with pytest.raises(TransientUpstreamError):
                await conn.get_latest_block()

        health = conn.get_health()
        assert health.consecutive_failures == 3
        assert not health.is_healthy()


# ============================================================
# SETTLEMENT TESTS
# ============================================================

class TestSettlement:
    """Tests for receipt polling."""

    def _handle(self) -> OperationHandle:
        return OperationHandle(tx_hash="0xfeed", connection_name="primary")

    @pytest.mark.asyncio
    async def test_success_after_pending(self):
        """Test polling continues until the receipt appears."""
        conn = make_connection([
            ok(None),
            ok(None),
            ok({"status": "0x1", "blockNumber": "0x20", "gasUsed": "0x5208"}),
        ])

        settlement = await conn.await_settlement(self._handle())

        assert settlement.success
        assert settlement.block_number == 32
        assert settlement.gas_used == 21000
        assert conn._sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_reverted_receipt(self):
        """Test status 0x0 is a failed settlement."""
        conn = make_connection([ok({"status": "0x0", "blockNumber": "0x20"})])

        settlement = await conn.await_settlement(self._handle())

        assert not settlement.success
        assert settlement.detail == "reverted (status=0x0)"

    @pytest.mark.asyncio
    async def test_malformed_receipt_fields_default_to_none(self):
        """Test unreadable block and gas fields keep the settled outcome."""
        conn = make_connection([ok({"status": "0x1", "blockNumber": "pending", "gasUsed": 21000})])

        settlement = await conn.await_settlement(self._handle())

        assert settlement.success
        assert settlement.block_number is None
        assert settlement.gas_used is None
        assert len(conn._session.requests) == 1

    @pytest.mark.asyncio
    async def test_transient_poll_errors_tolerated(self):
        """Test a failing poll does not abort the wait."""
        conn = make_connection([
            FakeResponse(503, {}),
            ok({"status": "0x1"}),
        ])

        settlement = await conn.await_settlement(self._handle())

        assert settlement.success

    @pytest.mark.asyncio
    async def test_timeout_is_transient(self):
        """Test an unsettled operation times out transiently."""
        conn = make_connection([ok(None)], settlement_timeout=3, settlement_poll=1)

        with pytest.raises(TransientUpstreamError, match="not settled"):
            await conn.await_settlement(self._handle())
        assert conn._sleep.await_count == 3


class TestLifecycle:
    """Tests for session ownership."""

    @pytest.mark.asyncio
    async def test_injected_session_not_closed(self):
        """Test a caller-provided session is left open."""
        conn = make_connection([ok("0x1")])

        await conn.close()

        assert not conn._session.closed

    def test_describe_masks_url(self):
        """Test describe never exposes the full URL."""
        conn = make_connection([ok("0x1")])

        info = conn.describe()

        assert info["url"] == "https://rpc.example.org/***"
        assert info["name"] == "primary"


# ============================================================
# MASKING TESTS
# ============================================================

class TestMasking:
    """Tests for log masking helpers."""

    def test_mask_url_keeps_host(self):
        """Test only scheme and host survive."""
        assert mask_url(URL) == "https://rpc.example.org/***"
        assert mask_url("http://localhost:8545") == "http://localhost:8545"

    def test_mask_value(self):
        """Test values keep only a short prefix."""
        masked = mask_value("supersecretvalue")

        assert masked.startswith("supe")
        assert "secret" not in masked

    def test_short_address(self):
        """Test address shortening."""
        assert short_address("0x1234567890abcdef1234567890abcdef12345678") == "0x1234...5678"
