"""Tests for the JSON-RPC ledger client."""

import json

import httpx
import pytest
from eth_abi import encode as abi_encode
from eth_utils import to_checksum_address

from learn2earn.core.errors import LedgerSubmissionError
from learn2earn.services.ledger import (
    STUDENT_STRUCT_TYPES,
    CircuitState,
    LedgerClient,
    LedgerConfig,
    LedgerRpcError,
    TxStatus,
    encode_call,
)
from tests.conftest import TX_REFERENCE, WALLET

# Well-known development account key; never holds real funds.
TEST_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
CONTRACT = "0x" + "11" * 20
RPC_URL = "http://ledger.test"


def _config(private_key=TEST_PRIVATE_KEY):
    return LedgerConfig(
        rpc_url=RPC_URL,
        contract_address=CONTRACT,
        chain_id=1337,
        private_key=private_key,
        timeout_seconds=1.0,
        gas_limit=100_000,
    )


def _student_result(registered):
    encoded = abi_encode(
        STUDENT_STRUCT_TYPES,
        [to_checksum_address(WALLET), "Ada", "Lovelace", registered, False, b"\x00" * 32],
    )
    return "0x" + encoded.hex()


def _bool_result(value):
    return "0x" + abi_encode(["bool"], [value]).hex()


class FakeNode:
    """Scripted JSON-RPC node recording every call it receives."""

    def __init__(self, results=None):
        self.results = dict(results or {})
        self.calls = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.calls.append((body["method"], body["params"]))
        result = self.results.get(body["method"])
        if callable(result):
            result = result(body["params"])
        if isinstance(result, httpx.Response):
            return result
        if isinstance(result, dict) and "error" in result:
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], **result})
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})

    def methods(self):
        return [method for method, _ in self.calls]


def _client(node, **config_overrides):
    config = _config(**config_overrides)
    return LedgerClient(config, transport=httpx.MockTransport(node))


def _view_router(registered=True, rewarded=False):
    students_selector = encode_call("students(address)", ["address"], [WALLET])[:10]

    def _eth_call(params):
        data = params[0]["data"]
        if data.startswith(students_selector):
            return _student_result(registered)
        return _bool_result(rewarded)

    return _eth_call


@pytest.mark.asyncio
async def test_reads_registration_and_reward_flags():
    node = FakeNode({"eth_call": _view_router(registered=True, rewarded=True)})
    client = _client(node)

    registered = await client.read_registered(WALLET)
    rewarded = await client.read_rewarded(WALLET)

    assert registered.ok and registered.value is True
    assert rewarded.ok and rewarded.value is True
    call = node.calls[0][1][0]
    assert call["to"] == to_checksum_address(CONTRACT)
    await client.close()


@pytest.mark.asyncio
async def test_unregistered_student_reads_false():
    node = FakeNode({"eth_call": _view_router(registered=False)})
    client = _client(node)

    assert await client.is_registered(WALLET) is False
    assert (await client.read_registered(WALLET)).ok is True


@pytest.mark.asyncio
async def test_network_failure_fails_closed():
    def _unreachable(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = LedgerClient(_config(), transport=httpx.MockTransport(_unreachable))

    result = await client.read_registered(WALLET)

    assert result.ok is False
    assert result.or_false() is False
    assert await client.is_rewarded(WALLET) is False
    assert client.get_metrics()["error_counts_by_type"]["network_error"] == 2


@pytest.mark.asyncio
async def test_server_error_fails_closed():
    node = FakeNode({"eth_call": lambda params: httpx.Response(503, text="unavailable")})
    client = _client(node)

    assert await client.is_registered(WALLET) is False


@pytest.mark.asyncio
async def test_rpc_error_fails_closed():
    node = FakeNode({"eth_call": {"error": {"code": -32000, "message": "execution reverted"}}})
    client = _client(node)

    result = await client.read_rewarded(WALLET)

    assert result.ok is False
    assert "execution reverted" in str(result.error)


@pytest.mark.asyncio
async def test_undecodable_result_fails_closed():
    node = FakeNode({"eth_call": "0x"})
    client = _client(node)

    assert (await client.read_rewarded(WALLET)).ok is False
    assert await client.is_registered(WALLET) is False


@pytest.mark.asyncio
async def test_circuit_opens_after_repeated_failures():
    node = FakeNode({"eth_call": lambda params: httpx.Response(502, text="bad gateway")})
    client = _client(node)

    for _ in range(5):
        await client.is_registered(WALLET)
    assert client.get_metrics()["circuit_breaker"] == CircuitState.OPEN.value

    result = await client.read_registered(WALLET)

    assert result.ok is False
    assert len(node.calls) == 5


@pytest.mark.asyncio
async def test_submit_grade_transaction_broadcasts_signed_call():
    node = FakeNode({
        "eth_getTransactionCount": "0x3",
        "eth_gasPrice": "0x3b9aca00",
        "eth_sendRawTransaction": TX_REFERENCE,
    })
    client = _client(node)

    transaction = await client.submit_grade_transaction(WALLET, approved=True)

    assert transaction.tx_reference == TX_REFERENCE
    assert node.methods() == [
        "eth_getTransactionCount",
        "eth_gasPrice",
        "eth_sendRawTransaction",
    ]
    raw = node.calls[-1][1][0]
    assert raw.startswith("0x") and len(raw) > 2


@pytest.mark.asyncio
async def test_submit_queries_chain_id_when_not_configured():
    node = FakeNode({
        "eth_getTransactionCount": "0x0",
        "eth_gasPrice": "0x1",
        "eth_chainId": "0x539",
        "eth_sendRawTransaction": TX_REFERENCE,
    })
    config = LedgerConfig(
        rpc_url=RPC_URL,
        contract_address=CONTRACT,
        chain_id=None,
        private_key=TEST_PRIVATE_KEY,
        timeout_seconds=1.0,
        gas_limit=100_000,
    )
    client = LedgerClient(config, transport=httpx.MockTransport(node))

    await client.submit_grade_transaction(WALLET, approved=True)

    assert "eth_chainId" in node.methods()


@pytest.mark.asyncio
async def test_submit_without_key_raises():
    node = FakeNode()
    client = _client(node, private_key=None)

    with pytest.raises(LedgerSubmissionError):
        await client.submit_grade_transaction(WALLET, approved=True)
    assert node.calls == []


@pytest.mark.asyncio
async def test_submit_with_invalid_key_hides_key_material():
    client = _client(FakeNode(), private_key="0xnot-a-key")

    with pytest.raises(LedgerSubmissionError) as excinfo:
        await client.submit_grade_transaction(WALLET, approved=True)

    assert "not-a-key" not in str(excinfo.value)
    assert excinfo.value.__cause__ is None


@pytest.mark.asyncio
async def test_rejected_broadcast_raises_retryable_error():
    node = FakeNode({
        "eth_getTransactionCount": "0x0",
        "eth_gasPrice": "0x1",
        "eth_sendRawTransaction": {"error": {"code": -32000, "message": "insufficient funds"}},
    })
    client = _client(node)

    with pytest.raises(LedgerSubmissionError) as excinfo:
        await client.submit_grade_transaction(WALLET, approved=True)

    assert excinfo.value.retryable is True
    assert isinstance(excinfo.value.__cause__, LedgerRpcError)
    assert TEST_PRIVATE_KEY not in str(excinfo.value)


@pytest.mark.asyncio
async def test_missing_receipt_is_pending():
    client = _client(FakeNode({"eth_getTransactionReceipt": None}))

    outcome = await client.get_transaction_outcome(TX_REFERENCE)

    assert outcome.status is TxStatus.PENDING
    assert outcome.details == {}


@pytest.mark.asyncio
async def test_successful_receipt():
    receipt = {"status": "0x1", "blockNumber": "0x10", "gasUsed": "0x5208"}
    client = _client(FakeNode({"eth_getTransactionReceipt": receipt}))

    outcome = await client.get_transaction_outcome(TX_REFERENCE)

    assert outcome.status is TxStatus.SUCCESS
    assert outcome.details == {"reverted": False, "blockNumber": 16, "gasUsed": 21000}


@pytest.mark.asyncio
async def test_reverted_receipt():
    client = _client(FakeNode({"eth_getTransactionReceipt": {"status": "0x0"}}))

    outcome = await client.get_transaction_outcome(TX_REFERENCE)

    assert outcome.status is TxStatus.REVERTED
    assert outcome.details["reverted"] is True


@pytest.mark.asyncio
async def test_receipt_lookup_failure_counts_as_pending():
    client = _client(FakeNode({"eth_getTransactionReceipt": lambda params: httpx.Response(500)}))

    outcome = await client.get_transaction_outcome(TX_REFERENCE)

    assert outcome.status is TxStatus.PENDING
    assert outcome.details == {"error": "receipt lookup failed"}


@pytest.mark.asyncio
async def test_health_check_reports_block_number():
    client = _client(FakeNode({"eth_blockNumber": "0x2a"}))

    health = await client.health_check()

    assert health["status"] == "healthy"
    assert health["block_number"] == 42
    assert client.get_metrics()["method_counts"] == {"eth_blockNumber": 1}


def test_config_repr_hides_private_key():
    assert TEST_PRIVATE_KEY not in repr(_config())
