"""Ledger client for reward-contract reads and the grading transaction.

This module provides the LedgerClient class that isolates every interaction
with the chain node behind a small surface:

- Read-only registration and reward queries that fail closed
- The signed ``gradeSubmission`` transaction, returned on broadcast
- Receipt polling that distinguishes success from revert
- Circuit breaker and request metrics around the JSON-RPC transport
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import httpx
from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_abi.exceptions import DecodingError
from eth_account import Account
from eth_utils import keccak, to_bytes, to_checksum_address, to_hex

from learn2earn.core.errors import LedgerSubmissionError
from learn2earn.core.settings import settings
from learn2earn.utils.address import canonicalize_address
from learn2earn.utils.redaction import mask_address, mask_tx_reference

# Configure logger for this module
logger = logging.getLogger(__name__)

HTTP_INTERNAL_SERVER_ERROR = 500

# students(address) returns the full registration struct; `registered` is field 3.
STUDENT_STRUCT_TYPES = ["address", "string", "string", "bool", "bool", "bytes32"]
STUDENT_REGISTERED_INDEX = 3


class LedgerError(RuntimeError):
    """Base exception raised for ledger transport or RPC failures."""


class LedgerReadError(LedgerError):
    """A read-only query could not produce a trustworthy answer.

    Never raised past the client boundary; carried inside ``ReadResult``.
    """


class LedgerRpcError(LedgerError):
    """The node answered with a JSON-RPC error object."""

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


class TxStatus(str, Enum):
    """Observed state of a broadcast transaction."""

    PENDING = "pending"
    SUCCESS = "success"
    REVERTED = "reverted"


class CircuitState(Enum):
    """Circuit breaker states for fault tolerance."""
    CLOSED = "closed"      # Normal operation - requests allowed
    OPEN = "open"          # Circuit is open - requests blocked
    HALF_OPEN = "half_open"  # Testing if node is back - limited requests allowed


@dataclass(frozen=True)
class ReadResult:
    """Outcome of a boolean ledger read: a value or the error that replaced it."""

    value: bool | None = None
    error: LedgerReadError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def or_false(self) -> bool:
        """Collapse to the fail-closed answer: unknown counts as not confirmed."""
        return bool(self.value) if self.error is None else False


@dataclass(frozen=True)
class GradeTransaction:
    """A grading transaction accepted for broadcast (not yet confirmed)."""

    tx_reference: str


@dataclass(frozen=True)
class TxOutcome:
    """Receipt-derived status of a transaction."""

    status: TxStatus
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class LedgerMetrics:
    """Metrics collection for ledger RPC calls."""

    request_count: int = 0
    success_count: int = 0
    error_count: int = 0
    total_response_time: float = 0.0
    error_counts_by_type: dict[str, int] = field(default_factory=lambda: defaultdict(int))
    method_counts: dict[str, int] = field(default_factory=lambda: defaultdict(int))

    def record_request(
        self, method: str, response_time: float, success: bool, error_type: str | None = None
    ) -> None:
        """Record a request metric."""
        self.request_count += 1
        self.total_response_time += response_time
        self.method_counts[method] += 1

        if success:
            self.success_count += 1
        else:
            self.error_count += 1
            if error_type:
                self.error_counts_by_type[error_type] += 1

    def get_average_response_time(self) -> float:
        """Get average response time."""
        return self.total_response_time / self.request_count if self.request_count > 0 else 0.0


@dataclass
class CircuitBreaker:
    """Circuit breaker for ledger RPC calls."""

    failure_threshold: int = 5
    recovery_timeout: float = 30.0
    success_threshold: int = 2

    _state: CircuitState = CircuitState.CLOSED
    _failure_count: int = 0
    _success_count: int = 0
    _last_failure_time: float = 0.0

    def is_open(self) -> bool:
        """Check if circuit is open."""
        if self._state == CircuitState.OPEN:
            if time.monotonic() - self._last_failure_time > self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
                self._success_count = 0
            return self._state == CircuitState.OPEN
        return False

    def record_success(self) -> None:
        """Record a successful operation."""
        if self._state == CircuitState.HALF_OPEN:
            self._success_count += 1
            if self._success_count >= self.success_threshold:
                self._state = CircuitState.CLOSED
                self._failure_count = 0
        elif self._state == CircuitState.CLOSED:
            self._failure_count = 0

    def record_failure(self) -> None:
        """Record a failed operation."""
        self._failure_count += 1
        self._last_failure_time = time.monotonic()

        if self._state == CircuitState.HALF_OPEN or self._failure_count >= self.failure_threshold:
            self._state = CircuitState.OPEN

    @property
    def state(self) -> CircuitState:
        return self._state


@dataclass(frozen=True)
class LedgerConfig:
    """Immutable configuration for ledger operations."""

    rpc_url: str
    contract_address: str
    chain_id: int | None
    private_key: str | None = field(repr=False)
    timeout_seconds: float
    gas_limit: int


def load_ledger_config() -> LedgerConfig:
    """Build configuration object from global settings."""

    return LedgerConfig(
        rpc_url=settings.ledger_rpc_url,
        contract_address=settings.ledger_contract_address,
        chain_id=settings.ledger_chain_id,
        private_key=settings.ledger_private_key,
        timeout_seconds=float(settings.ledger_http_timeout_seconds),
        gas_limit=settings.ledger_gas_limit,
    )


def _selector(signature: str) -> bytes:
    return keccak(text=signature)[:4]


def encode_call(signature: str, arg_types: list[str], args: list[Any]) -> str:
    """Return hex call data for ``signature`` applied to ``args``."""
    return to_hex(_selector(signature) + abi_encode(arg_types, args))


def _to_int(value: Any) -> int:
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        return int(value, 16) if value.startswith("0x") else int(value)
    raise ValueError(f"Expected an integer quantity, got {type(value).__name__}")


class LedgerClient:
    """JSON-RPC client wrapper for the reward contract."""

    def __init__(
        self,
        config: LedgerConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config or load_ledger_config()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()
        self._circuit_breaker = CircuitBreaker()
        self._metrics = LedgerMetrics()
        self._request_id = 0

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    timeout=httpx.Timeout(self.config.timeout_seconds),
                    transport=self._transport,
                )
        return self._client

    async def _rpc(self, method: str, params: list[Any]) -> Any:
        if self._circuit_breaker.is_open():
            raise LedgerError("Ledger circuit breaker is open - node unavailable")

        client = await self._ensure_client()
        self._request_id += 1
        payload = {"jsonrpc": "2.0", "id": self._request_id, "method": method, "params": params}

        start_time = time.monotonic()
        success = False
        error_type: str | None = None
        try:
            try:
                response = await client.post(self.config.rpc_url, json=payload)
            except httpx.HTTPError as exc:
                error_type = "network_error"
                raise LedgerError(f"Ledger request failed: {exc.__class__.__name__}") from exc

            if response.status_code >= HTTP_INTERNAL_SERVER_ERROR:
                error_type = f"http_{response.status_code}"
                raise LedgerError(f"Ledger node responded with {response.status_code}")

            try:
                body = response.json()
            except ValueError as exc:
                error_type = "invalid_json"
                raise LedgerError("Ledger node returned a non-JSON body") from exc
        except LedgerError:
            self._circuit_breaker.record_failure()
            raise
        finally:
            if error_type is None:
                success = True
            self._metrics.record_request(method, time.monotonic() - start_time, success, error_type)

        # The node is reachable; an RPC-level error is not a transport fault.
        self._circuit_breaker.record_success()
        if not isinstance(body, dict):
            raise LedgerRpcError("Malformed JSON-RPC response")
        error = body.get("error")
        if error:
            if isinstance(error, dict):
                message, code = error.get("message", "unknown error"), error.get("code")
            else:
                message, code = str(error), None
            raise LedgerRpcError(message, code=code)
        return body.get("result")

    async def _call_view(self, data: str) -> bytes:
        result = await self._rpc(
            "eth_call",
            [{"to": to_checksum_address(self.config.contract_address), "data": data}, "latest"],
        )
        if not isinstance(result, str):
            raise LedgerRpcError("eth_call returned no data")
        return to_bytes(hexstr=result)

    async def read_registered(self, address: str) -> ReadResult:
        """Query the contract's registration flag for ``address``."""
        wallet = canonicalize_address(address)
        try:
            raw = await self._call_view(
                encode_call("students(address)", ["address"], [to_checksum_address(wallet)])
            )
            decoded = abi_decode(STUDENT_STRUCT_TYPES, raw)
            return ReadResult(value=bool(decoded[STUDENT_REGISTERED_INDEX]))
        except (LedgerError, DecodingError, ValueError) as exc:
            return ReadResult(error=LedgerReadError(f"registration read failed: {exc}"))

    async def read_rewarded(self, address: str) -> ReadResult:
        """Query the contract's reward flag for ``address``."""
        wallet = canonicalize_address(address)
        try:
            raw = await self._call_view(
                encode_call("isRewarded(address)", ["address"], [to_checksum_address(wallet)])
            )
            (rewarded,) = abi_decode(["bool"], raw)
            return ReadResult(value=bool(rewarded))
        except (LedgerError, DecodingError, ValueError) as exc:
            return ReadResult(error=LedgerReadError(f"reward read failed: {exc}"))

    async def is_registered(self, address: str) -> bool:
        """Return the registration flag, or False when it cannot be read."""
        result = await self.read_registered(address)
        if not result.ok:
            logger.warning(
                "Registration check for %s failed closed: %s", mask_address(address), result.error
            )
        return result.or_false()

    async def is_rewarded(self, address: str) -> bool:
        """Return the reward flag, or False when it cannot be read."""
        result = await self.read_rewarded(address)
        if not result.ok:
            logger.warning(
                "Reward check for %s failed closed: %s", mask_address(address), result.error
            )
        return result.or_false()

    async def submit_grade_transaction(self, address: str, approved: bool) -> GradeTransaction:
        """Sign and broadcast ``gradeSubmission(address, approved)``.

        Returns as soon as the node accepts the transaction; confirmation is
        observed later through ``get_transaction_outcome``.

        Raises:
            LedgerSubmissionError: If the transaction cannot be built, signed or broadcast.
        """
        wallet = canonicalize_address(address)
        if not self.config.private_key:
            raise LedgerSubmissionError("Distribution key is not configured")
        try:
            account = Account.from_key(self.config.private_key)
        except (ValueError, TypeError):
            # Never chain the original exception: its repr may echo the key.
            raise LedgerSubmissionError("Distribution key is invalid") from None

        try:
            nonce = _to_int(
                await self._rpc("eth_getTransactionCount", [account.address, "pending"])
            )
            gas_price = _to_int(await self._rpc("eth_gasPrice", []))
            chain_id = self.config.chain_id or _to_int(await self._rpc("eth_chainId", []))
            transaction = {
                "to": to_checksum_address(self.config.contract_address),
                "value": 0,
                "data": encode_call(
                    "gradeSubmission(address,bool)",
                    ["address", "bool"],
                    [to_checksum_address(wallet), approved],
                ),
                "gas": self.config.gas_limit,
                "gasPrice": gas_price,
                "nonce": nonce,
                "chainId": chain_id,
            }
            signed = account.sign_transaction(transaction)
            raw_transaction = to_hex(signed.raw_transaction)
            tx_reference = await self._rpc("eth_sendRawTransaction", [raw_transaction])
        except LedgerError as exc:
            logger.error(
                "Grade transaction for %s was not broadcast: %s", mask_address(wallet), exc
            )
            raise LedgerSubmissionError(f"Smart contract transaction failed: {exc}") from exc
        except (TypeError, ValueError) as exc:
            logger.error(
                "Grade transaction for %s could not be built: %s",
                mask_address(wallet),
                exc.__class__.__name__,
            )
            raise LedgerSubmissionError("Smart contract transaction could not be built") from exc

        if not isinstance(tx_reference, str) or not tx_reference.startswith("0x"):
            raise LedgerSubmissionError("Ledger node returned no transaction reference")

        logger.info(
            "Grade transaction %s broadcast for %s",
            mask_tx_reference(tx_reference),
            mask_address(wallet),
        )
        return GradeTransaction(tx_reference=tx_reference)

    async def get_transaction_outcome(self, tx_reference: str) -> TxOutcome:
        """Poll for a receipt; missing receipts and read failures count as pending."""
        try:
            receipt = await self._rpc("eth_getTransactionReceipt", [tx_reference])
        except LedgerError as exc:
            logger.warning(
                "Receipt lookup for %s failed: %s", mask_tx_reference(tx_reference), exc
            )
            return TxOutcome(status=TxStatus.PENDING, details={"error": "receipt lookup failed"})

        if not receipt:
            return TxOutcome(status=TxStatus.PENDING)

        try:
            if "reverted" in receipt:
                reverted = bool(receipt["reverted"])
            else:
                reverted = _to_int(receipt.get("status", "0x0")) == 0
            details: dict[str, Any] = {"reverted": reverted}
            if receipt.get("blockNumber") is not None:
                details["blockNumber"] = _to_int(receipt["blockNumber"])
            if receipt.get("gasUsed") is not None:
                details["gasUsed"] = _to_int(receipt["gasUsed"])
        except (TypeError, ValueError, AttributeError):
            return TxOutcome(status=TxStatus.PENDING, details={"error": "malformed receipt"})

        status = TxStatus.REVERTED if reverted else TxStatus.SUCCESS
        return TxOutcome(status=status, details=details)

    async def health_check(self) -> dict[str, Any]:
        """Report whether the node answers and its latest block number."""
        try:
            block = _to_int(await self._rpc("eth_blockNumber", []))
        except (LedgerError, ValueError) as exc:
            return {
                "status": "error",
                "error": str(exc),
                "circuit_breaker": self._circuit_breaker.state.value,
            }
        return {
            "status": "healthy",
            "block_number": block,
            "circuit_breaker": self._circuit_breaker.state.value,
        }

    def get_metrics(self) -> dict[str, Any]:
        """Get ledger RPC metrics."""
        return {
            "request_count": self._metrics.request_count,
            "success_count": self._metrics.success_count,
            "error_count": self._metrics.error_count,
            "average_response_time": self._metrics.get_average_response_time(),
            "error_counts_by_type": dict(self._metrics.error_counts_by_type),
            "method_counts": dict(self._metrics.method_counts),
            "circuit_breaker": self._circuit_breaker.state.value,
        }

    async def close(self) -> None:
        """Clean up underlying HTTP client resources."""

        async with self._client_lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None


class _LedgerClientSingleton:
    """Singleton wrapper for LedgerClient."""

    _instance: LedgerClient | None = None

    @classmethod
    def get_instance(cls) -> LedgerClient:
        """Get or create the singleton LedgerClient instance."""
        if cls._instance is None:
            cls._instance = LedgerClient()
        return cls._instance


def get_ledger_client() -> LedgerClient:
    """Return a singleton ledger client instance."""
    return _LedgerClientSingleton.get_instance()
