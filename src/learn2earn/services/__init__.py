"""Business services for the Learn2Earn backend."""

from .ledger import LedgerClient, get_ledger_client
from .reconciliation import ClaimLockRegistry, ReconciliationService, get_claim_locks
from .status_cache import MemoryStatusCache, RedisStatusCache, StatusCache, get_status_cache

__all__ = [
    "ClaimLockRegistry",
    "LedgerClient",
    "MemoryStatusCache",
    "ReconciliationService",
    "RedisStatusCache",
    "StatusCache",
    "get_claim_locks",
    "get_ledger_client",
    "get_status_cache",
]
