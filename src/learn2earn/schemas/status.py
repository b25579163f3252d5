"""Status and claim schemas derived by the reconciliation service."""

from datetime import datetime
from typing import Any

from .common import CamelModel
from .submission import SubmissionResponse


class StatusView(CamelModel):
    """Aggregated, cacheable view combining ledger facts and the stored row.

    Never persisted; recomputed from its inputs on every cache miss.
    """

    wallet_address: str
    registered: bool
    rewarded: bool
    has_submission: bool
    submission: SubmissionResponse | None
    can_claim: bool


class TxOutcomeResponse(CamelModel):
    """Receipt-derived state of the last claim transaction."""

    status: str
    details: dict[str, Any]


class ClaimResponse(CamelModel):
    """Response after a claim transaction was accepted for broadcast."""

    message: str
    tx_reference: str
    explorer_url: str | None
    success: bool = True
    note: str


class ClaimStatusView(CamelModel):
    """Ledger-anchored answer to "did my claim go through?"."""

    wallet_address: str
    rewarded: bool
    can_claim: bool
    last_tx_reference: str | None
    last_attempt_at: datetime | None
    tx_outcome: TxOutcomeResponse | None
    explorer_url: str | None


class CacheCleared(CamelModel):
    """Acknowledgement for an explicit cache invalidation."""

    message: str
    wallet_address: str
    cleared: bool


class RegistrationCheck(CamelModel):
    """Ledger registration flag for one address."""

    wallet_address: str
    registered: bool
    message: str
