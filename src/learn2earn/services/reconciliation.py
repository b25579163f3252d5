"""Claim-state reconciliation between the store, the ledger and the cache.

A participant moves through

    Unregistered -> Registered (no submission) -> Submitted (pending)
    -> Submitted (approved) -> Claim attempted -> Rewarded

but that state is never stored. It is re-derived on every read from the
ledger's ``registered``/``rewarded`` flags and the submission row, so there is
no second source of truth that could drift from the ledger. The only fact
trusted as "claimed" is the ledger's own reward flag.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from dataclasses import dataclass
from threading import Lock

from learn2earn.core.errors import (
    AlreadyRewardedError,
    NotApprovedError,
    NotRegisteredError,
    SubmissionNotFoundError,
)
from learn2earn.core.settings import settings
from learn2earn.models.submission import Submission
from learn2earn.repositories.submission_repo import SubmissionRepository, UpsertStatus
from learn2earn.schemas.status import ClaimStatusView, StatusView, TxOutcomeResponse
from learn2earn.schemas.submission import SubmissionResponse
from learn2earn.services.ledger import LedgerClient
from learn2earn.services.status_cache import StatusCache
from learn2earn.utils.address import canonicalize_address
from learn2earn.utils.redaction import mask_address, mask_tx_reference, redact_fields

logger = logging.getLogger(__name__)

CLAIM_PENDING_NOTE = "submitted, pending confirmation"


class ClaimLockRegistry:
    """Per-address asyncio locks serializing claim requests within a process.

    Locks are held weakly, so an address with no claim in flight costs nothing.
    """

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()
        self._guard = Lock()

    def for_address(self, address: str) -> asyncio.Lock:
        key = canonicalize_address(address)
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = asyncio.Lock()
                self._locks[key] = lock
            return lock


@dataclass(frozen=True)
class ClaimReceipt:
    """Result of a claim whose transaction was accepted for broadcast."""

    tx_reference: str
    explorer_url: str | None
    note: str = CLAIM_PENDING_NOTE


def compute_can_claim(registered: bool, rewarded: bool, submission: Submission | None) -> bool:
    """Eligibility as a pure function of ledger facts and the stored row."""
    return (
        registered
        and not rewarded
        and submission is not None
        and submission.approved
        and not submission.claimed
    )


class ReconciliationService:
    """Combines store, ledger and cache into one consistent claim decision."""

    def __init__(
        self,
        store: SubmissionRepository,
        ledger: LedgerClient,
        cache: StatusCache,
        claim_locks: ClaimLockRegistry,
    ) -> None:
        self.store = store
        self.ledger = ledger
        self.cache = cache
        self.claim_locks = claim_locks

    async def get_status(self, address: str) -> StatusView:
        """Return the aggregated status view, from cache when still fresh."""
        wallet = canonicalize_address(address)
        cached = await self.cache.get(wallet)
        if cached is not None:
            return cached

        logger.debug("Status cache miss for %s", mask_address(wallet))
        generation = await self.cache.generation(wallet)
        registered, rewarded = await asyncio.gather(
            self.ledger.is_registered(wallet),
            self.ledger.is_rewarded(wallet),
        )
        submission = self.store.get(wallet)

        view = StatusView(
            wallet_address=wallet,
            registered=registered,
            rewarded=rewarded,
            has_submission=submission is not None and submission.has_proof,
            submission=(
                SubmissionResponse.model_validate(submission) if submission is not None else None
            ),
            can_claim=compute_can_claim(registered, rewarded, submission),
        )
        if await self.cache.set_if_generation(wallet, view, generation):
            logger.debug(
                "Status cached for %s (registered=%s, rewarded=%s)",
                mask_address(wallet),
                registered,
                rewarded,
            )
        else:
            logger.debug("Status for %s invalidated during read; not cached", mask_address(wallet))
        return view

    async def submit_proof(self, address: str, name: str, proof_ref: str) -> UpsertStatus:
        """Store a proof for a participant the ledger reports as registered.

        Raises:
            NotRegisteredError: If registration is not confirmed; the store is untouched.
            DuplicateSubmissionError: If a real proof is already on record.
        """
        wallet = canonicalize_address(address)
        if not await self.ledger.is_registered(wallet):
            raise NotRegisteredError(
                "Student must be registered in the smart contract before submitting proof"
            )

        outcome = self.store.upsert_proof_submission(wallet, name, proof_ref)
        await self.cache.invalidate(wallet)
        logger.info("Proof %s for %s", outcome, mask_address(wallet))
        return outcome

    async def check_registration(self, address: str) -> bool:
        """Return the ledger's registration flag (False when unconfirmed)."""
        return await self.ledger.is_registered(canonicalize_address(address))

    async def sync_registration(self, address: str, name: str) -> str:
        """Create a placeholder row for a participant registered on-chain.

        Returns:
            ``"synced"`` when a row was created, ``"already_exists"`` otherwise.
        """
        wallet = canonicalize_address(address)
        if not await self.ledger.is_registered(wallet):
            raise NotRegisteredError(
                "Student is not registered in the smart contract. "
                "Please complete registration first."
            )
        _, created = self.store.create_placeholder(wallet, name)
        await self.cache.invalidate(wallet)
        return "synced" if created else "already_exists"

    async def approve(self, address: str, approved: bool, notes: str | None) -> Submission:
        """Apply a moderator decision and drop the cached view."""
        wallet = canonicalize_address(address)
        submission = self.store.set_approval(wallet, approved, notes)
        await self.cache.invalidate(wallet)
        logger.info(
            "Moderator decision recorded: %s",
            redact_fields(
                {"wallet_address": wallet, "approved": approved, "has_notes": bool(notes)}
            ),
        )
        return submission

    async def request_claim(self, address: str) -> ClaimReceipt:
        """Broadcast the reward transaction for an approved, registered participant.

        The submission is deliberately not marked claimed: a broadcast
        transaction can still revert. The next ledger read decides.

        Raises:
            AlreadyRewardedError: The ledger already reports the reward; nothing is broadcast.
            NotApprovedError: No approved submission is on record.
            NotRegisteredError: The ledger does not confirm registration.
            LedgerSubmissionError: Broadcast failed; safe to retry.
        """
        wallet = canonicalize_address(address)
        async with self.claim_locks.for_address(wallet):
            if await self.ledger.is_rewarded(wallet):
                raise AlreadyRewardedError(
                    "You have already successfully claimed your reward! "
                    "Tokens were distributed to your wallet."
                )

            submission = self.store.get(wallet)
            if submission is None or not submission.approved:
                raise NotApprovedError()

            if not await self.ledger.is_registered(wallet):
                raise NotRegisteredError(
                    "You must register in the smart contract before claiming a reward"
                )

            logger.info("Processing reward claim for %s", mask_address(wallet))
            transaction = await self.ledger.submit_grade_transaction(wallet, approved=True)

            self.store.record_claim_attempt(wallet, transaction.tx_reference)
            await self.cache.invalidate(wallet)
            logger.info(
                "Claim transaction %s recorded for %s",
                mask_tx_reference(transaction.tx_reference),
                mask_address(wallet),
            )
            return ClaimReceipt(
                tx_reference=transaction.tx_reference,
                explorer_url=settings.explorer_url_for(transaction.tx_reference),
            )

    async def get_claim_status(self, address: str) -> ClaimStatusView:
        """Resolve a pending claim against the ledger's reward flag and receipt."""
        wallet = canonicalize_address(address)
        rewarded = await self.ledger.is_rewarded(wallet)
        submission = self.store.get(wallet)
        if submission is None:
            raise SubmissionNotFoundError("No submission found for this wallet address")

        if rewarded and not submission.claimed:
            # The ledger confirmed the reward; let the advisory flag catch up.
            submission = self.store.mark_claimed(wallet)
            await self.cache.invalidate(wallet)

        tx_outcome = None
        if submission.tx_reference:
            outcome = await self.ledger.get_transaction_outcome(submission.tx_reference)
            tx_outcome = TxOutcomeResponse(status=outcome.status.value, details=outcome.details)

        return ClaimStatusView(
            wallet_address=wallet,
            rewarded=rewarded,
            can_claim=submission.approved and not rewarded,
            last_tx_reference=submission.tx_reference,
            last_attempt_at=submission.claim_attempted_at,
            tx_outcome=tx_outcome,
            explorer_url=settings.explorer_url_for(submission.tx_reference),
        )

    async def invalidate(self, address: str) -> bool:
        """Force the next status read for ``address`` to query the ledger."""
        return await self.cache.invalidate(canonicalize_address(address))


class _ClaimLockSingleton:
    _instance: ClaimLockRegistry | None = None

    @classmethod
    def get_instance(cls) -> ClaimLockRegistry:
        if cls._instance is None:
            cls._instance = ClaimLockRegistry()
        return cls._instance


def get_claim_locks() -> ClaimLockRegistry:
    """Return the process-wide claim lock registry."""
    return _ClaimLockSingleton.get_instance()
