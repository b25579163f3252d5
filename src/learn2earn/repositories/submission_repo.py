"""Data access helpers for working with proof submissions."""
from __future__ import annotations

import logging
from typing import Literal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from learn2earn.core.errors import DuplicateSubmissionError, SubmissionNotFoundError
from learn2earn.db.time import utcnow
from learn2earn.models.submission import PLACEHOLDER_PROOF, Submission
from learn2earn.utils.address import canonicalize_address
from learn2earn.utils.redaction import mask_address

__all__ = ["SubmissionRepository", "UpsertStatus"]

logger = logging.getLogger(__name__)

UpsertStatus = Literal["created", "updated"]


class SubmissionRepository:
    """Thin wrapper around database access for submission rows.

    Every mutating method runs in its own transaction and commits before
    returning, so callers never observe a half-applied change.
    """

    def __init__(self, session: Session) -> None:
        """Initialize the repository with a SQLAlchemy session."""
        self.session = session

    def get(self, address: str) -> Submission | None:
        """Return the submission for ``address`` or None."""
        wallet = canonicalize_address(address)
        return self.session.execute(
            select(Submission).where(Submission.wallet_address == wallet)
        ).scalars().first()

    def _get_for_update(self, wallet: str) -> Submission | None:
        return self.session.execute(
            select(Submission).where(Submission.wallet_address == wallet).with_for_update()
        ).scalars().first()

    def list_all(self) -> list[Submission]:
        """Return every submission, newest first."""
        result = self.session.execute(
            select(Submission).order_by(Submission.submitted_at.desc(), Submission.id.desc())
        )
        return list(result.scalars())

    def list_approved(self) -> list[Submission]:
        """Return approved submissions in insertion order."""
        result = self.session.execute(
            select(Submission).where(Submission.approved.is_(True)).order_by(Submission.id)
        )
        return list(result.scalars())

    def upsert_proof_submission(self, address: str, name: str, proof_ref: str) -> UpsertStatus:
        """Record a proof for ``address``.

        Creates the row when absent and fills in a placeholder row. A row that
        already holds a real proof is left untouched.

        Args:
            address: Participant address in any casing.
            name: Display name.
            proof_ref: Proof URL or reference string.

        Returns:
            ``"created"`` for a new row, ``"updated"`` when a placeholder was filled.

        Raises:
            DuplicateSubmissionError: If a real proof is already on record.
        """
        wallet = canonicalize_address(address)
        try:
            return self._upsert_once(wallet, name, proof_ref)
        except IntegrityError:
            # A concurrent writer inserted the row first; re-run through the update path.
            self.session.rollback()
            logger.debug("Insert race for %s; retrying as update", mask_address(wallet))
            return self._upsert_once(wallet, name, proof_ref)

    def _upsert_once(self, wallet: str, name: str, proof_ref: str) -> UpsertStatus:
        existing = self._get_for_update(wallet)
        if existing is not None:
            if existing.has_proof:
                self.session.rollback()
                raise DuplicateSubmissionError()
            existing.name = name
            existing.proof_link = proof_ref
            existing.submitted_at = utcnow()
            self.session.commit()
            return "updated"

        self.session.add(Submission(wallet_address=wallet, name=name, proof_link=proof_ref))
        self.session.commit()
        return "created"

    def create_placeholder(self, address: str, name: str) -> tuple[Submission, bool]:
        """Insert a "registered, not yet submitted" row unless one exists.

        Returns:
            The row for ``address`` and whether it was created by this call.
        """
        wallet = canonicalize_address(address)
        existing = self.get(wallet)
        if existing is not None:
            return existing, False

        submission = Submission(wallet_address=wallet, name=name, proof_link=PLACEHOLDER_PROOF)
        self.session.add(submission)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            existing = self.get(wallet)
            if existing is None:  # pragma: no cover - constraint failed for another reason
                raise
            return existing, False
        return submission, True

    def set_approval(self, address: str, approved: bool, notes: str | None) -> Submission:
        """Apply a moderator decision to an existing submission."""
        wallet = canonicalize_address(address)
        submission = self._get_for_update(wallet)
        if submission is None:
            self.session.rollback()
            raise SubmissionNotFoundError()
        submission.approved = approved
        submission.approved_at = utcnow()
        submission.moderator_notes = notes
        self.session.commit()
        return submission

    def record_claim_attempt(self, address: str, tx_reference: str) -> Submission:
        """Remember a broadcast claim transaction without marking it claimed."""
        wallet = canonicalize_address(address)
        submission = self._get_for_update(wallet)
        if submission is None:
            self.session.rollback()
            raise SubmissionNotFoundError()
        submission.tx_reference = tx_reference
        submission.claim_attempted_at = utcnow()
        self.session.commit()
        return submission

    def mark_claimed(self, address: str) -> Submission:
        """Set the advisory claimed flag once the ledger reports the reward."""
        wallet = canonicalize_address(address)
        submission = self._get_for_update(wallet)
        if submission is None:
            self.session.rollback()
            raise SubmissionNotFoundError()
        if not submission.claimed:
            submission.claimed = True
            submission.claimed_at = utcnow()
        self.session.commit()
        return submission
