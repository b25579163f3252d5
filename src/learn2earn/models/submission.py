"""SQLAlchemy model for participant proof submissions."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from learn2earn.db.session import Base
from learn2earn.db.time import utcnow

# Proof value written when the ledger shows a registration before any proof exists.
PLACEHOLDER_PROOF = "SYNC_PLACEHOLDER"
_PLACEHOLDER_VALUES = frozenset({"", "PLACEHOLDER", PLACEHOLDER_PROOF})


def is_placeholder_proof(proof_link: str | None) -> bool:
    """Return True if ``proof_link`` means "registered, proof not yet submitted"."""
    return proof_link is None or proof_link.strip() in _PLACEHOLDER_VALUES


class Submission(Base):
    """One row per participant, keyed by canonical wallet address."""

    __tablename__ = "submissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    wallet_address: Mapped[str] = mapped_column(Text, unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    proof_link: Mapped[str] = mapped_column(Text, nullable=False)
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    moderator_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Advisory only: set after the ledger reports the reward, never by a broadcast.
    claimed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    tx_reference: Mapped[str | None] = mapped_column("transaction_hash", Text, nullable=True)
    claim_attempted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    @property
    def has_proof(self) -> bool:
        """Return True once a real (non-placeholder) proof is on record."""
        return not is_placeholder_proof(self.proof_link)
