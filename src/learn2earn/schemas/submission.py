# src/learn2earn/schemas/submission.py
"""Submission-related Pydantic schemas."""

from datetime import datetime
from typing import Literal

from pydantic import Field

from .common import CamelModel


class SubmissionCreate(CamelModel):
    """Schema for submitting proof of a completed learning task."""

    wallet_address: str = Field(..., min_length=1, description="Participant account address")
    name: str = Field(..., min_length=1, max_length=200, description="Display name")
    proof_link: str = Field(
        ..., min_length=1, max_length=2000, description="Proof URL or reference"
    )


class RegistrationSync(CamelModel):
    """Schema for creating a placeholder row after an on-chain registration."""

    wallet_address: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=200)


class ApprovalUpdate(CamelModel):
    """Schema for a moderator decision."""

    approved: bool
    moderator_notes: str | None = Field(None, max_length=2000)


class SubmissionResponse(CamelModel):
    """Schema for a submission record returned by the API."""

    wallet_address: str
    name: str
    proof_link: str
    has_proof: bool
    submitted_at: datetime
    approved: bool
    approved_at: datetime | None
    moderator_notes: str | None
    claimed: bool
    claimed_at: datetime | None
    tx_reference: str | None
    claim_attempted_at: datetime | None


class ModeratorSubmissionResponse(CamelModel):
    """Row shown in the moderator review list."""

    id: int
    wallet_address: str
    name: str
    proof_link: str
    submitted: bool
    approved: bool
    submitted_at: datetime
    approved_at: datetime | None
    moderator_notes: str | None


class ApprovedSubmission(CamelModel):
    """Public listing entry for approved participants."""

    wallet_address: str
    name: str


class SubmissionAccepted(CamelModel):
    """Response after a proof submission was stored."""

    message: str
    wallet_address: str
    status: Literal["created", "updated"]


class ApprovalResult(CamelModel):
    """Response after a moderator decision was stored."""

    message: str
    approved: bool


class RegistrationSyncResult(CamelModel):
    """Response for the registration sync endpoint."""

    message: str
    wallet_address: str
    status: Literal["synced", "already_exists"]
    can_submit_proof: bool = True
