"""Submission, status and claim endpoints for the Learn2Earn API."""

from __future__ import annotations

from fastapi import APIRouter, status

from learn2earn.api.v1.dependencies import ReconciliationServiceDep, SubmissionRepositoryDep
from learn2earn.core.errors import SubmissionNotFoundError
from learn2earn.core.security import ModeratorDep
from learn2earn.models import Submission
from learn2earn.schemas.status import ClaimResponse, ClaimStatusView, StatusView
from learn2earn.schemas.submission import (
    ApprovalResult,
    ApprovalUpdate,
    ApprovedSubmission,
    ModeratorSubmissionResponse,
    SubmissionAccepted,
    SubmissionCreate,
    SubmissionResponse,
)
from learn2earn.utils.address import canonicalize_address

router = APIRouter(prefix="/submissions", tags=["submissions"])


@router.post("", response_model=SubmissionAccepted, status_code=status.HTTP_201_CREATED)
async def submit_proof(
    payload: SubmissionCreate,
    service: ReconciliationServiceDep,
) -> SubmissionAccepted:
    """Submit proof of a completed task for a participant registered on the ledger."""
    wallet = canonicalize_address(payload.wallet_address)
    outcome = await service.submit_proof(wallet, payload.name, payload.proof_link)
    message = (
        "Proof submitted successfully"
        if outcome == "created"
        else "Proof added to your registration"
    )
    return SubmissionAccepted(message=message, wallet_address=wallet, status=outcome)


@router.get("", response_model=list[ModeratorSubmissionResponse])
async def list_submissions(
    _: ModeratorDep,
    store: SubmissionRepositoryDep,
) -> list[ModeratorSubmissionResponse]:
    """List every submission, newest first. Requires the moderator key."""
    return [_to_moderator_view(row) for row in store.list_all()]


@router.get("/approved", response_model=list[ApprovedSubmission])
async def list_approved_submissions(store: SubmissionRepositoryDep) -> list[Submission]:
    """List participants whose submissions were approved."""
    return store.list_approved()


@router.get("/{address}", response_model=SubmissionResponse)
async def get_submission(address: str, store: SubmissionRepositoryDep) -> Submission:
    """Return the stored submission record for ``address``."""
    submission = store.get(address)
    if submission is None:
        raise SubmissionNotFoundError()
    return submission


@router.get("/{address}/status", response_model=StatusView)
async def get_status(address: str, service: ReconciliationServiceDep) -> StatusView:
    """Return the aggregated registration, submission and reward status."""
    return await service.get_status(address)


@router.put("/{address}/approve", response_model=ApprovalResult)
async def approve_submission(
    address: str,
    payload: ApprovalUpdate,
    _: ModeratorDep,
    service: ReconciliationServiceDep,
) -> ApprovalResult:
    """Record a moderator decision. Requires the moderator key."""
    submission = await service.approve(address, payload.approved, payload.moderator_notes)
    verdict = "approved" if submission.approved else "rejected"
    return ApprovalResult(message=f"Submission {verdict}", approved=submission.approved)


@router.post("/{address}/claim", response_model=ClaimResponse)
async def claim_reward(address: str, service: ReconciliationServiceDep) -> ClaimResponse:
    """Broadcast the reward transaction for an approved participant."""
    receipt = await service.request_claim(address)
    return ClaimResponse(
        message="Reward claim submitted to the blockchain",
        tx_reference=receipt.tx_reference,
        explorer_url=receipt.explorer_url,
        note=receipt.note,
    )


@router.get("/{address}/claim-status", response_model=ClaimStatusView)
async def get_claim_status(address: str, service: ReconciliationServiceDep) -> ClaimStatusView:
    """Report whether the last claim reached the ledger."""
    return await service.get_claim_status(address)


def _to_moderator_view(row: Submission) -> ModeratorSubmissionResponse:
    return ModeratorSubmissionResponse(
        id=row.id,
        wallet_address=row.wallet_address,
        name=row.name,
        proof_link=row.proof_link,
        submitted=row.has_proof,
        approved=row.approved,
        submitted_at=row.submitted_at,
        approved_at=row.approved_at,
        moderator_notes=row.moderator_notes,
    )
