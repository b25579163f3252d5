"""Shared API dependencies wiring the store, ledger and cache together."""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.orm import Session

from learn2earn.db.session import get_db
from learn2earn.repositories.submission_repo import SubmissionRepository
from learn2earn.services.ledger import LedgerClient, get_ledger_client
from learn2earn.services.reconciliation import (
    ClaimLockRegistry,
    ReconciliationService,
    get_claim_locks,
)
from learn2earn.services.status_cache import StatusCache, get_status_cache

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]


def get_ledger_client_dep() -> LedgerClient:
    """Get the process-wide ledger client for dependency injection."""
    return get_ledger_client()


def get_status_cache_dep() -> StatusCache:
    """Get the process-wide status cache for dependency injection."""
    return get_status_cache()


def get_claim_locks_dep() -> ClaimLockRegistry:
    """Get the process-wide claim lock registry for dependency injection."""
    return get_claim_locks()


def get_submission_repository(db: SessionDep) -> SubmissionRepository:
    """Build a repository bound to the request's session."""
    return SubmissionRepository(db)


def get_reconciliation_service(
    store: Annotated[SubmissionRepository, Depends(get_submission_repository)],
    ledger: Annotated[LedgerClient, Depends(get_ledger_client_dep)],
    cache: Annotated[StatusCache, Depends(get_status_cache_dep)],
    claim_locks: Annotated[ClaimLockRegistry, Depends(get_claim_locks_dep)],
) -> ReconciliationService:
    """Assemble the reconciliation service for one request."""
    return ReconciliationService(store, ledger, cache, claim_locks)


SubmissionRepositoryDep = Annotated[SubmissionRepository, Depends(get_submission_repository)]
ReconciliationServiceDep = Annotated[ReconciliationService, Depends(get_reconciliation_service)]
