"""Cache control, registration sync and ledger monitoring endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Response, status

from learn2earn.api.v1.dependencies import ReconciliationServiceDep, get_ledger_client_dep
from learn2earn.schemas.status import CacheCleared, RegistrationCheck
from learn2earn.schemas.submission import RegistrationSync, RegistrationSyncResult
from learn2earn.services.ledger import LedgerClient
from learn2earn.utils.address import canonicalize_address

router = APIRouter(tags=["system"])


@router.post("/clear-cache/{address}", response_model=CacheCleared)
async def clear_cache(address: str, service: ReconciliationServiceDep) -> CacheCleared:
    """Drop the cached status view so the next read goes to the ledger."""
    wallet = canonicalize_address(address)
    cleared = await service.invalidate(wallet)
    return CacheCleared(message="Cache cleared", wallet_address=wallet, cleared=cleared)


@router.get("/check-registration/{address}", response_model=RegistrationCheck)
async def check_registration(
    address: str,
    service: ReconciliationServiceDep,
) -> RegistrationCheck:
    """Report whether the ledger confirms the participant's registration."""
    wallet = canonicalize_address(address)
    registered = await service.check_registration(wallet)
    message = (
        "Student is registered in the smart contract"
        if registered
        else "Student is not registered in the smart contract"
    )
    return RegistrationCheck(wallet_address=wallet, registered=registered, message=message)


@router.post(
    "/sync-registration",
    response_model=RegistrationSyncResult,
    status_code=status.HTTP_201_CREATED,
)
async def sync_registration(
    payload: RegistrationSync,
    response: Response,
    service: ReconciliationServiceDep,
) -> RegistrationSyncResult:
    """Create a placeholder submission for a participant registered on-chain."""
    wallet = canonicalize_address(payload.wallet_address)
    outcome = await service.sync_registration(wallet, payload.name)
    if outcome == "already_exists":
        response.status_code = status.HTTP_200_OK
        message = "Student already exists in database"
    else:
        message = "Registration synced to database"
    return RegistrationSyncResult(message=message, wallet_address=wallet, status=outcome)


@router.get("/ledger/health")
async def get_ledger_health(
    ledger: Annotated[LedgerClient, Depends(get_ledger_client_dep)],
) -> dict[str, object]:
    """Get ledger node reachability and circuit breaker state.

    Returns:
        Dictionary with node status, latest block number or error details
    """
    return await ledger.health_check()


@router.get("/ledger/metrics")
async def get_ledger_metrics(
    ledger: Annotated[LedgerClient, Depends(get_ledger_client_dep)],
) -> dict[str, object]:
    """Get ledger RPC counters and timings."""
    return ledger.get_metrics()
