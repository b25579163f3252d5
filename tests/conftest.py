from __future__ import annotations

import os
from collections.abc import Generator, Iterator
from typing import Any
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite://")

from learn2earn.api.v1 import dependencies as api_dependencies
from learn2earn.core.settings import settings
from learn2earn.db.session import Base
from learn2earn.db.session import get_db as app_get_session
from learn2earn.main import app as fastapi_app
from learn2earn.models import Submission
from learn2earn.repositories.submission_repo import SubmissionRepository
from learn2earn.services.ledger import GradeTransaction, LedgerClient, TxOutcome, TxStatus
from learn2earn.services.reconciliation import ClaimLockRegistry, ReconciliationService
from learn2earn.services.status_cache import MemoryStatusCache

TEST_DB_URL = "sqlite://"
MODERATOR_KEY = "test-moderator-key"

WALLET = "0x" + "ab" * 20
OTHER_WALLET = "0x" + "cd" * 20
TX_REFERENCE = "0x" + "12" * 32


class FakeClock:
    """Manually advanced monotonic clock for cache expiry tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def db_session(engine: Engine) -> Iterator[Session]:
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def store(db_session: Session) -> SubmissionRepository:
    return SubmissionRepository(db_session)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def status_cache(clock: FakeClock) -> MemoryStatusCache:
    return MemoryStatusCache(ttl_seconds=5.0, clock=clock)


@pytest.fixture()
def claim_locks() -> ClaimLockRegistry:
    return ClaimLockRegistry()


@pytest.fixture()
def ledger() -> AsyncMock:
    """Ledger client double: registered, not yet rewarded, broadcasts succeed."""
    client = AsyncMock(spec=LedgerClient)
    client.is_registered.return_value = True
    client.is_rewarded.return_value = False
    client.submit_grade_transaction.return_value = GradeTransaction(tx_reference=TX_REFERENCE)
    client.get_transaction_outcome.return_value = TxOutcome(status=TxStatus.PENDING)
    return client


@pytest.fixture()
def service(
    store: SubmissionRepository,
    ledger: AsyncMock,
    status_cache: MemoryStatusCache,
    claim_locks: ClaimLockRegistry,
) -> ReconciliationService:
    return ReconciliationService(store, ledger, status_cache, claim_locks)


@pytest.fixture()
def make_submission(db_session: Session):
    """Persist a submission row directly, bypassing business rules."""

    def _make(wallet: str = WALLET, **fields: Any) -> Submission:
        values: dict[str, Any] = {"name": "Ada", "proof_link": "https://proof.example/ada"}
        values.update(fields)
        submission = Submission(wallet_address=wallet, **values)
        db_session.add(submission)
        db_session.commit()
        db_session.refresh(submission)
        return submission

    return _make


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture(autouse=True)
def override_dependencies(
    app: FastAPI,
    db_session: Session,
    ledger: AsyncMock,
    status_cache: MemoryStatusCache,
    claim_locks: ClaimLockRegistry,
) -> Iterator[None]:
    def _get_session_override() -> Generator[Session, None, None]:
        yield db_session

    overrides = {
        app_get_session: _get_session_override,
        api_dependencies.get_ledger_client_dep: lambda: ledger,
        api_dependencies.get_status_cache_dep: lambda: status_cache,
        api_dependencies.get_claim_locks_dep: lambda: claim_locks,
    }
    app.dependency_overrides.update(overrides)
    try:
        yield
    finally:
        for dependency in overrides:
            app.dependency_overrides.pop(dependency, None)


@pytest.fixture(autouse=True)
def moderator_key(monkeypatch: pytest.MonkeyPatch) -> str:
    monkeypatch.setattr(settings, "moderator_key", MODERATOR_KEY)
    return MODERATOR_KEY


@pytest.fixture()
def moderator_headers(moderator_key: str) -> dict[str, str]:
    return {"x-moderator-key": moderator_key}


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client
