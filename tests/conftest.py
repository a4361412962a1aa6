"""Shared fixtures for the loan engine test-suite.

Provides:
- Environment defaults (must be set before any loan_engine import)
- A per-test SQLite database with the full schema
- Recording fakes for the side-effect collaborators
- An HTTP client bound to the app with the test database wired in
"""

from __future__ import annotations

import os
import tempfile

# Environment defaults: Settings are read once and cached on first import.
_SCRATCH = tempfile.mkdtemp(prefix="loan-engine-tests-")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_SCRATCH}/app.db")
os.environ.setdefault("AUTH_USERNAME", "tester")
os.environ.setdefault("AUTH_PASSWORD", "s3cret")
os.environ.setdefault("STORAGE_PROVIDER", "local")
os.environ.setdefault("LOCAL_UPLOAD_DIR", f"{_SCRATCH}/documents")
os.environ.setdefault("PUBLIC_BASE_URL", "http://testserver")

from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

import httpx
import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from loan_engine.db.base import Base
from loan_engine.db.session import build_session_factory, get_db
import loan_engine.models  # noqa: F401
from loan_engine.services.loan_repository import LoanRepository
from loan_engine.services.loan_workflow import LoanWorkflowService
from loan_engine.services.side_effects import SideEffectDispatcher

AUTH = (os.environ["AUTH_USERNAME"], os.environ["AUTH_PASSWORD"])
APPROVED_AT = datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)
DISBURSED_AT = datetime(2024, 6, 1, 9, 30, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture
async def db_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'loans.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return build_session_factory(db_engine)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Side-effect fakes
# ---------------------------------------------------------------------------


class RecordingDelivery:
    """Stands in for AgreementDelivery; records the loans it was asked to deliver."""

    def __init__(self, error: Exception | None = None) -> None:
        self.calls: list[UUID] = []
        self.error = error

    async def __call__(self, loan_id: UUID) -> str:
        self.calls.append(loan_id)
        if self.error is not None:
            raise self.error
        return f"https://files.example.com/{loan_id}.pdf"


@pytest.fixture
def delivery() -> RecordingDelivery:
    return RecordingDelivery()


@pytest.fixture
def dispatcher() -> SideEffectDispatcher:
    return SideEffectDispatcher(concurrency=2)


@pytest.fixture
def workflow(session, dispatcher, delivery) -> LoanWorkflowService:
    return LoanWorkflowService(
        LoanRepository(session), dispatcher=dispatcher, agreement_delivery=delivery
    )


# ---------------------------------------------------------------------------
# Workflow helpers
# ---------------------------------------------------------------------------


async def create_proposed_loan(workflow: LoanWorkflowService, principal: str = "1000"):
    return await workflow.create_loan(
        borrower_id="B1",
        principal_amount=Decimal(principal),
        rate=Decimal("5"),
        roi=Decimal("10"),
    )


async def create_approved_loan(workflow: LoanWorkflowService, principal: str = "1000"):
    loan = await create_proposed_loan(workflow, principal)
    return await workflow.approve_loan(
        loan.id,
        validator_id="V1",
        proof_image_url="https://files.example.com/proof.jpg",
        approval_date=APPROVED_AT,
    )


async def invest(workflow: LoanWorkflowService, loan_id: UUID, amount: str, investor: str = "I1"):
    return await workflow.add_investment(
        loan_id,
        investor_id=investor,
        name=f"Investor {investor}",
        email=f"{investor.lower()}@example.com",
        amount=Decimal(amount),
    )


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------


@pytest.fixture
async def api_client(session_factory, dispatcher, delivery, monkeypatch):
    from loan_engine.main import app

    async def _get_db():
        async with session_factory() as db:
            yield db

    app.dependency_overrides[get_db] = _get_db
    monkeypatch.setattr(app.state, "side_effects", dispatcher)
    monkeypatch.setattr(app.state, "agreement_delivery", delivery)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
    app.dependency_overrides.clear()
