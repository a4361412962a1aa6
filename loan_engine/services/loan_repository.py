from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from decimal import Decimal
from typing import Protocol
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from loan_engine.models.loan import Loan
from loan_engine.models.loan_investment import LoanInvestment
from loan_engine.models.loan_state_transition import LoanStateTransition
from loan_engine.schemas.loan import LoanEvent, LoanState
from loan_engine.services.loan_errors import (
    ConcurrentModification,
    LoanNotFound,
    PersistenceFailure,
)

logger = logging.getLogger(__name__)


class LoanGateway(Protocol):
    async def create(self, loan: Loan) -> UUID: ...

    async def get_loan(self, loan_id: UUID) -> Loan: ...

    async def update_with_version_check(self, loan: Loan) -> None: ...

    async def append_investment(self, loan: Loan) -> LoanInvestment: ...

    async def append_transition(
        self,
        loan_id: UUID,
        previous_state: LoanState,
        event: LoanEvent,
        next_state: LoanState,
    ) -> LoanStateTransition: ...

    async def list_investments(self, loan_id: UUID) -> list[LoanInvestment]: ...

    async def list_transitions(self, loan_id: UUID) -> list[LoanStateTransition]: ...

    def transaction(self) -> AbstractAsyncContextManager["LoanGateway"]: ...


def _state_value(state) -> str:
    return state.value if hasattr(state, "value") else str(state)


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 3)


class LoanRepository:
    """SQLAlchemy-backed persistence gateway for loans.

    Writes are only flushed by ``update_with_version_check``/``create`` and
    only committed by ``transaction()``; the session must be created with
    ``autoflush=False`` so that rejected in-memory changes are never written.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create(self, loan: Loan) -> UUID:
        if loan.total_invested_amount is None:
            loan.total_invested_amount = Decimal("0")
        self.session.add(loan)
        try:
            await self.session.flush()
        except SQLAlchemyError as exc:
            raise PersistenceFailure("failed to create loan") from exc
        return loan.id

    async def get_loan(self, loan_id: UUID) -> Loan:
        stmt = select(Loan).where(Loan.id == loan_id).execution_options(populate_existing=True)
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as exc:
            raise PersistenceFailure("failed to load loan") from exc
        loan = result.scalar_one_or_none()
        if loan is None:
            raise LoanNotFound("loan not found", details={"loan_id": str(loan_id)})
        # A fresh read never carries an investment staged by an earlier operation.
        loan.new_investment = None
        return loan

    async def update_with_version_check(self, loan: Loan) -> None:
        """Flush the loan predicated on the version that was read.

        The staged investment amount is merged into the running total here.
        The mapper's ``version_id_col`` adds ``AND version = :read_version``
        to the UPDATE and bumps the version by one.
        """
        staged = loan.new_investment
        if staged is not None:
            loan.total_invested_amount = (loan.total_invested_amount or Decimal("0")) + Decimal(
                str(staged.amount)
            )
        read_version = loan.version
        try:
            await self.session.flush()
        except StaleDataError as exc:
            raise ConcurrentModification(
                "The loan was updated by another request. Please refresh and retry.",
                details={"loan_id": str(loan.id), "version": read_version},
            ) from exc
        except SQLAlchemyError as exc:
            raise PersistenceFailure("failed to update loan") from exc

    async def append_investment(self, loan: Loan) -> LoanInvestment:
        staged = loan.new_investment
        if staged is None:
            raise ValueError("no investment staged on loan")
        record = LoanInvestment(
            loan_id=loan.id,
            investor_id=staged.investor_id,
            investor_name=staged.name,
            email=staged.email,
            amount=Decimal(str(staged.amount)),
        )
        self.session.add(record)
        return record

    async def append_transition(
        self,
        loan_id: UUID,
        previous_state: LoanState,
        event: LoanEvent,
        next_state: LoanState,
    ) -> LoanStateTransition:
        record = LoanStateTransition(
            loan_id=loan_id,
            previous_state=_state_value(previous_state),
            event=_state_value(event),
            next_state=_state_value(next_state),
        )
        self.session.add(record)
        return record

    async def list_investments(self, loan_id: UUID) -> list[LoanInvestment]:
        stmt = (
            select(LoanInvestment)
            .where(LoanInvestment.loan_id == loan_id)
            .order_by(LoanInvestment.id.asc())
        )
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as exc:
            raise PersistenceFailure("failed to load investments") from exc
        return list(result.scalars().all())

    async def list_transitions(self, loan_id: UUID) -> list[LoanStateTransition]:
        stmt = (
            select(LoanStateTransition)
            .where(LoanStateTransition.loan_id == loan_id)
            .order_by(LoanStateTransition.id.asc())
        )
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as exc:
            raise PersistenceFailure("failed to load transitions") from exc
        return list(result.scalars().all())

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["LoanRepository"]:
        """Scoped transactional handle.

        Commits only when the block exits cleanly. Any exception raised in
        the block or by the commit itself, cancellation included, rolls back
        every write made in the scope before propagating.
        """
        started = time.perf_counter()
        try:
            yield self
            await self.session.commit()
        except BaseException as exc:
            await self.session.rollback()
            logger.warning(
                "Transaction rolled back: %s",
                exc.__class__.__name__,
                extra={"outcome": "rolled_back", "duration_ms": _elapsed_ms(started)},
            )
            if isinstance(exc, StaleDataError):
                raise ConcurrentModification(
                    "The loan was updated by another request. Please refresh and retry."
                ) from exc
            if isinstance(exc, SQLAlchemyError):
                raise PersistenceFailure("transaction failed") from exc
            raise
        else:
            logger.info(
                "Transaction committed",
                extra={"outcome": "committed", "duration_ms": _elapsed_ms(started)},
            )
