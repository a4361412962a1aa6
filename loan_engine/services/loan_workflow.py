from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from loan_engine.core.context import set_loan_id
from loan_engine.models.loan import InvestmentPayload, Loan
from loan_engine.models.loan_investment import LoanInvestment
from loan_engine.models.loan_state_transition import LoanStateTransition
from loan_engine.schemas.loan import LoanEvent, LoanState
from loan_engine.services.loan_repository import LoanGateway
from loan_engine.services.loan_state_machine import LoanStateMachine
from loan_engine.services.side_effects import SideEffectDispatcher

logger = logging.getLogger(__name__)

AgreementStep = Callable[[UUID], Awaitable[object]]


@dataclass(frozen=True)
class InvestmentOutcome:
    loan: Loan
    fully_invested: bool


class LoanWorkflowService:
    """Drives one business event per call: load, decide, commit, dispatch.

    Rule and state-machine failures are raised before anything is written.
    Writes for one event (loan row, investment, audit record) share a single
    transaction; the loan row update is predicated on the version read.
    """

    def __init__(
        self,
        repository: LoanGateway,
        dispatcher: SideEffectDispatcher | None = None,
        agreement_delivery: AgreementStep | None = None,
    ) -> None:
        self.repository = repository
        self.dispatcher = dispatcher
        self.agreement_delivery = agreement_delivery

    async def create_loan(
        self,
        *,
        borrower_id: str,
        principal_amount: Decimal,
        rate: Decimal,
        roi: Decimal,
    ) -> Loan:
        loan = Loan(
            borrower_id=borrower_id,
            principal_amount=principal_amount,
            rate=rate,
            roi=roi,
            state=LoanState.INITIAL.value,
            total_invested_amount=Decimal("0"),
        )
        machine = LoanStateMachine(LoanState.INITIAL)
        machine.transition(loan, LoanEvent.SUBMISSION)

        async with self.repository.transaction() as repo:
            loan_id = await repo.create(loan)
            set_loan_id(str(loan_id))
            await repo.append_transition(
                loan_id, LoanState.INITIAL, LoanEvent.SUBMISSION, machine.current_state
            )
        self._log_transition(loan, LoanState.INITIAL, LoanEvent.SUBMISSION)
        return loan

    async def approve_loan(
        self,
        loan_id: UUID,
        *,
        validator_id: str | None,
        proof_image_url: str | None,
        approval_date: datetime | None,
    ) -> Loan:
        set_loan_id(str(loan_id))
        async with self.repository.transaction() as repo:
            loan = await repo.get_loan(loan_id)
            previous = LoanState(loan.state)
            loan.stage_approval(
                validator_id=validator_id,
                proof_image_url=proof_image_url,
                approval_date=approval_date,
            )
            self._advance(loan, LoanEvent.APPROVE)

            await repo.update_with_version_check(loan)
            await repo.append_transition(loan.id, previous, LoanEvent.APPROVE, loan.state)
        self._log_transition(loan, previous, LoanEvent.APPROVE)
        return loan

    async def add_investment(
        self,
        loan_id: UUID,
        *,
        investor_id: str,
        name: str,
        email: str,
        amount: Decimal,
    ) -> InvestmentOutcome:
        set_loan_id(str(loan_id))
        async with self.repository.transaction() as repo:
            loan = await repo.get_loan(loan_id)
            previous = LoanState(loan.state)
            loan.stage_investment(
                InvestmentPayload(investor_id=investor_id, name=name, email=email, amount=amount)
            )
            self._advance(loan, LoanEvent.ADD_INVESTMENT)

            await repo.update_with_version_check(loan)
            await repo.append_investment(loan)
            await repo.append_transition(loan.id, previous, LoanEvent.ADD_INVESTMENT, loan.state)
        loan.new_investment = None
        self._log_transition(loan, previous, LoanEvent.ADD_INVESTMENT)

        fully_invested = loan.state == LoanState.INVESTED.value
        if fully_invested:
            self._dispatch_agreement(loan.id)
        return InvestmentOutcome(loan=loan, fully_invested=fully_invested)

    async def disburse_loan(
        self,
        loan_id: UUID,
        *,
        officer_id: str | None,
        agreement_letter_url: str | None,
        disbursement_date: datetime | None,
    ) -> Loan:
        set_loan_id(str(loan_id))
        async with self.repository.transaction() as repo:
            loan = await repo.get_loan(loan_id)
            previous = LoanState(loan.state)
            loan.stage_disbursement(
                officer_id=officer_id,
                agreement_letter_url=agreement_letter_url,
                disbursement_date=disbursement_date,
            )
            self._advance(loan, LoanEvent.DISBURSE_FUNDS)

            await repo.update_with_version_check(loan)
            await repo.append_transition(loan.id, previous, LoanEvent.DISBURSE_FUNDS, loan.state)
        self._log_transition(loan, previous, LoanEvent.DISBURSE_FUNDS)
        return loan

    async def get_loan(self, loan_id: UUID) -> Loan:
        set_loan_id(str(loan_id))
        return await self.repository.get_loan(loan_id)

    async def get_loan_history(self, loan_id: UUID) -> list[LoanStateTransition]:
        await self.get_loan(loan_id)
        return await self.repository.list_transitions(loan_id)

    async def list_investments(self, loan_id: UUID) -> list[LoanInvestment]:
        await self.get_loan(loan_id)
        return await self.repository.list_investments(loan_id)

    def _advance(self, loan: Loan, event: LoanEvent) -> None:
        # One machine per operation, seeded with the persisted state.
        LoanStateMachine(loan.state).transition(loan, event)

    def _dispatch_agreement(self, loan_id: UUID) -> None:
        if self.dispatcher is None or self.agreement_delivery is None:
            logger.warning("No agreement delivery configured; loan %s left without agreement", loan_id)
            return
        delivery = self.agreement_delivery

        async def deliver() -> None:
            await delivery(loan_id)

        self.dispatcher.dispatch(deliver, name=f"agreement-delivery:{loan_id}")
        logger.info("Agreement delivery for loan %s is in progress", loan_id)

    def _log_transition(self, loan: Loan, previous: LoanState, event: LoanEvent) -> None:
        logger.info(
            "Loan %s moved %s -> %s on %s (version %s)",
            loan.id,
            previous.value,
            loan.state,
            event.value,
            loan.version,
            extra={
                "event": event.value,
                "previous_state": previous.value,
                "next_state": loan.state,
                "version": loan.version,
            },
        )
