import asyncio
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from loan_engine.models.loan import InvestmentPayload, Loan
from loan_engine.models.loan_investment import LoanInvestment
from loan_engine.models.loan_state_transition import LoanStateTransition
from loan_engine.schemas.loan import LoanEvent, LoanState
from loan_engine.services.loan_errors import ConcurrentModification, LoanNotFound
from loan_engine.services.loan_repository import LoanRepository

from conftest import APPROVED_AT


def _new_loan(state: LoanState = LoanState.PROPOSED, total: str = "0") -> Loan:
    return Loan(
        borrower_id="B1",
        principal_amount=Decimal("1000"),
        rate=Decimal("5"),
        roi=Decimal("10"),
        state=state.value,
        total_invested_amount=Decimal(total),
    )


async def _seed(session_factory, loan: Loan):
    async with session_factory() as session:
        repo = LoanRepository(session)
        async with repo.transaction():
            loan_id = await repo.create(loan)
    return loan_id


async def test_create_assigns_id_and_first_version(session_factory) -> None:
    loan_id = await _seed(session_factory, _new_loan())

    async with session_factory() as session:
        stored = await LoanRepository(session).get_loan(loan_id)

    assert stored.version == 1
    assert stored.state == "proposed"
    assert stored.total_invested_amount == Decimal("0")
    assert stored.created_at is not None


async def test_get_loan_unknown_id_raises_not_found(session) -> None:
    with pytest.raises(LoanNotFound):
        await LoanRepository(session).get_loan(uuid4())


async def test_update_bumps_version_by_one(session_factory) -> None:
    loan_id = await _seed(session_factory, _new_loan())

    async with session_factory() as session:
        repo = LoanRepository(session)
        async with repo.transaction():
            loan = await repo.get_loan(loan_id)
            loan.stage_approval(validator_id="V1", proof_image_url="p.jpg", approval_date=APPROVED_AT)
            loan.state = LoanState.APPROVED.value
            await repo.update_with_version_check(loan)

    async with session_factory() as session:
        stored = await LoanRepository(session).get_loan(loan_id)
    assert stored.version == 2
    assert stored.state == "approved"
    assert stored.field_validator_id == "V1"


async def test_update_merges_staged_investment_into_total(session_factory) -> None:
    loan_id = await _seed(session_factory, _new_loan(LoanState.APPROVED, total="300"))

    async with session_factory() as session:
        repo = LoanRepository(session)
        async with repo.transaction():
            loan = await repo.get_loan(loan_id)
            loan.stage_investment(
                InvestmentPayload(investor_id="I1", name="Ivy", email="ivy@example.com", amount=Decimal("200"))
            )
            await repo.update_with_version_check(loan)
            await repo.append_investment(loan)

    async with session_factory() as session:
        repo = LoanRepository(session)
        stored = await repo.get_loan(loan_id)
        investments = await repo.list_investments(loan_id)
    assert stored.total_invested_amount == Decimal("500")
    assert [(item.investor_id, item.amount) for item in investments] == [("I1", Decimal("200"))]


async def test_stale_version_is_rejected_and_row_left_unchanged(session_factory) -> None:
    loan_id = await _seed(session_factory, _new_loan())

    async with session_factory() as first, session_factory() as second:
        repo_a = LoanRepository(first)
        repo_b = LoanRepository(second)
        loan_a = await repo_a.get_loan(loan_id)
        loan_b = await repo_b.get_loan(loan_id)

        async with repo_b.transaction():
            loan_b.proof_image_url = "winner.jpg"
            await repo_b.update_with_version_check(loan_b)

        with pytest.raises(ConcurrentModification):
            async with repo_a.transaction():
                loan_a.proof_image_url = "loser.jpg"
                await repo_a.update_with_version_check(loan_a)
                await repo_a.append_transition(
                    loan_id, LoanState.PROPOSED, LoanEvent.APPROVE, LoanState.APPROVED
                )

    async with session_factory() as session:
        repo = LoanRepository(session)
        stored = await repo.get_loan(loan_id)
        transitions = await repo.list_transitions(loan_id)
    assert stored.version == 2
    assert stored.proof_image_url == "winner.jpg"
    assert transitions == []


async def test_transaction_rolls_back_every_write_on_error(session_factory) -> None:
    loan = _new_loan()

    with pytest.raises(RuntimeError):
        async with session_factory() as session:
            repo = LoanRepository(session)
            async with repo.transaction():
                loan_id = await repo.create(loan)
                await repo.append_transition(
                    loan_id, LoanState.INITIAL, LoanEvent.SUBMISSION, LoanState.PROPOSED
                )
                raise RuntimeError("boom")

    async with session_factory() as session:
        loans = await session.scalar(select(func.count()).select_from(Loan))
        transitions = await session.scalar(select(func.count()).select_from(LoanStateTransition))
    assert loans == 0
    assert transitions == 0


async def test_transaction_rolls_back_on_cancellation(session_factory) -> None:
    with pytest.raises(asyncio.CancelledError):
        async with session_factory() as session:
            repo = LoanRepository(session)
            async with repo.transaction():
                await repo.create(_new_loan())
                raise asyncio.CancelledError()

    async with session_factory() as session:
        assert await session.scalar(select(func.count()).select_from(Loan)) == 0


async def test_history_is_returned_in_insertion_order(session_factory) -> None:
    loan_id = await _seed(session_factory, _new_loan())

    async with session_factory() as session:
        repo = LoanRepository(session)
        async with repo.transaction():
            await repo.append_transition(
                loan_id, LoanState.INITIAL, LoanEvent.SUBMISSION, LoanState.PROPOSED
            )
            await repo.append_transition(
                loan_id, LoanState.PROPOSED, LoanEvent.APPROVE, LoanState.APPROVED
            )

    async with session_factory() as session:
        transitions = await LoanRepository(session).list_transitions(loan_id)
    assert [(t.previous_state, t.event, t.next_state) for t in transitions] == [
        ("initial", "submission", "proposed"),
        ("proposed", "approve", "approved"),
    ]


async def test_investments_are_listed_in_insertion_order(session_factory) -> None:
    loan_id = await _seed(session_factory, _new_loan(LoanState.APPROVED))

    async with session_factory() as session:
        repo = LoanRepository(session)
        async with repo.transaction():
            loan = await repo.get_loan(loan_id)
            for investor, amount in (("I2", "100"), ("I1", "50")):
                loan.stage_investment(
                    InvestmentPayload(
                        investor_id=investor,
                        name=investor,
                        email=f"{investor}@example.com",
                        amount=Decimal(amount),
                    )
                )
                await repo.append_investment(loan)

    async with session_factory() as session:
        investments = await LoanRepository(session).list_investments(loan_id)
    assert [item.investor_id for item in investments] == ["I2", "I1"]
    assert all(isinstance(item, LoanInvestment) for item in investments)
