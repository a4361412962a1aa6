from datetime import datetime, timezone
from decimal import Decimal

import pytest

from loan_engine.models.loan import InvestmentPayload, Loan
from loan_engine.schemas.loan import LoanEvent, LoanState
from loan_engine.services.loan_errors import (
    EventNotAllowed,
    InvalidState,
    RuleViolation,
    ValidationFailed,
)
from loan_engine.services.loan_state_machine import TRANSITIONS, LoanStateMachine


def _loan(state: LoanState) -> Loan:
    return Loan(
        borrower_id="B1",
        principal_amount=Decimal("1000"),
        rate=Decimal("5"),
        roi=Decimal("10"),
        state=state.value,
        total_invested_amount=Decimal("0"),
    )


def test_transition_table_is_closed_and_disbursed_is_terminal() -> None:
    assert set(TRANSITIONS) == set(LoanState)
    assert dict(TRANSITIONS[LoanState.DISBURSED]) == {}
    with pytest.raises(TypeError):
        TRANSITIONS[LoanState.INITIAL][LoanEvent.APPROVE] = None  # type: ignore[index]


def test_allowed_events_follow_current_state() -> None:
    assert LoanStateMachine(LoanState.PROPOSED).allowed_events() == [LoanEvent.APPROVE]
    assert LoanStateMachine(LoanState.DISBURSED).allowed_events() == []


def test_submission_updates_machine_and_loan() -> None:
    loan = _loan(LoanState.INITIAL)
    machine = LoanStateMachine(LoanState.INITIAL)

    machine.transition(loan, LoanEvent.SUBMISSION)

    assert machine.current_state == LoanState.PROPOSED
    assert loan.state == "proposed"


def test_accepts_persisted_string_state() -> None:
    loan = _loan(LoanState.APPROVED)
    loan.stage_investment(
        InvestmentPayload(investor_id="I1", name="Ivy", email="ivy@example.com", amount=Decimal("1000"))
    )
    machine = LoanStateMachine("approved")

    machine.transition(loan, LoanEvent.ADD_INVESTMENT)

    assert loan.state == "invested"


def test_unknown_state_raises_invalid_state() -> None:
    loan = _loan(LoanState.PROPOSED)
    with pytest.raises(InvalidState) as excinfo:
        LoanStateMachine("archived").transition(loan, LoanEvent.APPROVE)
    assert "archived" in excinfo.value.message
    assert loan.state == "proposed"


def test_illegal_event_raises_event_not_allowed() -> None:
    loan = _loan(LoanState.PROPOSED)
    machine = LoanStateMachine(LoanState.PROPOSED)

    with pytest.raises(EventNotAllowed) as excinfo:
        machine.transition(loan, LoanEvent.DISBURSE_FUNDS)

    assert excinfo.value.status_code == 409
    assert excinfo.value.details == {"state": "proposed", "event": "disburse_funds"}
    assert machine.current_state == LoanState.PROPOSED
    assert loan.state == "proposed"


def test_unknown_event_name_raises_event_not_allowed() -> None:
    with pytest.raises(EventNotAllowed):
        LoanStateMachine(LoanState.PROPOSED).transition(_loan(LoanState.PROPOSED), "cancel")


def test_terminal_state_rejects_every_event() -> None:
    loan = _loan(LoanState.DISBURSED)
    for event in LoanEvent:
        with pytest.raises(EventNotAllowed):
            LoanStateMachine(LoanState.DISBURSED).transition(loan, event)
    assert loan.state == "disbursed"


def test_rule_rejection_raises_rule_violation_and_keeps_state() -> None:
    loan = _loan(LoanState.PROPOSED)
    loan.stage_approval(validator_id="V1", proof_image_url="proof.jpg", approval_date=None)
    machine = LoanStateMachine(LoanState.PROPOSED)

    with pytest.raises(RuleViolation) as excinfo:
        machine.transition(loan, LoanEvent.APPROVE)

    assert isinstance(excinfo.value, ValidationFailed)
    assert str(excinfo.value) == "state decision failed: approval date is empty"
    assert excinfo.value.details["reason"] == "approval date is empty"
    assert machine.current_state == LoanState.PROPOSED
    assert loan.state == "proposed"


def test_approve_success() -> None:
    loan = _loan(LoanState.PROPOSED)
    loan.stage_approval(
        validator_id="V1",
        proof_image_url="proof.jpg",
        approval_date=datetime(2024, 5, 1, tzinfo=timezone.utc),
    )
    LoanStateMachine(LoanState.PROPOSED).transition(loan, LoanEvent.APPROVE)
    assert loan.state == "approved"
