"""Eligibility rules, one per loan event.

Each rule reads the loan (including whatever the current operation staged on
it) and decides the next state. A rejected loan keeps its current state and
the rule returns the reason; rules never mutate the loan.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Callable

from loan_engine.models.loan import Loan, is_blank
from loan_engine.schemas.loan import LoanState

RuleDecision = tuple[LoanState, str | None]
Rule = Callable[[Loan], RuleDecision]

ZERO = Decimal("0")
# Amounts are stored as NUMERIC(18, 2).
CENT = Decimal("0.01")

_APPROVAL_MESSAGES = {
    "proof_image_url": "approval proof image is empty",
    "field_validator_id": "approval field validator is empty",
    "approval_date": "approval date is empty",
}

_DISBURSEMENT_MESSAGES = {
    "signed_agreement_letter_url": "disbursement agreement letter is empty",
    "field_officer_id": "disbursement field officer is empty",
    "disbursement_date": "disbursement date is empty",
}


def _as_decimal(value) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _current(loan: Loan) -> LoanState:
    return LoanState(loan.state)


def _whole_cents(value: Decimal) -> bool:
    return value % CENT == ZERO


def submission_rule(loan: Loan) -> RuleDecision:
    if is_blank(loan.borrower_id):
        return _current(loan), "loan borrower ID data is empty"
    if _as_decimal(loan.principal_amount) <= ZERO:
        return _current(loan), "loan principal amount must be greater than zero"
    if not _whole_cents(_as_decimal(loan.principal_amount)):
        return _current(loan), "loan principal amount must not have more than 2 decimal places"
    if _as_decimal(loan.rate) <= ZERO:
        return _current(loan), "loan rate must be greater than zero"
    if _as_decimal(loan.roi) <= ZERO:
        return _current(loan), "loan roi must be greater than zero"
    return LoanState.PROPOSED, None


def approve_rule(loan: Loan) -> RuleDecision:
    missing = loan.missing_approval_fields()
    if missing:
        return _current(loan), _APPROVAL_MESSAGES[missing[0]]
    return LoanState.APPROVED, None


def add_investment_rule(loan: Loan) -> RuleDecision:
    investment = loan.new_investment
    if investment is None:
        return _current(loan), "no investment staged on loan"
    if is_blank(investment.investor_id):
        return _current(loan), "investor id for investment is empty"
    if is_blank(investment.name):
        return _current(loan), "investor name for investment is empty"
    if is_blank(investment.email):
        return _current(loan), "investor email for investment is empty"

    amount = _as_decimal(investment.amount)
    if amount <= ZERO:
        return _current(loan), "investor amount for investment must be greater than zero"
    if not _whole_cents(amount):
        return (
            _current(loan),
            "investor amount for investment must not have more than 2 decimal places",
        )

    principal = _as_decimal(loan.principal_amount)
    new_total = _as_decimal(loan.total_invested_amount) + amount
    if new_total > principal:
        return _current(loan), "investment would exceed loan principal amount"
    if new_total == principal:
        return LoanState.INVESTED, None
    return LoanState.APPROVED, None


def disburse_funds_rule(loan: Loan) -> RuleDecision:
    missing = loan.missing_disbursement_fields()
    if missing:
        return _current(loan), _DISBURSEMENT_MESSAGES[missing[0]]
    return LoanState.DISBURSED, None
