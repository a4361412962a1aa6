from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class LoanState(str, Enum):
    INITIAL = "initial"
    PROPOSED = "proposed"
    APPROVED = "approved"
    INVESTED = "invested"
    DISBURSED = "disbursed"


class LoanEvent(str, Enum):
    SUBMISSION = "submission"
    APPROVE = "approve"
    ADD_INVESTMENT = "add_investment"
    DISBURSE_FUNDS = "disburse_funds"


# Request payloads only enforce types; eligibility is decided by the transition rules.


class LoanCreateRequest(BaseModel):
    borrower_id: str = ""
    principal_amount: Decimal = Decimal("0")
    rate: Decimal = Decimal("0")
    roi: Decimal = Decimal("0")


class LoanApproveRequest(BaseModel):
    validator_id: str | None = None
    proof_image_url: str | None = None
    approval_date: datetime | None = None


class LoanInvestmentRequest(BaseModel):
    investor_id: str = ""
    name: str = ""
    email: str = ""
    amount: Decimal = Decimal("0")


class LoanDisburseRequest(BaseModel):
    officer_id: str | None = None
    agreement_letter_url: str | None = None
    disbursement_date: datetime | None = None


class LoanInvestmentDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    investor_id: str
    investor_name: str
    email: str
    amount: Decimal
    created_at: datetime | None = None


class LoanTransitionDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    loan_id: UUID
    previous_state: LoanState
    event: LoanEvent
    next_state: LoanState
    created_at: datetime | None = None


class LoanDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    borrower_id: str
    principal_amount: Decimal
    rate: Decimal
    roi: Decimal
    state: LoanState
    total_invested_amount: Decimal
    version: int
    agreement_letter_url: str | None = None
    field_validator_id: str | None = None
    proof_image_url: str | None = None
    approval_date: datetime | None = None
    field_officer_id: str | None = None
    signed_agreement_letter_url: str | None = None
    disbursement_date: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
