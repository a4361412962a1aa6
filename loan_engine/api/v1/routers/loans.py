from uuid import UUID

from fastapi import APIRouter, Depends, status

from loan_engine.api import deps
from loan_engine.core.response_envelope import success_envelope
from loan_engine.core.security import require_basic_auth
from loan_engine.schemas.loan import (
    LoanApproveRequest,
    LoanCreateRequest,
    LoanDisburseRequest,
    LoanDTO,
    LoanInvestmentDTO,
    LoanInvestmentRequest,
    LoanTransitionDTO,
)
from loan_engine.services.loan_workflow import LoanWorkflowService

router = APIRouter(prefix="/loans", tags=["loans"], dependencies=[Depends(require_basic_auth)])


@router.post("", status_code=status.HTTP_201_CREATED, summary="Create a loan proposal")
async def create_loan(
    payload: LoanCreateRequest,
    workflow: LoanWorkflowService = Depends(deps.get_loan_workflow),
) -> dict:
    loan = await workflow.create_loan(
        borrower_id=payload.borrower_id,
        principal_amount=payload.principal_amount,
        rate=payload.rate,
        roi=payload.roi,
    )
    return success_envelope(
        loan.id, status_code=status.HTTP_201_CREATED, message="Loan created successfully"
    )


@router.patch("/{loan_id}/approve", summary="Approve a proposed loan")
async def approve_loan(
    loan_id: UUID,
    payload: LoanApproveRequest,
    workflow: LoanWorkflowService = Depends(deps.get_loan_workflow),
) -> dict:
    loan = await workflow.approve_loan(
        loan_id,
        validator_id=payload.validator_id,
        proof_image_url=payload.proof_image_url,
        approval_date=payload.approval_date,
    )
    return success_envelope(LoanDTO.model_validate(loan), message="Loan approved successfully")


@router.post(
    "/{loan_id}/investments",
    status_code=status.HTTP_201_CREATED,
    summary="Add an investment to an approved loan",
)
async def add_investment(
    loan_id: UUID,
    payload: LoanInvestmentRequest,
    workflow: LoanWorkflowService = Depends(deps.get_loan_workflow),
) -> dict:
    outcome = await workflow.add_investment(
        loan_id,
        investor_id=payload.investor_id,
        name=payload.name,
        email=payload.email,
        amount=payload.amount,
    )
    data = "Loan is already invested" if outcome.fully_invested else None
    return success_envelope(
        data,
        status_code=status.HTTP_201_CREATED,
        message="Loan investment created successfully",
    )


@router.patch("/{loan_id}/disburse", summary="Disburse a fully invested loan")
async def disburse_loan(
    loan_id: UUID,
    payload: LoanDisburseRequest,
    workflow: LoanWorkflowService = Depends(deps.get_loan_workflow),
) -> dict:
    loan = await workflow.disburse_loan(
        loan_id,
        officer_id=payload.officer_id,
        agreement_letter_url=payload.agreement_letter_url,
        disbursement_date=payload.disbursement_date,
    )
    return success_envelope(LoanDTO.model_validate(loan), message="Loan disbursed successfully")


@router.get("/{loan_id}", summary="Get a loan")
async def get_loan(
    loan_id: UUID,
    workflow: LoanWorkflowService = Depends(deps.get_loan_workflow),
) -> dict:
    loan = await workflow.get_loan(loan_id)
    return success_envelope(LoanDTO.model_validate(loan))


@router.get("/{loan_id}/transitions", summary="List the state history of a loan")
async def list_transitions(
    loan_id: UUID,
    workflow: LoanWorkflowService = Depends(deps.get_loan_workflow),
) -> dict:
    transitions = await workflow.get_loan_history(loan_id)
    return success_envelope([LoanTransitionDTO.model_validate(item) for item in transitions])


@router.get("/{loan_id}/investments", summary="List the investments of a loan")
async def list_investments(
    loan_id: UUID,
    workflow: LoanWorkflowService = Depends(deps.get_loan_workflow),
) -> dict:
    investments = await workflow.list_investments(loan_id)
    return success_envelope([LoanInvestmentDTO.model_validate(item) for item in investments])
