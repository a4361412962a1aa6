from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from loan_engine.db.session import get_db
from loan_engine.services.loan_repository import LoanRepository
from loan_engine.services.loan_workflow import LoanWorkflowService
from loan_engine.services.side_effects import SideEffectDispatcher


def get_dispatcher(request: Request) -> SideEffectDispatcher | None:
    return getattr(request.app.state, "side_effects", None)


def get_agreement_delivery(request: Request):
    return getattr(request.app.state, "agreement_delivery", None)


async def get_db_session(db: AsyncSession = Depends(get_db)) -> AsyncSession:
    return db


async def get_loan_workflow(
    db: AsyncSession = Depends(get_db_session),
    dispatcher: SideEffectDispatcher | None = Depends(get_dispatcher),
    agreement_delivery=Depends(get_agreement_delivery),
) -> LoanWorkflowService:
    return LoanWorkflowService(
        LoanRepository(db),
        dispatcher=dispatcher,
        agreement_delivery=agreement_delivery,
    )
