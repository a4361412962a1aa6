"""Agreement letter generation and delivery for fully invested loans."""

import asyncio
import logging
from decimal import Decimal
from uuid import UUID

from fpdf import FPDF
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from loan_engine.models.loan import Loan
from loan_engine.schemas.loan import LoanState
from loan_engine.services.loan_errors import ConcurrentModification, SideEffectFailure
from loan_engine.services.loan_repository import LoanRepository
from loan_engine.services.notifications import SendGridMailer
from loan_engine.services.storage.adapter import DocumentStorageAdapter

logger = logging.getLogger(__name__)

AGREEMENT_CONTENT_TYPE = "application/pdf"


def _latin1(text: str) -> str:
    # core PDF fonts only cover latin-1
    return text.encode("latin-1", "replace").decode("latin-1")


def _money(value) -> str:
    return f"{Decimal(str(value or 0)):.2f}"


def agreement_object_key(loan_id: UUID | str) -> str:
    return f"agreements/loan_agreement_{loan_id}.pdf"


def render_agreement(loan: Loan) -> bytes:
    investments = list(loan.investments or ())
    pdf = FPDF(orientation="P", unit="mm", format="A4")
    pdf.set_title("Loan Agreement")
    pdf.add_page()
    pdf.set_font("Helvetica", style="B", size=16)
    pdf.cell(190, 10, "Loan Agreement")
    pdf.ln(20)

    pdf.set_font("Helvetica", size=12)
    body = (
        "This Loan Agreement is made between:\n\n"
        f"Borrower: {loan.borrower_id}\n"
        f"Loan ID: {loan.id}\n"
        f"Principal Amount: {_money(loan.principal_amount)}\n"
        f"Rate: {loan.rate}\n"
        f"ROI: {loan.roi}\n\n"
        "By signing this agreement, the borrower agrees to repay the loan in accordance "
        "with the terms specified herein."
    )
    pdf.multi_cell(190, 8, _latin1(body), new_x="LMARGIN", new_y="NEXT")

    if investments:
        pdf.ln(6)
        pdf.set_font("Helvetica", style="B", size=12)
        pdf.cell(190, 8, "Investors")
        pdf.ln(10)
        pdf.set_font("Helvetica", size=11)
        for investment in investments:
            line = f"{investment.investor_name} <{investment.email}>: {_money(investment.amount)}"
            pdf.multi_cell(190, 7, _latin1(line), new_x="LMARGIN", new_y="NEXT")
    return bytes(pdf.output())


class AgreementDelivery:
    """Render, store, record and mail the agreement letter of one loan.

    Runs after the investment that filled the loan has committed, on its own
    sessions. The letter is rendered and uploaded outside any transaction;
    the URL is then recorded in a short transaction that re-reads the loan
    and only writes while it is still ``invested`` at the version that was
    rendered. Every failure surfaces as ``SideEffectFailure``; the committed
    investment is never affected.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        storage: DocumentStorageAdapter,
        mailer: SendGridMailer,
    ) -> None:
        self.session_factory = session_factory
        self.storage = storage
        self.mailer = mailer

    async def __call__(self, loan_id: UUID) -> str:
        try:
            return await self._deliver(loan_id)
        except SideEffectFailure:
            raise
        except Exception as exc:
            raise SideEffectFailure(
                f"agreement delivery failed for loan {loan_id}: {exc}",
                details={"loan_id": str(loan_id)},
            ) from exc

    async def _deliver(self, loan_id: UUID) -> str:
        async with self.session_factory() as session:
            repository = LoanRepository(session)
            loan = await repository.get_loan(loan_id)
            loan.investments = await repository.list_investments(loan_id)
        _ensure_invested(loan)
        rendered_version = loan.version

        content = await asyncio.to_thread(render_agreement, loan)
        url = await self.storage.upload(
            agreement_object_key(loan.id), content, AGREEMENT_CONTENT_TYPE
        )

        async with self.session_factory() as session:
            repository = LoanRepository(session)
            async with repository.transaction():
                current = await repository.get_loan(loan_id)
                if current.version != rendered_version:
                    raise ConcurrentModification(
                        "loan changed while its agreement was being prepared",
                        details={
                            "loan_id": str(loan_id),
                            "version": rendered_version,
                            "current_version": current.version,
                        },
                    )
                _ensure_invested(current)
                current.agreement_letter_url = url
                await repository.update_with_version_check(current)
        logger.info("Agreement letter recorded for loan %s", loan_id)

        recipients = [(item.investor_name, item.email) for item in loan.investments]
        await self.mailer.send_investment_agreement(str(loan_id), url, recipients)
        return url


def _ensure_invested(loan: Loan) -> None:
    if loan.state != LoanState.INVESTED.value:
        raise SideEffectFailure(
            f"loan {loan.id} is {loan.state}; agreement is only delivered for invested loans",
            details={"loan_id": str(loan.id), "state": loan.state},
        )
