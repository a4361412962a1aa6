import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, Numeric, String, Uuid, func

from loan_engine.db.base import Base


@dataclass(frozen=True)
class InvestmentPayload:
    """The single investment staged on a loan for the current operation."""

    investor_id: str
    name: str
    email: str
    amount: Decimal


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_blank(value) -> bool:
    """Shared absent-or-empty check for approval and disbursement fields."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, datetime):
        return value.replace(tzinfo=None) == datetime.min
    return False


class Loan(Base):
    __tablename__ = "loans"
    __allow_unmapped__ = True
    __table_args__ = (
        CheckConstraint("principal_amount > 0", name="ck_loans_principal_positive"),
        CheckConstraint("rate > 0", name="ck_loans_rate_positive"),
        CheckConstraint("roi > 0", name="ck_loans_roi_positive"),
        CheckConstraint("total_invested_amount >= 0", name="ck_loans_total_invested_nonneg"),
        CheckConstraint(
            "total_invested_amount <= principal_amount",
            name="ck_loans_total_invested_within_principal",
        ),
        CheckConstraint("version >= 1", name="ck_loans_version_positive"),
        CheckConstraint(
            "state IN ('initial', 'proposed', 'approved', 'invested', 'disbursed')",
            name="ck_loans_state",
        ),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    borrower_id = Column(String(100), nullable=False, index=True)
    principal_amount = Column(Numeric(18, 2), nullable=False)
    rate = Column(Numeric(10, 4), nullable=False)
    roi = Column(Numeric(10, 4), nullable=False)
    state = Column(String(20), nullable=False, index=True)
    total_invested_amount = Column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    version = Column(Integer, nullable=False)
    agreement_letter_url = Column(String(2048), nullable=True)
    field_validator_id = Column(String(100), nullable=True)
    proof_image_url = Column(String(2048), nullable=True)
    approval_date = Column(DateTime(timezone=True), nullable=True)
    field_officer_id = Column(String(100), nullable=True)
    signed_agreement_letter_url = Column(String(2048), nullable=True)
    disbursement_date = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
    )

    __mapper_args__ = {"version_id_col": version}

    # Not persisted: staged for the current operation / loaded on demand.
    new_investment: InvestmentPayload | None = None
    investments: Sequence = ()

    def stage_approval(
        self,
        *,
        validator_id: str | None,
        proof_image_url: str | None,
        approval_date: datetime | None,
    ) -> None:
        self.field_validator_id = validator_id
        self.proof_image_url = proof_image_url
        self.approval_date = approval_date

    def stage_disbursement(
        self,
        *,
        officer_id: str | None,
        agreement_letter_url: str | None,
        disbursement_date: datetime | None,
    ) -> None:
        self.field_officer_id = officer_id
        self.signed_agreement_letter_url = agreement_letter_url
        self.disbursement_date = disbursement_date

    def stage_investment(self, payload: InvestmentPayload) -> None:
        self.new_investment = payload

    def missing_approval_fields(self) -> list[str]:
        missing: list[str] = []
        if is_blank(self.proof_image_url):
            missing.append("proof_image_url")
        if is_blank(self.field_validator_id):
            missing.append("field_validator_id")
        if is_blank(self.approval_date):
            missing.append("approval_date")
        return missing

    def missing_disbursement_fields(self) -> list[str]:
        missing: list[str] = []
        if is_blank(self.signed_agreement_letter_url):
            missing.append("signed_agreement_letter_url")
        if is_blank(self.field_officer_id):
            missing.append("field_officer_id")
        if is_blank(self.disbursement_date):
            missing.append("disbursement_date")
        return missing

    def approval_satisfied(self) -> bool:
        return not self.missing_approval_fields()

    def disbursement_satisfied(self) -> bool:
        return not self.missing_disbursement_fields()
