from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Uuid,
    func,
)

from loan_engine.db.base import Base
from loan_engine.models.loan import utcnow


class LoanInvestment(Base):
    __tablename__ = "loan_investments"
    __table_args__ = (CheckConstraint("amount > 0", name="ck_loan_investments_amount_positive"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    loan_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("loans.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    investor_id = Column(String(100), nullable=False)
    investor_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    amount = Column(Numeric(18, 2), nullable=False)
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
