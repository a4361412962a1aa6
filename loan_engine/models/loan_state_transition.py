from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Uuid, func

from loan_engine.db.base import Base
from loan_engine.models.loan import utcnow


class LoanStateTransition(Base):
    """Append-only audit fact for one committed state change."""

    __tablename__ = "loan_state_transitions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    loan_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("loans.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    previous_state = Column(String(20), nullable=False)
    event = Column(String(30), nullable=False)
    next_state = Column(String(20), nullable=False)
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
