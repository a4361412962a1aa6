from loan_engine.models.loan import InvestmentPayload, Loan
from loan_engine.models.loan_investment import LoanInvestment
from loan_engine.models.loan_state_transition import LoanStateTransition

__all__ = [
    "InvestmentPayload",
    "Loan",
    "LoanInvestment",
    "LoanStateTransition",
]
