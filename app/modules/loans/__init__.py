# Loans module
from app.modules.loans.models import (
    LoanRequest, LoanFunding, LoanRepayment, LoanStatus, LoanPurpose
)

__all__ = ["LoanRequest", "LoanFunding", "LoanRepayment", "LoanStatus", "LoanPurpose"]
