"""
Ledger error taxonomy.

Every error is a ``ValueError`` so routers can keep translating service
failures with a plain ``except ValueError``.
"""
from decimal import Decimal
from typing import Optional


class LedgerError(ValueError):
    """Base class for wallet and loan ledger failures"""


class InvalidAmount(LedgerError):
    """Non-positive or out-of-range amount"""


class InvalidLoanTerms(LedgerError):
    """Loan terms failed validation"""


class InsufficientFunds(LedgerError):
    """Debit exceeds the wallet balance"""

    def __init__(self, balance: Decimal, requested: Decimal, message: Optional[str] = None):
        self.balance = balance
        self.requested = requested
        self.shortfall = requested - balance
        super().__init__(
            message or f"Insufficient funds: short by {self.shortfall:.2f} "
            f"(balance {balance:.2f}, requested {requested:.2f})"
        )


class LoanNotFundable(LedgerError):
    """Loan is not open for funding or the amount exceeds what remains"""

    def __init__(self, message: str, remaining: Optional[Decimal] = None):
        self.remaining = remaining
        super().__init__(message)


class InvalidStateTransition(LedgerError):
    """Illegal loan status change"""


class ConcurrencyConflict(LedgerError):
    """Lost a race to commit; retry the whole use case"""

    def __init__(self, message: str = "The operation conflicted with another request, please try again"):
        super().__init__(message)


class NotFound(LedgerError):
    """Referenced wallet, loan or record does not exist"""


HTTP_STATUS_BY_ERROR = {
    NotFound: 404,
    InsufficientFunds: 402,
    LoanNotFundable: 409,
    ConcurrencyConflict: 409,
    InvalidStateTransition: 409,
}


def http_status_for(error: LedgerError) -> int:
    """HTTP status code the API layer reports for a ledger error"""
    for error_type, status_code in HTTP_STATUS_BY_ERROR.items():
        if isinstance(error, error_type):
            return status_code
    return 400
