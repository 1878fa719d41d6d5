from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from app.modules.loans.models import LoanStatus, LoanPurpose


class LoanCreateRequest(BaseModel):
    """Loan terms proposed by a borrower; ranges are enforced by LoanService"""
    title: str
    description: str
    amount: Decimal
    interest_rate: Decimal
    tenure_days: int
    purpose: LoanPurpose = LoanPurpose.OTHER
    currency: Optional[str] = Field(None, min_length=3, max_length=3)


class LoanFundingResponse(BaseModel):
    id: int
    loan_id: int
    lender_id: str
    amount: Decimal
    funded_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class LoanResponse(BaseModel):
    id: int
    borrower_id: str
    title: str
    description: str
    purpose: LoanPurpose
    amount: Decimal
    currency: str
    interest_rate: Decimal
    tenure_days: int
    status: LoanStatus
    total_funded: Decimal
    remaining_amount: Decimal
    funding_progress: Decimal
    created_at: Optional[datetime] = None
    funded_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    fundings: List[LoanFundingResponse] = []

    class Config:
        from_attributes = True


class FundLoanRequest(BaseModel):
    amount: Decimal = Field(..., gt=0)
    idempotency_key: Optional[str] = Field(None, max_length=100)


class FundingResultResponse(BaseModel):
    funding: LoanFundingResponse
    loan_id: int
    loan_status: LoanStatus
    total_funded: Decimal
    remaining_amount: Decimal
    funding_fee: Decimal
    net_to_borrower: Decimal
    lender_balance: Decimal
    warnings: List[str] = []


class RepayLoanRequest(BaseModel):
    idempotency_key: Optional[str] = Field(None, max_length=100)


class LenderPaymentResponse(BaseModel):
    lender_id: str
    funded_amount: Decimal
    amount: Decimal


class RepaymentResultResponse(BaseModel):
    loan_id: int
    loan_status: LoanStatus
    principal: Decimal
    interest_amount: Decimal
    repayment_amount: Decimal
    platform_fee: Decimal
    platform_fee_percentage: Decimal
    net_amount_to_lender: Decimal
    borrower_balance: Decimal
    lender_payments: List[LenderPaymentResponse]
    closure_document_created: bool
    warnings: List[str] = []
