from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from app.core.config import settings
from app.core.database import get_db
from app.core.dependencies import get_current_user_id
from app.core.exceptions import LedgerError, http_status_for
from app.modules.funding.services import FundingService
from app.modules.loans.models import LoanStatus
from app.modules.loans.schemas import (
    LoanCreateRequest, LoanResponse, LoanFundingResponse, FundLoanRequest, FundingResultResponse,
    RepayLoanRequest, RepaymentResultResponse, LenderPaymentResponse
)
from app.modules.loans.services import LoanService
from app.modules.repayments.services import RepaymentService

router = APIRouter(prefix="/loans", tags=["loans"])


@router.post("/", response_model=LoanResponse, status_code=status.HTTP_201_CREATED)
async def create_loan(
    terms: LoanCreateRequest,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    service = LoanService(db)
    try:
        return await service.create_loan_request(user_id, terms)
    except LedgerError as e:
        raise HTTPException(status_code=http_status_for(e), detail=str(e))


@router.get("/", response_model=List[LoanResponse])
async def read_loans(
    status: Optional[LoanStatus] = None,
    borrower_id: Optional[str] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    service = LoanService(db)
    return await service.list_loans(status=status, borrower_id=borrower_id, skip=skip, limit=limit)


@router.get("/fundings/me", response_model=List[LoanFundingResponse])
async def read_my_fundings(
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    service = LoanService(db)
    return await service.get_lender_fundings(user_id)


@router.get("/{loan_id}", response_model=LoanResponse)
async def read_loan(
    loan_id: int,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    service = LoanService(db)
    try:
        return await service.get_loan(loan_id)
    except LedgerError as e:
        raise HTTPException(status_code=http_status_for(e), detail=str(e))


@router.post("/{loan_id}/fund", response_model=FundingResultResponse)
async def fund_loan(
    loan_id: int,
    request: FundLoanRequest,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    service = FundingService(db)
    try:
        result = await service.fund_loan(user_id, loan_id, request.amount, request.idempotency_key)
    except LedgerError as e:
        raise HTTPException(status_code=http_status_for(e), detail=str(e))

    return FundingResultResponse(
        funding=LoanFundingResponse.model_validate(result.funding),
        loan_id=result.loan.id,
        loan_status=result.loan.status,
        total_funded=result.loan.total_funded,
        remaining_amount=result.loan.remaining_amount,
        funding_fee=result.funding_fee,
        net_to_borrower=result.net_to_borrower,
        lender_balance=result.lender_balance,
        warnings=result.warnings,
    )


@router.post("/{loan_id}/repay", response_model=RepaymentResultResponse)
async def repay_loan(
    loan_id: int,
    request: Optional[RepayLoanRequest] = None,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    service = RepaymentService(db)
    idempotency_key = request.idempotency_key if request else None
    try:
        result = await service.repay_loan(user_id, loan_id, idempotency_key)
    except LedgerError as e:
        raise HTTPException(status_code=http_status_for(e), detail=str(e))

    repayment = result.repayment
    return RepaymentResultResponse(
        loan_id=result.loan.id,
        loan_status=result.loan.status,
        principal=repayment.principal,
        interest_amount=repayment.interest_amount,
        repayment_amount=repayment.repayment_amount,
        platform_fee=repayment.platform_fee,
        platform_fee_percentage=repayment.platform_fee_percentage,
        net_amount_to_lender=repayment.net_amount_to_lender,
        borrower_balance=result.borrower_balance,
        lender_payments=[
            LenderPaymentResponse(lender_id=p.lender_id, funded_amount=p.funded_amount, amount=p.amount)
            for p in result.lender_payments
        ],
        closure_document_created=result.closure_document_created,
        warnings=result.warnings,
    )


@router.post("/{loan_id}/cancel", response_model=LoanResponse)
async def cancel_loan(
    loan_id: int,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    service = LoanService(db)
    try:
        return await service.cancel_loan(loan_id, user_id)
    except LedgerError as e:
        raise HTTPException(status_code=http_status_for(e), detail=str(e))


@router.post("/{loan_id}/default", response_model=LoanResponse)
async def mark_loan_defaulted(
    loan_id: int,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    """Platform operators archive a loan the borrower failed to repay"""
    if user_id != settings.PLATFORM_ACCOUNT_ID:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the platform can mark loans as defaulted")

    service = LoanService(db)
    try:
        return await service.mark_defaulted(loan_id)
    except LedgerError as e:
        raise HTTPException(status_code=http_status_for(e), detail=str(e))
