from fastapi import APIRouter, HTTPException

from app.modules.fees import calculator
from app.modules.fees.schemas import (
    FeeQuoteRequest, FeeQuoteResponse, RateSuggestionRequest, RateSuggestionResponse
)

router = APIRouter(prefix="/fees", tags=["fees"])


@router.post("/quote", response_model=FeeQuoteResponse)
async def quote_fees(request: FeeQuoteRequest):
    """Interest, platform fee and repayment figures for proposed loan terms"""
    try:
        fee_quote = calculator.quote(request.principal, request.interest_rate, request.tenure_days)
        metrics = calculator.calculate_loan_metrics(request.principal, request.interest_rate, request.tenure_days)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return FeeQuoteResponse(
        principal=fee_quote.principal,
        interest_rate=fee_quote.interest_rate,
        tenure_days=fee_quote.tenure_days,
        interest_amount=fee_quote.interest_amount,
        platform_fee=fee_quote.platform_fee,
        platform_fee_percentage=fee_quote.platform_fee_percentage,
        total_repayment=fee_quote.total_repayment,
        effective_apr=fee_quote.effective_apr,
        daily_repayment=metrics.daily_repayment,
        funding_fee=metrics.funding_fee,
        funding_fee_percentage=metrics.funding_fee_percentage,
    )


@router.post("/suggest-rate", response_model=RateSuggestionResponse)
async def suggest_rate(request: RateSuggestionRequest):
    """Rule-based interest rate suggestion"""
    try:
        suggestion = calculator.suggest_interest_rate(
            amount=request.amount,
            tenure_days=request.tenure_days,
            purpose=request.purpose.value,
            urgency=request.urgency,
            medical_verified=request.medical_verified,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return RateSuggestionResponse(
        interest_rate=suggestion.interest_rate,
        factors=suggestion.factors,
        explanation=suggestion.explanation,
    )
