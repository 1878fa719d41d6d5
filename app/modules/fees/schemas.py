from pydantic import BaseModel, Field
from decimal import Decimal
from typing import List, Optional

from app.modules.loans.models import LoanPurpose


class FeeQuoteRequest(BaseModel):
    principal: Decimal = Field(..., gt=0)
    interest_rate: Decimal = Field(..., ge=0, le=20)
    tenure_days: int = Field(..., ge=1)


class FeeQuoteResponse(BaseModel):
    principal: Decimal
    interest_rate: Decimal
    tenure_days: int
    interest_amount: Decimal
    platform_fee: Decimal
    platform_fee_percentage: Decimal
    total_repayment: Decimal
    effective_apr: Decimal
    daily_repayment: Decimal
    funding_fee: Decimal
    funding_fee_percentage: Decimal


class RateSuggestionRequest(BaseModel):
    amount: Decimal = Field(..., gt=0)
    tenure_days: int = Field(..., ge=1)
    purpose: LoanPurpose
    urgency: Optional[str] = Field(None, pattern="^(low|medium|high|critical)$")
    medical_verified: bool = False


class RateSuggestionResponse(BaseModel):
    interest_rate: Decimal
    factors: List[str]
    explanation: str
