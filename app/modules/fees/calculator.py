"""
Pure fee and interest calculations.

Nothing here touches the database or the clock; every function can be called
from any number of requests concurrently. Interest rates are trusted to be
inside the product range already, callers validate them.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP
from typing import List, Optional

from app.core.config import settings
from app.core.exceptions import InvalidAmount, InvalidLoanTerms

CENT = Decimal("0.01")
HUNDRED = Decimal("100")
DAYS_PER_YEAR = Decimal("365")

MIN_SUGGESTED_RATE = Decimal("3")
MAX_SUGGESTED_RATE = Decimal("18")


def money(value) -> Decimal:
    """Return a 2-decimal Decimal with HALF_UP rounding"""
    if value is None:
        value = 0
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def validate_amount(amount) -> Decimal:
    """Coerce a money movement to Decimal; it must be positive with at most two decimals"""
    if amount is None:
        raise InvalidAmount("Amount is required")
    amount = Decimal(str(amount))
    if amount <= 0:
        raise InvalidAmount("Amount must be greater than zero")
    if money(amount) != amount:
        raise InvalidAmount("Amount cannot have more than two decimal places")
    return amount


@dataclass(frozen=True)
class FeeQuote:
    principal: Decimal
    interest_rate: Decimal
    tenure_days: int
    interest_amount: Decimal
    platform_fee: Decimal
    platform_fee_percentage: Decimal
    total_repayment: Decimal
    effective_apr: Decimal


@dataclass(frozen=True)
class LoanMetrics:
    principal: Decimal
    interest: Decimal
    total_repayment: Decimal
    daily_repayment: Decimal
    effective_apr: Decimal
    funding_fee_percentage: Decimal
    funding_fee: Decimal


@dataclass(frozen=True)
class RateSuggestion:
    interest_rate: Decimal
    factors: List[str]
    explanation: str


def _check_terms(principal: Decimal, tenure_days: int) -> None:
    if principal is None or Decimal(str(principal)) <= 0:
        raise InvalidLoanTerms("Principal must be greater than zero")
    if tenure_days is None or int(tenure_days) <= 0:
        raise InvalidLoanTerms("Tenure must be at least one day")


def interest_amount(principal: Decimal, annual_rate_percent: Decimal, tenure_days: int) -> Decimal:
    """Simple interest for the tenure, rounded half-up to the cent"""
    _check_terms(principal, tenure_days)
    principal = Decimal(str(principal))
    rate = Decimal(str(annual_rate_percent)) / HUNDRED
    return money(principal * rate * Decimal(int(tenure_days)) / DAYS_PER_YEAR)


def total_repayment(principal: Decimal, annual_rate_percent: Decimal, tenure_days: int) -> Decimal:
    return money(principal) + interest_amount(principal, annual_rate_percent, tenure_days)


def platform_fee_percentage_for_rate(annual_rate_percent: Decimal) -> Decimal:
    """Repayment-side fee tier, as a percentage of the interest amount"""
    rate = Decimal(str(annual_rate_percent))
    if rate < settings.LOW_RATE_THRESHOLD:
        return settings.LOW_RATE_FEE_PERCENTAGE
    if rate <= settings.HIGH_RATE_THRESHOLD:
        return settings.MID_RATE_FEE_PERCENTAGE
    return settings.HIGH_RATE_FEE_PERCENTAGE


def repayment_platform_fee(interest: Decimal, annual_rate_percent: Decimal) -> Decimal:
    percentage = platform_fee_percentage_for_rate(annual_rate_percent)
    return money(Decimal(str(interest)) * percentage / HUNDRED)


def funding_fee(amount: Decimal) -> Decimal:
    """Flat fee charged to the borrower on each funded contribution"""
    if amount is None or Decimal(str(amount)) <= 0:
        raise InvalidLoanTerms("Funding amount must be greater than zero")
    return money(Decimal(str(amount)) * settings.FUNDING_FEE_PERCENTAGE / HUNDRED)


def effective_apr(principal: Decimal, repayment: Decimal, tenure_days: int) -> Decimal:
    _check_terms(principal, tenure_days)
    growth = Decimal(str(repayment)) / Decimal(str(principal)) - 1
    return money(growth * DAYS_PER_YEAR / Decimal(int(tenure_days)) * HUNDRED)


def quote(principal: Decimal, annual_rate_percent: Decimal, tenure_days: int) -> FeeQuote:
    """Full repayment-side quote for a loan"""
    interest = interest_amount(principal, annual_rate_percent, tenure_days)
    total = money(principal) + interest
    return FeeQuote(
        principal=money(principal),
        interest_rate=Decimal(str(annual_rate_percent)),
        tenure_days=int(tenure_days),
        interest_amount=interest,
        platform_fee=repayment_platform_fee(interest, annual_rate_percent),
        platform_fee_percentage=platform_fee_percentage_for_rate(annual_rate_percent),
        total_repayment=total,
        effective_apr=effective_apr(principal, total, tenure_days),
    )


def calculate_loan_metrics(principal: Decimal, annual_rate_percent: Decimal, tenure_days: int) -> LoanMetrics:
    """Borrower-facing calculator figures, including the daily repayment"""
    interest = interest_amount(principal, annual_rate_percent, tenure_days)
    total = money(principal) + interest
    return LoanMetrics(
        principal=money(principal),
        interest=interest,
        total_repayment=total,
        daily_repayment=money(total / Decimal(int(tenure_days))),
        effective_apr=effective_apr(principal, total, tenure_days),
        funding_fee_percentage=settings.FUNDING_FEE_PERCENTAGE,
        funding_fee=funding_fee(principal),
    )


# Base rate per loan purpose
PURPOSE_BASE_RATES = {
    "medical": (Decimal("8"), "Unverified medical purpose"),
    "education": (Decimal("6"), "Education purpose qualifies for favorable interest rate"),
    "textbooks": (Decimal("7"), "Educational materials purpose"),
    "rent": (Decimal("9"), "Housing/rent purpose"),
    "emergency": (Decimal("10"), "Emergency purpose loan"),
    "assistive-devices": (Decimal("5.5"), "Assistive devices purpose qualifies for lower interest rate"),
}


def suggest_interest_rate(
    amount: Decimal,
    tenure_days: int,
    purpose: str,
    urgency: Optional[str] = None,
    medical_verified: bool = False,
) -> RateSuggestion:
    """Rule-based interest rate suggestion for a new loan request"""
    _check_terms(amount, tenure_days)
    amount = Decimal(str(amount))
    factors: List[str] = []

    if purpose == "medical" and medical_verified:
        rate = Decimal("5")
        factors.append("Verified medical purpose qualifies for lower interest rate")
    elif purpose in PURPOSE_BASE_RATES:
        rate, factor = PURPOSE_BASE_RATES[purpose]
        factors.append(factor)
    else:
        rate = Decimal("12")
        factors.append("General purpose loan")

    if amount < 2000:
        rate += 2
        factors.append("Small loan amount increases risk")
    elif amount < 5000:
        rate += 1
        factors.append("Moderate loan amount")
    elif amount > 20000:
        rate -= Decimal("0.5")
        factors.append("Larger loan amount qualifies for slight rate reduction")

    if tenure_days < 30:
        rate += Decimal("1.5")
        factors.append("Very short tenure increases rate")
    elif tenure_days < 60:
        rate += Decimal("0.5")
        factors.append("Short tenure")
    elif tenure_days > 180:
        rate -= Decimal("0.5")
        factors.append("Longer tenure qualifies for rate reduction")

    if urgency == "critical":
        rate -= 1
        factors.append("Critical urgency qualifies for rate reduction")
    elif urgency == "high":
        rate -= Decimal("0.5")
        factors.append("High urgency")

    rate = money(max(MIN_SUGGESTED_RATE, min(MAX_SUGGESTED_RATE, rate)))
    explanation = (
        f"An interest rate of {rate}% is suggested for this {purpose} loan of "
        f"{money(amount)} over {tenure_days} days. A funding fee of "
        f"{settings.FUNDING_FEE_PERCENTAGE}% of the principal applies."
    )
    return RateSuggestion(interest_rate=rate, factors=factors, explanation=explanation)


def allocate_pro_rata(total: Decimal, weights: List[Decimal]) -> List[Decimal]:
    """
    Split ``total`` across ``weights`` to the cent.

    Each share is rounded down, then leftover cents go to the largest
    remainders (earlier entries win ties), so the shares always sum to
    ``total`` exactly.
    """
    total = money(total)
    weights = [Decimal(str(w)) for w in weights]
    weight_sum = sum(weights, Decimal("0"))
    if not weights or weight_sum <= 0:
        raise InvalidLoanTerms("Cannot allocate across zero weights")

    exact = [total * w / weight_sum for w in weights]
    shares = [e.quantize(CENT, rounding=ROUND_DOWN) for e in exact]
    leftover = int((total - sum(shares, Decimal("0"))) / CENT)

    by_remainder = sorted(range(len(weights)), key=lambda i: (-(exact[i] - shares[i]), i))
    for index in by_remainder[:leftover]:
        shares[index] += CENT
    return shares
