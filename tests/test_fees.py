"""
Unit tests for the fee and interest calculator
"""
import pytest
from decimal import Decimal

from app.core.exceptions import InvalidAmount, InvalidLoanTerms
from app.modules.fees import calculator


class TestInterestAndRepayment:
    """Tests for interest, repayment and APR"""

    @pytest.mark.unit
    def test_quote_low_rate_loan(self):
        """2000 at 4% for 30 days"""
        quote = calculator.quote(Decimal("2000"), Decimal("4"), 30)

        assert quote.interest_amount == Decimal("6.58")
        assert quote.platform_fee_percentage == Decimal("1.5")
        assert quote.platform_fee == Decimal("0.10")
        assert quote.total_repayment == Decimal("2006.58")
        assert quote.effective_apr == Decimal("4.00")

    @pytest.mark.unit
    def test_interest_rounds_half_up(self):
        """Exactly half a cent rounds up, not to even"""
        interest = calculator.interest_amount(Decimal("100"), Decimal("1.825"), 1)

        assert interest == Decimal("0.01")

    @pytest.mark.unit
    def test_zero_interest_rate(self):
        quote = calculator.quote(Decimal("500"), Decimal("0"), 90)

        assert quote.interest_amount == Decimal("0.00")
        assert quote.platform_fee == Decimal("0.00")
        assert quote.total_repayment == Decimal("500.00")
        assert quote.effective_apr == Decimal("0.00")

    @pytest.mark.unit
    def test_total_repayment_is_principal_plus_interest(self):
        principal = Decimal("12345.67")
        total = calculator.total_repayment(principal, Decimal("12.5"), 200)
        interest = calculator.interest_amount(principal, Decimal("12.5"), 200)

        assert total == principal + interest

    @pytest.mark.unit
    @pytest.mark.parametrize("principal,tenure", [
        (Decimal("0"), 30),
        (Decimal("-100"), 30),
        (Decimal("1000"), 0),
        (Decimal("1000"), -7),
    ])
    def test_invalid_terms_rejected(self, principal, tenure):
        with pytest.raises(InvalidLoanTerms):
            calculator.quote(principal, Decimal("5"), tenure)


class TestPlatformFees:
    """Tests for the funding-side and repayment-side fees"""

    @pytest.mark.unit
    @pytest.mark.parametrize("rate,expected", [
        (Decimal("0"), Decimal("1.5")),
        (Decimal("4.99"), Decimal("1.5")),
        (Decimal("5"), Decimal("3.5")),
        (Decimal("10"), Decimal("3.5")),
        (Decimal("10.01"), Decimal("4.5")),
        (Decimal("20"), Decimal("4.5")),
    ])
    def test_repayment_fee_tiers(self, rate, expected):
        assert calculator.platform_fee_percentage_for_rate(rate) == expected

    @pytest.mark.unit
    def test_repayment_fee_applies_to_interest_only(self):
        quote = calculator.quote(Decimal("10000"), Decimal("12"), 365)

        assert quote.interest_amount == Decimal("1200.00")
        assert quote.platform_fee == Decimal("54.00")

    @pytest.mark.unit
    def test_funding_fee_is_flat_on_principal(self):
        assert calculator.funding_fee(Decimal("1000")) == Decimal("45.00")
        assert calculator.funding_fee(Decimal("333.33")) == Decimal("15.00")

    @pytest.mark.unit
    def test_loan_metrics_daily_repayment(self):
        metrics = calculator.calculate_loan_metrics(Decimal("2000"), Decimal("4"), 30)

        assert metrics.total_repayment == Decimal("2006.58")
        assert metrics.daily_repayment == Decimal("66.89")
        assert metrics.funding_fee == Decimal("90.00")


class TestAmountValidation:
    """Tests for money movement amounts"""

    @pytest.mark.unit
    def test_valid_amount_is_coerced_to_decimal(self):
        assert calculator.validate_amount("100.10") == Decimal("100.10")

    @pytest.mark.unit
    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5"), Decimal("0.001"), None])
    def test_invalid_amounts_rejected(self, amount):
        with pytest.raises(InvalidAmount):
            calculator.validate_amount(amount)


class TestProRataAllocation:
    """Tests for splitting repayments between lenders"""

    @pytest.mark.unit
    def test_even_split(self):
        shares = calculator.allocate_pro_rata(Decimal("1000.00"), [Decimal("700"), Decimal("300")])

        assert shares == [Decimal("700.00"), Decimal("300.00")]

    @pytest.mark.unit
    def test_rounding_residue_is_reconciled(self):
        shares = calculator.allocate_pro_rata(Decimal("100.00"), [Decimal("1"), Decimal("1"), Decimal("1")])

        assert shares == [Decimal("33.34"), Decimal("33.33"), Decimal("33.33")]
        assert sum(shares) == Decimal("100.00")

    @pytest.mark.unit
    def test_largest_remainder_gets_the_cent(self):
        shares = calculator.allocate_pro_rata(Decimal("2006.48"), [Decimal("1400"), Decimal("600")])

        assert shares == [Decimal("1404.54"), Decimal("601.94")]
        assert sum(shares) == Decimal("2006.48")

    @pytest.mark.unit
    def test_zero_weights_rejected(self):
        with pytest.raises(InvalidLoanTerms):
            calculator.allocate_pro_rata(Decimal("10"), [])


class TestRateSuggestion:
    """Tests for the rule-based interest rate suggestion"""

    @pytest.mark.unit
    def test_education_base_rate(self):
        suggestion = calculator.suggest_interest_rate(Decimal("10000"), 90, "education")

        assert suggestion.interest_rate == Decimal("6.00")
        assert len(suggestion.factors) == 1

    @pytest.mark.unit
    def test_verified_medical_with_adjustments(self):
        suggestion = calculator.suggest_interest_rate(
            Decimal("1000"), 14, "medical", urgency="critical", medical_verified=True
        )

        # 5 base + 2 small amount + 1.5 short tenure - 1 critical
        assert suggestion.interest_rate == Decimal("7.50")
        assert "Critical urgency qualifies for rate reduction" in suggestion.factors

    @pytest.mark.unit
    def test_unknown_purpose_uses_general_rate(self):
        suggestion = calculator.suggest_interest_rate(Decimal("8000"), 120, "other")

        assert suggestion.interest_rate == Decimal("12.00")
        assert suggestion.factors == ["General purpose loan"]
