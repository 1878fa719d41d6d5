"""
API endpoint tests
"""
import pytest
from decimal import Decimal

from tests.conftest import BORROWER_ID, LENDER_ID, fund_wallet, make_auth_headers


LOAN_PAYLOAD = {
    "title": "Semester textbooks for engineering",
    "description": "Need help buying the core textbooks for my third semester of mechanical engineering.",
    "amount": "2000.00",
    "interest_rate": "4.00",
    "tenure_days": 30,
    "purpose": "textbooks",
}


class TestHealthEndpoints:
    """Tests for health check endpoints"""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_health_check(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert "version" in data

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_root_endpoint(self, client):
        response = await client.get("/")

        assert response.status_code == 200
        assert "VibeLend" in response.json()["message"]


class TestAuthRequired:
    """Tests that verify auth is required"""

    @pytest.mark.unit
    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", ["/loans/", "/wallets/me", "/wallets/me/transactions", "/loans/fundings/me"])
    async def test_endpoint_requires_auth(self, client, path):
        response = await client.get(path)

        assert response.status_code == 401

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_invalid_token_rejected(self, client):
        response = await client.get("/wallets/me", headers={"Authorization": "Bearer not-a-token"})

        assert response.status_code == 401


class TestWalletEndpoints:
    """Tests for the wallet API"""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_wallet_created_on_first_access(self, client, borrower_headers):
        response = await client.get("/wallets/me", headers=borrower_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["user_id"] == BORROWER_ID
        assert Decimal(data["balance"]) == Decimal("0")

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_top_up_and_withdraw(self, client, borrower_headers):
        top_up = await client.post(
            "/wallets/me/top-up",
            json={"amount": "500.00", "payment_reference": "pi_api_1"},
            headers=borrower_headers,
        )
        withdraw = await client.post(
            "/wallets/me/withdraw", json={"amount": "200.00"}, headers=borrower_headers
        )
        transactions = await client.get("/wallets/me/transactions", headers=borrower_headers)

        assert top_up.status_code == 200
        assert withdraw.status_code == 200
        assert Decimal(withdraw.json()["balance_after"]) == Decimal("300.00")
        assert [t["transaction_type"] for t in transactions.json()] == ["debit", "credit"]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_withdraw_overdraft_is_402(self, client, borrower_headers):
        await client.post(
            "/wallets/me/top-up",
            json={"amount": "150.00", "payment_reference": "pi_api_2"},
            headers=borrower_headers,
        )

        response = await client.post("/wallets/me/withdraw", json={"amount": "200.00"}, headers=borrower_headers)

        assert response.status_code == 402
        assert "Insufficient funds" in response.json()["detail"]


class TestLoanEndpoints:
    """Tests for the loan API"""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_create_loan(self, client, borrower_headers):
        response = await client.post("/loans/", json=LOAN_PAYLOAD, headers=borrower_headers)

        assert response.status_code == 201
        data = response.json()
        assert data["borrower_id"] == BORROWER_ID
        assert data["status"] == "active"
        assert Decimal(data["remaining_amount"]) == Decimal("2000")

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_create_loan_below_minimum(self, client, borrower_headers):
        response = await client.post("/loans/", json={**LOAN_PAYLOAD, "amount": "50"}, headers=borrower_headers)

        assert response.status_code == 400
        assert response.json()["detail"] == "Minimum loan amount is 100"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_missing_loan_is_404(self, client, borrower_headers):
        response = await client.get("/loans/9999", headers=borrower_headers)

        assert response.status_code == 404

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_fund_loan(self, client, test_loan, lender_wallet, lender_headers):
        response = await client.post(
            f"/loans/{test_loan.id}/fund", json={"amount": "500.00"}, headers=lender_headers
        )

        assert response.status_code == 200
        data = response.json()
        assert data["loan_status"] == "active"
        assert Decimal(data["funding_fee"]) == Decimal("22.50")
        assert Decimal(data["net_to_borrower"]) == Decimal("477.50")
        assert Decimal(data["lender_balance"]) == Decimal("4500.00")
        assert Decimal(data["remaining_amount"]) == Decimal("1500.00")

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_fund_without_balance_is_402(self, client, test_loan):
        loan_id = test_loan.id

        response = await client.post(
            f"/loans/{loan_id}/fund", json={"amount": "500.00"}, headers=make_auth_headers("broke-lender")
        )

        assert response.status_code == 402

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_overfunding_is_409(self, client, test_loan, lender_wallet, lender_headers):
        loan_id = test_loan.id

        response = await client.post(
            f"/loans/{loan_id}/fund", json={"amount": "2500.00"}, headers=lender_headers
        )

        assert response.status_code == 409

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_repay_loan(self, client, db_session, test_loan, lender_wallet, lender_headers, borrower_headers):
        loan_id = test_loan.id
        await client.post(f"/loans/{loan_id}/fund", json={"amount": "2000.00"}, headers=lender_headers)
        await fund_wallet(db_session, BORROWER_ID, "200.00")

        response = await client.post(f"/loans/{loan_id}/repay", headers=borrower_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["loan_status"] == "completed"
        assert Decimal(data["repayment_amount"]) == Decimal("2006.58")
        assert Decimal(data["net_amount_to_lender"]) == Decimal("2006.48")
        assert data["lender_payments"][0]["lender_id"] == LENDER_ID
        assert data["closure_document_created"] is True

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_cancel_loan(self, client, test_loan, borrower_headers):
        response = await client.post(f"/loans/{test_loan.id}/cancel", headers=borrower_headers)

        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_only_platform_marks_default(self, client, test_loan, borrower_headers):
        response = await client.post(f"/loans/{test_loan.id}/default", headers=borrower_headers)

        assert response.status_code == 403


class TestFeeEndpoints:
    """Tests for the fee calculator API"""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_fee_quote(self, client):
        response = await client.post(
            "/fees/quote", json={"principal": "2000", "interest_rate": "4", "tenure_days": 30}
        )

        assert response.status_code == 200
        data = response.json()
        assert Decimal(data["total_repayment"]) == Decimal("2006.58")
        assert Decimal(data["platform_fee"]) == Decimal("0.10")
        assert Decimal(data["funding_fee"]) == Decimal("90.00")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_suggest_rate(self, client):
        response = await client.post(
            "/fees/suggest-rate", json={"amount": "10000", "tenure_days": 90, "purpose": "education"}
        )

        assert response.status_code == 200
        assert Decimal(response.json()["interest_rate"]) == Decimal("6.00")
