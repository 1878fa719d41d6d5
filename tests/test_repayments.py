"""
Integration tests for repaying a loan and paying out its lenders
"""
import pytest
from decimal import Decimal

from app.core.config import settings
from app.core.exceptions import InsufficientFunds, InvalidStateTransition, NotFound
from app.modules.agreements.models import AgreementType
from app.modules.agreements.services import AgreementService
from app.modules.funding.services import FundingService
from app.modules.loans.models import LoanStatus
from app.modules.repayments.services import RepaymentService
from app.modules.wallets.models import ReferenceType
from app.modules.wallets.services import WalletService
from tests.conftest import BORROWER_ID, LENDER_ID, SECOND_LENDER_ID, fund_wallet
from tests.test_funding import FailingDocuments


@pytest.fixture
async def funded_loan(db_session, test_loan, lender_wallet, second_lender_wallet):
    """The test loan funded 1400 / 600 by two lenders"""
    service = FundingService(db_session)
    await service.fund_loan(LENDER_ID, test_loan.id, Decimal("1400.00"))
    result = await service.fund_loan(SECOND_LENDER_ID, test_loan.id, Decimal("600.00"))
    return result.loan


class TestRepayLoan:
    """Tests for the repayment flow"""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_repayment_pays_lenders_pro_rata(self, db_session, funded_loan):
        await fund_wallet(db_session, BORROWER_ID, "200.00")
        wallets = WalletService(db_session)
        assert await wallets.get_balance(BORROWER_ID) == Decimal("2110.00")

        result = await RepaymentService(db_session).repay_loan(BORROWER_ID, funded_loan.id)

        repayment = result.repayment
        assert result.loan.status == LoanStatus.COMPLETED
        assert result.loan.closed_at is not None
        assert repayment.principal == Decimal("2000.00")
        assert repayment.interest_amount == Decimal("6.58")
        assert repayment.repayment_amount == Decimal("2006.58")
        assert repayment.platform_fee == Decimal("0.10")
        assert repayment.net_amount_to_lender == Decimal("2006.48")
        assert [(p.lender_id, p.amount) for p in result.lender_payments] == [
            (LENDER_ID, Decimal("1404.54")),
            (SECOND_LENDER_ID, Decimal("601.94")),
        ]
        assert sum(p.amount for p in result.lender_payments) == repayment.net_amount_to_lender

        assert result.borrower_balance == Decimal("103.42")
        assert await wallets.get_balance(LENDER_ID) == Decimal("5004.54")
        assert await wallets.get_balance(SECOND_LENDER_ID) == Decimal("5001.94")
        assert await wallets.get_balance(settings.PLATFORM_ACCOUNT_ID) == Decimal("90.10")

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_repayment_journal_entries(self, db_session, funded_loan):
        await fund_wallet(db_session, BORROWER_ID, "200.00")
        result = await RepaymentService(db_session).repay_loan(BORROWER_ID, funded_loan.id)
        wallets = WalletService(db_session)

        borrower_txn = (await wallets.get_transactions(BORROWER_ID))[0]
        platform_txn = (await wallets.get_transactions(settings.PLATFORM_ACCOUNT_ID))[0]

        assert borrower_txn.reference_type == ReferenceType.LOAN_REPAYMENT
        assert borrower_txn.amount == Decimal("2006.58")
        assert result.repayment.transaction_id == borrower_txn.id
        assert platform_txn.reference_type == ReferenceType.REPAYMENT_FEE
        assert platform_txn.amount == Decimal("0.10")

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_insufficient_balance_leaves_everything_untouched(self, db_session, funded_loan):
        loan_id = funded_loan.id

        with pytest.raises(InsufficientFunds) as exc_info:
            await RepaymentService(db_session).repay_loan(BORROWER_ID, loan_id)

        assert exc_info.value.shortfall == Decimal("96.58")
        wallets = WalletService(db_session)
        assert await wallets.get_balance(BORROWER_ID) == Decimal("1910.00")
        assert await wallets.get_balance(LENDER_ID) == Decimal("3600.00")
        service = RepaymentService(db_session)
        assert await service.get_repayment(loan_id) is None
        loan = await service.loans.get_loan(loan_id)
        assert loan.status == LoanStatus.FUNDED

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_loan_cannot_be_repaid_twice(self, db_session, funded_loan):
        loan_id = funded_loan.id
        await fund_wallet(db_session, BORROWER_ID, "5000.00")
        service = RepaymentService(db_session)
        await service.repay_loan(BORROWER_ID, loan_id)
        balance = await WalletService(db_session).get_balance(BORROWER_ID)

        with pytest.raises(InvalidStateTransition, match="completed"):
            await service.repay_loan(BORROWER_ID, loan_id)

        assert await WalletService(db_session).get_balance(BORROWER_ID) == balance

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_unfunded_loan_cannot_be_repaid(self, db_session, test_loan):
        loan_id = test_loan.id
        await fund_wallet(db_session, BORROWER_ID, "5000.00")

        with pytest.raises(InvalidStateTransition):
            await RepaymentService(db_session).repay_loan(BORROWER_ID, loan_id)

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_only_the_borrower_can_repay(self, db_session, funded_loan):
        loan_id = funded_loan.id

        with pytest.raises(NotFound):
            await RepaymentService(db_session).repay_loan(LENDER_ID, loan_id)

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_partially_funded_loan_repays_what_was_funded(self, db_session, test_loan, lender_wallet):
        """1000 of 2000 funded: interest accrues on the funded 1000 only"""
        loan_id = test_loan.id
        await FundingService(db_session).fund_loan(LENDER_ID, loan_id, Decimal("1000.00"))
        await fund_wallet(db_session, BORROWER_ID, "100.00")

        result = await RepaymentService(db_session).repay_loan(BORROWER_ID, loan_id)

        assert result.repayment.principal == Decimal("1000.00")
        assert result.repayment.interest_amount == Decimal("3.29")
        assert result.repayment.platform_fee == Decimal("0.05")
        assert result.repayment.repayment_amount == Decimal("1003.29")
        assert result.loan.status == LoanStatus.COMPLETED
        assert await WalletService(db_session).get_balance(LENDER_ID) == Decimal("5003.24")

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_idempotency_key_replays_original_result(self, db_session, funded_loan):
        loan_id = funded_loan.id
        await fund_wallet(db_session, BORROWER_ID, "200.00")
        service = RepaymentService(db_session)

        first = await service.repay_loan(BORROWER_ID, loan_id, idempotency_key="repay-1")
        second = await service.repay_loan(BORROWER_ID, loan_id, idempotency_key="repay-1")

        assert second.replayed is True
        assert second.repayment.id == first.repayment.id
        assert second.borrower_balance == Decimal("103.42")
        assert [p.amount for p in second.lender_payments] == [Decimal("1404.54"), Decimal("601.94")]
        assert await WalletService(db_session).get_balance(LENDER_ID) == Decimal("5004.54")


class TestClosureDocument:
    """Tests for the post-commit closure document"""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_closure_document_recorded(self, db_session, funded_loan):
        loan_id = funded_loan.id
        await fund_wallet(db_session, BORROWER_ID, "200.00")

        result = await RepaymentService(db_session).repay_loan(BORROWER_ID, loan_id)
        agreements = await AgreementService(db_session).get_loan_agreements(loan_id)

        closure = [a for a in agreements if a.agreement_type == AgreementType.LOAN_CLOSURE]
        assert result.closure_document_created is True
        assert len(closure) == 1
        data = closure[0].agreement_data
        assert data["repayment_amount"] == "2006.58"
        assert data["lender_ids"] == [LENDER_ID, SECOND_LENDER_ID]
        assert data["due_date"] is not None

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_document_failure_does_not_undo_repayment(self, db_session, funded_loan):
        loan_id = funded_loan.id
        await fund_wallet(db_session, BORROWER_ID, "200.00")
        documents = FailingDocuments()

        result = await RepaymentService(db_session, documents=documents).repay_loan(BORROWER_ID, loan_id)

        assert documents.calls == 1
        assert result.closure_document_created is False
        assert len(result.warnings) == 1
        assert result.loan.status == LoanStatus.COMPLETED
        assert result.repayment.repayment_amount == Decimal("2006.58")
        assert await WalletService(db_session).get_balance(BORROWER_ID) == Decimal("103.42")
