from sqlalchemy.ext.asyncio import AsyncSession
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional
import logging

from app.core.config import settings
from app.core.database import run_unit_of_work
from app.core.exceptions import InsufficientFunds, LoanNotFundable
from app.modules.agreements.models import AgreementType
from app.modules.agreements.services import AgreementService, DocumentGenerator, FundingPacket
from app.modules.fees import calculator
from app.modules.loans.models import LoanRequest, LoanFunding, LoanStatus
from app.modules.loans.services import LoanService
from app.modules.wallets.models import ReferenceType
from app.modules.wallets.services import WalletService

logger = logging.getLogger(__name__)


@dataclass
class FundingResult:
    funding: LoanFunding
    loan: LoanRequest
    funding_fee: Decimal
    net_to_borrower: Decimal
    lender_balance: Decimal
    replayed: bool = False
    warnings: List[str] = field(default_factory=list)


class FundingService:
    """
    Funds a loan from a lender's wallet.

    The lender debit, the borrower disbursement, the platform fee credit and
    the funding record commit together or not at all.
    """

    def __init__(self, db: AsyncSession, documents: Optional[DocumentGenerator] = None):
        self.db = db
        self.wallets = WalletService(db)
        self.loans = LoanService(db)
        self.documents = documents if documents is not None else AgreementService(db)

    async def _replay(self, funding: LoanFunding, lender_id: str, loan_id: int) -> FundingResult:
        if funding.lender_id != lender_id or funding.loan_id != loan_id:
            raise LoanNotFundable("Idempotency key was already used for a different funding")

        loan = await self.loans.get_loan(loan_id)
        fee = calculator.funding_fee(funding.amount)
        logger.info(f"Replaying funding {funding.id} for idempotency key {funding.idempotency_key}")
        return FundingResult(
            funding=funding,
            loan=loan,
            funding_fee=fee,
            net_to_borrower=Decimal(funding.amount) - fee,
            lender_balance=await self.wallets.get_balance(lender_id, loan.currency),
            replayed=True,
        )

    async def fund_loan(
        self,
        lender_id: str,
        loan_id: int,
        amount,
        idempotency_key: Optional[str] = None,
    ) -> FundingResult:
        amount = calculator.validate_amount(amount)

        async def work() -> FundingResult:
            if idempotency_key:
                existing = await self.loans.get_funding_by_key(idempotency_key)
                if existing:
                    return await self._replay(existing, lender_id, loan_id)

            loan = await self.loans.get_loan(loan_id, for_update=True)
            currency = loan.currency

            lender_wallet = await self.wallets.get_wallet(lender_id, currency)
            balance = Decimal(lender_wallet.balance) if lender_wallet else Decimal("0.00")
            if amount > balance:
                raise InsufficientFunds(balance, amount)

            if loan.borrower_id == lender_id:
                raise LoanNotFundable("Borrowers cannot fund their own loan")
            if loan.status != LoanStatus.ACTIVE:
                raise LoanNotFundable(f"Loan is {loan.status.value} and no longer accepts funding")
            if amount > loan.remaining_amount:
                raise LoanNotFundable(
                    f"Funding of {amount:.2f} exceeds the remaining {loan.remaining_amount:.2f}",
                    remaining=loan.remaining_amount,
                )

            fee = calculator.funding_fee(amount)
            net_to_borrower = amount - fee

            await self.wallets.debit(
                lender_id, currency, amount,
                f"Loan funding - {loan.title}",
                reference_type=ReferenceType.LOAN_FUNDING,
                reference_id=loan_id,
            )
            await self.wallets.credit(
                loan.borrower_id, currency, net_to_borrower,
                f"Loan disbursement - {amount:.2f} less {fee:.2f} platform fee",
                reference_type=ReferenceType.LOAN_DISBURSEMENT,
                reference_id=loan_id,
            )
            if fee > 0:
                await self.wallets.credit(
                    settings.PLATFORM_ACCOUNT_ID, currency, fee,
                    f"Funding fee for loan {loan_id}",
                    reference_type=ReferenceType.FUNDING_FEE,
                    reference_id=loan_id,
                )
            funding = await self.loans.record_funding(loan_id, lender_id, amount, idempotency_key)

            return FundingResult(
                funding=funding,
                loan=loan,
                funding_fee=fee,
                net_to_borrower=net_to_borrower,
                lender_balance=Decimal("0.00"),
            )

        result = await run_unit_of_work(self.db, work)
        if result.replayed:
            return result

        result.loan = await self.loans.get_loan(loan_id)
        result.lender_balance = await self.wallets.get_balance(lender_id, result.loan.currency)
        logger.info(
            f"Lender {lender_id} funded loan {loan_id} with {amount} "
            f"(fee {result.funding_fee}, total funded {result.loan.total_funded}, status {result.loan.status.value})"
        )

        await self._send_lending_proof(result)
        return result

    async def _send_lending_proof(self, result: FundingResult) -> None:
        loan = result.loan
        packet = FundingPacket(
            loan_id=loan.id,
            borrower_id=loan.borrower_id,
            lender_id=result.funding.lender_id,
            funding_id=result.funding.id,
            amount=Decimal(result.funding.amount),
            funding_fee=result.funding_fee,
            funding_fee_percentage=settings.FUNDING_FEE_PERCENTAGE,
            net_to_borrower=result.net_to_borrower,
            interest_rate=Decimal(loan.interest_rate),
            tenure_days=loan.tenure_days,
            loan_status=loan.status.value,
            funded_at=result.funding.funded_at,
        )
        try:
            await self.documents.generate(AgreementType.LENDING_PROOF, packet)
        except Exception as e:
            await self.db.rollback()
            logger.warning(f"Lending proof for funding {packet.funding_id} could not be generated: {e}")
            result.warnings.append("Funding completed but the lending proof document could not be generated")
            # Rollback expired every loaded row; reload what the caller reads
            result.loan = await self.loans.get_loan(packet.loan_id)
