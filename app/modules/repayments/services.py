from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from dataclasses import dataclass, field
from datetime import datetime, timedelta, date
from decimal import Decimal
from typing import Dict, List, Optional
import logging

from app.core.config import settings
from app.core.database import run_unit_of_work
from app.core.exceptions import InsufficientFunds, InvalidStateTransition, NotFound
from app.modules.agreements.models import AgreementType
from app.modules.agreements.services import AgreementService, ClosurePacket, DocumentGenerator
from app.modules.fees import calculator
from app.modules.loans.models import LoanRequest, LoanRepayment, LoanStatus
from app.modules.loans.services import LoanService
from app.modules.wallets.models import ReferenceType
from app.modules.wallets.services import WalletService

logger = logging.getLogger(__name__)


@dataclass
class LenderPayment:
    lender_id: str
    funded_amount: Decimal
    amount: Decimal


@dataclass
class RepaymentResult:
    loan: LoanRequest
    repayment: LoanRepayment
    lender_payments: List[LenderPayment]
    borrower_balance: Decimal
    closure_document_created: bool = False
    replayed: bool = False
    warnings: List[str] = field(default_factory=list)


def lender_contributions(loan: LoanRequest) -> Dict[str, Decimal]:
    """Total funded per lender, in order of first contribution"""
    contributions: Dict[str, Decimal] = {}
    for funding in loan.fundings:
        contributions[funding.lender_id] = contributions.get(funding.lender_id, Decimal("0")) + Decimal(funding.amount)
    return contributions


def split_to_lenders(loan: LoanRequest, net_to_lender: Decimal) -> List[LenderPayment]:
    contributions = lender_contributions(loan)
    shares = calculator.allocate_pro_rata(net_to_lender, list(contributions.values()))
    return [
        LenderPayment(lender_id=lender_id, funded_amount=funded, amount=share)
        for (lender_id, funded), share in zip(contributions.items(), shares)
    ]


class RepaymentService:
    """
    Closes a loan: the borrower repays principal plus interest, lenders are
    paid pro rata net of the platform fee, and the loan is marked completed,
    all in one unit of work. The closure document is requested afterwards and
    its failure never undoes the repayment.
    """

    def __init__(self, db: AsyncSession, documents: Optional[DocumentGenerator] = None):
        self.db = db
        self.wallets = WalletService(db)
        self.loans = LoanService(db)
        self.documents = documents if documents is not None else AgreementService(db)

    async def get_repayment(self, loan_id: int) -> Optional[LoanRepayment]:
        result = await self.db.execute(select(LoanRepayment).where(LoanRepayment.loan_id == loan_id))
        return result.scalar_one_or_none()

    async def _get_repayment_by_key(self, idempotency_key: str) -> Optional[LoanRepayment]:
        result = await self.db.execute(
            select(LoanRepayment).where(LoanRepayment.idempotency_key == idempotency_key)
        )
        return result.scalar_one_or_none()

    async def _replay(self, repayment: LoanRepayment, borrower_id: str, loan_id: int) -> RepaymentResult:
        if repayment.borrower_id != borrower_id or repayment.loan_id != loan_id:
            raise InvalidStateTransition("Idempotency key was already used for a different repayment")

        loan = await self.loans.get_loan(loan_id)
        logger.info(f"Replaying repayment {repayment.id} for idempotency key {repayment.idempotency_key}")
        return RepaymentResult(
            loan=loan,
            repayment=repayment,
            lender_payments=split_to_lenders(loan, Decimal(repayment.net_amount_to_lender)),
            borrower_balance=await self.wallets.get_balance(borrower_id, loan.currency),
            replayed=True,
        )

    async def repay_loan(
        self,
        borrower_id: str,
        loan_id: int,
        idempotency_key: Optional[str] = None,
    ) -> RepaymentResult:

        async def work() -> RepaymentResult:
            if idempotency_key:
                existing = await self._get_repayment_by_key(idempotency_key)
                if existing:
                    return await self._replay(existing, borrower_id, loan_id)

            loan = await self.loans.get_loan(loan_id, for_update=True)
            if loan.borrower_id != borrower_id:
                raise NotFound("Loan not found")

            repayable = loan.status == LoanStatus.FUNDED or (
                loan.status == LoanStatus.ACTIVE and Decimal(loan.total_funded) > 0
            )
            if not repayable:
                raise InvalidStateTransition(f"Loan is {loan.status.value} and cannot be repaid")

            currency = loan.currency
            principal = calculator.money(loan.total_funded)
            fee_quote = calculator.quote(principal, loan.interest_rate, loan.tenure_days)
            total = fee_quote.total_repayment

            balance = await self.wallets.get_balance(borrower_id, currency)
            if balance < total:
                raise InsufficientFunds(balance, total)

            platform_fee = fee_quote.platform_fee
            net_to_lender = total - platform_fee
            payments = split_to_lenders(loan, net_to_lender)

            debit_txn = await self.wallets.debit(
                borrower_id, currency, total,
                f"Loan repayment - {total:.2f}",
                reference_type=ReferenceType.LOAN_REPAYMENT,
                reference_id=loan_id,
            )
            for payment in payments:
                if payment.amount <= 0:
                    continue
                await self.wallets.credit(
                    payment.lender_id, currency, payment.amount,
                    f"Loan repayment received - {payment.amount:.2f}",
                    reference_type=ReferenceType.LOAN_REPAYMENT,
                    reference_id=loan_id,
                )
            if platform_fee > 0:
                await self.wallets.credit(
                    settings.PLATFORM_ACCOUNT_ID, currency, platform_fee,
                    f"Repayment fee for loan {loan_id}",
                    reference_type=ReferenceType.REPAYMENT_FEE,
                    reference_id=loan_id,
                )
            loan = await self.loans.mark_completed(loan_id)

            repayment = LoanRepayment(
                loan_id=loan_id,
                borrower_id=borrower_id,
                principal=principal,
                interest_amount=fee_quote.interest_amount,
                repayment_amount=total,
                platform_fee=platform_fee,
                platform_fee_percentage=fee_quote.platform_fee_percentage,
                net_amount_to_lender=net_to_lender,
                transaction_id=debit_txn.id,
                idempotency_key=idempotency_key,
            )
            self.db.add(repayment)
            await self.db.flush()
            await self.db.refresh(repayment)

            return RepaymentResult(
                loan=loan,
                repayment=repayment,
                lender_payments=payments,
                borrower_balance=Decimal("0.00"),
            )

        result = await run_unit_of_work(self.db, work)
        if result.replayed:
            return result

        result.borrower_balance = await self.wallets.get_balance(borrower_id, result.loan.currency)
        logger.info(
            f"Loan {loan_id} repaid by {borrower_id}: {result.repayment.repayment_amount} "
            f"(fee {result.repayment.platform_fee}, net to lenders {result.repayment.net_amount_to_lender})"
        )

        await self._send_closure(result)
        return result

    async def _send_closure(self, result: RepaymentResult) -> None:
        loan = result.loan
        repayment = result.repayment
        first_funded_at = min((f.funded_at for f in loan.fundings if f.funded_at), default=None)
        due_date: Optional[date] = None
        if first_funded_at:
            due_date = (first_funded_at + timedelta(days=loan.tenure_days)).date()

        packet = ClosurePacket(
            loan_id=loan.id,
            borrower_id=loan.borrower_id,
            lender_ids=[p.lender_id for p in result.lender_payments],
            purpose=loan.purpose.value,
            loan_amount=Decimal(loan.amount),
            principal=Decimal(repayment.principal),
            interest_rate=Decimal(loan.interest_rate),
            interest_amount=Decimal(repayment.interest_amount),
            repayment_amount=Decimal(repayment.repayment_amount),
            platform_fee=Decimal(repayment.platform_fee),
            platform_fee_percentage=Decimal(repayment.platform_fee_percentage),
            net_amount_to_lender=Decimal(repayment.net_amount_to_lender),
            created_at=loan.created_at,
            first_funded_at=first_funded_at,
            due_date=due_date,
            repaid_at=repayment.repaid_at or datetime.utcnow(),
            lender_payments=[
                {"lender_id": p.lender_id, "funded_amount": p.funded_amount, "amount": p.amount}
                for p in result.lender_payments
            ],
        )
        try:
            await self.documents.generate(AgreementType.LOAN_CLOSURE, packet)
            result.closure_document_created = True
        except Exception as e:
            await self.db.rollback()
            logger.warning(f"Closure document for loan {packet.loan_id} could not be generated: {e}")
            result.warnings.append("Loan repaid but the closure document could not be generated")
            # Rollback expired every loaded row; reload what the caller reads
            result.loan = await self.loans.get_loan(packet.loan_id)
            result.repayment = await self.get_repayment(packet.loan_id)
