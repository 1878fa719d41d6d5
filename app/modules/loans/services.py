from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, and_, or_, func
from sqlalchemy.orm import selectinload
from typing import List, Optional
from decimal import Decimal
import logging

from app.core.config import settings
from app.core.database import run_unit_of_work, sql_money
from app.core.exceptions import (
    InvalidAmount, InvalidLoanTerms, LoanNotFundable, InvalidStateTransition, NotFound
)
from app.modules.fees.calculator import money
from app.modules.loans.models import LoanRequest, LoanFunding, LoanStatus
from app.modules.loans.schemas import LoanCreateRequest

logger = logging.getLogger(__name__)

# Status moves only forward; terminal states have no exits
ALLOWED_TRANSITIONS = {
    LoanStatus.ACTIVE: {LoanStatus.FUNDED, LoanStatus.COMPLETED, LoanStatus.DEFAULTED, LoanStatus.CANCELLED},
    LoanStatus.FUNDED: {LoanStatus.COMPLETED, LoanStatus.DEFAULTED, LoanStatus.CANCELLED},
    LoanStatus.COMPLETED: set(),
    LoanStatus.DEFAULTED: set(),
    LoanStatus.CANCELLED: set(),
}


def check_transition(current: LoanStatus, new: LoanStatus) -> None:
    if new not in ALLOWED_TRANSITIONS[LoanStatus(current)]:
        raise InvalidStateTransition(
            f"Cannot move loan from {LoanStatus(current).value} to {new.value}"
        )


class LoanService:
    """
    Loan requests and their fundings.

    ``record_funding`` and ``mark_completed`` only flush; they are meant to run
    inside a FundingService or RepaymentService unit of work. Creation,
    cancellation and default marking are standalone use cases and commit.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def validate_terms(terms: LoanCreateRequest) -> None:
        """Raise InvalidLoanTerms describing the first rule the terms break"""
        if terms.amount is None or terms.amount < settings.MIN_LOAN_AMOUNT:
            raise InvalidLoanTerms(f"Minimum loan amount is {settings.MIN_LOAN_AMOUNT}")
        if terms.amount > settings.MAX_LOAN_AMOUNT:
            raise InvalidLoanTerms(f"Maximum loan amount is {settings.MAX_LOAN_AMOUNT}")
        if money(terms.amount) != terms.amount:
            raise InvalidLoanTerms("Loan amount cannot have more than two decimal places")
        if not settings.MIN_INTEREST_RATE <= terms.interest_rate <= settings.MAX_INTEREST_RATE:
            raise InvalidLoanTerms(
                f"Interest rate must be between {settings.MIN_INTEREST_RATE}% and {settings.MAX_INTEREST_RATE}%"
            )
        if not settings.MIN_TENURE_DAYS <= terms.tenure_days <= settings.MAX_TENURE_DAYS:
            raise InvalidLoanTerms(
                f"Tenure must be between {settings.MIN_TENURE_DAYS} and {settings.MAX_TENURE_DAYS} days"
            )
        if len((terms.title or "").strip()) < settings.MIN_TITLE_LENGTH:
            raise InvalidLoanTerms(f"Title must be at least {settings.MIN_TITLE_LENGTH} characters")
        if len((terms.description or "").strip()) < settings.MIN_DESCRIPTION_LENGTH:
            raise InvalidLoanTerms(
                f"Description must be at least {settings.MIN_DESCRIPTION_LENGTH} characters"
            )

    async def create_loan_request(self, borrower_id: str, terms: LoanCreateRequest) -> LoanRequest:
        self.validate_terms(terms)

        loan = LoanRequest(
            borrower_id=borrower_id,
            title=terms.title.strip(),
            description=terms.description.strip(),
            purpose=terms.purpose,
            amount=terms.amount,
            currency=terms.currency or settings.DEFAULT_CURRENCY,
            interest_rate=terms.interest_rate,
            tenure_days=terms.tenure_days,
            status=LoanStatus.ACTIVE,
            total_funded=Decimal("0.00"),
            fundings=[],
        )
        self.db.add(loan)
        await self.db.commit()

        logger.info(f"Loan request {loan.id} created by {borrower_id} for {loan.amount} {loan.currency}")
        return await self.get_loan(loan.id)

    async def get_loan(self, loan_id: int, for_update: bool = False) -> LoanRequest:
        """Load a loan with its fundings, always re-read from the database"""
        query = (
            select(LoanRequest)
            .where(LoanRequest.id == loan_id)
            .options(selectinload(LoanRequest.fundings))
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()

        result = await self.db.execute(query)
        loan = result.scalar_one_or_none()
        if loan is None:
            raise NotFound("Loan not found")
        return loan

    async def list_loans(
        self,
        status: Optional[LoanStatus] = None,
        borrower_id: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[LoanRequest]:
        query = select(LoanRequest).options(selectinload(LoanRequest.fundings))
        if status:
            query = query.where(LoanRequest.status == status)
        if borrower_id:
            query = query.where(LoanRequest.borrower_id == borrower_id)

        query = query.order_by(LoanRequest.created_at.desc(), LoanRequest.id.desc()).offset(skip).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_lender_fundings(self, lender_id: str) -> List[LoanFunding]:
        result = await self.db.execute(
            select(LoanFunding)
            .where(LoanFunding.lender_id == lender_id)
            .order_by(LoanFunding.id.desc())
        )
        return list(result.scalars().all())

    async def get_funding_by_key(self, idempotency_key: str) -> Optional[LoanFunding]:
        result = await self.db.execute(
            select(LoanFunding).where(LoanFunding.idempotency_key == idempotency_key)
        )
        return result.scalar_one_or_none()

    async def record_funding(
        self,
        loan_id: int,
        lender_id: str,
        amount,
        idempotency_key: Optional[str] = None,
    ) -> LoanFunding:
        """
        Register a lender's contribution.

        The remaining-amount check is a conditional UPDATE evaluated by the
        database against the current row, so two lenders racing for the last
        part of a loan cannot both succeed. Reaching the full amount moves the
        loan to funded in the same flush.
        """
        amount = Decimal(str(amount))
        if amount <= 0:
            raise InvalidAmount("Funding amount must be greater than zero")

        result = await self.db.execute(
            update(LoanRequest)
            .where(
                and_(
                    LoanRequest.id == loan_id,
                    LoanRequest.status == LoanStatus.ACTIVE,
                    sql_money(LoanRequest.total_funded + amount) <= sql_money(LoanRequest.amount),
                )
            )
            .values(total_funded=sql_money(LoanRequest.total_funded + amount), updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            loan = await self.get_loan(loan_id)
            if loan.status != LoanStatus.ACTIVE:
                raise LoanNotFundable(f"Loan is {loan.status.value} and no longer accepts funding")
            raise LoanNotFundable(
                f"Funding of {amount:.2f} exceeds the remaining {loan.remaining_amount:.2f}",
                remaining=loan.remaining_amount,
            )

        await self.db.execute(
            update(LoanRequest)
            .where(
                and_(
                    LoanRequest.id == loan_id,
                    LoanRequest.status == LoanStatus.ACTIVE,
                    sql_money(LoanRequest.total_funded - LoanRequest.amount) >= 0,
                )
            )
            .values(status=LoanStatus.FUNDED, funded_at=func.now())
            .execution_options(synchronize_session=False)
        )

        funding = LoanFunding(
            loan_id=loan_id,
            lender_id=lender_id,
            amount=amount,
            idempotency_key=idempotency_key,
        )
        self.db.add(funding)
        await self.db.flush()
        await self.db.refresh(funding)
        return funding

    async def mark_completed(self, loan_id: int) -> LoanRequest:
        """Close a funded loan (or an active loan that already has funding)"""
        loan = await self.get_loan(loan_id)
        if loan.status == LoanStatus.ACTIVE and Decimal(loan.total_funded) <= 0:
            raise InvalidStateTransition("Loan has no funding to repay")
        check_transition(loan.status, LoanStatus.COMPLETED)

        result = await self.db.execute(
            update(LoanRequest)
            .where(
                and_(
                    LoanRequest.id == loan_id,
                    or_(
                        LoanRequest.status == LoanStatus.FUNDED,
                        and_(LoanRequest.status == LoanStatus.ACTIVE, LoanRequest.total_funded > 0),
                    ),
                )
            )
            .values(status=LoanStatus.COMPLETED, closed_at=func.now(), updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            loan = await self.get_loan(loan_id)
            raise InvalidStateTransition(f"Cannot move loan from {loan.status.value} to completed")

        return await self.get_loan(loan_id)

    async def cancel_loan(self, loan_id: int, borrower_id: str) -> LoanRequest:
        """Borrower withdraws a request nobody has funded yet"""

        async def work() -> LoanRequest:
            loan = await self.get_loan(loan_id, for_update=True)
            if loan.borrower_id != borrower_id:
                raise NotFound("Loan not found")
            check_transition(loan.status, LoanStatus.CANCELLED)
            if Decimal(loan.total_funded) > 0:
                raise InvalidStateTransition("A loan that has received funding cannot be cancelled")

            result = await self.db.execute(
                update(LoanRequest)
                .where(and_(LoanRequest.id == loan_id, LoanRequest.status == LoanStatus.ACTIVE, LoanRequest.total_funded == 0))
                .values(status=LoanStatus.CANCELLED, closed_at=func.now(), updated_at=func.now())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise InvalidStateTransition("Loan changed while it was being cancelled")
            return loan

        await run_unit_of_work(self.db, work)
        logger.info(f"Loan {loan_id} cancelled by borrower {borrower_id}")
        return await self.get_loan(loan_id)

    async def mark_defaulted(self, loan_id: int) -> LoanRequest:
        """Archive a funded loan the borrower failed to repay"""

        async def work() -> LoanRequest:
            loan = await self.get_loan(loan_id, for_update=True)
            check_transition(loan.status, LoanStatus.DEFAULTED)
            if Decimal(loan.total_funded) <= 0:
                raise InvalidStateTransition("A loan without funding cannot default")

            result = await self.db.execute(
                update(LoanRequest)
                .where(
                    and_(
                        LoanRequest.id == loan_id,
                        LoanRequest.status.in_([LoanStatus.ACTIVE, LoanStatus.FUNDED]),
                    )
                )
                .values(status=LoanStatus.DEFAULTED, closed_at=func.now(), updated_at=func.now())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise InvalidStateTransition("Loan changed while it was being marked as defaulted")
            return loan

        await run_unit_of_work(self.db, work)
        logger.warning(f"Loan {loan_id} marked as defaulted")
        return await self.get_loan(loan_id)
