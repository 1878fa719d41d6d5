from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, DateTime, Text, CheckConstraint, Enum as SQLEnum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.core.database import Base
from decimal import Decimal
import enum


class LoanStatus(str, enum.Enum):
    """Loan request lifecycle"""
    ACTIVE = "active"
    FUNDED = "funded"
    COMPLETED = "completed"
    DEFAULTED = "defaulted"
    CANCELLED = "cancelled"


class LoanPurpose(str, enum.Enum):
    """Why the student is borrowing"""
    EDUCATION = "education"
    MEDICAL = "medical"
    RENT = "rent"
    EMERGENCY = "emergency"
    TEXTBOOKS = "textbooks"
    ASSISTIVE_DEVICES = "assistive-devices"
    OTHER = "other"


class LoanRequest(Base):
    """A borrower's request, funded by one or more lenders"""
    __tablename__ = "loan_requests"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_loan_requests_amount_positive"),
        CheckConstraint("total_funded >= 0", name="ck_loan_requests_total_funded_non_negative"),
        CheckConstraint("total_funded <= amount", name="ck_loan_requests_not_overfunded"),
    )

    id = Column(Integer, primary_key=True, index=True)
    borrower_id = Column(String(64), nullable=False, index=True)

    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    purpose = Column(SQLEnum(LoanPurpose), nullable=False, default=LoanPurpose.OTHER)

    amount = Column(Numeric(15, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="INR")
    interest_rate = Column(Numeric(5, 2), nullable=False)  # Annual percentage
    tenure_days = Column(Integer, nullable=False)

    status = Column(SQLEnum(LoanStatus), nullable=False, default=LoanStatus.ACTIVE, index=True)
    total_funded = Column(Numeric(15, 2), nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    funded_at = Column(DateTime(timezone=True), nullable=True)
    closed_at = Column(DateTime(timezone=True), nullable=True)

    fundings = relationship("LoanFunding", back_populates="loan", order_by="LoanFunding.id", lazy="selectin")
    repayment = relationship("LoanRepayment", back_populates="loan", uselist=False, lazy="raise")

    @property
    def remaining_amount(self) -> Decimal:
        return Decimal(self.amount) - Decimal(self.total_funded or 0)

    @property
    def funding_progress(self) -> Decimal:
        """Funded share of the requested amount, in percent"""
        if not self.amount:
            return Decimal("0.00")
        progress = Decimal(self.total_funded or 0) / Decimal(self.amount) * 100
        return progress.quantize(Decimal("0.01"))


class LoanFunding(Base):
    """One lender's contribution to one loan; immutable once written"""
    __tablename__ = "loan_fundings"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_loan_fundings_amount_positive"),
    )

    id = Column(Integer, primary_key=True, index=True)
    loan_id = Column(Integer, ForeignKey("loan_requests.id"), nullable=False, index=True)
    lender_id = Column(String(64), nullable=False, index=True)
    amount = Column(Numeric(15, 2), nullable=False)
    idempotency_key = Column(String(100), unique=True, nullable=True)
    funded_at = Column(DateTime(timezone=True), server_default=func.now())

    loan = relationship("LoanRequest", back_populates="fundings")


class LoanRepayment(Base):
    """Settlement record written when a loan is closed; one per loan"""
    __tablename__ = "loan_repayments"

    id = Column(Integer, primary_key=True, index=True)
    loan_id = Column(Integer, ForeignKey("loan_requests.id"), unique=True, nullable=False)
    borrower_id = Column(String(64), nullable=False, index=True)

    principal = Column(Numeric(15, 2), nullable=False)
    interest_amount = Column(Numeric(15, 2), nullable=False)
    repayment_amount = Column(Numeric(15, 2), nullable=False)
    platform_fee = Column(Numeric(15, 2), nullable=False)
    platform_fee_percentage = Column(Numeric(5, 2), nullable=False)
    net_amount_to_lender = Column(Numeric(15, 2), nullable=False)

    transaction_id = Column(Integer, ForeignKey("wallet_transactions.id"), nullable=True)
    idempotency_key = Column(String(100), unique=True, nullable=True)
    repaid_at = Column(DateTime(timezone=True), server_default=func.now())

    loan = relationship("LoanRequest", back_populates="repayment")
