from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, DateTime, Text, UniqueConstraint, CheckConstraint, Enum as SQLEnum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.core.database import Base
import enum


class TransactionType(str, enum.Enum):
    """Journal entry direction"""
    CREDIT = "credit"
    DEBIT = "debit"


class ReferenceType(str, enum.Enum):
    """What caused a journal entry"""
    WALLET_TOPUP = "wallet_topup"
    WITHDRAWAL = "withdrawal"
    LOAN_FUNDING = "loan_funding"
    LOAN_DISBURSEMENT = "loan_disbursement"
    FUNDING_FEE = "funding_fee"
    LOAN_REPAYMENT = "loan_repayment"
    REPAYMENT_FEE = "repayment_fee"


class Wallet(Base):
    """One balance per user and currency"""
    __tablename__ = "wallets"
    __table_args__ = (
        UniqueConstraint("user_id", "currency", name="uq_wallets_user_currency"),
        CheckConstraint("balance >= 0", name="ck_wallets_balance_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    currency = Column(String(3), nullable=False, default="INR")
    balance = Column(Numeric(15, 2), nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    transactions = relationship("WalletTransaction", back_populates="wallet", lazy="raise")


class WalletTransaction(Base):
    """Append-only journal entry; rows are never updated or deleted"""
    __tablename__ = "wallet_transactions"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_wallet_transactions_amount_positive"),
        CheckConstraint("balance_after >= 0", name="ck_wallet_transactions_balance_after"),
    )

    id = Column(Integer, primary_key=True, index=True)
    wallet_id = Column(Integer, ForeignKey("wallets.id"), nullable=False, index=True)
    user_id = Column(String(64), nullable=False, index=True)

    transaction_type = Column(SQLEnum(TransactionType), nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    balance_before = Column(Numeric(15, 2), nullable=False)
    balance_after = Column(Numeric(15, 2), nullable=False)
    description = Column(Text, nullable=False)

    reference_type = Column(SQLEnum(ReferenceType), nullable=True, index=True)
    reference_id = Column(String(100), nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    wallet = relationship("Wallet", back_populates="transactions")
