from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, JSON, Enum as SQLEnum
from sqlalchemy.sql import func
from app.core.database import Base
import enum


class AgreementType(str, enum.Enum):
    """Documents produced around a loan"""
    LENDING_PROOF = "lending_proof"
    LOAN_CLOSURE = "loan_closure"


class AgreementStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"


class LoanAgreement(Base):
    """Structured data handed to the document renderer"""
    __tablename__ = "loan_agreements"

    id = Column(Integer, primary_key=True, index=True)
    loan_id = Column(Integer, ForeignKey("loan_requests.id"), nullable=False, index=True)
    borrower_id = Column(String(64), nullable=False)
    lender_id = Column(String(64), nullable=True)

    agreement_type = Column(SQLEnum(AgreementType), nullable=False)
    agreement_data = Column(JSON, nullable=False)
    status = Column(SQLEnum(AgreementStatus), nullable=False, default=AgreementStatus.PENDING)

    signed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
