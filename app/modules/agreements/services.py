"""
Hand-off of funding and closure data to document generation.

The ledger only needs something with an async ``generate`` method. The
default implementation records the packet as a LoanAgreement row for the
renderer to pick up.
"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from dataclasses import dataclass, field, asdict
from datetime import datetime, date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Protocol
import logging

from app.modules.agreements.models import LoanAgreement, AgreementType, AgreementStatus

logger = logging.getLogger(__name__)


@dataclass
class FundingPacket:
    loan_id: int
    borrower_id: str
    lender_id: str
    funding_id: int
    amount: Decimal
    funding_fee: Decimal
    funding_fee_percentage: Decimal
    net_to_borrower: Decimal
    interest_rate: Decimal
    tenure_days: int
    loan_status: str
    funded_at: Optional[datetime]


@dataclass
class ClosurePacket:
    loan_id: int
    borrower_id: str
    lender_ids: List[str]
    purpose: str
    loan_amount: Decimal
    principal: Decimal
    interest_rate: Decimal
    interest_amount: Decimal
    repayment_amount: Decimal
    platform_fee: Decimal
    platform_fee_percentage: Decimal
    net_amount_to_lender: Decimal
    created_at: Optional[datetime]
    first_funded_at: Optional[datetime]
    due_date: Optional[date]
    repaid_at: datetime
    lender_payments: List[Dict[str, Any]] = field(default_factory=list)


class DocumentGenerator(Protocol):
    async def generate(self, agreement_type: AgreementType, packet: Any) -> None:
        ...


def to_document_data(value: Any) -> Any:
    """Convert a packet into JSON-safe primitives"""
    if hasattr(value, "__dataclass_fields__"):
        value = asdict(value)
    if isinstance(value, dict):
        return {key: to_document_data(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_document_data(item) for item in value]
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


class AgreementService:
    """Stores document packets as LoanAgreement rows"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def generate(self, agreement_type: AgreementType, packet: Any) -> None:
        if isinstance(packet, ClosurePacket):
            lender_id = packet.lender_ids[0] if packet.lender_ids else None
            status = AgreementStatus.COMPLETED
        else:
            lender_id = packet.lender_id
            status = AgreementStatus.ACTIVE

        agreement = LoanAgreement(
            loan_id=packet.loan_id,
            borrower_id=packet.borrower_id,
            lender_id=lender_id,
            agreement_type=agreement_type,
            agreement_data=to_document_data(packet),
            status=status,
            signed_at=datetime.utcnow(),
        )
        self.db.add(agreement)
        await self.db.commit()
        logger.info(f"Recorded {agreement_type.value} document for loan {packet.loan_id}")

    async def get_loan_agreements(self, loan_id: int) -> List[LoanAgreement]:
        result = await self.db.execute(
            select(LoanAgreement)
            .where(LoanAgreement.loan_id == loan_id)
            .order_by(LoanAgreement.id.asc())
        )
        return list(result.scalars().all())
