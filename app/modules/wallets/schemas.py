from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import Optional

from app.modules.wallets.models import TransactionType, ReferenceType


class WalletResponse(BaseModel):
    id: int
    user_id: str
    currency: str
    balance: Decimal
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class WalletTransactionResponse(BaseModel):
    id: int
    wallet_id: int
    user_id: str
    transaction_type: TransactionType
    amount: Decimal
    balance_before: Decimal
    balance_after: Decimal
    description: str
    reference_type: Optional[ReferenceType] = None
    reference_id: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TopUpRequest(BaseModel):
    """Sent by the payment gateway once funds are confirmed"""
    amount: Decimal = Field(..., gt=0)
    payment_reference: str = Field(..., min_length=1, max_length=100)


class WithdrawRequest(BaseModel):
    amount: Decimal = Field(..., gt=0)
    reference: Optional[str] = Field(None, max_length=100)
