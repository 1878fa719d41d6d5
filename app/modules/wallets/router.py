from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from app.core.database import get_db
from app.core.dependencies import get_current_user_id
from app.core.exceptions import LedgerError, http_status_for
from app.modules.wallets.schemas import WalletResponse, WalletTransactionResponse, TopUpRequest, WithdrawRequest
from app.modules.wallets.services import WalletService

router = APIRouter(prefix="/wallets", tags=["wallets"])


@router.get("/me", response_model=WalletResponse)
async def read_wallet(
    currency: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    """Current user's wallet, created empty on first access"""
    service = WalletService(db)
    wallet = await service.get_or_create_wallet(user_id, currency)
    await db.commit()
    return wallet


@router.get("/me/transactions", response_model=List[WalletTransactionResponse])
async def read_wallet_transactions(
    currency: Optional[str] = None,
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    service = WalletService(db)
    return await service.get_transactions(user_id, currency, limit=limit)


@router.post("/me/top-up", response_model=WalletTransactionResponse)
async def top_up_wallet(
    request: TopUpRequest,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    """Credit funds already confirmed by the payment gateway"""
    service = WalletService(db)
    try:
        return await service.top_up(user_id, request.amount, request.payment_reference)
    except LedgerError as e:
        raise HTTPException(status_code=http_status_for(e), detail=str(e))


@router.post("/me/withdraw", response_model=WalletTransactionResponse)
async def withdraw_from_wallet(
    request: WithdrawRequest,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    service = WalletService(db)
    try:
        return await service.withdraw(user_id, request.amount, request.reference)
    except LedgerError as e:
        raise HTTPException(status_code=http_status_for(e), detail=str(e))
