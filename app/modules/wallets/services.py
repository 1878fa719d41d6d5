from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, and_
from sqlalchemy.exc import IntegrityError
from typing import List, Optional
from decimal import Decimal
import logging

from app.core.config import settings
from app.core.database import run_unit_of_work, sql_money
from app.core.exceptions import InvalidAmount, InsufficientFunds, NotFound
from app.modules.fees.calculator import money, validate_amount
from app.modules.wallets.models import Wallet, WalletTransaction, TransactionType, ReferenceType

logger = logging.getLogger(__name__)


class WalletService:
    """
    Wallet balances and their transaction journal.

    ``credit`` and ``debit`` are the only code paths that change a balance.
    They flush but never commit, so callers can bundle several movements into
    one unit of work. ``top_up`` and ``withdraw`` are complete use cases and
    commit on their own.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_wallet(self, user_id: str, currency: Optional[str] = None) -> Optional[Wallet]:
        currency = currency or settings.DEFAULT_CURRENCY
        result = await self.db.execute(
            select(Wallet)
            .where(and_(Wallet.user_id == user_id, Wallet.currency == currency))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_or_create_wallet(self, user_id: str, currency: Optional[str] = None) -> Wallet:
        """Fetch the wallet, creating an empty one if absent; a lost creation race returns the winner's row"""
        currency = currency or settings.DEFAULT_CURRENCY
        wallet = await self.get_wallet(user_id, currency)
        if wallet:
            return wallet

        try:
            async with self.db.begin_nested():
                wallet = Wallet(user_id=user_id, currency=currency, balance=Decimal("0.00"))
                self.db.add(wallet)
        except IntegrityError:
            logger.info(f"Wallet for {user_id}/{currency} created concurrently, fetching existing row")
            wallet = await self.get_wallet(user_id, currency)
            if wallet is None:
                raise
        else:
            await self.db.refresh(wallet)
            logger.info(f"Created {currency} wallet for user {user_id}")

        return wallet

    async def _lock_wallet(self, user_id: str, currency: str) -> Wallet:
        wallet = await self.get_or_create_wallet(user_id, currency)
        result = await self.db.execute(
            select(Wallet)
            .where(Wallet.id == wallet.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    async def _append(
        self,
        wallet: Wallet,
        transaction_type: TransactionType,
        amount: Decimal,
        description: str,
        reference_type: Optional[ReferenceType],
        reference_id: Optional[str],
    ) -> WalletTransaction:
        await self.db.refresh(wallet)
        balance_after = Decimal(wallet.balance)
        if transaction_type == TransactionType.CREDIT:
            balance_before = balance_after - amount
        else:
            balance_before = balance_after + amount

        txn = WalletTransaction(
            wallet_id=wallet.id,
            user_id=wallet.user_id,
            transaction_type=transaction_type,
            amount=amount,
            balance_before=balance_before,
            balance_after=balance_after,
            description=description,
            reference_type=reference_type,
            reference_id=str(reference_id) if reference_id is not None else None,
        )
        self.db.add(txn)
        await self.db.flush()
        await self.db.refresh(txn)
        return txn

    async def credit(
        self,
        user_id: str,
        currency: Optional[str],
        amount,
        description: str,
        reference_type: Optional[ReferenceType] = None,
        reference_id: Optional[str] = None,
    ) -> WalletTransaction:
        """Add ``amount`` to the wallet and journal it"""
        amount = validate_amount(amount)
        wallet = await self._lock_wallet(user_id, currency or settings.DEFAULT_CURRENCY)

        await self.db.execute(
            update(Wallet)
            .where(Wallet.id == wallet.id)
            .values(balance=sql_money(Wallet.balance + amount))
            .execution_options(synchronize_session=False)
        )
        return await self._append(wallet, TransactionType.CREDIT, amount, description, reference_type, reference_id)

    async def debit(
        self,
        user_id: str,
        currency: Optional[str],
        amount,
        description: str,
        reference_type: Optional[ReferenceType] = None,
        reference_id: Optional[str] = None,
    ) -> WalletTransaction:
        """Remove ``amount`` from the wallet and journal it; never lets the balance go negative"""
        amount = validate_amount(amount)
        wallet = await self._lock_wallet(user_id, currency or settings.DEFAULT_CURRENCY)

        balance = Decimal(wallet.balance)
        if amount > balance:
            raise InsufficientFunds(balance, amount)

        # The balance guard is evaluated by the database against the row as it is now
        result = await self.db.execute(
            update(Wallet)
            .where(and_(Wallet.id == wallet.id, sql_money(Wallet.balance - amount) >= 0))
            .values(balance=sql_money(Wallet.balance - amount))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.refresh(wallet)
            raise InsufficientFunds(Decimal(wallet.balance), amount)

        return await self._append(wallet, TransactionType.DEBIT, amount, description, reference_type, reference_id)

    async def get_balance(self, user_id: str, currency: Optional[str] = None) -> Decimal:
        wallet = await self.get_wallet(user_id, currency)
        return Decimal(wallet.balance) if wallet else Decimal("0.00")

    async def get_transactions(
        self,
        user_id: str,
        currency: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[WalletTransaction]:
        """Journal entries for the user's wallet, newest first"""
        wallet = await self.get_wallet(user_id, currency)
        if wallet is None:
            return []

        result = await self.db.execute(
            select(WalletTransaction)
            .where(WalletTransaction.wallet_id == wallet.id)
            .order_by(WalletTransaction.id.desc())
            .limit(limit or settings.RECENT_TRANSACTIONS_LIMIT)
        )
        return list(result.scalars().all())

    async def reconstruct_balance(self, wallet_id: int) -> Decimal:
        """Replay the journal from an empty wallet"""
        result = await self.db.execute(
            select(WalletTransaction)
            .where(WalletTransaction.wallet_id == wallet_id)
            .order_by(WalletTransaction.id.asc())
        )
        balance = Decimal("0.00")
        for txn in result.scalars().all():
            if txn.transaction_type == TransactionType.CREDIT:
                balance += Decimal(txn.amount)
            else:
                balance -= Decimal(txn.amount)
        return money(balance)

    async def _find_topup(self, wallet_id: int, payment_reference: str) -> Optional[WalletTransaction]:
        result = await self.db.execute(
            select(WalletTransaction).where(
                and_(
                    WalletTransaction.wallet_id == wallet_id,
                    WalletTransaction.reference_type == ReferenceType.WALLET_TOPUP,
                    WalletTransaction.reference_id == payment_reference,
                )
            )
        )
        return result.scalars().first()

    async def top_up(self, user_id: str, amount, payment_reference: str, currency: Optional[str] = None) -> WalletTransaction:
        """
        Credit funds confirmed by the payment gateway.

        A confirmation replayed with the same payment reference returns the
        original journal entry instead of crediting twice.
        """
        amount = validate_amount(amount)
        if amount < settings.MIN_TOPUP_AMOUNT:
            raise InvalidAmount(f"Minimum top-up amount is {settings.MIN_TOPUP_AMOUNT}")
        currency = currency or settings.DEFAULT_CURRENCY

        async def work() -> WalletTransaction:
            wallet = await self._lock_wallet(user_id, currency)
            existing = await self._find_topup(wallet.id, payment_reference)
            if existing:
                logger.info(f"Top-up {payment_reference} already applied to wallet {wallet.id}")
                return existing
            return await self.credit(
                user_id, currency, amount, "wallet_topup",
                reference_type=ReferenceType.WALLET_TOPUP,
                reference_id=payment_reference,
            )

        txn = await run_unit_of_work(self.db, work)
        logger.info(f"Wallet top-up of {amount} {currency} for user {user_id} ({payment_reference})")
        return txn

    async def withdraw(self, user_id: str, amount, reference: Optional[str] = None, currency: Optional[str] = None) -> WalletTransaction:
        amount = validate_amount(amount)
        if amount < settings.MIN_WITHDRAWAL_AMOUNT:
            raise InvalidAmount(f"Minimum withdrawal amount is {settings.MIN_WITHDRAWAL_AMOUNT}")
        currency = currency or settings.DEFAULT_CURRENCY

        async def work() -> WalletTransaction:
            wallet = await self.get_wallet(user_id, currency)
            if wallet is None:
                raise NotFound("Wallet not found")
            return await self.debit(
                user_id, currency, amount, f"Wallet withdrawal - {amount}",
                reference_type=ReferenceType.WITHDRAWAL,
                reference_id=reference,
            )

        txn = await run_unit_of_work(self.db, work)
        logger.info(f"Wallet withdrawal of {amount} {currency} for user {user_id}")
        return txn
