# Wallets module
from app.modules.wallets.models import Wallet, WalletTransaction, TransactionType, ReferenceType

__all__ = ["Wallet", "WalletTransaction", "TransactionType", "ReferenceType"]
