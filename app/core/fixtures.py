"""
Demo data for running the API without a real database.

Selected at startup with DEMO_MODE=true and an SQLite DATABASE_URL; business
logic never branches on it.
"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from decimal import Decimal
import logging

from app.modules.loans.models import LoanRequest, LoanPurpose
from app.modules.loans.schemas import LoanCreateRequest
from app.modules.loans.services import LoanService
from app.modules.wallets.services import WalletService

logger = logging.getLogger(__name__)

DEMO_WALLETS = {
    "demo-borrower-priya": Decimal("1500.00"),
    "demo-borrower-arjun": Decimal("500.00"),
    "demo-lender-meera": Decimal("25000.00"),
    "demo-lender-rahul": Decimal("10000.00"),
}

DEMO_LOANS = [
    (
        "demo-borrower-priya",
        LoanCreateRequest(
            title="Semester textbooks for engineering",
            description="Need help buying the core textbooks for my third semester of mechanical engineering.",
            amount=Decimal("2000.00"),
            interest_rate=Decimal("4.00"),
            tenure_days=30,
            purpose=LoanPurpose.TEXTBOOKS,
        ),
    ),
    (
        "demo-borrower-arjun",
        LoanCreateRequest(
            title="Hostel rent for November",
            description="My scholarship payment is delayed by a month and hostel rent is due before it arrives.",
            amount=Decimal("6000.00"),
            interest_rate=Decimal("8.50"),
            tenure_days=60,
            purpose=LoanPurpose.RENT,
        ),
    ),
]


async def seed_demo_data(db: AsyncSession) -> None:
    """Populate an empty database with demo wallets and open loan requests"""
    existing = await db.execute(select(func.count()).select_from(LoanRequest))
    if existing.scalar():
        return

    wallets = WalletService(db)
    for user_id, balance in DEMO_WALLETS.items():
        await wallets.top_up(user_id, balance, f"demo-seed-{user_id}")

    loans = LoanService(db)
    for borrower_id, terms in DEMO_LOANS:
        await loans.create_loan_request(borrower_id, terms)

    logger.info(f"Seeded {len(DEMO_WALLETS)} demo wallets and {len(DEMO_LOANS)} demo loans")
