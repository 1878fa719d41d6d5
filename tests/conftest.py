"""
Test configuration and fixtures for the lending ledger tests.
"""
import pytest
from typing import AsyncGenerator
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from httpx import AsyncClient, ASGITransport

from app.core.config import settings
from app.core.database import Base, build_engine, get_db
from main import app


# ============================================================
# Database Fixtures
# ============================================================

# Use SQLite for testing (in-memory)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

BORROWER_ID = "borrower-1"
LENDER_ID = "lender-1"
SECOND_LENDER_ID = "lender-2"


@pytest.fixture
async def test_engine():
    """Create a fresh in-memory database for each test"""
    engine = build_engine(TEST_DATABASE_URL)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for each test"""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def client(db_session) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with database override"""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ============================================================
# Auth Fixtures
# ============================================================

def make_auth_headers(user_id: str) -> dict:
    from app.core.security import create_access_token

    token = create_access_token(data={"sub": user_id})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def borrower_headers():
    return make_auth_headers(BORROWER_ID)


@pytest.fixture
def lender_headers():
    return make_auth_headers(LENDER_ID)


@pytest.fixture
def platform_headers():
    return make_auth_headers(settings.PLATFORM_ACCOUNT_ID)


# ============================================================
# Wallet Fixtures
# ============================================================

async def fund_wallet(db_session, user_id: str, amount: str):
    """Top a wallet up the way the payment gateway would"""
    from app.modules.wallets.services import WalletService

    service = WalletService(db_session)
    await service.top_up(user_id, Decimal(amount), f"pi_test_{user_id}_{amount}")
    return await service.get_wallet(user_id)


@pytest.fixture
async def lender_wallet(db_session):
    return await fund_wallet(db_session, LENDER_ID, "5000.00")


@pytest.fixture
async def second_lender_wallet(db_session):
    return await fund_wallet(db_session, SECOND_LENDER_ID, "5000.00")


# ============================================================
# Loan Fixtures
# ============================================================

def loan_terms(**overrides):
    from app.modules.loans.models import LoanPurpose
    from app.modules.loans.schemas import LoanCreateRequest

    data = dict(
        title="Semester textbooks for engineering",
        description="Need help buying the core textbooks for my third semester of mechanical engineering.",
        amount=Decimal("2000.00"),
        interest_rate=Decimal("4.00"),
        tenure_days=30,
        purpose=LoanPurpose.TEXTBOOKS,
    )
    data.update(overrides)
    return LoanCreateRequest(**data)


@pytest.fixture
async def test_loan(db_session):
    """An open loan request for 2000 at 4% over 30 days"""
    from app.modules.loans.services import LoanService

    service = LoanService(db_session)
    return await service.create_loan_request(BORROWER_ID, loan_terms())
