from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from app.core.database import Base, async_engine, AsyncSessionLocal
from app.core.config import settings
from app.core.fixtures import seed_demo_data
from app.modules.wallets.router import router as wallets_router
from app.modules.loans.router import router as loans_router
from app.modules.fees.router import router as fees_router

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events"""
    # Startup
    async with async_engine.begin() as conn:
        # Create all tables (for development - use Alembic in production)
        await conn.run_sync(Base.metadata.create_all)

    if settings.DEMO_MODE:
        if not settings.is_sqlite:
            raise RuntimeError("DEMO_MODE requires an SQLite DATABASE_URL")
        async with AsyncSessionLocal() as session:
            await seed_demo_data(session)
        logger.info("Running with the demo ledger backend")

    yield

    # Shutdown
    await async_engine.dispose()


app = FastAPI(
    title="VibeLend API",
    description="Peer-to-peer student lending - wallet and loan ledger",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# CORS Configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(wallets_router)
app.include_router(loans_router)
app.include_router(fees_router)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "ok",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT
    }


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Welcome to VibeLend API",
        "version": settings.APP_VERSION,
        "docs": "/docs"
    }
