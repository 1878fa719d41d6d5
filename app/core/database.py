from sqlalchemy import event, func
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool
from typing import AsyncGenerator, Awaitable, Callable, Optional, TypeVar
import logging

from app.core.config import settings
from app.core.exceptions import ConcurrencyConflict, LedgerError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# SQLSTATEs PostgreSQL raises when a transaction lost a race
RETRYABLE_SQLSTATES = {"40001", "40P01"}


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine for either PostgreSQL or the SQLite demo backend"""
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False, "timeout": 5}}
        if ":memory:" in url:
            kwargs["poolclass"] = StaticPool
        engine = create_async_engine(url, echo=echo, **kwargs)
        enable_sqlite_transactions(engine)
        return engine

    return create_async_engine(
        url,
        echo=echo,
        future=True,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20
    )


def enable_sqlite_transactions(engine: AsyncEngine) -> None:
    """Let SQLAlchemy emit BEGIN itself so SAVEPOINT and rollback behave on SQLite"""

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def is_retryable_error(exc: DBAPIError) -> bool:
    """True when a database error means another transaction won a race"""
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in RETRYABLE_SQLSTATES:
        return True
    return "database is locked" in str(orig or exc).lower()


async_engine = build_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)

# Async Session Factory
AsyncSessionLocal = async_sessionmaker(
    async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False
)

Base = declarative_base()


def sql_money(expression):
    """Round money arithmetic to cents inside SQL; SQLite evaluates Numeric as floating point"""
    return func.round(expression, 2)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Get async database session"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def run_unit_of_work(db: AsyncSession, work: Callable[[], Awaitable[T]], retries: Optional[int] = None) -> T:
    """
    Run ``work`` as one transaction on ``db``.

    Commits when ``work`` returns, rolls back on any failure. A lost race
    (serialization failure, deadlock, locked database or a uniqueness clash)
    rolls back and reruns the whole of ``work`` up to ``retries`` more times
    before surfacing ConcurrencyConflict.
    """
    if retries is None:
        retries = settings.CONCURRENCY_RETRIES

    attempt = 0
    while True:
        try:
            result = await work()
            await db.commit()
            return result
        except IntegrityError as e:
            await db.rollback()
            conflict = ConcurrencyConflict()
            logger.warning(f"Unit of work hit a uniqueness conflict: {e.orig}")
        except DBAPIError as e:
            await db.rollback()
            if not is_retryable_error(e):
                raise
            conflict = ConcurrencyConflict()
            logger.warning(f"Unit of work lost a commit race: {e.orig}")
        except ConcurrencyConflict as e:
            await db.rollback()
            conflict = e
        except LedgerError:
            await db.rollback()
            raise
        except Exception as e:
            await db.rollback()
            logger.error(f"Unit of work failed: {e}")
            raise

        if attempt >= retries:
            raise conflict
        attempt += 1
        logger.info(f"Retrying unit of work (attempt {attempt + 1})")
