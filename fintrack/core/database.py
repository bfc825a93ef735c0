import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator

import structlog
from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from fintrack.config import settings
from fintrack.core.errors import ConflictError, LedgerError, StorageError, StorageTimeoutError

logger = structlog.get_logger(__name__)

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine_for(url: str, echo: bool = False, **kwargs) -> AsyncEngine:
    if url.startswith("sqlite"):
        connect_args = kwargs.pop("connect_args", {})
        connect_args.setdefault("timeout", settings.DB_TIMEOUT)
        kwargs["connect_args"] = connect_args

    db_engine = create_async_engine(url, echo=echo, **kwargs)
    if db_engine.dialect.name == "sqlite":
        event.listen(db_engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    return db_engine


engine = create_engine_for(settings.DATABASE_URL, echo=settings.DB_ECHO)
AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False)


async def init_db(bind: AsyncEngine = engine) -> None:
    # Import models so every table is registered on Base.metadata
    from fintrack.models import account, transaction, user  # noqa: F401

    url = make_url(str(bind.url))
    if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("database_initialized", backend=url.get_backend_name())


async def get_db() -> AsyncIterator[AsyncSession]:
    async with AsyncSessionLocal() as session:
        yield session


def _is_timeout(exc: OperationalError) -> bool:
    text = str(exc.orig if exc.orig is not None else exc).lower()
    return "locked" in text or "timeout" in text or "timed out" in text


@asynccontextmanager
async def atomic(db: AsyncSession) -> AsyncIterator[AsyncSession]:
    """
    Run a block as one store transaction.

    Commits when the block finishes, rolls everything back on any error.
    Driver failures are re-raised as StorageError / StorageTimeoutError,
    uniqueness and foreign-key violations as ConflictError.
    """
    try:
        yield db
        await db.commit()
    except LedgerError:
        await db.rollback()
        raise
    except IntegrityError as e:
        await db.rollback()
        logger.warning("store_integrity_violation", error=str(e.orig))
        raise ConflictError("The change conflicts with an existing record") from e
    except (PoolTimeoutError, asyncio.TimeoutError) as e:
        await db.rollback()
        logger.error("store_timeout", error=str(e))
        raise StorageTimeoutError("The data store timed out; nothing was saved") from e
    except OperationalError as e:
        await db.rollback()
        if _is_timeout(e):
            logger.error("store_timeout", error=str(e))
            raise StorageTimeoutError("The data store timed out; nothing was saved") from e
        logger.error("store_failure", error=str(e))
        raise StorageError("The data store failed; nothing was saved") from e
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("store_failure", error=str(e))
        raise StorageError("The data store failed; nothing was saved") from e
    except Exception:
        await db.rollback()
        raise
