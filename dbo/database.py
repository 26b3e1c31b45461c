"""Database connection and session management."""
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Iterable

from sqlalchemy import event
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine.url import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from dbo.config import Settings
from dbo.errors import AccountError, AdapterFault

logger = logging.getLogger(__name__)

# Base class for models
Base = declarative_base()


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite ignores ON DELETE CASCADE unless this pragma is set per connection.
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine(settings: Settings, **overrides) -> AsyncEngine:
    """Create the async engine for the configured database.

    Engines are built explicitly at startup and handed to the session
    factory; nothing in this module holds a process-wide engine.
    """
    parsed_url = make_url(settings.database_url)
    is_sqlite = parsed_url.drivername.startswith("sqlite")

    engine_kwargs = {
        "echo": False,
        "future": True,
        "pool_pre_ping": True,
    }

    if is_sqlite:
        logger.debug("Using SQLite (no password required)")
    else:
        # Determine if we need SSL (for Heroku or other cloud databases)
        connect_args = {}
        needs_ssl = (
            "heroku" in settings.database_url or
            "amazonaws" in settings.database_url or
            settings.environment == "production"
        )
        if needs_ssl:
            connect_args["ssl"] = "require"
            logger.debug("SSL connection enabled (ssl=require)")
        engine_kwargs.update(
            connect_args=connect_args,
            pool_recycle=3600,
            pool_size=max(1, settings.db_pool_size),
            max_overflow=max(0, settings.db_max_overflow),
        )

    engine_kwargs.update(overrides)

    try:
        engine = create_async_engine(settings.database_url, **engine_kwargs)
    except Exception as e:
        logger.error(f"Failed to create database engine: {e}")
        raise

    if is_sqlite:
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)

    logger.debug("Database engine created successfully")
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Return a session factory bound to ``engine``."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_models(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet."""
    # Import models so they register with the metadata before create_all.
    import dbo.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialized")


@asynccontextmanager
async def transaction(db: AsyncSession, operation: str) -> AsyncIterator[None]:
    """Commit the work done inside the block, or roll it back on any error.

    Account errors propagate unchanged. Database errors are logged and
    surface as ``AdapterFault`` without driver detail.
    """
    try:
        yield
        await db.commit()
    except AccountError:
        await db.rollback()
        raise
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error(f"Database error during {operation}", exc_info=True)
        raise AdapterFault("storage_failure") from exc


def upsert_statement(
    db: AsyncSession,
    model: Any,
    values: dict[str, Any],
    *,
    index_elements: Iterable[str],
    update_data: dict[str, Any],
):
    """Build an ``INSERT ... ON CONFLICT DO UPDATE`` for the session's dialect."""
    bind = db.get_bind()
    dialect_name = (bind.dialect.name if bind is not None else "").lower()
    if "sqlite" in dialect_name:
        stmt = sqlite_insert(model).values(**values)
    else:
        stmt = pg_insert(model).values(**values)
    return stmt.on_conflict_do_update(
        index_elements=list(index_elements),
        set_=update_data,
    )
