# backend/folio/db/session.py

import logging
from pathlib import Path

from sqlalchemy import event, select
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from folio.config.settings import settings
from folio.db.models import Base, Portfolio

logger = logging.getLogger(__name__)

DEFAULT_PORTFOLIO_NAME = "Main"
DEFAULT_BASE_CURRENCY = "USD"


def _enable_sqlite_wal(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(database_url: str, **kwargs) -> AsyncEngine:
    engine = create_async_engine(database_url, echo=False, **kwargs)
    if engine.dialect.name == "sqlite":
        event.listen(engine.sync_engine, "connect", _enable_sqlite_wal)
    return engine


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(autoflush=False, expire_on_commit=False, bind=bind)


engine = build_engine(settings.database_url)
AsyncSessionLocal = build_session_factory(engine)


def _ensure_sqlite_directory(bind: AsyncEngine) -> None:
    url = make_url(str(bind.url))
    database = url.database
    if bind.dialect.name != "sqlite" or not database or database == ":memory:":
        return
    Path(database).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)


async def init_db(bind: AsyncEngine | None = None) -> None:
    """Create the schema and seed the default portfolio."""
    bind = bind or engine
    _ensure_sqlite_directory(bind)
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = build_session_factory(bind)
    async with session_factory() as session:
        result = await session.execute(select(Portfolio.id).order_by(Portfolio.id).limit(1))
        if result.scalar_one_or_none() is None:
            session.add(Portfolio(name=DEFAULT_PORTFOLIO_NAME, base_currency=DEFAULT_BASE_CURRENCY))
            await session.commit()
            logger.info(f"Seeded default portfolio {DEFAULT_PORTFOLIO_NAME!r}")
