"""
Async SQLAlchemy engine, session factory and declarative base.
"""

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
import structlog

from app.config import settings

logger = structlog.get_logger(__name__)


class Base(DeclarativeBase):
    pass


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def make_engine(url: str = settings.DATABASE_URL, echo: bool = settings.DB_ECHO) -> AsyncEngine:
    """Create an async engine; SQLite connections get FK enforcement."""
    kwargs = {"echo": echo, "pool_pre_ping": True}
    if not url.startswith("sqlite"):
        kwargs["pool_size"] = settings.DB_POOL_SIZE
        kwargs["max_overflow"] = settings.DB_MAX_OVERFLOW

    eng = create_async_engine(url, **kwargs)
    if url.startswith("sqlite"):
        event.listen(eng.sync_engine, "connect", _enable_sqlite_foreign_keys)
    return eng


def make_session_factory(eng: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(eng, class_=AsyncSession, expire_on_commit=False)


engine = make_engine()
async_session_factory = make_session_factory(engine)


async def init_db(eng: AsyncEngine = engine) -> None:
    """Create tables that do not exist yet."""
    import app.models.tables  # noqa: F401  (registers mappers)

    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("database_initialised", url=eng.url.render_as_string(hide_password=True))


async def close_db(eng: AsyncEngine = engine) -> None:
    await eng.dispose()
