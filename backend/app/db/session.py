"""Async DB engine/session. Request sessions commit on success and roll back on any error."""
from collections.abc import AsyncGenerator
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from app.core.config import get_settings
from app.db.models import Base


def _emit_own_begin(engine: AsyncEngine) -> None:
    """SQLite drivers start transactions lazily and break SAVEPOINT; issue BEGIN ourselves."""

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    kwargs: dict = {"echo": echo}
    if database_url.startswith("sqlite"):
        engine = create_async_engine(database_url, **kwargs)
        _emit_own_begin(engine)
        return engine
    kwargs["pool_pre_ping"] = True
    return create_async_engine(database_url, **kwargs)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


settings = get_settings()
engine = build_engine(settings.database_url, echo=settings.debug)
async_session_factory = build_session_factory(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db(bind: AsyncEngine | None = None) -> None:
    """Create tables (Alembic handles migrations; this is for tests, seeding or explicit init)."""
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
