from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlmodel import SQLModel

from ...config import settings

SessionFactory = async_sessionmaker[AsyncSession]


def _get_async_engine() -> AsyncEngine:
    """Create async engine with connection pooling suited to the database."""
    database_url = settings.async_database_url
    engine_kwargs: dict[str, int | bool]

    if database_url.startswith("sqlite+aiosqlite"):
        engine_kwargs = {"echo": False}
    elif database_url.startswith("postgresql+asyncpg"):
        engine_kwargs = {
            "echo": False,
            "pool_size": 20,
            "max_overflow": 15,
            "pool_recycle": 3600,  # seconds
            "pool_pre_ping": True,
        }
    else:
        raise ValueError(f"Unsupported database URL: {database_url}")

    return create_async_engine(database_url, **engine_kwargs)


_async_engine: AsyncEngine | None = None


def get_async_engine() -> AsyncEngine:
    """Get the async database engine with connection pooling."""
    global _async_engine
    if _async_engine is None:
        _async_engine = _get_async_engine()
    return _async_engine


def create_session_factory(engine: AsyncEngine) -> SessionFactory:
    """Sessions outlive commits so rows stay readable after a write."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


_session_factory: SessionFactory | None = None


def get_session_factory() -> SessionFactory:
    """FastAPI dependency: the session factory bound to the main engine."""
    global _session_factory
    if _session_factory is None:
        _session_factory = create_session_factory(get_async_engine())
    return _session_factory


async def init_async_db(engine: AsyncEngine) -> None:
    """Initialize database tables using async engine."""
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def dispose_async_engine() -> None:
    global _async_engine, _session_factory
    _session_factory = None
    if _async_engine is not None:
        await _async_engine.dispose()
        _async_engine = None
