from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlmodel import SQLModel
from sqlmodel.pool import StaticPool

from storefront.application.category_service import CategoryService
from storefront.application.product_service import ProductService
from storefront.application.soft_delete import SoftDeleteManager
from storefront.application.undo_store import UndoTokenStore
from storefront.infrastructure.database.database import create_session_factory


class FakeClock:
    """A clock that only moves when told to."""

    def __init__(self, start: datetime | None = None):
        self.current = start or datetime(2024, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, milliseconds: int) -> None:
        self.current += timedelta(milliseconds=milliseconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def store(clock):
    undo_store = UndoTokenStore(clock=clock)
    yield undo_store
    undo_store.close()


@pytest.fixture
def manager(store) -> SoftDeleteManager:
    return SoftDeleteManager(store)


@pytest.fixture(name="session_factory")
async def session_factory_fixture():
    """Session factory over one shared in-memory SQLite connection."""
    async_engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with async_engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield create_session_factory(async_engine)

    await async_engine.dispose()


@pytest.fixture
def category_service(session_factory, manager) -> CategoryService:
    return CategoryService(session_factory, manager)


@pytest.fixture
def product_service(session_factory, manager) -> ProductService:
    return ProductService(session_factory, manager)
