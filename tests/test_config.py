from storefront.config import Settings


def test_sqlite_url_uses_aiosqlite():
    settings = Settings(database_url="sqlite:///./shop.db")

    assert settings.async_database_url == "sqlite+aiosqlite:///./shop.db"


def test_postgres_url_uses_asyncpg():
    settings = Settings(database_url="postgresql://user:pw@db:5432/shop")

    assert settings.async_database_url == "postgresql+asyncpg://user:pw@db:5432/shop"


def test_settings_expose_only_async_url_as_computed_field():
    dumped = Settings().model_dump()

    assert "async_database_url" in dumped
    assert "is_production" not in dumped
    assert dumped["undo_timeout_ms"] == 5000
