import asyncio
import contextlib
import socket
from contextlib import asynccontextmanager
from typing import Final

from fastapi import FastAPI

from .application.soft_delete import SoftDeleteManager
from .application.undo_store import UndoTokenStore
from .config import settings
from .infrastructure.database.database import (
    dispose_async_engine,
    get_async_engine,
    init_async_db,
)
from .logging_config import get_logger, setup_logging
from .logging_utils import log_system_info
from .middleware import log_requests_middleware
from .presentation.api_routes import api_router
from .presentation.error_handlers import register_error_handlers
from .telemetry import setup_telemetry


async def sweep_expired_tokens(manager: SoftDeleteManager, interval: float) -> None:
    """Remove expired undo tokens whose timers were delayed, forever."""
    logger = get_logger(__name__)
    while True:
        await asyncio.sleep(interval)
        removed = manager.cleanup_expired_tokens()
        if removed:
            logger.info("Expired undo tokens swept", removed=removed)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Setup logging first
    setup_logging()
    logger = get_logger(__name__)

    await init_async_db(get_async_engine())
    logger.info("Async database initialized successfully")

    store = UndoTokenStore()
    manager = SoftDeleteManager(
        store, default_undo_timeout_ms=settings.undo_timeout_ms
    )
    app.state.soft_delete_manager = manager
    sweeper = asyncio.create_task(
        sweep_expired_tokens(manager, settings.undo_sweep_interval_seconds)
    )

    hostname = socket.gethostname()
    ip_addr = socket.gethostbyname(hostname)
    log_system_info(hostname, ip_addr, settings.debug)

    yield

    sweeper.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await sweeper
    store.close()
    await dispose_async_engine()
    logger.info("Application shutdown completed")


app: Final = FastAPI(
    title=settings.app_name,
    version=settings.version,
    debug=settings.debug,
    lifespan=lifespan,
    description="""
**Storefront Admin** - catalog administration for an e-commerce backend.

## Soft delete with undo

Deleting a category or product hides it instead of removing it, and returns
an `undo_token`. Redeeming the token before `undo_expires_at` restores the
deleted rows along with any side effects of the delete, such as cart rows
that were removed with a product. Bulk deletes return one token for the
whole batch.

Undo tokens live in the memory of the process that issued them. They do not
survive a restart and cannot be redeemed against another instance.

## Identification

The acting admin is read from the `X-Admin-Id` header and recorded on
deleted rows. Requests without it are attributed to `system`.
    """.strip(),
    openapi_tags=[
        {"name": "categories", "description": "Manage product categories"},
        {"name": "products", "description": "Manage products"},
        {"name": "undo", "description": "Inspect pending undo tokens"},
    ],
)

# Setup OpenTelemetry tracing
setup_telemetry(app)

app.middleware("http")(log_requests_middleware)

register_error_handlers(app)

app.include_router(api_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port)
