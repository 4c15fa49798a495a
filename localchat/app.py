from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from tortoise.contrib.fastapi import RegisterTortoise

from .errors import PersistenceError
from .logging_config import get_logger, setup_logging
from .routers import qr as qr_router
from .routers import rooms as rooms_router
from .routers import websockets as ws_router
from .state import core, gateway

settings = core.settings
setup_logging(settings.log_level, settings.log_file)
logger = get_logger(__name__)


async def reset_presence() -> None:
    # Presence is never persisted: whatever was online before a restart is not now.
    core.reset()
    try:
        stale = await gateway.mark_all_offline()
    except PersistenceError:
        logger.warning("Could not reset online flags at startup")
        return
    if stale:
        logger.info("Marked %d stale user(s) offline", stale)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the database, clear stale presence, close the database on exit."""
    async with RegisterTortoise(
        app,
        db_url=settings.database_url,
        modules={"models": ["localchat.models"]},
        generate_schemas=True,
        add_exception_handlers=True,
    ):
        await reset_presence()
        logger.info("LocalChat started; clients at %s", settings.client_url())
        yield
        logger.info("LocalChat shutting down")


# -----------------------------
# FastAPI app instance
# -----------------------------

app = FastAPI(title="LocalChat", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.origin_list(),
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

# Register routers
app.include_router(rooms_router.router)
app.include_router(qr_router.router)
app.include_router(ws_router.router)


@app.get("/health")
async def health():
    return {"status": "ok", "connections": len(core.hub.connections), "online": len(core.registry)}


__all__ = ["app", "lifespan"]
