# roomchat/main.py

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from roomchat.core.config import Settings, settings as default_settings
from roomchat.core.logging import setup_logging, get_logger
from roomchat.core.state import AppState
from roomchat.api.routes import root, health, metrics, rooms
from roomchat.api import websocket as websocket_module

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("🚀 Application starting - room chat enabled")
    yield
    await app.state.chat.shutdown()
    logger.info("Application stopped, all rooms dropped")


def create_app(settings: Settings | None = None) -> FastAPI:
    """
    Build the application with its own, empty room registry.

    Each call returns an independent app: no rooms or connections are shared
    between instances.
    """
    settings = settings or default_settings

    # Configure logging first
    setup_logging(settings.LOG_LEVEL)

    app = FastAPI(title="roomchat", lifespan=lifespan)
    app.state.chat = AppState.from_settings(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # REST routes
    app.include_router(root.router)
    app.include_router(health.router)
    app.include_router(metrics.router)
    app.include_router(rooms.router)

    # WebSocket routes
    app.include_router(websocket_module.router)

    return app


app = create_app()


def run() -> None:
    import uvicorn
    uvicorn.run("roomchat.main:app", host=default_settings.HOST, port=default_settings.PORT)


if __name__ == "__main__":
    run()
