# src/retro_messenger/main.py
"""Main entry point for the Retro Messenger server."""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from retro_messenger.api.v1 import auth_router, messages_router
from retro_messenger.core.container import MessengerCore
from retro_messenger.core.settings import settings

logger = logging.getLogger(__name__)


def create_app(core: MessengerCore | None = None) -> FastAPI:
    """Build the FastAPI app around an explicitly constructed core."""
    logging.basicConfig(level=settings.log_level)

    app = FastAPI(
        title="Retro Messenger API",
        description="End-to-end encrypted real-time messaging core",
        version=settings.app_version,
    )
    app.state.core = core or MessengerCore.build()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

    app.include_router(auth_router, prefix="/api/v1")
    app.include_router(messages_router, prefix="/api/v1")

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        presence = app.state.core.presence
        logger.info("Shutting down; closing %d push channel(s)", presence.total_connections())
        presence.reset()

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint to verify the service is running."""
        return {"status": "ok"}

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("retro_messenger.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
