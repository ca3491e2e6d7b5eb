"""
Relay Hub main application.

Serves the WebSocket endpoint for User and Aid clients, runs the
liveness reaper and status report loops, and notifies every client
before the process exits.

Start the process with ``assist-hub`` or ``python -m assist_hub``. Both go
through ``run()``, whose HubServer sends ``server_shutdown`` before uvicorn
closes the sockets. There is no module-level ``app``. A bare
``uvicorn ...:create_app --factory`` would close the sockets before the
lifespan shutdown, and clients would never see the notice.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, WebSocket

from assist_hub import __version__
from assist_hub.components.endpoints.handler import HubEndpoint
from assist_hub.hub import RelayHub
from shared.config.logging import hub_logger as logger, setup_logging
from shared.config.settings import settings


# =============================================================================
# Application factory
# =============================================================================


def create_app(hub: RelayHub | None = None, configure_logging: bool = True) -> FastAPI:
    """
    Build the FastAPI application around a hub.

    Args:
        hub: Hub instance; a new one built from settings if omitted.
        configure_logging: Install the stdout and file log handlers at startup.
    """
    hub = hub or RelayHub(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan handler.

        Starts the liveness reaper and status report tasks; on shutdown
        notifies every client, closes every channel and stops the tasks.
        """
        if configure_logging:
            setup_logging()

        for problem in hub.settings.validate_settings():
            logger.warning("Configuration problem", problem=problem)

        logger.info(
            "AR Remote Assist relay hub started",
            port=hub.settings.port,
            env=hub.settings.environment,
            audio_relay=hub.settings.audio_relay_enabled,
        )
        hub.start_background_tasks()

        yield

        await hub.shutdown()
        await hub.stop_background_tasks()
        logger.info("Relay hub stopped")

    app = FastAPI(
        title="AR Remote Assist Relay Hub",
        description="Relays video, 3D annotations and call signaling between User and Aid clients",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.hub = hub

    @app.get("/health")
    async def health_check():
        """Basic health check endpoint."""
        return {
            "status": "shutting_down" if hub.is_shutdown else "healthy",
            "service": "assist-hub",
            "version": app.version,
            **(await hub.get_stats()),
        }

    @app.websocket("/ws")
    async def hub_websocket(websocket: WebSocket):
        await HubEndpoint(websocket, hub).run()

    # Clients that connect to the server root
    @app.websocket("/")
    async def root_websocket(websocket: WebSocket):
        await HubEndpoint(websocket, hub).run()

    return app


# =============================================================================
# Process entry point
# =============================================================================


class HubServer(uvicorn.Server):
    """
    uvicorn server that sends the shutdown notice first.

    uvicorn closes open WebSockets before the lifespan shutdown runs, so
    the notice has to go out here while the connections are still open.
    """

    def __init__(self, config: uvicorn.Config, hub: RelayHub) -> None:
        super().__init__(config)
        self.hub = hub

    async def shutdown(self, sockets=None) -> None:
        try:
            await self.hub.shutdown()
        except Exception as e:
            logger.error("Error notifying clients of shutdown", error=str(e))
        await super().shutdown(sockets=sockets)


def run() -> None:
    """Run the hub on ``settings.host:settings.port``."""
    hub = RelayHub(settings)
    config = uvicorn.Config(
        create_app(hub),
        host=settings.host,
        port=settings.port,
        # logging is configured by the lifespan
        log_config=None,
    )
    HubServer(config, hub).run()


if __name__ == "__main__":
    run()
