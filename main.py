#!/usr/bin/env python3
"""
Live Camera Relay - Entry Point
WebSocket relay between camera broadcasters and viewers + health check
"""
import logging
import socket
from typing import Optional

from aiohttp import web

from relay import config
from relay.api import (
    REGISTRY, ROUTER, SWEEPER,
    api_health, close_connections, cors_middleware, ws_relay,
    start_background_tasks, stop_background_tasks
)
from relay.registry import Registry
from relay.router import Router
from relay.sweeper import Sweeper

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger("camera_relay")


def create_app(registry: Optional[Registry] = None,
               sweep_interval: float = config.SWEEP_INTERVAL) -> web.Application:
    """Create and configure the aiohttp application"""
    app = web.Application(middlewares=[cors_middleware])

    registry = registry or Registry()
    router = Router(registry)
    app[REGISTRY] = registry
    app[ROUTER] = router
    app[SWEEPER] = Sweeper(registry, router, interval=sweep_interval)

    app.router.add_get("/health", api_health)

    # WebSocket relay
    app.router.add_get("/", ws_relay)
    app.router.add_get("/ws", ws_relay)

    app.on_startup.append(start_background_tasks)
    app.on_shutdown.append(close_connections)
    app.on_cleanup.append(stop_background_tasks)

    return app


def get_local_ip():
    """LAN address viewers and broadcasters can reach, for the startup log"""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            # UDP connect sends nothing, it only picks the outbound interface
            sock.connect(("8.8.8.8", 80))
            return sock.getsockname()[0]
    except OSError:
        return "localhost"


def main():
    app = create_app()
    port = config.PORT
    host = config.SERVER_HOST

    logger.info(f"WebSocket server running on {host}:{port}")
    logger.info(f"Health check: http://{get_local_ip()}:{port}/health")

    web.run_app(app, host=host, port=port)


if __name__ == "__main__":
    main()
