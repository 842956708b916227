"""
HTTP and WebSocket handlers for the camera relay
"""
import asyncio
import logging

from aiohttp import WSMsgType, web

from . import config
from .connection import Connection
from .registry import Registry
from .router import Router
from .sweeper import Sweeper

logger = logging.getLogger("camera_relay")

REGISTRY = web.AppKey("registry", Registry)
ROUTER = web.AppKey("router", Router)
SWEEPER = web.AppKey("sweeper", Sweeper)

# ============================================================
# WEBSOCKET RELAY
# ============================================================

async def ws_relay(request: web.Request) -> web.WebSocketResponse:
    """Accept a relay connection and feed its messages to the router"""
    registry = request.app[REGISTRY]
    router = request.app[ROUTER]

    ws = web.WebSocketResponse(
        heartbeat=config.HEARTBEAT,
        max_msg_size=config.MAX_MESSAGE_SIZE
    )
    await ws.prepare(request)

    conn = Connection(ws, request.transport, peer=request.remote)
    registry.accept(conn)
    logger.info("New connection established from %s", conn.peer)

    try:
        async for msg in ws:
            if msg.type in (WSMsgType.TEXT, WSMsgType.BINARY):
                await router.handle_message(conn, msg.data)
            elif msg.type == WSMsgType.ERROR:
                logger.error("WebSocket error from %s: %s", conn.peer, ws.exception())
    except Exception as e:
        logger.debug(f"WebSocket loop ended for {conn.peer}: {e}")
    finally:
        await router.handle_close(conn)

    return ws

# ============================================================
# HEALTH
# ============================================================

async def api_health(request: web.Request) -> web.Response:
    registry = request.app[REGISTRY]
    return web.json_response({
        "status": "ok",
        "broadcasters": registry.broadcaster_count,
        "viewers": registry.viewer_count,
    })

# ============================================================
# MIDDLEWARE / LIFECYCLE
# ============================================================

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


@web.middleware
async def cors_middleware(request, handler):
    """Allow any origin on plain HTTP routes"""
    if request.method == "OPTIONS":
        return web.Response(status=204, headers=CORS_HEADERS)

    response = await handler(request)
    if not response.prepared:
        response.headers.update(CORS_HEADERS)
    return response


async def start_background_tasks(app: web.Application):
    app[SWEEPER].start()


async def stop_background_tasks(app: web.Application):
    await app[SWEEPER].stop()


async def close_connections(app: web.Application):
    """Close every socket on shutdown so handlers run their teardown"""
    for conn in list(app[REGISTRY].connections):
        try:
            await asyncio.wait_for(conn.close(), timeout=5)
        except Exception as e:
            logger.debug(f"Error closing {conn.peer}: {e}")
