"""
Startup configuration read from the environment
"""
import os

PORT = int(os.environ.get("PORT", 3000))
SERVER_HOST = os.environ.get("SERVER_HOST", "0.0.0.0")

# Frames are dropped for viewers whose outbound buffer exceeds this
MAX_BUFFERED_BYTES = int(os.environ.get("RELAY_MAX_BUFFERED_BYTES", 1024 * 1024))

SWEEP_INTERVAL = float(os.environ.get("RELAY_SWEEP_INTERVAL", 30))

# aiohttp WebSocket ping interval in seconds, 0 disables
HEARTBEAT = float(os.environ.get("RELAY_HEARTBEAT", 25)) or None

MAX_MESSAGE_SIZE = int(os.environ.get("RELAY_MAX_MESSAGE_SIZE", 16 * 1024 * 1024))
