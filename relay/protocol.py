"""
JSON envelope parsing and the outbound messages the relay emits
"""
import json
import time
from typing import Optional, Union


class MalformedEnvelope(ValueError):
    """Inbound payload that cannot be routed"""


REQUIRED_FIELDS = {
    "register": ("role",),
    "photographer_status": ("taken",),
    "frame": ("data",),
    "polaroid": ("imageUrl",),
}


def parse_envelope(raw: Union[str, bytes]) -> dict:
    """Decode one inbound message into a dict with a string ``type``"""
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedEnvelope(f"payload is not utf-8: {e}") from e

    try:
        message = json.loads(raw)
    except ValueError as e:
        raise MalformedEnvelope(f"payload is not JSON: {e}") from e

    if not isinstance(message, dict):
        raise MalformedEnvelope("envelope must be a JSON object")

    msg_type = message.get("type")
    if not isinstance(msg_type, str):
        raise MalformedEnvelope("envelope has no type")

    missing = [f for f in REQUIRED_FIELDS.get(msg_type, ()) if f not in message]
    if missing:
        raise MalformedEnvelope(f"{msg_type} is missing {', '.join(missing)}")

    return message


def dumps(envelope: dict) -> str:
    return json.dumps(envelope, separators=(",", ":"))


def broadcaster_online(broadcaster_id: str, name: str) -> dict:
    return {
        "type": "broadcaster_status",
        "online": True,
        "broadcasterId": broadcaster_id,
        "name": name,
    }


def broadcaster_offline(broadcaster_id: str) -> dict:
    return {
        "type": "broadcaster_status",
        "online": False,
        "broadcasterId": broadcaster_id,
    }


def photographer_status(taken: bool) -> dict:
    return {"type": "photographer_status", "taken": taken}


def frame(data, broadcaster_id: str, name: str, timestamp=None) -> dict:
    return {
        "type": "frame",
        "data": data,
        "broadcasterId": broadcaster_id,
        "name": name,
        "timestamp": timestamp,
    }


def polaroid(image_url, timestamp: Optional[float] = None) -> dict:
    if timestamp is None:
        timestamp = int(time.time() * 1000)
    return {"type": "polaroid", "imageUrl": image_url, "timestamp": timestamp}
