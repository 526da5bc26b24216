"""Status / kick payloads, built once from the configuration.

The server-list entry and the login kick message never change while the
process runs, so both packets are encoded at startup and the same bytes
are written to every client.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .config import StatusConfig
from .mc_protocol import PACKET_ID_LOGIN_DISCONNECT, PACKET_ID_STATUS_RESPONSE, build_string_packet

log = logging.getLogger(__name__)

_DATA_URI_PREFIX = "data:image/png;base64,"
_PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


def parse_chat_component(value: str) -> Any:
    """Turn a configured message into a JSON chat component.

    Strings that look like a JSON object are used as-is; anything else
    (including broken JSON) becomes a plain ``{"text": ...}`` component.
    """
    if value.startswith("{"):
        try:
            return json.loads(value)
        except ValueError:
            log.warning(f"Message looks like JSON but does not parse, sending it as text: {value!r}")
    return {"text": value}


def resolve_favicon(value: str) -> str | None:
    """Return the favicon as a data URI, or None if there is none.

    *value* may be a ready ``data:`` URI, the path of a PNG file, or the
    raw base64 of a PNG.
    """
    if not value:
        return None
    if value.startswith("data:"):
        return value

    path = Path(value)
    if path.is_file():
        try:
            data = path.read_bytes()
        except OSError as exc:
            log.warning(f"Cannot read favicon {path}: {exc}")
            return None
        return _DATA_URI_PREFIX + base64.b64encode(data).decode("ascii")

    try:
        decoded = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        decoded = b""
    if not decoded.startswith(_PNG_SIGNATURE):
        log.warning(f"Cannot read favicon: not a data URI, a readable file, nor base64 PNG: {value[:40]!r}")
        return None
    return _DATA_URI_PREFIX + value


def build_status_document(cfg: StatusConfig) -> dict[str, Any]:
    """Build the JSON document of a Status Response."""
    document: dict[str, Any] = {
        "version": {"name": cfg.protocol_name, "protocol": cfg.protocol_version},
        "players": {"max": cfg.max_players, "online": cfg.online_players, "sample": []},
        "description": parse_chat_component(cfg.motd),
    }
    favicon = resolve_favicon(cfg.favicon)
    if favicon:
        document["favicon"] = favicon
    return document


@dataclass(frozen=True)
class ResponsePackets:
    """Pre-encoded replies shared by every connection."""

    status: bytes
    kick: bytes

    @classmethod
    def from_config(cls, cfg: StatusConfig) -> ResponsePackets:
        status_json = json.dumps(build_status_document(cfg), ensure_ascii=False)
        kick_json = json.dumps(parse_chat_component(cfg.kick_message), ensure_ascii=False)
        packets = cls(
            status=build_string_packet(PACKET_ID_STATUS_RESPONSE, status_json),
            kick=build_string_packet(PACKET_ID_LOGIN_DISCONNECT, kick_json),
        )
        log.debug(f"Status packet: {len(packets.status)} bytes, kick packet: {len(packets.kick)} bytes")
        return packets
