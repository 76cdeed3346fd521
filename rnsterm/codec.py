from __future__ import annotations

import json
import logging

import cbor2

from .envelope import Envelope, from_wire, to_wire

log = logging.getLogger("rnsterm.codec")


def encode(env: Envelope) -> str:
    """Serialize an envelope to its JSON wire form; "" if that fails."""
    try:
        return json.dumps(to_wire(env), ensure_ascii=False, separators=(",", ":"))
    except Exception:
        log.error("Failed to encode envelope id=%s", getattr(env, "id", "-"), exc_info=True)
        return ""


def decode(raw: str | bytes) -> Envelope | None:
    """Parse a wire payload; None for anything that is not a valid envelope."""
    try:
        if isinstance(raw, (bytes, bytearray)):
            raw = bytes(raw).decode("utf-8")
        return from_wire(json.loads(raw))
    except Exception as e:
        if log.isEnabledFor(logging.DEBUG):
            size = len(raw) if isinstance(raw, (str, bytes, bytearray)) else 0
            log.debug("Invalid message format len=%s err=%s", size, e)
        return None


def encode_app_data(obj) -> bytes:
    return cbor2.dumps(obj)
