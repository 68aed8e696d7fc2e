"""Signed mini-app webhook envelopes (JSON Farcaster Signature).

The client posts ``{"header", "payload", "signature"}``, each base64url
encoded. The decoded header names the fid and its app key; the signature is
ed25519 by that key over ``"{header}.{payload}"`` (the encoded strings).
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from typing import Any

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from steaks.errors import SignatureError

MINIAPP_ADDED = "miniapp_added"
MINIAPP_REMOVED = "miniapp_removed"
NOTIFICATIONS_ENABLED = "notifications_enabled"
NOTIFICATIONS_DISABLED = "notifications_disabled"


@dataclass(frozen=True)
class MiniAppEvent:
    fid: int
    app_key: str
    event: str
    notification_url: str | None = None
    notification_token: str | None = None


def b64url_decode(value: str) -> bytes:
    padded = value + "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(padded)


def _decode_json(value: Any, part: str) -> dict[str, Any]:  # noqa: ANN401
    if not isinstance(value, str) or not value:
        raise SignatureError(f"missing {part}")
    try:
        decoded = json.loads(b64url_decode(value))
    except (binascii.Error, ValueError) as exc:
        raise SignatureError(f"invalid {part} encoding") from exc
    if not isinstance(decoded, dict):
        raise SignatureError(f"invalid {part}")
    return decoded


def parse_envelope(body: dict[str, Any]) -> MiniAppEvent:
    """Verify the envelope signature and return the event it carries.

    Raises ``SignatureError`` for malformed envelopes and bad signatures.
    """
    header = _decode_json(body.get("header"), "header")
    payload = _decode_json(body.get("payload"), "payload")

    fid = header.get("fid")
    key = header.get("key")
    if not isinstance(fid, int) or header.get("type") != "app_key" or not isinstance(key, str):
        raise SignatureError("invalid header")

    try:
        public_key = Ed25519PublicKey.from_public_bytes(bytes.fromhex(key.removeprefix("0x")))
        signature = b64url_decode(body.get("signature") or "")
    except (ValueError, binascii.Error) as exc:
        raise SignatureError("invalid app key or signature encoding") from exc

    signed = f"{body['header']}.{body['payload']}".encode()
    try:
        public_key.verify(signature, signed)
    except InvalidSignature as exc:
        raise SignatureError("signature does not match app key") from exc

    event = payload.get("event")
    if not isinstance(event, str) or not event:
        raise SignatureError("missing event type")

    details = payload.get("notificationDetails") or {}
    return MiniAppEvent(
        fid=fid,
        app_key=key.lower(),
        event=event,
        notification_url=details.get("url"),
        notification_token=details.get("token"),
    )
