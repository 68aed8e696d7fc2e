"""Signed mini-app webhook envelopes."""

from __future__ import annotations

import base64
import json
from typing import Any

import pytest
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from steaks.errors import SignatureError
from steaks.notifications.envelope import MINIAPP_ADDED, NOTIFICATIONS_DISABLED, b64url_decode, parse_envelope


def _b64(value: dict[str, Any]) -> str:
    return base64.urlsafe_b64encode(json.dumps(value).encode()).decode().rstrip("=")


def _envelope(key: Ed25519PrivateKey, payload: dict[str, Any], fid: int = 3) -> dict[str, str]:
    public = key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
    header = _b64({"fid": fid, "type": "app_key", "key": "0x" + public.hex()})
    encoded_payload = _b64(payload)
    signature = key.sign(f"{header}.{encoded_payload}".encode())
    return {
        "header": header,
        "payload": encoded_payload,
        "signature": base64.urlsafe_b64encode(signature).decode().rstrip("="),
    }


@pytest.fixture
def key() -> Ed25519PrivateKey:
    return Ed25519PrivateKey.generate()


class TestParseEnvelope:
    def test_added_with_notification_details(self, key: Ed25519PrivateKey) -> None:
        body = _envelope(
            key,
            {"event": MINIAPP_ADDED, "notificationDetails": {"url": "https://notify.example", "token": "tok"}},
        )
        event = parse_envelope(body)
        assert event.fid == 3
        assert event.event == MINIAPP_ADDED
        assert event.notification_url == "https://notify.example"
        assert event.notification_token == "tok"
        assert event.app_key.startswith("0x")

    def test_event_without_details(self, key: Ed25519PrivateKey) -> None:
        event = parse_envelope(_envelope(key, {"event": NOTIFICATIONS_DISABLED}))
        assert event.notification_token is None

    def test_signature_from_other_key_rejected(self, key: Ed25519PrivateKey) -> None:
        body = _envelope(key, {"event": MINIAPP_ADDED})
        forged = _envelope(Ed25519PrivateKey.generate(), {"event": MINIAPP_ADDED})
        body["signature"] = forged["signature"]
        with pytest.raises(SignatureError, match="does not match"):
            parse_envelope(body)

    def test_tampered_payload_rejected(self, key: Ed25519PrivateKey) -> None:
        body = _envelope(key, {"event": NOTIFICATIONS_DISABLED})
        body["payload"] = _b64({"event": MINIAPP_ADDED})
        with pytest.raises(SignatureError):
            parse_envelope(body)

    @pytest.mark.parametrize("missing", ["header", "payload"])
    def test_missing_parts(self, key: Ed25519PrivateKey, missing: str) -> None:
        body = _envelope(key, {"event": MINIAPP_ADDED})
        del body[missing]
        with pytest.raises(SignatureError, match=f"missing {missing}"):
            parse_envelope(body)

    def test_non_app_key_header(self, key: Ed25519PrivateKey) -> None:
        body = _envelope(key, {"event": MINIAPP_ADDED})
        body["header"] = _b64({"fid": 3, "type": "custody", "key": "0x00"})
        with pytest.raises(SignatureError, match="invalid header"):
            parse_envelope(body)

    def test_missing_event(self, key: Ed25519PrivateKey) -> None:
        with pytest.raises(SignatureError, match="missing event"):
            parse_envelope(_envelope(key, {"notificationDetails": {}}))


def test_b64url_decode_restores_padding() -> None:
    assert b64url_decode("aGk") == b"hi"
