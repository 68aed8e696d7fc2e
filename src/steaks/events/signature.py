"""CDP (Hook0) webhook signature verification.

Header format: ``t=<unix-ts>,h=<space separated header names>,v1=<hex hmac>``
(``v0=`` is accepted too). The signed string is::

    "{t}.{h}.{header values joined by '.'}.{raw body}"

HMAC-SHA256 with each configured secret in turn; the first match wins and
the timestamp must then be inside the replay window.
"""

from __future__ import annotations

import hashlib
import hmac
import time
from collections.abc import Mapping
from dataclasses import dataclass

from steaks.errors import SignatureError

SIGNATURE_HEADER = "x-hook0-signature"


@dataclass(frozen=True)
class ParsedSignature:
    timestamp: str
    header_names: str
    signature: str


def parse_signature_header(value: str | None) -> ParsedSignature:
    if not value:
        raise SignatureError("missing signature header")

    parts: dict[str, str] = {}
    for element in value.split(","):
        key, sep, val = element.strip().partition("=")
        if sep:
            parts.setdefault(key, val)

    signature = parts.get("v1") or parts.get("v0")
    if "t" not in parts or "h" not in parts or not signature:
        raise SignatureError("malformed signature header")
    return ParsedSignature(timestamp=parts["t"], header_names=parts["h"], signature=signature)


def signed_payload(parsed: ParsedSignature, headers: Mapping[str, str], body: str) -> str:
    lowered = {k.lower(): v for k, v in headers.items()}
    values = ".".join(lowered.get(name.lower(), "") for name in parsed.header_names.split(" "))
    return f"{parsed.timestamp}.{parsed.header_names}.{values}.{body}"


def compute_signature(secret: str, payload: str) -> str:
    return hmac.new(secret.encode(), payload.encode(), hashlib.sha256).hexdigest()


def verify_signature(
    body: str,
    signature_header: str | None,
    headers: Mapping[str, str],
    secrets: list[str],
    max_age_seconds: int = 300,
    now: float | None = None,
) -> None:
    """Raise ``SignatureError`` unless some secret signs the request within the replay window."""
    if not secrets:
        raise SignatureError("no webhook secrets configured")

    parsed = parse_signature_header(signature_header)
    payload = signed_payload(parsed, headers, body)

    provided = parsed.signature.lower()
    if not any(hmac.compare_digest(compute_signature(s, payload), provided) for s in secrets):
        raise SignatureError("no matching secret")

    try:
        issued_at = int(parsed.timestamp)
    except ValueError as exc:
        raise SignatureError("invalid signature timestamp") from exc

    age = (now if now is not None else time.time()) - issued_at
    if age > max_age_seconds:
        raise SignatureError(f"signature timestamp too old ({int(age)}s)")
