"""
Minimal HS256 session tokens.

Each token carries the user (`sub`), tenant and a session id (`sid`); the
session id keys the permission cache, so a fresh login always starts with
an empty cache entry.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
import uuid
from typing import Any, Dict, Optional


class JWTError(ValueError):
    pass


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64url_decode(raw: str) -> bytes:
    pad = "=" * (-len(raw) % 4)
    return base64.urlsafe_b64decode(raw + pad)


def _sign(signing_input: bytes, secret: str) -> bytes:
    return hmac.new(secret.encode("utf-8"), signing_input, hashlib.sha256).digest()


def _json_segment(data: Dict[str, Any]) -> str:
    return _b64url_encode(json.dumps(data, separators=(",", ":"), sort_keys=True).encode("utf-8"))


def encode_hs256(payload: Dict[str, Any], *, secret: str) -> str:
    header_b64 = _json_segment({"alg": "HS256", "typ": "JWT"})
    payload_b64 = _json_segment(payload)
    signing_input = f"{header_b64}.{payload_b64}".encode("ascii")
    return f"{header_b64}.{payload_b64}.{_b64url_encode(_sign(signing_input, secret))}"


def decode_hs256(token: str, *, secret: str, leeway_seconds: int = 0) -> Dict[str, Any]:
    try:
        header_b64, payload_b64, sig_b64 = token.split(".", 2)
    except ValueError as e:
        raise JWTError("Invalid token format") from e

    try:
        header = json.loads(_b64url_decode(header_b64))
        payload = json.loads(_b64url_decode(payload_b64))
    except (ValueError, TypeError) as e:
        raise JWTError("Invalid token encoding") from e

    if not isinstance(header, dict) or header.get("alg") != "HS256":
        raise JWTError("Unsupported alg")
    if not isinstance(payload, dict):
        raise JWTError("Invalid token payload")

    expected = _sign(f"{header_b64}.{payload_b64}".encode("ascii"), secret)
    try:
        got = _b64url_decode(sig_b64)
    except ValueError as e:
        raise JWTError("Invalid signature encoding") from e
    if not hmac.compare_digest(expected, got):
        raise JWTError("Invalid signature")

    exp = payload.get("exp")
    if exp is not None:
        try:
            exp_int = int(exp)
        except (TypeError, ValueError) as e:
            raise JWTError("Invalid exp claim") from e
        if now_ts() > exp_int + int(leeway_seconds):
            raise JWTError("Token expired")

    return payload


def now_ts() -> int:
    return int(time.time())


def new_session_id() -> str:
    return uuid.uuid4().hex


def build_session_token_payload(
    *,
    user_id: int,
    tenant_id: str,
    session_id: Optional[str] = None,
    ttl_seconds: int = 3600,
    extra: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    issued_at = now_ts()
    payload: Dict[str, Any] = {
        "sub": str(user_id),
        "tenant_id": tenant_id,
        "sid": session_id or new_session_id(),
        "iat": issued_at,
        "exp": issued_at + int(ttl_seconds),
    }
    if extra:
        payload.update(extra)
    return payload
