"""
API key check for WebSocket handshakes.

Browsers cannot set custom headers on a WebSocket upgrade, so besides the
X-API-KEY header the key may travel as subprotocols: ['x-api-key', <key>].
"""

from __future__ import annotations

from typing import Optional

from django.conf import settings


def _get_header(scope: dict, name: str) -> Optional[str]:
    """Get first header value from ASGI scope (header names are lowercased)."""
    want = name.lower().encode("ascii")
    for key, value in scope.get("headers") or []:
        if key == want:
            return value.decode("utf-8", errors="replace").strip()
    return None


def get_api_key_from_scope(scope: dict) -> Optional[str]:
    provided = _get_header(scope, "x-api-key")
    if provided:
        return provided
    subprotocols = scope.get("subprotocols") or []
    if len(subprotocols) >= 2 and (subprotocols[0] or "").strip().lower() == "x-api-key":
        return ",".join((s or "").strip() for s in subprotocols[1:]).strip() or None
    return None


def api_key_accepted(scope: dict) -> bool:
    auth_key = getattr(settings, "AUTH_API_KEY", None) or None
    if not auth_key:
        return True
    provided = get_api_key_from_scope(scope)
    return bool(provided) and provided == auth_key
