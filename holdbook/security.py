from __future__ import annotations

import hmac

from fastapi import Header, Request

from holdbook.core import AuthorizationError


async def require_api_key(
    request: Request,
    api_key: str | None = Header(None, alias="X-API-Key"),
) -> str | None:
    """FastAPI dependency that raises 401 unless *api_key* is one of the configured partner keys.

    An empty ``API_KEYS`` setting disables the check (local development).
    """
    allowed = request.app.state.container.settings.API_KEYS
    if not allowed:
        return api_key
    if api_key is None:
        raise AuthorizationError("Missing API key")
    if not any(hmac.compare_digest(api_key, key) for key in allowed):
        raise AuthorizationError()
    return api_key
