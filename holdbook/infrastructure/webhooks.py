"""
Partner webhook delivery for post-commit events.
"""
import logging
from typing import Any, Dict

import httpx

logger = logging.getLogger(__name__)


async def post_event(
    client: httpx.AsyncClient,
    url: str,
    event: str,
    payload: Dict[str, Any],
    timeout: float = 2.0,
) -> None:
    """
    POST one event to a subscriber.

    Args:
        client: Shared async HTTP client
        url: Subscriber endpoint
        event: Event name, e.g. ``booking.created``
        payload: JSON-serialisable event body
        timeout: Per-request timeout in seconds

    Raises ``httpx.HTTPError`` on transport failures and non-2xx answers.
    """
    response = await client.post(
        url,
        json={"event": event, "data": payload},
        headers={"X-Event-Name": event},
        timeout=timeout,
    )
    response.raise_for_status()
    logger.debug("Webhook %s delivered to %s (%s)", event, url, response.status_code)
