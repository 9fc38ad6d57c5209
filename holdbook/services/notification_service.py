from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Sequence, Set

import httpx

from holdbook.infrastructure.webhooks import post_event

logger = logging.getLogger(__name__)

RESERVATION_CREATED = "reservation.created"
RESERVATION_CANCELLED = "reservation.cancelled"
RESERVATION_EXPIRED = "reservation.expired"
BOOKING_CREATED = "booking.created"
BOOKING_CANCELLED = "booking.cancelled"
BOOKING_COMPLETED = "booking.completed"
AVAILABILITY_UPDATED = "availability.updated"


class NotificationHandler(ABC):

    @abstractmethod
    async def handle(self, event: str, payload: Dict[str, Any]) -> None:
        ...


class LogNotificationHandler(NotificationHandler):
    """Stands in for confirmation email and ticket delivery scheduling."""

    async def handle(self, event: str, payload: Dict[str, Any]) -> None:
        if event == BOOKING_CREATED:
            logger.info(
                "Queue confirmation email and %s ticket(s) for booking %s",
                len(payload.get("tickets", [])), payload.get("bookingReference"),
            )
        elif event == BOOKING_CANCELLED:
            logger.info("Queue cancellation email for booking %s", payload.get("bookingReference"))
        else:
            logger.info("Event %s: %s", event, payload)


class WebhookNotificationHandler(NotificationHandler):
    """Pushes every event to the configured subscriber URLs."""

    def __init__(self, client: httpx.AsyncClient, urls: Sequence[str], timeout: float = 2.0):
        self._client = client
        self._urls = list(urls)
        self._timeout = timeout

    async def handle(self, event: str, payload: Dict[str, Any]) -> None:
        for url in self._urls:
            try:
                await post_event(self._client, url, event, payload, timeout=self._timeout)
            except httpx.HTTPError as e:
                logger.warning("Webhook %s to %s failed: %s", event, url, e)


class NotificationService:
    """Fire-and-forget dispatch of post-commit events.

    Called only after the critical section has committed and released its
    lock. Handler failures are logged and never reach the caller.
    """

    def __init__(self, handlers: Sequence[NotificationHandler] = ()):
        self._handlers: List[NotificationHandler] = list(handlers)
        self._tasks: Set[asyncio.Task] = set()

    def add_handler(self, handler: NotificationHandler) -> None:
        self._handlers.append(handler)

    def dispatch(self, event: str, payload: Dict[str, Any]) -> None:
        for handler in self._handlers:
            task = asyncio.create_task(self._run(handler, event, payload))
            # Keep a reference until done, the loop only holds weak ones
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _run(self, handler: NotificationHandler, event: str, payload: Dict[str, Any]) -> None:
        try:
            await handler.handle(event, payload)
        except Exception:
            logger.exception("Notification handler %s failed for %s", type(handler).__name__, event)

    async def drain(self) -> None:
        """Wait for in-flight notifications (shutdown and tests)"""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
