import json
import logging

import httpx
import pytest

from holdbook.services import NotificationService, WebhookNotificationHandler
from holdbook.services.notification_service import BOOKING_CREATED, NotificationHandler
from tests.conftest import EXPERIENCE, adults


class RecordingHandler(NotificationHandler):
    def __init__(self):
        self.events = []

    async def handle(self, event, payload):
        self.events.append((event, payload))


class BrokenHandler(NotificationHandler):
    async def handle(self, event, payload):
        raise RuntimeError("mail server down")


@pytest.fixture
def recorder(container):
    handler = RecordingHandler()
    container.notifications.add_handler(handler)
    return handler


async def test_lifecycle_events(container, reservations, bookings, recorder, clock):
    first = await reservations.create("tour", EXPERIENCE, adults(2), "ext-1")
    booking = await bookings.confirm(first.reference, "ext-1")
    second = await reservations.create("tour", EXPERIENCE, adults(1), "ext-2")
    clock.advance(minutes=61)
    await reservations.expire_lapsed()
    await bookings.cancel(booking.reference, "ext-1")
    await container.notifications.drain()

    assert [event for event, _ in recorder.events] == [
        "reservation.created",
        "booking.created",
        "reservation.created",
        "reservation.expired",
        "booking.cancelled",
    ]
    created = recorder.events[1][1]
    assert created["bookingReference"] == booking.reference
    assert len(created["tickets"]) == 2
    assert recorder.events[3][1]["reservationReference"] == second.reference


async def test_failing_handler_does_not_reach_caller(reservations, container, caplog):
    recorder = RecordingHandler()
    container.notifications.add_handler(BrokenHandler())
    container.notifications.add_handler(recorder)

    await reservations.create("tour", EXPERIENCE, adults(1), "ext-1")
    await container.notifications.drain()

    assert len(recorder.events) == 1
    assert "BrokenHandler failed for reservation.created" in caplog.text


async def test_webhooks_are_posted():
    received = []

    def respond(request: httpx.Request) -> httpx.Response:
        received.append((str(request.url), request.headers["X-Event-Name"], json.loads(request.content)))
        return httpx.Response(204)

    async with httpx.AsyncClient(transport=httpx.MockTransport(respond)) as client:
        service = NotificationService(
            [WebhookNotificationHandler(client, ["https://a.example/hook", "https://b.example/hook"])]
        )
        service.dispatch(BOOKING_CREATED, {"bookingReference": "BK1"})
        await service.drain()

    assert received == [
        ("https://a.example/hook", "booking.created", {"event": "booking.created", "data": {"bookingReference": "BK1"}}),
        ("https://b.example/hook", "booking.created", {"event": "booking.created", "data": {"bookingReference": "BK1"}}),
    ]


async def test_failed_webhook_is_logged_and_others_still_sent(caplog):
    calls = []

    def respond(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.host)
        if request.url.host == "down.example":
            return httpx.Response(503)
        return httpx.Response(200)

    caplog.set_level(logging.WARNING)
    async with httpx.AsyncClient(transport=httpx.MockTransport(respond)) as client:
        handler = WebhookNotificationHandler(client, ["https://down.example/hook", "https://up.example/hook"])
        await handler.handle(BOOKING_CREATED, {"bookingReference": "BK1"})

    assert calls == ["down.example", "up.example"]
    assert "Webhook booking.created to https://down.example/hook failed" in caplog.text
