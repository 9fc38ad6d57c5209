from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Annotated, Optional

import httpx
import redis.asyncio as aioredis
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncEngine

from holdbook.core import Clock, Settings, SystemClock, UnitOfWorkFactory
from holdbook.infrastructure import (
    IProductCatalog,
    InMemoryProductCatalog,
    InMemoryStorage,
    InMemoryUnitOfWork,
    SqlUnitOfWork,
    create_engine,
    create_session_factory,
    load_catalog,
)
from holdbook.locks import KeyedLock, LocalKeyedLock, RedisKeyedLock, redis_from_dsn
from holdbook.services import (
    AvailabilityService,
    BookingService,
    LogNotificationHandler,
    NotificationService,
    ReservationService,
    ReservationSweeper,
    WebhookNotificationHandler,
)

logger = logging.getLogger(__name__)


@dataclass
class Container:
    """Everything one application instance shares across requests"""

    settings: Settings
    clock: Clock
    catalog: IProductCatalog
    uow_factory: UnitOfWorkFactory
    locks: KeyedLock
    notifications: NotificationService
    availability: AvailabilityService
    reservations: ReservationService
    bookings: BookingService
    sweeper: ReservationSweeper
    engine: Optional[AsyncEngine] = None
    redis: Optional[aioredis.Redis] = None
    http_client: Optional[httpx.AsyncClient] = None

    async def close(self) -> None:
        await self.sweeper.stop()
        await self.notifications.drain()
        if self.http_client is not None:
            await self.http_client.aclose()
        if self.redis is not None:
            await self.redis.aclose()
        if self.engine is not None:
            await self.engine.dispose()


def build_container(
    settings: Settings,
    *,
    clock: Optional[Clock] = None,
    catalog: Optional[IProductCatalog] = None,
    engine: Optional[AsyncEngine] = None,
    storage: Optional[InMemoryStorage] = None,
    locks: Optional[KeyedLock] = None,
) -> Container:
    """Wire services for *settings*; explicit arguments win over settings."""
    clock = clock or SystemClock()
    if catalog is None:
        catalog = load_catalog(settings.PRODUCTS_FILE) if settings.PRODUCTS_FILE else InMemoryProductCatalog()

    if engine is None and settings.use_database:
        engine = create_engine(settings)
    if engine is not None:
        session_factory = create_session_factory(engine)

        def uow_factory():
            return SqlUnitOfWork(session_factory)
    else:
        storage = storage or InMemoryStorage()

        def uow_factory():
            return InMemoryUnitOfWork(storage)

    redis = None
    if locks is None:
        if settings.use_redis:
            redis = redis_from_dsn(settings.REDIS_DSN)
            locks = RedisKeyedLock(
                redis,
                ttl=settings.LOCK_TTL_SECONDS,
                retry_delay=settings.LOCK_RETRY_DELAY_SECONDS,
                timeout=settings.LOCK_TIMEOUT_SECONDS,
                retries=settings.LOCK_RETRIES,
            )
        else:
            locks = LocalKeyedLock(timeout=settings.LOCK_TIMEOUT_SECONDS, retries=settings.LOCK_RETRIES)

    notifications = NotificationService([LogNotificationHandler()])
    http_client = None
    if settings.WEBHOOK_URLS:
        http_client = httpx.AsyncClient()
        notifications.add_handler(
            WebhookNotificationHandler(http_client, settings.WEBHOOK_URLS, settings.WEBHOOK_TIMEOUT_SECONDS)
        )

    common = (uow_factory, locks, clock, settings)
    availability = AvailabilityService(*common, catalog=catalog, notifications=notifications)
    reservations = ReservationService(*common, availability=availability, notifications=notifications)
    bookings = BookingService(*common, availability=availability, notifications=notifications)
    sweeper = ReservationSweeper(reservations, settings.SWEEP_INTERVAL_SECONDS)

    logger.info(
        "Using %s store with %s locks",
        "SQL" if engine is not None else "in-memory",
        "Redis" if redis is not None else "in-process",
    )
    return Container(
        settings=settings,
        clock=clock,
        catalog=catalog,
        uow_factory=uow_factory,
        locks=locks,
        notifications=notifications,
        availability=availability,
        reservations=reservations,
        bookings=bookings,
        sweeper=sweeper,
        engine=engine,
        redis=redis,
        http_client=http_client,
    )


def get_container(request: Request) -> Container:
    return request.app.state.container


def get_availability_service(request: Request) -> AvailabilityService:
    return get_container(request).availability


def get_reservation_service(request: Request) -> ReservationService:
    return get_container(request).reservations


def get_booking_service(request: Request) -> BookingService:
    return get_container(request).bookings


# Type aliases for dependency injection
ContainerDep = Annotated[Container, Depends(get_container)]
AvailabilityServiceDep = Annotated[AvailabilityService, Depends(get_availability_service)]
ReservationServiceDep = Annotated[ReservationService, Depends(get_reservation_service)]
BookingServiceDep = Annotated[BookingService, Depends(get_booking_service)]
