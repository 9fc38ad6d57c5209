from datetime import date, datetime, timezone
from decimal import Decimal

import httpx
import pytest

from holdbook.core import ManualClock, Settings
from holdbook.deps import build_container
from holdbook.domain import Addon, BookingItem, OpeningTime, PriceTier, Product
from holdbook.infrastructure import InMemoryProductCatalog, InMemoryStorage
from holdbook.main import create_app

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
EXPERIENCE = datetime(2026, 3, 10, 10, 0, tzinfo=timezone.utc)
DISABLED_DAY = date(2026, 3, 12)


def adults(count: int):
    return [BookingItem(category="ADULT", count=count)]


def make_products():
    return [
        Product(
            id="tour",
            title="Dhow Cruise",
            currency="AED",
            capacity=10,
            min_participants=1,
            max_participants=10,
            prices={"ADULT": Decimal("150"), "CHILD": Decimal("99.995")},
            tiered_prices={
                "ADULT": (
                    PriceTier(1, 4, Decimal("150")),
                    PriceTier(5, None, Decimal("120.50")),
                ),
            },
            disabled_dates=frozenset({DISABLED_DAY}),
            addons=(
                Addon("FOOD", "Dinner buffet", Decimal("45")),
                Addon("TRANSFER", None, Decimal("30")),
            ),
        ),
        Product(
            id="small-group",
            title="Desert Safari",
            currency="AED",
            capacity=30,
            min_participants=2,
            max_participants=8,
            max_group_size=8,
            max_groups=2,
        ),
        Product(
            id="big",
            title="Theme Park",
            currency="JPY",
            capacity=6000,
            overbooking_limit=100,
            prices={"ADULT": Decimal("1234.5")},
            product_type="time_period",
            category_vacancy_shares={"ADULT": 70, "CHILD": 30},
        ),
        Product(
            id="museum",
            title="Museum Pass",
            currency="AED",
            capacity=5,
            overbooking_limit=2,
            same_day_cutoff_minutes=60,
            advance_cutoff_hours=24,
            product_type="time_period",
            opening_times=(OpeningTime("10:00", "22:00"),),
            ticket_code_type="BARCODE_CODE128",
        ),
    ]


@pytest.fixture
def clock():
    return ManualClock(NOW)


@pytest.fixture
def settings():
    return Settings(
        DB_DSN="",
        REDIS_DSN="",
        API_KEYS=[],
        WEBHOOK_URLS=[],
        PRODUCTS_FILE=None,
        RATE_LIMIT_ENABLED=False,
        LOCK_TIMEOUT_SECONDS=0.5,
        LOCK_RETRIES=2,
    )


@pytest.fixture
def catalog():
    return InMemoryProductCatalog(make_products())


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def container(settings, clock, catalog, storage):
    return build_container(settings, clock=clock, catalog=catalog, storage=storage)


@pytest.fixture
def availability(container):
    return container.availability


@pytest.fixture
def reservations(container):
    return container.reservations


@pytest.fixture
def bookings(container):
    return container.bookings


@pytest.fixture
def vacancies(availability):
    async def _vacancies(product_id: str = "tour", when: datetime = EXPERIENCE) -> int:
        [snapshot] = await availability.get_availabilities(product_id, when, when)
        return snapshot.vacancies

    return _vacancies


@pytest.fixture
async def client(container):
    app = create_app(container=container)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
