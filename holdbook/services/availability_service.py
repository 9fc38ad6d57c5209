import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Sequence

from holdbook.core import BaseService, Settings, ValidationError
from holdbook.core.clock import ensure_utc
from holdbook.core.exceptions import InvalidAddonsError, InvalidProductError
from holdbook.domain import (
    Addon,
    AddonItem,
    AvailabilitySnapshot,
    BookingItem,
    CapacityCounter,
    PriceTier,
    Product,
    required_capacity,
)
from holdbook.infrastructure.product_catalog import IProductCatalog
from holdbook.locks import capacity_key
from holdbook.services.notification_service import AVAILABILITY_UPDATED, NotificationService

logger = logging.getLogger(__name__)

DEFAULT_OPENING_TIMES = [{"fromTime": "09:00", "toTime": "18:00"}]
MAX_RANGE_DAYS = 366
NOTIFY_ACCEPTED = "Availability Update Accepted"


# ---------- Pure rules shared with the reservation flow ----------

def to_minor_units(amount: Decimal, currency: str, zero_decimal: FrozenSet[str]) -> int:
    """Integer minor units, half-up; zero-decimal currencies pass through whole."""
    amount = Decimal(amount)
    if currency.upper() in zero_decimal:
        return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def match_addon(product: Product, item: AddonItem) -> Addon:
    """The product's addon option for *item*; without a description the first option of that type."""
    options = [a for a in product.addons if a.addon_type == item.addon_type]
    if not options:
        raise InvalidAddonsError(f"Addon {item.addon_type} is not available for this product")
    if item.addon_description is None:
        return options[0]
    for option in options:
        if option.addon_description == item.addon_description:
            return option
    raise InvalidAddonsError(f"Addon {item.addon_type} has no option '{item.addon_description}'")


def cutoff_seconds(product: Product, date_time: datetime, now: datetime, settings: Settings) -> int:
    if date_time.date() == now.date():
        minutes = product.same_day_cutoff_minutes
        if minutes is None:
            minutes = settings.DEFAULT_SAME_DAY_CUTOFF_MINUTES
        return minutes * 60
    hours = product.advance_cutoff_hours
    if hours is None:
        hours = settings.DEFAULT_ADVANCE_CUTOFF_HOURS
    return hours * 3600


def capacity_limit(product: Product, counter: CapacityCounter) -> int:
    """Most units that may ever be committed for the counter's date"""
    if counter.capacity_override is not None:
        # Supplier-pushed figure is authoritative, overbooking does not apply
        return counter.capacity_override
    return product.capacity_limit


def compute_vacancies(
    product: Product,
    counter: CapacityCounter,
    date_time: datetime,
    now: datetime,
    settings: Settings,
) -> int:
    if product.is_date_disabled(date_time.date()):
        return 0
    if now > date_time - timedelta(seconds=cutoff_seconds(product, date_time, now, settings)):
        return 0
    limit = capacity_limit(product, counter)
    ceiling = min(limit, settings.MAX_VACANCIES)
    return max(0, min(limit - counter.committed, ceiling))


def tier_for(tiers: Sequence[PriceTier], quantity: int) -> Optional[PriceTier]:
    for tier in tiers:
        if tier.matches(quantity):
            return tier
    return None


@dataclass
class AvailabilityCheck:
    vacancies: int
    required_capacity: int
    can_book: bool
    pricing: Dict[str, Any]


class AvailabilityService(BaseService):
    """Vacancies, pricing and cutoff windows per product and day.

    Reads never take the key lock; a snapshot may be stale by the time a
    reservation is attempted, which then re-checks under the lock.
    """

    def __init__(self, uow_factory, locks, clock, settings, catalog: IProductCatalog, notifications: NotificationService):
        super().__init__(uow_factory, locks, clock, settings)
        self.catalog = catalog
        self.notifications = notifications

    async def get_product(self, product_id: str) -> Product:
        product = await self.catalog.get(product_id)
        if product is None:
            raise InvalidProductError()
        return product

    def _minor(self, amount: Decimal, currency: str) -> int:
        return to_minor_units(amount, currency, self.settings.ZERO_DECIMAL_CURRENCIES)

    def _prices_by_category(self, product: Product) -> Optional[Dict[str, Any]]:
        if not product.price_over_api or not product.prices:
            return None
        return {
            "retailPrices": [
                {"category": category, "price": self._minor(price, product.currency)}
                for category, price in product.prices.items()
            ]
        }

    def _tiered_prices_by_category(self, product: Product) -> Optional[Dict[str, Any]]:
        if not product.price_over_api or not product.tiered_prices:
            return None
        return {
            "retailPrices": [
                {
                    "category": category,
                    "tiers": [
                        {
                            "lowerBound": tier.lower_bound,
                            "upperBound": tier.upper_bound,
                            "price": self._minor(tier.price, product.currency),
                        }
                        for tier in tiers
                    ],
                }
                for category, tiers in product.tiered_prices.items()
            ]
        }

    @staticmethod
    def _vacancies_by_category(product: Product, vacancies: int) -> Optional[List[Dict[str, Any]]]:
        if not product.category_vacancy_shares:
            return None
        return [
            {"category": category, "vacancies": vacancies * share // 100}
            for category, share in product.category_vacancy_shares.items()
        ]

    @staticmethod
    def _opening_times(product: Product) -> Optional[List[Dict[str, str]]]:
        if product.product_type != "time_period":
            return None
        if not product.opening_times:
            return [dict(entry) for entry in DEFAULT_OPENING_TIMES]
        return [{"fromTime": o.from_time, "toTime": o.to_time} for o in product.opening_times]

    def snapshot(self, product: Product, counter: CapacityCounter, date_time: datetime, now: datetime) -> AvailabilitySnapshot:
        vacancies = compute_vacancies(product, counter, date_time, now, self.settings)
        return AvailabilitySnapshot(
            date_time=date_time,
            product_id=product.id,
            vacancies=vacancies,
            cutoff_seconds=cutoff_seconds(product, date_time, now, self.settings),
            currency=product.currency or self.settings.DEFAULT_CURRENCY,
            prices_by_category=self._prices_by_category(product),
            tiered_prices_by_category=self._tiered_prices_by_category(product),
            vacancies_by_category=self._vacancies_by_category(product, vacancies),
            opening_times=self._opening_times(product),
        )

    async def get_availabilities(self, product_id: str, from_dt: datetime, to_dt: datetime) -> List[AvailabilitySnapshot]:
        """One snapshot per day from *from_dt* through *to_dt*, inclusive"""
        product = await self.get_product(product_id)
        from_dt, to_dt = ensure_utc(from_dt), ensure_utc(to_dt)
        if to_dt < from_dt:
            raise ValidationError("toDateTime must not be before fromDateTime", field="toDateTime")
        if (to_dt - from_dt).days >= MAX_RANGE_DAYS:
            raise ValidationError(f"Date range cannot exceed {MAX_RANGE_DAYS} days", field="toDateTime")

        entries: List[datetime] = []
        entry = from_dt
        while entry <= to_dt:
            entries.append(entry)
            entry += timedelta(days=1)

        counters = await self._read(
            lambda uow: uow.capacity.get_counters(product.id, entries[0].date(), entries[-1].date())
        )
        now = self.clock.now()
        return [self.snapshot(product, counters[e.date()], e, now) for e in entries]

    def quote(
        self,
        product: Product,
        booking_items: Iterable[BookingItem],
        addon_items: Iterable[AddonItem] = (),
    ) -> Dict[str, Any]:
        """Price the requested items; tier bands are chosen by item count.

        Each addon is charged once at its option's retail price. Unknown addons
        raise ``InvalidAddonsError``.
        """
        lines = []
        total = 0
        complete = True
        for item in booking_items:
            tier = tier_for(product.tiered_prices.get(item.category, ()), item.count)
            unit = tier.price if tier else product.prices.get(item.category)
            if unit is None:
                complete = False
                lines.append({"category": item.category, "count": item.count, "unitPrice": None})
                continue
            unit_minor = self._minor(unit, product.currency)
            total += unit_minor * item.count
            lines.append({"category": item.category, "count": item.count, "unitPrice": unit_minor})
        addon_lines = []
        for item in addon_items:
            option = match_addon(product, item)
            price = self._minor(option.retail_price, product.currency)
            total += price
            addon_lines.append({
                "addonType": option.addon_type,
                "addonDescription": option.addon_description,
                "unitPrice": price,
            })
        return {
            "currency": product.currency,
            "items": lines,
            "addons": addon_lines,
            "total": total if complete else None,
        }

    async def check(
        self,
        product_id: str,
        date_time: datetime,
        booking_items: Sequence[BookingItem],
        addon_items: Sequence[AddonItem] = (),
    ) -> AvailabilityCheck:
        """Whether *booking_items* would fit right now, with a price quote"""
        product = await self.get_product(product_id)
        pricing = self.quote(product, booking_items, addon_items)
        date_time = ensure_utc(date_time)
        counter = await self._read(lambda uow: uow.capacity.get_counter(product.id, date_time.date()))
        vacancies = compute_vacancies(product, counter, date_time, self.clock.now(), self.settings)
        required = required_capacity(booking_items)
        return AvailabilityCheck(
            vacancies=vacancies,
            required_capacity=required,
            can_book=0 < required <= vacancies,
            pricing=pricing,
        )

    async def notify(self, product_id: str, availabilities: Sequence[Dict[str, Any]]) -> str:
        """Apply supplier-pushed vacancies as per-date capacity overrides.

        Each entry carries ``date_time`` and ``vacancies``; the override is
        chosen so the date reports exactly the pushed vacancies given what is
        already committed. Every entry is validated before any date changes.
        """
        product = await self.get_product(product_id)
        updates = []
        for entry in availabilities:
            vacancies = int(entry["vacancies"])
            if vacancies < 0:
                raise ValidationError("vacancies cannot be negative", field="vacancies")
            updates.append((ensure_utc(entry["date_time"]).date(), vacancies))

        updated: List[date] = []
        for day, vacancies in updates:

            async def apply(uow, day=day, vacancies=vacancies):
                counter = await uow.capacity.get_counter(product.id, day)
                return await uow.capacity.set_capacity_override(product.id, day, counter.committed + vacancies)

            counter = await self._atomically(capacity_key(product.id, day), apply)
            logger.info(
                "Capacity override for %s set to %s (%s committed)",
                capacity_key(product.id, day), counter.capacity_override, counter.committed,
            )
            updated.append(day)

        self.notifications.dispatch(
            AVAILABILITY_UPDATED,
            {"productId": product.id, "dates": [d.isoformat() for d in updated]},
        )
        return NOTIFY_ACCEPTED
