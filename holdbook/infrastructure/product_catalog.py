"""Read-only product configuration.

The catalog editor lives outside this service; products reach us as a JSON
document (``PRODUCTS_FILE``) that is validated once at startup.
"""

import json
import logging
from abc import ABC, abstractmethod
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from holdbook.domain import Addon, OpeningTime, PriceTier, Product

logger = logging.getLogger(__name__)


class IProductCatalog(ABC):

    @abstractmethod
    async def get(self, product_id: str) -> Optional[Product]:
        ...


class InMemoryProductCatalog(IProductCatalog):

    def __init__(self, products: Iterable[Product] = ()):
        self._products: Dict[str, Product] = {p.id: p for p in products}

    async def get(self, product_id: str) -> Optional[Product]:
        return self._products.get(product_id)

    def add(self, product: Product) -> None:
        self._products[product.id] = product

    def __len__(self) -> int:
        return len(self._products)


# ---------- JSON document ----------

class _CatalogModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class PriceTierConfig(_CatalogModel):
    lower_bound: int = Field(..., ge=1)
    upper_bound: Optional[int] = None
    price: Decimal = Field(..., ge=0)


class OpeningTimeConfig(_CatalogModel):
    from_time: str
    to_time: str


class AddonConfig(_CatalogModel):
    addon_type: str
    addon_description: Optional[str] = None
    retail_price: Decimal = Decimal("0")


class ProductConfig(_CatalogModel):
    """Schema of one product entry in the catalog document"""
    id: str
    title: str = ""
    currency: str = "AED"
    capacity: int = Field(..., ge=0)
    overbooking_limit: int = Field(0, ge=0)
    min_participants: Optional[int] = Field(None, ge=0)
    max_participants: Optional[int] = Field(None, ge=1)
    max_group_size: Optional[int] = Field(None, ge=1)
    max_groups: Optional[int] = Field(None, ge=1)
    same_day_cutoff_minutes: Optional[int] = Field(None, ge=0)
    advance_cutoff_hours: Optional[int] = Field(None, ge=0)
    price_over_api: bool = True
    prices: Dict[str, Decimal] = {}
    tiered_prices: Dict[str, List[PriceTierConfig]] = {}
    category_vacancy_shares: Dict[str, int] = {}
    disabled_dates: List[date] = []
    product_type: str = Field("time_point", pattern="^(time_point|time_period)$")
    opening_times: List[OpeningTimeConfig] = []
    addons: List[AddonConfig] = []
    ticket_code_type: str = "QR_CODE"

    def to_domain(self) -> Product:
        return Product(
            id=self.id,
            title=self.title,
            currency=self.currency.upper(),
            capacity=self.capacity,
            overbooking_limit=self.overbooking_limit,
            min_participants=self.min_participants,
            max_participants=self.max_participants,
            max_group_size=self.max_group_size,
            max_groups=self.max_groups,
            same_day_cutoff_minutes=self.same_day_cutoff_minutes,
            advance_cutoff_hours=self.advance_cutoff_hours,
            price_over_api=self.price_over_api,
            prices={category.upper(): price for category, price in self.prices.items()},
            tiered_prices={
                category.upper(): tuple(
                    PriceTier(lower_bound=t.lower_bound, upper_bound=t.upper_bound, price=t.price)
                    for t in tiers
                )
                for category, tiers in self.tiered_prices.items()
            },
            category_vacancy_shares={c.upper(): s for c, s in self.category_vacancy_shares.items()},
            disabled_dates=frozenset(self.disabled_dates),
            product_type=self.product_type,
            opening_times=tuple(OpeningTime(o.from_time, o.to_time) for o in self.opening_times),
            addons=tuple(
                Addon(a.addon_type, a.addon_description, a.retail_price) for a in self.addons
            ),
            ticket_code_type=self.ticket_code_type,
        )


class CatalogDocument(BaseModel):
    products: List[ProductConfig]


def load_catalog(path: str) -> InMemoryProductCatalog:
    """Load and validate the products document at *path*"""
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(raw, list):
        raw = {"products": raw}
    document = CatalogDocument.model_validate(raw)
    catalog = InMemoryProductCatalog(p.to_domain() for p in document.products)
    logger.info("Loaded %s products from %s", len(catalog), path)
    return catalog
