"""Shared data types returned by every chain scraper."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Generic, Literal, TypeVar

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

ChainId = Literal["ica", "hemkop", "coop", "lidl"]

CENT = Decimal("0.01")

T = TypeVar("T")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def quantize_price(value: Decimal | None) -> Decimal | None:
    if value is None:
        return None
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


class CamelModel(BaseModel):
    """Serialises with camelCase keys and accepts either spelling on input."""

    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
    }


class ChainConfig(CamelModel):
    id: ChainId
    name: str
    base_url: str
    color: str
    logo: str


CHAIN_CONFIGS: dict[str, ChainConfig] = {
    "ica": ChainConfig(
        id="ica", name="ICA", base_url="https://www.ica.se", color="#e3000b", logo="🔴"
    ),
    "hemkop": ChainConfig(
        id="hemkop", name="Hemköp", base_url="https://www.hemkop.se", color="#ff6600", logo="🟠"
    ),
    "coop": ChainConfig(
        id="coop", name="Coop", base_url="https://www.coop.se", color="#00aa46", logo="🟢"
    ),
    "lidl": ChainConfig(
        id="lidl", name="Lidl", base_url="https://www.lidl.se", color="#0050aa", logo="🔵"
    ),
}


class Store(CamelModel):
    id: str
    name: str
    address: str | None = None
    city: str | None = None
    chain: ChainId
    external_id: str
    # ICA store format: Maxi, Kvantum, Supermarket, Nära. Coop store type slug.
    profile: str | None = None
    offers_url: str | None = None


class Offer(CamelModel):
    id: str
    name: str
    brand: str | None = None
    description: str | None = None
    original_price: Decimal | None = None
    # Printed price; for multi-buy offers this is the total for ``quantity`` items.
    offer_price: Decimal = Field(ge=1, le=10000)
    quantity: int | None = None
    quantity_price: Decimal | None = None
    unit: str | None = None
    savings: str | None = None
    image_url: str | None = None
    offer_url: str | None = None
    store_id: str
    chain: ChainId
    category: str | None = None
    max_per_household: int | None = None
    requires_membership: bool = False
    scraped_at: datetime = Field(default_factory=utcnow)

    @field_validator("offer_price", "original_price", "quantity_price")
    @classmethod
    def _two_decimals(cls, value: Decimal | None) -> Decimal | None:
        return quantize_price(value)


class StoreSearchResult(CamelModel):
    stores: list[Store]
    query: str | None = None
    total_count: int | None = None


class OffersResult(CamelModel):
    offers: list[Offer]
    store: Store


class ScraperResult(CamelModel, Generic[T]):
    """Outcome envelope of a scraper operation.

    A successful result carries ``data``; a failed one carries ``error``.
    """

    success: bool
    data: T | None = None
    error: str | None = None
    scraped_at: datetime = Field(default_factory=utcnow)
    duration_ms: int = 0

    @model_validator(mode="after")
    def _payload_xor_error(self) -> ScraperResult[T]:
        if self.success and (self.data is None or self.error is not None):
            raise ValueError("a successful result needs data and no error")
        if not self.success and (self.error is None or self.data is not None):
            raise ValueError("a failed result needs an error and no data")
        return self


class ValidationResult(CamelModel):
    chain: ChainId
    valid: bool
    message: str
    timestamp: datetime = Field(default_factory=utcnow)
