"""Pydantic models for scraped prices and the cross-account comparison.

Wire names are camelCase (``priceFormatted``, ``differenceFormatted``);
dump with ``by_alias=True``.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class PriceData(BaseModel):
    """A normalized price and its cs-CZ display string."""

    value: float = Field(gt=0)
    display: str


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ScrapedData(_WireModel):
    """Result of scraping one product page for one account."""

    product: str
    price: float = Field(gt=0)
    price_formatted: str


class AccountPrice(_WireModel):
    """One account's line in a comparison."""

    label: str
    price: Optional[float] = None
    price_formatted: Optional[str] = None
    available: bool = False
    error: Optional[str] = None


class CompareResponse(_WireModel):
    """Prices for one product across all logged-in accounts."""

    product: str
    url: str
    accounts: list[AccountPrice] = Field(default_factory=list)
    cheapest: Optional[str] = None
    difference: Optional[float] = None
    difference_formatted: Optional[str] = None
