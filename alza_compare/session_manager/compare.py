"""Reconcile per-account scrape results into one price comparison."""

from __future__ import annotations

from typing import Optional, Sequence, Union
from urllib.parse import urlparse

from ..constants import ALZA_HOST, UNKNOWN_PRODUCT
from ..models.account import Account
from ..models.price import AccountPrice, CompareResponse, ScrapedData
from .parser import format_czech_price


def validate_product_url(url: str) -> Optional[str]:
    """Return an error message if ``url`` is not an absolute alza.cz URL, else None."""
    if not url:
        return "Missing url query parameter"
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return "URL must be a valid URL"
    if ALZA_HOST not in url:
        return "URL must be from alza.cz"
    return None


def build_comparison(
    url: str,
    accounts: Sequence[Account],
    results: Sequence[Union[ScrapedData, BaseException]],
) -> CompareResponse:
    """Pair each account with its scrape outcome and pick the cheapest.

    ``results`` is aligned with ``accounts``, as returned by
    ``asyncio.gather(..., return_exceptions=True)``.
    """
    product = UNKNOWN_PRODUCT
    lines: list[AccountPrice] = []

    for account, result in zip(accounts, results):
        if isinstance(result, BaseException):
            lines.append(
                AccountPrice(label=account.label, available=False, error=str(result) or "Unknown error")
            )
            continue
        if product == UNKNOWN_PRODUCT:
            product = result.product
        lines.append(
            AccountPrice(
                label=account.label,
                price=result.price,
                price_formatted=result.price_formatted,
                available=True,
            )
        )

    response = CompareResponse(product=product, url=url, accounts=lines)

    available = sorted((a for a in lines if a.available), key=lambda a: a.price)
    if available:
        response.cheapest = available[0].label
        if len(available) >= 2:
            response.difference = available[-1].price - available[0].price
            response.difference_formatted = format_czech_price(response.difference)

    return response
