"""Extract the price and product name from a rendered Alza product page.

Price extraction strategy (first hit wins, nothing is combined):
1. JSON-LD structured data (``offers`` or ``mainEntity.offers``)
2. Price meta tags
3. Known price CSS selectors
4. Regex fallbacks over the raw markup
"""

from __future__ import annotations

import json
import logging
import re
import sys
from typing import Any, Optional

from bs4 import BeautifulSoup

from ..constants import (
    CURRENCY_SUFFIX,
    PRICE_META_SELECTORS,
    PRICE_PATTERNS,
    PRICE_SELECTORS,
    UNKNOWN_PRODUCT,
)
from ..models.price import PriceData

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)

_LEADING_NUMBER = re.compile(r"\d+(?:\.\d+)?|\.\d+")

_NAME_SUFFIXES = [
    re.compile(r"\s*\|\s*Alza\.\w+$", re.IGNORECASE),
    re.compile(r"\s+za\s+[\d\s]+K[čc]", re.IGNORECASE),
    re.compile(r"\s+-\s+[^-]+$"),
]


# ── Number Handling ──────────────────────────────────────────────────────────


def _leading_float(text: str) -> Optional[float]:
    """Parse the numeric prefix of ``text``, ignoring anything after it."""
    match = _LEADING_NUMBER.match(text.strip())
    if not match:
        return None
    try:
        return float(match.group(0))
    except ValueError:
        return None


def parse_czech_number(text: str | None) -> Optional[float]:
    """Turn a cs-CZ price string such as ``'1 234,50 Kč'`` or ``'29 990,-'`` into a float.

    Returns None for empty, non-numeric, or non-positive input.
    """
    if not text:
        return None
    cleaned = re.sub(r"Kč|CZK|&nbsp;", "", text, flags=re.IGNORECASE)
    cleaned = re.sub(r"\s", "", cleaned)
    cleaned = cleaned.replace(",", ".")
    cleaned = re.sub(r"[-–]$", "", cleaned).strip()
    if not cleaned:
        return None
    value = _leading_float(cleaned)
    return value if value is not None and value > 0 else None


def format_czech_price(value: float) -> str:
    """Render ``value`` the cs-CZ way: ``29990`` -> ``'29 990 Kč'``."""
    whole, frac = f"{round(value, 2):,.2f}".split(".")
    whole = whole.replace(",", "\u00a0")
    frac = frac.rstrip("0")
    number = f"{whole},{frac}" if frac else whole
    return f"{number} {CURRENCY_SUFFIX}"


def _price(value: float) -> PriceData:
    return PriceData(value=value, display=format_czech_price(value))


# ── Price Strategies ─────────────────────────────────────────────────────────


def _offers_price(data: Any) -> Optional[float]:
    if isinstance(data, list):
        for item in data:
            price = _offers_price(item)
            if price is not None:
                return price
        return None
    if not isinstance(data, dict):
        return None

    offers = data.get("offers")
    if offers is None and isinstance(data.get("mainEntity"), dict):
        offers = data["mainEntity"].get("offers")
    if not offers:
        return None

    offer = offers[0] if isinstance(offers, list) else offers
    if not isinstance(offer, dict) or offer.get("price") is None:
        return None
    price = _leading_float(str(offer["price"]))
    return price if price is not None and price > 0 else None


def _price_from_json_ld(soup: BeautifulSoup) -> Optional[float]:
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        text = script.string or script.get_text()
        if not text:
            continue
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            continue
        price = _offers_price(data)
        if price is not None:
            return price
    return None


def _price_from_meta(soup: BeautifulSoup) -> Optional[float]:
    for selector in PRICE_META_SELECTORS:
        meta = soup.select_one(selector)
        if meta:
            price = parse_czech_number(meta.get("content", ""))
            if price is not None:
                return price
    return None


def _price_from_selectors(soup: BeautifulSoup) -> Optional[float]:
    for selector in PRICE_SELECTORS:
        el = soup.select_one(selector)
        if el:
            price = parse_czech_number(el.get_text())
            if price is not None:
                logger.debug(f"[PARSER] Price from selector {selector}")
                return price
    return None


def _price_from_patterns(html: str) -> Optional[float]:
    for pattern in PRICE_PATTERNS:
        match = re.search(pattern, html)
        if match:
            price = parse_czech_number(match.group(1))
            if price is not None:
                return price
    return None


def extract_price(html: str) -> Optional[PriceData]:
    """Return the product price from page markup, or None if no strategy finds one."""
    soup = BeautifulSoup(html, "html.parser")

    strategies = [
        ("json-ld", lambda: _price_from_json_ld(soup)),
        ("meta", lambda: _price_from_meta(soup)),
        ("selectors", lambda: _price_from_selectors(soup)),
        ("regex", lambda: _price_from_patterns(html)),
    ]
    for name, strategy in strategies:
        price = strategy()
        if price is not None:
            logger.info(f"[PARSER] Price {price} found via {name}")
            return _price(price)

    logger.warning(f"[PARSER] No price found in {len(html)} chars of HTML")
    return None


# ── Product Name ─────────────────────────────────────────────────────────────


def clean_product_name(name: str) -> str:
    """Strip the '| Alza.cz' suffix, a 'za 1 234 Kč' fragment, and a ' - …' tail."""
    for pattern in _NAME_SUFFIXES:
        name = pattern.sub("", name, count=1)
    return name.strip()


def extract_product_name(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")

    og_title = soup.select_one('meta[property="og:title"]')
    if og_title and (og_title.get("content") or "").strip():
        return clean_product_name(og_title["content"].strip())

    title = soup.find("title")
    if title and title.get_text().strip():
        return clean_product_name(title.get_text().strip())

    h1 = soup.find("h1")
    if h1 and h1.get_text().strip():
        return clean_product_name(h1.get_text().strip())

    return UNKNOWN_PRODUCT
