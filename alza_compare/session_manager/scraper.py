"""Fetch a product page inside an account's logged-in browser context."""

from __future__ import annotations

import logging
import sys

from ..config import NAVIGATION_TIMEOUT
from ..errors import ExtractionFailed, NoActiveSession, SessionExpired
from ..models.account import Account
from ..models.price import ScrapedData
from ..models.session import SessionState
from .challenge import wait_for_page_clear
from .parser import extract_price, extract_product_name
from .sessions import SessionStore

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)


async def scrape_price(store: SessionStore, account: Account, url: str) -> ScrapedData:
    """Scrape ``url`` as ``account``.

    The page is opened in the session's own context so the login cookies
    apply; a new context would be anonymous.

    Raises:
        NoActiveSession: the account is not logged in.
        SessionExpired: the login outlived its TTL (the record is dropped).
        ExtractionFailed: no price could be found on the page.
    """
    session = store.get(account)
    if session is None or session.state != SessionState.LOGGED_IN:
        raise NoActiveSession(f"No active session for {account.label}. Call /auth/init first.")

    if session.is_expired(store.now()):
        await store.discard(account)
        raise SessionExpired(f"Session expired for {account.label}. Call /auth/init to re-login.")

    page = await session.context.new_page()
    try:
        logger.info(f"[SCRAPE] [{account.label}] Navigating to {url}")
        await page.goto(url, wait_until="networkidle", timeout=NAVIGATION_TIMEOUT * 1000)
        await wait_for_page_clear(page)

        html = await page.content()
        logger.info(f"[SCRAPE] [{account.label}] Got {len(html)} chars of HTML")

        price = extract_price(html)
        if price is None:
            raise ExtractionFailed(f"Could not extract price from account: {account.label}")

        product = extract_product_name(html)
        return ScrapedData(product=product, price=price.value, price_formatted=price.display)
    finally:
        try:
            await page.close()
        except Exception as e:
            # Context may already be gone if the session was discarded meanwhile
            logger.debug(f"[SCRAPE] [{account.label}] Page already closed: {e}")
