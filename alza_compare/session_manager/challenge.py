"""Cloudflare challenge detection, before and after Playwright is attached.

Turnstile notices a CDP client, so the first clearance after launch is
observed through Chrome's HTTP target listing (``/json``) only. Once
Playwright is connected, pages are watched in-page via ``document.title``.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from dataclasses import dataclass
from typing import Callable

import httpx
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ..config import CHALLENGE_TIMEOUT, NAVIGATION_TIMEOUT
from ..constants import CLOUDFLARE_TITLE_MARKERS
from ..errors import ChallengeTimeout

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)

POLL_INTERVAL = 2.0


def title_is_cleared(title: str) -> bool:
    """True once a page title is set and no longer shows the challenge interstitial."""
    t = title.lower()
    return len(t) > 0 and not any(marker in t for marker in CLOUDFLARE_TITLE_MARKERS)


@dataclass(frozen=True)
class ChallengeTarget:
    url: str
    is_cleared: Callable[[str], bool] = title_is_cleared


class ChallengeResolver:
    """Polls Chrome's remote-debugging target listing until a page title clears."""

    def __init__(self, debug_port: int, poll_interval: float = POLL_INTERVAL):
        self._listing_url = f"http://127.0.0.1:{debug_port}/json"
        self._poll_interval = poll_interval

    async def list_targets(self, client: httpx.AsyncClient) -> list[dict]:
        response = await client.get(self._listing_url)
        response.raise_for_status()
        return response.json()

    async def await_clear(self, target: ChallengeTarget, timeout: float = CHALLENGE_TIMEOUT):
        """Block until some page target's title satisfies ``target.is_cleared``.

        Raises:
            ChallengeTimeout: if no title clears within ``timeout`` seconds.
        """
        logger.info(f"[CHALLENGE] Polling {self._listing_url} for {target.url}")
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        async with httpx.AsyncClient(timeout=5.0) as client:
            while loop.time() < deadline:
                try:
                    targets = await self.list_targets(client)
                except (httpx.HTTPError, ValueError):
                    # Chrome not listening yet
                    targets = []

                for t in targets:
                    if t.get("type") == "page" and target.is_cleared(t.get("title") or ""):
                        logger.info(f"[CHALLENGE] Cleared, page title: '{t.get('title')}'")
                        return
                await asyncio.sleep(self._poll_interval)

        logger.warning(f"[CHALLENGE] Not cleared within {timeout:.0f}s")
        raise ChallengeTimeout(f"Cloudflare did not resolve within {timeout:.0f}s")


async def wait_for_page_clear(page: Page, timeout: float = NAVIGATION_TIMEOUT):
    """Wait for an attached page's title to leave the challenge interstitial."""
    try:
        await page.wait_for_function(
            """(markers) => {
                const t = document.title.toLowerCase();
                return !markers.some((m) => t.includes(m));
            }""",
            arg=CLOUDFLARE_TITLE_MARKERS,
            timeout=timeout * 1000,
        )
    except PlaywrightTimeoutError as e:
        raise ChallengeTimeout(f"Cloudflare did not resolve within {timeout:.0f}s") from e
