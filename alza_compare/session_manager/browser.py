"""Chrome process supervision: launch, Cloudflare clearance, CDP attach, teardown."""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import signal
import subprocess
import sys
import time
from pathlib import Path
from typing import Optional
from urllib.parse import urlencode

from playwright.async_api import Browser, Playwright, async_playwright

from ..config import (
    CHROME_DEBUG_PORT,
    CHROME_PATH,
    CHROME_SETTLE_DELAY,
    CHROME_USER_DATA_DIR,
    USE_XVFB,
)
from ..constants import CHROME_FLAGS, IDENTITY_AUTHORIZE_URL, OIDC_PARAMS, XVFB_ARGS
from .challenge import ChallengeResolver, ChallengeTarget

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)


def build_authorize_url(nonce: Optional[str] = None) -> str:
    """OIDC authorize URL that lands the fresh browser on the login form."""
    params = dict(OIDC_PARAMS)
    params["nonce"] = nonce or f"nonce_{int(time.time() * 1000)}"
    return f"{IDENTITY_AUTHORIZE_URL}?{urlencode(params)}"


class BrowserSupervisor:
    """Owns the single Chrome process and the single CDP connection to it.

    ``ensure()`` is safe to call from concurrent tasks: all callers await the
    same in-flight launch, so only one Chrome is ever spawned.
    """

    def __init__(
        self,
        chrome_path: str = CHROME_PATH,
        debug_port: int = CHROME_DEBUG_PORT,
        user_data_dir: Path = CHROME_USER_DATA_DIR,
        use_xvfb: bool = USE_XVFB,
        settle_delay: float = CHROME_SETTLE_DELAY,
        resolver: Optional[ChallengeResolver] = None,
    ):
        self.chrome_path = chrome_path
        self.debug_port = debug_port
        self.user_data_dir = Path(user_data_dir)
        self.use_xvfb = use_xvfb
        self.settle_delay = settle_delay
        self.resolver = resolver or ChallengeResolver(debug_port)

        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._process: Optional[subprocess.Popen] = None
        self._pending: Optional[asyncio.Task] = None

    @property
    def is_connected(self) -> bool:
        return self._browser is not None and self._browser.is_connected()

    @property
    def cdp_url(self) -> str:
        return f"http://127.0.0.1:{self.debug_port}"

    async def ensure(self) -> Browser:
        """Return the connected browser, launching Chrome on first use."""
        if self.is_connected:
            return self._browser

        if self._pending is None:
            self._pending = asyncio.ensure_future(self._launch())
            self._pending.add_done_callback(self._clear_pending)
        return await asyncio.shield(self._pending)

    def _clear_pending(self, task: asyncio.Task):
        if self._pending is task:
            self._pending = None

    async def _launch(self) -> Browser:
        if self.is_connected:
            return self._browser

        await self._free_port()

        url = build_authorize_url()
        await self._spawn(url)
        await asyncio.sleep(self.settle_delay)

        # Playwright must stay detached until Turnstile clears
        logger.info("[BROWSER] Waiting for Cloudflare Turnstile to resolve (without Playwright)...")
        await self.resolver.await_clear(ChallengeTarget(url=url))

        logger.info("[BROWSER] Cloudflare resolved, connecting Playwright...")
        self._browser = await self._connect()
        logger.info(f"[BROWSER] Connected to Chrome via CDP at {self.cdp_url}")
        return self._browser

    async def _free_port(self):
        """Kill whatever still listens on the debug port from a previous run."""
        proc = await asyncio.create_subprocess_shell(
            f"lsof -ti:{self.debug_port} | xargs kill -9 2>/dev/null",
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )
        await proc.wait()
        await asyncio.sleep(1)

    def _command(self, url: str) -> list[str]:
        chrome_args = [
            f"--remote-debugging-port={self.debug_port}",
            f"--user-data-dir={self.user_data_dir}",
            *CHROME_FLAGS,
            url,
        ]
        if self.use_xvfb:
            return ["xvfb-run", *XVFB_ARGS, self.chrome_path, *chrome_args]
        return [self.chrome_path, *chrome_args]

    def _reset_profile(self):
        shutil.rmtree(self.user_data_dir, ignore_errors=True)
        self.user_data_dir.mkdir(parents=True, exist_ok=True)

    async def _spawn(self, url: str):
        await asyncio.to_thread(self._reset_profile)

        logger.info(
            f"[BROWSER] Launching Chrome from {self.chrome_path}"
            f"{' (via Xvfb)' if self.use_xvfb else ''} on port {self.debug_port}..."
        )
        self._process = subprocess.Popen(
            self._command(url),
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
        )

    async def _connect(self) -> Browser:
        if self._playwright is None:
            self._playwright = await async_playwright().start()
        return await self._playwright.chromium.connect_over_cdp(self.cdp_url)

    async def shutdown(self):
        """Drop the CDP connection, stop Playwright and terminate Chrome."""
        logger.info("[BROWSER] Shutting down...")

        if self._browser is not None:
            try:
                await self._browser.close()
            except Exception as e:
                logger.warning(f"[BROWSER] Error closing CDP connection: {e}")
            finally:
                self._browser = None

        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except Exception as e:
                logger.warning(f"[BROWSER] Error stopping Playwright: {e}")
            finally:
                self._playwright = None

        if self._process is not None:
            if self._process.poll() is None:
                # start_new_session made Chrome (and xvfb-run) a process group leader
                try:
                    os.killpg(self._process.pid, signal.SIGTERM)
                except ProcessLookupError:
                    pass
            self._process = None

        logger.info("[BROWSER] Chrome stopped.")
