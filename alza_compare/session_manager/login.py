"""Per-account login against identity.alza.cz, including the SMS code step.

State machine::

    not_started -> awaiting_challenge -> form_filled -> logged_in
                                                     -> verification_required
                                                     -> failed
    verification_required --code--> logged_in | verification_required | failed

Every failure is written into the account's session record and returned as
a ``SessionStatus``; nothing here raises to the caller except
``NoPendingVerification`` when a code arrives for an account that is not
waiting for one.
"""

from __future__ import annotations

import asyncio
import logging
import random
import re
import sys
from typing import Awaitable, Callable, Optional
from urllib.parse import urlparse

from playwright.async_api import Browser, BrowserContext, Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ..config import NAVIGATION_TIMEOUT
from ..constants import (
    ALZA_HOST,
    IDENTITY_HOST,
    IDENTITY_LOGIN_URL,
    IDENTITY_VERIFY_URL,
    LOCALE,
    PHONE_HINT_PATTERN,
    SELECTORS,
    VERIFY_PATH,
    VIEWPORT,
)
from ..errors import (
    LoginFormNotFound,
    NoPendingVerification,
    UnexpectedLoginState,
    VerificationCodeRejected,
)
from ..models.account import Account
from ..models.session import Session, SessionState, SessionStatus
from .browser import BrowserSupervisor
from .challenge import wait_for_page_clear
from .sessions import SessionStore

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)

INVALID_CODE_MESSAGE = "Invalid code, try again"

# Timeouts in milliseconds, as Playwright expects them
LOGIN_FORM_TIMEOUT_MS = 30_000
POST_SUBMIT_SETTLE_MS = 5_000
REDIRECT_TIMEOUT_MS = 30_000
VERIFY_NAVIGATION_TIMEOUT_MS = 30_000
CODE_INPUT_TIMEOUT_MS = 10_000


async def human_delay(min_ms: int, max_ms: int):
    """Sleep a random interval to pace form interactions like a person."""
    await asyncio.sleep(random.uniform(min_ms, max_ms) / 1000)


def is_verify_url(url: str) -> bool:
    return VERIFY_PATH in url.lower()


def is_main_site_url(url: str) -> bool:
    """True for alza.cz pages other than the identity provider."""
    host = (urlparse(url).hostname or "").lower()
    return host.endswith(ALZA_HOST) and host != IDENTITY_HOST


def extract_phone_hint(text: str) -> Optional[str]:
    """Pull the masked phone number (e.g. ``*** *** 123``) out of page text."""
    match = re.search(PHONE_HINT_PATTERN, text or "")
    return match.group(0).strip() if match else None


async def _body_text(page: Page) -> str:
    try:
        return await page.evaluate("() => document.body ? document.body.innerText : ''") or ""
    except Exception as e:
        logger.debug(f"[LOGIN] Could not read body text: {e}")
        return ""


async def _close_page(page: Optional[Page]):
    if page is None:
        return
    try:
        await page.close()
    except Exception as e:
        logger.debug(f"[LOGIN] Page already closed: {e}")


class LoginFlow:
    """Drives the login and verification forms for one account at a time.

    Callers must not run ``initiate`` for several accounts concurrently: they
    share one Chrome and Alza penalizes parallel login attempts.
    """

    def __init__(
        self,
        supervisor: BrowserSupervisor,
        store: SessionStore,
        delay: Callable[[int, int], Awaitable[None]] = human_delay,
    ):
        self.supervisor = supervisor
        self.store = store
        self._delay = delay

    # ── Login ────────────────────────────────────────────────────────────────

    async def initiate(self, account: Account) -> SessionStatus:
        """Log ``account`` in, reusing a still-valid session if there is one."""
        cached = self.store.get(account)
        if self.store.is_valid(cached):
            logger.info(f"[LOGIN] [{account.label}] Session still valid")
            return self.store.status(account)

        if cached is not None:
            await self.store.discard(account)

        session: Optional[Session] = None
        page: Optional[Page] = None
        try:
            browser = await self.supervisor.ensure()
            is_first = len(self.store) == 0
            context, page = await self._acquire_context(browser, is_first)
            session = self.store.create(account, context, SessionState.AWAITING_CHALLENGE)

            if page is None:
                page = await context.new_page()
                logger.info(f"[LOGIN] [{account.label}] Navigating to login page...")
                await page.goto(
                    IDENTITY_LOGIN_URL,
                    wait_until="domcontentloaded",
                    timeout=NAVIGATION_TIMEOUT * 1000,
                )
                await wait_for_page_clear(page)

            logger.info(f"[LOGIN] [{account.label}] Login page ready: '{await page.title()}'")
            await self._delay(500, 1000)

            await self._fill_login_form(account, page)
            session.state = SessionState.FORM_FILLED

            return await self._classify_login(account, session, page)

        except Exception as e:
            logger.error(f"[LOGIN] [{account.label}] Login failed: {e}")
            if session is None:
                session = self.store.create(account, None, SessionState.FAILED)
            if page is not None and session.verify_page is not page:
                await _close_page(page)
            session.state = SessionState.FAILED
            session.error = str(e) or type(e).__name__
            return self.store.status(account)

    async def _acquire_context(
        self, browser: Browser, is_first: bool
    ) -> tuple[BrowserContext, Optional[Page]]:
        """Pick the browsing context for a new login.

        The first account reuses Chrome's default context, where the launch
        page already sits on the login form past the challenge. Everyone else
        gets a fresh isolated context and has to navigate there themselves.
        """
        contexts = browser.contexts
        if is_first and contexts:
            default = contexts[0]
            for p in default.pages:
                if IDENTITY_HOST in p.url:
                    return default, p
            return default, None

        context = await browser.new_context(locale=LOCALE, viewport=VIEWPORT)
        return context, None

    async def _fill_login_form(self, account: Account, page: Page):
        try:
            await page.wait_for_selector(
                SELECTORS["login_username"], state="visible", timeout=LOGIN_FORM_TIMEOUT_MS
            )
        except PlaywrightTimeoutError as e:
            raise LoginFormNotFound(
                f"Login form did not appear within {LOGIN_FORM_TIMEOUT_MS // 1000}s"
            ) from e

        logger.info(f"[LOGIN] [{account.label}] Filling login form...")
        username = page.locator(SELECTORS["login_username"])
        password = page.locator(SELECTORS["login_password"])

        await username.click()
        await self._delay(200, 400)
        await username.fill(account.email)
        await self._delay(300, 600)
        await password.click()
        await self._delay(200, 400)
        await password.fill(account.password)
        await self._delay(500, 1000)

        await page.locator(SELECTORS["login_submit"]).first.click()
        logger.info(f"[LOGIN] [{account.label}] Login form submitted")

    async def _classify_login(self, account: Account, session: Session, page: Page) -> SessionStatus:
        await page.wait_for_timeout(POST_SUBMIT_SETTLE_MS)
        after_login_url = page.url
        logger.info(f"[LOGIN] [{account.label}] After login URL: {after_login_url}")

        if is_verify_url(after_login_url):
            return await self._require_verification(account, session, page)

        if is_main_site_url(after_login_url):
            logger.info(f"[LOGIN] [{account.label}] Login successful (no 2FA)")
            return await self._complete(account, session, page)

        try:
            await page.wait_for_url(is_main_site_url, timeout=REDIRECT_TIMEOUT_MS)
            logger.info(f"[LOGIN] [{account.label}] Login successful (delayed redirect)")
            return await self._complete(account, session, page)
        except PlaywrightTimeoutError:
            if is_verify_url(page.url):
                return await self._require_verification(account, session, page)

        title = await page.title()
        snippet = re.sub(r"\s+", " ", await _body_text(page))[:500].strip()
        logger.error(f"[LOGIN] [{account.label}] Page content: {snippet}")
        raise UnexpectedLoginState(f"Unexpected state: {title} ({page.url}) {snippet[:200]}".strip())

    async def _require_verification(
        self, account: Account, session: Session, page: Page
    ) -> SessionStatus:
        logger.info(f"[LOGIN] [{account.label}] SMS verification required")
        session.phone = extract_phone_hint(await _body_text(page))
        session.state = SessionState.VERIFICATION_REQUIRED
        session.verify_page = page
        session.expires_at = self.store.fresh_expiry()
        return self.store.status(account)

    async def _complete(self, account: Account, session: Session, page: Page) -> SessionStatus:
        await _close_page(page)
        self.store.mark_logged_in(session)
        return self.store.status(account)

    # ── SMS verification ─────────────────────────────────────────────────────

    async def submit_code(self, account: Account, code: str) -> SessionStatus:
        """Enter the SMS code on the retained verification page.

        Raises:
            NoPendingVerification: the account is not waiting for a code.
        """
        session = self.store.get(account)
        if (
            session is None
            or session.state != SessionState.VERIFICATION_REQUIRED
            or session.verify_page is None
        ):
            raise NoPendingVerification(f"No pending verification for {account.label}")

        page = session.verify_page
        try:
            await self._enter_code(account, page, code)
        except Exception as e:
            if isinstance(e, VerificationCodeRejected) or is_verify_url(page.url):
                logger.warning(f"[VERIFY] [{account.label}] Code rejected: {e}")
                session.error = INVALID_CODE_MESSAGE
                return self.store.status(account)

            logger.error(f"[VERIFY] [{account.label}] Verification failed: {e}")
            await _close_page(page)
            session.verify_page = None
            session.state = SessionState.FAILED
            session.error = str(e) or type(e).__name__
            return self.store.status(account)

        logger.info(f"[VERIFY] [{account.label}] Verification successful")
        await _close_page(page)
        self.store.mark_logged_in(session)
        return self.store.status(account)

    async def _enter_code(self, account: Account, page: Page, code: str):
        if not is_verify_url(page.url):
            logger.info(
                f"[VERIFY] [{account.label}] Verify page navigated away ({page.url}), going back..."
            )
            await page.goto(
                IDENTITY_VERIFY_URL,
                wait_until="domcontentloaded",
                timeout=VERIFY_NAVIGATION_TIMEOUT_MS,
            )
            await wait_for_page_clear(page)

        code_input = page.locator(SELECTORS["verify_code"])
        await code_input.wait_for(state="visible", timeout=CODE_INPUT_TIMEOUT_MS)
        # The form submits itself once the code is complete
        await code_input.fill(code)
        logger.info(f"[VERIFY] [{account.label}] Code filled, waiting for auto-submit...")

        try:
            await page.wait_for_url(is_main_site_url, timeout=REDIRECT_TIMEOUT_MS)
        except PlaywrightTimeoutError as e:
            if is_verify_url(page.url):
                raise VerificationCodeRejected(INVALID_CODE_MESSAGE) from e
            raise
