"""
Shared fixtures: accounts, a controllable clock, and Playwright fakes.

No real browser is started anywhere in the suite; pages, contexts and the
browser are MagicMock/AsyncMock stand-ins.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from alza_compare.models.account import Account
from alza_compare.session_manager.sessions import SessionStore

LOGIN_URL = "https://identity.alza.cz/Account/Login?ReturnUrl=%2Fconnect%2Fauthorize"
VERIFY_URL = "https://identity.alza.cz/Account/Verify"
MAIN_URL = "https://www.alza.cz/"


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return SessionStore(clock=clock)


@pytest.fixture
def account():
    return Account(email="jana@example.com", password="s3cret", label="Jana")


@pytest.fixture
def other_account():
    return Account(email="petr@example.com", password="hunter2", label="Petr")


def _make_page(url: str = LOGIN_URL, after_submit_url: str | None = None, body_text: str = "", html: str = ""):
    """A fake Playwright Page whose URL moves to ``after_submit_url`` on the post-submit wait."""
    page = MagicMock()
    page.url = url
    page.title = AsyncMock(return_value="Přihlášení | Alza.cz")
    page.goto = AsyncMock()
    page.wait_for_selector = AsyncMock()
    page.wait_for_function = AsyncMock()
    page.wait_for_url = AsyncMock()
    page.evaluate = AsyncMock(return_value=body_text)
    page.content = AsyncMock(return_value=html)
    page.close = AsyncMock()

    locator = MagicMock()
    locator.click = AsyncMock()
    locator.fill = AsyncMock()
    locator.wait_for = AsyncMock()
    locator.first = locator
    page.locator = MagicMock(return_value=locator)

    async def settle(ms):
        if after_submit_url is not None:
            page.url = after_submit_url

    page.wait_for_timeout = AsyncMock(side_effect=settle)
    return page


@pytest.fixture
def make_page():
    return _make_page


@pytest.fixture
def make_context():
    def factory(pages=None, new_page=None):
        context = MagicMock()
        context.pages = list(pages or [])
        context.new_page = AsyncMock(return_value=new_page)
        context.close = AsyncMock()
        return context

    return factory


@pytest.fixture
def make_browser():
    def factory(contexts=None, new_context=None):
        browser = MagicMock()
        browser.contexts = list(contexts or [])
        browser.new_context = AsyncMock(return_value=new_context)
        browser.is_connected.return_value = True
        return browser

    return factory


@pytest.fixture
def make_supervisor():
    def factory(browser):
        supervisor = MagicMock()
        supervisor.ensure = AsyncMock(return_value=browser)
        supervisor.shutdown = AsyncMock()
        return supervisor

    return factory
