"""
Tests for the HTTP service: auth, status, login/verify, and compare endpoints.

The aiohttp app runs on an in-process test server. The manager is real; only
the browser supervisor and Playwright objects are fakes.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from aiohttp.test_utils import TestClient, TestServer

from alza_compare.errors import ConfigError
from alza_compare.models.session import SessionState, SessionStatus
from alza_compare.session_manager.login import LoginFlow
from alza_compare.session_manager.manager import SessionManager, create_app

API_KEY = "test-key"
AUTH = {"Authorization": f"Bearer {API_KEY}"}
PRODUCT_URL = "https://www.alza.cz/dyson-v15-d7654321.htm"


def _html(price: str) -> str:
    return (
        "<html><head><title>Dyson V15 | Alza.cz</title></head>"
        f'<body><span class="price-box__price">{price}</span></body></html>'
    )


@pytest.fixture
def manager(store, account, other_account, make_browser, make_supervisor):
    supervisor = make_supervisor(make_browser())
    flow = LoginFlow(supervisor, store, delay=AsyncMock())
    return SessionManager([account, other_account], supervisor=supervisor, store=store, login_flow=flow)


def _client(manager) -> TestClient:
    return TestClient(TestServer(create_app(manager, api_key=API_KEY)))


def _log_in(store, account, context):
    session = store.create(account, context, SessionState.FORM_FILLED)
    store.mark_logged_in(session)


# --- App setup and auth ---


def test_injected_empty_store_is_shared(store, account, make_browser, make_supervisor):
    assert len(store) == 0
    supervisor = make_supervisor(make_browser())

    mgr = SessionManager([account], supervisor=supervisor, store=store)

    assert mgr.store is store
    assert mgr.login_flow.store is store
    assert mgr.supervisor is supervisor


def test_create_app_requires_api_key(manager):
    with pytest.raises(ConfigError):
        create_app(manager, api_key="")


@pytest.mark.asyncio
async def test_health_needs_no_auth(manager):
    async with _client(manager) as client:
        resp = await client.get("/health")
        assert resp.status == 200
        assert await resp.json() == {"status": "ok"}


@pytest.mark.asyncio
@pytest.mark.parametrize("headers", [{}, {"Authorization": "Bearer wrong"}, {"Authorization": API_KEY}])
async def test_protected_routes_reject_bad_credentials(manager, headers):
    async with _client(manager) as client:
        for method, path in (("GET", "/auth/status"), ("POST", "/auth/init"), ("GET", "/compare")):
            resp = await client.request(method, path, headers=headers)
            assert resp.status == 401
            body = await resp.json()
            assert body["error"] == "UNAUTHORIZED"


@pytest.mark.asyncio
async def test_cleanup_shuts_down_browser(manager):
    async with _client(manager):
        pass
    manager.supervisor.shutdown.assert_awaited_once()


# --- Auth endpoints ---


@pytest.mark.asyncio
async def test_status_lists_every_account(manager, store, account, make_context):
    _log_in(store, account, make_context())

    async with _client(manager) as client:
        resp = await client.get("/auth/status", headers=AUTH)
        body = await resp.json()

    assert resp.status == 200
    assert body == {
        "accounts": [
            {"label": "Jana", "status": "logged_in"},
            {"label": "Petr", "status": "not_started"},
        ]
    }


@pytest.mark.asyncio
async def test_init_logs_in_accounts_in_order(manager):
    seen = []

    async def initiate(account):
        seen.append(account.label)
        return SessionStatus(label=account.label, status=SessionState.VERIFICATION_REQUIRED, phone="*** *** 123")

    manager.login_flow.initiate = AsyncMock(side_effect=initiate)

    async with _client(manager) as client:
        resp = await client.post("/auth/init", headers=AUTH)
        body = await resp.json()

    assert resp.status == 200
    assert seen == ["Jana", "Petr"]
    assert body["accounts"][0] == {
        "label": "Jana",
        "status": "verification_required",
        "phone": "*** *** 123",
    }


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [{}, {"label": "Jana"}, {"code": "123456"}, {"label": "", "code": "123456"}],
)
async def test_verify_requires_label_and_code(manager, payload):
    async with _client(manager) as client:
        resp = await client.post("/auth/verify", json=payload, headers=AUTH)
        body = await resp.json()

    assert resp.status == 400
    assert body["error"] == "BAD_REQUEST"


@pytest.mark.asyncio
async def test_verify_rejects_malformed_json(manager):
    async with _client(manager) as client:
        resp = await client.post("/auth/verify", data="{oops", headers=AUTH)
        assert resp.status == 400


@pytest.mark.asyncio
async def test_verify_unknown_label(manager):
    async with _client(manager) as client:
        resp = await client.post("/auth/verify", json={"label": "Nobody", "code": "1"}, headers=AUTH)
        body = await resp.json()

    assert resp.status == 404
    assert body["error"] == "NOT_FOUND"
    assert "Nobody" in body["message"]


@pytest.mark.asyncio
async def test_verify_without_pending_code_conflicts(manager):
    async with _client(manager) as client:
        resp = await client.post("/auth/verify", json={"label": "Jana", "code": "123456"}, headers=AUTH)
        body = await resp.json()

    assert resp.status == 409
    assert body["label"] == "Jana"
    assert body["status"] == "failed"
    assert "No pending verification" in body["error"]


@pytest.mark.asyncio
async def test_verify_accepts_code(manager, store, account, make_page, make_context):
    page = make_page(url="https://identity.alza.cz/Account/Verify")
    session = store.create(account, make_context(), SessionState.VERIFICATION_REQUIRED)
    session.verify_page = page

    async with _client(manager) as client:
        resp = await client.post("/auth/verify", json={"label": "Jana", "code": 123456}, headers=AUTH)
        body = await resp.json()

    assert resp.status == 200
    assert body == {"label": "Jana", "status": "logged_in"}
    page.locator.return_value.fill.assert_awaited_once_with("123456")


# --- Compare ---


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "query, message",
    [
        ("", "Missing url query parameter"),
        ("?url=nonsense", "URL must be a valid URL"),
        ("?url=https://www.datart.cz/x", "URL must be from alza.cz"),
    ],
)
async def test_compare_validates_url(manager, query, message):
    async with _client(manager) as client:
        resp = await client.get(f"/compare{query}", headers=AUTH)
        body = await resp.json()

    assert resp.status == 400
    assert body == {"error": "INVALID_URL", "message": message}


@pytest.mark.asyncio
async def test_compare_without_sessions(manager):
    async with _client(manager) as client:
        resp = await client.get("/compare", params={"url": PRODUCT_URL}, headers=AUTH)
        body = await resp.json()

    assert resp.status == 428
    assert body["error"] == "NO_SESSION"
    assert [a["status"] for a in body["accounts"]] == ["not_started", "not_started"]


@pytest.mark.asyncio
async def test_compare_while_verification_pending(manager, store, account, make_context):
    store.create(account, make_context(), SessionState.VERIFICATION_REQUIRED)

    async with _client(manager) as client:
        resp = await client.get("/compare", params={"url": PRODUCT_URL}, headers=AUTH)
        body = await resp.json()

    assert resp.status == 428
    assert body["error"] == "VERIFICATION_REQUIRED"


@pytest.mark.asyncio
async def test_compare_across_logged_in_accounts(
    manager, store, account, other_account, make_page, make_context
):
    _log_in(store, account, make_context(new_page=make_page(url=PRODUCT_URL, html=_html("16 990,-"))))
    _log_in(store, other_account, make_context(new_page=make_page(url=PRODUCT_URL, html=_html("15 490,-"))))

    async with _client(manager) as client:
        resp = await client.get("/compare", params={"url": PRODUCT_URL}, headers=AUTH)
        body = await resp.json()

    assert resp.status == 200
    assert body["product"] == "Dyson V15"
    assert body["url"] == PRODUCT_URL
    assert body["cheapest"] == "Petr"
    assert body["difference"] == 1500
    assert body["differenceFormatted"] == "1\u00a0500 Kč"
    assert [a["price"] for a in body["accounts"]] == [16990, 15490]
    assert body["accounts"][1]["priceFormatted"] == "15\u00a0490 Kč"
    assert "price_formatted" not in body["accounts"][1]
    assert "difference_formatted" not in body


@pytest.mark.asyncio
async def test_compare_reports_per_account_failure(
    manager, store, account, other_account, make_page, make_context
):
    _log_in(store, account, make_context(new_page=make_page(url=PRODUCT_URL, html="<html></html>")))
    _log_in(store, other_account, make_context(new_page=make_page(url=PRODUCT_URL, html=_html("15 490,-"))))

    async with _client(manager) as client:
        resp = await client.get("/compare", params={"url": PRODUCT_URL}, headers=AUTH)
        body = await resp.json()

    assert resp.status == 200
    jana, petr = body["accounts"]
    assert jana["available"] is False
    assert jana["error"] == "Could not extract price from account: Jana"
    assert petr["available"] is True
    assert body["cheapest"] == "Petr"
    assert body["difference"] is None
