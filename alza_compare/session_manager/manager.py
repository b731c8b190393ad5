"""Session Manager HTTP service.

Runs as a small aiohttp server that owns the shared Chrome, the per-account
sessions, and the price comparison across accounts.

Endpoints:
    GET  /health        - Liveness probe (no auth)
    GET  /auth/status   - Session state for every account
    POST /auth/init     - Log in every account, one after another
    POST /auth/verify   - Submit an SMS code for one account
    GET  /compare?url=  - Scrape one product for every logged-in account
"""

from __future__ import annotations

import asyncio
import hmac
import logging
import sys
from typing import Optional

from aiohttp import web

from .. import config
from ..errors import ConfigError, NoPendingVerification
from ..models.account import Account
from ..models.price import CompareResponse, ScrapedData
from ..models.session import SessionState, SessionStatus
from .browser import BrowserSupervisor
from .compare import build_comparison, validate_product_url
from .login import LoginFlow
from .scraper import scrape_price
from .sessions import SessionStore

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)


class SessionManager:
    """Orchestrates the browser, account logins, and scraping."""

    def __init__(
        self,
        accounts: list[Account],
        supervisor: Optional[BrowserSupervisor] = None,
        store: Optional[SessionStore] = None,
        login_flow: Optional[LoginFlow] = None,
    ):
        self.accounts = accounts
        self.supervisor = supervisor if supervisor is not None else BrowserSupervisor()
        # An empty store is falsy (it defines __len__)
        self.store = store if store is not None else SessionStore()
        self.login_flow = (
            login_flow if login_flow is not None else LoginFlow(self.supervisor, self.store)
        )

    def find_account(self, label: str) -> Optional[Account]:
        return next((a for a in self.accounts if a.label == label), None)

    async def initiate_login(self, account: Account) -> SessionStatus:
        return await self.login_flow.initiate(account)

    async def initiate_all(self) -> list[SessionStatus]:
        """Log in every account sequentially; they share one Chrome."""
        logger.info("[AUTH] Initiating login for all accounts (sequentially)...")
        results = []
        for account in self.accounts:
            results.append(await self.initiate_login(account))
        return results

    async def submit_verification(self, account: Account, code: str) -> SessionStatus:
        return await self.login_flow.submit_code(account, code)

    def get_status(self, account: Account) -> SessionStatus:
        return self.store.status(account)

    def statuses(self) -> list[SessionStatus]:
        return [self.get_status(a) for a in self.accounts]

    async def scrape(self, account: Account, url: str) -> ScrapedData:
        return await scrape_price(self.store, account, url)

    async def compare(self, url: str) -> CompareResponse:
        """Scrape ``url`` concurrently for every logged-in account."""
        active = [
            a for a in self.accounts if self.get_status(a).status == SessionState.LOGGED_IN
        ]
        logger.info(f"[COMPARE] {url} across {len(active)} account(s)")
        results = await asyncio.gather(
            *(self.scrape(a, url) for a in active), return_exceptions=True
        )
        for account, result in zip(active, results):
            if isinstance(result, BaseException):
                logger.error(f"[COMPARE] Failed to scrape for {account.label}: {result}")
        return build_comparison(url, active, results)

    async def shutdown(self):
        """Release every session, close the browser, and stop Chrome."""
        await self.store.clear()
        await self.supervisor.shutdown()


# ── HTTP Handlers ────────────────────────────────────────────────────────────


def _error(code: str, message: str, status: int, **extra) -> web.Response:
    return web.json_response({"error": code, "message": message, **extra}, status=status)


def _dump(model) -> dict:
    return model.model_dump(mode="json", exclude_none=True)


@web.middleware
async def auth_middleware(request: web.Request, handler):
    if request.path == "/compare" or request.path.startswith("/auth/"):
        api_key = request.app["api_key"]
        header = request.headers.get("Authorization", "")
        token = header[len("Bearer "):] if header.startswith("Bearer ") else None
        if token is None or not hmac.compare_digest(token, api_key):
            return _error("UNAUTHORIZED", "Invalid or missing API key", 401)
    return await handler(request)


async def handle_health(request: web.Request) -> web.Response:
    return web.json_response({"status": "ok"})


async def handle_auth_status(request: web.Request) -> web.Response:
    mgr: SessionManager = request.app["manager"]
    return web.json_response({"accounts": [_dump(s) for s in mgr.statuses()]})


async def handle_auth_init(request: web.Request) -> web.Response:
    mgr: SessionManager = request.app["manager"]
    results = await mgr.initiate_all()
    return web.json_response({"accounts": [_dump(s) for s in results]})


async def handle_auth_verify(request: web.Request) -> web.Response:
    mgr: SessionManager = request.app["manager"]
    try:
        body = await request.json() if request.can_read_body else {}
    except ValueError:
        body = {}
    label = body.get("label") if isinstance(body, dict) else None
    code = body.get("code") if isinstance(body, dict) else None

    if not label or not code:
        return _error("BAD_REQUEST", "Missing label or code in request body", 400)

    account = mgr.find_account(label)
    if account is None:
        return _error("NOT_FOUND", f'Account with label "{label}" not found', 404)

    try:
        result = await mgr.submit_verification(account, str(code))
    except NoPendingVerification as e:
        failed = SessionStatus(label=account.label, status=SessionState.FAILED, error=str(e))
        return web.json_response(_dump(failed), status=409)
    return web.json_response(_dump(result))


async def handle_compare(request: web.Request) -> web.Response:
    mgr: SessionManager = request.app["manager"]
    url = request.query.get("url", "")

    problem = validate_product_url(url)
    if problem:
        return _error("INVALID_URL", problem, 400)

    statuses = mgr.statuses()
    if not any(s.status == SessionState.LOGGED_IN for s in statuses):
        accounts = [_dump(s) for s in statuses]
        if any(s.status == SessionState.VERIFICATION_REQUIRED for s in statuses):
            return _error(
                "VERIFICATION_REQUIRED",
                "Accounts need SMS verification. Call POST /auth/verify with the code.",
                428,
                accounts=accounts,
            )
        return _error(
            "NO_SESSION",
            "No active sessions. Call POST /auth/init first.",
            428,
            accounts=accounts,
        )

    logger.info(f"[COMPARE] Comparing prices for: {url}")
    response = await mgr.compare(url)
    return web.json_response(response.model_dump(mode="json", by_alias=True))


# ── App Factory ──────────────────────────────────────────────────────────────


async def on_cleanup(app: web.Application):
    mgr: SessionManager = app["manager"]
    await mgr.shutdown()
    logger.info("Session Manager stopped.")


def create_app(manager: Optional[SessionManager] = None, api_key: Optional[str] = None) -> web.Application:
    app = web.Application(middlewares=[auth_middleware])
    app["manager"] = manager or SessionManager(config.load_accounts())
    app["api_key"] = api_key if api_key is not None else config.API_KEY
    if not app["api_key"]:
        raise ConfigError("API_KEY environment variable is required")
    app.on_cleanup.append(on_cleanup)

    app.router.add_get("/health", handle_health)
    app.router.add_get("/auth/status", handle_auth_status)
    app.router.add_post("/auth/init", handle_auth_init)
    app.router.add_post("/auth/verify", handle_auth_verify)
    app.router.add_get("/compare", handle_compare)

    return app


def main():
    """Run the session manager as a standalone HTTP service."""
    config.ensure_dirs()
    app = create_app()
    accounts = app["manager"].accounts
    logger.info(f"Loaded {len(accounts)} Alza account(s): {', '.join(a.label for a in accounts)}")
    web.run_app(app, host=config.HOST, port=config.PORT)


if __name__ == "__main__":
    main()
