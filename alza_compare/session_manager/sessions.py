"""In-memory per-account session registry with lazy TTL expiry."""

from __future__ import annotations

import logging
import sys
import time
from typing import Callable, Iterator, Optional

from playwright.async_api import BrowserContext

from ..config import SESSION_TTL_SECONDS
from ..models.account import Account
from ..models.session import Session, SessionState, SessionStatus

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)


class SessionStore:
    """One ``Session`` per account email.

    Expiry is decided when a record is read, never by a background sweep:
    a ``logged_in`` record past its ``expires_at`` reads as ``not_started``.
    """

    def __init__(self, ttl: float = SESSION_TTL_SECONDS, clock: Callable[[], float] = time.time):
        self.ttl = ttl
        self._clock = clock
        self._sessions: dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __iter__(self) -> Iterator[Session]:
        return iter(list(self._sessions.values()))

    def now(self) -> float:
        return self._clock()

    def fresh_expiry(self) -> float:
        return self._clock() + self.ttl

    def get(self, account: Account) -> Optional[Session]:
        return self._sessions.get(account.email)

    def create(
        self, account: Account, context: Optional[BrowserContext], state: SessionState
    ) -> Session:
        """Insert a new record. The caller must have discarded any previous one."""
        session = Session(state=state, context=context, expires_at=self.fresh_expiry())
        self._sessions[account.email] = session
        return session

    def mark_logged_in(self, session: Session):
        session.state = SessionState.LOGGED_IN
        session.error = None
        session.verify_page = None
        session.expires_at = self.fresh_expiry()

    def is_valid(self, session: Optional[Session]) -> bool:
        """True for a logged-in record whose TTL has not elapsed."""
        return (
            session is not None
            and session.state == SessionState.LOGGED_IN
            and not session.is_expired(self._clock())
        )

    def status(self, account: Account) -> SessionStatus:
        """Side-effect-free status read."""
        session = self._sessions.get(account.email)
        if session is None:
            return SessionStatus(label=account.label, status=SessionState.NOT_STARTED)
        if session.state == SessionState.LOGGED_IN and session.is_expired(self._clock()):
            return SessionStatus(label=account.label, status=SessionState.NOT_STARTED)
        return SessionStatus(
            label=account.label,
            status=session.state,
            phone=session.phone,
            error=session.error,
        )

    async def discard(self, account: Account):
        """Remove the record and close the pages/context it owns."""
        session = self._sessions.pop(account.email, None)
        if session is not None:
            await release(session)

    async def clear(self):
        """Release every session (used on shutdown)."""
        sessions = list(self._sessions.values())
        self._sessions.clear()
        for session in sessions:
            await release(session)


async def release(session: Session):
    """Close the verification page first, then the context."""
    if session.verify_page is not None:
        try:
            await session.verify_page.close()
        except Exception as e:
            logger.debug(f"[SESSIONS] Verify page already closed: {e}")
        finally:
            session.verify_page = None

    if session.context is None:
        return
    try:
        await session.context.close()
    except Exception as e:
        logger.debug(f"[SESSIONS] Context already closed: {e}")
