"""Session state for one account: the status enum, the live record, and its wire form."""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from playwright.async_api import BrowserContext, Page
from pydantic import BaseModel


class SessionState(str, Enum):
    NOT_STARTED = "not_started"
    AWAITING_CHALLENGE = "awaiting_challenge"
    FORM_FILLED = "form_filled"
    LOGGED_IN = "logged_in"
    VERIFICATION_REQUIRED = "verification_required"
    FAILED = "failed"


@dataclass
class Session:
    """Live per-account record. Owns its browser context and, while
    waiting for an SMS code, the verification page."""

    state: SessionState
    context: Optional[BrowserContext]
    expires_at: float
    phone: Optional[str] = None
    error: Optional[str] = None
    verify_page: Optional[Page] = None

    def is_expired(self, now: Optional[float] = None) -> bool:
        return self.expires_at <= (time.time() if now is None else now)


class SessionStatus(BaseModel):
    """Status of one account's session as reported to callers."""

    label: str
    status: SessionState = SessionState.NOT_STARTED
    phone: Optional[str] = None
    error: Optional[str] = None
