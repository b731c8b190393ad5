"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path

from dotenv import load_dotenv

from .errors import ConfigError
from .models.account import Account

load_dotenv()

# HTTP service
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "3000"))
API_KEY = os.getenv("API_KEY", "")

# Chrome
CHROME_DEBUG_PORT = int(os.getenv("CHROME_DEBUG_PORT", "9222"))
CHROME_USER_DATA_DIR = Path(os.getenv("CHROME_USER_DATA_DIR", "/tmp/alza-chrome-profile"))
USE_XVFB = os.getenv("USE_XVFB", "false").lower() == "true"

_CHROME_CANDIDATES = [
    "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
    "/usr/bin/google-chrome",
    "/usr/bin/google-chrome-stable",
    "/usr/bin/chromium",
    "/usr/bin/chromium-browser",
]


def find_chrome() -> str:
    """Return the first installed Chrome binary, or the bare command name."""
    for path in _CHROME_CANDIDATES:
        if Path(path).is_file():
            return path
    return "google-chrome"


CHROME_PATH = os.getenv("CHROME_PATH") or find_chrome()

# Timeouts (seconds)
CHALLENGE_TIMEOUT = 120
NAVIGATION_TIMEOUT = 90
CHROME_SETTLE_DELAY = 5
SESSION_TTL_SECONDS = 10 * 60


def load_accounts(environ: Mapping[str, str] | None = None) -> list[Account]:
    """Read ALZA_ACC{n}_EMAIL / _PASSWORD / _LABEL triples until the first empty slot."""
    env = os.environ if environ is None else environ
    accounts: list[Account] = []

    i = 1
    while True:
        prefix = f"ALZA_ACC{i}"
        email = env.get(f"{prefix}_EMAIL")
        password = env.get(f"{prefix}_PASSWORD")
        label = env.get(f"{prefix}_LABEL")

        if not email and not password and not label:
            break

        missing = [
            name
            for name, value in (
                (f"{prefix}_EMAIL", email),
                (f"{prefix}_PASSWORD", password),
                (f"{prefix}_LABEL", label),
            )
            if not value
        ]
        if missing:
            raise ConfigError(
                f"Incomplete account configuration for {prefix}: missing {', '.join(missing)}"
            )

        accounts.append(Account(email=email, password=password, label=label))
        i += 1

    if not accounts:
        raise ConfigError(
            "At least one Alza account must be configured "
            "(ALZA_ACC1_EMAIL, ALZA_ACC1_PASSWORD, ALZA_ACC1_LABEL)"
        )
    return accounts


def ensure_dirs():
    """Create the Chrome profile directory if it doesn't exist."""
    CHROME_USER_DATA_DIR.mkdir(parents=True, exist_ok=True)
