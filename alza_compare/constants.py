"""Alza URLs, identity-provider parameters, CSS selectors, and challenge markers."""

# ── URLs ─────────────────────────────────────────────────────────────────────

ALZA_BASE = "https://www.alza.cz"
ALZA_HOST = "alza.cz"
IDENTITY_BASE = "https://identity.alza.cz"
IDENTITY_HOST = "identity.alza.cz"
IDENTITY_AUTHORIZE_URL = f"{IDENTITY_BASE}/connect/authorize"
IDENTITY_LOGIN_URL = f"{IDENTITY_BASE}/Account/Login"
IDENTITY_VERIFY_URL = f"{IDENTITY_BASE}/Account/Verify"

# Lower-cased path fragment of the SMS verification page
VERIFY_PATH = "/account/verify"

# Post-login redirect target (main site, not the identity host)
MAIN_SITE_URL_PATTERN = r"www\.alza\.cz"

# ── Identity Provider (OIDC authorize request) ───────────────────────────────

OIDC_PARAMS = {
    "client_id": "alza",
    "response_type": "code id_token",
    "scope": "email openid profile alza offline_access",
    "redirect_uri": "https://www.alza.cz/external/callback",
    "response_mode": "form_post",
    "culture": "cs-CZ",
    "acr_values": "country:CZ regLink:Production_registration source:Web",
}

LOCALE = "cs-CZ"
VIEWPORT = {"width": 1280, "height": 720}

# ── Chrome launch ────────────────────────────────────────────────────────────

CHROME_FLAGS = [
    "--no-first-run",
    "--no-default-browser-check",
    "--disable-blink-features=AutomationControlled",
    "--window-size=1280,720",
]

XVFB_ARGS = ["--auto-servernum", "--server-args=-screen 0 1280x720x24"]

# ── CSS Selectors ────────────────────────────────────────────────────────────

SELECTORS = {
    # Login page
    "login_username": "#userName",
    "login_password": "#password",
    "login_submit": 'button[type="submit"]',

    # SMS verification page
    "verify_code": "#code",
}

# Masked phone number on the verification page, e.g. "+420 *** *** 123"
PHONE_HINT_PATTERN = r"[\*\d][\*\d\s]+\d{3}"

# ── Price extraction ─────────────────────────────────────────────────────────

PRICE_META_SELECTORS = [
    'meta[property="og:price:amount"]',
    'meta[property="product:price:amount"]',
]

PRICE_SELECTORS = [
    ".price-box__price",
    ".c2",
    ".price_withVat",
    "#prices .js-price-box .price-box__paragraph--price",
]

PRICE_PATTERNS = [
    r"(\d[\d\s]*\d)\s*Kč",
    r"(\d[\d\s]*\d),[-–]\s*Kč",
    r"(\d[\d\s,.]*\d)\s*CZK",
]

CURRENCY_SUFFIX = "Kč"
UNKNOWN_PRODUCT = "Unknown Product"

# ── Cloudflare Detection ─────────────────────────────────────────────────────

# Lower-cased title fragments shown while the challenge is pending (cs, en)
CLOUDFLARE_TITLE_MARKERS = [
    "okamžik",
    "just a moment",
]
