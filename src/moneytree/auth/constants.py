"""Compiled-in Moneytree endpoints and client identification.

None of these values are user configurable; the provider validates the
client id, redirect URI and SDK identification headers together.
"""

from __future__ import annotations

import json
from urllib.parse import urlencode

CLIENT_ID = "2f5c4a5f8b5db8a2a85109645ca8fafcfddd7975ef12d615c99d94ea7efce7df"
REDIRECT_URI = "https://app.getmoneytree.com/callback"
OAUTH_BASE_URL = "https://myaccount.getmoneytree.com"
WEB_APP_ORIGIN = "https://app.getmoneytree.com"

LOGIN_PATH = "/guests/login"
AUTHORIZE_PATH = "/oauth/authorize"
TOKEN_PATH = "/oauth/token.json"

SDK_PLATFORM = "js"
SDK_VERSION = "3.1.1"
SCOPE = "guest_read subscription"
COUNTRY = "JP"
LOCALE = "en"

# Opaque to the provider; echoed back by the web app after the callback.
OAUTH_STATE = json.dumps({"path": "/callback?action=logout"}, separators=(",", ":"))

USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/142.0.0.0 Safari/537.36"
)
BROWSER_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"
BROWSER_ACCEPT_LANGUAGE = "en-US,en;q=0.9"

DEFAULT_TIMEOUT = 30.0
EXPIRY_BUFFER_SECONDS = 5 * 60
ERROR_BODY_LIMIT = 200

STORAGE_KEY_ACCESS_TOKEN = "moneytree_access_token"
STORAGE_KEY_REFRESH_TOKEN = "moneytree_refresh_token"
STORAGE_KEY_EXPIRES_AT = "moneytree_expires_at"
STORAGE_KEY_CODE_VERIFIER = "moneytree_code_verifier"

STORAGE_KEYS = (
    STORAGE_KEY_ACCESS_TOKEN,
    STORAGE_KEY_REFRESH_TOKEN,
    STORAGE_KEY_EXPIRES_AT,
    STORAGE_KEY_CODE_VERIFIER,
)


def sdk_configs() -> str:
    """Return the form-encoded ``configs`` parameter sent on login pages."""
    return urlencode(
        {
            "back_to": REDIRECT_URI,
            "sdk_platform": SDK_PLATFORM,
            "sdk_version": SDK_VERSION,
        }
    )
