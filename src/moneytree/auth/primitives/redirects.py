"""Authorization code extraction from redirect targets."""

from __future__ import annotations

from urllib.parse import parse_qs, urljoin, urlparse


def extract_code_from_url(url: str, base_url: str | None = None) -> str | None:
    """Return the ``code`` query parameter of a redirect target.

    Args:
        url: Absolute or relative redirect target
        base_url: URL the redirect was received from, used to resolve
            relative targets

    Returns:
        The authorization code, or None when the URL carries none
    """
    if not url:
        return None
    try:
        target = urljoin(base_url, url) if base_url else url
        values = parse_qs(urlparse(target).query).get("code", [])
    except ValueError:
        return None
    return values[0] if values and values[0] else None


def normalize_authorization_code(value: str) -> str | None:
    """Accept either a bare code or a pasted callback URL containing one."""
    value = value.strip()
    if "?code=" in value or "&code=" in value:
        return extract_code_from_url(value)
    return value or None
