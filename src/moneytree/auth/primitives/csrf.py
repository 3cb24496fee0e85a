"""Anti-forgery token extraction from the provider's login page."""

from __future__ import annotations

import html
import re

_INPUT_TAG = re.compile(r"<input\b[^>]*>", re.IGNORECASE)
_META_TAG = re.compile(r"<meta\b[^>]*>", re.IGNORECASE)
_ATTRIBUTE = re.compile(
    r"""([a-zA-Z_:][-a-zA-Z0-9_:.]*)\s*=\s*(?:"([^"]*)"|'([^']*)')"""
)


def _attributes(tag: str) -> dict[str, str]:
    attrs: dict[str, str] = {}
    for name, double_quoted, single_quoted in _ATTRIBUTE.findall(tag):
        value = double_quoted if double_quoted else single_quoted
        attrs.setdefault(name.lower(), html.unescape(value))
    return attrs


def _find_tag_value(
    pattern: re.Pattern[str], document: str, name: str, value_attribute: str
) -> str | None:
    for match in pattern.finditer(document):
        attrs = _attributes(match.group(0))
        if attrs.get("name") == name and attrs.get(value_attribute):
            return attrs[value_attribute]
    return None


def extract_authenticity_token(document: str) -> str | None:
    """Extract the CSRF token from a login page.

    Looks for ``<input name="authenticity_token" value="...">`` first, then
    ``<meta name="csrf-token" content="...">``. Attribute order does not
    matter.

    Returns:
        The token, or None when the page carries neither form
    """
    if not document:
        return None
    return _find_tag_value(
        _INPUT_TAG, document, "authenticity_token", "value"
    ) or _find_tag_value(_META_TAG, document, "csrf-token", "content")
