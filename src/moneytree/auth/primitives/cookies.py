"""Cookie accumulation for a single login attempt."""

from __future__ import annotations

import time
from collections.abc import Iterable, Iterator, Mapping
from email.utils import parsedate_to_datetime

import httpx


def parse_set_cookie(header: str) -> tuple[str, str] | None:
    """Return ``(name, value)`` from a ``Set-Cookie`` header value.

    Attributes after the first ``;`` (Path, Expires, HttpOnly...) are
    dropped; see :func:`is_expired` for the ones that delete a cookie.
    """
    pair = header.split(";", 1)[0].strip()
    if "=" not in pair:
        return None
    name, value = pair.split("=", 1)
    name = name.strip()
    if not name:
        return None
    return name, value.strip()


def is_expired(header: str, now: float | None = None) -> bool:
    """Check whether a ``Set-Cookie`` header tells the client to drop the cookie.

    ``Max-Age`` takes precedence over ``Expires`` (RFC 6265 Section 5.3).
    Unparsable attribute values are ignored.
    """
    expires = None
    for attribute in header.split(";")[1:]:
        name, _, value = attribute.partition("=")
        name = name.strip().lower()
        value = value.strip()
        if name == "max-age":
            try:
                return int(value) <= 0
            except ValueError:
                continue
        if name == "expires" and expires is None:
            try:
                expires = parsedate_to_datetime(value).timestamp()
            except (TypeError, ValueError):
                continue
    if expires is None:
        return False
    return expires <= (time.time() if now is None else now)


class SessionCookies(Mapping[str, str]):
    """Ordered name -> value cookie map with last-write-wins merging.

    Cookies are merged per name rather than concatenated, so later requests
    never carry duplicate or conflicting values for one cookie.
    """

    def __init__(self, initial: Mapping[str, str] | None = None):
        self._cookies: dict[str, str] = {}
        if initial:
            self.merge(initial)

    def __getitem__(self, name: str) -> str:
        return self._cookies[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._cookies)

    def __len__(self) -> int:
        return len(self._cookies)

    def __repr__(self) -> str:
        # Values are session secrets
        return f"SessionCookies(names={list(self._cookies)!r})"

    def merge(self, cookies: Mapping[str, str] | Iterable[tuple[str, str]]) -> None:
        """Merge cookies; a repeated name replaces the earlier value."""
        items = cookies.items() if isinstance(cookies, Mapping) else cookies
        for name, value in items:
            self._cookies[name] = value

    def merge_response(self, response: httpx.Response) -> None:
        """Apply every ``Set-Cookie`` header of a response, in order.

        Headers that expire a cookie remove it instead of storing its value.
        """
        for header in response.headers.get_list("set-cookie"):
            pair = parse_set_cookie(header)
            if pair is None:
                continue
            name, value = pair
            if is_expired(header):
                self._cookies.pop(name, None)
            else:
                self._cookies[name] = value

    def to_header(self) -> str:
        """Render a ``Cookie`` request header value."""
        return "; ".join(f"{name}={value}" for name, value in self._cookies.items())

    def clear(self) -> None:
        self._cookies.clear()
