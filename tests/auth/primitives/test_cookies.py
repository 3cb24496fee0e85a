"""Tests for cookie accumulation across login requests."""

import httpx

from moneytree.auth.primitives.cookies import (
    SessionCookies,
    is_expired,
    parse_set_cookie,
)


class TestParseSetCookie:
    def test_attributes_are_dropped(self):
        assert parse_set_cookie("_session=abc; path=/; HttpOnly; Secure") == (
            "_session",
            "abc",
        )

    def test_value_may_contain_equals(self):
        assert parse_set_cookie("token=a=b==; path=/") == ("token", "a=b==")

    def test_malformed_header(self):
        assert parse_set_cookie("HttpOnly") is None
        assert parse_set_cookie("=value") is None


class TestIsExpired:
    def test_max_age_zero(self):
        assert is_expired("_session=; Max-Age=0; path=/")

    def test_expires_in_the_past(self):
        assert is_expired("_session=; expires=Thu, 01 Jan 1970 00:00:00 GMT")

    def test_expires_in_the_future(self):
        header = "_session=abc; expires=Fri, 01 Jan 2100 00:00:00 GMT"

        assert not is_expired(header, now=0.0)

    def test_max_age_wins_over_expires(self):
        header = "a=1; expires=Thu, 01 Jan 1970 00:00:00 GMT; Max-Age=60"

        assert not is_expired(header)

    def test_session_cookie_and_bad_values(self):
        assert not is_expired("a=1; path=/; HttpOnly")
        assert not is_expired("a=1; Max-Age=soon; expires=never")


class TestSessionCookies:
    def test_last_write_wins_per_name(self):
        # Arrange
        cookies = SessionCookies()

        # Act
        cookies.merge({"a": "1"})
        cookies.merge({"a": "2", "b": "1"})

        # Assert
        assert dict(cookies) == {"a": "2", "b": "1"}

    def test_unrelated_cookies_are_kept(self):
        cookies = SessionCookies({"a": "1", "c": "3"})

        cookies.merge({"b": "2"})

        assert dict(cookies) == {"a": "1", "c": "3", "b": "2"}

    def test_header_keeps_first_seen_order(self):
        cookies = SessionCookies({"a": "1", "b": "1"})

        cookies.merge([("a", "2"), ("c", "1")])

        assert cookies.to_header() == "a=2; b=1; c=1"

    def test_merge_response_reads_every_set_cookie(self):
        # Arrange
        cookies = SessionCookies({"_session": "old"})
        response = httpx.Response(
            302,
            headers=[
                ("set-cookie", "_session=new; path=/; HttpOnly"),
                ("set-cookie", "remember=r1; path=/"),
                ("set-cookie", "broken"),
            ],
        )

        # Act
        cookies.merge_response(response)

        # Assert
        assert cookies.to_header() == "_session=new; remember=r1"

    def test_merge_response_drops_expired_cookies(self):
        # Arrange
        cookies = SessionCookies({"_session": "s1", "locale": "en"})
        response = httpx.Response(
            302,
            headers=[
                ("set-cookie", "locale=; Max-Age=0; path=/"),
                ("set-cookie", "_session=; expires=Thu, 01 Jan 1970 00:00:00 GMT"),
                ("set-cookie", "remember=r1; path=/"),
            ],
        )

        # Act
        cookies.merge_response(response)

        # Assert
        assert cookies.to_header() == "remember=r1"

    def test_repr_hides_values(self):
        cookies = SessionCookies({"_session": "secret-value"})

        assert "secret-value" not in repr(cookies)

    def test_clear(self):
        cookies = SessionCookies({"a": "1"})

        cookies.clear()

        assert len(cookies) == 0
        assert cookies.to_header() == ""
