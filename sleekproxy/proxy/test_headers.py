import httpx
import pytest

from sleekproxy.proxy.headers import (
    DENIED_RESPONSE_HEADERS,
    build_upstream_headers,
    sanitize_headers,
)


@pytest.mark.parametrize("name", sorted(DENIED_RESPONSE_HEADERS))
def test_denied_headers_are_dropped(name):
    result = sanitize_headers({name: "value", "x-custom": "kept"})
    assert name not in result
    assert result["x-custom"] == "kept"


def test_matching_is_case_insensitive():
    result = sanitize_headers(
        {
            "Set-Cookie": "session=abc; Path=/",
            "X-Frame-Options": "DENY",
            "Content-Security-Policy": "default-src 'self'",
            "Strict-Transport-Security": "max-age=31536000",
            "Cache-Control": "max-age=60",
        }
    )
    assert result == {"cache-control": "max-age=60"}


def test_hop_by_hop_and_body_framing_headers_are_dropped():
    result = sanitize_headers(
        {
            "connection": "keep-alive",
            "transfer-encoding": "chunked",
            "content-encoding": "gzip",
            "content-length": "1234",
            "etag": '"abc"',
        }
    )
    assert result == {"etag": '"abc"'}


def test_exclude_drops_extra_names():
    result = sanitize_headers(
        {"Content-Type": "text/html", "Last-Modified": "Wed, 21 Oct 2015 07:28:00 GMT"},
        exclude=("content-type",),
    )
    assert "content-type" not in result
    assert "last-modified" in result


def test_accepts_httpx_headers_with_repeated_cookies():
    headers = httpx.Headers(
        [
            ("set-cookie", "a=1"),
            ("Set-Cookie", "b=2"),
            ("vary", "Accept"),
        ]
    )
    result = sanitize_headers(headers)
    assert result == {"vary": "Accept"}


def test_accepts_list_of_pairs():
    result = sanitize_headers([("Set-Cookie2", "x"), ("X-Request-Id", "42")])
    assert result == {"x-request-id": "42"}


def test_empty_headers():
    assert sanitize_headers(None) == {}
    assert sanitize_headers({}) == {}


def test_upstream_headers_carry_only_user_agent():
    assert build_upstream_headers("Mozilla/5.0 test", "SleekProxy/1.0") == {
        "User-Agent": "Mozilla/5.0 test"
    }


def test_upstream_headers_fall_back_to_default_user_agent():
    assert build_upstream_headers(None, "SleekProxy/1.0") == {
        "User-Agent": "SleekProxy/1.0"
    }


def test_values_that_cannot_be_sent_as_latin1_are_dropped():
    result = sanitize_headers({"X-Title": "caf€", "X-Accent": "café", "X-Plain": "ok"})
    assert result == {"x-accent": "café", "x-plain": "ok"}


def test_utf8_header_from_upstream_is_dropped():
    upstream = httpx.Headers([(b"X-Title", "caf€".encode("utf-8")), (b"X-Plain", b"ok")])
    assert sanitize_headers(upstream) == {"x-plain": "ok"}
