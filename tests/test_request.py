import pytest

from fff.errors import MalformedURLError, RequestConstructionError
from fff.request import build_request, parse_headers, parse_request_url, resolve_method


def test_parse_headers_splits_on_first_colon():
    headers = parse_headers(["X-Token: a:b:c", "Accept:*/*"])
    assert headers == (("X-Token", "a:b:c"), ("Accept", "*/*"))


def test_parse_headers_drops_entries_without_colon():
    assert parse_headers(["no-colon-here", "Host: example.test"]) == (("Host", "example.test"),)


def test_parse_headers_is_immutable_sequence():
    assert isinstance(parse_headers(["A: 1"]), tuple)


@pytest.mark.parametrize("raw", ["not-a-url", "", "example.test/path", "/relative/path", "http://", "http://host:notaport/"])
def test_malformed_urls_are_rejected(raw):
    with pytest.raises(MalformedURLError):
        parse_request_url(raw)


def test_absolute_url_is_parsed():
    url = parse_request_url("https://example.test:8443/a/b?q=1")
    assert url.host == "example.test"
    assert url.port == 8443
    assert url.path == "/a/b"


def test_body_without_method_promotes_to_post():
    assert resolve_method(None, b"a=1") == "POST"
    assert build_request("http://example.test/", body=b"a=1").method == "POST"


def test_no_body_no_method_is_get():
    assert build_request("http://example.test/").method == "GET"


def test_body_keeps_non_get_method():
    assert build_request("http://example.test/", method="PUT", body=b"x").method == "PUT"
    assert resolve_method("DELETE", b"x") == "DELETE"


def test_body_promotes_explicit_get_to_post():
    assert build_request("http://example.test/", method="GET", body=b"x").method == "POST"
    assert build_request("http://example.test/", method="GET").method == "GET"


def test_empty_body_counts_as_no_body():
    spec = build_request("http://example.test/", body=b"")
    assert spec.method == "GET"
    assert spec.body is None


def test_invalid_method_token():
    with pytest.raises(RequestConstructionError):
        build_request("http://example.test/", method="BAD METHOD")


def test_spec_keeps_raw_url_and_headers():
    spec = build_request("http://Example.test/a%20b", headers=(("A", "1"),))
    assert spec.url == "http://Example.test/a%20b"
    assert spec.headers == (("A", "1"),)
    assert spec.serialized_headers() == "A:1"
    assert spec.host == "example.test"
