"""
Turns an input line plus the run's method/body/headers into a RequestSpec.

Validation only; nothing here touches the network.
"""

import re
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

import httpx

from .errors import MalformedURLError, RequestConstructionError

DEFAULT_METHOD = "GET"
BODY_METHOD = "POST"

Header = Tuple[str, str]

_SCHEME = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*:")
# RFC 7230 token
_METHOD_TOKEN = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")


@dataclass(frozen=True)
class RequestSpec:
    method: str
    url: str
    parsed_url: httpx.URL
    headers: Tuple[Header, ...] = ()
    body: Optional[bytes] = None

    @property
    def host(self) -> str:
        return self.parsed_url.host

    def serialized_headers(self) -> str:
        return ", ".join(f"{name}:{value}" for name, value in self.headers)


def parse_headers(raw_headers: Iterable[str]) -> Tuple[Header, ...]:
    """Split each ``name:value`` on the first colon. Entries without one are dropped."""
    headers = []
    for raw in raw_headers:
        name, sep, value = raw.partition(":")
        if not sep:
            continue
        headers.append((name.strip(), value.strip()))
    return tuple(headers)


def parse_request_url(raw_url: str) -> httpx.URL:
    """Parse an absolute URL or raise MalformedURLError."""
    if not _SCHEME.match(raw_url):
        raise MalformedURLError(f"missing scheme: {raw_url!r}")
    try:
        url = httpx.URL(raw_url)
    except httpx.InvalidURL as e:
        raise MalformedURLError(f"invalid url {raw_url!r}: {e}") from e
    if not url.is_absolute_url:
        raise MalformedURLError(f"not an absolute url: {raw_url!r}")
    return url


def resolve_method(method: Optional[str], body: Optional[bytes]) -> str:
    """
    A body promotes an unset or GET method to POST. Any other method the
    user picked is kept as is.
    """
    if body and (method is None or method == DEFAULT_METHOD):
        return BODY_METHOD
    return method or DEFAULT_METHOD


def build_request(
    raw_url: str,
    method: Optional[str] = None,
    body: Optional[bytes] = None,
    headers: Tuple[Header, ...] = (),
) -> RequestSpec:
    parsed_url = parse_request_url(raw_url)

    effective_method = resolve_method(method, body)
    if not _METHOD_TOKEN.match(effective_method):
        raise RequestConstructionError(f"invalid method {effective_method!r}")

    return RequestSpec(
        method=effective_method,
        url=raw_url,
        parsed_url=parsed_url,
        headers=tuple(headers),
        body=body or None,
    )
