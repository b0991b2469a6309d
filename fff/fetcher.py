import asyncio
import socket
from typing import Dict, List, Optional

import httpx
import structlog

from .errors import BodyReadError, NetworkError, RequestConstructionError
from .request import RequestSpec

logger = structlog.get_logger(__name__)

DEFAULT_TIMEOUT = 10.0
DEFAULT_CONNECT_TIMEOUT = 10.0
DEFAULT_MAX_IDLE_CONNECTIONS = 30
DEFAULT_IDLE_TIMEOUT = 1.0
DEFAULT_TCP_KEEPALIVE_INTERVAL = 1

_ENCODING_HEADERS = ("content-encoding", "content-length")


class ResponseRecord:
    def __init__(
        self,
        status_code: int,
        body: bytes = b'',
        headers: Dict[str, List[str]] = None,
        http_version: str = "HTTP/1.1",
        reason_phrase: str = "",
    ):
        """Fully-read response: status line, multi-valued headers in arrival order, body."""
        self.status_code = status_code
        self.body = body
        self.headers = headers or {}
        self.http_version = http_version
        self.reason_phrase = reason_phrase

    @classmethod
    def from_httpx(cls, response: httpx.Response, body: bytes) -> "ResponseRecord":
        # once the body has been decompressed, the wire encoding and length no longer describe it
        decoded = response.num_bytes_downloaded != len(body)
        headers: Dict[str, List[str]] = {}
        for raw_name, raw_value in response.headers.raw:
            name = raw_name.decode("latin-1")
            if decoded and name.lower() in _ENCODING_HEADERS:
                continue
            headers.setdefault(name, []).append(raw_value.decode("latin-1"))
        return cls(
            status_code=response.status_code,
            body=body,
            headers=headers,
            http_version=response.http_version,
            reason_phrase=response.reason_phrase,
        )

    def header(self, name: str) -> str:
        """First value of a header, matched case-insensitively, or ''."""
        wanted = name.lower()
        for key, values in self.headers.items():
            if key.lower() == wanted and values:
                return values[0]
        return ""

    @property
    def location(self) -> str:
        return self.header("Location")

    @property
    def content_type(self) -> str:
        return self.header("Content-Type")

    @property
    def proto_line(self) -> str:
        status = f"{self.status_code} {self.reason_phrase}".rstrip()
        return f"{self.http_version} {status}"

    @property
    def size(self) -> int:
        return len(self.body)

    @property
    def word_count(self) -> int:
        return len(self.body.split(b" "))

    @property
    def line_count(self) -> int:
        return len(self.body.split(b"\n"))


def _socket_options(keepalive_interval: int) -> list:
    options = [(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)]
    # TCP_KEEPIDLE/TCP_KEEPINTVL are missing on some platforms
    for opt_name in ("TCP_KEEPIDLE", "TCP_KEEPINTVL"):
        opt = getattr(socket, opt_name, None)
        if opt is not None:
            options.append((socket.IPPROTO_TCP, opt, keepalive_interval))
    return options


def _parse_proxy(proxy: Optional[str]) -> Optional[httpx.Proxy]:
    if not proxy:
        return None
    try:
        return httpx.Proxy(proxy)
    except (httpx.InvalidURL, ValueError) as e:
        logger.warning("proxy_url_invalid", proxy=proxy, error=str(e))
        return None


def new_client(
    keep_alive: bool = False,
    proxy: Optional[str] = None,
    *,
    timeout: float = DEFAULT_TIMEOUT,
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
    max_idle_connections: int = DEFAULT_MAX_IDLE_CONNECTIONS,
    idle_timeout: float = DEFAULT_IDLE_TIMEOUT,
    tcp_keepalive_interval: int = DEFAULT_TCP_KEEPALIVE_INTERVAL,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """
    Build the client shared by every task.

    TLS is not verified, redirects are never followed and environment proxy
    settings are ignored. An unparseable proxy falls back to a direct
    connection.
    """
    headers = {}
    if not keep_alive:
        headers["Connection"] = "close"

    if transport is None:
        transport = httpx.AsyncHTTPTransport(
            verify=False,
            trust_env=False,
            proxy=_parse_proxy(proxy),
            limits=httpx.Limits(
                max_connections=None,
                max_keepalive_connections=max_idle_connections if keep_alive else 0,
                keepalive_expiry=idle_timeout,
            ),
            socket_options=_socket_options(tcp_keepalive_interval),
        )

    return httpx.AsyncClient(
        transport=transport,
        headers=headers,
        timeout=httpx.Timeout(timeout, connect=connect_timeout),
        follow_redirects=False,
        trust_env=False,
    )


class Fetcher:
    def __init__(self, client: httpx.AsyncClient, timeout: float = DEFAULT_TIMEOUT):
        """Sends RequestSpecs through a shared client under an overall deadline."""
        self._client = client
        self.timeout = timeout

    async def fetch(self, spec: RequestSpec) -> ResponseRecord:
        """Send one request and read the whole body."""
        try:
            # later duplicates replace earlier ones
            headers = httpx.Headers()
            for name, value in spec.headers:
                headers[name] = value
            request = self._client.build_request(
                spec.method,
                spec.parsed_url,
                headers=headers,
                content=spec.body,
            )
        except (httpx.InvalidURL, ValueError, TypeError) as e:
            raise RequestConstructionError(f"{spec.method} {spec.url}: {e}") from e

        try:
            return await asyncio.wait_for(self._exchange(spec, request), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise NetworkError(
                f"{spec.method} {spec.url}: timeout after {self.timeout:g}s"
            ) from e

    async def _exchange(self, spec: RequestSpec, request: httpx.Request) -> ResponseRecord:
        try:
            response = await self._client.send(request, stream=True)
        except httpx.HTTPError as e:
            raise NetworkError(f"{spec.method} {spec.url}: {type(e).__name__}: {e}") from e

        try:
            body = await response.aread()
        except httpx.HTTPError as e:
            raise BodyReadError(f"{spec.method} {spec.url}: failed to read body: {e}") from e
        finally:
            await response.aclose()

        logger.debug("fetched", method=spec.method, url=spec.url, status=response.status_code, size=len(body))
        return ResponseRecord.from_httpx(response, body)
