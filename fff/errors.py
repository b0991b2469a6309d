"""
Exceptions raised along the fetch pipeline.

Everything except MalformedURLError ends up on stdout or stderr; none of
them stop the run.
"""


class FetchError(Exception):
    """Base class for per-task failures."""


class MalformedURLError(FetchError):
    """Input line is not an absolute request URL. Dropped without output."""


class RequestConstructionError(FetchError):
    """The outbound request could not be built (e.g. invalid method)."""


class NetworkError(FetchError):
    """Connect, TLS, proxy, timeout or any other transport failure."""


class BodyReadError(FetchError):
    """Response headers arrived but the body could not be read."""


class FilesystemError(FetchError):
    """Directory creation or file write failed while persisting."""
