"""
Content-addressed storage of kept responses on disk.

Layout: <prefix>/<host>/<normalised path>/<sha1>.body and a sibling
<sha1>.headers transcript. The same (method, url, body, headers) always maps
to the same files, so re-runs overwrite instead of duplicating.
"""
import asyncio
import hashlib
import os
import posixpath
import re
import tempfile
from pathlib import Path
from typing import Tuple

from .errors import FilesystemError
from .fetcher import ResponseRecord
from .request import RequestSpec

DIR_MODE = 0o750
FILE_MODE = 0o644

_UNSAFE_PATH_CHARS = re.compile(r"[^a-zA-Z0-9/._-]+")


def normalise_path(url_path: str) -> str:
    """Replace unsafe character runs with '-' and resolve dot segments under the root."""
    cleaned = _UNSAFE_PATH_CHARS.sub("-", url_path)
    # rooted so '..' can't climb above the host directory
    return posixpath.normpath("/" + cleaned.lstrip("/")).strip("/")


def host_dirname(host: str) -> str:
    """Host as a single directory name: no separators, never '.' or '..'."""
    cleaned = _UNSAFE_PATH_CHARS.sub("-", host).replace("/", "-")
    if cleaned.strip(".") == "":
        return cleaned.replace(".", "-") or "-"
    return cleaned


def content_hash(spec: RequestSpec) -> str:
    digest = hashlib.sha1()
    digest.update(spec.method.encode())
    digest.update(spec.url.encode())
    digest.update(spec.body or b"")
    digest.update(spec.serialized_headers().encode())
    return digest.hexdigest()


def render_transcript(spec: RequestSpec, record: ResponseRecord) -> bytes:
    """Request line, request headers and body, then response status and headers."""
    lines = [f"{spec.method} {spec.url}\n\n"]
    for name, value in spec.headers:
        lines.append(f"> {name}: {value}\n")
    lines.append("\n")
    out = "".join(lines).encode("utf-8", "surrogateescape")

    if spec.body:
        out += spec.body + b"\n\n"

    lines = [f"< {record.proto_line}\n"]
    for name, values in record.headers.items():
        for value in values:
            lines.append(f"< {name}: {value}\n")
    # header bytes arrive as latin-1 text; encode back to the exact wire bytes
    return out + "".join(lines).encode("latin-1")


def _write_atomic(path: Path, data: bytes):
    # concurrent writers of the same path each rename a complete file into place
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.chmod(tmp_path, FILE_MODE)
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except FileNotFoundError:
            pass
        raise


class ArtifactStore:
    def __init__(self, prefix: str):
        self.prefix = Path(prefix)

    def paths_for(self, spec: RequestSpec) -> Tuple[Path, Path]:
        """(body path, headers path) for a request."""
        directory = self.prefix / host_dirname(spec.host)
        normalised = normalise_path(spec.parsed_url.path)
        if normalised:
            directory = directory / normalised
        digest = content_hash(spec)
        return directory / f"{digest}.body", directory / f"{digest}.headers"

    def save(self, spec: RequestSpec, record: ResponseRecord) -> Path:
        """Write body and transcript. Returns the body path."""
        body_path, headers_path = self.paths_for(spec)

        root = os.path.abspath(self.prefix)
        if os.path.commonpath([root, os.path.abspath(body_path.parent)]) != root:
            raise FilesystemError(f"refusing to write outside {self.prefix}: {body_path}")

        try:
            body_path.parent.mkdir(mode=DIR_MODE, parents=True, exist_ok=True)
        except OSError as e:
            raise FilesystemError(f"failed to create dir: {e}") from e

        try:
            _write_atomic(body_path, record.body)
            _write_atomic(headers_path, render_transcript(spec, record))
        except OSError as e:
            raise FilesystemError(f"failed to write file contents: {e}") from e

        return body_path

    async def asave(self, spec: RequestSpec, record: ResponseRecord) -> Path:
        return await asyncio.to_thread(self.save, spec, record)
