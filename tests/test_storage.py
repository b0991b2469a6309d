import asyncio
import stat

import httpx
import pytest

from fff.errors import FilesystemError
from fff.fetcher import ResponseRecord
from fff.request import build_request
from fff.storage import ArtifactStore, content_hash, host_dirname, normalise_path, render_transcript


def response(body=b"body", status=200):
    return ResponseRecord(
        status_code=status,
        body=body,
        headers={"Content-Type": ["text/plain"], "Set-Cookie": ["a=1", "b=2"]},
        http_version="HTTP/1.1",
        reason_phrase="OK",
    )


@pytest.mark.parametrize("path, expected", [
    ("/", ""),
    ("", ""),
    ("/a/b.txt", "a/b.txt"),
    ("/a b/c?d", "a-b/c-d"),
    ("/weird$$$chars!/x", "weird-chars-/x"),
    ("/../../etc/passwd", "etc/passwd"),
    ("/a/./b/../c", "a/c"),
    ("//double//slash/", "double/slash"),
])
def test_normalise_path(path, expected):
    assert normalise_path(path) == expected


def test_content_hash_is_deterministic():
    a = build_request("http://example.test/x", method="PUT", body=b"b", headers=(("A", "1"),))
    b = build_request("http://example.test/x", method="PUT", body=b"b", headers=(("A", "1"),))
    assert content_hash(a) == content_hash(b)
    assert len(content_hash(a)) == 40


@pytest.mark.parametrize("other", [
    dict(method="POST", body=b"b", headers=(("A", "1"),)),
    dict(method="PUT", body=b"c", headers=(("A", "1"),)),
    dict(method="PUT", body=b"b", headers=(("A", "2"),)),
])
def test_content_hash_depends_on_request_identity(other):
    base = build_request("http://example.test/x", method="PUT", body=b"b", headers=(("A", "1"),))
    assert content_hash(base) != content_hash(build_request("http://example.test/x", **other))


def test_paths_for_layout(tmp_path):
    store = ArtifactStore(str(tmp_path))
    spec = build_request("https://example.test:8443/some path/file.js?x=1")
    body_path, headers_path = store.paths_for(spec)
    digest = content_hash(spec)
    assert body_path == tmp_path / "example.test" / "some-path" / "file.js" / f"{digest}.body"
    assert headers_path == body_path.with_suffix(".headers")


def test_render_transcript_without_body():
    spec = build_request("http://example.test/a", headers=(("X-A", "1"), ("X-B", "two")))
    out = render_transcript(spec, response())
    assert out == (
        b"GET http://example.test/a\n\n"
        b"> X-A: 1\n"
        b"> X-B: two\n"
        b"\n"
        b"< HTTP/1.1 200 OK\n"
        b"< Content-Type: text/plain\n"
        b"< Set-Cookie: a=1\n"
        b"< Set-Cookie: b=2\n"
    )


def test_render_transcript_with_body():
    spec = build_request("http://example.test/a", body=b"q=1")
    out = render_transcript(spec, response())
    assert out.startswith(b"POST http://example.test/a\n\n\nq=1\n\n< HTTP/1.1 200 OK\n")


def test_save_writes_body_and_transcript(tmp_path):
    store = ArtifactStore(str(tmp_path / "out"))
    spec = build_request("http://example.test/dir/")
    body_path = store.save(spec, response(body=b"\x00binary\xff"))

    assert body_path.read_bytes() == b"\x00binary\xff"
    headers_path = body_path.with_suffix(".headers")
    assert headers_path.read_bytes() == render_transcript(spec, response(body=b"\x00binary\xff"))
    assert stat.S_IMODE(body_path.stat().st_mode) == 0o644
    assert not [p for p in body_path.parent.iterdir() if p.name.endswith(".tmp")]


def test_save_tolerates_existing_directories(tmp_path):
    store = ArtifactStore(str(tmp_path))
    spec = build_request("http://example.test/dir/")
    first = store.save(spec, response(body=b"one"))
    second = store.save(spec, response(body=b"two"))
    assert first == second
    assert second.read_bytes() == b"two"


@pytest.mark.asyncio
async def test_concurrent_identical_saves_leave_complete_file(tmp_path):
    store = ArtifactStore(str(tmp_path))
    spec = build_request("http://example.test/same")
    body = b"x" * 200_000
    paths = await asyncio.gather(*(store.asave(spec, response(body=body)) for _ in range(8)))
    assert len(set(paths)) == 1
    assert paths[0].read_bytes() == body


def test_directory_creation_failure_raises_filesystem_error(tmp_path):
    blocker = tmp_path / "out"
    blocker.write_text("not a directory")
    store = ArtifactStore(str(blocker))
    with pytest.raises(FilesystemError, match="failed to create dir"):
        store.save(build_request("http://example.test/"), response())


@pytest.mark.parametrize("host, expected", [
    ("example.test", "example.test"),
    ("..", "--"),
    (".", "-"),
    ("", "-"),
    ("a/b", "a-b"),
    ("::1", "-1"),
])
def test_host_dirname(host, expected):
    assert host_dirname(host) == expected


def test_dot_dot_host_stays_under_prefix(tmp_path):
    prefix = tmp_path / "out"
    store = ArtifactStore(str(prefix))
    spec = build_request("http://../x")
    body_path = store.save(spec, response())

    assert body_path.parent == prefix / "--" / "x"
    assert body_path.read_bytes() == b"body"
    assert [p for p in tmp_path.rglob("*.body")] == [body_path]


def test_save_refuses_paths_outside_prefix(tmp_path, monkeypatch):
    store = ArtifactStore(str(tmp_path / "out"))
    escaped = tmp_path / "elsewhere" / "x.body"
    monkeypatch.setattr(store, "paths_for", lambda spec: (escaped, escaped.with_suffix(".headers")))
    with pytest.raises(FilesystemError, match="outside"):
        store.save(build_request("http://example.test/"), response())
    assert not escaped.parent.exists()


def test_transcript_keeps_non_ascii_header_bytes():
    raw = httpx.Response(200, headers=[(b"X-Name", b"caf\xe9")])
    record = ResponseRecord.from_httpx(raw, b"")
    out = render_transcript(build_request("http://example.test/"), record)
    assert b"< X-Name: caf\xe9\n" in out
