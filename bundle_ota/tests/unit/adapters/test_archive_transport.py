from __future__ import annotations

import struct
import zipfile
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

import pytest

from bundle_ota.adapters.api_errors import ApiClientError
from bundle_ota.adapters.archive_transport import ArchiveTransport, create_archive
from bundle_ota.adapters.http_client import HttpConfig
from bundle_ota.domain.errors import ArchiveError


class _FakeStreamResponse:
    def __init__(
        self,
        chunks: Iterable[bytes],
        *,
        status_code: int = 200,
        headers: Optional[Dict[str, str]] = None,
        fail_after: Optional[int] = None,
    ) -> None:
        self._chunks = list(chunks)
        self.status_code = status_code
        self.headers = headers or {}
        self.text = ""
        self.closed = False
        self._fail_after = fail_after

    def json(self) -> Any:
        raise ValueError("binary body")

    def iter_content(self, chunk_size: int):
        for index, chunk in enumerate(self._chunks):
            if self._fail_after is not None and index >= self._fail_after:
                raise OSError("connection reset")
            yield chunk

    def close(self) -> None:
        self.closed = True


class _FakeSession:
    def __init__(self, response: _FakeStreamResponse) -> None:
        self.response = response
        self.cfg = HttpConfig(download_timeout_s=42)
        self.calls: List[Dict[str, Any]] = []

    def get(self, url: str, **kwargs: Any) -> _FakeStreamResponse:
        self.calls.append({"url": url, **kwargs})
        return self.response


def _transport(response: _FakeStreamResponse) -> Tuple[ArchiveTransport, _FakeSession]:
    session = _FakeSession(response)
    return ArchiveTransport(session=session), session  # type: ignore[arg-type]


def test_download_streams_to_file_and_reports_progress(tmp_path: Path) -> None:
    response = _FakeStreamResponse([b"abc", b"", b"def"], headers={"Content-Length": "6"})
    transport, session = _transport(response)
    progress: List[Tuple[int, Optional[int]]] = []

    target = transport.download("https://cdn/v3.zip", tmp_path / "dl" / "bundle.zip", lambda r, t: progress.append((r, t)))

    assert target.read_bytes() == b"abcdef"
    assert progress == [(3, 6), (6, 6)]
    assert session.calls[0]["stream"] is True
    assert session.calls[0]["timeout"] == 42
    assert response.closed


def test_download_without_content_length_reports_unknown_total(tmp_path: Path) -> None:
    transport, _ = _transport(_FakeStreamResponse([b"zip"]))
    progress: List[Tuple[int, Optional[int]]] = []

    transport.download("https://cdn/v3.zip", tmp_path / "bundle.zip", lambda r, t: progress.append((r, t)))

    assert progress == [(3, None)]


def test_download_http_error_leaves_no_file(tmp_path: Path) -> None:
    transport, _ = _transport(_FakeStreamResponse([], status_code=404))
    target = tmp_path / "bundle.zip"

    with pytest.raises(ApiClientError):
        transport.download("https://cdn/missing.zip", target)

    assert not target.exists()


def test_download_interrupted_removes_partial_file(tmp_path: Path) -> None:
    transport, _ = _transport(_FakeStreamResponse([b"abc", b"def"], fail_after=1))
    target = tmp_path / "bundle.zip"

    with pytest.raises(OSError):
        transport.download("https://cdn/v3.zip", target)

    assert not target.exists()


def test_create_then_extract_preserves_nested_tree(tmp_path: Path) -> None:
    source = tmp_path / "src"
    (source / "assets" / "img").mkdir(parents=True)
    (source / "index.html").write_text("<html/>", encoding="utf-8")
    (source / "assets" / "img" / "logo.svg").write_text("<svg/>", encoding="utf-8")
    archive = create_archive(source, tmp_path / "out" / "bundle.zip")
    transport, _ = _transport(_FakeStreamResponse([]))

    unpacked = transport.extract(archive, tmp_path / "unpacked")

    assert (unpacked / "index.html").read_text(encoding="utf-8") == "<html/>"
    assert (unpacked / "assets" / "img" / "logo.svg").read_text(encoding="utf-8") == "<svg/>"


def test_extract_supports_directory_entries_and_recreates_destination(tmp_path: Path) -> None:
    archive = tmp_path / "bundle.zip"
    with zipfile.ZipFile(archive, "w") as zf:
        zf.writestr("app/", "")
        zf.writestr("app/empty/", "")
        zf.writestr("app/main.js", "console.log(1)")
    destination = tmp_path / "unpacked"
    destination.mkdir()
    (destination / "stale.txt").write_text("old", encoding="utf-8")
    transport, _ = _transport(_FakeStreamResponse([]))

    transport.extract(archive, destination)

    assert (destination / "app" / "empty").is_dir()
    assert (destination / "app" / "main.js").read_text(encoding="utf-8") == "console.log(1)"
    assert not (destination / "stale.txt").exists()


def test_extract_rejects_path_traversal(tmp_path: Path) -> None:
    archive = tmp_path / "evil.zip"
    with zipfile.ZipFile(archive, "w") as zf:
        zf.writestr("../escape.txt", "nope")
    transport, _ = _transport(_FakeStreamResponse([]))

    with pytest.raises(ArchiveError) as excinfo:
        transport.extract(archive, tmp_path / "unpacked")

    assert excinfo.value.code == "archive.unsafe_entry"
    assert not (tmp_path / "escape.txt").exists()


def test_extract_rejects_corrupt_archive(tmp_path: Path) -> None:
    archive = tmp_path / "broken.zip"
    archive.write_bytes(b"this is not a zip file")
    transport, _ = _transport(_FakeStreamResponse([]))

    with pytest.raises(ArchiveError) as excinfo:
        transport.extract(archive, tmp_path / "unpacked")

    assert excinfo.value.code == "archive.invalid_zip"


def _write_corrupt_deflated_zip(path: Path) -> Path:
    with zipfile.ZipFile(path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr("dist/index.html", "<html>" * 500)
    raw = bytearray(path.read_bytes())
    name_len, extra_len = struct.unpack("<HH", raw[26:30])
    # first deflate block header: final block, reserved type 0b11
    raw[30 + name_len + extra_len] = 0xFF
    path.write_bytes(bytes(raw))
    return path


def test_extract_maps_corrupt_deflate_stream_to_archive_error(tmp_path: Path) -> None:
    archive = _write_corrupt_deflated_zip(tmp_path / "corrupt.zip")
    transport, _ = _transport(_FakeStreamResponse([]))

    with pytest.raises(ArchiveError) as excinfo:
        transport.extract(archive, tmp_path / "unpacked")

    assert excinfo.value.code == "archive.extract_failed"
    assert "invalid block type" in excinfo.value.hint


def test_create_archive_requires_source_directory(tmp_path: Path) -> None:
    with pytest.raises(ArchiveError) as excinfo:
        create_archive(tmp_path / "missing", tmp_path / "out.zip")

    assert excinfo.value.code == "archive.source_missing"
