"""Archive download and ZIP pack/unpack for bundle updates.

Dependencies:
    - ``requests`` (through ``FeedSession``) for streaming downloads.
    - ``zipfile`` for archive encode/decode.

Call context:
    - ``bundle_ota.usecases.check_for_update`` downloads and extracts the
      selected archive through this adapter.
    - ``create_archive`` produces bundle archives for publishing and tests.
"""

from __future__ import annotations

import logging
import shutil
import zipfile
import zlib
from pathlib import Path, PurePosixPath
from typing import Optional

from bundle_ota.adapters.api_errors import raise_for_status
from bundle_ota.adapters.http_client import FeedSession, HttpConfig
from bundle_ota.domain.errors import ArchiveError
from bundle_ota.domain.ports import ArchivePort, ProgressCallback
from bundle_ota.utils.fs import remove_recursive

DEFAULT_CHUNK_SIZE = 128 * 1024


class ArchiveTransport(ArchivePort):
    """Fetch archives over HTTP and unpack them into local directories."""

    def __init__(
        self,
        *,
        session: Optional[FeedSession] = None,
        cfg: Optional[HttpConfig] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.session = session or FeedSession(cfg)
        self.chunk_size = int(chunk_size)
        self.log = logger or logging.getLogger("bundle_ota.archive")

    def download(
        self,
        url: str,
        destination: Path,
        progress: Optional[ProgressCallback] = None,
    ) -> Path:
        """Stream ``url`` into ``destination``.

        ``progress(received, total)`` is called after every chunk; ``total``
        is ``None`` when the server sends no ``Content-Length``. A partial
        file is removed before the error propagates.
        """
        target = Path(destination)
        target.parent.mkdir(parents=True, exist_ok=True)
        self.log.info("Downloading %s -> %s", url, target)
        resp = self.session.get(
            url,
            accept="application/octet-stream",
            timeout=self.session.cfg.download_timeout_s,
            stream=True,
        )
        try:
            raise_for_status(resp, "download_archive")
            total = self._content_length(resp)
            received = 0
            with target.open("wb") as handle:
                for chunk in resp.iter_content(self.chunk_size):
                    if not chunk:
                        continue
                    handle.write(chunk)
                    received += len(chunk)
                    if progress:
                        progress(received, total)
        except BaseException:
            if target.exists():
                try:
                    remove_recursive(target)
                except OSError as cleanup_exc:
                    self.log.warning("Could not remove partial download %s: %s", target, cleanup_exc)
            raise
        finally:
            resp.close()
        self.log.info("Downloaded %d bytes from %s", received, url)
        return target

    def extract(self, archive_path: Path, destination: Path) -> Path:
        """Extract a ZIP archive into ``destination`` (recreated if present).

        Entries with absolute paths, ``..`` segments or symlink modes are
        rejected so an archive cannot write outside ``destination``.
        """
        destination = Path(destination)
        if destination.exists():
            remove_recursive(destination)
        destination.mkdir(parents=True, exist_ok=True)
        destination_root = destination.resolve()

        extracted = 0
        try:
            with zipfile.ZipFile(archive_path, "r") as archive:
                for entry in archive.infolist():
                    name = entry.filename.replace("\\", "/")
                    if not name:
                        continue
                    pure = PurePosixPath(name)
                    if pure.is_absolute() or any(part == ".." for part in pure.parts):
                        raise ArchiveError("archive.unsafe_entry", "Unsafe ZIP entry path detected", name)
                    mode = (entry.external_attr >> 16) & 0o170000
                    if mode == 0o120000:
                        raise ArchiveError("archive.unsafe_entry", "ZIP archive contains symlink entry", name)
                    resolved_target = (destination / pure.as_posix()).resolve()
                    if destination_root not in (resolved_target, *resolved_target.parents):
                        raise ArchiveError("archive.unsafe_entry", "ZIP entry escaped extraction directory", name)
                    if entry.is_dir():
                        resolved_target.mkdir(parents=True, exist_ok=True)
                        continue
                    resolved_target.parent.mkdir(parents=True, exist_ok=True)
                    with archive.open(entry, "r") as source, resolved_target.open("wb") as handle:
                        shutil.copyfileobj(source, handle)
                    extracted += 1
                    if extracted % 100 == 0:
                        self.log.debug("Extracted %d files...", extracted)
        except ArchiveError:
            raise
        except zipfile.BadZipFile as exc:
            raise ArchiveError(
                "archive.invalid_zip",
                "Invalid bundle archive",
                f"Could not open ZIP archive {archive_path}: {exc}",
            ) from exc
        except (OSError, EOFError, zlib.error, zipfile.LargeZipFile, RuntimeError) as exc:
            raise ArchiveError(
                "archive.extract_failed",
                "Failed to extract bundle archive",
                str(exc),
            ) from exc
        self.log.info("Unpacked %d files into %s", extracted, destination)
        return destination

    @staticmethod
    def _content_length(resp) -> Optional[int]:
        raw = resp.headers.get("Content-Length") if getattr(resp, "headers", None) else None
        try:
            total = int(raw) if raw is not None else None
        except (TypeError, ValueError):
            return None
        return total if total and total > 0 else None


def create_archive(source_dir: Path, output_path: Path) -> Path:
    """Pack every file below ``source_dir`` into a deflated ZIP at ``output_path``."""
    source = Path(source_dir)
    if not source.is_dir():
        raise ArchiveError("archive.source_missing", "Archive source directory missing", str(source))
    output = Path(output_path)
    output.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(output, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for item in sorted(source.rglob("*")):
            if item.is_file():
                archive.write(item, arcname=item.relative_to(source).as_posix())
    return output


__all__ = ["ArchiveTransport", "create_archive"]
