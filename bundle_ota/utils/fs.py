"""Filesystem helpers that tolerate files locked by a running host process.

Hot-swapping a bundle races against the host application, antivirus
scanners and indexers holding handles on files inside the tree. Deletes are
therefore retried with a linearly growing delay when the failure looks like a
transient lock, while every other error surfaces on the first attempt.

Call context:
    - ``bundle_ota.usecases.replace_bundle`` for clear/install/rollback.
    - ``bundle_ota.usecases.check_for_update`` and
      ``bundle_ota.adapters.archive_transport`` for temp-file cleanup.
"""

from __future__ import annotations

import errno
import logging
import os
import shutil
import time
from pathlib import Path
from typing import Callable, Union

PathLike = Union[str, "os.PathLike[str]"]

_log = logging.getLogger("bundle_ota.fs")

TRANSIENT_ERRNOS = frozenset({errno.EBUSY, errno.EPERM, errno.EACCES, errno.ENOTEMPTY})
# ERROR_ACCESS_DENIED, ERROR_SHARING_VIOLATION, ERROR_LOCK_VIOLATION, ERROR_DIR_NOT_EMPTY
TRANSIENT_WINERRORS = frozenset({5, 32, 33, 145})
_LOCK_MESSAGE_MARKERS = ("locked", "in use")
_IGNORED_ARCHIVE_ENTRIES = ("__MACOSX",)


def is_transient_lock_error(exc: BaseException) -> bool:
    """Return whether ``exc`` looks like a lock that may clear on retry."""
    if not isinstance(exc, OSError):
        return False
    if getattr(exc, "winerror", None) in TRANSIENT_WINERRORS:
        return True
    if exc.errno in TRANSIENT_ERRNOS:
        return True
    text = str(exc).lower()
    return any(marker in text for marker in _LOCK_MESSAGE_MARKERS)


def _remove_once(target: Path) -> None:
    if target.is_dir() and not target.is_symlink():
        shutil.rmtree(target)
    else:
        target.unlink()


def remove_recursive(
    path: PathLike,
    max_retries: int = 3,
    retry_delay_ms: int = 100,
    *,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """Delete a file or directory tree, retrying transient lock errors.

    Args:
        path: File, symlink or directory to delete.
        max_retries: Total number of attempts before giving up.
        retry_delay_ms: Base delay; attempt ``n`` waits ``retry_delay_ms * n``.
        sleep: Sleep function, replaceable in tests.

    Raises:
        OSError: The last lock error once attempts are exhausted, or any
            non-transient error immediately.
    """
    target = Path(path)
    attempts = max(1, int(max_retries))
    for attempt in range(1, attempts + 1):
        try:
            _remove_once(target)
            return
        except FileNotFoundError:
            return
        except OSError as exc:
            if not is_transient_lock_error(exc) or attempt >= attempts:
                raise
            delay_ms = retry_delay_ms * attempt
            _log.debug(
                "Remove of %s hit a lock (%s); retry %d/%d in %d ms",
                target,
                exc,
                attempt,
                attempts - 1,
                delay_ms,
            )
            sleep(delay_ms / 1000.0)


def copy_recursive(source: PathLike, destination: PathLike) -> None:
    """Mirror ``source`` into ``destination`` without deleting extra files.

    The destination (and its parents) is created when absent; existing files
    with the same relative path are overwritten.
    """
    source_dir = Path(source)
    target_dir = Path(destination)
    if not source_dir.is_dir():
        raise FileNotFoundError(errno.ENOENT, "Copy source directory does not exist", str(source_dir))
    target_dir.mkdir(parents=True, exist_ok=True)
    for item in source_dir.iterdir():
        target = target_dir / item.name
        if item.is_dir():
            copy_recursive(item, target)
        else:
            shutil.copy2(item, target)


def clear_directory_contents(path: PathLike) -> None:
    """Remove every entry inside ``path`` but keep the directory itself."""
    directory = Path(path)
    if not directory.is_dir():
        return
    for entry in list(directory.iterdir()):
        remove_recursive(entry)


def find_bundle_source(unpacked_dir: PathLike) -> Path:
    """Return the directory holding the bundle inside an unpacked archive.

    Archives that wrap everything in one top-level folder are unwrapped;
    ``__MACOSX`` resource-fork folders are ignored.
    """
    root = Path(unpacked_dir)
    entries = [path for path in root.iterdir() if path.name not in _IGNORED_ARCHIVE_ENTRIES]
    if len(entries) == 1 and entries[0].is_dir():
        return entries[0]
    return root


__all__ = [
    "clear_directory_contents",
    "copy_recursive",
    "find_bundle_source",
    "is_transient_lock_error",
    "remove_recursive",
]
