"""Swap a bundle directory for new content with backup and rollback.

The swap is copy-based rather than rename-based: on platforms where the host
keeps the bundle directory itself open (``package.nw`` on Windows) only the
directory *contents* are cleared and rewritten. Every destructive step runs
after a full backup copy has been taken, so a failure mid-swap can restore
the previous tree.
"""

from __future__ import annotations

import enum
import logging
import time
from pathlib import Path
from typing import List, Optional, Sequence

from bundle_ota.domain.errors import BundleReplaceError
from bundle_ota.domain.host_info import detect_platform
from bundle_ota.utils.fs import (
    clear_directory_contents,
    copy_recursive,
    remove_recursive,
)

_BACKUP_MARKER = ".backup."


class ReplaceState(str, enum.Enum):
    IDLE = "idle"
    BACKING_UP = "backing_up"
    CLEARING = "clearing"
    INSTALLING = "installing"
    DONE = "done"
    ROLLING_BACK = "rolling_back"
    FAILED = "failed"


class BundleReplacer:
    """Replace the bundle at ``bundle_path`` with the contents of another directory.

    Args:
        bundle_path: Directory holding the live bundle.
        backup: Take a full copy before touching the bundle.
        platform: Platform tag; detected from the interpreter when omitted.
        preserved_dir_names: Bundle directory names that must never be
            removed themselves on ``locking_platforms``.
        locking_platforms: Platforms whose host keeps the bundle directory open.
        keep_backups: When set, prune all but the newest ``keep_backups``
            snapshots after a successful swap. ``None`` keeps everything.
    """

    def __init__(
        self,
        bundle_path: Path,
        *,
        backup: bool = True,
        platform: Optional[str] = None,
        preserved_dir_names: Sequence[str] = ("package.nw",),
        locking_platforms: Sequence[str] = ("win",),
        keep_backups: Optional[int] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.bundle_path = Path(bundle_path).absolute()
        self.backup = bool(backup)
        self.platform = platform or detect_platform()
        self.preserved_dir_names = tuple(preserved_dir_names)
        self.locking_platforms = tuple(locking_platforms)
        self.keep_backups = keep_backups
        self.state = ReplaceState.IDLE
        self.log = logger or logging.getLogger("bundle_ota.replace")

    # ------------------------------------------------------------------
    # Backups
    # ------------------------------------------------------------------
    def create_backup(self) -> Optional[Path]:
        """Copy the bundle to a fresh sibling snapshot; ``None`` if there is no bundle."""
        if not self.bundle_path.exists():
            return None
        backup_path = self._next_backup_path()
        self.log.info("Backing up %s -> %s", self.bundle_path, backup_path)
        try:
            copy_recursive(self.bundle_path, backup_path)
        except Exception:
            self._discard_partial_backup(backup_path)
            raise
        return backup_path

    def restore(self, backup_path: Path) -> None:
        """Put the snapshot at ``backup_path`` back in place of the bundle."""
        backup_dir = Path(backup_path)
        if not backup_dir.is_dir():
            raise FileNotFoundError(f"Backup directory does not exist: {backup_dir}")
        self.log.info("Restoring %s from %s", self.bundle_path, backup_dir)
        self._clear_bundle()
        self.bundle_path.mkdir(parents=True, exist_ok=True)
        copy_recursive(backup_dir, self.bundle_path)

    def list_backups(self) -> List[Path]:
        """Return the bundle's snapshots, oldest first."""
        parent = self.bundle_path.parent
        if not parent.is_dir():
            return []
        prefix = f"{self.bundle_path.name}{_BACKUP_MARKER}"
        found = [
            path
            for path in parent.iterdir()
            if path.name.startswith(prefix) and path.is_dir() and self._backup_sort_key(path, prefix) is not None
        ]
        return sorted(found, key=lambda path: self._backup_sort_key(path, prefix))

    def prune_backups(self, keep: int) -> List[Path]:
        """Delete all but the newest ``keep`` snapshots; return what was removed."""
        keep = max(0, int(keep))
        backups = self.list_backups()
        doomed = backups[: len(backups) - keep] if keep else backups
        for path in doomed:
            self.log.info("Pruning old backup %s", path)
            remove_recursive(path)
        return doomed

    # ------------------------------------------------------------------
    # Swap
    # ------------------------------------------------------------------
    def replace(self, new_content_path: Path) -> None:
        """Install ``new_content_path`` as the bundle.

        Raises:
            BundleReplaceError: ``bundle.backup_failed`` when the snapshot
                could not be taken (bundle untouched) or
                ``bundle.replace_failed`` when clearing/copying failed. The
                error records whether a rollback was attempted and whether
                it restored the previous bundle.
        """
        source = Path(new_content_path)
        self.state = ReplaceState.IDLE
        backup_path: Optional[Path] = None

        if self.backup and self.bundle_path.exists():
            self.state = ReplaceState.BACKING_UP
            try:
                backup_path = self.create_backup()
            except Exception as exc:
                self.state = ReplaceState.FAILED
                raise BundleReplaceError(
                    "bundle.backup_failed",
                    f"Failed to back up bundle before replacing: {exc}",
                    str(self.bundle_path),
                    original=exc,
                ) from exc

        try:
            self.state = ReplaceState.CLEARING
            self._clear_bundle()
            self.state = ReplaceState.INSTALLING
            self.bundle_path.mkdir(parents=True, exist_ok=True)
            copy_recursive(source, self.bundle_path)
        except Exception as exc:
            self.log.error("Bundle replacement failed in state %s: %s", self.state.value, exc)
            if backup_path is None:
                self.state = ReplaceState.FAILED
                raise BundleReplaceError(
                    "bundle.replace_failed",
                    f"Failed to replace bundle: {exc}",
                    original=exc,
                ) from exc
            raise self._rollback(backup_path, exc) from exc

        self.state = ReplaceState.DONE
        self.log.info("Bundle replaced at %s", self.bundle_path)
        if self.keep_backups is not None:
            try:
                self.prune_backups(self.keep_backups)
            except OSError as exc:
                self.log.warning("Could not prune old backups of %s: %s", self.bundle_path, exc)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _rollback(self, backup_path: Path, original: Exception) -> BundleReplaceError:
        self.state = ReplaceState.ROLLING_BACK
        try:
            self.restore(backup_path)
        except Exception as rollback_exc:
            self.state = ReplaceState.FAILED
            self.log.error("Rollback from %s failed: %s", backup_path, rollback_exc)
            return BundleReplaceError(
                "bundle.replace_failed",
                f"Failed to replace bundle. Rollback failed: {rollback_exc}. Original error: {original}",
                f"Backup left at {backup_path}",
                original=original,
                rollback_attempted=True,
                rollback_succeeded=False,
                backup_path=backup_path,
            )

        try:
            remove_recursive(backup_path)
        except OSError as cleanup_exc:
            self.log.warning("Restored bundle but could not delete backup %s: %s", backup_path, cleanup_exc)
        self.state = ReplaceState.FAILED
        return BundleReplaceError(
            "bundle.replace_failed",
            f"Failed to replace bundle. Backup restored. Original error: {original}",
            original=original,
            rollback_attempted=True,
            rollback_succeeded=True,
            backup_path=backup_path,
        )

    def _discard_partial_backup(self, backup_path: Path) -> None:
        try:
            remove_recursive(backup_path)
        except OSError as exc:
            self.log.warning("Could not remove partial backup %s: %s", backup_path, exc)

    def _keeps_directory(self) -> bool:
        return self.bundle_path.name in self.preserved_dir_names and self.platform in self.locking_platforms

    def _clear_bundle(self) -> None:
        if self._keeps_directory() and self.bundle_path.is_dir():
            clear_directory_contents(self.bundle_path)
            return
        remove_recursive(self.bundle_path)
        self.bundle_path.parent.mkdir(parents=True, exist_ok=True)

    def _next_backup_path(self) -> Path:
        stamp = int(time.time() * 1000)
        candidate = self.bundle_path.with_name(f"{self.bundle_path.name}{_BACKUP_MARKER}{stamp}")
        counter = 1
        while candidate.exists():
            candidate = self.bundle_path.with_name(f"{self.bundle_path.name}{_BACKUP_MARKER}{stamp}-{counter}")
            counter += 1
        return candidate

    @staticmethod
    def _backup_sort_key(path: Path, prefix: str):
        stamp, _, counter = path.name[len(prefix):].partition("-")
        if not stamp.isdecimal() or (counter and not counter.isdecimal()):
            return None
        return int(stamp), int(counter or 0)


__all__ = ["BundleReplacer", "ReplaceState"]
