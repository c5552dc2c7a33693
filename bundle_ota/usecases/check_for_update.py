"""Use case orchestrating check → download → unpack → swap → record."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Callable, List, Optional, TYPE_CHECKING
from urllib.parse import urlparse

from bundle_ota.domain.errors import BundleOtaError, UpdateFailure
from bundle_ota.domain.ports import ArchivePort, HostInfoPort, ManifestPort, VersionStorePort
from bundle_ota.domain.selection import select_update
from bundle_ota.domain.update_models import PLATFORM_LABELS, Channel, UpdateEntry, UpdateOutcome
from bundle_ota.usecases.replace_bundle import BundleReplacer
from bundle_ota.utils.fs import find_bundle_source, remove_recursive

if TYPE_CHECKING:  # pragma: no cover - type checking helper
    from bundle_ota.domain.settings import UpdaterSettings

# Manifest, transport, archive and filesystem failures surfaced to CLI callers of ``install``.
FLOW_ERRORS = (RuntimeError, OSError, ValueError)


def _noop(*_: object, **__: object) -> None:
    """Default no-op callback used for hooks."""


@dataclass
class UpdateHooks:
    """Optional callbacks triggered while an update check runs."""

    on_update_found: Callable[[UpdateEntry], None] = _noop
    on_success: Callable[[], None] = _noop
    on_failure: Callable[[UpdateFailure], None] = _noop
    on_no_update: Callable[[], None] = _noop
    on_status: Callable[[str], None] = _noop
    on_progress: Callable[[int, Optional[int]], None] = _noop
    on_restart_needed: Callable[[], None] = _noop

    def __post_init__(self) -> None:
        self.on_update_found = self.on_update_found or _noop
        self.on_success = self.on_success or _noop
        self.on_failure = self.on_failure or _noop
        self.on_no_update = self.on_no_update or _noop
        self.on_status = self.on_status or _noop
        self.on_progress = self.on_progress or _noop
        self.on_restart_needed = self.on_restart_needed or _noop


@dataclass
class _Workspace:
    """Temporary archive file and unpack directory of one install."""

    archive_path: Path
    unpack_dir: Path


@dataclass
class _RunContext:
    hooks: UpdateHooks
    log: logging.Logger
    statuses: List[str] = field(default_factory=list)

    def status(self, token: str) -> None:
        self.statuses.append(token)
        self.log.debug("Update status: %s", token)
        self.call("on_status", token)

    def call(self, name: str, *args: object) -> None:
        """Invoke a hook; hook failures are logged and never alter the flow."""
        try:
            getattr(self.hooks, name)(*args)
        except Exception:
            self.log.exception("Update hook %s raised", name)

    def progress(self, received: int, total: Optional[int]) -> None:
        self.call("on_progress", received, total)


class CheckForUpdate:
    """Check the channel manifest and install the newest eligible bundle.

    Every run ends in exactly one of ``on_no_update``, ``on_success`` or
    ``on_failure``. The host is never restarted; ``on_restart_needed`` only
    signals that the new bundle takes effect on the next launch.
    """

    def __init__(
        self,
        manifest_port: ManifestPort,
        archive_port: ArchivePort,
        replacer: BundleReplacer,
        version_store: VersionStorePort,
        host_info: HostInfoPort,
        settings: "UpdaterSettings",
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.manifest_port = manifest_port
        self.archive_port = archive_port
        self.replacer = replacer
        self.version_store = version_store
        self.host_info = host_info
        self.settings = settings
        self.log = logger or logging.getLogger("bundle_ota.update")

    @property
    def channel(self) -> Channel:
        return Channel(
            project_key=self.settings.project_key,
            platform=self.host_info.platform,
            app_version=self.host_info.app_version,
            platform_family=self.settings.platform_family,
        )

    def __call__(
        self,
        hooks: Optional[UpdateHooks] = None,
        *,
        current_version: Optional[int] = None,
    ) -> UpdateOutcome:
        run = _RunContext(hooks or UpdateHooks(), self.log)
        run.status("checking")
        try:
            entries = self.manifest_port.fetch_manifest(self.channel)
            installed = self.version_store.load() if current_version is None else int(current_version)
        except Exception as exc:
            return self._fail(run, "update.check_failed", "Failed to check for updates", exc, stage="check")

        entry = select_update(entries, installed)
        if entry is None:
            self.log.info("No update above version %s (%d manifest entries)", installed, len(entries))
            run.status("no-update")
            run.call("on_no_update")
            return UpdateOutcome("no-update", statuses=tuple(run.statuses))

        self.log.info("Installing update version %s from %s", entry.version, entry.download)
        run.status("update-found")
        run.call("on_update_found", entry)

        workspace = self._new_workspace(entry.download)
        stage = "download"
        try:
            run.status("downloading")
            self.archive_port.download(entry.download, workspace.archive_path, run.progress)
            run.status("downloaded")

            stage = "unpack"
            run.status("unpacking")
            unpacked = self.archive_port.extract(workspace.archive_path, workspace.unpack_dir)
            run.status("unpacked")
            source = find_bundle_source(unpacked)
            self.log.debug("Bundle source: %s", source)

            stage = "replace"
            run.status("replacing")
            self.replacer.replace(source)
            run.status("replaced")
        except Exception as exc:
            self._cleanup(workspace)
            return self._fail(
                run,
                "update.install_failed",
                "Failed to install update",
                exc,
                stage=stage,
                entry=entry,
            )

        run.status("saving")
        if not self.version_store.save(entry.version):
            self.log.warning("Bundle updated to %s but the version record was not written", entry.version)

        run.status("cleaning")
        self._cleanup(workspace)

        self.log.info("Update %s installed; restart required", entry.version)
        run.status("success")
        run.call("on_success")
        run.status("restart-needed")
        run.call("on_restart_needed")
        return UpdateOutcome("updated", entry=entry, statuses=tuple(run.statuses))

    def install(self, url: str, progress: Optional[Callable[[int, Optional[int]], None]] = None) -> Path:
        """Download, unpack and swap in the archive at ``url``.

        No manifest lookup and no version bookkeeping happen here. Errors
        propagate; temporary files are removed either way.
        """
        workspace = self._new_workspace(url)
        try:
            self.archive_port.download(url, workspace.archive_path, progress)
            unpacked = self.archive_port.extract(workspace.archive_path, workspace.unpack_dir)
            self.replacer.replace(find_bundle_source(unpacked))
        finally:
            self._cleanup(workspace)
        return self.replacer.bundle_path

    def version_info(self) -> str:
        """Return e.g. ``"Windows 1.0.0 (5)"``; the OTA suffix is omitted at version 0."""
        label = PLATFORM_LABELS.get(self.host_info.platform, self.host_info.platform)
        text = f"{label} {self.host_info.app_version}"
        ota_version = self.version_store.load()
        if ota_version > 0:
            text += f" ({ota_version})"
        return text

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _fail(
        self,
        run: _RunContext,
        code: str,
        prefix: str,
        exc: BaseException,
        *,
        stage: str,
        entry: Optional[UpdateEntry] = None,
    ) -> UpdateOutcome:
        hint = exc.hint if isinstance(exc, BundleOtaError) else ""
        failure = UpdateFailure(code, f"{prefix}: {exc}", hint, stage=stage)
        failure.__cause__ = exc
        self.log.error("%s (stage=%s)", failure.message, stage)
        run.status("error")
        run.call("on_failure", failure)
        return UpdateOutcome("failed", entry=entry, error=failure, statuses=tuple(run.statuses))

    def _new_workspace(self, download_url: str) -> _Workspace:
        temp_root = Path(self.settings.temporary_directory)
        unique = uuid.uuid4().hex
        extension = PurePosixPath(urlparse(download_url).path).suffix or ".zip"
        return _Workspace(
            archive_path=temp_root / f"bundle-{unique}{extension}",
            unpack_dir=temp_root / f"bundle-{unique}",
        )

    def _cleanup(self, workspace: _Workspace) -> None:
        for path in (workspace.archive_path, workspace.unpack_dir):
            try:
                remove_recursive(path)
            except OSError as exc:
                self.log.warning("Could not remove temporary path %s: %s", path, exc)


__all__ = ["CheckForUpdate", "FLOW_ERRORS", "UpdateHooks"]
