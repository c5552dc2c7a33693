from __future__ import annotations
from pathlib import Path
from typing import Callable, List, Optional, Protocol

from bundle_ota.domain.update_models import Channel, UpdateEntry

ProgressCallback = Callable[[int, Optional[int]], None]


# ---- Error model ----
class UseCaseError(Exception):
    """Base class for use case level errors (user-presentable)."""

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


# ---- Ports (Hexagonal boundaries) ----
class ManifestPort(Protocol):
    """Fetch the published update entries of one channel.
    A missing manifest is reported as an empty list, not an error.
    """

    def fetch_manifest(self, channel: Channel) -> List[UpdateEntry]: ...


class ArchivePort(Protocol):
    """Download and unpack bundle archives."""

    def download(
        self, url: str, destination: Path, progress: Optional[ProgressCallback] = None
    ) -> Path: ...
    def extract(self, archive_path: Path, destination: Path) -> Path: ...


class VersionStorePort(Protocol):
    """Persistence for the installed OTA version (0 when never updated)."""

    def load(self) -> int: ...
    def save(self, version: int) -> bool: ...  # False when the record could not be written


class HostInfoPort(Protocol):
    """Read-only facts about the host runtime."""

    @property
    def platform(self) -> str: ...
    @property
    def app_version(self) -> str: ...
