"""Typed domain objects for bundle update workflows."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Literal, Optional, Tuple


Platform = Literal["win", "mac", "linux32", "linux64"]
PLATFORMS: Tuple[str, ...] = ("win", "mac", "linux32", "linux64")
PLATFORM_LABELS: Dict[str, str] = {
    "win": "Windows",
    "mac": "macOS",
    "linux32": "Linux (32-bit)",
    "linux64": "Linux (64-bit)",
}
DEFAULT_PLATFORM_FAMILY = "nwjs"

StatusToken = Literal[
    "checking",
    "update-found",
    "no-update",
    "downloading",
    "downloaded",
    "unpacking",
    "unpacked",
    "replacing",
    "replaced",
    "saving",
    "cleaning",
    "success",
    "restart-needed",
    "error",
]
HAPPY_PATH_STATUSES: Tuple[str, ...] = (
    "checking",
    "update-found",
    "downloading",
    "downloaded",
    "unpacking",
    "unpacked",
    "replacing",
    "replaced",
    "saving",
    "cleaning",
    "success",
    "restart-needed",
)

UpdateResult = Literal["updated", "no-update", "failed"]


@dataclass(frozen=True)
class UpdateEntry:
    """One published bundle version listed in a channel manifest."""

    version: int
    enable: bool
    download: str

    def to_dict(self) -> Dict[str, Any]:
        """Return the manifest wire shape."""
        return {"version": self.version, "enable": self.enable, "download": self.download}


@dataclass(frozen=True)
class Channel:
    """Project/platform/app-version tuple that addresses exactly one manifest."""

    project_key: str
    platform: Platform
    app_version: str
    platform_family: str = DEFAULT_PLATFORM_FAMILY

    def __post_init__(self) -> None:
        if self.platform not in PLATFORMS:
            raise ValueError(f"Unknown platform tag '{self.platform}'; expected one of {', '.join(PLATFORMS)}")
        for name in ("project_key", "app_version", "platform_family"):
            if not str(getattr(self, name) or "").strip():
                raise ValueError(f"Channel {name} must not be empty")

    @property
    def base_path(self) -> str:
        """Object-storage prefix shared by the manifest and its archives."""
        return f"ota/{self.platform_family}/{self.project_key}/{self.platform}/{self.app_version}"

    def manifest_path(self) -> str:
        return f"{self.base_path}/update.json"

    def manifest_url(self, endpoint: str) -> str:
        base = str(endpoint or "").rstrip("/")
        return f"{base}/{self.manifest_path()}"


@dataclass(frozen=True)
class UpdateOutcome:
    """Result of one orchestrated check-and-install run."""

    result: UpdateResult
    entry: Optional[UpdateEntry] = None
    error: Optional[BaseException] = None
    statuses: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def updated(self) -> bool:
        return self.result == "updated"


__all__ = [
    "Channel",
    "DEFAULT_PLATFORM_FAMILY",
    "HAPPY_PATH_STATUSES",
    "PLATFORMS",
    "PLATFORM_LABELS",
    "Platform",
    "StatusToken",
    "UpdateEntry",
    "UpdateOutcome",
    "UpdateResult",
]
