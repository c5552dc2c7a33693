"""Domain package exports for value objects and pure update logic."""

from .errors import ArchiveError, BundleOtaError, BundleReplaceError, UpdateFailure
from .host_info import HostInfo, build_host_info, detect_platform
from .selection import eligible_updates, select_update
from .update_models import (
    HAPPY_PATH_STATUSES,
    PLATFORMS,
    Channel,
    StatusToken,
    UpdateEntry,
    UpdateOutcome,
)

__all__ = [
    "ArchiveError",
    "BundleOtaError",
    "BundleReplaceError",
    "Channel",
    "HAPPY_PATH_STATUSES",
    "HostInfo",
    "PLATFORMS",
    "StatusToken",
    "UpdateEntry",
    "UpdateFailure",
    "UpdateOutcome",
    "build_host_info",
    "detect_platform",
    "eligible_updates",
    "select_update",
]
