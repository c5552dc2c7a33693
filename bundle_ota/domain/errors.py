"""Domain-level error types shared by adapters and use cases.

Every error carries a stable ``code``, a human ``message`` and an optional
``hint`` so callers can log or display failures without parsing text.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class BundleOtaError(RuntimeError):
    """Base error with code/message/hint values."""

    def __init__(self, code: str, message: str, hint: str = "") -> None:
        super().__init__(message)
        self.code = str(code)
        self.message = str(message)
        self.hint = str(hint or "")


class ArchiveError(BundleOtaError):
    """Raised when an archive cannot be downloaded, opened or extracted."""


class BundleReplaceError(BundleOtaError):
    """Raised when a swap fails; records whether rollback restored the bundle."""

    def __init__(
        self,
        code: str,
        message: str,
        hint: str = "",
        *,
        original: Optional[BaseException] = None,
        rollback_attempted: bool = False,
        rollback_succeeded: bool = False,
        backup_path: Optional[Path] = None,
    ) -> None:
        super().__init__(code, message, hint)
        self.original = original
        self.rollback_attempted = rollback_attempted
        self.rollback_succeeded = rollback_succeeded
        self.backup_path = backup_path


class UpdateFailure(BundleOtaError):
    """Payload handed to ``on_failure`` when an update flow fails."""

    def __init__(self, code: str, message: str, hint: str = "", *, stage: str = "") -> None:
        super().__init__(code, message, hint)
        self.stage = str(stage or "")


__all__ = ["ArchiveError", "BundleOtaError", "BundleReplaceError", "UpdateFailure"]
