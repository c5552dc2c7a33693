"""JSON-file persistence of the installed OTA bundle version."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from bundle_ota.domain.ports import VersionStorePort

RECORD_SUFFIX = ".ota.json"


class JsonVersionStore(VersionStorePort):
    """Read/write ``{"version": int, "updated_at": iso}`` at ``record_path``.

    A bundle that was never updated has no record and reports version ``0``.
    """

    def __init__(self, record_path: Path, *, logger: Optional[logging.Logger] = None) -> None:
        self.record_path = Path(record_path)
        self.log = logger or logging.getLogger("bundle_ota.version_store")

    @classmethod
    def for_bundle(cls, bundle_path: Path, **kwargs) -> "JsonVersionStore":
        """Store the record beside the bundle so it survives bundle swaps."""
        bundle = Path(bundle_path).absolute()
        return cls(bundle.with_name(f"{bundle.name}{RECORD_SUFFIX}"), **kwargs)

    def load(self) -> int:
        if not self.record_path.is_file():
            self.log.debug("No version record at %s; assuming 0", self.record_path)
            return 0
        try:
            payload = json.loads(self.record_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            self.log.warning("Unreadable version record %s: %s", self.record_path, exc)
            return 0
        if not isinstance(payload, dict):
            self.log.warning("Version record %s is not an object; assuming 0", self.record_path)
            return 0
        version = payload.get("version")
        if isinstance(version, bool) or not isinstance(version, int) or version < 0:
            self.log.warning("Version record %s holds invalid version %r", self.record_path, version)
            return 0
        return version

    def save(self, version: int) -> bool:
        """Write the record atomically; failures are logged and reported as ``False``."""
        record = {
            "version": int(version),
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        tmp_name: Optional[str] = None
        try:
            self.record_path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.record_path.name}.",
                suffix=".tmp",
                dir=str(self.record_path.parent),
            )
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(record, fh, indent=2)
            os.replace(tmp_name, self.record_path)
            tmp_name = None
        except OSError as exc:
            self.log.warning("Failed to save version %s to %s: %s", version, self.record_path, exc)
            return False
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError as cleanup_exc:
                    self.log.debug("Could not remove temp record %s: %s", tmp_name, cleanup_exc)
        self.log.debug("Saved OTA version %s to %s", version, self.record_path)
        return True


__all__ = ["JsonVersionStore", "RECORD_SUFFIX"]
