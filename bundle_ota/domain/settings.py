"""Typed updater settings with dict/env/JSON-file loading.

Precedence used by the CLI: explicit options > settings file > environment >
dataclass defaults.
"""

from __future__ import annotations

import json
import os
import tempfile
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from bundle_ota.domain.ports import UseCaseError
from bundle_ota.domain.update_models import DEFAULT_PLATFORM_FAMILY, PLATFORMS

ENV_KEYS: Dict[str, str] = {
    "BUNDLE_OTA_ENDPOINT": "endpoint",
    "BUNDLE_OTA_PROJECT_KEY": "project_key",
    "BUNDLE_OTA_BUNDLE_PATH": "bundle_path",
    "BUNDLE_OTA_TMP_DIR": "temporary_directory",
    "BUNDLE_OTA_BACKUP": "backup",
    "BUNDLE_OTA_PLATFORM_FAMILY": "platform_family",
    "BUNDLE_OTA_MANIFEST_TIMEOUT_S": "manifest_timeout_s",
    "BUNDLE_OTA_DOWNLOAD_TIMEOUT_S": "download_timeout_s",
    "BUNDLE_OTA_KEEP_BACKUPS": "keep_backups",
    "BUNDLE_OTA_APP_VERSION": "app_version",
    "BUNDLE_OTA_PLATFORM": "platform",
}

_INT_FIELDS = {"manifest_timeout_s", "download_timeout_s", "download_chunk_size"}
_OPTIONAL_STR_FIELDS = {"app_version", "platform"}


@dataclass
class UpdaterSettings:
    """Runtime configuration for one bundle updater."""

    endpoint: str = ""
    project_key: str = ""
    bundle_path: str = ""
    temporary_directory: str = field(default_factory=tempfile.gettempdir)
    backup: bool = True
    platform_family: str = DEFAULT_PLATFORM_FAMILY
    manifest_timeout_s: int = 30
    download_timeout_s: int = 300
    download_chunk_size: int = 128 * 1024
    headers: Dict[str, str] = field(default_factory=dict)
    keep_backups: Optional[int] = None
    app_version: Optional[str] = None
    platform: Optional[str] = None

    # ------------------------------------------------------------------
    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "UpdaterSettings":
        """Build settings from ``BUNDLE_OTA_*`` environment variables."""
        env = os.environ if environ is None else environ
        payload = {key: env[var] for var, key in ENV_KEYS.items() if env.get(var, "").strip()}
        settings = cls()
        settings.apply_dict(payload)
        return settings

    def apply_dict(self, payload: Mapping[str, Any]) -> None:
        """Apply a flat mapping of setting values in place."""
        if not isinstance(payload, Mapping):
            raise ValueError("Settings payload must be a mapping of flat keys.")

        known = {item.name for item in fields(self)}
        unknown = set(payload.keys()) - known
        if unknown:
            raise ValueError(f"Unsupported settings keys: {', '.join(sorted(str(key) for key in unknown))}")

        updates = {key: self._coerce(key, value) for key, value in payload.items()}
        for key, value in updates.items():
            setattr(self, key, value)

    def to_dict(self) -> Dict[str, Any]:
        snapshot = asdict(self)
        snapshot["headers"] = dict(self.headers)
        return snapshot

    def merged(self, **overrides: Any) -> "UpdaterSettings":
        """Return a copy with non-``None`` overrides applied."""
        present = {key: value for key, value in overrides.items() if value is not None}
        copy = replace(self, headers=dict(self.headers))
        copy.apply_dict(present)
        return copy

    def validate(self) -> None:
        missing = [name for name in ("endpoint", "project_key", "bundle_path") if not getattr(self, name)]
        if missing:
            raise UseCaseError("SETTINGS_INVALID", f"Missing required settings: {', '.join(missing)}")
        if self.platform is not None and self.platform not in PLATFORMS:
            raise UseCaseError(
                "SETTINGS_INVALID",
                f"platform must be one of {', '.join(PLATFORMS)}, got '{self.platform}'",
            )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _coerce(self, key: str, raw: Any) -> Any:
        if key in _INT_FIELDS:
            return self._coerce_int(key, raw, allow_negative=False)
        if key == "keep_backups":
            if raw is None or (isinstance(raw, str) and not raw.strip()):
                return None
            return self._coerce_int(key, raw, allow_negative=False)
        if key == "backup":
            return self._coerce_bool(raw)
        if key == "headers":
            return self._coerce_headers(raw)
        if key in _OPTIONAL_STR_FIELDS:
            text = "" if raw is None else str(raw).strip()
            return text or None
        if key == "endpoint":
            return str(raw or "").strip().rstrip("/")
        return str(raw or "").strip()

    @staticmethod
    def _coerce_bool(value: Any) -> bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)):
            return bool(value)
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes", "on"}
        return bool(value)

    @staticmethod
    def _coerce_int(name: str, value: Any, *, allow_negative: bool = True) -> int:
        if isinstance(value, bool):
            raise ValueError(f"{name} must be an integer.")
        if isinstance(value, (int, float)):
            coerced = int(value)
        elif isinstance(value, str):
            try:
                coerced = int(value.strip())
            except (TypeError, ValueError) as exc:
                raise ValueError(f"{name} must be an integer.") from exc
        else:
            raise ValueError(f"{name} must be an integer.")
        if not allow_negative and coerced < 0:
            raise ValueError(f"{name} must be non-negative.")
        return coerced

    @staticmethod
    def _coerce_headers(value: Any) -> Dict[str, str]:
        if value is None:
            return {}
        if not isinstance(value, Mapping):
            raise ValueError("headers must be a mapping.")
        return {str(key): str(val) for key, val in value.items()}


def load_settings_file(path: str | Path, base: Optional[UpdaterSettings] = None) -> UpdaterSettings:
    """Load a JSON settings file on top of ``base`` (defaults when omitted)."""
    settings = replace(base, headers=dict(base.headers)) if base is not None else UpdaterSettings()
    settings_path = Path(path)
    if not settings_path.is_file():
        return settings
    with settings_path.open("r", encoding="utf-8") as fh:
        payload = json.load(fh)
    settings.apply_dict(payload)
    return settings


def save_settings_file(path: str | Path, settings: UpdaterSettings) -> None:
    settings_path = Path(path)
    settings_path.parent.mkdir(parents=True, exist_ok=True)
    with settings_path.open("w", encoding="utf-8") as fh:
        json.dump(settings.to_dict(), fh, ensure_ascii=False, indent=2)


__all__ = ["ENV_KEYS", "UpdaterSettings", "load_settings_file", "save_settings_file"]
