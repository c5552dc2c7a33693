"""Host runtime facts (platform tag, application version) as injected values.

The update channel depends on two facts the hosting application owns. They
are resolved once through ordered provider chains and handed to the
orchestrator as a read-only :class:`HostInfo`, so selection and the swap
logic never consult globals.
"""

from __future__ import annotations

import json
import logging
import os
import struct
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Callable, List, Mapping, Optional, Sequence, Tuple

from bundle_ota.domain.update_models import PLATFORM_LABELS, PLATFORMS

if TYPE_CHECKING:  # pragma: no cover - type checking helper
    from bundle_ota.domain.settings import UpdaterSettings

_log = logging.getLogger("bundle_ota.host_info")

DEFAULT_APP_VERSION = "1.0.0"
_32BIT_MACHINES = {"i386", "i486", "i586", "i686", "x86", "armv7l", "armv6l"}


@dataclass(frozen=True)
class NamedProvider:
    """One step of a fallback chain; ``fn`` returns a value or ``None``."""

    name: str
    fn: Callable[[], Optional[str]]


@dataclass(frozen=True)
class HostInfo:
    """Platform tag and application version of the running host."""

    platform: str
    app_version: str

    @property
    def platform_label(self) -> str:
        return PLATFORM_LABELS.get(self.platform, self.platform)


def detect_platform(sys_platform: Optional[str] = None, machine: Optional[str] = None) -> str:
    """Map the interpreter's platform to one of ``PLATFORMS``.

    Linux is split by pointer width. Unknown platforms fall back to ``win``.
    """
    name = (sys_platform if sys_platform is not None else sys.platform).lower()
    if name.startswith("win") or name.startswith("cygwin"):
        return "win"
    if name.startswith("darwin"):
        return "mac"
    if name.startswith("linux"):
        if machine is None:
            is_32bit = struct.calcsize("P") == 4
        else:
            is_32bit = machine.strip().lower() in _32BIT_MACHINES
        return "linux32" if is_32bit else "linux64"
    _log.warning("Unrecognised platform %r; assuming 'win'", name)
    return "win"


def resolve_first(providers: Sequence[NamedProvider], default: str) -> Tuple[str, str]:
    """Return ``(value, provider_name)`` from the first provider with a value.

    Providers raising ``OSError`` or ``ValueError`` are treated as absent.
    The default is reported under the name ``"default"``.
    """
    for provider in providers:
        try:
            value = provider.fn()
        except (OSError, ValueError) as exc:
            _log.debug("Provider %s failed: %s", provider.name, exc)
            continue
        if value is None:
            continue
        text = str(value).strip()
        if text:
            return text, provider.name
    return default, "default"


def static_provider(name: str, value: Optional[str]) -> NamedProvider:
    return NamedProvider(name, lambda: value)


def env_provider(var: str, environ: Optional[Mapping[str, str]] = None) -> NamedProvider:
    env = os.environ if environ is None else environ
    return NamedProvider(f"env:{var}", lambda: env.get(var))


def package_json_provider(bundle_path: Optional[Path]) -> NamedProvider:
    """Read ``version`` from ``package.json`` inside the bundle directory."""

    def _read() -> Optional[str]:
        if bundle_path is None:
            return None
        manifest = Path(bundle_path) / "package.json"
        if not manifest.is_file():
            return None
        payload = json.loads(manifest.read_text(encoding="utf-8"))
        if not isinstance(payload, dict):
            return None
        version = payload.get("version")
        return str(version) if version else None

    return NamedProvider("package.json", _read)


def default_app_version_providers(
    *,
    explicit: Optional[str],
    bundle_path: Optional[Path],
    environ: Optional[Mapping[str, str]] = None,
) -> List[NamedProvider]:
    """Standard precedence: setting, environment, bundle ``package.json``."""
    return [
        static_provider("settings", explicit),
        env_provider("BUNDLE_OTA_APP_VERSION", environ),
        package_json_provider(bundle_path),
    ]


def default_platform_providers(
    *,
    explicit: Optional[str],
    environ: Optional[Mapping[str, str]] = None,
) -> List[NamedProvider]:
    return [
        static_provider("settings", explicit),
        env_provider("BUNDLE_OTA_PLATFORM", environ),
        NamedProvider("detected", detect_platform),
    ]


def build_host_info(
    settings: "UpdaterSettings",
    environ: Optional[Mapping[str, str]] = None,
) -> HostInfo:
    """Resolve host facts for ``settings`` through the standard chains."""
    bundle_path = Path(settings.bundle_path) if settings.bundle_path else None
    platform_tag, platform_source = resolve_first(
        default_platform_providers(explicit=settings.platform, environ=environ),
        default=detect_platform(),
    )
    if platform_tag not in PLATFORMS:
        raise ValueError(f"Unknown platform tag '{platform_tag}' from {platform_source}")
    app_version, version_source = resolve_first(
        default_app_version_providers(
            explicit=settings.app_version,
            bundle_path=bundle_path,
            environ=environ,
        ),
        default=DEFAULT_APP_VERSION,
    )
    _log.debug(
        "Host info: platform=%s (%s) app_version=%s (%s)",
        platform_tag,
        platform_source,
        app_version,
        version_source,
    )
    return HostInfo(platform=platform_tag, app_version=app_version)


__all__ = [
    "DEFAULT_APP_VERSION",
    "HostInfo",
    "NamedProvider",
    "build_host_info",
    "default_app_version_providers",
    "default_platform_providers",
    "detect_platform",
    "env_provider",
    "package_json_provider",
    "resolve_first",
    "static_provider",
]
