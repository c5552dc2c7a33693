"""Adapter and use-case wiring for one bundle updater.

This module turns an :class:`~bundle_ota.domain.settings.UpdaterSettings`
into a ready :class:`~bundle_ota.usecases.check_for_update.CheckForUpdate`.
It is used by the CLI and by host applications embedding the updater.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Mapping, Optional

from .adapters.archive_transport import ArchiveTransport
from .adapters.http_client import FeedSession, HttpConfig
from .adapters.manifest_rest import ManifestRestAdapter
from .adapters.version_store import JsonVersionStore
from .domain.host_info import build_host_info
from .domain.settings import UpdaterSettings
from .usecases.check_for_update import CheckForUpdate
from .usecases.replace_bundle import BundleReplacer

log = logging.getLogger("bundle_ota.app")


def http_config_from_settings(settings: UpdaterSettings) -> HttpConfig:
    return HttpConfig(
        request_timeout_s=settings.manifest_timeout_s,
        download_timeout_s=settings.download_timeout_s,
        headers=dict(settings.headers),
    )


def build_updater(
    settings: UpdaterSettings,
    *,
    environ: Optional[Mapping[str, str]] = None,
    session: Optional[FeedSession] = None,
) -> CheckForUpdate:
    """Validate ``settings`` and wire the concrete adapters.

    Args:
        settings: Updater configuration; must name endpoint, project key
            and bundle path.
        environ: Environment used for host-fact lookups (``os.environ``
            when omitted).
        session: Shared HTTP session, mainly for tests.

    Raises:
        UseCaseError: ``SETTINGS_INVALID`` for incomplete settings.
        ValueError: When the resolved platform tag is unknown.
    """
    settings.validate()
    session = session or FeedSession(http_config_from_settings(settings))
    host_info = build_host_info(settings, environ=environ)
    bundle_path = Path(settings.bundle_path)
    log.debug(
        "Building updater for %s (bundle=%s, platform=%s, app_version=%s)",
        settings.project_key,
        bundle_path,
        host_info.platform,
        host_info.app_version,
    )
    return CheckForUpdate(
        manifest_port=ManifestRestAdapter(settings.endpoint, session=session),
        archive_port=ArchiveTransport(session=session, chunk_size=settings.download_chunk_size),
        replacer=BundleReplacer(
            bundle_path,
            backup=settings.backup,
            platform=host_info.platform,
            keep_backups=settings.keep_backups,
        ),
        version_store=JsonVersionStore.for_bundle(bundle_path),
        host_info=host_info,
        settings=settings,
    )


__all__ = ["build_updater", "http_config_from_settings"]
