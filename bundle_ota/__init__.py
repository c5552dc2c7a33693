"""Over-the-air updates for application asset bundles.

Typical embedding::

    from bundle_ota import UpdaterSettings, build_updater

    updater = build_updater(UpdaterSettings(endpoint=..., project_key=..., bundle_path=...))
    outcome = updater()
"""

from bundle_ota.app import build_updater
from bundle_ota.domain.settings import UpdaterSettings
from bundle_ota.usecases.check_for_update import CheckForUpdate, UpdateHooks

__version__ = "0.1.0"

__all__ = ["CheckForUpdate", "UpdateHooks", "UpdaterSettings", "__version__", "build_updater"]
