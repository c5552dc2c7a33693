"""Logging setup for the ``bundle_ota.*`` loggers.

Every module logs under ``bundle_ota.<area>``. The package level applies to
all areas; single areas can be raised or lowered on top of it::

    BUNDLE_OTA_LOG_LEVEL=WARNING
    BUNDLE_OTA_LOG_AREAS=archive=DEBUG,replace=INFO

Third-party loggers (``urllib3`` during downloads) stay at the root level,
WARNING, whatever the package level is.
"""

from __future__ import annotations

import logging
import os
from typing import Dict, Mapping, Optional, Union

PACKAGE_LOGGER = "bundle_ota"
LOG_AREAS = ("app", "archive", "fs", "host_info", "manifest", "replace", "update", "version_store")
LEVEL_ENV = "BUNDLE_OTA_LOG_LEVEL"
AREAS_ENV = "BUNDLE_OTA_LOG_AREAS"

_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
_DATEFMT = "%H:%M:%S"

LevelLike = Union[int, str]


def parse_level(value: LevelLike) -> int:
    """Return the numeric level for ``"debug"``, ``"WARNING"``, ``"15"`` or ``15``.

    Raises:
        ValueError: for unknown names, negative numbers and other text.
    """
    if isinstance(value, bool):
        raise ValueError(f"Unknown log level {value!r}")
    if isinstance(value, int):
        level = value
    else:
        text = str(value).strip()
        try:
            level = int(text)
        except ValueError:
            level = logging.getLevelName(text.upper())
            if not isinstance(level, int):
                raise ValueError(f"Unknown log level {value!r}") from None
    if level < 0:
        raise ValueError(f"Unknown log level {value!r}")
    return level


def parse_area_levels(text: str) -> Dict[str, int]:
    """Parse ``"archive=DEBUG,fs=WARNING"`` into ``{"archive": 10, "fs": 30}``."""
    levels: Dict[str, int] = {}
    for item in text.split(","):
        item = item.strip()
        if not item:
            continue
        area, sep, level = item.partition("=")
        area = area.strip()
        if not sep or area not in LOG_AREAS:
            raise ValueError(
                f"Invalid log area setting {item!r}; expected <area>=<level> "
                f"with <area> one of {', '.join(LOG_AREAS)}"
            )
        levels[area] = parse_level(level)
    return levels


def configure_logging(
    level: Optional[LevelLike] = None,
    *,
    verbose: bool = False,
    area_levels: Optional[Mapping[str, LevelLike]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> int:
    """Set the ``bundle_ota`` package and area levels; return the package level.

    Package level: ``verbose`` (DEBUG), then ``level``, then
    ``BUNDLE_OTA_LOG_LEVEL``, then INFO. Area levels come from
    ``BUNDLE_OTA_LOG_AREAS`` with ``area_levels`` entries winning per area;
    areas not named follow the package level. A stream handler is attached
    to the root logger only when none is configured yet.

    Raises:
        ValueError: on an unknown level or area. No logger is touched then.
    """
    env = os.environ if environ is None else environ
    if verbose:
        package_level = logging.DEBUG
    elif level is not None:
        package_level = parse_level(level)
    elif env.get(LEVEL_ENV, "").strip():
        package_level = parse_level(env[LEVEL_ENV])
    else:
        package_level = logging.INFO

    areas = parse_area_levels(env.get(AREAS_ENV, ""))
    for area, value in (area_levels or {}).items():
        if area not in LOG_AREAS:
            raise ValueError(f"Unknown log area {area!r}")
        areas[area] = parse_level(value)

    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=logging.WARNING, format=_FORMAT, datefmt=_DATEFMT)
    logging.getLogger(PACKAGE_LOGGER).setLevel(package_level)
    for area in LOG_AREAS:
        logging.getLogger(f"{PACKAGE_LOGGER}.{area}").setLevel(areas.get(area, logging.NOTSET))
    return package_level


__all__ = ["LOG_AREAS", "configure_logging", "parse_area_levels", "parse_level"]
