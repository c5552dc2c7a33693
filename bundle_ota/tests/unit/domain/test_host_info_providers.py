from __future__ import annotations

import json
from pathlib import Path

import pytest

from bundle_ota.domain.host_info import (
    DEFAULT_APP_VERSION,
    HostInfo,
    NamedProvider,
    build_host_info,
    detect_platform,
    package_json_provider,
    resolve_first,
)
from bundle_ota.domain.settings import UpdaterSettings


@pytest.mark.parametrize(
    ("sys_platform", "machine", "expected"),
    [
        ("win32", None, "win"),
        ("cygwin", None, "win"),
        ("darwin", None, "mac"),
        ("linux", "x86_64", "linux64"),
        ("linux", "aarch64", "linux64"),
        ("linux", "i686", "linux32"),
        ("freebsd13", None, "win"),
    ],
)
def test_detect_platform_maps_to_tags(sys_platform: str, machine, expected: str) -> None:
    assert detect_platform(sys_platform, machine) == expected


def test_resolve_first_skips_failing_and_empty_providers() -> None:
    def broken() -> str:
        raise ValueError("bad")

    providers = [
        NamedProvider("broken", broken),
        NamedProvider("none", lambda: None),
        NamedProvider("blank", lambda: "  "),
        NamedProvider("good", lambda: " 2.1.0 "),
        NamedProvider("later", lambda: "9.9.9"),
    ]

    assert resolve_first(providers, default="1.0.0") == ("2.1.0", "good")


def test_resolve_first_falls_back_to_default() -> None:
    assert resolve_first([NamedProvider("none", lambda: None)], default="1.0.0") == ("1.0.0", "default")


def test_package_json_provider_reads_bundle_version(tmp_path: Path) -> None:
    (tmp_path / "package.json").write_text(json.dumps({"name": "demo", "version": "0.5.2"}), encoding="utf-8")

    assert package_json_provider(tmp_path).fn() == "0.5.2"
    assert package_json_provider(tmp_path / "missing").fn() is None
    assert package_json_provider(None).fn() is None


def test_build_host_info_prefers_explicit_settings(tmp_path: Path) -> None:
    (tmp_path / "package.json").write_text(json.dumps({"version": "0.5.2"}), encoding="utf-8")
    settings = UpdaterSettings(bundle_path=str(tmp_path), platform="mac", app_version="3.0.0")

    info = build_host_info(settings, environ={"BUNDLE_OTA_APP_VERSION": "7.0.0", "BUNDLE_OTA_PLATFORM": "win"})

    assert info == HostInfo(platform="mac", app_version="3.0.0")
    assert info.platform_label == "macOS"


def test_build_host_info_env_then_package_json_then_default(tmp_path: Path) -> None:
    (tmp_path / "package.json").write_text(json.dumps({"version": "0.5.2"}), encoding="utf-8")
    settings = UpdaterSettings(bundle_path=str(tmp_path), platform="win")

    from_env = build_host_info(settings, environ={"BUNDLE_OTA_APP_VERSION": "7.0.0"})
    from_package = build_host_info(settings, environ={})
    fallback = build_host_info(UpdaterSettings(bundle_path=str(tmp_path / "none"), platform="win"), environ={})

    assert from_env.app_version == "7.0.0"
    assert from_package.app_version == "0.5.2"
    assert fallback.app_version == DEFAULT_APP_VERSION


def test_build_host_info_ignores_corrupt_package_json(tmp_path: Path) -> None:
    (tmp_path / "package.json").write_text("{not json", encoding="utf-8")
    settings = UpdaterSettings(bundle_path=str(tmp_path), platform="linux64")

    assert build_host_info(settings, environ={}).app_version == DEFAULT_APP_VERSION


def test_build_host_info_rejects_unknown_platform_from_env(tmp_path: Path) -> None:
    settings = UpdaterSettings(bundle_path=str(tmp_path))

    with pytest.raises(ValueError):
        build_host_info(settings, environ={"BUNDLE_OTA_PLATFORM": "amiga"})
