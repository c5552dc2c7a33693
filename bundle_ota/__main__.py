"""Command line entry point: ``python -m bundle_ota`` / ``bundle-ota``."""

from __future__ import annotations

import argparse
import sys
from typing import Optional, Sequence

from bundle_ota.app import build_updater
from bundle_ota.domain.ports import UseCaseError
from bundle_ota.domain.settings import UpdaterSettings, load_settings_file
from bundle_ota.usecases.check_for_update import FLOW_ERRORS, UpdateHooks
from bundle_ota.utils.logging import configure_logging


EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse CLI args for the updater commands."""
    parser = argparse.ArgumentParser(prog="bundle-ota", description="Over-the-air bundle updater.")
    parser.add_argument("--config", help="JSON settings file (overrides environment).")
    parser.add_argument("--endpoint", help="Base URL of the update feed.")
    parser.add_argument("--project-key", dest="project_key", help="Project key of the channel.")
    parser.add_argument("--bundle", help="Path of the bundle directory to update.")
    parser.add_argument("--no-backup", dest="no_backup", action="store_true", help="Skip the pre-swap backup.")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging.")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("check", help="Check the feed and install the newest update.")
    install = sub.add_parser("install", help="Install the bundle archive at URL.")
    install.add_argument("url")
    sub.add_parser("info", help="Print version info and the manifest URL.")
    return parser.parse_args(argv)


def _resolve_settings(args: argparse.Namespace) -> UpdaterSettings:
    settings = UpdaterSettings.from_env()
    if args.config:
        settings = load_settings_file(args.config, base=settings)
    return settings.merged(
        endpoint=args.endpoint,
        project_key=args.project_key,
        bundle_path=args.bundle,
        backup=False if args.no_backup else None,
    )


def _run_check(updater) -> int:
    hooks = UpdateHooks(
        on_status=lambda token: print(token, flush=True),
        on_failure=lambda failure: print(f"error: {failure.message}", file=sys.stderr),
    )
    outcome = updater(hooks)
    return EXIT_FAILED if outcome.result == "failed" else EXIT_OK


def _run_install(updater, url: str) -> int:
    try:
        bundle_path = updater.install(url)
    except FLOW_ERRORS as exc:
        print(f"error: Failed to install update: {exc}", file=sys.stderr)
        return EXIT_FAILED
    print(f"installed: {bundle_path}")
    return EXIT_OK


def _run_info(updater) -> int:
    print(updater.version_info())
    print(updater.channel.manifest_url(updater.settings.endpoint))
    return EXIT_OK


def main(argv: Optional[Sequence[str]] = None) -> int:
    """CLI entrypoint; returns the process exit code."""
    args = _parse_args(argv)
    try:
        configure_logging(verbose=args.verbose)
        settings = _resolve_settings(args)
        updater = build_updater(settings)
    except (UseCaseError, ValueError, OSError) as exc:
        print(f"config error: {exc}", file=sys.stderr)
        return EXIT_CONFIG

    if args.command == "check":
        return _run_check(updater)
    if args.command == "install":
        return _run_install(updater, args.url)
    return _run_info(updater)


if __name__ == "__main__":
    sys.exit(main())
