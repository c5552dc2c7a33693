"""Pick the update to install from a channel manifest."""

from __future__ import annotations

from typing import Iterable, List, Optional

from bundle_ota.domain.update_models import UpdateEntry


def eligible_updates(entries: Iterable[UpdateEntry], current_version: int) -> List[UpdateEntry]:
    """Return enabled entries newer than ``current_version``, highest first.

    The sort is stable, so entries sharing a version keep manifest order.
    """
    current = int(current_version)
    candidates = [entry for entry in entries if entry.enable and entry.version > current]
    return sorted(candidates, key=lambda entry: entry.version, reverse=True)


def select_update(entries: Iterable[UpdateEntry], current_version: int) -> Optional[UpdateEntry]:
    """Return the newest eligible entry, or ``None`` when nothing qualifies.

    Intermediate versions are never installed one at a time; a client that
    is several versions behind jumps straight to the latest enabled one.
    """
    candidates = eligible_updates(entries, current_version)
    if not candidates:
        return None
    return candidates[0]


__all__ = ["eligible_updates", "select_update"]
