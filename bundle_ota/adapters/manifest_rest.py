"""REST adapter that reads channel manifests (``update.json``) from the feed."""

from __future__ import annotations

import logging
from typing import Any, List, Optional

from pydantic import BaseModel, StrictBool, StrictInt, StrictStr, ValidationError

from bundle_ota.adapters.api_errors import raise_for_status
from bundle_ota.adapters.http_client import FeedSession, HttpConfig
from bundle_ota.domain.ports import ManifestPort
from bundle_ota.domain.update_models import Channel, UpdateEntry


class ManifestEntryModel(BaseModel):
    """Wire shape of one manifest entry.

    Fields are strict: ``"3"``, ``3.0`` or ``true`` are not versions, and
    ``"yes"`` or ``1`` are not flags. Such entries fail validation and are
    skipped like any other malformed entry.
    """

    version: StrictInt
    enable: StrictBool
    download: StrictStr

    def to_entry(self) -> UpdateEntry:
        return UpdateEntry(version=self.version, enable=self.enable, download=self.download)


class ManifestRestAdapter(ManifestPort):
    """HTTP adapter for ``{endpoint}/ota/.../update.json``."""

    def __init__(
        self,
        endpoint: str,
        *,
        session: Optional[FeedSession] = None,
        cfg: Optional[HttpConfig] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if not str(endpoint or "").strip():
            raise ValueError("ManifestRestAdapter requires an endpoint URL")
        self.endpoint = str(endpoint).strip().rstrip("/")
        self.session = session or FeedSession(cfg)
        self.log = logger or logging.getLogger("bundle_ota.manifest")

    def manifest_url(self, channel: Channel) -> str:
        return channel.manifest_url(self.endpoint)

    def fetch_manifest(self, channel: Channel) -> List[UpdateEntry]:
        """Return the channel's entries; a 404 means nothing has been published."""
        url = self.manifest_url(channel)
        self.log.debug("Fetching manifest %s", url)
        resp = self.session.get(url)
        if resp.status_code == 404:
            self.log.info("No manifest published at %s", url)
            return []
        raise_for_status(resp, f"fetch_manifest[{channel.platform}/{channel.app_version}]")
        try:
            payload = resp.json()
        except ValueError as exc:
            snippet = getattr(resp, "text", "")[:400]
            raise RuntimeError(f"Invalid JSON in manifest {url}: {snippet}") from exc
        entries = self._parse_entries(payload)
        self.log.debug("Manifest %s lists %d entries", url, len(entries))
        return entries

    def _parse_entries(self, payload: Any) -> List[UpdateEntry]:
        """Validate entries one by one; malformed entries are skipped."""
        if not isinstance(payload, list):
            self.log.warning("Manifest payload is %s, expected a list; treating as empty", type(payload).__name__)
            return []
        entries: List[UpdateEntry] = []
        for index, raw in enumerate(payload):
            try:
                entries.append(ManifestEntryModel.model_validate(raw).to_entry())
            except ValidationError as exc:
                self.log.warning("Skipping malformed manifest entry #%d: %s", index, exc.errors()[:1])
        return entries


__all__ = ["ManifestEntryModel", "ManifestRestAdapter"]
