"""Shared HTTP transport utilities for feed adapters.

This module provides a thin wrapper around ``requests.Session`` so the
manifest and archive adapters share timeout policy and extra request
headers.

Dependencies:
    - ``requests`` for network I/O.
    - ``bundle_ota.adapters.api_errors.ApiTimeoutError`` for typed transport failures.

Call context:
    - Constructed by ``bundle_ota.adapters.manifest_rest`` and
      ``bundle_ota.adapters.archive_transport``.
    - Each request is attempted once; a timeout or connection failure is
      reported to the caller instead of being retried.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional

import requests
from requests import exceptions as req_exc

from bundle_ota.adapters.api_errors import ApiTimeoutError


@dataclass
class HttpConfig:
    """Timeout configuration for feed HTTP calls.

    Attributes:
        request_timeout_s: Timeout in seconds for manifest requests.
        download_timeout_s: Timeout in seconds for archive downloads.
        headers: Extra headers sent with every request.
    """
    request_timeout_s: int = 30
    download_timeout_s: int = 300
    headers: Dict[str, str] = field(default_factory=dict)


class FeedSession:
    """Shared requests wrapper with default headers and single-shot timeouts.

    This class is intentionally transport-only. Callers provide endpoint URLs
    and decide how to map non-2xx responses into domain errors.
    """

    def __init__(self, cfg: Optional[HttpConfig] = None) -> None:
        """Create a session.

        Args:
            cfg: Shared timeout and header settings.

        Side Effects:
            Creates a persistent ``requests.Session`` object.
        """
        self.session = requests.Session()
        self.cfg = cfg or HttpConfig()

    def _headers(self, accept: str) -> Dict[str, str]:
        headers = {"Accept": accept}
        headers.update(self.cfg.headers)
        return headers

    def get(
        self,
        url: str,
        *,
        accept: str = "application/json",
        timeout: Optional[int] = None,
        stream: bool = False,
    ) -> requests.Response:
        """Send one GET request.

        Args:
            url: Absolute URL.
            accept: ``Accept`` header value.
            timeout: Optional timeout override in seconds.
            stream: Whether to stream the response body.

        Returns:
            ``requests.Response`` regardless of status code.

        Raises:
            ApiTimeoutError: On timeout or connectivity failure.
        """
        try:
            return self.session.get(
                url,
                headers=self._headers(accept),
                timeout=timeout or self.cfg.request_timeout_s,
                stream=stream,
            )
        except (req_exc.Timeout, req_exc.ConnectionError) as exc:
            raise ApiTimeoutError(f"Timeout contacting {url}", context=f"GET {url}") from exc


__all__ = ["FeedSession", "HttpConfig"]
