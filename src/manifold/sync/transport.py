"""HTTP transport for the patch sync client."""

from __future__ import annotations

import json
import logging
from http.client import HTTPException
from urllib.error import URLError
from urllib.request import Request, urlopen

from manifold.core.errors import TransportError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10  # seconds


class HttpTransport:
    """POST a JSON payload and decode the JSON response.

    Any failure (connection, HTTP status, timeout, undecodable body) is
    raised as :class:`TransportError`.
    """

    def __init__(self, timeout: float = DEFAULT_TIMEOUT) -> None:
        self.timeout = timeout

    def __call__(self, url: str, payload: dict) -> dict:
        body = json.dumps(payload, sort_keys=True).encode("utf-8")
        req = Request(
            url,
            data=body,
            method="POST",
            headers={"Content-Type": "application/json", "Accept": "application/json"},
        )
        logger.debug("POST %s (%d bytes)", url, len(body))
        try:
            with urlopen(req, timeout=self.timeout) as resp:
                raw = resp.read()
        except (URLError, HTTPException, OSError, ValueError) as exc:
            raise TransportError(f"Request to {url} failed: {exc}") from exc

        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise TransportError(f"Response from {url} is not JSON: {exc}") from exc
        if not isinstance(data, (dict, list)):
            raise TransportError(f"Response from {url} is not a JSON object")
        return data
