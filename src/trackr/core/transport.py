"""HTTP transport for Trackr sync.

Thin wrapper over urllib that never raises: every call returns a dict
``{"success": True, "data": ...}`` or ``{"success": False, "error": ...}``
so that callers can degrade gracefully on any network problem.

CRITICAL: This module must have NO UI dependencies.
"""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

__all__ = ["HttpTransport", "build_url"]


def build_url(url: str, params: Optional[Dict[str, str]] = None) -> str:
    """Append URL-encoded query parameters to ``url``."""
    if not params:
        return url
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{urllib.parse.urlencode(params)}"


class HttpTransport:
    """Makes HTTP(S) requests for the sync engine and config resolver."""

    def __init__(self, timeout: float = 30) -> None:
        """Initialize transport.

        Args:
            timeout: Request timeout in seconds
        """
        self.timeout = timeout

    def get_text(self, url: str) -> Dict[str, Any]:
        """GET ``url`` and return the body as text."""
        request = urllib.request.Request(url, method="GET")
        return self._send(request, url, parse_json=False)

    def get_json(self, url: str, params: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        """GET ``url`` with query parameters and parse the JSON body."""
        full_url = build_url(url, params)
        request = urllib.request.Request(full_url, method="GET")
        return self._send(request, full_url, parse_json=True)

    def post_json(self, url: str, body: Dict[str, Any]) -> Dict[str, Any]:
        """POST a JSON body without interpreting the response.

        Writes are fire-and-forget: once the request has been delivered,
        the HTTP status and body are not inspected. Only failures to
        deliver (connection refused, DNS, timeout) are reported.
        """
        request = urllib.request.Request(
            url,
            data=json.dumps(body).encode("utf-8"),
            method="POST",
            headers={"Content-Type": "application/json"},
        )
        try:
            response = urllib.request.urlopen(request, timeout=self.timeout)
            response.read()
            return {"success": True}
        except urllib.error.HTTPError as e:
            # The server was reached; the outcome of the write is opaque
            logger.debug(f"POST {url} answered HTTP {e.code}, ignored")
            return {"success": True}
        except urllib.error.URLError as e:
            error_msg = f"Connection failed to {url}: {e.reason}"
            logger.error(error_msg)
            return {"success": False, "error": error_msg}
        except Exception as e:
            error_msg = f"Request to {url} failed: {e}"
            logger.error(error_msg)
            return {"success": False, "error": error_msg}

    def _send(
        self, request: urllib.request.Request, url: str, parse_json: bool
    ) -> Dict[str, Any]:
        try:
            response = urllib.request.urlopen(request, timeout=self.timeout)
            text = response.read().decode("utf-8")
            if not parse_json:
                return {"success": True, "data": text}
            return {"success": True, "data": json.loads(text)}

        except urllib.error.HTTPError as e:
            try:
                error_data = json.loads(e.read().decode("utf-8"))
                error_msg = error_data.get("message") or error_data.get("error") or f"HTTP {e.code}: {e.reason}"
            except Exception:
                error_msg = f"HTTP {e.code}: {e.reason}"
            logger.error(f"Request to {url} failed: {error_msg}")
            return {"success": False, "error": f"Server error: {error_msg}"}

        except urllib.error.URLError as e:
            error_msg = f"Connection failed to {url}: {e.reason}"
            logger.error(error_msg)
            return {"success": False, "error": error_msg}

        except json.JSONDecodeError as e:
            error_msg = f"Invalid JSON from {url}: {e}"
            logger.error(error_msg)
            return {"success": False, "error": error_msg}

        except Exception as e:
            error_msg = f"Request to {url} failed: {e}"
            logger.error(error_msg)
            return {"success": False, "error": error_msg}
