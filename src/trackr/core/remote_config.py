"""Remote configuration resolver for Trackr.

Fetches a bootstrap document from a fixed URL and extracts the sync
endpoint from it. The document is treated as opaque text: the first
substring matching the endpoint pattern wins. The result is cached for
the lifetime of the resolver.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Optional, Pattern, Union

from .config import DEFAULT_BOOTSTRAP_URL, DEFAULT_ENDPOINT_PATTERN

logger = logging.getLogger(__name__)

__all__ = ["RemoteConfigResolver", "extract_endpoint"]


def extract_endpoint(text: str, pattern: Union[str, Pattern[str]] = DEFAULT_ENDPOINT_PATTERN) -> Optional[str]:
    """Return the first endpoint URL found in ``text``, or None."""
    if not text:
        return None
    match = re.search(pattern, text)
    return match.group(0) if match else None


class RemoteConfigResolver:
    """Resolves and caches the sync endpoint.

    Attributes:
        bootstrap_url: Where the bootstrap document is fetched from
        endpoint: The cached endpoint, once resolved
    """

    def __init__(
        self,
        transport: Any,
        bootstrap_url: str = DEFAULT_BOOTSTRAP_URL,
        pattern: str = DEFAULT_ENDPOINT_PATTERN,
    ) -> None:
        self.transport = transport
        self.bootstrap_url = bootstrap_url
        self.pattern = re.compile(pattern)
        self.endpoint: Optional[str] = None

    @property
    def is_configured(self) -> bool:
        return self.endpoint is not None

    def resolve(self) -> Optional[str]:
        """Get the endpoint, fetching the bootstrap document if needed.

        Returns:
            The endpoint URL, or None if it cannot be determined. Failures
            are logged and never raised; the next call tries again.
        """
        if self.endpoint is not None:
            return self.endpoint

        response = self.transport.get_text(self.bootstrap_url)
        if not response.get("success"):
            logger.info(f"Sync unavailable, bootstrap fetch failed: {response.get('error')}")
            return None

        endpoint = extract_endpoint(response.get("data") or "", self.pattern)
        if endpoint is None:
            logger.info(f"Sync unavailable, no endpoint found in {self.bootstrap_url}")
            return None

        self.endpoint = endpoint
        logger.info(f"Resolved sync endpoint: {endpoint}")
        return endpoint

    def set_endpoint(self, endpoint: Optional[str]) -> None:
        """Cache an explicitly configured endpoint (or clear it)."""
        self.endpoint = endpoint or None
