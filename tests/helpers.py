"""Test helpers for Trackr tests.

This module provides deterministic stand-ins for the collaborators that
touch randomness, time or the network: a sequential id generator, a
manually fired timer, a recording transport, and a transport that routes
requests to a Flask test client.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import urlsplit

from flask.testing import FlaskClient


TEST_DEPLOYMENT_ID = "test-deployment"
TEST_ENDPOINT = f"http://sync.test/macros/s/{TEST_DEPLOYMENT_ID}/exec"
FIXED_NOW = "2024-05-01T09:30:00+00:00"


class SequentialIdGenerator:
    """Generates predictable ids: id-1, id-2, ... and SKU-0001, ..."""

    def __init__(self, prefix: str = "id") -> None:
        self.prefix = prefix
        self.count = 0
        self.sku_count = 0

    def new_id(self) -> str:
        self.count += 1
        return f"{self.prefix}-{self.count}"

    def new_sku(self) -> str:
        self.sku_count += 1
        return f"SKU-{self.sku_count:04d}"


class FakeTimer:
    """Stand-in for threading.Timer that only runs when fired by the test."""

    def __init__(
        self,
        interval: float,
        function: Callable[..., Any],
        args: Optional[Tuple[Any, ...]] = None,
        kwargs: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.interval = interval
        self.function = function
        self.args = args or ()
        self.kwargs = kwargs or {}
        self.daemon = False
        self.started = False
        self.cancelled = False
        self.fired = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        """Run the callback as if the interval elapsed.

        Like threading.Timer, a cancelled timer does nothing.
        """
        if self.cancelled or self.fired:
            return
        self.fired = True
        self.function(*self.args, **self.kwargs)


class FakeTimerFactory:
    """Callable with threading.Timer's signature that records every timer."""

    def __init__(self) -> None:
        self.timers: List[FakeTimer] = []

    def __call__(self, interval: float, function: Callable[..., Any], args=None, kwargs=None) -> FakeTimer:
        timer = FakeTimer(interval, function, args=args, kwargs=kwargs)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> List[FakeTimer]:
        return [t for t in self.timers if t.started and not t.cancelled and not t.fired]

    def fire_all(self) -> None:
        for timer in list(self.timers):
            timer.fire()


class FakeTransport:
    """Transport double that records calls and returns canned responses.

    Attributes:
        calls: (method, url, params_or_body) tuples in call order
        text_response: Returned by get_text
        json_response: Returned by get_json
        post_response: Returned by post_json
    """

    def __init__(self) -> None:
        self.calls: List[Tuple[str, str, Any]] = []
        self.text_response: Dict[str, Any] = {"success": False, "error": "not configured"}
        self.json_response: Dict[str, Any] = {"success": True, "data": {"status": "success", "data": {}}}
        self.post_response: Dict[str, Any] = {"success": True}

    def get_text(self, url: str) -> Dict[str, Any]:
        self.calls.append(("GET_TEXT", url, None))
        return self.text_response

    def get_json(self, url: str, params: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        self.calls.append(("GET", url, params))
        return self.json_response

    def post_json(self, url: str, body: Dict[str, Any]) -> Dict[str, Any]:
        self.calls.append(("POST", url, body))
        return self.post_response

    def posts(self, action: Optional[str] = None) -> List[Dict[str, Any]]:
        """Get POST bodies, optionally filtered by action."""
        return [
            body for method, _, body in self.calls
            if method == "POST" and (action is None or body.get("action") == action)
        ]


class FlaskTransport:
    """Transport that sends requests to a Flask test client.

    Mirrors HttpTransport's result dicts so engines can be exercised
    against a real sync server without sockets.
    """

    def __init__(self, client: FlaskClient) -> None:
        self.client = client
        self.post_count = 0

    def get_text(self, url: str) -> Dict[str, Any]:
        response = self.client.get(urlsplit(url).path)
        if response.status_code >= 400:
            return {"success": False, "error": f"HTTP {response.status_code}"}
        return {"success": True, "data": response.get_data(as_text=True)}

    def get_json(self, url: str, params: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        response = self.client.get(urlsplit(url).path, query_string=params or {})
        if response.status_code >= 400:
            data = response.get_json(silent=True) or {}
            return {"success": False, "error": f"Server error: {data.get('message')}"}
        return {"success": True, "data": response.get_json()}

    def post_json(self, url: str, body: Dict[str, Any]) -> Dict[str, Any]:
        self.post_count += 1
        self.client.post(urlsplit(url).path, json=body)
        return {"success": True}
