# tests/unit/fakes.py
"""
Test doubles shared across the unit tests.

- ManualScheduler: a fake clock for the progress estimators
- FakeBackend: an httpx.MockTransport handler with per-route responses
"""

import asyncio
import inspect
import json
from collections.abc import Callable

import httpx

BASE_URL = "http://studio.test/api/v1"
BASE_PATH = "/api/v1"


class _ManualHandle:
    def __init__(self, due: float, seq: int, callback: Callable[[], None]) -> None:
        self.due = due
        self.seq = seq
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Scheduler whose clock only moves when a test calls advance()."""

    def __init__(self) -> None:
        self.now = 0.0
        self._handles: list[_ManualHandle] = []
        self._seq = 0

    def call_later(self, delay: float, callback: Callable[[], None]) -> _ManualHandle:
        handle = _ManualHandle(self.now + delay, self._seq, callback)
        self._seq += 1
        self._handles.append(handle)
        return handle

    @property
    def pending(self) -> int:
        """Timers neither fired nor cancelled."""
        return sum(1 for h in self._handles if not h.cancelled and not h.fired)

    def advance(self, seconds: float) -> None:
        """Move the clock forward, firing due timers in (due, scheduling) order."""
        target = self.now + seconds
        while True:
            due = [
                h for h in self._handles
                if not h.cancelled and not h.fired and h.due <= target + 1e-9
            ]
            if not due:
                break
            handle = min(due, key=lambda h: (h.due, h.seq))
            self.now = max(self.now, handle.due)
            handle.fired = True
            handle.callback()
        self.now = target


Route = httpx.Response | Callable[[httpx.Request], object]


class FakeBackend:
    """
    Records every request and answers from a route table.

    Routes are keyed by (method, path relative to the API base). A route is
    either a ready httpx.Response or a (possibly async) handler.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.routes: dict[tuple[str, str], Route] = {}

    def on(self, method: str, path: str, route: Route | None = None, *, json_body=None, status: int = 200):
        if route is None:
            route = httpx.Response(status, json=json_body)
        self.routes[(method.upper(), path)] = route

    def calls(self, method: str, path: str) -> int:
        return sum(
            1 for r in self.requests
            if r.method == method.upper() and r.url.path == BASE_PATH + path
        )

    def body(self, index: int = -1) -> dict:
        """JSON body of a recorded request."""
        return json.loads(self.requests[index].content)

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix(BASE_PATH)
        route = self.routes.get((request.method, path))
        if route is None:
            return httpx.Response(404, json={"message": f"no route for {request.method} {path}"})
        if isinstance(route, httpx.Response):
            # Fresh copy per request
            return httpx.Response(route.status_code, headers=route.headers, content=route.content)
        result = route(request)
        if inspect.isawaitable(result):
            result = await result
        return result

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


class Gate:
    """An async handler that holds the response until released."""

    def __init__(self, response: httpx.Response) -> None:
        self.response = response
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.entered.set()
        await self.release.wait()
        return self.response


def selfie_success(image_id: int = 42, remaining: int = 2) -> dict:
    return {
        "success": True,
        "data": {
            "id": image_id,
            "image_url": f"https://cdn.test/selfies/{image_id}.jpg",
            "is_watermark_removed": False,
            "created_at": "2026-10-19T10:00:00Z",
            "expires_in": 3600,
        },
        "quota": {"used": 1, "limit": 3, "remaining": remaining, "resets_at": "2026-10-20T00:00:00Z"},
    }


def story_success(with_quota: bool = False) -> dict:
    body = {
        "success": True,
        "data": {
            "story": {
                "id": 7,
                "title": "Rise of the Captain",
                "content": "Once upon a time " * 50,
                "genre": "adventure",
                "mood": "epic",
                "length": "short",
                "character_name": "Captain Vega",
                "character_traits": ["brave"],
                "coverImage": {"path": "covers/7.png", "previewUrl": "https://cdn.test/covers/7.png?sig=1"},
            },
            "scenes": [
                {
                    "scene_number": 1,
                    "title": "Departure",
                    "content": "The ship left.",
                    "image": {"path": "scenes/1.png", "previewUrl": "https://cdn.test/scenes/1.png"},
                },
            ],
            "estimated_read_time": 3,
        },
    }
    if with_quota:
        body["quota"] = {"remaining_quota": 4, "quota_resets_at": "2026-10-20T00:00:00Z"}
    return body


JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 2048


