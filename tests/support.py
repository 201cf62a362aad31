"""Test helpers: an in-process HTTP backend and canned service responses."""

from __future__ import annotations

import json
from typing import Any, Callable

import httpx

from firebase_admin_sdk import RetryConfig

PROJECT_ID = "mock-project-id"
KEY_ID = "mock-key-id-1"
CLIENT_EMAIL = "mock-sa@mock-project-id.iam.gserviceaccount.com"
ID_TOOLKIT = f"https://identitytoolkit.googleapis.com/v1/projects/{PROJECT_ID}"
FCM_SEND = f"https://fcm.googleapis.com/v1/projects/{PROJECT_ID}/messages:send"
FCM_BATCH = "https://fcm.googleapis.com/batch"
FAST_RETRY = RetryConfig(initial_delay=0, max_delay=1)

Responder = httpx.Response | Callable[[httpx.Request], httpx.Response]


class MockBackend:
    """Serves queued responses by URL and records every request.

    Each URL holds a queue of responses; the last one repeats once the
    others are used up. Unknown URLs answer 404.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._routes: dict[str, list[Responder]] = {}

    def add(self, url: str, *responses: Responder) -> None:
        self._routes[url] = list(responses)

    def calls(self, url: str) -> list[httpx.Request]:
        return [r for r in self.requests if base_url(r) == url]

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self._routes.get(base_url(request))
        if not queue:
            return httpx.Response(
                404,
                json={"error": {"code": 404, "message": "no route", "status": "NOT_FOUND"}},
            )
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if callable(item):
            return item(request)
        return httpx.Response(item.status_code, headers=item.headers, content=item.content)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)


def base_url(request: httpx.Request) -> str:
    return str(request.url).split("?", 1)[0]


def request_json(request: httpx.Request) -> Any:
    return json.loads(request.content)


def user_response(uid: str = "alice", **fields: Any) -> httpx.Response:
    """Build an ``accounts:lookup`` response holding one user."""
    return httpx.Response(200, json={"users": [{"localId": uid, **fields}]})


def error_response(status: int, message: str, platform_status: str | None = None) -> httpx.Response:
    error: dict[str, Any] = {"code": status, "message": message}
    if platform_status:
        error["status"] = platform_status
    return httpx.Response(status, json={"error": error})


def batch_response(parts: list[tuple[int, dict[str, Any]]], boundary: str = "batch_abc") -> httpx.Response:
    """Build a multipart/mixed batch response with one embedded HTTP response per part."""
    chunks = []
    for idx, (status, body) in enumerate(parts):
        payload = json.dumps(body)
        chunks.append(
            f"--{boundary}\r\n"
            "Content-Type: application/http\r\n"
            f"Content-ID: response-{idx + 1}\r\n"
            "\r\n"
            f"HTTP/1.1 {status} {'OK' if status == 200 else 'Error'}\r\n"
            "Content-Type: application/json; charset=UTF-8\r\n"
            "\r\n"
            f"{payload}\r\n"
        )
    chunks.append(f"--{boundary}--\r\n")
    return httpx.Response(
        200,
        headers={"Content-Type": f"multipart/mixed; boundary={boundary}"},
        content="".join(chunks).encode(),
    )
