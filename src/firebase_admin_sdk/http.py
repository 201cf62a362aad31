"""HTTP primitives shared by every service client.

Provides the request/response types consumed by the executor, request
option modifiers, the multipart entity used by batched sends, and the
factory for the shared ``httpx.AsyncClient``.
"""

from __future__ import annotations

import json as jsonlib
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Mapping

import httpx

from ._version import __version__

if TYPE_CHECKING:
    from .config import AppConfig

DEFAULT_BOUNDARY = "__END_OF_PART__"
CRLF = b"\r\n"


@dataclass
class PreparedRequest:
    """Mutable request state that options operate on before sending."""

    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    params: dict[str, str] = field(default_factory=dict)
    content: bytes | None = None


HTTPOption = Callable[[PreparedRequest], None]


def with_header(name: str, value: str) -> HTTPOption:
    """Set a request header."""

    def apply(req: PreparedRequest) -> None:
        req.headers[name] = value

    return apply


def with_query_param(name: str, value: str) -> HTTPOption:
    """Set a single query parameter."""

    def apply(req: PreparedRequest) -> None:
        req.params[name] = value

    return apply


def with_query_params(params: Mapping[str, str]) -> HTTPOption:
    """Set several query parameters at once."""

    def apply(req: PreparedRequest) -> None:
        req.params.update(params)

    return apply


def with_body_hook(hook: Callable[[bytes | None], bytes | None]) -> HTTPOption:
    """Replace the serialized request body."""

    def apply(req: PreparedRequest) -> None:
        req.content = hook(req.content)

    return apply


@dataclass
class MultipartPart:
    """One part of a multipart/mixed body."""

    headers: dict[str, str]
    body: bytes


@dataclass
class MultipartEntity:
    """A multipart/mixed request body."""

    parts: list[MultipartPart]
    boundary: str = DEFAULT_BOUNDARY

    @property
    def content_type(self) -> str:
        return f"multipart/mixed; boundary={self.boundary}"

    def encode(self) -> bytes:
        delimiter = f"--{self.boundary}".encode()
        chunks: list[bytes] = []
        for part in self.parts:
            chunks.append(delimiter + CRLF)
            for name, value in part.headers.items():
                chunks.append(f"{name}: {value}".encode() + CRLF)
            chunks.append(CRLF)
            chunks.append(part.body)
            chunks.append(CRLF)
        chunks.append(delimiter + b"--" + CRLF)
        return b"".join(chunks)


@dataclass
class Request:
    """An outbound request.

    At most one of ``json`` and ``body`` is set. ``url`` is absolute.
    """

    method: str
    url: str
    json: Any = None
    body: MultipartEntity | None = None
    options: list[HTTPOption] = field(default_factory=list)

    def prepare(self, headers: Mapping[str, str] | None = None) -> PreparedRequest:
        """Serialize the body and apply options on top of ``headers``."""
        if self.json is not None and self.body is not None:
            raise ValueError("request cannot carry both a JSON and a multipart body")
        prepared = PreparedRequest(
            method=self.method.upper(),
            url=self.url,
            headers=dict(headers or {}),
        )
        if self.json is not None:
            prepared.content = jsonlib.dumps(self.json, separators=(",", ":")).encode()
            prepared.headers["Content-Type"] = "application/json"
        elif self.body is not None:
            prepared.content = self.body.encode()
            prepared.headers["Content-Type"] = self.body.content_type
        for option in self.options:
            option(prepared)
        return prepared


@dataclass
class Response:
    """A buffered HTTP response."""

    status: int
    headers: httpx.Headers
    body: bytes
    raw: httpx.Response

    @classmethod
    def from_httpx(cls, response: httpx.Response) -> Response:
        return cls(
            status=response.status_code,
            headers=response.headers,
            body=response.content,
            raw=response,
        )

    def json(self) -> Any:
        return jsonlib.loads(self.body)


def has_success_status(response: httpx.Response) -> bool:
    """Default success predicate: any 2xx status."""
    return 200 <= response.status_code < 300


def has_status(*codes: int) -> Callable[[httpx.Response], bool]:
    """Success predicate accepting only the listed statuses."""

    def check(response: httpx.Response) -> bool:
        return response.status_code in codes

    return check


def create_async_http_client(
    config: AppConfig,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Create the shared async HTTP client for an app.

    Args:
        config: App configuration.
        transport: Optional transport, e.g. ``httpx.MockTransport`` in tests.

    Returns:
        Configured httpx.AsyncClient.
    """
    return httpx.AsyncClient(
        timeout=httpx.Timeout(
            connect=config.connect_timeout,
            read=config.timeout,
            write=config.timeout,
            pool=config.timeout,
        ),
        headers={
            "User-Agent": f"firebase-admin-sdk/{__version__} Python",
        },
        follow_redirects=False,
        transport=transport,
    )
