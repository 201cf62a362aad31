"""Multipart batch framing for sending many messages in one HTTP call.

Each message becomes a complete embedded HTTP/1.1 request inside a
``multipart/mixed`` body. The server answers with a multipart body of
embedded HTTP responses in the same order.
"""

from __future__ import annotations

import email.policy
import json
from email.parser import BytesParser
from typing import Any, Mapping, Sequence

import httpx

from ..errors import UnknownError
from ..http import MultipartEntity, MultipartPart


def serialize_subrequest(url: str, body: Any, headers: Mapping[str, str]) -> bytes:
    """Render one embedded ``POST`` request."""
    payload = json.dumps(body, separators=(",", ":")).encode()
    lines = [
        f"POST {url} HTTP/1.1",
        f"Content-Length: {len(payload)}",
        "Content-Type: application/json; charset=UTF-8",
        *(f"{name}: {value}" for name, value in headers.items()),
    ]
    return ("\r\n".join(lines) + "\r\n\r\n").encode() + payload


def build_batch_entity(
    url: str,
    bodies: Sequence[Any],
    headers: Mapping[str, str],
) -> MultipartEntity:
    """Wrap one JSON body per sub-request into a multipart entity.

    ``Content-Id`` is the 1-based position of the body.
    """
    parts = []
    for idx, body in enumerate(bodies):
        request = serialize_subrequest(url, body, headers)
        parts.append(MultipartPart(
            headers={
                "Content-Length": str(len(request)),
                "Content-Type": "application/http",
                "Content-Id": str(idx + 1),
                "Content-Transfer-Encoding": "binary",
            },
            body=request,
        ))
    return MultipartEntity(parts)


def split_multipart(content_type: str, content: bytes) -> list[bytes]:
    """Return the raw payload of every part of a multipart body, in order."""
    envelope = f"Content-Type: {content_type}\r\n\r\n".encode() + content
    message = BytesParser(policy=email.policy.HTTP).parsebytes(envelope)
    if not message.is_multipart():
        raise UnknownError(f"expected a multipart response, got: {content_type!r}")
    payloads = []
    for part in message.iter_parts():
        payload = part.get_payload(decode=True)
        payloads.append(payload if isinstance(payload, bytes) else b"")
    return payloads


def parse_http_response(raw: bytes) -> httpx.Response:
    """Parse an embedded ``HTTP/1.1`` response into an ``httpx.Response``."""
    raw = raw.lstrip(b"\r\n")
    head, sep, body = raw.partition(b"\r\n\r\n")
    if not sep:
        head, sep, body = raw.partition(b"\n\n")
    lines = head.decode("iso-8859-1").splitlines()
    if not lines:
        raise UnknownError("empty part in batch response")
    status_line = lines[0].split(" ", 2)
    if len(status_line) < 2 or not status_line[0].startswith("HTTP/") or not status_line[1].isdigit():
        raise UnknownError(f"malformed status line in batch response: {lines[0]!r}")
    headers = []
    for line in lines[1:]:
        name, colon, value = line.partition(":")
        if colon:
            headers.append((name.strip(), value.strip()))
    return httpx.Response(int(status_line[1]), headers=headers, content=body)


def parse_batch_response(content_type: str, content: bytes) -> list[httpx.Response]:
    return [parse_http_response(part) for part in split_multipart(content_type, content)]
