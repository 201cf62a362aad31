"""Unit tests for the messaging client.

Tests single sends, multipart batches and multicast against a mock FCM
backend.
"""

from __future__ import annotations

import httpx
import pytest

from firebase_admin_sdk import AccessToken, App, AppConfig, ImplicitCredential
from firebase_admin_sdk.errors import (
    ErrorCode,
    InvalidArgumentError,
    PermissionDeniedError,
    UnauthenticatedError,
    UnknownError,
    is_permission_denied,
    is_unauthenticated,
)
from firebase_admin_sdk.messaging import (
    InternalServerError,
    Message,
    MulticastMessage,
    Notification,
    QuotaExceededError,
    UnregisteredError,
)
from firebase_admin_sdk.messaging.batch import (
    build_batch_entity,
    parse_http_response,
    serialize_subrequest,
    split_multipart,
)
from firebase_admin_sdk.messaging.client import FCM_HEADERS
from support import FAST_RETRY, FCM_BATCH, FCM_SEND, batch_response, request_json

FCM_ERROR_TYPE = "type.googleapis.com/google.firebase.fcm.v1.FcmError"


def fcm_error(status: int, platform_status: str, message: str, code: str | None = None) -> dict:
    error: dict = {"code": status, "message": message, "status": platform_status}
    if code:
        error["details"] = [{"@type": FCM_ERROR_TYPE, "errorCode": code}]
    return {"error": error}


class TestSend:
    """Tests for sending one message."""

    @pytest.mark.asyncio
    async def test_send(self, app, backend) -> None:
        backend.add(FCM_SEND, httpx.Response(200, json={"name": "projects/p/messages/1"}))

        message_id = await app.messaging.send(
            Message(topic="/topics/news", notification=Notification(title="Hi"))
        )

        assert message_id == "projects/p/messages/1"
        sent = backend.calls(FCM_SEND)[0]
        assert request_json(sent) == {
            "message": {"topic": "news", "notification": {"title": "Hi"}}
        }
        assert sent.headers["X-GOOG-API-FORMAT-VERSION"] == "2"
        assert sent.headers["X-FIREBASE-CLIENT"].startswith("fire-admin-python/")
        assert sent.headers["Authorization"] == "Bearer mock-access-token"

    @pytest.mark.asyncio
    async def test_dry_run(self, app, backend) -> None:
        backend.add(FCM_SEND, httpx.Response(200, json={"name": "projects/p/messages/fake"}))

        await app.messaging.send(Message(token="t"), dry_run=True)

        assert request_json(backend.calls(FCM_SEND)[0])["validate_only"] is True

    @pytest.mark.asyncio
    async def test_invalid_message_is_not_sent(self, app, backend) -> None:
        with pytest.raises(InvalidArgumentError):
            await app.messaging.send(Message(token="t", topic="news"))

        assert backend.calls(FCM_SEND) == []

    @pytest.mark.asyncio
    async def test_unregistered_token(self, app, backend) -> None:
        backend.add(
            FCM_SEND,
            httpx.Response(
                404, json=fcm_error(404, "NOT_FOUND", "Requested entity was not found.", "UNREGISTERED")
            ),
        )

        with pytest.raises(UnregisteredError) as exc_info:
            await app.messaging.send(Message(token="stale"))

        assert exc_info.value.kind == "registration-token-not-registered"
        assert exc_info.value.status_code == 404
        assert "Requested entity was not found." in exc_info.value.message

    @pytest.mark.asyncio
    async def test_quota_exceeded_is_retried_then_raised(self, app, backend) -> None:
        backend.add(
            FCM_SEND,
            httpx.Response(
                429, json=fcm_error(429, "RESOURCE_EXHAUSTED", "quota", "QUOTA_EXCEEDED")
            ),
        )

        with pytest.raises(QuotaExceededError):
            await app.messaging.send(Message(token="t"))

        assert len(backend.calls(FCM_SEND)) == FAST_RETRY.max_attempts

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("status", "platform_status", "error_type", "predicate"),
        [
            (401, "UNAUTHENTICATED", UnauthenticatedError, is_unauthenticated),
            (403, "PERMISSION_DENIED", PermissionDeniedError, is_permission_denied),
        ],
    )
    async def test_unmapped_status_keeps_platform_code(
        self, app, backend, status, platform_status, error_type, predicate
    ) -> None:
        backend.add(
            FCM_SEND,
            httpx.Response(status, json=fcm_error(status, platform_status, "denied")),
        )

        with pytest.raises(error_type) as exc_info:
            await app.messaging.send(Message(token="t"))

        err = exc_info.value
        assert predicate(err)
        assert err.code == ErrorCode(platform_status)
        assert err.kind == "unknown-error"
        assert err.status_code == status
        assert err.message == f"http error status: {status}; reason: denied; code: unknown-error"
        assert len(backend.calls(FCM_SEND)) == 1

    @pytest.mark.asyncio
    async def test_missing_message_id(self, app, backend) -> None:
        backend.add(FCM_SEND, httpx.Response(200, json={}))

        with pytest.raises(UnknownError, match="message id"):
            await app.messaging.send(Message(token="t"))


class TestSendAll:
    """Tests for batched sends."""

    @pytest.mark.asyncio
    async def test_partial_failure(self, app, backend) -> None:
        backend.add(
            FCM_BATCH,
            batch_response(
                [
                    (200, {"name": "projects/p/messages/1"}),
                    (500, fcm_error(500, "INTERNAL", "Internal error encountered.")),
                ]
            ),
        )

        result = await app.messaging.send_all([Message(token="a"), Message(topic="news")])

        assert result.success_count == 1
        assert result.failure_count == 1
        first, second = result.responses
        assert first.success and first.message_id == "projects/p/messages/1"
        assert not second.success and second.message_id is None
        assert isinstance(second.exception, InternalServerError)
        assert second.exception.kind == "internal-error"
        assert second.exception.status_code == 500
        assert len(backend.calls(FCM_BATCH)) == 1

    @pytest.mark.asyncio
    async def test_batch_request_framing(self, app, backend) -> None:
        backend.add(
            FCM_BATCH,
            batch_response([(200, {"name": "m1"}), (200, {"name": "m2"})]),
        )

        await app.messaging.send_all([Message(token="a"), Message(token="b")], dry_run=True)

        sent = backend.calls(FCM_BATCH)[0]
        assert sent.headers["Content-Type"] == "multipart/mixed; boundary=__END_OF_PART__"
        content = sent.content.decode()
        assert "Content-Id: 1\r\n" in content
        assert "Content-Id: 2\r\n" in content
        assert f"POST {FCM_SEND} HTTP/1.1" in content
        assert '{"message":{"token":"a"},"validate_only":true}' in content
        assert content.endswith("--__END_OF_PART__--\r\n")

    @pytest.mark.asyncio
    async def test_response_order_follows_input(self, app, backend) -> None:
        backend.add(
            FCM_BATCH,
            batch_response(
                [
                    (404, fcm_error(404, "NOT_FOUND", "gone", "UNREGISTERED")),
                    (200, {"name": "m2"}),
                    (200, {"name": "m3"}),
                ]
            ),
        )

        result = await app.messaging.send_all([Message(token=t) for t in ("a", "b", "c")])

        assert [r.message_id for r in result.responses] == [None, "m2", "m3"]
        assert isinstance(result.responses[0].exception, UnregisteredError)

    @pytest.mark.asyncio
    async def test_non_object_part_body_fails_that_part(self, app, backend) -> None:
        backend.add(FCM_BATCH, batch_response([(200, []), (200, {"name": "m2"})]))

        result = await app.messaging.send_all([Message(token="a"), Message(token="b")])

        first, second = result.responses
        assert isinstance(first.exception, UnknownError)
        assert first.exception.status_code == 200
        assert first.message_id is None
        assert second.success and second.message_id == "m2"
        assert result.failure_count == 1

    @pytest.mark.asyncio
    async def test_empty_and_oversized(self, app, backend) -> None:
        with pytest.raises(InvalidArgumentError, match="empty"):
            await app.messaging.send_all([])
        with pytest.raises(InvalidArgumentError, match="500"):
            await app.messaging.send_all([Message(token="t")] * 501)

        assert backend.calls(FCM_BATCH) == []

    @pytest.mark.asyncio
    async def test_invalid_message_names_index(self, app, backend) -> None:
        messages = [Message(token="a"), Message(token="b", topic="news")]

        with pytest.raises(InvalidArgumentError, match="index 1"):
            await app.messaging.send_all(messages)

        assert backend.calls(FCM_BATCH) == []

    @pytest.mark.asyncio
    async def test_response_count_mismatch(self, app, backend) -> None:
        backend.add(FCM_BATCH, batch_response([(200, {"name": "m1"})]))

        with pytest.raises(UnknownError, match="expected 2 responses"):
            await app.messaging.send_all([Message(token="a"), Message(token="b")])

    @pytest.mark.asyncio
    async def test_non_multipart_response(self, app, backend) -> None:
        backend.add(FCM_BATCH, httpx.Response(200, json={"unexpected": True}))

        with pytest.raises(UnknownError, match="multipart"):
            await app.messaging.send_all([Message(token="a")])

    @pytest.mark.asyncio
    async def test_whole_batch_failure_raises(self, app, backend) -> None:
        backend.add(
            FCM_BATCH,
            httpx.Response(400, json=fcm_error(400, "INVALID_ARGUMENT", "bad batch")),
        )

        with pytest.raises(InvalidArgumentError, match="bad batch"):
            await app.messaging.send_all([Message(token="a")])


class TestSendMulticast:
    """Tests for multicast sends."""

    @pytest.mark.asyncio
    async def test_fans_out_to_tokens(self, app, backend) -> None:
        backend.add(
            FCM_BATCH,
            batch_response([(200, {"name": "m1"}), (200, {"name": "m2"})]),
        )

        result = await app.messaging.send_multicast(
            MulticastMessage(tokens=["a", "b"], data={"k": "v"})
        )

        assert result.success_count == 2
        content = backend.calls(FCM_BATCH)[0].content.decode()
        assert '{"message":{"data":{"k":"v"},"token":"a"}}' in content
        assert '{"message":{"data":{"k":"v"},"token":"b"}}' in content

    @pytest.mark.asyncio
    async def test_requires_multicast_message(self, app) -> None:
        with pytest.raises(InvalidArgumentError):
            await app.messaging.send_multicast(Message(token="a"))


class TestBatchFraming:
    """Tests for the multipart helpers."""

    def test_serialize_subrequest(self) -> None:
        raw = serialize_subrequest(FCM_SEND, {"message": {"token": "a"}}, {"X-Test": "1"})

        head, body = raw.split(b"\r\n\r\n", 1)
        assert head.split(b"\r\n")[0] == f"POST {FCM_SEND} HTTP/1.1".encode()
        assert b"Content-Length: %d" % len(body) in head
        assert b"X-Test: 1" in head
        assert body == b'{"message":{"token":"a"}}'

    def test_build_batch_entity(self) -> None:
        entity = build_batch_entity(FCM_SEND, [{"a": 1}, {"b": 2}], FCM_HEADERS)

        assert [p.headers["Content-Id"] for p in entity.parts] == ["1", "2"]
        assert all(p.headers["Content-Type"] == "application/http" for p in entity.parts)

    def test_split_and_parse(self) -> None:
        response = batch_response([(200, {"name": "m1"}), (503, {"error": {"status": "UNAVAILABLE"}})])

        parts = split_multipart(response.headers["Content-Type"], response.content)
        parsed = [parse_http_response(p) for p in parts]

        assert [p.status_code for p in parsed] == [200, 503]
        assert parsed[0].json() == {"name": "m1"}
        assert parsed[1].headers["Content-Type"].startswith("application/json")

    def test_malformed_status_line(self) -> None:
        with pytest.raises(UnknownError, match="malformed status line"):
            parse_http_response(b"NOT-HTTP\r\n\r\n{}")


class TestMessagingWithoutProject:
    """Tests for apps that cannot determine a project id."""

    @pytest.mark.asyncio
    async def test_messaging_requires_project(self, clean_env, backend) -> None:
        async with App(
            ImplicitCredential(lambda: AccessToken(token="t")),
            AppConfig(retry=FAST_RETRY),
            transport=backend.transport,
        ) as app:
            with pytest.raises(InvalidArgumentError, match="project id"):
                app.messaging
