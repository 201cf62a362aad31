"""Messaging client: single, batched and multicast sends plus topic management."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Sequence

from .._version import __version__
from ..core.errors import ErrorFactory
from ..core.http_executor import AsyncHTTPExecutor
from ..errors import InvalidArgumentError, UnknownError
from ..http import Request, with_header
from ..telemetry import get_logger, trace_operation
from ._errors import fcm_error_parser, iid_error_parser
from .batch import build_batch_entity, parse_batch_response
from .encoder import MessageEncoder
from .models import BatchResponse, Message, MulticastMessage, SendResponse
from .topic_mgt import IID_HEADERS, TopicManagementResponse, TopicManager

if TYPE_CHECKING:
    import httpx

    from ..app import App
    from ..core.cancellation import CancellationToken

FCM_URL = "https://fcm.googleapis.com/v1/projects/{project_id}/messages:send"
FCM_BATCH_URL = "https://fcm.googleapis.com/batch"
MAX_BATCH_MESSAGES = 500

FCM_HEADERS = {
    "X-GOOG-API-FORMAT-VERSION": "2",
    "X-FIREBASE-CLIENT": f"fire-admin-python/{__version__}",
}


class MessagingClient:
    """Sends messages for one project."""

    def __init__(
        self,
        executor: AsyncHTTPExecutor,
        project_id: str,
        *,
        topic_manager: TopicManager,
        fcm_url: str = FCM_URL,
        batch_url: str = FCM_BATCH_URL,
    ) -> None:
        if not project_id:
            raise InvalidArgumentError(
                "project id not available; set GOOGLE_CLOUD_PROJECT or initialize the app "
                "with a project id to use messaging"
            )
        self.project_id = project_id
        self._executor = executor
        self._topics = topic_manager
        self._send_url = fcm_url.format(project_id=project_id)
        self._batch_url = batch_url
        self._logger = get_logger()

    @classmethod
    def from_app(cls, app: App) -> MessagingClient:
        config = app.config
        executor = AsyncHTTPExecutor(
            app.http_client,
            config.retry,
            credential=app.credential,
            headers=FCM_HEADERS,
            error_fn=fcm_error_parser,
        )
        iid_executor = AsyncHTTPExecutor(
            app.http_client,
            config.retry,
            credential=app.credential,
            headers=IID_HEADERS,
            error_fn=iid_error_parser,
        )
        return cls(executor, app.project_id or "", topic_manager=TopicManager(iid_executor))

    @staticmethod
    def _request_body(message: Message, dry_run: bool) -> dict[str, Any]:
        body: dict[str, Any] = {"message": MessageEncoder.encode(message)}
        if dry_run:
            body["validate_only"] = True
        return body

    async def send(
        self,
        message: Message,
        *,
        dry_run: bool = False,
        cancel: CancellationToken | None = None,
    ) -> str:
        """Send one message and return its message id.

        With ``dry_run`` the message is validated by the server but not delivered.
        """
        body = self._request_body(message, dry_run)
        with trace_operation("messaging.send", attributes={"dry_run": dry_run}):
            data = await self._executor.execute_json(
                Request("POST", self._send_url, json=body), cancel=cancel
            )
        name = data.get("name")
        if not isinstance(name, str) or not name:
            raise UnknownError("send response did not contain a message id")
        return name

    async def send_all(
        self,
        messages: Sequence[Message],
        *,
        dry_run: bool = False,
        cancel: CancellationToken | None = None,
    ) -> BatchResponse:
        """Send up to 500 messages in one batch call.

        ``responses[i]`` of the result describes ``messages[i]``. Failures of
        individual messages are reported there; only a failure of the whole
        call raises.
        """
        if not messages:
            raise InvalidArgumentError("messages must not be empty")
        if len(messages) > MAX_BATCH_MESSAGES:
            raise InvalidArgumentError(
                f"messages must not contain more than {MAX_BATCH_MESSAGES} elements"
            )
        bodies = []
        for idx, message in enumerate(messages):
            try:
                bodies.append(self._request_body(message, dry_run))
            except InvalidArgumentError as e:
                raise InvalidArgumentError(
                    f"error validating message at index {idx}: {e.message}", cause=e
                ) from e

        entity = build_batch_entity(self._send_url, bodies, FCM_HEADERS)
        with trace_operation("messaging.send_all", attributes={"count": len(bodies)}):
            response = await self._executor.execute(
                Request(
                    "POST",
                    self._batch_url,
                    body=entity,
                    options=[with_header("X-FIREBASE-CLIENT", FCM_HEADERS["X-FIREBASE-CLIENT"])],
                ),
                cancel=cancel,
            )

        parts = parse_batch_response(response.headers.get("Content-Type", ""), response.body)
        if len(parts) != len(bodies):
            raise UnknownError(
                f"expected {len(bodies)} responses in batch, got {len(parts)}",
                http_response=response.raw,
            )
        result = BatchResponse(responses=[self._send_response(part) for part in parts])
        self._logger.info(
            "Batch sent",
            success_count=result.success_count,
            failure_count=result.failure_count,
            dry_run=dry_run,
        )
        return result

    @staticmethod
    def _send_response(part: httpx.Response) -> SendResponse:
        if 200 <= part.status_code < 300:
            try:
                data = part.json()
            except ValueError:
                data = {}
            if not isinstance(data, dict):
                return SendResponse(
                    exception=UnknownError(
                        f"unexpected batch part body: {part.text}", http_response=part
                    )
                )
            return SendResponse(message_id=data.get("name"))
        return SendResponse(
            exception=ErrorFactory.from_http_response(part, parser=fcm_error_parser)
        )

    async def send_multicast(
        self,
        multicast: MulticastMessage,
        *,
        dry_run: bool = False,
        cancel: CancellationToken | None = None,
    ) -> BatchResponse:
        """Send one payload to every token of ``multicast``."""
        if not isinstance(multicast, MulticastMessage):
            raise InvalidArgumentError("message must be a MulticastMessage instance")
        return await self.send_all(multicast.to_messages(), dry_run=dry_run, cancel=cancel)

    async def subscribe_to_topic(
        self,
        tokens: str | Sequence[str],
        topic: str,
        *,
        cancel: CancellationToken | None = None,
    ) -> TopicManagementResponse:
        return await self._topics.subscribe(tokens, topic, cancel=cancel)

    async def unsubscribe_from_topic(
        self,
        tokens: str | Sequence[str],
        topic: str,
        *,
        cancel: CancellationToken | None = None,
    ) -> TopicManagementResponse:
        return await self._topics.unsubscribe(tokens, topic, cancel=cancel)
