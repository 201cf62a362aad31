"""Topic subscription management through the instance ID service."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Sequence

from ..errors import InvalidArgumentError
from ..http import Request
from ..models import BulkResult, ErrorInfo
from ..telemetry import get_logger, trace_operation
from ._errors import IID_ERROR_CODES, UnknownMessagingError
from .encoder import TOPIC_PREFIX, TOPIC_RE

if TYPE_CHECKING:
    from ..core.cancellation import CancellationToken
    from ..core.http_executor import AsyncHTTPExecutor

IID_URL = "https://iid.googleapis.com/iid/v1"
IID_HEADERS = {"access_token_auth": "true"}
MAX_TOKENS = 1000


class TopicManagementResponse(BulkResult):
    """Per-token outcome of a subscribe or unsubscribe call."""

    @classmethod
    def from_results(cls, results: list[dict[str, Any]]) -> TopicManagementResponse:
        errors = []
        for idx, result in enumerate(results):
            if result:
                errors.append(ErrorInfo(index=idx, reason=iid_reason(result.get("error"))))
        return cls(
            success_count=len(results) - len(errors),
            failure_count=len(errors),
            errors=errors,
        )


def iid_reason(code: Any) -> str:
    """Human-readable reason for an IID error code, led by its error kind."""
    known = IID_ERROR_CODES.get(code) if isinstance(code, str) else None
    if known is None:
        return UnknownMessagingError.default_kind
    cls, description = known
    return f"{cls.default_kind or cls.default_code.kind}: {description}"


def normalize_tokens(tokens: str | Sequence[str]) -> list[str]:
    if isinstance(tokens, str):
        tokens = [tokens]
    if not isinstance(tokens, Sequence) or not tokens:
        raise InvalidArgumentError("tokens must be a non-empty string or list of strings")
    if len(tokens) > MAX_TOKENS:
        raise InvalidArgumentError(f"tokens list must not contain more than {MAX_TOKENS} items")
    for token in tokens:
        if not isinstance(token, str) or not token:
            raise InvalidArgumentError("tokens must be non-empty strings")
    return list(tokens)


def normalize_topic(topic: str) -> str:
    """Validate ``topic`` and return it with the ``/topics/`` prefix."""
    if not isinstance(topic, str) or not topic:
        raise InvalidArgumentError("topic must be a non-empty string")
    if not topic.startswith(TOPIC_PREFIX):
        topic = TOPIC_PREFIX + topic
    if not TOPIC_RE.match(topic):
        raise InvalidArgumentError(f"malformed topic name: {topic!r}")
    return topic


class TopicManager:
    def __init__(self, executor: AsyncHTTPExecutor, *, iid_url: str = IID_URL) -> None:
        self._executor = executor
        self._iid_url = iid_url
        self._logger = get_logger()

    async def subscribe(
        self,
        tokens: str | Sequence[str],
        topic: str,
        *,
        cancel: CancellationToken | None = None,
    ) -> TopicManagementResponse:
        return await self._manage(tokens, topic, "batchAdd", cancel)

    async def unsubscribe(
        self,
        tokens: str | Sequence[str],
        topic: str,
        *,
        cancel: CancellationToken | None = None,
    ) -> TopicManagementResponse:
        return await self._manage(tokens, topic, "batchRemove", cancel)

    async def _manage(
        self,
        tokens: str | Sequence[str],
        topic: str,
        operation: str,
        cancel: CancellationToken | None,
    ) -> TopicManagementResponse:
        token_list = normalize_tokens(tokens)
        to = normalize_topic(topic)
        with trace_operation(f"messaging.{operation}", attributes={"count": len(token_list)}):
            data = await self._executor.execute_json(
                Request(
                    "POST",
                    f"{self._iid_url}:{operation}",
                    json={"to": to, "registration_tokens": token_list},
                ),
                cancel=cancel,
            )
        results = data.get("results")
        if not isinstance(results, list):
            results = []
        response = TopicManagementResponse.from_results(results)
        self._logger.info(
            "Topic management completed",
            operation=operation,
            topic=to,
            success_count=response.success_count,
            failure_count=response.failure_count,
        )
        return response
