"""Property tests for batch sends and topic result accounting."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest
from hypothesis import given, settings, strategies as st

from firebase_admin_sdk import AccessToken, ImplicitCredential
from firebase_admin_sdk.core.http_executor import AsyncHTTPExecutor
from firebase_admin_sdk.messaging import BatchResponse, Message, TopicManagementResponse
from firebase_admin_sdk.messaging._errors import IID_ERROR_CODES, fcm_error_parser
from firebase_admin_sdk.messaging.batch import build_batch_entity, split_multipart
from firebase_admin_sdk.messaging.client import FCM_HEADERS, MessagingClient
from firebase_admin_sdk.messaging.topic_mgt import TopicManager, normalize_topic
from support import FAST_RETRY, FCM_BATCH, FCM_SEND, PROJECT_ID, MockBackend, batch_response

part_statuses = st.lists(st.sampled_from([200, 400, 404, 500, 503]), min_size=1, max_size=20)
topic_results = st.lists(
    st.one_of(
        st.just({}),
        st.sampled_from(sorted(IID_ERROR_CODES)).map(lambda code: {"error": code}),
        st.just({"error": "SOMETHING_NEW"}),
    ),
    max_size=50,
)
topic_names = st.text(
    alphabet="abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789-_.~%",
    min_size=1,
    max_size=30,
)


def part_body(index: int, status: int) -> dict:
    if status == 200:
        return {"name": f"projects/{PROJECT_ID}/messages/{index}"}
    return {"error": {"code": status, "message": f"failure {index}"}}


async def send_batch(statuses: list[int]) -> BatchResponse:
    backend = MockBackend()
    backend.add(
        FCM_BATCH,
        batch_response([(status, part_body(i, status)) for i, status in enumerate(statuses)]),
    )
    credential = ImplicitCredential(lambda: AccessToken(token="t"))
    async with httpx.AsyncClient(transport=backend.transport) as client:
        executor = AsyncHTTPExecutor(
            client, FAST_RETRY, credential=credential, headers=FCM_HEADERS, error_fn=fcm_error_parser
        )
        messaging = MessagingClient(executor, PROJECT_ID, topic_manager=TopicManager(executor))
        return await messaging.send_all([Message(token=f"t{i}") for i in range(len(statuses))])


@pytest.mark.property
class TestBatchProperties:
    """Property tests for multipart batches."""

    @given(statuses=part_statuses)
    @settings(max_examples=50, deadline=None)
    def test_responses_follow_input_order(self, statuses: list[int]) -> None:
        """Property: The i-th response reports the outcome of the i-th message."""
        result = asyncio.run(send_batch(statuses))

        assert len(result.responses) == len(statuses)
        for index, (status, response) in enumerate(zip(statuses, result.responses)):
            if status == 200:
                assert response.success
                assert response.message_id == f"projects/{PROJECT_ID}/messages/{index}"
                assert response.exception is None
            else:
                assert not response.success
                assert response.message_id is None
                assert response.exception.status_code == status

    @given(statuses=part_statuses)
    @settings(max_examples=50, deadline=None)
    def test_counts_add_up(self, statuses: list[int]) -> None:
        """Property: Success and failure counts partition the batch."""
        result = asyncio.run(send_batch(statuses))

        assert result.success_count == statuses.count(200)
        assert result.success_count + result.failure_count == len(statuses)

    @given(bodies=st.lists(st.dictionaries(st.text(max_size=5), st.integers()), min_size=1, max_size=20))
    @settings(max_examples=50)
    def test_entity_parts_split_back(self, bodies: list[dict]) -> None:
        """Property: An encoded batch entity splits into one part per body, in order."""
        entity = build_batch_entity(FCM_SEND, bodies, FCM_HEADERS)

        parts = split_multipart(entity.content_type, entity.encode())

        assert len(parts) == len(bodies)
        for part, body in zip(parts, bodies):
            assert json.dumps(body, separators=(",", ":")).encode() in part


@pytest.mark.property
class TestTopicProperties:
    """Property tests for topic management results."""

    @given(results=topic_results)
    @settings(max_examples=100)
    def test_result_accounting(self, results: list[dict]) -> None:
        """Property: Errors are reported at exactly the positions holding an error."""
        response = TopicManagementResponse.from_results(results)

        failed = [i for i, r in enumerate(results) if r]
        assert [e.index for e in response.errors] == failed
        assert response.failure_count == len(failed)
        assert response.success_count + response.failure_count == len(results)

    @given(results=topic_results)
    @settings(max_examples=100)
    def test_reasons_lead_with_kind(self, results: list[dict]) -> None:
        """Property: Known codes give '<kind>: <description>', unknown codes 'unknown-error'."""
        response = TopicManagementResponse.from_results(results)

        for error in response.errors:
            code = results[error.index]["error"]
            if code in IID_ERROR_CODES:
                kind, _, description = error.reason.partition(": ")
                assert kind and description == IID_ERROR_CODES[code][1]
            else:
                assert error.reason == "unknown-error"

    @given(topic=topic_names)
    @settings(max_examples=100)
    def test_normalize_topic_is_idempotent(self, topic: str) -> None:
        """Property: Normalizing twice equals normalizing once."""
        normalized = normalize_topic(topic)

        assert normalized == f"/topics/{topic}"
        assert normalize_topic(normalized) == normalized
