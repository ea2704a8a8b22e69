"""
Unit Tests — Lambda entry point
═══════════════════════════════
Tests for docflow/workers/lambda_handler.py

Coverage:
  ✅ SQS Records → partial batch response with only failed ids
  ✅ Missing / empty Records → empty response
  ✅ receive count read from ApproximateReceiveCount
  ✅ Deadline derived from remaining time minus margin
  ✅ Runtime construction failure → every message reported failed
  ✅ Record without messageId → invocation rejected, whole batch retried
"""

from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest

from conftest import envelope_body, event_payload
from docflow.pipeline.processor import BatchProcessor
from docflow.workers import lambda_handler


class FakeContext:
    aws_request_id = "req-abc"

    def __init__(self, remaining_ms: int = 60_000) -> None:
        self._remaining_ms = remaining_ms

    def get_remaining_time_in_millis(self) -> int:
        return self._remaining_ms


def _record(message_id: str, body: str | None = None, receive_count: str = "1") -> dict:
    return {
        "messageId": message_id,
        "receiptHandle": f"rh-{message_id}",
        "body": body if body is not None else envelope_body(event_payload(documentId=message_id)),
        "attributes": {"ApproximateReceiveCount": receive_count},
        "eventSource": "aws:sqs",
    }


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    monkeypatch.setattr(lambda_handler, "configure_logging", lambda: None)


@pytest.fixture
def runtime(monkeypatch, stages):
    fake = SimpleNamespace(processor=BatchProcessor(stages.handler()))
    monkeypatch.setattr(lambda_handler, "_runtime", fake)
    return fake


@pytest.mark.unit
@pytest.mark.workers
class TestLambdaHandler:

    def test_partial_batch_response(self, runtime):
        event = {"Records": [_record("a"), _record("b", body="garbage"), _record("c")]}

        response = lambda_handler.handler(event, FakeContext())

        assert response == {"batchItemFailures": [{"itemIdentifier": "b"}]}

    @pytest.mark.parametrize("event", [{}, {"Records": []}, {"Records": None}, []])
    def test_no_records(self, runtime, event):
        assert lambda_handler.handler(event, FakeContext()) == {"batchItemFailures": []}

    def test_receive_count_parsed(self):
        messages = lambda_handler.parse_records({"Records": [_record("a", receive_count="3")]})

        assert messages[0].receive_count == 3
        assert messages[0].receipt_handle == "rh-a"

    @pytest.mark.parametrize("message_id", [None, ""])
    def test_record_without_message_id_rejects_invocation(self, runtime, stages, message_id):
        nameless = _record("x")
        if message_id is None:
            del nameless["messageId"]
        else:
            nameless["messageId"] = message_id
        event = {"Records": [_record("a"), nameless]}

        with pytest.raises(ValueError, match="no message id"):
            lambda_handler.handler(event, FakeContext())

        stages.thumbnails.generate.assert_not_awaited()

    def test_deadline_fails_slow_messages(self, runtime, stages, derived):
        async def generate(event, ctx):
            if event.document_id == "slow":
                await asyncio.sleep(3600)
            return derived
        stages.thumbnails.generate.side_effect = generate

        margin = lambda_handler.get_settings().invocation_timeout_margin_seconds
        context = FakeContext(remaining_ms=int((margin + 0.2) * 1000))
        event = {"Records": [_record("fast"), _record("slow")]}

        response = lambda_handler.handler(event, context)

        assert response == {"batchItemFailures": [{"itemIdentifier": "slow"}]}

    def test_timeout_without_context(self):
        assert lambda_handler._timeout_seconds(None) is None

    def test_timeout_never_negative(self):
        assert lambda_handler._timeout_seconds(FakeContext(remaining_ms=100)) == 0.0

    def test_runtime_failure_fails_whole_batch(self, monkeypatch):
        async def broken_runtime(*args, **kwargs):
            raise RuntimeError("no credentials")

        monkeypatch.setattr(lambda_handler, "_runtime", None)
        monkeypatch.setattr(lambda_handler, "build_runtime", broken_runtime)
        event = {"Records": [_record("a"), _record("b")]}

        response = lambda_handler.handler(event, FakeContext())

        assert response == {
            "batchItemFailures": [{"itemIdentifier": "a"}, {"itemIdentifier": "b"}]
        }

    def test_runtime_reused_between_invocations(self, monkeypatch, stages):
        built = []

        async def build(*args, **kwargs):
            runtime = SimpleNamespace(processor=BatchProcessor(stages.handler()))
            built.append(runtime)
            return runtime

        monkeypatch.setattr(lambda_handler, "_runtime", None)
        monkeypatch.setattr(lambda_handler, "build_runtime", build)

        lambda_handler.handler({"Records": [_record("a")]}, FakeContext())
        lambda_handler.handler({"Records": [_record("b")]}, FakeContext())

        assert len(built) == 1
