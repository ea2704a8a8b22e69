"""
AWS Lambda entry point — SQS event source with partial batch responses

The event source mapping must enable ``ReportBatchItemFailures``; the
returned ``batchItemFailures`` then lists exactly the messages SQS should
make visible again. Everything else in the batch is deleted.

One event loop and one WorkerRuntime live for the lifetime of the
execution environment, so aioboto3 / httpx connections are reused across
warm invocations.

Deadline: the batch is given ``remaining time - margin`` seconds. Messages
still running at the deadline are cancelled and reported as failures, so a
Lambda timeout never turns unfinished work into silent deletions.

If the runtime itself cannot be built, every message in the batch is
reported failed. The only error handler() raises is for a record without a
messageId: it cannot be listed in ``batchItemFailures``, so the invocation
fails and SQS retries the whole batch.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from docflow.core.config import get_settings
from docflow.core.logging import configure_logging
from docflow.pipeline.results import BatchOutcome
from docflow.schemas.events import QueueMessage
from docflow.workers.runtime import WorkerRuntime, build_runtime

logger = logging.getLogger(__name__)

_loop:    asyncio.AbstractEventLoop | None = None
_runtime: WorkerRuntime | None = None


def _event_loop() -> asyncio.AbstractEventLoop:
    global _loop
    if _loop is None or _loop.is_closed():
        _loop = asyncio.new_event_loop()
        asyncio.set_event_loop(_loop)
    return _loop


async def _get_runtime() -> WorkerRuntime:
    global _runtime
    if _runtime is None:
        _runtime = await build_runtime(get_settings())
    return _runtime


def _timeout_seconds(context: Any) -> float | None:
    """Seconds the batch may run, derived from the Lambda context."""
    remaining = getattr(context, "get_remaining_time_in_millis", None)
    if remaining is None:
        return None
    margin = get_settings().invocation_timeout_margin_seconds
    return max(0.0, remaining() / 1000.0 - margin)


def parse_records(event: Any) -> list[QueueMessage]:
    records = event.get("Records") if isinstance(event, dict) else None
    return [
        QueueMessage.from_lambda_record(record)
        for record in records or []
        if isinstance(record, dict)
    ]


async def _process(messages: list[QueueMessage], request_id: str, timeout: float | None) -> BatchOutcome:
    runtime = await _get_runtime()
    return await runtime.processor.process_batch(
        messages, request_id=request_id, timeout=timeout,
    )


def handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    configure_logging()
    request_id = getattr(context, "aws_request_id", "local-test")
    try:
        messages = parse_records(event)
    except ValueError as exc:
        logger.error("Invocation rejected, whole batch retried | request_id=%s error=%s", request_id, exc)
        raise

    logger.info("Invocation start | request_id=%s records=%d", request_id, len(messages))

    try:
        outcome = _event_loop().run_until_complete(
            _process(messages, request_id, _timeout_seconds(context))
        )
    except Exception as exc:
        logger.error(
            "Invocation failed, reporting whole batch | request_id=%s error=%s: %s",
            request_id, type(exc).__name__, exc, exc_info=True,
        )
        return {
            "batchItemFailures": [{"itemIdentifier": m.message_id} for m in messages]
        }

    return outcome.to_sqs_response()
