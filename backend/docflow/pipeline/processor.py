"""
Batch Processor — per-message failure isolation for one SQS batch
═════════════════════════════════════════════════════════════════

  messages ──► fan-out (bounded by a semaphore)
                 │  decode  ── DecodeError ─────────────► failure (terminal)
                 │  handle  ── RecordOutcome ───────────► success | failure
                 │  any other exception ────────────────► failure
                 │  cancelled (deadline / cancel event) ► failure
               ◄─┘
  BatchOutcome (message id → outcome) ──► to_sqs_response()

Guarantees:
  - No exception escapes process_batch(); one poisoned message never fails
    the batch. Cancelling the caller's own task is the exception: message
    tasks are cancelled, then CancelledError propagates and no outcome is
    returned. Use ``timeout`` or ``cancel`` to get an outcome for an
    interrupted batch.
  - A message is reported successful only if its pipeline finished; work
    interrupted by the invocation deadline or the cancel event is always
    reported as failed so SQS redelivers it.
  - No in-process retries. Redelivery (visibility timeout) is the retry
    mechanism and the queue's redrive policy dead-letters a message after
    maxReceiveCount failed receives.

Only sizes, counts, ids and error summaries are logged here; document
payloads are never logged at this layer.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Iterable

from docflow.pipeline.context import InvocationContext
from docflow.pipeline.decoder import decode_with_envelope
from docflow.pipeline.errors import DecodeError
from docflow.pipeline.handler import RecordHandler
from docflow.pipeline.results import BatchOutcome, RecordOutcome
from docflow.schemas.events import DocumentEvent, NotificationEnvelope, QueueMessage

logger = logging.getLogger(__name__)

Decoder = Callable[[str | bytes], tuple[NotificationEnvelope, DocumentEvent]]

# How long cancelled message tasks get to unwind before the batch returns
CANCEL_GRACE_SECONDS = 1.0


class BatchProcessor:
    """
    Processes one batch of queue messages concurrently.

    Constructor args:
        handler           : RecordHandler shared by every message
        concurrency       : max messages in flight at once
        max_receive_count : redrive threshold of the source queue (logging only)

    Usage::

        processor = BatchProcessor(handler, concurrency=10)
        outcome = await processor.process_batch(messages, timeout=25.0)
        return outcome.to_sqs_response()
    """

    def __init__(
        self,
        handler:           RecordHandler,
        *,
        concurrency:       int = 10,
        max_receive_count: int = 3,
        decoder:           Decoder = decode_with_envelope,
    ) -> None:
        self._handler           = handler
        self._concurrency       = max(1, concurrency)
        self._max_receive_count = max_receive_count
        self._decode            = decoder

    async def process_batch(
        self,
        messages:   Iterable[QueueMessage],
        *,
        request_id: str = "local",
        timeout:    float | None = None,
        cancel:     asyncio.Event | None = None,
    ) -> BatchOutcome:
        """
        Process every message; return the per-message outcome mapping.

        timeout : seconds until unfinished messages are cancelled and failed
        cancel  : external cancellation signal with the same effect
        """
        batch   = list(messages)
        outcome = BatchOutcome()
        if not batch:
            logger.info("Empty batch | request_id=%s", request_id)
            return outcome

        t0 = time.monotonic()
        logger.info(
            "Processing batch | size=%d concurrency=%d request_id=%s",
            len(batch), self._concurrency, request_id,
        )

        semaphore = asyncio.Semaphore(self._concurrency)
        tasks: dict[asyncio.Task, QueueMessage] = {
            asyncio.ensure_future(self._process_one(m, request_id, semaphore)): m
            for m in batch
        }

        try:
            interrupted = await self._wait(set(tasks), timeout, cancel)
        except asyncio.CancelledError:
            await self._cancel_unfinished(tasks, "caller cancelled")
            logger.warning(
                "Batch cancelled by caller | size=%d finished=%d request_id=%s",
                len(batch), sum(1 for t in tasks if t.done() and not t.cancelled()), request_id,
            )
            raise

        if interrupted:
            await self._cancel_unfinished(tasks, interrupted)

        for task, message in tasks.items():
            self._record(outcome, message, self._outcome_of(task, interrupted))

        self._log_summary(batch, outcome, request_id, time.monotonic() - t0)
        return outcome

    # ------------------------------------------------------------------
    # Per-message work
    # ------------------------------------------------------------------

    async def _process_one(
        self,
        message:    QueueMessage,
        request_id: str,
        semaphore:  asyncio.Semaphore,
    ) -> RecordOutcome:
        ctx = InvocationContext(
            message_id=message.message_id,
            request_id=request_id,
            receive_count=message.receive_count,
        )
        async with semaphore:
            try:
                envelope, event = self._decode(message.body)
            except DecodeError as exc:
                ctx.logger(logger).error("Message rejected, cannot decode | error=%s", exc)
                return RecordOutcome.failure(str(exc), terminal=True)
            except Exception as exc:
                ctx.logger(logger).error(
                    "Unexpected decode error | error=%s: %s",
                    type(exc).__name__, exc, exc_info=True,
                )
                return RecordOutcome.failure(f"unexpected decode error: {exc}", terminal=True)

            ctx = ctx.with_event(envelope.message_id, event.document_id)
            try:
                return await self._handler.handle(event, ctx)
            except Exception as exc:
                ctx.logger(logger).error(
                    "Unexpected handler error | error=%s: %s",
                    type(exc).__name__, exc, exc_info=True,
                )
                return RecordOutcome.failure(f"unexpected handler error: {exc}")

    # ------------------------------------------------------------------
    # Waiting / cancellation
    # ------------------------------------------------------------------

    @staticmethod
    async def _wait(
        pending: set[asyncio.Task],
        timeout: float | None,
        cancel:  asyncio.Event | None,
    ) -> str | None:
        """Wait for all tasks; return why waiting stopped early, or None."""
        loop     = asyncio.get_running_loop()
        deadline = loop.time() + timeout if timeout is not None else None
        cancel_waiter = asyncio.ensure_future(cancel.wait()) if cancel is not None else None

        try:
            while pending:
                if cancel is not None and cancel.is_set():
                    return "cancelled"
                remaining = None
                if deadline is not None:
                    remaining = deadline - loop.time()
                    if remaining <= 0:
                        return "deadline exceeded"

                waiting = set(pending)
                if cancel_waiter is not None:
                    waiting.add(cancel_waiter)
                done, _ = await asyncio.wait(
                    waiting, timeout=remaining, return_when=asyncio.FIRST_COMPLETED,
                )
                pending -= done
            return None
        finally:
            if cancel_waiter is not None and not cancel_waiter.done():
                cancel_waiter.cancel()

    @staticmethod
    async def _cancel_unfinished(tasks: dict[asyncio.Task, QueueMessage], reason: str) -> None:
        unfinished = [t for t in tasks if not t.done()]
        if not unfinished:
            return
        logger.warning(
            "Cancelling unfinished messages | count=%d reason=%s", len(unfinished), reason,
        )
        for task in unfinished:
            task.cancel()
        await asyncio.wait(unfinished, timeout=CANCEL_GRACE_SECONDS)

    @staticmethod
    def _outcome_of(task: asyncio.Task, interrupted: str | None) -> RecordOutcome:
        if not task.done() or task.cancelled():
            return RecordOutcome.failure(f"not finished: {interrupted or 'cancelled'}")
        exc = task.exception()
        if exc is not None:
            return RecordOutcome.failure(f"unexpected error: {type(exc).__name__}: {exc}")
        return task.result()

    @staticmethod
    def _record(outcome: BatchOutcome, message: QueueMessage, result: RecordOutcome) -> None:
        # A duplicated id in one batch must stay failed if any copy failed.
        existing = outcome.outcomes.get(message.message_id)
        if existing is not None and not existing.success:
            return
        outcome.record(message.message_id, result)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def _log_summary(
        self,
        batch:      list[QueueMessage],
        outcome:    BatchOutcome,
        request_id: str,
        elapsed:    float,
    ) -> None:
        by_id = {m.message_id: m for m in batch}
        for message_id in outcome.failed_ids:
            record  = outcome[message_id]
            message = by_id[message_id]
            if message.receive_count >= self._max_receive_count:
                logger.warning(
                    "Message failed on final receive, will be dead-lettered | "
                    "message_id=%s receive_count=%d max_receive_count=%d reason=%s",
                    message_id, message.receive_count, self._max_receive_count, record.reason,
                )
            else:
                logger.warning(
                    "Message failed, left for redelivery | message_id=%s receive_count=%d "
                    "terminal=%s reason=%s",
                    message_id, message.receive_count, record.terminal, record.reason,
                )

        ignored = sum(1 for o in outcome.outcomes.values() if o.ignored)
        logger.info(
            "Batch complete | size=%d succeeded=%d failed=%d ignored=%d "
            "stage_failures=%s elapsed_ms=%.0f request_id=%s",
            len(batch), len(outcome.succeeded_ids), outcome.failure_count, ignored,
            outcome.stage_failure_counts() or "-", elapsed * 1000, request_id,
        )
