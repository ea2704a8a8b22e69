"""
SQS Poller — long-running alternative to the Lambda event source
═══════════════════════════════════════════════════════════════

  loop until SIGTERM / SIGINT:
    ReceiveMessage (long poll, ApproximateReceiveCount)
      └─► BatchProcessor.process_batch(timeout = visibility - margin,
                                        cancel = stop event)
            ├─ succeeded ─► DeleteMessageBatch
            └─ failed    ─► left alone; visible again after the visibility
                            timeout, dead-lettered by the redrive policy
                            after maxReceiveCount receives

Stopping cancels the in-flight batch; its unfinished messages are not
deleted, so another consumer picks them up. Messages that arrive from a
long poll after stop was requested are not processed: their visibility
timeout is reset to 0 so they are immediately available again.

Run with::

    python -m docflow.workers.sqs_poller
"""

from __future__ import annotations

import asyncio
import logging
import signal
import uuid
from contextlib import suppress
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from docflow.core.config import get_settings
from docflow.core.logging import configure_logging
from docflow.pipeline.processor import BatchProcessor
from docflow.pipeline.results import BatchOutcome
from docflow.schemas.events import QueueMessage
from docflow.workers.runtime import WorkerRuntime, build_runtime

logger = logging.getLogger(__name__)

# SQS *Batch calls (delete, change visibility) accept at most 10 entries
ENTRIES_PER_CALL = 10

# Pause after a failed ReceiveMessage before trying again
RECEIVE_ERROR_BACKOFF_SECONDS = 5.0


class SqsPoller:
    """
    Constructor args:
        sqs                : entered aioboto3 SQS client
        processor          : BatchProcessor shared with every batch
        queue_url          : source queue
        wait_time_seconds  : long-poll wait (max 20)
        max_messages       : batch size (max 10)
        visibility_timeout : seconds a received batch stays invisible
        timeout_margin     : seconds reserved before the visibility timeout
    """

    def __init__(
        self,
        sqs:                Any,
        processor:          BatchProcessor,
        *,
        queue_url:          str,
        wait_time_seconds:  int = 20,
        max_messages:       int = 10,
        visibility_timeout: int = 300,
        timeout_margin:     float = 5.0,
    ) -> None:
        self._sqs                = sqs
        self._processor          = processor
        self._queue_url          = queue_url
        self._wait_time_seconds  = wait_time_seconds
        self._max_messages       = max_messages
        self._visibility_timeout = visibility_timeout
        self._timeout_margin     = timeout_margin
        self._stop               = asyncio.Event()

    @classmethod
    def from_runtime(cls, runtime: WorkerRuntime) -> "SqsPoller":
        s = runtime.settings
        return cls(
            runtime.sqs,
            runtime.processor,
            queue_url=s.sqs_queue_url,
            wait_time_seconds=s.sqs_wait_time_seconds,
            max_messages=s.sqs_max_messages,
            visibility_timeout=s.sqs_visibility_timeout,
            timeout_margin=s.invocation_timeout_margin_seconds,
        )

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def stop(self) -> None:
        if not self._stop.is_set():
            logger.info("Poller stop requested | queue=%s", self._queue_url)
        self._stop.set()

    async def run(self) -> None:
        logger.info(
            "Poller started | queue=%s batch=%d wait=%ds visibility=%ds",
            self._queue_url, self._max_messages,
            self._wait_time_seconds, self._visibility_timeout,
        )
        while not self._stop.is_set():
            await self.poll_once()
        logger.info("Poller stopped | queue=%s", self._queue_url)

    async def poll_once(self) -> BatchOutcome | None:
        """Receive, process and acknowledge one batch. None = nothing received."""
        try:
            resp = await self._sqs.receive_message(
                QueueUrl=self._queue_url,
                MaxNumberOfMessages=self._max_messages,
                WaitTimeSeconds=self._wait_time_seconds,
                VisibilityTimeout=self._visibility_timeout,
                AttributeNames=["ApproximateReceiveCount"],
            )
        except (ClientError, BotoCoreError) as exc:
            logger.error("ReceiveMessage failed | queue=%s error=%s", self._queue_url, exc)
            await self._pause(RECEIVE_ERROR_BACKOFF_SECONDS)
            return None

        raw = resp.get("Messages") or []
        if not raw:
            return None

        messages: list[QueueMessage] = []
        for m in raw:
            try:
                messages.append(QueueMessage.from_sqs_message(m))
            except ValueError as exc:
                logger.error("Message skipped, left for redelivery | error=%s", exc)

        if self.stopping:
            # Received during shutdown: hand the messages straight back.
            await self._release(messages)
            return None

        outcome = await self._processor.process_batch(
            messages,
            request_id=uuid.uuid4().hex[:12],
            timeout=max(1.0, self._visibility_timeout - self._timeout_margin),
            cancel=self._stop,
        )
        await self._delete_succeeded(messages, outcome)
        return outcome

    async def _delete_succeeded(self, messages: list[QueueMessage], outcome: BatchOutcome) -> None:
        succeeded = set(outcome.succeeded_ids)
        handles = [
            m.receipt_handle for m in messages
            if m.message_id in succeeded and m.receipt_handle
        ]
        for start in range(0, len(handles), ENTRIES_PER_CALL):
            chunk = handles[start:start + ENTRIES_PER_CALL]
            entries = [
                {"Id": str(i), "ReceiptHandle": handle}
                for i, handle in enumerate(chunk)
            ]
            try:
                resp = await self._sqs.delete_message_batch(
                    QueueUrl=self._queue_url, Entries=entries,
                )
            except (ClientError, BotoCoreError) as exc:
                # Undeleted messages are redelivered and reprocessed idempotently.
                logger.error("DeleteMessageBatch failed | count=%d error=%s", len(entries), exc)
                continue
            for failed in resp.get("Failed", []):
                logger.warning(
                    "Delete rejected | entry=%s code=%s message=%s",
                    failed.get("Id"), failed.get("Code"), failed.get("Message"),
                )

    async def _release(self, messages: list[QueueMessage]) -> None:
        """Make unprocessed messages visible again immediately."""
        handles = [m.receipt_handle for m in messages if m.receipt_handle]
        logger.info("Releasing unprocessed messages | count=%d", len(handles))
        for start in range(0, len(handles), ENTRIES_PER_CALL):
            chunk = handles[start:start + ENTRIES_PER_CALL]
            entries = [
                {"Id": str(i), "ReceiptHandle": handle, "VisibilityTimeout": 0}
                for i, handle in enumerate(chunk)
            ]
            try:
                await self._sqs.change_message_visibility_batch(
                    QueueUrl=self._queue_url, Entries=entries,
                )
            except (ClientError, BotoCoreError) as exc:
                logger.error(
                    "ChangeMessageVisibilityBatch failed | count=%d error=%s", len(entries), exc,
                )

    async def _pause(self, seconds: float) -> None:
        with suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._stop.wait(), timeout=seconds)


# ---------------------------------------------------------------------------
# Process entry point
# ---------------------------------------------------------------------------

async def _serve() -> None:
    runtime = await build_runtime(get_settings(), with_sqs=True)
    poller  = SqsPoller.from_runtime(runtime)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, poller.stop)

    try:
        await poller.run()
    finally:
        await runtime.aclose()


def main() -> None:
    configure_logging()
    if not get_settings().sqs_queue_url:
        logger.error("SQS_QUEUE_URL is not set; nothing to poll")
        raise SystemExit(2)
    asyncio.run(_serve())


if __name__ == "__main__":
    main()
