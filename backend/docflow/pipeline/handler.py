"""
Record Handler — one document event through the enrichment stages
═════════════════════════════════════════════════════════════════

  ┌─────────────┐  fail → RecordOutcome.failure (remaining stages not run)
  │ 1 thumbnail │────────────────────────────────────────────────────────►
  └─────┬───────┘
        │ DerivedImage (bucket, derived key)
  ┌─────▼───────┐  fail → labels = []            ┐
  │ 2 labels    │                                │
  ├─────────────┤  fail → text = ""              │ best-effort enrichment:
  │ 3 text      │                                │ recorded in PipelineResult,
  ├─────────────┤  skipped when labels and text  │ never fails the message
  │ 4 attributes│  are both empty                │
  ├─────────────┤                                │
  │ 5 notify    │                                ┘
  └─────────────┘

The derived image is a hard dependency of every later stage, so the
thumbnail stage is the only short-circuit point. Everything after it is
enrichment whose partial absence must not cause redelivery storms.

A stage whose settings are incomplete is skipped (warning, not called).
Any exception that is not a declared StageError/ConfigurationMissing is a
defect: it is caught here and turned into a failed outcome so it cannot
escape into the batch loop. asyncio.CancelledError is not an Exception
and propagates untouched; the BatchProcessor reports it as a failure.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, TypeVar

from docflow.pipeline.context import InvocationContext
from docflow.pipeline.errors import ConfigurationMissing, Stage, StageError
from docflow.pipeline.results import PipelineResult, RecordOutcome, StageStatus
from docflow.schemas.events import DocumentEvent
from docflow.stages.base import (
    AttributeWriter,
    LabelDetector,
    Notifier,
    PipelineStage,
    TextExtractor,
    ThumbnailGenerator,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_DOWNSTREAM = (Stage.LABELS, Stage.TEXT, Stage.ATTRIBUTES, Stage.NOTIFY)


class RecordHandler:
    """
    Stateless orchestrator; safe to share across concurrent messages.

    Usage::

        handler = RecordHandler(thumbnails, labels, text, attributes, notifier)
        outcome = await handler.handle(event, ctx)
    """

    def __init__(
        self,
        thumbnails: ThumbnailGenerator,
        labels:     LabelDetector,
        text:       TextExtractor,
        attributes: AttributeWriter,
        notifier:   Notifier,
    ) -> None:
        self._thumbnails = thumbnails
        self._labels     = labels
        self._text       = text
        self._attributes = attributes
        self._notifier   = notifier

    async def handle(self, event: DocumentEvent, ctx: InvocationContext) -> RecordOutcome:
        log = ctx.logger(logger)

        if not event.is_create:
            log.info("Event ignored | type=%s", event.type)
            return RecordOutcome.skipped(f"event type '{event.type}' is not handled")

        result = PipelineResult()
        try:
            return await self._run(event, ctx, result, log)
        except (StageError, ConfigurationMissing) as exc:
            # Raised outside a stage call (e.g. by a helper); still declared.
            log.warning("Pipeline aborted | error=%s", exc)
            return RecordOutcome.failure(str(exc), result=result)
        except Exception as exc:
            log.error(
                "Unexpected pipeline error | error=%s: %s",
                type(exc).__name__, exc, exc_info=True,
            )
            return RecordOutcome.failure(
                f"unexpected error: {type(exc).__name__}: {exc}", result=result,
            )

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def _run(
        self,
        event:  DocumentEvent,
        ctx:    InvocationContext,
        result: PipelineResult,
        log:    logging.LoggerAdapter,
    ) -> RecordOutcome:
        log.info("Pipeline start | bucket=%s key=%s", event.s3_bucket, event.s3_key)

        # ── Stage 1: thumbnail (the only fatal stage) ───────────────────
        if self._unconfigured(self._thumbnails, result, log):
            return self._without_derived_image(result, log)
        try:
            derived = await self._thumbnails.generate(event, ctx)
        except ConfigurationMissing as exc:
            self._skip(Stage.THUMBNAIL, exc.names, result, log)
            return self._without_derived_image(result, log)
        except StageError as exc:
            result.mark(Stage.THUMBNAIL, StageStatus.FAILED, str(exc))
            log.warning("Thumbnail failed, remaining stages aborted | error=%s", exc)
            return RecordOutcome.failure(str(exc), result=result)

        result.derived = derived
        result.mark(Stage.THUMBNAIL, StageStatus.SUCCEEDED)

        # ── Stage 2: labels ─────────────────────────────────────────────
        labels = await self._optional(
            self._labels,
            lambda: self._labels.detect(event, derived, ctx),
            result, log,
        )
        result.labels = list(labels or [])

        # ── Stage 3: text ───────────────────────────────────────────────
        text = await self._optional(
            self._text,
            lambda: self._text.extract(event, derived, ctx),
            result, log,
        )
        result.text = text or ""

        # ── Stage 4: attribute write-back ───────────────────────────────
        if not result.labels and not result.text:
            result.mark(Stage.ATTRIBUTES, StageStatus.SKIPPED)
            log.info("Attribute write skipped, no labels or text")
        else:
            await self._optional(
                self._attributes,
                lambda: self._attributes.write(
                    event, result.labels, result.text, ctx, derived=derived,
                ),
                result, log,
            )

        # ── Stage 5: notification ───────────────────────────────────────
        await self._optional(
            self._notifier,
            lambda: self._notifier.notify(event, derived, result.labels, ctx),
            result, log,
        )

        log.info(
            "Pipeline complete | derived_key=%s labels=%d text_chars=%d failed_stages=%s",
            derived.key, len(result.labels), len(result.text),
            ",".join(s.value for s in result.failed_stages()) or "-",
        )
        return RecordOutcome.ok(result)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _optional(
        self,
        impl:   PipelineStage,
        call:   Callable[[], Awaitable[T]],
        result: PipelineResult,
        log:    logging.LoggerAdapter,
    ) -> T | None:
        """Run a non-fatal stage; StageError and missing settings yield None."""
        if self._unconfigured(impl, result, log):
            return None
        try:
            value = await call()
        except ConfigurationMissing as exc:
            self._skip(impl.stage, exc.names, result, log)
            return None
        except StageError as exc:
            result.mark(impl.stage, StageStatus.FAILED, str(exc))
            log.warning("Stage failed, continuing | stage=%s error=%s", impl.stage.value, exc)
            return None
        result.mark(impl.stage, StageStatus.SUCCEEDED)
        return value

    def _unconfigured(
        self, impl: PipelineStage, result: PipelineResult, log: logging.LoggerAdapter,
    ) -> bool:
        missing = impl.missing_configuration()
        if missing:
            self._skip(impl.stage, missing, result, log)
            return True
        return False

    @staticmethod
    def _skip(
        stage: Stage, names: list[str], result: PipelineResult, log: logging.LoggerAdapter,
    ) -> None:
        result.mark(stage, StageStatus.SKIPPED)
        log.warning(
            "Stage skipped, configuration missing | stage=%s missing=%s",
            stage.value, ",".join(names),
        )

    @staticmethod
    def _without_derived_image(result: PipelineResult, log: logging.LoggerAdapter) -> RecordOutcome:
        for stage in _DOWNSTREAM:
            result.mark(stage, StageStatus.SKIPPED)
        log.warning("No derived image, enrichment skipped")
        return RecordOutcome.ok(result)
