"""
Pipeline Stages — Abstract Capabilities

The RecordHandler only speaks these five interfaces; concrete providers
(S3 + Pillow, Rekognition, Textract, FormKiQ, Slack) are injected at
construction time, test doubles likewise.

Contract for ALL implementations:
  - Raise StageError for declared provider failures (AWS/HTTP errors,
    unreadable images). Anything else is treated as a defect.
  - Report absent settings via missing_configuration(); the handler then
    skips the stage without calling it.
  - Be idempotent: a redelivered message re-runs every stage for the same
    document, so writes must converge (deterministic keys, same attribute
    values) and duplicate notifications must be acceptable.
  - Be safe for concurrent use; one instance serves every message of every
    batch handled by the process.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from docflow.pipeline.context import InvocationContext
from docflow.pipeline.errors import Stage
from docflow.pipeline.results import DerivedImage
from docflow.schemas.events import DocumentEvent


class PipelineStage(ABC):
    stage: Stage

    def missing_configuration(self) -> list[str]:
        """Names of required settings that are empty. Empty list = runnable."""
        return []


class ThumbnailGenerator(PipelineStage):
    stage = Stage.THUMBNAIL

    @abstractmethod
    async def generate(self, event: DocumentEvent, ctx: InvocationContext) -> DerivedImage:
        """Render the derived image(s) for the source object; return where they live."""


class LabelDetector(PipelineStage):
    stage = Stage.LABELS

    @abstractmethod
    async def detect(
        self, event: DocumentEvent, derived: DerivedImage, ctx: InvocationContext,
    ) -> list[str]:
        """Return label names for the derived image (may be empty)."""


class TextExtractor(PipelineStage):
    stage = Stage.TEXT

    @abstractmethod
    async def extract(
        self, event: DocumentEvent, derived: DerivedImage, ctx: InvocationContext,
    ) -> str:
        """Return text found in the derived image (may be empty)."""


class AttributeWriter(PipelineStage):
    stage = Stage.ATTRIBUTES

    @abstractmethod
    async def write(
        self,
        event: DocumentEvent,
        labels: list[str],
        text: str,
        ctx: InvocationContext,
        derived: DerivedImage | None = None,
    ) -> None:
        """Persist labels/text on the document keyed by event.document_id."""


class Notifier(PipelineStage):
    stage = Stage.NOTIFY

    @abstractmethod
    async def notify(
        self,
        event: DocumentEvent,
        derived: DerivedImage,
        labels: list[str],
        ctx: InvocationContext,
    ) -> None:
        """Announce the processed document, linking to the derived image."""
