"""
Pipeline error taxonomy.

  DecodeError            message body unusable; terminal for the message
    ├─ EnvelopeInvalid   outer SNS envelope missing or malformed
    └─ PayloadInvalid    envelope.Message is not a valid DocumentEvent
  StageError             a declared provider failure inside one stage
  ConfigurationMissing   a stage cannot run with the current settings

Only the thumbnail stage turns a StageError into a failed message. Anything
that is not one of these types is a defect and is caught at the
RecordHandler boundary.
"""

from __future__ import annotations

from enum import Enum


class Stage(str, Enum):
    THUMBNAIL  = "thumbnail"
    LABELS     = "labels"
    TEXT       = "text"
    ATTRIBUTES = "attributes"
    NOTIFY     = "notify"


class PipelineError(Exception):
    """Base for all errors raised deliberately by the pipeline."""


# ---------------------------------------------------------------------------
# Decode errors
# ---------------------------------------------------------------------------

class DecodeError(PipelineError):
    """The message can never be processed; redelivery will not help."""

    kind = "decode"

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail

    def __str__(self) -> str:
        return f"{self.kind}: {self.detail}"


class EnvelopeInvalid(DecodeError):
    kind = "envelope_invalid"


class PayloadInvalid(DecodeError):
    kind = "payload_invalid"


# ---------------------------------------------------------------------------
# Stage errors
# ---------------------------------------------------------------------------

class StageError(PipelineError):
    """A stage's provider call failed (HTTP error, AWS error, bad image)."""

    def __init__(self, stage: Stage, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.stage   = stage
        self.message = message
        self.cause   = cause

    def __str__(self) -> str:
        if self.cause is not None:
            return f"{self.stage.value}: {self.message} ({type(self.cause).__name__}: {self.cause})"
        return f"{self.stage.value}: {self.message}"


class ConfigurationMissing(PipelineError):
    """Required settings for a stage are empty; the stage is skipped."""

    def __init__(self, stage: Stage, names: list[str]) -> None:
        super().__init__(f"{stage.value}: missing configuration {', '.join(names)}")
        self.stage = stage
        self.names = list(names)
