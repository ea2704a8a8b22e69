"""
Pipeline Package
════════════════

One SQS batch in, one partial batch response out:

  QueueMessage ─► decoder ─► RecordHandler (5 stages) ─► RecordOutcome
                                                           │
  BatchProcessor: fan-out, isolation, deadline ◄───────────┘
       └─► BatchOutcome.to_sqs_response()

Modules
───────
  decoder.py    SNS envelope + DocumentEvent decoding (pure, never logs)
  handler.py    Ordered stage execution for one document event
  processor.py  Concurrent batch processing with per-message isolation
  results.py    PipelineResult / RecordOutcome / BatchOutcome
  context.py    Per-message correlation context and LoggerAdapter
  errors.py     Error taxonomy
"""

from docflow.pipeline.context import InvocationContext
from docflow.pipeline.decoder import decode, decode_with_envelope
from docflow.pipeline.errors import (
    ConfigurationMissing,
    DecodeError,
    EnvelopeInvalid,
    PayloadInvalid,
    PipelineError,
    Stage,
    StageError,
)
from docflow.pipeline.handler import RecordHandler
from docflow.pipeline.processor import BatchProcessor
from docflow.pipeline.results import BatchOutcome, DerivedImage, PipelineResult, RecordOutcome, StageStatus

__all__ = [
    "BatchProcessor",
    "RecordHandler",
    "InvocationContext",
    "decode",
    "decode_with_envelope",
    "BatchOutcome",
    "DerivedImage",
    "PipelineResult",
    "RecordOutcome",
    "StageStatus",
    "PipelineError",
    "DecodeError",
    "EnvelopeInvalid",
    "PayloadInvalid",
    "StageError",
    "ConfigurationMissing",
    "Stage",
]
