"""
Pipeline Result Types
═════════════════════

  PipelineResult  per-message, built stage by stage by the RecordHandler
  RecordOutcome   success | failure for one message (+ the PipelineResult)
  BatchOutcome    message id → RecordOutcome for one batch invocation

BatchOutcome.to_sqs_response() is the partial batch response the Lambda
SQS event source understands: only ids listed in ``batchItemFailures``
become visible again; every other message in the batch is deleted.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator

from docflow.pipeline.errors import Stage


class StageStatus(str, Enum):
    NOT_RUN   = "not_run"
    SUCCEEDED = "succeeded"
    FAILED    = "failed"
    SKIPPED   = "skipped"


@dataclass(frozen=True)
class DerivedImage:
    """Artifacts written by the thumbnail stage."""
    bucket:           str
    key:              str                 # the derived key used by every later stage
    thumbnail_bucket: str | None = None
    thumbnail_key:    str | None = None


@dataclass
class PipelineResult:
    derived: DerivedImage | None = None
    labels:  list[str] = field(default_factory=list)
    text:    str = ""
    stages:  dict[Stage, StageStatus] = field(
        default_factory=lambda: {s: StageStatus.NOT_RUN for s in Stage}
    )
    errors:  dict[Stage, str] = field(default_factory=dict)

    @property
    def derived_key(self) -> str | None:
        return self.derived.key if self.derived else None

    def mark(self, stage: Stage, status: StageStatus, error: str | None = None) -> None:
        self.stages[stage] = status
        if error is not None:
            self.errors[stage] = error

    def failed_stages(self) -> list[Stage]:
        return [s for s, st in self.stages.items() if st is StageStatus.FAILED]


@dataclass(frozen=True)
class RecordOutcome:
    success:  bool
    reason:   str | None = None
    terminal: bool = False      # redelivery cannot fix it (decode errors)
    ignored:  bool = False      # non-create event acknowledged without work
    result:   PipelineResult | None = None

    @classmethod
    def ok(cls, result: PipelineResult | None = None) -> "RecordOutcome":
        return cls(success=True, result=result)

    @classmethod
    def skipped(cls, reason: str) -> "RecordOutcome":
        return cls(success=True, reason=reason, ignored=True)

    @classmethod
    def failure(
        cls,
        reason: str,
        *,
        terminal: bool = False,
        result: PipelineResult | None = None,
    ) -> "RecordOutcome":
        return cls(success=False, reason=reason, terminal=terminal, result=result)


@dataclass
class BatchOutcome:
    outcomes: dict[str, RecordOutcome] = field(default_factory=dict)

    def record(self, message_id: str, outcome: RecordOutcome) -> None:
        self.outcomes[message_id] = outcome

    def __len__(self) -> int:
        return len(self.outcomes)

    def __iter__(self) -> Iterator[str]:
        return iter(self.outcomes)

    def __getitem__(self, message_id: str) -> RecordOutcome:
        return self.outcomes[message_id]

    @property
    def failed_ids(self) -> list[str]:
        return [mid for mid, o in self.outcomes.items() if not o.success]

    @property
    def succeeded_ids(self) -> list[str]:
        return [mid for mid, o in self.outcomes.items() if o.success]

    @property
    def failure_count(self) -> int:
        return len(self.failed_ids)

    def stage_failure_counts(self) -> dict[str, int]:
        """Non-fatal stage failures across the batch, e.g. {"attributes": 2}."""
        counts: Counter[str] = Counter()
        for outcome in self.outcomes.values():
            if outcome.result is not None:
                counts.update(s.value for s in outcome.result.failed_stages())
        return dict(counts)

    def to_sqs_response(self) -> dict[str, Any]:
        return {
            "batchItemFailures": [
                {"itemIdentifier": mid} for mid in self.failed_ids
            ]
        }
