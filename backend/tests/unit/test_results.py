"""
Unit Tests — pipeline result types
══════════════════════════════════
Tests for docflow/pipeline/results.py

Coverage:
  ✅ to_sqs_response lists only failed ids, in batch order
  ✅ stage_failure_counts aggregates non-fatal stage failures
  ✅ PipelineResult starts with every stage not run
"""

from __future__ import annotations

import pytest

from docflow.pipeline.errors import Stage
from docflow.pipeline.results import BatchOutcome, PipelineResult, RecordOutcome, StageStatus


def _with_failed(*stages: Stage) -> PipelineResult:
    result = PipelineResult()
    for stage in stages:
        result.mark(stage, StageStatus.FAILED, f"{stage.value} down")
    return result


@pytest.mark.unit
@pytest.mark.pipeline
class TestBatchOutcome:

    def test_sqs_response(self):
        outcome = BatchOutcome()
        outcome.record("a", RecordOutcome.ok())
        outcome.record("b", RecordOutcome.failure("thumbnail failed"))
        outcome.record("c", RecordOutcome.skipped("event type 'delete' is not handled"))
        outcome.record("d", RecordOutcome.failure("invalid JSON", terminal=True))

        assert outcome.to_sqs_response() == {
            "batchItemFailures": [{"itemIdentifier": "b"}, {"itemIdentifier": "d"}]
        }
        assert outcome.succeeded_ids == ["a", "c"]
        assert len(outcome) == 4

    def test_empty(self):
        assert BatchOutcome().to_sqs_response() == {"batchItemFailures": []}

    def test_stage_failure_counts(self):
        outcome = BatchOutcome()
        outcome.record("a", RecordOutcome.ok(_with_failed(Stage.ATTRIBUTES)))
        outcome.record("b", RecordOutcome.ok(_with_failed(Stage.ATTRIBUTES, Stage.NOTIFY)))
        outcome.record("c", RecordOutcome.failure("decode", terminal=True))

        assert outcome.stage_failure_counts() == {"attributes": 2, "notify": 1}


@pytest.mark.unit
@pytest.mark.pipeline
class TestPipelineResult:

    def test_initial_state(self):
        result = PipelineResult()

        assert set(result.stages.values()) == {StageStatus.NOT_RUN}
        assert result.derived_key is None
        assert result.failed_stages() == []

    def test_mark_records_error(self):
        result = _with_failed(Stage.TEXT)

        assert result.failed_stages() == [Stage.TEXT]
        assert result.errors == {Stage.TEXT: "text down"}
