"""
Root conftest.py — Shared fixtures for ALL tests (unit + integration)

Fixture hierarchy:
  function-scoped : event_dict, sample_event, derived, ctx, stages, make_message

Environment strategy:
  - No test talks to AWS or HTTP. aioboto3 clients are AsyncMock stand-ins,
    FormKiQ / Slack go through httpx.MockTransport.
  - Provider settings (FormKiQ, Slack, buckets) are passed to the adapters
    explicitly by each test, never read from the environment.
  - Images are generated in-test with Pillow.

How to run:
  pytest                                   # all tests
  pytest -m unit                           # unit tests only
  pytest -m "integration"                  # full pipeline wiring
  pytest backend/tests/unit/test_processor.py
"""

from __future__ import annotations

import io
import json
import os
from dataclasses import dataclass
from typing import Any, Callable
from unittest.mock import AsyncMock, MagicMock

import pytest

# ─────────────────────────────────────────────────────────────────────────────
# Patch settings BEFORE any docflow imports so modules read test config
# ─────────────────────────────────────────────────────────────────────────────

os.environ.setdefault("AWS_REGION",            "us-east-1")
os.environ.setdefault("AWS_ACCESS_KEY_ID",     "test")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "test")
os.environ.setdefault("APP_ENV",               "development")
os.environ.setdefault("LOG_LEVEL",             "DEBUG")

from botocore.exceptions import ClientError  # noqa: E402
from PIL import Image  # noqa: E402

from docflow.pipeline.context import InvocationContext  # noqa: E402
from docflow.pipeline.errors import Stage  # noqa: E402
from docflow.pipeline.handler import RecordHandler  # noqa: E402
from docflow.pipeline.results import DerivedImage  # noqa: E402
from docflow.schemas.events import DocumentEvent, QueueMessage  # noqa: E402
from docflow.stages.base import (  # noqa: E402
    AttributeWriter,
    LabelDetector,
    Notifier,
    TextExtractor,
    ThumbnailGenerator,
)


# ─────────────────────────────────────────────────────────────────────────────
# Event / message builders
# ─────────────────────────────────────────────────────────────────────────────

SAMPLE_EVENT: dict[str, Any] = {
    "siteId":     "s1",
    "documentId": "d1",
    "s3Key":      "d1.tif",
    "s3Bucket":   "b1",
    "type":       "create",
    "userId":     "u1",
    "path":       "/d1.tif",
    "url":        "https://x/d1",
}


def envelope_body(payload: dict[str, Any] | str, message_id: str = "m1") -> str:
    """SNS notification JSON wrapping ``payload`` as the Message string."""
    message = payload if isinstance(payload, str) else json.dumps(payload)
    return json.dumps({"Type": "Notification", "MessageId": message_id, "Message": message})


def event_payload(**overrides: Any) -> dict[str, Any]:
    return {**SAMPLE_EVENT, **overrides}


def client_error(code: str, operation: str = "operation") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": "test"}}, operation)


def image_bytes(size: tuple[int, int] = (2048, 1024), fmt: str = "PNG", color: str = "red") -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def event_dict() -> dict[str, Any]:
    return dict(SAMPLE_EVENT)


@pytest.fixture
def sample_event(event_dict) -> DocumentEvent:
    return DocumentEvent.model_validate(event_dict)


@pytest.fixture
def derived() -> DerivedImage:
    return DerivedImage(bucket="b1", key="d1.png", thumbnail_bucket="thumbs", thumbnail_key="d1.webp")


@pytest.fixture
def ctx() -> InvocationContext:
    return InvocationContext(message_id="sqs-1", request_id="req-1", envelope_id="m1", document_id="d1")


@pytest.fixture
def make_message() -> Callable[..., QueueMessage]:
    """Factory: make_message("id-1", payload_overrides..., receive_count=1)."""
    def _make(
        message_id: str,
        body: str | None = None,
        *,
        receive_count: int = 1,
        **overrides: Any,
    ) -> QueueMessage:
        return QueueMessage(
            message_id=message_id,
            body=body if body is not None else envelope_body(
                event_payload(**{"documentId": message_id, **overrides}), message_id=f"sns-{message_id}",
            ),
            receive_count=receive_count,
            receipt_handle=f"rh-{message_id}",
        )
    return _make


# ─────────────────────────────────────────────────────────────────────────────
# Stub stages (AsyncMock-backed, call counts asserted by tests)
# ─────────────────────────────────────────────────────────────────────────────

def _stage_mock(cls: type, stage: Stage, method: str, **kwargs: Any) -> MagicMock:
    mock = MagicMock(spec=cls)
    mock.stage = stage
    mock.missing_configuration.return_value = []
    setattr(mock, method, AsyncMock(**kwargs))
    return mock


@dataclass
class StubStages:
    thumbnails: MagicMock
    labels:     MagicMock
    text:       MagicMock
    attributes: MagicMock
    notifier:   MagicMock

    def handler(self) -> RecordHandler:
        return RecordHandler(self.thumbnails, self.labels, self.text, self.attributes, self.notifier)

    def call_counts(self) -> dict[str, int]:
        return {
            "thumbnail":  self.thumbnails.generate.await_count,
            "labels":     self.labels.detect.await_count,
            "text":       self.text.extract.await_count,
            "attributes": self.attributes.write.await_count,
            "notify":     self.notifier.notify.await_count,
        }


@pytest.fixture
def stages(derived) -> StubStages:
    """All five stages succeed: labels=["cat"], text="hello"."""
    return StubStages(
        thumbnails=_stage_mock(ThumbnailGenerator, Stage.THUMBNAIL, "generate", return_value=derived),
        labels=_stage_mock(LabelDetector, Stage.LABELS, "detect", return_value=["cat"]),
        text=_stage_mock(TextExtractor, Stage.TEXT, "extract", return_value="hello"),
        attributes=_stage_mock(AttributeWriter, Stage.ATTRIBUTES, "write", return_value=None),
        notifier=_stage_mock(Notifier, Stage.NOTIFY, "notify", return_value=None),
    )
