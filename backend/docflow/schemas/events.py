"""
Inbound Event Schemas — SQS delivery → SNS envelope → document event

Wire layering (outermost first):

  QueueMessage          one SQS message; body is the SNS notification JSON
    └─ NotificationEnvelope   {"Type", "MessageId", "Message"}
         └─ DocumentEvent     JSON string inside envelope.Message

Design decisions:
  - Field names are matched case-insensitively (the document store emits
    camelCase, SNS emits PascalCase, hand-written test events vary).
  - Field values are not normalised: only a type of exactly "create" is enriched.
  - Unknown fields are ignored so new upstream attributes never poison a batch.
  - DocumentEvent is frozen: once decoded it is shared read-only by all stages.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

CREATE_EVENT = "create"


class _CaseInsensitiveModel(BaseModel):
    """Maps incoming keys onto field aliases regardless of case."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    @model_validator(mode="before")
    @classmethod
    def _normalise_keys(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        lookup = {}
        for name, info in cls.model_fields.items():
            lookup[name.lower()] = info.alias or name
            if info.alias:
                lookup[info.alias.lower()] = info.alias
        return {
            lookup.get(str(key).lower(), key): value
            for key, value in data.items()
        }


# ---------------------------------------------------------------------------
# SNS envelope
# ---------------------------------------------------------------------------

class NotificationEnvelope(_CaseInsensitiveModel):
    type:       str | None = Field(None, alias="Type")
    message_id: str | None = Field(None, alias="MessageId")
    message:    str        = Field(..., alias="Message")


# ---------------------------------------------------------------------------
# Document event
# ---------------------------------------------------------------------------

class DocumentEvent(_CaseInsensitiveModel):
    """
    A document lifecycle event published by the document store.

    Only ``type == "create"`` is enriched; every other kind is acknowledged
    and ignored.
    """
    document_id: str        = Field(..., alias="documentId", min_length=1)
    s3_key:      str        = Field(..., alias="s3Key", min_length=1)
    s3_bucket:   str        = Field(..., alias="s3Bucket", min_length=1)
    type:        str        = Field(..., min_length=1)
    site_id:     str | None = Field(None, alias="siteId")
    user_id:     str | None = Field(None, alias="userId")
    path:        str | None = None
    url:         str | None = None

    @property
    def is_create(self) -> bool:
        return self.type == CREATE_EVENT

    @property
    def display_name(self) -> str:
        """Human-facing name used in notifications."""
        return self.path or self.s3_key


# ---------------------------------------------------------------------------
# Queue message
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class QueueMessage:
    """
    One delivery of an SQS message.

    receive_count comes from the ApproximateReceiveCount system attribute;
    the redrive policy dead-letters the message once it exceeds
    maxReceiveCount, this worker never counts deliveries itself.
    """
    message_id:     str
    body:           str | bytes
    receive_count:  int = 1
    receipt_handle: str | None = None
    attributes:     dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_lambda_record(cls, record: dict[str, Any]) -> "QueueMessage":
        """Build from one entry of a Lambda SQS event's ``Records`` list."""
        attributes = record.get("attributes") or {}
        return cls(
            message_id=_message_id(record.get("messageId")),
            body=record.get("body", ""),
            receive_count=_receive_count(attributes),
            receipt_handle=record.get("receiptHandle"),
            attributes=attributes,
        )

    @classmethod
    def from_sqs_message(cls, message: dict[str, Any]) -> "QueueMessage":
        """Build from one entry of an SQS ReceiveMessage response."""
        attributes = message.get("Attributes") or {}
        return cls(
            message_id=_message_id(message.get("MessageId")),
            body=message.get("Body", ""),
            receive_count=_receive_count(attributes),
            receipt_handle=message.get("ReceiptHandle"),
            attributes=attributes,
        )


def _message_id(value: Any) -> str:
    """Raises ValueError for an absent or empty id."""
    if not isinstance(value, str) or not value:
        raise ValueError(f"queue message has no message id: {value!r}")
    return value


def _receive_count(attributes: dict[str, Any]) -> int:
    try:
        return int(attributes.get("ApproximateReceiveCount", 1))
    except (TypeError, ValueError):
        return 1
