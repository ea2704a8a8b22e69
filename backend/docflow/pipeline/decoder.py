"""
MessageEnvelope decoder: raw SQS body → DocumentEvent.

Pure function. It never logs; all detail travels on the raised DecodeError
so the BatchProcessor can log it next to the SQS message id.
"""

from __future__ import annotations

import json

from pydantic import ValidationError

from docflow.pipeline.errors import EnvelopeInvalid, PayloadInvalid
from docflow.schemas.events import DocumentEvent, NotificationEnvelope


def decode(raw: str | bytes) -> DocumentEvent:
    """
    Decode an SNS-over-SQS body into a DocumentEvent.

    Raises:
        EnvelopeInvalid: body is empty, not JSON, not an object, or has no
            ``Message`` string.
        PayloadInvalid: ``Message`` is not JSON or lacks required fields.
    """
    return decode_with_envelope(raw)[1]


def decode_with_envelope(raw: str | bytes) -> tuple[NotificationEnvelope, DocumentEvent]:
    """Same as decode() but also returns the envelope (for its MessageId)."""
    envelope = _decode_envelope(raw)
    return envelope, _decode_payload(envelope.message)


def _decode_envelope(raw: str | bytes) -> NotificationEnvelope:
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise EnvelopeInvalid(f"body is not UTF-8: {exc}") from exc

    if raw is None or not raw.strip():
        raise EnvelopeInvalid("body is empty")

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise EnvelopeInvalid(f"body is not JSON: {exc.msg} at pos {exc.pos}") from exc

    if not isinstance(data, dict):
        raise EnvelopeInvalid(f"body is a JSON {type(data).__name__}, expected an object")

    try:
        envelope = NotificationEnvelope.model_validate(data)
    except ValidationError as exc:
        raise EnvelopeInvalid(_summarise(exc)) from exc

    if not isinstance(envelope.message, str) or not envelope.message.strip():
        raise EnvelopeInvalid("Message is empty")
    return envelope


def _decode_payload(message: str) -> DocumentEvent:
    try:
        data = json.loads(message)
    except json.JSONDecodeError as exc:
        raise PayloadInvalid(f"Message is not JSON: {exc.msg} at pos {exc.pos}") from exc

    if not isinstance(data, dict):
        raise PayloadInvalid(f"Message is a JSON {type(data).__name__}, expected an object")

    try:
        return DocumentEvent.model_validate(data)
    except ValidationError as exc:
        raise PayloadInvalid(_summarise(exc)) from exc


def _summarise(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "<root>"
        parts.append(f"{loc}: {err.get('msg', 'invalid')}")
    return "; ".join(parts)
