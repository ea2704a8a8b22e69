"""
Per-invocation correlation context.

One InvocationContext is created per queue message and handed to the
decoder caller, the RecordHandler and every stage call. Log lines emitted
through ``ctx.logger(...)`` carry the message id, so lines from concurrent
messages in the same batch stay distinguishable.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, MutableMapping


@dataclass(frozen=True)
class InvocationContext:
    message_id:         str
    request_id:         str = "local"    # Lambda aws_request_id or poller batch id
    receive_count:      int = 1
    envelope_id:        str | None = None   # SNS MessageId, known after decoding
    document_id:        str | None = None

    def with_event(self, envelope_id: str | None, document_id: str | None) -> "InvocationContext":
        return replace(self, envelope_id=envelope_id, document_id=document_id)

    def fields(self) -> dict[str, Any]:
        values = {
            "message_id": self.message_id,
            "request_id": self.request_id,
            "receive_count": self.receive_count,
            "envelope_id": self.envelope_id,
            "document_id": self.document_id,
        }
        return {k: v for k, v in values.items() if v is not None}

    def logger(self, base: logging.Logger) -> "ContextAdapter":
        return ContextAdapter(base, self.fields())


class ContextAdapter(logging.LoggerAdapter):
    """Appends ``| key=value ...`` correlation fields to every message."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        suffix = " ".join(f"{k}={v}" for k, v in self.extra.items())
        extra = kwargs.setdefault("extra", {})
        extra.update(self.extra)
        return f"{msg} | {suffix}", kwargs
