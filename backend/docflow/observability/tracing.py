"""
Stage timing — ``@traced`` decorator

Wraps every provider call (S3, Rekognition, Textract, FormKiQ, Slack) with
wall-clock timing so slow stages show up in the logs next to the message
that hit them:

  trace | span=labels.rekognition elapsed_ms=412.7 ok
  trace | span=attributes.formkiq elapsed_ms=10003.1 error=...

Declared pipeline errors (StageError, ConfigurationMissing) are logged at
WARNING without a traceback; anything else is a defect and gets one.
Exceptions are always re-raised; classification belongs to the caller.
"""

from __future__ import annotations

import functools
import logging
import time
from typing import Any, Callable, Coroutine, TypeVar

from docflow.pipeline.errors import PipelineError

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Coroutine[Any, Any, Any]])


def traced(name: str | None = None) -> Callable[[F], F]:
    """
    Instrument an async function with timing and error logging.

    Usage::

        @traced("labels.rekognition")
        async def detect(self, event, derived, ctx) -> list[str]:
            ...

        @traced()   # uses the qualified function name as span name
        async def _put(self, ...):
            ...
    """
    def decorator(func: F) -> F:
        span_name = name or func.__qualname__

        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            t0 = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except PipelineError as exc:
                elapsed_ms = (time.perf_counter() - t0) * 1000
                logger.warning(
                    "trace | span=%s elapsed_ms=%.1f error=%s",
                    span_name, elapsed_ms, exc,
                )
                raise
            except Exception as exc:
                elapsed_ms = (time.perf_counter() - t0) * 1000
                logger.error(
                    "trace | span=%s elapsed_ms=%.1f error=%s",
                    span_name, elapsed_ms, exc, exc_info=True,
                )
                raise
            elapsed_ms = (time.perf_counter() - t0) * 1000
            logger.debug("trace | span=%s elapsed_ms=%.1f ok", span_name, elapsed_ms)
            return result

        return wrapper  # type: ignore[return-value]
    return decorator
