"""
Worker Runtime — long-lived clients and wiring
══════════════════════════════════════════════

Built once per process and reused for every batch:

  AsyncExitStack
    ├─ aioboto3 s3           ─► ObjectStore ─┬─► S3ThumbnailGenerator
    │                                        └─► SlackNotifier (presigned URL)
    ├─ aioboto3 rekognition  ─► RekognitionLabelDetector
    ├─ aioboto3 textract     ─► TextractTextExtractor
    ├─ aioboto3 sqs          ─► SqsPoller only (with_sqs=True)
    └─ httpx.AsyncClient     ─► FormKiqAttributeWriter, SlackNotifier
                                   │
                     RecordHandler ─► BatchProcessor

The clients are bound to the event loop that entered them, so the Lambda
entry point keeps one loop alive across invocations.

botocore retries are limited to a single attempt: SQS redelivery is the
retry mechanism and an in-process retry loop would only eat into the
visibility timeout.
"""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack
from dataclasses import dataclass
from typing import Any

import aioboto3
import httpx
from botocore.config import Config

from docflow.core.config import Settings, get_settings
from docflow.pipeline.handler import RecordHandler
from docflow.pipeline.processor import BatchProcessor
from docflow.stages.attributes import FormKiqAttributeWriter
from docflow.stages.labels import RekognitionLabelDetector
from docflow.stages.notify import SlackNotifier
from docflow.stages.text import TextractTextExtractor
from docflow.stages.thumbnail import S3ThumbnailGenerator
from docflow.storage.s3 import ObjectStore

logger = logging.getLogger(__name__)


def _client_config(settings: Settings) -> Config:
    return Config(
        retries={"mode": "standard", "total_max_attempts": 1},
        connect_timeout=settings.http_timeout_seconds,
        read_timeout=max(settings.http_timeout_seconds, 30.0),
    )


@dataclass
class WorkerRuntime:
    settings:  Settings
    processor: BatchProcessor
    store:     ObjectStore
    sqs:       Any
    _stack:    AsyncExitStack

    async def aclose(self) -> None:
        await self._stack.aclose()
        logger.info("Worker runtime closed")


def build_handler(
    settings:    Settings,
    store:       ObjectStore,
    rekognition: Any,
    textract:    Any,
    http:        httpx.AsyncClient,
) -> RecordHandler:
    """Wire the five stage adapters from settings and shared clients."""
    return RecordHandler(
        thumbnails=S3ThumbnailGenerator(
            store,
            derived_bucket=settings.derived_image_bucket,
            thumbnail_bucket=settings.thumbnail_bucket,
            large_width=settings.large_image_width,
            thumbnail_size=settings.thumbnail_size,
        ),
        labels=RekognitionLabelDetector(
            rekognition,
            max_labels=settings.rekognition_max_labels,
            min_confidence=settings.rekognition_min_confidence,
        ),
        text=TextractTextExtractor(textract),
        attributes=FormKiqAttributeWriter(
            http,
            base_url=settings.formkiq_base_url,
            api_key=settings.formkiq_api_key,
            label_key=settings.formkiq_label_attribute_key,
            thumbnail_key=settings.formkiq_thumbnail_attribute_key,
            write_ocr=settings.formkiq_write_ocr,
        ),
        notifier=SlackNotifier(
            http,
            store,
            webhook_url=settings.slack_webhook_url,
            url_ttl=settings.presigned_url_ttl_seconds,
        ),
    )


async def build_runtime(
    settings: Settings | None = None,
    *,
    session:  aioboto3.Session | None = None,
    with_sqs: bool = False,
) -> WorkerRuntime:
    """
    Enter every client and wire the pipeline.

    Usage::

        runtime = await build_runtime()
        try:
            outcome = await runtime.processor.process_batch(messages)
        finally:
            await runtime.aclose()
    """
    settings = settings or get_settings()
    session  = session or aioboto3.Session()
    config   = _client_config(settings)

    stack = AsyncExitStack()
    try:
        s3 = await stack.enter_async_context(
            session.client("s3", region_name=settings.aws_region, config=config)
        )
        rekognition = await stack.enter_async_context(
            session.client("rekognition", region_name=settings.aws_region, config=config)
        )
        textract = await stack.enter_async_context(
            session.client("textract", region_name=settings.aws_region, config=config)
        )
        sqs = None
        if with_sqs:
            sqs = await stack.enter_async_context(
                session.client("sqs", region_name=settings.aws_region, config=config)
            )
        http = await stack.enter_async_context(
            httpx.AsyncClient(timeout=settings.http_timeout_seconds)
        )
    except BaseException:
        await stack.aclose()
        raise

    store   = ObjectStore(s3)
    handler = build_handler(settings, store, rekognition, textract, http)
    processor = BatchProcessor(
        handler,
        concurrency=settings.batch_concurrency,
        max_receive_count=settings.max_receive_count,
    )

    logger.info(
        "Worker runtime ready | region=%s concurrency=%d document_store=%s slack=%s thumbnails=%s",
        settings.aws_region,
        settings.batch_concurrency,
        settings.document_store_configured,
        bool(settings.slack_webhook_url),
        bool(settings.thumbnail_bucket),
    )
    return WorkerRuntime(
        settings=settings,
        processor=processor,
        store=store,
        sqs=sqs,
        _stack=stack,
    )
