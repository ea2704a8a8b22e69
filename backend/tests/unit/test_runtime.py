"""
Unit Tests — WorkerRuntime
══════════════════════════
Tests for docflow/workers/runtime.py

Coverage:
  ✅ s3 / rekognition / textract clients entered once, sqs only on request
  ✅ botocore retries limited to one attempt
  ✅ Stage adapters wired from settings
  ✅ aclose() exits every client
  ✅ Failure while entering a client closes the ones already entered
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from docflow.core.config import Settings
from docflow.pipeline.processor import BatchProcessor
from docflow.stages.attributes import FormKiqAttributeWriter
from docflow.stages.notify import SlackNotifier
from docflow.stages.thumbnail import S3ThumbnailGenerator
from docflow.storage.s3 import ObjectStore
from docflow.workers.runtime import build_handler, build_runtime


def _build_client_mock(name: str) -> MagicMock:
    """aioboto3 client context manager stand-in."""
    client = AsyncMock()
    client.service_name = name
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__  = AsyncMock(return_value=None)
    return client


def _build_session_mock() -> tuple[MagicMock, dict[str, MagicMock]]:
    clients: dict[str, MagicMock] = {}

    def client(service_name, **kwargs):
        clients[service_name] = _build_client_mock(service_name)
        clients[service_name].kwargs = kwargs
        return clients[service_name]

    session = MagicMock()
    session.client.side_effect = client
    return session, clients


@pytest.fixture
def settings() -> Settings:
    return Settings(
        aws_region="eu-west-1",
        derived_image_bucket="derived",
        thumbnail_bucket="thumbs",
        formkiq_base_url="https://formkiq.example",
        formkiq_api_key="key",
        formkiq_label_attribute_key="tags",
        slack_webhook_url="https://hooks.slack.example/x",
        batch_concurrency=4,
    )


@pytest.mark.unit
@pytest.mark.workers
class TestBuildRuntime:

    async def test_clients_entered(self, settings):
        session, clients = _build_session_mock()

        runtime = await build_runtime(settings, session=session)
        try:
            assert sorted(clients) == ["rekognition", "s3", "textract"]
            assert runtime.sqs is None
            assert isinstance(runtime.processor, BatchProcessor)
            assert isinstance(runtime.store, ObjectStore)
            for client in clients.values():
                client.__aenter__.assert_awaited_once()
                assert client.kwargs["region_name"] == "eu-west-1"
                assert client.kwargs["config"].retries["total_max_attempts"] == 1
        finally:
            await runtime.aclose()

        for client in clients.values():
            client.__aexit__.assert_awaited_once()

    async def test_sqs_client_on_request(self, settings):
        session, clients = _build_session_mock()

        runtime = await build_runtime(settings, session=session, with_sqs=True)
        try:
            assert runtime.sqs is clients["sqs"]
        finally:
            await runtime.aclose()

    async def test_entered_clients_closed_on_failure(self, settings):
        session, clients = _build_session_mock()
        original = session.client.side_effect

        def client(service_name, **kwargs):
            cm = original(service_name, **kwargs)
            if service_name == "textract":
                cm.__aenter__.side_effect = RuntimeError("endpoint resolution failed")
            return cm

        session.client.side_effect = client

        with pytest.raises(RuntimeError):
            await build_runtime(settings, session=session)

        clients["s3"].__aexit__.assert_awaited_once()
        clients["rekognition"].__aexit__.assert_awaited_once()


@pytest.mark.unit
@pytest.mark.workers
class TestBuildHandler:

    async def test_stage_wiring(self, settings):
        async with httpx.AsyncClient() as http:
            handler = build_handler(settings, ObjectStore(MagicMock()), MagicMock(), MagicMock(), http)

        thumbnails = handler._thumbnails
        assert isinstance(thumbnails, S3ThumbnailGenerator)
        assert thumbnails._derived_bucket == "derived"
        assert thumbnails._thumbnail_bucket == "thumbs"

        attributes = handler._attributes
        assert isinstance(attributes, FormKiqAttributeWriter)
        assert attributes.missing_configuration() == []
        assert attributes._label_key == "tags"

        assert isinstance(handler._notifier, SlackNotifier)
        assert handler._notifier.missing_configuration() == []

    async def test_unconfigured_providers_reported(self):
        async with httpx.AsyncClient() as http:
            handler = build_handler(Settings(
                formkiq_base_url="", formkiq_api_key="", slack_webhook_url="",
            ), ObjectStore(MagicMock()), MagicMock(), MagicMock(), http)

        assert handler._attributes.missing_configuration() == ["FORMKIQ_BASE_URL", "FORMKIQ_API_KEY"]
        assert handler._notifier.missing_configuration() == ["SLACK_WEBHOOK_URL"]
