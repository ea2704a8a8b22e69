"""
Notification Stage — Slack incoming webhook

Posts a fallback ``text`` plus two Block Kit sections linking to the
derived image through a presigned GET URL (7 days by default, the SigV4
maximum). Duplicate posts on redelivery are accepted.
"""

from __future__ import annotations

import logging

import httpx
from botocore.exceptions import BotoCoreError, ClientError

from docflow.observability.tracing import traced
from docflow.pipeline.context import InvocationContext
from docflow.pipeline.errors import Stage, StageError
from docflow.pipeline.results import DerivedImage
from docflow.schemas.events import DocumentEvent
from docflow.schemas.slack import Section, SlackMessage
from docflow.stages.base import Notifier
from docflow.storage.s3 import ObjectStore

logger = logging.getLogger(__name__)


def build_message(event: DocumentEvent, url: str, labels: list[str]) -> SlackMessage:
    label_list = ", ".join(labels) if labels else "none"
    link = f"<{url}|{event.display_name}>"
    return SlackMessage(
        text=f"New document {link} uploaded, labels: {label_list}",
        blocks=[
            Section.markdown(f"Image: {link}"),
            Section.markdown(f"Labels: {label_list}"),
        ],
    )


class SlackNotifier(Notifier):

    def __init__(
        self,
        http:        httpx.AsyncClient,
        store:       ObjectStore,
        *,
        webhook_url: str,
        url_ttl:     int = 7 * 24 * 3600,
    ) -> None:
        self._http        = http
        self._store       = store
        self._webhook_url = webhook_url
        self._url_ttl     = url_ttl

    def missing_configuration(self) -> list[str]:
        return [] if self._webhook_url else ["SLACK_WEBHOOK_URL"]

    @traced("notify.slack")
    async def notify(
        self,
        event: DocumentEvent,
        derived: DerivedImage,
        labels: list[str],
        ctx: InvocationContext,
    ) -> None:
        try:
            presigned = await self._store.generate_presigned_get(
                derived.bucket, derived.key, expires_in=self._url_ttl,
            )
        except (ClientError, BotoCoreError) as exc:
            raise StageError(Stage.NOTIFY, "presigned URL generation failed", exc) from exc

        message = build_message(event, presigned.url, labels)
        try:
            resp = await self._http.post(self._webhook_url, json=message.model_dump())
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise StageError(
                Stage.NOTIFY, f"webhook returned {exc.response.status_code}",
            ) from exc
        except httpx.HTTPError as exc:
            raise StageError(Stage.NOTIFY, "webhook request failed", exc) from exc

        ctx.logger(logger).info("Slack message sent | status=%d labels=%d", resp.status_code, len(labels))
