"""Label detection via Amazon Rekognition DetectLabels on the derived image."""

from __future__ import annotations

import logging
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from docflow.observability.tracing import traced
from docflow.pipeline.context import InvocationContext
from docflow.pipeline.errors import Stage, StageError
from docflow.pipeline.results import DerivedImage
from docflow.schemas.events import DocumentEvent
from docflow.stages.base import LabelDetector

logger = logging.getLogger(__name__)


class RekognitionLabelDetector(LabelDetector):
    """
    Returns label names in the order Rekognition ranks them (highest
    confidence first). An image with no labels above the threshold yields [].
    """

    def __init__(
        self,
        client:         Any,
        *,
        max_labels:     int = 10,
        min_confidence: float = 75.0,
    ) -> None:
        self._rekognition    = client
        self._max_labels     = max_labels
        self._min_confidence = min_confidence

    @traced("labels.rekognition")
    async def detect(
        self, event: DocumentEvent, derived: DerivedImage, ctx: InvocationContext,
    ) -> list[str]:
        try:
            resp = await self._rekognition.detect_labels(
                Image={"S3Object": {"Bucket": derived.bucket, "Name": derived.key}},
                MaxLabels=self._max_labels,
                MinConfidence=self._min_confidence,
            )
        except (ClientError, BotoCoreError) as exc:
            raise StageError(Stage.LABELS, "DetectLabels failed", exc) from exc

        labels = [label["Name"] for label in resp.get("Labels", []) if label.get("Name")]
        ctx.logger(logger).info(
            "Labels detected | count=%d labels=%s", len(labels), ",".join(labels) or "-",
        )
        return labels
