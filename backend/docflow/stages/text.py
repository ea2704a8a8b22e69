"""
Text Extraction Stage — AWS Textract
════════════════════════════════════

Calls the synchronous DetectDocumentText API against the derived PNG in
S3 (single-page image, so the async job API is never needed).

Block handling:
  - WORD blocks carry the text; they are joined with single spaces in the
    order Textract returns them (reading order).
  - LINE / PAGE blocks are ignored, they repeat the WORD text.
  - Average WORD confidence is logged for diagnostics only.

IAM permissions required on the worker role:
  textract:DetectDocumentText
  s3:GetObject   (Textract reads the derived image directly from S3)
"""

from __future__ import annotations

import logging
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from docflow.observability.tracing import traced
from docflow.pipeline.context import InvocationContext
from docflow.pipeline.errors import Stage, StageError
from docflow.pipeline.results import DerivedImage
from docflow.schemas.events import DocumentEvent
from docflow.stages.base import TextExtractor

logger = logging.getLogger(__name__)


def words_from_blocks(blocks: list[dict[str, Any]]) -> list[str]:
    return [
        block["Text"]
        for block in blocks
        if block.get("BlockType") == "WORD" and block.get("Text")
    ]


class TextractTextExtractor(TextExtractor):

    def __init__(self, client: Any) -> None:
        self._textract = client

    @traced("text.textract")
    async def extract(
        self, event: DocumentEvent, derived: DerivedImage, ctx: InvocationContext,
    ) -> str:
        try:
            resp = await self._textract.detect_document_text(
                Document={"S3Object": {"Bucket": derived.bucket, "Name": derived.key}},
            )
        except (ClientError, BotoCoreError) as exc:
            raise StageError(Stage.TEXT, "DetectDocumentText failed", exc) from exc

        blocks = resp.get("Blocks", [])
        words  = words_from_blocks(blocks)
        confidences = [
            b.get("Confidence", 0.0) for b in blocks if b.get("BlockType") == "WORD"
        ]
        avg_conf = sum(confidences) / len(confidences) if confidences else 0.0

        ctx.logger(logger).info(
            "Textract complete | words=%d avg_confidence=%.1f", len(words), avg_conf,
        )
        return " ".join(words)
