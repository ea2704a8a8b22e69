"""
Attribute Write-back Stage — FormKiQ Document API
═════════════════════════════════════════════════

  POST {base}/documents/{documentId}/attributes
       {"attributes": [{"key": "labels",    "stringValues": [...labels]},
                       {"key": "thumbnail", "stringValues": [derived key]}]}
  PUT  {base}/documents/{documentId}/ocr
       {"content": text, "contentType": "text/plain", "isBase64": false}

Both requests carry ``Authorization: <api key>``. Each request replaces the
previous values for the same document, so redelivery converges on the same
state. Attribute keys are settings, not constants.

Runs only when FORMKIQ_BASE_URL and FORMKIQ_API_KEY are both set; otherwise
the handler skips it with a warning.
"""

from __future__ import annotations

import logging
from urllib.parse import quote

import httpx

from docflow.observability.tracing import traced
from docflow.pipeline.context import InvocationContext
from docflow.pipeline.errors import Stage, StageError
from docflow.pipeline.results import DerivedImage
from docflow.schemas.document_store import DocumentAttributeList, OcrContent
from docflow.schemas.events import DocumentEvent
from docflow.stages.base import AttributeWriter

logger = logging.getLogger(__name__)


class FormKiqAttributeWriter(AttributeWriter):

    def __init__(
        self,
        http:          httpx.AsyncClient,
        *,
        base_url:      str,
        api_key:       str,
        label_key:     str = "labels",
        thumbnail_key: str = "thumbnail",
        write_ocr:     bool = True,
    ) -> None:
        self._http          = http
        self._base_url      = base_url.rstrip("/")
        self._api_key       = api_key
        self._label_key     = label_key
        self._thumbnail_key = thumbnail_key
        self._write_ocr     = write_ocr

    def missing_configuration(self) -> list[str]:
        missing = []
        if not self._base_url:
            missing.append("FORMKIQ_BASE_URL")
        if not self._api_key:
            missing.append("FORMKIQ_API_KEY")
        return missing

    @traced("attributes.formkiq")
    async def write(
        self,
        event: DocumentEvent,
        labels: list[str],
        text: str,
        ctx: InvocationContext,
        derived: DerivedImage | None = None,
    ) -> None:
        log = ctx.logger(logger)
        document_url = f"{self._base_url}/documents/{quote(event.document_id, safe='')}"

        attributes = DocumentAttributeList.create(
            labels,
            self._label_key,
            derived_key=derived.key if derived else None,
            thumbnail_key=self._thumbnail_key,
        )
        if attributes.attributes:
            await self._send(
                "POST", f"{document_url}/attributes", attributes.model_dump(by_alias=True),
            )
            log.info(
                "FormKiQ attributes set | keys=%s",
                ",".join(a.key for a in attributes.attributes),
            )

        if text and self._write_ocr:
            ocr = OcrContent(content=text)
            await self._send("PUT", f"{document_url}/ocr", ocr.model_dump(by_alias=True))
            log.info("FormKiQ OCR content set | chars=%d", len(text))

    async def _send(self, method: str, url: str, payload: dict) -> None:
        try:
            resp = await self._http.request(
                method,
                url,
                json=payload,
                headers={"Authorization": self._api_key},
            )
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise StageError(
                Stage.ATTRIBUTES,
                f"{method} {exc.request.url.path} returned {exc.response.status_code}",
            ) from exc
        except httpx.HTTPError as exc:
            raise StageError(Stage.ATTRIBUTES, f"{method} request failed", exc) from exc
