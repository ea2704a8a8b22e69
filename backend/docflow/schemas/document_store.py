"""
Document store (FormKiQ) write-back payloads.

One canonical attribute shape: ``{"key": ..., "stringValues": [...]}``.
Attribute keys come from settings so the schema can change without a deploy.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class DocumentAttribute(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    key:           str
    string_values: list[str] = Field(default_factory=list, alias="stringValues")


class DocumentAttributeList(BaseModel):
    attributes: list[DocumentAttribute] = Field(default_factory=list)

    @classmethod
    def create(
        cls,
        labels: list[str],
        label_key: str,
        derived_key: str | None = None,
        thumbnail_key: str = "",
    ) -> "DocumentAttributeList":
        attributes: list[DocumentAttribute] = []
        if labels:
            attributes.append(DocumentAttribute(key=label_key, string_values=list(labels)))
        if derived_key and thumbnail_key:
            attributes.append(DocumentAttribute(key=thumbnail_key, string_values=[derived_key]))
        return cls(attributes=attributes)


class OcrContent(BaseModel):
    """Body of ``PUT /documents/{id}/ocr``."""
    model_config = ConfigDict(populate_by_name=True)

    content:      str
    content_type: str  = Field("text/plain", alias="contentType")
    is_base64:    bool = Field(False, alias="isBase64")
