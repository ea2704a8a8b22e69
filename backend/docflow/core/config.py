"""
Worker configuration via environment variables (12-factor).
Pydantic BaseSettings validates and coerces all values at cold start.

Missing provider settings never fail the process: the stage that needs
them is skipped with a warning (see RecordHandler).
"""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # AWS
    # ------------------------------------------------------------------
    aws_region: str = "us-east-1"

    # Large PNG rendition; empty = write next to the source object
    derived_image_bucket: str = ""
    # Small WebP rendition; empty = variant skipped
    thumbnail_bucket: str = ""

    large_image_width: int = 1024
    thumbnail_size:    int = 256

    # ------------------------------------------------------------------
    # Vision / OCR
    # ------------------------------------------------------------------
    rekognition_max_labels:     int   = 10
    rekognition_min_confidence: float = 75.0

    # ------------------------------------------------------------------
    # Document store (FormKiQ) write-back
    # ------------------------------------------------------------------
    formkiq_base_url: str = ""
    formkiq_api_key:  str = ""

    formkiq_label_attribute_key:     str  = "labels"
    formkiq_thumbnail_attribute_key: str  = "thumbnail"   # empty = not written
    formkiq_write_ocr:               bool = True

    # ------------------------------------------------------------------
    # Notification
    # ------------------------------------------------------------------
    slack_webhook_url: str = ""
    presigned_url_ttl_seconds: int = 7 * 24 * 3600   # SigV4 maximum

    http_timeout_seconds: float = 10.0

    # ------------------------------------------------------------------
    # Batch processing
    # ------------------------------------------------------------------
    batch_concurrency: int = 10
    invocation_timeout_margin_seconds: float = 5.0

    # Redrive policy of the source queue; enforced by SQS, mirrored here for logging
    max_receive_count: int = 3

    # Long-running poller (alternative to the Lambda event source mapping)
    sqs_queue_url:          str = ""
    sqs_wait_time_seconds:  int = 20
    sqs_max_messages:       int = 10
    sqs_visibility_timeout: int = 300

    # ------------------------------------------------------------------
    # Application
    # ------------------------------------------------------------------
    service_name: str = "OnDocumentCreated"
    app_env:      str = "development"   # development | staging | production
    log_level:    str = "INFO"
    debug:        bool = False

    @property
    def document_store_configured(self) -> bool:
        return bool(self.formkiq_base_url and self.formkiq_api_key)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
