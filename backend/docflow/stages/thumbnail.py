"""
Thumbnail Stage — S3 + Pillow
═════════════════════════════

  s3://<source bucket>/<dir>/<name>.<ext>
        │ GetObject
        ▼
  Pillow (thread executor)
        ├─► large  : <large_width> px wide PNG  → s3://<derived bucket>/<dir>/<name>.png
        │            (the derived key every later stage reads)
        └─► small  : <size>×<size> WebP, letterboxed black
                     → s3://<thumbnail bucket>/<dir>/<name>.webp

Keys depend only on the source key, so a redelivered message overwrites
the same objects. If the derived PNG key would equal the source key in the
same bucket, the width is appended so the original upload is never
replaced. The derived bucket defaults to the source bucket; the small
rendition is skipped with a warning when no thumbnail bucket is set.
"""

from __future__ import annotations

import asyncio
import io
import logging
from pathlib import PurePosixPath

from botocore.exceptions import BotoCoreError, ClientError
from PIL import Image, ImageOps

from docflow.observability.tracing import traced
from docflow.pipeline.context import InvocationContext
from docflow.pipeline.errors import Stage, StageError
from docflow.pipeline.results import DerivedImage
from docflow.schemas.events import DocumentEvent
from docflow.stages.base import ThumbnailGenerator
from docflow.storage.s3 import ObjectStore

logger = logging.getLogger(__name__)

LARGE_FORMAT = "PNG"
SMALL_FORMAT = "WEBP"
WEBP_QUALITY = 80


def derived_keys(source_key: str, large_width: int) -> tuple[str, str]:
    """Return (large PNG key, small WebP key) for a source object key."""
    path  = PurePosixPath(source_key)
    large = str(path.with_suffix(".png")) if path.suffix else f"{source_key}.png"
    small = str(path.with_suffix(".webp")) if path.suffix else f"{source_key}.webp"
    if large == source_key:
        large = str(path.with_name(f"{path.stem}-{large_width}.png"))
    return large, small


class S3ThumbnailGenerator(ThumbnailGenerator):
    """
    Constructor args:
        store            : shared ObjectStore
        derived_bucket   : bucket for the large PNG ("" = source bucket)
        thumbnail_bucket : bucket for the small WebP ("" = not written)
        large_width      : width of the large rendition in pixels
        thumbnail_size   : edge length of the square small rendition
    """

    def __init__(
        self,
        store:            ObjectStore,
        *,
        derived_bucket:   str = "",
        thumbnail_bucket: str = "",
        large_width:      int = 1024,
        thumbnail_size:   int = 256,
    ) -> None:
        self._store            = store
        self._derived_bucket   = derived_bucket
        self._thumbnail_bucket = thumbnail_bucket
        self._large_width      = large_width
        self._thumbnail_size   = thumbnail_size

    @traced("thumbnail.s3")
    async def generate(self, event: DocumentEvent, ctx: InvocationContext) -> DerivedImage:
        log = ctx.logger(logger)
        bucket = self._derived_bucket or event.s3_bucket
        large_key, small_key = derived_keys(event.s3_key, self._large_width)

        try:
            source = await self._store.get_object(event.s3_bucket, event.s3_key)
        except FileNotFoundError as exc:
            raise StageError(Stage.THUMBNAIL, "source object not found", exc) from exc
        except (ClientError, BotoCoreError) as exc:
            raise StageError(Stage.THUMBNAIL, "source download failed", exc) from exc

        write_small = bool(self._thumbnail_bucket)
        loop = asyncio.get_running_loop()
        try:
            large, small = await loop.run_in_executor(None, self._render, source, write_small)
        except (OSError, ValueError, Image.DecompressionBombError) as exc:
            raise StageError(Stage.THUMBNAIL, "image could not be decoded", exc) from exc

        try:
            await self._store.put_object(bucket, large_key, large, content_type="image/png")
            if small is not None:
                await self._store.put_object(
                    self._thumbnail_bucket, small_key, small, content_type="image/webp",
                )
        except (ClientError, BotoCoreError) as exc:
            raise StageError(Stage.THUMBNAIL, "derived image upload failed", exc) from exc

        if small is None:
            log.warning("Small thumbnail skipped, THUMBNAIL_BUCKET not set")

        log.info(
            "Thumbnail generated | source_bytes=%d derived=s3://%s/%s",
            len(source), bucket, large_key,
        )
        return DerivedImage(
            bucket=bucket,
            key=large_key,
            thumbnail_bucket=self._thumbnail_bucket if small is not None else None,
            thumbnail_key=small_key if small is not None else None,
        )

    # ------------------------------------------------------------------
    # Image work (blocking; runs in the thread executor)
    # ------------------------------------------------------------------

    def _render(self, data: bytes, write_small: bool) -> tuple[bytes, bytes | None]:
        with Image.open(io.BytesIO(data)) as opened:
            img = ImageOps.exif_transpose(opened)
            if img.mode not in ("RGB", "RGBA", "L", "LA"):
                img = img.convert("RGBA" if "transparency" in img.info else "RGB")

            large = self._encode(self._scale_to_width(img), LARGE_FORMAT)
            small = None
            if write_small:
                padded = ImageOps.pad(
                    img.convert("RGB"),
                    (self._thumbnail_size, self._thumbnail_size),
                    method=Image.Resampling.LANCZOS,
                    color=(0, 0, 0),
                    centering=(0.5, 0.5),
                )
                small = self._encode(padded, SMALL_FORMAT)
        return large, small

    def _scale_to_width(self, img: Image.Image) -> Image.Image:
        width, height = img.size
        if width == self._large_width:
            return img
        new_height = max(1, round(height * self._large_width / width))
        return img.resize((self._large_width, new_height), Image.Resampling.LANCZOS)

    @staticmethod
    def _encode(img: Image.Image, fmt: str) -> bytes:
        buffer = io.BytesIO()
        if fmt == SMALL_FORMAT:
            img.save(buffer, format=fmt, quality=WEBP_QUALITY)
        else:
            img.save(buffer, format=fmt)
        return buffer.getvalue()
