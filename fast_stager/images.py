"""Generated image upload pipeline.

An uploaded staging render goes through, strictly in order::

    validate -> compress -> watermark (optional) -> name -> upload

Each run is a small state machine. Only the pipeline writes its own
state; observers get a ``PipelineEvent`` for every transition and for
progress updates, which are only emitted while compressing or
watermarking. Any failing stage moves the machine to ``FAILED`` with a
stage-specific message and nothing is recorded against the property.
"""

import asyncio
import io
import logging
import re
import secrets
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from PIL import Image, ImageOps
from sqlalchemy.exc import SQLAlchemyError

from .config import StagerConfig
from .storage import ObjectStorage, StorageError

logger = logging.getLogger(__name__)

JPEG_CONTENT_TYPE = "image/jpeg"
FALLBACK_SLUG = "property"

# Lowest quality tried before shrinking further to meet the byte budget
_MIN_QUALITY = 10
_QUALITY_STEP = 10
_SHRINK_FACTOR = 0.9

# Pillow reports some corrupt files (PNG in particular) as SyntaxError
_IMAGE_ERRORS = (OSError, ValueError, SyntaxError, Image.DecompressionBombError)


# =============================================================================
# Image Operations
# =============================================================================

Progress = Callable[[int], None]


def _noop(_: int) -> None:
    pass


def _flatten(img: Image.Image) -> Image.Image:
    """RGB copy of ``img`` with any transparency laid over white."""
    if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
        rgba = img.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background
    return img.convert("RGB")


def _encode_jpeg(img: Image.Image, quality: int) -> bytes:
    buffer = io.BytesIO()
    img.save(buffer, format="JPEG", quality=quality, optimize=True)
    return buffer.getvalue()


def validate_image(data: bytes, content_type: str | None = None) -> tuple[int, int]:
    """Check that ``data`` is a decodable image and return its size.

    Raises ValueError for a non-image content type or undecodable bytes.
    """
    if content_type is not None and not content_type.startswith("image/"):
        raise ValueError(f"Not an image content type: {content_type}")
    if not data:
        raise ValueError("Empty upload")
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.verify()
            return img.size
    except _IMAGE_ERRORS as e:
        raise ValueError(f"Unreadable image: {e}") from e


def compress_image(
    data: bytes,
    max_dimension: int = 768,
    quality: int = 60,
    max_bytes: int = 1024 * 1024,
    on_progress: Progress = _noop,
) -> bytes:
    """Downsize to fit ``max_dimension`` and re-encode as JPEG.

    Never upscales. If the result is still over ``max_bytes`` the quality
    is lowered, then the image is shrunk, until it fits.
    """
    on_progress(0)
    with Image.open(io.BytesIO(data)) as source:
        img = _flatten(ImageOps.exif_transpose(source))
    on_progress(25)

    img.thumbnail((max_dimension, max_dimension), Image.Resampling.LANCZOS)
    on_progress(50)

    encoded = _encode_jpeg(img, quality)
    on_progress(75)

    while len(encoded) > max_bytes:
        if quality > _MIN_QUALITY:
            quality = max(_MIN_QUALITY, quality - _QUALITY_STEP)
        else:
            width, height = img.size
            if width <= 1 and height <= 1:
                break
            img = img.resize(
                (max(1, int(width * _SHRINK_FACTOR)), max(1, int(height * _SHRINK_FACTOR))),
                Image.Resampling.LANCZOS,
            )
        encoded = _encode_jpeg(img, quality)

    on_progress(100)
    return encoded


def load_watermark(path: Path) -> Image.Image:
    """Read the watermark asset fully into memory as RGBA."""
    with Image.open(path) as mark:
        return mark.convert("RGBA")


def apply_watermark(
    data: bytes,
    watermark: Image.Image,
    quality: int = 95,
    on_progress: Progress = _noop,
) -> bytes:
    """Composite ``watermark`` stretched over the whole image."""
    on_progress(0)
    with Image.open(io.BytesIO(data)) as source:
        base = source.convert("RGBA")
    on_progress(30)

    overlay = watermark.resize(base.size, Image.Resampling.LANCZOS)
    composed = Image.alpha_composite(base, overlay)
    on_progress(70)

    encoded = _encode_jpeg(composed.convert("RGB"), quality)
    on_progress(100)
    return encoded


_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def slugify_address(address: str | None) -> str:
    """Lower-case, hyphen-separated address for use in storage keys."""
    if not address:
        return FALLBACK_SLUG
    slug = _NON_ALNUM.sub("-", address.lower()).strip("-")
    return slug or FALLBACK_SLUG


def generated_filename(address: str | None) -> str:
    """Storage key for a generated image: ``{slug}-{12 hex chars}.jpg``."""
    return f"{slugify_address(address)}-{secrets.token_hex(6)}.jpg"


# =============================================================================
# Pipeline State Machine
# =============================================================================


class PipelineState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    COMPRESSING = "compressing"
    WATERMARKING = "watermarking"
    NAMING = "naming"
    UPLOADING = "uploading"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


_TRANSITIONS: dict[PipelineState, set[PipelineState]] = {
    PipelineState.IDLE: {PipelineState.VALIDATING},
    PipelineState.VALIDATING: {PipelineState.COMPRESSING, PipelineState.FAILED},
    PipelineState.COMPRESSING: {
        PipelineState.WATERMARKING,
        PipelineState.NAMING,
        PipelineState.FAILED,
    },
    PipelineState.WATERMARKING: {PipelineState.NAMING, PipelineState.FAILED},
    PipelineState.NAMING: {PipelineState.UPLOADING, PipelineState.FAILED},
    PipelineState.UPLOADING: {PipelineState.SUCCEEDED, PipelineState.FAILED},
    PipelineState.SUCCEEDED: set(),
    PipelineState.FAILED: set(),
}

_PROGRESS_STATES = {PipelineState.COMPRESSING, PipelineState.WATERMARKING}


@dataclass(frozen=True)
class PipelineEvent:
    state: PipelineState
    progress: int | None = None
    message: str | None = None


@dataclass(frozen=True)
class UploadResult:
    state: PipelineState
    key: str | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.state is PipelineState.SUCCEEDED


class StageFailure(Exception):
    """A pipeline stage gave up; the message is shown to the operator."""


RecordImage = Callable[[int, str], Any]


class ImageUploadPipeline:
    """One upload of a generated image for one property.

    ``record_image(property_id, key)`` is called only after the object is
    in storage; if it raises, the upload is reported as failed.
    """

    def __init__(
        self,
        config: StagerConfig,
        storage: ObjectStorage,
        record_image: RecordImage,
        on_event: Callable[[PipelineEvent], None] | None = None,
    ):
        self.config = config
        self.storage = storage
        self.record_image = record_image
        self.on_event = on_event
        self.state = PipelineState.IDLE
        self.progress: int | None = None
        self.failure_reason: str | None = None

    def _emit(self, event: PipelineEvent) -> None:
        if self.on_event is not None:
            self.on_event(event)

    def _transition(self, state: PipelineState, message: str | None = None) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid pipeline transition {self.state.value} -> {state.value}")
        self.state = state
        self.progress = 0 if state in _PROGRESS_STATES else None
        if state is PipelineState.FAILED:
            self.failure_reason = message
        self._emit(PipelineEvent(state=state, progress=self.progress, message=message))

    def _report(self, percent: int) -> None:
        if self.state not in _PROGRESS_STATES:
            return
        self.progress = max(0, min(100, percent))
        self._emit(PipelineEvent(state=self.state, progress=self.progress))

    def _threadsafe_progress(self) -> Progress:
        loop = asyncio.get_running_loop()
        return lambda percent: loop.call_soon_threadsafe(self._report, percent)

    async def _stage(self, state: PipelineState, failure: str, errors, work, *args) -> Any:
        self._transition(state)
        return await self._work(failure, errors, work, *args)

    async def _work(self, failure: str, errors, work, *args) -> Any:
        # Blocking work runs off the event loop; one stage at a time
        try:
            return await asyncio.to_thread(work, *args)
        except errors as e:
            logger.exception(f"Image pipeline failed while {self.state.value}")
            raise StageFailure(f"{failure}: {e}") from e

    async def process(self, data: bytes, content_type: str | None = None) -> bytes:
        """Validate, compress and (optionally) watermark; returns JPEG bytes."""
        self._transition(PipelineState.VALIDATING)
        try:
            validate_image(data, content_type)
        except ValueError as e:
            logger.warning(f"Rejected upload: {e}")
            raise StageFailure("Please upload an image file") from e

        compressed = await self._stage(
            PipelineState.COMPRESSING,
            "Failed to process image",
            _IMAGE_ERRORS,
            compress_image,
            data,
            self.config.max_dimension,
            self.config.compression_quality,
            self.config.max_image_bytes,
            self._threadsafe_progress(),
        )

        if self.config.watermark_path is None:
            return compressed

        self._transition(PipelineState.WATERMARKING)
        watermark = await self._work(
            "Failed to load watermark", _IMAGE_ERRORS, load_watermark, self.config.watermark_path
        )
        return await self._work(
            "Failed to apply watermark",
            _IMAGE_ERRORS,
            apply_watermark,
            compressed,
            watermark,
            self.config.watermark_quality,
            self._threadsafe_progress(),
        )

    async def run(
        self,
        data: bytes,
        content_type: str | None,
        property_id: int,
        street_address: str | None,
    ) -> UploadResult:
        """Process and upload one image, recording it against the property."""
        try:
            processed = await self.process(data, content_type)

            self._transition(PipelineState.NAMING)
            key = generated_filename(street_address)

            await self._stage(
                PipelineState.UPLOADING,
                "Upload failed",
                (StorageError,),
                self.storage.put,
                self.config.bucket_name,
                key,
                processed,
                JPEG_CONTENT_TYPE,
            )
            try:
                self.record_image(property_id, key)
            except (SQLAlchemyError, LookupError) as e:
                logger.exception(f"Uploaded {key} but could not record it")
                raise StageFailure("Failed to save image reference") from e
        except StageFailure as e:
            self._transition(PipelineState.FAILED, str(e))
            return UploadResult(state=self.state, error=str(e))
        except Exception as e:
            # Unexpected errors still end the run; the caller sees the exception
            if PipelineState.FAILED in _TRANSITIONS[self.state]:
                self._transition(PipelineState.FAILED, f"Unexpected error: {e}")
            raise

        self._transition(PipelineState.SUCCEEDED)
        logger.info(f"Generated image {key} uploaded for property {property_id}")
        return UploadResult(state=self.state, key=key)
