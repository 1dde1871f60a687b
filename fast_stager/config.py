"""Process-wide configuration for storage, image processing and search."""

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

load_dotenv()

DEFAULT_BUCKET = "fast-stager"
DEFAULT_REGION = "us-west-2"
DEFAULT_STORAGE_BASE_URL = "https://fast-stager.s3.us-west-2.amazonaws.com/"


class StagerConfig(BaseModel):
    """Constants shared by the upload pipeline, storage and search.

    Built once at startup and passed to whatever needs it.
    """

    model_config = ConfigDict(frozen=True)

    bucket_name: str = Field(default=DEFAULT_BUCKET, description="Object storage bucket for generated images")
    aws_region: str = Field(default=DEFAULT_REGION)
    storage_base_url: str = Field(
        default=DEFAULT_STORAGE_BASE_URL,
        description="Public URL prefix that generated image keys are appended to",
    )
    watermark_path: Path | None = Field(
        default=None,
        description="Watermark asset composited over uploads; None disables the stage",
    )

    max_dimension: int = Field(default=768, gt=0, description="Longest allowed edge in pixels")
    compression_quality: int = Field(default=60, ge=1, le=95)
    watermark_quality: int = Field(default=95, ge=1, le=95)
    max_image_bytes: int = Field(default=1024 * 1024, gt=0, description="Byte budget for the compressed image")

    search_limit: int = Field(default=30, gt=0, description="Rows shown per search")

    @classmethod
    def from_env(cls) -> "StagerConfig":
        """Read overrides from the environment (and .env)."""
        watermark = os.getenv("WATERMARK_PATH")
        return cls(
            bucket_name=os.getenv("AWS_BUCKET_NAME") or DEFAULT_BUCKET,
            aws_region=os.getenv("AWS_REGION") or DEFAULT_REGION,
            storage_base_url=os.getenv("STORAGE_BASE_URL") or DEFAULT_STORAGE_BASE_URL,
            watermark_path=Path(watermark) if watermark else None,
        )
