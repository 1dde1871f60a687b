"""Upload a generated staging image for one property.

Runs the same compress → watermark → upload pipeline as the API, printing
each stage as it happens.

Usage:
    uv run python scripts/upload_generated_image.py 42 render.png
"""

import argparse
import asyncio
import mimetypes
import sys
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy.orm import Session

from fast_stager.config import StagerConfig
from fast_stager.database import engine
from fast_stager.images import ImageUploadPipeline, PipelineEvent
from fast_stager.models import Property
from fast_stager.properties import add_generated_image, generated_image_url
from fast_stager.storage import S3Storage


def print_event(event: PipelineEvent) -> None:
    if event.message:
        print(f"  [{event.state.value}] {event.message}")
    elif event.progress is not None:
        print(f"  [{event.state.value}] {event.progress}%")
    else:
        print(f"  [{event.state.value}]")


def main() -> int:
    parser = argparse.ArgumentParser(description="Upload a generated image for a property")
    parser.add_argument("property_id", type=int)
    parser.add_argument("image", type=Path)
    args = parser.parse_args()

    config = StagerConfig.from_env()
    content_type, _ = mimetypes.guess_type(args.image.name)

    with Session(engine) as session:
        prop = session.get(Property, args.property_id)
        if prop is None:
            print(f"Property {args.property_id} not found")
            return 1

        pipeline = ImageUploadPipeline(
            config,
            S3Storage.from_config(config),
            record_image=lambda pid, key: add_generated_image(session, pid, key),
            on_event=print_event,
        )
        result = asyncio.run(
            pipeline.run(args.image.read_bytes(), content_type, prop.id, prop.street_address)
        )

    if not result.success:
        print(f"Upload failed: {result.error}")
        return 1

    print(f"Uploaded {generated_image_url(config, result.key)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
