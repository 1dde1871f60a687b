"""Test doubles and builders shared across test modules."""

import io

from PIL import Image

from fast_stager.storage import StorageError


class MemoryStorage:
    """Object storage double that keeps uploads in a dict."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.objects: dict[tuple[str, str], tuple[bytes, str]] = {}

    def put(self, bucket: str, key: str, body: bytes, content_type: str) -> None:
        if self.fail:
            raise StorageError("bucket unavailable")
        self.objects[(bucket, key)] = (body, content_type)


def make_image(size=(1600, 900), fmt="PNG", mode="RGB", color=(40, 90, 160)) -> bytes:
    buffer = io.BytesIO()
    Image.new(mode, size, color).save(buffer, format=fmt)
    return buffer.getvalue()


def search_result(
    street="123 Main St",
    unstaged=("https://photos.example.com/u1.jpg",),
    high_res=("https://photos.example.com/h1.jpg",),
    **property_fields,
) -> dict:
    """Legacy-layout scraped search result."""
    prop = {
        "address": {"streetAddress": street, "city": "Austin", "state": "TX", "zipcode": "78701"},
        "media": {
            "allPropertyPhotos": {
                "unstaged": list(unstaged) if unstaged is not None else None,
                "highResolution": list(high_res),
            }
        },
    }
    prop.update(property_fields)
    return {"property": prop}
