"""Normalization of scraped search results into property rows.

Scraped payloads come in two layouts that carry no version marker:

- current: ``property.listing.*``, ``property.price.value`` and
  ``property.contact_info.propertyInfo.agentInfo.*``
- legacy: ``property.listingStatus``, bare ``property.price`` and
  ``property.agent.*``

Each logical field therefore has an ordered list of JSON paths. The first
path holding a non-empty value wins, current layout first. A payload that
mixes both layouts is read path by path, which can silently pick a legacy
value for one field and a current value for another.

Schema Engineering Philosophy (same as the rest of the package):
- Coercion rules live in validators, not in the extraction code
- Anything that cannot be coerced becomes None, never a fallback number
"""

import logging
import math
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

FieldPath = tuple[str, ...]

INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1


# =============================================================================
# Field Paths
# =============================================================================

_ADDRESS = ("property", "address")
_LISTING = ("property", "listing")
_AGENT_INFO = ("property", "contact_info", "propertyInfo", "agentInfo")
_LEGACY_AGENT = ("property", "agent")
_PHOTOS = ("property", "media", "allPropertyPhotos")


def _agent(key: str) -> tuple[FieldPath, ...]:
    return (_AGENT_INFO + (key,), _LEGACY_AGENT + (key,))


FIELD_PATHS: dict[str, tuple[FieldPath, ...]] = {
    "street_address": (_ADDRESS + ("streetAddress",),),
    "zipcode": (_ADDRESS + ("zipcode",),),
    "city": (_ADDRESS + ("city",),),
    "state": (_ADDRESS + ("state",),),
    "building_id": (_LISTING + ("buildingId",), ("property", "buildingId")),
    "listing_status": (_LISTING + ("listingStatus",), ("property", "listingStatus")),
    "price": (("property", "price", "value"), ("property", "price")),
    "days_on_zillow": (_LISTING + ("daysOnZillow",), ("property", "daysOnZillow")),
    "display_name": _agent("displayName"),
    "business_name": _agent("businessName"),
    "phone_number": _agent("phoneNumber"),
    "agent_badge_type": _agent("badgeType"),
    "photo_url": _agent("photoUrl"),
    "profile_url": _agent("profileUrl"),
}

UNSTAGED_PATH: FieldPath = _PHOTOS + ("unstaged",)
HIGH_RESOLUTION_PATH: FieldPath = _PHOTOS + ("highResolution",)


def dig(data: Any, path: FieldPath) -> Any:
    """Follow a key path through nested dicts, None if any step is missing."""
    current = data
    for key in path:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def first_present(data: Any, paths: tuple[FieldPath, ...]) -> Any:
    """Return the value at the first path that is neither None nor a blank string."""
    for path in paths:
        value = dig(data, path)
        if value is None or (isinstance(value, str) and not value.strip()):
            continue
        return value
    return None


# =============================================================================
# Coercion
# =============================================================================


def to_text(value: Any) -> str | None:
    """Keep non-empty strings, stringify plain numbers, drop everything else."""
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        return value if value.strip() else None
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    return None


def to_decimal(value: Any) -> Decimal | None:
    """Coerce a number or numeric string to Decimal, None if not numeric."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    if isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation:
            return None
        return result if result.is_finite() else None
    return None


def to_int(value: Any) -> int | None:
    """Coerce a whole number (or numeric string) to int, None otherwise.

    Fractional values are truncated toward zero. Values outside the signed
    32-bit range of the integer columns become None.
    """
    number = to_decimal(value)
    if number is None:
        return None
    result = int(number)
    return result if INT32_MIN <= result <= INT32_MAX else None


# =============================================================================
# Scraped Search Result → Property Draft
# =============================================================================


class PropertyDraft(BaseModel):
    """Column values for a new property row, ready for the store.

    Every field is optional; only the unstaged photo check gates publishing.
    """

    street_address: str | None = Field(default=None, description="Street line as listed")
    zipcode: str | None = None
    city: str | None = None
    state: str | None = None

    building_id: str | None = Field(
        default=None,
        description="Source building identifier, stored as text whatever its JSON type",
    )
    listing_status: str | None = None
    price: Decimal | None = Field(default=None, description="List price; numeric strings accepted")
    days_on_zillow: int | None = Field(default=None, description="Days on market when scraped")

    display_name: str | None = Field(default=None, description="Listing agent display name")
    business_name: str | None = None
    phone_number: str | None = None
    agent_badge_type: str | None = None
    photo_url: str | None = None
    profile_url: str | None = None

    @field_validator(
        "street_address",
        "zipcode",
        "city",
        "state",
        "building_id",
        "listing_status",
        "display_name",
        "business_name",
        "phone_number",
        "agent_badge_type",
        "photo_url",
        "profile_url",
        mode="before",
    )
    @classmethod
    def coerce_text(cls, v):
        return to_text(v)

    @field_validator("price", mode="before")
    @classmethod
    def coerce_price(cls, v):
        return to_decimal(v)

    @field_validator("days_on_zillow", mode="before")
    @classmethod
    def coerce_days(cls, v):
        return to_int(v)

    @classmethod
    def from_search_result(cls, item: Any) -> "PropertyDraft":
        """Extract every column from either payload layout."""
        return cls(**{name: first_present(item, paths) for name, paths in FIELD_PATHS.items()})


@dataclass(frozen=True)
class Accepted:
    """A search result worth publishing."""

    draft: PropertyDraft
    unstaged_images: list[Any]
    other_images: list[Any] = field(default_factory=list)
    property_id: int | None = None


@dataclass(frozen=True)
class Skipped:
    """A search result deliberately not published."""

    reason: str


@dataclass(frozen=True)
class Failed:
    """A search result that was accepted but could not be stored."""

    error: str


ItemResult = Accepted | Skipped | Failed


def normalize_search_result(item: Any) -> Accepted | Skipped:
    """Map one scraped search result to a property draft plus image URLs.

    A result without at least one unstaged ("before") photo is skipped;
    nothing else blocks acceptance.
    """
    if not isinstance(item, dict):
        return Skipped(reason="search result is not an object")

    unstaged = dig(item, UNSTAGED_PATH)
    if not isinstance(unstaged, list) or not unstaged:
        return Skipped(reason="no unstaged images")

    high_resolution = dig(item, HIGH_RESOLUTION_PATH)
    other_images = list(high_resolution) if isinstance(high_resolution, list) else []

    return Accepted(
        draft=PropertyDraft.from_search_result(item),
        unstaged_images=list(unstaged),
        other_images=other_images,
    )


# =============================================================================
# Run Statistics
# =============================================================================


class IngestionOutcome(BaseModel):
    """Counters for one ingestion run.

    ``error`` is only set when the whole payload was rejected; individual
    bad records are counted in ``skipped``.
    """

    success: bool = True
    published: int = 0
    skipped: int = 0
    error: str | None = None
    failures: list[str] = Field(
        default_factory=list,
        description="Store errors for accepted records that could not be written",
    )

    @classmethod
    def structural_error(cls, message: str) -> "IngestionOutcome":
        return cls(success=False, error=message)

    def record(self, result: ItemResult) -> None:
        """Fold one item result into the counters."""
        if isinstance(result, Accepted):
            self.published += 1
        elif isinstance(result, Failed):
            self.skipped += 1
            self.failures.append(result.error)
        else:
            self.skipped += 1

    @property
    def processed(self) -> int:
        return self.published + self.skipped
