"""Pydantic response schemas for the lead workbench API."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class PropertySummary(BaseModel):
    """Row shown in search results; never the full property."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    street_address: str | None = None
    state: str | None = None
    display_name: str | None = None
    phone_number: str | None = None
    contacted_agent: bool = False
    created_at: datetime
    updated_at: datetime


class SearchResponse(BaseModel):
    """One page of search hits plus the truncation flag."""

    items: list[PropertySummary] = Field(default_factory=list)
    has_more: bool = Field(
        default=False,
        description="True when more rows matched than the display cap",
    )


class LeadSummary(BaseModel):
    """Row in the new-leads / recently-contacted lists."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    street_address: str | None = None
    state: str | None = None
    created_at: datetime


class ImageOut(BaseModel):
    id: int
    url: str
    created_at: datetime


class PropertyDetail(BaseModel):
    """Full property with image URLs ready for display."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    street_address: str | None = None
    zipcode: str | None = None
    city: str | None = None
    state: str | None = None
    building_id: str | None = None
    listing_status: str | None = None
    price: Decimal | None = None
    days_on_zillow: int | None = None
    display_name: str | None = None
    business_name: str | None = None
    phone_number: str | None = None
    agent_badge_type: str | None = None
    photo_url: str | None = None
    profile_url: str | None = None
    contacted_agent: bool = False
    notes: str | None = None
    created_at: datetime
    updated_at: datetime

    other_images: list[ImageOut] = Field(default_factory=list)
    unstaged_images: list[ImageOut] = Field(default_factory=list)
    generated_images: list[ImageOut] = Field(
        default_factory=list,
        description="Storage keys resolved against the public storage base URL",
    )


class NotesUpdate(BaseModel):
    notes: str = Field(description="Replacement notes text; empty string clears")


class ActionResponse(BaseModel):
    success: bool = True


class UploadResponse(BaseModel):
    success: bool
    key: str | None = None
    url: str | None = None
    error: str | None = None
