"""SQLAlchemy models for scraped property leads and their images."""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Numeric, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp for the DateTime columns."""
    return datetime.now(UTC).replace(tzinfo=None)


class Property(Base):
    """A scraped listing being worked as a staging lead."""

    __tablename__ = "property"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Address
    street_address: Mapped[str | None] = mapped_column(Text, index=True)
    zipcode: Mapped[str | None] = mapped_column(Text)
    city: Mapped[str | None] = mapped_column(Text)
    state: Mapped[str | None] = mapped_column(Text)

    # Listing
    building_id: Mapped[str | None] = mapped_column(Text)
    listing_status: Mapped[str | None] = mapped_column(Text)
    price: Mapped[Decimal | None] = mapped_column(Numeric)
    days_on_zillow: Mapped[int | None] = mapped_column(Integer)

    # Listing agent
    display_name: Mapped[str | None] = mapped_column(Text, index=True)
    business_name: Mapped[str | None] = mapped_column(Text)
    phone_number: Mapped[str | None] = mapped_column(Text, index=True)
    agent_badge_type: Mapped[str | None] = mapped_column(Text)
    photo_url: Mapped[str | None] = mapped_column(Text)
    profile_url: Mapped[str | None] = mapped_column(Text)

    # Operator-maintained
    updated_first_image: Mapped[bool] = mapped_column(Boolean, default=False)
    contacted_agent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False, index=True
    )

    # Relationships
    other_images: Mapped[list["OtherImage"]] = relationship(
        "OtherImage", back_populates="property", cascade="all, delete-orphan", passive_deletes=True
    )
    unstaged_images: Mapped[list["UnstagedImage"]] = relationship(
        "UnstagedImage", back_populates="property", cascade="all, delete-orphan", passive_deletes=True
    )
    generated_images: Mapped[list["GeneratedImage"]] = relationship(
        "GeneratedImage", back_populates="property", cascade="all, delete-orphan", passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"<Property {self.id}: {self.street_address}>"


class OtherImage(Base):
    """A high-resolution listing photo (full URL)."""

    __tablename__ = "other_images"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    property_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("property.id", ondelete="CASCADE"), nullable=False, index=True
    )
    image_url: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    property: Mapped["Property"] = relationship("Property", back_populates="other_images")


class UnstagedImage(Base):
    """An empty-room "before" photo (full URL)."""

    __tablename__ = "unstaged_images"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    property_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("property.id", ondelete="CASCADE"), nullable=False, index=True
    )
    unstaged_images: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    property: Mapped["Property"] = relationship("Property", back_populates="unstaged_images")


class GeneratedImage(Base):
    """A staged image we produced; image_url is an object storage key."""

    __tablename__ = "generated_images"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    property_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("property.id", ondelete="CASCADE"), nullable=False, index=True
    )
    image_url: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    property: Mapped["Property"] = relationship("Property", back_populates="generated_images")

    def __repr__(self) -> str:
        return f"<GeneratedImage {self.property_id}: {self.image_url}>"
