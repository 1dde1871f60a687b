"""Operator actions on stored properties.

Thin store operations used by the workbench API. Errors from the database
propagate after the session is rolled back.
"""

import logging

from sqlalchemy import delete, select
from sqlalchemy.orm import Session, selectinload

from .config import StagerConfig
from .models import GeneratedImage, OtherImage, Property, UnstagedImage
from .schemas import ImageOut, LeadSummary, PropertyDetail

logger = logging.getLogger(__name__)

_IMAGE_FIELDS = {"other_images", "unstaged_images", "generated_images"}


class PropertyNotFoundError(LookupError):
    """No property with the requested id."""

    def __init__(self, property_id: int):
        super().__init__(f"Property {property_id} not found")
        self.property_id = property_id


def generated_image_url(config: StagerConfig, key: str) -> str:
    """Public URL for a generated image stored under ``key``."""
    return f"{config.storage_base_url}{key}"


def get_property_by_id(db: Session, property_id: int) -> Property | None:
    """Load a property with all three image collections."""
    return db.execute(
        select(Property)
        .where(Property.id == property_id)
        .options(
            selectinload(Property.other_images),
            selectinload(Property.unstaged_images),
            selectinload(Property.generated_images),
        )
    ).scalar_one_or_none()


def property_detail(prop: Property, config: StagerConfig) -> PropertyDetail:
    """Serialize a loaded property, resolving generated image keys."""
    columns = {
        name: getattr(prop, name)
        for name in PropertyDetail.model_fields
        if name not in _IMAGE_FIELDS
    }
    return PropertyDetail(
        **columns,
        other_images=[
            ImageOut(id=i.id, url=i.image_url, created_at=i.created_at)
            for i in prop.other_images
        ],
        unstaged_images=[
            ImageOut(id=i.id, url=i.unstaged_images, created_at=i.created_at)
            for i in prop.unstaged_images
        ],
        generated_images=[
            ImageOut(id=i.id, url=generated_image_url(config, i.image_url), created_at=i.created_at)
            for i in prop.generated_images
        ],
    )


def _leads(db: Session, contacted: bool) -> list[LeadSummary]:
    rows = db.execute(
        select(Property.id, Property.street_address, Property.state, Property.created_at)
        .where(Property.contacted_agent.is_(contacted))
        .order_by(Property.created_at.desc(), Property.id.desc())
    ).all()
    return [LeadSummary.model_validate(dict(row._mapping)) for row in rows]


def get_new_leads(db: Session) -> list[LeadSummary]:
    """Properties whose agent has not been contacted yet, newest first."""
    return _leads(db, contacted=False)


def get_recently_contacted(db: Session) -> list[LeadSummary]:
    """Properties whose agent has been contacted, newest first."""
    return _leads(db, contacted=True)


def _require(db: Session, property_id: int) -> Property:
    prop = db.get(Property, property_id)
    if prop is None:
        raise PropertyNotFoundError(property_id)
    return prop


def toggle_contacted_agent(db: Session, property_id: int) -> bool:
    """Flip the contacted flag and return its new value."""
    prop = _require(db, property_id)
    prop.contacted_agent = not prop.contacted_agent
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info(f"Property {property_id} contacted_agent={prop.contacted_agent}")
    return prop.contacted_agent


def update_property_notes(db: Session, property_id: int, notes: str) -> None:
    prop = _require(db, property_id)
    prop.notes = notes
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise


def add_generated_image(db: Session, property_id: int, key: str) -> GeneratedImage:
    """Record an uploaded staged image against its property."""
    _require(db, property_id)
    image = GeneratedImage(property_id=property_id, image_url=key)
    db.add(image)
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info(f"Property {property_id} gained generated image {key}")
    return image


def delete_property(db: Session, property_id: int) -> None:
    """Delete a property and every image row it owns, all or nothing."""
    try:
        for model in (OtherImage, GeneratedImage, UnstagedImage):
            db.execute(delete(model).where(model.property_id == property_id))
        result = db.execute(delete(Property).where(Property.id == property_id))
        if result.rowcount == 0:
            raise PropertyNotFoundError(property_id)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info(f"Deleted property {property_id}")
