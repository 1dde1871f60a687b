from datetime import UTC, datetime

import pytest
from sqlalchemy import event, func, select

from fast_stager.config import StagerConfig
from fast_stager.models import GeneratedImage, OtherImage, Property, UnstagedImage
from fast_stager.properties import (
    PropertyNotFoundError,
    add_generated_image,
    delete_property,
    generated_image_url,
    get_new_leads,
    get_property_by_id,
    get_recently_contacted,
    property_detail,
    toggle_contacted_agent,
    update_property_notes,
)

IMAGE_MODELS = (OtherImage, UnstagedImage, GeneratedImage)


def count(db, model) -> int:
    return db.scalar(select(func.count()).select_from(model))


@pytest.fixture
def staged_property(db, make_property):
    """A property with 2 other, 3 unstaged and 1 generated image."""
    prop = make_property(street_address="12 Gallery Way")
    db.add_all(
        [
            OtherImage(property_id=prop.id, image_url="https://photos.example.com/o1.jpg"),
            OtherImage(property_id=prop.id, image_url="https://photos.example.com/o2.jpg"),
            UnstagedImage(property_id=prop.id, unstaged_images="https://photos.example.com/u1.jpg"),
            UnstagedImage(property_id=prop.id, unstaged_images="https://photos.example.com/u2.jpg"),
            UnstagedImage(property_id=prop.id, unstaged_images="https://photos.example.com/u3.jpg"),
            GeneratedImage(property_id=prop.id, image_url="12-gallery-way-abcdef012345.jpg"),
        ]
    )
    db.commit()
    return prop


def test_delete_removes_property_and_all_images(db, make_property, staged_property) -> None:
    survivor = make_property(street_address="Other Rd")
    db.add(UnstagedImage(property_id=survivor.id, unstaged_images="keep.jpg"))
    db.commit()

    delete_property(db, staged_property.id)

    assert db.get(Property, staged_property.id) is None
    for model in IMAGE_MODELS:
        assert db.scalar(
            select(func.count()).select_from(model).where(model.property_id == staged_property.id)
        ) == 0
    assert count(db, Property) == 1
    assert count(db, UnstagedImage) == 1


def test_failed_delete_leaves_everything_intact(db, engine, staged_property) -> None:
    def fail_on_property_delete(conn, cursor, statement, parameters, context, executemany):
        if statement.startswith("DELETE FROM property "):
            raise RuntimeError("connection lost")

    event.listen(engine, "before_cursor_execute", fail_on_property_delete)
    try:
        with pytest.raises(RuntimeError):
            delete_property(db, staged_property.id)
    finally:
        event.remove(engine, "before_cursor_execute", fail_on_property_delete)

    assert count(db, Property) == 1
    assert count(db, OtherImage) == 2
    assert count(db, UnstagedImage) == 3
    assert count(db, GeneratedImage) == 1


def test_delete_missing_property_raises_and_rolls_back(db, staged_property) -> None:
    with pytest.raises(PropertyNotFoundError):
        delete_property(db, 9999)

    assert count(db, OtherImage) == 2


def test_toggle_contacted_moves_lead_between_lists(db, make_property) -> None:
    prop = make_property(street_address="1 Lead Ln", state="CA", updated_at=datetime(2025, 1, 1))

    assert [lead.id for lead in get_new_leads(db)] == [prop.id]
    assert get_recently_contacted(db) == []

    assert toggle_contacted_agent(db, prop.id) is True
    assert get_new_leads(db) == []
    assert [lead.id for lead in get_recently_contacted(db)] == [prop.id]
    assert db.get(Property, prop.id).updated_at > datetime(2025, 1, 1)

    assert toggle_contacted_agent(db, prop.id) is False


def test_leads_are_newest_first(db, make_property) -> None:
    old = make_property(street_address="Old", created_at=datetime(2024, 1, 1))
    new = make_property(street_address="New", created_at=datetime(2025, 1, 1))

    assert [lead.id for lead in get_new_leads(db)] == [new.id, old.id]


def test_operator_actions_on_missing_property(db) -> None:
    with pytest.raises(PropertyNotFoundError):
        toggle_contacted_agent(db, 404)
    with pytest.raises(PropertyNotFoundError):
        update_property_notes(db, 404, "hello")
    with pytest.raises(PropertyNotFoundError):
        add_generated_image(db, 404, "x.jpg")


def test_update_notes(db, make_property) -> None:
    prop = make_property(street_address="Notes Ave")

    update_property_notes(db, prop.id, "Called twice, left voicemail")

    assert db.get(Property, prop.id).notes == "Called twice, left voicemail"


def test_add_generated_image(db, make_property) -> None:
    prop = make_property(street_address="Render Rd")

    image = add_generated_image(db, prop.id, "render-rd-0123456789ab.jpg")

    assert image.id is not None
    assert count(db, GeneratedImage) == 1


def test_property_detail_resolves_generated_keys(db, staged_property) -> None:
    config = StagerConfig(storage_base_url="https://cdn.example.com/")
    db.expire_all()

    detail = property_detail(get_property_by_id(db, staged_property.id), config)

    assert detail.street_address == "12 Gallery Way"
    assert len(detail.other_images) == 2
    assert len(detail.unstaged_images) == 3
    assert [i.url for i in detail.generated_images] == [
        "https://cdn.example.com/12-gallery-way-abcdef012345.jpg"
    ]
    assert detail.other_images[0].url.startswith("https://photos.example.com/")


def test_generated_image_url_uses_default_bucket() -> None:
    assert (
        generated_image_url(StagerConfig(), "a.jpg")
        == "https://fast-stager.s3.us-west-2.amazonaws.com/a.jpg"
    )


def test_get_property_by_id_missing(db) -> None:
    assert get_property_by_id(db, 1) is None


def test_timestamps_are_naive_utc(db, make_property) -> None:
    before = datetime.now(UTC).replace(tzinfo=None)

    prop = make_property(street_address="Clock Tower")

    assert prop.created_at.tzinfo is None
    assert before <= prop.created_at <= datetime.now(UTC).replace(tzinfo=None)
