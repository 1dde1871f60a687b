import json
from decimal import Decimal

import pytest
from sqlalchemy import Numeric, Text, func, select

from fast_stager.ingest import publish_json_text, publish_search_results
from fast_stager.models import OtherImage, Property, UnstagedImage
from tests.utils import search_result


def count(db, model) -> int:
    return db.scalar(select(func.count()).select_from(model))


@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"searchResults": None},
        {"searchResults": {"0": search_result()}},
        {"results": [search_result()]},
        [search_result()],
        "searchResults",
    ],
)
def test_payload_without_result_list_aborts_run(db, payload) -> None:
    outcome = publish_search_results(db, payload)

    assert outcome.success is False
    assert outcome.error == "Invalid JSON structure: searchResults not found or not an array"
    assert (outcome.published, outcome.skipped) == (0, 0)
    assert count(db, Property) == 0


def test_invalid_json_text_aborts_run(db) -> None:
    outcome = publish_json_text(db, "{not json")

    assert outcome.success is False
    assert outcome.error.startswith("Invalid JSON")
    assert count(db, Property) == 0


def test_counts_published_and_skipped(db) -> None:
    items = [
        search_result(street="1 A St"),
        search_result(street="2 B St", unstaged=()),
        search_result(street="3 C St", unstaged=("u1.jpg", "u2.jpg"), high_res=()),
        search_result(street="4 D St", unstaged=None),
        "garbage",
    ]

    outcome = publish_search_results(db, {"searchResults": items})

    assert outcome.success is True
    assert outcome.published == 2
    assert outcome.skipped == 3
    assert count(db, Property) == 2
    assert count(db, UnstagedImage) == 3
    assert count(db, OtherImage) == 1


def test_skipped_item_creates_no_rows(db) -> None:
    outcome = publish_search_results(db, {"searchResults": [search_result(unstaged=())]})

    assert (outcome.published, outcome.skipped) == (0, 1)
    assert count(db, Property) == 0
    assert count(db, UnstagedImage) == 0


def test_published_rows_are_linked_and_not_contacted(db) -> None:
    publish_search_results(db, {"searchResults": [search_result(price="300000")]})

    prop = db.scalars(select(Property)).one()
    assert prop.street_address == "123 Main St"
    assert prop.price == Decimal("300000")
    assert prop.contacted_agent is False
    assert prop.notes is None
    assert prop.created_at is not None and prop.updated_at is not None
    assert [i.unstaged_images for i in prop.unstaged_images] == ["https://photos.example.com/u1.jpg"]
    assert [i.image_url for i in prop.other_images] == ["https://photos.example.com/h1.jpg"]


def test_reingesting_same_payload_creates_duplicates(db) -> None:
    payload = {"searchResults": [search_result(), search_result(street="9 Elm St")]}

    first = publish_search_results(db, payload)
    second = publish_search_results(db, payload)

    assert first.published == second.published == 2
    assert count(db, Property) == 4
    streets = db.scalars(select(Property.street_address).order_by(Property.id)).all()
    assert streets == ["123 Main St", "9 Elm St", "123 Main St", "9 Elm St"]


def test_store_failure_is_isolated_to_its_item(db) -> None:
    items = [
        search_result(street="1 Good St"),
        # NOT NULL image url: accepted by the normalizer, rejected by the store
        search_result(street="2 Bad St", unstaged=(None,)),
        search_result(street="3 Good St"),
    ]

    outcome = publish_search_results(db, {"searchResults": items})

    assert outcome.success is True
    assert outcome.published == 2
    assert outcome.skipped == 1
    assert len(outcome.failures) == 1
    streets = db.scalars(select(Property.street_address).order_by(Property.id)).all()
    assert streets == ["1 Good St", "3 Good St"]
    assert count(db, UnstagedImage) == 2


def test_items_are_published_in_input_order(db) -> None:
    items = [search_result(street=f"{n} Order St") for n in range(5)]

    publish_search_results(db, {"searchResults": items})

    streets = db.scalars(select(Property.street_address).order_by(Property.id)).all()
    assert streets == [f"{n} Order St" for n in range(5)]


def test_json_text_entry_point(db) -> None:
    raw = json.dumps({"searchResults": [search_result(), search_result(unstaged=())]})

    outcome = publish_json_text(db, raw.encode())

    assert (outcome.published, outcome.skipped) == (1, 1)


def test_oversized_days_on_market_is_stored_as_absent(db) -> None:
    items = [
        search_result(street="1 Good St"),
        search_result(street="2 Huge St", daysOnZillow="1e20"),
        search_result(street="3 Good St"),
    ]

    outcome = publish_search_results(db, {"searchResults": items})

    assert (outcome.published, outcome.skipped) == (3, 0)
    huge = db.scalars(select(Property).where(Property.street_address == "2 Huge St")).one()
    assert huge.days_on_zillow is None


def test_driver_level_error_is_isolated_to_its_item(db) -> None:
    items = [
        search_result(street="1 Good St"),
        # sqlite3 raises a bare OverflowError binding this value
        search_result(street="2 Bad St", unstaged=(10**20,)),
        search_result(street="3 Good St"),
    ]

    outcome = publish_search_results(db, {"searchResults": items})

    assert (outcome.published, outcome.skipped) == (2, 1)
    assert len(outcome.failures) == 1
    streets = db.scalars(select(Property.street_address).order_by(Property.id)).all()
    assert streets == ["1 Good St", "3 Good St"]
    assert count(db, UnstagedImage) == 2


def test_columns_accept_whatever_the_normalizer_accepts(db) -> None:
    columns = Property.__table__.c
    for name in ("zipcode", "state", "listing_status", "phone_number", "agent_badge_type"):
        assert isinstance(columns[name].type, Text)
    assert isinstance(columns.price.type, Numeric)
    assert columns.price.type.precision is None

    item = search_result(price="12345678901234.5")
    item["property"]["address"]["zipcode"] = "9" * 40
    item["property"]["agent"] = {"phoneNumber": "555-0100 ext. " + "1" * 60, "badgeType": "B" * 80}

    publish_search_results(db, {"searchResults": [item]})

    prop = db.scalars(select(Property)).one()
    assert prop.zipcode == "9" * 40
    assert prop.price == Decimal("12345678901234.5")
    assert len(prop.phone_number) == 74
    assert prop.agent_badge_type == "B" * 80
