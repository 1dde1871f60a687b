"""Publish scraped search results into the property tables.

Items are processed in input order, one commit per published property, so
a record that the database rejects is rolled back on its own and counted
as skipped without affecting the rest of the batch.
"""

import json
import logging
from dataclasses import replace
from typing import Any

from sqlalchemy.orm import Session

from .models import OtherImage, Property, UnstagedImage
from .transformations import (
    Accepted,
    Failed,
    IngestionOutcome,
    normalize_search_result,
)

logger = logging.getLogger(__name__)

SEARCH_RESULTS_KEY = "searchResults"


def publish_search_results(db: Session, payload: Any) -> IngestionOutcome:
    """Normalize and store every item under ``searchResults``.

    Returns a failed outcome with zero counts when the payload does not
    carry a ``searchResults`` list. There is no dedup key: publishing the
    same payload twice creates the properties twice.
    """
    items = payload.get(SEARCH_RESULTS_KEY) if isinstance(payload, dict) else None
    if not isinstance(items, list):
        logger.warning("Rejected ingestion payload without a searchResults list")
        return IngestionOutcome.structural_error(
            "Invalid JSON structure: searchResults not found or not an array"
        )

    outcome = IngestionOutcome()
    for index, item in enumerate(items):
        result = normalize_search_result(item)
        if isinstance(result, Accepted):
            result = _store(db, result)
        else:
            logger.warning(f"Skipped search result {index}: {result.reason}")
        if isinstance(result, Failed):
            logger.warning(f"Search result {index} could not be stored: {result.error}")
        outcome.record(result)

    logger.info(f"Ingestion finished: {outcome.published} published, {outcome.skipped} skipped")
    return outcome


def publish_json_text(db: Session, raw: str | bytes) -> IngestionOutcome:
    """Parse an uploaded JSON document and publish it."""
    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.warning(f"Rejected ingestion payload that is not valid JSON: {e}")
        return IngestionOutcome.structural_error(f"Invalid JSON: {e}")
    return publish_search_results(db, payload)


def _store(db: Session, accepted: Accepted) -> Accepted | Failed:
    """Write the property and its image rows as one unit."""
    try:
        prop = Property(**accepted.draft.model_dump())
        db.add(prop)
        db.flush()
        property_id = prop.id

        db.add_all(
            OtherImage(property_id=property_id, image_url=url) for url in accepted.other_images
        )
        db.add_all(
            UnstagedImage(property_id=property_id, unstaged_images=url)
            for url in accepted.unstaged_images
        )
        db.commit()
    except Exception as e:
        # Drivers also raise plain Python errors here, e.g. OverflowError
        db.rollback()
        logger.exception("Error storing property")
        return Failed(error=str(e))

    return replace(accepted, property_id=property_id)
