"""Operator search over property leads.

Supported query forms:
- ``42`` : property 42 first (if it exists), then substring hits for "42"
- ``"123 Main St"`` : case-insensitive full equality
- ``123 main`` : case-insensitive substring match

Matches are against street address, agent display name and agent phone.
"""

import logging
import re

from sqlalchemy import Select, func, or_, select
from sqlalchemy.orm import Session

from .models import Property
from .schemas import PropertySummary, SearchResponse
from .transformations import INT32_MAX

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 30

SEARCH_COLUMNS = (
    Property.street_address,
    Property.display_name,
    Property.phone_number,
)

_NUMERIC = re.compile(r"^[0-9]+$")
_QUOTED = re.compile(r'^"(.*)"$', re.DOTALL)


def _summary_query() -> Select:
    return select(
        Property.id,
        Property.street_address,
        Property.state,
        Property.display_name,
        Property.phone_number,
        Property.contacted_agent,
        Property.created_at,
        Property.updated_at,
    )


def _to_summaries(rows) -> list[PropertySummary]:
    return [PropertySummary.model_validate(dict(row._mapping)) for row in rows]


def find_by_id(db: Session, property_id: int) -> PropertySummary | None:
    """Exact identifier lookup."""
    if property_id > INT32_MAX:
        return None
    row = db.execute(_summary_query().where(Property.id == property_id)).first()
    return PropertySummary.model_validate(dict(row._mapping)) if row else None


def _matching(db: Session, condition, limit: int) -> list[PropertySummary]:
    # One extra row tells the caller whether the list was truncated
    rows = db.execute(
        _summary_query()
        .where(condition)
        .order_by(Property.updated_at.desc(), Property.id.desc())
        .limit(limit + 1)
    ).all()
    return _to_summaries(rows)


def exact_search(db: Session, term: str, limit: int = DEFAULT_LIMIT) -> list[PropertySummary]:
    """Properties where any search column equals ``term``, ignoring case."""
    needle = term.lower()
    condition = or_(*(func.lower(column) == needle for column in SEARCH_COLUMNS))
    return _matching(db, condition, limit)


def fuzzy_search(db: Session, term: str, limit: int = DEFAULT_LIMIT) -> list[PropertySummary]:
    """Properties where any search column contains ``term``, ignoring case."""
    condition = or_(*(column.icontains(term, autoescape=True) for column in SEARCH_COLUMNS))
    return _matching(db, condition, limit)


def search_properties(
    db: Session,
    query: str,
    id_only: bool = False,
    limit: int = DEFAULT_LIMIT,
) -> SearchResponse:
    """Answer an operator query.

    Returns at most ``limit`` summaries, newest update first, with
    ``has_more`` set when more rows matched. Read-only; malformed queries
    give an empty response rather than an error.
    """
    term = query.strip()
    if not term:
        return SearchResponse()

    is_numeric = bool(_NUMERIC.match(term))

    if id_only:
        if not is_numeric:
            return SearchResponse()
        match = find_by_id(db, int(term))
        return SearchResponse(items=[match] if match else [])

    if is_numeric:
        exact_id = find_by_id(db, int(term))
        results = fuzzy_search(db, term, limit)
        if exact_id and all(p.id != exact_id.id for p in results):
            results = [exact_id, *results]
    else:
        quoted = _QUOTED.match(term)
        if quoted:
            inner = quoted.group(1)
            results = exact_search(db, inner, limit) if inner.strip() else []
        else:
            results = fuzzy_search(db, term, limit)

    logger.debug(f"Search {term!r} matched {len(results)} rows (limit {limit})")
    return SearchResponse(items=results[:limit], has_more=len(results) > limit)
