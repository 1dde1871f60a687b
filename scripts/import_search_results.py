"""Import scraped search results into the property tables.

The source is the scraper's JSON export, either a local file or an http(s)
URL: a top-level ``searchResults`` array of listings. Every listing with at
least one unstaged photo becomes a new property with its unstaged and
high-resolution photos attached.

There is no dedup key, so importing the same export twice creates duplicates.

Usage:
    uv run python scripts/import_search_results.py export.json
    uv run python scripts/import_search_results.py export.json --dry-run
    uv run python scripts/import_search_results.py https://exports.example.com/latest.json
"""

import argparse
import json
import sys
from pathlib import Path

import httpx

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy.orm import Session

from fast_stager.database import Base, engine
from fast_stager.ingest import SEARCH_RESULTS_KEY, publish_search_results
from fast_stager.transformations import Accepted, normalize_search_result


def load_export(source: str):
    """Read the export from disk or fetch it over HTTP."""
    if source.startswith(("http://", "https://")):
        response = httpx.get(source, timeout=60.0, follow_redirects=True)
        response.raise_for_status()
        return response.json()
    return json.loads(Path(source).read_text())


def dry_run(payload) -> int:
    """Report what would be published without touching the database."""
    items = payload.get(SEARCH_RESULTS_KEY) if isinstance(payload, dict) else None
    if not isinstance(items, list):
        print("Invalid JSON structure: searchResults not found or not an array")
        return 1

    accepted = 0
    reasons: dict[str, int] = {}
    for item in items:
        result = normalize_search_result(item)
        if isinstance(result, Accepted):
            accepted += 1
        else:
            reasons[result.reason] = reasons.get(result.reason, 0) + 1

    print(f"Would publish: {accepted}")
    print(f"Would skip:    {len(items) - accepted}")
    for reason, count in sorted(reasons.items()):
        print(f"  {reason}: {count}")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Import scraped search results")
    parser.add_argument("source", help="JSON export path or URL with a searchResults array")
    parser.add_argument("--dry-run", action="store_true", help="Normalize only, do not write")
    args = parser.parse_args()

    try:
        payload = load_export(args.source)
    except (OSError, ValueError, httpx.HTTPError) as e:
        print(f"Could not read {args.source}: {e}")
        return 1

    if args.dry_run:
        return dry_run(payload)

    # Create tables if they don't exist
    print("Creating tables if needed...")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        outcome = publish_search_results(session, payload)

    if not outcome.success:
        print(outcome.error)
        return 1

    print(f"\n=== Imported {args.source} ===")
    print(f"Published: {outcome.published}")
    print(f"Skipped:   {outcome.skipped}")
    for error in outcome.failures:
        print(f"  store error: {error}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
