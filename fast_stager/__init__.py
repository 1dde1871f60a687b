"""Fast Stager lead workbench: property ingestion, search and image uploads."""
