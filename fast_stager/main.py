"""FastAPI application for the Fast Stager lead workbench."""

import logging
import os
from contextlib import asynccontextmanager
from functools import lru_cache

import logfire
from fastapi import Depends, FastAPI, File, HTTPException, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.requests import Request

from .config import StagerConfig
from .database import get_db, init_db
from .images import ImageUploadPipeline
from .ingest import publish_json_text
from .properties import (
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
from .schemas import (
    ActionResponse,
    LeadSummary,
    NotesUpdate,
    PropertyDetail,
    SearchResponse,
    UploadResponse,
)
from .search import search_properties
from .storage import ObjectStorage, S3Storage
from .transformations import IngestionOutcome

logger = logging.getLogger(__name__)


@lru_cache
def get_config() -> StagerConfig:
    return StagerConfig.from_env()


@lru_cache
def get_storage() -> ObjectStorage:
    return S3Storage.from_config(get_config())


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database on startup."""
    init_db()
    yield


app = FastAPI(
    title="Fast Stager API",
    description="Lead workbench for scraped listings and generated staging images",
    version="0.1.0",
    lifespan=lifespan,
)

# Configure Logfire for observability (after app creation)
if os.getenv("LOGFIRE_TOKEN"):
    logfire.configure()
    logfire.instrument_fastapi(app)

# CORS for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "service": "Fast Stager API"}


# =============================================================================
# Ingestion
# =============================================================================


@app.post("/api/ingest", response_model=IngestionOutcome)
async def ingest_search_results(request: Request, db: Session = Depends(get_db)):
    """Publish an uploaded search-results JSON document."""
    outcome = publish_json_text(db, await request.body())
    if not outcome.success:
        return JSONResponse(outcome.model_dump(), status_code=400)
    return outcome


# =============================================================================
# Search & Leads
# =============================================================================


@app.get("/api/properties/search")
async def search(
    q: str = Query("", description="Free text, a property id, or a quoted exact phrase"),
    id_only: bool = False,
    db: Session = Depends(get_db),
    config: StagerConfig = Depends(get_config),
) -> SearchResponse:
    return search_properties(db, q, id_only=id_only, limit=config.search_limit)


@app.get("/api/leads/new")
async def new_leads(db: Session = Depends(get_db)) -> list[LeadSummary]:
    return get_new_leads(db)


@app.get("/api/leads/contacted")
async def contacted_leads(db: Session = Depends(get_db)) -> list[LeadSummary]:
    return get_recently_contacted(db)


# =============================================================================
# Property Actions
# =============================================================================


@app.get("/api/properties/{property_id}")
async def get_property(
    property_id: int,
    db: Session = Depends(get_db),
    config: StagerConfig = Depends(get_config),
) -> PropertyDetail:
    prop = get_property_by_id(db, property_id)
    if prop is None:
        raise HTTPException(status_code=404, detail="Property not found")
    return property_detail(prop, config)


@app.post("/api/properties/{property_id}/contacted")
async def toggle_contacted(property_id: int, db: Session = Depends(get_db)) -> ActionResponse:
    try:
        toggle_contacted_agent(db, property_id)
    except PropertyNotFoundError:
        raise HTTPException(status_code=404, detail="Property not found")
    except SQLAlchemyError:
        logger.exception("Error toggling contacted_agent status")
        raise HTTPException(status_code=500, detail="Failed to update property")
    return ActionResponse()


@app.put("/api/properties/{property_id}/notes")
async def update_notes(
    property_id: int, body: NotesUpdate, db: Session = Depends(get_db)
) -> ActionResponse:
    try:
        update_property_notes(db, property_id, body.notes)
    except PropertyNotFoundError:
        raise HTTPException(status_code=404, detail="Property not found")
    except SQLAlchemyError:
        logger.exception("Error updating property notes")
        raise HTTPException(status_code=500, detail="Failed to update property notes")
    return ActionResponse()


@app.delete("/api/properties/{property_id}")
async def remove_property(property_id: int, db: Session = Depends(get_db)) -> ActionResponse:
    try:
        delete_property(db, property_id)
    except PropertyNotFoundError:
        raise HTTPException(status_code=404, detail="Property not found")
    except SQLAlchemyError:
        logger.exception("Error deleting property")
        raise HTTPException(status_code=500, detail="Failed to delete property")
    return ActionResponse()


@app.post("/api/properties/{property_id}/images")
async def upload_generated_image(
    property_id: int,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    config: StagerConfig = Depends(get_config),
    storage: ObjectStorage = Depends(get_storage),
) -> UploadResponse:
    """Compress, watermark and upload a generated image for a property."""
    prop = get_property_by_id(db, property_id)
    if prop is None:
        raise HTTPException(status_code=404, detail="Property not found")
    street_address = prop.street_address

    pipeline = ImageUploadPipeline(
        config,
        storage,
        record_image=lambda pid, key: add_generated_image(db, pid, key),
    )
    result = await pipeline.run(await file.read(), file.content_type, property_id, street_address)
    if not result.success:
        raise HTTPException(status_code=400, detail=result.error)

    return UploadResponse(
        success=True,
        key=result.key,
        url=generated_image_url(config, result.key),
    )
