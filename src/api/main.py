"""
src.api.main.

FastAPI entrypoint for the Venue Matching Engine.

Responsibilities
----------------
• API initialization
• Health monitoring
• Matching endpoint
• Taxonomy admin (snapshot reload, tagging findings)
• Taxonomy and synonym query endpoints

Environment
-----------
Reads Settings (TAXONOMY_SNAPSHOT_PATH, VENUE_DATA_PATH, MATCHING_CONFIG_PATH,
LOG_LEVEL, ...) from the environment or the project .env file.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from src.api.service import VenueMatchingService
from src.configs.log_config import setup_logging
from src.configs.settings import get_settings
from src.schemas.taxonomy import TaxonomyNode
from src.schemas.venue import (
    EventRequirement,
    MatchResponse,
    ValidationFinding,
    VenueProfile,
)
from src.taxonomy.errors import (
    MatchCancelled,
    NotFoundError,
    SchemaError,
    TaxonomyError,
    UnknownTermError,
    VenueNotFoundError,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# APP INITIALIZATION
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle app startup and shutdown events."""
    settings = get_settings()
    setup_logging(level=settings.LOG_LEVEL, json_logs=settings.LOG_JSON)

    # Fail startup if the reference taxonomy cannot be published
    app.state.service = VenueMatchingService.from_settings(settings)

    yield

    app.state.service.store.close()


app = FastAPI(
    title="Venue Matching API",
    version="1.0.0",
    description="Ranked, explainable venue matching against the Venue Taxonomy.",
    lifespan=lifespan,
)


def get_service(request: Request) -> VenueMatchingService:
    """
    Get the service published on app state at startup.

    Returns
    -------
    VenueMatchingService
        The active service instance.
    """
    return request.app.state.service


# ---------------------------------------------------------------------------
# ERROR MAPPING
# ---------------------------------------------------------------------------


@app.exception_handler(SchemaError)
async def schema_error_handler(request: Request, exc: SchemaError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={"detail": str(exc), "problems": exc.problems},
    )


@app.exception_handler(NotFoundError)
@app.exception_handler(VenueNotFoundError)
@app.exception_handler(UnknownTermError)
async def not_found_handler(request: Request, exc: TaxonomyError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(MatchCancelled)
async def cancelled_handler(request: Request, exc: MatchCancelled) -> JSONResponse:
    return JSONResponse(
        status_code=503,
        content={"detail": str(exc), "candidates_seen": exc.candidates_seen},
    )


# ---------------------------------------------------------------------------
# RESPONSE MODELS
# ---------------------------------------------------------------------------


class SnapshotSummary(BaseModel):
    """Published taxonomy snapshot response model."""

    version: str
    categories: int
    nodes: int
    synonyms: int
    findings: list[ValidationFinding]


class TermResolution(BaseModel):
    """Regional term resolution response model."""

    region_code: str
    term: str
    node: TaxonomyNode


# ---------------------------------------------------------------------------
# HEALTH ENDPOINT
# ---------------------------------------------------------------------------


@app.get("/health", tags=["Monitoring"])
def health_check(
    service: VenueMatchingService = Depends(get_service),
) -> dict[str, str]:
    """
    Check API health.

    Returns
    -------
    dict
        Service status and active taxonomy version.
    """
    if not service.holder.is_loaded:
        return {"status": "degraded", "taxonomy_version": "none"}
    return {"status": "ok", "taxonomy_version": service.holder.current().version}


# ---------------------------------------------------------------------------
# MATCHING ENDPOINT
# ---------------------------------------------------------------------------


@app.post("/match", response_model=MatchResponse, tags=["Matching"])
def match_venues(
    requirement: EventRequirement,
    limit: int | None = Query(default=None, ge=0),
    service: VenueMatchingService = Depends(get_service),
) -> MatchResponse:
    """
    Rank venues for an event requirement.

    Parameters
    ----------
    requirement : EventRequirement
        Desired taxonomy nodes or regional terms, amenities and capacity.
    limit : int, optional
        Maximum number of results.

    Returns
    -------
    MatchResponse
        Ranked results with subscores; unresolved regional terms are listed.
    """
    return service.match(requirement, limit=limit)


# ---------------------------------------------------------------------------
# ADMIN ENDPOINTS
# ---------------------------------------------------------------------------


@app.post(
    "/admin/taxonomy/{version}",
    response_model=SnapshotSummary,
    tags=["Admin"],
)
def load_taxonomy_snapshot(
    version: str,
    document: dict[str, Any] = Body(...),
    service: VenueMatchingService = Depends(get_service),
) -> SnapshotSummary:
    """
    Validate and publish a new taxonomy snapshot.

    An invalid snapshot is rejected with 422 and the active one is kept.
    """
    snapshot = service.load_taxonomy_snapshot(version, document)
    registry = snapshot.registry
    return SnapshotSummary(
        version=snapshot.version,
        categories=len(registry.categories()),
        nodes=len(registry),
        synonyms=len(snapshot.resolver),
        findings=list(registry.load_findings),
    )


@app.get(
    "/admin/venues/{venue_id}/findings",
    response_model=list[ValidationFinding],
    tags=["Admin"],
)
def validate_venue_tagging(
    venue_id: str,
    service: VenueMatchingService = Depends(get_service),
) -> list[ValidationFinding]:
    """List tagging findings for a stored venue against the active snapshot."""
    return service.validate_venue_tagging(venue_id)


@app.put(
    "/admin/venues/{venue_id}",
    response_model=list[ValidationFinding],
    tags=["Admin"],
)
def tag_venue(
    venue_id: str,
    venue: VenueProfile,
    service: VenueMatchingService = Depends(get_service),
) -> list[ValidationFinding]:
    """Store a tagged venue and return its tagging findings."""
    if venue.venue_id != venue_id:
        raise HTTPException(
            status_code=422,
            detail="venue_id in path and body differ",
        )
    return service.tag_venue(venue)


# ---------------------------------------------------------------------------
# TAXONOMY ENDPOINTS
# ---------------------------------------------------------------------------


@app.get("/taxonomy/categories", tags=["Taxonomy"])
def list_categories(
    service: VenueMatchingService = Depends(get_service),
) -> list[dict[str, Any]]:
    """Retrieve all categories with their subcategories, in declaration order."""
    return service.list_categories()


@app.get("/taxonomy/nodes/{node_id}", response_model=TaxonomyNode, tags=["Taxonomy"])
def get_node(
    node_id: str,
    service: VenueMatchingService = Depends(get_service),
) -> TaxonomyNode:
    """Retrieve one taxonomy node by id."""
    return service.get_node(node_id)


@app.get(
    "/synonyms/{region_code}/{term}",
    response_model=TermResolution,
    tags=["Taxonomy"],
)
def resolve_term(
    region_code: str,
    term: str,
    service: VenueMatchingService = Depends(get_service),
) -> TermResolution:
    """Resolve a regional venue term for one region (no cross-region fallback)."""
    node = service.resolve_term(region_code, term)
    return TermResolution(region_code=region_code.upper(), term=term, node=node)
