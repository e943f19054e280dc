"""GET /search, GET /stats, GET /health endpoint handlers."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from ..errors import StorageError
from ..search.engine import MAX_LIMIT, SearchEngine, validate_limit
from ..storage.database import PageStore
from .schemas import HealthResponse, SearchResponse, SearchResultModel, StatsResponse

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_engine(request: Request) -> SearchEngine:
    return request.app.state.engine


def _get_store(request: Request) -> PageStore:
    return request.app.state.store


def parse_limit(raw: Optional[str]) -> Optional[int]:
    """Parse the limit parameter; None when absent. Raises 400 unless it is an integer in 1..MAX_LIMIT."""
    if raw is None:
        return None
    try:
        return validate_limit(int(raw))
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail=f"Query parameter 'limit' must be an integer between 1 and {MAX_LIMIT}"
        )


@router.get("/search", response_model=SearchResponse)
async def search(
    q: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
    engine: SearchEngine = Depends(_get_engine),
):
    if q is None or not q.strip():
        raise HTTPException(status_code=400, detail="Query parameter 'q' is required")

    try:
        results = await engine.search(q, parse_limit(limit))
    except StorageError as e:
        logger.error(f"Search failed for {q!r}: {e}")
        raise HTTPException(status_code=500, detail="Search backend error")

    return SearchResponse(
        query=q,
        count=len(results),
        results=[SearchResultModel(**result.to_dict()) for result in results],
    )


@router.get("/stats", response_model=StatsResponse)
async def stats(store: PageStore = Depends(_get_store)):
    try:
        store_stats = await store.get_stats()
    except StorageError as e:
        logger.error(f"Stats query failed: {e}")
        raise HTTPException(status_code=500, detail="Storage backend error")

    return StatsResponse(totalPages=store_stats.total_pages, lastScraped=store_stats.last_scraped)


@router.get("/health", response_model=HealthResponse)
async def health():
    return HealthResponse(status="ok")
