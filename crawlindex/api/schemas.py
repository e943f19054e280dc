"""Response models for the search API."""

from typing import List, Optional

from pydantic import BaseModel


class SearchResultModel(BaseModel):
    url: str
    title: Optional[str] = None
    snippet: str = ""
    rank: float = 0.0


class SearchResponse(BaseModel):
    query: str
    count: int
    results: List[SearchResultModel] = []


class StatsResponse(BaseModel):
    totalPages: int
    lastScraped: Optional[str] = None


class HealthResponse(BaseModel):
    status: str = "ok"
