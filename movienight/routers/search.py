from fastapi import APIRouter, Depends, Query

from movienight.dependencies import get_current_voter, get_media_library, get_request_catalog
from movienight.exceptions import ValidationError
from movienight.models.voter import Voter
from movienight.schemas.search import (
    CatalogItemResponse,
    CatalogSearchResponse,
    LibraryItemResponse,
    LibrarySearchResponse,
)
from movienight.services.media_library import MediaLibraryClient
from movienight.services.request_catalog import RequestCatalogClient

router = APIRouter(prefix="/search", tags=["search"])

MIN_QUERY_LENGTH = 2


def _check_query(q: str) -> str:
    q = q.strip()
    if len(q) < MIN_QUERY_LENGTH:
        raise ValidationError(f"Query must be at least {MIN_QUERY_LENGTH} characters.")
    return q


@router.get("/library", response_model=LibrarySearchResponse)
async def search_library(
    q: str = Query(default=""),
    voter: Voter = Depends(get_current_voter),
    library: MediaLibraryClient = Depends(get_media_library),
):
    q = _check_query(q)
    items = await library.search(q)
    return LibrarySearchResponse(
        query=q, results=[LibraryItemResponse.model_validate(i) for i in items]
    )


@router.get("/library/recent", response_model=LibrarySearchResponse)
async def recent_library(
    voter: Voter = Depends(get_current_voter),
    library: MediaLibraryClient = Depends(get_media_library),
):
    items = await library.recent()
    return LibrarySearchResponse(results=[LibraryItemResponse.model_validate(i) for i in items])


@router.get("/catalog", response_model=CatalogSearchResponse)
async def search_catalog(
    q: str = Query(default=""),
    voter: Voter = Depends(get_current_voter),
    catalog: RequestCatalogClient = Depends(get_request_catalog),
):
    q = _check_query(q)
    items = await catalog.search(q)
    return CatalogSearchResponse(
        query=q, results=[CatalogItemResponse.model_validate(i) for i in items]
    )
