from typing import Optional

from pydantic import BaseModel

from movienight.models.movie import MovieStatus


class LibraryItemResponse(BaseModel):
    external_id: str
    title: str
    year: Optional[int]
    runtime_minutes: Optional[int]
    synopsis: Optional[str]
    poster_ref: Optional[str]
    catalog_id: Optional[str]

    model_config = {"from_attributes": True}


class CatalogItemResponse(BaseModel):
    external_id: str
    title: str
    year: Optional[int]
    synopsis: Optional[str]
    poster_ref: Optional[str]
    availability_status: MovieStatus

    model_config = {"from_attributes": True}


class LibrarySearchResponse(BaseModel):
    query: Optional[str] = None
    results: list[LibraryItemResponse]


class CatalogSearchResponse(BaseModel):
    query: str
    results: list[CatalogItemResponse]
