from typing import Optional

from pydantic import BaseModel, Field, field_validator

from movienight.models.movie import MovieSource, MovieStatus


class NominationCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    source: MovieSource = MovieSource.library
    year: Optional[int] = None
    runtime_minutes: Optional[int] = Field(default=None, ge=0)
    synopsis: Optional[str] = None
    poster_url: Optional[str] = Field(default=None, max_length=512)
    library_id: Optional[str] = Field(default=None, max_length=64)
    catalog_id: Optional[str] = Field(default=None, max_length=64)
    status: Optional[MovieStatus] = None

    @field_validator("source")
    @classmethod
    def validate_source(cls, v: MovieSource) -> MovieSource:
        if v == MovieSource.external_request:
            raise ValueError("use the request endpoint to nominate a requested movie")
        return v


class RequestCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    catalog_id: str = Field(min_length=1, max_length=64)
    year: Optional[int] = None
    runtime_minutes: Optional[int] = Field(default=None, ge=0)
    synopsis: Optional[str] = None
    poster_url: Optional[str] = Field(default=None, max_length=512)


class VoteResponse(BaseModel):
    movie_id: str
    votes_used: int
    votes_remaining: int
    vote_count: int
    my_votes: int

    model_config = {"from_attributes": True}


class RemovedMovieResponse(BaseModel):
    movie_id: str
    votes_released: int
