from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from movienight.models.invite_code import InviteCodeStatus
from movienight.models.movie import MovieSource, MovieStatus
from movienight.models.session import SessionStatus, VotePolicy
from movienight.services.session_service import to_utc


class SessionCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    slug: str = Field(min_length=1, max_length=64)
    votes_per_voter: int = Field(default=5, ge=0)
    root_invite_codes: int = Field(default=1, ge=0, le=20)
    guest_invite_slots: int = Field(default=1, ge=0)
    max_invite_depth: Optional[int] = Field(default=None, ge=0)
    allow_external_requests: bool = True
    vote_policy: VotePolicy = VotePolicy.one_per_movie
    expires_at: Optional[datetime] = None

    @field_validator("slug")
    @classmethod
    def normalize_slug(cls, v: str) -> str:
        return v.strip()

    @field_validator("expires_at")
    @classmethod
    def expires_at_in_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_utc(v)


class SessionUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    votes_per_voter: Optional[int] = Field(default=None, ge=0)
    guest_invite_slots: Optional[int] = Field(default=None, ge=0)
    max_invite_depth: Optional[int] = Field(default=None, ge=0)
    allow_external_requests: Optional[bool] = None
    vote_policy: Optional[VotePolicy] = None
    expires_at: Optional[datetime] = None

    @field_validator("expires_at")
    @classmethod
    def expires_at_in_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_utc(v)


class CloseSession(BaseModel):
    winner_movie_id: Optional[str] = None


class SessionResponse(BaseModel):
    id: str
    slug: str
    name: str
    status: SessionStatus
    votes_per_voter: int
    max_invite_depth: Optional[int]
    guest_invite_slots: int
    allow_external_requests: bool
    vote_policy: VotePolicy
    expires_at: Optional[datetime]
    created_at: datetime
    winner_movie_id: Optional[str]

    model_config = {"from_attributes": True}


class InviteCodeResponse(BaseModel):
    code: str
    session_id: str
    created_by_voter_id: Optional[str]
    status: InviteCodeStatus
    label: Optional[str]
    max_uses: int
    use_count: int
    used_by_voter_id: Optional[str]
    created_at: datetime
    used_at: Optional[datetime]

    model_config = {"from_attributes": True}


class SessionWithCodesResponse(SessionResponse):
    invite_codes: list[InviteCodeResponse] = []


class SessionSummaryResponse(SessionResponse):
    voter_count: int
    movie_count: int
    total_votes: int


class MovieResponse(BaseModel):
    id: str
    title: str
    year: Optional[int]
    runtime_minutes: Optional[int]
    synopsis: Optional[str]
    poster_url: Optional[str]
    source: MovieSource
    library_id: Optional[str]
    catalog_id: Optional[str]
    request_id: Optional[str]
    status: MovieStatus
    nominated_by: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}


class MovieStandingResponse(MovieResponse):
    vote_count: int
    my_votes: int
    nominated_by_me: bool


class VoterResponse(BaseModel):
    id: str
    session_id: str
    display_name: Optional[str]
    invited_by: Optional[str]
    invite_depth: int
    invite_slots_remaining: int
    invites_created: int
    votes_cast: int
    joined_at: datetime

    model_config = {"from_attributes": True}


class SessionViewResponse(BaseModel):
    session: SessionResponse
    voter: VoterResponse
    is_open: bool
    votes_used: int
    votes_remaining: int
    invites_available: int
    movies: list[MovieStandingResponse]


class DisplayNameUpdate(BaseModel):
    display_name: Optional[str] = Field(default=None, max_length=64)


class TallyEntryResponse(BaseModel):
    movie_id: str
    title: str
    vote_count: int

    model_config = {"from_attributes": True}


class StandingsResponse(BaseModel):
    session_id: str
    status: SessionStatus
    winner_movie_id: Optional[str]
    standings: list[TallyEntryResponse]
