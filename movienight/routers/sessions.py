from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from movienight.database import get_db
from movienight.dependencies import get_optional_voter, get_request_catalog
from movienight.exceptions import UnauthorizedError
from movienight.models.movie import MovieSource
from movienight.models.session import VotingSession
from movienight.models.voter import Voter
from movienight.schemas.invite import InviteCreate, InviteLabelUpdate, InviteLinkResponse
from movienight.schemas.movie import (
    NominationCreate,
    RemovedMovieResponse,
    RequestCreate,
    VoteResponse,
)
from movienight.schemas.session import (
    DisplayNameUpdate,
    MovieResponse,
    MovieStandingResponse,
    SessionResponse,
    SessionViewResponse,
    StandingsResponse,
    TallyEntryResponse,
    VoterResponse,
)
from movienight.services.invite_service import list_voter_codes, mint_voter_code, set_code_label
from movienight.services.nomination_service import (
    Candidate,
    nominate,
    remove_nomination,
    request_and_nominate,
)
from movienight.services.request_catalog import RequestSubmitter
from movienight.services.session_service import (
    get_session_view,
    require_session_by_slug,
    update_display_name,
)
from movienight.services.voting_service import cast_vote, retract_vote, tally

router = APIRouter(prefix="/sessions", tags=["sessions"])


async def _session_for_voter(
    db: AsyncSession, slug: str, voter: Voter | None
) -> tuple[VotingSession, Voter]:
    session = await require_session_by_slug(db, slug)
    if voter is None or voter.session_id != session.id:
        raise UnauthorizedError()
    return session, voter


@router.get("/{slug}", response_model=SessionViewResponse)
async def get_session(
    slug: str,
    db: AsyncSession = Depends(get_db),
    voter: Voter | None = Depends(get_optional_voter),
):
    view = await get_session_view(db, slug, voter)
    return SessionViewResponse(
        session=SessionResponse.model_validate(view.session),
        voter=VoterResponse.model_validate(view.voter),
        is_open=view.is_open,
        votes_used=view.votes_used,
        votes_remaining=view.votes_remaining,
        invites_available=view.invites_available,
        movies=[
            MovieStandingResponse(
                **MovieResponse.model_validate(s.movie).model_dump(),
                vote_count=s.vote_count,
                my_votes=s.my_votes,
                nominated_by_me=s.movie.nominated_by == view.voter.id,
            )
            for s in view.movies
        ],
    )


@router.patch("/{slug}/me", response_model=VoterResponse)
async def update_me(
    slug: str,
    body: DisplayNameUpdate,
    db: AsyncSession = Depends(get_db),
    voter: Voter | None = Depends(get_optional_voter),
):
    _, voter = await _session_for_voter(db, slug, voter)
    return await update_display_name(db, voter, body.display_name)


@router.post("/{slug}/movies/{movie_id}/vote", response_model=VoteResponse)
async def vote(
    slug: str,
    movie_id: str,
    db: AsyncSession = Depends(get_db),
    voter: Voter | None = Depends(get_optional_voter),
):
    return await cast_vote(db, slug, voter, movie_id)


@router.delete("/{slug}/movies/{movie_id}/vote", response_model=VoteResponse)
async def unvote(
    slug: str,
    movie_id: str,
    db: AsyncSession = Depends(get_db),
    voter: Voter | None = Depends(get_optional_voter),
):
    return await retract_vote(db, slug, voter, movie_id)


@router.get("/{slug}/standings", response_model=StandingsResponse)
async def standings(
    slug: str,
    db: AsyncSession = Depends(get_db),
    voter: Voter | None = Depends(get_optional_voter),
):
    session, _ = await _session_for_voter(db, slug, voter)
    entries = await tally(db, session.id)
    return StandingsResponse(
        session_id=session.id,
        status=session.status,
        winner_movie_id=session.winner_movie_id,
        standings=[TallyEntryResponse.model_validate(e) for e in entries],
    )


@router.post("/{slug}/movies", response_model=MovieResponse, status_code=status.HTTP_201_CREATED)
async def nominate_movie(
    slug: str,
    body: NominationCreate,
    db: AsyncSession = Depends(get_db),
    voter: Voter | None = Depends(get_optional_voter),
):
    session, voter = await _session_for_voter(db, slug, voter)
    return await nominate(db, session, voter, Candidate(**body.model_dump()))


@router.post(
    "/{slug}/movies/request", response_model=MovieResponse, status_code=status.HTTP_201_CREATED
)
async def request_movie(
    slug: str,
    body: RequestCreate,
    db: AsyncSession = Depends(get_db),
    voter: Voter | None = Depends(get_optional_voter),
    submitter: RequestSubmitter = Depends(get_request_catalog),
):
    session, voter = await _session_for_voter(db, slug, voter)
    candidate = Candidate(source=MovieSource.external_request, **body.model_dump())
    return await request_and_nominate(db, session, voter, candidate, submitter)


@router.delete("/{slug}/movies/{movie_id}", response_model=RemovedMovieResponse)
async def remove_movie(
    slug: str,
    movie_id: str,
    db: AsyncSession = Depends(get_db),
    voter: Voter | None = Depends(get_optional_voter),
):
    session, voter = await _session_for_voter(db, slug, voter)
    released = await remove_nomination(db, session, voter, movie_id)
    return RemovedMovieResponse(movie_id=movie_id, votes_released=released)


@router.get("/{slug}/invites", response_model=list[InviteLinkResponse])
async def my_invites(
    slug: str,
    db: AsyncSession = Depends(get_db),
    voter: Voter | None = Depends(get_optional_voter),
):
    _, voter = await _session_for_voter(db, slug, voter)
    return [InviteLinkResponse.from_code(invite) for invite in await list_voter_codes(db, voter)]


@router.post(
    "/{slug}/invites", response_model=InviteLinkResponse, status_code=status.HTTP_201_CREATED
)
async def create_invite(
    slug: str,
    body: InviteCreate,
    db: AsyncSession = Depends(get_db),
    voter: Voter | None = Depends(get_optional_voter),
):
    session, voter = await _session_for_voter(db, slug, voter)
    invite = await mint_voter_code(db, session, voter, body.label, max_uses=body.max_uses)
    return InviteLinkResponse.from_code(invite)


@router.patch("/{slug}/invites/{code}", response_model=InviteLinkResponse)
async def rename_invite(
    slug: str,
    code: str,
    body: InviteLabelUpdate,
    db: AsyncSession = Depends(get_db),
    voter: Voter | None = Depends(get_optional_voter),
):
    _, voter = await _session_for_voter(db, slug, voter)
    invite = await set_code_label(db, voter, code, body.label)
    return InviteLinkResponse.from_code(invite)
