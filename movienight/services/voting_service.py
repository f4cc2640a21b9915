"""Voting ledger: bounded casting, retraction, tallies and winner selection.

Two limits apply to every voter:

- the vote budget (session.votes_per_voter), guarded by a conditional UPDATE
  on the voter's votes_cast counter;
- under the one_per_movie policy, at most one vote per movie, guarded by the
  unique (voter_id, movie_id, stack_index) constraint on votes.

Both checks also run as plain reads first so the common case gets a precise
error; the guards only decide the outcome when requests race.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from movienight.database import rollback_and_refresh
from movienight.exceptions import ConflictError, ForbiddenError, NotFoundError, UnauthorizedError
from movienight.models.movie import Movie
from movienight.models.session import VotePolicy, VotingSession
from movienight.models.vote import Vote
from movienight.models.voter import Voter
from movienight.services.session_service import ensure_open, require_session_by_slug

logger = logging.getLogger(__name__)


@dataclass
class VoteResult:
    movie_id: str
    votes_used: int
    votes_remaining: int
    vote_count: int
    my_votes: int


@dataclass
class TallyEntry:
    movie_id: str
    title: str
    vote_count: int


def _budget_exhausted(session: VotingSession) -> ForbiddenError:
    return ForbiddenError(
        f"You have used all {session.votes_per_voter} votes.",
        "BUDGET_EXHAUSTED",
        votes_per_voter=session.votes_per_voter,
    )


def _already_voted() -> ConflictError:
    return ConflictError("You have already voted for this movie.", "ALREADY_VOTED")


async def _count(db: AsyncSession, *criteria) -> int:
    result = await db.execute(select(func.count(Vote.id)).where(*criteria))
    return result.scalar_one()


async def vote_counts(
    db: AsyncSession, session: VotingSession, voter_id: str, movie_id: str
) -> VoteResult:
    votes_used = await _count(db, Vote.session_id == session.id, Vote.voter_id == voter_id)
    movie_total = await _count(db, Vote.session_id == session.id, Vote.movie_id == movie_id)
    mine = await _count(db, Vote.voter_id == voter_id, Vote.movie_id == movie_id)
    return VoteResult(
        movie_id=movie_id,
        votes_used=votes_used,
        votes_remaining=max(0, session.votes_per_voter - votes_used),
        vote_count=movie_total,
        my_votes=mine,
    )


async def _resolve(
    db: AsyncSession, session_slug: str, voter: Voter | None
) -> tuple[VotingSession, Voter]:
    session = await require_session_by_slug(db, session_slug)
    ensure_open(session)
    if voter is None or voter.session_id != session.id:
        raise UnauthorizedError()
    return session, voter


async def cast_vote(
    db: AsyncSession, session_slug: str, voter: Voter | None, movie_id: str
) -> VoteResult:
    session, voter = await _resolve(db, session_slug, voter)

    movie_result = await db.execute(
        select(Movie).where(Movie.id == movie_id, Movie.session_id == session.id)
    )
    movie = movie_result.scalar_one_or_none()
    if movie is None:
        raise NotFoundError("Movie not found.")

    used = await _count(db, Vote.session_id == session.id, Vote.voter_id == voter.id)
    if used >= session.votes_per_voter:
        raise _budget_exhausted(session)

    stack_index = 0
    if session.vote_policy == VotePolicy.one_per_movie:
        existing = await _count(db, Vote.voter_id == voter.id, Vote.movie_id == movie.id)
        if existing:
            raise _already_voted()
    else:
        top = await db.execute(
            select(func.max(Vote.stack_index)).where(
                Vote.voter_id == voter.id, Vote.movie_id == movie.id
            )
        )
        highest = top.scalar_one_or_none()
        stack_index = 0 if highest is None else highest + 1

    reserved = await db.execute(
        update(Voter)
        .where(Voter.id == voter.id, Voter.votes_cast < session.votes_per_voter)
        .values(votes_cast=Voter.votes_cast + 1)
        .execution_options(synchronize_session=False)
    )
    if reserved.rowcount != 1:
        await rollback_and_refresh(db, session, voter)
        raise _budget_exhausted(session)

    db.add(
        Vote(
            session_id=session.id,
            voter_id=voter.id,
            movie_id=movie.id,
            stack_index=stack_index,
        )
    )
    try:
        await db.flush()
    except IntegrityError:
        await rollback_and_refresh(db, session, voter)
        if session.vote_policy == VotePolicy.one_per_movie:
            raise _already_voted()
        raise ConflictError("Another vote was recorded at the same time; try again.", "VOTE_CONFLICT")

    await db.commit()
    logger.debug("Voter %s voted for movie %s in session %s", voter.id, movie.id, session.slug)
    await db.refresh(voter)
    return await vote_counts(db, session, voter.id, movie.id)


async def retract_vote(
    db: AsyncSession, session_slug: str, voter: Voter | None, movie_id: str
) -> VoteResult:
    session, voter = await _resolve(db, session_slug, voter)

    # Under stacking the most recent stack is taken back first.
    result = await db.execute(
        select(Vote)
        .where(
            Vote.session_id == session.id,
            Vote.voter_id == voter.id,
            Vote.movie_id == movie_id,
        )
        .order_by(Vote.stack_index.desc())
        .limit(1)
    )
    vote = result.scalar_one_or_none()
    if vote is None:
        raise ConflictError("No vote to retract.", "NO_VOTE")

    deleted = await db.execute(
        delete(Vote).where(Vote.id == vote.id).execution_options(synchronize_session=False)
    )
    if deleted.rowcount != 1:
        await rollback_and_refresh(db, session, voter)
        raise ConflictError("No vote to retract.", "NO_VOTE")
    await db.execute(
        update(Voter)
        .where(Voter.id == voter.id, Voter.votes_cast > 0)
        .values(votes_cast=Voter.votes_cast - 1)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    await db.refresh(voter)
    return await vote_counts(db, session, voter.id, movie_id)


async def release_movie_votes(db: AsyncSession, movie_id: str) -> int:
    """Delete every vote on a movie and hand the budget back to its voters.

    Runs inside the caller's transaction; the caller commits.
    """
    per_voter = await db.execute(
        select(Vote.voter_id, func.count(Vote.id))
        .where(Vote.movie_id == movie_id)
        .group_by(Vote.voter_id)
    )
    released = 0
    for voter_id, count in per_voter.all():
        await db.execute(
            update(Voter)
            .where(Voter.id == voter_id, Voter.votes_cast >= count)
            .values(votes_cast=Voter.votes_cast - count)
            .execution_options(synchronize_session=False)
        )
        released += count
    await db.execute(delete(Vote).where(Vote.movie_id == movie_id))
    return released


async def tally(db: AsyncSession, session_id: str) -> list[TallyEntry]:
    """Vote totals per movie, highest first.

    Ties go to the earlier nomination, then to the movie id, so standings and
    automatic winner selection are stable across calls.
    """
    vote_count = func.count(Vote.id).label("vote_count")
    result = await db.execute(
        select(Movie.id, Movie.title, vote_count)
        .join(Vote, Vote.movie_id == Movie.id)
        .where(Vote.session_id == session_id)
        .group_by(Movie.id, Movie.title, Movie.created_at)
        .order_by(vote_count.desc(), Movie.created_at.asc(), Movie.id.asc())
    )
    return [
        TallyEntry(movie_id=movie_id, title=title, vote_count=count)
        for movie_id, title, count in result.all()
    ]


async def determine_winner(
    db: AsyncSession, session_id: str, explicit_movie_id: str | None = None
) -> str | None:
    """An explicit choice always wins, votes or not; otherwise the top of the tally."""
    if explicit_movie_id:
        result = await db.execute(
            select(Movie.id).where(Movie.id == explicit_movie_id, Movie.session_id == session_id)
        )
        if result.scalar_one_or_none() is None:
            raise NotFoundError("Winner must be a movie nominated in this session.")
        return explicit_movie_id

    standings = await tally(db, session_id)
    if not standings:
        return None
    return standings[0].movie_id
