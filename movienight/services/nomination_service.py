"""Nomination guard: admits movies into a session's ballot without duplicates.

A movie is identified by its library id, else its catalog id, else by
(title, source) compared case-insensitively.  Each of these is also backed
by a unique index so two voters nominating the same title at once still
end up with a single row.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from movienight.config import settings
from movienight.database import rollback_and_refresh
from movienight.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from movienight.models.movie import Movie, MovieSource, MovieStatus
from movienight.models.session import VotingSession
from movienight.models.voter import Voter
from movienight.services.request_catalog import RequestSubmitter
from movienight.services.session_service import ensure_open
from movienight.services.voting_service import release_movie_votes

logger = logging.getLogger(__name__)


@dataclass
class Candidate:
    title: str
    source: MovieSource
    year: int | None = None
    runtime_minutes: int | None = None
    synopsis: str | None = None
    poster_url: str | None = None
    library_id: str | None = None
    catalog_id: str | None = None
    status: MovieStatus | None = None


def default_status(candidate: Candidate) -> MovieStatus:
    if candidate.source == MovieSource.library:
        return MovieStatus.in_library
    if candidate.source == MovieSource.external_request:
        return MovieStatus.requested
    return candidate.status or MovieStatus.nominated_only


def _check_voter(session: VotingSession, voter: Voter | None) -> Voter:
    if voter is None or voter.session_id != session.id:
        raise UnauthorizedError()
    return voter


async def find_duplicate(db: AsyncSession, session_id: str, candidate: Candidate) -> Movie | None:
    keys = []
    if candidate.library_id:
        keys.append(Movie.library_id == candidate.library_id)
    if candidate.catalog_id:
        keys.append(Movie.catalog_id == candidate.catalog_id)
    if not keys:
        keys.append(
            (func.lower(Movie.title) == candidate.title.strip().lower())
            & (Movie.source == candidate.source)
        )
    result = await db.execute(
        select(Movie).where(Movie.session_id == session_id, or_(*keys)).limit(1)
    )
    return result.scalar_one_or_none()


def _duplicate(movie: Movie | None) -> ConflictError:
    return ConflictError(
        "That movie has already been nominated.",
        "DUPLICATE",
        movie_id=movie.id if movie else None,
    )


async def _insert(
    db: AsyncSession,
    session: VotingSession,
    voter: Voter,
    candidate: Candidate,
    source: MovieSource,
    status: MovieStatus,
    request_id: str | None = None,
) -> Movie:
    movie = Movie(
        session_id=session.id,
        title=candidate.title.strip(),
        year=candidate.year,
        runtime_minutes=candidate.runtime_minutes,
        synopsis=candidate.synopsis,
        poster_url=candidate.poster_url,
        source=source,
        library_id=candidate.library_id or None,
        catalog_id=candidate.catalog_id or None,
        request_id=request_id,
        status=status,
        nominated_by=voter.id,
    )
    db.add(movie)
    try:
        await db.commit()
    except IntegrityError:
        # Lost a race against an identical nomination
        await rollback_and_refresh(db, session, voter)
        raise _duplicate(await find_duplicate(db, session.id, candidate))

    logger.info("Voter %s nominated %r in session %s", voter.id, movie.title, session.slug)
    return movie


async def nominate(
    db: AsyncSession, session: VotingSession, voter: Voter | None, candidate: Candidate
) -> Movie:
    ensure_open(session)
    voter = _check_voter(session, voter)
    if not candidate.title or not candidate.title.strip():
        raise ValidationError("title is required.")

    existing = await find_duplicate(db, session.id, candidate)
    if existing is not None:
        raise _duplicate(existing)

    return await _insert(db, session, voter, candidate, candidate.source, default_status(candidate))


async def request_and_nominate(
    db: AsyncSession,
    session: VotingSession,
    voter: Voter | None,
    candidate: Candidate,
    submitter: RequestSubmitter,
) -> Movie:
    """Nominate a movie that is not in the library and ask for it to be acquired.

    Submitting the request is best-effort: if the request service fails or
    times out the nomination is still recorded, just without a request id.
    """
    ensure_open(session)
    voter = _check_voter(session, voter)
    if not session.allow_external_requests:
        raise ForbiddenError("Requests are disabled for this session.", "REQUESTS_DISABLED")
    if not candidate.catalog_id:
        raise ValidationError("catalog_id is required to request a movie.")
    if not candidate.title or not candidate.title.strip():
        raise ValidationError("title is required.")

    existing = await find_duplicate(db, session.id, candidate)
    if existing is not None:
        raise _duplicate(existing)

    # End the read transaction so no connection is held across the external call
    await db.commit()

    request_id = None
    try:
        request_id = await asyncio.wait_for(
            submitter.submit_request(candidate.catalog_id),
            timeout=settings.external_timeout_seconds,
        )
    except Exception as e:
        logger.warning(
            "Request for catalog id %s failed, nominating without it: %r", candidate.catalog_id, e
        )

    return await _insert(
        db,
        session,
        voter,
        candidate,
        MovieSource.external_request,
        MovieStatus.requested,
        request_id=request_id,
    )


async def remove_nomination(
    db: AsyncSession, session: VotingSession, voter: Voter | None, movie_id: str
) -> int:
    """Withdraw a nomination.  Votes on it are deleted and handed back.

    Returns the number of votes released.
    """
    ensure_open(session)
    voter = _check_voter(session, voter)

    result = await db.execute(
        select(Movie).where(Movie.id == movie_id, Movie.session_id == session.id)
    )
    movie = result.scalar_one_or_none()
    if movie is None:
        raise NotFoundError("Movie not found.")
    if movie.nominated_by != voter.id:
        raise ForbiddenError("Only the voter who nominated a movie can remove it.", "NOT_NOMINATOR")

    released = await release_movie_votes(db, movie.id)
    await db.execute(delete(Movie).where(Movie.id == movie.id))
    await db.commit()
    await db.refresh(voter)

    logger.info(
        "Voter %s removed %r from session %s (%d votes released)",
        voter.id,
        movie.title,
        session.slug,
        released,
    )
    return released
