"""Session lifecycle: creation, configuration, open/closed transitions, expiry.

A session is open while its status is ``open`` and its optional expiry lies in
the future.  Every mutating operation elsewhere in the engine goes through
``ensure_open`` so that a closed or expired session rejects writes with
SESSION_CLOSED while reads keep working for the results view.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from movienight.exceptions import (
    ConflictError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
    session_closed,
)
from movienight.models.invite_code import InviteCode
from movienight.models.movie import Movie
from movienight.models.session import SessionStatus, VotePolicy, VotingSession
from movienight.models.vote import Vote
from movienight.models.voter import Voter

logger = logging.getLogger(__name__)

SLUG_RE = re.compile(r"^[a-z0-9-]+$")
MAX_ROOT_CODES = 20

UPDATABLE_FIELDS = (
    "name",
    "votes_per_voter",
    "max_invite_depth",
    "guest_invite_slots",
    "allow_external_requests",
    "vote_policy",
    "expires_at",
)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def to_utc(value: datetime | None) -> datetime | None:
    """Normalise a timestamp to UTC before it is stored.

    SQLite keeps only the wall-clock part of a datetime, so an offset other
    than UTC would shift the instant.  Naive values are taken as UTC.
    """
    if value is None:
        return None
    return _as_utc(value).astimezone(timezone.utc)


def session_is_open(session: VotingSession, now: datetime | None = None) -> bool:
    if session.status != SessionStatus.open:
        return False
    if session.expires_at is None:
        return True
    now = now or datetime.now(timezone.utc)
    return _as_utc(session.expires_at) > now


def ensure_open(session: VotingSession) -> None:
    if not session_is_open(session):
        raise session_closed(session)


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


async def get_session_by_slug(db: AsyncSession, slug: str) -> VotingSession | None:
    result = await db.execute(select(VotingSession).where(VotingSession.slug == slug))
    return result.scalar_one_or_none()


async def get_session_by_id(db: AsyncSession, session_id: str) -> VotingSession | None:
    result = await db.execute(select(VotingSession).where(VotingSession.id == session_id))
    return result.scalar_one_or_none()


async def require_session_by_slug(db: AsyncSession, slug: str) -> VotingSession:
    session = await get_session_by_slug(db, slug)
    if session is None:
        raise NotFoundError("Session not found.")
    return session


async def require_session_by_id(db: AsyncSession, session_id: str) -> VotingSession:
    session = await get_session_by_id(db, session_id)
    if session is None:
        raise NotFoundError("Session not found.")
    return session


# ---------------------------------------------------------------------------
# Creation and configuration
# ---------------------------------------------------------------------------


def _validate_settings(values: dict[str, Any]) -> None:
    if "name" in values and not (values["name"] or "").strip():
        raise ValidationError("name is required.")
    for key in ("votes_per_voter", "guest_invite_slots", "allow_external_requests", "vote_policy"):
        if key in values and values[key] is None:
            raise ValidationError(f"{key} must not be null.")
    for key in ("votes_per_voter", "guest_invite_slots"):
        if key in values and values[key] < 0:
            raise ValidationError(f"{key} must not be negative.")
    depth = values.get("max_invite_depth")
    if depth is not None and depth < 0:
        raise ValidationError("max_invite_depth must not be negative.")


async def create_session(
    db: AsyncSession,
    name: str,
    slug: str,
    votes_per_voter: int = 5,
    root_invite_codes: int = 1,
    guest_invite_slots: int = 1,
    max_invite_depth: int | None = None,
    allow_external_requests: bool = True,
    vote_policy: VotePolicy = VotePolicy.one_per_movie,
    expires_at: datetime | None = None,
) -> tuple[VotingSession, list[InviteCode]]:
    """Create an open session together with its admin-issued root codes."""
    from movienight.services.invite_service import add_root_codes

    if not slug or not SLUG_RE.match(slug):
        raise ValidationError(
            "slug must be lowercase alphanumeric with hyphens only.", "INVALID_SLUG"
        )
    _validate_settings(
        {
            "name": name,
            "votes_per_voter": votes_per_voter,
            "guest_invite_slots": guest_invite_slots,
            "max_invite_depth": max_invite_depth,
        }
    )
    if not 0 <= root_invite_codes <= MAX_ROOT_CODES:
        raise ValidationError(f"root_invite_codes must be between 0 and {MAX_ROOT_CODES}.")

    if await get_session_by_slug(db, slug) is not None:
        raise ConflictError("A session with this slug already exists.", "SLUG_TAKEN")

    session = VotingSession(
        slug=slug,
        name=name.strip(),
        status=SessionStatus.open,
        votes_per_voter=votes_per_voter,
        max_invite_depth=max_invite_depth,
        guest_invite_slots=guest_invite_slots,
        allow_external_requests=allow_external_requests,
        vote_policy=vote_policy,
        expires_at=to_utc(expires_at),
    )
    db.add(session)
    await db.flush()

    codes = add_root_codes(db, session, root_invite_codes)
    await db.commit()
    await db.refresh(session)

    logger.info("Created session %s (%s) with %d root codes", session.slug, session.id, len(codes))
    return session, codes


async def update_session(db: AsyncSession, session: VotingSession, **changes: Any) -> VotingSession:
    """Apply configuration changes.  The slug is immutable and status changes
    go through close_session / reopen_session."""
    unknown = set(changes) - set(UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Cannot update: {', '.join(sorted(unknown))}.")
    if not changes:
        raise ValidationError("No valid fields to update.")
    _validate_settings(changes)

    for key, value in changes.items():
        if key == "name":
            value = value.strip()
        elif key == "expires_at":
            value = to_utc(value)
        setattr(session, key, value)
    await db.commit()
    await db.refresh(session)
    return session


@dataclass
class SessionSummary:
    session: VotingSession
    voter_count: int
    movie_count: int
    total_votes: int


async def list_sessions_with_counts(db: AsyncSession) -> list[SessionSummary]:
    voter_count = (
        select(func.count(Voter.id)).where(Voter.session_id == VotingSession.id).scalar_subquery()
    )
    movie_count = (
        select(func.count(Movie.id)).where(Movie.session_id == VotingSession.id).scalar_subquery()
    )
    vote_count = (
        select(func.count(Vote.id)).where(Vote.session_id == VotingSession.id).scalar_subquery()
    )
    result = await db.execute(
        select(VotingSession, voter_count, movie_count, vote_count).order_by(
            VotingSession.created_at.desc()
        )
    )
    return [
        SessionSummary(session=row[0], voter_count=row[1], movie_count=row[2], total_votes=row[3])
        for row in result.all()
    ]


# ---------------------------------------------------------------------------
# State transitions
# ---------------------------------------------------------------------------


async def close_session(
    db: AsyncSession, session: VotingSession, winner_movie_id: str | None = None
) -> VotingSession:
    """Close voting and record the winner (explicit choice, else top of the tally)."""
    from movienight.services.voting_service import determine_winner

    winner = await determine_winner(db, session.id, winner_movie_id)
    session.status = SessionStatus.closed
    session.winner_movie_id = winner
    await db.commit()
    await db.refresh(session)

    logger.info("Closed session %s, winner=%s", session.slug, winner)
    return session


async def reopen_session(db: AsyncSession, session: VotingSession) -> VotingSession:
    """Administrative override: put a closed session back into voting."""
    if session.status == SessionStatus.open:
        raise ConflictError("Session is already open.", "ALREADY_OPEN")
    session.status = SessionStatus.open
    session.winner_movie_id = None
    if session.expires_at is not None and not session_is_open(session):
        session.expires_at = None
    await db.commit()
    await db.refresh(session)
    logger.info("Reopened session %s", session.slug)
    return session


async def close_expired_sessions(db: AsyncSession, now: datetime | None = None) -> list[VotingSession]:
    now = now or datetime.now(timezone.utc)
    result = await db.execute(
        select(VotingSession).where(
            VotingSession.status == SessionStatus.open,
            VotingSession.expires_at.is_not(None),
        )
    )
    closed = []
    for session in result.scalars().all():
        if session_is_open(session, now):
            continue
        closed.append(await close_session(db, session))
    return closed


async def delete_session(db: AsyncSession, session: VotingSession) -> None:
    """Administrative delete.  The store does not cascade, so children go first."""
    await db.execute(delete(Vote).where(Vote.session_id == session.id))
    await db.execute(delete(Movie).where(Movie.session_id == session.id))
    await db.execute(delete(InviteCode).where(InviteCode.session_id == session.id))
    await db.execute(delete(Voter).where(Voter.session_id == session.id))
    await db.delete(session)
    await db.commit()
    logger.info("Deleted session %s", session.slug)


# ---------------------------------------------------------------------------
# Voter-facing view
# ---------------------------------------------------------------------------


@dataclass
class MovieStanding:
    movie: Movie
    vote_count: int
    my_votes: int


@dataclass
class SessionView:
    session: VotingSession
    voter: Voter
    is_open: bool
    votes_used: int
    votes_remaining: int
    invites_available: int
    movies: list[MovieStanding] = field(default_factory=list)


async def get_session_view(db: AsyncSession, slug: str, voter: Voter | None) -> SessionView:
    session = await require_session_by_slug(db, slug)
    if voter is None or voter.session_id != session.id:
        raise UnauthorizedError()

    movie_result = await db.execute(select(Movie).where(Movie.session_id == session.id))
    movies = list(movie_result.scalars().all())

    # All votes in one query, reduced in memory
    vote_result = await db.execute(
        select(Vote.movie_id, Vote.voter_id).where(Vote.session_id == session.id)
    )
    totals: dict[str, int] = {}
    mine: dict[str, int] = {}
    votes_used = 0
    for movie_id, voter_id in vote_result.all():
        totals[movie_id] = totals.get(movie_id, 0) + 1
        if voter_id == voter.id:
            mine[movie_id] = mine.get(movie_id, 0) + 1
            votes_used += 1

    standings = [
        MovieStanding(movie=m, vote_count=totals.get(m.id, 0), my_votes=mine.get(m.id, 0))
        for m in movies
    ]
    standings.sort(key=lambda s: (-s.vote_count, _as_utc(s.movie.created_at), s.movie.id))

    return SessionView(
        session=session,
        voter=voter,
        is_open=session_is_open(session),
        votes_used=votes_used,
        votes_remaining=max(0, session.votes_per_voter - votes_used),
        invites_available=max(0, voter.invite_slots_remaining - voter.invites_created),
        movies=standings,
    )


async def update_display_name(db: AsyncSession, voter: Voter, display_name: str | None) -> Voter:
    name = (display_name or "").strip() or None
    if name is not None and len(name) > 64:
        raise ValidationError("Display name must be at most 64 characters.")
    voter.display_name = name
    await db.commit()
    await db.refresh(voter)
    return voter
