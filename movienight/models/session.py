import enum
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from movienight.models.base import Base, new_id, utcnow


class SessionStatus(str, enum.Enum):
    open = "open"
    closed = "closed"


class VotePolicy(str, enum.Enum):
    # each voter may put at most one vote on a given movie
    one_per_movie = "one_per_movie"
    # votes may be stacked on one movie, bounded only by votes_per_voter
    stacking = "stacking"


class VotingSession(Base):
    __tablename__ = "sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    slug: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[SessionStatus] = mapped_column(
        Enum(SessionStatus), nullable=False, default=SessionStatus.open
    )
    votes_per_voter: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    max_invite_depth: Mapped[int | None] = mapped_column(Integer, nullable=True, default=None)
    guest_invite_slots: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    allow_external_requests: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    vote_policy: Mapped[VotePolicy] = mapped_column(
        Enum(VotePolicy), nullable=False, default=VotePolicy.one_per_movie
    )
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    # Movie ids are not store-enforced here; the movies table references sessions.
    winner_movie_id: Mapped[str | None] = mapped_column(String(36), nullable=True, default=None)
