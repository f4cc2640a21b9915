from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from movienight.models.base import Base, new_id, utcnow


class Vote(Base):
    """One unit of support.  Never updated in place.

    voter_id is deliberately not a foreign key: votes survive the removal of
    the voter who cast them.  stack_index is always 0 under the
    one-vote-per-movie policy, which makes the unique constraint below the
    store-level per-movie cap.
    """

    __tablename__ = "votes"
    __table_args__ = (
        UniqueConstraint("voter_id", "movie_id", "stack_index", name="uq_votes_voter_movie_stack"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    session_id: Mapped[str] = mapped_column(ForeignKey("sessions.id"), nullable=False, index=True)
    voter_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    movie_id: Mapped[str] = mapped_column(ForeignKey("movies.id"), nullable=False, index=True)
    stack_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
