from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from movienight.models.base import Base, new_id, utcnow


class Voter(Base):
    """A participant in one session.

    invited_by is a parent pointer into this same table (null for voters
    admitted by an admin-issued code).  It is not a store-level foreign key:
    an administrator may remove a voter whose invitees stay in the session.

    invite_slots_remaining is the budget of invite codes this voter may
    create; invites_created counts the codes already created against it.
    votes_cast mirrors the number of Vote rows held by this voter and is the
    row the ledger updates conditionally to enforce the vote budget.
    """

    __tablename__ = "voters"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    session_id: Mapped[str] = mapped_column(ForeignKey("sessions.id"), nullable=False, index=True)
    display_name: Mapped[str | None] = mapped_column(String(64), nullable=True, default=None)
    invited_by: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True, default=None)
    invite_depth: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    admitted_by_code: Mapped[str | None] = mapped_column(String(16), nullable=True, index=True, default=None)
    invite_slots_remaining: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    invites_created: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    votes_cast: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    fingerprint: Mapped[str | None] = mapped_column(String(255), nullable=True, default=None)
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
