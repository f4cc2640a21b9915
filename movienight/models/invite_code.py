import enum
from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from movienight.models.base import Base, utcnow


class InviteCodeStatus(str, enum.Enum):
    unused = "unused"
    used = "used"
    revoked = "revoked"


class InviteCode(Base):
    __tablename__ = "invite_codes"

    code: Mapped[str] = mapped_column(String(16), primary_key=True)
    session_id: Mapped[str] = mapped_column(ForeignKey("sessions.id"), nullable=False, index=True)
    # null for admin-issued (root) codes
    created_by_voter_id: Mapped[str | None] = mapped_column(
        String(36), nullable=True, index=True, default=None
    )
    status: Mapped[InviteCodeStatus] = mapped_column(
        Enum(InviteCodeStatus), nullable=False, default=InviteCodeStatus.unused
    )
    label: Mapped[str | None] = mapped_column(String(100), nullable=True, default=None)
    max_uses: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    use_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    used_by_voter_id: Mapped[str | None] = mapped_column(String(36), nullable=True, default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
