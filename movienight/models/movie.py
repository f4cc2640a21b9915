import enum
from datetime import datetime

from sqlalchemy import (
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from movienight.models.base import Base, new_id, utcnow


class MovieSource(str, enum.Enum):
    library = "library"
    external_catalog = "external_catalog"
    external_request = "external_request"


class MovieStatus(str, enum.Enum):
    in_library = "in_library"
    requested = "requested"
    nominated_only = "nominated_only"


class Movie(Base):
    __tablename__ = "movies"
    __table_args__ = (
        UniqueConstraint("session_id", "library_id", name="uq_movies_session_library"),
        UniqueConstraint("session_id", "catalog_id", name="uq_movies_session_catalog"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    session_id: Mapped[str] = mapped_column(ForeignKey("sessions.id"), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    runtime_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    synopsis: Mapped[str | None] = mapped_column(Text, nullable=True)
    poster_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    source: Mapped[MovieSource] = mapped_column(Enum(MovieSource), nullable=False)
    library_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    catalog_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    request_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    status: Mapped[MovieStatus] = mapped_column(
        Enum(MovieStatus), nullable=False, default=MovieStatus.in_library
    )
    nominated_by: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


# Movies with neither id are told apart by (title, source), case-insensitively
_without_ids = Movie.library_id.is_(None) & Movie.catalog_id.is_(None)
Index(
    "uq_movies_session_source_title",
    Movie.session_id,
    Movie.source,
    func.lower(Movie.title),
    unique=True,
    sqlite_where=_without_ids,
    postgresql_where=_without_ids,
)
