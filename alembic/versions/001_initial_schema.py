"""initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "sessions",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("slug", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("status", sa.Enum("open", "closed", name="sessionstatus"), nullable=False),
        sa.Column("votes_per_voter", sa.Integer(), nullable=False),
        sa.Column("max_invite_depth", sa.Integer(), nullable=True),
        sa.Column("guest_invite_slots", sa.Integer(), nullable=False),
        sa.Column("allow_external_requests", sa.Boolean(), nullable=False),
        sa.Column(
            "vote_policy",
            sa.Enum("one_per_movie", "stacking", name="votepolicy"),
            nullable=False,
        ),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("winner_movie_id", sa.String(length=36), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_sessions_slug"), "sessions", ["slug"], unique=True)

    op.create_table(
        "voters",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("session_id", sa.String(length=36), nullable=False),
        sa.Column("display_name", sa.String(length=64), nullable=True),
        sa.Column("invited_by", sa.String(length=36), nullable=True),
        sa.Column("invite_depth", sa.Integer(), nullable=False),
        sa.Column("admitted_by_code", sa.String(length=16), nullable=True),
        sa.Column("invite_slots_remaining", sa.Integer(), nullable=False),
        sa.Column("invites_created", sa.Integer(), nullable=False),
        sa.Column("votes_cast", sa.Integer(), nullable=False),
        sa.Column("fingerprint", sa.String(length=255), nullable=True),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["session_id"], ["sessions.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_voters_session_id"), "voters", ["session_id"], unique=False)
    op.create_index(op.f("ix_voters_invited_by"), "voters", ["invited_by"], unique=False)
    op.create_index(
        op.f("ix_voters_admitted_by_code"), "voters", ["admitted_by_code"], unique=False
    )

    op.create_table(
        "invite_codes",
        sa.Column("code", sa.String(length=16), nullable=False),
        sa.Column("session_id", sa.String(length=36), nullable=False),
        sa.Column("created_by_voter_id", sa.String(length=36), nullable=True),
        sa.Column(
            "status",
            sa.Enum("unused", "used", "revoked", name="invitecodestatus"),
            nullable=False,
        ),
        sa.Column("label", sa.String(length=100), nullable=True),
        sa.Column("max_uses", sa.Integer(), nullable=False),
        sa.Column("use_count", sa.Integer(), nullable=False),
        sa.Column("used_by_voter_id", sa.String(length=36), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["session_id"], ["sessions.id"]),
        sa.PrimaryKeyConstraint("code"),
    )
    op.create_index(
        op.f("ix_invite_codes_session_id"), "invite_codes", ["session_id"], unique=False
    )
    op.create_index(
        op.f("ix_invite_codes_created_by_voter_id"),
        "invite_codes",
        ["created_by_voter_id"],
        unique=False,
    )

    op.create_table(
        "movies",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("session_id", sa.String(length=36), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("year", sa.Integer(), nullable=True),
        sa.Column("runtime_minutes", sa.Integer(), nullable=True),
        sa.Column("synopsis", sa.Text(), nullable=True),
        sa.Column("poster_url", sa.String(length=512), nullable=True),
        sa.Column(
            "source",
            sa.Enum("library", "external_catalog", "external_request", name="moviesource"),
            nullable=False,
        ),
        sa.Column("library_id", sa.String(length=64), nullable=True),
        sa.Column("catalog_id", sa.String(length=64), nullable=True),
        sa.Column("request_id", sa.String(length=64), nullable=True),
        sa.Column(
            "status",
            sa.Enum("in_library", "requested", "nominated_only", name="moviestatus"),
            nullable=False,
        ),
        sa.Column("nominated_by", sa.String(length=36), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["session_id"], ["sessions.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("session_id", "library_id", name="uq_movies_session_library"),
        sa.UniqueConstraint("session_id", "catalog_id", name="uq_movies_session_catalog"),
    )
    op.create_index(op.f("ix_movies_session_id"), "movies", ["session_id"], unique=False)
    op.create_index(op.f("ix_movies_nominated_by"), "movies", ["nominated_by"], unique=False)
    op.create_index(
        "uq_movies_session_source_title",
        "movies",
        ["session_id", "source", sa.text("lower(title)")],
        unique=True,
        sqlite_where=sa.text("library_id IS NULL AND catalog_id IS NULL"),
        postgresql_where=sa.text("library_id IS NULL AND catalog_id IS NULL"),
    )

    op.create_table(
        "votes",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("session_id", sa.String(length=36), nullable=False),
        sa.Column("voter_id", sa.String(length=36), nullable=False),
        sa.Column("movie_id", sa.String(length=36), nullable=False),
        sa.Column("stack_index", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["session_id"], ["sessions.id"]),
        sa.ForeignKeyConstraint(["movie_id"], ["movies.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "voter_id", "movie_id", "stack_index", name="uq_votes_voter_movie_stack"
        ),
    )
    op.create_index(op.f("ix_votes_session_id"), "votes", ["session_id"], unique=False)
    op.create_index(op.f("ix_votes_voter_id"), "votes", ["voter_id"], unique=False)
    op.create_index(op.f("ix_votes_movie_id"), "votes", ["movie_id"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_votes_movie_id"), table_name="votes")
    op.drop_index(op.f("ix_votes_voter_id"), table_name="votes")
    op.drop_index(op.f("ix_votes_session_id"), table_name="votes")
    op.drop_table("votes")

    op.drop_index("uq_movies_session_source_title", table_name="movies")
    op.drop_index(op.f("ix_movies_nominated_by"), table_name="movies")
    op.drop_index(op.f("ix_movies_session_id"), table_name="movies")
    op.drop_table("movies")

    op.drop_index(op.f("ix_invite_codes_created_by_voter_id"), table_name="invite_codes")
    op.drop_index(op.f("ix_invite_codes_session_id"), table_name="invite_codes")
    op.drop_table("invite_codes")

    op.drop_index(op.f("ix_voters_admitted_by_code"), table_name="voters")
    op.drop_index(op.f("ix_voters_invited_by"), table_name="voters")
    op.drop_index(op.f("ix_voters_session_id"), table_name="voters")
    op.drop_table("voters")

    op.drop_index(op.f("ix_sessions_slug"), table_name="sessions")
    op.drop_table("sessions")

    sa.Enum(name="moviestatus").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="moviesource").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="invitecodestatus").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="votepolicy").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="sessionstatus").drop(op.get_bind(), checkfirst=True)
