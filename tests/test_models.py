"""Unit tests for database models: VotingSession, Voter, InviteCode, Movie, Vote."""

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from movienight.models.invite_code import InviteCode, InviteCodeStatus
from movienight.models.movie import Movie, MovieSource, MovieStatus
from movienight.models.session import SessionStatus, VotePolicy, VotingSession
from movienight.models.vote import Vote
from movienight.models.voter import Voter


async def _session(db_session, slug="friday") -> VotingSession:
    session = VotingSession(slug=slug, name="Friday")
    db_session.add(session)
    await db_session.commit()
    await db_session.refresh(session)
    return session


class TestVotingSessionModel:
    async def test_create_session_defaults(self, db_session):
        session = await _session(db_session)

        assert session.id is not None
        assert session.status == SessionStatus.open
        assert session.votes_per_voter == 5
        assert session.guest_invite_slots == 1
        assert session.max_invite_depth is None
        assert session.allow_external_requests is True
        assert session.vote_policy == VotePolicy.one_per_movie
        assert session.expires_at is None
        assert session.winner_movie_id is None
        assert session.created_at is not None

    async def test_slug_unique(self, db_session):
        await _session(db_session)
        db_session.add(VotingSession(slug="friday", name="Again"))
        with pytest.raises(IntegrityError):
            await db_session.commit()


class TestVoterModel:
    async def test_create_voter_defaults(self, db_session):
        session = await _session(db_session)
        voter = Voter(session_id=session.id)
        db_session.add(voter)
        await db_session.commit()
        await db_session.refresh(voter)

        assert voter.invited_by is None
        assert voter.invite_depth == 0
        assert voter.invite_slots_remaining == 1
        assert voter.invites_created == 0
        assert voter.votes_cast == 0
        assert voter.joined_at is not None


class TestInviteCodeModel:
    async def test_create_code_defaults(self, db_session):
        session = await _session(db_session)
        db_session.add(InviteCode(code="ABCD234567", session_id=session.id))
        await db_session.commit()

        result = await db_session.execute(select(InviteCode).where(InviteCode.code == "ABCD234567"))
        invite = result.scalar_one()
        assert invite.status == InviteCodeStatus.unused
        assert invite.max_uses == 1
        assert invite.use_count == 0
        assert invite.created_by_voter_id is None
        assert invite.used_at is None


class TestMovieModel:
    async def test_library_id_unique_per_session(self, db_session):
        session = await _session(db_session)
        db_session.add(
            Movie(session_id=session.id, title="Heat", source=MovieSource.library, library_id="42")
        )
        await db_session.commit()
        db_session.add(
            Movie(session_id=session.id, title="Heat", source=MovieSource.library, library_id="42")
        )
        with pytest.raises(IntegrityError):
            await db_session.commit()

    async def test_missing_ids_do_not_collide(self, db_session):
        session = await _session(db_session)
        db_session.add_all(
            [
                Movie(session_id=session.id, title="A", source=MovieSource.external_catalog),
                Movie(session_id=session.id, title="B", source=MovieSource.external_catalog),
            ]
        )
        await db_session.commit()

        result = await db_session.execute(select(Movie).where(Movie.session_id == session.id))
        movies = result.scalars().all()
        assert len(movies) == 2
        assert all(m.status == MovieStatus.in_library for m in movies)

    async def test_title_and_source_unique_without_ids(self, db_session):
        session = await _session(db_session)
        db_session.add(Movie(session_id=session.id, title="Heat", source=MovieSource.external_catalog))
        await db_session.commit()
        db_session.add(Movie(session_id=session.id, title="HEAT", source=MovieSource.external_catalog))
        with pytest.raises(IntegrityError):
            await db_session.commit()

    async def test_title_may_repeat_when_ids_differ(self, db_session):
        session = await _session(db_session)
        db_session.add_all(
            [
                Movie(session_id=session.id, title="Heat", source=MovieSource.library, library_id="1"),
                Movie(session_id=session.id, title="Heat", source=MovieSource.library, library_id="2"),
            ]
        )
        await db_session.commit()


class TestVoteModel:
    async def test_same_stack_slot_rejected(self, db_session):
        session = await _session(db_session)
        movie = Movie(session_id=session.id, title="Heat", source=MovieSource.library)
        db_session.add(movie)
        await db_session.commit()

        db_session.add(Vote(session_id=session.id, voter_id="v1", movie_id=movie.id))
        await db_session.commit()
        db_session.add(Vote(session_id=session.id, voter_id="v1", movie_id=movie.id))
        with pytest.raises(IntegrityError):
            await db_session.commit()

    async def test_stacked_votes_use_distinct_slots(self, db_session):
        session = await _session(db_session)
        movie = Movie(session_id=session.id, title="Heat", source=MovieSource.library)
        db_session.add(movie)
        await db_session.commit()

        db_session.add_all(
            [
                Vote(session_id=session.id, voter_id="v1", movie_id=movie.id, stack_index=0),
                Vote(session_id=session.id, voter_id="v1", movie_id=movie.id, stack_index=1),
            ]
        )
        await db_session.commit()
        result = await db_session.execute(select(Vote).where(Vote.voter_id == "v1"))
        assert len(result.scalars().all()) == 2
