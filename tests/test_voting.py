"""Service-level tests for the voting ledger.

Covers:
- vote budget (the votes_per_voter=2 scenario)
- one vote per (voter, movie) under the default policy
- stacking policy
- cast / retract round trip, NO_VOTE
- identity and session checks
- tally ordering and winner selection, including the tie-break scenario
"""

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from movienight.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    UnauthorizedError,
)
from movienight.models.movie import Movie, MovieSource
from movienight.models.session import SessionStatus, VotePolicy, VotingSession
from movienight.models.vote import Vote
from movienight.models.voter import Voter
from movienight.services.invite_service import claim_invite, generate_root_codes
from movienight.services.session_service import close_session, create_session
from movienight.services.voting_service import (
    cast_vote,
    determine_winner,
    retract_vote,
    tally,
    vote_counts,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _setup(
    db: AsyncSession,
    voters: int = 1,
    votes_per_voter: int = 5,
    vote_policy: VotePolicy = VotePolicy.one_per_movie,
    slug: str = "ballot",
) -> tuple[VotingSession, list[Voter]]:
    session, _ = await create_session(
        db,
        name="Ballot",
        slug=slug,
        votes_per_voter=votes_per_voter,
        root_invite_codes=0,
        vote_policy=vote_policy,
    )
    [code] = await generate_root_codes(db, session, 1, max_uses=max(voters, 1))
    members = [(await claim_invite(db, code.code)).voter for _ in range(voters)]
    return session, members


async def _movie(db: AsyncSession, session: VotingSession, title: str) -> Movie:
    movie = Movie(session_id=session.id, title=title, source=MovieSource.library)
    db.add(movie)
    await db.commit()
    return movie


async def _rows(db: AsyncSession, voter: Voter) -> int:
    result = await db.execute(select(func.count(Vote.id)).where(Vote.voter_id == voter.id))
    return result.scalar_one()


# ---------------------------------------------------------------------------
# Budget and per-movie cap
# ---------------------------------------------------------------------------


class TestBudget:
    async def test_budget_scenario(self, db_session: AsyncSession):
        session, [voter] = await _setup(db_session, votes_per_voter=2)
        a = await _movie(db_session, session, "A")
        b = await _movie(db_session, session, "B")
        c = await _movie(db_session, session, "C")

        first = await cast_vote(db_session, session.slug, voter, a.id)
        assert first.votes_used == 1
        assert first.votes_remaining == 1

        second = await cast_vote(db_session, session.slug, voter, b.id)
        assert second.votes_used == 2
        assert second.votes_remaining == 0

        with pytest.raises(ForbiddenError) as exc_info:
            await cast_vote(db_session, session.slug, voter, c.id)
        assert exc_info.value.error_code == "BUDGET_EXHAUSTED"
        assert exc_info.value.extra["votes_per_voter"] == 2

        assert await _rows(db_session, voter) == 2
        assert voter.votes_cast == 2

    async def test_zero_budget_rejects_every_vote(self, db_session: AsyncSession):
        session, [voter] = await _setup(db_session, votes_per_voter=0)
        movie = await _movie(db_session, session, "A")
        with pytest.raises(ForbiddenError) as exc_info:
            await cast_vote(db_session, session.slug, voter, movie.id)
        assert exc_info.value.error_code == "BUDGET_EXHAUSTED"

    async def test_one_vote_per_movie(self, db_session: AsyncSession):
        session, [voter] = await _setup(db_session, votes_per_voter=5)
        movie = await _movie(db_session, session, "A")
        await cast_vote(db_session, session.slug, voter, movie.id)

        with pytest.raises(ConflictError) as exc_info:
            await cast_vote(db_session, session.slug, voter, movie.id)
        assert exc_info.value.error_code == "ALREADY_VOTED"
        assert await _rows(db_session, voter) == 1
        assert voter.votes_cast == 1

    async def test_votes_from_different_voters_accumulate(self, db_session: AsyncSession):
        session, voters = await _setup(db_session, voters=3)
        movie = await _movie(db_session, session, "A")
        for voter in voters:
            result = await cast_vote(db_session, session.slug, voter, movie.id)
        assert result.vote_count == 3
        assert result.my_votes == 1


class TestStacking:
    async def test_votes_stack_up_to_budget(self, db_session: AsyncSession):
        session, [voter] = await _setup(
            db_session, votes_per_voter=3, vote_policy=VotePolicy.stacking
        )
        movie = await _movie(db_session, session, "A")

        for expected in (1, 2, 3):
            result = await cast_vote(db_session, session.slug, voter, movie.id)
            assert result.my_votes == expected
            assert result.vote_count == expected

        with pytest.raises(ForbiddenError) as exc_info:
            await cast_vote(db_session, session.slug, voter, movie.id)
        assert exc_info.value.error_code == "BUDGET_EXHAUSTED"

        result = await retract_vote(db_session, session.slug, voter, movie.id)
        assert result.my_votes == 2
        assert result.votes_remaining == 1

    async def test_retracted_stack_slot_is_reused(self, db_session: AsyncSession):
        session, [voter] = await _setup(
            db_session, votes_per_voter=3, vote_policy=VotePolicy.stacking
        )
        movie = await _movie(db_session, session, "A")
        await cast_vote(db_session, session.slug, voter, movie.id)
        await cast_vote(db_session, session.slug, voter, movie.id)
        await retract_vote(db_session, session.slug, voter, movie.id)

        result = await cast_vote(db_session, session.slug, voter, movie.id)
        assert result.my_votes == 2
        indexes = await db_session.execute(
            select(Vote.stack_index).where(Vote.voter_id == voter.id).order_by(Vote.stack_index)
        )
        assert list(indexes.scalars().all()) == [0, 1]


# ---------------------------------------------------------------------------
# Retraction
# ---------------------------------------------------------------------------


class TestRetract:
    async def test_cast_then_retract_round_trip(self, db_session: AsyncSession):
        session, voters = await _setup(db_session, voters=2, votes_per_voter=3)
        movie = await _movie(db_session, session, "A")
        await cast_vote(db_session, session.slug, voters[1], movie.id)

        before = await vote_counts(db_session, session, voters[0].id, movie.id)
        await cast_vote(db_session, session.slug, voters[0], movie.id)
        after = await retract_vote(db_session, session.slug, voters[0], movie.id)

        assert after.vote_count == before.vote_count == 1
        assert after.votes_remaining == before.votes_remaining == 3
        assert after.votes_used == before.votes_used == 0
        assert voters[0].votes_cast == 0

    async def test_retract_without_vote(self, db_session: AsyncSession):
        session, [voter] = await _setup(db_session)
        movie = await _movie(db_session, session, "A")
        with pytest.raises(ConflictError) as exc_info:
            await retract_vote(db_session, session.slug, voter, movie.id)
        assert exc_info.value.error_code == "NO_VOTE"

    async def test_retract_frees_budget(self, db_session: AsyncSession):
        session, [voter] = await _setup(db_session, votes_per_voter=1)
        a = await _movie(db_session, session, "A")
        b = await _movie(db_session, session, "B")
        await cast_vote(db_session, session.slug, voter, a.id)
        await retract_vote(db_session, session.slug, voter, a.id)

        result = await cast_vote(db_session, session.slug, voter, b.id)
        assert result.votes_used == 1


# ---------------------------------------------------------------------------
# Identity and session state
# ---------------------------------------------------------------------------


class TestGuards:
    async def test_missing_voter_is_unauthorized(self, db_session: AsyncSession):
        session, _ = await _setup(db_session)
        movie = await _movie(db_session, session, "A")
        with pytest.raises(UnauthorizedError):
            await cast_vote(db_session, session.slug, None, movie.id)

    async def test_voter_from_other_session_is_unauthorized(self, db_session: AsyncSession):
        session, _ = await _setup(db_session, slug="one")
        _, [outsider] = await _setup(db_session, slug="two")
        movie = await _movie(db_session, session, "A")
        with pytest.raises(UnauthorizedError):
            await cast_vote(db_session, session.slug, outsider, movie.id)

    async def test_movie_from_other_session_is_not_found(self, db_session: AsyncSession):
        session, [voter] = await _setup(db_session, slug="one")
        other, _ = await _setup(db_session, slug="two")
        movie = await _movie(db_session, other, "A")
        with pytest.raises(NotFoundError):
            await cast_vote(db_session, session.slug, voter, movie.id)

    async def test_unknown_session_is_not_found(self, db_session: AsyncSession):
        _, [voter] = await _setup(db_session)
        with pytest.raises(NotFoundError):
            await cast_vote(db_session, "no-such-session", voter, "movie")

    async def test_closed_session_rejects_cast_and_retract(self, db_session: AsyncSession):
        session, [voter] = await _setup(db_session)
        movie = await _movie(db_session, session, "A")
        await cast_vote(db_session, session.slug, voter, movie.id)
        await close_session(db_session, session)

        for operation in (cast_vote, retract_vote):
            with pytest.raises(ForbiddenError) as exc_info:
                await operation(db_session, session.slug, voter, movie.id)
            assert exc_info.value.error_code == "SESSION_CLOSED"

        # Reads keep working after close
        standings = await tally(db_session, session.id)
        assert [entry.movie_id for entry in standings] == [movie.id]


# ---------------------------------------------------------------------------
# Tally and winner
# ---------------------------------------------------------------------------


class TestTallyAndWinner:
    async def test_tie_break_scenario(self, db_session: AsyncSession):
        session, voters = await _setup(db_session, voters=5, votes_per_voter=3)
        x = await _movie(db_session, session, "X")
        y = await _movie(db_session, session, "Y")
        z = await _movie(db_session, session, "Z")

        for voter in voters[:3]:
            for movie in (x, y, z):
                await cast_vote(db_session, session.slug, voter, movie.id)
        for voter in voters[3:]:
            for movie in (y, z):
                await cast_vote(db_session, session.slug, voter, movie.id)

        standings = await tally(db_session, session.id)
        assert [(e.title, e.vote_count) for e in standings] == [("Y", 5), ("Z", 5), ("X", 3)]

        closed = await close_session(db_session, session)
        assert closed.status == SessionStatus.closed
        assert closed.winner_movie_id == y.id

    async def test_no_votes_means_no_winner(self, db_session: AsyncSession):
        session, _ = await _setup(db_session)
        await _movie(db_session, session, "A")
        assert await tally(db_session, session.id) == []
        assert await determine_winner(db_session, session.id) is None

    async def test_explicit_winner_overrides_tally(self, db_session: AsyncSession):
        session, [voter] = await _setup(db_session)
        popular = await _movie(db_session, session, "Popular")
        chosen = await _movie(db_session, session, "Chosen")
        await cast_vote(db_session, session.slug, voter, popular.id)

        assert await determine_winner(db_session, session.id, chosen.id) == chosen.id
        closed = await close_session(db_session, session, winner_movie_id=chosen.id)
        assert closed.winner_movie_id == chosen.id

    async def test_explicit_winner_must_belong_to_session(self, db_session: AsyncSession):
        session, _ = await _setup(db_session, slug="one")
        other, _ = await _setup(db_session, slug="two")
        foreign = await _movie(db_session, other, "Elsewhere")
        with pytest.raises(NotFoundError):
            await determine_winner(db_session, session.id, foreign.id)
