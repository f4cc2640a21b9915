"""Tests for the admin invite tree."""

from sqlalchemy.ext.asyncio import AsyncSession

from movienight.models.invite_code import InviteCodeStatus
from movienight.models.movie import Movie, MovieSource
from movienight.services.invite_service import (
    build_invite_tree,
    claim_invite,
    fallback_display_name,
    mint_voter_code,
    remove_voter,
)
from movienight.services.session_service import create_session, update_display_name
from movienight.services.voting_service import cast_vote


async def _chain(db: AsyncSession):
    """Root code -> alice -> bob -> carol, plus an unclaimed root code."""
    session, codes = await create_session(
        db, name="Tree", slug="tree", root_invite_codes=2, guest_invite_slots=2
    )
    alice = (await claim_invite(db, codes[0].code)).voter
    await update_display_name(db, alice, "Alice")
    bob_code = await mint_voter_code(db, session, alice, "Bob")
    bob = (await claim_invite(db, bob_code.code)).voter
    carol_code = await mint_voter_code(db, session, bob, "Carol")
    carol = (await claim_invite(db, carol_code.code)).voter
    return session, codes, alice, bob, carol


def _root(tree, code):
    [node] = [root for root in tree.roots if root.code.code == code]
    return node


class TestInviteTree:
    async def test_forest_shape(self, db_session: AsyncSession):
        session, codes, alice, bob, carol = await _chain(db_session)

        tree = await build_invite_tree(db_session, session)

        assert tree.voter_count == 3
        assert tree.detached == []
        assert {root.code.code for root in tree.roots} == {c.code for c in codes}

        spare = _root(tree, codes[1].code)
        assert spare.voters == []
        assert spare.code.status == InviteCodeStatus.unused

        [alice_node] = _root(tree, codes[0].code).voters
        assert alice_node.id == alice.id
        assert alice_node.display_name == "Alice"
        assert alice_node.invite_depth == 0
        assert alice_node.invites_created == 1
        assert [leaf.label for leaf in alice_node.codes] == ["Bob"]
        assert alice_node.codes[0].used_by_voter_id == bob.id

        [bob_node] = alice_node.children
        assert bob_node.id == bob.id
        assert bob_node.invite_depth == 1
        [carol_node] = bob_node.children
        assert carol_node.id == carol.id
        assert carol_node.invite_depth == 2
        assert carol_node.children == []

    async def test_unnamed_voters_get_a_fallback_name(self, db_session: AsyncSession):
        session, codes, _, bob, _ = await _chain(db_session)
        tree = await build_invite_tree(db_session, session)
        bob_node = _root(tree, codes[0].code).voters[0].children[0]
        assert bob_node.display_name == fallback_display_name(bob.id)
        assert bob_node.display_name.startswith("Guest #")

    async def test_vote_counts_per_voter(self, db_session: AsyncSession):
        session, codes, alice, bob, _ = await _chain(db_session)
        for title in ("A", "B"):
            movie = Movie(session_id=session.id, title=title, source=MovieSource.library)
            db_session.add(movie)
            await db_session.commit()
            await cast_vote(db_session, session.slug, alice, movie.id)

        tree = await build_invite_tree(db_session, session)
        alice_node = _root(tree, codes[0].code).voters[0]
        assert alice_node.vote_count == 2
        assert alice_node.children[0].id == bob.id
        assert alice_node.children[0].vote_count == 0

    async def test_invitees_of_removed_voter_are_detached(self, db_session: AsyncSession):
        session, codes, alice, bob, carol = await _chain(db_session)

        await remove_voter(db_session, bob)
        tree = await build_invite_tree(db_session, session)

        assert tree.voter_count == 2
        alice_node = _root(tree, codes[0].code).voters[0]
        assert alice_node.id == alice.id
        assert alice_node.children == []
        assert [node.id for node in tree.detached] == [carol.id]
