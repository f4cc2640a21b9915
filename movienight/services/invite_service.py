"""Invite engine: code issuance, claiming, lifecycle and the invite tree.

Code state machine::

    unused --claim (use_count reaches max_uses)--> used
    unused --revoke--> revoked
    used / revoked --admin reopen--> unused

A claim must admit exactly one voter per remaining use even when many guests
open the same link at once.  The guard is a conditional UPDATE on the code row
(``status = 'unused' AND use_count < max_uses``) executed in the same
transaction as the voter insert: whoever updates zero rows lost the race and
rolls back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from movienight.database import rollback_and_refresh
from movienight.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
    session_closed,
)
from movienight.models.invite_code import InviteCode, InviteCodeStatus
from movienight.models.session import VotingSession
from movienight.models.vote import Vote
from movienight.models.voter import Voter
from movienight.services.identity_service import get_voter, get_voter_in_session
from movienight.services.invite_codes import generate_code, normalize_code
from movienight.services.session_service import ensure_open, session_is_open

logger = logging.getLogger(__name__)

MAX_CODES_PER_REQUEST = 20
MAX_USES_LIMIT = 100


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


async def get_invite_code(db: AsyncSession, code: str) -> InviteCode | None:
    result = await db.execute(
        select(InviteCode)
        .where(InviteCode.code == normalize_code(code))
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def require_invite_code(db: AsyncSession, code: str) -> InviteCode:
    invite = await get_invite_code(db, code)
    if invite is None:
        raise NotFoundError("This invite link is not valid.")
    return invite


async def list_session_codes(db: AsyncSession, session_id: str) -> list[InviteCode]:
    result = await db.execute(
        select(InviteCode)
        .where(InviteCode.session_id == session_id)
        .order_by(InviteCode.created_at)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def list_voter_codes(db: AsyncSession, voter: Voter) -> list[InviteCode]:
    result = await db.execute(
        select(InviteCode)
        .where(InviteCode.created_by_voter_id == voter.id)
        .order_by(InviteCode.created_at)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Issuance
# ---------------------------------------------------------------------------


def _check_max_uses(max_uses: int) -> None:
    if not 1 <= max_uses <= MAX_USES_LIMIT:
        raise ValidationError(f"max_uses must be between 1 and {MAX_USES_LIMIT}.")


def add_root_codes(
    db: AsyncSession,
    session: VotingSession,
    count: int,
    label: str | None = None,
    max_uses: int = 1,
) -> list[InviteCode]:
    """Stage ``count`` admin-issued codes on the unit of work without committing."""
    codes = [
        InviteCode(
            code=generate_code(),
            session_id=session.id,
            created_by_voter_id=None,
            status=InviteCodeStatus.unused,
            label=label,
            max_uses=max_uses,
            use_count=0,
        )
        for _ in range(count)
    ]
    db.add_all(codes)
    return codes


async def generate_root_codes(
    db: AsyncSession,
    session: VotingSession,
    count: int,
    label: str | None = None,
    max_uses: int = 1,
) -> list[InviteCode]:
    """Mint 1-20 admin-issued codes.  Their claimants start at depth 0."""
    if not 1 <= count <= MAX_CODES_PER_REQUEST:
        raise ValidationError(f"count must be between 1 and {MAX_CODES_PER_REQUEST}.")
    _check_max_uses(max_uses)

    label = (label or "").strip() or None
    codes = add_root_codes(db, session, count, label=label, max_uses=max_uses)
    await db.commit()
    logger.info("Generated %d root codes for session %s", len(codes), session.slug)
    return codes


async def mint_voter_code(
    db: AsyncSession,
    session: VotingSession,
    voter: Voter,
    label: str,
    max_uses: int = 1,
) -> InviteCode:
    """Create an invite code owned by ``voter``.

    Slots are a budget on the number of codes a voter has created: the
    conditional UPDATE below only succeeds while invites_created is still
    under invite_slots_remaining.
    """
    if voter.session_id != session.id:
        raise NotFoundError("Voter not found in this session.")
    ensure_open(session)
    label = (label or "").strip()
    if not label:
        raise ValidationError("Give this invite a name so you know who it is for.")
    if len(label) > 100:
        raise ValidationError("Invite label must be at most 100 characters.")
    _check_max_uses(max_uses)

    result = await db.execute(
        update(Voter)
        .where(Voter.id == voter.id, Voter.invites_created < Voter.invite_slots_remaining)
        .values(invites_created=Voter.invites_created + 1)
    )
    if result.rowcount != 1:
        await rollback_and_refresh(db, session, voter)
        raise ForbiddenError("No invite slots remaining.", "SLOTS_EXHAUSTED")

    invite = InviteCode(
        code=generate_code(),
        session_id=session.id,
        created_by_voter_id=voter.id,
        status=InviteCodeStatus.unused,
        label=label,
        max_uses=max_uses,
        use_count=0,
    )
    db.add(invite)
    await db.commit()
    await db.refresh(invite)
    await db.refresh(voter)
    return invite


async def set_code_label(db: AsyncSession, voter: Voter, code: str, label: str) -> InviteCode:
    invite = await get_invite_code(db, code)
    if invite is None or invite.session_id != voter.session_id:
        raise NotFoundError("Invite code not found.")
    if invite.created_by_voter_id != voter.id:
        raise ForbiddenError("You can only rename your own invites.", "NOT_CODE_OWNER")
    label = (label or "").strip()
    if not label:
        raise ValidationError("Invite label must not be empty.")
    invite.label = label[:100]
    await db.commit()
    await db.refresh(invite)
    return invite


# ---------------------------------------------------------------------------
# Claim
# ---------------------------------------------------------------------------


@dataclass
class ClaimResult:
    session: VotingSession
    voter: Voter
    already_joined: bool


def _fully_claimed(invite: InviteCode) -> ConflictError:
    if invite.max_uses > 1:
        message = f"This invite link has already been used on {invite.max_uses} devices."
    else:
        message = "This invite link has already been used."
    return ConflictError(message, "FULLY_CLAIMED", max_uses=invite.max_uses)


def _revoked() -> ForbiddenError:
    return ForbiddenError("This invite link has been revoked.", "REVOKED")


async def claim_invite(
    db: AsyncSession,
    code: str,
    fingerprint: str | None = None,
    current_voter_id: str | None = None,
) -> ClaimResult:
    """Redeem an invite code and create the voter it admits.

    ``current_voter_id`` is the caller's already-resolved identity, if any.  A
    caller who already belongs to the code's session gets their existing
    voter back and the code is left untouched, so revisiting one's own join
    link is harmless.
    """
    result = await db.execute(
        select(InviteCode, VotingSession)
        .join(VotingSession, VotingSession.id == InviteCode.session_id)
        .where(InviteCode.code == normalize_code(code))
        .execution_options(populate_existing=True)
    )
    row = result.one_or_none()
    if row is None:
        raise NotFoundError("This invite link is not valid.")
    invite, session = row

    if not session_is_open(session):
        raise session_closed(session)

    if current_voter_id:
        existing = await get_voter_in_session(db, current_voter_id, session.id)
        if existing is not None:
            return ClaimResult(session=session, voter=existing, already_joined=True)

    if invite.status == InviteCodeStatus.revoked:
        raise _revoked()
    if invite.status == InviteCodeStatus.used or invite.use_count >= invite.max_uses:
        raise _fully_claimed(invite)

    invite_depth = 0
    inviter_id = invite.created_by_voter_id
    if inviter_id is not None:
        # Read fresh: the tree may have grown since the code was minted.
        depth_result = await db.execute(select(Voter.invite_depth).where(Voter.id == inviter_id))
        inviter_depth = depth_result.scalar_one_or_none()
        if inviter_depth is None:
            # The inviter was removed from the session.
            raise _revoked()
        invite_depth = inviter_depth + 1

    if session.max_invite_depth is not None and invite_depth > session.max_invite_depth:
        raise ForbiddenError(
            "This session has reached its maximum invite depth.", "DEPTH_EXCEEDED"
        )

    voter = Voter(
        session_id=session.id,
        display_name=None,
        invited_by=inviter_id,
        invite_depth=invite_depth,
        admitted_by_code=invite.code,
        invite_slots_remaining=session.guest_invite_slots,
        invites_created=0,
        votes_cast=0,
        fingerprint=fingerprint,
    )
    db.add(voter)
    await db.flush()

    claimed = await db.execute(
        update(InviteCode)
        .where(
            InviteCode.code == invite.code,
            InviteCode.status == InviteCodeStatus.unused,
            InviteCode.use_count < InviteCode.max_uses,
        )
        .values(
            use_count=InviteCode.use_count + 1,
            used_by_voter_id=voter.id,
            used_at=datetime.now(timezone.utc),
        )
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount != 1:
        code_value = invite.code
        await db.rollback()
        logger.warning("Lost claim race on code %s", code_value)
        current = await get_invite_code(db, code_value)
        if current is None:
            raise NotFoundError("This invite link is not valid.")
        if current.status == InviteCodeStatus.revoked:
            raise _revoked()
        raise _fully_claimed(current)

    await db.execute(
        update(InviteCode)
        .where(InviteCode.code == invite.code, InviteCode.use_count >= InviteCode.max_uses)
        .values(status=InviteCodeStatus.used)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    await db.refresh(voter)
    logger.info(
        "Voter %s joined session %s at depth %d via %s",
        voter.id,
        session.slug,
        invite_depth,
        "root code" if inviter_id is None else "guest code",
    )
    return ClaimResult(session=session, voter=voter, already_joined=False)


# ---------------------------------------------------------------------------
# Admin code management
# ---------------------------------------------------------------------------


async def revoke_code(db: AsyncSession, code: str) -> InviteCode:
    invite = await require_invite_code(db, code)
    if invite.status == InviteCodeStatus.used:
        raise ConflictError("This code has already been used.", "ALREADY_USED")
    if invite.status == InviteCodeStatus.revoked:
        return invite

    result = await db.execute(
        update(InviteCode)
        .where(InviteCode.code == invite.code, InviteCode.status == InviteCodeStatus.unused)
        .values(status=InviteCodeStatus.revoked)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        # Claimed to exhaustion between our read and the update.
        await rollback_and_refresh(db, invite)
        raise ConflictError("This code has already been used.", "ALREADY_USED")
    await db.commit()
    await db.refresh(invite)
    logger.info("Revoked code %s", invite.code)
    return invite


async def reopen_code(db: AsyncSession, code: str) -> InviteCode:
    """Administrative override: make a used or revoked code claimable again."""
    invite = await require_invite_code(db, code)
    if invite.status == InviteCodeStatus.unused:
        raise ConflictError("This code is already claimable.", "ALREADY_OPEN")
    if invite.use_count >= invite.max_uses:
        # Admit one more claimant while keeping use_count <= max_uses.
        invite.max_uses = invite.use_count + 1
    invite.status = InviteCodeStatus.unused
    await db.commit()
    await db.refresh(invite)
    logger.info("Reopened code %s", invite.code)
    return invite


async def _remove_voters(db: AsyncSession, voter_ids: list[str]) -> None:
    if not voter_ids:
        return
    await db.execute(delete(Vote).where(Vote.voter_id.in_(voter_ids)))
    await db.execute(delete(Voter).where(Voter.id.in_(voter_ids)))


async def delete_code(db: AsyncSession, code: str) -> list[str]:
    """Delete a code.  Voters it admitted are removed with their votes.

    Returns the ids of the removed voters.
    """
    invite = await require_invite_code(db, code)

    admitted = await db.execute(select(Voter.id).where(Voter.admitted_by_code == invite.code))
    voter_ids = [row[0] for row in admitted.all()]
    await _remove_voters(db, voter_ids)

    if invite.created_by_voter_id is not None:
        await db.execute(
            update(Voter)
            .where(Voter.id == invite.created_by_voter_id, Voter.invites_created > 0)
            .values(invites_created=Voter.invites_created - 1)
        )

    await db.delete(invite)
    await db.commit()
    logger.info("Deleted code %s and %d admitted voters", invite.code, len(voter_ids))
    return voter_ids


# ---------------------------------------------------------------------------
# Admin voter management
# ---------------------------------------------------------------------------


async def require_voter(db: AsyncSession, voter_id: str) -> Voter:
    voter = await get_voter(db, voter_id)
    if voter is None:
        raise NotFoundError("Voter not found.")
    return voter


async def adjust_voter_slots(db: AsyncSession, voter: Voter, invite_slots: int) -> Voter:
    voter.invite_slots_remaining = max(0, invite_slots)
    await db.commit()
    await db.refresh(voter)
    return voter


async def remove_voter(db: AsyncSession, voter: Voter) -> None:
    """Remove a voter.  Their votes stay on the ballot.

    Codes the voter minted but nobody has claimed yet are revoked so they
    cannot admit guests outside the depth limits.
    """
    await db.execute(
        update(InviteCode)
        .where(
            InviteCode.created_by_voter_id == voter.id,
            InviteCode.status == InviteCodeStatus.unused,
        )
        .values(status=InviteCodeStatus.revoked)
        .execution_options(synchronize_session=False)
    )
    await db.delete(voter)
    await db.commit()
    logger.info("Removed voter %s from session %s", voter.id, voter.session_id)


# ---------------------------------------------------------------------------
# Invite tree
# ---------------------------------------------------------------------------


@dataclass
class CodeLeaf:
    code: str
    status: InviteCodeStatus
    label: str | None
    use_count: int
    max_uses: int
    used_by_voter_id: str | None


@dataclass
class VoterNode:
    id: str
    display_name: str
    invite_depth: int
    vote_count: int
    invite_slots_remaining: int
    invites_created: int
    fingerprint: str | None
    joined_at: datetime
    codes: list[CodeLeaf] = field(default_factory=list)
    children: list["VoterNode"] = field(default_factory=list)


@dataclass
class RootCodeNode:
    code: CodeLeaf
    voters: list[VoterNode] = field(default_factory=list)


@dataclass
class InviteTree:
    session: VotingSession
    roots: list[RootCodeNode]
    # voters whose inviter or admitting code no longer exists
    detached: list[VoterNode]
    voter_count: int


def _leaf(invite: InviteCode) -> CodeLeaf:
    return CodeLeaf(
        code=invite.code,
        status=invite.status,
        label=invite.label,
        use_count=invite.use_count,
        max_uses=invite.max_uses,
        used_by_voter_id=invite.used_by_voter_id,
    )


def fallback_display_name(voter_id: str) -> str:
    return f"Guest #{voter_id[:6]}"


async def build_invite_tree(db: AsyncSession, session: VotingSession) -> InviteTree:
    """Reduce every voter and code of a session into a forest.

    Loads each table once and folds in memory; nothing is cached between calls.
    """
    voter_result = await db.execute(
        select(Voter)
        .where(Voter.session_id == session.id)
        .order_by(Voter.joined_at)
        .execution_options(populate_existing=True)
    )
    voters = list(voter_result.scalars().all())
    codes = await list_session_codes(db, session.id)
    count_result = await db.execute(
        select(Vote.voter_id, func.count(Vote.id))
        .where(Vote.session_id == session.id)
        .group_by(Vote.voter_id)
    )
    vote_counts = dict(count_result.all())

    voter_ids = {v.id for v in voters}
    root_codes = {c.code for c in codes if c.created_by_voter_id is None}

    children_by_parent: dict[str, list[Voter]] = {}
    by_root_code: dict[str, list[Voter]] = {}
    detached_voters: list[Voter] = []
    for voter in voters:
        if voter.invited_by is not None and voter.invited_by in voter_ids:
            children_by_parent.setdefault(voter.invited_by, []).append(voter)
        elif voter.invited_by is None and voter.admitted_by_code in root_codes:
            by_root_code.setdefault(voter.admitted_by_code, []).append(voter)
        else:
            detached_voters.append(voter)

    codes_by_creator: dict[str, list[CodeLeaf]] = {}
    for invite in codes:
        if invite.created_by_voter_id is not None:
            codes_by_creator.setdefault(invite.created_by_voter_id, []).append(_leaf(invite))

    def fold(voter: Voter) -> VoterNode:
        return VoterNode(
            id=voter.id,
            display_name=voter.display_name or fallback_display_name(voter.id),
            invite_depth=voter.invite_depth,
            vote_count=vote_counts.get(voter.id, 0),
            invite_slots_remaining=voter.invite_slots_remaining,
            invites_created=voter.invites_created,
            fingerprint=voter.fingerprint,
            joined_at=voter.joined_at,
            codes=codes_by_creator.get(voter.id, []),
            children=[fold(child) for child in children_by_parent.get(voter.id, [])],
        )

    roots = [
        RootCodeNode(code=_leaf(invite), voters=[fold(v) for v in by_root_code.get(invite.code, [])])
        for invite in codes
        if invite.created_by_voter_id is None
    ]
    return InviteTree(
        session=session,
        roots=roots,
        detached=[fold(v) for v in detached_voters],
        voter_count=len(voters),
    )
