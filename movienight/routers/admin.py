from typing import Optional

from fastapi import APIRouter, Body, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from movienight.database import get_db
from movienight.dependencies import require_admin
from movienight.schemas.invite import (
    DeletedCodeResponse,
    InviteLinkResponse,
    InviteTreeResponse,
    RootCodesCreate,
    SlotsUpdate,
)
from movienight.schemas.session import (
    CloseSession,
    InviteCodeResponse,
    SessionCreate,
    SessionResponse,
    SessionSummaryResponse,
    SessionUpdate,
    SessionWithCodesResponse,
    StandingsResponse,
    TallyEntryResponse,
    VoterResponse,
)
from movienight.services.invite_codes import normalize_code
from movienight.services.invite_service import (
    adjust_voter_slots,
    build_invite_tree,
    delete_code,
    generate_root_codes,
    list_session_codes,
    remove_voter,
    reopen_code,
    require_voter,
    revoke_code,
)
from movienight.services.session_service import (
    close_expired_sessions,
    close_session,
    create_session,
    delete_session,
    list_sessions_with_counts,
    reopen_session,
    require_session_by_id,
    update_session,
)
from movienight.services.voting_service import tally

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


def _with_codes(session, codes) -> SessionWithCodesResponse:
    return SessionWithCodesResponse(
        **SessionResponse.model_validate(session).model_dump(),
        invite_codes=[InviteCodeResponse.model_validate(c) for c in codes],
    )


@router.get("/sessions", response_model=list[SessionSummaryResponse])
async def list_sessions(db: AsyncSession = Depends(get_db)):
    summaries = await list_sessions_with_counts(db)
    return [
        SessionSummaryResponse(
            **SessionResponse.model_validate(s.session).model_dump(),
            voter_count=s.voter_count,
            movie_count=s.movie_count,
            total_votes=s.total_votes,
        )
        for s in summaries
    ]


@router.post(
    "/sessions", response_model=SessionWithCodesResponse, status_code=status.HTTP_201_CREATED
)
async def create_new_session(body: SessionCreate, db: AsyncSession = Depends(get_db)):
    session, codes = await create_session(db, **body.model_dump())
    return _with_codes(session, codes)


@router.post("/sessions/expire", response_model=list[SessionResponse])
async def expire_sessions(db: AsyncSession = Depends(get_db)):
    return await close_expired_sessions(db)


@router.get("/sessions/{session_id}", response_model=SessionWithCodesResponse)
async def get_session_detail(session_id: str, db: AsyncSession = Depends(get_db)):
    session = await require_session_by_id(db, session_id)
    codes = await list_session_codes(db, session.id)
    return _with_codes(session, codes)


@router.patch("/sessions/{session_id}", response_model=SessionResponse)
async def update_session_settings(
    session_id: str, body: SessionUpdate, db: AsyncSession = Depends(get_db)
):
    session = await require_session_by_id(db, session_id)
    return await update_session(db, session, **body.model_dump(exclude_unset=True))


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session_endpoint(session_id: str, db: AsyncSession = Depends(get_db)):
    session = await require_session_by_id(db, session_id)
    await delete_session(db, session)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/sessions/{session_id}/close", response_model=SessionResponse)
async def close_session_endpoint(
    session_id: str,
    body: Optional[CloseSession] = Body(default=None),
    db: AsyncSession = Depends(get_db),
):
    session = await require_session_by_id(db, session_id)
    return await close_session(db, session, body.winner_movie_id if body else None)


@router.post("/sessions/{session_id}/reopen", response_model=SessionResponse)
async def reopen_session_endpoint(session_id: str, db: AsyncSession = Depends(get_db)):
    session = await require_session_by_id(db, session_id)
    return await reopen_session(db, session)


@router.post(
    "/sessions/{session_id}/codes",
    response_model=list[InviteLinkResponse],
    status_code=status.HTTP_201_CREATED,
)
async def add_codes(session_id: str, body: RootCodesCreate, db: AsyncSession = Depends(get_db)):
    session = await require_session_by_id(db, session_id)
    codes = await generate_root_codes(
        db, session, body.count, label=body.label, max_uses=body.max_uses
    )
    return [InviteLinkResponse.from_code(c) for c in codes]


@router.get("/sessions/{session_id}/tree", response_model=InviteTreeResponse)
async def invite_tree(session_id: str, db: AsyncSession = Depends(get_db)):
    session = await require_session_by_id(db, session_id)
    tree = await build_invite_tree(db, session)
    return InviteTreeResponse.model_validate(tree)


@router.get("/sessions/{session_id}/standings", response_model=StandingsResponse)
async def session_standings(session_id: str, db: AsyncSession = Depends(get_db)):
    session = await require_session_by_id(db, session_id)
    entries = await tally(db, session.id)
    return StandingsResponse(
        session_id=session.id,
        status=session.status,
        winner_movie_id=session.winner_movie_id,
        standings=[TallyEntryResponse.model_validate(e) for e in entries],
    )


@router.post("/codes/{code}/revoke", response_model=InviteCodeResponse)
async def revoke(code: str, db: AsyncSession = Depends(get_db)):
    return await revoke_code(db, code)


@router.post("/codes/{code}/reopen", response_model=InviteCodeResponse)
async def reopen(code: str, db: AsyncSession = Depends(get_db)):
    return await reopen_code(db, code)


@router.delete("/codes/{code}", response_model=DeletedCodeResponse)
async def delete_invite_code(code: str, db: AsyncSession = Depends(get_db)):
    removed = await delete_code(db, code)
    return DeletedCodeResponse(code=normalize_code(code), removed_voter_ids=removed)


@router.patch("/voters/{voter_id}/slots", response_model=VoterResponse)
async def set_voter_slots(voter_id: str, body: SlotsUpdate, db: AsyncSession = Depends(get_db)):
    voter = await require_voter(db, voter_id)
    return await adjust_voter_slots(db, voter, body.invite_slots)


@router.delete("/voters/{voter_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_voter(voter_id: str, db: AsyncSession = Depends(get_db)):
    voter = await require_voter(db, voter_id)
    await remove_voter(db, voter)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
