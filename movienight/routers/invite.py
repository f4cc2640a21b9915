from typing import Optional

from fastapi import APIRouter, Body, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from movienight.config import settings
from movienight.database import get_db
from movienight.dependencies import voter_token_from_request
from movienight.schemas.invite import JoinRequest, JoinResponse
from movienight.schemas.session import SessionResponse, VoterResponse
from movienight.services.identity_service import issue_voter_token, resolve_voter_token
from movienight.services.invite_service import claim_invite

router = APIRouter(prefix="/join", tags=["invite"])


@router.post("/{code}", response_model=JoinResponse)
async def join(
    code: str,
    response: Response,
    body: Optional[JoinRequest] = Body(default=None),
    token: str | None = Depends(voter_token_from_request),
    db: AsyncSession = Depends(get_db),
):
    result = await claim_invite(
        db,
        code,
        fingerprint=body.fingerprint if body else None,
        current_voter_id=resolve_voter_token(token),
    )
    voter_token = issue_voter_token(result.voter.id)
    response.set_cookie(
        settings.voter_cookie_name,
        voter_token,
        max_age=settings.voter_token_expire_days * 24 * 60 * 60,
        httponly=True,
        samesite="lax",
        secure=settings.cookie_secure,
    )
    return JoinResponse(
        token=voter_token,
        already_joined=result.already_joined,
        session=SessionResponse.model_validate(result.session),
        voter=VoterResponse.model_validate(result.voter),
    )
