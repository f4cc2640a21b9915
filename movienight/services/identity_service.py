"""Voter identity tokens.

A token is a signed JWT whose subject is a voter id.  The engine never reads
cookies or headers itself; routers resolve the token and pass the voter in.
"""

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from movienight.config import settings
from movienight.models.voter import Voter

TOKEN_TYPE = "voter"


def issue_voter_token(voter_id: str) -> str:
    expire = datetime.now(timezone.utc) + timedelta(days=settings.voter_token_expire_days)
    payload = {"sub": voter_id, "typ": TOKEN_TYPE, "exp": expire}
    return jwt.encode(payload, settings.secret_key, algorithm=settings.algorithm)


def resolve_voter_token(token: str | None) -> str | None:
    if not token:
        return None
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None
    if payload.get("typ") != TOKEN_TYPE:
        return None
    return payload.get("sub")


async def get_voter(db: AsyncSession, voter_id: str) -> Voter | None:
    result = await db.execute(
        select(Voter).where(Voter.id == voter_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_voter_in_session(db: AsyncSession, voter_id: str, session_id: str) -> Voter | None:
    result = await db.execute(
        select(Voter)
        .where(Voter.id == voter_id, Voter.session_id == session_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()
