import secrets

from fastapi import Depends, Header, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from movienight.config import settings
from movienight.database import get_db
from movienight.exceptions import ForbiddenError, UnauthorizedError
from movienight.models.voter import Voter
from movienight.services.identity_service import get_voter, resolve_voter_token
from movienight.services.media_library import MediaLibraryClient
from movienight.services.request_catalog import RequestCatalogClient

bearer_scheme = HTTPBearer(auto_error=False)


def voter_token_from_request(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> str | None:
    # The cookie set on join, or a bearer token for API clients
    if credentials is not None:
        return credentials.credentials
    return request.cookies.get(settings.voter_cookie_name)


async def get_optional_voter(
    token: str | None = Depends(voter_token_from_request),
    db: AsyncSession = Depends(get_db),
) -> Voter | None:
    voter_id = resolve_voter_token(token)
    if voter_id is None:
        return None
    return await get_voter(db, voter_id)


async def get_current_voter(voter: Voter | None = Depends(get_optional_voter)) -> Voter:
    if voter is None:
        raise UnauthorizedError()
    return voter


def require_admin(x_admin_secret: str | None = Header(default=None)) -> None:
    if not settings.admin_secret:
        raise ForbiddenError("Admin access is disabled.", "ADMIN_DISABLED")
    if x_admin_secret is None or not secrets.compare_digest(
        x_admin_secret.encode(), settings.admin_secret.encode()
    ):
        raise ForbiddenError("Invalid admin secret.", "ADMIN_REQUIRED")


def get_media_library() -> MediaLibraryClient:
    return MediaLibraryClient()


def get_request_catalog() -> RequestCatalogClient:
    return RequestCatalogClient()
