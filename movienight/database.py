from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from movienight.config import settings
from movienight.models import Base  # noqa: F401 - imported so Base.metadata includes all models

_connect_args = {"timeout": 30} if settings.database_url.startswith("sqlite") else {}

engine = create_async_engine(settings.database_url, echo=False, connect_args=_connect_args)
AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session


async def rollback_and_refresh(db: AsyncSession, *instances) -> None:
    """Roll back a failed guard and reload instances the caller still holds.

    A rollback expires every instance in the session, and an expired
    attribute cannot be lazy-loaded outside the greenlet.
    """
    await db.rollback()
    for instance in instances:
        await db.refresh(instance)
