"""
FastAPI dependency injection providers.

Provides database sessions and the bearer-auth meter dependency for use
with FastAPI's Depends() mechanism, plus the camelCase base model shared by
the request/response schemas.

CHANGELOG:
- 2026-10-16: Add get_meter_id and CamelModel (STORY-028)
"""

from collections.abc import AsyncGenerator

from fastapi import Request
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession

from gridbill.db.session import get_async_session


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session.

    Yields:
        AsyncSession: An async SQLAlchemy session.
    """
    async for session in get_async_session():
        yield session


async def get_meter_id(request: Request) -> str:
    """Extract the authenticated meter_id via BearerAuth on app.state.

    Args:
        request: The incoming FastAPI request.

    Returns:
        str: The authenticated meter_id.
    """
    return await request.app.state.auth.verify(request)


class CamelModel(BaseModel):
    """Base schema: snake_case attributes, camelCase JSON keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
