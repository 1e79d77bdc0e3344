"""Shared FastAPI dependencies for techpress routers.

Provides:
- Identity of the calling user, taken from headers set by the gateway
- Cache-aside accessor and invalidation publisher from the runtime
- Repositories bound to the request session
- JSON bytes responses for cached payloads
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Header, Response
from sqlalchemy.ext.asyncio import AsyncSession

from techpress import runtime
from techpress.api.errors import UnauthorizedError
from techpress.cache.aside import CacheAside
from techpress.invalidation.publisher import InvalidationPublisher
from techpress.persistence.db import get_session
from techpress.persistence.repositories import BlogRepository, CommentRepository

# =============================================================================
# Identity
# =============================================================================


@dataclass(frozen=True)
class CurrentUser:
    """Authenticated caller, as asserted by the gateway."""

    id: str
    name: str


def get_current_user(
    x_user_id: Annotated[str | None, Header()] = None,
    x_user_name: Annotated[str | None, Header()] = None,
) -> CurrentUser:
    """FastAPI dependency resolving the caller from trusted gateway headers.

    Raises:
        UnauthorizedError: If no user ID header is present
    """
    if not x_user_id or not x_user_id.strip():
        raise UnauthorizedError()
    user_id = x_user_id.strip()
    return CurrentUser(id=user_id, name=(x_user_name or "").strip() or user_id)


# =============================================================================
# Cache and invalidation
# =============================================================================


def get_cache_aside() -> CacheAside:
    return runtime.get_cache_aside()


def get_publisher() -> InvalidationPublisher:
    return runtime.get_publisher()


# =============================================================================
# Repositories
# =============================================================================


async def get_blog_repo(session: AsyncSession = Depends(get_session)) -> BlogRepository:
    """Get blog repository instance."""
    return BlogRepository(session)


async def get_comment_repo(session: AsyncSession = Depends(get_session)) -> CommentRepository:
    """Get comment repository instance."""
    return CommentRepository(session)


def json_bytes_response(payload: bytes, status_code: int | None = None) -> Response:
    if status_code is None:
        return Response(content=payload, media_type="application/json")
    return Response(content=payload, media_type="application/json", status_code=status_code)
