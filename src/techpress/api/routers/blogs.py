"""Blog API router.

Read endpoints are served through the cache-aside accessor; write endpoints
commit first, then publish the invalidation for every key they made stale.

- GET    /api/v1/blog/all               - List blogs (cached per search/category)
- GET    /api/v1/blog/saved/all         - Blogs saved by the caller (uncached)
- GET    /api/v1/blog/{id}              - Blog with author info (cached)
- GET    /api/v1/comment/{id}           - Comments on a blog (cached)
- POST   /api/v1/comment/{id}           - Add a comment
- DELETE /api/v1/comment/{commentid}    - Delete own comment
- POST   /api/v1/save/{blogid}          - Save a blog
"""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import ORJSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from techpress.api.deps import (
    CurrentUser,
    get_blog_repo,
    get_cache_aside,
    get_comment_repo,
    get_current_user,
    get_publisher,
    json_bytes_response,
)
from techpress.api.errors import BadRequestError, ForbiddenError, NotFoundError
from techpress.cache.aside import CacheAside
from techpress.cache.keys import CacheKeys
from techpress.config import settings
from techpress.invalidation.publisher import InvalidationPublisher
from techpress.persistence.db import get_session
from techpress.persistence.repositories import BlogRepository, CommentRepository

router = APIRouter(prefix="/api/v1", tags=["Blogs"])


class CommentCreate(BaseModel):
    """Request body for a new comment."""

    model_config = {"populate_by_name": True}

    comment: str = ""
    parent_id: int | None = Field(default=None, alias="parentId")


@router.get("/blog/all")
async def get_all_blogs(
    search_query: Annotated[str, Query(alias="searchQuery")] = "",
    category: str = "",
    cache: CacheAside = Depends(get_cache_aside),
    repo: BlogRepository = Depends(get_blog_repo),
) -> Response:
    """List blogs with author info, newest first."""
    payload = await cache.load(
        CacheKeys.blog_list(search_query, category),
        lambda: repo.list_blogs(search_query, category),
        ttl=settings.ttl_blog_list,
        resource=CacheKeys.BLOGS,
    )
    return json_bytes_response(payload or b"[]")


@router.get("/blog/saved/all")
async def get_saved_blogs(
    user: CurrentUser = Depends(get_current_user),
    repo: BlogRepository = Depends(get_blog_repo),
) -> ORJSONResponse:
    """Blogs saved by the caller; per-user, so never cached."""
    return ORJSONResponse(await repo.list_saved(user.id))


@router.get("/blog/{id}")
async def get_single_blog(
    id: int,
    cache: CacheAside = Depends(get_cache_aside),
    repo: BlogRepository = Depends(get_blog_repo),
) -> Response:
    """Get one blog. A missing blog is a 404 and is not cached."""
    payload = await cache.load(
        CacheKeys.blog(id),
        lambda: repo.get_blog(id),
        ttl=settings.ttl_blog_detail,
        resource=CacheKeys.BLOG,
    )
    if payload is None:
        raise NotFoundError("Blog", id)
    return json_bytes_response(payload)


@router.get("/comment/{id}")
async def get_all_comments(
    id: int,
    cache: CacheAside = Depends(get_cache_aside),
    repo: CommentRepository = Depends(get_comment_repo),
) -> Response:
    payload = await cache.load(
        CacheKeys.comments(id),
        lambda: repo.list_comments(id),
        ttl=settings.ttl_comment_list,
        resource=CacheKeys.COMMENTS,
    )
    return json_bytes_response(payload or b"[]")


@router.post("/comment/{id}", status_code=201)
async def add_comment(
    id: int,
    body: CommentCreate,
    user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    cache: CacheAside = Depends(get_cache_aside),
    blogs: BlogRepository = Depends(get_blog_repo),
    comments: CommentRepository = Depends(get_comment_repo),
    publisher: InvalidationPublisher = Depends(get_publisher),
) -> ORJSONResponse:
    """Add a comment, then invalidate the blog and its comment list."""
    text = body.comment.strip()
    if not text:
        raise BadRequestError("Comment is required")

    # Existence check through the cached detail
    blog = await cache.load_json(
        CacheKeys.blog(id),
        lambda: blogs.get_blog(id),
        ttl=settings.ttl_blog_detail,
        resource=CacheKeys.BLOG,
    )
    if blog is None:
        raise NotFoundError("Blog", id)

    row: dict[str, Any] = await comments.add_comment(
        id, text, userid=user.id, username=user.name, parentid=body.parent_id
    )
    await session.commit()

    await publisher.invalidate_blog(id)
    return ORJSONResponse(row, status_code=201)


@router.delete("/comment/{commentid}")
async def delete_comment(
    commentid: int,
    user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    comments: CommentRepository = Depends(get_comment_repo),
    publisher: InvalidationPublisher = Depends(get_publisher),
) -> ORJSONResponse:
    """Delete a comment owned by the caller."""
    comment = await comments.get_comment(commentid)
    if comment is None:
        raise NotFoundError("Comment", commentid)
    if comment["userid"] != user.id:
        raise ForbiddenError()

    await comments.delete_comment(commentid)
    await session.commit()

    await publisher.invalidate_blog(comment["blogid"])
    return ORJSONResponse({"message": "Comment deleted"})


@router.post("/save/{blogid}", status_code=201)
async def save_blog(
    blogid: int,
    user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    repo: BlogRepository = Depends(get_blog_repo),
) -> ORJSONResponse:
    if not await repo.exists(blogid):
        raise NotFoundError("Blog", blogid)
    if await repo.is_saved(user.id, blogid):
        raise BadRequestError("Blog already saved")

    await repo.save_blog(user.id, blogid)
    await session.commit()
    return ORJSONResponse({"message": "Blog saved"}, status_code=201)
