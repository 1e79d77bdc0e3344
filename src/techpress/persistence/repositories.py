"""Repositories for blog persistence.

Read methods return plain dicts ready for JSON serialization, so results
can be cached as-is by the cache-aside accessor. Write methods flush but do
not commit; the caller commits and only then publishes invalidations.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import Select, delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from techpress.persistence.tables import BlogTable, CommentTable, SavedBlogTable, UserTable

BLOG_COLUMNS = (
    BlogTable.id,
    BlogTable.title,
    BlogTable.description,
    BlogTable.blogcontent,
    BlogTable.image,
    BlogTable.category,
    BlogTable.author,
    BlogTable.create_at,
)

COMMENT_COLUMNS = (
    CommentTable.id,
    CommentTable.comment,
    CommentTable.userid,
    CommentTable.username,
    CommentTable.blogid,
    CommentTable.parentid,
    CommentTable.create_at,
)


def _blogs_with_author() -> Select[Any]:
    return select(
        *BLOG_COLUMNS,
        UserTable.name.label("author_name"),
        UserTable.image.label("author_image"),
    ).outerjoin(UserTable, UserTable.id == BlogTable.author)


def _escape_like(value: str) -> str:
    """Make LIKE metacharacters in user input match literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class BaseRepository:
    """Base repository bound to one session."""

    def __init__(self, session: AsyncSession):
        self.session = session


class BlogRepository(BaseRepository):
    """Repository for blogs and saved blogs."""

    async def list_blogs(self, search: str = "", category: str = "") -> list[dict[str, Any]]:
        """List blogs with author info, newest first.

        search matches title or description case-insensitively, category is
        an exact match. Empty values apply no filter.
        """
        stmt = _blogs_with_author()
        search = search.strip()
        category = category.strip()
        if search:
            term = f"%{_escape_like(search.lower())}%"
            stmt = stmt.where(
                or_(
                    func.lower(BlogTable.title).like(term, escape="\\"),
                    func.lower(BlogTable.description).like(term, escape="\\"),
                )
            )
        if category:
            stmt = stmt.where(BlogTable.category == category)
        stmt = stmt.order_by(BlogTable.create_at.desc(), BlogTable.id.desc())

        result = await self.session.execute(stmt)
        return [dict(row) for row in result.mappings()]

    async def get_blog(self, blog_id: int) -> dict[str, Any] | None:
        """Get one blog with author info, or None if it does not exist."""
        stmt = _blogs_with_author().where(BlogTable.id == blog_id)
        result = await self.session.execute(stmt)
        row = result.mappings().first()
        return dict(row) if row is not None else None

    async def exists(self, blog_id: int) -> bool:
        stmt = select(BlogTable.id).where(BlogTable.id == blog_id)
        result = await self.session.execute(stmt)
        return result.first() is not None

    async def is_saved(self, userid: str, blog_id: int) -> bool:
        stmt = select(SavedBlogTable.id).where(
            SavedBlogTable.userid == userid,
            SavedBlogTable.blogid == blog_id,
        )
        result = await self.session.execute(stmt)
        return result.first() is not None

    async def save_blog(self, userid: str, blog_id: int) -> None:
        self.session.add(SavedBlogTable(userid=userid, blogid=blog_id))
        await self.session.flush()

    async def list_saved(self, userid: str) -> list[dict[str, Any]]:
        """Blogs saved by a user, most recently saved first."""
        stmt = (
            select(*BLOG_COLUMNS)
            .join(SavedBlogTable, SavedBlogTable.blogid == BlogTable.id)
            .where(SavedBlogTable.userid == userid)
            .order_by(SavedBlogTable.create_at.desc(), SavedBlogTable.id.desc())
        )
        result = await self.session.execute(stmt)
        return [dict(row) for row in result.mappings()]


class CommentRepository(BaseRepository):
    """Repository for blog comments."""

    async def list_comments(self, blog_id: int) -> list[dict[str, Any]]:
        """Comments on a blog, newest first."""
        stmt = (
            select(*COMMENT_COLUMNS)
            .where(CommentTable.blogid == blog_id)
            .order_by(CommentTable.create_at.desc(), CommentTable.id.desc())
        )
        result = await self.session.execute(stmt)
        return [dict(row) for row in result.mappings()]

    async def get_comment(self, comment_id: int) -> dict[str, Any] | None:
        stmt = select(*COMMENT_COLUMNS).where(CommentTable.id == comment_id)
        result = await self.session.execute(stmt)
        row = result.mappings().first()
        return dict(row) if row is not None else None

    async def add_comment(
        self,
        blog_id: int,
        comment: str,
        userid: str,
        username: str,
        parentid: int | None = None,
    ) -> dict[str, Any]:
        """Insert a comment and return the stored row."""
        row = CommentTable(
            comment=comment,
            userid=userid,
            username=username,
            blogid=blog_id,
            parentid=parentid,
        )
        self.session.add(row)
        await self.session.flush()
        await self.session.refresh(row)
        return {column.key: getattr(row, column.key) for column in COMMENT_COLUMNS}

    async def delete_comment(self, comment_id: int) -> bool:
        stmt = delete(CommentTable).where(CommentTable.id == comment_id)
        result = await self.session.execute(stmt)
        return bool(result.rowcount)
