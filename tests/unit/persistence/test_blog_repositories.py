"""Tests for blog and comment repositories on SQLite."""

from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from techpress.persistence.repositories import BlogRepository, CommentRepository


@pytest.fixture
async def session(session_factory: async_sessionmaker[AsyncSession]):
    async with session_factory() as session:
        yield session


class TestBlogRepository:
    """Tests for BlogRepository."""

    async def test_list_blogs_includes_author(self, session: AsyncSession, seed) -> None:
        await seed(1, author="u1", author_name="Ada")

        [blog] = await BlogRepository(session).list_blogs()

        assert blog["id"] == 1
        assert blog["author_name"] == "Ada"
        assert blog["author_image"] is None

    async def test_missing_author_is_null(self, session: AsyncSession, seed) -> None:
        await seed(1, author="ghost", author_name=None)

        [blog] = await BlogRepository(session).list_blogs()

        assert blog["author_name"] is None

    async def test_list_blogs_newest_first(self, session: AsyncSession, seed) -> None:
        await seed(1)
        await seed(2)

        ids = [b["id"] for b in await BlogRepository(session).list_blogs()]

        assert ids == [2, 1]

    async def test_search_matches_title_or_description(
        self, session: AsyncSession, seed
    ) -> None:
        await seed(1, title="Async Rust", description="futures")
        await seed(2, title="Gardening", description="Rust on tools")
        await seed(3, title="Cooking", description="pasta")

        ids = {b["id"] for b in await BlogRepository(session).list_blogs(search="rust")}

        assert ids == {1, 2}

    async def test_category_filter(self, session: AsyncSession, seed) -> None:
        await seed(1, category="tech")
        await seed(2, category="food")

        blogs = await BlogRepository(session).list_blogs(category="food")

        assert [b["id"] for b in blogs] == [2]

    async def test_get_blog(self, session: AsyncSession, seed) -> None:
        await seed(42, title="Hello")
        repo = BlogRepository(session)

        blog = await repo.get_blog(42)
        assert blog is not None
        assert blog["title"] == "Hello"
        assert await repo.get_blog(404) is None
        assert await repo.exists(42) is True
        assert await repo.exists(404) is False

    async def test_search_wildcards_match_literally(
        self, session: AsyncSession, seed
    ) -> None:
        """% and _ typed by a reader are plain characters, not LIKE wildcards."""
        await seed(1, title="Rust tips", description="borrowing")
        await seed(2, title="Discount 50% off", description="sale")
        await seed(3, title="snake_case names", description="style")
        repo = BlogRepository(session)

        assert [b["id"] for b in await repo.list_blogs(search="_")] == [3]
        assert [b["id"] for b in await repo.list_blogs(search="50%")] == [2]
        assert await repo.list_blogs(search="5%f") == []
        assert await repo.list_blogs(search="\\") == []

    async def test_save_and_list_saved(self, session: AsyncSession, seed) -> None:
        await seed(1)
        await seed(2)
        repo = BlogRepository(session)

        assert await repo.is_saved("u9", 1) is False
        await repo.save_blog("u9", 1)
        await session.commit()

        assert await repo.is_saved("u9", 1) is True
        assert [b["id"] for b in await repo.list_saved("u9")] == [1]
        assert await repo.list_saved("someone-else") == []


class TestCommentRepository:
    """Tests for CommentRepository."""

    async def test_add_and_list(self, session: AsyncSession, seed) -> None:
        await seed(42)
        repo = CommentRepository(session)

        first = await repo.add_comment(42, "First", userid="u1", username="Ada")
        second = await repo.add_comment(42, "Reply", userid="u2", username="Bob", parentid=first["id"])
        await session.commit()

        comments = await repo.list_comments(42)
        assert [c["id"] for c in comments] == [second["id"], first["id"]]
        assert comments[0]["parentid"] == first["id"]
        assert first["create_at"] is not None

    async def test_list_for_blog_without_comments(self, session: AsyncSession) -> None:
        assert await CommentRepository(session).list_comments(7) == []

    async def test_get_and_delete(self, session: AsyncSession, seed) -> None:
        await seed(42)
        repo = CommentRepository(session)
        comment = await repo.add_comment(42, "Bye", userid="u1", username="Ada")
        await session.commit()

        fetched = await repo.get_comment(comment["id"])
        assert fetched is not None
        assert fetched["blogid"] == 42

        assert await repo.delete_comment(comment["id"]) is True
        await session.commit()
        assert await repo.get_comment(comment["id"]) is None
        assert await repo.delete_comment(comment["id"]) is False
