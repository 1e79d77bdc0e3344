"""Cache key schema for techpress.

Key format: {resource}:{selector}[:{selector}...]

Where:
- resource: "blog" (detail), "blogs" (list), "comments" (comment list)
- selector: identifier or filter term, percent-encoded so that ':' and glob
  metacharacters inside user input never change the key structure

Keys carry no deployment prefix: they are a contract between independently
deployed services, which publish invalidation patterns such as "blogs:*".

Examples:
    blog:42
    comments:42
    blogs::               (no search, no category)
    blogs:rust%20async:tech
"""

from __future__ import annotations

from typing import Literal
from urllib.parse import quote

ResourceType = Literal["blog", "blogs", "comments"]

# Characters with special meaning in Redis SCAN MATCH / KEYS patterns
GLOB_CHARS = frozenset("*?[")


def _selector(value: object) -> str:
    """Encode a selector component; empty and None collapse to ''."""
    if value is None:
        return ""
    return quote(str(value).strip(), safe="")


class CacheKeys:
    """Cache key generator shared by the read path and the invalidation path."""

    BLOG = "blog"
    BLOGS = "blogs"
    COMMENTS = "comments"

    @classmethod
    def blog(cls, blog_id: int | str) -> str:
        """Key for a single blog with author info."""
        return f"{cls.BLOG}:{_selector(blog_id)}"

    @classmethod
    def comments(cls, blog_id: int | str) -> str:
        """Key for the comment list of a blog."""
        return f"{cls.COMMENTS}:{_selector(blog_id)}"

    @classmethod
    def blog_list(cls, search: str | None = "", category: str | None = "") -> str:
        """Key for a filtered blog list.

        Every filter affecting the query result is part of the key, in a fixed
        order, so equal queries share one slot and different ones never do.
        """
        return f"{cls.BLOGS}:{_selector(search)}:{_selector(category)}"

    @classmethod
    def default_blog_list(cls) -> str:
        """Key for the unfiltered blog list, the one rebuilt after invalidation."""
        return cls.blog_list("", "")

    @classmethod
    def all_blog_lists(cls) -> str:
        """Pattern matching every cached blog list."""
        return f"{cls.BLOGS}:*:*"

    @classmethod
    def blog_related(cls, blog_id: int | str) -> list[str]:
        """Every key that can hold data derived from one blog's comments."""
        return [cls.blog(blog_id), cls.comments(blog_id)]


def is_pattern(key: str) -> bool:
    """True if the key contains glob metacharacters and needs enumeration."""
    return any(ch in GLOB_CHARS for ch in key)
