"""Persistence layer for techpress.

This module provides:
- Async engine and session factory (PostgreSQL via asyncpg, SQLite for tests)
- SQLAlchemy ORM models for blogs, comments, saved blogs and authors
- Repositories returning JSON-ready rows for the cache-aside read path
"""

from techpress.persistence.db import get_engine, get_session, init_db
from techpress.persistence.repositories import BlogRepository, CommentRepository
from techpress.persistence.tables import BlogTable, CommentTable, SavedBlogTable, UserTable

__all__ = [
    # DB
    "get_engine",
    "get_session",
    "init_db",
    # Tables
    "BlogTable",
    "CommentTable",
    "SavedBlogTable",
    "UserTable",
    # Repositories
    "BlogRepository",
    "CommentRepository",
]
