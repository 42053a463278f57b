"""Data access helpers."""

from .common import insert_ignore
from .post_repo import PostRepository

__all__ = ["PostRepository", "insert_ignore"]
