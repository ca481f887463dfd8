"""Persistence layer: the bookmark file format, its migrations and raw JSON I/O."""

from ._base import JsonStore
from .codec import (
    CURRENT_FORMAT_VERSION,
    MIGRATIONS,
    BookmarkCodec,
    generate_bookmark_id,
    is_valid_bookmark,
    migrate_v1_to_v2,
)

__all__ = [
    "BookmarkCodec",
    "CURRENT_FORMAT_VERSION",
    "JsonStore",
    "MIGRATIONS",
    "generate_bookmark_id",
    "is_valid_bookmark",
    "migrate_v1_to_v2",
]
