"""haunt: line bookmarks with notes, persisted per repository and branch."""

__version__ = "0.5.0"
