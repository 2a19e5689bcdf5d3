"""
NoteCottage - a multi-user markdown note-taking core.

Notes live in hierarchical, privacy-scoped folders, are tagged through inline
hashtags, searchable through an SQLite FTS5 index and cross-referenced with
wiki-style links. This package implements the organization and consistency
layer; HTTP routing, authentication and rendering live elsewhere.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("notecottage")
except PackageNotFoundError:
    __version__ = "1.0.0"
