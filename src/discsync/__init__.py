"""Discogs collection to records-store sync."""

__version__ = "0.1.0"
