"""Incremental Git LFS image resolver and derivative dispatcher."""

__version__ = "0.1.0"
