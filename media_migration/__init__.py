"""Batched, resumable photo migration from Google Drive into object storage."""

__version__ = "0.1.0"
