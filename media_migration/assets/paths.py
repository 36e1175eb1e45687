"""Destination path construction for migrated photos."""

from __future__ import annotations

import uuid


def extension_for(mime_type: str | None) -> str:
    if isinstance(mime_type, str) and "png" in mime_type.lower():
        return "png"
    return "jpg"


def content_type_for(mime_type: str | None) -> str:
    if isinstance(mime_type, str) and mime_type.strip():
        return mime_type.strip()
    return "image/jpeg"


def destination_path(
    parent_type: str,
    unit_id: uuid.UUID | str,
    media_id: uuid.UUID | str,
    mime_type: str | None,
) -> str:
    """`<parent_type>/<unit_id>/photos/hd/<media_id>.<ext>`"""
    parent = (parent_type or "").strip().strip("/")
    return f"{parent}/{unit_id}/photos/hd/{media_id}.{extension_for(mime_type)}"
