"""Pydantic schemas for media uploads.

Uploads are limited to the MIME types in ``uploads.allowed_mime_types``;
each maps onto the media kind carried by sendMedia events.
"""
from typing import Optional

from pydantic import BaseModel, Field

from zerolink.store.schemas import MediaKind


class UploadResponse(BaseModel):
    """Response after a successful upload (POST /api/upload)."""
    fileUrl: str = Field(..., description="Public URL of the stored blob")


def get_media_kind(mime_type: str) -> Optional[MediaKind]:
    """Map a MIME type onto a media kind.

    Examples:
        >>> get_media_kind("image/png")
        <MediaKind.IMAGE: 'image'>
        >>> get_media_kind("video/webm")
        <MediaKind.VIDEO: 'video'>
        >>> get_media_kind("application/pdf") is None
        True
    """
    major = mime_type.split("/", 1)[0]
    if major == "image":
        return MediaKind.IMAGE
    if major == "video":
        return MediaKind.VIDEO
    return None
