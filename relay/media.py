from __future__ import annotations

from pathlib import PurePath
from typing import Dict, Literal, Optional


AttachmentKind = Literal["image", "audio", "video", "text"]

MIME_TYPES: Dict[str, str] = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".ogg": "audio/ogg",
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".m4a": "audio/mp4",
    ".mp4": "video/mp4",
    ".mov": "video/quicktime",
    ".webm": "video/webm",
}

VIDEO_EXTENSIONS = frozenset({".mp4", ".mov", ".webm"})


def file_extension(filename: str) -> str:
    return PurePath(filename or "").suffix.lower()


def resolve_mime_type(filename: str) -> Optional[str]:
    """Return the media MIME type for ``filename``, or None when it is treated as text."""
    return MIME_TYPES.get(file_extension(filename))


def attachment_kind(filename: str) -> AttachmentKind:
    mime_type = resolve_mime_type(filename)
    if mime_type is None:
        return "text"
    return mime_type.split("/", 1)[0]  # type: ignore[return-value]


def is_video(filename: str) -> bool:
    return file_extension(filename) in VIDEO_EXTENSIONS
