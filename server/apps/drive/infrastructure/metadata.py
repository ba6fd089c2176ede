"""Storage key and content type helpers for files."""

from typing import Final
from uuid import UUID

# Content types a preview worker knows how to render
_PREVIEW_MIME_TYPES: Final = frozenset((
    'image/jpeg',
    'image/png',
    'image/gif',
    'image/webp',
    'image/heic',
    'image/heif',
    'video/mp4',
    'video/quicktime',
    'video/x-msvideo',
    'video/webm',
    'application/pdf',
))


def is_preview_supported(mime_type: str) -> bool:
    """Check whether a preview can be generated for a content type.

    Args:
        mime_type: Declared MIME type (e.g., 'image/png').

    Returns:
        True for the supported image, video and PDF types.
    """
    return mime_type.lower() in _PREVIEW_MIME_TYPES


def build_storage_key(owner_id: int | str, file_id: UUID | str) -> str:
    """Build the blob key of a file's original content.

    The key depends on owner and file ID only, so renaming or moving
    a file never touches the blob store.

    Args:
        owner_id: Owner's user ID.
        file_id: File ID.

    Returns:
        Key like 'users/42/files/<uuid>/original'.
    """
    return f'users/{owner_id}/files/{file_id}/original'

