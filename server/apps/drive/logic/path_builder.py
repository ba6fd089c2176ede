"""Materialized path and name rules for the folder hierarchy.

Pure functions, no database access. A folder path is "/" for the root
and "/" joined segment names below it: "/Docs/Work".
"""

import re
from collections.abc import Iterable
from typing import Final

from server.apps.drive.exceptions import (
    InvalidNameError,
    InvalidTagsError,
    PathTooLongError,
)

ROOT_PATH: Final = '/'
MAX_NAME_LENGTH: Final = 255
MAX_PATH_LENGTH: Final = 1024
MAX_DEPTH: Final = 20
MAX_TAGS: Final = 10

_SEPARATOR: Final = '/'

# Characters no folder name may contain (control chars included)
_FORBIDDEN_CHARS: Final = re.compile(r'[<>:"|?*\x00-\x1f/\\]')

# File names only need to stay a single path segment
_FORBIDDEN_FILE_CHARS: Final = re.compile(r'[\x00-\x1f/\\]')

# Windows device names, compared case-insensitively
_RESERVED_NAMES: Final = frozenset((
    'con', 'prn', 'aux', 'nul',
    *(f'com{index}' for index in range(1, 10)),
    *(f'lpt{index}' for index in range(1, 10)),
))


def validate_name(raw: str | None) -> str:
    """Validate and normalize a folder name.

    Args:
        raw: Name as supplied by the caller.

    Returns:
        The trimmed name.

    Raises:
        InvalidNameError: If the name is empty, too long, contains a
            forbidden character or "..", starts or ends with a dot, or
            is a reserved device name.
    """
    if not raw or not isinstance(raw, str):
        raise InvalidNameError('Folder name is required')

    name = raw.strip()

    if not name:
        raise InvalidNameError('Folder name cannot be empty')

    if len(name) > MAX_NAME_LENGTH:
        raise InvalidNameError(
            f'Folder name exceeds {MAX_NAME_LENGTH} characters',
        )

    if _FORBIDDEN_CHARS.search(name):
        raise InvalidNameError(
            'Folder name contains invalid characters (< > : " | ? * / \\)',
        )

    if '..' in name:
        raise InvalidNameError("Folder name cannot contain '..'")

    if name.lower() in _RESERVED_NAMES:
        raise InvalidNameError('Folder name is reserved by the system')

    if name.startswith('.') or name.endswith('.'):
        raise InvalidNameError('Folder name cannot start or end with a dot')

    return name


def clean_file_name(raw: str | None) -> str:
    """Validate and normalize a file name.

    File names are looser than folder names: they only have to be a
    non-empty single path segment of bounded length.

    Args:
        raw: File name as supplied by the caller.

    Returns:
        The trimmed name.

    Raises:
        InvalidNameError: If the name is empty, too long or contains a
            path separator or control character.
    """
    name = (raw or '').strip()

    if not name:
        raise InvalidNameError('File name cannot be empty')

    if len(name) > MAX_NAME_LENGTH:
        raise InvalidNameError(
            f'File name exceeds {MAX_NAME_LENGTH} characters',
        )

    if _FORBIDDEN_FILE_CHARS.search(name):
        raise InvalidNameError(
            'File name cannot contain / \\ or control characters',
        )

    return name


def child_path(parent_path: str, name: str) -> str:
    """Build the path of a child folder.

    Args:
        parent_path: Path of the parent folder.
        name: Validated child name.

    Returns:
        "/name" below the root, "parent/name" elsewhere.

    Raises:
        PathTooLongError: If the result exceeds MAX_PATH_LENGTH.
    """
    if parent_path == ROOT_PATH:
        path = f'{ROOT_PATH}{name}'
    else:
        path = f'{parent_path}{_SEPARATOR}{name}'

    if len(path) > MAX_PATH_LENGTH:
        raise PathTooLongError(
            f'Folder path exceeds maximum length ({MAX_PATH_LENGTH} characters)',
        )
    return path


def depth_of(path: str) -> int:
    """Count the non-empty segments of a path (0 for the root)."""
    return len(_segments(path))


def ancestor_paths(path: str) -> list[str]:
    """List the paths of every ancestor, root first.

    Example: '/a/b/c' -> ['/', '/a', '/a/b']

    Args:
        path: Folder path.

    Returns:
        Ancestor paths ordered root to parent; empty for the root.
    """
    segments = _segments(path)
    if not segments:
        return []

    ancestors = [ROOT_PATH]
    for index in range(1, len(segments)):
        ancestors.append(ROOT_PATH + _SEPARATOR.join(segments[:index]))
    return ancestors


def descendant_prefix(path: str) -> str:
    """Prefix shared by the paths of every descendant of ``path``."""
    if path == ROOT_PATH:
        return ROOT_PATH
    return f'{path}{_SEPARATOR}'


def is_same_or_descendant(path: str, ancestor: str) -> bool:
    """Check whether ``path`` equals ``ancestor`` or lies below it."""
    return path == ancestor or path.startswith(descendant_prefix(ancestor))


def replace_prefix(path: str, old_prefix: str, new_prefix: str) -> str:
    """Swap the leading ``old_prefix`` of ``path`` for ``new_prefix``.

    Only the leading occurrence is rewritten; a segment that happens to
    repeat the old prefix deeper in the path is left alone.

    Raises:
        ValueError: If ``path`` is not ``old_prefix`` or below it.
    """
    if not is_same_or_descendant(path, old_prefix):
        raise ValueError(f'{path!r} is not below {old_prefix!r}')
    return new_prefix + path[len(old_prefix):]


def normalize_tags(tags: Iterable[str] | None) -> list[str]:
    """Trim and lower-case tags, keeping order and duplicates.

    Args:
        tags: Raw tags or None.

    Returns:
        Normalized tag list.

    Raises:
        InvalidTagsError: If a bare string or more than MAX_TAGS tags
            are given.
    """
    if tags is None:
        return []
    if isinstance(tags, str):
        raise InvalidTagsError('Tags must be a list')

    normalized = [str(tag).strip().lower() for tag in tags]
    if len(normalized) > MAX_TAGS:
        raise InvalidTagsError(f'Maximum {MAX_TAGS} tags allowed')
    return normalized


def _segments(path: str) -> list[str]:
    return [segment for segment in path.split(_SEPARATOR) if segment]
