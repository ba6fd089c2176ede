"""Tests for storage key and content type helpers."""

from uuid import UUID

import pytest

from server.apps.drive.infrastructure.metadata import (
    build_storage_key,
    is_preview_supported,
)


@pytest.mark.parametrize(('mime_type', 'expected'), [
    ('image/jpeg', True),
    ('IMAGE/PNG', True),
    ('video/mp4', True),
    ('application/pdf', True),
    ('text/plain', False),
    ('application/zip', False),
])
def test_is_preview_supported(mime_type, expected):
    """Test previews are offered for images, videos and PDFs."""
    assert is_preview_supported(mime_type) is expected


def test_build_storage_key():
    """Test the key depends on owner and file only."""
    file_id = UUID('12345678-1234-5678-1234-567812345678')

    key = build_storage_key(42, file_id)

    assert key == 'users/42/files/12345678-1234-5678-1234-567812345678/original'

