"""Tests for preview worker callbacks and batch preview URLs."""

from uuid import uuid4

import pytest

from server.apps.drive.exceptions import InvalidQueryError, NotFoundError
from server.apps.drive.models import PreviewStatus


@pytest.mark.django_db
def test_update_preview_marks_ready(lifecycle, make_active_file):
    """Test a finished preview is recorded."""
    file_obj = make_active_file(10, preview_status=PreviewStatus.PROCESSING)

    updated = lifecycle.update_preview(file_obj.pk, 'previews/p.jpg')

    updated.refresh_from_db()
    assert updated.has_preview
    assert updated.preview_status == PreviewStatus.READY
    assert updated.preview_key == 'previews/p.jpg'


@pytest.mark.django_db
def test_update_preview_is_last_write_wins(lifecycle, make_active_file):
    """Test repeated callbacks overwrite each other."""
    file_obj = make_active_file(10)

    lifecycle.update_preview(file_obj.pk, 'previews/first.jpg')
    lifecycle.update_preview(file_obj.pk, 'previews/second.jpg')

    file_obj.refresh_from_db()
    assert file_obj.preview_key == 'previews/second.jpg'


@pytest.mark.django_db
def test_update_preview_ready_needs_key(lifecycle, make_active_file):
    """Test a ready preview without a key is refused."""
    file_obj = make_active_file(10)

    with pytest.raises(InvalidQueryError):
        lifecycle.update_preview(file_obj.pk, None)


@pytest.mark.django_db
def test_update_preview_unknown_status(lifecycle, make_active_file):
    """Test arbitrary statuses are refused."""
    file_obj = make_active_file(10)

    with pytest.raises(InvalidQueryError):
        lifecycle.update_preview(file_obj.pk, 'previews/p.jpg', 'done')


@pytest.mark.django_db
@pytest.mark.parametrize('file_id', [uuid4(), 'not-a-uuid'])
def test_update_preview_unknown_file(lifecycle, file_id):
    """Test callbacks for unknown files fail."""
    with pytest.raises(NotFoundError):
        lifecycle.update_preview(file_id, 'previews/p.jpg')


@pytest.mark.django_db
def test_mark_preview_failed(lifecycle, make_active_file):
    """Test a failed preview clears the preview flag."""
    file_obj = make_active_file(
        10,
        has_preview=True,
        preview_status=PreviewStatus.READY,
        preview_key='previews/p.jpg',
    )

    updated = lifecycle.mark_preview_failed(file_obj.pk, 'decoder crashed')

    updated.refresh_from_db()
    assert updated.preview_status == PreviewStatus.FAILED
    assert not updated.has_preview


@pytest.mark.django_db
def test_get_batch_previews(user, lifecycle, make_active_file):
    """Test only ready previews of the user's active files are signed."""
    ready = make_active_file(
        10,
        name='ready',
        has_preview=True,
        preview_status=PreviewStatus.READY,
        preview_key='previews/ready.jpg',
    )
    processing = make_active_file(
        10,
        name='processing',
        preview_status=PreviewStatus.PROCESSING,
    )

    previews = lifecycle.get_batch_previews(user, [ready.pk, processing.pk])

    assert list(previews) == [str(ready.pk)]
    assert 'previews/ready.jpg' in previews[str(ready.pk)]


@pytest.mark.django_db
def test_get_batch_previews_other_user(other_user, lifecycle, make_active_file):
    """Test previews of another user's files are not signed."""
    ready = make_active_file(
        10,
        has_preview=True,
        preview_status=PreviewStatus.READY,
        preview_key='previews/ready.jpg',
    )

    assert lifecycle.get_batch_previews(other_user, [ready.pk]) == {}
