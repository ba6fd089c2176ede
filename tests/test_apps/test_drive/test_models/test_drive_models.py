"""Tests for drive models and their database constraints."""

import pytest
from django.db import IntegrityError

from server.apps.drive.models import (
    File,
    FileStatus,
    Folder,
    PreviewStatus,
    UserQuota,
)


def _folder(user, parent, name, path, depth=1, **fields):
    return Folder.objects.create(
        owner=user,
        parent=parent,
        name=name,
        path=path,
        depth=depth,
        **fields,
    )


@pytest.mark.django_db
def test_live_manager_hides_deleted(user, root):
    """Test objects only returns live rows, all_objects returns both."""
    live = _folder(user, root, 'Live', '/Live')
    gone = _folder(user, root, 'Gone', '/Gone', is_deleted=True)

    assert set(Folder.objects.values_list('pk', flat=True)) == {
        root.pk,
        live.pk,
    }
    assert Folder.all_objects.deleted().get() == gone
    assert Folder.all_objects.count() == 3


@pytest.mark.django_db
def test_unique_live_name_ignores_case(user, root):
    """Test the database refuses case-insensitive live duplicates."""
    _folder(user, root, 'Docs', '/Docs')

    with pytest.raises(IntegrityError):
        _folder(user, root, 'DOCS', '/DOCS')


@pytest.mark.django_db
def test_deleted_names_can_be_reused(user, root):
    """Test the uniqueness only covers live folders."""
    _folder(user, root, 'Docs', '/Docs', is_deleted=True)

    reused = _folder(user, root, 'Docs', '/Docs')

    assert reused.pk is not None


@pytest.mark.django_db
def test_single_live_root(user, root):
    """Test a user cannot have two live roots."""
    with pytest.raises(IntegrityError):
        _folder(user, None, 'Home', '/', depth=0)


@pytest.mark.django_db
def test_depth_ceiling(user, root):
    """Test depths over 20 are refused."""
    with pytest.raises(IntegrityError):
        _folder(user, root, 'Deep', '/Deep', depth=21)


@pytest.mark.django_db
def test_folder_str(user, root):
    """Test folder string representation."""
    assert str(root) == 'testuser:/'


@pytest.mark.django_db
def test_file_defaults_and_helpers(user, root):
    """Test a new file is pending and reclaims nothing."""
    file_obj = File.objects.create(
        owner=user,
        parent=root,
        name='Report.PDF',
        size=100,
        mime_type='application/pdf',
        s3_key='users/1/files/x/original',
    )

    assert file_obj.status == FileStatus.PENDING
    assert file_obj.preview_status == PreviewStatus.NONE
    assert file_obj.tags == []
    assert not file_obj.is_active
    assert file_obj.reclaimable_size == 0
    assert file_obj.get_extension() == 'pdf'
    assert str(file_obj) == 'testuser:Report.PDF'


@pytest.mark.django_db
def test_reclaimable_size_of_active_file(user, root):
    """Test only active live files count toward usage."""
    file_obj = File(
        owner=user,
        parent=root,
        size=100,
        status=FileStatus.ACTIVE,
    )

    assert file_obj.reclaimable_size == 100
    file_obj.is_deleted = True
    assert file_obj.reclaimable_size == 0


@pytest.mark.django_db
def test_s3_key_is_unique(user, root):
    """Test two files cannot share a storage key."""
    File.objects.create(
        owner=user,
        parent=root,
        name='a',
        size=1,
        mime_type='text/plain',
        s3_key='users/1/files/same/original',
    )

    with pytest.raises(IntegrityError):
        File.objects.create(
            owner=user,
            parent=root,
            name='b',
            size=1,
            mime_type='text/plain',
            s3_key='users/1/files/same/original',
        )


@pytest.mark.django_db
def test_has_preview_requires_ready_key(user, root):
    """Test has_preview needs a ready status and a key."""
    with pytest.raises(IntegrityError):
        File.objects.create(
            owner=user,
            parent=root,
            name='a',
            size=1,
            mime_type='image/png',
            s3_key='users/1/files/p/original',
            has_preview=True,
            preview_status=PreviewStatus.PROCESSING,
        )


@pytest.mark.django_db
def test_user_quota_helpers(user):
    """Test space checks and percentages."""
    quota = UserQuota.objects.create(
        user=user,
        storage_limit=1000,
        storage_used=250,
    )

    assert quota.has_space_for(750)
    assert not quota.has_space_for(751)
    assert quota.available_bytes() == 750
    assert quota.percentage_used() == 25
    assert str(quota) == 'testuser: 250/1000'


@pytest.mark.django_db
def test_user_quota_default_limit(user):
    """Test the default limit is 100 MiB."""
    quota = UserQuota.objects.create(user=user)

    assert quota.storage_limit == 100 * 1024 * 1024
    assert quota.storage_used == 0


@pytest.mark.django_db
def test_user_quota_never_negative(user):
    """Test the database refuses negative usage."""
    UserQuota.objects.create(user=user)

    with pytest.raises(IntegrityError):
        UserQuota.objects.filter(user=user).update(storage_used=-1)
