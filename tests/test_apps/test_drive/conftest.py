"""Shared fixtures for drive app tests."""

from uuid import uuid4

import boto3
import pytest
from django.contrib.auth import get_user_model
from moto import mock_aws

from server.apps.drive.infrastructure.blob_store import BlobStore
from server.apps.drive.logic.file_lifecycle import FileLifecycle
from server.apps.drive.logic.folder_tree import FolderTree
from server.apps.drive.logic.quota_ledger import QuotaLedger
from server.apps.drive.models import File, FileStatus, UserQuota

User = get_user_model()

BUCKET = 'drive'
MAX_UPLOAD_BYTES = 50 * 1024 * 1024


@pytest.fixture
def user(db):
    """Create test user.

    Returns:
        User instance for testing.
    """
    return User.objects.create_user(
        username='testuser',
        password='testpass123',
        email='test@example.com',
    )


@pytest.fixture
def other_user(db):
    """Create second test user for isolation tests.

    Returns:
        Second user instance.
    """
    return User.objects.create_user(
        username='otheruser',
        password='testpass123',
        email='other@example.com',
    )


@pytest.fixture
def mock_s3():
    """Mock S3 service with the drive bucket.

    Yields:
        boto3 S3 resource with the drive bucket created.
    """
    with mock_aws():
        conn = boto3.resource('s3', region_name='us-east-1')
        conn.create_bucket(Bucket=BUCKET)
        yield conn


@pytest.fixture
def blob_store(mock_s3):
    """Blob store bound to the mocked bucket."""
    return BlobStore(
        bucket_name=BUCKET,
        access_key='testing',
        secret_key='testing',
        region_name='us-east-1',
    )


@pytest.fixture
def ledger():
    """Quota ledger with a 1000 byte default limit."""
    return QuotaLedger(default_limit=1000)


@pytest.fixture
def tree(ledger):
    """Folder tree sharing the test ledger."""
    return FolderTree(ledger)


@pytest.fixture
def lifecycle(blob_store, ledger, tree):
    """File lifecycle wired to the mocked bucket."""
    return FileLifecycle(
        blob_store=blob_store,
        ledger=ledger,
        folder_tree=tree,
        max_upload_bytes=MAX_UPLOAD_BYTES,
        upload_url_ttl=300,
        download_url_ttl=3600,
    )


@pytest.fixture
def root(user, tree):
    """Root folder of the test user."""
    return tree.ensure_root(user)


@pytest.fixture
def put_object(mock_s3):
    """Store an object in the mocked bucket the way a client would.

    Returns:
        Function taking (key, size, content_type, owner_id).
    """
    def _put(key, size, content_type='image/png', owner_id=None):
        metadata = {} if owner_id is None else {'ownerid': str(owner_id)}
        mock_s3.Object(BUCKET, key).put(
            Body=b'x' * size,
            ContentType=content_type,
            Metadata=metadata,
        )
    return _put


@pytest.fixture
def make_active_file(user, root):
    """Create active files directly, charging their size to the quota.

    Returns:
        Function taking (size, name, parent, **fields) returning a File.
    """
    def _make(size, name='file.bin', parent=None, **fields):
        file_obj = File.objects.create(
            owner=user,
            parent=parent or root,
            name=name,
            size=size,
            mime_type=fields.pop('mime_type', 'application/octet-stream'),
            status=FileStatus.ACTIVE,
            s3_key=f'users/{user.pk}/files/{uuid4()}/original',
            **fields,
        )
        UserQuota.objects.update_or_create(
            user=user,
            defaults={'storage_limit': 1000},
        )
        UserQuota.objects.filter(user=user).update(
            storage_used=sum(
                File.objects.filter(
                    owner=user,
                    status=FileStatus.ACTIVE,
                ).values_list('size', flat=True),
            ),
        )
        return file_obj
    return _make
