"""Tests for the S3 blob store backend."""

from urllib.parse import parse_qs, urlparse

import pytest
from botocore.exceptions import ClientError


def test_head_object_reads_metadata(blob_store, mock_s3):
    """Test size, content type and user metadata are returned."""
    mock_s3.Object('drive', 'users/1/files/a/original').put(
        Body=b'hello',
        ContentType='text/plain',
        Metadata={'ownerid': '1', 'fileid': 'a'},
    )

    head = blob_store.head_object('users/1/files/a/original')

    assert head is not None
    assert head.content_length == 5
    assert head.content_type == 'text/plain'
    assert head.metadata == {'ownerid': '1', 'fileid': 'a'}


def test_head_object_missing_key(blob_store):
    """Test a missing object is reported as None."""
    assert blob_store.head_object('users/1/files/missing/original') is None


def test_head_object_propagates_other_errors(blob_store, monkeypatch):
    """Test errors other than a missing key are raised."""
    client = blob_store.connection.meta.client

    def denied(**kwargs):
        raise ClientError({'Error': {'Code': '403'}}, 'HeadObject')

    monkeypatch.setattr(client, 'head_object', denied)

    with pytest.raises(ClientError):
        blob_store.head_object('key')


def test_get_upload_url_signs_put(blob_store):
    """Test the upload URL targets the key and carries a signature."""
    url = blob_store.get_upload_url(
        'users/1/files/a/original',
        'image/png',
        {'ownerid': '1'},
        300,
    )

    parsed = urlparse(url)
    query = parse_qs(parsed.query)
    assert parsed.path.endswith('users/1/files/a/original')
    assert any('Signature' in param for param in query)


def test_get_download_url(blob_store):
    """Test the download URL targets the key."""
    url = blob_store.get_download_url('users/1/files/a/original', 3600)

    assert 'users/1/files/a/original' in url
    assert '?' in url
