"""S3-compatible blob store for user files.

Clients upload and download directly against the bucket with presigned
URLs; the server only signs URLs and reads object metadata.
"""

import logging
from dataclasses import dataclass
from typing import Any, Final, final

from botocore.exceptions import ClientError
from storages.backends.s3 import S3Storage

logger = logging.getLogger(__name__)

# Error codes S3 and MinIO answer HEAD with for a missing key
_MISSING_CODES: Final = frozenset(('404', 'NoSuchKey', 'NotFound'))


@dataclass(frozen=True, slots=True)
class ObjectHead:
    """Metadata of a stored object."""

    content_length: int
    content_type: str
    metadata: dict[str, str]


@final
class BlobStore(S3Storage):
    """S3 storage backend for user files.

    Extends django-storages S3Storage with:
    - Presigned PUT URLs carrying content type and user metadata
    - HEAD lookups that report a missing object as None
    - Presigned GET URLs with a caller-chosen lifetime
    """

    def get_upload_url(
        self,
        key: str,
        content_type: str,
        metadata: dict[str, str],
        ttl: int,
    ) -> str:
        """Sign a PUT URL for a direct client upload.

        The content type and metadata are part of the signature, so the
        client has to send exactly these headers.

        Args:
            key: Object key to upload to.
            content_type: Declared MIME type.
            metadata: User metadata stored with the object.
            ttl: URL lifetime in seconds.

        Returns:
            Presigned URL.
        """
        client = self.connection.meta.client
        url = client.generate_presigned_url(
            'put_object',
            Params={
                'Bucket': self.bucket_name,
                'Key': key,
                'ContentType': content_type,
                'Metadata': metadata,
            },
            ExpiresIn=ttl,
        )
        logger.debug('Signed upload URL for %s (ttl %ds)', key, ttl)
        return url

    def head_object(self, key: str) -> ObjectHead | None:
        """Read the metadata of a stored object.

        Args:
            key: Object key.

        Returns:
            ObjectHead, or None if no object exists under the key.

        Raises:
            ClientError: For failures other than a missing object.
        """
        client = self.connection.meta.client
        try:
            response: dict[str, Any] = client.head_object(
                Bucket=self.bucket_name,
                Key=key,
            )
        except ClientError as error:
            code = str(error.response.get('Error', {}).get('Code', ''))
            if code in _MISSING_CODES:
                logger.info('Object not found in storage: %s', key)
                return None
            logger.exception('Failed to read object metadata: %s', key)
            raise

        return ObjectHead(
            content_length=int(response.get('ContentLength', 0)),
            content_type=response.get('ContentType', ''),
            metadata=response.get('Metadata', {}),
        )

    def get_download_url(self, key: str, ttl: int) -> str:
        """Sign a GET URL for a stored object.

        Args:
            key: Object key.
            ttl: URL lifetime in seconds.

        Returns:
            Presigned URL.
        """
        return self.url(key, expire=ttl)
