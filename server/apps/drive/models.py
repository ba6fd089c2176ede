"""Database models for drive app."""

import uuid
from typing import Final, final, override

from django.contrib.auth import get_user_model
from django.db import models
from django.db.models.functions import Lower

User = get_user_model()

# Constants for field max lengths
_NAME_MAX_LENGTH: Final = 255
_PATH_MAX_LENGTH: Final = 1024
_MIME_TYPE_MAX_LENGTH: Final = 255
_KEY_MAX_LENGTH: Final = 1024
_STATUS_MAX_LENGTH: Final = 16

# Hierarchy ceiling, mirrored by logic.path_builder.MAX_DEPTH
_MAX_DEPTH: Final = 20

# Default quota: 100 MiB in bytes
_DEFAULT_QUOTA_BYTES: Final = 100 * 1024 * 1024


class LiveQuerySet(models.QuerySet):
    """QuerySet helpers for soft-deletable models."""

    def live(self) -> 'LiveQuerySet':
        """Rows that are not soft deleted."""
        return self.filter(is_deleted=False)

    def deleted(self) -> 'LiveQuerySet':
        """Rows that are soft deleted."""
        return self.filter(is_deleted=True)


class LiveManager(models.Manager):
    """Manager hiding soft-deleted rows."""

    @override
    def get_queryset(self) -> LiveQuerySet:
        """Return only rows with ``is_deleted=False``."""
        return LiveQuerySet(self.model, using=self._db).live()


@final
class Folder(models.Model):
    """Folder in a user's hierarchy.

    Folders keep a materialized ``path`` ("/" for the root, "/Docs/Work"
    below it) and a ``depth`` equal to the number of path segments, so
    subtree listing and ancestor checks are plain prefix queries.
    Folders are never hard deleted.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    owner = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='folders',
    )

    name = models.CharField(max_length=_NAME_MAX_LENGTH)

    # Null only for the root folder
    parent = models.ForeignKey(
        'self',
        on_delete=models.PROTECT,
        related_name='children',
        null=True,
        blank=True,
    )

    path = models.CharField(
        max_length=_PATH_MAX_LENGTH,
        help_text='Materialized path: / for root, /a/b below it',
    )

    depth = models.PositiveSmallIntegerField(default=0)

    folder_count = models.PositiveIntegerField(
        default=0,
        help_text='Number of live direct child folders',
    )

    is_deleted = models.BooleanField(default=False)
    deleted_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    modified_at = models.DateTimeField(auto_now=True)

    all_objects = LiveQuerySet.as_manager()
    objects = LiveManager()

    class Meta:
        """Model metadata."""

        verbose_name = 'Folder'  # type: ignore[mutable-override]
        verbose_name_plural = 'Folders'  # type: ignore[mutable-override]
        ordering = ['path']
        default_manager_name = 'all_objects'

        indexes = [
            # Listing the contents of a folder
            models.Index(
                fields=['owner', 'parent', 'is_deleted'],
                name='folders_listing_idx',
            ),
            # Ancestor and descendant prefix queries
            models.Index(
                fields=['owner', 'path'],
                name='folders_owner_path_idx',
            ),
        ]

        constraints = [
            models.UniqueConstraint(
                Lower('name'),
                'owner',
                'parent',
                condition=models.Q(is_deleted=False),
                name='folders_unique_live_name',
            ),
            models.UniqueConstraint(
                fields=['owner'],
                condition=models.Q(parent__isnull=True, is_deleted=False),
                name='folders_single_live_root',
            ),
            models.CheckConstraint(
                condition=models.Q(depth__lte=_MAX_DEPTH),
                name='folders_depth_ceiling',
            ),
        ]

    @override
    def __str__(self) -> str:
        """String representation."""
        return f'{self.owner.username}:{self.path}'

    @property
    def is_root(self) -> bool:
        """Whether this is the owner's root folder."""
        return self.parent_id is None


class FileStatus(models.TextChoices):
    """Upload lifecycle of a file."""

    PENDING = 'pending', 'Pending'
    ACTIVE = 'active', 'Active'
    # Declared for completeness; the confirmation path never assigns it
    FAILED = 'failed', 'Failed'


class PreviewStatus(models.TextChoices):
    """State of the externally generated preview image."""

    NONE = 'none', 'None'
    PROCESSING = 'processing', 'Processing'
    READY = 'ready', 'Ready'
    FAILED = 'failed', 'Failed'


@final
class File(models.Model):
    """File stored in S3-compatible storage.

    The database row is created ``pending`` when an upload is requested
    and becomes ``active`` once the blob store confirms the object. Its
    ``size`` counts toward the owner's quota only while it is active
    and not deleted.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    owner = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='files',
    )

    parent = models.ForeignKey(
        Folder,
        on_delete=models.PROTECT,
        related_name='files',
    )

    name = models.CharField(max_length=_NAME_MAX_LENGTH)

    size = models.BigIntegerField(help_text='File size in bytes')

    mime_type = models.CharField(max_length=_MIME_TYPE_MAX_LENGTH)

    status = models.CharField(
        max_length=_STATUS_MAX_LENGTH,
        choices=FileStatus.choices,
        default=FileStatus.PENDING,
    )

    # Lower-cased, trimmed, order preserving
    tags = models.JSONField(default=list, blank=True)

    description = models.TextField(blank=True, default='')

    is_deleted = models.BooleanField(default=False)
    deleted_at = models.DateTimeField(null=True, blank=True)

    s3_key = models.CharField(
        max_length=_KEY_MAX_LENGTH,
        unique=True,
        help_text='Key in storage: users/{owner}/files/{file}/original',
    )

    has_preview = models.BooleanField(default=False)
    preview_key = models.CharField(
        max_length=_KEY_MAX_LENGTH,
        null=True,
        blank=True,
    )
    preview_status = models.CharField(
        max_length=_STATUS_MAX_LENGTH,
        choices=PreviewStatus.choices,
        default=PreviewStatus.NONE,
    )

    created_at = models.DateTimeField(auto_now_add=True)
    modified_at = models.DateTimeField(auto_now=True)

    all_objects = LiveQuerySet.as_manager()
    objects = LiveManager()

    class Meta:
        """Model metadata."""

        verbose_name = 'File'  # type: ignore[mutable-override]
        verbose_name_plural = 'Files'  # type: ignore[mutable-override]
        ordering = ['-created_at']
        default_manager_name = 'all_objects'

        indexes = [
            # Optimize directory listing queries
            models.Index(
                fields=['owner', 'parent', 'is_deleted'],
                name='files_listing_idx',
            ),
            # Optimize recent files queries
            models.Index(
                fields=['owner', '-created_at'],
                name='files_owner_recent_idx',
            ),
        ]

        constraints = [
            models.CheckConstraint(
                condition=(
                    models.Q(has_preview=False)
                    | models.Q(
                        preview_status=PreviewStatus.READY,
                        preview_key__isnull=False,
                    )
                ),
                name='files_preview_ready',
            ),
        ]

    @override
    def __str__(self) -> str:
        """String representation."""
        return f'{self.owner.username}:{self.name}'

    @property
    def is_active(self) -> bool:
        """Whether the upload has been confirmed."""
        return self.status == FileStatus.ACTIVE

    @property
    def reclaimable_size(self) -> int:
        """Bytes this file currently contributes to its owner's usage."""
        if self.is_active and not self.is_deleted:
            return self.size
        return 0

    def get_extension(self) -> str:
        """Extract file extension.

        Example: 'file.pdf' -> 'pdf'

        Returns:
            Extension without dot (lowercase).
        """
        _, dot, extension = self.name.rpartition('.')
        return extension.lower() if dot else ''


@final
class UserQuota(models.Model):
    """Storage account of a user.

    Tracks the storage limit and the bytes consumed by active,
    non-deleted files. ``storage_used`` is only ever changed through
    single conditional UPDATE statements issued by the quota ledger.
    """

    user = models.OneToOneField(
        User,
        on_delete=models.CASCADE,
        related_name='quota',
        primary_key=True,
    )

    storage_limit = models.BigIntegerField(
        default=_DEFAULT_QUOTA_BYTES,
        help_text='Storage quota limit in bytes',
    )

    storage_used = models.BigIntegerField(
        default=0,
        help_text='Currently used storage in bytes',
    )

    class Meta:
        """Model metadata."""

        verbose_name = 'User Quota'  # type: ignore[mutable-override]
        verbose_name_plural = 'User Quotas'  # type: ignore[mutable-override]

        constraints = [
            models.CheckConstraint(
                condition=models.Q(storage_limit__gt=0),
                name='storage_limit_positive',
            ),
            models.CheckConstraint(
                condition=models.Q(storage_used__gte=0),
                name='storage_used_non_negative',
            ),
        ]

    @override
    def __str__(self) -> str:
        """String representation."""
        return f'{self.user.username}: {self.storage_used}/{self.storage_limit}'

    def has_space_for(self, size_bytes: int) -> bool:
        """Check if there's enough space for the given size.

        Args:
            size_bytes: Size to check in bytes.

        Returns:
            True if there's enough space, False otherwise.
        """
        return self.storage_used + size_bytes <= self.storage_limit

    def available_bytes(self) -> int:
        """Get available storage space.

        Returns:
            Available bytes (never negative).
        """
        available = self.storage_limit - self.storage_used
        return max(0, available)

    def percentage_used(self) -> int:
        """Get used storage as a whole percentage of the limit."""
        return round(self.storage_used / self.storage_limit * 100)
