"""Business logic for the file upload and metadata lifecycle.

Bytes never pass through the server. An upload is requested
(``create_upload_intent``), the client PUTs the object to the blob
store with a presigned URL, and ``confirm_upload`` verifies the stored
object before the file becomes ``active`` and counts toward the
owner's quota.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Final, final
from uuid import UUID, uuid4

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.files.storage import default_storage
from django.db import DatabaseError, transaction
from django.db.models import Count, Q, Sum  # noqa: WPS347
from django.utils import timezone

from server.apps.drive.exceptions import (
    EmptyUploadError,
    InconsistentStateError,
    InvalidOrAlreadyConfirmedError,
    InvalidQueryError,
    InvalidUploadRequestError,
    MimeMismatchError,
    NotFoundError,
    NotFoundInStorageError,
    NoValidFilesError,
    OwnershipMismatchError,
    QuotaInconsistencyError,
    TooLargeError,
)
from server.apps.drive.infrastructure.metadata import (
    build_storage_key,
    is_preview_supported,
)
from server.apps.drive.logic import path_builder
from server.apps.drive.logic.folder_tree import FolderTree
from server.apps.drive.logic.lookups import fetch_owned
from server.apps.drive.logic.quota_ledger import QuotaLedger
from server.apps.drive.models import File, FileStatus, PreviewStatus

if TYPE_CHECKING:
    from server.apps.drive.infrastructure.blob_store import BlobStore

# User type for Django's dynamic user model
_User = Any

_FILE_NOT_FOUND: Final = 'File not found'
_OWNER_METADATA_KEY: Final = 'ownerid'
_PREVIEW_FIELDS: Final = (
    'preview_key',
    'preview_status',
    'has_preview',
    'modified_at',
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class UploadIntent:
    """Presigned upload URL handed to the client."""

    upload_url: str
    file_id: UUID


@dataclass(frozen=True, slots=True)
class FileDeletion:
    """Outcome of a single file delete."""

    storage_reclaimed: int


@dataclass(frozen=True, slots=True)
class BatchDeletion:
    """Outcome of a batch delete."""

    deleted: int
    failed: int
    total_size_reclaimed: int


@dataclass(frozen=True, slots=True)
class FileWithUrls:
    """A file together with its presigned read URLs."""

    file: File
    download_url: str | None
    preview_url: str | None


@dataclass(frozen=True, slots=True)
class FileStats:
    """Aggregate counts over a user's active files."""

    total_files: int
    total_size: int
    image_count: int
    video_count: int
    document_count: int
    with_previews: int
    processing_previews: int
    failed_previews: int


@final
class FileLifecycle:  # noqa: WPS214
    """Owner-scoped operations over files.

    Files of other owners, deleted files and malformed IDs are all
    reported as missing.
    """

    def __init__(  # noqa: WPS211
        self,
        blob_store: 'BlobStore',
        ledger: QuotaLedger,
        folder_tree: FolderTree,
        max_upload_bytes: int,
        upload_url_ttl: int,
        download_url_ttl: int,
    ) -> None:
        """Initialize file lifecycle.

        Args:
            blob_store: Store holding the file objects.
            ledger: Quota ledger charged on confirm, credited on delete.
            folder_tree: Folder service used to validate destinations.
            max_upload_bytes: Largest object a confirmation accepts.
            upload_url_ttl: Lifetime of upload URLs in seconds.
            download_url_ttl: Lifetime of download URLs in seconds.
        """
        self._blob_store = blob_store
        self._ledger = ledger
        self._folder_tree = folder_tree
        self._max_upload_bytes = max_upload_bytes
        self._upload_url_ttl = upload_url_ttl
        self._download_url_ttl = download_url_ttl

    def create_upload_intent(  # noqa: WPS211
        self,
        user: _User,
        *,
        filename: str,
        mime_type: str,
        size: int,
        parent_folder_id: UUID | str,
        tags: Iterable[str] | None = None,
        description: str | None = None,
    ) -> UploadIntent:
        """Register a pending file and sign an upload URL for it.

        The quota check is optimistic: pending uploads reserve nothing,
        so intents requested before any of them is confirmed can
        jointly exceed the limit.

        Args:
            user: File owner.
            filename: Name of the file.
            mime_type: Declared content type.
            size: Declared size in bytes.
            parent_folder_id: ID of the destination folder.
            tags: Optional tags.
            description: Optional description.

        Returns:
            UploadIntent with the URL and the new file's ID.

        Raises:
            InvalidUploadRequestError: If filename, MIME type or size is
                missing.
            QuotaExceededError: If the declared size does not fit.
            NotFoundError: If the destination folder is not usable.
        """
        if not filename or not mime_type or not size or size < 0:
            raise InvalidUploadRequestError(
                'Missing required fields: filename, mime_type, size',
            )

        name = path_builder.clean_file_name(filename)
        normalized_tags = path_builder.normalize_tags(tags)

        self._ledger.check(user, size)

        folder = self._folder_tree.get_folder(user, parent_folder_id)

        file_id = uuid4()
        preview_status = (
            PreviewStatus.PROCESSING
            if is_preview_supported(mime_type)
            else PreviewStatus.NONE
        )
        file_obj = File.objects.create(
            id=file_id,
            owner=user,
            parent=folder,
            name=name,
            size=size,
            mime_type=mime_type,
            status=FileStatus.PENDING,
            tags=normalized_tags,
            description=(description or '').strip(),
            s3_key=build_storage_key(user.pk, file_id),
            preview_status=preview_status,
        )

        upload_url = self._blob_store.get_upload_url(
            file_obj.s3_key,
            mime_type,
            {'fileid': str(file_id), _OWNER_METADATA_KEY: str(user.pk)},
            self._upload_url_ttl,
        )

        logger.info(
            'Upload intent created: %s (%d bytes, ID: %s)',
            name,
            size,
            file_id,
        )
        return UploadIntent(upload_url=upload_url, file_id=file_id)

    def confirm_upload(self, user: _User, file_id: UUID | str) -> File:
        """Activate a pending file after verifying its stored object.

        Size and content type are taken from the blob store, and the
        verified size is what gets charged to the quota. A failed
        confirmation leaves the file pending and can be retried.

        Args:
            user: File owner.
            file_id: ID of the pending file.

        Returns:
            The now active File.

        Raises:
            InvalidOrAlreadyConfirmedError: If the file is not a pending
                upload of the user.
            NotFoundInStorageError: If the object was never uploaded.
            OwnershipMismatchError: If the object names another owner.
            EmptyUploadError: If the object is empty.
            TooLargeError: If the object exceeds the upload limit.
            MimeMismatchError: If the stored content type differs.
        """
        try:
            file_obj = fetch_owned(
                File.objects.filter(status=FileStatus.PENDING),
                user,
                file_id,
                _FILE_NOT_FOUND,
            )
        except NotFoundError as error:
            raise InvalidOrAlreadyConfirmedError(
                'Invalid or already confirmed upload',
            ) from error

        head = self._blob_store.head_object(file_obj.s3_key)
        if head is None:
            raise NotFoundInStorageError('File not found in storage')

        if head.metadata.get(_OWNER_METADATA_KEY) != str(user.pk):
            logger.warning(
                'Ownership mismatch on confirm of %s by user %s',
                file_obj.pk,
                user.username,
            )
            raise OwnershipMismatchError('Storage ownership mismatch')

        actual_size = head.content_length
        if actual_size <= 0:
            raise EmptyUploadError('Uploaded file is empty')

        if actual_size > self._max_upload_bytes:
            raise TooLargeError('File exceeds allowed size')

        if file_obj.mime_type and head.content_type != file_obj.mime_type:
            raise MimeMismatchError('MIME type mismatch')

        with transaction.atomic():
            # Only one of two concurrent confirmations may win
            updated = File.objects.filter(
                pk=file_obj.pk,
                status=FileStatus.PENDING,
            ).update(
                size=actual_size,
                mime_type=head.content_type,
                status=FileStatus.ACTIVE,
                modified_at=timezone.now(),
            )
            if updated == 0:
                raise InvalidOrAlreadyConfirmedError(
                    'Invalid or already confirmed upload',
                )
            self._ledger.increment(user, actual_size)

        file_obj.refresh_from_db()
        logger.info(
            'Upload confirmed: %s (%d bytes, ID: %s)',
            file_obj.name,
            actual_size,
            file_obj.pk,
        )
        return file_obj

    def delete_file(self, user: _User, file_id: UUID | str) -> FileDeletion:
        """Soft-delete a file and reclaim its storage.

        The quota is credited first; if that is refused the file is
        left untouched.

        Args:
            user: File owner.
            file_id: ID of the file.

        Returns:
            FileDeletion with the reclaimed bytes (0 for pending files).

        Raises:
            NotFoundError: If the file is missing, deleted or foreign.
            QuotaInconsistencyError: If the recorded usage is lower than
                the file's size.
        """
        file_obj = self._get_live_file(user, file_id)
        reclaim = file_obj.reclaimable_size

        with transaction.atomic():
            try:
                self._ledger.guarded_decrement(user, reclaim)
            except InconsistentStateError as error:
                raise QuotaInconsistencyError(str(error)) from error

            now = timezone.now()
            updated = File.objects.filter(pk=file_obj.pk).update(
                is_deleted=True,
                deleted_at=now,
                modified_at=now,
            )
            if updated == 0:
                # Deleted concurrently; the decrement rolls back with us
                raise NotFoundError(_FILE_NOT_FOUND)

        logger.info(
            'File deleted: %s (ID: %s, reclaimed %d bytes)',
            file_obj.name,
            file_obj.pk,
            reclaim,
        )
        return FileDeletion(storage_reclaimed=reclaim)

    def batch_delete_files(
        self,
        user: _User,
        file_ids: Iterable[UUID | str],
    ) -> BatchDeletion:
        """Soft-delete several files with a single quota credit.

        Per-file failures do not fail the batch: they are counted and
        their share of the credit is charged back.

        Args:
            user: File owner.
            file_ids: IDs of the files; unknown ones are ignored.

        Returns:
            BatchDeletion with counts and the bytes actually reclaimed.

        Raises:
            InvalidQueryError: If no IDs are given.
            NoValidFilesError: If no ID names a live owned file.
            QuotaInconsistencyError: If the recorded usage is lower than
                the total to reclaim.
        """
        files = list(
            File.objects.filter(owner=user, pk__in=_parse_ids(file_ids)),
        )
        if not files:
            raise NoValidFilesError('No valid files found')

        total_reclaimed = sum(file_obj.reclaimable_size for file_obj in files)
        try:
            self._ledger.guarded_decrement(user, total_reclaimed)
        except InconsistentStateError as error:
            raise QuotaInconsistencyError(str(error)) from error

        deleted = 0
        failed = 0
        charge_back = 0
        for file_obj in files:
            share = file_obj.reclaimable_size
            try:
                is_deleted = _soft_delete(file_obj)
            except DatabaseError:
                logger.exception('Error soft deleting file %s', file_obj.pk)
                is_deleted = False
            if is_deleted:
                deleted += 1
            else:
                # Failed, or already deleted and credited elsewhere
                failed += 1
                charge_back += share

        if charge_back:
            self._ledger.increment(user, charge_back)
            total_reclaimed -= charge_back

        logger.info(
            'Batch delete for user %s: %d deleted, %d failed, %d bytes',
            user.username,
            deleted,
            failed,
            total_reclaimed,
        )
        return BatchDeletion(
            deleted=deleted,
            failed=failed,
            total_size_reclaimed=total_reclaimed,
        )

    def get_batch_previews(
        self,
        user: _User,
        file_ids: Iterable[UUID | str],
    ) -> dict[str, str]:
        """Sign preview URLs for the given files that have one ready.

        Returns:
            Mapping of file ID to preview URL. Files without a ready
            preview are left out.
        """
        files = File.objects.filter(
            owner=user,
            pk__in=_parse_ids(file_ids),
            status=FileStatus.ACTIVE,
            has_preview=True,
            preview_status=PreviewStatus.READY,
            preview_key__isnull=False,
        )
        return {
            str(file_obj.pk): self._blob_store.get_download_url(
                file_obj.preview_key,
                self._download_url_ttl,
            )
            for file_obj in files
        }

    def get_file(self, user: _User, file_id: UUID | str) -> FileWithUrls:
        """Get a live file with its download and preview URLs."""
        return self._with_urls(self._get_live_file(user, file_id))

    def list_files(  # noqa: WPS211
        self,
        user: _User,
        folder_id: UUID | str,
        *,
        limit: int = 50,
        skip: int = 0,
        include_urls: bool = True,
    ) -> list[FileWithUrls]:
        """List live files of a folder, newest first.

        Args:
            user: File owner.
            folder_id: ID of the folder.
            limit: Page size.
            skip: Number of files to skip.
            include_urls: Sign download and preview URLs.

        Returns:
            Page of files; URLs are None when not requested.
        """
        files = File.objects.filter(
            owner=user,
            parent_id=folder_id,
        ).order_by('-created_at')[skip:skip + limit]

        if not include_urls:
            return [FileWithUrls(file_obj, None, None) for file_obj in files]
        return [self._with_urls(file_obj) for file_obj in files]

    def get_files_by_tags(
        self,
        user: _User,
        tags: Iterable[str],
        *,
        limit: int = 50,
        skip: int = 0,
    ) -> list[FileWithUrls]:
        """List live files carrying any of the given tags.

        Raises:
            InvalidQueryError: If no tags are given.
        """
        wanted = set(path_builder.normalize_tags(tags)) - {''}
        if not wanted:
            raise InvalidQueryError('Tags are required')

        # Tag membership is matched in Python to stay portable across
        # database backends
        candidates = File.objects.filter(owner=user).order_by('-created_at')
        matches = [
            file_obj for file_obj in candidates.iterator()
            if wanted.intersection(file_obj.tags)
        ]
        return [
            self._with_urls(file_obj)
            for file_obj in matches[skip:skip + limit]
        ]

    def search_files(
        self,
        user: _User,
        query: str,
        *,
        limit: int = 20,
        skip: int = 0,
    ) -> list[FileWithUrls]:
        """Search live files by name, description or exact tag.

        Name and description match case-insensitive substrings.

        Raises:
            InvalidQueryError: If the query is blank.
        """
        term = (query or '').strip()
        if not term:
            raise InvalidQueryError('Search query is required')

        lowered = term.lower()
        candidates = File.objects.filter(owner=user).order_by('-created_at')
        matches = [
            file_obj for file_obj in candidates.iterator()
            if lowered in file_obj.name.lower()
            or lowered in file_obj.description.lower()
            or lowered in file_obj.tags
        ]
        return [
            self._with_urls(file_obj)
            for file_obj in matches[skip:skip + limit]
        ]

    def move_file(
        self,
        user: _User,
        file_id: UUID | str,
        folder_id: UUID | str,
    ) -> File:
        """Move a file to another live folder of the same owner.

        The storage key does not encode the folder, so the stored
        object stays where it is.

        Raises:
            NotFoundError: If the file or the destination is not usable.
        """
        file_obj = self._get_live_file(user, file_id)
        folder = self._folder_tree.get_folder(user, folder_id)

        file_obj.parent = folder
        file_obj.save(update_fields=['parent', 'modified_at'])
        logger.info('File moved: %s -> %s', file_obj.pk, folder.path)
        return file_obj

    def rename_file(
        self,
        user: _User,
        file_id: UUID | str,
        new_name: str,
    ) -> File:
        """Rename a file; the name is trimmed and validated."""
        name = path_builder.clean_file_name(new_name)
        file_obj = self._get_live_file(user, file_id)

        file_obj.name = name
        file_obj.save(update_fields=['name', 'modified_at'])
        return file_obj

    def update_tags(
        self,
        user: _User,
        file_id: UUID | str,
        tags: Iterable[str],
    ) -> File:
        """Replace a file's tags.

        Raises:
            InvalidTagsError: If tags is not a list or has too many items.
            NotFoundError: If the file is not usable.
        """
        normalized = path_builder.normalize_tags(tags)
        file_obj = self._get_live_file(user, file_id)

        file_obj.tags = normalized
        file_obj.save(update_fields=['tags', 'modified_at'])
        return file_obj

    def update_description(
        self,
        user: _User,
        file_id: UUID | str,
        description: str | None,
    ) -> File:
        """Replace a file's description (trimmed)."""
        file_obj = self._get_live_file(user, file_id)

        file_obj.description = (description or '').strip()
        file_obj.save(update_fields=['description', 'modified_at'])
        return file_obj

    def get_file_stats(self, user: _User) -> FileStats:
        """Count a user's active files by kind and preview state."""
        stats = File.objects.filter(
            owner=user,
            status=FileStatus.ACTIVE,
        ).aggregate(
            total_files=Count('pk'),
            total_size=Sum('size'),
            image_count=Count('pk', filter=Q(mime_type__startswith='image/')),
            video_count=Count('pk', filter=Q(mime_type__startswith='video/')),
            document_count=Count(
                'pk',
                filter=Q(mime_type='application/pdf'),
            ),
            with_previews=Count('pk', filter=Q(has_preview=True)),
            processing_previews=Count(
                'pk',
                filter=Q(preview_status=PreviewStatus.PROCESSING),
            ),
            failed_previews=Count(
                'pk',
                filter=Q(preview_status=PreviewStatus.FAILED),
            ),
        )
        stats['total_size'] = stats['total_size'] or 0
        return FileStats(**stats)

    def update_preview(
        self,
        file_id: UUID | str,
        preview_key: str | None,
        status: str = PreviewStatus.READY,
    ) -> File:
        """Record the outcome of preview generation.

        Called by the preview worker, not on behalf of a user. Only the
        preview fields are written, so concurrent metadata edits
        survive; repeated calls simply overwrite each other.

        Args:
            file_id: ID of the file.
            preview_key: Key of the rendered preview object.
            status: New preview status.

        Returns:
            Updated File.

        Raises:
            NotFoundError: If the file does not exist.
            InvalidQueryError: If the status is unknown or a ready
                preview has no key.
        """
        try:
            preview_status = PreviewStatus(status)
        except ValueError as error:
            raise InvalidQueryError(
                f'Unknown preview status {status!r}',
            ) from error

        ready = preview_status == PreviewStatus.READY
        if ready and not preview_key:
            raise InvalidQueryError('A ready preview needs a preview key')

        file_obj = _get_any_file(file_id)
        file_obj.preview_key = preview_key
        file_obj.preview_status = preview_status
        file_obj.has_preview = ready
        file_obj.save(update_fields=list(_PREVIEW_FIELDS))

        logger.info('Preview %s for file %s', preview_status, file_obj.pk)
        return file_obj

    def mark_preview_failed(self, file_id: UUID | str, error: str) -> File:
        """Record that preview generation failed for a file."""
        file_obj = _get_any_file(file_id)
        file_obj.preview_status = PreviewStatus.FAILED
        file_obj.has_preview = False
        file_obj.save(update_fields=list(_PREVIEW_FIELDS))

        logger.error('Preview generation failed for %s: %s', file_id, error)
        return file_obj

    def _get_live_file(self, user: _User, file_id: UUID | str) -> File:
        return fetch_owned(File.objects.all(), user, file_id, _FILE_NOT_FOUND)

    def _with_urls(self, file_obj: File) -> FileWithUrls:
        download_url = self._blob_store.get_download_url(
            file_obj.s3_key,
            self._download_url_ttl,
        )
        preview_url = None
        if (
            file_obj.has_preview
            and file_obj.preview_status == PreviewStatus.READY
            and file_obj.preview_key
        ):
            preview_url = self._blob_store.get_download_url(
                file_obj.preview_key,
                self._download_url_ttl,
            )
        return FileWithUrls(file_obj, download_url, preview_url)


def get_file_lifecycle() -> FileLifecycle:
    """Build a FileLifecycle wired to the configured storage and settings.

    Returns:
        FileLifecycle using ``default_storage`` as its blob store.
    """
    ledger = QuotaLedger()
    return FileLifecycle(
        blob_store=default_storage,  # type: ignore[arg-type]
        ledger=ledger,
        folder_tree=FolderTree(ledger),
        max_upload_bytes=settings.DRIVE_MAX_UPLOAD_BYTES,
        upload_url_ttl=settings.DRIVE_UPLOAD_URL_TTL,
        download_url_ttl=settings.DRIVE_DOWNLOAD_URL_TTL,
    )


def _soft_delete(file_obj: File) -> bool:
    now = timezone.now()
    with transaction.atomic():
        updated = File.objects.filter(pk=file_obj.pk).update(
            is_deleted=True,
            deleted_at=now,
            modified_at=now,
        )
    return updated > 0


def _get_any_file(file_id: UUID | str) -> File:
    try:
        return File.all_objects.get(pk=file_id)
    except (File.DoesNotExist, ValidationError, ValueError) as error:
        raise NotFoundError(_FILE_NOT_FOUND) from error


def _parse_ids(raw_ids: Iterable[UUID | str]) -> list[UUID]:
    if not raw_ids or isinstance(raw_ids, str):
        raise InvalidQueryError('File IDs array required')

    parsed = []
    for raw_id in raw_ids:
        try:
            parsed.append(UUID(str(raw_id)))
        except ValueError:
            logger.debug('Ignoring malformed file ID %r', raw_id)
    return parsed

