"""Exceptions for drive app.

Every error raised by the drive business logic derives from
``DriveError`` and carries the HTTP-like ``status_code`` a transport
edge should answer with. Validation and business-rule failures are
4xx; ``InconsistentStateError`` is a server fault.
"""

from http import HTTPStatus
from typing import ClassVar


class DriveError(Exception):
    """Base class for drive business errors."""

    status_code: ClassVar[int] = HTTPStatus.BAD_REQUEST


class InvalidNameError(DriveError):
    """Raised when a folder or file name is not acceptable."""


class PathTooLongError(DriveError):
    """Raised when a materialized path would exceed its maximum length."""


class DuplicateNameError(DriveError):
    """Raised when a live sibling already uses the same name."""

    status_code = HTTPStatus.CONFLICT


class DepthExceededError(DriveError):
    """Raised when the folder hierarchy would become too deep."""


class NotFoundError(DriveError):
    """Raised for missing, deleted or foreign entities.

    Entities owned by another user are reported exactly like missing
    ones so their existence never leaks.
    """

    status_code = HTTPStatus.NOT_FOUND


class ForbiddenError(DriveError):
    """Raised when an operation targets a protected entity (root)."""

    status_code = HTTPStatus.FORBIDDEN


class NotEmptyError(DriveError):
    """Raised when a folder delete is blocked by live files."""

    status_code = HTTPStatus.CONFLICT


class InvalidDestinationError(DriveError):
    """Raised when a folder would be moved into itself or a descendant."""


class ParentGoneError(DriveError):
    """Raised when restoring a folder whose parent is missing or deleted."""

    status_code = HTTPStatus.CONFLICT


class QuotaExceededError(DriveError):
    """Raised when upload would exceed user's storage quota."""

    status_code = HTTPStatus.INSUFFICIENT_STORAGE

    def __init__(
        self,
        quota_bytes: int,
        used_bytes: int,
        required_bytes: int,
    ) -> None:
        """Initialize QuotaExceededError.

        Args:
            quota_bytes: Total quota limit in bytes.
            used_bytes: Currently used bytes.
            required_bytes: Bytes needed for the operation.
        """
        self.quota_bytes = quota_bytes
        self.used_bytes = used_bytes
        self.required_bytes = required_bytes

        available = quota_bytes - used_bytes
        super().__init__(
            f'Quota exceeded: need {required_bytes} bytes, '
            f'only {available} bytes available '
            f'(quota: {quota_bytes}, used: {used_bytes})',
        )


class InvalidUploadRequestError(DriveError):
    """Raised when an upload intent is missing required fields."""


class InvalidTagsError(DriveError):
    """Raised when tags are not a list or there are too many of them."""


class InvalidQueryError(DriveError):
    """Raised when a search or filter query is empty."""


class NoValidFilesError(DriveError):
    """Raised when a batch request matches no live owned files."""

    status_code = HTTPStatus.NOT_FOUND


class UploadConfirmationError(DriveError):
    """Base class for upload confirmation failures.

    A file whose confirmation fails stays ``pending`` and its size is
    never added to the owner's storage usage.
    """


class InvalidOrAlreadyConfirmedError(UploadConfirmationError):
    """Raised when the file is not a pending upload of the caller."""

    status_code = HTTPStatus.NOT_FOUND


class NotFoundInStorageError(UploadConfirmationError):
    """Raised when the blob store has no object for the file."""

    status_code = HTTPStatus.NOT_FOUND


class OwnershipMismatchError(UploadConfirmationError):
    """Raised when the stored object belongs to another owner."""

    status_code = HTTPStatus.FORBIDDEN


class EmptyUploadError(UploadConfirmationError):
    """Raised when the stored object is zero bytes long."""


class TooLargeError(UploadConfirmationError):
    """Raised when the stored object exceeds the allowed size."""

    status_code = HTTPStatus.REQUEST_ENTITY_TOO_LARGE


class MimeMismatchError(UploadConfirmationError):
    """Raised when the stored content type differs from the declared one."""


class InconsistentStateError(DriveError):
    """Raised when a guarded quota decrement finds too little usage.

    Signals a bug or an already reclaimed file. Operations abort
    instead of proceeding with a change they cannot account for.
    """

    status_code = HTTPStatus.INTERNAL_SERVER_ERROR


class QuotaInconsistencyError(InconsistentStateError):
    """Raised when a file delete cannot reclaim the file's storage."""
