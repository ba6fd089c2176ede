"""Business logic for storage quota accounting.

``storage_used`` is shared by every request of a user. It is only ever
changed through single UPDATE statements with an ``F()`` expression,
never by saving a previously loaded value.
"""

import logging
from dataclasses import dataclass
from typing import Any, Final, final

from django.conf import settings
from django.db import transaction
from django.db.models import F, Sum  # noqa: WPS347

from server.apps.drive.exceptions import (
    InconsistentStateError,
    QuotaExceededError,
)
from server.apps.drive.models import File, FileStatus, UserQuota

# User type for Django's dynamic user model
_User = Any

# Field name constant to avoid string literal over-use
_USED_FIELD: Final = 'storage_used'  # noqa: WPS226

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class StorageUsage:
    """Snapshot of a user's storage consumption."""

    used: int
    limit: int
    remaining: int
    percentage_used: int


@final
class QuotaLedger:
    """Guarded reads and mutations of users' consumed storage.

    Every change to ``UserQuota.storage_used`` in the drive app goes
    through this class.
    """

    def __init__(self, default_limit: int | None = None) -> None:
        """Initialize the ledger.

        Args:
            default_limit: Limit given to accounts created on demand.
                Defaults to ``settings.DRIVE_DEFAULT_STORAGE_LIMIT``.
        """
        if default_limit is None:
            default_limit = settings.DRIVE_DEFAULT_STORAGE_LIMIT
        self._default_limit = default_limit

    def get_or_create_account(self, user: _User) -> UserQuota:
        """Get or create quota for user (on-demand creation).

        Args:
            user: User to get quota for.

        Returns:
            UserQuota instance for the user.
        """
        quota, created = UserQuota.objects.get_or_create(
            user=user,
            defaults={'storage_limit': self._default_limit},
        )
        if created:
            logger.info(
                'Created quota for user %s: %d bytes',
                user.username,
                quota.storage_limit,
            )
        return quota

    def check(self, user: _User, size_bytes: int) -> None:
        """Check if user has enough quota for an upload.

        The check is optimistic: nothing is reserved, so two uploads
        requested concurrently are both admitted against the same
        committed total.

        Args:
            user: User to check quota for.
            size_bytes: Size of the upload in bytes.

        Raises:
            QuotaExceededError: If upload would exceed quota.
        """
        quota = self.get_or_create_account(user)

        if not quota.has_space_for(size_bytes):
            logger.warning(
                'Quota exceeded for user %s: need %d, have %d available',
                user.username,
                size_bytes,
                quota.available_bytes(),
            )
            raise QuotaExceededError(
                quota_bytes=quota.storage_limit,
                used_bytes=quota.storage_used,
                required_bytes=size_bytes,
            )

    def increment(self, user: _User, size_bytes: int) -> None:
        """Atomically increment user's storage usage.

        Args:
            user: User to increment usage for.
            size_bytes: Bytes to add to usage.
        """
        _require_non_negative(size_bytes)

        with transaction.atomic():
            updated = UserQuota.objects.filter(user=user).update(
                storage_used=F(_USED_FIELD) + size_bytes,
            )

            if updated == 0:
                # Quota doesn't exist yet, create it and retry the update
                self.get_or_create_account(user)
                UserQuota.objects.filter(user=user).update(
                    storage_used=F(_USED_FIELD) + size_bytes,
                )

        logger.debug(
            'Incremented usage for user %s by %d bytes',
            user.username,
            size_bytes,
        )

    def guarded_decrement(self, user: _User, size_bytes: int) -> None:
        """Atomically decrement usage if enough usage is recorded.

        Issued as one conditional UPDATE so concurrent deletes can
        never drive the counter below zero.

        Args:
            user: User to decrement usage for.
            size_bytes: Bytes to subtract from usage.

        Raises:
            InconsistentStateError: If the recorded usage is lower than
                ``size_bytes`` (or no account exists).
        """
        _require_non_negative(size_bytes)
        if size_bytes == 0:
            return

        updated = UserQuota.objects.filter(
            user=user,
            storage_used__gte=size_bytes,
        ).update(
            storage_used=F(_USED_FIELD) - size_bytes,
        )

        if updated == 0:
            logger.error(
                'Guarded decrement refused for user %s: %d bytes',
                user.username,
                size_bytes,
            )
            raise InconsistentStateError(
                'Failed to update storage quota - possible inconsistency',
            )

        logger.debug(
            'Decremented usage for user %s by %d bytes',
            user.username,
            size_bytes,
        )

    def usage(self, user: _User) -> StorageUsage:
        """Get user's storage consumption.

        Args:
            user: User to report on.

        Returns:
            StorageUsage with used, limit, remaining and percentage.
        """
        quota = self.get_or_create_account(user)
        return StorageUsage(
            used=quota.storage_used,
            limit=quota.storage_limit,
            remaining=quota.available_bytes(),
            percentage_used=quota.percentage_used(),
        )

    def recalculate(self, user: _User) -> int:
        """Recalculate user's storage usage from actual files.

        This is useful for fixing inconsistencies left by partial
        failures. Only active, non-deleted files count.

        The total is computed before it is written, so a concurrent
        increment landing in between is lost. Run it only during a
        maintenance window, with uploads and deletes stopped.

        Args:
            user: User to recalculate usage for.

        Returns:
            New calculated usage in bytes.
        """
        total = File.objects.filter(
            owner=user,
            status=FileStatus.ACTIVE,
        ).aggregate(total=Sum('size'))['total'] or 0

        with transaction.atomic():
            quota = self.get_or_create_account(user)
            old_usage = quota.storage_used
            UserQuota.objects.filter(user=user).update(storage_used=total)

        logger.info(
            'Recalculated usage for user %s: %d -> %d bytes',
            user.username,
            old_usage,
            total,
        )

        return total


def _require_non_negative(size_bytes: int) -> None:
    if size_bytes < 0:
        raise ValueError(f'Size must be non-negative, got {size_bytes}')
