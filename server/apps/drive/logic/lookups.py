"""Owner-scoped lookups shared by the drive services."""

from typing import Any, TypeVar

from django.core.exceptions import ObjectDoesNotExist, ValidationError
from django.db import models

from server.apps.drive.exceptions import NotFoundError

_ModelT = TypeVar('_ModelT', bound=models.Model)


def fetch_owned(
    queryset: 'models.QuerySet[_ModelT]',
    user: Any,
    pk: Any,
    message: str,
) -> _ModelT:
    """Fetch a row owned by ``user`` or fail as if it did not exist.

    Malformed identifiers, rows of other owners and rows filtered out
    by ``queryset`` all raise the same error, so callers cannot probe
    for other users' data.

    Args:
        queryset: Rows to search (live or deleted).
        user: Expected owner.
        pk: Primary key as received from the caller.
        message: Error message for the NotFoundError.

    Returns:
        The matching row.

    Raises:
        NotFoundError: If no owned row matches.
    """
    try:
        return queryset.get(pk=pk, owner=user)
    except (ObjectDoesNotExist, ValidationError, ValueError) as error:
        raise NotFoundError(message) from error
