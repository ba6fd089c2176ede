"""Business logic for the folder hierarchy.

Folders store a materialized path, so listing a subtree or testing
ancestry is a prefix query. The price is paid on rename and move,
which rewrite the path of every live descendant. Those rewrites run in
a single database transaction; ``repair_paths`` re-derives every path
from parent pointers for data written outside of one.
"""

import logging
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Any, Final, final
from uuid import UUID

from django.db import IntegrityError, transaction
from django.db.models import Count, F, Q, QuerySet, Sum  # noqa: WPS347
from django.utils import timezone

from server.apps.drive.exceptions import (
    DepthExceededError,
    DuplicateNameError,
    ForbiddenError,
    InvalidDestinationError,
    InvalidQueryError,
    NotEmptyError,
    ParentGoneError,
    PathTooLongError,
)
from server.apps.drive.logic import path_builder
from server.apps.drive.logic.lookups import fetch_owned
from server.apps.drive.logic.quota_ledger import QuotaLedger
from server.apps.drive.models import File, FileStatus, Folder

# User type for Django's dynamic user model
_User = Any

_ROOT_NAME: Final = 'Home'
_FOLDER_COUNT_FIELD: Final = 'folder_count'
_SORT_FIELDS: Final = frozenset((
    'name',
    'path',
    'depth',
    'created_at',
    'modified_at',
))
_DUPLICATE_MESSAGE: Final = (
    'A folder with this name already exists in this location'
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FolderDeletion:
    """Outcome of a folder delete."""

    deleted_folders: int
    storage_reclaimed: int


@dataclass(frozen=True, slots=True)
class FolderStats:
    """Direct contents of a folder."""

    folder_id: UUID
    name: str
    path: str
    depth: int
    child_folders: int
    child_files: int
    total_size: int


@final
class FolderTree:
    """Owner-scoped structural operations over folders.

    Folders of other owners are reported as missing, never as
    forbidden.
    """

    def __init__(self, ledger: QuotaLedger) -> None:
        """Initialize folder tree.

        Args:
            ledger: Quota ledger used to reclaim storage on cascading
                deletes.
        """
        self._ledger = ledger

    def ensure_root(self, user: _User) -> Folder:
        """Get or create the user's root folder.

        Args:
            user: Folder owner.

        Returns:
            The live folder with path "/".
        """
        root = Folder.objects.filter(owner=user, parent__isnull=True).first()
        if root is not None:
            return root

        try:
            with transaction.atomic():
                root = Folder.objects.create(
                    owner=user,
                    name=_ROOT_NAME,
                    parent=None,
                    path=path_builder.ROOT_PATH,
                    depth=0,
                )
        except IntegrityError:
            # Another request created it first
            return Folder.objects.get(owner=user, parent__isnull=True)

        logger.info('Created root folder for user %s', user.username)
        return root

    def get_folder(self, user: _User, folder_id: UUID | str) -> Folder:
        """Get a live folder owned by the user.

        Raises:
            NotFoundError: If the folder is missing, deleted or foreign.
        """
        return fetch_owned(
            Folder.objects.all(),
            user,
            folder_id,
            'Folder not found or access denied',
        )

    def create_folder(
        self,
        user: _User,
        parent_id: UUID | str,
        raw_name: str,
    ) -> Folder:
        """Create a folder below an existing parent.

        Args:
            user: Folder owner.
            parent_id: ID of the live parent folder.
            raw_name: Requested name (validated and trimmed).

        Returns:
            Created Folder instance.

        Raises:
            InvalidNameError: If the name is not acceptable.
            NotFoundError: If the parent is missing, deleted or foreign.
            DepthExceededError: If the parent is at the depth ceiling.
            PathTooLongError: If the new path would be too long.
            DuplicateNameError: If a live sibling uses the same name.
        """
        name = path_builder.validate_name(raw_name)
        parent = fetch_owned(
            Folder.objects.all(),
            user,
            parent_id,
            'Parent folder not found or access denied',
        )

        if parent.depth >= path_builder.MAX_DEPTH:
            raise DepthExceededError(
                f'Maximum folder depth ({path_builder.MAX_DEPTH}) exceeded',
            )

        path = path_builder.child_path(parent.path, name)

        if self._sibling_exists(user, parent.pk, name):
            raise DuplicateNameError(_DUPLICATE_MESSAGE)

        try:
            with transaction.atomic():
                folder = Folder.objects.create(
                    owner=user,
                    name=name,
                    parent=parent,
                    path=path,
                    depth=parent.depth + 1,
                )
                Folder.all_objects.filter(pk=parent.pk).update(
                    folder_count=F(_FOLDER_COUNT_FIELD) + 1,
                )
        except IntegrityError as error:
            raise DuplicateNameError(_DUPLICATE_MESSAGE) from error

        logger.info('Folder created: %s (ID: %s)', path, folder.pk)
        return folder

    def list_folders(  # noqa: WPS211
        self,
        user: _User,
        parent_id: UUID | str,
        *,
        limit: int = 100,
        skip: int = 0,
        sort_by: str = 'name',
        descending: bool = False,
    ) -> QuerySet[Folder]:
        """List live child folders of a folder.

        Args:
            user: Folder owner.
            parent_id: ID of the folder to list.
            limit: Page size.
            skip: Number of folders to skip.
            sort_by: One of name, path, depth, created_at, modified_at.
            descending: Reverse the sort order.

        Returns:
            QuerySet page of Folder objects.
        """
        if sort_by not in _SORT_FIELDS:
            raise InvalidQueryError(f'Cannot sort folders by {sort_by!r}')

        ordering = f'-{sort_by}' if descending else sort_by
        return Folder.objects.filter(
            owner=user,
            parent_id=parent_id,
        ).order_by(ordering)[skip:skip + limit]

    def get_folder_path(
        self,
        user: _User,
        folder_id: UUID | str,
    ) -> list[Folder]:
        """Get the breadcrumb chain of a folder.

        Ancestors are resolved from the prefixes of the folder's path.

        Returns:
            Folders ordered from the root to the folder itself.
        """
        folder = self.get_folder(user, folder_id)
        ancestor_paths = path_builder.ancestor_paths(folder.path)
        by_path = {
            ancestor.path: ancestor
            for ancestor in Folder.objects.filter(
                owner=user,
                path__in=ancestor_paths,
            )
        }
        chain = [
            by_path[ancestor_path]
            for ancestor_path in ancestor_paths
            if ancestor_path in by_path
        ]
        chain.append(folder)
        return chain

    def rename_folder(
        self,
        user: _User,
        folder_id: UUID | str,
        raw_name: str,
    ) -> Folder:
        """Rename a folder and rewrite the paths below it.

        Depths never change on rename. A name equal to the current one
        ignoring case is a no-op.

        Args:
            user: Folder owner.
            folder_id: Folder to rename.
            raw_name: Requested name.

        Returns:
            The renamed Folder instance.

        Raises:
            ForbiddenError: If the folder is the root.
            DuplicateNameError: If a live sibling uses the same name.
        """
        folder = self.get_folder(user, folder_id)

        if folder.is_root:
            raise ForbiddenError('Cannot rename root folder')

        name = path_builder.validate_name(raw_name)

        if folder.name.lower() == name.lower():
            return folder

        if self._sibling_exists(user, folder.parent_id, name, folder.pk):
            raise DuplicateNameError(_DUPLICATE_MESSAGE)

        parent_path = folder.path.rpartition('/')[0] or path_builder.ROOT_PATH
        new_path = path_builder.child_path(parent_path, name)
        old_path = folder.path

        try:
            with transaction.atomic():
                descendants = self._descendants(user, folder)
                _check_rewritten_lengths(descendants, old_path, new_path)

                folder.name = name
                folder.path = new_path
                folder.save(update_fields=['name', 'path', 'modified_at'])
                _rewrite_descendants(descendants, old_path, new_path, 0)
        except IntegrityError as error:
            raise DuplicateNameError(_DUPLICATE_MESSAGE) from error

        logger.info(
            'Folder renamed: %s -> %s (%d descendants rewritten)',
            old_path,
            new_path,
            len(descendants),
        )
        return folder

    def move_folder(
        self,
        user: _User,
        folder_id: UUID | str,
        new_parent_id: UUID | str,
    ) -> Folder:
        """Move a folder (and its subtree) below a new parent.

        Args:
            user: Folder owner.
            folder_id: Folder to move.
            new_parent_id: Destination folder.

        Returns:
            The moved Folder instance.

        Raises:
            ForbiddenError: If the folder is the root.
            NotFoundError: If either folder is missing or foreign.
            InvalidDestinationError: If the destination is the folder
                itself or one of its descendants.
            DepthExceededError: If the deepest descendant would end up
                below the depth ceiling.
            DuplicateNameError: If the destination has a live folder of
                the same name.
        """
        folder = self.get_folder(user, folder_id)

        if folder.is_root:
            raise ForbiddenError('Cannot move root folder')

        new_parent = self.get_folder(user, new_parent_id)

        if path_builder.is_same_or_descendant(new_parent.path, folder.path):
            raise InvalidDestinationError(
                'Cannot move folder into itself or its descendants',
            )

        if new_parent.pk == folder.parent_id:
            return folder

        old_path = folder.path
        old_parent_id = folder.parent_id
        new_depth = new_parent.depth + 1
        depth_delta = new_depth - folder.depth

        try:
            with transaction.atomic():
                descendants = self._descendants(user, folder)
                deepest = max(
                    (descendant.depth for descendant in descendants),
                    default=folder.depth,
                )
                if deepest + depth_delta > path_builder.MAX_DEPTH:
                    raise DepthExceededError(
                        'Moving this folder would exceed maximum depth '
                        f'({path_builder.MAX_DEPTH})',
                    )

                if self._sibling_exists(
                    user,
                    new_parent.pk,
                    folder.name,
                    folder.pk,
                ):
                    raise DuplicateNameError(
                        'A folder with this name already exists in the '
                        'destination',
                    )

                new_path = path_builder.child_path(new_parent.path, folder.name)
                _check_rewritten_lengths(descendants, old_path, new_path)

                _decrement_folder_count(old_parent_id)
                Folder.all_objects.filter(pk=new_parent.pk).update(
                    folder_count=F(_FOLDER_COUNT_FIELD) + 1,
                )

                folder.parent = new_parent
                folder.path = new_path
                folder.depth = new_depth
                folder.save(
                    update_fields=['parent', 'path', 'depth', 'modified_at'],
                )
                _rewrite_descendants(
                    descendants,
                    old_path,
                    new_path,
                    depth_delta,
                )
        except IntegrityError as error:
            raise DuplicateNameError(_DUPLICATE_MESSAGE) from error

        logger.info(
            'Folder moved: %s -> %s (%d descendants rewritten)',
            old_path,
            new_path,
            len(descendants),
        )
        return folder

    def delete_folder(
        self,
        user: _User,
        folder_id: UUID | str,
        *,
        cascade: bool = False,
        force: bool = False,
    ) -> FolderDeletion:
        """Soft delete a folder.

        Without ``cascade`` only the folder itself is marked deleted;
        its children stay addressable but are no longer reachable from
        the root. With ``cascade`` every live descendant folder and
        every live file below them is soft deleted and the storage of
        the active files is reclaimed with one guarded decrement.

        Args:
            user: Folder owner.
            folder_id: Folder to delete.
            cascade: Also delete the subtree and its files.
            force: Skip the check for live files in the subtree.

        Returns:
            FolderDeletion with the deleted folder count and reclaimed
            bytes.

        Raises:
            ForbiddenError: If the folder is the root.
            NotEmptyError: If live files exist and ``force`` is False.
            InconsistentStateError: If the reclaimed storage exceeds the
                recorded usage; nothing is deleted then.
        """
        folder = self.get_folder(user, folder_id)

        if folder.is_root:
            raise ForbiddenError('Cannot delete root folder')

        now = timezone.now()
        storage_reclaimed = 0

        with transaction.atomic():
            descendants = self._descendants(user, folder)
            folder_ids = [folder.pk, *(desc.pk for desc in descendants)]
            subtree_files = File.objects.filter(
                owner=user,
                parent_id__in=folder_ids,
            )

            if not force and subtree_files.exists():
                raise NotEmptyError(
                    'Folder contains files. Use force to delete anyway '
                    'or move files first.',
                )

            if cascade:
                storage_reclaimed = subtree_files.filter(
                    status=FileStatus.ACTIVE,
                ).aggregate(total=Sum('size'))['total'] or 0

                self._ledger.guarded_decrement(user, storage_reclaimed)

                subtree_files.update(is_deleted=True, deleted_at=now)
                Folder.all_objects.filter(pk__in=folder_ids).update(
                    is_deleted=True,
                    deleted_at=now,
                )
                deleted_folders = len(folder_ids)
            else:
                folder.is_deleted = True
                folder.deleted_at = now
                folder.save(
                    update_fields=['is_deleted', 'deleted_at', 'modified_at'],
                )
                deleted_folders = 1

            _decrement_folder_count(folder.parent_id)

        logger.info(
            'Folder deleted: %s (ID: %s, folders: %d, reclaimed: %d)',
            folder.path,
            folder.pk,
            deleted_folders,
            storage_reclaimed,
        )
        return FolderDeletion(
            deleted_folders=deleted_folders,
            storage_reclaimed=storage_reclaimed,
        )

    def restore_folder(self, user: _User, folder_id: UUID | str) -> Folder:
        """Restore a soft-deleted folder.

        The folder's path and depth are re-derived from its parent, so
        a folder restored after an ancestor rename lands at the right
        place. Descendants deleted with it stay deleted.

        Args:
            user: Folder owner.
            folder_id: Deleted folder to restore.

        Returns:
            The restored Folder instance.

        Raises:
            NotFoundError: If the folder is not currently deleted.
            ParentGoneError: If the parent is missing or deleted.
            DepthExceededError: If the parent is at the depth ceiling.
            DuplicateNameError: If a live sibling now uses the name.
        """
        folder = fetch_owned(
            Folder.all_objects.deleted(),
            user,
            folder_id,
            'Deleted folder not found',
        )

        parent = Folder.objects.filter(
            pk=folder.parent_id,
            owner=user,
        ).first()
        if parent is None:
            raise ParentGoneError(
                'Cannot restore: parent folder no longer exists',
            )

        if parent.depth >= path_builder.MAX_DEPTH:
            raise DepthExceededError(
                f'Maximum folder depth ({path_builder.MAX_DEPTH}) exceeded',
            )

        if self._sibling_exists(user, parent.pk, folder.name, folder.pk):
            raise DuplicateNameError(
                'Cannot restore: a folder with this name already exists '
                'in this location',
            )

        try:
            with transaction.atomic():
                folder.is_deleted = False
                folder.deleted_at = None
                folder.path = path_builder.child_path(parent.path, folder.name)
                folder.depth = parent.depth + 1
                folder.save(update_fields=[
                    'is_deleted',
                    'deleted_at',
                    'path',
                    'depth',
                    'modified_at',
                ])
                Folder.all_objects.filter(pk=parent.pk).update(
                    folder_count=F(_FOLDER_COUNT_FIELD) + 1,
                )
        except IntegrityError as error:
            raise DuplicateNameError(_DUPLICATE_MESSAGE) from error

        logger.info('Folder restored: %s (ID: %s)', folder.path, folder.pk)
        return folder

    def list_deleted_folders(self, user: _User) -> QuerySet[Folder]:
        """List the user's soft-deleted folders, newest first."""
        return Folder.all_objects.deleted().filter(
            owner=user,
        ).order_by('-deleted_at')

    def search_folders(
        self,
        user: _User,
        query: str,
        *,
        limit: int = 50,
        skip: int = 0,
    ) -> QuerySet[Folder]:
        """Find live folders whose name contains ``query`` (any case).

        Raises:
            InvalidQueryError: If the query is blank.
        """
        query = (query or '').strip()
        if not query:
            raise InvalidQueryError('Search query is required')

        return Folder.objects.filter(
            owner=user,
            name__icontains=query,
        ).order_by('path')[skip:skip + limit]

    def get_folder_stats(
        self,
        user: _User,
        folder_id: UUID | str,
    ) -> FolderStats:
        """Count the direct contents of a folder.

        Returns:
            FolderStats with child folder and file counts and the total
            size of the active files directly inside.
        """
        folder = self.get_folder(user, folder_id)

        child_folders = Folder.objects.filter(
            owner=user,
            parent=folder,
        ).count()
        file_totals = File.objects.filter(
            owner=user,
            parent=folder,
        ).aggregate(
            child_files=Count('pk'),
            total_size=Sum('size', filter=Q(status=FileStatus.ACTIVE)),
        )

        return FolderStats(
            folder_id=folder.pk,
            name=folder.name,
            path=folder.path,
            depth=folder.depth,
            child_folders=child_folders,
            child_files=file_totals['child_files'],
            total_size=file_totals['total_size'] or 0,
        )

    def repair_paths(self, user: _User) -> int:
        """Re-derive paths, depths and child counts from parent pointers.

        Parent pointers are the source of truth; a rename or move
        interrupted outside a transaction can only leave paths stale.
        Walks the whole tree of the user (deleted folders included) and
        rewrites every row that disagrees. Safe to run repeatedly.

        Args:
            user: Owner whose tree to repair.

        Returns:
            Number of folders rewritten.
        """
        with transaction.atomic():
            folders = list(Folder.all_objects.filter(owner=user))
            children: defaultdict[UUID, list[Folder]] = defaultdict(list)
            queue: deque[Folder] = deque()

            for folder in folders:
                if folder.parent_id is None:
                    queue.append(folder)
                else:
                    children[folder.parent_id].append(folder)

            changed: dict[UUID, Folder] = {}
            for root in queue:
                if root.path != path_builder.ROOT_PATH or root.depth != 0:
                    root.path = path_builder.ROOT_PATH
                    root.depth = 0
                    changed[root.pk] = root

            while queue:
                parent = queue.popleft()
                kids = children[parent.pk]

                live_count = sum(1 for kid in kids if not kid.is_deleted)
                if parent.folder_count != live_count:
                    parent.folder_count = live_count
                    changed[parent.pk] = parent

                expected_depth = parent.depth + 1
                for kid in kids:
                    expected_path = path_builder.child_path(
                        parent.path,
                        kid.name,
                    )
                    if (kid.path, kid.depth) != (expected_path, expected_depth):
                        kid.path = expected_path
                        kid.depth = expected_depth
                        changed[kid.pk] = kid
                    queue.append(kid)

            Folder.all_objects.bulk_update(
                changed.values(),
                ['path', 'depth', _FOLDER_COUNT_FIELD],
            )

        if changed:
            logger.warning(
                'Repaired %d folders for user %s',
                len(changed),
                user.username,
            )
        return len(changed)

    def _descendants(self, user: _User, folder: Folder) -> list[Folder]:
        prefix = path_builder.descendant_prefix(folder.path)
        candidates = Folder.objects.filter(
            owner=user,
            path__startswith=prefix,
        ).order_by('depth')
        # Orphans of a deleted namesake share the prefix, not the parents
        reached = {folder.pk}
        descendants = []
        for candidate in candidates:
            # startswith may ignore case on some backends
            if not candidate.path.startswith(prefix):
                continue
            if candidate.parent_id in reached:
                reached.add(candidate.pk)
                descendants.append(candidate)
        return descendants

    def _sibling_exists(
        self,
        user: _User,
        parent_id: UUID | None,
        name: str,
        exclude_pk: UUID | None = None,
    ) -> bool:
        siblings = Folder.objects.filter(
            owner=user,
            parent_id=parent_id,
            name__iexact=name,
        )
        if exclude_pk is not None:
            siblings = siblings.exclude(pk=exclude_pk)
        return siblings.exists()


def _decrement_folder_count(folder_id: UUID | None) -> None:
    if folder_id is None:
        return
    Folder.all_objects.filter(
        pk=folder_id,
        folder_count__gt=0,
    ).update(folder_count=F(_FOLDER_COUNT_FIELD) - 1)


def _check_rewritten_lengths(
    descendants: list[Folder],
    old_path: str,
    new_path: str,
) -> None:
    growth = len(new_path) - len(old_path)
    longest = max((len(desc.path) for desc in descendants), default=0)
    if longest + growth > path_builder.MAX_PATH_LENGTH:
        raise PathTooLongError('New folder path exceeds maximum length')


def _rewrite_descendants(
    descendants: list[Folder],
    old_path: str,
    new_path: str,
    depth_delta: int,
) -> None:
    if not descendants:
        return

    now = timezone.now()
    for descendant in descendants:
        descendant.path = path_builder.replace_prefix(
            descendant.path,
            old_path,
            new_path,
        )
        descendant.depth += depth_delta
        descendant.modified_at = now

    Folder.all_objects.bulk_update(
        descendants,
        ['path', 'depth', 'modified_at'],
    )
