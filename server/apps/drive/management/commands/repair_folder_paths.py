"""Management command to re-derive folder paths from parent pointers."""

import logging
from typing import Any

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction

from server.apps.drive.logic.folder_tree import FolderTree
from server.apps.drive.logic.quota_ledger import QuotaLedger

logger = logging.getLogger(__name__)


class _DryRunRollback(Exception):
    """Raised to roll back the repairs of a dry run."""


class Command(BaseCommand):
    """Rewrite stale folder paths, depths and child counts."""

    help = 'Repair materialized folder paths from parent pointers'

    def add_arguments(self, parser: Any) -> None:
        """Add command line arguments.

        Args:
            parser: Argument parser.
        """
        parser.add_argument(
            '--user',
            help='Only repair the tree of this username',
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Report what would be repaired without saving',
        )

    def handle(self, *args: Any, **options: Any) -> None:
        """Execute the repair command.

        Args:
            args: Positional arguments (unused).
            options: Command options.
        """
        dry_run = options['dry_run']
        users = _select_users(options['user'])
        tree = FolderTree(QuotaLedger())

        total = 0
        for user in users:
            try:
                with transaction.atomic():
                    repaired = tree.repair_paths(user)
                    if dry_run:
                        raise _DryRunRollback
            except _DryRunRollback:
                logger.debug('Rolled back dry run for %s', user.username)

            if repaired:
                verb = 'Would repair' if dry_run else 'Repaired'
                self.stdout.write(
                    f'{verb} {repaired} folders of {user.username}',
                )
            total += repaired

        verb = 'Would repair' if dry_run else 'Repaired'
        self.stdout.write(self.style.SUCCESS(f'{verb} {total} folders'))


def _select_users(username: str | None) -> Any:
    user_model = get_user_model()
    if username is None:
        return user_model.objects.filter(folders__isnull=False).distinct()

    users = user_model.objects.filter(username=username)
    if not users.exists():
        raise CommandError(f'User {username!r} does not exist')
    return users
