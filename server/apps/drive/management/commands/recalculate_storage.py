"""Management command to recompute storage usage from active files."""

import logging
from typing import Any

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError
from django.db.models import Sum

from server.apps.drive.logic.quota_ledger import QuotaLedger
from server.apps.drive.models import File, FileStatus, UserQuota

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    """Reset every storage counter to the size of the user's files."""

    help = (
        'Recalculate storage usage from active, non-deleted files. '
        'Run only during a maintenance window: concurrent uploads '
        'and deletes can be lost.'
    )

    def add_arguments(self, parser: Any) -> None:
        """Add command line arguments.

        Args:
            parser: Argument parser.
        """
        parser.add_argument(
            '--user',
            help='Only recalculate usage of this username',
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show differences without saving',
        )

    def handle(self, *args: Any, **options: Any) -> None:
        """Execute the recalculation.

        Args:
            args: Positional arguments (unused).
            options: Command options.
        """
        dry_run = options['dry_run']
        username = options['user']
        ledger = QuotaLedger()
        user_model = get_user_model()

        users = user_model.objects.all()
        if username is not None:
            users = users.filter(username=username)
            if not users.exists():
                raise CommandError(f'User {username!r} does not exist')

        drifted = 0
        for user in users.order_by('username'):
            recorded = UserQuota.objects.filter(user=user).values_list(
                'storage_used',
                flat=True,
            ).first() or 0
            actual = File.objects.filter(
                owner=user,
                status=FileStatus.ACTIVE,
            ).aggregate(total=Sum('size'))['total'] or 0

            if recorded == actual:
                continue

            drifted += 1
            self.stdout.write(
                f'{user.username}: recorded {recorded}, actual {actual}',
            )
            if not dry_run:
                ledger.recalculate(user)

        if dry_run:
            self.stdout.write(
                self.style.SUCCESS(f'Would fix {drifted} accounts'),
            )
        else:
            logger.info('Recalculated storage of %d accounts', drifted)
            self.stdout.write(self.style.SUCCESS(f'Fixed {drifted} accounts'))
