from django.core.management.base import BaseCommand, CommandError

from pastures.exceptions import PersistenceError
from pastures.services import find_duplicate_open_entries, close_duplicate_open_entries


class Command(BaseCommand):
    help = 'Close duplicate current rotations and active rest periods so each pasture has at most one of each'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be closed without making changes',
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']

        if dry_run:
            self.stdout.write('DRY RUN MODE - No changes will be made')
            self.stdout.write('=' * 50)

        try:
            rotations, rest_periods = find_duplicate_open_entries()
        except PersistenceError as e:
            raise CommandError(str(e))

        for rotation in rotations:
            self.stdout.write(
                f'Rotation {rotation.pk} on pasture {rotation.pasture_id} '
                f'(started {rotation.start_date}): current → closed'
            )
        for rest_period in rest_periods:
            self.stdout.write(
                f'Rest period {rest_period.pk} on pasture {rest_period.pasture_id} '
                f'(started {rest_period.start_date}): active → closed'
            )

        if not rotations and not rest_periods:
            self.stdout.write(self.style.SUCCESS('Pasture ledger is consistent. Nothing to repair.'))
            return

        if not dry_run:
            try:
                close_duplicate_open_entries(rotations, rest_periods)
            except PersistenceError as e:
                raise CommandError(str(e))

        self.stdout.write('\n' + '=' * 50)
        self.stdout.write('SUMMARY:')
        self.stdout.write(f'Duplicate current rotations: {len(rotations)}')
        self.stdout.write(f'Duplicate active rest periods: {len(rest_periods)}')

        if dry_run:
            self.stdout.write(self.style.WARNING('\nThis was a dry run. No changes were made.'))
        else:
            self.stdout.write(self.style.SUCCESS('\nPasture ledger repaired successfully!'))
