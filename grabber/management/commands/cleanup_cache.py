"""
Management command to clean up abandoned scratch directories.

Finds and removes download and transcode directories that were left in the
cache dir by crashed or killed runs.
"""

from datetime import timedelta
from pathlib import Path

from django.core.management.base import BaseCommand
from django.utils import timezone

from grabber.service.config import get_cache_dir
from grabber.service.workspace import remove_temp_dir


class Command(BaseCommand):
    help = 'Clean up abandoned scratch directories from the cache dir'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be deleted without actually deleting',
        )
        parser.add_argument(
            '--max-age',
            type=int,
            default=60,
            help='Maximum age in minutes before a directory counts as abandoned (default: 60)',
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        max_age_minutes = options['max_age']
        cache_dir = Path(get_cache_dir())

        if not cache_dir.exists():
            self.stdout.write(self.style.SUCCESS('No cache directory found'))
            return

        scratch_dirs = [d for d in cache_dir.iterdir() if d.is_dir()]
        if not scratch_dirs:
            self.stdout.write(self.style.SUCCESS('No scratch directories found'))
            return

        now = timezone.now()
        max_age = timedelta(minutes=max_age_minutes)
        old_dirs = []
        for scratch_dir in scratch_dirs:
            mtime = timezone.datetime.fromtimestamp(
                scratch_dir.stat().st_mtime, tz=timezone.get_current_timezone()
            )
            age = now - mtime
            if age > max_age:
                old_dirs.append((scratch_dir, age))

        if not old_dirs:
            self.stdout.write(
                self.style.SUCCESS(
                    f'Found {len(scratch_dirs)} scratch director'
                    f'{"ies" if len(scratch_dirs) != 1 else "y"}, '
                    f'but none are older than {max_age_minutes} minutes'
                )
            )
            return

        total_size = 0
        for scratch_dir, age in old_dirs:
            dir_size = sum(f.stat().st_size for f in scratch_dir.rglob('*') if f.is_file())
            total_size += dir_size
            age_str = str(age).split('.')[0]
            self.stdout.write(
                f'{scratch_dir.name:40} | Age: {age_str:15} | Size: {dir_size / (1024 * 1024):6.1f} MB'
            )
        self.stdout.write(f'Total size: {total_size / (1024 * 1024):.1f} MB')

        if dry_run:
            self.stdout.write(
                self.style.WARNING(f'DRY RUN: Would delete {len(old_dirs)} directories')
            )
            return

        deleted_count = 0
        for scratch_dir, _ in old_dirs:
            if remove_temp_dir(scratch_dir, logger=self.stderr.write):
                self.stdout.write(self.style.SUCCESS(f'✓ Deleted: {scratch_dir.name}'))
                deleted_count += 1
            else:
                self.stdout.write(self.style.ERROR(f'✗ Failed to delete {scratch_dir.name}'))

        self.stdout.write(
            self.style.SUCCESS(f'✓ Deleted {deleted_count} of {len(old_dirs)} directories')
        )
