"""
Django management command for fixing memes that are already on disk.
"""

import json
from pathlib import Path

from django.core.management.base import BaseCommand, CommandError

from grabber.service.config import PipelineConfig
from grabber.service.errors import GrabberError, UnsupportedCodecError
from grabber.service.transcode_service import normalize_existing


class Command(BaseCommand):
    help = 'Fix file extension, name, formats and borders of existing files'

    def add_arguments(self, parser):
        parser.add_argument('paths', nargs='+', type=str, help='Files to fix')
        parser.add_argument('--verbose', action='store_true', help='Enable verbose output')
        parser.add_argument('--json', action='store_true', help='Output result as JSON')

    def handle(self, *args, **options):
        verbose = options['verbose']
        output_json = options['json']
        config = PipelineConfig.from_settings()
        logger = self.stdout.write if verbose else None

        results = []
        failed = []
        for raw_path in options['paths']:
            path = Path(raw_path).expanduser()
            try:
                fixed = normalize_existing(path, config=config, logger=logger)
            except UnsupportedCodecError as e:
                failed.append({'path': str(path), 'error': str(e)})
                continue
            except GrabberError as e:
                failed.append({'path': str(path), 'error': f'Failed to fix file: {e}'})
                continue

            results.append({'path': str(path), 'output_path': str(fixed)})
            if not output_json:
                self.stdout.write(self.style.SUCCESS(f'✓ {path} -> {fixed}'))

        if output_json:
            self.stdout.write(
                json.dumps({'success': not failed, 'items': results, 'failed': failed}, indent=2)
            )
        else:
            for item in failed:
                self.stderr.write(self.style.ERROR(f'✗ {item["path"]}: {item["error"]}'))

        if failed:
            raise CommandError(f'Failed to fix {len(failed)} of {len(options["paths"])} files')
