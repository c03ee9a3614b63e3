"""
Django management command for grabbing memes.

Downloads the media behind a URL, fixes every file (extension, name, formats,
borders) and moves the results into the memes directory.
"""

import json
from pathlib import Path

from django.core.management.base import BaseCommand, CommandError

from grabber.service.config import PipelineConfig
from grabber.service.errors import GrabberError
from grabber.service.transcode_service import download_tmp_file


class Command(BaseCommand):
    help = 'Download media from a URL, fix it and move it into the memes directory'

    def add_arguments(self, parser):
        parser.add_argument('url', type=str, help='URL of the post or media')
        parser.add_argument(
            '--outdir',
            type=str,
            default=None,
            help='Output directory (default: MEMESTASH_MEMES_DIR)',
        )
        parser.add_argument(
            '--keep-workspace',
            action='store_true',
            help='Do not remove the scratch directory after moving the files',
        )
        parser.add_argument('--verbose', action='store_true', help='Enable verbose output')
        parser.add_argument('--json', action='store_true', help='Output result as JSON')

    def handle(self, *args, **options):
        url = options['url']
        verbose = options['verbose']
        output_json = options['json']

        config = PipelineConfig.from_settings()
        if options['outdir']:
            config = config.with_overrides(memes_dir=Path(options['outdir']).expanduser())

        logger = self.stdout.write if verbose else None

        try:
            result = download_tmp_file(url, config=config, logger=logger)
            if verbose:
                self.stdout.write(self.style.NOTICE(f'Strategy: {result.platform}'))

            try:
                files = result.move_files_to_memes_dir(config.memes_dir)
            finally:
                if not options['keep_workspace']:
                    result.cleanup()
        except GrabberError as e:
            if output_json:
                self.stdout.write(
                    json.dumps({'success': False, 'error': str(e), 'retryable': e.retryable})
                )
            raise CommandError(str(e))

        if output_json:
            output = {
                'success': True,
                'url': url,
                'strategy': result.platform,
                'files': [str(f) for f in files],
            }
            if options['keep_workspace']:
                output['workspace'] = str(result.download_dir)
            self.stdout.write(json.dumps(output, indent=2))
            return

        self.stdout.write(self.style.SUCCESS(f'✓ Grabbed {len(files)} file(s)'))
        for file_path in files:
            self.stdout.write(f'  {file_path}')
        if options['keep_workspace']:
            self.stdout.write(f'  Workspace: {result.download_dir}')
