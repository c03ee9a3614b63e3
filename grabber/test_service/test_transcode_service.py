"""
Tests for service/transcode_service.py

Integration tests for the main grabber entrypoints.
"""

import tempfile
from pathlib import Path
from unittest.mock import patch

from django.test import TestCase

from grabber.service.config import PipelineConfig
from grabber.service.errors import AcquisitionError, FixerError, WorkspaceError
from grabber.service.strategy import MediaReference
from grabber.service.transcode_service import (
    DownloadResult,
    acquire_and_normalize,
    download_tmp_file,
    normalize_existing,
)


class TranscodeServiceTest(TestCase):
    """Integration tests for grabber service"""

    def setUp(self):
        self._temp = tempfile.TemporaryDirectory()
        self.base = Path(self._temp.name)
        self.config = PipelineConfig(memes_dir=self.base / 'memes', cache_dir=self.base / 'cache')

    def tearDown(self):
        self._temp.cleanup()

    @patch('grabber.service.transcode_service.fix_files')
    @patch('grabber.service.transcode_service.fetch_media')
    def test_acquire_and_normalize(self, mock_fetch, mock_fix):
        """Test that downloaded files go through the fixers"""
        raw = [self.base / 'a.unknown', self.base / 'b.webm']
        fixed = [self.base / 'a.png', self.base / 'b.mp4']
        mock_fetch.return_value = (MediaReference('https://example.com/post', 'generic'), raw)
        mock_fix.return_value = fixed

        result = acquire_and_normalize('https://example.com/post', self.base, config=self.config)

        self.assertEqual(result, fixed)
        mock_fetch.assert_called_once_with(
            'https://example.com/post', self.base, config=self.config, logger=None
        )
        self.assertEqual(mock_fix.call_args[0][0], raw)

    @patch('grabber.service.transcode_service.fix_files')
    @patch('grabber.service.transcode_service.fetch_media')
    def test_acquire_and_normalize_download_failure(self, mock_fetch, mock_fix):
        mock_fetch.side_effect = AcquisitionError('nothing there')

        with self.assertRaises(AcquisitionError):
            acquire_and_normalize('https://example.com/post', self.base, config=self.config)

        mock_fix.assert_not_called()

    @patch('grabber.service.transcode_service.fix_file')
    def test_normalize_existing(self, mock_fix):
        mock_fix.return_value = self.base / 'a.mp4'

        result = normalize_existing(self.base / 'a.webm', config=self.config)

        self.assertEqual(result, self.base / 'a.mp4')
        self.assertEqual(mock_fix.call_args[0][0], self.base / 'a.webm')

    @patch('grabber.service.transcode_service.fix_files')
    @patch('grabber.service.transcode_service.fetch_media')
    def test_download_tmp_file(self, mock_fetch, mock_fix):
        """Test that downloads land in a scratch dir under the cache dir"""

        def fetch(url, download_dir, config=None, logger=None):
            path = Path(download_dir) / 'meme.png'
            path.write_bytes(b'png')
            return MediaReference(url, 'reddit_image'), [path]

        mock_fetch.side_effect = fetch
        mock_fix.side_effect = lambda paths, config=None, logger=None: paths

        result = download_tmp_file('https://example.com/meme', config=self.config)

        self.assertEqual(result.download_dir.parent, self.config.cache_dir)
        self.assertEqual([f.name for f in result.files], ['meme.png'])
        self.assertEqual(result.memes_dir, self.config.memes_dir)
        self.assertEqual(result.platform, 'reddit_image')
        self.assertEqual(mock_fetch.call_count, 1)

        result.cleanup()
        self.assertFalse(result.download_dir.exists())

    @patch('grabber.service.transcode_service.fix_files')
    @patch('grabber.service.transcode_service.fetch_media')
    def test_download_tmp_file_cleans_up_on_failure(self, mock_fetch, mock_fix):
        mock_fetch.return_value = (MediaReference('https://example.com/meme', 'generic'), [])
        mock_fix.side_effect = FixerError('a.gif: File has an unknown codec (gif)')

        with self.assertRaises(FixerError):
            download_tmp_file('https://example.com/meme', config=self.config)

        self.assertEqual(list(self.config.cache_dir.iterdir()), [])

    @patch('grabber.service.transcode_service.fix_files')
    @patch('grabber.service.transcode_service.fetch_media')
    def test_download_tmp_file_cleans_up_on_unexpected_error(self, mock_fetch, mock_fix):
        mock_fetch.side_effect = RuntimeError('boom')

        with self.assertRaises(RuntimeError):
            download_tmp_file('https://example.com/meme', config=self.config)

        self.assertEqual(list(self.config.cache_dir.iterdir()), [])
        mock_fix.assert_not_called()

    def test_move_files_to_memes_dir(self):
        download_dir = self.base / 'cache' / 'dl'
        download_dir.mkdir(parents=True)
        files = []
        for name in ('a.png', 'b.mp4'):
            path = download_dir / name
            path.write_bytes(name.encode())
            files.append(path)

        result = DownloadResult(download_dir=download_dir, files=files, memes_dir=self.config.memes_dir)
        moved = result.move_files_to_memes_dir()

        self.assertEqual(moved, [self.config.memes_dir / 'a.png', self.config.memes_dir / 'b.mp4'])
        self.assertEqual(moved[0].read_bytes(), b'a.png')
        self.assertFalse(files[0].exists())
        self.assertFalse(files[1].exists())

    def test_move_files_missing_source(self):
        download_dir = self.base / 'dl'
        download_dir.mkdir()
        result = DownloadResult(
            download_dir=download_dir,
            files=[download_dir / 'gone.png'],
            memes_dir=self.config.memes_dir,
        )

        with self.assertRaises(FixerError):
            result.move_files_to_memes_dir()

    @patch('grabber.service.workspace.shutil.rmtree')
    def test_cleanup_failure_raises(self, mock_rmtree):
        mock_rmtree.side_effect = OSError('busy')
        result = DownloadResult(download_dir=self.base / 'dl')

        with self.assertRaises(WorkspaceError):
            result.cleanup()
