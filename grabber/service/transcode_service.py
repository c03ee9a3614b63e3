"""
Main grabber service entrypoints.

Ties the download strategies and the fixer pipeline together. Used by the
management commands and by any bot front end.
"""

import shutil
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from grabber.service.config import get_memes_dir, resolve_config
from grabber.service.errors import FixerError
from grabber.service.fixers import fix_file, fix_files
from grabber.service.strategy import fetch_media
from grabber.service.workspace import create_temp_dir, remove_temp_dir, remove_temp_dir_strict


def _fetch_and_fix(url, destination_dir, config, logger):
    """Returns (MediaReference, fixed files)"""

    def log(message):
        if logger:
            logger(message)

    reference, paths = fetch_media(url, destination_dir, config=config, logger=logger)
    log(f'Fixing {len(paths)} files')

    fixed = fix_files(paths, config=config, logger=logger)
    log(f'Finished files: {", ".join(str(p) for p in fixed)}')
    return reference, fixed


def acquire_and_normalize(url, destination_dir, config=None, logger=None):
    """
    Download the media behind a URL and fix every downloaded file.

    Args:
        url: Source URL
        destination_dir: Directory the files end up in
        config: PipelineConfig (defaults to settings)
        logger: Optional callable(str) for logging

    Returns:
        list[Path]: Finished files

    Raises:
        InvalidURLError: If the URL is malformed
        AcquisitionError: If nothing could be downloaded
        FixerError: If any downloaded file could not be fixed
    """
    return _fetch_and_fix(url, destination_dir, resolve_config(config), logger)[1]


def normalize_existing(path, config=None, logger=None):
    """Run the fixer pipeline on a file that is already on disk"""
    return fix_file(path, config=resolve_config(config), logger=logger)


@dataclass
class DownloadResult:
    """Files downloaded into a scratch directory, waiting to be moved or dropped"""

    download_dir: Path
    files: List[Path] = field(default_factory=list)
    memes_dir: Optional[Path] = None
    platform: Optional[str] = None

    def cleanup(self):
        """
        Remove the scratch directory with everything left in it.

        Raises:
            WorkspaceError: If the directory could not be removed
        """
        remove_temp_dir_strict(self.download_dir)

    def move_files_to_memes_dir(self, memes_dir=None):
        """
        Move every file into the memes directory.

        Returns:
            list[Path]: New locations, in the order of `files`

        Raises:
            FixerError: If any file could not be copied or removed
        """
        memes_dir = Path(memes_dir or self.memes_dir or get_memes_dir())
        memes_dir.mkdir(parents=True, exist_ok=True)

        def move(file_path):
            new_file_path = memes_dir / file_path.name
            try:
                shutil.copyfile(file_path, new_file_path)
            except OSError as e:
                return None, f'Error while copying file {file_path}: {e}'
            try:
                file_path.unlink()
            except OSError as e:
                return new_file_path, f'Error while removing file {file_path}: {e}'
            return new_file_path, None

        with ThreadPoolExecutor(max_workers=max(1, min(4, len(self.files)))) as executor:
            results = list(executor.map(move, self.files))

        errors = [error for _, error in results if error is not None]
        if errors:
            raise FixerError(', '.join(errors))

        return [new_path for new_path, _ in results]


def download_tmp_file(url, config=None, logger=None):
    """
    Download and fix a URL's media inside a fresh scratch directory.

    The directory is removed again if anything fails. On success the caller
    owns it and must call move_files_to_memes_dir() and/or cleanup().

    Returns:
        DownloadResult
    """

    def log(message):
        if logger:
            logger(message)

    config = resolve_config(config)
    download_dir = create_temp_dir(config.cache_dir)
    log(f'Downloading to temp dir: {download_dir}')

    try:
        reference, files = _fetch_and_fix(url, download_dir, config, logger)
    except BaseException:
        remove_temp_dir(download_dir, logger=logger)
        raise

    return DownloadResult(
        download_dir=download_dir,
        files=files,
        memes_dir=config.memes_dir,
        platform=reference.platform,
    )
