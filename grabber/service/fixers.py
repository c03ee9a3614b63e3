"""
File fixing pipeline.

Every downloaded file runs through the same ordered list of fixers. A fixer
takes a path and returns the path of the fixed file (which may be a new file)
or raises a GrabberError.
"""

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import filetype

from grabber.service.config import resolve_config
from grabber.service.crop import auto_crop_video
from grabber.service.errors import FixerError, GrabberError
from grabber.service.process import convert_into_preferred_formats
from grabber.utils import time_id


def fix_file_extension(file_path, config=None, logger=None):
    """
    Rename a file so its extension matches its content.

    Raises:
        FixerError: If the type cannot be inferred or the rename fails
    """

    def log(message):
        if logger:
            logger(message)

    file_path = Path(file_path)
    log(f'Checking file extension for {file_path}')

    try:
        kind = filetype.guess(str(file_path))
    except OSError as e:
        raise FixerError(f'Failed to read {file_path}: {e}') from e

    if kind is None:
        raise FixerError(f'Failed to get extension for file {file_path}')

    inferred = kind.extension
    log(f'Inferred file extension: {inferred}')

    if file_path.suffix.lstrip('.') == inferred:
        return file_path

    new_file_path = file_path.with_suffix(f'.{inferred}')
    log(f'Renaming file from {file_path} to {new_file_path}')
    try:
        file_path.rename(new_file_path)
    except OSError as e:
        raise FixerError(f'Failed to rename {file_path}: {e}') from e

    return new_file_path


def fix_file_name(file_path, config=None, logger=None):
    """
    Strip non-ASCII characters from a file's stem.

    ASCII stems are left alone. A stem with nothing ASCII in it is replaced
    by a fresh id.

    Raises:
        FixerError: If the file has no extension or the rename fails
    """

    def log(message):
        if logger:
            logger(message)

    file_path = Path(file_path)
    stem = file_path.stem
    log(f'Checking file name for {file_path}')

    if stem.isascii():
        return file_path

    extension = file_path.suffix
    if not extension:
        raise FixerError(f'Failed to get extension for file {file_path.name}')

    new_stem = ''.join(char for char in stem if char.isascii()) or time_id()
    new_file_path = file_path.with_name(f'{new_stem}{extension}')

    log(f'Renaming file from {file_path} to {new_file_path}')
    try:
        file_path.rename(new_file_path)
    except OSError as e:
        raise FixerError(f'Failed to rename {file_path}: {e}') from e

    return new_file_path


# Order matters: the codec stage relies on a trustworthy extension, and the
# crop stage expects the preferred formats.
FIXERS = (
    fix_file_extension,
    fix_file_name,
    convert_into_preferred_formats,
    auto_crop_video,
)


def fix_file(file_path, config=None, logger=None):
    """
    Run every fixer on one file, stopping at the first failure.

    Returns:
        Path: The final file

    Raises:
        GrabberError: Whatever the failing fixer raised
    """
    config = resolve_config(config)

    try:
        path = Path(file_path).resolve(strict=True)
    except OSError as e:
        raise FixerError(f'Failed to get absolute path: {e}') from e

    for fixer in FIXERS:
        path = fixer(path, config=config, logger=logger)

    return path


def fix_files(paths, config=None, logger=None):
    """
    Fix several files in parallel.

    Args:
        paths: Files to fix
        config: PipelineConfig (defaults to settings)
        logger: Optional callable(str) for logging

    Returns:
        list[Path]: The fixed files, in input order

    Raises:
        FixerError: If any file failed; the message names every failed file
    """

    def log(message):
        if logger:
            logger(message)

    config = resolve_config(config)
    paths = list(paths)
    if not paths:
        return []

    def run(path):
        try:
            return path, fix_file(path, config=config, logger=logger), None
        except GrabberError as e:
            return path, None, str(e)
        except Exception as e:
            log(f'Unexpected error while fixing {path}: {e!r}')
            return path, None, f'Unexpected error: {e}'

    with ThreadPoolExecutor(max_workers=max(1, config.max_workers)) as executor:
        results = list(executor.map(run, paths))

    failed = [f'{path}: {error}' for path, _, error in results if error is not None]
    if failed:
        log(f'Failed to fix {len(failed)} of {len(paths)} files')
        raise FixerError(', '.join(failed))

    return [fixed for _, fixed, _ in results]
