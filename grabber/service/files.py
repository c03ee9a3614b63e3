"""
File helpers shared by the fixer stages.
"""

import os
from pathlib import Path

from send2trash import send2trash

from grabber.service.errors import FixerError


def move_to_trash(file_path, logger=None):
    """
    Send a file to the desktop trash, deleting it outright if that fails.

    Raises:
        FixerError: If the file could neither be trashed nor deleted
    """

    def log(message):
        if logger:
            logger(message)

    file_path = Path(file_path)
    log(f'Sending {file_path} into trash')

    try:
        send2trash(str(file_path))
        return
    except Exception as e:
        log(f'Failed to put {file_path} into trash ({e}), deleting it instead')

    try:
        file_path.unlink()
    except OSError as e:
        log(f'Failed to delete old file {file_path}: {e}')
        raise FixerError(f'Failed to delete {file_path}: {e}') from e


def transferable_file_times(path_from):
    """
    Capture atime/mtime of a file so they can be applied to another one later.

    Returns:
        callable(path_to) that sets the captured times on `path_to`

    Raises:
        FixerError: If the source file cannot be stat'ed
    """
    try:
        stat = Path(path_from).stat()
    except OSError as e:
        raise FixerError(f'Failed to get metadata of {path_from}: {e}') from e

    def apply(path_to):
        try:
            os.utime(path_to, ns=(stat.st_atime_ns, stat.st_mtime_ns))
        except OSError as e:
            raise FixerError(f'Failed to set file times of {path_to}: {e}') from e

    return apply


def path_has_extension(path, extension):
    """Check a path's extension, ignoring the leading dot"""
    return Path(path).suffix.lstrip('.') == extension.lstrip('.')


def with_suffix_infix(path, infix):
    """name.mp4 -> name.<infix>.mp4"""
    path = Path(path)
    return path.with_name(f'{path.stem}.{infix}{path.suffix}')
