"""
Scratch directories for in-flight downloads and transcodes.

Every operation gets its own directory under the cache dir, named from a
time/process/thread id, so concurrent operations never share one.
"""

import shutil
from contextlib import contextmanager
from pathlib import Path

from grabber.service.errors import WorkspaceError
from grabber.utils import time_thread_id


def create_temp_dir(cache_dir, prefix=''):
    """
    Create a fresh, uniquely named directory inside `cache_dir`.

    Args:
        cache_dir: Parent directory (created if missing)
        prefix: Optional name prefix, e.g. 'transcode-'

    Returns:
        Path to the new directory
    """
    temp_dir = Path(cache_dir) / f'{prefix}{time_thread_id()}'
    temp_dir.mkdir(parents=True, exist_ok=True)
    return temp_dir


def remove_temp_dir(temp_dir, logger=None):
    """
    Remove a scratch directory, tolerating partial or missing state.

    Failures are logged and swallowed.

    Returns:
        bool: True if the directory is gone afterwards
    """

    def log(message):
        if logger:
            logger(message)

    temp_dir = Path(temp_dir)
    if not temp_dir.exists():
        return True

    try:
        shutil.rmtree(temp_dir)
    except OSError as e:
        log(f'Failed to delete {temp_dir}: {e}')
        return False

    return True


def remove_temp_dir_strict(temp_dir):
    """Remove a scratch directory, raising WorkspaceError on failure"""
    try:
        shutil.rmtree(temp_dir)
    except OSError as e:
        raise WorkspaceError(f'Error while removing download dir {temp_dir}: {e}') from e


@contextmanager
def temp_workspace(cache_dir, prefix='', logger=None):
    """
    Context manager yielding a scratch directory that is removed on exit.

    The directory is removed on every exit path, including exceptions.
    """
    temp_dir = create_temp_dir(cache_dir, prefix=prefix)
    try:
        yield temp_dir
    finally:
        remove_temp_dir(temp_dir, logger=logger)
