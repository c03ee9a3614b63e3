import base64
import os
import threading
import time
import unicodedata

from grabber.service.constants import UNSAFE_FILENAME_CHARACTERS


_last_ns = 0
_last_ns_lock = threading.Lock()


def _encode(text):
    return base64.b64encode(text.encode()).decode().rstrip('=')


def _unique_ns():
    global _last_ns
    with _last_ns_lock:
        _last_ns = max(time.time_ns(), _last_ns + 1)
        return _last_ns


def time_id():
    """
    Generate an id from the current time in nanoseconds.

    Ids never repeat within a process, even when two threads ask in the same
    nanosecond. They are base64 without padding, with slashes swapped for
    underscores to keep them usable in file names.
    """
    return _encode(str(_unique_ns())).replace('/', '_')


def time_thread_id():
    """
    Generate an id that is unique across processes and threads.

    Combines the current time in nanoseconds with the process id and the
    thread id, so two workers never pick the same scratch directory.
    """
    raw = f'{_unique_ns()}-{os.getpid()}-{threading.get_ident()}'
    return _encode(raw).replace('/', '_')


def generate_file_slug(stem, max_bytes):
    """
    Turn a file stem taken from a URL into something safe to put in a file name.

    Control characters and characters that are not allowed in file names are
    dropped, then the result is cut to `max_bytes` bytes of UTF-8. A
    character that would be split by the cut is dropped whole.

    Args:
        stem: The raw stem (e.g. 'cat%20video' already unquoted to 'cat video')
        max_bytes: Maximum length of the encoded slug

    Returns:
        The slug, or None if nothing usable is left
    """
    if not stem or max_bytes <= 0:
        return None

    kept = [
        char
        for char in stem
        if not unicodedata.category(char).startswith('C')
        and char not in UNSAFE_FILENAME_CHARACTERS
    ]
    slug = ''.join(kept).encode()[:max_bytes].decode(errors='ignore')

    return slug or None
