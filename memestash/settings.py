"""
Django settings for the memestash project.

Only the pieces the grabber app needs are configured: there are no views,
templates or models. Every MEMESTASH_* value can be overridden from the
environment.
"""

import os
import tempfile
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY', 'memestash-insecure-dev-key')

DEBUG = os.environ.get('DJANGO_DEBUG', 'false').lower() in ('1', 'true', 'yes')

ALLOWED_HOSTS = []

INSTALLED_APPS = [
    'grabber',
]

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': BASE_DIR / 'db.sqlite3',
    }
}

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

USE_TZ = True
TIME_ZONE = 'UTC'


# Memestash

# Where finished memes end up
MEMESTASH_MEMES_DIR = Path(
    os.environ.get('MEMESTASH_MEMES_DIR', Path.home() / 'MEMES')
).expanduser()

# Scratch space for in-flight downloads and transcodes
MEMESTASH_CACHE_DIR = Path(
    os.environ.get('MEMESTASH_CACHE_DIR', Path(tempfile.gettempdir()) / 'memestash')
).expanduser()

# External executables (looked up on $PATH when not absolute)
MEMESTASH_FFMPEG_PATH = os.environ.get('MEMESTASH_FFMPEG_PATH', 'ffmpeg')
MEMESTASH_FFPROBE_PATH = os.environ.get('MEMESTASH_FFPROBE_PATH', 'ffprobe')

# Screenshot service used when a post has no downloadable media
MEMESTASH_SCREENSHOT_BASE_URL = os.environ.get(
    'MEMESTASH_SCREENSHOT_BASE_URL', 'https://twitter.igr.ec'
)

MEMESTASH_USER_AGENT = os.environ.get(
    'MEMESTASH_USER_AGENT',
    'Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 '
    '(KHTML, like Gecko) Chrome/88.0.4324.182 Safari/537.36',
)

# Seconds
MEMESTASH_HTTP_TIMEOUT = int(os.environ.get('MEMESTASH_HTTP_TIMEOUT', '30'))
MEMESTASH_SOCKET_TIMEOUT = int(os.environ.get('MEMESTASH_SOCKET_TIMEOUT', '120'))

MEMESTASH_MAX_WORKERS = int(os.environ.get('MEMESTASH_MAX_WORKERS', '4'))
MEMESTASH_MAX_FILENAME_LENGTH = int(os.environ.get('MEMESTASH_MAX_FILENAME_LENGTH', '120'))
