"""
Configuration adapter for the grabber pipeline.

Centralizes access to Django settings. Service functions never read settings
themselves: they take a PipelineConfig, and fall back to
PipelineConfig.from_settings() when none is given, so tests can pass their
own values without touching settings.
"""

from dataclasses import dataclass, replace
from typing import Optional
from pathlib import Path

from django.conf import settings


@dataclass(frozen=True)
class PipelineConfig:
    """Everything the pipeline needs to know about its environment"""

    memes_dir: Path
    cache_dir: Path
    ffmpeg_path: str = 'ffmpeg'
    ffprobe_path: str = 'ffprobe'
    screenshot_base_url: str = 'https://twitter.igr.ec'
    user_agent: str = 'Mozilla/5.0'
    http_timeout: int = 30
    socket_timeout: int = 120
    max_workers: int = 4
    max_filename_length: int = 120
    probe_timeout: Optional[int] = None

    @classmethod
    def from_settings(cls):
        """Build a config from the MEMESTASH_* Django settings"""
        return cls(
            memes_dir=Path(settings.MEMESTASH_MEMES_DIR),
            cache_dir=Path(settings.MEMESTASH_CACHE_DIR),
            ffmpeg_path=settings.MEMESTASH_FFMPEG_PATH,
            ffprobe_path=settings.MEMESTASH_FFPROBE_PATH,
            screenshot_base_url=settings.MEMESTASH_SCREENSHOT_BASE_URL,
            user_agent=settings.MEMESTASH_USER_AGENT,
            http_timeout=settings.MEMESTASH_HTTP_TIMEOUT,
            socket_timeout=settings.MEMESTASH_SOCKET_TIMEOUT,
            max_workers=settings.MEMESTASH_MAX_WORKERS,
            max_filename_length=settings.MEMESTASH_MAX_FILENAME_LENGTH,
        )

    def with_overrides(self, **changes):
        """Return a copy with some fields replaced"""
        return replace(self, **changes)


def resolve_config(config=None):
    """Return `config`, or the settings-backed config when it is None"""
    if config is None:
        return PipelineConfig.from_settings()
    return config


def get_memes_dir():
    """Get the directory finished memes are moved into"""
    return Path(settings.MEMESTASH_MEMES_DIR)


def get_cache_dir():
    """Get the scratch directory for downloads and transcodes"""
    return Path(settings.MEMESTASH_CACHE_DIR)
