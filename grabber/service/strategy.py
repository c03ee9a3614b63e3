"""
Download strategy detection.

Decides which downloader handles a URL and runs it.
"""

from dataclasses import dataclass
from pathlib import Path

from grabber.service.config import resolve_config
from grabber.service.download import download_generic, download_ytdlp, parse_url
from grabber.service import sites


class Platform:
    INSTAGRAM = 'instagram'
    TWITTER = 'twitter'
    TWITTER_MEDIA = 'twitter_media'
    MASTODON = 'mastodon'
    TUMBLR = 'tumblr'
    REDDIT_IMAGE = 'reddit_image'
    IMGUR_MEDIA = 'imgur_media'
    IMGUR = 'imgur'
    GENERIC = 'generic'


@dataclass(frozen=True)
class MediaReference:
    """A URL together with the platform it was classified as"""

    url: str
    platform: str


@dataclass(frozen=True)
class Strategy:
    platform: str
    matches: object  # callable(url, config, logger) -> bool
    download: object  # callable(download_dir, url, config=..., logger=...) -> list[Path]


# Checked top to bottom and the first match wins, so specific platforms must
# come before broader ones. The last entry matches everything.
STRATEGIES = (
    Strategy(
        Platform.INSTAGRAM,
        lambda url, config, logger: sites.is_instagram_post(url),
        sites.download_instagram,
    ),
    Strategy(
        Platform.TWITTER,
        lambda url, config, logger: sites.is_twitter_status(url),
        sites.download_twitter,
    ),
    Strategy(
        Platform.TWITTER_MEDIA,
        lambda url, config, logger: sites.is_twitter_media_url(url),
        sites.download_twitter_media,
    ),
    Strategy(
        Platform.MASTODON,
        lambda url, config, logger: sites.is_mastodon_toot(url, config=config, logger=logger),
        sites.download_mastodon,
    ),
    Strategy(
        Platform.TUMBLR,
        lambda url, config, logger: sites.is_tumblr_post(url),
        sites.download_tumblr,
    ),
    Strategy(
        Platform.REDDIT_IMAGE,
        lambda url, config, logger: sites.is_reddit_image_url(url),
        download_generic,
    ),
    Strategy(
        Platform.IMGUR_MEDIA,
        lambda url, config, logger: sites.is_imgur_direct_media_url(url),
        download_generic,
    ),
    Strategy(
        Platform.IMGUR,
        lambda url, config, logger: sites.is_imgur_url(url),
        sites.download_imgur,
    ),
    Strategy(
        Platform.GENERIC,
        lambda url, config, logger: True,
        download_ytdlp,
    ),
)


def select_strategy(url, config=None, logger=None):
    """Return the first Strategy whose matcher accepts the URL"""
    config = resolve_config(config)
    for strategy in STRATEGIES:
        if strategy.matches(url, config, logger):
            return strategy
    # Unreachable while the generic entry stays last
    raise LookupError(f'No download strategy for {url}')


def classify_url(url, config=None, logger=None):
    """
    Classify a URL without downloading anything.

    Returns:
        MediaReference
    """
    return MediaReference(url=url, platform=select_strategy(url, config, logger).platform)


def fetch_media(url, download_dir, config=None, logger=None):
    """
    Download the media behind a URL into `download_dir`.

    Exactly one strategy runs. Fallbacks (yt-dlp to direct download, yt-dlp to
    screenshot) happen inside that strategy, never across strategies.

    Args:
        url: Source URL
        download_dir: Directory to write into
        config: PipelineConfig (defaults to settings)
        logger: Optional callable(str) for logging

    Returns:
        tuple[MediaReference, list[Path]]: The classified URL and the
            downloaded files, not yet fixed

    Raises:
        InvalidURLError: If the URL is malformed
        AcquisitionError: If the strategy could not download anything
    """

    def log(message):
        if logger:
            logger(message)

    parse_url(url)
    config = resolve_config(config)
    download_dir = Path(download_dir)
    download_dir.mkdir(parents=True, exist_ok=True)

    log(f'Downloading {url} into {download_dir}')
    strategy = select_strategy(url, config, logger)
    log(f'Strategy: {strategy.platform}')

    paths = strategy.download(download_dir, url, config=config, logger=logger)
    log(f'Downloaded files: {", ".join(str(p) for p in paths)}')

    return MediaReference(url=url, platform=strategy.platform), paths


def download_url(url, download_dir, config=None, logger=None):
    """Like fetch_media(), returning only the downloaded files"""
    return fetch_media(url, download_dir, config=config, logger=logger)[1]
