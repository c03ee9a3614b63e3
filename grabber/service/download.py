"""
Download service for media files.

Handles direct HTTP downloads, yt-dlp downloads and the fallbacks between
them. Every downloader takes (download_dir, url, config, logger) and returns
a list of the files it created, or raises AcquisitionError.
"""

import mimetypes
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from urllib.parse import unquote, urlparse

import requests
import yt_dlp
from yt_dlp.utils import DownloadError

from grabber.service.config import resolve_config
from grabber.service.constants import (
    EXTENSION_ALIASES,
    UNKNOWN_EXTENSION,
    YTDLP_IMAGE_ERROR_MARKER,
)
from grabber.service.errors import AcquisitionError, InvalidURLError
from grabber.utils import generate_file_slug, time_id


def parse_url(url):
    """
    Split a URL into its parts.

    Raises:
        InvalidURLError: If the URL is malformed (e.g. an unclosed IPv6 bracket)
    """
    try:
        return urlparse(url)
    except ValueError as e:
        raise InvalidURLError(f'Invalid URL {url}: {e}') from e


def extension_from_content_type(content_type):
    """
    Map a Content-Type header value to a file extension (without the dot).

    Returns:
        str: e.g. 'png', or 'unknown' if the type is missing or not recognised
    """
    if not content_type:
        return UNKNOWN_EXTENSION

    mime_type = content_type.split(';')[0].strip().lower()
    guessed = mimetypes.guess_extension(mime_type) if mime_type else None
    if not guessed:
        return UNKNOWN_EXTENSION

    extension = guessed.lstrip('.')
    return EXTENSION_ALIASES.get(extension, extension)


def build_generic_file_name(url, extension, max_length):
    """
    Build '{id}.{slug}.{ext}' for a direct download.

    The slug comes from the file stem of the URL path and is dropped when
    nothing usable is left. The whole name never exceeds `max_length` bytes
    once encoded, since file systems limit names by bytes.
    """
    file_id = time_id()
    taken = len(file_id.encode()) + 1 + len(extension.encode())

    stem = Path(unquote(parse_url(url).path)).stem
    slug = generate_file_slug(stem, max_length - 1 - taken)

    if slug:
        return f'{file_id}.{slug}.{extension}'
    return f'{file_id}.{extension}'


def download_generic(download_dir, url, config=None, logger=None):
    """
    Download a URL's response body directly via HTTP.

    Args:
        download_dir: Directory to write into
        url: URL of the media
        config: PipelineConfig (defaults to settings)
        logger: Optional callable(str) for logging

    Returns:
        list[Path]: The single downloaded file

    Raises:
        AcquisitionError: On network errors or non-2xx responses
    """

    def log(message):
        if logger:
            logger(message)

    config = resolve_config(config)
    download_dir = Path(download_dir)
    download_dir.mkdir(parents=True, exist_ok=True)

    log(f'Downloading {url} to {download_dir}')

    try:
        response = requests.get(
            url,
            headers={'User-Agent': config.user_agent},
            stream=True,
            timeout=config.http_timeout,
        )
        response.raise_for_status()
    except requests.RequestException as e:
        raise AcquisitionError(f'Failed to download {url}: {e}') from e

    content_type = response.headers.get('content-type', '')
    extension = extension_from_content_type(content_type)
    log(f'Got mime type {content_type!r}, using extension {extension!r}')

    out_path = download_dir / build_generic_file_name(url, extension, config.max_filename_length)
    log(f'Writing to file: {out_path}')

    try:
        with open(out_path, 'wb') as f:
            for chunk in response.iter_content(chunk_size=8192):
                if chunk:
                    f.write(chunk)
    except (OSError, requests.RequestException) as e:
        try:
            out_path.unlink(missing_ok=True)
        except OSError as unlink_error:
            log(f'Failed to remove {out_path}: {unlink_error}')
        raise AcquisitionError(f'Failed to write response of {url} to {out_path}: {e}') from e

    return [out_path]


def build_ytdlp_options(download_dir, config, quiet=True):
    """
    yt-dlp options for downloading a single meme.

    Equivalent to: --no-check-certificate --socket-timeout N --no-part
    --no-mtime --user-agent UA --output '<dir>/<id>.%(id).64s.%(ext)s'
    (metadata embedding stays off because no postprocessor asks for it).
    """
    output_template = Path(download_dir) / f'{time_id()}.%(id).64s.%(ext)s'

    return {
        'outtmpl': str(output_template),
        'nocheckcertificate': True,
        'socket_timeout': config.socket_timeout,
        'nopart': True,
        'updatetime': False,
        'http_headers': {'User-Agent': config.user_agent},
        'quiet': quiet,
        'no_warnings': quiet,
    }


def _downloaded_paths(ydl, info):
    """Collect the final file paths yt-dlp reported for an info dict"""
    if info is None:
        return []

    if info.get('entries') is not None:
        paths = []
        for entry in info['entries']:
            paths.extend(_downloaded_paths(ydl, entry))
        return paths

    requested = info.get('requested_downloads') or []
    paths = [Path(d['filepath']) for d in requested if d.get('filepath')]
    if not paths:
        paths = [Path(ydl.prepare_filename(info))]
    return paths


def is_image_error(message):
    """
    Check whether a yt-dlp failure means the URL is a picture, not a video.

    This matches yt-dlp's human-readable error text, so it can break when
    yt-dlp rewords the message.
    """
    return YTDLP_IMAGE_ERROR_MARKER in (message or '')


def download_ytdlp(download_dir, url, config=None, logger=None):
    """
    Download media using yt-dlp, falling back to a direct download for images.

    Args:
        download_dir: Directory to write into
        url: Source URL
        config: PipelineConfig (defaults to settings)
        logger: Optional callable(str) for logging

    Returns:
        list[Path]

    Raises:
        AcquisitionError: If yt-dlp fails (for a reason other than the URL
            being an image) or reports a file that does not exist
    """

    def log(message):
        if logger:
            logger(message)

    config = resolve_config(config)
    download_dir = Path(download_dir)
    download_dir.mkdir(parents=True, exist_ok=True)

    ydl_opts = build_ytdlp_options(download_dir, config, quiet=not logger)
    log(f'Downloading with yt-dlp: {url}')
    log(f'Output template: {ydl_opts["outtmpl"]}')

    try:
        with yt_dlp.YoutubeDL(ydl_opts) as ydl:
            info = ydl.extract_info(url, download=True)
            paths = _downloaded_paths(ydl, info)
    except DownloadError as e:
        message = str(e)
        if is_image_error(message):
            log('yt-dlp says this is an image, downloading it directly')
            return download_generic(download_dir, url, config=config, logger=logger)
        raise AcquisitionError(f'yt-dlp failed downloading {url}: {message}') from e

    if not paths:
        raise AcquisitionError(f'yt-dlp finished but reported no file for {url}')

    missing = [p for p in paths if not p.exists()]
    if missing:
        raise AcquisitionError(
            f'yt-dlp finished but file does not exist: {", ".join(str(p) for p in missing)}'
        )

    log(f'yt-dlp downloaded: {", ".join(str(p) for p in paths)}')
    return paths


def screenshot_url(url, config):
    """URL of the screenshot service rendering `url`"""
    return f'{config.screenshot_base_url.rstrip("/")}/{url}'


def download_with_screenshot_fallback(download_dir, url, config=None, logger=None):
    """
    Download a post's media with yt-dlp, or a screenshot of the post if that fails.

    Used for posts that may or may not carry a video (tweets, toots, tumblr
    posts).
    """

    def log(message):
        if logger:
            logger(message)

    config = resolve_config(config)

    try:
        return download_ytdlp(download_dir, url, config=config, logger=logger)
    except AcquisitionError as e:
        log(f'Failed to download with yt-dlp ({e}). Trying to screenshot...')

    target = screenshot_url(url, config)
    log(f'Screenshot URL: {target}')
    return download_ytdlp(download_dir, target, config=config, logger=logger)


def download_many(download_dir, urls, downloader, config=None, logger=None):
    """
    Download several media URLs in parallel with the same downloader.

    Individual failures are logged. The call only fails when nothing at all
    could be downloaded, in which case every failure is reported.

    Args:
        download_dir: Directory to write into
        urls: Media URLs
        downloader: callable(download_dir, url, config=..., logger=...)
        config: PipelineConfig (defaults to settings)
        logger: Optional callable(str) for logging

    Returns:
        list[Path]: Files of all successful items

    Raises:
        AcquisitionError: If `urls` is empty or every item failed
    """

    def log(message):
        if logger:
            logger(message)

    config = resolve_config(config)
    if not urls:
        raise AcquisitionError('No media found in post')

    def fetch(item_url):
        try:
            return item_url, downloader(download_dir, item_url, config=config, logger=logger), None
        except AcquisitionError as e:
            return item_url, None, str(e)
        except Exception as e:
            log(f'Unexpected error while downloading {item_url}: {e!r}')
            return item_url, None, f'Unexpected error downloading {item_url}: {e}'

    workers = max(1, min(config.max_workers, 4, len(urls)))
    with ThreadPoolExecutor(max_workers=workers) as executor:
        results = list(executor.map(fetch, urls))

    downloaded = []
    failed = []
    for item_url, paths, error in results:
        if error is None:
            downloaded.extend(paths)
        else:
            failed.append((item_url, error))

    if failed:
        log(f'Failed to download: {failed}')

    if not downloaded:
        raise AcquisitionError(', '.join(error for _, error in failed))

    return downloaded
