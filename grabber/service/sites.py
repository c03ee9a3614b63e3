"""
Site-specific downloaders.

Each platform gets a URL matcher and a downloader with the same signature as
the generic ones in download.py.
"""

import json
import re
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

import requests
from bs4 import BeautifulSoup

from grabber.service.config import resolve_config
from grabber.service.download import (
    download_generic,
    download_many,
    download_with_screenshot_fallback,
    download_ytdlp,
)
from grabber.service.errors import AcquisitionError

INSTAGRAM_URL_MATCH = re.compile(r'^https?://(www\.)?instagram\.com/p/(?P<post_id>[^/?]+)')
INSTAGRAM_QUERY_HASH = '2efa04f61586458cef44441f474eee7c'
INSTAGRAM_API_URL = 'https://www.instagram.com/graphql/query/'

TWITTER_URL_MATCH = re.compile(
    r'^https?://(www\.)?(twitter|x)\.com/(?P<username>[^/]+)/status/(?P<status_id>[0-9]+)'
)
# https://pbs.twimg.com/media/FqPFEWYWYBQ5iG3?format=png&name=small
TWITTER_MEDIA_URL_MATCH = re.compile(r'^https?://pbs\.twimg\.com/media/')

TUMBLR_URL_MATCH = re.compile(
    r'^https?://(www\.)?tumblr\.com/(?P<username>[^/]+)/(?P<post_id>[0-9]+)(/|/[^/]+)?'
)

REDDIT_IMAGE_HOSTS = ['i.redd.it', 'preview.redd.it']

IMGUR_POST_DATA_PREFIX = 'window.postDataJSON='

MASTODON_CHECK_TIMEOUT = 5


# Instagram


def is_instagram_post(url):
    return INSTAGRAM_URL_MATCH.match(url) is not None


def fetch_instagram_urls(url, config=None, logger=None):
    """
    Resolve an Instagram post into the URLs of its pictures and videos.

    Returns:
        list[str]: One URL for a single-media post, one per item for a carousel

    Raises:
        AcquisitionError: If the URL is not a post or the API answer is unusable
    """

    def log(message):
        if logger:
            logger(message)

    config = resolve_config(config)

    match = INSTAGRAM_URL_MATCH.match(url)
    if not match:
        raise AcquisitionError('URL is not a valid Instagram post')
    post_id = match.group('post_id')
    log(f'Instagram post ID: {post_id}')

    variables = {
        'shortcode': post_id,
        'child_comment_count': 0,
        'fetch_comment_count': 0,
        'parent_comment_count': 0,
        'has_threaded_comments': True,
    }

    try:
        response = requests.get(
            INSTAGRAM_API_URL,
            params={'query_hash': INSTAGRAM_QUERY_HASH, 'variables': json.dumps(variables)},
            headers={'User-Agent': config.user_agent},
            timeout=config.http_timeout,
        )
        response.raise_for_status()
        data = response.json()
    except (requests.RequestException, ValueError) as e:
        raise AcquisitionError(f'Failed to get response from instagram API: {e}') from e

    media = (data.get('data') or {}).get('shortcode_media')
    if not isinstance(media, dict):
        raise AcquisitionError('Failed to get media from instagram API response')

    if 'edge_sidecar_to_children' not in media:
        single = media.get('video_url') or media.get('display_url')
        if not single:
            raise AcquisitionError("Failed to get `display_url' from instagram API response")
        log('Instagram post has a single item')
        return [single]

    edges = (media['edge_sidecar_to_children'] or {}).get('edges') or []
    urls = []
    for edge in edges:
        node = edge.get('node') if isinstance(edge, dict) else None
        if not isinstance(node, dict):
            continue
        if node.get('video_url'):
            log(f'Found video in post: {node.get("id")}')
            urls.append(node['video_url'])
        elif node.get('display_url'):
            log(f'Found image in post: {node.get("id")}')
            urls.append(node['display_url'])

    log(f'Instagram post has {len(urls)} items')
    return urls


def download_instagram(download_dir, url, config=None, logger=None):
    """Download every picture and video of an Instagram post"""
    config = resolve_config(config)
    media_urls = fetch_instagram_urls(url, config=config, logger=logger)
    return download_many(download_dir, media_urls, download_ytdlp, config=config, logger=logger)


# Twitter / X


def is_twitter_status(url):
    return TWITTER_URL_MATCH.match(url) is not None


def is_twitter_media_url(url):
    return TWITTER_MEDIA_URL_MATCH.match(url) is not None


def strip_twitter_media_size(url):
    """Drop the `name` (size) query parameter so the original size is served"""
    parsed = urlparse(url)
    params = [(k, v) for k, v in parse_qsl(parsed.query, keep_blank_values=True) if k != 'name']
    return urlunparse(parsed._replace(query=urlencode(params)))


def download_twitter(download_dir, url, config=None, logger=None):
    """Download a tweet's media, or a screenshot of the tweet"""
    return download_with_screenshot_fallback(download_dir, url, config=config, logger=logger)


def download_twitter_media(download_dir, url, config=None, logger=None):
    """Download a pbs.twimg.com picture in its original size"""
    return download_ytdlp(download_dir, strip_twitter_media_size(url), config=config, logger=logger)


# Mastodon


def is_mastodon_toot(url, config=None, logger=None):
    """
    Check whether a URL is a Mastodon toot by asking the instance's API.

    Any failure (non-numeric id, unreachable host, non-JSON answer) means
    "not a toot".
    """

    def log(message):
        if logger:
            logger(message)

    config = resolve_config(config)

    trimmed = url.rstrip('/')
    toot_id = trimmed.rsplit('/', 1)[-1]
    if not toot_id.isdigit():
        return False

    try:
        host = urlparse(trimmed).hostname
    except ValueError:
        return False
    if not host:
        return False

    api_url = f'https://{host}/api/v1/statuses/{toot_id}'
    log(f'Asking {host} for status info of {toot_id}')

    try:
        response = requests.get(
            api_url,
            headers={'User-Agent': config.user_agent},
            timeout=MASTODON_CHECK_TIMEOUT,
        )
        response.json()
    except (requests.RequestException, ValueError) as e:
        log(f'Got error from API check: {e}')
        return False

    return True


def download_mastodon(download_dir, url, config=None, logger=None):
    """Toots are handled exactly like tweets"""
    return download_with_screenshot_fallback(download_dir, url, config=config, logger=logger)


# Tumblr


def is_tumblr_post(url):
    return TUMBLR_URL_MATCH.match(url) is not None


def download_tumblr(download_dir, url, config=None, logger=None):
    return download_with_screenshot_fallback(download_dir, url, config=config, logger=logger)


# Reddit


def is_reddit_image_url(url):
    try:
        parsed = urlparse(url)
        return parsed.scheme in ('http', 'https') and parsed.hostname in REDDIT_IMAGE_HOSTS
    except ValueError:
        return False


# Imgur


def is_imgur_direct_media_url(url):
    return url.startswith('https://i.imgur.com/')


def is_imgur_url(url):
    return url.startswith('https://imgur.com/') or url.startswith('http://imgur.com/')


def parse_imgur_post_data(html):
    """
    Extract the media URLs from an imgur post page.

    The page embeds its data as `window.postDataJSON="<json string>"`: a JSON
    string literal whose content is itself JSON.

    Returns:
        list[str]

    Raises:
        AcquisitionError: If the script data is missing or malformed
    """
    soup = BeautifulSoup(html, 'html.parser')

    for script in soup.find_all('script'):
        text = (script.string or script.get_text() or '').strip()
        if not text.startswith(IMGUR_POST_DATA_PREFIX):
            continue

        raw = text[len(IMGUR_POST_DATA_PREFIX):].strip().rstrip(';')
        try:
            post_data = json.loads(json.loads(raw))
        except (TypeError, ValueError) as e:
            raise AcquisitionError(f'Failed to parse imgur script data: {e}') from e

        media = post_data.get('media') if isinstance(post_data, dict) else None
        if not isinstance(media, list):
            raise AcquisitionError('Imgur script data has no media list')

        return [m['url'] for m in media if isinstance(m, dict) and m.get('url')]

    raise AcquisitionError('Failed to get script data')


def download_imgur(download_dir, url, config=None, logger=None):
    """Download every item of an imgur post"""

    def log(message):
        if logger:
            logger(message)

    config = resolve_config(config)
    log(f'Downloading imgur post {url} media to {download_dir}')

    try:
        response = requests.get(
            url,
            headers={'User-Agent': config.user_agent},
            timeout=config.http_timeout,
        )
        response.raise_for_status()
    except requests.RequestException as e:
        raise AcquisitionError(f'Failed to send request to imgur: {e}') from e

    media_urls = parse_imgur_post_data(response.text)
    log(f'Got {len(media_urls)} media URLs from imgur')

    return download_many(download_dir, media_urls, download_generic, config=config, logger=logger)
