"""
Tests for service/sites.py
"""

import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import requests
from django.test import TestCase

from grabber.service import sites
from grabber.service.config import PipelineConfig
from grabber.service.errors import AcquisitionError

CONFIG = PipelineConfig(memes_dir=Path('/tmp/memes'), cache_dir=Path('/tmp/cache'))


def json_response(payload):
    response = MagicMock()
    response.json.return_value = payload
    return response


def imgur_page(media):
    post_data = json.dumps({'id': 'abc', 'media': media})
    return (
        '<html><head>'
        '<script>window.somethingElse = 1;</script>'
        f'<script>window.postDataJSON={json.dumps(post_data)}</script>'
        '</head><body></body></html>'
    )


class InstagramTest(TestCase):
    """Tests for Instagram posts"""

    def test_is_instagram_post(self):
        self.assertTrue(sites.is_instagram_post('https://www.instagram.com/p/Cabc123/'))
        self.assertTrue(sites.is_instagram_post('https://instagram.com/p/Cabc123'))
        self.assertFalse(sites.is_instagram_post('https://www.instagram.com/someone/'))

    @patch('grabber.service.sites.requests.get')
    def test_single_image_post(self, mock_get):
        mock_get.return_value = json_response(
            {'data': {'shortcode_media': {'display_url': 'https://cdn/img.jpg'}}}
        )

        urls = sites.fetch_instagram_urls('https://www.instagram.com/p/Cabc123/', config=CONFIG)

        self.assertEqual(urls, ['https://cdn/img.jpg'])
        params = mock_get.call_args.kwargs['params']
        self.assertEqual(params['query_hash'], sites.INSTAGRAM_QUERY_HASH)
        self.assertEqual(json.loads(params['variables'])['shortcode'], 'Cabc123')

    @patch('grabber.service.sites.requests.get')
    def test_single_video_post_prefers_video(self, mock_get):
        mock_get.return_value = json_response(
            {
                'data': {
                    'shortcode_media': {
                        'display_url': 'https://cdn/thumb.jpg',
                        'video_url': 'https://cdn/video.mp4',
                    }
                }
            }
        )

        urls = sites.fetch_instagram_urls('https://www.instagram.com/p/X/', config=CONFIG)
        self.assertEqual(urls, ['https://cdn/video.mp4'])

    @patch('grabber.service.sites.requests.get')
    def test_sidecar_post(self, mock_get):
        """Test that every carousel item is returned, videos preferred"""
        mock_get.return_value = json_response(
            {
                'data': {
                    'shortcode_media': {
                        'edge_sidecar_to_children': {
                            'edges': [
                                {'node': {'id': '1', 'display_url': 'https://cdn/1.jpg'}},
                                {
                                    'node': {
                                        'id': '2',
                                        'display_url': 'https://cdn/2.jpg',
                                        'video_url': 'https://cdn/2.mp4',
                                    }
                                },
                            ]
                        }
                    }
                }
            }
        )

        urls = sites.fetch_instagram_urls('https://www.instagram.com/p/X/', config=CONFIG)
        self.assertEqual(urls, ['https://cdn/1.jpg', 'https://cdn/2.mp4'])

    @patch('grabber.service.sites.requests.get')
    def test_api_failure(self, mock_get):
        mock_get.side_effect = requests.ConnectionError('down')

        with self.assertRaises(AcquisitionError):
            sites.fetch_instagram_urls('https://www.instagram.com/p/X/', config=CONFIG)

    @patch('grabber.service.sites.requests.get')
    def test_missing_media(self, mock_get):
        mock_get.return_value = json_response({'data': {}})

        with self.assertRaises(AcquisitionError):
            sites.fetch_instagram_urls('https://www.instagram.com/p/X/', config=CONFIG)

    @patch('grabber.service.sites.download_many')
    @patch('grabber.service.sites.fetch_instagram_urls')
    def test_download_instagram_fans_out_to_ytdlp(self, mock_fetch, mock_many):
        mock_fetch.return_value = ['https://cdn/1.jpg', 'https://cdn/2.mp4']
        mock_many.return_value = [Path('/tmp/1.jpg'), Path('/tmp/2.mp4')]

        paths = sites.download_instagram('/tmp', 'https://www.instagram.com/p/X/', config=CONFIG)

        self.assertEqual(len(paths), 2)
        args = mock_many.call_args[0]
        self.assertEqual(args[1], ['https://cdn/1.jpg', 'https://cdn/2.mp4'])
        self.assertIs(args[2], sites.download_ytdlp)


class TwitterTest(TestCase):
    """Tests for Twitter / X"""

    def test_is_twitter_status(self):
        self.assertTrue(sites.is_twitter_status('https://twitter.com/someone/status/123'))
        self.assertTrue(sites.is_twitter_status('https://x.com/someone/status/123?s=20'))
        self.assertTrue(sites.is_twitter_status('https://www.twitter.com/someone/status/123'))
        self.assertFalse(sites.is_twitter_status('https://twitter.com/someone'))

    def test_is_twitter_media_url(self):
        self.assertTrue(sites.is_twitter_media_url('https://pbs.twimg.com/media/Fq?format=png'))
        self.assertFalse(sites.is_twitter_media_url('https://pbs.twimg.com/profile_images/1'))

    def test_strip_twitter_media_size(self):
        """Test that only the size parameter is removed"""
        self.assertEqual(
            sites.strip_twitter_media_size(
                'https://pbs.twimg.com/media/FqPFEWYWYBQ5iG3?format=png&name=small'
            ),
            'https://pbs.twimg.com/media/FqPFEWYWYBQ5iG3?format=png',
        )

    @patch('grabber.service.sites.download_ytdlp')
    def test_download_twitter_media(self, mock_ytdlp):
        mock_ytdlp.return_value = [Path('/tmp/a.png')]

        sites.download_twitter_media(
            '/tmp', 'https://pbs.twimg.com/media/A?format=jpg&name=large', config=CONFIG
        )

        self.assertEqual(mock_ytdlp.call_args[0][1], 'https://pbs.twimg.com/media/A?format=jpg')

    @patch('grabber.service.sites.download_with_screenshot_fallback')
    def test_download_twitter_uses_screenshot_chain(self, mock_chain):
        mock_chain.return_value = [Path('/tmp/a.mp4')]

        paths = sites.download_twitter('/tmp', 'https://x.com/a/status/1', config=CONFIG)

        self.assertEqual(paths, [Path('/tmp/a.mp4')])
        self.assertEqual(mock_chain.call_args[0][1], 'https://x.com/a/status/1')


class MastodonTest(TestCase):
    """Tests for Mastodon toot detection"""

    @patch('grabber.service.sites.requests.get')
    def test_toot_detected(self, mock_get):
        mock_get.return_value = json_response({'id': '109'})

        self.assertTrue(sites.is_mastodon_toot('https://mastodon.social/@someone/109', config=CONFIG))
        self.assertEqual(
            mock_get.call_args[0][0], 'https://mastodon.social/api/v1/statuses/109'
        )

    @patch('grabber.service.sites.requests.get')
    def test_non_numeric_id_skips_request(self, mock_get):
        self.assertFalse(sites.is_mastodon_toot('https://example.com/video.mp4', config=CONFIG))
        mock_get.assert_not_called()

    @patch('grabber.service.sites.requests.get')
    def test_non_json_answer(self, mock_get):
        response = MagicMock()
        response.json.side_effect = ValueError('not json')
        mock_get.return_value = response

        self.assertFalse(sites.is_mastodon_toot('https://example.com/posts/123', config=CONFIG))

    @patch('grabber.service.sites.requests.get')
    def test_unreachable_host(self, mock_get):
        mock_get.side_effect = requests.ConnectionError('down')
        self.assertFalse(sites.is_mastodon_toot('https://example.com/posts/123', config=CONFIG))


class SimpleHostTest(TestCase):
    """Tests for Tumblr, Reddit and Imgur URL matching"""

    def test_is_tumblr_post(self):
        self.assertTrue(sites.is_tumblr_post('https://www.tumblr.com/someone/123456'))
        self.assertTrue(sites.is_tumblr_post('https://tumblr.com/someone/123456/some-slug'))
        self.assertFalse(sites.is_tumblr_post('https://www.tumblr.com/someone'))

    def test_is_reddit_image_url(self):
        self.assertTrue(sites.is_reddit_image_url('https://i.redd.it/abc.jpg'))
        self.assertTrue(sites.is_reddit_image_url('https://preview.redd.it/abc.png?width=640'))
        self.assertFalse(sites.is_reddit_image_url('https://www.reddit.com/r/memes/comments/1'))

    def test_imgur_matchers(self):
        self.assertTrue(sites.is_imgur_direct_media_url('https://i.imgur.com/abc.gif'))
        self.assertFalse(sites.is_imgur_url('https://i.imgur.com/abc.gif'))
        self.assertTrue(sites.is_imgur_url('https://imgur.com/gallery/abc'))
        self.assertTrue(sites.is_imgur_url('http://imgur.com/a/abc'))


class ImgurTest(TestCase):
    """Tests for imgur posts"""

    def test_parse_imgur_post_data(self):
        html = imgur_page([{'url': 'https://i.imgur.com/1.jpg'}, {'url': 'https://i.imgur.com/2.mp4'}])
        self.assertEqual(
            sites.parse_imgur_post_data(html),
            ['https://i.imgur.com/1.jpg', 'https://i.imgur.com/2.mp4'],
        )

    def test_parse_imgur_without_script(self):
        with self.assertRaises(AcquisitionError):
            sites.parse_imgur_post_data('<html><script>var a = 1;</script></html>')

    def test_parse_imgur_malformed_script(self):
        with self.assertRaises(AcquisitionError):
            sites.parse_imgur_post_data('<script>window.postDataJSON="{broken"</script>')

    @patch('grabber.service.sites.download_many')
    @patch('grabber.service.sites.requests.get')
    def test_download_imgur_fans_out_to_generic(self, mock_get, mock_many):
        response = MagicMock()
        response.text = imgur_page([{'url': 'https://i.imgur.com/1.jpg'}])
        mock_get.return_value = response
        mock_many.return_value = [Path('/tmp/1.jpg')]

        paths = sites.download_imgur('/tmp', 'https://imgur.com/gallery/abc', config=CONFIG)

        self.assertEqual(paths, [Path('/tmp/1.jpg')])
        args = mock_many.call_args[0]
        self.assertEqual(args[1], ['https://i.imgur.com/1.jpg'])
        self.assertIs(args[2], sites.download_generic)

    @patch('grabber.service.sites.requests.get')
    def test_download_imgur_request_error(self, mock_get):
        mock_get.side_effect = requests.Timeout('slow')

        with self.assertRaises(AcquisitionError):
            sites.download_imgur('/tmp', 'https://imgur.com/gallery/abc', config=CONFIG)
