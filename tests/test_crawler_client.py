"""Tests for the crawler service HTTP client."""

from unittest.mock import MagicMock

import pytest
import requests

from site_digest.extraction.crawler_client import CrawlerServiceClient
from site_digest.models.digest import PricingCard, RawPage
from site_digest.utils.config import CrawlerServiceConfig, get_config
from site_digest.utils.errors import ConfigurationError, UpstreamServiceError

SERVICE = CrawlerServiceConfig(service_url="https://crawler.internal/api/crawl", auth_token="s3cret")


def _response(status=200, payload=None, json_error=False):
    response = MagicMock()
    response.status_code = status
    response.ok = 200 <= status < 300
    if json_error:
        response.json.side_effect = ValueError("No JSON object could be decoded")
    else:
        response.json.return_value = payload
    return response


def _client(response=None, error=None):
    session = MagicMock()
    session.post.return_value = response
    if error is not None:
        session.post.side_effect = error
    return CrawlerServiceClient(SERVICE, session=session), session


class TestCrawl:
    def test_successful_crawl_returns_raw_pages(self):
        payload = {
            'success': True,
            'root': 'https://example.com/',
            'pagesCount': 2,
            'pages': [
                {'url': 'https://example.com/', 'title': 'Home', 'text': 'Welcome'},
                {'url': 'https://example.com/ceni', 'title': None, 'text': 'Цени'},
            ],
        }
        client, session = _client(_response(payload=payload))

        pages = client.crawl('https://example.com/', 12)

        assert pages == [
            RawPage(url='https://example.com/', title='Home', text='Welcome'),
            RawPage(url='https://example.com/ceni', title='', text='Цени'),
        ]
        sent = session.post.call_args
        assert sent.args[0] == SERVICE.service_url
        assert sent.kwargs['json'] == {'url': 'https://example.com/', 'maxPages': 12, 'token': 's3cret'}
        assert sent.kwargs['timeout'] == SERVICE.request_timeout_seconds

    def test_pricing_cards_are_parsed(self):
        card = {'title': 'Basic', 'price_text': '49 лв', 'period': 'monthly', 'badge': '',
                'features': ['Хостинг'], 'source_url': 'https://example.com/ceni'}
        payload = {'success': True, 'pages': [
            {'url': 'https://example.com/ceni', 'title': 'Цени', 'text': '49 лв', 'pricingCards': [card]},
        ]}
        client, _ = _client(_response(payload=payload))

        page = client.crawl('https://example.com/', 12)[0]

        assert page.pricing_cards == (PricingCard(title='Basic', price_text='49 лв', period='monthly',
                                                  features=('Хостинг',), source_url='https://example.com/ceni'),)

    def test_non_2xx_status(self):
        client, _ = _client(_response(status=401, payload={'success': False, 'error': 'Unauthorized'}))

        with pytest.raises(UpstreamServiceError) as exc_info:
            client.crawl('https://example.com/', 12)

        assert exc_info.value.status_code == 401
        assert 'Unauthorized' in exc_info.value.message

    def test_success_false(self):
        client, _ = _client(_response(payload={'success': False, 'error': 'Root page could not be rendered'}))

        with pytest.raises(UpstreamServiceError, match='Root page could not be rendered'):
            client.crawl('https://example.com/', 12)

    @pytest.mark.parametrize('payload', [
        {'success': True},
        {'success': True, 'pages': 'nope'},
        {'success': True, 'pages': [{'title': 'no url'}]},
        ['not', 'a', 'dict'],
        {'success': True, 'pages': [{'url': 'https://example.com/', 'pricingCards': 'nope'}]},
    ])
    def test_malformed_payload(self, payload):
        client, _ = _client(_response(payload=payload))
        with pytest.raises(UpstreamServiceError):
            client.crawl('https://example.com/', 12)

    def test_invalid_json(self):
        client, _ = _client(_response(json_error=True))
        with pytest.raises(UpstreamServiceError, match='not valid JSON'):
            client.crawl('https://example.com/', 12)

    def test_network_error(self):
        client, _ = _client(error=requests.ConnectionError('connection refused'))
        with pytest.raises(UpstreamServiceError, match='request failed'):
            client.crawl('https://example.com/', 12)


class TestConfiguration:
    def test_missing_service_settings_raise_configuration_error(self):
        with pytest.raises(ConfigurationError) as exc_info:
            CrawlerServiceClient()
        assert 'CRAWLER_SERVICE_URL' in exc_info.value.message
        assert 'CRAWLER_TOKEN' in exc_info.value.message

    def test_reads_service_settings_from_environment(self, monkeypatch):
        monkeypatch.setenv('CRAWLER_SERVICE_URL', 'https://crawler.example/api/crawl')
        monkeypatch.setenv('CRAWLER_TOKEN', 'tok')

        client = CrawlerServiceClient()

        assert client.service_config.service_url == 'https://crawler.example/api/crawl'
        assert client.service_config.auth_token == 'tok'
        assert get_config().crawler is client.service_config
