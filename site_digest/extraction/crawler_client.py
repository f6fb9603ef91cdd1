import time
from typing import List, Optional

import requests

from site_digest.models.digest import PricingCard, RawPage
from site_digest.utils.config import CrawlerServiceConfig, get_config
from site_digest.utils.errors import UpstreamServiceError
from site_digest.utils.logging_config import get_logger

SERVICE_NAME = "crawler"


class CrawlerServiceClient:
    """HTTP client for the /api/crawl endpoint of a crawler service"""

    def __init__(self, service_config: Optional[CrawlerServiceConfig] = None,
                 session: Optional[requests.Session] = None):
        self.service_config = service_config or get_config().require_crawler()
        self.session = session or requests.Session()
        self.logger = get_logger()

    def crawl(self, url: str, max_pages: int, session_id: Optional[str] = None) -> List[RawPage]:
        """Ask the crawler service for the raw pages of url. Raises UpstreamServiceError."""
        start_time = time.time()
        payload = {
            'url': url,
            'maxPages': max_pages,
            'token': self.service_config.auth_token,
        }
        try:
            response = self.session.post(
                self.service_config.service_url,
                json=payload,
                timeout=self.service_config.request_timeout_seconds,
            )
        except requests.RequestException as e:
            self.logger.log_api_call(session_id, SERVICE_NAME, time.time() - start_time, False, str(e))
            raise UpstreamServiceError(SERVICE_NAME, f"request failed: {e}") from e

        duration = time.time() - start_time
        if not response.ok:
            error = self._error_message(response)
            self.logger.log_api_call(session_id, SERVICE_NAME, duration, False, error)
            raise UpstreamServiceError(SERVICE_NAME, error, status_code=response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            self.logger.log_api_call(session_id, SERVICE_NAME, duration, False, "invalid JSON")
            raise UpstreamServiceError(SERVICE_NAME, "response is not valid JSON",
                                       status_code=response.status_code) from e

        if not isinstance(data, dict) or not data.get('success'):
            error = data.get('error') if isinstance(data, dict) else None
            self.logger.log_api_call(session_id, SERVICE_NAME, duration, False, error or "unsuccessful")
            raise UpstreamServiceError(SERVICE_NAME, error or "crawl was not successful",
                                       status_code=response.status_code)

        pages = self._parse_pages(data.get('pages'))
        self.logger.log_api_call(session_id, SERVICE_NAME, duration, True)
        return pages

    @staticmethod
    def _parse_pages(items) -> List[RawPage]:
        if not isinstance(items, list):
            raise UpstreamServiceError(SERVICE_NAME, "payload has no pages list")
        pages = []
        for item in items:
            if not isinstance(item, dict) or not isinstance(item.get('url'), str):
                raise UpstreamServiceError(SERVICE_NAME, "malformed page entry in payload")
            cards = item.get('pricingCards') or []
            if not isinstance(cards, list) or not all(isinstance(card, dict) for card in cards):
                raise UpstreamServiceError(SERVICE_NAME, "malformed pricingCards in payload")
            pages.append(RawPage(
                url=item['url'],
                title=str(item.get('title') or ''),
                text=str(item.get('text') or ''),
                pricing_cards=tuple(PricingCard.from_dict(card) for card in cards),
            ))
        return pages

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            body = response.json()
            if isinstance(body, dict) and body.get('error'):
                return f"HTTP {response.status_code}: {body['error']}"
        except ValueError:
            pass
        return f"HTTP {response.status_code}"
