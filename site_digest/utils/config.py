import os
from typing import Dict, Any, Optional
from dataclasses import dataclass

from dotenv import load_dotenv

from site_digest.utils.errors import ConfigurationError

# Load environment variables from .env file
load_dotenv()


@dataclass(frozen=True)
class CrawlLimits:
    """Page caps and character ceilings shared by crawler, ranker, pricing and summarizer"""
    max_internal_pages: int = 12
    min_internal_page_chars: int = 500
    max_corpus_pages: int = 40
    max_total_chars: int = 280000
    max_page_chars: int = 60000
    min_page_chars: int = 200
    min_corpus_pages: int = 2
    max_ai_pages: int = 22
    max_ai_chars: int = 220000
    max_raw_price_facts: int = 200
    max_price_facts: int = 160
    max_pricing_text_facts: int = 80
    max_pricing_cards: int = 12
    max_card_features: int = 30


@dataclass(frozen=True)
class BrowserConfig:
    """Timings for the headless browser and the auto-expand heuristic"""
    headless: bool = True
    viewport_width: int = 1280
    viewport_height: int = 720
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
    )
    navigation_timeout_ms: int = 45000
    initial_settle_ms: int = 1500
    scroll_offset_px: int = 1600
    scroll_pulses: int = 5
    scroll_settle_ms: int = 700
    final_scroll_pulses: int = 3
    final_scroll_settle_ms: int = 600
    click_timeout_ms: int = 1500
    click_settle_ms: int = 200
    max_clicks_per_selector: int = 25


@dataclass
class CrawlerServiceConfig:
    """Remote crawler service the digest pipeline calls"""
    service_url: str
    auth_token: str
    request_timeout_seconds: int = 300


@dataclass
class APIConfig:
    """Configuration for the summarizer API"""
    openai_api_key: str
    openai_api_base: str
    openai_model: str = "gpt-4o-mini"
    max_tokens: int = 4000
    temperature: float = 0.2


@dataclass
class StoreConfig:
    """Optional REST table used to persist digests"""
    rest_url: Optional[str] = None
    rest_key: Optional[str] = None
    table: str = "site_digests"


@dataclass
class AppConfig:
    """Main application configuration"""
    secret_key: str
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 10000
    cors_origins: str = "*"


class ConfigManager:
    """Centralized configuration management"""

    def __init__(self):
        self._limits = None
        self._browser = None
        self._crawler = None
        self._api_config = None
        self._store = None
        self._app_config = None

    @property
    def limits(self) -> CrawlLimits:
        """Get crawl and budget limits"""
        if self._limits is None:
            self._limits = CrawlLimits(
                max_internal_pages=int(os.getenv('MAX_INTERNAL_PAGES', '12')),
                max_corpus_pages=int(os.getenv('MAX_CORPUS_PAGES', '40')),
                max_total_chars=int(os.getenv('MAX_TOTAL_CHARS', '280000')),
                max_page_chars=int(os.getenv('MAX_PAGE_CHARS', '60000')),
                min_page_chars=int(os.getenv('MIN_PAGE_CHARS', '200')),
                max_ai_pages=int(os.getenv('MAX_AI_PAGES', '22')),
                max_ai_chars=int(os.getenv('MAX_AI_CHARS', '220000')),
            )
        return self._limits

    @property
    def browser(self) -> BrowserConfig:
        """Get browser configuration"""
        if self._browser is None:
            self._browser = BrowserConfig(
                headless=os.getenv('BROWSER_HEADLESS', 'true').lower() == 'true',
                navigation_timeout_ms=int(os.getenv('NAVIGATION_TIMEOUT_MS', '45000')),
                click_timeout_ms=int(os.getenv('CLICK_TIMEOUT_MS', '1500')),
            )
        return self._browser

    @property
    def crawler(self) -> CrawlerServiceConfig:
        """Get crawler service configuration"""
        if self._crawler is None:
            self._crawler = CrawlerServiceConfig(
                service_url=os.getenv('CRAWLER_SERVICE_URL', ''),
                auth_token=os.getenv('CRAWLER_TOKEN', ''),
                request_timeout_seconds=int(os.getenv('CRAWLER_REQUEST_TIMEOUT', '300')),
            )
        return self._crawler

    @property
    def api(self) -> APIConfig:
        """Get API configuration"""
        if self._api_config is None:
            self._api_config = APIConfig(
                openai_api_key=os.getenv('OPENAI_API_KEY', ''),
                openai_api_base=os.getenv('OPENAI_API_BASE', 'https://api.openai.com/v1'),
                openai_model=os.getenv('OPENAI_MODEL', 'gpt-4o-mini'),
                max_tokens=int(os.getenv('MAX_TOKENS', '4000')),
                temperature=float(os.getenv('TEMPERATURE', '0.2'))
            )
        return self._api_config

    @property
    def store(self) -> StoreConfig:
        """Get persistence configuration"""
        if self._store is None:
            self._store = StoreConfig(
                rest_url=os.getenv('DIGEST_STORE_URL') or None,
                rest_key=os.getenv('DIGEST_STORE_KEY') or None,
                table=os.getenv('DIGEST_STORE_TABLE', 'site_digests'),
            )
        return self._store

    @property
    def app(self) -> AppConfig:
        """Get application configuration"""
        if self._app_config is None:
            self._app_config = AppConfig(
                secret_key=os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production'),
                debug=os.getenv('DEBUG', 'false').lower() == 'true',
                host=os.getenv('HOST', '0.0.0.0'),
                port=int(os.getenv('PORT', '10000')),
                cors_origins=os.getenv('CORS_ORIGINS', '*')
            )
        return self._app_config

    def require_crawler(self) -> CrawlerServiceConfig:
        """Return the crawler service config or raise if an endpoint/secret is missing"""
        crawler = self.crawler
        missing = []
        if not crawler.service_url:
            missing.append('CRAWLER_SERVICE_URL')
        if not crawler.auth_token:
            missing.append('CRAWLER_TOKEN')
        if missing:
            raise ConfigurationError(f"Missing required configuration: {', '.join(missing)}")
        return crawler

    def validate_config(self) -> Dict[str, Any]:
        """Validate configuration and return any issues"""
        issues = []

        if not self.crawler.service_url:
            issues.append("CRAWLER_SERVICE_URL is not set")
        if not self.crawler.auth_token:
            issues.append("CRAWLER_TOKEN is not set")

        # Validate app configuration
        if self.app.secret_key == 'dev-secret-key-change-in-production' and not self.app.debug:
            issues.append("SECRET_KEY should be changed in production")

        return {
            'valid': len(issues) == 0,
            'issues': issues,
            'config_summary': {
                'crawler': {
                    'has_service_url': bool(self.crawler.service_url),
                    'has_token': bool(self.crawler.auth_token),
                },
                'api': {
                    'openai_model': self.api.openai_model,
                    'has_openai_key': bool(self.api.openai_api_key),
                    'summarization_enabled': bool(self.api.openai_api_key),
                },
                'limits': {
                    'max_corpus_pages': self.limits.max_corpus_pages,
                    'max_total_chars': self.limits.max_total_chars,
                    'max_ai_chars': self.limits.max_ai_chars,
                },
                'store': {
                    'backend': 'rest' if self.store.rest_url and self.store.rest_key else 'memory',
                },
                'app': {
                    'debug': self.app.debug,
                    'host': self.app.host,
                    'port': self.app.port
                }
            }
        }


# Global configuration instance
config = ConfigManager()

def get_config() -> ConfigManager:
    """Get the global configuration instance"""
    return config

def reset_config() -> None:
    """Drop cached sections so the next access re-reads the environment"""
    global config
    config = ConfigManager()
