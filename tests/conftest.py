"""Shared test configuration and fixtures."""

import os
import tempfile

# Log files go to a scratch directory, set before the logger is first imported
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="site-digest-logs-"))

import pytest

from site_digest.models.digest import NormalizedPage
from site_digest.storage.memory_store import reset_stores
from site_digest.utils.config import CrawlLimits, reset_config

_ENV_KEYS = (
    "CRAWLER_SERVICE_URL", "CRAWLER_TOKEN", "OPENAI_API_KEY", "DIGEST_STORE_URL",
    "DIGEST_STORE_KEY", "MAX_CORPUS_PAGES", "MAX_TOTAL_CHARS", "MIN_PAGE_CHARS",
    "MAX_PAGE_CHARS", "MAX_INTERNAL_PAGES", "DEBUG", "SECRET_KEY",
)


@pytest.fixture(autouse=True)
def _clean_environment(monkeypatch):
    """Every test starts from an empty configuration and fresh stores."""
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    reset_config()
    reset_stores()
    yield
    reset_config()
    reset_stores()


@pytest.fixture
def small_limits():
    """Budgets small enough to reason about by hand."""
    return CrawlLimits(
        max_internal_pages=3,
        min_internal_page_chars=50,
        max_corpus_pages=4,
        max_total_chars=1000,
        max_page_chars=600,
        min_page_chars=100,
        min_corpus_pages=2,
        max_ai_pages=2,
        max_ai_chars=500,
        max_raw_price_facts=5,
        max_price_facts=3,
        max_pricing_text_facts=2,
        max_pricing_cards=2,
        max_card_features=5,
    )


@pytest.fixture
def make_page():
    """Factory for normalized pages with a default title."""
    def _make(url: str, content: str, title: str = "Page") -> NormalizedPage:
        return NormalizedPage(url=url, title=title, content=content)
    return _make
