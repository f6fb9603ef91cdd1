"""Tests for the digest pipeline with stubbed collaborators."""

from unittest.mock import MagicMock

import pytest

from site_digest.extraction.summarizer import SummaryResult
from site_digest.models.digest import DigestStatus, PricingCard, RawPage
from site_digest.orchestration.pipeline import DigestPipeline
from site_digest.storage.memory_store import MemoryDigestStore
from site_digest.utils.config import CrawlLimits
from site_digest.utils.errors import ConfigurationError, PersistenceError, UpstreamServiceError

ROOT = "https://hotel-example.bg/"

HOME_TEXT = "\n".join(
    ["Хотел Изгрев е семеен хотел на първа линия.",
     "Използваме бисквитки, за да подобрим услугите си."]
    + [f"Стая {i}: просторна, с балкон, климатик и изглед към морето." for i in range(1, 11)]
    + ["Спа център, открит басейн и ресторант с местна кухня."] * 10
)

PRICES_TEXT = "\n".join([
    "Нощувка от 45 лв",
    "Двойна стая - 90 лв на нощ със закуска",
    "Пакет СПА уикенд за двама от 320 лв",
    "Апартамент с джакузи: 150 EUR",
]) + "\n" + "Всички цени са с включен ДДС и туристически данък. " * 8


def _pipeline(raw_pages=None, crawl_error=None, summary=None, summary_error=None,
              persistence=None, limits=None):
    crawler = MagicMock()
    crawler.crawl.return_value = raw_pages if raw_pages is not None else []
    if crawl_error is not None:
        crawler.crawl.side_effect = crawl_error

    summarizer = MagicMock()
    summarizer.summarize.return_value = summary or SummaryResult(
        summary="COMPANY_NAME: Хотел Изгрев\nСемеен хотел.", company_name="Хотел Изгрев"
    )
    if summary_error is not None:
        summarizer.summarize.side_effect = summary_error

    store = MemoryDigestStore()
    pipeline = DigestPipeline(
        crawler_client=crawler,
        summarizer=summarizer,
        session_store=store,
        persistence=persistence or store,
        limits=limits or CrawlLimits(),
    )
    return pipeline, crawler, summarizer, store


def _site():
    return [
        RawPage(url=ROOT, title="Хотел Изгрев", text=HOME_TEXT),
        RawPage(url=ROOT + "ceni", title="Цени", text=PRICES_TEXT),
        RawPage(url=ROOT + "privacy-policy", title="Политика", text="Лични данни. " * 100),
    ]


class TestSuccessfulDigest:
    def test_full_run(self):
        pipeline, crawler, summarizer, store = _pipeline(raw_pages=_site())

        result = pipeline.run(ROOT, 12, session_id="sess-1")

        assert result.status == DigestStatus.READY
        assert result.success
        assert result.session_id == "sess-1"
        assert [p.url for p in result.pages] == [ROOT + "ceni", ROOT]
        assert result.language == "bg"
        assert result.company_name == "Хотел Изгрев"
        assert ("45", "BGN") in {(f.amount, f.currency) for f in result.price_facts}
        assert "45 BGN" in result.pricing_text
        crawler.crawl.assert_called_once_with(ROOT, 12, session_id="sess-1")
        assert store.get("sess-1")["status"] == "ready"

    def test_boilerplate_removed_before_ranking(self):
        pipeline, _, _, _ = _pipeline(raw_pages=_site())
        result = pipeline.run(ROOT, 12)
        home = next(p for p in result.pages if p.url == ROOT)
        assert "бисквитки" not in home.content
        assert home.content.count("Спа център") == 1

    def test_summarizer_receives_pricing_and_pages(self):
        pipeline, _, summarizer, _ = _pipeline(raw_pages=_site())
        pipeline.run(ROOT, 12)
        context = summarizer.summarize.call_args.args[0]
        assert context.startswith("PRICING FACTS:")
        assert "PRICING: Цени" in context

    def test_pricing_cards_split_and_rendered(self):
        monthly = PricingCard(title="Уикенд / месец", price_text="99 лв", period="monthly", source_url=ROOT + "ceni")
        package = PricingCard(title="СПА уикенд", price_text="320 лв", badge="Популярен", source_url=ROOT + "ceni")
        legal = PricingCard(title="Такса", price_text="5 лв", source_url=ROOT + "privacy-policy")
        site = _site()
        site[1] = RawPage(url=ROOT + "ceni", title="Цени", text=PRICES_TEXT, pricing_cards=(monthly, package))
        site[2] = RawPage(url=site[2].url, title=site[2].title, text=site[2].text, pricing_cards=(legal,))
        pipeline, _, summarizer, store = _pipeline(raw_pages=site)

        result = pipeline.run(ROOT, 12, session_id="sess-cards")

        assert [c.title for c in result.pricing_cards] == ["СПА уикенд"]
        assert [c.title for c in result.installment_plans] == ["Уикенд"]
        assert "- СПА уикенд: 320 лв [Популярен]" in result.pricing_text
        assert "INSTALLMENT PLANS:" in summarizer.summarize.call_args.args[0]
        assert store.get("sess-cards")["installment_plans"][0]["price_text"] == "99 лв"

    def test_summarizer_failure_degrades_to_empty_summary(self):
        pipeline, _, _, _ = _pipeline(raw_pages=_site(),
                                      summary_error=UpstreamServiceError("summarizer", "rate limited", 429))
        result = pipeline.run(ROOT, 12)

        assert result.status == DigestStatus.READY
        assert result.summary == ""
        assert result.company_name is None


class TestFailedDigest:
    def test_single_page_corpus_is_too_small(self):
        pipeline, _, summarizer, store = _pipeline(raw_pages=_site()[:1])

        result = pipeline.run(ROOT, 12, session_id="tiny")

        assert result.status == DigestStatus.FAILED
        assert result.error_category == "crawl_too_small"
        assert "at least 2" in result.error
        summarizer.summarize.assert_not_called()
        assert store.get("tiny")["success"] is False

    def test_crawler_service_failure(self):
        pipeline, _, _, _ = _pipeline(crawl_error=UpstreamServiceError("crawler", "HTTP 500", 500))
        result = pipeline.run(ROOT, 12)
        assert result.status == DigestStatus.FAILED
        assert result.error_category == "upstream"

    def test_missing_configuration(self):
        pipeline, _, _, _ = _pipeline(crawl_error=ConfigurationError("Missing required configuration: CRAWLER_TOKEN"))
        result = pipeline.run(ROOT, 12)
        assert result.error_category == "configuration"
        assert "CRAWLER_TOKEN" in result.error

    def test_configuration_checked_when_no_client_given(self):
        store = MemoryDigestStore()
        pipeline = DigestPipeline(session_store=store, persistence=store)
        result = pipeline.run(ROOT, 12)
        assert result.error_category == "configuration"

    def test_persistence_failure_is_reported_separately(self):
        persistence = MagicMock()
        persistence.save.side_effect = PersistenceError("Digest store unreachable")
        pipeline, _, _, store = _pipeline(raw_pages=_site(), persistence=persistence)

        result = pipeline.run(ROOT, 12, session_id="p1")

        assert result.status == DigestStatus.FAILED
        assert result.error_category == "persistence"
        # corpus is still available to pollers
        assert store.get("p1")["pages_count"] == 2

    def test_unexpected_error_is_contained(self):
        pipeline, _, _, _ = _pipeline(crawl_error=RuntimeError("boom"))
        result = pipeline.run(ROOT, 12)
        assert result.status == DigestStatus.FAILED
        assert result.error_category == "internal"


class TestNormalizePages:
    @pytest.mark.parametrize("text", [HOME_TEXT, PRICES_TEXT])
    def test_normalized_content_is_stable(self, text):
        pipeline, _, _, _ = _pipeline()
        once = pipeline.normalize_pages([RawPage(url=ROOT, title="t", text=text)])[0].content
        twice = pipeline.normalize_pages([RawPage(url=ROOT, title="t", text=once)])[0].content
        assert once == twice
