"""
Digest pipeline: crawl, normalize, rank and budget, extract prices, summarize, persist.

Page- and interaction-level failures never reach this layer. Everything that
does (configuration, crawler service, corpus too small, persistence) is
turned into a failed DigestResult with a readable message and an error
category; summarizer failures only cost the summary.
"""

import time
from typing import List, Optional

from site_digest.extraction.crawler_client import CrawlerServiceClient
from site_digest.extraction.normalizer import (
    DEFAULT_BOILERPLATE, BoilerplateRules, detect_language, normalize_text
)
from site_digest.extraction.pricing import (
    DEFAULT_PRICING, PricingRules, collect_price_facts, collect_pricing_cards,
    render_pricing_cards_text, render_pricing_text
)
from site_digest.extraction.ranker import DEFAULT_RANKING, RankingRules, is_legal_url, rank_and_budget
from site_digest.extraction.summarizer import SummarizerClient, SummaryResult, build_summary_context
from site_digest.models.digest import DigestResult, DigestStatus, NormalizedPage, RawPage
from site_digest.storage.memory_store import DigestStore, MemoryDigestStore, get_digest_store
from site_digest.storage.rest_store import get_persistence_store
from site_digest.utils.config import CrawlLimits, get_config
from site_digest.utils.errors import (
    CrawlTooSmallError, PersistenceError, SiteDigestError, UpstreamServiceError
)
from site_digest.utils.logging_config import get_logger

logger = get_logger()


class DigestPipeline:
    """Runs one digest session end to end"""

    def __init__(self, crawler_client: Optional[CrawlerServiceClient] = None,
                 summarizer: Optional[SummarizerClient] = None,
                 session_store: Optional[MemoryDigestStore] = None,
                 persistence: Optional[DigestStore] = None,
                 limits: Optional[CrawlLimits] = None,
                 boilerplate: BoilerplateRules = DEFAULT_BOILERPLATE,
                 ranking: RankingRules = DEFAULT_RANKING,
                 pricing: PricingRules = DEFAULT_PRICING):
        self._crawler_client = crawler_client
        self._summarizer = summarizer
        self._persistence = persistence
        self.session_store = session_store or get_digest_store()
        self.limits = limits or get_config().limits
        self.boilerplate = boilerplate
        self.ranking = ranking
        self.pricing = pricing

    # Collaborators are built on first use so a missing secret fails the session, not the constructor
    @property
    def crawler_client(self) -> CrawlerServiceClient:
        if self._crawler_client is None:
            self._crawler_client = CrawlerServiceClient()
        return self._crawler_client

    @property
    def summarizer(self) -> SummarizerClient:
        if self._summarizer is None:
            self._summarizer = SummarizerClient()
        return self._summarizer

    @property
    def persistence(self) -> DigestStore:
        if self._persistence is None:
            self._persistence = get_persistence_store()
        return self._persistence

    def run(self, root_url: str, max_pages: int, session_id: Optional[str] = None) -> DigestResult:
        """Execute the whole pipeline and return the final (persisted) result"""
        result = None
        if session_id:
            result = self.session_store.get_result(session_id)
        if result is None:
            result = self.session_store.create_session(root_url, session_id)
        session_id = result.session_id

        start_time = time.time()
        result.status = DigestStatus.CRAWLING
        self.session_store.save(result)

        try:
            self._build_digest(result, root_url, max_pages)
            result.status = DigestStatus.READY
            logger.info(f"Digest ready: {len(result.pages)} page(s), {len(result.price_facts)} price fact(s) "
                        f"in {time.time() - start_time:.2f} seconds", session_id=session_id, stage='SYSTEM')
        except SiteDigestError as e:
            self._fail(result, e.message, e.category, start_time)
        except Exception as e:
            logger.error(f"Unexpected pipeline error: {e}", session_id=session_id, stage='SYSTEM', exc_info=True)
            self._fail(result, str(e), "internal", start_time)

        self._persist(result, start_time)
        return result

    def _build_digest(self, result: DigestResult, root_url: str, max_pages: int) -> None:
        session_id = result.session_id

        stage_start = time.time()
        raw_pages = self.crawler_client.crawl(root_url, max_pages, session_id=session_id)
        logger.log_stage_complete(session_id, 'CRAWL', time.time() - stage_start,
                                  f"{len(raw_pages)} raw page(s)")

        stage_start = time.time()
        normalized = self.normalize_pages(raw_pages)
        result.language = detect_language("\n".join(p.content for p in normalized))
        corpus = rank_and_budget(normalized, self.limits, self.ranking)
        logger.log_stage_complete(session_id, 'RANK', time.time() - stage_start,
                                  f"{len(corpus)} page(s), {corpus.total_chars} chars, language={result.language}")
        if len(corpus) < self.limits.min_corpus_pages:
            raise CrawlTooSmallError(len(corpus), self.limits.min_corpus_pages, url=root_url)

        result.pages = corpus.pages
        result.total_chars = corpus.total_chars

        stage_start = time.time()
        result.price_facts = collect_price_facts(corpus.pages, self.limits, self.pricing)
        result.pricing_cards, result.installment_plans = collect_pricing_cards(
            [page for page in raw_pages if not is_legal_url(page.url, self.ranking)], self.limits
        )
        result.pricing_text = "\n\n".join(block for block in (
            render_pricing_text(result.price_facts, self.limits.max_pricing_text_facts),
            render_pricing_cards_text(result.pricing_cards, result.installment_plans),
        ) if block)
        logger.log_stage_complete(session_id, 'PRICING', time.time() - stage_start,
                                  f"{len(result.price_facts)} fact(s), {len(result.pricing_cards)} card(s), "
                                  f"{len(result.installment_plans)} installment plan(s)")

        context = build_summary_context(corpus, result.pricing_text, self.limits)
        summary = self._summarize(context, session_id)
        result.summary = summary.summary
        result.company_name = summary.company_name

    def normalize_pages(self, raw_pages: List[RawPage]) -> List[NormalizedPage]:
        return [
            NormalizedPage(url=page.url, title=page.title,
                           content=normalize_text(page.text, self.boilerplate))
            for page in raw_pages
        ]

    def _summarize(self, context: str, session_id: str) -> SummaryResult:
        try:
            return self.summarizer.summarize(context, session_id=session_id)
        except UpstreamServiceError as e:
            logger.warning(f"Summarization failed, continuing without summary: {e.message}",
                           session_id=session_id, stage='SUMMARIZE')
            return SummaryResult()

    def _fail(self, result: DigestResult, message: str, category: str, start_time: float) -> None:
        result.status = DigestStatus.FAILED
        result.error = message
        result.error_category = category
        logger.log_crawl_failed(result.session_id, message, duration=time.time() - start_time)

    def _persist(self, result: DigestResult, start_time: float) -> None:
        try:
            self.persistence.save(result)
        except PersistenceError as e:
            self._fail(result, e.message, e.category, start_time)
        finally:
            # Session store always holds the final state for polling
            self.session_store.save(result)
