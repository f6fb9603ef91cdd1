"""
Relevance ranking and corpus budgeting.

Pages are categorized by URL, scored by category weight plus a capped length
bonus, stable-sorted by score and then packed into the page and character
ceilings of CrawlLimits.
"""

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, List, Sequence, Tuple
from urllib.parse import unquote

from site_digest.models.digest import Category, Corpus, NormalizedPage
from site_digest.utils.config import CrawlLimits


@dataclass(frozen=True)
class RankingRules:
    """Category keyword groups (checked in order), category weights and the legal-page denylist"""
    category_patterns: Tuple[Tuple[Category, Tuple[str, ...]], ...]
    weights: Dict[Category, float]
    legal_patterns: Tuple[str, ...]
    default_weight: float = 10.0
    max_length_bonus: float = 35.0
    chars_per_point: int = 2000

    def weight(self, category: Category) -> float:
        return self.weights.get(category, self.default_weight)


DEFAULT_RANKING = RankingRules(
    category_patterns=(
        (Category.PRICING, ("pricing", "price", "tseni", "ceni", "цени", "цена", "ценоразпис")),
        (Category.PACKAGES, ("package", "paket", "пакет", "offer", "oferti", "оферт", "promo", "промо")),
        (Category.SERVICES, ("service", "uslugi", "услуг", "procedur", "процедур", "treatment")),
        (Category.ROOMS, ("room", "staya", "stai", "стая", "стаи", "apartment", "апартамент", "suite")),
        (Category.BOOKING, ("booking", "book", "reserv", "rezerv", "резерв", "запази", "appointment")),
        (Category.PRODUCTS, ("product", "produkt", "продукт", "shop", "magazin", "магазин", "catalog", "каталог")),
        (Category.FAQ, ("faq", "vaprosi", "въпроси", "questions")),
        (Category.CONTACT, ("contact", "kontakti", "контакт")),
        (Category.ABOUT, ("about", "za-nas", "за-нас", "team", "ekip", "екип")),
        (Category.BLOG, ("blog", "блог", "news", "novini", "новини", "article", "статия")),
    ),
    weights={
        Category.PRICING: 150,
        Category.PACKAGES: 140,
        Category.ROOMS: 120,
        Category.BOOKING: 110,
        Category.SERVICES: 90,
        Category.PRODUCTS: 80,
        Category.FAQ: 50,
        Category.CONTACT: 40,
        Category.ABOUT: 30,
        Category.GENERAL: 10,
        Category.BLOG: 5,
    },
    legal_patterns=(
        "privacy", "terms", "cookies", "gdpr", "legal", "impressum",
        "poveritelnost", "поверителност", "obshti-uslovia", "общи-условия",
    ),
)


@lru_cache(maxsize=64)
def _compile(keywords: Tuple[str, ...]) -> re.Pattern:
    return re.compile("|".join(re.escape(k) for k in keywords), re.IGNORECASE)


def _match_target(url: str) -> str:
    return unquote(url or "").lower()


def is_legal_url(url: str, rules: RankingRules = DEFAULT_RANKING) -> bool:
    return bool(_compile(rules.legal_patterns).search(_match_target(url)))


def categorize_url(url: str, rules: RankingRules = DEFAULT_RANKING) -> Category:
    """First matching keyword group wins; anything else is general"""
    target = _match_target(url)
    for category, keywords in rules.category_patterns:
        if _compile(keywords).search(target):
            return category
    return Category.GENERAL


def score_page(category: Category, content: str, rules: RankingRules = DEFAULT_RANKING) -> float:
    length_bonus = min(len(content) / rules.chars_per_point, rules.max_length_bonus)
    return rules.weight(category) + length_bonus


def rank_and_budget(pages: Sequence[NormalizedPage], limits: CrawlLimits,
                    rules: RankingRules = DEFAULT_RANKING) -> Corpus:
    """Build the budgeted corpus from normalized pages.

    Legal pages are dropped before anything else. Every retained page clears
    limits.min_page_chars, the corpus holds at most limits.max_corpus_pages
    pages and at most limits.max_total_chars characters of content.
    """
    candidates: List[NormalizedPage] = []
    for page in pages:
        if is_legal_url(page.url, rules):
            continue
        content = page.content[: limits.max_page_chars]
        category = categorize_url(page.url, rules)
        candidates.append(NormalizedPage(
            url=page.url,
            title=page.title,
            content=content,
            category=category,
            score=score_page(category, content, rules),
        ))

    # sorted() is stable, ties keep input order
    ranked = sorted(candidates, key=lambda p: p.score, reverse=True)

    kept: List[NormalizedPage] = []
    used = 0
    for page in ranked:
        if len(kept) >= limits.max_corpus_pages or used >= limits.max_total_chars:
            break
        if len(page.content) < limits.min_page_chars:
            continue
        remaining = limits.max_total_chars - used
        if len(page.content) > remaining:
            truncated = page.content[:remaining]
            if len(truncated) < limits.min_page_chars:
                continue
            page.content = truncated
        kept.append(page)
        used += len(page.content)

    return Corpus(pages=kept, total_chars=used)
