"""
Heuristic price extraction.

Two layered patterns run over each page's normalized text: a structured
"<amount> <currency>" match with surrounding context as its label, and the
"<noun> ... от <amount> <currency>" starting-from idiom. Pages without any
price indicator are skipped before either pattern runs.

Pricing cards come from the rendered layout instead: the renderer lifts
every price-bearing card block out of the DOM, and the functions at the end
of this module turn those candidates into PricingCard records, split into
one-off packages and monthly installment plans.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from site_digest.models.digest import NormalizedPage, PriceFact, PricingCard, RawPage
from site_digest.utils.config import CrawlLimits

# Grouped thousands ("1 200", "1.200,50") are tried before plain amounts
_AMOUNT = (
    r"(?<!\d)"
    r"(\d{1,3}(?:[ \u00a0.]\d{3})+(?:,\d{1,2})?|\d{1,7}(?:[.,]\d{1,2})?)"
)
_CURRENCY = r"(лв\.?|лева|евро|eur|€)(?![A-Za-zА-Яа-я])"

CURRENCY_PATTERN = re.compile(_AMOUNT + r"\s*" + _CURRENCY, re.IGNORECASE)

FROM_PRICE_PATTERN = re.compile(
    r"(?:нощувк\w*|пакет\w*|стая|стаи|апартамент\w*|престой|почивк\w*|оферт\w*|"
    r"package\w*|room\w*|stay\w*|night\w*)"
    r"[^\n]{0,80}?\bот\s*" + _AMOUNT + r"\s*" + _CURRENCY,
    re.IGNORECASE,
)

_WS_RE = re.compile(r"\s+")
_GROUPED_AMOUNT_RE = re.compile(r"^\d{1,3}(?:[ \u00a0.]\d{3})+(?:,\d{1,2})?$")
_GROUP_SEPARATOR_RE = re.compile(r"[ \u00a0.]")

# Card price tokens: also BGN/USD, which page text rarely spells out
CARD_MONEY_PATTERN = re.compile(
    _AMOUNT + r"\s*(лв\.?|лева|bgn|евро|eur|€|\$)(?![A-Za-zА-Яа-я])",
    re.IGNORECASE,
)
ON_REQUEST_RE = re.compile(r"по договаряне", re.IGNORECASE)
PRICE_ON_REQUEST = "По договаряне"
_MONTHLY_RE = re.compile(r"месец", re.IGNORECASE)
_ONE_TIME_RE = re.compile(r"еднократ|one[-\s]?time", re.IGNORECASE)
_BADGE_RE = re.compile(r"най-популярен|популярен|специална оферта", re.IGNORECASE)
_PER_MONTH_SUFFIX_RE = re.compile(r"/\s*месец", re.IGNORECASE)

MAX_CARD_TITLE_CHARS = 80
MAX_BADGE_CHARS = 40
MIN_FEATURE_CHARS = 3
MAX_FEATURE_CHARS = 140

CURRENCY_CODES = {
    "лв": "BGN",
    "лв.": "BGN",
    "лева": "BGN",
    "евро": "EUR",
    "eur": "EUR",
    "€": "EUR",
}


@dataclass(frozen=True)
class PricingRules:
    """Indicator tokens plus the two extraction patterns and their per-page limits"""
    indicators: Tuple[str, ...]
    currency_pattern: re.Pattern = CURRENCY_PATTERN
    from_price_pattern: re.Pattern = FROM_PRICE_PATTERN
    currency_limit: int = 60
    from_price_limit: int = 80
    context_chars: int = 55


DEFAULT_PRICING = PricingRules(
    indicators=(
        "price", "pricing", "cost", "rate", "night", "per person", "package",
        "цена", "цени", "ценоразпис", "нощувк", "на човек", "пакет",
        "лв", "лева", "евро", "eur", "€",
    ),
)


def has_price_indicator(content: str, rules: PricingRules = DEFAULT_PRICING) -> bool:
    lowered = (content or "").lower()
    return any(token in lowered for token in rules.indicators)


def normalize_currency(token: str) -> Optional[str]:
    return CURRENCY_CODES.get(token.strip().lower())


def normalize_amount(amount: str) -> str:
    """Drop thousands grouping and use a comma as the decimal separator"""
    amount = amount.strip()
    if _GROUPED_AMOUNT_RE.match(amount):
        amount = _GROUP_SEPARATOR_RE.sub("", amount)
    return amount.replace(".", ",")


def _collapse(text: str) -> str:
    return _WS_RE.sub(" ", text).strip()


def extract_prices(content: str, url: str, title: str,
                   rules: PricingRules = DEFAULT_PRICING) -> List[PriceFact]:
    """All price facts found in one page, pattern 1 results before pattern 2"""
    if not has_price_indicator(content, rules):
        return []

    facts: List[PriceFact] = []

    count = 0
    for match in rules.currency_pattern.finditer(content):
        if count >= rules.currency_limit:
            break
        currency = normalize_currency(match.group(2))
        if currency is None:
            continue
        start = max(0, match.start() - rules.context_chars)
        end = min(len(content), match.end() + rules.context_chars)
        facts.append(PriceFact(
            label=_collapse(content[start:end]),
            amount=normalize_amount(match.group(1)),
            currency=currency,
            source_url=url,
            source_title=title,
        ))
        count += 1

    count = 0
    for match in rules.from_price_pattern.finditer(content):
        if count >= rules.from_price_limit:
            break
        currency = normalize_currency(match.group(2))
        if currency is None:
            continue
        facts.append(PriceFact(
            label=_collapse(match.group(0)),
            amount=normalize_amount(match.group(1)),
            currency=currency,
            source_url=url,
            source_title=title,
        ))
        count += 1

    return facts


def dedupe_facts(facts: Iterable[PriceFact]) -> List[PriceFact]:
    """First occurrence of each (label, amount, currency) key wins"""
    seen = set()
    unique: List[PriceFact] = []
    for fact in facts:
        if fact.dedup_key in seen:
            continue
        seen.add(fact.dedup_key)
        unique.append(fact)
    return unique


def collect_price_facts(pages: Iterable[NormalizedPage], limits: Optional[CrawlLimits] = None,
                        rules: PricingRules = DEFAULT_PRICING) -> List[PriceFact]:
    """Price facts across the corpus in corpus order, deduplicated and capped"""
    limits = limits or CrawlLimits()
    raw: List[PriceFact] = []
    for page in pages:
        raw.extend(extract_prices(page.content, page.url, page.title, rules))
        if len(raw) >= limits.max_raw_price_facts:
            raw = raw[: limits.max_raw_price_facts]
            break
    return dedupe_facts(raw)[: limits.max_price_facts]


def render_pricing_text(facts: List[PriceFact], limit: int = 80) -> str:
    """Plain-text pricing block for the summarizer, one fact per line"""
    lines = []
    for fact in facts[:limit]:
        source = fact.source_title or fact.source_url
        lines.append(f"- {fact.amount} {fact.currency}: {fact.label} ({source})")
    return "\n".join(lines)


def card_period(text: str) -> Optional[str]:
    """'monthly', 'one_time' or None, from the card's own wording"""
    if _MONTHLY_RE.search(text):
        return "monthly"
    if _ONE_TIME_RE.search(text):
        return "one_time"
    return None


def card_price_text(text: str) -> str:
    match = CARD_MONEY_PATTERN.search(text)
    if match:
        return _collapse(match.group(0))
    if ON_REQUEST_RE.search(text):
        return PRICE_ON_REQUEST
    return ""


def _card_badge(badge: str, text: str) -> str:
    badge = _collapse(badge or "")
    if badge and len(badge) <= MAX_BADGE_CHARS:
        return badge
    match = _BADGE_RE.search(text)
    return match.group(0) if match else ""


def _card_features(items: Sequence[Any], limit: int) -> Tuple[str, ...]:
    features: List[str] = []
    for item in items or ():
        feature = _collapse(str(item))
        if MIN_FEATURE_CHARS <= len(feature) <= MAX_FEATURE_CHARS and feature not in features:
            features.append(feature)
    return tuple(features[:limit])


def build_pricing_cards(candidates: Iterable[Dict[str, Any]], url: str,
                        limits: Optional[CrawlLimits] = None) -> List[PricingCard]:
    """Turn the renderer's raw card blocks ({title, text, badge, features}) into PricingCards.

    Blocks without a title or without a price (or "по договаряне") are
    dropped; within one page the first card per (title, price, period) wins.
    """
    limits = limits or CrawlLimits()
    cards: List[PricingCard] = []
    seen = set()
    for candidate in candidates:
        if not isinstance(candidate, dict):
            continue
        title = _collapse(str(candidate.get('title') or ''))
        text = _collapse(str(candidate.get('text') or ''))
        if not title or len(title) > MAX_CARD_TITLE_CHARS:
            continue
        price_text = card_price_text(text)
        if not price_text:
            continue
        card = PricingCard(
            title=title,
            price_text=price_text,
            period=card_period(text),
            badge=_card_badge(str(candidate.get('badge') or ''), text),
            features=_card_features(candidate.get('features') or (), limits.max_card_features),
            source_url=url,
        )
        if card.dedup_key in seen:
            continue
        seen.add(card.dedup_key)
        cards.append(card)
    return cards


def is_installment_plan(card: PricingCard) -> bool:
    return card.period == "monthly" or bool(_MONTHLY_RE.search(f"{card.title} {card.price_text}"))


def split_pricing_cards(cards: Iterable[PricingCard],
                        limit: int = 12) -> Tuple[List[PricingCard], List[PricingCard]]:
    """(pricing_cards, installment_plans), each capped at limit.

    Installment plan titles lose their "/ месец" suffix.
    """
    pricing_cards: List[PricingCard] = []
    installment_plans: List[PricingCard] = []
    for card in cards:
        if is_installment_plan(card):
            title = _collapse(_PER_MONTH_SUFFIX_RE.sub("", card.title)) or card.title
            installment_plans.append(PricingCard(
                title=title,
                price_text=card.price_text,
                period=card.period,
                badge=card.badge,
                features=card.features,
                source_url=card.source_url,
            ))
        else:
            pricing_cards.append(card)
    return pricing_cards[:limit], installment_plans[:limit]


def collect_pricing_cards(pages: Iterable[RawPage],
                          limits: Optional[CrawlLimits] = None) -> Tuple[List[PricingCard], List[PricingCard]]:
    """Cards of every crawled page in crawl order, deduplicated site-wide, then split"""
    limits = limits or CrawlLimits()
    unique: List[PricingCard] = []
    seen = set()
    for page in pages:
        for card in page.pricing_cards:
            if card.dedup_key in seen:
                continue
            seen.add(card.dedup_key)
            unique.append(card)
    return split_pricing_cards(unique, limits.max_pricing_cards)


def render_pricing_cards_text(pricing_cards: List[PricingCard],
                              installment_plans: List[PricingCard]) -> str:
    """Plain-text block of packages and installment plans, one card per line"""
    lines = []
    for heading, cards in (("PACKAGES", pricing_cards), ("INSTALLMENT PLANS", installment_plans)):
        if not cards:
            continue
        lines.append(f"{heading}:")
        for card in cards:
            line = f"- {card.title}: {card.price_text}"
            if card.badge:
                line += f" [{card.badge}]"
            if card.features:
                line += " | " + "; ".join(card.features)
            lines.append(line)
    return "\n".join(lines)
