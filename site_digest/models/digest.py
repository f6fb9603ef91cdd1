"""
Data model for crawled pages, the budgeted corpus and extracted price facts.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class Category(Enum):
    PRICING = "pricing"
    PACKAGES = "packages"
    ROOMS = "rooms"
    BOOKING = "booking"
    SERVICES = "services"
    PRODUCTS = "products"
    CONTACT = "contact"
    FAQ = "faq"
    ABOUT = "about"
    BLOG = "blog"
    GENERAL = "general"


class DigestStatus(Enum):
    PENDING = "pending"
    CRAWLING = "crawling"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class PricingCard:
    """A price-bearing card or plan block lifted from the page layout"""
    title: str
    price_text: str
    period: Optional[str] = None
    badge: str = ""
    features: Tuple[str, ...] = ()
    source_url: str = ""

    @property
    def dedup_key(self) -> tuple:
        return (self.title, self.price_text, self.period or "")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'title': self.title,
            'price_text': self.price_text,
            'period': self.period,
            'badge': self.badge,
            'features': list(self.features),
            'source_url': self.source_url,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PricingCard':
        features = data.get('features') or ()
        return cls(
            title=str(data.get('title') or ''),
            price_text=str(data.get('price_text') or ''),
            period=data.get('period') or None,
            badge=str(data.get('badge') or ''),
            features=tuple(str(f) for f in features),
            source_url=str(data.get('source_url') or ''),
        )


@dataclass(frozen=True)
class RawPage:
    """One successfully rendered page, as handed over by the crawler"""
    url: str
    title: str
    text: str
    pricing_cards: Tuple[PricingCard, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'url': self.url,
            'title': self.title,
            'text': self.text,
            'pricingCards': [card.to_dict() for card in self.pricing_cards],
        }


@dataclass(frozen=True)
class RenderedPage:
    """Renderer output: visible text plus every outbound link"""
    url: str
    title: str
    text: str
    links: List[str] = field(default_factory=list)
    pricing_cards: Tuple[PricingCard, ...] = ()

    def to_raw_page(self) -> RawPage:
        return RawPage(url=self.url, title=self.title, text=self.text,
                       pricing_cards=self.pricing_cards)


@dataclass
class NormalizedPage:
    """A cleaned, categorized and scored page in the corpus"""
    url: str
    title: str
    content: str
    category: Category = Category.GENERAL
    score: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'url': self.url,
            'title': self.title,
            'content': self.content,
            'category': self.category.value,
            'score': self.score,
        }


@dataclass
class Corpus:
    """Pages sorted by descending relevance, within the page and character ceilings"""
    pages: List[NormalizedPage] = field(default_factory=list)
    total_chars: int = 0

    def __len__(self) -> int:
        return len(self.pages)

    def __iter__(self):
        return iter(self.pages)


@dataclass(frozen=True)
class PriceFact:
    """A currency-bearing price mention pulled out of page text"""
    label: str
    amount: str
    currency: str
    source_url: str
    source_title: str

    @property
    def dedup_key(self) -> tuple:
        return (self.label.lower(), self.amount, self.currency)

    def to_dict(self) -> Dict[str, str]:
        return {
            'label': self.label,
            'amount': self.amount,
            'currency': self.currency,
            'source_url': self.source_url,
            'source_title': self.source_title,
        }


@dataclass
class DigestResult:
    """Everything the pipeline produces for one session"""
    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    root_url: str = ""
    status: DigestStatus = DigestStatus.PENDING
    pages: List[NormalizedPage] = field(default_factory=list)
    total_chars: int = 0
    language: Optional[str] = None
    price_facts: List[PriceFact] = field(default_factory=list)
    pricing_cards: List[PricingCard] = field(default_factory=list)
    installment_plans: List[PricingCard] = field(default_factory=list)
    pricing_text: str = ""
    company_name: Optional[str] = None
    summary: str = ""
    error: Optional[str] = None
    error_category: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    @property
    def success(self) -> bool:
        return self.status == DigestStatus.READY

    def to_dict(self) -> Dict[str, Any]:
        return {
            'session_id': self.session_id,
            'root_url': self.root_url,
            'status': self.status.value,
            'success': self.success,
            'pages': [page.to_dict() for page in self.pages],
            'pages_count': len(self.pages),
            'total_chars': self.total_chars,
            'language': self.language,
            'price_facts': [fact.to_dict() for fact in self.price_facts],
            'pricing_cards': [card.to_dict() for card in self.pricing_cards],
            'installment_plans': [card.to_dict() for card in self.installment_plans],
            'pricing_text': self.pricing_text,
            'company_name': self.company_name,
            'summary': self.summary,
            'error': self.error,
            'error_category': self.error_category,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
        }
