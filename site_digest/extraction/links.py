import re
from typing import Iterable, List, Optional, Tuple
from urllib.parse import unquote, urlparse


# Business-relevant sections, English and Bulgarian (Cyrillic and transliterated)
DEFAULT_LINK_PATTERNS: Tuple[str, ...] = (
    r"about", r"за-нас", r"za-nas",
    r"services", r"услуги", r"uslugi",
    r"pricing", r"price", r"цени", r"ceni", r"tseni",
    r"contact", r"контакти", r"kontakti",
    r"menu", r"меню",
    r"booking", r"reservation", r"appointment", r"резерв", r"запази",
)

_LINK_RE = re.compile("|".join(DEFAULT_LINK_PATTERNS), re.IGNORECASE)


def _origin(url: str) -> Optional[Tuple[str, str]]:
    try:
        parsed = urlparse(url)
    except ValueError:
        return None
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return None
    try:
        # .port raises on malformed ports
        port = parsed.port
    except ValueError:
        return None
    default_port = 443 if parsed.scheme == "https" else 80
    host = (parsed.hostname or "").lower()
    return parsed.scheme, f"{host}:{port or default_port}"


def is_same_origin(base_url: str, target_url: str) -> bool:
    base = _origin(base_url)
    return base is not None and base == _origin(target_url)


def matches_business_keywords(url: str, pattern: re.Pattern = _LINK_RE) -> bool:
    """True if the decoded path or query names one of the business sections"""
    parsed = urlparse(url)
    haystack = unquote(parsed.path) + "?" + unquote(parsed.query)
    return bool(pattern.search(haystack))


def prioritize_links(root_url: str, links: Iterable[str], max_links: int,
                     pattern: re.Pattern = _LINK_RE) -> List[str]:
    """Same-origin, keyword-matching links in first-seen order, deduplicated and capped.

    Ordering is discovery order, not importance; pages are scored later by the ranker.
    """
    if max_links <= 0:
        return []
    selected: List[str] = []
    seen = set()
    for link in links:
        if not isinstance(link, str) or link in seen:
            continue
        if not is_same_origin(root_url, link):
            continue
        if not matches_business_keywords(link, pattern):
            continue
        seen.add(link)
        selected.append(link)
        if len(selected) >= max_links:
            break
    return selected
