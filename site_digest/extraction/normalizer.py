"""Text cleanup: invisible characters, whitespace, cookie/legal boilerplate, repeated lines."""

import re
from dataclasses import dataclass
from typing import Iterable, List, Tuple


_INVISIBLE_RE = re.compile(r"[\u200b-\u200d\u2060\ufeff\u00ad]")
_HORIZONTAL_WS_RE = re.compile(r"[ \t\f\v\u00a0\u2007\u202f]+")
_BLANK_RUN_RE = re.compile(r"\n{3,}")
_CYRILLIC_RE = re.compile(r"[\u0400-\u04ff]")
_LATIN_RE = re.compile(r"[A-Za-z]")


@dataclass(frozen=True)
class BoilerplateRules:
    """Substrings that mark a line as cookie/consent/legal noise"""
    denylist: Tuple[str, ...]
    min_line_length: int = 3


DEFAULT_BOILERPLATE = BoilerplateRules(
    denylist=(
        # consent banners
        "cookie", "бисквитк", "we use cookies", "accept all", "приеми всички",
        "manage consent", "consent preferences", "съгласие за",
        # legal footers
        "all rights reserved", "всички права запазени", "privacy policy",
        "политика за поверителност", "политика за бисквитките",
        "terms and conditions", "terms of use", "общи условия", "gdpr",
        "лични данни", "personal data", "©", "copyright",
    ),
)


def clean_text(text: str) -> str:
    """Strip invisible characters and collapse whitespace, keeping line breaks."""
    if not text:
        return ""
    text = _INVISIBLE_RE.sub("", text)
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _HORIZONTAL_WS_RE.sub(" ", text)
    text = "\n".join(line.strip() for line in text.split("\n"))
    text = _BLANK_RUN_RE.sub("\n\n", text)
    return text.strip()


def is_boilerplate(line: str, rules: BoilerplateRules = DEFAULT_BOILERPLATE) -> bool:
    lowered = line.lower()
    return any(token in lowered for token in rules.denylist)


def dedupe_lines(lines: Iterable[str]) -> List[str]:
    """Drop repeated lines (case-insensitive), keeping the first occurrence in place."""
    seen = set()
    unique: List[str] = []
    for line in lines:
        key = line.lower()
        if key in seen:
            continue
        seen.add(key)
        unique.append(line)
    return unique


def normalize_text(text: str, rules: BoilerplateRules = DEFAULT_BOILERPLATE) -> str:
    """Full normalization pass. Idempotent: normalize_text(normalize_text(x)) == normalize_text(x)."""
    cleaned = clean_text(text)
    kept = []
    for line in cleaned.split("\n"):
        line = line.strip()
        if len(line) < rules.min_line_length:
            continue
        if is_boilerplate(line, rules):
            continue
        kept.append(line)
    return clean_text("\n".join(dedupe_lines(kept)))


def detect_language(text: str, sample_size: int = 20000) -> str:
    """Rough language guess from the share of Cyrillic letters: "bg", "en" or "unknown"."""
    sample = (text or "")[:sample_size]
    cyrillic = len(_CYRILLIC_RE.findall(sample))
    latin = len(_LATIN_RE.findall(sample))
    if cyrillic + latin < 20:
        return "unknown"
    return "bg" if cyrillic / (cyrillic + latin) >= 0.3 else "en"
