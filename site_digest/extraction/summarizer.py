"""
Summarizer client and the context blob it is fed.

The context is the pricing block followed by the top-ranked pages, each as
CATEGORY: TITLE / URL / CONTENT, joined by a fixed delimiter and hard-clamped
to the AI character ceiling. The clamp is a plain cut, not sentence-aware.
"""

import re
import time
from dataclasses import dataclass
from typing import Optional

import openai

from site_digest.models.digest import Corpus
from site_digest.utils.config import APIConfig, CrawlLimits, get_config
from site_digest.utils.errors import UpstreamServiceError
from site_digest.utils.logging_config import get_logger

PAGE_DELIMITER = "\n\n-----\n\n"

_COMPANY_NAME_RE = re.compile(r"^\s*COMPANY_NAME:\s*(.+?)\s*$", re.IGNORECASE)

SYSTEM_PROMPT = (
    "You summarize business websites for sales and support teams. "
    "Answer in the language of the website content."
)

USER_PROMPT = """Below is the extracted content of a company website: detected prices first, then its most relevant pages.

Start your answer with a single line of the form
COMPANY_NAME: <name of the company or brand>
then write a concise summary covering what the business offers, its services or products, prices and packages, booking options and contact details.

{context}"""


@dataclass
class SummaryResult:
    """Output of one summarization call"""
    summary: str = ""
    company_name: Optional[str] = None
    enabled: bool = True


def build_summary_context(corpus: Corpus, pricing_text: str,
                          limits: Optional[CrawlLimits] = None) -> str:
    limits = limits or CrawlLimits()
    parts = []
    if pricing_text:
        parts.append(f"PRICING FACTS:\n{pricing_text}")
    for page in corpus.pages[: limits.max_ai_pages]:
        parts.append(f"{page.category.value.upper()}: {page.title}\n{page.url}\n{page.content}")
    return PAGE_DELIMITER.join(parts)[: limits.max_ai_chars]


def parse_company_name(text: str) -> Optional[str]:
    """COMPANY_NAME from the first non-empty line of the response, if present"""
    for line in (text or "").splitlines():
        if not line.strip():
            continue
        match = _COMPANY_NAME_RE.match(line)
        return match.group(1) if match and match.group(1) else None
    return None


class SummarizerClient:
    """Client for OpenAI chat-completion summaries"""

    def __init__(self, api_config: Optional[APIConfig] = None):
        self.api_config = api_config or get_config().api
        self.logger = get_logger()
        self.client = None
        if self.enabled:
            self.client = openai.OpenAI(
                api_key=self.api_config.openai_api_key,
                base_url=self.api_config.openai_api_base,
            )

    @property
    def enabled(self) -> bool:
        return bool(self.api_config.openai_api_key)

    def summarize(self, context: str, session_id: Optional[str] = None) -> SummaryResult:
        """Summarize the context blob. Raises UpstreamServiceError on API failure."""
        if not self.enabled:
            self.logger.info("No OPENAI_API_KEY configured, summarization disabled",
                             session_id=session_id, stage='SUMMARIZE')
            return SummaryResult(enabled=False)

        api_start = time.time()
        try:
            resp = self.client.chat.completions.create(
                model=self.api_config.openai_model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": USER_PROMPT.format(context=context)},
                ],
                max_tokens=self.api_config.max_tokens,
                temperature=self.api_config.temperature,
            )
        except openai.OpenAIError as e:
            self.logger.log_api_call(session_id, "OpenAI", time.time() - api_start, False, str(e))
            raise UpstreamServiceError("summarizer", str(e),
                                       status_code=getattr(e, 'status_code', None)) from e

        self.logger.log_api_call(session_id, "OpenAI", time.time() - api_start, True)

        try:
            raw = resp.choices[0].message.content or ""
        except (AttributeError, IndexError) as e:
            raise UpstreamServiceError("summarizer", "response has no message content") from e

        return SummaryResult(summary=raw.strip(), company_name=parse_company_name(raw))
