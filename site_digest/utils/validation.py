import validators
from typing import Any, Optional, Tuple
from urllib.parse import urlparse

class ValidationError(Exception):
    """Custom exception for validation errors"""
    pass

class CrawlRequestValidator:
    """Validator for inbound crawl and digest requests"""

    MAX_PAGES_LIMIT = 50

    @staticmethod
    def validate_url(url: str) -> Tuple[bool, Optional[str]]:
        """Validate URL format"""
        if not url or not isinstance(url, str):
            return False, "URL must be a non-empty string"

        url = url.strip()

        try:
            parsed = urlparse(url)

            if parsed.scheme not in ['http', 'https']:
                return False, "URL must use HTTP or HTTPS protocol"

            if not parsed.netloc:
                return False, "URL must have a valid domain"

            # localhost and bare IPs are rejected by validators unless public
            if not validators.url(url):
                return False, "URL is not well formed"

            return True, None

        except Exception as e:
            return False, f"URL parsing error: {str(e)}"

    @staticmethod
    def parse_max_pages(value: Any, default: int) -> int:
        """Coerce a max-pages request field into the accepted range"""
        if value is None or value == '':
            return default
        try:
            pages = int(value)
        except (TypeError, ValueError):
            raise ValidationError("maxPages must be an integer")
        if pages < 0:
            raise ValidationError("maxPages must not be negative")
        return min(pages, CrawlRequestValidator.MAX_PAGES_LIMIT)

    @staticmethod
    def validate_session_id(session_id: Any) -> Tuple[bool, Optional[str]]:
        """Session ids are opaque strings of reasonable length"""
        if not isinstance(session_id, str) or not session_id.strip():
            return False, "session_id must be a non-empty string"
        if len(session_id) > 128:
            return False, "session_id is too long"
        return True, None
