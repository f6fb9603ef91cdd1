from typing import Optional


class SiteDigestError(Exception):
    """Base class for all site digest failures"""

    category = "unknown"

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.url = url


class RenderError(SiteDigestError):
    """A single page could not be rendered (navigation timeout, network error, browser crash)"""

    category = "render"


class InteractionError(SiteDigestError):
    """A single expand/click attempt failed. Never leaves the renderer."""

    category = "interaction"


class CrawlError(SiteDigestError):
    """The root page could not be rendered, so the whole crawl is void"""

    category = "crawl"


class CrawlTooSmallError(SiteDigestError):
    """Fewer usable pages survived normalization and budgeting than required"""

    category = "crawl_too_small"

    def __init__(self, page_count: int, minimum: int, url: Optional[str] = None):
        super().__init__(
            f"Only {page_count} usable page(s) found, at least {minimum} required",
            url=url,
        )
        self.page_count = page_count
        self.minimum = minimum


class UpstreamServiceError(SiteDigestError):
    """The crawler service or the summarizer answered with an error or a malformed payload"""

    category = "upstream"

    def __init__(self, service: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"{service}: {message}")
        self.service = service
        self.status_code = status_code


class ConfigurationError(SiteDigestError):
    """A required secret or endpoint is missing"""

    category = "configuration"


class PersistenceError(SiteDigestError):
    """Results could not be written to the digest store"""

    category = "persistence"
