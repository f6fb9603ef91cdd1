import logging
import logging.handlers
import os
from typing import Optional

class SiteDigestLogger:
    """Custom logger for crawl and digest operations"""

    def __init__(self, name: str = "site_digest"):
        self.logger = logging.getLogger(name)
        self._setup_logger()

    def _setup_logger(self):
        """Setup logger with appropriate handlers and formatters"""
        if self.logger.handlers:
            return  # Already configured

        self.logger.setLevel(logging.DEBUG)

        log_dir = _log_dir()
        os.makedirs(log_dir, exist_ok=True)

        # Console handler
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.INFO)
        console_formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )
        console_handler.setFormatter(console_formatter)
        self.logger.addHandler(console_handler)

        # File handler for general logs
        file_handler = logging.handlers.RotatingFileHandler(
            os.path.join(log_dir, 'site_digest.log'),
            maxBytes=10*1024*1024,  # 10MB
            backupCount=5
        )
        file_handler.setLevel(logging.DEBUG)
        file_formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
        )
        file_handler.setFormatter(file_formatter)
        self.logger.addHandler(file_handler)

        # Separate handler for per-session crawl operations
        crawl_handler = logging.handlers.RotatingFileHandler(
            os.path.join(log_dir, 'crawls.log'),
            maxBytes=50*1024*1024,  # 50MB
            backupCount=10
        )
        crawl_handler.setLevel(logging.INFO)
        crawl_formatter = logging.Formatter(
            '%(asctime)s - SESSION_%(session_id)s - STAGE_%(stage)s - %(levelname)s - %(message)s'
        )
        crawl_handler.setFormatter(crawl_formatter)

        # Only records tagged with a session go to this handler
        crawl_handler.addFilter(lambda record: hasattr(record, 'session_id'))
        self.logger.addHandler(crawl_handler)

        # Error handler for critical issues
        error_handler = logging.handlers.RotatingFileHandler(
            os.path.join(log_dir, 'errors.log'),
            maxBytes=10*1024*1024,  # 10MB
            backupCount=5
        )
        error_handler.setLevel(logging.ERROR)
        error_formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
        )
        error_handler.setFormatter(error_formatter)
        self.logger.addHandler(error_handler)

    def log_crawl_start(self, session_id: str, url: str, max_pages: int):
        """Log the start of a crawl"""
        extra = {'session_id': session_id, 'stage': 'CRAWL'}
        self.logger.info(f"Starting crawl for URL: {url} (max {max_pages} internal pages)", extra=extra)

    def log_crawl_complete(self, session_id: str, page_count: int, duration: float):
        """Log the completion of a crawl"""
        extra = {'session_id': session_id, 'stage': 'CRAWL'}
        self.logger.info(f"Crawl completed with {page_count} page(s) in {duration:.2f} seconds", extra=extra)

    def log_crawl_failed(self, session_id: str, error: str, duration: Optional[float] = None):
        """Log the failure of a crawl or digest"""
        extra = {'session_id': session_id, 'stage': 'SYSTEM'}
        message = f"Digest failed: {error}"
        if duration is not None:
            message += f" (failed after {duration:.2f} seconds)"
        self.logger.error(message, extra=extra)

    def log_stage_complete(self, session_id: str, stage: str, duration: float, detail: Optional[str] = None):
        """Log the completion of one pipeline stage"""
        extra = {'session_id': session_id, 'stage': stage}
        message = f"Stage completed in {duration:.2f} seconds"
        if detail:
            message += f": {detail}"
        self.logger.info(message, extra=extra)

    def log_page_skipped(self, url: str, reason: str, session_id: Optional[str] = None):
        """Log an internal page that was left out of the corpus"""
        self.warning(f"Skipping page {url}: {reason}", session_id=session_id, stage='RENDER')

    def log_api_call(self, session_id: Optional[str], api_name: str,
                    duration: float, success: bool, error: Optional[str] = None):
        """Log an API call"""
        extra = {'session_id': session_id or '-', 'stage': 'API'}
        if success:
            self.logger.info(f"{api_name} API call successful in {duration:.2f} seconds", extra=extra)
        else:
            self.logger.error(f"{api_name} API call failed in {duration:.2f} seconds: {error}", extra=extra)

    def _extra(self, session_id: Optional[str], stage: Optional[str]) -> dict:
        extra = {}
        if session_id is not None:
            extra['session_id'] = session_id
        # The crawl formatter needs a stage whenever a session is present
        if stage is None and session_id is not None:
            extra['stage'] = 'SYSTEM'
        elif stage is not None:
            extra['stage'] = stage
        return extra

    def debug(self, message: str, session_id: Optional[str] = None, stage: Optional[str] = None):
        """Log debug message"""
        self.logger.debug(message, extra=self._extra(session_id, stage))

    def info(self, message: str, session_id: Optional[str] = None, stage: Optional[str] = None):
        """Log info message"""
        self.logger.info(message, extra=self._extra(session_id, stage))

    def warning(self, message: str, session_id: Optional[str] = None, stage: Optional[str] = None):
        """Log warning message"""
        self.logger.warning(message, extra=self._extra(session_id, stage))

    def error(self, message: str, session_id: Optional[str] = None, stage: Optional[str] = None, exc_info=None):
        """Log error message"""
        self.logger.error(message, extra=self._extra(session_id, stage), exc_info=exc_info)


def _log_dir() -> str:
    return os.getenv('LOG_DIR') or os.path.join(os.getcwd(), 'logs')

# Global logger instance
digest_logger = SiteDigestLogger()

def get_logger() -> SiteDigestLogger:
    """Get the global digest logger instance"""
    return digest_logger

def setup_flask_logging(app):
    """Setup Flask application logging"""
    if not app.debug and not app.testing:
        # In production, log to file
        log_dir = _log_dir()
        os.makedirs(log_dir, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            os.path.join(log_dir, 'flask_app.log'),
            maxBytes=10*1024*1024,  # 10MB
            backupCount=5
        )
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
        ))
        file_handler.setLevel(logging.INFO)
        app.logger.addHandler(file_handler)
        app.logger.setLevel(logging.INFO)
        app.logger.info('Site Digest Tool startup')
