"""
Crawler endpoint: renders a site with the headless browser and returns its raw pages.
"""

import asyncio
import hmac

from flask import Blueprint, request, jsonify

from site_digest.extraction.crawler import crawl_site
from site_digest.storage.memory_store import get_crawl_guard
from site_digest.utils.config import get_config
from site_digest.utils.errors import SiteDigestError
from site_digest.utils.logging_config import get_logger
from site_digest.utils.validation import CrawlRequestValidator, ValidationError

crawl_bp = Blueprint('crawl', __name__)
logger = get_logger()

DEFAULT_MAX_PAGES = 12


def _token_matches(expected: str, supplied) -> bool:
    if not isinstance(supplied, str):
        return False
    return hmac.compare_digest(expected.encode(), supplied.encode())


@crawl_bp.route('/crawl', methods=['POST', 'OPTIONS'])
def crawl():
    """Crawl a site and return {success, root, pagesCount, pages}"""
    if request.method == 'OPTIONS':
        return jsonify({'ok': True}), 200

    data = request.get_json(silent=True) or {}

    # Token check happens before any browser work
    expected_token = get_config().crawler.auth_token
    if expected_token and not _token_matches(expected_token, data.get('token')):
        logger.warning("Rejected crawl request with missing or invalid token")
        return jsonify({'success': False, 'error': 'Unauthorized'}), 401

    url = data.get('url')
    if not url:
        return jsonify({'success': False, 'error': "Missing 'url' parameter"}), 400
    url = url.strip() if isinstance(url, str) else url

    is_valid_url, url_error = CrawlRequestValidator.validate_url(url)
    if not is_valid_url:
        return jsonify({'success': False, 'error': f'Invalid url: {url_error}'}), 400

    try:
        max_pages = CrawlRequestValidator.parse_max_pages(data.get('maxPages'), DEFAULT_MAX_PAGES)
    except ValidationError as e:
        return jsonify({'success': False, 'error': str(e)}), 400

    guard = get_crawl_guard()
    cached = guard.cached(url, max_pages)
    if cached is not None:
        logger.info(f"Returning cached crawl for {url}")
        return jsonify({**cached, 'cached': True}), 200

    state = guard.acquire(url)
    if state == "in_progress":
        return jsonify({
            'success': False,
            'status': 'in_progress',
            'message': 'Crawl in progress for this URL'
        }), 202
    if state == "busy":
        return jsonify({'success': False, 'error': 'Crawler busy with different URL'}), 429

    payload = None
    try:
        cfg = get_config()
        pages = asyncio.run(crawl_site(url, max_pages, limits=cfg.limits, browser_config=cfg.browser))
        payload = {
            'success': True,
            'root': url,
            'pagesCount': len(pages),
            'pages': [page.to_dict() for page in pages],
        }
        return jsonify(payload), 200

    except SiteDigestError as e:
        logger.error(f"Crawl failed for {url}: {e.message}")
        return jsonify({'success': False, 'error': e.message, 'error_category': e.category}), 500
    except Exception as e:
        logger.error(f"Unexpected crawl error for {url}: {str(e)}", exc_info=True)
        return jsonify({'success': False, 'error': str(e)}), 500
    finally:
        guard.release(url, payload, max_pages)
