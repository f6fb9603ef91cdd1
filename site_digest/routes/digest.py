"""
Digest routes: submit a site for digestion and poll the session for its result.
"""

import threading

from flask import Blueprint, request, jsonify

from site_digest.orchestration.pipeline import DigestPipeline
from site_digest.storage.memory_store import get_digest_store
from site_digest.storage.rest_store import get_persistence_store
from site_digest.utils.config import get_config
from site_digest.utils.errors import ConfigurationError, PersistenceError
from site_digest.utils.logging_config import get_logger
from site_digest.utils.validation import CrawlRequestValidator, ValidationError

digest_bp = Blueprint('digest', __name__)
logger = get_logger()


def _run_pipeline(root_url: str, max_pages: int, session_id: str) -> None:
    try:
        DigestPipeline().run(root_url, max_pages, session_id=session_id)
    except Exception as e:
        # run() already turns known failures into a stored result
        logger.error(f"Digest worker crashed: {str(e)}", session_id=session_id, exc_info=True)


def _start_pipeline_thread(root_url: str, max_pages: int, session_id: str) -> threading.Thread:
    worker = threading.Thread(
        target=_run_pipeline,
        args=(root_url, max_pages, session_id),
        name=f"digest-{session_id[:8]}",
        daemon=True,
    )
    worker.start()
    return worker


@digest_bp.route('/digest', methods=['POST'])
def submit_digest():
    """Start a digest session for a URL"""
    try:
        data = request.get_json(silent=True)

        if not data or 'url' not in data:
            return jsonify({'error': 'Missing required field: url'}), 400

        root_url = data['url'].strip() if isinstance(data['url'], str) else data['url']
        is_valid_url, url_error = CrawlRequestValidator.validate_url(root_url)
        if not is_valid_url:
            logger.error(f"URL validation failed: {url_error} for URL: {root_url}")
            return jsonify({
                'error': f'Invalid url: {url_error}',
                'url_received': root_url
            }), 400

        try:
            max_pages = CrawlRequestValidator.parse_max_pages(
                data.get('max_pages'), get_config().limits.max_internal_pages
            )
        except ValidationError as e:
            return jsonify({'error': str(e)}), 400

        session_id = data.get('session_id')
        if session_id is not None:
            is_valid_id, id_error = CrawlRequestValidator.validate_session_id(session_id)
            if not is_valid_id:
                return jsonify({'error': id_error}), 400

        # Without a crawler service the session could never run
        try:
            get_config().require_crawler()
        except ConfigurationError as e:
            logger.error(f"Digest rejected: {e.message}")
            return jsonify({'error': e.message, 'error_category': e.category}), 503

        result = get_digest_store().start_session(root_url, session_id)
        if result is None:
            return jsonify({'error': 'Session is already being processed', 'session_id': session_id}), 409
        _start_pipeline_thread(root_url, max_pages, result.session_id)

        logger.info(f"Digest session submitted for URL: {root_url}", session_id=result.session_id)

        return jsonify({
            'session_id': result.session_id,
            'status': result.status.value,
            'root_url': root_url,
            'max_pages': max_pages,
            'created_at': result.created_at.isoformat(),
            'message': 'Digest started'
        }), 202

    except Exception as e:
        logger.error(f"Error submitting digest: {str(e)}")
        return jsonify({
            'error': 'Internal server error',
            'details': str(e)
        }), 500


@digest_bp.route('/digest/<session_id>', methods=['GET'])
def get_digest(session_id: str):
    """Current state of a digest session"""
    try:
        record = get_digest_store().get(session_id)
        if record is None:
            # Sessions from before a restart only live in the REST store
            persistence = get_persistence_store()
            if persistence is not get_digest_store():
                record = persistence.get(session_id)
        if record is None:
            return jsonify({'error': 'Session not found'}), 404
        return jsonify(record), 200

    except PersistenceError as e:
        logger.error(f"Digest store lookup failed for {session_id}: {e.message}")
        return jsonify({'error': e.message, 'error_category': e.category}), 502
    except Exception as e:
        logger.error(f"Error getting digest {session_id}: {str(e)}")
        return jsonify({
            'error': 'Internal server error',
            'details': str(e)
        }), 500
