import os
import sys
from flask import Flask, jsonify, request
from flask_cors import CORS

# Add the project root to the Python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir)))

from site_digest.routes.crawl import crawl_bp
from site_digest.routes.digest import digest_bp
from site_digest.utils.config import get_config
from site_digest.utils.logging_config import setup_flask_logging, get_logger

VERSION = '1.0.0'

def create_app():
    """Configure the Flask application"""
    app = Flask(__name__)

    # Load configuration
    config = get_config()
    app.config['SECRET_KEY'] = config.app.secret_key

    # Enable CORS for all routes
    CORS(app, origins=config.app.cors_origins)

    # Register blueprints
    app.register_blueprint(crawl_bp, url_prefix='/api')
    app.register_blueprint(digest_bp, url_prefix='/api')

    # Setup logging
    setup_flask_logging(app)

    # Minimal request logging for diagnostics
    @app.before_request
    def _log_request_start():
        get_logger().info(f"REQ {request.method} {request.path}")

    @app.after_request
    def _log_request_end(response):
        get_logger().info(f"RES {response.status_code} {response.content_type}")
        return response

    @app.route('/api/health', methods=['GET'])
    def health_check():
        """Lightweight health endpoint; always 200 with diagnostics."""
        validation = get_config().validate_config()
        summary = validation.get('config_summary', {})
        diagnostics = {
            'status': 'healthy' if validation.get('valid') else 'unhealthy',
            'configuration': {
                'issues': validation.get('issues', []),
                'crawler': summary.get('crawler', {}),
                'api': summary.get('api', {}),
                'store': summary.get('store', {}),
                'app': summary.get('app', {})
            },
            'version': VERSION
        }
        return jsonify(diagnostics), 200

    return app

if __name__ == '__main__':
    app = create_app()
    logger = get_logger()
    logger.info("Site Digest Tool startup")

    config = get_config()
    app.run(host=config.app.host, port=config.app.port, debug=config.app.debug)
