"""
Flask Application Factory for the upload server.

Usage:
    # Development
    python -m photoframe.server

    # Production
    gunicorn -w 1 -b 0.0.0.0:3000 'photoframe.server:create_app()'
"""

from datetime import datetime, timezone
from typing import Optional

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge

from photoframe.common.config import Config, get_config
from photoframe.common.logger import setup_logger
from photoframe.server.routes import photos_bp
from photoframe.server.storage import create_storage

logger = setup_logger(__name__)

# Maximum upload size (10 MB)
DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024


def create_app(config: Optional[Config] = None, storage=None) -> Flask:
    """
    Create and configure the Flask application.

    Args:
        config: Application configuration (global config if None)
        storage: Storage backend; built from server.storage if None

    Returns:
        Configured Flask application instance
    """
    config = config or get_config()
    app = Flask(__name__)

    max_bytes = config.get('server.max_upload_bytes', DEFAULT_MAX_UPLOAD_BYTES)
    app.config['MAX_CONTENT_LENGTH'] = max_bytes
    app.config['PHOTO_STORAGE'] = storage or create_storage(config)

    app.register_blueprint(photos_bp)

    @app.route('/health')
    def health_check():
        """Health check endpoint."""
        return jsonify({
            'ok': True,
            'status': 'healthy',
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'storage': app.config['PHOTO_STORAGE'].name,
        })

    @app.errorhandler(RequestEntityTooLarge)
    def handle_too_large(error):
        limit_mb = max_bytes // (1024 * 1024)
        return jsonify({'ok': False, 'error': f"File must be smaller than {limit_mb}MB"}), 400

    @app.errorhandler(404)
    def handle_not_found(error):
        return jsonify({'ok': False, 'error': 'Endpoint not found'}), 404

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({'ok': False, 'error': error.description}), error.code

    logger.info("Upload server created (storage: %s)", app.config['PHOTO_STORAGE'].name)
    return app
