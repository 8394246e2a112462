"""
OpsBoard Flask Application.

Main entry point for the backend service. Initializes:
- Database schema
- Realtime change feed hooks
- API routes (tables, auth, admin users)
- Error handlers mapping the OpsBoard error taxonomy to JSON

Usage:
    python -m opsboard.app

Or with gunicorn:
    gunicorn "opsboard.app:create_app()"
"""

import logging
import os

from flask import Flask
from flask_cors import CORS

from opsboard.config import config
from opsboard.errors import OpsBoardError
from opsboard.models import init_db
from opsboard.models.base import SessionLocal
from opsboard.api import tables_bp, auth_bp, admin_users_bp
from opsboard import realtime

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S',
)
logger = logging.getLogger(__name__)


def create_app() -> Flask:
    """
    Application factory for Flask.

    Returns:
        Configured Flask application instance.
    """
    app = Flask(__name__)

    app.config['SECRET_KEY'] = config.secret_key

    # Enable CORS for API endpoints
    CORS(app, resources={r'/api/*': {'origins': '*'}})

    logger.info('Initializing database...')
    init_db()

    # Publish row changes once their transaction commits
    realtime.install(SessionLocal)

    app.register_blueprint(tables_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(admin_users_bp)

    @app.route('/health')
    def health():
        """Simple health check endpoint."""
        return {'status': 'ok', 'realtime': realtime.change_feed.stats}

    # -------------------------------------------------------------------------
    # Error handlers
    # -------------------------------------------------------------------------

    @app.errorhandler(OpsBoardError)
    def opsboard_error(e: OpsBoardError):
        logger.warning(f'{type(e).__name__}: {e.message}')
        return e.to_dict(), e.status_code

    @app.errorhandler(404)
    def not_found(e):
        return {'error': 'Not found'}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {'error': 'Method not allowed'}, 405

    @app.errorhandler(500)
    def server_error(e):
        logger.error(f'Server error: {e}')
        return {'error': 'Internal server error'}, 500

    return app


def run_development_server():
    """Run the development server."""
    app = create_app()

    port = int(os.environ.get('PORT', 5000))

    logger.info(f'Starting OpsBoard on http://localhost:{port}')

    app.run(
        host='0.0.0.0',
        port=port,
        debug=config.debug,
        threaded=True,  # Change streams hold a worker each
        use_reloader=False,
    )


if __name__ == '__main__':
    run_development_server()
