"""ExpenseFlow application factory."""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import logging
from datetime import timedelta

from flask import Flask, jsonify, request
from flask_compress import Compress
from flask_login import LoginManager

import database
from config import AppConfig
from core.utils.api_helpers import CONTAINER_KEY
from core.utils.logging_config import setup_logging

app_logger = logging.getLogger('expenseflow.app')

_USER_CACHE_TTL = 60  # seconds


def create_app(config: AppConfig = None, container=None) -> Flask:
    """Build the Flask app.

    Args:
        config: Settings; read from the environment when omitted.
        container: Service container; a PostgreSQL-backed one is built when omitted.
    """
    config = config or AppConfig.from_env()
    if not config.TESTING:
        setup_logging(level=config.LOG_LEVEL)
    app_logger.info('ExpenseFlow app starting...')

    app = Flask(__name__)
    app.secret_key = config.resolve_secret_key()
    app.config['TESTING'] = config.TESTING

    # Remember Me / session cookies
    app.config['REMEMBER_COOKIE_DURATION'] = timedelta(days=30)
    app.config['REMEMBER_COOKIE_HTTPONLY'] = True
    app.config['REMEMBER_COOKIE_SAMESITE'] = 'Lax'
    app.config['SESSION_COOKIE_HTTPONLY'] = True
    app.config['SESSION_COOKIE_SAMESITE'] = 'Lax'
    if not (config.DEBUG or config.TESTING):
        app.config['REMEMBER_COOKIE_SECURE'] = True
        app.config['SESSION_COOKIE_SECURE'] = True

    Compress().init_app(app)

    if container is None:
        from core.container import Container
        container = Container(config=config)
    app.extensions[CONTAINER_KEY] = container

    _init_login(app, container)
    _register_blueprints(app)
    _register_error_handlers(app)

    from core.approvals.handlers import register_approval_hooks
    register_approval_hooks()

    @app.route('/health')
    def health():
        db_ok = database.ping_db() if not config.TESTING else True
        status = 200 if db_ok else 503
        return jsonify({'status': 'ok' if db_ok else 'degraded', 'database': db_ok}), status

    if not config.TESTING:
        if not config.DATABASE_URL:
            raise RuntimeError('DATABASE_URL environment variable is required')
        database.configure_pool(config)
        database.init_db()

    return app


# ============== Flask-Login ==============

def _init_login(app, container):
    import time
    from core.auth.models import User

    login_manager = LoginManager()
    login_manager.init_app(app)
    user_cache = {}

    @login_manager.user_loader
    def load_user(user_id):
        """Load user by ID for Flask-Login (cached per-worker, 60s TTL)."""
        uid = int(user_id)
        now = time.time()
        cached = user_cache.get(uid)
        if cached and (now - cached[1]) < _USER_CACHE_TTL:
            return cached[0]

        user_data = container.user_repo.get_by_id(uid)
        if user_data and user_data.get('is_active', True):
            user = User(user_data)
            user_cache[uid] = (user, now)
            return user
        user_cache.pop(uid, None)
        return None

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'success': False, 'error': 'Authentication required'}), 401


# ============== Blueprint Registrations ==============

def _register_blueprints(app):
    from core.auth import auth_bp, users_bp
    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(users_bp, url_prefix='/api/users')

    from core.organization import org_bp
    app.register_blueprint(org_bp)

    from core.approvals import approvals_bp
    app.register_blueprint(approvals_bp)

    from expenses import expenses_bp
    app.register_blueprint(expenses_bp, url_prefix='/api/expenses')


# ============== Global Error Handlers ==============

def _register_error_handlers(app):

    @app.errorhandler(404)
    def handle_404(e):
        return jsonify({'success': False, 'error': 'Not found'}), 404

    @app.errorhandler(405)
    def handle_405(e):
        return jsonify({'success': False, 'error': 'Method not allowed'}), 405

    @app.errorhandler(500)
    def handle_500(e):
        app_logger.exception(f'Unhandled 500 error on {request.path}')
        return jsonify({'success': False, 'error': 'An internal error occurred'}), 500


if __name__ == '__main__':
    _config = AppConfig.from_env()
    create_app(_config).run(debug=_config.DEBUG, port=int(os.environ.get('PORT', 5000)))
