"""
Flask application factory.
Initializes the app, registers Blueprints, sets up DB, services and SocketIO.
"""

from flask import Flask, jsonify
from flask_cors import CORS
from flask_socketio import SocketIO, emit
import logging

from .core.logging_config import configure_logging
from .config import config
from .database.connection import init_db, db_session
from .exceptions import (
    AuthError, InvalidTransition, NotFoundError, ProviderError,
    ProviderUnavailable, RateLimited, ValidationError, AppTrackerError,
)

# ── SocketIO instance ─────────────────────────────────────────────────────────
# Module level so apptracker/__init__.py can re-export it.
# Blueprints import it via:  from .. import socketio
socketio = SocketIO()

ERROR_STATUS = (
    (ValidationError, 400),
    (AuthError, 401),
    (NotFoundError, 404),
    (InvalidTransition, 409),
    (RateLimited, 429),
    (ProviderError, 502),
    (ProviderUnavailable, 503),
)


def create_app(credential_store=None, sync_coordinator=None, auto_connector=None) -> Flask:
    """
    Application factory - called by Gunicorn and tests.
    Usage:  gunicorn 'apptracker.app:create_app()'

    Args:
        credential_store: CredentialStore to use (a default one if None)
        sync_coordinator: SyncCoordinator to use (a default one if None)
        auto_connector: AutoConnector to use (built on the coordinator's clients if None)
    """
    from .services.credential_store import CredentialStore
    from .services.sync_coordinator import SyncCoordinator
    from .services.auto_connect import AutoConnector

    app = Flask(__name__)
    app.config['SECRET_KEY'] = config.SECRET_KEY
    CORS(app)

    # ── Logging ───────────────────────────────────────────────────────────
    logger = configure_logging(
        log_file=config.LOG_FILE,
        console_level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO)
    )

    # ── SocketIO ──────────────────────────────────────────────────────────
    socketio.init_app(
        app,
        cors_allowed_origins="*",
        ping_interval=25,
        async_mode='threading',
    )

    # ── Database ──────────────────────────────────────────────────────────
    with app.app_context():
        init_db()
        _ensure_command_types(logger)

    # ── Core services ─────────────────────────────────────────────────────
    credential_store = credential_store or CredentialStore()
    app.extensions['credential_store'] = credential_store
    sync_coordinator = sync_coordinator or SyncCoordinator(credential_store)
    app.extensions['sync_coordinator'] = sync_coordinator
    app.extensions['auto_connector'] = auto_connector or AutoConnector(
        credential_store, clients=sync_coordinator.clients)

    # ── Blueprints ────────────────────────────────────────────────────────
    # Imported INSIDE factory to avoid circular imports at module load time.
    from .api.health import health_bp
    from .api.credentials import credentials_bp
    from .api.applications import applications_bp
    from .api.maintenance import maintenance_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(credentials_bp)
    app.register_blueprint(applications_bp)
    app.register_blueprint(maintenance_bp)

    # ── DB session teardown ───────────────────────────────────────────────
    # Called after EVERY request (and on exception) - returns session to pool.
    @app.teardown_appcontext
    def shutdown_db_session(exception=None):
        if exception:
            db_session.rollback()
        db_session.remove()

    # ── Error handlers ────────────────────────────────────────────────────
    @app.errorhandler(AppTrackerError)
    def domain_error(e):
        db_session.rollback()
        code = next((status for cls, status in ERROR_STATUS if isinstance(e, cls)), 500)
        body = {'success': False, 'error': str(e)}
        if isinstance(e, ValidationError):
            body['errors'] = e.errors
        if isinstance(e, RateLimited) and e.retry_after is not None:
            body['retry_after'] = e.retry_after
        if code == 500:
            logger.error('Unhandled domain error: %s', e)
        return jsonify(body), code

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({'success': False, 'error': 'Endpoint not found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({'success': False, 'error': 'Method not allowed'}), 405

    @app.errorhandler(500)
    def internal_error(e):
        logger.error('Internal server error: %s', e)
        return jsonify({'success': False, 'error': 'Internal server error'}), 500

    # ── SocketIO events ───────────────────────────────────────────────────
    @socketio.on('connect')
    def handle_connect():
        logger.info('Client connected')
        emit('connected', {'message': 'Connected to App Tracker'})

    @socketio.on('disconnect')
    def handle_disconnect():
        logger.info('Client disconnected')

    logger.info('Flask app created - blueprints registered')
    return app


def _ensure_command_types(logger):
    """Seed the maintenance command catalog if rows are missing."""
    from .services.maintenance_engine import seed_command_types

    _db = db_session()
    try:
        created = seed_command_types(_db)
        _db.commit()
        if created:
            logger.info('[OK] Seeded %d maintenance command types', created)
    except Exception as e:
        _db.rollback()
        logger.error('Failed to seed maintenance command types: %s', e)
    finally:
        db_session.remove()


# ── Local dev entry point ─────────────────────────────────────────────────────
if __name__ == '__main__':
    config_errors = config.validate()
    if config_errors:
        import sys
        for err in config_errors:
            print(f'[CONFIG ERROR] {err}')
        print('Please fix your .env file. See .env.example for reference.')
        sys.exit(1)

    _app = create_app()
    socketio.run(
        _app,
        host='0.0.0.0',
        port=config.APP_PORT,
        debug=(config.FLASK_ENV == 'development'),
    )
