"""
Health & Config API Blueprint
Routes: /api/health, /api/config/validate
"""

from flask import Blueprint, current_app, jsonify
import logging

from ..config import config
from ..database.connection import check_db_connection

logger = logging.getLogger(__name__)
health_bp = Blueprint('health', __name__)


@health_bp.route('/api/health', methods=['GET'])
def health_check():
    """
    Liveness plus the state sync depends on: database reachability,
    sync worker pool and the provider endpoints in use.
    Answers 503 when the database is unreachable.
    """
    db_ok = check_db_connection()
    sync = current_app.extensions['sync_coordinator'].status()
    return jsonify({
        'status': 'healthy' if db_ok else 'degraded',
        'service': 'App Tracker',
        'database': 'connected' if db_ok else 'unreachable',
        'sync': {
            'max_workers': sync['max_workers'],
            'in_flight': len(sync['in_flight']),
            'providers': sync['providers'],
        },
        'provider_endpoints': {
            'github': config.GITHUB_API_URL,
            'vercel': config.VERCEL_API_URL,
            'cloudflare': config.CLOUDFLARE_API_URL,
        },
    }), 200 if db_ok else 503


@health_bp.route('/api/config/validate', methods=['GET'])
def validate_config():
    """Check provider and retry settings; 400 with the list of problems."""
    errors = config.validate()
    if errors:
        logger.warning('Configuration invalid: %s', '; '.join(errors))
        return jsonify({'valid': False, 'errors': errors}), 400
    return jsonify({'valid': True, 'max_pages': config.PROVIDER_MAX_PAGES,
                    'retry_attempts': config.SYNC_MAX_ATTEMPTS})
