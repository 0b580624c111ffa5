"""
Applications API Blueprint
Routes: /api/applications, /api/applications/<app_id>,
        /api/applications/<app_id>/deployments, /api/applications/<app_id>/sync,
        /api/users/<user_id>/sync, /api/users/<user_id>/auto-connect
"""

from flask import Blueprint, current_app, request, jsonify
import logging

from ..core.input_validators import validate_application_input, validate_uuid
from ..database.connection import db_session
from ..database.repositories import ApplicationRepository, DeploymentRepository
from ..exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)
applications_bp = Blueprint('applications', __name__)


def _coordinator():
    return current_app.extensions['sync_coordinator']


def _get_app_or_404(repo, app_id):
    is_valid, error = validate_uuid(app_id, 'application_id')
    if not is_valid:
        raise ValidationError(error)
    app_obj = repo.get_by_id(app_id)
    if app_obj is None:
        raise NotFoundError('Application not found')
    return app_obj


def _emit_sync_complete(payload):
    from .. import socketio
    socketio.emit('sync_complete', payload)


@applications_bp.route('/api/applications', methods=['POST'])
def create_application():
    """
    Create an application.

    Request body:
    {
        "user_id": "<uuid>",
        "name": "Marketing site",
        "provider_slug": "vercel",
        "url": "https://example.com",
        "tags": ["client"],
        "providers": {"github": "acme/site", "vercel": "prj_123"}
    }
    """
    data = request.get_json(silent=True) or {}
    is_valid, errors = validate_application_input(data)
    if not is_valid:
        raise ValidationError(errors)

    db = db_session()
    app_obj = ApplicationRepository(db).create(
        user_id=data['user_id'],
        name=data['name'].strip(),
        provider_slug=data['provider_slug'],
        providers=data.get('providers') or {},
        url=data.get('url') or None,
        tags=data.get('tags') or [],
    )
    db.commit()
    logger.info('Application created: %s (id=%s)', app_obj.name, app_obj.id[:8])
    return jsonify({'success': True, 'application': app_obj.to_dict()}), 201


@applications_bp.route('/api/applications', methods=['GET'])
def list_applications():
    """List a user's applications. Query params: user_id (required)."""
    user_id = request.args.get('user_id')
    is_valid, error = validate_uuid(user_id, 'user_id')
    if not is_valid:
        raise ValidationError(error)

    apps = ApplicationRepository(db_session()).list_by_user(user_id)
    return jsonify({
        'success': True,
        'count': len(apps),
        'applications': [a.to_dict() for a in apps],
    })


@applications_bp.route('/api/applications/<app_id>', methods=['GET'])
def get_application(app_id):
    """Get one application and its most recent deployments."""
    db = db_session()
    app_obj = _get_app_or_404(ApplicationRepository(db), app_id)
    recent = DeploymentRepository(db).list_by_application(app_id, limit=10)
    return jsonify({
        'success': True,
        'application': app_obj.to_dict(),
        'syncing': _coordinator().is_syncing(app_id),
        'recent_deployments': [d.to_dict() for d in recent],
    })


@applications_bp.route('/api/applications/<app_id>', methods=['DELETE'])
def delete_application(app_id):
    """Delete an application; cancels any running sync first."""
    db = db_session()
    repo = ApplicationRepository(db)
    app_obj = _get_app_or_404(repo, app_id)

    _coordinator().cancel(app_id)
    repo.delete(app_obj)
    db.commit()
    logger.info('Application deleted: %s', app_id)
    return jsonify({'success': True, 'deleted': app_id})


@applications_bp.route('/api/applications/<app_id>/deployments', methods=['GET'])
def list_deployments(app_id):
    """
    List synced deployments for an application, newest first.
    Query params:
        provider (str, optional) - filter by provider slug
        limit    (int, default 50)
    """
    db = db_session()
    _get_app_or_404(ApplicationRepository(db), app_id)
    try:
        limit = min(int(request.args.get('limit', 50)), 200)
    except ValueError:
        raise ValidationError('limit must be an integer')

    deployments = DeploymentRepository(db).list_by_application(
        app_id, provider_slug=request.args.get('provider'), limit=limit)
    return jsonify({
        'success': True,
        'count': len(deployments),
        'deployments': [d.to_dict() for d in deployments],
    })


@applications_bp.route('/api/applications/<app_id>/sync', methods=['POST'])
def sync_application(app_id):
    """Refresh deployments from every configured provider."""
    is_valid, error = validate_uuid(app_id, 'application_id')
    if not is_valid:
        raise ValidationError(error)

    result = _coordinator().sync_application(app_id)
    payload = result.to_dict()
    _emit_sync_complete(payload)
    return jsonify({'success': True, 'result': payload})


@applications_bp.route('/api/users/<user_id>/sync', methods=['POST'])
def sync_all(user_id):
    """Sync every application the user owns."""
    is_valid, error = validate_uuid(user_id, 'user_id')
    if not is_valid:
        raise ValidationError(error)

    results = _coordinator().sync_all(user_id)
    payloads = {app_id: r.to_dict() for app_id, r in results.items()}
    for payload in payloads.values():
        _emit_sync_complete(payload)
    return jsonify({'success': True, 'count': len(payloads), 'results': payloads})


@applications_bp.route('/api/users/<user_id>/auto-connect', methods=['POST'])
def auto_connect(user_id):
    """Link every application of the user to its matching provider projects."""
    is_valid, error = validate_uuid(user_id, 'user_id')
    if not is_valid:
        raise ValidationError(error)

    result = current_app.extensions['auto_connector'].auto_connect(user_id)
    return jsonify({'success': True, 'result': result.to_dict()})
