"""
Provider Credentials API Blueprint
Routes: /api/users/<user_id>/credentials, /api/users/<user_id>/credentials/<slug>,
        /api/users/<user_id>/credentials/<slug>/verify,
        /api/users/<user_id>/providers/<slug>/projects
"""

from flask import Blueprint, current_app, request, jsonify
import logging

from ..core.input_validators import validate_credential_input, validate_uuid
from ..core.utils import PROVIDER_SLUGS
from ..exceptions import AuthError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)
credentials_bp = Blueprint('credentials', __name__)


def _store():
    return current_app.extensions['credential_store']


def _check_user(user_id):
    is_valid, error = validate_uuid(user_id, 'user_id')
    if not is_valid:
        raise ValidationError(error)


@credentials_bp.route('/api/users/<user_id>/credentials', methods=['GET'])
def list_credentials(user_id):
    """Which providers the user has connected (tokens are never returned)."""
    _check_user(user_id)
    store = _store()
    providers = []
    for slug in PROVIDER_SLUGS:
        cred = store.get_credential(user_id, slug)
        providers.append({
            'provider_slug': slug,
            'connected': cred is not None,
            'team_id': cred.team_id if cred else None,
        })
    return jsonify({'success': True, 'providers': providers})


@credentials_bp.route('/api/users/<user_id>/credentials/<slug>', methods=['PUT'])
def save_credential(user_id, slug):
    """
    Save (or overwrite) a provider token.

    Request body:
    {
        "token": "…",
        "team_id": "optional team / account id"
    }
    """
    _check_user(user_id)
    data = request.get_json(silent=True) or {}
    is_valid, errors = validate_credential_input(slug, data)
    if not is_valid:
        raise ValidationError(errors)

    cred = _store().save(user_id, slug, data['token'], data.get('team_id'))
    return jsonify({
        'success': True,
        'provider_slug': slug,
        'connected': True,
        'team_id': cred.team_id,
    })


@credentials_bp.route('/api/users/<user_id>/credentials/<slug>', methods=['DELETE'])
def delete_credential(user_id, slug):
    """Disconnect a provider."""
    _check_user(user_id)
    if not _store().delete(user_id, slug):
        raise NotFoundError(f"No {slug} credential stored")
    return jsonify({'success': True, 'provider_slug': slug, 'connected': False})


@credentials_bp.route('/api/users/<user_id>/credentials/<slug>/verify', methods=['POST'])
def verify_credential(user_id, slug):
    """Check the stored token against the provider's identity endpoint."""
    _check_user(user_id)
    if slug not in PROVIDER_SLUGS:
        raise ValidationError(f"Unknown provider '{slug}'")

    cred = _store().get_credential(user_id, slug)
    if cred is None:
        raise AuthError(slug, "no credential stored; connect the provider first")

    client = current_app.extensions['sync_coordinator'].clients[slug]
    account = client.authenticate(cred.token, team_id=cred.team_id)
    logger.info('Verified %s credential for user %s', slug, user_id)
    return jsonify({'success': True, 'provider_slug': slug, 'account': account})


@credentials_bp.route('/api/users/<user_id>/providers/<slug>/projects', methods=['GET'])
def list_provider_projects(user_id, slug):
    """Provider-side projects (GitHub repos, Vercel projects, Pages projects) the user can link."""
    _check_user(user_id)
    if slug not in PROVIDER_SLUGS:
        raise ValidationError(f"Unknown provider '{slug}'")

    projects = current_app.extensions['auto_connector'].list_projects(user_id, slug)
    if projects is None:
        raise AuthError(slug, "no credential stored; connect the provider first")
    return jsonify({
        'success': True,
        'provider_slug': slug,
        'count': len(projects),
        'projects': [
            {'ref': p.ref, 'name': p.name, 'repo': p.repo, 'url': p.url} for p in projects
        ],
    })
