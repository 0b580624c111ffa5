"""
Input validation for App Tracker.
Validates command input (identifiers, enums, provider links) before it
reaches the sync or maintenance services.
"""

import re
import logging
import validators
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from .utils import PROVIDER_SLUGS, parse_timestamp
from ..database.models import MAINTENANCE_STATUSES

logger = logging.getLogger(__name__)

MAX_NOTES_LENGTH = 1000
MAX_NAME_LENGTH = 100

_GITHUB_REF = re.compile(r'^[\w.-]+/[\w.-]+$')
_CF_ACCOUNT_ID = re.compile(r'^[a-f0-9]{32}$')
_CF_PROJECT = re.compile(r'^[a-z0-9][a-z0-9-]{0,57}$')


def validate_uuid(value: Any, field: str = 'id') -> Tuple[bool, Optional[str]]:
    """
    Validate an identifier is a UUID string.

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not value:
        return False, f"{field} is required"
    if not isinstance(value, str) or not validators.uuid(value):
        return False, f"{field} must be a valid UUID"
    return True, None


def validate_provider_slug(slug: Any) -> Tuple[bool, Optional[str]]:
    if slug not in PROVIDER_SLUGS:
        return False, f"Unknown provider. Expected one of: {', '.join(PROVIDER_SLUGS)}"
    return True, None


def validate_maintenance_status(status: Any) -> Tuple[bool, Optional[str]]:
    if status not in MAINTENANCE_STATUSES:
        return False, f"Invalid status. Expected one of: {', '.join(MAINTENANCE_STATUSES)}"
    return True, None


def validate_external_ref(provider_slug: str, ref: Any) -> Tuple[bool, Optional[str]]:
    """
    Validate the provider-side project reference for an application link.

    github → 'owner/repo'; vercel → project id; cloudflare → Pages project name.
    """
    if not ref or not isinstance(ref, str):
        return False, "Project reference is required"
    if provider_slug == 'github' and not _GITHUB_REF.match(ref):
        return False, "GitHub reference must look like 'owner/repo'"
    if provider_slug == 'cloudflare' and not _CF_PROJECT.match(ref):
        return False, "Cloudflare project name must be lowercase alphanumeric with hyphens"
    if provider_slug == 'vercel' and ('/' in ref or len(ref) > 255):
        return False, "Invalid Vercel project id"
    return True, None


def validate_credential_input(provider_slug: str, data: Dict[str, Any]) -> Tuple[bool, List[str]]:
    """Validate a settings save for one provider."""
    errors = []
    is_valid, error = validate_provider_slug(provider_slug)
    if not is_valid:
        errors.append(error)

    token = data.get('token')
    if not token or not isinstance(token, str) or not token.strip():
        errors.append("token is required")

    team_id = data.get('team_id')
    if team_id is not None and not isinstance(team_id, str):
        errors.append("team_id must be a string")
    elif provider_slug == 'cloudflare':
        if not team_id:
            errors.append("team_id (Cloudflare account ID) is required")
        elif not _CF_ACCOUNT_ID.match(team_id):
            errors.append("team_id must be a 32-character Cloudflare account ID")

    return len(errors) == 0, errors


def validate_application_input(data: Dict[str, Any]) -> Tuple[bool, List[str]]:
    """
    Validate application creation input.

    Expected:
        {user_id, name, provider_slug, url?, tags?, providers?: {slug: ref}}
    """
    errors = []

    is_valid, error = validate_uuid(data.get('user_id'), 'user_id')
    if not is_valid:
        errors.append(error)

    name = data.get('name')
    if not name or not isinstance(name, str) or not name.strip():
        errors.append("name is required")
    elif len(name) > MAX_NAME_LENGTH:
        errors.append(f"name must be at most {MAX_NAME_LENGTH} characters")

    is_valid, error = validate_provider_slug(data.get('provider_slug'))
    if not is_valid:
        errors.append(f"provider_slug: {error}")

    url = data.get('url')
    if url and not validators.url(url):
        errors.append("url must be a valid URL")

    tags = data.get('tags', [])
    if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
        errors.append("tags must be a list of strings")

    providers = data.get('providers', {})
    if not isinstance(providers, dict):
        errors.append("providers must be an object of {provider_slug: project_reference}")
    else:
        for slug, ref in providers.items():
            is_valid, error = validate_provider_slug(slug)
            if not is_valid:
                errors.append(f"providers.{slug}: {error}")
                continue
            is_valid, error = validate_external_ref(slug, ref)
            if not is_valid:
                errors.append(f"providers.{slug}: {error}")

    return len(errors) == 0, errors


def _validate_results_and_notes(data: Dict[str, Any], errors: List[str]):
    results = data.get('results')
    if results is not None and not isinstance(results, dict):
        errors.append("results must be a JSON object")

    notes = data.get('notes')
    if notes is not None:
        if not isinstance(notes, str):
            errors.append("notes must be a string")
        elif len(notes) > MAX_NOTES_LENGTH:
            errors.append(f"notes must be at most {MAX_NOTES_LENGTH} characters")


def validate_create_maintenance_run(data: Dict[str, Any]) -> Tuple[bool, List[str]]:
    """
    Validate a createMaintenanceRun command.

    Expected:
        {application_id, command_type_id, status='completed', results?, notes?, run_at?}
    """
    errors = []

    for field in ('application_id', 'command_type_id'):
        is_valid, error = validate_uuid(data.get(field), field)
        if not is_valid:
            errors.append(error)

    is_valid, error = validate_maintenance_status(data.get('status', 'completed'))
    if not is_valid:
        errors.append(error)

    _validate_results_and_notes(data, errors)

    run_at = data.get('run_at')
    if run_at is not None and not isinstance(run_at, datetime) and parse_timestamp(run_at) is None:
        errors.append("run_at must be an ISO-8601 datetime")

    return len(errors) == 0, errors


def validate_update_maintenance_run(data: Dict[str, Any]) -> Tuple[bool, List[str]]:
    """
    Validate an updateMaintenanceRun command.

    Expected:
        {id, status?, results?, notes?}
    """
    errors = []

    is_valid, error = validate_uuid(data.get('id'), 'id')
    if not is_valid:
        errors.append(error)

    if data.get('status') is not None:
        is_valid, error = validate_maintenance_status(data['status'])
        if not is_valid:
            errors.append(error)

    _validate_results_and_notes(data, errors)

    return len(errors) == 0, errors
