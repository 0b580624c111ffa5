"""
Status Normalizer for App Tracker.
Maps each provider's raw deployment payload onto the canonical record.

Every provider gets its own pure function; nothing provider-shaped leaves
this module. Unrecognised states become 'unknown' instead of failing.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..core.utils import ensure_https, parse_timestamp

logger = logging.getLogger(__name__)

UNKNOWN = 'unknown'

GITHUB_STATES = {
    'success': 'deployed',
    'error': 'failed',
    'failure': 'failed',
    'pending': 'pending',
    'queued': 'pending',
    'in_progress': 'building',
    'inactive': 'rolled_back',
}

VERCEL_STATES = {
    'READY': 'deployed',
    'ERROR': 'failed',
    'BUILDING': 'building',
    'INITIALIZING': 'building',
    'QUEUED': 'pending',
    'CANCELED': 'rolled_back',
}

CLOUDFLARE_STAGE_STATUSES = {
    'failure': 'failed',
    'canceled': 'rolled_back',
    'active': 'building',
    'idle': 'pending',
}


@dataclass(frozen=True)
class NormalizedDeployment:
    """Canonical deployment as produced from any provider."""
    external_id: str
    status: str
    environment: str
    url: Optional[str] = None
    branch: Optional[str] = None
    commit_sha: Optional[str] = None
    created_at: Optional[datetime] = None


def map_environment(name: Optional[str]) -> str:
    """Bucket a free-form environment name into production/staging/development."""
    lower = (name or '').lower()
    if 'prod' in lower:
        return 'production'
    if 'stag' in lower or 'preview' in lower:
        return 'staging'
    return 'development'


def _sha(value) -> Optional[str]:
    return str(value)[:40] if value else None


# ── GitHub ────────────────────────────────────────────────────────────────────
def map_github_status(state: Optional[str]) -> str:
    if not state:
        return 'pending'
    return GITHUB_STATES.get(state, UNKNOWN)


def normalize_github(item: Dict[str, Any]) -> Optional[NormalizedDeployment]:
    latest = item.get('latest_status') or {}
    return NormalizedDeployment(
        external_id=str(item['id']),
        status=map_github_status(latest.get('state')),
        environment=map_environment(item.get('environment')),
        url=latest.get('environment_url') or None,
        branch=item.get('ref') or None,
        commit_sha=_sha(item.get('sha')),
        created_at=parse_timestamp(item.get('created_at')),
    )


# ── Vercel ────────────────────────────────────────────────────────────────────
def map_vercel_status(state: Optional[str]) -> str:
    # Vercel reports both 'state' and 'readyState' depending on endpoint version
    return VERCEL_STATES.get((state or '').upper(), UNKNOWN)


def normalize_vercel(item: Dict[str, Any]) -> Optional[NormalizedDeployment]:
    created = item.get('createdAt', item.get('created'))
    if created is None:
        return None
    meta = item.get('meta') or {}
    return NormalizedDeployment(
        external_id=str(item['uid']),
        status=map_vercel_status(item.get('state') or item.get('readyState')),
        environment='production' if item.get('target') == 'production' else 'staging',
        url=ensure_https(item.get('url')),
        branch=meta.get('githubCommitRef') or None,
        commit_sha=_sha(meta.get('githubCommitSha')),
        created_at=parse_timestamp(created),
    )


# ── Cloudflare ────────────────────────────────────────────────────────────────
def map_cloudflare_status(stage: Optional[Dict[str, Any]]) -> str:
    if not stage:
        return UNKNOWN
    if stage.get('name') == 'deploy' and stage.get('status') == 'success':
        return 'deployed'
    if stage.get('status') == 'success':
        # an earlier stage finished; the deploy stage has not run yet
        return 'building'
    return CLOUDFLARE_STAGE_STATUSES.get(stage.get('status'), UNKNOWN)


def normalize_cloudflare(item: Dict[str, Any]) -> Optional[NormalizedDeployment]:
    trigger_meta = (item.get('deployment_trigger') or {}).get('metadata') or {}
    return NormalizedDeployment(
        external_id=str(item['id']),
        status=map_cloudflare_status(item.get('latest_stage')),
        environment='production' if item.get('environment') == 'production' else 'staging',
        url=ensure_https(item.get('url')),
        branch=trigger_meta.get('branch') or None,
        commit_sha=_sha(trigger_meta.get('commit_hash')),
        created_at=parse_timestamp(item.get('created_on')),
    )


NORMALIZERS: Dict[str, Callable[[Dict[str, Any]], Optional[NormalizedDeployment]]] = {
    'github': normalize_github,
    'vercel': normalize_vercel,
    'cloudflare': normalize_cloudflare,
}


def normalize(provider_slug: str, items: Iterable[Dict[str, Any]]) -> List[NormalizedDeployment]:
    """
    Normalize raw provider items, preserving the provider's ordering.

    Args:
        provider_slug: 'github' | 'vercel' | 'cloudflare'
        items: Raw deployment dicts as returned by the provider client

    Returns:
        List of NormalizedDeployment (items without an id are skipped)
    """
    try:
        normalizer = NORMALIZERS[provider_slug]
    except KeyError:
        raise ValueError(f"No normalizer for provider '{provider_slug}'")

    records = []
    for item in items:
        if not isinstance(item, dict):
            logger.warning("%s: skipping non-object deployment payload", provider_slug)
            continue
        try:
            record = normalizer(item)
        except KeyError as e:
            logger.warning("%s: skipping deployment without %s", provider_slug, e)
            continue
        if record is not None:
            records.append(record)
    return records
