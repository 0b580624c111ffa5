"""
Vercel client for App Tracker.
Reads projects and project deployments from the Vercel REST API.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from ...config import config
from ...core.utils import ensure_https
from ..base import FetchResult, ProviderClient, ProviderProject

logger = logging.getLogger(__name__)


class VercelClient(ProviderClient):
    """Hosting provider: Vercel. team_id scopes calls to a team account."""

    slug = 'vercel'

    def __init__(self, *args, base_url: Optional[str] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.base_url = (base_url or config.VERCEL_API_URL).rstrip('/')

    def _extract_page(self, body, response) -> Tuple[List[Dict[str, Any]], Any]:
        """
        Body shape: {'deployments'|'projects': [...], 'pagination': {'next': <ms timestamp>|null}}.
        The next page is requested with until=<next>.
        """
        body = body or {}
        if isinstance(body, list):
            return body, None
        items = body.get('deployments', body.get('projects')) or []
        next_cursor = (body.get('pagination') or {}).get('next')
        if next_cursor is None:
            return items, None
        return items, {'until': next_cursor}

    def authenticate(self, token: str, team_id: Optional[str] = None) -> Dict[str, Any]:
        """Verify the token against /v2/user."""
        params = {'teamId': team_id} if team_id else None
        body, _ = self.request(token, '/v2/user', params=params)
        user = (body or {}).get('user') or {}
        return {'login': user.get('username'), 'id': user.get('id')}

    def fetch_deployments(self, token: str, external_ref: str,
                          team_id: Optional[str] = None) -> FetchResult:
        """List deployments for the Vercel project id ``external_ref``."""
        params = {'projectId': external_ref, 'limit': config.PROVIDER_PAGE_SIZE}
        if team_id:
            params['teamId'] = team_id
        result = self.fetch_resource(token, '/v6/deployments', params=params)
        logger.info("Vercel project %s: %d deployments across %d page(s)",
                    external_ref, len(result.items), result.pages)
        return result

    def list_projects(self, token: str, team_id: Optional[str] = None) -> List[ProviderProject]:
        """
        Projects visible to the token (scoped to team_id when given).

        url prefers a custom production alias over *.vercel.app.
        """
        params = {'limit': config.PROVIDER_PAGE_SIZE}
        if team_id:
            params['teamId'] = team_id
        result = self.fetch_resource(token, '/v9/projects', params=params)

        projects = []
        for project in result.items:
            if not project.get('id'):
                continue
            linked_repo = (project.get('link') or {}).get('repo')
            aliases = ((project.get('targets') or {}).get('production') or {}).get('alias') or []
            alias = next((a for a in aliases if not a.endswith('.vercel.app')), None)
            alias = alias or (aliases[0] if aliases else None)
            projects.append(ProviderProject(
                ref=project['id'],
                name=project.get('name') or project['id'],
                repo=linked_repo.rsplit('/', 1)[-1] if linked_repo else None,
                url=ensure_https(alias),
            ))
        return projects
