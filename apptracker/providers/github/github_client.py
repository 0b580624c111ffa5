"""
GitHub client for App Tracker.
Reads owned repositories, repository deployments and their latest status.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from ...config import config
from ...exceptions import ProviderError
from ..base import FetchResult, ProviderClient, ProviderProject

logger = logging.getLogger(__name__)


class GitHubClient(ProviderClient):
    """Source-control provider: GitHub REST API v3."""

    slug = 'github'

    def __init__(self, *args, base_url: Optional[str] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.base_url = (base_url or config.GITHUB_API_URL).rstrip('/')

    def build_headers(self, token: str) -> Dict[str, str]:
        return {
            'Authorization': f'Bearer {token}',
            'Accept': 'application/vnd.github+json',
            'X-GitHub-Api-Version': config.GITHUB_API_VERSION,
        }

    def _extract_page(self, body, response) -> Tuple[List[Dict[str, Any]], Any]:
        """GitHub lists are bare arrays; the next page comes from the Link header."""
        items = body if isinstance(body, list) else []
        next_link = (response.links or {}).get('next', {}).get('url')
        return items, next_link

    def authenticate(self, token: str, team_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Verify the token against /user.

        Returns:
            Account summary {'login', 'id'}
        """
        body, _ = self.request(token, '/user')
        body = body or {}
        return {'login': body.get('login'), 'id': body.get('id')}

    def fetch_deployments(self, token: str, external_ref: str,
                          team_id: Optional[str] = None) -> FetchResult:
        """
        List deployments for 'owner/repo', each with its latest status.

        The latest status is attached under the 'latest_status' key
        (None when the deployment has no statuses yet).
        """
        owner, _, repo = external_ref.partition('/')
        if not owner or not repo or '/' in repo:
            raise ProviderError(self.slug, 400, f"invalid repository reference {external_ref!r}")

        base_path = f"/repos/{owner}/{repo}/deployments"
        result = self.fetch_resource(token, base_path, params={'per_page': config.PROVIDER_PAGE_SIZE})
        logger.info("GitHub %s: %d deployments across %d page(s)",
                    external_ref, len(result.items), result.pages)

        enriched = []
        for deployment in result.items:
            statuses, _ = self.request(
                token, f"{base_path}/{deployment.get('id')}/statuses", params={'per_page': 1})
            latest = statuses[0] if isinstance(statuses, list) and statuses else None
            enriched.append(dict(deployment, latest_status=latest))

        result.items = enriched
        return result

    def list_projects(self, token: str, team_id: Optional[str] = None) -> List[ProviderProject]:
        """Repositories owned by the token's user, most recently updated first."""
        result = self.fetch_resource(token, '/user/repos', params={
            'sort': 'updated',
            'type': 'owner',
            'per_page': config.PROVIDER_PAGE_SIZE,
        })
        return [
            ProviderProject(
                ref=repo['full_name'],
                name=repo.get('name') or repo['full_name'],
                repo=repo.get('name'),
                url=repo.get('html_url'),
            )
            for repo in result.items if repo.get('full_name')
        ]
