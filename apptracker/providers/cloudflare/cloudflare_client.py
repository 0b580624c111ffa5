"""
Cloudflare client for App Tracker.
Reads Cloudflare Pages projects and their deployments for an account.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from ...config import config
from ...core.utils import ensure_https
from ...exceptions import AuthError
from ..base import FetchResult, ProviderClient, ProviderProject

logger = logging.getLogger(__name__)


class CloudflareClient(ProviderClient):
    """CDN provider: Cloudflare Pages. team_id carries the account id."""

    slug = 'cloudflare'

    def __init__(self, *args, base_url: Optional[str] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.base_url = (base_url or config.CLOUDFLARE_API_URL).rstrip('/')

    def build_headers(self, token: str) -> Dict[str, str]:
        headers = super().build_headers(token)
        headers['Content-Type'] = 'application/json'
        return headers

    def _extract_page(self, body, response) -> Tuple[List[Dict[str, Any]], Any]:
        """
        Envelope: {'result': [...], 'result_info': {'page', 'total_pages'}}.
        """
        body = body or {}
        items = body.get('result') or []
        info = body.get('result_info') or {}
        page = info.get('page')
        total = info.get('total_pages')
        if page is None or total is None or page >= total:
            return items, None
        return items, {'page': page + 1}

    def authenticate(self, token: str, team_id: Optional[str] = None) -> Dict[str, Any]:
        """Verify the token via /user/tokens/verify."""
        body, _ = self.request(token, '/user/tokens/verify')
        result = (body or {}).get('result') or {}
        return {'id': result.get('id'), 'status': result.get('status'), 'account_id': team_id}

    def fetch_deployments(self, token: str, external_ref: str,
                          team_id: Optional[str] = None) -> FetchResult:
        """List deployments for the Pages project ``external_ref``."""
        if not team_id:
            # a token without its account id cannot address any project
            raise AuthError(self.slug, "Cloudflare account id is not configured")
        path = f"/accounts/{team_id}/pages/projects/{external_ref}/deployments"
        result = self.fetch_resource(token, path, params={'per_page': config.PROVIDER_PAGE_SIZE})
        logger.info("Cloudflare project %s: %d deployments across %d page(s)",
                    external_ref, len(result.items), result.pages)
        return result

    def list_projects(self, token: str, team_id: Optional[str] = None) -> List[ProviderProject]:
        """Pages projects in the account; url is the first custom domain or the pages.dev subdomain."""
        if not team_id:
            raise AuthError(self.slug, "Cloudflare account id is not configured")
        result = self.fetch_resource(token, f"/accounts/{team_id}/pages/projects")

        projects = []
        for project in result.items:
            if not project.get('name'):
                continue
            domains = project.get('domains') or []
            source = (project.get('source') or {}).get('config') or {}
            projects.append(ProviderProject(
                ref=project['name'],
                name=project['name'],
                repo=source.get('repo_name') or None,
                url=ensure_https(domains[0] if domains else project.get('subdomain')),
            ))
        return projects
