"""
Provider client base for App Tracker.
Shared HTTP plumbing for every external provider: auth headers, status code
mapping onto the error taxonomy, and bounded pagination.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import requests

from ..config import config
from ..exceptions import AuthError, ProviderError, ProviderUnavailable, RateLimited

logger = logging.getLogger(__name__)


@dataclass
class FetchResult:
    """Raw provider items gathered across one or more pages."""
    items: List[Dict[str, Any]] = field(default_factory=list)
    pages: int = 0
    partial: bool = False


@dataclass(frozen=True)
class ProviderProject:
    """
    A provider-side project an application can be linked to.

    ref is what gets stored as ApplicationProvider.external_ref; repo is the
    bare source repository name the project builds from, when known.
    """
    ref: str
    name: str
    repo: Optional[str] = None
    url: Optional[str] = None


class ProviderClient:
    """
    Base class for provider API clients.

    Subclasses set ``slug`` and ``base_url`` and implement:
      - _extract_page(body, response) -> (items, next_params or None)
      - authenticate(token, team_id)
      - fetch_deployments(token, external_ref, team_id)
      - list_projects(token, team_id)
    """

    slug = 'provider'
    base_url = ''

    def __init__(self, session: Optional[requests.Session] = None,
                 timeout: Optional[float] = None,
                 max_pages: Optional[int] = None):
        """
        Initialize provider client.

        Args:
            session: HTTP session (a fresh requests.Session if None)
            timeout: Per-request timeout in seconds
            max_pages: Upper bound on pages followed per fetch
        """
        self.session = session or requests.Session()
        self.timeout = timeout if timeout is not None else config.PROVIDER_TIMEOUT
        self.max_pages = max_pages if max_pages is not None else config.PROVIDER_MAX_PAGES

    def __repr__(self):
        return f'<{type(self).__name__} base_url={self.base_url!r}>'

    # ── Headers ────────────────────────────────────────────────────────────
    def build_headers(self, token: str) -> Dict[str, str]:
        return {
            'Authorization': f'Bearer {token}',
            'Accept': 'application/json',
        }

    # ── Single request ─────────────────────────────────────────────────────
    def request(self, token: str, path: str, params: Optional[Dict[str, Any]] = None,
                url: Optional[str] = None) -> Tuple[Any, requests.Response]:
        """
        Issue one authenticated GET and map the outcome.

        Returns:
            Tuple of (decoded_body, response)

        Raises:
            AuthError: 401/403
            RateLimited: 429
            ProviderUnavailable: 5xx, timeout, connection failure
            ProviderError: any other non-2xx
        """
        target = url or f"{self.base_url}{path}"
        try:
            response = self.session.get(
                target,
                headers=self.build_headers(token),
                params=params,
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout:
            logger.warning("%s request timed out after %ss: %s", self.slug, self.timeout, path)
            raise ProviderUnavailable(self.slug, f"timed out after {self.timeout}s")
        except requests.exceptions.RequestException as e:
            # exception text can embed request headers; keep only the type
            logger.warning("%s network error on %s: %s", self.slug, path, type(e).__name__)
            raise ProviderUnavailable(self.slug, f"network error ({type(e).__name__})")

        status = response.status_code
        if 200 <= status < 300:
            if not response.content:
                return None, response
            try:
                return response.json(), response
            except ValueError:
                raise ProviderError(self.slug, status, 'response body is not JSON')

        body = response.text or ''
        if status in (401, 403):
            raise AuthError(self.slug, f"credential rejected (HTTP {status})")
        if status == 429:
            raise RateLimited(self.slug, _retry_after(response))
        if status >= 500:
            raise ProviderUnavailable(self.slug, f"HTTP {status}")
        raise ProviderError(self.slug, status, body)

    # ── Paginated fetch ────────────────────────────────────────────────────
    def fetch_resource(self, token: str, resource_path: str,
                       params: Optional[Dict[str, Any]] = None,
                       max_pages: Optional[int] = None) -> FetchResult:
        """
        Fetch a list resource, following continuation cursors.

        Stops after ``max_pages`` pages; if the provider still reports more,
        the result is truncated and marked partial.
        """
        limit = max_pages or self.max_pages
        result = FetchResult()
        page_params = dict(params or {})
        next_url = None

        while True:
            body, response = self.request(token, resource_path, params=page_params, url=next_url)
            items, continuation = self._extract_page(body, response)
            result.items.extend(items)
            result.pages += 1

            if continuation is None:
                break
            if result.pages >= limit:
                result.partial = True
                logger.warning("%s %s truncated after %d pages",
                               self.slug, resource_path, result.pages)
                break
            next_url, page_params = self._continue(continuation, page_params)

        return result

    def _continue(self, continuation, page_params):
        """Translate a continuation into (next_url, next_params)."""
        if isinstance(continuation, str):
            return continuation, None
        merged = dict(page_params or {})
        merged.update(continuation)
        return None, merged

    def _extract_page(self, body, response) -> Tuple[List[Dict[str, Any]], Any]:
        raise NotImplementedError

    # ── Capabilities ───────────────────────────────────────────────────────
    def authenticate(self, token: str, team_id: Optional[str] = None) -> Dict[str, Any]:
        raise NotImplementedError

    def fetch_deployments(self, token: str, external_ref: str,
                          team_id: Optional[str] = None) -> FetchResult:
        raise NotImplementedError

    def list_projects(self, token: str, team_id: Optional[str] = None) -> List[ProviderProject]:
        raise NotImplementedError


def _retry_after(response: requests.Response) -> Optional[float]:
    """Seconds from a Retry-After header (delta-seconds form only)."""
    value = response.headers.get('Retry-After')
    if value is None:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None
