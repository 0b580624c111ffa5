"""
Auto-connect for App Tracker.
Links a user's applications to the provider projects that build them.

Matching works on the source repository name:
  - the repository comes from the application's GitHub link, or from its
    url when that is a github.com repository URL (which also creates the
    missing GitHub link)
  - Vercel projects match on their linked repo, then on project name
  - Cloudflare Pages projects match on source repo_name, then on project name

Existing links are never replaced. A provider that cannot be listed is
reported in ``errors`` and the other providers still connect.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.utils import parse_github_url
from ..database.connection import SessionLocal
from ..database.models import Application, ApplicationProvider
from ..database.repositories import ApplicationRepository
from ..exceptions import ProviderCallError
from ..providers.base import ProviderClient, ProviderProject
from .credential_store import CredentialStore

logger = logging.getLogger(__name__)

HOSTING_PROVIDERS = ('vercel', 'cloudflare')


@dataclass
class AutoConnectResult:
    connected: Dict[str, List[str]] = field(
        default_factory=lambda: {'github': [], 'vercel': [], 'cloudflare': []})
    already_connected: int = 0
    no_repository: int = 0
    errors: Dict[str, str] = field(default_factory=dict)

    def to_dict(self):
        return {
            'connected': {slug: list(names) for slug, names in self.connected.items()},
            'already_connected': self.already_connected,
            'no_repository': self.no_repository,
            'errors': dict(self.errors),
        }


def build_project_lookup(projects: List[ProviderProject]) -> Dict[str, ProviderProject]:
    """Index projects by source repo name; project names fill the gaps."""
    lookup: Dict[str, ProviderProject] = {}
    for project in projects:
        if project.repo:
            lookup[project.repo] = project
    for project in projects:
        lookup.setdefault(project.name, project)
    return lookup


def repository_of(app: Application) -> Optional[tuple]:
    """(owner, repo) for an application, or None when it has no known repository."""
    for link in app.providers:
        if link.provider_slug == 'github':
            owner, _, repo = link.external_ref.partition('/')
            if owner and repo:
                return owner, repo
    if app.url:
        try:
            return parse_github_url(app.url)
        except ValueError:
            return None
    return None


class AutoConnector:
    """Fills in missing ApplicationProvider links for every application of a user."""

    def __init__(self,
                 credential_store: CredentialStore,
                 clients: Dict[str, ProviderClient],
                 session_factory: Callable[[], Session] = SessionLocal):
        self.credential_store = credential_store
        self.clients = clients
        self.session_factory = session_factory

    def list_projects(self, user_id: str, provider_slug: str) -> Optional[List[ProviderProject]]:
        """
        Projects the user's credential can see, or None when the provider
        is not connected. Provider errors propagate.
        """
        cred = self.credential_store.get_credential(user_id, provider_slug)
        if cred is None:
            return None
        return self.clients[provider_slug].list_projects(cred.token, team_id=cred.team_id)

    def auto_connect(self, user_id: str) -> AutoConnectResult:
        result = AutoConnectResult()
        lookups = {slug: self._lookup(user_id, slug, result) for slug in HOSTING_PROVIDERS}

        db = self.session_factory()
        try:
            apps = ApplicationRepository(db).list_by_user(user_id)
            for app in apps:
                self._connect_app(app, lookups, result)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        logger.info('Auto-connect for user %s: %s linked, %d already connected, %d without repository',
                    user_id,
                    ', '.join(f'{slug}={len(names)}' for slug, names in result.connected.items()),
                    result.already_connected, result.no_repository)
        return result

    # ── Internals ─────────────────────────────────────────────────────────
    def _lookup(self, user_id: str, slug: str, result: AutoConnectResult) -> Dict[str, ProviderProject]:
        if slug not in self.clients:
            return {}
        try:
            projects = self.list_projects(user_id, slug)
        except ProviderCallError as e:
            result.errors[slug] = str(e)
            logger.warning('Auto-connect could not list %s projects: %s', slug, e)
            return {}
        return build_project_lookup(projects or [])

    def _connect_app(self, app: Application, lookups: Dict[str, Dict[str, ProviderProject]],
                     result: AutoConnectResult):
        repository = repository_of(app)
        if repository is None:
            result.no_repository += 1
            return

        owner, repo = repository
        linked = {link.provider_slug for link in app.providers}
        had_hosting_link = any(slug in linked for slug in HOSTING_PROVIDERS)
        connected = False

        if 'github' not in linked:
            app.providers.append(ApplicationProvider(provider_slug='github',
                                                     external_ref=f'{owner}/{repo}'))
            result.connected['github'].append(app.name)
            connected = True

        for slug in HOSTING_PROVIDERS:
            project = lookups[slug].get(repo)
            if project is None or slug in linked:
                continue
            app.providers.append(ApplicationProvider(provider_slug=slug, external_ref=project.ref))
            if not app.url and project.url:
                app.url = project.url
            result.connected[slug].append(app.name)
            connected = True
            logger.debug('Linked %s to %s project %s', app.name, slug, project.ref)

        if not connected and had_hosting_link:
            result.already_connected += 1
