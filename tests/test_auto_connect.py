"""
Tests for AutoConnector.

Covers:
- Matching applications to Vercel / Cloudflare projects by source repo, then name
- GitHub links derived from a github.com application url
- Existing links are kept; unlisted providers are reported, not fatal
"""

import uuid
from unittest.mock import MagicMock

import pytest

from apptracker.core.utils import parse_github_url
from apptracker.database.models import Application
from apptracker.database.repositories import ApplicationRepository
from apptracker.exceptions import AuthError
from apptracker.providers.base import ProviderProject
from apptracker.services.auto_connect import AutoConnector, build_project_lookup, repository_of
from apptracker.services.credential_store import CredentialStore

CF_ACCOUNT = '0123456789abcdef0123456789abcdef'


def _links(db, app_id):
    db.expire_all()
    app = db.get(Application, app_id)
    return {p.provider_slug: p.external_ref for p in app.providers}


class TestAutoConnector:
    def setup_method(self):
        self.store = CredentialStore()
        self.clients = {slug: MagicMock() for slug in ('github', 'vercel', 'cloudflare')}
        for client in self.clients.values():
            client.list_projects.return_value = []
        self.connector = AutoConnector(self.store, clients=self.clients)

    def test_links_vercel_project_by_repo(self, db, make_app, user_id):
        app = make_app()
        self.store.save(user_id, 'vercel', 'vc_token_123456')
        self.clients['vercel'].list_projects.return_value = [
            ProviderProject(ref='prj_1', name='marketing', repo='site', url='https://www.acme.dev'),
        ]

        result = self.connector.auto_connect(user_id)

        assert result.connected['vercel'] == ['Marketing site']
        assert result.connected['github'] == []
        assert _links(db, app.id) == {'github': 'acme/site', 'vercel': 'prj_1'}
        assert db.get(Application, app.id).url == 'https://www.acme.dev'
        self.clients['vercel'].list_projects.assert_called_once_with('vc_token_123456', team_id=None)

    def test_providers_without_credentials_are_not_listed(self, make_app, user_id):
        make_app()
        result = self.connector.auto_connect(user_id)
        self.clients['vercel'].list_projects.assert_not_called()
        self.clients['cloudflare'].list_projects.assert_not_called()
        assert result.errors == {}

    def test_github_link_from_application_url(self, db, user_id):
        app = ApplicationRepository(db).create(
            user_id=user_id, name='Docs', provider_slug='vercel',
            url='https://github.com/acme/docs.git')
        db.commit()

        result = self.connector.auto_connect(user_id)

        assert result.connected['github'] == ['Docs']
        assert _links(db, app.id) == {'github': 'acme/docs'}

    def test_application_without_repository(self, make_app, user_id):
        make_app(providers={})
        result = self.connector.auto_connect(user_id)
        assert result.no_repository == 1
        assert result.connected == {'github': [], 'vercel': [], 'cloudflare': []}

    def test_existing_link_is_kept(self, db, make_app, user_id):
        app = make_app(providers={'github': 'acme/site', 'vercel': 'prj_old'})
        self.store.save(user_id, 'vercel', 'vc_token_123456')
        self.clients['vercel'].list_projects.return_value = [
            ProviderProject(ref='prj_new', name='site', repo='site'),
        ]

        result = self.connector.auto_connect(user_id)

        assert result.connected['vercel'] == []
        assert result.already_connected == 1
        assert _links(db, app.id)['vercel'] == 'prj_old'

    def test_listing_failure_does_not_block_other_providers(self, db, make_app, user_id):
        app = make_app()
        self.store.save(user_id, 'vercel', 'vc_token_123456')
        self.store.save(user_id, 'cloudflare', 'cf_token_123456', team_id=CF_ACCOUNT)
        self.clients['vercel'].list_projects.side_effect = AuthError(
            'vercel', 'credential rejected (HTTP 401)')
        self.clients['cloudflare'].list_projects.return_value = [
            ProviderProject(ref='site', name='site', url='https://site.pages.dev'),
        ]

        result = self.connector.auto_connect(user_id)

        assert set(result.errors) == {'vercel'}
        assert result.connected['cloudflare'] == ['Marketing site']
        assert _links(db, app.id) == {'github': 'acme/site', 'cloudflare': 'site'}

    def test_other_users_applications_untouched(self, db, make_app, user_id):
        other = make_app(owner=str(uuid.uuid4()))
        self.store.save(user_id, 'vercel', 'vc_token_123456')
        self.clients['vercel'].list_projects.return_value = [
            ProviderProject(ref='prj_1', name='site', repo='site'),
        ]

        result = self.connector.auto_connect(user_id)

        assert result.to_dict()['connected']['vercel'] == []
        assert _links(db, other.id) == {'github': 'acme/site'}

    def test_list_projects_without_credential(self, user_id):
        assert self.connector.list_projects(user_id, 'github') is None


class TestMatching:
    def test_repo_match_beats_name_match(self):
        by_name = ProviderProject(ref='a', name='site')
        by_repo = ProviderProject(ref='b', name='web', repo='site')
        lookup = build_project_lookup([by_name, by_repo])
        assert lookup['site'] is by_repo
        assert lookup['web'] is by_repo

    def test_repository_prefers_github_link(self, make_app):
        app = make_app(providers={'github': 'acme/site'})
        app.url = 'https://github.com/other/thing'
        assert repository_of(app) == ('acme', 'site')

    def test_repository_ignores_non_github_url(self, make_app):
        app = make_app(providers={})
        app.url = 'https://www.acme.dev'
        assert repository_of(app) is None


class TestParseGithubUrl:
    @pytest.mark.parametrize('url', [
        'https://github.com/acme/site',
        'https://github.com/acme/site.git',
        'https://www.github.com/acme/site/tree/main',
    ])
    def test_owner_and_repo(self, url):
        assert parse_github_url(url) == ('acme', 'site')

    @pytest.mark.parametrize('url', [
        'https://gitlab.com/acme/site',
        'https://github.com/acme',
        'not a url',
    ])
    def test_rejects_non_repository_urls(self, url):
        with pytest.raises(ValueError):
            parse_github_url(url)
