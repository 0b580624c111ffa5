"""
Shared fixtures.

The database URL is pinned to a throwaway SQLite file before apptracker is
imported, so the module-level engine never touches a real database.
"""

import os
import tempfile
import uuid
from unittest.mock import MagicMock

import pytest

_TMP_DIR = tempfile.mkdtemp(prefix='apptracker-tests-')
os.environ['DATABASE_URL'] = f"sqlite:///{os.path.join(_TMP_DIR, 'test.db')}"
os.environ['LOG_FILE'] = ''

from apptracker.database.connection import SessionLocal, db_session, engine  # noqa: E402
from apptracker.database.models import Base  # noqa: E402
from apptracker.database.repositories import ApplicationRepository  # noqa: E402
from apptracker.providers.base import FetchResult  # noqa: E402
from apptracker.services.maintenance_engine import seed_command_types  # noqa: E402


@pytest.fixture(autouse=True)
def fresh_schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    db_session.remove()


@pytest.fixture
def db():
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def user_id():
    return str(uuid.uuid4())


@pytest.fixture
def make_app(db, user_id):
    """Factory: persist an application linked to the given providers."""
    def _make(providers=None, provider_slug='github', name='Marketing site', owner=None):
        app = ApplicationRepository(db).create(
            user_id=owner or user_id,
            name=name,
            provider_slug=provider_slug,
            providers=providers if providers is not None else {'github': 'acme/site'},
        )
        db.commit()
        return app
    return _make


@pytest.fixture
def command_types(db):
    seed_command_types(db)
    db.commit()
    from apptracker.database.repositories import MaintenanceRepository
    return {c.name: c for c in MaintenanceRepository(db).list_command_types()}


def make_response(status_code=200, json_body=None, headers=None, links=None, text=''):
    """MagicMock shaped like a requests.Response."""
    response = MagicMock()
    response.status_code = status_code
    response.headers = headers or {}
    response.links = links or {}
    response.text = text
    response.content = b'{}' if json_body is not None else b''
    response.json.return_value = json_body
    return response


def mock_client(slug, *results):
    """
    Provider client double whose fetch_deployments returns/raises ``results``
    in order (the last one repeats).
    """
    client = MagicMock()
    client.slug = slug
    queue = list(results)

    def _fetch(token, external_ref, team_id=None):
        outcome = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    client.fetch_deployments.side_effect = _fetch
    return client


def github_item(dep_id, state='success', ref='main', created_at='2026-10-01T12:00:00Z'):
    return {
        'id': dep_id,
        'ref': ref,
        'sha': 'a' * 40,
        'environment': 'production',
        'created_at': created_at,
        'latest_status': {'state': state, 'environment_url': 'https://site.example.com'},
    }


def fetched(*items, partial=False):
    return FetchResult(items=list(items), pages=1, partial=partial)
