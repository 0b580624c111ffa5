"""
Tests for SyncCoordinator.

Covers:
- Per-provider outcomes (ok / skipped / failed) within one sync
- Retry policy: retryable errors back off, auth errors do not retry
- Upsert by natural key across repeated syncs
- Single-flight per application and non-overlapping calls per (user, provider)
- Cancellation
"""

import threading
import time
import uuid
from unittest.mock import patch

import pytest

from apptracker.database.models import Deployment
from apptracker.exceptions import AuthError, NotFoundError, ProviderUnavailable, RateLimited
from apptracker.services.credential_store import CredentialStore
from apptracker.services.sync_coordinator import RetryPolicy, SyncCoordinator

from conftest import fetched, github_item, mock_client


@pytest.fixture
def store():
    return CredentialStore()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def make_coordinator(store, sleeps):
    created = []

    def _make(**clients):
        coordinator = SyncCoordinator(
            store,
            clients=clients,
            retry_policy=RetryPolicy(),
            max_workers=4,
            sleep=sleeps.append,
        )
        created.append(coordinator)
        return coordinator

    yield _make
    for coordinator in created:
        coordinator.shutdown()


def _deployments(db, app_id):
    db.expire_all()
    return db.query(Deployment).filter_by(application_id=app_id).all()


class TestRetryPolicy:
    def test_exponential_delays(self):
        policy = RetryPolicy()
        assert [policy.delay_for(n) for n in (1, 2, 3)] == [0.5, 1.0, 2.0]

    def test_delay_is_capped(self):
        assert RetryPolicy().delay_for(6) == 4.0

    def test_retry_after_raises_delay_up_to_cap(self):
        policy = RetryPolicy()
        assert policy.delay_for(1, retry_after=1.5) == 1.5
        assert policy.delay_for(1, retry_after=30) == 4.0
        assert policy.delay_for(2, retry_after=0.1) == 1.0


class TestSyncOutcomes:
    def test_ok_and_skipped_providers(self, db, store, make_app, make_coordinator, user_id):
        app = make_app(providers={'github': 'acme/site', 'vercel': 'prj_1'})
        store.save(user_id, 'github', 'ghp_token_value')
        github = mock_client('github', fetched(github_item(1), github_item(2)))
        vercel = mock_client('vercel', fetched())
        coordinator = make_coordinator(github=github, vercel=vercel)

        result = coordinator.sync_application(app.id)

        assert result.ok is True
        assert result.per_provider['github'].status == 'ok'
        assert result.per_provider['github'].deployments == 2
        assert result.per_provider['github'].created == 2
        assert result.per_provider['vercel'].status == 'skipped'
        assert result.per_provider['vercel'].detail == 'no-credential'
        vercel.fetch_deployments.assert_not_called()
        github.fetch_deployments.assert_called_once_with(
            'ghp_token_value', 'acme/site', team_id=None)

        rows = _deployments(db, app.id)
        assert sorted(r.external_id for r in rows) == ['1', '2']
        assert all(r.status == 'deployed' for r in rows)
        db.refresh(app)
        assert app.last_synced_at is not None

    def test_primary_provider_reported_first(self, store, make_app, make_coordinator, user_id):
        app = make_app(providers={'github': 'acme/site', 'vercel': 'prj_1'}, provider_slug='vercel')
        coordinator = make_coordinator(github=mock_client('github', fetched()),
                                       vercel=mock_client('vercel', fetched()))
        result = coordinator.sync_application(app.id)
        assert list(result.per_provider) == ['vercel', 'github']

    def test_rate_limit_then_success(self, store, make_app, make_coordinator, user_id, sleeps):
        app = make_app()
        store.save(user_id, 'github', 'ghp_token_value')
        github = mock_client('github', RateLimited('github', retry_after=1.5),
                             fetched(github_item(1)))
        coordinator = make_coordinator(github=github)

        outcome = coordinator.sync_application(app.id).per_provider['github']

        assert outcome.status == 'ok'
        assert outcome.attempts == 2
        assert sleeps == [1.5]

    def test_retries_exhausted(self, store, make_app, make_coordinator, user_id, sleeps):
        app = make_app()
        store.save(user_id, 'github', 'ghp_token_value')
        github = mock_client('github', ProviderUnavailable('github', 'HTTP 503'))
        coordinator = make_coordinator(github=github)

        result = coordinator.sync_application(app.id)

        assert result.ok is False
        assert result.per_provider['github'].status == 'failed'
        assert github.fetch_deployments.call_count == 3
        assert sleeps == [0.5, 1.0]

    def test_auth_error_is_not_retried(self, db, store, make_app, make_coordinator, user_id, sleeps):
        app = make_app(providers={'github': 'acme/site', 'vercel': 'prj_1'})
        store.save(user_id, 'github', 'ghp_revoked_token')
        store.save(user_id, 'vercel', 'vc_token_value')
        github = mock_client('github', AuthError('github', 'credential rejected (HTTP 401)'))
        vercel = mock_client('vercel', fetched(
            {'uid': 'dpl_1', 'state': 'READY', 'createdAt': 1790000000000}))
        coordinator = make_coordinator(github=github, vercel=vercel)

        result = coordinator.sync_application(app.id)

        assert result.per_provider['github'].status == 'failed'
        assert result.per_provider['github'].detail.startswith('auth:')
        assert github.fetch_deployments.call_count == 1
        assert sleeps == []
        assert result.per_provider['vercel'].status == 'ok'
        assert [r.external_id for r in _deployments(db, app.id)] == ['dpl_1']

    def test_partial_fetch_is_flagged(self, store, make_app, make_coordinator, user_id):
        app = make_app()
        store.save(user_id, 'github', 'ghp_token_value')
        coordinator = make_coordinator(
            github=mock_client('github', fetched(github_item(1), partial=True)))

        outcome = coordinator.sync_application(app.id).per_provider['github']

        assert outcome.status == 'ok'
        assert outcome.partial is True
        assert 'truncated' in outcome.detail

    def test_resync_replaces_existing_record(self, db, store, make_app, make_coordinator, user_id):
        app = make_app()
        store.save(user_id, 'github', 'ghp_token_value')
        github = mock_client('github',
                             fetched(github_item(1, state='in_progress')),
                             fetched(github_item(1, state='success')))
        coordinator = make_coordinator(github=github)

        first = coordinator.sync_application(app.id).per_provider['github']
        assert [r.status for r in _deployments(db, app.id)] == ['building']

        second = coordinator.sync_application(app.id).per_provider['github']
        rows = _deployments(db, app.id)
        assert [r.status for r in rows] == ['deployed']
        assert (first.created, first.updated) == (1, 0)
        assert (second.created, second.updated) == (0, 1)

    def test_unknown_application(self, make_coordinator):
        with pytest.raises(NotFoundError):
            make_coordinator().sync_application(str(uuid.uuid4()))

    def test_sync_all(self, store, make_app, make_coordinator, user_id):
        first = make_app(name='One')
        second = make_app(name='Two')
        make_app(name='Someone else', owner=str(uuid.uuid4()))
        store.save(user_id, 'github', 'ghp_token_value')
        coordinator = make_coordinator(github=mock_client('github', fetched()))

        results = coordinator.sync_all(user_id)

        assert set(results) == {first.id, second.id}
        assert all(r.ok for r in results.values())


class TestConcurrency:
    def test_concurrent_syncs_share_one_run(self, store, make_app, make_coordinator, user_id):
        app = make_app()
        store.save(user_id, 'github', 'ghp_token_value')
        release = threading.Event()
        github = mock_client('github', fetched(github_item(1)))
        original = github.fetch_deployments.side_effect

        def _slow_fetch(*args, **kwargs):
            release.wait(5)
            return original(*args, **kwargs)

        github.fetch_deployments.side_effect = _slow_fetch
        coordinator = make_coordinator(github=github)

        follower_attached = threading.Event()
        results = {}

        def _run(name):
            results[name] = coordinator.sync_application(app.id)

        with patch('apptracker.services.sync_coordinator.logger') as mock_logger:
            def _info(msg, *args):
                if msg.startswith('Sync already running'):
                    follower_attached.set()
            mock_logger.info.side_effect = _info

            leader = threading.Thread(target=_run, args=('leader',))
            leader.start()
            deadline = time.time() + 5
            while not coordinator.is_syncing(app.id) and time.time() < deadline:
                time.sleep(0.01)

            follower = threading.Thread(target=_run, args=('follower',))
            follower.start()
            assert follower_attached.wait(5)
            release.set()
            leader.join(5)
            follower.join(5)

        assert results['leader'] is results['follower']
        assert github.fetch_deployments.call_count == 1
        assert coordinator.is_syncing(app.id) is False

    def test_same_user_provider_calls_do_not_overlap(self, store, make_app, make_coordinator, user_id):
        apps = [make_app(name=f'App {n}') for n in range(3)]
        store.save(user_id, 'github', 'ghp_token_value')
        active = []
        peak = []
        guard = threading.Lock()

        def _fetch(token, ref, team_id=None):
            with guard:
                active.append(1)
                peak.append(len(active))
            time.sleep(0.05)
            with guard:
                active.pop()
            return fetched()

        github = mock_client('github', fetched())
        github.fetch_deployments.side_effect = _fetch
        coordinator = make_coordinator(github=github)

        threads = [threading.Thread(target=coordinator.sync_application, args=(a.id,)) for a in apps]
        for t in threads:
            t.start()
        for t in threads:
            t.join(5)

        assert github.fetch_deployments.call_count == 3
        assert max(peak) == 1

    def test_cancel_discards_results(self, db, store, make_app, make_coordinator, user_id):
        app = make_app()
        store.save(user_id, 'github', 'ghp_token_value')
        started = threading.Event()
        release = threading.Event()

        def _fetch(token, ref, team_id=None):
            started.set()
            release.wait(5)
            return fetched(github_item(1))

        github = mock_client('github', fetched())
        github.fetch_deployments.side_effect = _fetch
        coordinator = make_coordinator(github=github)
        results = {}

        worker = threading.Thread(
            target=lambda: results.setdefault('r', coordinator.sync_application(app.id)))
        worker.start()
        assert started.wait(5)
        assert coordinator.cancel(app.id) is True
        release.set()
        worker.join(5)

        assert results['r'].cancelled is True
        assert results['r'].per_provider == {}
        assert _deployments(db, app.id) == []
        db.refresh(app)
        assert app.last_synced_at is None

    def test_cancel_without_sync(self, make_coordinator):
        assert make_coordinator().cancel(str(uuid.uuid4())) is False
