"""
Sync Coordinator for App Tracker.
Refreshes an application's deployments from every configured provider.

Flow per application:
  CredentialStore (token) -> ProviderClient (fetch, retried) ->
  StatusNormalizer (canonical records) -> DeploymentRepository (upsert)

Guarantees:
  - every configured provider is attempted; failures become per-provider
    outcomes instead of failing the sync
  - at most one in-flight sync per application; concurrent callers share it
  - calls to the same (user, provider) pair never overlap
"""

import contextvars
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Tuple

from sqlalchemy.orm import Session

from ..config import config
from ..core.logging_config import clear_sync_context, set_sync_context
from ..database.connection import SessionLocal
from ..database.repositories import ApplicationRepository, DeploymentRepository
from ..exceptions import AppTrackerError, AuthError, NotFoundError, ProviderCallError
from ..providers.base import FetchResult, ProviderClient
from ..providers.registry import build_clients
from .credential_store import CredentialStore, StoredCredential
from .status_normalizer import normalize

logger = logging.getLogger(__name__)

OK = 'ok'
SKIPPED = 'skipped'
FAILED = 'failed'


# ─────────────────────────────────────────────────────────────────────────────
# Retry policy
# ─────────────────────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff applied to retry-eligible provider errors."""
    max_attempts: int = 3
    base_delay: float = 0.5
    multiplier: float = 2.0
    max_delay: float = 4.0

    @classmethod
    def from_config(cls) -> 'RetryPolicy':
        return cls(
            max_attempts=config.SYNC_MAX_ATTEMPTS,
            base_delay=config.SYNC_BACKOFF_BASE,
            multiplier=config.SYNC_BACKOFF_FACTOR,
            max_delay=config.SYNC_BACKOFF_CAP,
        )

    def delay_for(self, attempt: int, retry_after: Optional[float] = None) -> float:
        """Delay before retrying after failed attempt number ``attempt`` (1-based)."""
        delay = self.base_delay * (self.multiplier ** (attempt - 1))
        if retry_after is not None:
            delay = max(delay, retry_after)
        return min(delay, self.max_delay)


# ─────────────────────────────────────────────────────────────────────────────
# Results
# ─────────────────────────────────────────────────────────────────────────────
@dataclass
class ProviderOutcome:
    status: str
    detail: str = ''
    deployments: int = 0
    created: int = 0
    updated: int = 0
    partial: bool = False
    attempts: int = 0

    def to_dict(self):
        return {
            'status': self.status,
            'detail': self.detail,
            'deployments': self.deployments,
            'created': self.created,
            'updated': self.updated,
            'partial': self.partial,
            'attempts': self.attempts,
        }


@dataclass
class SyncResult:
    application_id: str
    per_provider: Dict[str, ProviderOutcome] = field(default_factory=dict)
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return all(o.status != FAILED for o in self.per_provider.values())

    def to_dict(self):
        return {
            'application_id': self.application_id,
            'cancelled': self.cancelled,
            'ok': self.ok,
            'per_provider': {slug: o.to_dict() for slug, o in self.per_provider.items()},
        }


class SyncCancelled(AppTrackerError):
    """Raised inside a provider task once its sync has been cancelled."""


# ─────────────────────────────────────────────────────────────────────────────
# Coordinator
# ─────────────────────────────────────────────────────────────────────────────
class SyncCoordinator:
    """Runs provider syncs; one instance is shared per process."""

    def __init__(self,
                 credential_store: CredentialStore,
                 clients: Optional[Dict[str, ProviderClient]] = None,
                 session_factory: Callable[[], Session] = SessionLocal,
                 retry_policy: Optional[RetryPolicy] = None,
                 max_workers: Optional[int] = None,
                 sleep: Callable[[float], None] = time.sleep):
        """
        Initialize Sync Coordinator.

        Args:
            credential_store: Token lookup (explicit so tests can swap it)
            clients: {provider_slug: ProviderClient}; defaults to all providers
            session_factory: Creates the DB session used for each sync
            retry_policy: Backoff policy (config defaults if None)
            max_workers: Provider call thread pool size
            sleep: Backoff sleep function
        """
        self.credential_store = credential_store
        self.clients = clients if clients is not None else build_clients()
        self.session_factory = session_factory
        self.retry_policy = retry_policy or RetryPolicy.from_config()
        self._sleep = sleep
        self.max_workers = max_workers or config.SYNC_MAX_WORKERS
        self._executor = ThreadPoolExecutor(
            max_workers=self.max_workers,
            thread_name_prefix='provider-sync',
        )

        self._lock = threading.Lock()
        self._in_flight: Dict[str, Future] = {}
        self._cancel_events: Dict[str, threading.Event] = {}
        self._provider_locks: Dict[Tuple[str, str], threading.Lock] = {}

    # ── Public API ────────────────────────────────────────────────────────
    def sync_application(self, application_id: str) -> SyncResult:
        """
        Sync one application. If a sync for it is already running, wait for
        that one and return its result instead of starting another.

        Raises:
            NotFoundError: unknown application
        """
        with self._lock:
            future = self._in_flight.get(application_id)
            leader = future is None
            if leader:
                future = Future()
                cancel_event = threading.Event()
                self._in_flight[application_id] = future
                self._cancel_events[application_id] = cancel_event

        if not leader:
            logger.info('Sync already running for %s; attaching', application_id)
            return future.result()

        try:
            result = self._run_sync(application_id, cancel_event)
        except BaseException as e:
            future.set_exception(e)
            raise
        else:
            future.set_result(result)
            return result
        finally:
            with self._lock:
                self._in_flight.pop(application_id, None)
                self._cancel_events.pop(application_id, None)

    def sync_all(self, user_id: str) -> Dict[str, SyncResult]:
        """Sync every application owned by ``user_id``, one after another."""
        db = self.session_factory()
        try:
            app_ids = [a.id for a in ApplicationRepository(db).list_by_user(user_id)]
        finally:
            db.close()

        results = {}
        for app_id in app_ids:
            try:
                results[app_id] = self.sync_application(app_id)
            except NotFoundError:
                logger.info('Application %s deleted during sync-all; skipping', app_id)
        return results

    def cancel(self, application_id: str) -> bool:
        """
        Stop scheduling provider calls for an in-flight sync.
        Calls already dispatched finish, but their results are discarded.
        """
        with self._lock:
            event = self._cancel_events.get(application_id)
        if event is None:
            return False
        event.set()
        logger.info('Sync for %s cancelled', application_id)
        return True

    def is_syncing(self, application_id: str) -> bool:
        with self._lock:
            return application_id in self._in_flight

    def status(self) -> Dict[str, object]:
        """Worker pool snapshot for health reporting."""
        with self._lock:
            in_flight = sorted(self._in_flight)
        return {
            'max_workers': self.max_workers,
            'in_flight': in_flight,
            'providers': sorted(self.clients),
        }

    def shutdown(self, wait: bool = True):
        self._executor.shutdown(wait=wait)

    # ── Internals ─────────────────────────────────────────────────────────
    def _provider_lock(self, user_id: str, provider_slug: str) -> threading.Lock:
        key = (str(user_id), provider_slug)
        with self._lock:
            lock = self._provider_locks.get(key)
            if lock is None:
                lock = self._provider_locks[key] = threading.Lock()
            return lock

    def _run_sync(self, application_id: str, cancel_event: threading.Event) -> SyncResult:
        ctx_token = set_sync_context(application_id[:8])
        db = self.session_factory()
        try:
            app_repo = ApplicationRepository(db)
            app = app_repo.get_by_id(application_id)
            if app is None:
                raise NotFoundError(f"Application {application_id} not found")

            result = SyncResult(application_id=application_id)
            links = app.configured_providers()
            logger.info('Sync started for %s (%s)', app.name,
                        ', '.join(l.provider_slug for l in links) or 'no providers')

            # ── Dispatch one task per provider ───────────────────────────
            futures: Dict[str, Future] = {}
            for link in links:
                slug = link.provider_slug
                if cancel_event.is_set():
                    break
                client = self.clients.get(slug)
                if client is None:
                    result.per_provider[slug] = ProviderOutcome(FAILED, 'no-client')
                    logger.error('No client registered for provider %s', slug)
                    continue
                cred = self.credential_store.get_credential(app.user_id, slug)
                if cred is None:
                    result.per_provider[slug] = ProviderOutcome(SKIPPED, 'no-credential')
                    logger.info('%s skipped: no credential', slug)
                    continue
                ctx = contextvars.copy_context()
                futures[slug] = self._executor.submit(
                    ctx.run, self._fetch_with_retry,
                    client, app.user_id, link.external_ref, cred, cancel_event,
                )

            # ── Collect, normalize, persist (in provider order) ──────────
            dep_repo = DeploymentRepository(db)
            for slug, future in futures.items():
                try:
                    fetched, attempts = future.result()
                except SyncCancelled:
                    continue
                except AuthError as e:
                    result.per_provider[slug] = ProviderOutcome(FAILED, f'auth: {e}')
                    logger.warning('%s failed: credential rejected; re-authentication required', slug)
                    continue
                except ProviderCallError as e:
                    result.per_provider[slug] = ProviderOutcome(FAILED, str(e))
                    logger.warning('%s failed: %s', slug, e)
                    continue
                except Exception as e:
                    result.per_provider[slug] = ProviderOutcome(FAILED, f'error: {e}')
                    logger.exception('%s failed unexpectedly', slug)
                    continue

                if cancel_event.is_set():
                    continue

                records = normalize(slug, fetched.items)
                try:
                    created, updated = dep_repo.upsert_many(application_id, slug, records)
                    db.commit()
                except Exception as e:
                    db.rollback()
                    result.per_provider[slug] = ProviderOutcome(FAILED, f'persist: {e}', attempts=attempts)
                    logger.exception('%s: failed to persist deployments', slug)
                    continue

                result.per_provider[slug] = ProviderOutcome(
                    OK,
                    f'{len(records)} deployments persisted' + (' (truncated)' if fetched.partial else ''),
                    deployments=len(records),
                    created=created,
                    updated=updated,
                    partial=fetched.partial,
                    attempts=attempts,
                )
                logger.info('%s ok: %d deployments (%d new, %d updated)',
                            slug, len(records), created, updated)

            if cancel_event.is_set():
                result.cancelled = True
                logger.info('Sync for %s cancelled; pending results discarded', application_id)
                return result

            app_repo.mark_synced(application_id)
            db.commit()
            return result
        finally:
            db.close()
            clear_sync_context(ctx_token)

    def _fetch_with_retry(self, client: ProviderClient, user_id: str, external_ref: str,
                          cred: StoredCredential,
                          cancel_event: threading.Event) -> Tuple[FetchResult, int]:
        """
        Run client.fetch_deployments under the retry policy.

        Returns:
            Tuple of (fetch_result, attempts_used)
        """
        policy = self.retry_policy
        lock = self._provider_lock(user_id, client.slug)
        attempt = 0
        while True:
            if cancel_event.is_set():
                raise SyncCancelled(f'{client.slug} cancelled')
            attempt += 1
            try:
                with lock:
                    return client.fetch_deployments(cred.token, external_ref, team_id=cred.team_id), attempt
            except ProviderCallError as e:
                if not e.retryable or attempt >= policy.max_attempts:
                    raise
                delay = policy.delay_for(attempt, getattr(e, 'retry_after', None))
                logger.warning('%s attempt %d/%d failed (%s); retrying in %.1fs',
                               client.slug, attempt, policy.max_attempts, e, delay)
                self._sleep(delay)
