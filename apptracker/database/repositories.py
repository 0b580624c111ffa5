"""
Repository Layer
================
All database operations live here, one class per table group.
Services and blueprints call these instead of touching db.query() directly.

Pattern:
  repo = DeploymentRepository(db)
  created, updated = repo.upsert_many(app_id, 'vercel', records)
  db.commit()

Repositories flush but never commit; the caller owns the transaction.
"""

import logging
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..core.utils import utcnow
from .models import (
    Application, ApplicationProvider, Deployment,
    MaintenanceCommandType, MaintenanceRun, MaintenanceStatusItem,
    ProviderCredential,
)

if TYPE_CHECKING:
    from ..services.status_normalizer import NormalizedDeployment

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# CredentialRepository
# ─────────────────────────────────────────────────────────────────────────────
class CredentialRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: str, provider_slug: str) -> Optional[ProviderCredential]:
        return self.db.query(ProviderCredential).filter_by(
            user_id=user_id, provider_slug=provider_slug).first()

    def upsert(self, user_id: str, provider_slug: str, token: str,
               team_id: Optional[str] = None) -> ProviderCredential:
        """Create the credential or overwrite the existing one."""
        cred = self.get(user_id, provider_slug)
        if cred is None:
            cred = ProviderCredential(user_id=user_id, provider_slug=provider_slug)
            self.db.add(cred)
        cred.token = token
        cred.team_id = team_id
        self.db.flush()
        return cred

    def delete(self, user_id: str, provider_slug: str) -> bool:
        deleted = self.db.query(ProviderCredential).filter_by(
            user_id=user_id, provider_slug=provider_slug).delete()
        return deleted > 0


# ─────────────────────────────────────────────────────────────────────────────
# ApplicationRepository
# ─────────────────────────────────────────────────────────────────────────────
class ApplicationRepository:
    def __init__(self, db: Session):
        self.db = db

    def create(self, user_id: str, name: str, provider_slug: str,
               providers: Optional[Dict[str, str]] = None, **kwargs) -> Application:
        """
        Create a new application record.
        providers: {provider_slug: external_ref} links to provider projects.
        kwargs: any additional Application columns (url, tags).
        """
        app = Application(user_id=user_id, name=name, provider_slug=provider_slug, **kwargs)
        for slug, ref in (providers or {}).items():
            app.providers.append(ApplicationProvider(provider_slug=slug, external_ref=ref))
        self.db.add(app)
        self.db.flush()   # get the ID without committing
        logger.debug('ApplicationRepository.create: %s (id=%s)', name, app.id[:8])
        return app

    def get_by_id(self, app_id: str) -> Optional[Application]:
        return self.db.query(Application).filter_by(id=app_id).first()

    def list_by_user(self, user_id: str) -> List[Application]:
        return (self.db.query(Application)
                .filter_by(user_id=user_id)
                .order_by(Application.created_at.desc())
                .all())

    def mark_synced(self, app_id: str):
        self.db.query(Application).filter_by(id=app_id).update({
            'last_synced_at': utcnow(),
        })

    def delete(self, app: Application):
        """Delete an application; deployments and maintenance rows cascade."""
        self.db.delete(app)
        self.db.flush()


# ─────────────────────────────────────────────────────────────────────────────
# DeploymentRepository
# ─────────────────────────────────────────────────────────────────────────────
class DeploymentRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_key(self, application_id: str, provider_slug: str,
                   external_id: str) -> Optional[Deployment]:
        return self.db.query(Deployment).filter_by(
            application_id=application_id,
            provider_slug=provider_slug,
            external_id=external_id,
        ).first()

    def upsert(self, application_id: str, provider_slug: str,
               record: 'NormalizedDeployment') -> Tuple[Deployment, bool]:
        """
        Insert or replace the deployment keyed by
        (application_id, provider_slug, external_id).

        Returns:
            Tuple of (deployment, created)
        """
        dep = self.get_by_key(application_id, provider_slug, record.external_id)
        created = dep is None
        if created:
            dep = Deployment(
                application_id=application_id,
                provider_slug=provider_slug,
                external_id=record.external_id,
            )
            self.db.add(dep)
        dep.status = record.status
        dep.environment = record.environment
        dep.url = record.url
        dep.branch = record.branch
        dep.commit_sha = record.commit_sha
        dep.created_at = record.created_at or dep.created_at or utcnow()
        dep.synced_at = utcnow()
        self.db.flush()
        return dep, created

    def upsert_many(self, application_id: str, provider_slug: str,
                    records: Iterable['NormalizedDeployment']) -> Tuple[int, int]:
        """Upsert a batch; returns (created, updated) counts."""
        created = updated = 0
        for record in records:
            _, was_created = self.upsert(application_id, provider_slug, record)
            if was_created:
                created += 1
            else:
                updated += 1
        return created, updated

    def list_by_application(self, app_id: str, provider_slug: Optional[str] = None,
                            limit: int = 50) -> List[Deployment]:
        q = self.db.query(Deployment).filter_by(application_id=app_id)
        if provider_slug:
            q = q.filter_by(provider_slug=provider_slug)
        return q.order_by(Deployment.created_at.desc()).limit(limit).all()


# ─────────────────────────────────────────────────────────────────────────────
# MaintenanceRepository
# ─────────────────────────────────────────────────────────────────────────────
class MaintenanceRepository:
    def __init__(self, db: Session):
        self.db = db

    # ── Command types ─────────────────────────────────────────────────────
    def list_command_types(self, active_only: bool = True) -> List[MaintenanceCommandType]:
        q = self.db.query(MaintenanceCommandType)
        if active_only:
            q = q.filter_by(is_active=True)
        return q.order_by(MaintenanceCommandType.sort_order).all()

    def get_command_type(self, command_type_id: str) -> Optional[MaintenanceCommandType]:
        return self.db.query(MaintenanceCommandType).filter_by(id=command_type_id).first()

    def ensure_command_type(self, name: str, **kwargs) -> MaintenanceCommandType:
        existing = self.db.query(MaintenanceCommandType).filter_by(name=name).first()
        if existing:
            return existing
        cmd = MaintenanceCommandType(name=name, **kwargs)
        self.db.add(cmd)
        self.db.flush()
        return cmd

    # ── Runs ──────────────────────────────────────────────────────────────
    def add_run(self, **fields) -> MaintenanceRun:
        run = MaintenanceRun(**fields)
        self.db.add(run)
        self.db.flush()
        return run

    def get_run(self, run_id: str) -> Optional[MaintenanceRun]:
        return self.db.query(MaintenanceRun).filter_by(id=run_id).first()

    def list_runs(self, application_id: str, limit: int = 100) -> List[MaintenanceRun]:
        return (self.db.query(MaintenanceRun)
                .filter_by(application_id=application_id)
                .order_by(MaintenanceRun.run_at.desc(), MaintenanceRun.created_at.desc())
                .limit(limit).all())

    # ── Checklist ─────────────────────────────────────────────────────────
    def get_status_item(self, application_id: str,
                        command_type_id: str) -> Optional[MaintenanceStatusItem]:
        return self.db.query(MaintenanceStatusItem).filter_by(
            application_id=application_id, command_type_id=command_type_id).first()

    def upsert_status_item(self, run: MaintenanceRun) -> MaintenanceStatusItem:
        """
        Point the (application, command type) checklist row at this run,
        unless the row already tracks a run with a later run_at.
        """
        item = self.get_status_item(run.application_id, run.command_type_id)
        if item is None:
            item = MaintenanceStatusItem(
                application_id=run.application_id,
                command_type_id=run.command_type_id,
            )
            self.db.add(item)
        elif item.last_run_at is not None and run.run_at < item.last_run_at:
            logger.debug('Checklist for %s keeps newer run %s over backfilled %s',
                         run.command_type_id, item.last_run_id, run.id)
            return item
        item.last_run_id = run.id
        item.last_status = run.status
        item.last_run_at = run.run_at
        self.db.flush()
        return item

    def list_status_items(self, application_id: str) -> List[MaintenanceStatusItem]:
        return self.db.query(MaintenanceStatusItem).filter_by(
            application_id=application_id).all()
