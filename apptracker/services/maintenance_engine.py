"""
Maintenance Engine for App Tracker.
Owns the maintenance run state machine and the derived checklist.

Run lifecycle:
    pending -> running -> {completed, failed, skipped}
    pending -> {completed, failed, skipped}     (recorded without tracking)

Terminal runs are immutable. Entering a terminal state is the only thing
that writes the (application, command type) checklist row.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.input_validators import (
    validate_create_maintenance_run, validate_update_maintenance_run, validate_uuid,
)
from ..core.utils import parse_timestamp, utcnow
from ..database.models import MaintenanceRun, TERMINAL_STATUSES
from ..database.repositories import ApplicationRepository, MaintenanceRepository
from ..exceptions import InvalidTransition, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    'pending': {'pending', 'running', 'completed', 'failed', 'skipped'},
    'running': {'running', 'completed', 'failed', 'skipped'},
}

DEFAULT_COMMAND_TYPES = [
    {'name': 'Dependency update', 'recommended_frequency_days': 30,
     'description': 'Upgrade outdated packages and lockfiles.'},
    {'name': 'Security audit', 'recommended_frequency_days': 30,
     'description': 'Run the dependency vulnerability scanner and triage findings.'},
    {'name': 'Backup check', 'recommended_frequency_days': 7,
     'description': 'Verify the latest backup exists and can be restored.'},
    {'name': 'SSL certificate check', 'recommended_frequency_days': 60,
     'description': 'Confirm certificates are valid and auto-renewal works.'},
    {'name': 'Performance review', 'recommended_frequency_days': 90,
     'description': 'Review Lighthouse scores, bundle size and slow endpoints.'},
]


def seed_command_types(db: Session) -> int:
    """Insert the default command type catalog if missing. Returns rows created."""
    repo = MaintenanceRepository(db)
    existing = {c.name for c in repo.list_command_types(active_only=False)}
    created = 0
    for order, entry in enumerate(DEFAULT_COMMAND_TYPES):
        if entry['name'] not in existing:
            repo.ensure_command_type(sort_order=order, **entry)
            created += 1
    return created


class MaintenanceEngine:
    """Maintenance run commands against one database session."""

    def __init__(self, db: Session):
        self.db = db
        self.repo = MaintenanceRepository(db)
        self.apps = ApplicationRepository(db)

    # ── Commands ──────────────────────────────────────────────────────────
    def create_run(self, application_id: str, command_type_id: str,
                   status: str = 'completed', results: Optional[Dict[str, Any]] = None,
                   notes: Optional[str] = None, run_at=None) -> MaintenanceRun:
        """
        Record a maintenance run. Any status may be the first recorded one.

        Raises:
            ValidationError: malformed input
            NotFoundError: unknown application or command type
        """
        is_valid, errors = validate_create_maintenance_run({
            'application_id': application_id,
            'command_type_id': command_type_id,
            'status': status,
            'results': results,
            'notes': notes,
            'run_at': run_at,
        })
        if not is_valid:
            raise ValidationError(errors)

        if self.apps.get_by_id(application_id) is None:
            raise NotFoundError(f"Application {application_id} not found")
        if self.repo.get_command_type(command_type_id) is None:
            raise NotFoundError(f"Maintenance command type {command_type_id} not found")

        if run_at is not None and not hasattr(run_at, 'isoformat'):
            run_at = parse_timestamp(run_at)
        elif run_at is not None and run_at.tzinfo is not None:
            run_at = parse_timestamp(run_at.isoformat())

        try:
            run = self.repo.add_run(
                application_id=application_id,
                command_type_id=command_type_id,
                status=status,
                results=results,
                notes=notes or None,
                run_at=run_at or utcnow(),
            )
            if run.is_terminal:
                self.repo.upsert_status_item(run)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info('Maintenance run %s recorded for app %s (%s)',
                    run.id[:8], application_id[:8], status)
        return run

    def update_run(self, run_id: str, status: Optional[str] = None,
                   results: Optional[Dict[str, Any]] = None,
                   notes: Optional[str] = None) -> MaintenanceRun:
        """
        Move a live run forward and/or attach results and notes.

        Raises:
            ValidationError: malformed input
            NotFoundError: unknown run
            InvalidTransition: run is terminal, or the move goes backwards
        """
        is_valid, errors = validate_update_maintenance_run({
            'id': run_id, 'status': status, 'results': results, 'notes': notes,
        })
        if not is_valid:
            raise ValidationError(errors)

        run = self.repo.get_run(run_id)
        if run is None:
            raise NotFoundError(f"Maintenance run {run_id} not found")

        if run.is_terminal:
            raise InvalidTransition(run.id, run.status, status)
        target = status or run.status
        if target not in ALLOWED_TRANSITIONS.get(run.status, set()):
            raise InvalidTransition(run.id, run.status, target)

        previous = run.status
        try:
            run.status = target
            if results is not None:
                run.results = results
            if notes is not None:
                run.notes = notes or None
            self.db.flush()
            if target in TERMINAL_STATUSES:
                self.repo.upsert_status_item(run)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        if previous != target:
            logger.info('Maintenance run %s: %s -> %s', run.id[:8], previous, target)
        return run

    # ── Queries ───────────────────────────────────────────────────────────
    def get_run(self, run_id: str) -> MaintenanceRun:
        run = self.repo.get_run(run_id)
        if run is None:
            raise NotFoundError(f"Maintenance run {run_id} not found")
        return run

    def list_history(self, application_id: str, limit: int = 100) -> List[MaintenanceRun]:
        """All runs for an application, newest first."""
        self._require_application(application_id)
        return self.repo.list_runs(application_id, limit=limit)

    def list_command_types(self):
        return self.repo.list_command_types()

    def get_checklist(self, application_id: str) -> List[Dict[str, Any]]:
        """
        One entry per active command type, derived from the status rows.

        Each entry carries last_run_id, last_status, last_run_at,
        days_since_run, is_overdue and never_run.
        """
        self._require_application(application_id)

        items = {i.command_type_id: i for i in self.repo.list_status_items(application_id)}
        now = utcnow()
        checklist = []
        for cmd in self.repo.list_command_types():
            item = items.get(cmd.id)
            days = None
            if item is not None and item.last_run_at is not None:
                days = max(0, (now - item.last_run_at).days)
            checklist.append({
                'command_type': cmd.to_dict(),
                'application_id': application_id,
                'command_type_id': cmd.id,
                'last_run_id': item.last_run_id if item else None,
                'last_status': item.last_status if item else None,
                'last_run_at': item.last_run_at.isoformat() if item and item.last_run_at else None,
                'days_since_run': days,
                'is_overdue': days is not None and days > cmd.recommended_frequency_days,
                'never_run': item is None,
            })
        return checklist

    def _require_application(self, application_id: str):
        is_valid, error = validate_uuid(application_id, 'application_id')
        if not is_valid:
            raise ValidationError(error)
        if self.apps.get_by_id(application_id) is None:
            raise NotFoundError(f"Application {application_id} not found")
