"""
Tests for MaintenanceEngine.

Covers:
- Run lifecycle (pending -> running -> terminal) and terminal immutability
- Checklist derivation (latest terminal run, overdue flags, never run)
- Command validation and missing references
"""

import uuid
from datetime import timedelta

import pytest

from apptracker.core.utils import utcnow
from apptracker.database.models import MaintenanceRun
from apptracker.exceptions import InvalidTransition, NotFoundError, ValidationError
from apptracker.services.maintenance_engine import (
    DEFAULT_COMMAND_TYPES, MaintenanceEngine, seed_command_types,
)


@pytest.fixture
def engine(db):
    return MaintenanceEngine(db)


@pytest.fixture
def app(make_app):
    return make_app()


def _entry(checklist, name):
    return next(e for e in checklist if e['command_type']['name'] == name)


class TestSeeding:
    def test_seed_is_idempotent(self, db):
        assert seed_command_types(db) == len(DEFAULT_COMMAND_TYPES)
        db.commit()
        assert seed_command_types(db) == 0

    def test_catalog_order(self, engine, command_types):
        names = [c.name for c in engine.list_command_types()]
        assert names == [c['name'] for c in DEFAULT_COMMAND_TYPES]


class TestRunLifecycle:
    def test_create_completed_updates_checklist(self, engine, app, command_types):
        cmd = command_types['Dependency update']
        run = engine.create_run(app.id, cmd.id, status='completed',
                                results={'exitCode': 0}, notes='bumped deps')

        entry = _entry(engine.get_checklist(app.id), 'Dependency update')
        assert entry['last_run_id'] == run.id
        assert entry['last_status'] == 'completed'
        assert entry['never_run'] is False
        assert entry['days_since_run'] == 0
        assert entry['is_overdue'] is False

    def test_defaults_to_completed(self, engine, app, command_types):
        run = engine.create_run(app.id, command_types['Backup check'].id)
        assert run.status == 'completed'
        assert run.run_at is not None

    def test_pending_run_does_not_touch_checklist(self, engine, app, command_types):
        cmd = command_types['Security audit']
        engine.create_run(app.id, cmd.id, status='pending')
        entry = _entry(engine.get_checklist(app.id), 'Security audit')
        assert entry['never_run'] is True
        assert entry['last_status'] is None

    def test_pending_running_completed(self, engine, app, command_types):
        cmd = command_types['Security audit']
        run = engine.create_run(app.id, cmd.id, status='pending')

        engine.update_run(run.id, status='running')
        assert _entry(engine.get_checklist(app.id), 'Security audit')['never_run'] is True

        engine.update_run(run.id, status='completed', results={'vulnerabilities': 0})
        entry = _entry(engine.get_checklist(app.id), 'Security audit')
        assert entry['last_run_id'] == run.id
        assert entry['last_status'] == 'completed'
        assert engine.get_run(run.id).results == {'vulnerabilities': 0}

    def test_pending_may_be_skipped(self, engine, app, command_types):
        run = engine.create_run(app.id, command_types['Backup check'].id, status='pending')
        assert engine.update_run(run.id, status='skipped').status == 'skipped'

    def test_running_cannot_go_back_to_pending(self, engine, app, command_types):
        run = engine.create_run(app.id, command_types['Backup check'].id, status='running')
        with pytest.raises(InvalidTransition):
            engine.update_run(run.id, status='pending')

    def test_notes_on_live_run(self, engine, app, command_types):
        run = engine.create_run(app.id, command_types['Backup check'].id, status='running')
        updated = engine.update_run(run.id, notes='restoring snapshot')
        assert updated.status == 'running'
        assert updated.notes == 'restoring snapshot'

    @pytest.mark.parametrize('terminal', ['completed', 'failed', 'skipped'])
    def test_terminal_runs_are_immutable(self, db, engine, app, command_types, terminal):
        run = engine.create_run(app.id, command_types['Backup check'].id, status=terminal)

        with pytest.raises(InvalidTransition) as exc:
            engine.update_run(run.id, status='running')
        assert exc.value.current == terminal
        with pytest.raises(InvalidTransition):
            engine.update_run(run.id, notes='too late')

        db.expire_all()
        stored = db.get(MaintenanceRun, run.id)
        assert stored.status == terminal
        assert stored.notes is None

    def test_latest_terminal_run_wins(self, engine, app, command_types):
        cmd = command_types['Performance review']
        engine.create_run(app.id, cmd.id, status='completed')
        second = engine.create_run(app.id, cmd.id, status='failed')
        entry = _entry(engine.get_checklist(app.id), 'Performance review')
        assert entry['last_run_id'] == second.id
        assert entry['last_status'] == 'failed'

    def test_history_newest_first(self, engine, app, command_types):
        cmd = command_types['Backup check']
        old = engine.create_run(app.id, cmd.id, run_at=(utcnow() - timedelta(days=3)).isoformat())
        new = engine.create_run(app.id, cmd.id)
        assert [r.id for r in engine.list_history(app.id)] == [new.id, old.id]

    def test_backfilled_older_run_keeps_latest(self, engine, app, command_types):
        cmd = command_types['Backup check']   # every 7 days
        recent = engine.create_run(app.id, cmd.id, status='completed')
        backfilled = engine.create_run(app.id, cmd.id, status='failed',
                                       run_at=utcnow() - timedelta(days=60))

        entry = _entry(engine.get_checklist(app.id), 'Backup check')
        assert entry['last_run_id'] == recent.id
        assert entry['last_status'] == 'completed'
        assert entry['is_overdue'] is False
        assert [r.id for r in engine.list_history(app.id)] == [recent.id, backfilled.id]


class TestChecklist:
    def test_overdue_after_recommended_frequency(self, engine, app, command_types):
        cmd = command_types['Backup check']   # every 7 days
        engine.create_run(app.id, cmd.id, run_at=utcnow() - timedelta(days=10))
        entry = _entry(engine.get_checklist(app.id), 'Backup check')
        assert entry['days_since_run'] == 10
        assert entry['is_overdue'] is True

    def test_one_entry_per_active_command(self, engine, app, command_types):
        checklist = engine.get_checklist(app.id)
        assert len(checklist) == len(DEFAULT_COMMAND_TYPES)
        assert all(e['never_run'] and not e['is_overdue'] for e in checklist)

    def test_unknown_application(self, engine, command_types):
        with pytest.raises(NotFoundError):
            engine.get_checklist(str(uuid.uuid4()))

    def test_history_for_unknown_application(self, engine):
        with pytest.raises(NotFoundError):
            engine.list_history(str(uuid.uuid4()))

    def test_history_for_malformed_application_id(self, engine):
        with pytest.raises(ValidationError):
            engine.list_history('bad')


class TestValidation:
    def test_bad_status(self, engine, app, command_types):
        with pytest.raises(ValidationError):
            engine.create_run(app.id, command_types['Backup check'].id, status='done')

    def test_results_must_be_object(self, engine, app, command_types):
        with pytest.raises(ValidationError):
            engine.create_run(app.id, command_types['Backup check'].id, results=['nope'])

    def test_notes_length(self, engine, app, command_types):
        with pytest.raises(ValidationError):
            engine.create_run(app.id, command_types['Backup check'].id, notes='x' * 1001)

    def test_unknown_command_type(self, engine, app, command_types):
        with pytest.raises(NotFoundError):
            engine.create_run(app.id, str(uuid.uuid4()))

    def test_unknown_application(self, engine, command_types):
        with pytest.raises(NotFoundError):
            engine.create_run(str(uuid.uuid4()), command_types['Backup check'].id)

    def test_unknown_run(self, engine):
        with pytest.raises(NotFoundError):
            engine.update_run(str(uuid.uuid4()), status='completed')

    def test_malformed_run_id(self, engine):
        with pytest.raises(ValidationError):
            engine.update_run('not-a-uuid', status='completed')
