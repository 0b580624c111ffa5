"""
Maintenance API Blueprint
Routes: /api/maintenance/command-types,
        /api/applications/<app_id>/maintenance/runs,
        /api/applications/<app_id>/maintenance/checklist,
        /api/maintenance/runs/<run_id>
"""

from flask import Blueprint, request, jsonify
import logging

from ..database.connection import db_session
from ..services.maintenance_engine import MaintenanceEngine

logger = logging.getLogger(__name__)
maintenance_bp = Blueprint('maintenance', __name__)


@maintenance_bp.route('/api/maintenance/command-types', methods=['GET'])
def list_command_types():
    """Active maintenance command types in display order."""
    engine = MaintenanceEngine(db_session())
    types = engine.list_command_types()
    return jsonify({'success': True, 'command_types': [t.to_dict() for t in types]})


@maintenance_bp.route('/api/applications/<app_id>/maintenance/runs', methods=['POST'])
def create_run(app_id):
    """
    Record a maintenance run.

    Request body:
    {
        "command_type_id": "<uuid>",
        "status": "completed",          # pending|running|completed|failed|skipped
        "results": {"exitCode": 0},      # optional
        "notes": "bumped next to 15.1",  # optional
        "run_at": "2026-10-01T09:00:00Z" # optional, defaults to now
    }
    """
    data = request.get_json(silent=True) or {}
    run = MaintenanceEngine(db_session()).create_run(
        application_id=app_id,
        command_type_id=data.get('command_type_id'),
        status=data.get('status', 'completed'),
        results=data.get('results'),
        notes=data.get('notes'),
        run_at=data.get('run_at'),
    )
    return jsonify({'success': True, 'run': run.to_dict()}), 201


@maintenance_bp.route('/api/applications/<app_id>/maintenance/runs', methods=['GET'])
def list_runs(app_id):
    """Maintenance history, newest first."""
    runs = MaintenanceEngine(db_session()).list_history(app_id)
    return jsonify({'success': True, 'count': len(runs), 'runs': [r.to_dict() for r in runs]})


@maintenance_bp.route('/api/maintenance/runs/<run_id>', methods=['PATCH'])
def update_run(run_id):
    """
    Advance a pending/running run or attach results and notes.
    Terminal runs answer 409.
    """
    data = request.get_json(silent=True) or {}
    run = MaintenanceEngine(db_session()).update_run(
        run_id,
        status=data.get('status'),
        results=data.get('results'),
        notes=data.get('notes'),
    )
    return jsonify({'success': True, 'run': run.to_dict()})


@maintenance_bp.route('/api/applications/<app_id>/maintenance/checklist', methods=['GET'])
def get_checklist(app_id):
    """Checklist: latest terminal run per command type, with overdue flags."""
    checklist = MaintenanceEngine(db_session()).get_checklist(app_id)
    return jsonify({'success': True, 'checklist': checklist})
