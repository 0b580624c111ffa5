"""
apptracker package
Exposes socketio so Blueprints can import it cleanly:
    from .. import socketio
"""
from .app import socketio, create_app  # noqa: F401
