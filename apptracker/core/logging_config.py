import logging
import logging.handlers
import sys
import os
import json
from contextvars import ContextVar

# ── 1. Context Tracking ──
# ContextVar tracks the application being synced across worker threads
# without passing it explicitly to every logger.info() call.
sync_context: ContextVar[str] = ContextVar('sync_id', default='system')

def set_sync_context(sync_id: str):
    """Set the sync (application) ID for the current execution context."""
    return sync_context.set(sync_id)

def clear_sync_context(token=None):
    """Reset the sync context back to system."""
    if token is not None:
        sync_context.reset(token)
    else:
        sync_context.set('system')

class SyncContextFilter(logging.Filter):
    """Injects the current sync_id into every log record."""
    def filter(self, record):
        record.sync_id = sync_context.get()
        return True

# ── 2. Endpoint Filtering ──
class QuietLibrariesFilter(logging.Filter):
    """Silences noisy health checks and routine socket polling."""
    def filter(self, record):
        msg = record.getMessage()
        if 'GET /socket.io/' in msg or 'POST /socket.io/' in msg:
            return False
        if 'GET /api/health' in msg:
            return False
        return True

# ── 3. JSON Formatter ──
class JSONFormatter(logging.Formatter):
    """Outputs logs as single-line JSON strings for log shippers."""
    def format(self, record):
        log_record = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "sync_id": getattr(record, "sync_id", "system"),
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_record)

# ── 4. Main Configuration ──
def configure_logging(
    log_file: str = 'apptracker.log',
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
    use_json: bool = False
) -> logging.Logger:
    """
    Idempotent logging configuration.
    Safe for Gunicorn/Flask reloads; prevents duplicate log entries.
    """
    root_logger = logging.getLogger()

    # Clear existing handlers to prevent duplicate lines on reload
    if root_logger.hasHandlers():
        root_logger.handlers.clear()

    root_logger.setLevel(logging.DEBUG)

    context_filter = SyncContextFilter()

    if use_json or os.environ.get('FLASK_ENV') == 'production':
        formatter = JSONFormatter(datefmt='%Y-%m-%dT%H:%M:%S%z')
    else:
        # 2026-02-25 10:00:00 - INFO - sync_coordinator - [3f2a…] - Message
        formatter = logging.Formatter(
            fmt='%(asctime)s - %(levelname)-8s - %(name)s - [%(sync_id)s] - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(context_filter)
    console_handler.setLevel(console_level)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,  # 10 MB
            backupCount=5
        )
        file_handler.setFormatter(formatter)
        file_handler.addFilter(context_filter)
        file_handler.setLevel(file_level)
        root_logger.addHandler(file_handler)

    # ── 5. Suppress Noisy External Libraries ──
    werkzeug = logging.getLogger('werkzeug')
    werkzeug.setLevel(logging.INFO)
    werkzeug.addFilter(QuietLibrariesFilter())

    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)

    # urllib3 logs full request lines; keep provider URLs out of INFO output
    logging.getLogger('urllib3').setLevel(logging.WARNING)
    logging.getLogger('socketio.server').setLevel(logging.WARNING)
    logging.getLogger('engineio.server').setLevel(logging.WARNING)

    return logging.getLogger(__name__)
