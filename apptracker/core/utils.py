"""
Utility functions for App Tracker.
Small helpers shared by providers, services and API blueprints.
"""

import logging
from datetime import datetime, timezone
from typing import Optional, Tuple
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

PROVIDER_SLUGS = ('github', 'vercel', 'cloudflare')


def mask_token(token: Optional[str]) -> str:
    """
    Mask a provider token for display or logging.

    Args:
        token: Raw token (may be None)

    Returns:
        Masked token such as 'ghp_…9f2c'
    """
    if not token:
        return '<none>'
    if len(token) <= 8:
        return '****'
    return f"{token[:4]}…{token[-4:]}"


def parse_github_url(url: str) -> Tuple[str, str]:
    """
    Parse a GitHub repository URL into (owner, repo).

    Accepts https URLs with extra path segments (/tree/main) and a .git
    suffix. Raises ValueError for anything that is not a github.com repo.
    """
    parsed = urlparse(url or '')
    host = (parsed.hostname or '').lower()
    if host not in ('github.com', 'www.github.com'):
        raise ValueError(f"Not a GitHub URL: {url}")

    segments = [s for s in parsed.path.split('/') if s]
    if len(segments) < 2:
        raise ValueError(f"Invalid GitHub URL: {url}")
    owner, repo = segments[0], segments[1]
    if repo.endswith('.git'):
        repo = repo[:-4]
    return owner, repo


def ensure_https(url: Optional[str]) -> Optional[str]:
    """Prefix a bare hostname with https://; pass through full URLs and None."""
    if not url:
        return None
    if url.startswith('http://') or url.startswith('https://'):
        return url
    return f"https://{url}"


def parse_timestamp(value) -> Optional[datetime]:
    """
    Parse a provider timestamp into a naive UTC datetime.

    Accepts ISO-8601 strings (with 'Z' or an offset) and epoch
    milliseconds (Vercel). Returns None for anything unparseable.
    """
    if value is None:
        return None
    try:
        if isinstance(value, (int, float)):
            dt = datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        else:
            dt = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except (ValueError, OverflowError, OSError):
        logger.debug("Unparseable timestamp: %r", value)
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def utcnow() -> datetime:
    """Naive UTC now, matching the DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
