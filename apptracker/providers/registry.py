"""
Provider registry: maps provider slugs to client instances.
"""

from typing import Dict, Optional

import requests

from .base import ProviderClient
from .cloudflare.cloudflare_client import CloudflareClient
from .github.github_client import GitHubClient
from .vercel.vercel_client import VercelClient

CLIENT_CLASSES = {
    'github': GitHubClient,
    'vercel': VercelClient,
    'cloudflare': CloudflareClient,
}


def build_clients(session: Optional[requests.Session] = None, **kwargs) -> Dict[str, ProviderClient]:
    """One client per provider, optionally sharing an HTTP session."""
    return {slug: cls(session=session, **kwargs) for slug, cls in CLIENT_CLASSES.items()}

