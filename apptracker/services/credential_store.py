"""
Credential Store for App Tracker.
Per-user provider tokens with a read-mostly in-process cache.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..core.utils import PROVIDER_SLUGS, mask_token
from ..database.connection import SessionLocal
from ..database.repositories import CredentialRepository
from ..exceptions import ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredCredential:
    """Detached snapshot of a provider credential."""
    user_id: str
    provider_slug: str
    token: str = field(repr=False)
    team_id: Optional[str] = None

    def __repr__(self):
        return (f'StoredCredential(user_id={self.user_id!r}, provider_slug={self.provider_slug!r}, '
                f'token={mask_token(self.token)!r}, team_id={self.team_id!r})')


class CredentialStore:
    """
    Reports absence instead of raising: callers that require a token
    decide whether a missing one is an AuthError.
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self._session_factory = session_factory
        self._cache: Dict[Tuple[str, str], Optional[StoredCredential]] = {}
        self._lock = threading.Lock()

    # ── Reads ─────────────────────────────────────────────────────────────
    def get_credential(self, user_id: str, provider_slug: str) -> Optional[StoredCredential]:
        """Return the stored credential, or None when the user has not connected."""
        if provider_slug not in PROVIDER_SLUGS:
            return None
        key = (str(user_id), provider_slug)
        with self._lock:
            if key in self._cache:
                return self._cache[key]

        db = self._session_factory()
        try:
            row = CredentialRepository(db).get(user_id, provider_slug)
            cred = None
            if row is not None:
                cred = StoredCredential(
                    user_id=str(row.user_id),
                    provider_slug=row.provider_slug,
                    token=row.token,
                    team_id=row.team_id,
                )
        finally:
            db.close()

        with self._lock:
            self._cache[key] = cred
        return cred

    def get_token(self, user_id: str, provider_slug: str) -> Optional[str]:
        cred = self.get_credential(user_id, provider_slug)
        return cred.token if cred else None

    def connected_providers(self, user_id: str) -> List[str]:
        return [slug for slug in PROVIDER_SLUGS if self.get_credential(user_id, slug)]

    # ── Writes ────────────────────────────────────────────────────────────
    def save(self, user_id: str, provider_slug: str, token: str,
             team_id: Optional[str] = None) -> StoredCredential:
        """Create or overwrite the user's credential for a provider."""
        errors = []
        if provider_slug not in PROVIDER_SLUGS:
            errors.append(f"Unknown provider '{provider_slug}'. Expected one of: {', '.join(PROVIDER_SLUGS)}")
        if not token or not str(token).strip():
            errors.append("Token is required")
        if provider_slug == 'cloudflare' and not team_id:
            errors.append("Cloudflare account ID is required")
        if errors:
            raise ValidationError(errors)

        db = self._session_factory()
        try:
            CredentialRepository(db).upsert(user_id, provider_slug, token.strip(), team_id or None)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        self.invalidate(user_id, provider_slug)
        logger.info("Saved %s credential for user %s (token=%s)",
                    provider_slug, user_id, mask_token(token))
        return StoredCredential(str(user_id), provider_slug, token.strip(), team_id or None)

    def delete(self, user_id: str, provider_slug: str) -> bool:
        """Disconnect a provider. Returns False if nothing was stored."""
        db = self._session_factory()
        try:
            deleted = CredentialRepository(db).delete(user_id, provider_slug)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        self.invalidate(user_id, provider_slug)
        if deleted:
            logger.info("Disconnected %s for user %s", provider_slug, user_id)
        return deleted

    def invalidate(self, user_id: Optional[str] = None, provider_slug: Optional[str] = None):
        """Drop cached entries; with no arguments clears the whole cache."""
        with self._lock:
            if user_id is None:
                self._cache.clear()
                return
            for key in list(self._cache):
                if key[0] == str(user_id) and (provider_slug is None or key[1] == provider_slug):
                    del self._cache[key]
