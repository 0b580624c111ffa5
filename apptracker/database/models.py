"""
Database Models - SQLAlchemy ORM
=================================
Each class = one database table.
Each attribute = one column.

Table list:
  1.  ProviderCredential    - per-user provider token (github | vercel | cloudflare)
  2.  Application           - a user's tracked cloud application
  3.  ApplicationProvider   - which provider project backs an application
  4.  Deployment            - canonical deployment record produced by sync
  5.  MaintenanceCommandType - static catalog of maintenance actions
  6.  MaintenanceRun        - append-only maintenance history
  7.  MaintenanceStatusItem - checklist: latest terminal run per (app, command)
"""

import uuid

from sqlalchemy import (
    JSON, Boolean, CheckConstraint, Column, DateTime, ForeignKey,
    Integer, String, Text, UniqueConstraint,
)
from sqlalchemy.types import TypeDecorator, CHAR
from sqlalchemy.orm import relationship, DeclarativeBase

from ..core.utils import PROVIDER_SLUGS, mask_token, utcnow


# ─────────────────────────────────────────────────────────────────────────────
# Base
# ─────────────────────────────────────────────────────────────────────────────
class Base(DeclarativeBase):
    pass


# ─────────────────────────────────────────────────────────────────────────────
# GUID helper - stores UUID as CHAR(36) in SQLite, native UUID in PostgreSQL
# ─────────────────────────────────────────────────────────────────────────────
class GUID(TypeDecorator):
    """Platform-independent UUID type."""
    impl = CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            from sqlalchemy.dialects.postgresql import UUID
            return dialect.type_descriptor(UUID(as_uuid=True))
        return dialect.type_descriptor(CHAR(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        return str(value)


def _uuid() -> str:
    return str(uuid.uuid4())


def _iso(value):
    return value.isoformat() if value else None


_SLUG_CHECK = "provider_slug IN ({})".format(', '.join(f"'{s}'" for s in PROVIDER_SLUGS))

DEPLOYMENT_STATUSES = ('pending', 'building', 'deployed', 'failed', 'rolled_back', 'unknown')
ENVIRONMENTS = ('production', 'staging', 'development')
MAINTENANCE_STATUSES = ('pending', 'running', 'completed', 'failed', 'skipped')
TERMINAL_STATUSES = frozenset({'completed', 'failed', 'skipped'})


# ─────────────────────────────────────────────────────────────────────────────
# 1. ProviderCredential
# ─────────────────────────────────────────────────────────────────────────────
class ProviderCredential(Base):
    """
    One access token per (user, provider).
    Created on settings save, overwritten on re-save, deleted on disconnect.
    team_id holds the Vercel team or the Cloudflare account id.
    """
    __tablename__ = 'provider_credentials'
    __table_args__ = (
        UniqueConstraint('user_id', 'provider_slug', name='uq_credential_user_provider'),
        CheckConstraint(_SLUG_CHECK, name='ck_credential_provider_slug'),
    )

    id            = Column(GUID, primary_key=True, default=_uuid)
    user_id       = Column(GUID, nullable=False, index=True)
    provider_slug = Column(String(50), nullable=False)
    token         = Column(Text, nullable=False)
    team_id       = Column(String(255))
    created_at    = Column(DateTime, default=utcnow)
    updated_at    = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return (f'<ProviderCredential user={self.user_id} provider={self.provider_slug!r} '
                f'token={mask_token(self.token)}>')

    def to_dict(self):
        return {
            'provider_slug': self.provider_slug,
            'team_id': self.team_id,
            'connected': True,
            'updated_at': _iso(self.updated_at),
            # Never expose the token itself
        }


# ─────────────────────────────────────────────────────────────────────────────
# 2. Application
# ─────────────────────────────────────────────────────────────────────────────
class Application(Base):
    """
    A cloud application tracked by a user.
    Exclusively owns its deployments, maintenance runs and checklist rows.
    """
    __tablename__ = 'applications'

    id             = Column(GUID, primary_key=True, default=_uuid)
    user_id        = Column(GUID, nullable=False, index=True)
    name           = Column(String(100), nullable=False)
    url            = Column(Text)
    provider_slug  = Column(String(50), nullable=False)   # primary hosting provider
    tags           = Column(JSON, default=list)
    created_at     = Column(DateTime, default=utcnow)
    updated_at     = Column(DateTime, default=utcnow, onupdate=utcnow)
    last_synced_at = Column(DateTime)

    # relationships
    providers         = relationship('ApplicationProvider', back_populates='application',
                                     cascade='all, delete-orphan',
                                     order_by='ApplicationProvider.created_at')
    deployments       = relationship('Deployment', back_populates='application',
                                     cascade='all, delete-orphan')
    maintenance_runs  = relationship('MaintenanceRun', back_populates='application',
                                     cascade='all, delete-orphan')
    checklist_items   = relationship('MaintenanceStatusItem', back_populates='application',
                                     cascade='all, delete-orphan')

    def __repr__(self):
        return f'<Application name={self.name!r} provider={self.provider_slug!r}>'

    def configured_providers(self):
        """Distinct provider links, primary provider first."""
        seen = set()
        links = sorted(self.providers, key=lambda p: p.provider_slug != self.provider_slug)
        result = []
        for link in links:
            if link.provider_slug not in seen:
                seen.add(link.provider_slug)
                result.append(link)
        return result

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'name': self.name,
            'url': self.url,
            'provider_slug': self.provider_slug,
            'tags': list(self.tags or []),
            'providers': [p.to_dict() for p in self.providers],
            'created_at': _iso(self.created_at),
            'last_synced_at': _iso(self.last_synced_at),
        }


# ─────────────────────────────────────────────────────────────────────────────
# 3. ApplicationProvider  (mapping: app → provider project)
# ─────────────────────────────────────────────────────────────────────────────
class ApplicationProvider(Base):
    """
    Links an Application to one provider-side project.

    external_ref:
      github      → 'owner/repo'
      vercel      → project id
      cloudflare  → Pages project name
    """
    __tablename__ = 'application_providers'
    __table_args__ = (
        UniqueConstraint('application_id', 'provider_slug', name='uq_app_provider'),
        CheckConstraint(_SLUG_CHECK, name='ck_app_provider_slug'),
    )

    id             = Column(GUID, primary_key=True, default=_uuid)
    application_id = Column(GUID, ForeignKey('applications.id', ondelete='CASCADE'), nullable=False)
    provider_slug  = Column(String(50), nullable=False)
    external_ref   = Column(String(255), nullable=False)
    created_at     = Column(DateTime, default=utcnow)

    # relationships
    application = relationship('Application', back_populates='providers')

    def __repr__(self):
        return f'<ApplicationProvider {self.provider_slug}:{self.external_ref!r}>'

    def to_dict(self):
        return {
            'provider_slug': self.provider_slug,
            'external_ref': self.external_ref,
        }


# ─────────────────────────────────────────────────────────────────────────────
# 4. Deployment
# ─────────────────────────────────────────────────────────────────────────────
class Deployment(Base):
    """
    Canonical deployment record. Written only by the sync path, upserted by
    the natural key (application_id, provider_slug, external_id).
    """
    __tablename__ = 'deployments'
    __table_args__ = (
        UniqueConstraint('application_id', 'provider_slug', 'external_id',
                         name='uq_deployment_natural_key'),
    )

    id             = Column(GUID, primary_key=True, default=_uuid)
    application_id = Column(GUID, ForeignKey('applications.id', ondelete='CASCADE'), nullable=False)
    provider_slug  = Column(String(50), nullable=False)
    external_id    = Column(String(255), nullable=False)
    status         = Column(String(50), nullable=False, default='unknown')
    environment    = Column(String(50), default='production')
    url            = Column(Text)
    branch         = Column(String(255))
    commit_sha     = Column(String(40))
    created_at     = Column(DateTime, default=utcnow)
    synced_at      = Column(DateTime, default=utcnow, onupdate=utcnow)

    # relationships
    application = relationship('Application', back_populates='deployments')

    def __repr__(self):
        return f'<Deployment {self.provider_slug}:{self.external_id} status={self.status!r}>'

    def to_dict(self):
        return {
            'id': self.id,
            'application_id': self.application_id,
            'provider_slug': self.provider_slug,
            'external_id': self.external_id,
            'status': self.status,
            'environment': self.environment,
            'url': self.url,
            'branch': self.branch,
            'commit_sha': self.commit_sha,
            'created_at': _iso(self.created_at),
            'synced_at': _iso(self.synced_at),
        }


# ─────────────────────────────────────────────────────────────────────────────
# 5. MaintenanceCommandType
# ─────────────────────────────────────────────────────────────────────────────
class MaintenanceCommandType(Base):
    """Reference data: the kinds of maintenance that can be run."""
    __tablename__ = 'maintenance_command_types'

    id                         = Column(GUID, primary_key=True, default=_uuid)
    name                       = Column(String(100), unique=True, nullable=False)
    description                = Column(Text)
    recommended_frequency_days = Column(Integer, nullable=False, default=30)
    sort_order                 = Column(Integer, default=0)
    is_active                  = Column(Boolean, default=True)

    def __repr__(self):
        return f'<MaintenanceCommandType name={self.name!r}>'

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'recommended_frequency_days': self.recommended_frequency_days,
            'sort_order': self.sort_order,
            'is_active': self.is_active,
        }


# ─────────────────────────────────────────────────────────────────────────────
# 6. MaintenanceRun  (append-only)
# ─────────────────────────────────────────────────────────────────────────────
class MaintenanceRun(Base):
    """
    One maintenance action against an application.
    Immutable once completed / failed / skipped. Never deleted.
    """
    __tablename__ = 'maintenance_runs'

    id              = Column(GUID, primary_key=True, default=_uuid)
    application_id  = Column(GUID, ForeignKey('applications.id', ondelete='CASCADE'), nullable=False)
    command_type_id = Column(GUID, ForeignKey('maintenance_command_types.id'), nullable=False)
    status          = Column(String(20), nullable=False, default='completed')
    results         = Column(JSON)
    notes           = Column(Text)
    run_at          = Column(DateTime, nullable=False, default=utcnow)
    created_at      = Column(DateTime, default=utcnow)
    updated_at      = Column(DateTime, default=utcnow, onupdate=utcnow)

    # relationships
    application  = relationship('Application', back_populates='maintenance_runs')
    command_type = relationship('MaintenanceCommandType')

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def __repr__(self):
        return f'<MaintenanceRun id={self.id} status={self.status!r}>'

    def to_dict(self):
        return {
            'id': self.id,
            'application_id': self.application_id,
            'command_type_id': self.command_type_id,
            'command_type': self.command_type.name if self.command_type else None,
            'status': self.status,
            'results': self.results,
            'notes': self.notes,
            'run_at': _iso(self.run_at),
        }


# ─────────────────────────────────────────────────────────────────────────────
# 7. MaintenanceStatusItem  (checklist - derived, one row per pair)
# ─────────────────────────────────────────────────────────────────────────────
class MaintenanceStatusItem(Base):
    """Latest terminal run per (application, command type)."""
    __tablename__ = 'maintenance_status_items'
    __table_args__ = (
        UniqueConstraint('application_id', 'command_type_id', name='uq_status_app_command'),
    )

    id              = Column(GUID, primary_key=True, default=_uuid)
    application_id  = Column(GUID, ForeignKey('applications.id', ondelete='CASCADE'), nullable=False)
    command_type_id = Column(GUID, ForeignKey('maintenance_command_types.id'), nullable=False)
    last_run_id     = Column(GUID, ForeignKey('maintenance_runs.id', ondelete='SET NULL'))
    last_status     = Column(String(20), nullable=False)
    last_run_at     = Column(DateTime)
    updated_at      = Column(DateTime, default=utcnow, onupdate=utcnow)

    # relationships
    application = relationship('Application', back_populates='checklist_items')

    def __repr__(self):
        return (f'<MaintenanceStatusItem app={self.application_id} '
                f'command={self.command_type_id} last={self.last_status!r}>')
