"""initial_schema

Revision ID: 3f1c9a2d7e40
Revises:
Create Date: 2026-10-17 10:12:44.318205

Notes:
  - GUID columns use sa.CHAR(36); the GUID TypeDecorator maps them to
    native UUID on PostgreSQL when tables are created through the models.
  - maintenance_command_types is seeded on app startup, not here.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers
revision: str = '3f1c9a2d7e40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

GUID = sa.CHAR(36)
SLUG_CHECK = "provider_slug IN ('github', 'vercel', 'cloudflare')"


def upgrade() -> None:
    # ── provider_credentials ──────────────────────────────────────────────
    op.create_table('provider_credentials',
        sa.Column('id', GUID, nullable=False),
        sa.Column('user_id', GUID, nullable=False),
        sa.Column('provider_slug', sa.String(length=50), nullable=False),
        sa.Column('token', sa.Text(), nullable=False),
        sa.Column('team_id', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'provider_slug', name='uq_credential_user_provider'),
        sa.CheckConstraint(SLUG_CHECK, name='ck_credential_provider_slug'),
    )
    op.create_index('ix_provider_credentials_user_id', 'provider_credentials', ['user_id'])

    # ── applications ──────────────────────────────────────────────────────
    op.create_table('applications',
        sa.Column('id', GUID, nullable=False),
        sa.Column('user_id', GUID, nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('url', sa.Text(), nullable=True),
        sa.Column('provider_slug', sa.String(length=50), nullable=False),
        sa.Column('tags', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.Column('last_synced_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_applications_user_id', 'applications', ['user_id'])

    # ── application_providers ─────────────────────────────────────────────
    op.create_table('application_providers',
        sa.Column('id', GUID, nullable=False),
        sa.Column('application_id', GUID, nullable=False),
        sa.Column('provider_slug', sa.String(length=50), nullable=False),
        sa.Column('external_ref', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['application_id'], ['applications.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('application_id', 'provider_slug', name='uq_app_provider'),
        sa.CheckConstraint(SLUG_CHECK, name='ck_app_provider_slug'),
    )

    # ── deployments ───────────────────────────────────────────────────────
    op.create_table('deployments',
        sa.Column('id', GUID, nullable=False),
        sa.Column('application_id', GUID, nullable=False),
        sa.Column('provider_slug', sa.String(length=50), nullable=False),
        sa.Column('external_id', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=50), nullable=False),
        sa.Column('environment', sa.String(length=50), nullable=True),
        sa.Column('url', sa.Text(), nullable=True),
        sa.Column('branch', sa.String(length=255), nullable=True),
        sa.Column('commit_sha', sa.String(length=40), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('synced_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['application_id'], ['applications.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('application_id', 'provider_slug', 'external_id',
                            name='uq_deployment_natural_key'),
    )

    # ── maintenance_command_types ─────────────────────────────────────────
    op.create_table('maintenance_command_types',
        sa.Column('id', GUID, nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('recommended_frequency_days', sa.Integer(), nullable=False),
        sa.Column('sort_order', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
    )

    # ── maintenance_runs ──────────────────────────────────────────────────
    op.create_table('maintenance_runs',
        sa.Column('id', GUID, nullable=False),
        sa.Column('application_id', GUID, nullable=False),
        sa.Column('command_type_id', GUID, nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('results', sa.JSON(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('run_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['application_id'], ['applications.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['command_type_id'], ['maintenance_command_types.id']),
        sa.PrimaryKeyConstraint('id'),
    )

    # ── maintenance_status_items ──────────────────────────────────────────
    op.create_table('maintenance_status_items',
        sa.Column('id', GUID, nullable=False),
        sa.Column('application_id', GUID, nullable=False),
        sa.Column('command_type_id', GUID, nullable=False),
        sa.Column('last_run_id', GUID, nullable=True),
        sa.Column('last_status', sa.String(length=20), nullable=False),
        sa.Column('last_run_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['application_id'], ['applications.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['command_type_id'], ['maintenance_command_types.id']),
        sa.ForeignKeyConstraint(['last_run_id'], ['maintenance_runs.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('application_id', 'command_type_id', name='uq_status_app_command'),
    )


def downgrade() -> None:
    op.drop_table('maintenance_status_items')
    op.drop_table('maintenance_runs')
    op.drop_table('maintenance_command_types')
    op.drop_table('deployments')
    op.drop_table('application_providers')
    op.drop_index('ix_applications_user_id', table_name='applications')
    op.drop_table('applications')
    op.drop_index('ix_provider_credentials_user_id', table_name='provider_credentials')
    op.drop_table('provider_credentials')
