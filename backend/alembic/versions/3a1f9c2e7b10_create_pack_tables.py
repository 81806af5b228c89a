"""Create query, pack, targeting, label membership and stats tables

Revision ID: 3a1f9c2e7b10
Revises:
Create Date: 2026-10-17T09:12:44.518203
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = '3a1f9c2e7b10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- directory ---
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(), nullable=False, server_default=''),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'teams',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
    )

    op.create_table(
        'hosts',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('hostname', sa.String(), nullable=False),
        sa.Column('team_id', sa.Integer(), sa.ForeignKey('teams.id', ondelete='SET NULL'), nullable=True),
        sa.Column('label_updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('hostname'),
    )
    op.create_index('ix_hosts_team_id', 'hosts', ['team_id'])

    op.create_table(
        'labels',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('query', sa.Text(), nullable=False, server_default=''),
        sa.Column('platform', sa.String(), nullable=False, server_default=''),
        sa.Column('label_type', sa.String(), nullable=False, server_default='regular'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
    )

    op.create_table(
        'label_membership',
        sa.Column('host_id', sa.Integer(), nullable=False),
        sa.Column('label_id', sa.Integer(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('host_id', 'label_id'),
    )
    op.create_index('idx_lm_label_id', 'label_membership', ['label_id'])

    # --- queries ---
    op.create_table(
        'queries',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('query', sa.Text(), nullable=False),
        sa.Column('author_id', sa.Integer(), nullable=True),
        sa.Column('saved', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('observer_can_run', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
    )
    op.create_index('ix_queries_author_id', 'queries', ['author_id'])

    # --- packs ---
    op.create_table(
        'packs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('platform', sa.String(), nullable=False, server_default=''),
        sa.Column('disabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('pack_type', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sa.UniqueConstraint('pack_type'),
    )

    op.create_table(
        'pack_targets',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('pack_id', sa.Integer(), sa.ForeignKey('packs.id', ondelete='CASCADE'), nullable=False),
        sa.Column('type', sa.Integer(), nullable=False),
        sa.Column('target_id', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('pack_id', 'type', 'target_id', name='uq_pack_target'),
    )
    op.create_index('idx_pack_target_lookup', 'pack_targets', ['type', 'target_id'])

    op.create_table(
        'scheduled_queries',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('pack_id', sa.Integer(), sa.ForeignKey('packs.id', ondelete='CASCADE'), nullable=False),
        sa.Column('query_id', sa.Integer(), sa.ForeignKey('queries.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('interval', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('snapshot', sa.Boolean(), nullable=True),
        sa.Column('removed', sa.Boolean(), nullable=True),
        sa.Column('shard', sa.Integer(), nullable=True),
        sa.Column('platform', sa.String(), nullable=True),
        sa.Column('version', sa.String(), nullable=True),
        sa.Column('denylist', sa.Boolean(), nullable=True),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('pack_id', 'name', name='uq_scheduled_query_pack_name'),
    )
    op.create_index('ix_scheduled_queries_pack_id', 'scheduled_queries', ['pack_id'])
    op.create_index('ix_scheduled_queries_query_id', 'scheduled_queries', ['query_id'])

    # --- stats (no FK to scheduled_queries) ---
    op.create_table(
        'scheduled_query_stats',
        sa.Column('host_id', sa.Integer(), nullable=False),
        sa.Column('scheduled_query_id', sa.Integer(), nullable=False),
        sa.Column('average_memory', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('denylisted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('executions', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('schedule_interval', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_executed', sa.DateTime(timezone=True), nullable=True),
        sa.Column('output_size', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('system_time', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('user_time', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('wall_time', sa.BigInteger(), nullable=False, server_default='0'),
        sa.PrimaryKeyConstraint('host_id', 'scheduled_query_id'),
    )
    op.create_index('idx_sqs_scheduled_query_id', 'scheduled_query_stats', ['scheduled_query_id'])


def downgrade() -> None:
    op.drop_table('scheduled_query_stats')
    op.drop_table('scheduled_queries')
    op.drop_table('pack_targets')
    op.drop_table('packs')
    op.drop_table('queries')
    op.drop_table('label_membership')
    op.drop_table('labels')
    op.drop_table('hosts')
    op.drop_table('teams')
    op.drop_table('users')
