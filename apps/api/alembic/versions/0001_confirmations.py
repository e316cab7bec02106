"""Confirmations table and lookup indexes.

Revision ID: 0001_confirmations
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001_confirmations'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'confirmations',
        sa.Column('key', sa.String(64), nullable=False),
        sa.Column('type', sa.String(64), nullable=False),
        sa.Column('status', sa.String(16), nullable=False),
        sa.Column('template_name', sa.String(64), nullable=False),
        sa.Column('creator_id', sa.String(64), nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('email', sa.String(320), nullable=False),
        sa.Column('role', sa.String(32), nullable=True),
        sa.Column('clinic_id', sa.String(64), nullable=True),
        sa.Column('team_id', sa.String(64), nullable=True),
        sa.Column('team_name', sa.String(255), nullable=True),
        sa.Column('context', sa.JSON(), nullable=True),
        sa.Column('creator', sa.JSON(), nullable=True),
        sa.Column('created', sa.DateTime(timezone=True), nullable=False),
        sa.Column('modified', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('key'),
    )

    op.create_index('idx_confirmations_email', 'confirmations', ['email'])
    op.create_index(
        'idx_confirmations_creator_type_status',
        'confirmations',
        ['creator_id', 'type', 'status'],
    )
    op.create_index(
        'idx_confirmations_user_type_status',
        'confirmations',
        ['user_id', 'type', 'status'],
    )
    op.create_index('idx_confirmations_clinic_id', 'confirmations', ['clinic_id'])
    op.create_index('idx_confirmations_team_id', 'confirmations', ['team_id'])


def downgrade() -> None:
    op.drop_index('idx_confirmations_team_id', table_name='confirmations')
    op.drop_index('idx_confirmations_clinic_id', table_name='confirmations')
    op.drop_index('idx_confirmations_user_type_status', table_name='confirmations')
    op.drop_index('idx_confirmations_creator_type_status', table_name='confirmations')
    op.drop_index('idx_confirmations_email', table_name='confirmations')
    op.drop_table('confirmations')
