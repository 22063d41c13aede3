"""Initial schema: manuals, versions, decision log, rules, notifications

Revision ID: 0001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create manuals table
    op.create_table(
        'manuals',
        sa.Column('id', sa.String(64), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('slug', sa.String(255), nullable=False),
        sa.Column('owner_username', sa.String(255), nullable=False),
        sa.Column('state', sa.String(50), nullable=False, server_default='draft'),
        sa.Column('latest_version_seq', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('published_version_seq', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_manuals_slug', 'manuals', ['slug'])
    op.create_index('ix_manuals_owner_username', 'manuals', ['owner_username'])
    op.create_index('ix_manuals_updated_at', 'manuals', ['updated_at'])

    # Create manual_versions table
    op.create_table(
        'manual_versions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('manual_id', sa.String(64), nullable=False),
        sa.Column('version_seq', sa.Integer(), nullable=False),
        sa.Column('format', sa.String(20), nullable=False, server_default='docx'),
        sa.Column('object_key', sa.Text(), nullable=True),
        sa.Column('checksum_sha256', sa.String(64), nullable=False),
        sa.Column('size_bytes', sa.BigInteger(), nullable=False),
        sa.Column('changelog', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(255), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['manual_id'], ['manuals.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('manual_id', 'version_seq', name='uq_manual_versions_seq')
    )
    op.create_index('ix_manual_versions_manual_id', 'manual_versions', ['manual_id'])

    # Create manual_approvals table (append-only decision log)
    op.create_table(
        'manual_approvals',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('manual_id', sa.String(64), nullable=False),
        sa.Column('version_seq', sa.Integer(), nullable=False),
        sa.Column('approver_username', sa.String(255), nullable=False),
        sa.Column('decision_seq', sa.Integer(), nullable=False),
        sa.Column('decision', sa.String(20), nullable=False),
        sa.Column('comment', sa.Text(), nullable=True),
        sa.Column('decided_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(
            ['manual_id', 'version_seq'],
            ['manual_versions.manual_id', 'manual_versions.version_seq'],
            name='fk_manual_approvals_version',
            ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(
            'manual_id', 'version_seq', 'approver_username', 'decision_seq',
            name='uq_manual_approvals_decision',
        ),
        sa.CheckConstraint("decision IN ('approved', 'rejected')", name='ck_manual_approvals_decision')
    )
    op.create_index('ix_manual_approvals_manual_id', 'manual_approvals', ['manual_id'])
    op.create_index('ix_manual_approvals_decided_at', 'manual_approvals', ['decided_at'])

    # Create manual_approval_rules table
    op.create_table(
        'manual_approval_rules',
        sa.Column('manual_id', sa.String(64), nullable=False),
        sa.Column('required_approvals', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['manual_id'], ['manuals.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('manual_id'),
        sa.CheckConstraint('required_approvals >= 0', name='ck_manual_approval_rules_non_negative')
    )

    # Create notifications table
    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('recipient_username', sa.String(255), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('type', sa.String(50), nullable=False, server_default='system'),
        sa.Column('related_manual_id', sa.String(64), nullable=True),
        sa.Column('related_version_seq', sa.Integer(), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('read_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_notifications_recipient_username', 'notifications', ['recipient_username'])
    op.create_index('ix_notifications_created_at', 'notifications', ['created_at'])


def downgrade() -> None:
    op.drop_table('notifications')
    op.drop_table('manual_approval_rules')
    op.drop_table('manual_approvals')
    op.drop_table('manual_versions')
    op.drop_table('manuals')
