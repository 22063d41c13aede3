"""Per-approver decision sequence high-water marks

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-20

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '0002'
down_revision: Union[str, None] = '0001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'manual_approval_sequences',
        sa.Column('manual_id', sa.String(64), nullable=False),
        sa.Column('version_seq', sa.Integer(), nullable=False),
        sa.Column('approver_username', sa.String(255), nullable=False),
        sa.Column('last_decision_seq', sa.Integer(), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(
            ['manual_id', 'version_seq'],
            ['manual_versions.manual_id', 'manual_versions.version_seq'],
            name='fk_manual_approval_sequences_version',
            ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('manual_id', 'version_seq', 'approver_username')
    )

    # Seed marks from decisions already in the log
    op.execute(
        """
        INSERT INTO manual_approval_sequences
            (manual_id, version_seq, approver_username, last_decision_seq)
        SELECT manual_id, version_seq, approver_username, MAX(decision_seq)
        FROM manual_approvals
        GROUP BY manual_id, version_seq, approver_username
        """
    )


def downgrade() -> None:
    op.drop_table('manual_approval_sequences')
