"""create session_record

Revision ID: 4c2a9e7d1b30
Revises:
Create Date: 2026-10-19 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4c2a9e7d1b30'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    if 'session_record' in insp.get_table_names():
        return
    op.create_table(
        'session_record',
        sa.Column('code', sa.String(length=16), primary_key=True),
        sa.Column('question', sa.Text(), nullable=False),
        sa.Column('capacity', sa.Integer(), nullable=False),
        sa.Column('revealed', sa.Boolean(), nullable=False),
        sa.Column('revealed_at', sa.Float(), nullable=True),
        sa.Column('created_at', sa.Float(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('oldest_pending_join', sa.Float(), nullable=True),
        sa.Column('participants', sa.Text(), nullable=True),
        sa.Column('predictions', sa.Text(), nullable=True),
    )
    with op.batch_alter_table('session_record') as batch_op:
        batch_op.create_index('ix_session_record_oldest_pending_join', ['oldest_pending_join'])


def downgrade():
    with op.batch_alter_table('session_record') as batch_op:
        batch_op.drop_index('ix_session_record_oldest_pending_join')
    op.drop_table('session_record')
