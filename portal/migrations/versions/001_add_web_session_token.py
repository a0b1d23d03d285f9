"""add bound token to web sessions

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-19 16:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = '0002'
down_revision: Union[str, None] = '0001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column('web_sessions', sa.Column('session_token', sa.String(length=64), nullable=True))
    op.create_index('ix_web_sessions_session_token', 'web_sessions', ['session_token'])


def downgrade() -> None:
    op.drop_index('ix_web_sessions_session_token', table_name='web_sessions')
    op.drop_column('web_sessions', 'session_token')
