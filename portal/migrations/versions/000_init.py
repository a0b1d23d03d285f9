"""initial portal auth schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'roles',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=20), nullable=False),
        sa.Column('prefix', sa.String(length=10), nullable=True),
        sa.Column('landing_url', sa.String(length=200), nullable=False, server_default='/dashboard'),
        sa.UniqueConstraint('name', name='uq_roles_name'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_table(
        'accounts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=30), nullable=False),
        sa.Column('email', sa.String(length=100), nullable=False),
        sa.Column('first_name', sa.String(length=50), nullable=False, server_default=''),
        sa.Column('last_name', sa.String(length=50), nullable=False, server_default=''),
        sa.Column('password_hash', sa.String(), nullable=False),
        sa.Column('role_id', sa.Integer(), sa.ForeignKey('roles.id'), nullable=False),
        sa.Column('otp_secret', sa.String(length=64), nullable=True),
        sa.Column('second_factor_enabled', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('otp_code_hash', sa.String(), nullable=True),
        sa.Column('challenge_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_used_otp', sa.String(length=10), nullable=True),
        sa.Column('current_session_token', sa.String(length=64), nullable=True),
        sa.Column('last_login', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('username', name='uq_accounts_username'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_table(
        'menus',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('url', sa.String(length=200), nullable=False),
        sa.Column('icon', sa.String(length=50), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_table(
        'role_menus',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('role_id', sa.Integer(), sa.ForeignKey('roles.id'), nullable=False),
        sa.Column('menu_id', sa.Integer(), sa.ForeignKey('menus.id'), nullable=False),
        sa.UniqueConstraint('role_id', 'menu_id', name='uq_role_menu'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_table(
        'system_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=True),
        sa.Column('role_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.String(length=50), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('details', sa.String(), nullable=True),
        sa.Column('ip_address', sa.String(length=50), nullable=True),
        sa.Column('endpoint', sa.String(length=100), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_system_logs_account_id', 'system_logs', ['account_id'])
    op.create_table(
        'web_sessions',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('data', sa.JSON(), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_web_sessions_expires_at', 'web_sessions', ['expires_at'])
    op.bulk_insert(
        sa.table(
            'roles',
            sa.column('name', sa.String),
            sa.column('prefix', sa.String),
            sa.column('landing_url', sa.String),
        ),
        [
            {'name': 'student', 'prefix': 'S', 'landing_url': '/dashboard'},
            {'name': 'faculty', 'prefix': 'F', 'landing_url': '/dashboard'},
            {'name': 'admin', 'prefix': 'A', 'landing_url': '/dashboard'},
        ],
    )


def downgrade() -> None:
    op.drop_index('ix_web_sessions_expires_at', table_name='web_sessions')
    op.drop_table('web_sessions')
    op.drop_index('ix_system_logs_account_id', table_name='system_logs')
    op.drop_table('system_logs')
    op.drop_table('role_menus')
    op.drop_table('menus')
    op.drop_table('accounts')
    op.drop_table('roles')
