"""create users, sessions, kanas and session_kanas tables

Revision ID: 3f9a1c7e2b40
Revises:
Create Date: 2026-10-12 10:14:31.482210

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f9a1c7e2b40'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the four tables and their lookup indexes."""
    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('is_public', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_users_name', 'users', ['name'])
    op.create_index('ix_users_deleted_at', 'users', ['deleted_at'])

    op.create_table('sessions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('is_public', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('hiragana', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('katakana', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('mods', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('mult', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.Column('finished_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint('mult >= 1', name='ck_sessions_mult_positive'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_sessions_user_id', 'sessions', ['user_id'])
    op.create_index('ix_sessions_deleted_at', 'sessions', ['deleted_at'])

    op.create_table('kanas',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('reading', sa.String(length=8), nullable=False),
        sa.Column('is_katakana', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('mod', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('consonant_line', sa.String(length=4), nullable=False, server_default=''),
        sa.Column('vowel_column', sa.String(length=4), nullable=False, server_default=''),
        sa.Column('unicode', sa.String(length=4), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_kanas_reading', 'kanas', ['reading'])
    op.create_index('ix_kanas_is_katakana', 'kanas', ['is_katakana'])

    op.create_table('session_kanas',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('session_id', sa.Integer(), nullable=False),
        sa.Column('kana_id', sa.Integer(), nullable=False),
        sa.Column('mult_position', sa.Integer(), nullable=False),
        sa.Column('submitted_at', sa.DateTime(), nullable=False),
        sa.Column('is_correct', sa.Boolean(), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['session_id'], ['sessions.id']),
        sa.ForeignKeyConstraint(['kana_id'], ['kanas.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_session_kanas_session_id', 'session_kanas', ['session_id'])
    op.create_index('ix_session_kanas_kana_id', 'session_kanas', ['kana_id'])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_index('ix_session_kanas_kana_id', table_name='session_kanas')
    op.drop_index('ix_session_kanas_session_id', table_name='session_kanas')
    op.drop_table('session_kanas')
    op.drop_index('ix_kanas_is_katakana', table_name='kanas')
    op.drop_index('ix_kanas_reading', table_name='kanas')
    op.drop_table('kanas')
    op.drop_index('ix_sessions_deleted_at', table_name='sessions')
    op.drop_index('ix_sessions_user_id', table_name='sessions')
    op.drop_table('sessions')
    op.drop_index('ix_users_deleted_at', table_name='users')
    op.drop_index('ix_users_name', table_name='users')
    op.drop_table('users')
