"""add unique (session_id, kana_id, mult_position) to session_kanas

Revision ID: 8d2e6b5a0c17
Revises: 3f9a1c7e2b40
Create Date: 2026-10-15 18:42:07.903114

"""
from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = '8d2e6b5a0c17'
down_revision: Union[str, Sequence[str], None] = '3f9a1c7e2b40'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    # batch mode so SQLite can rebuild the table
    with op.batch_alter_table('session_kanas') as batch_op:
        batch_op.create_unique_constraint(
            'uq_session_kanas_position', ['session_id', 'kana_id', 'mult_position'])


def downgrade() -> None:
    """Downgrade schema."""
    with op.batch_alter_table('session_kanas') as batch_op:
        batch_op.drop_constraint('uq_session_kanas_position', type_='unique')
