"""add last accepted authenticator time step

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-18 15:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = '0002'
down_revision: Union[str, None] = '0001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column('accounts', sa.Column('mfa_totp_last_step', sa.Integer(), nullable=True))


def downgrade() -> None:
    op.drop_column('accounts', 'mfa_totp_last_step')
