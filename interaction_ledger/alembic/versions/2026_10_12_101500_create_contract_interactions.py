"""create_contract_interactions

Revision ID: 2026_10_12_101500
Revises:
Create Date: 2026-10-12 10:15:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '2026_10_12_101500'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute('CREATE SCHEMA IF NOT EXISTS ledger')

    op.create_table(
        'contract_interactions',
        sa.Column('hash', sa.Text(), nullable=False),
        sa.Column('block', sa.BigInteger(), nullable=False),
        sa.Column('address', sa.Text(), nullable=False),
        sa.Column('contract', sa.Text(), nullable=False),
        sa.Column('chain', sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint('hash', name='pk_contract_interactions'),
        schema='ledger',
    )
    op.create_index(
        'ix_contract_interactions_chain_contract_block',
        'contract_interactions',
        ['chain', 'contract', 'block', 'hash'],
        schema='ledger',
    )
    op.create_index(
        'ix_contract_interactions_chain_address_block',
        'contract_interactions',
        ['chain', 'address', 'block', 'hash'],
        schema='ledger',
    )
    op.create_index(
        'ix_contract_interactions_chain_block',
        'contract_interactions',
        ['chain', 'block', 'hash'],
        schema='ledger',
    )

    op.create_table(
        'contract_interaction_revisions',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('hash', sa.Text(), nullable=False),
        sa.Column('kind', sa.Text(), nullable=False),
        sa.Column('previous_block', sa.BigInteger(), nullable=False),
        sa.Column('previous_address', sa.Text(), nullable=False),
        sa.Column('previous_contract', sa.Text(), nullable=False),
        sa.Column('previous_chain', sa.Text(), nullable=False),
        sa.Column('block', sa.BigInteger(), nullable=False),
        sa.Column('address', sa.Text(), nullable=False),
        sa.Column('contract', sa.Text(), nullable=False),
        sa.Column('chain', sa.Text(), nullable=False),
        sa.Column('source', sa.Text(), nullable=True),
        sa.Column('recorded_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_contract_interaction_revisions'),
        schema='ledger',
    )
    op.create_index(
        'ix_contract_interaction_revisions_hash',
        'contract_interaction_revisions',
        ['hash', 'id'],
        schema='ledger',
    )
    op.create_index(
        'ix_contract_interaction_revisions_kind',
        'contract_interaction_revisions',
        ['kind', 'id'],
        schema='ledger',
    )


def downgrade() -> None:
    op.drop_table('contract_interaction_revisions', schema='ledger')
    op.drop_table('contract_interactions', schema='ledger')
