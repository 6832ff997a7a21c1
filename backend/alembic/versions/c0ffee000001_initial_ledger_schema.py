"""Initial ledger schema: collections, nfts, traits, statistics, transactions

Revision ID: c0ffee000001
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = 'c0ffee000001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'collections',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('contract_address', sa.String(255), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('total_supply', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        'ix_collections_contract_address', 'collections', ['contract_address'], unique=True
    )

    op.create_table(
        'nfts',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('collection_id', sa.Integer(), sa.ForeignKey('collections.id'), nullable=False),
        sa.Column('token_id', sa.BigInteger(), nullable=False),
        sa.Column('owner_address', sa.String(255), nullable=False),
        sa.Column('minted_at', sa.DateTime(), nullable=True),
        sa.Column('rarity_score', sa.Float(), nullable=True),
        sa.Column('rarity_rank', sa.Integer(), nullable=True),
        sa.UniqueConstraint('collection_id', 'token_id', name='uq_nfts_collection_token'),
    )
    op.create_index('ix_nfts_collection_id', 'nfts', ['collection_id'])
    op.create_index('ix_nfts_owner_address', 'nfts', ['owner_address'])
    op.create_index('ix_nfts_collection_rank', 'nfts', ['collection_id', 'rarity_rank'])

    # Traits are written once at mint and never updated.
    op.create_table(
        'traits',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column(
            'nft_id',
            sa.Integer(),
            sa.ForeignKey('nfts.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('trait_type', sa.String(100), nullable=False),
        sa.Column('trait_value', sa.String(255), nullable=False),
        sa.UniqueConstraint(
            'nft_id', 'trait_type', 'trait_value', name='uq_traits_nft_type_value'
        ),
    )
    op.create_index('ix_traits_nft_id', 'traits', ['nft_id'])

    op.create_table(
        'trait_statistics',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('collection_id', sa.Integer(), sa.ForeignKey('collections.id'), nullable=False),
        sa.Column('trait_type', sa.String(100), nullable=False),
        sa.Column('trait_value', sa.String(255), nullable=False),
        sa.Column('count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('rarity_score', sa.Float(), nullable=True),
        sa.UniqueConstraint(
            'collection_id', 'trait_type', 'trait_value', name='uq_trait_statistics_key'
        ),
    )
    op.create_index('ix_trait_statistics_collection_id', 'trait_statistics', ['collection_id'])

    op.create_table(
        'transactions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column(
            'nft_id',
            sa.Integer(),
            sa.ForeignKey('nfts.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('tx_hash', sa.String(128), nullable=False),
        sa.Column('event_index', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('tx_type', sa.String(20), nullable=False),
        sa.Column('from_address', sa.String(255), nullable=True),
        sa.Column('to_address', sa.String(255), nullable=False),
        sa.Column('block_height', sa.BigInteger(), nullable=False),
        sa.Column('block_hash', sa.String(128), nullable=True),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('tx_hash', 'event_index', name='uq_transactions_tx_event'),
    )
    op.create_index('ix_transactions_nft_id', 'transactions', ['nft_id'])
    op.create_index('ix_transactions_tx_hash', 'transactions', ['tx_hash'])
    op.create_index('ix_transactions_block_height', 'transactions', ['block_height'])
    op.create_index('ix_transactions_nft_height', 'transactions', ['nft_id', 'block_height'])

    op.create_table(
        'reorg_events',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('block_height', sa.BigInteger(), nullable=False),
        sa.Column('block_hash', sa.String(128), nullable=True),
        sa.Column('policy', sa.String(20), nullable=False),
        sa.Column('reverted_count', sa.Integer(), nullable=False),
        sa.Column('observed_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_reorg_events_block_height', 'reorg_events', ['block_height'])


def downgrade() -> None:
    op.drop_index('ix_reorg_events_block_height', table_name='reorg_events')
    op.drop_table('reorg_events')
    op.drop_index('ix_transactions_nft_height', table_name='transactions')
    op.drop_index('ix_transactions_block_height', table_name='transactions')
    op.drop_index('ix_transactions_tx_hash', table_name='transactions')
    op.drop_index('ix_transactions_nft_id', table_name='transactions')
    op.drop_table('transactions')
    op.drop_index('ix_trait_statistics_collection_id', table_name='trait_statistics')
    op.drop_table('trait_statistics')
    op.drop_index('ix_traits_nft_id', table_name='traits')
    op.drop_table('traits')
    op.drop_index('ix_nfts_collection_rank', table_name='nfts')
    op.drop_index('ix_nfts_owner_address', table_name='nfts')
    op.drop_index('ix_nfts_collection_id', table_name='nfts')
    op.drop_table('nfts')
    op.drop_index('ix_collections_contract_address', table_name='collections')
    op.drop_table('collections')
