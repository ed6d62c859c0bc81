"""create autosave tables

Revision ID: 5c1e9a7d3b20
Revises:
Create Date: 2026-10-12 00:01:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '5c1e9a7d3b20'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


onchain_config_status = sa.Enum(
    'NOT_CONFIGURED', 'PENDING', 'SUBMITTED', 'SYNCED', 'FAILED',
    name='onchainconfigstatus'
)
incoming_transaction_status = sa.Enum(
    'PENDING', 'AUTHORIZED', 'REJECTED', 'FUNDED',
    name='incomingtransactionstatus'
)
savings_ledger_action = sa.Enum(
    'DEPOSIT_PENDING', 'DEPOSIT_CONFIRMED', 'DEPOSIT_FAILED',
    'WITHDRAW_REQUESTED', 'WITHDRAW_CANCELLED', 'WITHDRAW_COMPLETED',
    name='savingsledgeraction'
)
withdrawal_status = sa.Enum(
    'PENDING', 'READY', 'COMPLETED', 'CANCELLED',
    name='withdrawalstatus'
)


def upgrade() -> None:
    """Create users, wallets, incoming_transactions, savings_ledger and withdrawal_requests."""
    op.create_table(
        'users',
        sa.Column('id', sa.String(36), primary_key=True, nullable=False),
        sa.Column('email', sa.String(255), nullable=False, unique=True, index=True),
        sa.Column('name', sa.String(100), nullable=True),
        sa.Column('saving_percent_bps', sa.Integer, nullable=False, server_default='0'),
        sa.Column('withdrawal_delay_seconds', sa.Integer, nullable=False, server_default='86400'),
        sa.Column('created_at', sa.TIMESTAMP, nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.TIMESTAMP, nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
    )

    op.create_table(
        'wallets',
        sa.Column('id', sa.String(36), primary_key=True, nullable=False),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('address', sa.String(42), nullable=False, unique=True, index=True),
        sa.Column('label', sa.String(255), nullable=True),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true(), index=True),
        sa.Column('chain_id', sa.Integer, nullable=False, server_default='44787'),
        sa.Column('onchain_config_status', onchain_config_status, nullable=False, server_default='NOT_CONFIGURED'),
        sa.Column('onchain_config_tx_hash', sa.String(66), nullable=True),
        sa.Column('onchain_config_error', sa.Text, nullable=True),
        sa.Column('last_detected_at', sa.TIMESTAMP, nullable=True),
        sa.Column('created_at', sa.TIMESTAMP, nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
    )

    op.create_table(
        'incoming_transactions',
        sa.Column('id', sa.String(36), primary_key=True, nullable=False),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('wallet_id', sa.String(36), sa.ForeignKey('wallets.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('tx_hash', sa.String(66), nullable=False, index=True),
        sa.Column('token_address', sa.String(42), nullable=False),
        sa.Column('from_address', sa.String(42), nullable=False),
        sa.Column('to_address', sa.String(42), nullable=False),
        sa.Column('block_number', sa.BigInteger, nullable=True),
        sa.Column('amount_raw', sa.Numeric(78, 0), nullable=False),
        sa.Column('save_amount_wei', sa.Numeric(78, 0), nullable=False),
        sa.Column('status', incoming_transaction_status, nullable=False, server_default='PENDING', index=True),
        sa.Column('vault_tx_hash', sa.String(66), nullable=True),
        sa.Column('rejection_reason', sa.Text, nullable=True),
        sa.Column('transaction_metadata', sa.JSON, nullable=True),
        sa.Column('detected_at', sa.TIMESTAMP, nullable=False, server_default=sa.text('CURRENT_TIMESTAMP'), index=True),
        sa.Column('authorized_at', sa.TIMESTAMP, nullable=True),
        sa.Column('funded_at', sa.TIMESTAMP, nullable=True),
        sa.Column('rejected_at', sa.TIMESTAMP, nullable=True),
        # Webhook redelivery dedup key
        sa.UniqueConstraint('tx_hash', 'wallet_id', 'token_address', name='uq_incoming_tx_wallet_token'),
    )

    op.create_table(
        'savings_ledger',
        sa.Column('id', sa.String(36), primary_key=True, nullable=False),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('wallet_id', sa.String(36), sa.ForeignKey('wallets.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column(
            'transaction_id',
            sa.String(36),
            sa.ForeignKey('incoming_transactions.id', ondelete='SET NULL'),
            nullable=True,
            unique=True
        ),
        sa.Column('action', savings_ledger_action, nullable=False, index=True),
        sa.Column('amount_wei', sa.Numeric(78, 0), nullable=False),
        sa.Column('tx_hash', sa.String(66), nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('created_at', sa.TIMESTAMP, nullable=False, server_default=sa.text('CURRENT_TIMESTAMP'), index=True),
    )

    op.create_table(
        'withdrawal_requests',
        sa.Column('id', sa.String(36), primary_key=True, nullable=False),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('wallet_id', sa.String(36), sa.ForeignKey('wallets.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('amount_wei', sa.Numeric(78, 0), nullable=False),
        sa.Column('status', withdrawal_status, nullable=False, server_default='PENDING', index=True),
        sa.Column('in_flight_action', sa.String(20), nullable=True),
        sa.Column('request_tx_hash', sa.String(66), nullable=True),
        sa.Column('execute_tx_hash', sa.String(66), nullable=True),
        sa.Column('cancel_tx_hash', sa.String(66), nullable=True),
        sa.Column('transaction_metadata', sa.JSON, nullable=True),
        sa.Column('requested_at', sa.TIMESTAMP, nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('available_at', sa.TIMESTAMP, nullable=False),
        sa.Column('completed_at', sa.TIMESTAMP, nullable=True),
        sa.Column('cancelled_at', sa.TIMESTAMP, nullable=True),
    )

    # At most one active withdrawal per wallet
    op.create_index(
        'uq_withdrawal_requests_active_wallet',
        'withdrawal_requests',
        ['wallet_id'],
        unique=True,
        postgresql_where=sa.text("status = 'PENDING'"),
        sqlite_where=sa.text("status = 'PENDING'"),
    )


def downgrade() -> None:
    """Drop autosave tables and enum types."""
    op.drop_index('uq_withdrawal_requests_active_wallet', table_name='withdrawal_requests')
    op.drop_table('withdrawal_requests')
    op.drop_table('savings_ledger')
    op.drop_table('incoming_transactions')
    op.drop_table('wallets')
    op.drop_table('users')

    bind = op.get_bind()
    for enum_type in (withdrawal_status, savings_ledger_action, incoming_transaction_status, onchain_config_status):
        enum_type.drop(bind, checkfirst=True)
