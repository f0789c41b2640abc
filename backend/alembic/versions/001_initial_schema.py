"""Initial schema

Revision ID: 001
Revises: 
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create trading_agents table
    op.create_table(
        'trading_agents',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('strategy', sa.String(30), nullable=False),
        sa.Column('strategy_config', sa.JSON(), nullable=True),
        sa.Column('market_type', sa.String(10), nullable=False, server_default='stocks'),
        sa.Column('balance', sa.Float(), nullable=False),
        sa.Column('initial_balance', sa.Float(), nullable=False),
        sa.Column('risk_tolerance', sa.Integer(), nullable=True, server_default='5'),
        sa.Column('max_position_size', sa.Float(), nullable=True, server_default='0.2'),
        sa.Column('trading_mode', sa.String(10), nullable=True, server_default='paper'),
        sa.Column('status', sa.String(20), nullable=True, server_default='paused'),
        sa.Column('total_trades', sa.Integer(), nullable=True, server_default='0'),
        sa.Column('winning_trades', sa.Integer(), nullable=True, server_default='0'),
        sa.Column('total_profit', sa.Float(), nullable=True, server_default='0'),
        sa.Column('error_count', sa.Integer(), nullable=True, server_default='0'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_action_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_trading_agents_user_id', 'trading_agents', ['user_id'])
    op.create_index('ix_trading_agents_status', 'trading_agents', ['status'])

    # Create trades table
    op.create_table(
        'trades',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('agent_id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('symbol', sa.String(20), nullable=False),
        sa.Column('side', sa.String(4), nullable=False),
        sa.Column('quantity', sa.Float(), nullable=False),
        sa.Column('price', sa.Float(), nullable=False),
        sa.Column('total_amount', sa.Float(), nullable=False),
        sa.Column('status', sa.String(20), nullable=True, server_default='pending'),
        sa.Column('reasoning', sa.Text(), nullable=True),
        sa.Column('realized_pnl', sa.Float(), nullable=True),
        sa.Column('broker_order_id', sa.String(100), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('executed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['agent_id'], ['trading_agents.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_trades_agent_id', 'trades', ['agent_id'])
    op.create_index('ix_trades_user_id', 'trades', ['user_id'])
    op.create_index('ix_trades_status', 'trades', ['status'])
    op.create_index('ix_trades_agent_created', 'trades', ['agent_id', 'created_at'])

    # Create agent_actions table
    op.create_table(
        'agent_actions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('agent_id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('action_type', sa.String(20), nullable=False),
        sa.Column('action_data', sa.JSON(), nullable=True),
        sa.Column('reasoning', sa.Text(), nullable=True),
        sa.Column('confidence_score', sa.Integer(), nullable=True),
        sa.Column('market_data', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['agent_id'], ['trading_agents.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_agent_actions_agent_id', 'agent_actions', ['agent_id'])
    op.create_index('ix_agent_actions_agent_created', 'agent_actions', ['agent_id', 'created_at'])

    # Create agent_positions table
    op.create_table(
        'agent_positions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('agent_id', sa.Uuid(), nullable=False),
        sa.Column('symbol', sa.String(20), nullable=False),
        sa.Column('quantity', sa.Float(), nullable=True, server_default='0'),
        sa.Column('average_price', sa.Float(), nullable=True, server_default='0'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['agent_id'], ['trading_agents.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('agent_id', 'symbol', name='uq_agent_positions_agent_symbol'),
    )
    op.create_index('ix_agent_positions_agent_id', 'agent_positions', ['agent_id'])

    # Create notifications table
    op.create_table(
        'notifications',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('agent_id', sa.Uuid(), nullable=True),
        sa.Column('trade_id', sa.Uuid(), nullable=True),
        sa.Column('type', sa.String(30), nullable=False),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('read', sa.Boolean(), nullable=True, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['agent_id'], ['trading_agents.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['trade_id'], ['trades.id'], ondelete='SET NULL'),
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])


def downgrade() -> None:
    op.drop_table('notifications')
    op.drop_table('agent_positions')
    op.drop_table('agent_actions')
    op.drop_table('trades')
    op.drop_table('trading_agents')
