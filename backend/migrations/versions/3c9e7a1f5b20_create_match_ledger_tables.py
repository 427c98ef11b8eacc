"""create player, match, seat, turn and ledger_transaction tables

Revision ID: 3c9e7a1f5b20
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3c9e7a1f5b20'
down_revision = None
branch_labels = None
depends_on = None

MATCH_STATUS = ('WAITING', 'IN_PROGRESS', 'FINISHED', 'CANCELLED')
TRANSACTION_TYPE = ('DEPOSIT', 'WITHDRAWAL', 'BET', 'WIN', 'LOSE', 'REFUND', 'BONUS', 'PENALTY')
SCORE_CATEGORY = (
    'ONES', 'TWOS', 'THREES', 'FOURS', 'FIVES', 'SIXES',
    'THREE_OF_A_KIND', 'FOUR_OF_A_KIND', 'FULL_HOUSE',
    'SMALL_STRAIGHT', 'LARGE_STRAIGHT', 'YAHTZEE', 'CHANCE',
)


def upgrade():
    existing_tables = set(sa.inspect(op.get_bind()).get_table_names())
    if 'player' in existing_tables:
        return

    op.create_table(
        'player',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('password_hash', sa.String(length=256), nullable=False),
        sa.Column('balance', sa.Numeric(12, 2), nullable=False),
        sa.Column('games_played', sa.Integer(), nullable=False),
        sa.Column('games_won', sa.Integer(), nullable=False),
        sa.Column('games_lost', sa.Integer(), nullable=False),
        sa.Column('highest_score', sa.Integer(), nullable=False),
        sa.Column('total_earnings', sa.Numeric(12, 2), nullable=False),
        sa.Column('total_losses', sa.Numeric(12, 2), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_activity', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('balance >= 0', name='chk_player_balance_nonneg'),
    )
    op.create_index('ix_player_username', 'player', ['username'], unique=True)

    op.create_table(
        'match',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(length=16), nullable=False),
        sa.Column('status', sa.Enum(*MATCH_STATUS, name='match_status'), nullable=False),
        sa.Column('stake_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('max_seats', sa.Integer(), nullable=False),
        sa.Column('current_round', sa.Integer(), nullable=False),
        sa.Column('max_rounds', sa.Integer(), nullable=False),
        sa.Column('current_turn_player_id', sa.Integer(), sa.ForeignKey('player.id'), nullable=True),
        sa.Column('winner_id', sa.Integer(), sa.ForeignKey('player.id'), nullable=True),
        sa.Column('prize_pool', sa.Numeric(12, 2), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('finished_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_match_code', 'match', ['code'], unique=True)
    op.create_index('ix_match_status', 'match', ['status'])

    op.create_table(
        'seat',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('match_id', sa.Integer(), sa.ForeignKey('match.id', ondelete='CASCADE'), nullable=False),
        sa.Column('player_id', sa.Integer(), sa.ForeignKey('player.id'), nullable=False),
        sa.Column('join_order', sa.Integer(), nullable=False),
        sa.Column('total_score', sa.Integer(), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False),
        sa.Column('used_categories', sa.Text(), nullable=False),
        sa.Column('joined_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('match_id', 'player_id', name='uq_seat_match_player'),
        sa.UniqueConstraint('match_id', 'join_order', name='uq_seat_match_join_order'),
    )
    op.create_index('ix_seat_match_id', 'seat', ['match_id'])
    op.create_index('ix_seat_player_id', 'seat', ['player_id'])

    op.create_table(
        'turn',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('match_id', sa.Integer(), sa.ForeignKey('match.id', ondelete='CASCADE'), nullable=False),
        sa.Column('player_id', sa.Integer(), sa.ForeignKey('player.id'), nullable=False),
        sa.Column('round_number', sa.Integer(), nullable=False),
        sa.Column('dice_rolls', sa.Text(), nullable=False),
        sa.Column('kept_dice', sa.Text(), nullable=False),
        sa.Column('selected_category', sa.Enum(*SCORE_CATEGORY, name='score_category'), nullable=True),
        sa.Column('score', sa.Integer(), nullable=True),
        sa.Column('completed', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_turn_match_id', 'turn', ['match_id'])
    op.create_index('ix_turn_player_id', 'turn', ['player_id'])

    op.create_table(
        'ledger_transaction',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('player_id', sa.Integer(), sa.ForeignKey('player.id'), nullable=False),
        sa.Column('match_id', sa.Integer(), sa.ForeignKey('match.id', ondelete='SET NULL'), nullable=True),
        sa.Column('type', sa.Enum(*TRANSACTION_TYPE, name='transaction_type'), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('balance_after', sa.Numeric(12, 2), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('amount > 0', name='chk_transaction_amount_positive'),
    )
    op.create_index('ix_ledger_transaction_player_id', 'ledger_transaction', ['player_id'])
    op.create_index('ix_ledger_transaction_match_id', 'ledger_transaction', ['match_id'])
    op.create_index('ix_ledger_transaction_created_at', 'ledger_transaction', ['created_at'])


def downgrade():
    op.drop_table('ledger_transaction')
    op.drop_table('turn')
    op.drop_table('seat')
    op.drop_table('match')
    op.drop_table('player')
    bind = op.get_bind()
    for name in ('transaction_type', 'score_category', 'match_status'):
        sa.Enum(name=name).drop(bind, checkfirst=True)
