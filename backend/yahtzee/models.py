from yahtzee import db, bcrypt
from flask import current_app
from flask_login import UserMixin
from datetime import datetime, timezone
from decimal import Decimal
import enum
import json
import string
import random


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


def _money(value):
    return str(value) if value is not None else None


class MatchStatus(str, enum.Enum):
    WAITING = 'WAITING'
    IN_PROGRESS = 'IN_PROGRESS'
    FINISHED = 'FINISHED'
    CANCELLED = 'CANCELLED'

    @property
    def is_terminal(self):
        return self in (MatchStatus.FINISHED, MatchStatus.CANCELLED)


class TransactionType(str, enum.Enum):
    DEPOSIT = 'DEPOSIT'
    WITHDRAWAL = 'WITHDRAWAL'
    BET = 'BET'
    WIN = 'WIN'
    LOSE = 'LOSE'
    REFUND = 'REFUND'
    BONUS = 'BONUS'
    PENALTY = 'PENALTY'

    @property
    def is_credit(self):
        return self in CREDIT_TYPES


CREDIT_TYPES = frozenset({
    TransactionType.DEPOSIT,
    TransactionType.WIN,
    TransactionType.REFUND,
    TransactionType.BONUS,
})


class Category(str, enum.Enum):
    """The 13 boxes of a Yahtzee score card, in card order."""
    ONES = 'ONES'
    TWOS = 'TWOS'
    THREES = 'THREES'
    FOURS = 'FOURS'
    FIVES = 'FIVES'
    SIXES = 'SIXES'
    THREE_OF_A_KIND = 'THREE_OF_A_KIND'
    FOUR_OF_A_KIND = 'FOUR_OF_A_KIND'
    FULL_HOUSE = 'FULL_HOUSE'
    SMALL_STRAIGHT = 'SMALL_STRAIGHT'
    LARGE_STRAIGHT = 'LARGE_STRAIGHT'
    YAHTZEE = 'YAHTZEE'
    CHANCE = 'CHANCE'

    @property
    def display_name(self):
        return self.value.replace('_', ' ').title()

    @property
    def face(self):
        """Face value counted by an upper-section box, else None."""
        return UPPER_FACES.get(self)


UPPER_FACES = {
    Category.ONES: 1,
    Category.TWOS: 2,
    Category.THREES: 3,
    Category.FOURS: 4,
    Category.FIVES: 5,
    Category.SIXES: 6,
}


class Player(UserMixin, db.Model):
    __tablename__ = 'player'
    __table_args__ = (
        db.CheckConstraint('balance >= 0', name='chk_player_balance_nonneg'),
    )
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    balance = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal('0.00'))
    # Lifetime stats, updated once per finished match
    games_played = db.Column(db.Integer, nullable=False, default=0)
    games_won = db.Column(db.Integer, nullable=False, default=0)
    games_lost = db.Column(db.Integer, nullable=False, default=0)
    highest_score = db.Column(db.Integer, nullable=False, default=0)
    total_earnings = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal('0.00'))
    total_losses = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal('0.00'))
    active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    last_activity = db.Column(db.DateTime(timezone=True), nullable=True)

    seats = db.relationship('Seat', back_populates='player')
    transactions = db.relationship('Transaction', back_populates='player', lazy='dynamic')

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    def has_enough_balance(self, amount):
        return self.balance is not None and self.balance >= amount

    def touch(self):
        self.last_activity = _utcnow()

    @property
    def win_rate(self):
        if not self.games_played:
            return 0.0
        return self.games_won / self.games_played

    @property
    def net_earnings(self):
        return (self.total_earnings or 0) - (self.total_losses or 0)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'balance': _money(self.balance),
            'games_played': self.games_played,
            'games_won': self.games_won,
            'games_lost': self.games_lost,
            'highest_score': self.highest_score,
            'total_earnings': _money(self.total_earnings),
            'total_losses': _money(self.total_losses),
            'win_rate': self.win_rate,
            'active': self.active,
        }


def generate_match_code(length=6):
    """Generate a unique, short match code."""
    while True:
        code = ''.join(random.choices(string.ascii_uppercase + string.digits, k=length))
        if not Match.query.filter_by(code=code).first():
            return code


class Match(db.Model):
    __tablename__ = 'match'
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(16), unique=True, nullable=False, index=True)
    status = db.Column(db.Enum(MatchStatus, name='match_status'), nullable=False, default=MatchStatus.WAITING, index=True)
    stake_amount = db.Column(db.Numeric(12, 2), nullable=False)
    max_seats = db.Column(db.Integer, nullable=False, default=2)
    current_round = db.Column(db.Integer, nullable=False, default=1)
    max_rounds = db.Column(db.Integer, nullable=False, default=13)
    current_turn_player_id = db.Column(db.Integer, db.ForeignKey('player.id'), nullable=True)
    winner_id = db.Column(db.Integer, db.ForeignKey('player.id'), nullable=True)
    # Always stake_amount x seats whose stake the ledger actually collected
    prize_pool = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal('0.00'))
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    finished_at = db.Column(db.DateTime(timezone=True), nullable=True)

    seats = db.relationship('Seat', back_populates='match', order_by='Seat.join_order',
                            cascade='all, delete-orphan')
    turns = db.relationship('Turn', back_populates='match', order_by='Turn.id',
                            cascade='all, delete-orphan')
    current_turn_player = db.relationship('Player', foreign_keys=[current_turn_player_id])
    winner = db.relationship('Player', foreign_keys=[winner_id])

    def __init__(self, **kwargs):
        super(Match, self).__init__(**kwargs)
        if not self.code:
            self.code = generate_match_code(int(current_app.config.get('MATCH_CODE_LENGTH', 6)))

    @property
    def seat_count(self):
        return len(self.seats)

    @property
    def is_full(self):
        return self.seat_count >= self.max_seats

    @property
    def active_seats(self):
        return [s for s in self.seats if s.active]

    def seat_for(self, player):
        player_id = getattr(player, 'id', player)
        for seat in self.seats:
            if seat.player_id == player_id:
                return seat
        return None

    def to_dict(self, include_seats=True):
        payload = {
            'id': self.id,
            'code': self.code,
            'status': self.status.value,
            'stake_amount': _money(self.stake_amount),
            'max_seats': self.max_seats,
            'seat_count': self.seat_count,
            'current_round': self.current_round,
            'max_rounds': self.max_rounds,
            'current_turn_player_id': self.current_turn_player_id,
            'winner_id': self.winner_id,
            'prize_pool': _money(self.prize_pool),
            'created_at': _iso(self.created_at),
            'started_at': _iso(self.started_at),
            'finished_at': _iso(self.finished_at),
        }
        if include_seats:
            payload['seats'] = [s.to_dict() for s in self.seats]
        return payload


class Seat(db.Model):
    __tablename__ = 'seat'
    __table_args__ = (
        db.UniqueConstraint('match_id', 'player_id', name='uq_seat_match_player'),
        db.UniqueConstraint('match_id', 'join_order', name='uq_seat_match_join_order'),
    )
    id = db.Column(db.Integer, primary_key=True)
    match_id = db.Column(db.Integer, db.ForeignKey('match.id', ondelete='CASCADE'), nullable=False, index=True)
    player_id = db.Column(db.Integer, db.ForeignKey('player.id'), nullable=False, index=True)
    join_order = db.Column(db.Integer, nullable=False)
    total_score = db.Column(db.Integer, nullable=False, default=0)
    active = db.Column(db.Boolean, nullable=False, default=True)
    used_categories = db.Column(db.Text, nullable=False, default='[]')  # JSON-encoded list of category names
    joined_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    match = db.relationship('Match', back_populates='seats')
    player = db.relationship('Player', back_populates='seats')

    @property
    def used_category_set(self):
        return {Category(name) for name in json.loads(self.used_categories or '[]')}

    def mark_category_used(self, category):
        used = json.loads(self.used_categories or '[]')
        used.append(category.value)
        self.used_categories = json.dumps(used)

    def add_score(self, score):
        if score < 0:
            raise ValueError('score cannot lower a seat total')
        self.total_score = (self.total_score or 0) + score

    def to_dict(self):
        return {
            'player_id': self.player_id,
            'username': self.player.username if self.player else None,
            'join_order': self.join_order,
            'total_score': self.total_score,
            'active': self.active,
            'used_categories': [c.value for c in Category if c in self.used_category_set],
        }


class Turn(db.Model):
    __tablename__ = 'turn'
    id = db.Column(db.Integer, primary_key=True)
    match_id = db.Column(db.Integer, db.ForeignKey('match.id', ondelete='CASCADE'), nullable=False, index=True)
    player_id = db.Column(db.Integer, db.ForeignKey('player.id'), nullable=False, index=True)
    round_number = db.Column(db.Integer, nullable=False)
    dice_rolls = db.Column(db.Text, nullable=False, default='[]')  # JSON-encoded list of 5-face lists
    kept_dice = db.Column(db.Text, nullable=False, default='[]')  # JSON-encoded masks for rolls 2 and 3
    selected_category = db.Column(db.Enum(Category, name='score_category'), nullable=True)
    score = db.Column(db.Integer, nullable=True)
    completed = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    match = db.relationship('Match', back_populates='turns')
    player = db.relationship('Player')

    @property
    def rolls(self):
        return json.loads(self.dice_rolls or '[]')

    @property
    def keep_masks(self):
        return json.loads(self.kept_dice or '[]')

    @property
    def roll_count(self):
        return len(self.rolls)

    @property
    def final_dice(self):
        rolls = self.rolls
        return rolls[-1] if rolls else None

    def to_dict(self):
        return {
            'id': self.id,
            'match_id': self.match_id,
            'player_id': self.player_id,
            'round_number': self.round_number,
            'rolls': self.rolls,
            'keep_masks': self.keep_masks,
            'roll_count': self.roll_count,
            'dice': self.final_dice,
            'selected_category': self.selected_category.value if self.selected_category else None,
            'score': self.score,
            'completed': self.completed,
        }


class Transaction(db.Model):
    __tablename__ = 'ledger_transaction'
    __table_args__ = (
        db.CheckConstraint('amount > 0', name='chk_transaction_amount_positive'),
    )
    id = db.Column(db.Integer, primary_key=True)
    player_id = db.Column(db.Integer, db.ForeignKey('player.id'), nullable=False, index=True)
    # Audit rows outlive their match
    match_id = db.Column(db.Integer, db.ForeignKey('match.id', ondelete='SET NULL'), nullable=True, index=True)
    type = db.Column(db.Enum(TransactionType, name='transaction_type'), nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    balance_after = db.Column(db.Numeric(12, 2), nullable=False)
    description = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow, index=True)

    player = db.relationship('Player', back_populates='transactions')
    match = db.relationship('Match')

    @property
    def signed_amount(self):
        return self.amount if self.type.is_credit else -self.amount

    def to_dict(self):
        return {
            'id': self.id,
            'player_id': self.player_id,
            'match_id': self.match_id,
            'type': self.type.value,
            'amount': _money(self.amount),
            'balance_after': _money(self.balance_after),
            'description': self.description,
            'created_at': _iso(self.created_at),
        }
