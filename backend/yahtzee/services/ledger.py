"""Player balances and the append-only transaction journal.

``debit`` and ``credit`` are the only writers of ``Player.balance``. Each
call mutates the balance and appends one ``Transaction`` snapshotting the
post-operation balance inside a single ``atomic()`` scope, under the
player's lock. Replaying a player's journal in order must therefore land
exactly on the stored balance; ``reconcile`` checks that and never repairs.
"""

from decimal import Decimal, InvalidOperation

from flask import current_app

from yahtzee import db
from yahtzee.models import Transaction, TransactionType
from yahtzee.services import atomic, reload_for_update
from yahtzee.services.errors import InsufficientFunds, InvalidAmount, LedgerMismatch

CENT = Decimal('0.01')
ZERO = Decimal('0.00')


def to_money(amount) -> Decimal:
    """Parse a strictly positive amount with at most two decimal places."""
    if isinstance(amount, bool):
        raise InvalidAmount('Amount must be a number')
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidAmount(f'Invalid amount: {amount!r}')
    if not value.is_finite():
        raise InvalidAmount(f'Invalid amount: {amount!r}')
    if value <= 0:
        raise InvalidAmount('Amount must be greater than zero')
    if value != value.quantize(CENT):
        raise InvalidAmount('Amount cannot have more than two decimal places')
    return value.quantize(CENT)


class Ledger:
    def __init__(self, locks):
        self.locks = locks

    # ---- core writers ----

    def debit(self, player, amount, reason, tx_type=TransactionType.WITHDRAWAL, match=None) -> Transaction:
        if tx_type.is_credit:
            raise ValueError(f'{tx_type.value} is a credit type')
        return self._post(player, to_money(amount), reason, tx_type, match)

    def credit(self, player, amount, reason, tx_type=TransactionType.DEPOSIT, match=None) -> Transaction:
        if not tx_type.is_credit:
            raise ValueError(f'{tx_type.value} is a debit type')
        return self._post(player, to_money(amount), reason, tx_type, match)

    def _post(self, player, amount, reason, tx_type, match):
        with self.locks.hold(player.id), atomic():
            reload_for_update(player)
            signed = amount if tx_type.is_credit else -amount
            balance = player.balance if player.balance is not None else ZERO
            new_balance = balance + signed
            if new_balance < 0:
                current_app.logger.warning(
                    f"[ledger-reject] {tx_type.value} player={player.username} amount={amount} balance={balance}"
                )
                raise InsufficientFunds(
                    f'Insufficient balance: {amount} required, {balance} available'
                )
            player.balance = new_balance
            player.touch()
            tx = Transaction(
                player=player,
                match=match,
                type=tx_type,
                amount=amount,
                balance_after=new_balance,
                description=reason,
            )
            db.session.add(tx)
        current_app.logger.info(
            f"[ledger] {tx_type.value} player={player.username} amount={amount} balance_after={new_balance}"
        )
        return tx

    # ---- typed entry points ----

    def deposit(self, player, amount, description='Deposit'):
        return self.credit(player, amount, description, TransactionType.DEPOSIT)

    def withdraw(self, player, amount, description='Withdrawal'):
        return self.debit(player, amount, description, TransactionType.WITHDRAWAL)

    def bonus(self, player, amount, description='Bonus'):
        return self.credit(player, amount, description, TransactionType.BONUS)

    def penalty(self, player, amount, description='Penalty'):
        current_app.logger.warning(f"[penalty] player={player.username} amount={amount} reason={description}")
        return self.debit(player, amount, description, TransactionType.PENALTY)

    def place_bet(self, player, match):
        return self.debit(player, match.stake_amount, f'Bet placed for match {match.code}',
                          TransactionType.BET, match)

    def pay_prize(self, player, match, amount):
        return self.credit(player, amount, f'Prize won from match {match.code}',
                           TransactionType.WIN, match)

    def refund(self, player, match, reason, amount=None):
        amount = match.stake_amount if amount is None else amount
        return self.credit(player, amount, f'Refund for match {match.code}: {reason}',
                           TransactionType.REFUND, match)

    # ---- queries ----

    def history(self, player, limit=None):
        query = Transaction.query.filter_by(player_id=player.id).order_by(Transaction.id.desc())
        if limit:
            query = query.limit(limit)
        return query.all()

    def match_transactions(self, match):
        return Transaction.query.filter_by(match_id=match.id).order_by(Transaction.id.asc()).all()

    def totals_by_type(self, player):
        totals = {t: ZERO for t in TransactionType}
        for tx in Transaction.query.filter_by(player_id=player.id).all():
            totals[tx.type] += tx.amount
        return totals

    def summary(self, player):
        totals = self.totals_by_type(player)
        winnings = totals[TransactionType.WIN]
        losses = totals[TransactionType.BET] + totals[TransactionType.LOSE]
        return {
            'balance': player.balance,
            'deposits': totals[TransactionType.DEPOSIT],
            'withdrawals': totals[TransactionType.WITHDRAWAL],
            'winnings': winnings,
            'losses': losses,
            'refunds': totals[TransactionType.REFUND],
            'bonuses': totals[TransactionType.BONUS],
            'penalties': totals[TransactionType.PENALTY],
            'net_gambling': winnings + totals[TransactionType.REFUND] - losses,
        }

    # ---- audit ----

    def replay(self, player):
        """Return the balance implied by the journal, or the first broken snapshot.

        Result is ``(computed_balance, bad_tx)``; ``bad_tx`` is the first
        transaction whose ``balance_after`` disagrees with the running sum.
        """
        running = ZERO
        for tx in Transaction.query.filter_by(player_id=player.id).order_by(Transaction.id.asc()):
            running += tx.signed_amount
            if running != tx.balance_after:
                return running, tx
        return running, None

    def reconcile(self, player) -> bool:
        computed, bad_tx = self.replay(player)
        balance = player.balance if player.balance is not None else ZERO
        if bad_tx is not None or computed != balance:
            current_app.logger.error(
                f"[ledger-mismatch] player={player.username} stored={balance} computed={computed} "
                f"broken_tx={bad_tx.id if bad_tx is not None else None}"
            )
            return False
        return True

    def assert_reconciled(self, player):
        if not self.reconcile(player):
            raise LedgerMismatch(f'Balance of player {player.username} does not match its transaction history')
