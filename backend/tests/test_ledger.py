from decimal import Decimal

import pytest

from yahtzee import db
from yahtzee.models import Transaction, TransactionType
from yahtzee.services.errors import InsufficientFunds, InvalidAmount, LedgerMismatch
from yahtzee.services.ledger import to_money


def test_registration_credits_welcome_deposit(services, make_player):
    alice = make_player('alice')
    assert alice.balance == Decimal('1000.00')
    history = services.ledger.history(alice)
    assert len(history) == 1
    assert history[0].type == TransactionType.DEPOSIT
    assert history[0].balance_after == Decimal('1000.00')
    assert services.ledger.reconcile(alice)


def test_debit_and_credit_snapshot_balance(services, make_player):
    alice = make_player('alice')
    tx = services.ledger.withdraw(alice, '250.50')
    assert tx.type == TransactionType.WITHDRAWAL
    assert tx.balance_after == Decimal('749.50')
    assert alice.balance == Decimal('749.50')

    tx = services.ledger.bonus(alice, Decimal('0.50'))
    assert tx.balance_after == Decimal('750.00')
    assert services.ledger.reconcile(alice)


def test_debit_to_exactly_zero_is_allowed(services, make_player):
    alice = make_player('alice')
    services.ledger.withdraw(alice, '1000.00')
    assert alice.balance == Decimal('0.00')
    assert services.ledger.reconcile(alice)


def test_overdraft_rejected_without_side_effects(services, make_player):
    alice = make_player('alice', balance='50.00')
    before = Transaction.query.filter_by(player_id=alice.id).count()
    with pytest.raises(InsufficientFunds):
        services.ledger.penalty(alice, '50.01')
    assert alice.balance == Decimal('50.00')
    assert Transaction.query.filter_by(player_id=alice.id).count() == before


@pytest.mark.parametrize('amount', [0, '0.00', -5, '1.005', 'abc', None, True, float('nan'), 'Infinity'])
def test_invalid_amounts(amount):
    with pytest.raises(InvalidAmount):
        to_money(amount)


def test_to_money_normalises_two_places():
    assert to_money(10) == Decimal('10.00')
    assert to_money('3.5') == Decimal('3.50')


def test_wrong_direction_type_is_a_programming_error(services, make_player):
    alice = make_player('alice')
    with pytest.raises(ValueError):
        services.ledger.debit(alice, '1.00', 'oops', TransactionType.WIN)
    with pytest.raises(ValueError):
        services.ledger.credit(alice, '1.00', 'oops', TransactionType.BET)


def test_history_newest_first_and_limit(services, make_player):
    alice = make_player('alice')
    services.ledger.withdraw(alice, '1.00')
    services.ledger.withdraw(alice, '2.00')
    history = services.ledger.history(alice, limit=2)
    assert [tx.amount for tx in history] == [Decimal('2.00'), Decimal('1.00')]


def test_summary_totals(services, make_player):
    alice = make_player('alice')
    bob = make_player('bob')
    match = services.matches.create(alice, '100.00', 2)
    services.matches.join(match, bob)
    services.matches.cancel(match, 'host went away')
    services.ledger.withdraw(alice, '10.00')

    summary = services.ledger.summary(alice)
    assert summary['deposits'] == Decimal('1000.00')
    assert summary['withdrawals'] == Decimal('10.00')
    assert summary['losses'] == Decimal('100.00')
    assert summary['refunds'] == Decimal('100.00')
    assert summary['net_gambling'] == Decimal('0.00')
    assert summary['balance'] == Decimal('990.00')


def test_match_transactions_oldest_first(services, make_player):
    alice = make_player('alice')
    bob = make_player('bob')
    match = services.matches.create(alice, '25.00', 2)
    services.matches.join(match, bob)
    txs = services.ledger.match_transactions(match)
    assert [(tx.player_id, tx.type) for tx in txs] == [
        (alice.id, TransactionType.BET),
        (bob.id, TransactionType.BET),
    ]
    assert txs[0].description == f'Bet placed for match {match.code}'


def test_reconcile_detects_tampered_balance(services, make_player):
    alice = make_player('alice')
    alice.balance = Decimal('5000.00')
    db.session.commit()
    assert not services.ledger.reconcile(alice)
    with pytest.raises(LedgerMismatch):
        services.ledger.assert_reconciled(alice)


def test_reconcile_detects_broken_snapshot(services, make_player):
    alice = make_player('alice')
    tx = services.ledger.withdraw(alice, '100.00')
    tx.balance_after = Decimal('901.00')
    db.session.commit()
    computed, bad_tx = services.ledger.replay(alice)
    assert bad_tx.id == tx.id
    assert computed == Decimal('900.00')
    assert not services.ledger.reconcile(alice)
