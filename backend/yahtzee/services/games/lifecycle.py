"""Match lifecycle: seating, stakes, turn pointer, payout.

WAITING -> IN_PROGRESS -> FINISHED | CANCELLED. Every mutating call holds
the match's lock for the duration of one transition and runs in a single
``atomic()`` scope, so a stake debit and the seat it pays for commit
together or not at all.
"""

from datetime import datetime, timezone
from decimal import Decimal

from flask import current_app

from yahtzee import db
from yahtzee.models import Category, Match, MatchStatus, Seat, Turn
from yahtzee.services import atomic, reload_for_update
from yahtzee.services.errors import (
    AlreadySeated,
    InsufficientFunds,
    InvalidSeatCount,
    MatchClosed,
    MatchNotJoinable,
    MatchNotWaiting,
    MissingSeat,
    NoOpenTurn,
    NotEnoughSeats,
    NotInProgress,
    NotSeated,
    NotYourTurn,
    PlayerBusy,
    PlayerInactive,
)
from yahtzee.services.ledger import to_money
from . import scheduler

SEAT_LIMITS = (2, 6)


def _now():
    return datetime.now(timezone.utc)


def seat_bounds():
    """Configured seat bounds, clamped to what the game supports."""
    low, high = SEAT_LIMITS
    cfg = current_app.config
    min_seats = max(low, min(high, int(cfg.get('MIN_SEATS', low))))
    max_seats = max(min_seats, min(high, int(cfg.get('MAX_SEATS', high))))
    return min_seats, max_seats


def round_limit():
    """Configured rounds per match. A seat can fill at most one box per round."""
    return max(1, min(len(Category), int(current_app.config.get('MAX_ROUNDS', len(Category)))))


class MatchLifecycle:
    def __init__(self, ledger, rounds, locks):
        self.ledger = ledger
        self.rounds = rounds
        self.locks = locks

    # ---- lookups ----

    def find_by_code(self, code):
        if not code:
            return None
        return Match.query.filter_by(code=code.upper()).first()

    def available_matches(self, stake_amount=None):
        query = Match.query.filter_by(status=MatchStatus.WAITING)
        if stake_amount is not None:
            query = query.filter_by(stake_amount=to_money(stake_amount))
        return [m for m in query.order_by(Match.created_at.asc()).all() if not m.is_full]

    def active_match_for(self, player, exclude=None):
        """The non-terminal match where ``player`` holds an active seat, if any."""
        query = (Match.query.join(Seat, Seat.match_id == Match.id)
                 .filter(Seat.player_id == player.id, Seat.active.is_(True),
                         Match.status.in_([MatchStatus.WAITING, MatchStatus.IN_PROGRESS])))
        if exclude is not None:
            query = query.filter(Match.id != exclude.id)
        return query.first()

    def seats_in_order(self, match):
        return sorted(match.seats, key=lambda s: s.join_order)

    def standings(self, match):
        return scheduler.standings(match)

    def is_player_turn(self, match, player):
        current = match.current_turn_player
        return current is not None and current.id == player.id

    # ---- WAITING ----

    def create(self, creator, stake_amount, max_seats) -> Match:
        stake = to_money(stake_amount)
        min_seats, top_seats = seat_bounds()
        if isinstance(max_seats, bool) or not isinstance(max_seats, int) or not min_seats <= max_seats <= top_seats:
            raise InvalidSeatCount(f'Max seats must be between {min_seats} and {top_seats}')
        if not creator.active:
            raise PlayerInactive(f'Player {creator.username} is deactivated')

        with self.ledger.locks.hold(creator.id), atomic():
            reload_for_update(creator)
            if not creator.has_enough_balance(stake):
                current_app.logger.warning(
                    f"[create-reject] player={creator.username} stake={stake} balance={creator.balance}"
                )
                raise InsufficientFunds(f'Insufficient balance to create match: {stake} required, {creator.balance} available')
            busy = self.active_match_for(creator)
            if busy is not None:
                current_app.logger.warning(f"[create-reject] player={creator.username} already in match={busy.code}")
                raise PlayerBusy(f'Player is already in active match {busy.code}')

            match = Match(
                stake_amount=stake,
                max_seats=max_seats,
                status=MatchStatus.WAITING,
                current_round=1,
                max_rounds=round_limit(),
                prize_pool=Decimal('0.00'),
            )
            db.session.add(match)
            db.session.flush()
            self._seat(match, creator)
        current_app.logger.info(
            f"[create] match={match.code} creator={creator.username} stake={stake} max_seats={max_seats}"
        )
        return match

    def join(self, match, player) -> Seat:
        with self.locks.hold(match.id), self.ledger.locks.hold(player.id), atomic():
            reload_for_update(match)
            reload_for_update(player)
            if match.status != MatchStatus.WAITING:
                current_app.logger.warning(f"[join-reject] match={match.code} status={match.status.value} player={player.username}")
                raise MatchNotJoinable(f'Match {match.code} is not accepting players')
            if match.is_full:
                current_app.logger.warning(f"[join-reject] match={match.code} full player={player.username}")
                raise MatchNotJoinable(f'Match {match.code} is full')
            if not player.active:
                raise PlayerInactive(f'Player {player.username} is deactivated')
            if match.seat_for(player) is not None:
                raise AlreadySeated(f'Player {player.username} is already in match {match.code}')
            if not player.has_enough_balance(match.stake_amount):
                current_app.logger.warning(
                    f"[join-reject] match={match.code} player={player.username} "
                    f"stake={match.stake_amount} balance={player.balance}"
                )
                raise InsufficientFunds(
                    f'Insufficient balance to join: {match.stake_amount} required, {player.balance} available'
                )
            busy = self.active_match_for(player, exclude=match)
            if busy is not None:
                raise PlayerBusy(f'Player is already in active match {busy.code}')
            seat = self._seat(match, player)
        current_app.logger.info(
            f"[join] match={match.code} player={player.username} seats={match.seat_count}/{match.max_seats}"
        )
        return seat

    def _seat(self, match, player):
        self.ledger.place_bet(player, match)
        last = max((s.join_order for s in match.seats), default=0)
        seat = Seat(match=match, player=player, join_order=last + 1, total_score=0,
                    active=True, used_categories='[]')
        db.session.add(seat)
        match.prize_pool = match.stake_amount * match.seat_count
        return seat

    def leave(self, match, player) -> Match:
        with self.locks.hold(match.id), atomic():
            reload_for_update(match)
            if match.status != MatchStatus.WAITING:
                raise MatchNotWaiting(f'Players can only leave match {match.code} before it starts')
            seat = match.seat_for(player)
            if seat is None:
                raise NotSeated(f'Player {player.username} is not in match {match.code}')
            self.ledger.refund(player, match, 'left before start')
            match.seats.remove(seat)
            db.session.delete(seat)
            match.prize_pool = match.stake_amount * match.seat_count
            if not match.seats:
                match.status = MatchStatus.CANCELLED
                match.finished_at = _now()
        current_app.logger.info(f"[leave] match={match.code} player={player.username} seats={match.seat_count}")
        if match.status == MatchStatus.CANCELLED:
            current_app.logger.warning(f"[cancel] match={match.code}: last player left")
        return match

    def start(self, match) -> Match:
        with self.locks.hold(match.id), atomic():
            reload_for_update(match)
            if match.status != MatchStatus.WAITING:
                current_app.logger.warning(f"[start-reject] match={match.code} status={match.status.value}")
                raise MatchNotWaiting(f'Match {match.code} cannot be started from {match.status.value}')
            min_seats, _ = seat_bounds()
            if match.seat_count < min_seats:
                raise NotEnoughSeats(f'At least {min_seats} players are required to start')
            first = scheduler.first_active_seat(match)
            match.status = MatchStatus.IN_PROGRESS
            match.started_at = _now()
            match.current_round = 1
            match.current_turn_player = first.player
        current_app.logger.info(
            f"[start] match={match.code} seats={match.seat_count} first={first.player.username}"
        )
        return match

    # ---- turn pointer ----

    def advance_turn(self, match) -> Match:
        with self.locks.hold(match.id), atomic():
            self._advance_turn(match)
        return match

    def advance_round(self, match) -> Match:
        with self.locks.hold(match.id), atomic():
            self._advance_round(match)
        return match

    def _current_seat(self, match):
        current = match.current_turn_player
        seat = match.seat_for(current) if current is not None else None
        if seat is None:
            current_app.logger.error(
                f"[integrity] match={match.code} turn pointer={getattr(current, 'username', None)} has no seat"
            )
            raise MissingSeat(f'Match {match.code} points at a player without a seat')
        return seat

    def _advance_turn(self, match):
        if match.status != MatchStatus.IN_PROGRESS:
            raise NotInProgress(f'Match {match.code} is not in progress')
        current = self._current_seat(match)
        if scheduler.is_last_in_round(match, current):
            self._advance_round(match)
            return
        nxt = scheduler.next_active_seat(match, current)
        match.current_turn_player = nxt.player
        current_app.logger.debug(f"[next-turn] match={match.code} player={nxt.player.username}")

    def _advance_round(self, match):
        if match.status != MatchStatus.IN_PROGRESS:
            raise NotInProgress(f'Match {match.code} is not in progress')
        if scheduler.is_final_round(match):
            current_app.logger.info(f"[last-round] match={match.code} all rounds played, determining winner")
            self._finish(match)
            return
        first = scheduler.first_active_seat(match)
        if first is None:
            current_app.logger.error(f"[integrity] match={match.code} in progress with no active seat")
            raise MissingSeat(f'Match {match.code} has no active seat')
        match.current_round += 1
        match.current_turn_player = first.player
        current_app.logger.info(
            f"[next-round] match={match.code} round={match.current_round}/{match.max_rounds} first={first.player.username}"
        )

    # ---- terminal transitions ----

    def finish(self, match, winner=None) -> Match:
        with self.locks.hold(match.id), atomic():
            reload_for_update(match)
            self._finish(match, winner)
        return match

    def _finish(self, match, winner=None):
        if match.status != MatchStatus.IN_PROGRESS:
            current_app.logger.warning(f"[finish-reject] match={match.code} status={match.status.value}")
            raise NotInProgress(f'Match {match.code} is not in progress')
        if winner is None:
            top = scheduler.pick_winner(match)
            if top is None:
                current_app.logger.error(f"[integrity] match={match.code} has no seats to pick a winner from")
                raise MissingSeat(f'Match {match.code} has no seats')
            winner = top.player
        elif match.seat_for(winner) is None:
            raise NotSeated(f'Winner {winner.username} is not in match {match.code}')

        self._discard_open_turns(match)
        match.status = MatchStatus.FINISHED
        match.winner = winner
        match.finished_at = _now()
        match.current_turn_player = None
        if match.prize_pool and match.prize_pool > 0:
            self.ledger.pay_prize(winner, match, match.prize_pool)

        for seat in self.seats_in_order(match):
            self._record_stats(match, seat, won=seat.player_id == winner.id)
        current_app.logger.info(
            f"[finish] match={match.code} winner={winner.username} prize={match.prize_pool}"
        )

    def _record_stats(self, match, seat, won):
        player = seat.player
        player.games_played = (player.games_played or 0) + 1
        if won:
            player.games_won = (player.games_won or 0) + 1
            player.total_earnings = (player.total_earnings or 0) + match.prize_pool
        else:
            player.games_lost = (player.games_lost or 0) + 1
            player.total_losses = (player.total_losses or 0) + match.stake_amount
        if (seat.total_score or 0) > (player.highest_score or 0):
            player.highest_score = seat.total_score
            current_app.logger.info(f"[high-score] player={player.username} score={seat.total_score}")
        player.touch()

    def cancel(self, match, reason):
        """Cancel and refund each seat's stake as its own transaction."""
        with self.locks.hold(match.id), atomic():
            reload_for_update(match)
            if match.status.is_terminal:
                current_app.logger.warning(f"[cancel-reject] match={match.code} status={match.status.value}")
                raise MatchClosed(f'Match {match.code} is already {match.status.value.lower()}')
            self._discard_open_turns(match)
            match.status = MatchStatus.CANCELLED
            match.finished_at = _now()
            match.current_turn_player = None
            # prize_pool keeps what was collected; the REFUND rows record the reversal
            refunds = [self.ledger.refund(seat.player, match, reason) for seat in self.seats_in_order(match)]
        current_app.logger.warning(f"[cancel] match={match.code} refunded={len(refunds)} reason={reason}")
        return refunds

    def _discard_open_turns(self, match):
        for turn in [t for t in match.turns if not t.completed]:
            match.turns.remove(turn)
            db.session.delete(turn)

    # ---- seat activity ----

    def forfeit(self, match, player) -> Match:
        with self.locks.hold(match.id), atomic():
            reload_for_update(match)
            if match.status != MatchStatus.IN_PROGRESS:
                raise NotInProgress(f'Match {match.code} is not in progress')
            seat = match.seat_for(player)
            if seat is None:
                raise NotSeated(f'Player {player.username} is not in match {match.code}')
            if not seat.active:
                raise PlayerInactive(f'Player {player.username} already left match {match.code}')

            held_turn = self.is_player_turn(match, player)
            open_turn = self.rounds.open_turn(match, player)
            if open_turn is not None:
                match.turns.remove(open_turn)
                db.session.delete(open_turn)
            seat.active = False
            current_app.logger.warning(f"[forfeit] match={match.code} player={player.username} score={seat.total_score}")

            survivors = scheduler.active_seats_in_order(match)
            if not survivors:
                self.cancel(match, 'no active players left')
            elif len(survivors) == 1:
                self._finish(match, survivors[0].player)
            elif held_turn:
                self._advance_turn(match)
        return match

    def reactivate(self, match, player) -> Seat:
        with self.locks.hold(match.id), self.ledger.locks.hold(player.id), atomic():
            reload_for_update(match)
            reload_for_update(player)
            if match.status != MatchStatus.IN_PROGRESS:
                raise NotInProgress(f'Match {match.code} is not in progress')
            seat = match.seat_for(player)
            if seat is None:
                raise NotSeated(f'Player {player.username} is not in match {match.code}')
            if not seat.active:
                busy = self.active_match_for(player, exclude=match)
                if busy is not None:
                    raise PlayerBusy(f'Player is already in active match {busy.code}')
                seat.active = True
        current_app.logger.info(f"[reactivate] match={match.code} player={player.username}")
        return seat

    # ---- turn orchestration ----

    def _require_turn(self, match, player):
        if match.status != MatchStatus.IN_PROGRESS:
            raise NotInProgress(f'Match {match.code} is not in progress')
        if match.seat_for(player) is None:
            raise NotSeated(f'Player {player.username} is not in match {match.code}')
        if not self.is_player_turn(match, player):
            raise NotYourTurn('Not your turn')

    def take_turn(self, match, player, round_number=None) -> Turn:
        with self.locks.hold(match.id), atomic():
            reload_for_update(match)
            self._require_turn(match, player)
            turn = self.rounds.start_turn(match, player, round_number)
        return turn

    def roll_dice(self, match, player, keep_mask=None) -> Turn:
        with self.locks.hold(match.id), atomic():
            reload_for_update(match)
            self._require_turn(match, player)
            turn = self.rounds.open_turn(match, player)
            if turn is None:
                turn = self.rounds.start_turn(match, player)
            self.rounds.roll(turn, keep_mask)
        return turn

    def score_turn(self, match, player, category) -> Turn:
        with self.locks.hold(match.id), atomic():
            reload_for_update(match)
            self._require_turn(match, player)
            turn = self.rounds.open_turn(match, player)
            if turn is None:
                raise NoOpenTurn('No open turn to score')
            seat = match.seat_for(player)
            self.rounds.complete(turn, category)
            seat.add_score(turn.score)
            seat.mark_category_used(turn.selected_category)
            self._advance_turn(match)
        return turn

    def suggest_for_turn(self, match, player):
        turn = self.rounds.open_turn(match, player)
        if turn is None:
            return []
        return self.rounds.suggest(turn)
