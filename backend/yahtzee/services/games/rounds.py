import json
import random
from datetime import datetime, timezone
from typing import List, Optional

from flask import current_app

from yahtzee import db
from yahtzee.models import Match, MatchStatus, Player, Turn
from yahtzee.services import atomic
from yahtzee.services.errors import (
    CategoryUnavailable,
    InvalidKeepMask,
    InvalidRoundNumber,
    MaxRollsReached,
    MissingSeat,
    NoRolls,
    NotInProgress,
    NotSeated,
    PlayerInactive,
    RoundAlreadyPlayed,
    TurnAlreadyOpen,
    TurnCompleted,
)
from .scoring import DICE_COUNT, best_category, parse_category, score, suggest_categories

MAX_ROLLS = 3


def validate_keep_mask(keep_mask) -> List[bool]:
    try:
        mask = list(keep_mask)
    except TypeError:
        raise InvalidKeepMask('Keep mask must be a sequence of five booleans')
    if len(mask) != DICE_COUNT or not all(isinstance(k, bool) for k in mask):
        raise InvalidKeepMask(f'Keep mask must be exactly {DICE_COUNT} booleans')
    return mask


class RoundEngine:
    """Dice state machine for one player's turn.

    OPEN(0) -> OPEN(1) -> OPEN(2) -> OPEN(3) -> COMPLETED. A turn can be
    completed from any OPEN state with at least one roll.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def roll_faces(self, count=DICE_COUNT) -> List[int]:
        return [self.rng.randint(1, 6) for _ in range(count)]

    # ---- queries ----

    def open_turn(self, match: Match, player: Player) -> Optional[Turn]:
        return Turn.query.filter_by(match_id=match.id, player_id=player.id, completed=False).first()

    def turns_for(self, match: Match, player: Player) -> List[Turn]:
        return (Turn.query.filter_by(match_id=match.id, player_id=player.id)
                .order_by(Turn.round_number.asc()).all())

    def has_completed_round(self, match: Match, player: Player, round_number: int) -> bool:
        return Turn.query.filter_by(match_id=match.id, player_id=player.id,
                                    round_number=round_number, completed=True).first() is not None

    def can_roll_again(self, turn: Turn) -> bool:
        return turn.roll_count < MAX_ROLLS and not turn.completed

    def suggest(self, turn: Turn):
        if not turn.roll_count:
            return []
        seat = turn.match.seat_for(turn.player_id)
        used = seat.used_category_set if seat else ()
        return suggest_categories(turn.final_dice, exclude=used)

    def best(self, turn: Turn):
        if not turn.roll_count:
            return None
        seat = turn.match.seat_for(turn.player_id)
        return best_category(turn.final_dice, exclude=seat.used_category_set if seat else ())

    # ---- transitions ----

    def start_turn(self, match: Match, player: Player, round_number: Optional[int] = None) -> Turn:
        if round_number is None:
            round_number = match.current_round
        if isinstance(round_number, bool) or not isinstance(round_number, int) \
                or not 1 <= round_number <= match.max_rounds:
            raise InvalidRoundNumber(f'Round number must be between 1 and {match.max_rounds}')
        if match.status != MatchStatus.IN_PROGRESS:
            raise NotInProgress(f'Match {match.code} is not in progress')
        seat = match.seat_for(player)
        if seat is None:
            raise NotSeated(f'Player {player.username} is not in match {match.code}')
        if not seat.active:
            raise PlayerInactive(f'Player {player.username} is not active in match {match.code}')
        if self.open_turn(match, player) is not None:
            current_app.logger.warning(f"[turn-reject] match={match.code} player={player.username} already has an open turn")
            raise TurnAlreadyOpen('Player already has an open turn')
        if round_number != match.current_round:
            raise InvalidRoundNumber(f'Match {match.code} is on round {match.current_round}, not {round_number}')
        if self.has_completed_round(match, player, round_number):
            raise RoundAlreadyPlayed(f'Player {player.username} already played round {round_number}')

        with atomic():
            turn = Turn(match=match, player=player, round_number=round_number,
                        dice_rolls='[]', kept_dice='[]', completed=False)
            db.session.add(turn)
            player.touch()
        current_app.logger.info(f"[turn-start] match={match.code} player={player.username} round={round_number}")
        return turn

    def roll(self, turn: Turn, keep_mask=None) -> Turn:
        if turn.completed:
            raise TurnCompleted('Turn is already completed')
        if not self.can_roll_again(turn):
            raise MaxRollsReached(f'Maximum of {MAX_ROLLS} rolls reached for this turn')

        rolls = turn.rolls
        if not rolls:
            if keep_mask is not None:
                raise InvalidKeepMask('The first roll of a turn cannot keep dice')
            faces = self.roll_faces()
            mask = None
        else:
            if keep_mask is None:
                raise InvalidKeepMask('Rolls after the first need a keep mask')
            mask = validate_keep_mask(keep_mask)
            previous = rolls[-1]
            fresh = self.roll_faces()
            faces = [previous[i] if mask[i] else fresh[i] for i in range(DICE_COUNT)]

        with atomic():
            turn.dice_rolls = json.dumps(rolls + [faces])
            if mask is not None:
                turn.kept_dice = json.dumps(turn.keep_masks + [mask])
        current_app.logger.info(
            f"[roll] match={turn.match.code} player={turn.player.username} round={turn.round_number} "
            f"dice={faces} roll={turn.roll_count}/{MAX_ROLLS}"
        )
        return turn

    def complete(self, turn: Turn, category) -> Turn:
        if turn.completed:
            raise TurnCompleted('Turn is already completed')
        if not turn.roll_count:
            raise NoRolls('Cannot score a turn without rolling')
        category = parse_category(category)
        seat = turn.match.seat_for(turn.player_id)
        if seat is None:
            current_app.logger.error(f"[integrity] match={turn.match.code} turn={turn.id} has no seat for player={turn.player_id}")
            raise MissingSeat(f'No seat for the player of turn {turn.id}')
        if category in seat.used_category_set:
            raise CategoryUnavailable(f'{category.display_name} has already been scored')

        points = score(turn.final_dice, category)
        with atomic():
            turn.selected_category = category
            turn.score = points
            turn.completed = True
            turn.completed_at = datetime.now(timezone.utc)
            turn.player.touch()
        current_app.logger.info(
            f"[turn-complete] match={turn.match.code} player={turn.player.username} round={turn.round_number} "
            f"category={category.value} score={points}"
        )
        return turn

    def cancel_turn(self, turn: Turn, reason: str) -> None:
        if turn.completed:
            raise TurnCompleted('Cannot cancel a completed turn')
        code, username, round_number = turn.match.code, turn.player.username, turn.round_number
        with atomic():
            turn.match.turns.remove(turn)
            db.session.delete(turn)
        current_app.logger.warning(f"[turn-cancel] match={code} player={username} round={round_number}: {reason}")

    def reset_turn(self, turn: Turn) -> Turn:
        if turn.completed:
            raise TurnCompleted('Cannot reset a completed turn')
        match, player, round_number = turn.match, turn.player, turn.round_number
        with atomic():
            self.cancel_turn(turn, 'reset')
            fresh = self.start_turn(match, player, round_number)
        return fresh
