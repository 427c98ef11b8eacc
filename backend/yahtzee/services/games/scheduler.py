"""Turn order policy: who plays next and who won.

Pure functions over a match's seats. Seats rotate in ``join_order``;
inactive seats are skipped but keep their score.
"""

from typing import List, Optional

from yahtzee.models import Match, Seat


def active_seats_in_order(match: Match) -> List[Seat]:
    return sorted((s for s in match.seats if s.active), key=lambda s: s.join_order)


def first_active_seat(match: Match) -> Optional[Seat]:
    seats = active_seats_in_order(match)
    return seats[0] if seats else None


def next_active_seat(match: Match, current: Seat) -> Optional[Seat]:
    """Next active seat after ``current`` in this round, or None at round end."""
    for seat in active_seats_in_order(match):
        if seat.join_order > current.join_order:
            return seat
    return None


def is_last_in_round(match: Match, current: Seat) -> bool:
    return next_active_seat(match, current) is None


def is_final_round(match: Match) -> bool:
    return match.current_round >= match.max_rounds


def standings(match: Match) -> List[Seat]:
    """Seats by total score, highest first; ties go to the earlier joiner."""
    return sorted(match.seats, key=lambda s: (-(s.total_score or 0), s.join_order))


def pick_winner(match: Match) -> Optional[Seat]:
    """Highest-scoring survivor. Falls back to every seat if none is active."""
    candidates = active_seats_in_order(match) or list(match.seats)
    if not candidates:
        return None
    return min(candidates, key=lambda s: (-(s.total_score or 0), s.join_order))
