from yahtzee.models import Match, Seat
from yahtzee.services.games import scheduler


def _match(*seats, current_round=1, max_rounds=13):
    match = Match(code='TEST01', current_round=current_round, max_rounds=max_rounds)
    for join_order, score, active in seats:
        match.seats.append(Seat(player_id=join_order, join_order=join_order,
                                total_score=score, active=active))
    return match


def test_rotation_skips_inactive_seats(flask_app):
    match = _match((1, 0, True), (2, 0, False), (3, 0, True))
    first = scheduler.first_active_seat(match)
    assert first.join_order == 1
    nxt = scheduler.next_active_seat(match, first)
    assert nxt.join_order == 3
    assert scheduler.next_active_seat(match, nxt) is None
    assert scheduler.is_last_in_round(match, nxt)


def test_final_round_detection(flask_app):
    assert not scheduler.is_final_round(_match((1, 0, True), current_round=12))
    assert scheduler.is_final_round(_match((1, 0, True), current_round=13))


def test_standings_break_ties_by_join_order(flask_app):
    match = _match((1, 120, True), (2, 150, True), (3, 150, True))
    assert [s.join_order for s in scheduler.standings(match)] == [2, 3, 1]


def test_winner_is_highest_active_survivor(flask_app):
    # seat 2 forfeited with the top score
    match = _match((1, 100, True), (2, 300, False), (3, 180, True))
    assert scheduler.pick_winner(match).join_order == 3


def test_winner_tie_goes_to_earliest_joiner(flask_app):
    match = _match((1, 90, True), (2, 200, True), (3, 200, True))
    assert scheduler.pick_winner(match).join_order == 2


def test_winner_falls_back_to_all_seats(flask_app):
    match = _match((1, 40, False), (2, 70, False))
    assert scheduler.pick_winner(match).join_order == 2
