"""Error taxonomy for the match engine.

Three families, each mapped to one HTTP status by the API layer:

- ``ValidationError``: bad input, rejected before any state is touched.
- ``StateConflictError``: the request is well formed but the current
  match/turn/balance state does not allow it. Nothing is applied.
- ``DataIntegrityError``: persisted state contradicts itself. Never
  patched silently; logged at error level and surfaced.

``kind`` is the concrete class name and is what clients switch on.
"""


class YahtzeeError(Exception):
    status_code = 400

    def __init__(self, message):
        super().__init__(message)
        self.message = message

    @property
    def kind(self):
        return type(self).__name__

    def to_dict(self):
        return {'error': self.message, 'kind': self.kind}


# ---- validation ----

class ValidationError(YahtzeeError):
    status_code = 400


class InvalidAmount(ValidationError):
    pass


class InvalidSeatCount(ValidationError):
    pass


class InvalidDice(ValidationError):
    pass


class InvalidKeepMask(ValidationError):
    pass


class InvalidCategory(ValidationError):
    pass


class InvalidRoundNumber(ValidationError):
    pass


class UsernameTaken(ValidationError):
    pass


# ---- state conflicts ----

class StateConflictError(YahtzeeError):
    status_code = 409


class InsufficientFunds(StateConflictError):
    pass


class MatchNotJoinable(StateConflictError):
    pass


class AlreadySeated(StateConflictError):
    pass


class PlayerBusy(StateConflictError):
    pass


class NotEnoughSeats(StateConflictError):
    pass


class MatchNotWaiting(StateConflictError):
    pass


class NotInProgress(StateConflictError):
    pass


class MatchClosed(StateConflictError):
    pass


class NotSeated(StateConflictError):
    pass


class PlayerInactive(StateConflictError):
    pass


class NotYourTurn(StateConflictError):
    status_code = 403


class TurnAlreadyOpen(StateConflictError):
    pass


class RoundAlreadyPlayed(StateConflictError):
    pass


class NoOpenTurn(StateConflictError):
    pass


class TurnCompleted(StateConflictError):
    pass


class MaxRollsReached(StateConflictError):
    pass


class NoRolls(StateConflictError):
    pass


class CategoryUnavailable(StateConflictError):
    pass


# ---- integrity ----

class DataIntegrityError(YahtzeeError):
    status_code = 500


class LedgerMismatch(DataIntegrityError):
    pass


class MissingSeat(DataIntegrityError):
    pass
