"""
Error taxonomy for rating updates.

Validation no-ops (unfinished game, too few participants, already applied)
are not errors: they produce an empty result.
"""


class RatingError(Exception):
    """Base class for all rating engine failures."""


class TransientStoreConflict(RatingError):
    """A write conflict that may succeed when the whole game is retried."""


class UnsupportedTransactionMode(RatingError):
    """The store cannot run multi-record transactions."""


class FatalStoreError(RatingError):
    """Any other persistence failure. Never retried."""


class RecalculationItemError(RatingError):
    """
    Failure of a single game during a recalculation run.

    Recorded in the run summary rather than raised out of the batch.
    """

    def __init__(self, game_id: str, game_type: str, message: str):
        super().__init__(message)
        self.game_id = game_id
        self.game_type = game_type
        self.message = message

    def to_dict(self):
        return {
            'game_id': self.game_id,
            'game_type': self.game_type,
            'message': self.message,
        }
