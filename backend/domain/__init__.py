"""
Domain entities for the card-game ELO engine.

This module contains the rating entities that are independent of
infrastructure concerns (database, task queue, etc.).
"""

from .constants import DEFAULT_RATING, MIN_RATING, HISTORY_LIMIT, MIN_GAMES_FOR_RANKING
from .errors import (
    RatingError,
    TransientStoreConflict,
    UnsupportedTransactionMode,
    FatalStoreError,
    RecalculationItemError,
)
from .game_types import normalize_game_type
from .game_outcome import GameOutcome, ParticipantResult
from .ratings import HistoryEntry, RatingRecord, RatingBook, Identity

__all__ = [
    'DEFAULT_RATING', 'MIN_RATING', 'HISTORY_LIMIT', 'MIN_GAMES_FOR_RANKING',
    'RatingError',
    'TransientStoreConflict',
    'UnsupportedTransactionMode',
    'FatalStoreError',
    'RecalculationItemError',
    'normalize_game_type',
    'GameOutcome',
    'ParticipantResult',
    'HistoryEntry',
    'RatingRecord',
    'RatingBook',
    'Identity',
]
