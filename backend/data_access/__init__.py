"""
Data access layer for the card-game ELO engine.

This module provides functions for applying finished games to ratings and
for reading leaderboards and rating history.
"""

from .rating_updates import update_ratings_for_game
from .rating_queries import get_leaderboard, get_history, get_identity_ratings

__all__ = [
    'update_ratings_for_game',
    'get_leaderboard',
    'get_history',
    'get_identity_ratings',
]
