"""
Rating update functions for finished games.

These functions delegate to the GameRepository and the rating applier for
the actual work.
"""

import logging
from typing import Any, Dict, List

from domain.errors import RatingError

from .repositories import GameRepository

logger = logging.getLogger(__name__)

# Repository instance
_game_repo = GameRepository()


def update_ratings_for_game(game_id: str) -> List[Dict[str, Any]]:
    """
    Apply the ratings of one saved game, never raising on rating failures.

    Meant to be called right after a game is saved: unknown or unfinished
    games and rating failures all produce an empty list.

    Args:
        game_id: The game identifier to process

    Returns:
        List of applied rating change dictionaries
    """
    # Import here to avoid circular import during module initialization
    from services.rating_applier import rating_applier

    try:
        game = _game_repo.get_game(game_id)
    except RatingError as e:
        logger.error(f"Could not load game {game_id} for rating update: {e}")
        return []
    except Exception as e:
        logger.error(f"Unexpected error loading game {game_id} for rating update: {e}", exc_info=True)
        return []
    if game is None:
        return []

    updates = rating_applier.apply_outcome_safely(game, game.game_type)
    return [{'game_type': u.game_type, **u.change.to_dict()} for u in updates]
