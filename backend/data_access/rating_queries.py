"""
Query functions for retrieving rating data.

These functions provide the read layer for an API in front of the engine.
They delegate to the leaderboard service for the actual work.
"""

from typing import Any, Dict, List, Optional

from domain.constants import MIN_GAMES_FOR_RANKING


def _service():
    # Import here to avoid circular import during module initialization
    from services.leaderboard import leaderboard_service
    return leaderboard_service


def get_leaderboard(
    game_type: str,
    page: int = 1,
    limit: int = 50,
    min_games: int = MIN_GAMES_FOR_RANKING
) -> Dict[str, Any]:
    """
    Retrieve one page of the leaderboard for a game type.

    Args:
        game_type: Game type to rank (normalized before lookup)
        page: 1-based page number
        limit: Rows per page
        min_games: Minimum games played to be ranked

    Returns:
        Dictionary with 'game_type', 'rankings', 'pagination' and 'min_games'
    """
    return _service().get_leaderboard(game_type, page=page, limit=limit, min_games=min_games).to_dict()


def get_history(identity_id: str, game_type: str, limit: int = 20) -> List[Dict[str, Any]]:
    """
    Retrieve the most recent rating history entries for one identity.

    Returns:
        List of history entry dictionaries, newest first
    """
    return [entry.to_dict() for entry in _service().get_history(identity_id, game_type, limit=limit)]


def get_identity_ratings(identity_id: str) -> Optional[Dict[str, Any]]:
    """
    Retrieve an identity's ratings across all game types.

    Returns:
        Summary dictionary, or None if the identity does not exist
    """
    return _service().get_identity_ratings(identity_id)
