"""
Celery tasks for rating updates.

Game saves enqueue apply_game_ratings_task and move on: the rating update is
a side effect that must never make the save itself fail.
"""
from typing import Any, Dict, Optional
from celery import Task
from celery.utils.log import get_task_logger

from celery_app import app
from data_access.repositories import GameRepository
from domain.errors import RatingError, TransientStoreConflict
from services.rating_applier import rating_applier

logger = get_task_logger(__name__)

_game_repo = GameRepository()


class RatingTask(Task):
    """
    Base task that retries write conflicts the applier could not resolve.
    """
    autoretry_for = (TransientStoreConflict,)
    retry_kwargs = {'max_retries': 3, 'countdown': 5}  # Retry up to 3 times, wait 5s between
    retry_backoff = True  # Exponential backoff (5s, 10s, 20s)
    retry_jitter = True  # Add randomness to prevent thundering herd


@app.task(base=RatingTask, bind=True, name='card_elo.tasks.apply_game_ratings_task')
def apply_game_ratings_task(self, game_id: str, game_type: Optional[str] = None) -> Dict[str, Any]:
    """
    Apply the ratings of one saved game.

    Args:
        game_id: ID of the saved game
        game_type: Rating pool override (defaults to the game's own type)

    Returns:
        Dict with 'game_id', 'status' ('applied', 'skipped', 'missing' or
        'failed') and the applied 'updates'
    """
    game = _game_repo.get_game(game_id)
    if game is None:
        logger.warning(f"Game {game_id} not found; no ratings applied")
        return {'game_id': game_id, 'status': 'missing', 'updates': []}

    try:
        updates = rating_applier.apply_outcome(game, game_type or game.game_type)
    except TransientStoreConflict:
        logger.warning(f"Write conflict persisted for game {game_id}; handing back to Celery for retry")
        raise
    except RatingError as e:
        logger.error(f"Rating update failed for game {game_id}: {e}", exc_info=True)
        return {'game_id': game_id, 'status': 'failed', 'error': str(e), 'updates': []}

    if not updates:
        return {'game_id': game_id, 'status': 'skipped', 'updates': []}

    logger.info(f"Applied ratings for game {game_id} to {len(updates)} players")
    return {
        'game_id': game_id,
        'status': 'applied',
        'updates': [{'game_type': u.game_type, **u.change.to_dict()} for u in updates],
    }


@app.task(name='card_elo.tasks.recalculate_ratings_task')
def recalculate_ratings_task(dry_run: bool = False, game_type: Optional[str] = None) -> Dict[str, Any]:
    """
    Run a full chronological recalculation on a worker.

    Returns:
        The recalculation summary as a dict
    """
    from services.recalculation import RecalculationOrchestrator

    summary = RecalculationOrchestrator().recalculate_all(dry_run=dry_run, game_type=game_type)
    return summary.to_dict()


@app.task(name='card_elo.tasks.health_check')
def health_check() -> Dict[str, str]:
    """
    Simple health check task for monitoring worker status.

    Returns:
        Dict with status message
    """
    return {'status': 'healthy', 'message': 'Worker is operational'}
