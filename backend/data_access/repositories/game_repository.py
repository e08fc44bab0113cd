"""
Game repository: finished games as the rating engine consumes them.

Games are owned by the game-saving flow; this repository only reads them.
Two families exist: wizard games (always rated in the "wizard" pool) and
table games (rated in the pool named by their game type).
"""

from collections import defaultdict
from typing import Any, Dict, List, Optional

from domain.constants import WIZARD_GAME_TYPE
from domain.game_outcome import GameOutcome, ParticipantResult
from domain.game_types import normalize_game_type

from .base import BaseRepository

GAME_COLUMNS = "id, family, game_type_name, finished, low_is_better, occurred_at, created_at"


class GameRepository(BaseRepository):
    """
    Repository for games and game_participants table operations.
    """

    def finished_games(self, game_type: Optional[str] = None) -> List[GameOutcome]:
        """
        Load every finished game across all game families.

        Args:
            game_type: Only return games of this (normalized) game type

        Returns:
            List of GameOutcome objects, in storage order
        """
        with self.read_connection() as (conn, cursor):
            cursor.execute(f"""
                SELECT {GAME_COLUMNS}
                FROM games
                WHERE finished = TRUE
                ORDER BY created_at ASC NULLS FIRST, id ASC
            """)
            game_rows = cursor.fetchall()
            participants = self._participants_for(cursor, [row['id'] for row in game_rows])

        games = [self._row_to_game(row, participants.get(row['id'], [])) for row in game_rows]
        if game_type is not None:
            wanted = normalize_game_type(game_type)
            games = [game for game in games if game.game_type == wanted]
        return games

    def get_game(self, game_id: str) -> Optional[GameOutcome]:
        """
        Get a single game (finished or not) by its ID.

        Returns:
            GameOutcome or None if not found
        """
        with self.read_connection() as (conn, cursor):
            cursor.execute(f"SELECT {GAME_COLUMNS} FROM games WHERE id = %s", (game_id,))
            row = cursor.fetchone()
            if row is None:
                return None
            participants = self._participants_for(cursor, [game_id])

        return self._row_to_game(row, participants.get(game_id, []))

    # -------------------------------------------------------------------------
    # Helper methods
    # -------------------------------------------------------------------------

    def _participants_for(self, cursor, game_ids: List[str]) -> Dict[str, List[Dict[str, Any]]]:
        if not game_ids:
            return {}
        cursor.execute("""
            SELECT game_id, player_slot, identity_id, display_name, score
            FROM game_participants
            WHERE game_id = ANY(%s)
            ORDER BY game_id, player_slot
        """, (game_ids,))
        grouped: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        for row in cursor.fetchall():
            grouped[row['game_id']].append(row)
        return grouped

    def _row_to_game(self, row: Dict[str, Any], participant_rows: List[Dict[str, Any]]) -> GameOutcome:
        """
        Convert a game row and its participant rows to a GameOutcome.

        Scores of lower-is-better games are negated here so that the engine
        can always assume higher scores win.
        """
        if row['family'] == 'wizard':
            game_type = WIZARD_GAME_TYPE
        else:
            game_type = normalize_game_type(row.get('game_type_name') or 'table')

        sign = -1 if row.get('low_is_better') else 1
        participants = [
            ParticipantResult(
                display_name=p['display_name'],
                score=None if p['score'] is None else sign * float(p['score']),
                identity_id=p.get('identity_id'),
            )
            for p in participant_rows
        ]

        return GameOutcome(
            game_id=row['id'],
            game_type=game_type,
            finished=bool(row['finished']),
            participants=participants,
            occurred_at=row.get('occurred_at'),
            created_at=row.get('created_at'),
        )


# Singleton instance for convenience
game_repository = GameRepository()
