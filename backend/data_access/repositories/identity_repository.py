"""
Identity repository: player identities and their per-game-type ratings.
"""

import logging
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional

from psycopg2.extras import Json

from domain.errors import UnsupportedTransactionMode
from domain.game_types import normalize_game_type
from domain.ratings import Identity, RatingBook, RatingRecord

from .base import BaseRepository

logger = logging.getLogger(__name__)

IDENTITY_COLUMNS = "id, display_name, user_id, kind, merged_into, is_deleted"
RATING_COLUMNS = (
    "identity_id, game_type, rating, peak, floor, games_played, "
    "streak, last_updated, history"
)


class IdentityRepository(BaseRepository):
    """
    Repository for player_identities and identity_ratings table operations.

    Methods that take an optional `cursor` run inside the caller's open
    transaction when one is given, and in their own connection otherwise.
    """

    # -------------------------------------------------------------------------
    # Query operations
    # -------------------------------------------------------------------------

    def fetch_by_ids(self, identity_ids: Iterable[str], cursor=None) -> List[Identity]:
        """
        Load non-deleted identities with their full rating books.

        Args:
            identity_ids: Identity ids to load (unknown ids are ignored)
            cursor: Optional cursor of an open transaction

        Returns:
            List of Identity objects
        """
        ids = list(dict.fromkeys(identity_ids))
        if not ids:
            return []

        if cursor is not None:
            return self._fetch(cursor, "id = ANY(%s) AND is_deleted = FALSE", (ids,))

        with self.read_connection() as (conn, cur):
            return self._fetch(cur, "id = ANY(%s) AND is_deleted = FALSE", (ids,))

    def fetch_by_id(self, identity_id: str) -> Optional[Identity]:
        """Get a single non-deleted identity, or None if not found."""
        identities = self.fetch_by_ids([identity_id])
        return identities[0] if identities else None

    def fetch_all(self, include_deleted: bool = False) -> List[Identity]:
        """
        Load every identity.

        Args:
            include_deleted: Also return soft-deleted identities (needed to
                resolve merge chains)
        """
        where = "TRUE" if include_deleted else "is_deleted = FALSE"
        with self.read_connection() as (conn, cursor):
            return self._fetch(cursor, where, ())

    def fetch_rated(self, game_type: str) -> List[Identity]:
        """Load non-deleted identities holding a rating for the game type."""
        normalized = normalize_game_type(game_type)
        with self.read_connection() as (conn, cursor):
            return self._fetch(
                cursor,
                """
                is_deleted = FALSE AND EXISTS (
                    SELECT 1 FROM identity_ratings r
                    WHERE r.identity_id = player_identities.id AND r.game_type = %s
                )
                """,
                (normalized,),
            )

    # -------------------------------------------------------------------------
    # Update operations
    # -------------------------------------------------------------------------

    def persist(self, identity: Identity, game_type: Optional[str] = None, cursor=None) -> None:
        """
        Write back an identity's rating book.

        Args:
            identity: The identity whose ratings changed
            game_type: Only write this game type's record (default: all)
            cursor: Optional cursor of an open transaction
        """
        if game_type is not None:
            record = identity.ratings.get(game_type)
            records = [(normalize_game_type(game_type), record)] if record is not None else []
        else:
            records = list(identity.ratings.items())

        if cursor is not None:
            self._upsert_ratings(cursor, identity.id, records)
            return

        with self.connection() as (conn, cur):
            self._upsert_ratings(cur, identity.id, records)

    def clear_ratings(self, game_type: Optional[str] = None) -> int:
        """
        Delete rating records for every identity.

        Args:
            game_type: Only clear this game type (default: every game type)

        Returns:
            Number of rating records removed
        """
        with self.connection() as (conn, cursor):
            if game_type is None:
                cursor.execute("DELETE FROM identity_ratings")
            else:
                cursor.execute(
                    "DELETE FROM identity_ratings WHERE game_type = %s",
                    (normalize_game_type(game_type),),
                )
            removed = cursor.rowcount
            logger.info(f"Cleared {removed} rating records (game type: {game_type or 'all'})")
            return removed

    def supports_transactions(self) -> bool:
        """Probe whether the store accepts multi-record serializable transactions."""
        try:
            with self.transaction() as cursor:
                cursor.execute("SELECT 1")
        except UnsupportedTransactionMode:
            return False
        return True

    # -------------------------------------------------------------------------
    # Helper methods
    # -------------------------------------------------------------------------

    def _fetch(self, cursor, where: str, params: tuple) -> List[Identity]:
        cursor.execute(
            f"SELECT {IDENTITY_COLUMNS} FROM player_identities WHERE {where} ORDER BY id",
            params,
        )
        identities = [self._row_to_identity(row) for row in cursor.fetchall()]
        if not identities:
            return []

        cursor.execute(
            f"SELECT {RATING_COLUMNS} FROM identity_ratings WHERE identity_id = ANY(%s)",
            ([identity.id for identity in identities],),
        )
        ratings_by_identity: Dict[str, Dict[str, RatingRecord]] = defaultdict(dict)
        for row in cursor.fetchall():
            ratings_by_identity[row['identity_id']][row['game_type']] = self._row_to_rating(row)

        for identity in identities:
            identity.ratings = RatingBook(ratings_by_identity.get(identity.id, {}))
        return identities

    def _upsert_ratings(self, cursor, identity_id: str, records) -> None:
        for game_type, record in records:
            cursor.execute("""
                INSERT INTO identity_ratings (
                    identity_id, game_type, rating, peak, floor,
                    games_played, streak, last_updated, history
                ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT (identity_id, game_type) DO UPDATE
                SET rating = EXCLUDED.rating,
                    peak = EXCLUDED.peak,
                    floor = EXCLUDED.floor,
                    games_played = EXCLUDED.games_played,
                    streak = EXCLUDED.streak,
                    last_updated = EXCLUDED.last_updated,
                    history = EXCLUDED.history
            """, (
                identity_id,
                game_type,
                record.rating,
                record.peak,
                record.floor,
                record.games_played,
                record.streak,
                record.last_updated,
                Json([entry.to_dict() for entry in record.history]),
            ))

    def _row_to_identity(self, row: Dict[str, Any]) -> Identity:
        return Identity(
            id=row['id'],
            display_name=row['display_name'],
            user_id=row.get('user_id'),
            kind=row.get('kind') or 'guest',
            merged_into=row.get('merged_into'),
            is_deleted=bool(row.get('is_deleted')),
        )

    def _row_to_rating(self, row: Dict[str, Any]) -> RatingRecord:
        return RatingRecord.from_dict({
            'rating': row['rating'],
            'peak': row['peak'],
            'floor': row['floor'],
            'games_played': row['games_played'],
            'streak': row['streak'],
            'last_updated': row['last_updated'],
            'history': row.get('history') or [],
        })


# Singleton instance for convenience
identity_repository = IdentityRepository()
