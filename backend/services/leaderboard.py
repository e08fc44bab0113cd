"""
Read-only rating views: leaderboards, per-identity history and summaries.

Nothing here writes to the store or needs a transaction.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from data_access.repositories import IdentityRepository
from domain.constants import MIN_GAMES_FOR_RANKING
from domain.game_types import normalize_game_type
from domain.ratings import HistoryEntry


@dataclass
class LeaderboardRow:
    rank: int
    identity_id: str
    display_name: str
    rating: int
    peak: int
    floor: int
    games_played: int
    streak: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'rank': self.rank,
            'identity_id': self.identity_id,
            'display_name': self.display_name,
            'rating': self.rating,
            'peak': self.peak,
            'floor': self.floor,
            'games_played': self.games_played,
            'streak': self.streak,
        }


@dataclass
class RankedPage:
    game_type: str
    page: int
    limit: int
    total: int
    min_games: int
    rankings: List[LeaderboardRow] = field(default_factory=list)

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'game_type': self.game_type,
            'rankings': [row.to_dict() for row in self.rankings],
            'pagination': {
                'page': self.page,
                'limit': self.limit,
                'total': self.total,
                'total_pages': self.total_pages,
            },
            'min_games': self.min_games,
        }


class LeaderboardService:
    """
    Ranking and history queries over persisted ratings.
    """

    def __init__(self, identity_repo: IdentityRepository | None = None) -> None:
        self.identity_repo = identity_repo or IdentityRepository()

    def get_leaderboard(
        self,
        game_type: str,
        page: int = 1,
        limit: int = 50,
        min_games: int = MIN_GAMES_FOR_RANKING,
    ) -> RankedPage:
        """
        Rank identities in one game type.

        Only identities with at least `min_games` games count. Sorted by
        rating, ties broken by games played (both descending).

        Args:
            game_type: Game type to rank
            page: 1-based page number
            limit: Rows per page
            min_games: Minimum games played to appear

        Returns:
            RankedPage with the requested slice and pagination totals
        """
        pool = normalize_game_type(game_type)
        page = max(1, page)
        limit = max(1, limit)

        eligible = []
        for identity in self.identity_repo.fetch_rated(pool):
            record = identity.ratings.get(pool)
            if record is not None and record.games_played >= min_games:
                eligible.append((identity, record))

        eligible.sort(key=lambda item: (item[1].rating, item[1].games_played), reverse=True)

        skip = (page - 1) * limit
        rows = [
            LeaderboardRow(
                rank=skip + offset + 1,
                identity_id=identity.id,
                display_name=identity.display_name,
                rating=record.rating,
                peak=record.peak,
                floor=record.floor,
                games_played=record.games_played,
                streak=record.streak,
            )
            for offset, (identity, record) in enumerate(eligible[skip:skip + limit])
        ]

        return RankedPage(
            game_type=pool,
            page=page,
            limit=limit,
            total=len(eligible),
            min_games=min_games,
            rankings=rows,
        )

    def get_history(self, identity_id: str, game_type: str, limit: int = 20) -> List[HistoryEntry]:
        """Most recent history entries (newest first) for one identity and game type."""
        identity = self.identity_repo.fetch_by_id(identity_id)
        if identity is None:
            return []
        record = identity.ratings.get(game_type)
        if record is None:
            return []
        return record.history[:max(0, limit)]

    def get_identity_ratings(self, identity_id: str) -> Optional[Dict[str, Any]]:
        """
        Summarize an identity's ratings across every game type it has played.

        Returns:
            Dict with identity info and a per-game-type summary, or None if
            the identity does not exist
        """
        identity = self.identity_repo.fetch_by_id(identity_id)
        if identity is None:
            return None

        ratings = {}
        for game_type, record in identity.ratings.items():
            ratings[game_type] = {
                'rating': record.rating,
                'peak': record.peak,
                'floor': record.floor,
                'games_played': record.games_played,
                'streak': record.streak,
                'last_updated': record.last_updated,
                'history_count': len(record.history),
            }

        return {
            'identity_id': identity.id,
            'display_name': identity.display_name,
            'game_types': sorted(ratings),
            'ratings': ratings,
        }


# Singleton instance for convenience
leaderboard_service = LeaderboardService()
