"""
Chronological ELO recalculation.

Replays every finished game, oldest first, through the rating applier. In
live mode the relevant ratings are wiped first and rebuilt from scratch; in
dry-run mode the same replay runs against an in-memory shadow of the
identities and nothing is written.

There is no checkpointing: an interrupted live run leaves ratings partially
rebuilt and must be restarted from the beginning.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

from data_access.repositories import GameRepository, IdentityRepository
from domain.errors import RecalculationItemError
from domain.game_outcome import GameOutcome
from domain.game_types import normalize_game_type
from domain.ratings import Identity
from services.identity_merge import build_identity_merge_map, remap_game_identities
from services.rating_applier import RatingApplier, TransactionCapability

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass
class RecalculationSummary:
    games_processed: int = 0
    player_updates: int = 0
    per_type_counts: Dict[str, int] = field(default_factory=dict)
    errors: List[Dict[str, Any]] = field(default_factory=list)
    dry_run: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'games_processed': self.games_processed,
            'player_updates': self.player_updates,
            'per_type_counts': dict(self.per_type_counts),
            'errors': list(self.errors),
            'dry_run': self.dry_run,
        }


class ShadowIdentityStore:
    """
    In-memory stand-in for the identity repository used by dry runs.

    Identities are read once from the real repository, have the ratings in
    the recalculation scope cleared (as a live run would), and from then on
    only ever change in memory.
    """

    def __init__(self, source: IdentityRepository, game_type: Optional[str] = None) -> None:
        self.source = source
        self.game_type = game_type
        self.identities: Dict[str, Identity] = {}

    def fetch_by_ids(self, identity_ids: Iterable[str], cursor=None) -> List[Identity]:
        ids = list(dict.fromkeys(identity_ids))
        missing = [i for i in ids if i not in self.identities]
        if missing:
            for identity in self.source.fetch_by_ids(missing):
                if self.game_type is None:
                    identity.ratings.clear()
                else:
                    identity.ratings.remove(self.game_type)
                self.identities[identity.id] = identity
        return [self.identities[i] for i in ids if i in self.identities]

    def persist(self, identity: Identity, game_type: Optional[str] = None, cursor=None) -> None:
        self.identities[identity.id] = identity

    @contextmanager
    def transaction(self):
        yield None

    def supports_transactions(self) -> bool:
        return False


def _chronological_key(game: GameOutcome) -> datetime:
    played_at = game.played_at
    if played_at is None:
        return _EPOCH
    if played_at.tzinfo is None:
        return played_at.replace(tzinfo=timezone.utc)
    return played_at


class RecalculationOrchestrator:
    """
    Rebuilds ratings by replaying finished games in the order they were played.
    """

    def __init__(
        self,
        identity_repo: IdentityRepository | None = None,
        game_repo: GameRepository | None = None,
        applier: RatingApplier | None = None,
    ) -> None:
        self.identity_repo = identity_repo or IdentityRepository()
        self.game_repo = game_repo or GameRepository()
        self.applier = applier or RatingApplier(identity_repo=self.identity_repo)

    def recalculate_all(
        self,
        dry_run: bool = False,
        game_type: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> RecalculationSummary:
        """
        Recalculate ratings from scratch for one or all game types.

        Args:
            dry_run: Compute everything but persist nothing
            game_type: Only recalculate this game type (default: all)
            on_progress: Called after every game with (games handled, total)

        Returns:
            RecalculationSummary with counters and per-game errors
        """
        scope = normalize_game_type(game_type) if game_type else None
        logger.info(f"Starting ELO recalculation (scope: {scope or 'all'}, dry run: {dry_run})")

        merge_map = build_identity_merge_map(self.identity_repo.fetch_all(include_deleted=True))
        if merge_map:
            logger.info(f"Built identity merge map: {len(merge_map)} identities will be consolidated")

        if dry_run:
            applier = RatingApplier(
                identity_repo=ShadowIdentityStore(self.identity_repo, scope),
                capability=TransactionCapability(atomic=False),
                clock=self.applier.clock,
            )
        else:
            removed = self.identity_repo.clear_ratings(scope)
            logger.info(f"Reset {removed} rating records before replay")
            applier = self.applier

        games = sorted(self.game_repo.finished_games(), key=_chronological_key)
        if scope is not None:
            games = [game for game in games if normalize_game_type(game.game_type) == scope]

        total = len(games)
        logger.info(f"Processing {total} finished games...")

        summary = RecalculationSummary(dry_run=dry_run)
        for index, game in enumerate(games, start=1):
            gt = normalize_game_type(game.game_type)
            summary.per_type_counts[gt] = summary.per_type_counts.get(gt, 0) + 1
            try:
                updates = applier.apply_outcome(remap_game_identities(game, merge_map), gt)
                summary.player_updates += len(updates)
                summary.games_processed += 1
            except Exception as e:
                item = RecalculationItemError(game.game_id, gt, str(e))
                logger.warning(f"Recalculation failed for game {game.game_id} ({gt}): {e}")
                summary.errors.append(item.to_dict())

            if on_progress:
                on_progress(index, total)

            if index % 100 == 0:
                logger.info(f"Progress: {index}/{total} ({index / total * 100:.1f}%)")

        logger.info(
            f"ELO recalculation complete: {summary.games_processed} games, "
            f"{summary.player_updates} player updates, {len(summary.errors)} errors"
        )
        return summary
