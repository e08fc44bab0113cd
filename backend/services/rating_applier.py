"""
Rating update applier.

Persists the rating changes of one finished game for all of its linked
participants as a single all-or-nothing unit:

- Idempotent: a game whose id already appears in any participant's history
  for the game type is skipped entirely.
- Atomic when the store supports multi-record transactions, sequential
  otherwise. The capability is resolved once per applier and passed in, not
  probed on every call.
- Write conflicts are retried with exponential backoff (100ms, 200ms, ...),
  re-reading and recalculating from scratch on each attempt.
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional

from data_access.repositories import IdentityRepository
from domain.constants import MAX_APPLY_ATTEMPTS, RETRY_BASE_DELAY_SECONDS
from domain.errors import FatalStoreError, RatingError, TransientStoreConflict, UnsupportedTransactionMode
from domain.game_outcome import GameOutcome
from domain.game_types import normalize_game_type
from domain.ratings import HistoryEntry, RatingRecord
from services.elo_engine import RatingChange, calculate_game_changes

logger = logging.getLogger(__name__)

_TRUTHY = {'1', 'true', 'yes', 'on'}
_FALSY = {'0', 'false', 'no', 'off'}


@dataclass(frozen=True)
class TransactionCapability:
    """Whether the identity store can commit several records atomically."""
    atomic: bool


def resolve_transaction_capability(identity_repo: IdentityRepository) -> TransactionCapability:
    """
    Decide once whether rating writes can use multi-record transactions.

    ELO_ATOMIC_WRITES=true/false forces the answer; otherwise the store is
    probed.
    """
    override = (os.getenv('ELO_ATOMIC_WRITES') or '').strip().lower()
    if override in _TRUTHY:
        return TransactionCapability(atomic=True)
    if override in _FALSY:
        return TransactionCapability(atomic=False)

    atomic = identity_repo.supports_transactions()
    if not atomic:
        logger.warning("Store does not support multi-record transactions; rating writes will be sequential")
    return TransactionCapability(atomic=atomic)


@dataclass
class ParticipantUpdate:
    """A rating change that was persisted, with the resulting record."""
    identity_id: str
    game_type: str
    change: RatingChange
    record: RatingRecord


class RatingApplier:
    """
    Applies finished games to persisted ratings.
    """

    def __init__(
        self,
        identity_repo: IdentityRepository | None = None,
        capability: TransactionCapability | None = None,
        max_attempts: int = MAX_APPLY_ATTEMPTS,
        base_delay: float = RETRY_BASE_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.identity_repo = identity_repo or IdentityRepository()
        self._capability = capability
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.sleep = sleep
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def capability(self) -> TransactionCapability:
        if self._capability is None:
            self._capability = resolve_transaction_capability(self.identity_repo)
        return self._capability

    def apply_outcome(self, game: GameOutcome, game_type: Optional[str] = None) -> List[ParticipantUpdate]:
        """
        Persist the rating changes of one finished game.

        Args:
            game: The finished game
            game_type: Rating pool (defaults to the game's own type)

        Returns:
            One ParticipantUpdate per rated participant. Empty when the game
            is unfinished, has fewer than two participants, has no linked
            participants, or was already applied.

        Raises:
            TransientStoreConflict: Write conflicts persisted through every attempt
            FatalStoreError: Any other persistence failure, including a
                sequential write that failed after some participants were saved
        """
        if not game.finished or len(game.participants) < 2:
            return []

        pool = normalize_game_type(game_type or game.game_type)
        identity_ids = game.linked_identity_ids()
        if not identity_ids:
            return []

        atomic = self.capability.atomic
        for attempt in range(1, self.max_attempts + 1):
            try:
                if atomic:
                    try:
                        return self._apply_atomic(game, pool, identity_ids)
                    except UnsupportedTransactionMode as e:
                        logger.warning(
                            f"Transactions unavailable for game {game.game_id} ({e}); "
                            f"falling back to sequential writes"
                        )
                        atomic = False
                return self._apply(game, pool, identity_ids, cursor=None)

            except TransientStoreConflict as e:
                if attempt >= self.max_attempts:
                    logger.error(
                        f"Rating update failed for game {game.game_id} after {attempt} attempt(s): {e}"
                    )
                    raise
                delay = self.base_delay * (2 ** (attempt - 1))
                logger.warning(
                    f"Rating update attempt {attempt} for game {game.game_id} hit a write conflict, "
                    f"retrying in {delay:.1f}s: {e}"
                )
                self.sleep(delay)

            except RatingError as e:
                logger.error(f"Rating update failed for game {game.game_id}: {e}")
                raise

    def apply_outcome_safely(self, game: GameOutcome, game_type: Optional[str] = None) -> List[ParticipantUpdate]:
        """
        Fire-and-forget variant for game-completion hooks.

        Every failure is logged and swallowed so the game save that
        triggered it never fails; an administrator recalculation repairs
        the lag later.
        """
        try:
            return self.apply_outcome(game, game_type)
        except RatingError as e:
            logger.error(f"Ratings not updated for game {game.game_id}: {e}")
            return []
        except Exception as e:
            logger.error(f"Unexpected error updating ratings for game {game.game_id}: {e}", exc_info=True)
            return []

    # -------------------------------------------------------------------------
    # Helper methods
    # -------------------------------------------------------------------------

    def _apply_atomic(self, game: GameOutcome, pool: str, identity_ids: List[str]) -> List[ParticipantUpdate]:
        with self.identity_repo.transaction() as cursor:
            return self._apply(game, pool, identity_ids, cursor=cursor)

    def _apply(self, game: GameOutcome, pool: str, identity_ids: List[str], cursor) -> List[ParticipantUpdate]:
        identities = self.identity_repo.fetch_by_ids(identity_ids, cursor=cursor)

        if any(self._already_applied(identity.ratings.get(pool), game.game_id) for identity in identities):
            logger.info(f"Skipping game {game.game_id} - ratings already applied")
            return []

        identity_map = {identity.id: identity for identity in identities}
        changes = calculate_game_changes(game, identity_map, pool)

        now = self.clock()
        played_at = game.played_at or now
        updates: List[ParticipantUpdate] = []
        for change in changes:
            identity = identity_map[change.identity_id]
            record = identity.ratings.get_or_default(pool)
            record.record_game(
                new_rating=change.new_rating,
                won=change.won,
                entry=HistoryEntry(
                    rating=change.new_rating,
                    change=change.delta,
                    game_id=game.game_id,
                    opponents=change.opponents,
                    placement=change.placement,
                    date=played_at,
                ),
                updated_at=now,
            )
            identity.ratings.set(pool, record)
            try:
                self.identity_repo.persist(identity, game_type=pool, cursor=cursor)
            except RatingError as e:
                if cursor is None and updates:
                    # Records saved so far are not rolled back
                    raise FatalStoreError(
                        f"Game {game.game_id} partially applied "
                        f"({len(updates)} of {len(changes)} participants saved): {e}"
                    ) from e
                raise
            updates.append(ParticipantUpdate(
                identity_id=identity.id,
                game_type=pool,
                change=change,
                record=record,
            ))

        for update in updates:
            logger.debug(
                f"Updated {pool} rating for {update.change.display_name}: "
                f"{update.change.old_rating} -> {update.change.new_rating} ({update.change.delta:+d})"
            )
        return updates

    @staticmethod
    def _already_applied(record: Optional[RatingRecord], game_id: str) -> bool:
        return record is not None and record.has_game(game_id)


# Singleton instance for convenience
rating_applier = RatingApplier()
