"""
Shared fixtures: in-memory identity and game stores.

The fakes follow the repository interfaces closely enough for the applier,
the recalculation orchestrator and the leaderboard to run without a database.
"""

import copy
import os
import sys
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, List, Optional

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from domain.game_outcome import GameOutcome, ParticipantResult  # noqa: E402
from domain.game_types import normalize_game_type  # noqa: E402
from domain.ratings import Identity, RatingBook  # noqa: E402


class FakeIdentityStore:
    """
    In-memory IdentityRepository.

    Reads hand out deep copies, so nothing reaches the store without an
    explicit persist(). Writes made through a transaction cursor are staged
    and only land on commit.
    """

    def __init__(self, identities: Optional[List[Identity]] = None, atomic: bool = True):
        self.identities: Dict[str, Identity] = {}
        self.atomic = atomic
        self.transaction_errors: List[Exception] = []
        self.persist_errors: List[Exception] = []
        self.transactions_opened = 0
        self.persist_calls = 0
        for identity in identities or []:
            self.add(identity)

    def add(self, identity: Identity) -> Identity:
        self.identities[identity.id] = identity
        return identity

    def fetch_by_ids(self, identity_ids, cursor=None):
        ids = list(dict.fromkeys(identity_ids))
        return [
            copy.deepcopy(self.identities[i])
            for i in ids
            if i in self.identities and not self.identities[i].is_deleted
        ]

    def fetch_by_id(self, identity_id):
        found = self.fetch_by_ids([identity_id])
        return found[0] if found else None

    def fetch_all(self, include_deleted=False):
        return [
            copy.deepcopy(identity)
            for identity in self.identities.values()
            if include_deleted or not identity.is_deleted
        ]

    def fetch_rated(self, game_type):
        return [identity for identity in self.fetch_all() if game_type in identity.ratings]

    def persist(self, identity, game_type=None, cursor=None):
        self.persist_calls += 1
        if self.persist_errors:
            # None lets that call through
            error = self.persist_errors.pop(0)
            if error is not None:
                raise error
        if cursor is not None:
            cursor[identity.id] = copy.deepcopy(identity)
        else:
            self.identities[identity.id] = copy.deepcopy(identity)

    @contextmanager
    def transaction(self):
        self.transactions_opened += 1
        if self.transaction_errors:
            raise self.transaction_errors.pop(0)
        staged: Dict[str, Identity] = {}
        yield staged
        self.identities.update(staged)

    def supports_transactions(self):
        return self.atomic

    def clear_ratings(self, game_type=None):
        removed = 0
        for identity in self.identities.values():
            if game_type is None:
                removed += len(identity.ratings)
                identity.ratings.clear()
            elif identity.ratings.remove(game_type):
                removed += 1
        return removed

    def snapshot(self):
        return {
            identity_id: {gt: record.to_dict() for gt, record in identity.ratings.items()}
            for identity_id, identity in self.identities.items()
        }


class FakeGameStore:
    """In-memory GameRepository."""

    def __init__(self, games: Optional[List[GameOutcome]] = None):
        self.games: List[GameOutcome] = list(games or [])

    def finished_games(self, game_type=None):
        games = [g for g in self.games if g.finished]
        if game_type is not None:
            games = [g for g in games if g.game_type == normalize_game_type(game_type)]
        return games

    def get_game(self, game_id):
        return next((g for g in self.games if g.game_id == game_id), None)


def make_identity(identity_id: str, name: Optional[str] = None, **kwargs) -> Identity:
    return Identity(id=identity_id, display_name=name or identity_id.title(), ratings=RatingBook(), **kwargs)


def make_game(
    game_id: str,
    seats,
    game_type: str = "wizard",
    occurred_at: Optional[datetime] = None,
    created_at: Optional[datetime] = None,
    finished: bool = True,
) -> GameOutcome:
    """
    Build a finished game from (identity_id, display_name, score) tuples.

    Use None as identity_id for an unlinked guest.
    """
    return GameOutcome(
        game_id=game_id,
        game_type=game_type,
        finished=finished,
        participants=[
            ParticipantResult(display_name=name, score=score, identity_id=identity_id)
            for identity_id, name, score in seats
        ],
        occurred_at=occurred_at,
        created_at=created_at,
    )


def at(day: int, hour: int = 12) -> datetime:
    return datetime(2024, 3, day, hour, tzinfo=timezone.utc)


@pytest.fixture
def identity_store():
    return FakeIdentityStore([
        make_identity("alice"),
        make_identity("bob"),
        make_identity("carol"),
        make_identity("dave"),
    ])


@pytest.fixture
def game_store():
    return FakeGameStore()


@pytest.fixture
def fixed_clock():
    now = datetime(2024, 6, 1, tzinfo=timezone.utc)
    return lambda: now
