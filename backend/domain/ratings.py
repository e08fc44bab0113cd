"""
Rating entities: per-identity, per-game-type rating state.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional

from .constants import DEFAULT_RATING, HISTORY_LIMIT
from .game_types import normalize_game_type


def _int_or(value: Any, default: int) -> int:
    return default if value is None else int(value)


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


@dataclass
class HistoryEntry:
    """One applied game, as seen from a single identity's rating record."""
    rating: int
    change: int
    game_id: str
    opponents: List[str]
    placement: int
    date: Optional[datetime]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'rating': self.rating,
            'change': self.change,
            'game_id': self.game_id,
            'opponents': list(self.opponents),
            'placement': self.placement,
            'date': self.date.isoformat() if self.date else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HistoryEntry":
        return cls(
            rating=int(data['rating']),
            change=int(data['change']),
            game_id=str(data['game_id']),
            opponents=list(data.get('opponents') or []),
            placement=int(data['placement']),
            date=_parse_timestamp(data.get('date')),
        )


@dataclass
class RatingRecord:
    """
    Rating state for one identity in one game type.

    `history` is ordered newest first and never holds more than
    HISTORY_LIMIT entries.
    """
    rating: int = DEFAULT_RATING
    peak: int = DEFAULT_RATING
    floor: int = DEFAULT_RATING
    games_played: int = 0
    streak: int = 0
    last_updated: Optional[datetime] = None
    history: List[HistoryEntry] = field(default_factory=list)

    def has_game(self, game_id: str) -> bool:
        """True if this game was already applied to the record."""
        return any(entry.game_id == game_id for entry in self.history)

    def record_game(self, new_rating: int, won: bool, entry: HistoryEntry, updated_at: datetime) -> None:
        """
        Fold one applied game into the record.

        Updates rating, extremes, streak, and history in place.
        """
        self.games_played += 1
        self.rating = new_rating
        self.peak = max(self.peak, new_rating)
        self.floor = min(self.floor, new_rating)

        if won:
            self.streak = max(1, self.streak + 1)
        else:
            self.streak = min(-1, self.streak - 1)

        self.history.insert(0, entry)
        del self.history[HISTORY_LIMIT:]
        self.last_updated = updated_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            'rating': self.rating,
            'peak': self.peak,
            'floor': self.floor,
            'games_played': self.games_played,
            'streak': self.streak,
            'last_updated': self.last_updated.isoformat() if self.last_updated else None,
            'history': [entry.to_dict() for entry in self.history],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RatingRecord":
        return cls(
            rating=_int_or(data.get('rating'), DEFAULT_RATING),
            peak=_int_or(data.get('peak'), DEFAULT_RATING),
            floor=_int_or(data.get('floor'), DEFAULT_RATING),
            games_played=_int_or(data.get('games_played'), 0),
            streak=_int_or(data.get('streak'), 0),
            last_updated=_parse_timestamp(data.get('last_updated')),
            history=[HistoryEntry.from_dict(h) for h in (data.get('history') or [])],
        )


class RatingBook:
    """
    Keyed container mapping normalized game type -> RatingRecord.

    Absence is explicit: `get(game_type)` returns None for an unrated type,
    while `get_or_default(game_type)` returns a fresh default record that is
    NOT stored until `set()` is called with it.
    """

    def __init__(self, records: Optional[Dict[str, RatingRecord]] = None):
        self._records: Dict[str, RatingRecord] = {}
        for game_type, record in (records or {}).items():
            self.set(game_type, record)

    def get(self, game_type: Optional[str]) -> Optional[RatingRecord]:
        return self._records.get(normalize_game_type(game_type))

    def get_or_default(self, game_type: Optional[str]) -> RatingRecord:
        """Return the stored record for the type, or a new default one."""
        record = self.get(game_type)
        return record if record is not None else RatingRecord()

    def set(self, game_type: Optional[str], record: RatingRecord) -> None:
        self._records[normalize_game_type(game_type)] = record

    def remove(self, game_type: Optional[str]) -> bool:
        """Drop one game type. Returns True if something was removed."""
        return self._records.pop(normalize_game_type(game_type), None) is not None

    def clear(self) -> None:
        self._records.clear()

    def game_types(self) -> List[str]:
        return list(self._records.keys())

    def items(self) -> Iterator:
        return iter(self._records.items())

    def __contains__(self, game_type: object) -> bool:
        return isinstance(game_type, str) and normalize_game_type(game_type) in self._records

    def __len__(self) -> int:
        return len(self._records)


@dataclass
class Identity:
    """
    A tracked player (registered user or guest) and its rating book.

    Identities are owned by the identity store; the engine only reads and
    mutates their ratings.
    """
    id: str
    display_name: str
    ratings: RatingBook = field(default_factory=RatingBook)
    user_id: Optional[str] = None
    kind: str = "guest"
    merged_into: Optional[str] = None
    is_deleted: bool = False
