"""
Finished-game records as handed to the rating engine by the game store.

Scores are always "higher is better" by the time they reach these objects;
lower-is-better game types are inverted by the game store.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import List, Optional


@dataclass
class ParticipantResult:
    """
    One seat in a finished game.

    identity_id is None for unlinked guests: they keep their placement and
    still shape everyone else's margins, but never get a rating of their own.
    """
    display_name: str
    score: float
    identity_id: Optional[str] = None
    placement: Optional[int] = None

    @property
    def is_linked(self) -> bool:
        return self.identity_id is not None


@dataclass
class GameOutcome:
    game_id: str
    game_type: Optional[str]
    finished: bool
    participants: List[ParticipantResult] = field(default_factory=list)
    occurred_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @property
    def played_at(self) -> Optional[datetime]:
        """The game's own occurrence time, falling back to record creation."""
        return self.occurred_at or self.created_at

    def linked_identity_ids(self) -> List[str]:
        return [p.identity_id for p in self.participants if p.identity_id is not None]

    def with_participants(self, participants: List[ParticipantResult]) -> "GameOutcome":
        return replace(self, participants=participants)
