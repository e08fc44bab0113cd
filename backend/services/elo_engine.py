"""
Multi-player ELO calculation for finished card games.

Every linked participant is compared pairwise against every other linked
participant: expected scores come from the standard ELO curve, actual scores
from the head-to-head result (1 / 0.5 / 0). The raw change is scaled by an
adaptive K-factor and a score-margin multiplier, and first-place finishers
get a streak bonus on top.

All functions here are pure; persistence lives in rating_applier.py.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from domain.constants import (
    GAMES_THRESHOLD_DEVELOPING,
    GAMES_THRESHOLD_ESTABLISHED,
    GAMES_THRESHOLD_NEW,
    K_FACTOR_DEVELOPING,
    K_FACTOR_ESTABLISHED,
    K_FACTOR_NEW_PLAYER,
    K_FACTOR_VETERAN,
    MARGIN_TIERS,
    MIN_RATING,
    STREAK_BONUS_CAP,
    STREAK_BONUS_PER_GAME,
)
from domain.game_outcome import GameOutcome, ParticipantResult
from domain.game_types import normalize_game_type
from domain.ratings import Identity

__all__ = [
    'RatingChange',
    'normalize_game_type',
    'get_k_factor',
    'expected_score',
    'get_pair_result',
    'margin_multiplier',
    'streak_bonus',
    'resolve_placements',
    'calculate_game_changes',
]


@dataclass
class RatingChange:
    identity_id: str
    display_name: str
    placement: int
    score: float
    old_rating: int
    new_rating: int
    delta: int
    won: bool
    opponents: List[str] = field(default_factory=list)
    base_delta: float = 0.0
    streak_bonus: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'identity_id': self.identity_id,
            'display_name': self.display_name,
            'placement': self.placement,
            'score': self.score,
            'old_rating': self.old_rating,
            'new_rating': self.new_rating,
            'delta': self.delta,
            'won': self.won,
            'opponents': list(self.opponents),
            'base_delta': self.base_delta,
            'streak_bonus': self.streak_bonus,
        }


def get_k_factor(games_played: int) -> int:
    """K-factor from the number of games already played in this game type."""
    if games_played < GAMES_THRESHOLD_NEW:
        return K_FACTOR_NEW_PLAYER
    if games_played < GAMES_THRESHOLD_DEVELOPING:
        return K_FACTOR_DEVELOPING
    if games_played < GAMES_THRESHOLD_ESTABLISHED:
        return K_FACTOR_ESTABLISHED
    return K_FACTOR_VETERAN


def expected_score(rating_i: float, rating_j: float) -> float:
    """Compute the expected score for player i vs. player j."""
    return 1 / (1 + 10 ** ((rating_j - rating_i) / 400))


def get_pair_result(score_i: float, score_j: float) -> float:
    """Head-to-head actual score for player i: 1 win, 0.5 tie, 0 loss."""
    if score_i > score_j:
        return 1.0
    if score_i < score_j:
        return 0.0
    return 0.5


def margin_multiplier(score_i: float, score_j: float) -> float:
    """
    Score-gap multiplier for player i against player j.

    Gaps of 50+, 30-49 and 10-29 points move the multiplier by 25%, 15% and
    5%: upwards when i won, downwards when i lost. Ties and gaps under 10
    leave it at 1.
    """
    gap = abs(score_i - score_j)
    offset = 0.0
    for threshold, tier_offset in MARGIN_TIERS:
        if gap >= threshold:
            offset = tier_offset
            break

    if score_i > score_j:
        return 1 + offset
    if score_i < score_j:
        return 1 - offset
    return 1.0


def streak_bonus(streak: int) -> int:
    """
    Bonus for a first-place finish, growing with the current win streak.

    A player coming off a loss streak still earns the base bonus for the win
    that breaks it. Losing streaks carry no matching penalty.
    """
    games = abs(streak) + (1 if streak >= 0 else 0)
    return min(games * STREAK_BONUS_PER_GAME, STREAK_BONUS_CAP)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def resolve_placements(participants: List[ParticipantResult]) -> List[ParticipantResult]:
    """
    Rank participants by score into competition-style placements.

    Higher scores are better. Ties share a placement and leave a gap
    behind them: scores [100, 100, 50] become placements [1, 1, 3].
    Participants without a score are not ranked. Returns copies sorted best
    to worst, or an empty list when fewer than two can be ranked.
    """
    scorable = [p for p in participants if p.score is not None]
    if len(scorable) < 2:
        return []

    ranked = sorted(scorable, key=lambda p: p.score, reverse=True)
    placed: List[ParticipantResult] = []
    placement = 1
    for index, participant in enumerate(ranked):
        if index > 0 and participant.score != ranked[index - 1].score:
            placement = index + 1
        placed.append(ParticipantResult(
            display_name=participant.display_name,
            score=participant.score,
            identity_id=participant.identity_id,
            placement=placement,
        ))
    return placed


def calculate_game_changes(
    game: GameOutcome,
    identities: Mapping[str, Identity],
    game_type: Optional[str] = None,
) -> List[RatingChange]:
    """
    Calculate rating changes for every linked participant of a finished game.

    Args:
        game: The finished game
        identities: Identity id -> Identity for the game's linked participants.
            A linked participant whose identity is missing here is treated
            like an unlinked guest.
        game_type: Rating pool to use (defaults to the game's own type)

    Returns:
        One RatingChange per rated participant, best placement first. Empty
        for unfinished games or games with fewer than two scorable players.
    """
    if not game.finished:
        return []

    ranked = resolve_placements(game.participants)
    if not ranked:
        return []

    pool = normalize_game_type(game_type or game.game_type)
    num_players = len(ranked)

    def rated(p: ParticipantResult) -> bool:
        return p.identity_id is not None and p.identity_id in identities

    records = {
        p.identity_id: identities[p.identity_id].ratings.get_or_default(pool)
        for p in ranked if rated(p)
    }

    changes: List[RatingChange] = []
    for i, player in enumerate(ranked):
        if not rated(player):
            continue

        record = records[player.identity_id]
        k_factor = get_k_factor(record.games_played)

        expected_total = 0.0
        actual_total = 0.0
        margin_product = 1.0
        for j, opponent in enumerate(ranked):
            if j == i:
                continue
            margin_product *= margin_multiplier(player.score, opponent.score)
            if not rated(opponent):
                continue
            opponent_rating = records[opponent.identity_id].rating
            expected_total += expected_score(record.rating, opponent_rating)
            actual_total += get_pair_result(player.score, opponent.score)

        # Geometric mean keeps the margin effect independent of table size
        margin = margin_product ** (1 / (num_players - 1))

        base_delta = k_factor * (actual_total - expected_total) * margin
        won = player.placement == 1
        bonus = streak_bonus(record.streak) if won else 0

        new_rating = max(MIN_RATING, record.rating + _round_half_up(base_delta + bonus))

        changes.append(RatingChange(
            identity_id=player.identity_id,
            display_name=player.display_name,
            placement=player.placement,
            score=player.score,
            old_rating=record.rating,
            new_rating=new_rating,
            delta=new_rating - record.rating,
            won=won,
            opponents=[p.display_name for j, p in enumerate(ranked) if j != i],
            base_delta=base_delta,
            streak_bonus=bonus,
        ))

    return changes
