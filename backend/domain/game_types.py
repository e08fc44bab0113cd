"""
Game-type normalization.

Every rating pool is keyed by the normalized game type, so "Flip 7",
" flip 7 " and "FLIP 7" all share the "flip-7" ratings.
"""

import re
from typing import Optional

from .constants import UNKNOWN_GAME_TYPE

_WHITESPACE_RUN = re.compile(r"\s+")


def normalize_game_type(game_type: Optional[str]) -> str:
    """
    Canonicalize a raw game-type label into a stable partition key.

    Lower-cases, trims, and collapses internal whitespace runs to a single
    hyphen. Missing labels map to "unknown".
    """
    if not game_type:
        return UNKNOWN_GAME_TYPE
    normalized = _WHITESPACE_RUN.sub("-", game_type.strip().lower())
    return normalized or UNKNOWN_GAME_TYPE
