"""
Identity consolidation for rating replay.

The same person can show up under several identities: explicitly merged
ones, several identities attached to one user account, or an unlinked guest
carrying a registered player's name. Before a recalculation replays history
every game is remapped so that all of them share a single rating.
"""

import logging
from typing import Dict, Iterable, List

from domain.game_outcome import GameOutcome, ParticipantResult
from domain.ratings import Identity

logger = logging.getLogger(__name__)


def _resolve_chain(identity_id: str, merged_into: Dict[str, str]) -> str:
    visited = set()
    current = identity_id
    while current in merged_into and current not in visited:
        visited.add(current)
        current = merged_into[current]
    return current


def build_identity_merge_map(identities: Iterable[Identity]) -> Dict[str, str]:
    """
    Map every secondary identity id to its primary identity id.

    1. Explicit `merged_into` chains are followed to their end (A -> B -> C
       maps both A and B to C).
    2. Non-deleted identities sharing a user id collapse onto that user's
       "user"-kind identity, or the first one if none is.
    3. Unlinked guests whose display name matches a registered user's
       identity (case and surrounding whitespace ignored) map to it.

    Identities that are already primary do not appear in the map.

    Args:
        identities: All identities, including deleted and merged ones

    Returns:
        Dict of identity id -> primary identity id
    """
    identities = list(identities)
    merge_map: Dict[str, str] = {}

    merged_into = {i.id: i.merged_into for i in identities if i.merged_into}
    for identity_id in merged_into:
        merge_map[identity_id] = _resolve_chain(identity_id, merged_into)

    by_user: Dict[str, List[Identity]] = {}
    for identity in identities:
        if identity.user_id and not identity.is_deleted:
            by_user.setdefault(identity.user_id, []).append(identity)

    for group in by_user.values():
        if len(group) <= 1:
            continue
        primary = next((i for i in group if i.kind == 'user'), group[0])
        for identity in group:
            if identity.id != primary.id and identity.id not in merge_map:
                merge_map[identity.id] = primary.id

    name_to_user: Dict[str, str] = {}
    for identity in identities:
        if identity.display_name and identity.user_id and not identity.is_deleted and identity.kind == 'user':
            key = identity.display_name.strip().lower()
            name_to_user[key] = merge_map.get(identity.id, identity.id)

    for identity in identities:
        if identity.id in merge_map:
            continue
        if identity.kind != 'guest' or identity.user_id or identity.merged_into:
            continue
        if not identity.display_name:
            continue
        key = identity.display_name.strip().lower()
        if key in name_to_user:
            merge_map[identity.id] = name_to_user[key]

    return merge_map


def remap_game_identities(game: GameOutcome, merge_map: Dict[str, str]) -> GameOutcome:
    """
    Return a copy of the game with every identity id replaced by its primary.

    If two seats resolve to the same identity, only the first is kept.
    """
    if not merge_map:
        return game

    seen = set()
    participants: List[ParticipantResult] = []
    for participant in game.participants:
        identity_id = participant.identity_id
        if identity_id is not None:
            identity_id = merge_map.get(identity_id, identity_id)
            if identity_id in seen:
                logger.warning(
                    f"Duplicate identity {identity_id} in game {game.game_id} after merge resolution - skipping duplicate"
                )
                continue
            seen.add(identity_id)

        participants.append(ParticipantResult(
            display_name=participant.display_name,
            score=participant.score,
            identity_id=identity_id,
            placement=participant.placement,
        ))

    return game.with_participants(participants)
