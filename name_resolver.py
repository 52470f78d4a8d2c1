"""
Resolve which roster unit a deploy tray slot shows.
"""

import logging

from settings import DEFAULT_THRESHOLD

logger = logging.getLogger(__name__)

# Name given to tray slots that match no known avatar
UNRESOLVED_NAME = "UnknownDeployment"


def resolve_slot_name(slot, reference_avatars, game_data, matcher, threshold=DEFAULT_THRESHOLD):
    """
    Best-matching roster name for a tray slot.

    Args:
        slot: DeploymentSlot with a captured avatar and detected role
        reference_avatars: Mapping roster name -> tray avatar matched on the deploy screen
        game_data: GameData for role lookups
        matcher: Object with best_template_match(candidates, image, threshold)
        threshold: Minimum match confidence

    Returns:
        str: The roster name, or UNRESOLVED_NAME if nothing matched
    """
    if slot.avatar is None:
        return UNRESOLVED_NAME

    candidates = [
        (name, avatar) for name, avatar in reference_avatars.items()
        if slot.role in game_data.compatible_roles(name)
    ]
    if not candidates:
        return UNRESOLVED_NAME

    match = matcher.best_template_match(candidates, slot.avatar, threshold)
    if match is None:
        return UNRESOLVED_NAME
    return match.name


class NameResolver:
    """Fills in slot names on first use; named slots are left alone."""

    def __init__(self, reference_avatars, game_data, matcher, threshold=DEFAULT_THRESHOLD):
        self.reference_avatars = reference_avatars
        self.game_data = game_data
        self.matcher = matcher
        self.threshold = threshold

    def resolve_clip(self, clip):
        for slot in clip.deployment:
            if slot.name:
                continue
            slot.name = resolve_slot_name(
                slot, self.reference_avatars, self.game_data, self.matcher, self.threshold
            )
            if slot.name == UNRESOLVED_NAME:
                logger.warning(f"Clip {clip.start_frame}: tray slot {slot.index} ({slot.role.value}) unresolved")
