"""
Turn consecutive clips into deploy and retreat actions.

Only the recognized tray contents and occupied tiles of two neighbouring
clips are compared; no frames are read here.
"""

import logging

from models import DeployAction, RetreatAction

logger = logging.getLogger(__name__)

# Name given to a newly occupied tile with no matching tray change
UNKNOWN_DEPLOYED = "UnknownDeployed"


class ChangeReconstructor:
    def __init__(self, resolver, event_log):
        """
        Args:
            resolver: NameResolver used to name tray slots on demand
            event_log: EventLog actions are appended to
        """
        self.resolver = resolver
        self.event_log = event_log

    def process(self, clip, previous):
        """
        Append the actions that happened between `previous` and `clip`.

        Returns:
            list: The actions appended for this clip
        """
        if previous is None:
            logger.info("First clip, no changes to process")
            return []

        current_size = len(clip.deployment)
        previous_size = len(previous.deployment)

        if current_size < previous_size:
            actions = self.deployments(clip, previous)
        elif current_size > previous_size:
            actions = self.retreats(clip, previous)
        else:
            # Anomalous: the slicer only cuts clips on a tray size change. No deploy
            # can be attributed here, but every vacated tile is still logged as a
            # retreat so no unit silently leaves the field.
            logger.warning(f"Clip {clip.start_frame}: same deployment size {current_size}, "
                           f"emitting retreats only")
            actions = self.retreats(clip, previous)

        for action in actions:
            logger.info(f"Clip {clip.start_frame}: {action.to_dict()}")
            self.event_log.append(action)
        return actions

    def deployments(self, clip, previous):
        self.resolver.resolve_clip(clip)
        self.resolver.resolve_clip(previous)

        remaining = {slot.name for slot in clip.deployment}
        deployed = [slot.name for slot in previous.deployment if slot.name not in remaining]
        logger.info(f"Deployed: {deployed}")
        if not deployed:
            logger.warning(f"Clip {clip.start_frame}: unknown deployed unit")

        newcomers = clip.newcomers()
        if len(newcomers) > 1:
            # Several units landed within one clip; names are paired with tiles in order, best effort
            logger.warning(f"Clip {clip.start_frame}: {len(newcomers)} units deployed at once")

        names = iter(deployed)
        actions = []
        for loc in newcomers:
            oper = clip.battlefield[loc]
            actions.append(DeployAction(
                name=next(names, UNKNOWN_DEPLOYED),
                location=loc,
                direction=oper.direction,
            ))
        return actions

    def retreats(self, clip, previous):
        return [
            RetreatAction(location=loc)
            for loc in previous.battlefield
            if loc not in clip.battlefield
        ]
