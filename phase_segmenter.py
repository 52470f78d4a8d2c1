"""
Walk the pre-battle part of a combat recording.

The video is read once, forward only, through four phases:
roster -> stage name -> deploy screen -> battle. Each phase starts where the
previous one left the frame cursor.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List

import numpy as np

import progress
from errors import (
    DeployScreenNotFoundError,
    EndOfStream,
    PhaseOrderError,
    RosterNotFoundError,
    StageNotFoundError,
)
from models import RosterEntry
from perception import Rect, scale_image
from settings import RecognitionSettings

logger = logging.getLogger(__name__)


class Phase(Enum):
    ROSTER_READ = 1
    STAGE_IDENTIFY = 2
    DEPLOY_SCREEN_FIND = 3
    BATTLE = 4
    DONE = 5


@dataclass
class PhaseResult:
    roster: List[RosterEntry]
    stage_name: str
    battle_start_frame: int
    # Roster name -> tray avatar it was matched to on the deploy screen
    reference_avatars: Dict[str, np.ndarray] = field(default_factory=dict)


class PhaseSegmenter:
    """
    Forward-only state machine over the pre-battle phases.

    Every phase method requires the segmenter to be in that phase and ends by
    entering the next one, so phases can neither repeat nor run out of order.
    """

    def __init__(self, source, perception, game_data, settings=None, reporter=None, stage_name=None):
        """
        Args:
            source: VideoFrameSource positioned at the start of the video
            perception: Perception implementation
            game_data: GameData for stage and unit lookups
            settings: RecognitionSettings (defaults used if None)
            reporter: ProgressReporter for observer notifications
            stage_name: Stage name supplied by the caller; skips stage OCR
        """
        self.source = source
        self.perception = perception
        self.game_data = game_data
        self.settings = settings or RecognitionSettings()
        self.reporter = reporter or progress.ProgressReporter()

        self.phase = Phase.ROSTER_READ
        self.roster = []
        self.stage_name = stage_name or ""
        self.stage_supplied = bool(stage_name)
        self.roster_end_frame = 0
        self.stage_end_frame = 0
        self.battle_start_frame = 0
        self.tray = []
        self.reference_avatars = {}

    def _require(self, phase):
        if self.phase != phase:
            raise PhaseOrderError(f"Expected phase {phase.name}, currently in {self.phase.name}")

    def _enter(self, phase):
        if phase.value <= self.phase.value:
            raise PhaseOrderError(f"Cannot go from {self.phase.name} to {phase.name}")
        logger.info(f"Phase {self.phase.name} -> {phase.name} at frame {self.source.position}")
        self.phase = phase

    def run(self):
        """Run every pre-battle phase and hand back what the battle needs."""
        self.read_roster()
        self.identify_stage()
        self.find_deploy_screen()
        return PhaseResult(
            roster=self.roster,
            stage_name=self.stage_name,
            battle_start_frame=self.battle_start_frame,
            reference_avatars=self.reference_avatars,
        )

    def read_roster(self):
        """
        Read the formation roster.

        Some videos open with a transition or animation, so the roster is read
        over several frames and the largest one seen is kept.
        """
        self._require(Phase.ROSTER_READ)
        self.reporter.start(progress.ROSTER)

        step = self.source.step_for(self.settings.roster_fps)
        no_growth_count = 0
        ended = False
        try:
            for frame in self.source.sample(step):
                current = self.perception.read_roster(frame)
                if current:
                    if len(current) > len(self.roster):
                        self.roster = list(current)
                        no_growth_count = 0
                    else:
                        no_growth_count += 1
                        if no_growth_count >= self.settings.roster_stable_samples:
                            self.roster_end_frame = frame.index
                            ended = True
                            break
                elif self.roster:
                    self.roster_end_frame = frame.index
                    ended = True
                    break
        except EndOfStream:
            self.reporter.error(progress.ROSTER)
            raise

        if self.roster and not ended:
            # Roster still on screen when the video ran out
            logger.error(f"Video ended during the roster screen at frame {self.source.position}")
            self.reporter.error(progress.ROSTER)
            raise EndOfStream(self.source.position)

        if not self.roster:
            logger.error("No roster entry recognized")
            self.reporter.error(progress.ROSTER)
            raise RosterNotFoundError("No roster entry recognized")

        names = [entry.name for entry in self.roster]
        logger.info(f"Roster: {names} (ends at frame {self.roster_end_frame})")
        self.reporter.complete(progress.ROSTER, {'formation': names})
        self._enter(Phase.STAGE_IDENTIFY)

    def identify_stage(self):
        """Read the stage name, unless the caller already supplied one."""
        self._require(Phase.STAGE_IDENTIFY)

        if not self.stage_supplied:
            self.reporter.start(progress.STAGE)
            if not self.perception.can_read_stage_name():
                logger.error("No stage name given and no stage name reader configured")
                self.reporter.error(progress.STAGE)
                raise StageNotFoundError("No stage name given and no stage name reader configured")

            step = self.source.step_for(self.settings.stage_ocr_fps)
            try:
                for frame in self.source.sample(step):
                    text = self.perception.read_stage_name(frame)
                    if not text:
                        if self.perception.detect_battle_ui(frame):
                            logger.error(f"Frame {frame.index}: battle already started, stage name still unknown")
                            self.stage_end_frame = frame.index
                            self.reporter.error(progress.STAGE)
                            raise StageNotFoundError("Battle started before the stage name was recognized")
                        continue

                    if not self.game_data.has_stage(text):
                        logger.debug(f"Frame {frame.index}: '{text}' is not a known stage")
                        continue

                    self.stage_name = text
                    self.stage_end_frame = frame.index
                    break
            except EndOfStream:
                self.reporter.error(progress.STAGE)
                raise

        logger.info(f"Stage: {self.stage_name or '(unknown)'}")
        if not self.game_data.has_stage(self.stage_name):
            self.reporter.error(progress.STAGE)
            raise StageNotFoundError(f"Unknown stage: {self.stage_name!r}")

        self.reporter.complete(progress.STAGE, {'stage': self.stage_name})
        self._enter(Phase.DEPLOY_SCREEN_FIND)

    def find_deploy_screen(self):
        """Find the first battle frame and match roster avatars to the deploy tray."""
        self._require(Phase.DEPLOY_SCREEN_FIND)
        self.reporter.start(progress.DEPLOYMENT)

        step = self.source.step_for(self.settings.deployment_fps)
        found = False
        try:
            for frame in self.source.sample(step):
                tray = self.perception.detect_deploy_tray(frame)
                if tray.units and tray.pause_button_visible:
                    self.battle_start_frame = frame.index
                    self.tray = tray.units
                    found = True
                    break
        except EndOfStream:
            self.reporter.error(progress.DEPLOYMENT)
            raise

        if not found:
            logger.error("Deploy screen never found")
            self.reporter.error(progress.DEPLOYMENT)
            raise DeployScreenNotFoundError("Deploy screen never found")

        self.match_roster_avatars()
        if not self.reference_avatars:
            self.reporter.error(progress.DEPLOYMENT)
            raise DeployScreenNotFoundError("No roster unit matched the deploy tray")

        self.reporter.complete(progress.DEPLOYMENT, {'matched': list(self.reference_avatars)})
        self._enter(Phase.BATTLE)

    def match_roster_avatars(self):
        """
        Map each roster unit to the tray avatar it is shown with.

        Avatars are rendered at a different scale in the tray than in the
        formation screen, and the ratio varies per unit, so a range of scales
        is tried for every role-compatible tray slot.
        """
        threshold = self.settings.avatar_match_threshold
        crop = Rect(*self.settings.avatar_crop) if self.settings.avatar_crop else None

        for entry in self.roster:
            if entry.avatar is None:
                logger.warning(f"{entry.name} has no roster avatar, cannot match")
                continue

            roles = self.game_data.compatible_roles(entry.name)
            scale_start, scale_end = self.settings.scale_range_for(self.game_data.unit_rarity(entry.name))

            candidates = []
            sources = {}
            for slot in self.tray:
                if slot.role not in roles or slot.avatar is None:
                    continue
                avatar = crop.crop(slot.avatar) if crop else slot.avatar
                for percent in range(scale_start, scale_end):
                    flag = f"{entry.name}|{slot.index}|{percent}"
                    candidates.append((flag, scale_image(avatar, percent / 100.0)))
                    sources[flag] = slot.avatar

            match = self.perception.best_template_match(candidates, entry.avatar, threshold)
            if match is None:
                logger.warning(f"Frame {self.battle_start_frame}: failed to match {entry.name}")
                continue
            self.reference_avatars[entry.name] = sources[match.name]
            logger.debug(f"Matched {entry.name} -> {match.name} ({match.score:.4f})")
