"""
Slice the battle part of a recording into clips.

A clip is a run of sampled frames whose deploy tray keeps the same size.
Frames covered by a unit's detail page are excluded, and the scan stops
once the battle has visibly ended.
"""

import logging

import progress
from errors import EndOfStream
from models import Clip
from settings import RecognitionSettings

logger = logging.getLogger(__name__)


class ClipSegmenter:
    def __init__(self, source, perception, settings=None, reporter=None):
        self.source = source
        self.perception = perception
        self.settings = settings or RecognitionSettings()
        self.reporter = reporter or progress.ProgressReporter()

        self.clips = []
        self.in_segment = False
        self.miss_count = 0
        self.battle_end_frame = None

    def _open(self, frame_index, units, cooling):
        self.clips.append(Clip(
            start_frame=frame_index,
            end_frame=frame_index,
            deployment=list(units),
            cooling=cooling,
        ))
        self.in_segment = True

    def _close(self, frame_index):
        if self.in_segment and self.clips:
            self.clips[-1].end_frame = frame_index
        self.in_segment = False

    def slice(self, start_frame):
        """
        Scan forward from the first battle frame and collect clips.

        Args:
            start_frame: Frame index the battle starts at

        Returns:
            list: Clips in chronological order (not yet filtered)
        """
        self.reporter.start(progress.SLICE)
        if self.source.position != start_frame:
            self.source.seek(start_frame)

        step = self.source.step_for(self.settings.deployment_fps)
        last_index = start_frame
        try:
            for frame in self.source.sample(step):
                last_index = frame.index
                self.process_frame(frame, step)
                if self.miss_count > self.settings.max_misses:
                    logger.info(f"Battle over at frame {self.battle_end_frame}")
                    break
            else:
                # Stream ended mid-battle
                self._close(last_index)
        except EndOfStream:
            self.reporter.error(progress.SLICE)
            raise

        logger.info(f"Sliced {len(self.clips)} clips")
        self.reporter.complete(progress.SLICE, {'clips': len(self.clips)})
        return self.clips

    def process_frame(self, frame, step):
        """Update the open clip with one sampled battle frame."""
        result = self.perception.detect_on_field(frame)

        if not result.in_battle:
            self._close(frame.index)
            if self.battle_end_frame is None:
                self.battle_end_frame = frame.index
            self.miss_count += 1
            return

        self.battle_end_frame = None
        self.miss_count = 0

        if result.in_detail_page:
            # The detail panel hides the field; cut the clip before it appeared
            self._close(frame.index - step)
            return

        units = result.units
        cooling = sum(1 for unit in units if unit.cooling)

        if not self.in_segment:
            self._open(frame.index, units, cooling)
        elif len(self.clips[-1].deployment) != len(units):
            self._close(frame.index)
            self._open(frame.index, units, cooling)
        elif cooling < self.clips[-1].cooling:
            # Cooling avatars are recognized less reliably; prefer frames with fewer
            current = self.clips[-1]
            current.deployment = list(units)
            current.cooling = cooling


def drop_unchanged_clips(clips):
    """
    Remove clips that cannot describe a transition.

    A clip is dropped when its span is empty or when its tray has the same
    role sequence as the last kept clip.
    """
    kept = []
    for clip in clips:
        previous = kept[-1] if kept else None
        unchanged = previous is not None and clip.roles() == previous.roles()
        if unchanged or clip.start_frame >= clip.end_frame:
            logger.warning(f"Dropping clip {clip.start_frame}-{clip.end_frame}: "
                           f"{'deployment unchanged' if unchanged else 'empty span'}")
            continue
        kept.append(clip)
    return kept
