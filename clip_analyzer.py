"""
Per-clip battlefield recognition by majority vote.

Each clip is re-sampled a few times away from its edges. Occupied tiles and
the facing of newly deployed units are recognized on every sample and the
most frequent answer wins.
"""

import logging
from collections import Counter

import progress
from errors import ClipAnalysisError, EndOfStream
from models import BattlefieldOperator
from perception import Rect
from settings import RecognitionSettings

logger = logging.getLogger(__name__)


def modal_value(tally):
    """
    Most frequent key of a Counter.

    Ties go to the key that was counted first: Counter keeps insertion order
    and max() returns the first maximal item.
    """
    if not tally:
        return None
    return max(tally.items(), key=lambda item: item[1])[0]


def sampling_window(clip, sample_count):
    """
    Frame range and step for re-sampling a clip.

    Returns:
        tuple: (begin, end, step) with a margin of one step at both ends
    """
    frame_count = clip.frame_count
    step = frame_count // (sample_count + 1) if frame_count > sample_count + 1 else 1
    return clip.start_frame + step, clip.end_frame - step, step


class ClipAnalyzer:
    def __init__(self, source, perception, tiles, settings=None, reporter=None):
        """
        Args:
            source: VideoFrameSource to re-seek into each clip
            perception: Perception implementation
            tiles: Mapping Location -> (x, y) screen point for the stage
            settings: RecognitionSettings (defaults used if None)
            reporter: ProgressReporter for observer notifications
        """
        self.source = source
        self.perception = perception
        self.tiles = tiles
        self.settings = settings or RecognitionSettings()
        self.reporter = reporter or progress.ProgressReporter()

    def analyze(self, clip, previous=None):
        self.detect_occupancy(clip)
        self.classify_directions(clip, previous)

    def _sample_clip(self, clip, what):
        """Yield the voting samples of a clip; a truncated video is reported under `what`."""
        begin, end, step = sampling_window(clip, self.settings.vote_samples)
        if begin >= end:
            return
        self.source.seek(begin)
        try:
            yield from self.source.sample(step, end=end)
        except EndOfStream:
            self.reporter.error(what)
            raise

    def locate(self, box, frame_index=None):
        """Tile whose screen point lies inside a detected unit box, or None."""
        rect = Rect(*box.rect)
        if self.settings.oper_box_offset:
            rect = rect.move(self.settings.oper_box_offset)
        for loc, pos in self.tiles.items():
            if rect.include(pos):
                return loc
        logger.warning(f"Frame {frame_index}: no tile inside {tuple(rect)}")
        return None

    def detect_occupancy(self, clip):
        """Vote on the set of occupied tiles and store it on the clip."""
        self.reporter.start(progress.DETECT)

        tally = Counter()
        ordered = {}  # location set -> locations in detection order
        for frame in self._sample_clip(clip, progress.DETECT):
            locations = []
            for box in self.perception.detect_battlefield_units(frame):
                loc = self.locate(box, frame.index)
                if loc is not None and loc not in locations:
                    locations.append(loc)
            key = frozenset(locations)
            ordered.setdefault(key, locations)
            tally[key] += 1

        if not tally:
            logger.error(f"Clip {clip.start_frame}-{clip.end_frame}: no occupancy samples")
            self.reporter.error(progress.DETECT)
            raise ClipAnalysisError(f"No samples for clip {clip.start_frame}-{clip.end_frame}")

        winner = modal_value(tally)
        if len(tally) > 1:
            logger.debug(f"Clip {clip.start_frame}: occupancy votes {[(sorted(k), n) for k, n in tally.items()]}")

        for loc in ordered[winner]:
            clip.battlefield.setdefault(loc, BattlefieldOperator())

        self.reporter.complete(progress.DETECT, {
            'start_frame': clip.start_frame,
            'end_frame': clip.end_frame,
            'locations': [list(loc) for loc in clip.battlefield],
        })

    def classify_directions(self, clip, previous):
        """Vote on the facing of every tile newly occupied since the previous clip."""
        if previous is None:
            logger.info("First clip, no direction to classify")
            return

        newcomers = [loc for loc in clip.battlefield if loc not in previous.battlefield]
        if not newcomers:
            return
        self.reporter.start(progress.DIRECTION)

        tallies = {loc: Counter() for loc in newcomers}
        for frame in self._sample_clip(clip, progress.DIRECTION):
            for loc in newcomers:
                direction = self.perception.classify_direction(frame, self.tiles[loc])
                tallies[loc][direction] += 1

        for loc, tally in tallies.items():
            direction = modal_value(tally)
            if direction is None:
                logger.error(f"Clip {clip.start_frame}: no direction samples for {tuple(loc)}")
                self.reporter.error(progress.DIRECTION)
                raise ClipAnalysisError(f"No direction samples for clip {clip.start_frame}-{clip.end_frame}")
            oper = clip.battlefield[loc]
            oper.direction = direction
            oper.newcomer = True

        self.reporter.complete(progress.DIRECTION, {
            'directions': {f"{loc.x},{loc.y}": int(clip.battlefield[loc].direction) for loc in newcomers},
        })
