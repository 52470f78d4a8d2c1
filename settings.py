"""
Tunable constants for combat record recognition.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple


# Frame height every sampled frame is resized to before recognition
DEFAULT_TARGET_HEIGHT = 720

# Default template matching threshold (0-1, higher = stricter matching)
DEFAULT_THRESHOLD = 0.7


@dataclass
class RecognitionSettings:
    # Processing resolution
    target_height: int = DEFAULT_TARGET_HEIGHT

    # Sampling rates (samples per second of video)
    roster_fps: float = 5
    stage_ocr_fps: float = 2
    deployment_fps: float = 5

    # Roster phase stops after this many recognized samples without growth
    roster_stable_samples: int = 5
    # Slicing stops after more than this many consecutive non-battle samples
    max_misses: int = 10
    # Samples per clip for occupancy and direction votes
    vote_samples: int = 5

    # Template matching
    avatar_match_threshold: float = DEFAULT_THRESHOLD
    name_match_threshold: float = DEFAULT_THRESHOLD
    # Percent scale ranges tried when matching roster avatars to tray avatars
    rare_scale_range: Tuple[int, int] = (100, 200)   # rarity 1 units render much smaller
    common_scale_range: Tuple[int, int] = (100, 125)

    # (dx, dy, width, height) applied to battlefield boxes before tile lookup
    oper_box_offset: Optional[Tuple[int, int, int, int]] = None
    # (x, y, width, height) crop applied to tray avatars before scale matching
    avatar_crop: Optional[Tuple[int, int, int, int]] = None

    # Output document
    minimum_required: str = "v4.0.0"
    cache_dir: Path = field(default=None)

    def __post_init__(self):
        if self.cache_dir is None:
            self.cache_dir = Path.home() / ".cache" / "combat-record"
        self.cache_dir = Path(self.cache_dir)

    def scale_range_for(self, rarity):
        """Percent scale range [start, end) to try for a unit of this rarity."""
        if rarity == 1:
            return self.rare_scale_range
        return self.common_scale_range
