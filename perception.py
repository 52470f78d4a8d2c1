"""
Perception boundary: the frame recognizers the pipeline consumes.

The pixel-level recognizers (roster reader, deploy tray reader, battlefield
unit detector, facing classifier, detail page detector) are provided by a
Perception subclass. Template best-match and stage name OCR are implemented
here with OpenCV and Tesseract because the pipeline itself relies on them.
"""

import abc
import logging
from dataclasses import dataclass, field
from typing import List, NamedTuple, Optional

import cv2
import numpy as np
import pytesseract

from errors import StageNotFoundError
from models import DeploymentSlot
from settings import DEFAULT_THRESHOLD

logger = logging.getLogger(__name__)


class Rect(NamedTuple):
    x: int
    y: int
    width: int
    height: int

    def move(self, offset):
        """Shift by (dx, dy) and take the offset's size, or keep ours if it has none."""
        dx, dy, width, height = offset
        return Rect(self.x + dx, self.y + dy, width or self.width, height or self.height)

    def include(self, point):
        px, py = point
        return self.x <= px < self.x + self.width and self.y <= py < self.y + self.height

    def crop(self, image):
        return image[self.y:self.y + self.height, self.x:self.x + self.width]


@dataclass
class UnitBox:
    """A unit detected on the battlefield."""
    rect: Rect
    score: float = 1.0


@dataclass
class TrayResult:
    """Deploy tray recognition for one frame."""
    units: List[DeploymentSlot] = field(default_factory=list)
    pause_button_visible: bool = False


@dataclass
class OnFieldResult:
    """In-battle recognition for one frame."""
    units: List[DeploymentSlot] = field(default_factory=list)
    in_detail_page: bool = False

    @property
    def in_battle(self):
        return bool(self.units) or self.in_detail_page


@dataclass
class TemplateMatch:
    name: str
    score: float
    loc: tuple


def scale_image(image, scale_factor):
    """Resize an image by a factor, using INTER_AREA when shrinking."""
    interpolation = cv2.INTER_AREA if scale_factor < 1.0 else cv2.INTER_LINEAR
    return cv2.resize(image, None, fx=scale_factor, fy=scale_factor, interpolation=interpolation)


def match_template(image, template, mask=None, threshold=DEFAULT_THRESHOLD):
    """
    Perform template matching and return confidence score.

    Returns:
        tuple: (matched, confidence, location)
    """
    if mask is not None:
        result = cv2.matchTemplate(image, template, cv2.TM_CCORR_NORMED, mask=mask)
    else:
        result = cv2.matchTemplate(image, template, cv2.TM_CCOEFF_NORMED)

    min_val, max_val, min_loc, max_loc = cv2.minMaxLoc(result)

    return max_val >= threshold, max_val, max_loc


class Perception(abc.ABC):
    """
    Stateless frame recognizers. Each call looks at one normalized frame.

    Subclasses supply the recognizers; best_template_match and
    read_stage_name have usable defaults.
    """

    stage_reader = None

    @abc.abstractmethod
    def read_roster(self, frame):
        """Return the list of RosterEntry visible on the formation screen (empty if none)."""

    def read_stage_name(self, frame):
        """Return the stage name text, or None if nothing was read."""
        if self.stage_reader is None:
            raise StageNotFoundError("No stage name reader configured")
        return self.stage_reader(frame)

    def can_read_stage_name(self):
        """True if a stage_reader is set or read_stage_name is overridden."""
        overridden = type(self).read_stage_name is not Perception.read_stage_name
        return overridden or self.stage_reader is not None

    @abc.abstractmethod
    def detect_battle_ui(self, frame):
        """Return True when the battle has visibly started (start button / battle HUD)."""

    @abc.abstractmethod
    def detect_deploy_tray(self, frame):
        """Return a TrayResult for the pre-battle deploy screen."""

    @abc.abstractmethod
    def detect_battlefield_units(self, frame):
        """Return a list of UnitBox for units standing on the map."""

    @abc.abstractmethod
    def classify_direction(self, frame, base_point):
        """Return the DeployDirection of the unit standing at a tile's screen point."""

    @abc.abstractmethod
    def detect_on_field(self, frame):
        """Return an OnFieldResult (deploy tray units plus detail page flag)."""

    def best_template_match(self, candidates, image, threshold=DEFAULT_THRESHOLD):
        """
        Find the candidate template that best matches inside `image`.

        Args:
            candidates: Iterable of (name, template) pairs
            image: Image to search in
            threshold: Minimum confidence to accept

        Returns:
            TemplateMatch for the best candidate, or None if none reached threshold
        """
        image_gray = _to_gray(image)
        best = None
        for name, template in candidates:
            template_gray = _to_gray(template)
            th, tw = template_gray.shape[:2]
            ih, iw = image_gray.shape[:2]
            if th > ih or tw > iw or th == 0 or tw == 0:
                continue

            matched, confidence, loc = match_template(image_gray, template_gray, threshold=threshold)
            if matched and (best is None or confidence > best.score):
                best = TemplateMatch(name=name, score=confidence, loc=loc)
        return best


def _to_gray(image):
    if image.ndim == 3:
        return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
    return image


class OcrStageNameReader:
    """Reads the stage code from a fixed screen region with Tesseract."""

    TARGET_OCR_HEIGHT = 100

    def __init__(self, game_data, roi, min_similarity=0.8):
        """
        Args:
            game_data: GameData used to snap OCR text to a known stage name
            roi: Rect (at processing resolution) where the stage name is shown
            min_similarity: Minimum similarity ratio (0-1) to accept a stage name
        """
        self.game_data = game_data
        self.roi = Rect(*roi)
        self.min_similarity = min_similarity

    def preprocess(self, region):
        gray = _to_gray(region)

        # Upscale so Tesseract sees ~100px tall text
        upscale_factor = max(1.0, self.TARGET_OCR_HEIGHT / max(gray.shape[0], 1))
        gray = cv2.resize(gray, None, fx=upscale_factor, fy=upscale_factor, interpolation=cv2.INTER_CUBIC)

        _, thresh = cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)

        # Text should be black on white for OCR
        if np.sum(thresh == 0) > np.sum(thresh == 255):
            thresh = cv2.bitwise_not(thresh)

        # Tesseract needs margin to recognize edge characters
        padding = 20
        return cv2.copyMakeBorder(thresh, padding, padding, padding, padding,
                                  cv2.BORDER_CONSTANT, value=255)

    def __call__(self, frame):
        region = self.roi.crop(frame.image)
        if region.size == 0:
            return None

        # PSM 7: single line of text
        text = pytesseract.image_to_string(self.preprocess(region), config=r'--oem 3 --psm 7').strip()
        if not text:
            return None

        stage = self.game_data.closest_stage(text, min_similarity=self.min_similarity)
        logger.debug(f"Frame {frame.index}: OCR '{text}' -> {stage!r}")
        return stage or text
