"""
Sequential frame access over a recorded video.

A single VideoFrameSource is owned by whichever pipeline stage is currently
running; stages hand it over in order and re-seek it explicitly when they
need to revisit a clip.
"""

import logging

import cv2

from errors import EndOfStream
from models import Frame
from settings import DEFAULT_TARGET_HEIGHT

logger = logging.getLogger(__name__)


class VideoFrameSource:
    """Forward cursor over the frames of a video file."""

    def __init__(self, video_path, target_height=DEFAULT_TARGET_HEIGHT):
        """
        Open the video.

        Args:
            video_path: Path to the input video file
            target_height: Height every frame is resized to before recognition
        """
        self.video_path = str(video_path)
        self.cap = cv2.VideoCapture(self.video_path)
        if not self.cap.isOpened():
            raise FileNotFoundError(f"Could not open video: {self.video_path}")

        self.fps = self.cap.get(cv2.CAP_PROP_FPS)
        self.total_frames = int(self.cap.get(cv2.CAP_PROP_FRAME_COUNT))
        video_height = self.cap.get(cv2.CAP_PROP_FRAME_HEIGHT)
        self.scale = target_height / video_height
        self.position = 0

        logger.info(f"Opened {self.video_path}: {self.total_frames} frames at {self.fps:.2f} fps "
                    f"(scale={self.scale:.3f})")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def close(self):
        if self.cap is not None and self.cap.isOpened():
            self.cap.release()

    def _decode(self):
        """Decode the next raw frame, or None at end of stream."""
        ret, image = self.cap.read()
        return image if ret else None

    def _discard(self):
        """Drop the next raw frame. Returns False at end of stream."""
        return self.cap.grab()

    def _reposition(self, index):
        self.cap.set(cv2.CAP_PROP_POS_FRAMES, float(index))

    def read(self):
        """
        Decode and normalize the frame at the cursor.

        Returns:
            Frame: The resized frame with its source index

        Raises:
            EndOfStream: If the video has no frame at the cursor
        """
        index = self.position
        image = self._decode()
        if image is None:
            logger.error(f"Frame {index} is empty")
            raise EndOfStream(index)
        self.position += 1

        if self.scale != 1.0:
            image = cv2.resize(image, None, fx=self.scale, fy=self.scale, interpolation=cv2.INTER_AREA)
        return Frame(index=index, image=image)

    def skip(self, count):
        """Discard `count` frames without decoding them."""
        for _ in range(count):
            if not self._discard():
                break
            self.position += 1

    def seek(self, index):
        """Move the cursor to an absolute frame index."""
        self._reposition(index)
        self.position = index

    def step_for(self, rate):
        """Number of frames between samples for a sampling rate in samples per second."""
        if self.fps > rate:
            return int(self.fps / rate)
        return 1

    def sample(self, step, end=None):
        """
        Yield every `step`-th frame from the cursor up to `end` (exclusive).

        If the caller stops iterating, the cursor stays just after the last
        yielded frame, so the next stage picks up from there.
        """
        if end is None:
            end = self.total_frames
        while self.position < end:
            frame = self.read()
            yield frame
            self.skip(step - 1)
