"""Low-light brightness/contrast boost applied before detection."""

import logging
from dataclasses import replace

import cv2

from models import Frame

logger = logging.getLogger("scanner")


class FrameEnhancer:
    """Boost dark frames; frames at or above the threshold pass through."""

    def __init__(self, threshold: float = 0.5, alpha: float = 1.5, beta: float = 40.0):
        self.threshold = threshold
        self.alpha = alpha  # contrast gain
        self.beta = beta    # brightness offset

    def needs_enhancement(self, brightness: float | None) -> bool:
        return (brightness or 0.0) < self.threshold

    def enhance(self, frame: Frame, brightness: float | None = None) -> Frame:
        """Return a new Frame with corrected pixels, or ``frame`` itself.

        The input buffer is never written to.
        """
        if brightness is None:
            brightness = frame.brightness_value
        if not self.needs_enhancement(brightness):
            return frame

        logger.debug("Low brightness (%.2f), applying contrast boost", brightness)
        try:
            adjusted = cv2.convertScaleAbs(frame.image, alpha=self.alpha, beta=self.beta)
        except cv2.error as e:
            logger.warning("Brightness correction failed: %s", e)
            return frame
        return replace(frame, image=adjusted)
