"""Frame sources: a live OpenCV camera, or a folder of still images for debugging."""

import logging
import time
from pathlib import Path

import cv2
import numpy as np

from models import Frame

logger = logging.getLogger("scanner")

IMAGE_SUFFIXES = {".png", ".jpg", ".jpeg", ".bmp", ".webp"}


def estimate_brightness(image: np.ndarray) -> float:
    """Mean luminance scaled to [0, 1]."""
    if image is None or image.size == 0:
        return 0.0
    gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY) if image.ndim == 3 else image
    return float(gray.mean()) / 255.0


class CameraSource:
    """Yield frames from a VideoCapture device.

    Frames are read only when the consumer asks for the next one, so frames
    produced while the pipeline is busy are dropped by the driver buffer.
    """

    def __init__(self, index: int = 0, width: int | None = None, height: int | None = None):
        self.index = index
        self._cap = cv2.VideoCapture(index)
        if width:
            self._cap.set(cv2.CAP_PROP_FRAME_WIDTH, width)
        if height:
            self._cap.set(cv2.CAP_PROP_FRAME_HEIGHT, height)
        # Keep only the newest frame in the driver queue
        self._cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)

    @property
    def opened(self) -> bool:
        return self._cap.isOpened()

    def read(self) -> Frame | None:
        ok, image = self._cap.read()
        if not ok or image is None:
            logger.warning("Camera %d returned no frame", self.index)
            return None
        return Frame(image=image, timestamp=time.time(), brightness=estimate_brightness(image))

    def __iter__(self):
        while self.opened:
            frame = self.read()
            if frame is None:
                break
            yield frame

    def close(self):
        self._cap.release()


class ImageFolderSource:
    """Replay still images from a directory (or a single file) as frames."""

    def __init__(self, path: str, repeat: int = 1, brightness: float | None = None):
        p = Path(path)
        if p.is_dir():
            self.paths = sorted(f for f in p.iterdir() if f.suffix.lower() in IMAGE_SUFFIXES)
        else:
            self.paths = [p]
        self.repeat = repeat
        self.brightness = brightness

    def __iter__(self):
        for path in self.paths:
            image = cv2.imread(str(path), cv2.IMREAD_COLOR)
            if image is None:
                logger.warning("Could not read image %s", path)
                continue
            brightness = self.brightness if self.brightness is not None else estimate_brightness(image)
            for _ in range(self.repeat):
                yield Frame(image=image, timestamp=time.time(), brightness=brightness)

    def close(self):
        pass
