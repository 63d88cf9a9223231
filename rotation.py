"""Deskew barcode crops using Hough line segments.

Pipeline: grayscale -> erode/dilate (5x5) -> Canny(50, 200) -> HoughLinesP.
The angle of the last segment HoughLinesP returns is used; the crop is
padded onto a white square canvas before rotating so corners are not clipped.
"""

import logging
import math

import cv2
import numpy as np

logger = logging.getLogger("scanner")

_kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (5, 5))


def _to_gray(image: np.ndarray) -> np.ndarray:
    if len(image.shape) == 3:
        if image.shape[2] == 4:
            return cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
        return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
    return image


def find_line_segments(
    image: np.ndarray,
    canny_low: float = 50,
    canny_high: float = 200,
    rho: float = 0.8,
    theta: float = np.pi / 360,
    threshold: int = 50,
    min_length: float = 50,
    max_gap: float = 10,
) -> np.ndarray:
    """Return an (N, 4) array of x1, y1, x2, y2 segments (N may be 0)."""
    gray = _to_gray(image)
    cleaned = cv2.dilate(cv2.erode(gray, _kernel), _kernel)
    edges = cv2.Canny(cleaned, canny_low, canny_high)
    lines = cv2.HoughLinesP(
        edges, rho, theta, threshold, minLineLength=min_length, maxLineGap=max_gap
    )
    if lines is None:
        return np.empty((0, 4), dtype=np.int32)
    return lines.reshape(-1, 4)


def segment_angle(x1: float, y1: float, x2: float, y2: float) -> float:
    return math.degrees(math.atan2(y2 - y1, x2 - x1))


def estimate_angle(segments) -> float:
    """Angle in degrees of the last segment, 0.0 when there are none."""
    angle = 0.0
    for x1, y1, x2, y2 in segments:
        angle = segment_angle(x1, y1, x2, y2)
    return angle


def pad_to_square(image: np.ndarray) -> np.ndarray:
    """Center ``image`` on a white square canvas of its longer side."""
    h, w = image.shape[:2]
    side = max(h, w)
    if h == w:
        return image.copy()
    canvas_shape = (side, side) + image.shape[2:]
    canvas = np.full(canvas_shape, 255, dtype=image.dtype)
    top = (side - h) // 2
    left = (side - w) // 2
    canvas[top : top + h, left : left + w] = image
    return canvas


def rotate(image: np.ndarray, angle: float) -> np.ndarray:
    if angle == 0:
        return image
    h, w = image.shape[:2]
    center = (w / 2, h / 2)
    matrix = cv2.getRotationMatrix2D(center, angle, 1.0)
    return cv2.warpAffine(image, matrix, (w, h), borderValue=(255, 255, 255))


class RotationCorrector:
    def __init__(self, **hough_params):
        self.hough_params = hough_params
        self.last_angle = 0.0

    def deskew(self, image: np.ndarray) -> np.ndarray:
        """Return a squared, rotated copy of ``image``; never raises."""
        if image is None or image.size == 0:
            self.last_angle = 0.0
            return image

        try:
            segments = find_line_segments(image, **self.hough_params)
        except cv2.error as e:
            logger.debug("Line detection failed: %s", e)
            segments = ()
        angle = estimate_angle(segments)
        self.last_angle = angle
        logger.debug("Deskew angle %.2f from %d segments", angle, len(segments))

        squared = pad_to_square(image)
        try:
            return rotate(squared, angle)
        except cv2.error as e:
            logger.debug("Rotation failed: %s", e)
            return squared
