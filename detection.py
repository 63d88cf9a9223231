"""Candidate detectors: find regions that look like QR codes or barcodes.

Any object with ``detect(frame, preview_size) -> list[DetectionCandidate]``
can drive the pipeline. Two are provided: a model-free gradient/contour
detector and an Ultralytics YOLO wrapper.
"""

import logging
from typing import Protocol

import cv2
import numpy as np

from models import DetectionCandidate, Frame, Rect, Symbology

logger = logging.getLogger("scanner")


class ObjectDetector(Protocol):
    def detect(self, frame: Frame, preview_size: tuple[int, int]) -> list[DetectionCandidate]:
        ...


def _preview_scale(frame: Frame, preview_size: tuple[int, int] | None) -> tuple[float, float]:
    if not preview_size:
        return 1.0, 1.0
    pw, ph = preview_size
    return pw / frame.width, ph / frame.height


class GradientDetector:
    """Find code-like regions via gradient energy and contours.

    Barcodes and QR codes are regions of dense, high-contrast edges. The
    gradient map is blurred, thresholded and closed so each code becomes a
    blob; blobs with a near-square box are QR, elongated ones are Linear.
    """

    def __init__(
        self,
        min_w: int = 40,
        min_h: int = 20,
        square_aspect: float = 1.4,
        max_aspect: float = 8.0,
    ):
        self.min_w = min_w
        self.min_h = min_h
        self.square_aspect = square_aspect
        self.max_aspect = max_aspect

    def _blob_mask(self, gray: np.ndarray) -> np.ndarray:
        grad_x = cv2.Sobel(gray, cv2.CV_32F, 1, 0, ksize=-1)
        grad_y = cv2.Sobel(gray, cv2.CV_32F, 0, 1, ksize=-1)
        gradient = cv2.convertScaleAbs(cv2.magnitude(grad_x, grad_y))
        blurred = cv2.blur(gradient, (9, 9))
        _, thresh = cv2.threshold(blurred, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)

        # Close gaps between bars / modules
        kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (21, 7))
        closed = cv2.morphologyEx(thresh, cv2.MORPH_CLOSE, kernel)
        closed = cv2.erode(closed, None, iterations=4)
        return cv2.dilate(closed, None, iterations=4)

    def detect(self, frame: Frame, preview_size: tuple[int, int] | None = None) -> list[DetectionCandidate]:
        image = frame.image
        gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY) if image.ndim == 3 else image
        mask = self._blob_mask(gray)
        contours, _ = cv2.findContours(mask, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)

        sx, sy = _preview_scale(frame, preview_size)
        frame_h, frame_w = gray.shape[:2]
        results = []
        for cnt in contours:
            x, y, w, h = cv2.boundingRect(cnt)
            if w < self.min_w or h < self.min_h:
                continue
            # Skip if nearly full-frame (probably background)
            if w > frame_w * 0.95 and h > frame_h * 0.95:
                continue

            aspect = max(w, h) / max(min(w, h), 1)
            if aspect > self.max_aspect:
                continue
            symbology = Symbology.QR if aspect <= self.square_aspect else Symbology.LINEAR

            fill = cv2.contourArea(cnt) / float(w * h)
            crop = image[y : y + h, x : x + w].copy()
            results.append(DetectionCandidate(
                symbology=symbology,
                confidence=float(min(max(fill, 0.0), 1.0)),
                rect=Rect(x, y, w, h).scaled(sx, sy),
                crop=crop,
            ))

        logger.debug("Gradient detector found %d candidates", len(results))
        return results


class YoloDetector:
    """Ultralytics YOLO model whose class names identify QR vs barcode."""

    def __init__(self, model_path: str, min_confidence: float = 0.3, device: str | None = None):
        import ultralytics

        logger.info("Loading YOLO model from %s", model_path)
        self.model = ultralytics.YOLO(model_path)
        if device:
            self.model.to(device)
        self.min_confidence = min_confidence
        self.names = getattr(self.model, "names", {}) or {}

    def _symbology(self, class_id: int) -> Symbology:
        name = str(self.names.get(class_id, "")).lower()
        return Symbology.QR if "qr" in name else Symbology.LINEAR

    def detect(self, frame: Frame, preview_size: tuple[int, int] | None = None) -> list[DetectionCandidate]:
        try:
            predictions = self.model(frame.image, conf=self.min_confidence, verbose=False)
        except Exception as e:
            logger.warning("YOLO inference failed: %s", e)
            return []

        sx, sy = _preview_scale(frame, preview_size)
        results = []
        for prediction in predictions:
            boxes = getattr(prediction, "boxes", None)
            if boxes is None:
                continue
            for xyxy, conf, cls in zip(
                boxes.xyxy.cpu().numpy(), boxes.conf.cpu().numpy(), boxes.cls.cpu().numpy()
            ):
                x1, y1, x2, y2 = (int(v) for v in xyxy)
                x1, y1 = max(0, x1), max(0, y1)
                x2, y2 = min(frame.width, x2), min(frame.height, y2)
                crop = frame.image[y1:y2, x1:x2].copy()
                results.append(DetectionCandidate(
                    symbology=self._symbology(int(cls)),
                    confidence=float(conf),
                    rect=Rect(x1, y1, x2 - x1, y2 - y1).scaled(sx, sy),
                    crop=crop,
                ))
        return results
